import copy
import tempfile
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from io import StringIO
from pathlib import Path

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from .checks import check_ancillary_charge_rules
from .constants.charges import ANCILLARY_CHARGE_RULES, AncillaryChargeRule, ChargeKind
from .forms import CustomerForm
from .models import AuditLog, Customer, QuoteLineItem, QuotePiece, RouteRate, SavedQuote
from .services.calculation import (
    Quote,
    QuoteRejection,
    RejectionReason,
    generate_quote,
    price_quote,
    validate_rule_set,
)
from .services.chargeable_weight import Piece, calculate_chargeable_weight
from .services.persistence import save_quote
from .services.rate_table import available_locations, get_rate_table, parse_rate_sheet_rows, replace_route_rate
from .templatetags.quotation_extras import money


RATE_TABLE = {
    "POM": {"LAE": {"rate": Decimal("5.00")}},
    "LAE": {"POM": {"rate": Decimal("0")}},
    "XYZ": {"ABC": {"rate": Decimal("4.00")}, "LAE": {"rate": Decimal("3.00")}},
}


def _line(quote: Quote, name: str):
    return next(item for item in quote.line_items if item.name == name)


def _pieces_post_data(*rows, prefix: str = "pieces") -> dict:
    data = {
        f"{prefix}-TOTAL_FORMS": str(len(rows)),
        f"{prefix}-INITIAL_FORMS": "0",
        f"{prefix}-MIN_NUM_FORMS": "0",
        f"{prefix}-MAX_NUM_FORMS": "200",
    }
    for index, row in enumerate(rows):
        for key in ("weight_kg", "length_cm", "width_cm", "height_cm"):
            data[f"{prefix}-{index}-{key}"] = row.get(key, "")
    return data


class ChargeableWeightTests(SimpleTestCase):
    def test_fractional_total_is_rounded_up(self):
        self.assertEqual(calculate_chargeable_weight([Piece(actual_weight="10.2")]), 11)
        self.assertEqual(calculate_chargeable_weight([Piece(actual_weight="10")]), 10)

    def test_volumetric_weight_wins_when_greater(self):
        piece = Piece(actual_weight="20", length="100", width="100", height="100")
        self.assertEqual(calculate_chargeable_weight([piece]), 167)

    def test_pieces_are_summed_before_rounding(self):
        pieces = [Piece(actual_weight="0.4"), Piece(actual_weight="0.4")]
        self.assertEqual(calculate_chargeable_weight(pieces), 1)

    def test_piece_without_weight_and_length_is_ignored(self):
        self.assertEqual(calculate_chargeable_weight([Piece(width="500", height="500")]), 0)

    def test_piece_with_only_dimensions_counts_volume(self):
        piece = Piece(length="60", width="50", height="40")
        self.assertEqual(calculate_chargeable_weight([piece]), 20)

    def test_negative_and_malformed_values_are_clamped_to_zero(self):
        self.assertEqual(calculate_chargeable_weight([Piece(actual_weight="-5", length="-10")]), 0)
        self.assertEqual(calculate_chargeable_weight([Piece(actual_weight="abc", length=None)]), 0)
        self.assertEqual(Piece(actual_weight="-1").actual_weight, Decimal("0"))

    def test_no_pieces_gives_zero(self):
        self.assertEqual(calculate_chargeable_weight([]), 0)

    def test_from_mapping_treats_blank_fields_as_zero(self):
        piece = Piece.from_mapping({"weight_kg": Decimal("12.5"), "length_cm": None, "width_cm": "", "height_cm": "30"})
        self.assertEqual(piece.actual_weight, Decimal("12.5"))
        self.assertEqual(piece.length, Decimal("0"))
        self.assertTrue(piece.is_counted)

    def test_custom_volumetric_divisor(self):
        piece = Piece(length="50", width="50", height="50")
        self.assertEqual(calculate_chargeable_weight([piece], volumetric_divisor=Decimal("5000")), 25)


class QuoteCalculationTests(SimpleTestCase):
    def test_worked_example_pom_to_lae(self):
        quote = generate_quote(
            pieces=[Piece(actual_weight="50")],
            origin="POM",
            destination="LAE",
            rate_table=RATE_TABLE,
        )

        self.assertIsInstance(quote, Quote)
        self.assertEqual(quote.chargeable_weight, 50)
        self.assertEqual(
            {item.name: item.sub_total for item in quote.line_items},
            {
                "Air Freight": Decimal("250.00"),
                "AWB Fee": Decimal("70.00"),
                "Security Surcharge": Decimal("10.00"),
                "Airline Fuel Surcharge": Decimal("17.50"),
                "PUD Fee": Decimal("80.00"),
                "PUD Fuel Surcharge": Decimal("8.00"),
            },
        )
        self.assertEqual(quote.sub_total, Decimal("435.50"))
        self.assertEqual(quote.tax, Decimal("43.55"))
        self.assertEqual(quote.grand_total, Decimal("479.05"))

    def test_line_items_are_sorted_by_name_case_insensitive(self):
        quote = price_quote(chargeable_weight=50, origin="POM", destination="LAE", rate_table=RATE_TABLE)
        self.assertEqual(
            [item.name for item in quote.line_items],
            [
                "Air Freight",
                "Airline Fuel Surcharge",
                "AWB Fee",
                "PUD Fee",
                "PUD Fuel Surcharge",
                "Security Surcharge",
            ],
        )

    def test_ordering_does_not_depend_on_rule_order(self):
        reordered = tuple(reversed(ANCILLARY_CHARGE_RULES))
        expected = price_quote(chargeable_weight=50, origin="POM", destination="LAE", rate_table=RATE_TABLE)
        quote = price_quote(chargeable_weight=50, origin="POM", destination="LAE", rate_table=RATE_TABLE, rules=reordered)
        self.assertEqual(quote, expected)

    def test_totals_reconcile_with_line_items(self):
        quote = price_quote(chargeable_weight=37, origin="XYZ", destination="LAE", rate_table=RATE_TABLE)
        self.assertEqual(quote.sub_total, sum(item.sub_total for item in quote.line_items))
        self.assertEqual(quote.tax, sum(item.tax for item in quote.line_items))
        self.assertEqual(quote.grand_total, sum(item.total for item in quote.line_items))

    def test_each_line_carries_ten_percent_tax(self):
        quote = price_quote(chargeable_weight=37, origin="POM", destination="LAE", rate_table=RATE_TABLE)
        for item in quote.line_items:
            self.assertEqual(item.tax, item.sub_total * Decimal("0.10"))
            self.assertEqual(item.total, item.sub_total + item.tax)

    def test_pud_charges_apply_when_destination_is_pud_location(self):
        quote = price_quote(chargeable_weight=10, origin="XYZ", destination="LAE", rate_table=RATE_TABLE)
        names = [item.name for item in quote.line_items]
        self.assertIn("PUD Fee", names)
        self.assertIn("PUD Fuel Surcharge", names)

    def test_pud_charges_absent_outside_pud_locations(self):
        quote = price_quote(chargeable_weight=10, origin="XYZ", destination="ABC", rate_table=RATE_TABLE)
        names = [item.name for item in quote.line_items]
        self.assertNotIn("PUD Fee", names)
        self.assertNotIn("PUD Fuel Surcharge", names)
        self.assertEqual(len(names), 4)

    def test_pud_locations_can_be_overridden(self):
        quote = price_quote(
            chargeable_weight=10,
            origin="XYZ",
            destination="ABC",
            rate_table=RATE_TABLE,
            pud_locations={"ABC"},
        )
        self.assertIn("PUD Fee", [item.name for item in quote.line_items])

    def test_minimum_charge_floors_low_weight_charges(self):
        quote = price_quote(chargeable_weight=10, origin="POM", destination="LAE", rate_table=RATE_TABLE)
        self.assertEqual(_line(quote, "Security Surcharge").sub_total, Decimal("5.00"))
        self.assertEqual(_line(quote, "PUD Fee").sub_total, Decimal("80.00"))

    def test_pud_fuel_uses_floored_pud_fee(self):
        quote = price_quote(chargeable_weight=10, origin="POM", destination="LAE", rate_table=RATE_TABLE)
        self.assertEqual(_line(quote, "PUD Fuel Surcharge").sub_total, Decimal("8.00"))
        self.assertEqual(_line(quote, "PUD Fuel Surcharge").rate, Decimal("0.10"))

    def test_zero_generic_charge_is_omitted(self):
        rules = ANCILLARY_CHARGE_RULES + (
            AncillaryChargeRule(rule_id="waived", name="Waived Handling", kind=ChargeKind.PER_WEIGHT, rate=Decimal("0")),
        )
        quote = price_quote(chargeable_weight=10, origin="XYZ", destination="ABC", rate_table=RATE_TABLE, rules=rules)
        self.assertNotIn("Waived Handling", [item.name for item in quote.line_items])

    def test_zero_pud_charge_is_still_emitted(self):
        rules = tuple(
            replace(rule, rate=Decimal("0"), minimum_charge=Decimal("0")) if rule.rule_id == "pud_fee" else rule
            for rule in ANCILLARY_CHARGE_RULES
        )
        quote = price_quote(chargeable_weight=10, origin="POM", destination="LAE", rate_table=RATE_TABLE, rules=rules)
        self.assertEqual(_line(quote, "PUD Fee").sub_total, Decimal("0"))
        self.assertEqual(_line(quote, "PUD Fuel Surcharge").sub_total, Decimal("0"))

    def test_generic_percentage_charge_uses_referenced_charge(self):
        rules = ANCILLARY_CHARGE_RULES + (
            AncillaryChargeRule(
                rule_id="insurance",
                name="Security Levy",
                kind=ChargeKind.PERCENTAGE_OF_ANOTHER,
                rate=Decimal("0.50"),
                depends_on="security_surcharge",
            ),
        )
        quote = price_quote(chargeable_weight=50, origin="XYZ", destination="ABC", rate_table=RATE_TABLE, rules=rules)
        self.assertEqual(_line(quote, "Security Levy").sub_total, Decimal("5.00"))

    def test_rejects_zero_weight(self):
        result = generate_quote(pieces=[Piece()], origin="POM", destination="LAE", rate_table=RATE_TABLE)
        self.assertIsInstance(result, QuoteRejection)
        self.assertEqual(result.reason, RejectionReason.NO_SHIPMENT_DETAILS)

    def test_rejects_identical_origin_and_destination(self):
        result = price_quote(chargeable_weight=10, origin="POM", destination="POM", rate_table=RATE_TABLE)
        self.assertEqual(result.reason, RejectionReason.IDENTICAL_ORIGIN_DESTINATION)

    def test_rejects_missing_route(self):
        result = price_quote(chargeable_weight=10, origin="POM", destination="ZZZ", rate_table=RATE_TABLE)
        self.assertEqual(result.reason, RejectionReason.ROUTE_UNAVAILABLE)
        self.assertEqual(result.message, "Sorry, a rate for POM to ZZZ is not available.")

    def test_rejects_non_positive_rate_and_is_directional(self):
        result = price_quote(chargeable_weight=10, origin="LAE", destination="POM", rate_table=RATE_TABLE)
        self.assertEqual(result.reason, RejectionReason.ROUTE_UNAVAILABLE)
        result = price_quote(chargeable_weight=10, origin="ABC", destination="XYZ", rate_table=RATE_TABLE)
        self.assertEqual(result.reason, RejectionReason.ROUTE_UNAVAILABLE)

    def test_inputs_are_not_mutated(self):
        table = copy.deepcopy(RATE_TABLE)
        rules = ANCILLARY_CHARGE_RULES
        first = price_quote(chargeable_weight=42, origin="POM", destination="LAE", rate_table=table, rules=rules)
        second = price_quote(chargeable_weight=42, origin="POM", destination="LAE", rate_table=table, rules=rules)
        self.assertEqual(first, second)
        self.assertEqual(table, RATE_TABLE)
        self.assertIs(rules, ANCILLARY_CHARGE_RULES)


class RuleSetValidationTests(SimpleTestCase):
    def test_default_rules_are_valid(self):
        self.assertEqual(validate_rule_set(ANCILLARY_CHARGE_RULES), [])
        self.assertEqual(check_ancillary_charge_rules(), [])

    def test_broken_rules_are_reported(self):
        rules = (
            AncillaryChargeRule(rule_id="a", name="A", kind=ChargeKind.PER_SHIPMENT, rate=Decimal("1")),
            AncillaryChargeRule(rule_id="a", name="A again", kind=ChargeKind.PER_SHIPMENT, rate=Decimal("1")),
            AncillaryChargeRule(rule_id="b", name="B", kind=ChargeKind.PERCENTAGE_OF_ANOTHER, rate=Decimal("0.1")),
            AncillaryChargeRule(
                rule_id="c", name="C", kind=ChargeKind.PERCENTAGE_OF_ANOTHER, rate=Decimal("0.1"), depends_on="missing"
            ),
            AncillaryChargeRule(rule_id="d", name="D", kind=ChargeKind.PER_WEIGHT, rate=Decimal("1"), depends_on="a"),
        )
        errors = validate_rule_set(rules)
        self.assertIn("Duplicate ancillary rule id 'a'.", errors)
        self.assertIn("Rule 'b' is a percentage charge without a referenced rule.", errors)
        self.assertIn("Rule 'c' references unknown rule 'missing'.", errors)
        self.assertIn("Rule 'd' references 'a' but is not a percentage charge.", errors)

    def test_dependency_cycle_fails_system_check(self):
        rules = (
            AncillaryChargeRule(
                rule_id="x", name="X", kind=ChargeKind.PERCENTAGE_OF_ANOTHER, rate=Decimal("0.1"), depends_on="y"
            ),
            AncillaryChargeRule(
                rule_id="y", name="Y", kind=ChargeKind.PERCENTAGE_OF_ANOTHER, rate=Decimal("0.1"), depends_on="x"
            ),
        )
        errors = check_ancillary_charge_rules(rules=rules)
        self.assertEqual(len(errors), 2)
        self.assertEqual(errors[0].id, "quotations.E001")


class NumberFormattingTests(SimpleTestCase):
    def test_money_formats_thousands_and_two_decimals(self):
        self.assertEqual(money(1234567.891), "1,234,567.89")
        self.assertEqual(money("1200"), "1,200.00")
        self.assertEqual(money(Decimal("43.555")), "43.56")
        self.assertEqual(money(0), "0.00")
        self.assertEqual(money(Decimal("-5.5")), "-5.50")

    def test_money_leaves_non_numbers_untouched(self):
        self.assertEqual(money("n/a"), "n/a")
        self.assertIsNone(money(None))


class RateTableTests(TestCase):
    def test_rate_table_contains_only_effective_rates(self):
        today = date.today()
        RouteRate.objects.create(origin_code="POM", destination_code="LAE", rate_per_kg=Decimal("5.0000"))
        RouteRate.objects.create(
            origin_code="POM",
            destination_code="HGU",
            rate_per_kg=Decimal("4.0000"),
            effective_from=today - timedelta(days=30),
            effective_to=today - timedelta(days=1),
            is_active=False,
        )
        RouteRate.objects.create(
            origin_code="LAE",
            destination_code="POM",
            rate_per_kg=Decimal("6.0000"),
            effective_from=today + timedelta(days=5),
        )

        table = get_rate_table()

        self.assertEqual(table["POM"]["LAE"]["rate"], Decimal("5.0000"))
        self.assertNotIn("HGU", table["POM"])
        self.assertNotIn("LAE", table)
        self.assertEqual(available_locations(table), ["LAE", "POM"])

    def test_codes_are_normalized_on_save(self):
        rate = RouteRate.objects.create(origin_code=" pom ", destination_code="lae", rate_per_kg=Decimal("5"))
        self.assertEqual((rate.origin_code, rate.destination_code), ("POM", "LAE"))

    def test_replace_route_rate_closes_previous_rate(self):
        first = RouteRate.objects.create(origin_code="POM", destination_code="LAE", rate_per_kg=Decimal("5.0000"))
        second = replace_route_rate(origin_code="pom", destination_code="lae", rate_per_kg=Decimal("5.5000"))

        first.refresh_from_db()
        self.assertFalse(first.is_active)
        self.assertIsNotNone(first.effective_to)
        self.assertEqual(get_rate_table()["POM"]["LAE"]["route_rate_id"], second.id)

    def test_replace_route_rate_closes_future_rate_on_its_start_date(self):
        start = date.today() + timedelta(days=10)
        future = RouteRate.objects.create(
            origin_code="POM", destination_code="LAE", rate_per_kg=Decimal("5.0000"), effective_from=start
        )
        replace_route_rate(origin_code="POM", destination_code="LAE", rate_per_kg=Decimal("5.5000"))

        future.refresh_from_db()
        self.assertFalse(future.is_active)
        self.assertEqual(future.effective_to, start)
        self.assertGreaterEqual(future.effective_to, future.effective_from)

    def test_open_active_rate_is_unique_per_route(self):
        RouteRate.objects.create(origin_code="POM", destination_code="LAE", rate_per_kg=Decimal("5.0000"))
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                RouteRate.objects.create(origin_code="POM", destination_code="LAE", rate_per_kg=Decimal("6.0000"))

    def test_reverse_route_is_a_separate_rate(self):
        RouteRate.objects.create(origin_code="POM", destination_code="LAE", rate_per_kg=Decimal("5.0000"))
        RouteRate.objects.create(origin_code="LAE", destination_code="POM", rate_per_kg=Decimal("4.5000"))
        table = get_rate_table()
        self.assertEqual(table["LAE"]["POM"]["rate"], Decimal("4.5000"))

    def test_parse_rate_sheet_rows_skips_unusable_rows(self):
        rows = parse_rate_sheet_rows(
            [
                {"OriginAirportCode": "POM", "DestinationAirportCode": "LAE", "Rate_Per_KG_PGK": "5.20"},
                {"OriginAirportCode": " ", "DestinationAirportCode": "LAE", "Rate_Per_KG_PGK": "5.20"},
                {"OriginAirportCode": "LAE", "DestinationAirportCode": "HGU", "Rate_Per_KG_PGK": "n/a"},
                {"OriginAirportCode": "POM", "DestinationAirportCode": "POM", "Rate_Per_KG_PGK": "1"},
                {"OriginAirportCode": "hgu", "DestinationAirportCode": "pom", "Rate_Per_KG_PGK": "0"},
            ]
        )
        self.assertEqual(
            [(row.origin_code, row.destination_code, row.rate_per_kg) for row in rows],
            [("POM", "LAE", Decimal("5.20")), ("HGU", "POM", Decimal("0"))],
        )


class ImportRouteRatesCommandTests(TestCase):
    def _write_sheet(self, content: str) -> Path:
        directory = tempfile.TemporaryDirectory()
        self.addCleanup(directory.cleanup)
        path = Path(directory.name) / "rates.csv"
        path.write_text(content, encoding="utf-8")
        return path

    def test_import_creates_rates_and_audit_entry(self):
        path = self._write_sheet(
            "OriginAirportCode,DestinationAirportCode,Rate_Per_KG_PGK\n"
            "POM,LAE,5.00\n"
            "LAE,POM,4.75\n"
            ",HGU,3.00\n"
        )
        call_command("import_route_rates", str(path), stdout=StringIO())

        table = get_rate_table()
        self.assertEqual(table["POM"]["LAE"]["rate"], Decimal("5.0000"))
        self.assertEqual(table["LAE"]["POM"]["rate"], Decimal("4.7500"))
        self.assertEqual(RouteRate.objects.count(), 2)
        event = AuditLog.objects.get(action="IMPORT_RATES")
        self.assertEqual(event.metadata, {"source": "rates.csv", "rows": 2})

    def test_dry_run_saves_nothing(self):
        path = self._write_sheet("OriginAirportCode,DestinationAirportCode,Rate_Per_KG_PGK\nPOM,LAE,5.00\n")
        call_command("import_route_rates", str(path), "--dry-run", stdout=StringIO())
        self.assertFalse(RouteRate.objects.exists())


class QuotePersistenceTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user("clerk", password="clerkpass123")

    def test_saved_quote_keeps_lines_in_order_and_reconciles(self):
        pieces = [Piece(actual_weight="50"), Piece(width="20", height="20")]
        quote = generate_quote(pieces=pieces, origin="POM", destination="LAE", rate_table=RATE_TABLE)

        saved = save_quote(quote=quote, pieces=pieces, user=self.user, volumetric_divisor=Decimal("6000"))

        lines = list(saved.line_items.all())
        self.assertEqual([line.name for line in lines], [item.name for item in quote.line_items])
        self.assertEqual(saved.grand_total, Decimal("479.0500"))
        self.assertEqual(saved.sub_total, sum(line.sub_total for line in lines))
        self.assertEqual(saved.tax, sum(line.tax for line in lines))
        self.assertEqual(saved.grand_total, sum(line.total for line in lines))
        self.assertEqual(QuotePiece.objects.filter(quote=saved).count(), 1)
        self.assertEqual(saved.reference, f"Q-{saved.id:06d}")
        self.assertEqual(saved.client_name, "Valued Customer")

    def test_displayed_totals_equal_sum_of_displayed_rows(self):
        quote = price_quote(
            chargeable_weight=3,
            origin="XYZ",
            destination="ABC",
            rate_table={"XYZ": {"ABC": {"rate": Decimal("1.05")}}},
        )

        saved = save_quote(quote=quote, pieces=[], user=self.user, volumetric_divisor=Decimal("6000"))

        lines = list(saved.line_items.all())
        for line_field, quote_field in (("sub_total", "sub_total"), ("tax", "tax"), ("total", "grand_total")):
            displayed_rows = sum(Decimal(money(getattr(line, line_field))) for line in lines)
            self.assertEqual(money(displayed_rows), money(getattr(saved, quote_field)))
        self.assertEqual(saved.sub_total, Decimal("79.20"))
        self.assertEqual(saved.tax, Decimal("7.93"))
        self.assertEqual(saved.grand_total, Decimal("87.13"))


class QuoteViewTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        self.admin = user_model.objects.create_user("admin1", password="adminpass123", is_staff=True)
        self.user_a = user_model.objects.create_user("user_a", password="userpass123")
        self.user_b = user_model.objects.create_user("user_b", password="userpass123")
        self.pom_lae = RouteRate.objects.create(origin_code="POM", destination_code="LAE", rate_per_kg=Decimal("5.0000"))
        RouteRate.objects.create(origin_code="XYZ", destination_code="ABC", rate_per_kg=Decimal("4.0000"))
        RouteRate.objects.create(origin_code="ZZZ", destination_code="POM", rate_per_kg=Decimal("3.0000"))
        self.customer = Customer.objects.create(
            name="Jane Doe",
            company_name="Acme Freight",
            email="jane@example.com",
            address="Section 5\nPort Moresby",
        )

    def _quote_post(self, origin: str, destination: str, *pieces, customer: str = "") -> dict:
        data = {"origin": origin, "destination": destination, "customer": customer}
        data.update(_pieces_post_data(*pieces))
        return data

    def _create_quote(self, user, origin="POM", destination="LAE", grand_total="100.0000"):
        return SavedQuote.objects.create(
            user=user,
            origin_code=origin,
            destination_code=destination,
            chargeable_weight=10,
            sub_total=Decimal(grand_total),
            tax=Decimal("0"),
            grand_total=Decimal(grand_total),
        )

    def test_anonymous_user_is_sent_to_login(self):
        response = self.client.get(reverse("quotations:new_quote"))
        self.assertEqual(response.status_code, 302)
        self.assertIn(reverse("login"), response.url)

    def test_new_quote_lists_rate_table_locations(self):
        self.client.login(username="user_a", password="userpass123")
        response = self.client.get(reverse("quotations:new_quote"))
        self.assertEqual(response.status_code, 200)
        for code in ("ABC", "LAE", "POM", "XYZ", "ZZZ"):
            self.assertContains(response, f'value="{code}"')

    def test_quote_is_computed_saved_and_rendered(self):
        self.client.login(username="user_a", password="userpass123")
        response = self.client.post(
            reverse("quotations:new_quote"),
            self._quote_post("POM", "LAE", {"weight_kg": "50"}, customer=str(self.customer.id)),
            follow=True,
        )
        self.assertEqual(response.status_code, 200)

        quote = SavedQuote.objects.get()
        self.assertEqual(quote.user, self.user_a)
        self.assertEqual(quote.customer, self.customer)
        self.assertEqual(quote.applied_route_rate, self.pom_lae)
        self.assertEqual(quote.chargeable_weight, 50)
        self.assertEqual(quote.grand_total, Decimal("479.0500"))
        self.assertEqual(QuoteLineItem.objects.filter(quote=quote).count(), 6)
        self.assertContains(response, "Jane Doe (Acme Freight)")
        self.assertContains(response, "479.05")
        self.assertContains(response, "435.50")
        self.assertContains(response, "43.55")

    def test_identical_origin_and_destination_is_rejected(self):
        self.client.login(username="user_a", password="userpass123")
        response = self.client.post(reverse("quotations:new_quote"), self._quote_post("POM", "POM", {"weight_kg": "10"}))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "Origin and destination must be different.")
        self.assertFalse(SavedQuote.objects.exists())

    def test_unavailable_route_is_rejected(self):
        self.client.login(username="user_a", password="userpass123")
        response = self.client.post(reverse("quotations:new_quote"), self._quote_post("POM", "ZZZ", {"weight_kg": "10"}))
        self.assertContains(response, "Sorry, a rate for POM to ZZZ is not available.")
        self.assertFalse(SavedQuote.objects.exists())

    def test_empty_pieces_are_rejected(self):
        self.client.login(username="user_a", password="userpass123")
        for piece in ({}, {"width_cm": "40", "height_cm": "40"}):
            response = self.client.post(reverse("quotations:new_quote"), self._quote_post("POM", "LAE", piece))
            self.assertContains(response, "Please enter shipment details.")
        self.assertFalse(SavedQuote.objects.exists())

    def test_negative_piece_values_fail_form_validation(self):
        self.client.login(username="user_a", password="userpass123")
        response = self.client.post(reverse("quotations:new_quote"), self._quote_post("POM", "LAE", {"weight_kg": "-3"}))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(SavedQuote.objects.exists())

    @override_settings(PUD_LOCATIONS=["pom", " lae "])
    def test_pud_locations_setting_is_case_insensitive(self):
        self.client.login(username="user_a", password="userpass123")
        self.client.post(reverse("quotations:new_quote"), self._quote_post("POM", "LAE", {"weight_kg": "50"}))

        quote = SavedQuote.objects.get()
        names = list(quote.line_items.values_list("name", flat=True))
        self.assertIn("PUD Fee", names)
        self.assertIn("PUD Fuel Surcharge", names)
        self.assertEqual(quote.grand_total, Decimal("479.05"))

    def test_chargeable_weight_preview(self):
        self.client.login(username="user_a", password="userpass123")
        response = self.client.post(
            reverse("quotations:chargeable_weight_preview"),
            _pieces_post_data({"weight_kg": "10.2"}, {"length_cm": "60", "width_cm": "50", "height_cm": "40"}),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"chargeable_weight": 31})

    def test_chargeable_weight_preview_requires_management_form(self):
        self.client.login(username="user_a", password="userpass123")
        response = self.client.post(reverse("quotations:chargeable_weight_preview"), {})
        self.assertEqual(response.status_code, 400)

    def test_regular_user_history_only_own_quotes(self):
        own_quote = self._create_quote(self.user_a, grand_total="45.0000")
        self._create_quote(self.user_b, grand_total="90.0000")
        self.client.login(username="user_a", password="userpass123")
        response = self.client.get(reverse("quotations:quote_history"))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, own_quote.reference)
        self.assertNotContains(response, "90.00")

    def test_admin_history_lists_all_users(self):
        self._create_quote(self.user_a)
        self._create_quote(self.user_b)
        self.client.login(username="admin1", password="adminpass123")
        response = self.client.get(reverse("quotations:quote_history"))
        self.assertContains(response, "user_a")
        self.assertContains(response, "user_b")

    def test_history_search_by_route_and_reference(self):
        lae_quote = self._create_quote(self.user_a, origin="POM", destination="LAE")
        abc_quote = self._create_quote(self.user_a, origin="XYZ", destination="ABC")
        self.client.login(username="user_a", password="userpass123")

        response = self.client.get(reverse("quotations:quote_history"), {"q": "abc"})
        self.assertContains(response, abc_quote.reference)
        self.assertNotContains(response, lae_quote.reference)

        response = self.client.get(reverse("quotations:quote_history"), {"q": lae_quote.reference})
        self.assertContains(response, lae_quote.reference)
        self.assertNotContains(response, abc_quote.reference)

    def test_history_search_with_non_ascii_digits(self):
        self._create_quote(self.user_a, origin="POM", destination="LAE")
        self.client.login(username="user_a", password="userpass123")

        response = self.client.get(reverse("quotations:quote_history"), {"q": "²"})

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "No matching quotes found.")

    def test_user_cannot_open_another_users_quote(self):
        other_quote = self._create_quote(self.user_b)
        self.client.login(username="user_a", password="userpass123")
        response = self.client.get(reverse("quotations:quote_result", kwargs={"quote_id": other_quote.id}))
        self.assertEqual(response.status_code, 404)

    def test_non_admin_cannot_manage_rates(self):
        self.client.login(username="user_a", password="userpass123")
        response = self.client.get(reverse("quotations:admin_rates"), follow=True)
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, "You do not have permission")

    def test_admin_rate_creation_closes_previous_and_logs_audit_event(self):
        self.client.login(username="admin1", password="adminpass123")
        response = self.client.post(
            reverse("quotations:admin_rates"),
            {
                "rate-origin_code": "pom",
                "rate-destination_code": "lae",
                "rate-rate_per_kg": "6.2500",
            },
            follow=True,
        )
        self.assertEqual(response.status_code, 200)

        self.pom_lae.refresh_from_db()
        self.assertFalse(self.pom_lae.is_active)
        new_rate = RouteRate.objects.get(origin_code="POM", destination_code="LAE", is_active=True)
        self.assertEqual(new_rate.rate_per_kg, Decimal("6.2500"))
        self.assertEqual(new_rate.updated_by, self.admin)

        event = AuditLog.objects.get(action="CREATE_RATE", model_name="RouteRate")
        self.assertEqual(event.actor_id, self.admin.id)
        self.assertEqual(event.metadata.get("rate_per_kg"), "6.2500")

    def test_admin_rate_form_rejects_same_origin_and_destination(self):
        self.client.login(username="admin1", password="adminpass123")
        response = self.client.post(
            reverse("quotations:admin_rates"),
            {"rate-origin_code": "POM", "rate-destination_code": "pom", "rate-rate_per_kg": "2"},
        )
        self.assertContains(response, "Origin and destination cannot be the same for a route.")
        self.assertEqual(RouteRate.objects.filter(origin_code="POM", destination_code="POM").count(), 0)

    def test_customer_creation_and_edit_are_audited(self):
        self.client.login(username="user_a", password="userpass123")
        response = self.client.post(
            reverse("quotations:customer_list"),
            {"name": "", "company_name": "Highlands Traders", "email": "", "phone": "+675 123 4567", "address": ""},
            follow=True,
        )
        self.assertEqual(response.status_code, 200)
        customer = Customer.objects.get(company_name="Highlands Traders")
        self.assertEqual(customer.created_by, self.user_a)
        self.assertEqual(customer.display_name, "Highlands Traders")
        self.assertEqual(customer.contact, "+675 123 4567")

        self.client.post(
            reverse("quotations:customer_edit", kwargs={"customer_id": customer.id}),
            {"name": "Ken", "company_name": "Highlands Traders", "email": "", "phone": "+675 123 4567", "address": ""},
        )
        customer.refresh_from_db()
        self.assertEqual(customer.display_name, "Ken (Highlands Traders)")
        self.assertTrue(AuditLog.objects.filter(action="CREATE_CUSTOMER", object_id=str(customer.id)).exists())
        self.assertTrue(AuditLog.objects.filter(action="UPDATE_CUSTOMER", object_id=str(customer.id)).exists())

    def test_customer_needs_a_name_or_company(self):
        form = CustomerForm(data={"name": "", "company_name": "", "email": "", "phone": "", "address": ""})
        self.assertFalse(form.is_valid())
        self.assertIn("A customer needs a name or a company name.", form.non_field_errors())

    def test_logout_works_with_post(self):
        self.client.login(username="user_a", password="userpass123")
        response = self.client.post(reverse("logout"))
        self.assertEqual(response.status_code, 302)
