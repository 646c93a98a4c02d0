import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from quotations.constants.charges import (
    AIR_FREIGHT_LINE_NAME,
    ANCILLARY_CHARGE_RULES,
    PUD_LOCATIONS,
    TAX_RATE,
    VOLUMETRIC_DIVISOR,
    AncillaryChargeRule,
    ChargeKind,
)
from quotations.services.chargeable_weight import Piece, calculate_chargeable_weight


logger = logging.getLogger(__name__)

ZERO = Decimal("0")

RateTable = Mapping[str, Mapping[str, Mapping[str, Any]]]


class RejectionReason(str, Enum):
    NO_SHIPMENT_DETAILS = "NO_SHIPMENT_DETAILS"
    IDENTICAL_ORIGIN_DESTINATION = "IDENTICAL_ORIGIN_DESTINATION"
    ROUTE_UNAVAILABLE = "ROUTE_UNAVAILABLE"


@dataclass(frozen=True)
class QuoteRejection:
    reason: RejectionReason
    message: str


@dataclass(frozen=True)
class LineItem:
    name: str
    rate: Decimal
    sub_total: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class Quote:
    origin: str
    destination: str
    chargeable_weight: int
    line_items: tuple[LineItem, ...]
    sub_total: Decimal
    tax: Decimal
    grand_total: Decimal


def build_line_item(name: str, rate: Decimal, sub_total: Decimal) -> LineItem:
    tax = sub_total * TAX_RATE
    return LineItem(name=name, rate=rate, sub_total=sub_total, tax=tax, total=sub_total + tax)


def lookup_route_rate(rate_table: RateTable, origin: str, destination: str) -> Decimal | None:
    route = (rate_table.get(origin) or {}).get(destination)
    if not route:
        return None
    try:
        rate = Decimal(str(route.get("rate")))
    except (ArithmeticError, TypeError, ValueError):
        return None
    if not rate.is_finite() or rate <= ZERO:
        return None
    return rate


def _rules_by_id(rules: Iterable[AncillaryChargeRule]) -> dict[str, AncillaryChargeRule]:
    return {rule.rule_id: rule for rule in rules}


def _dependency_chain(rule: AncillaryChargeRule, by_id: Mapping[str, AncillaryChargeRule]) -> list[AncillaryChargeRule]:
    """The rule followed by the rules it depends on, nearest first. Stops on a cycle."""
    chain = []
    seen = set()
    current = rule
    while current is not None and current.rule_id not in seen:
        chain.append(current)
        seen.add(current.rule_id)
        current = by_id.get(current.depends_on) if current.depends_on else None
    return chain


def _is_location_bound(rule: AncillaryChargeRule, by_id: Mapping[str, AncillaryChargeRule]) -> bool:
    return any(link.location_conditional for link in _dependency_chain(rule, by_id))


def _evaluation_order(rules: Iterable[AncillaryChargeRule], by_id: Mapping[str, AncillaryChargeRule]) -> list[AncillaryChargeRule]:
    # Stable: referenced rules first, otherwise configured order.
    return sorted(rules, key=lambda rule: len(_dependency_chain(rule, by_id)))


def _charge_amount(rule: AncillaryChargeRule, chargeable_weight: int, computed: Mapping[str, Decimal]) -> Decimal | None:
    if rule.kind == ChargeKind.PER_SHIPMENT:
        raw = rule.rate
    elif rule.kind == ChargeKind.PER_WEIGHT:
        raw = rule.rate * chargeable_weight
    elif rule.kind == ChargeKind.PERCENTAGE_OF_ANOTHER:
        if rule.depends_on not in computed:
            return None
        raw = computed[rule.depends_on] * rule.rate
    else:
        return None
    return max(raw, rule.minimum_charge)


def _route_touches(origin: str, destination: str, locations: Iterable[str]) -> bool:
    allowed = set(locations)
    return origin in allowed or destination in allowed


def price_quote(
    *,
    chargeable_weight: int,
    origin: str,
    destination: str,
    rate_table: RateTable,
    rules: Sequence[AncillaryChargeRule] = ANCILLARY_CHARGE_RULES,
    pud_locations: Iterable[str] = PUD_LOCATIONS,
) -> Quote | QuoteRejection:
    """
    Price a shipment of known chargeable weight on a directional route.

    Returns a complete Quote, or a QuoteRejection when the request cannot be
    quoted. Generic rules run first and only emit positive charges; rules bound
    to a pickup/delivery location run second and only when the route touches
    one of ``pud_locations``, and those always emit.
    """
    if chargeable_weight <= 0:
        logger.debug("Quote rejected: chargeable weight %s", chargeable_weight)
        return QuoteRejection(RejectionReason.NO_SHIPMENT_DETAILS, "Please enter shipment details.")
    if origin == destination:
        logger.debug("Quote rejected: origin and destination are both %s", origin)
        return QuoteRejection(
            RejectionReason.IDENTICAL_ORIGIN_DESTINATION,
            "Origin and destination must be different.",
        )
    route_rate = lookup_route_rate(rate_table, origin, destination)
    if route_rate is None:
        logger.debug("Quote rejected: no rate for %s -> %s", origin, destination)
        return QuoteRejection(
            RejectionReason.ROUTE_UNAVAILABLE,
            f"Sorry, a rate for {origin} to {destination} is not available.",
        )

    line_items = [build_line_item(AIR_FREIGHT_LINE_NAME, route_rate, route_rate * chargeable_weight)]
    by_id = _rules_by_id(rules)
    computed: dict[str, Decimal] = {}

    generic_rules = [rule for rule in rules if not _is_location_bound(rule, by_id)]
    for rule in _evaluation_order(generic_rules, by_id):
        amount = _charge_amount(rule, chargeable_weight, computed)
        if amount is None:
            continue
        computed[rule.rule_id] = amount
        if amount > ZERO:
            line_items.append(build_line_item(rule.name, rule.rate, amount))

    if _route_touches(origin, destination, pud_locations):
        location_rules = [rule for rule in rules if _is_location_bound(rule, by_id)]
        for rule in _evaluation_order(location_rules, by_id):
            amount = _charge_amount(rule, chargeable_weight, computed)
            if amount is None:
                continue
            computed[rule.rule_id] = amount
            line_items.append(build_line_item(rule.name, rule.rate, amount))

    line_items.sort(key=lambda item: item.name.casefold())

    return Quote(
        origin=origin,
        destination=destination,
        chargeable_weight=chargeable_weight,
        line_items=tuple(line_items),
        sub_total=sum((item.sub_total for item in line_items), ZERO),
        tax=sum((item.tax for item in line_items), ZERO),
        grand_total=sum((item.total for item in line_items), ZERO),
    )


def generate_quote(
    *,
    pieces: Iterable[Piece],
    origin: str,
    destination: str,
    rate_table: RateTable,
    rules: Sequence[AncillaryChargeRule] = ANCILLARY_CHARGE_RULES,
    pud_locations: Iterable[str] = PUD_LOCATIONS,
    volumetric_divisor: Decimal = VOLUMETRIC_DIVISOR,
) -> Quote | QuoteRejection:
    chargeable_weight = calculate_chargeable_weight(pieces, volumetric_divisor=volumetric_divisor)
    return price_quote(
        chargeable_weight=chargeable_weight,
        origin=origin,
        destination=destination,
        rate_table=rate_table,
        rules=rules,
        pud_locations=pud_locations,
    )


def validate_rule_set(rules: Sequence[AncillaryChargeRule]) -> list[str]:
    errors = []
    by_id: dict[str, AncillaryChargeRule] = {}
    for rule in rules:
        if rule.rule_id in by_id:
            errors.append(f"Duplicate ancillary rule id '{rule.rule_id}'.")
        by_id[rule.rule_id] = rule

    for rule in rules:
        if rule.kind == ChargeKind.PERCENTAGE_OF_ANOTHER and not rule.depends_on:
            errors.append(f"Rule '{rule.rule_id}' is a percentage charge without a referenced rule.")
        if rule.depends_on and rule.kind != ChargeKind.PERCENTAGE_OF_ANOTHER:
            errors.append(f"Rule '{rule.rule_id}' references '{rule.depends_on}' but is not a percentage charge.")
        if rule.depends_on and rule.depends_on not in by_id:
            errors.append(f"Rule '{rule.rule_id}' references unknown rule '{rule.depends_on}'.")

    for rule in rules:
        last = _dependency_chain(rule, by_id)[-1]
        if last.depends_on and last.depends_on in by_id:
            errors.append(f"Rule '{rule.rule_id}' is part of a dependency cycle.")
    return errors
