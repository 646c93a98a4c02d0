import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping

from django.db import transaction
from django.db.models import F, Q

from quotations.models import RouteRate


logger = logging.getLogger(__name__)

SHEET_ORIGIN_COLUMN = "OriginAirportCode"
SHEET_DESTINATION_COLUMN = "DestinationAirportCode"
SHEET_RATE_COLUMN = "Rate_Per_KG_PGK"


@dataclass
class RateSheetRow:
    origin_code: str
    destination_code: str
    rate_per_kg: Decimal


def normalize_location_code(code: str | None) -> str:
    return (code or "").strip().upper()


def effective_route_rates(on_date: date | None = None):
    target_date = on_date or date.today()
    return (
        RouteRate.objects.filter(is_active=True, effective_from__lte=target_date)
        .filter(Q(effective_to__isnull=True) | Q(effective_to__gte=target_date))
        .order_by("origin_code", "destination_code", "-effective_from", "-id")
    )


def get_rate_table(on_date: date | None = None) -> dict[str, dict[str, dict]]:
    """Nested origin -> destination -> {"rate", "route_rate_id"} snapshot of effective rates."""
    table: dict[str, dict[str, dict]] = {}
    for route_rate in effective_route_rates(on_date):
        destinations = table.setdefault(route_rate.origin_code, {})
        # Rows come newest first per route; keep the first one seen.
        if route_rate.destination_code in destinations:
            continue
        destinations[route_rate.destination_code] = {
            "rate": route_rate.rate_per_kg,
            "route_rate_id": route_rate.id,
        }
    return table


def available_locations(rate_table: Mapping[str, Mapping[str, object]]) -> list[str]:
    locations = set(rate_table)
    for destinations in rate_table.values():
        locations.update(destinations)
    return sorted(locations)


def parse_rate_sheet_rows(rows: Iterable[Mapping[str, str]]) -> list[RateSheetRow]:
    parsed = []
    for line_number, row in enumerate(rows, start=1):
        origin = normalize_location_code(row.get(SHEET_ORIGIN_COLUMN))
        destination = normalize_location_code(row.get(SHEET_DESTINATION_COLUMN))
        if not origin or not destination:
            logger.warning("Rate sheet row %s skipped: missing origin or destination", line_number)
            continue
        if origin == destination:
            logger.warning("Rate sheet row %s skipped: origin and destination are both %s", line_number, origin)
            continue
        raw_rate = (row.get(SHEET_RATE_COLUMN) or "").strip()
        try:
            rate = Decimal(raw_rate)
        except InvalidOperation:
            logger.warning("Rate sheet row %s skipped: invalid rate %r", line_number, raw_rate)
            continue
        if not rate.is_finite() or rate < Decimal("0"):
            logger.warning("Rate sheet row %s skipped: invalid rate %r", line_number, raw_rate)
            continue
        parsed.append(RateSheetRow(origin_code=origin, destination_code=destination, rate_per_kg=rate))
    return parsed


def replace_route_rate(*, origin_code: str, destination_code: str, rate_per_kg: Decimal, updated_by=None) -> RouteRate:
    """Close the open rate of a directional route and open a new one from today."""
    origin_code = normalize_location_code(origin_code)
    destination_code = normalize_location_code(destination_code)
    today = date.today()
    with transaction.atomic():
        open_rates = RouteRate.objects.select_for_update().filter(
            origin_code=origin_code,
            destination_code=destination_code,
            is_active=True,
            effective_to__isnull=True,
        )
        open_rates.filter(effective_from__lte=today).update(effective_to=today, is_active=False)
        # Future-dated rates close on their own start date.
        open_rates.filter(effective_from__gt=today).update(effective_to=F("effective_from"), is_active=False)

        new_rate = RouteRate(
            origin_code=origin_code,
            destination_code=destination_code,
            rate_per_kg=rate_per_kg,
            effective_from=today,
            is_active=True,
            updated_by=updated_by,
        )
        new_rate.full_clean()
        new_rate.save()

    logger.info("Route rate %s -> %s set to %s", origin_code, destination_code, rate_per_kg)
    return new_rate
