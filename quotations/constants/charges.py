from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


TAX_RATE = Decimal("0.10")
VOLUMETRIC_DIVISOR = Decimal("6000")
AIR_FREIGHT_LINE_NAME = "Air Freight"


class ChargeKind(str, Enum):
    PER_SHIPMENT = "PER_SHIPMENT"
    PER_WEIGHT = "PER_WEIGHT"
    PERCENTAGE_OF_ANOTHER = "PERCENTAGE_OF_ANOTHER"


@dataclass(frozen=True)
class AncillaryChargeRule:
    rule_id: str
    name: str
    kind: ChargeKind
    rate: Decimal
    minimum_charge: Decimal = Decimal("0")
    depends_on: str | None = None
    location_conditional: bool = False


ANCILLARY_CHARGE_RULES: tuple[AncillaryChargeRule, ...] = (
    AncillaryChargeRule(
        rule_id="awb_fee",
        name="AWB Fee",
        kind=ChargeKind.PER_SHIPMENT,
        rate=Decimal("70.00"),
    ),
    AncillaryChargeRule(
        rule_id="security_surcharge",
        name="Security Surcharge",
        kind=ChargeKind.PER_WEIGHT,
        rate=Decimal("0.20"),
        minimum_charge=Decimal("5.00"),
    ),
    AncillaryChargeRule(
        rule_id="airline_fuel_surcharge",
        name="Airline Fuel Surcharge",
        kind=ChargeKind.PER_WEIGHT,
        rate=Decimal("0.35"),
    ),
    AncillaryChargeRule(
        rule_id="pud_fee",
        name="PUD Fee",
        kind=ChargeKind.PER_WEIGHT,
        rate=Decimal("0.80"),
        minimum_charge=Decimal("80.00"),
        location_conditional=True,
    ),
    AncillaryChargeRule(
        rule_id="pud_fuel_surcharge",
        name="PUD Fuel Surcharge",
        kind=ChargeKind.PERCENTAGE_OF_ANOTHER,
        rate=Decimal("0.10"),
        depends_on="pud_fee",
    ),
)

# Locations with a pickup/delivery service; not the full location vocabulary.
PUD_LOCATIONS = frozenset({"POM", "LAE"})
