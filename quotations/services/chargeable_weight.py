from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from quotations.constants.charges import VOLUMETRIC_DIVISOR


ZERO = Decimal("0")


def _non_negative(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return ZERO
    if not number.is_finite() or number < ZERO:
        return ZERO
    return number


@dataclass(frozen=True)
class Piece:
    actual_weight: Decimal = ZERO
    length: Decimal = ZERO
    width: Decimal = ZERO
    height: Decimal = ZERO

    def __post_init__(self):
        # Blank, malformed and negative inputs all count as zero.
        for field_name in ("actual_weight", "length", "width", "height"):
            object.__setattr__(self, field_name, _non_negative(getattr(self, field_name)))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Piece":
        return cls(
            actual_weight=data.get("weight_kg"),
            length=data.get("length_cm"),
            width=data.get("width_cm"),
            height=data.get("height_cm"),
        )

    @property
    def is_counted(self) -> bool:
        return self.actual_weight > ZERO or self.length > ZERO

    def volumetric_weight(self, volumetric_divisor: Decimal = VOLUMETRIC_DIVISOR) -> Decimal:
        return (self.length * self.width * self.height) / Decimal(volumetric_divisor)

    def chargeable_weight(self, volumetric_divisor: Decimal = VOLUMETRIC_DIVISOR) -> Decimal:
        if not self.is_counted:
            return ZERO
        return max(self.actual_weight, self.volumetric_weight(volumetric_divisor))


def calculate_chargeable_weight(pieces: Iterable[Piece], *, volumetric_divisor: Decimal = VOLUMETRIC_DIVISOR) -> int:
    """
    Billable weight for a shipment, in whole kilograms.

    Each counted piece contributes the greater of its actual and volumetric
    weight. The sum is rounded up so a fractional kilogram is always billed.
    A result of 0 means there is nothing to quote.
    """
    total = sum((piece.chargeable_weight(volumetric_divisor) for piece in pieces), ZERO)
    return int(total.to_integral_value(rounding=ROUND_CEILING))
