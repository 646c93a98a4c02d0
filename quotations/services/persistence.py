import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from django.db import transaction

from quotations.models import Customer, QuoteLineItem, QuotePiece, RouteRate, SavedQuote
from quotations.services.calculation import Quote
from quotations.services.chargeable_weight import Piece


logger = logging.getLogger(__name__)

TWO_DEC = Decimal("0.01")
THREE_DEC = Decimal("0.001")
FOUR_DEC = Decimal("0.0001")


def quantize(value: Decimal, unit: Decimal) -> Decimal:
    return value.quantize(unit, rounding=ROUND_HALF_UP)


def save_quote(
    *,
    quote: Quote,
    pieces: Iterable[Piece],
    user,
    customer: Customer | None = None,
    route_rate: RouteRate | None = None,
    currency: str = "PGK",
    volumetric_divisor: Decimal,
) -> SavedQuote:
    """
    Persist a computed quote with its pieces and line items.

    Line amounts are stored in whole cents (rates keep four decimals) and the
    stored aggregates are summed from the stored lines, so displayed totals
    equal the sum of the displayed rows.
    """
    stored_lines = [
        {
            "position": position,
            "name": item.name,
            "rate": quantize(item.rate, FOUR_DEC),
            "sub_total": quantize(item.sub_total, TWO_DEC),
            "tax": quantize(item.tax, TWO_DEC),
            "total": quantize(item.sub_total, TWO_DEC) + quantize(item.tax, TWO_DEC),
        }
        for position, item in enumerate(quote.line_items)
    ]

    with transaction.atomic():
        saved = SavedQuote.objects.create(
            user=user,
            customer=customer,
            applied_route_rate=route_rate,
            origin_code=quote.origin,
            destination_code=quote.destination,
            chargeable_weight=quote.chargeable_weight,
            sub_total=sum((line["sub_total"] for line in stored_lines), Decimal("0")),
            tax=sum((line["tax"] for line in stored_lines), Decimal("0")),
            grand_total=sum((line["total"] for line in stored_lines), Decimal("0")),
            currency=currency,
        )
        QuoteLineItem.objects.bulk_create([QuoteLineItem(quote=saved, **line) for line in stored_lines])
        QuotePiece.objects.bulk_create(
            [
                QuotePiece(
                    quote=saved,
                    weight_kg=quantize(piece.actual_weight, THREE_DEC),
                    length_cm=quantize(piece.length, TWO_DEC),
                    width_cm=quantize(piece.width, TWO_DEC),
                    height_cm=quantize(piece.height, TWO_DEC),
                    volumetric_weight_kg=quantize(piece.volumetric_weight(volumetric_divisor), THREE_DEC),
                )
                for piece in pieces
                if piece.is_counted
            ]
        )

    logger.info(
        "Saved quote %s %s -> %s, %s kg, total %s",
        saved.reference,
        saved.origin_code,
        saved.destination_code,
        saved.chargeable_weight,
        saved.grand_total,
    )
    return saved
