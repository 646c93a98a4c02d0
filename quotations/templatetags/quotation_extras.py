from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django import template

register = template.Library()


@register.filter
def money(value):
    """
    Format an amount for display:
    - thousands separator: comma (,)
    - decimal separator: dot (.)
    - always 2 decimals, rounded half up
    """
    if value is None or value == "":
        return value

    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return value

    rounded = number.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if rounded < 0 else ""
    integer_part, decimal_part = format(abs(rounded), "f").split(".")
    return f"{sign}{int(integer_part):,}.{decimal_part}"


@register.filter
def route(quote):
    return f"{quote.origin_code} → {quote.destination_code}"
