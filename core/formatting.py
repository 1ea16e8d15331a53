from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Not a number: {value!r}")


def format_quantity(value, max_decimals: int = 3) -> str:
    """Render a quantity without trailing zeros.

    Whole numbers print without a decimal point; anything else is rounded
    half-up to ``max_decimals`` places and stripped (``5.250 -> "5.25"``,
    ``5.1234 -> "5.123"``).
    """
    dec = _to_decimal(value)
    if not dec.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    if dec == dec.to_integral_value():
        return str(int(dec))

    places = max(int(max_decimals), 0)
    rounded = dec.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    if rounded == 0:
        return "0"
    text = f"{rounded:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_currency(value, decimals: int = 2) -> str:
    dec = _to_decimal(value).quantize(Decimal(1).scaleb(-max(int(decimals), 0)), rounding=ROUND_HALF_UP)
    return f"${dec:f}"
