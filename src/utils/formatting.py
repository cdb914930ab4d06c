from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def format_amount(value: Decimal) -> str:
    """Whole units with "." as the thousands separator, e.g. ``1.234.568``."""
    rounded = value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"{rounded:,.0f}".replace(",", ".")


def format_currency(value: Decimal, currency: str) -> str:
    return f"{currency} {format_amount(value)}"


def format_decimal(value: Decimal) -> str:
    quantized = value.normalize()
    # Avoid scientific notation for integers.
    if quantized == quantized.to_integral():
        return f"{quantized:.0f}"
    return format(quantized, "f")
