"""Number formatting for operator-facing replies."""

from decimal import ROUND_HALF_UP, Decimal


def _grouped(value: Decimal) -> str:
    quantized = Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    text = f"{quantized:,.2f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def fmt_qty(value) -> str:
    """Thousands separators, at most two decimals: ``1,234.5``."""
    return _grouped(Decimal(str(value)))


def fmt_money(value, currency: str = "NGN") -> str:
    """``NGN 30,000``."""
    return f"{currency} {_grouped(Decimal(str(value)))}"
