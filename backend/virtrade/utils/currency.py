"""
Currency Helpers

Normalization and display rules for money amounts. All amounts are
Decimal; display precision comes from the ISO 4217 minor units of the
currency (default 2 when the reference data has none).
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from virtrade.config import settings

ZERO = Decimal("0")

# Scale used for ledger arithmetic and audit descriptions
LEDGER_SCALE = Decimal("0.0001")

DEFAULT_MINOR_UNITS = settings.DEFAULT_MINOR_UNITS


def normalize_currency(currency: Optional[str]) -> str:
    """Upper-case ISO alpha code, stripped of whitespace."""
    if currency is None:
        return ""
    return currency.strip().upper()


def to_decimal(value) -> Decimal:
    """Coerce ints, strings and floats (via str) to Decimal."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_minor_units(amount: Decimal, minor_units: Optional[int] = None) -> Decimal:
    """
    Round an amount to the display precision of its currency.

    Args:
        amount: Amount to round
        minor_units: ISO minor units; None falls back to the default of 2

    Returns:
        Amount quantized with ROUND_HALF_UP
    """
    if minor_units is None:
        minor_units = DEFAULT_MINOR_UNITS
    exponent = Decimal(1).scaleb(-minor_units)
    return to_decimal(amount).quantize(exponent, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    """Format like ``#,###.0000`` (thousands separators, four decimals)."""
    return f"{to_decimal(amount).quantize(LEDGER_SCALE, rounding=ROUND_HALF_UP):,.4f}"
