"""
Fee Calculator

Transaction fee charged on the gross amount of a trade:

    fee = 0.50                      # platform fee
        + amount * 0.00005          # trading fee
        + amount * 0.00002          # trading tariff
        + amount * 0.00005          # SFC levy
        + ceil(amount * 0.001)      # stamp duty, whole units, rounded up

The total is quantized to 4 decimal places (ROUND_HALF_UP).
"""
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP

from virtrade.db.models.trade import TradingDeed
from virtrade.utils.currency import LEDGER_SCALE, to_decimal

PLATFORM_FEE = Decimal("0.50")
TRADING_FEE_RATE = Decimal("0.00005")
TRADING_TARIFF_RATE = Decimal("0.00002")
LEVY_RATE = Decimal("0.00005")
STAMP_DUTY_RATE = Decimal("0.001")


def stamp_duty(amount: Decimal) -> Decimal:
    """Stamp duty rounded up to the next whole unit."""
    return (to_decimal(amount) * STAMP_DUTY_RATE).to_integral_value(rounding=ROUND_CEILING)


def calculate_fee(amount) -> Decimal:
    """
    Fee for a trade of the given gross amount.

    Args:
        amount: Gross amount (price * quantity), non-negative

    Returns:
        Fee quantized to 4 decimal places
    """
    amount = to_decimal(amount)
    if amount < 0:
        raise ValueError(f"Gross amount must not be negative: {amount}")
    fee = (
        PLATFORM_FEE
        + amount * TRADING_FEE_RATE
        + amount * TRADING_TARIFF_RATE
        + amount * LEVY_RATE
        + stamp_duty(amount)
    )
    return fee.quantize(LEDGER_SCALE, rounding=ROUND_HALF_UP)


def estimate_consideration(deed: TradingDeed, price, quantity: int) -> Decimal:
    """Cash moved by a trade: gross plus fee for a buy, gross less fee for a sell."""
    gross = to_decimal(price) * quantity
    fee = calculate_fee(gross)
    if deed == TradingDeed.BUY:
        return (gross + fee).quantize(LEDGER_SCALE, rounding=ROUND_HALF_UP)
    return (gross - fee).quantize(LEDGER_SCALE, rounding=ROUND_HALF_UP)
