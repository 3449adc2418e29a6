"""
Unit Tests - Fee Calculator
"""
from decimal import Decimal
import pytest

from virtrade.core.trading.fees import calculate_fee, estimate_consideration, stamp_duty
from virtrade.db.models.trade import TradingDeed


class TestCalculateFee:
    """Tests for calculate_fee."""

    def test_reference_amount(self):
        # 0.50 + 0.075 + 0.03 + 0.075 + ceil(1.5)
        assert calculate_fee(Decimal("1500")) == Decimal("2.6800")

    def test_zero_amount_pays_platform_fee_only(self):
        assert calculate_fee(Decimal("0")) == Decimal("0.5000")

    def test_stamp_duty_rounds_up_to_whole_unit(self):
        assert stamp_duty(Decimal("1")) == Decimal("1")
        assert stamp_duty(Decimal("1000")) == Decimal("1")
        assert stamp_duty(Decimal("1000.01")) == Decimal("2")

    def test_result_has_four_decimal_places(self):
        fee = calculate_fee(Decimal("123.45"))
        assert fee.as_tuple().exponent == -4
        # 0.5 + 123.45 * 0.00012 = 0.514814, stamp duty 1
        assert fee == Decimal("1.5148")

    def test_accepts_int_and_str(self):
        assert calculate_fee(1500) == calculate_fee("1500") == Decimal("2.6800")

    def test_deterministic(self):
        assert calculate_fee(Decimal("98765.4321")) == calculate_fee(Decimal("98765.4321"))

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            calculate_fee(Decimal("-1"))


class TestEstimateConsideration:
    """Tests for estimate_consideration."""

    def test_buy_adds_fee(self):
        assert estimate_consideration(TradingDeed.BUY, Decimal("150.00"), 10) == Decimal("1502.6800")

    def test_sell_subtracts_fee(self):
        assert estimate_consideration(TradingDeed.SELL, Decimal("150.00"), 10) == Decimal("1497.3200")
