"""
Integration Tests - Trading Engine

Buys and sells end to end against a temporary database and static quotes.
"""
import asyncio
from decimal import Decimal
from unittest.mock import patch
import pytest
from sqlalchemy import update

from virtrade.core.trading.engine import BuyRequest, SellRequest
from virtrade.core.trading.ledger import Subaccount
from virtrade.core.trading.position_tracker import PositionTracker
from virtrade.db.models import Trader
from virtrade.db.repositories.ledger import LedgerRepository
from virtrade.utils.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    IndexNotTradableError,
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidBankAccountError,
    InvalidOrderError,
    QuoteUnavailableError,
    TradeFailedError,
)

from conftest import INACTIVE, TRADER


async def account_descriptions(session_maker, email=TRADER):
    async with session_maker() as db:
        return [t.description for t in await LedgerRepository(db).list_account_transactions(email)]


async def bank_transfers(session_maker, email=TRADER):
    async with session_maker() as db:
        return [t for t in await LedgerRepository(db).list_bank_transactions(email) if t.amount is not None]


async def held(session_maker, symbol="ABC", currency="USD"):
    async with session_maker() as db:
        return await PositionTracker(db).outstanding_quantity(TRADER, symbol, currency)


class TestBuy:
    """Tests for TradingEngine.buy."""

    @pytest.mark.asyncio
    async def test_buy_debits_gross_plus_fee(self, trading_engine, ledger, session_maker, funded_trader):
        result = await trading_engine.buy(BuyRequest(TRADER, "abc", 10))

        assert result.gross_amount == Decimal("1500.00")
        assert result.fee == Decimal("2.6800")
        assert result.total == Decimal("1502.6800")
        assert result.remaining_quantity == 10
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("8497.32"), Decimal("0"))
        assert await held(session_maker) == 10
        assert (await account_descriptions(session_maker))[-1] == (
            "Bought 10 shares of ABC at USD 150.00, total cost USD 1,502.6800"
        )

    @pytest.mark.asyncio
    async def test_insufficient_funds_changes_nothing(self, trading_engine, ledger, session_maker, funded_trader):
        with pytest.raises(InsufficientFundsError):
            await trading_engine.buy(BuyRequest(TRADER, "ABC", 100))

        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("10000"), Decimal("0"))
        assert await held(session_maker) == 0
        assert len(await account_descriptions(session_maker)) == 1

    @pytest.mark.asyncio
    async def test_no_balance_in_quote_currency(self, trading_engine, funded_trader):
        with pytest.raises(InsufficientFundsError):
            await trading_engine.buy(BuyRequest(TRADER, "0700.HK", 1))

    @pytest.mark.asyncio
    async def test_index_not_tradable(self, trading_engine, funded_trader):
        with pytest.raises(IndexNotTradableError):
            await trading_engine.buy(BuyRequest(TRADER, "^HSI", 1))

    @pytest.mark.asyncio
    async def test_unknown_symbol(self, trading_engine, funded_trader):
        with pytest.raises(QuoteUnavailableError):
            await trading_engine.buy(BuyRequest(TRADER, "NOPE", 1))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("symbol,quantity", [("", 1), ("  ", 1), ("ABC", 0), ("ABC", -3)])
    async def test_invalid_order(self, trading_engine, symbol, quantity):
        with pytest.raises(InvalidOrderError):
            await trading_engine.buy(BuyRequest(TRADER, symbol, quantity))

    @pytest.mark.asyncio
    async def test_inactive_account(self, trading_engine):
        with pytest.raises(AccountInactiveError):
            await trading_engine.buy(BuyRequest(INACTIVE, "ABC", 1))

    @pytest.mark.asyncio
    async def test_unknown_account(self, trading_engine):
        with pytest.raises(AccountNotFoundError):
            await trading_engine.buy(BuyRequest("ghost@example.com", "ABC", 1))

    @pytest.mark.asyncio
    async def test_store_failure_rolls_back(self, trading_engine, ledger, session_maker, funded_trader):
        with patch.object(PositionTracker, "open_or_increase", side_effect=RuntimeError("disk full")):
            with pytest.raises(TradeFailedError) as exc_info:
                await trading_engine.buy(BuyRequest(TRADER, "ABC", 1))

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("10000"), Decimal("0"))
        assert len(await account_descriptions(session_maker)) == 1


class TestSell:
    """Tests for TradingEngine.sell."""

    @pytest.mark.asyncio
    async def test_sell_credits_net_to_trading(self, trading_engine, ledger, session_maker, funded_trader):
        await trading_engine.buy(BuyRequest(TRADER, "ABC", 10))
        result = await trading_engine.sell(SellRequest(TRADER, "ABC", 10))

        assert result.total == Decimal("1497.3200")
        assert result.remaining_quantity == 0
        assert not result.transferred_to_bank
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("9994.64"), Decimal("0"))
        assert await held(session_maker) == 0
        assert (await account_descriptions(session_maker))[-1].startswith("Sold 10 shares of ABC")

    @pytest.mark.asyncio
    async def test_oversell_changes_nothing(self, trading_engine, ledger, session_maker, funded_trader):
        await trading_engine.buy(BuyRequest(TRADER, "ABC", 2))
        with pytest.raises(InsufficientPositionError):
            await trading_engine.sell(SellRequest(TRADER, "ABC", 3))

        assert await held(session_maker) == 2
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("9698.464"), Decimal("0"))
        assert len(await account_descriptions(session_maker)) == 2

    @pytest.mark.asyncio
    async def test_auto_transfer_pays_out_from_non_trading(
        self, trading_engine, ledger, session_maker, funded_trader, bank_account
    ):
        await ledger.deposit(TRADER, "USD", Decimal("2000"), Subaccount.NON_TRADING)
        await trading_engine.buy(BuyRequest(TRADER, "ABC", 10))
        result = await trading_engine.sell(
            SellRequest(TRADER, "ABC", 10, auto_transfer_to_bank=True, bank_account_id=bank_account.id)
        )

        assert result.transferred_to_bank
        assert result.bank_account_id == bank_account.id
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("8497.32"), Decimal("502.68"))
        transfers = await bank_transfers(session_maker)
        assert len(transfers) == 1
        assert transfers[0].amount == Decimal("1497.32")
        descriptions = await account_descriptions(session_maker)
        assert len(descriptions) == 4
        assert descriptions[-1].startswith("Sold 10 shares of ABC")

    @pytest.mark.asyncio
    async def test_auto_transfer_short_non_trading_changes_nothing(
        self, trading_engine, ledger, session_maker, funded_trader, bank_account
    ):
        await trading_engine.buy(BuyRequest(TRADER, "ABC", 10))
        with pytest.raises(InsufficientFundsError):
            await trading_engine.sell(
                SellRequest(TRADER, "ABC", 10, auto_transfer_to_bank=True, bank_account_id=bank_account.id)
            )

        assert await held(session_maker) == 10
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("8497.32"), Decimal("0"))
        assert await bank_transfers(session_maker) == []
        assert len(await account_descriptions(session_maker)) == 2

    @pytest.mark.asyncio
    async def test_auto_transfer_requires_bank_account(self, trading_engine, funded_trader):
        with pytest.raises(InvalidBankAccountError):
            await trading_engine.sell(SellRequest(TRADER, "ABC", 1, auto_transfer_to_bank=True))

    @pytest.mark.asyncio
    async def test_auto_transfer_from_trader_profile(
        self, trading_engine, ledger, session_maker, funded_trader, bank_account
    ):
        async with session_maker() as db:
            async with db.begin():
                await db.execute(update(Trader).where(Trader.email == TRADER).values(auto_transfer_to_bank=True))
        await ledger.deposit(TRADER, "USD", Decimal("2000"), Subaccount.NON_TRADING)
        await trading_engine.buy(BuyRequest(TRADER, "ABC", 10))

        result = await trading_engine.sell(SellRequest(TRADER, "ABC", 10))

        assert result.transferred_to_bank
        assert result.bank_account_id == bank_account.id
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("8497.32"), Decimal("502.68"))

    @pytest.mark.asyncio
    async def test_explicit_false_overrides_profile(self, trading_engine, ledger, session_maker, funded_trader):
        async with session_maker() as db:
            async with db.begin():
                await db.execute(update(Trader).where(Trader.email == TRADER).values(auto_transfer_to_bank=True))
        await trading_engine.buy(BuyRequest(TRADER, "ABC", 10))
        result = await trading_engine.sell(SellRequest(TRADER, "ABC", 10, auto_transfer_to_bank=False))
        assert not result.transferred_to_bank
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("9994.64"), Decimal("0"))


class TestConcurrency:
    """Trades on one (email, currency) are serialized."""

    @pytest.mark.asyncio
    async def test_concurrent_buys_all_apply(self, trading_engine, ledger, session_maker, funded_trader):
        await asyncio.gather(*(trading_engine.buy(BuyRequest(TRADER, "ABC", 1)) for _ in range(20)))

        assert await held(session_maker) == 20
        # fee on 150.00 is 1.518, so each buy costs 151.518
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("6969.64"), Decimal("0"))
        assert len(await account_descriptions(session_maker)) == 21

    @pytest.mark.asyncio
    async def test_concurrent_buys_never_overdraw(self, trading_engine, ledger, session_maker):
        await ledger.deposit(TRADER, "USD", Decimal("500"))
        results = await asyncio.gather(
            *(trading_engine.buy(BuyRequest(TRADER, "ABC", 1)) for _ in range(5)),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 2
        assert all(isinstance(f, InsufficientFundsError) for f in failures)
        assert await held(session_maker) == 3
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("45.446"), Decimal("0"))

    @pytest.mark.asyncio
    async def test_concurrent_sells_never_oversell(self, trading_engine, session_maker, funded_trader):
        await trading_engine.buy(BuyRequest(TRADER, "ABC", 3))
        results = await asyncio.gather(
            *(trading_engine.sell(SellRequest(TRADER, "ABC", 2)) for _ in range(3)),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 2
        assert all(isinstance(f, InsufficientPositionError) for f in failures)
        assert await held(session_maker) == 1


class TestPositionsQuery:
    @pytest.mark.asyncio
    async def test_positions_marked_live(self, trading_engine, quote_provider, funded_trader):
        await trading_engine.buy(BuyRequest(TRADER, "ABC", 10))
        quote_provider.set_price("ABC", Decimal("160.00"))

        last_trade = await trading_engine.positions(TRADER, "USD")
        live = await trading_engine.positions(TRADER, "USD", mark=True)

        assert last_trade[("ABC", "USD")].current_amount == Decimal("1500")
        assert live[("ABC", "USD")].current_amount == Decimal("1600")
