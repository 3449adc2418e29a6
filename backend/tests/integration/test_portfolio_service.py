"""
Integration Tests - Portfolio Service
"""
from decimal import Decimal
from unittest.mock import AsyncMock, patch
import pytest
import pytest_asyncio

from virtrade.core.accounts import WatchListService
from virtrade.core.portfolio.service import PortfolioService
from virtrade.core.trading.engine import BuyRequest, SellRequest
from virtrade.core.trading.quotes import QuoteResolver
from virtrade.db.repositories.bank_account import BankAccountRepository
from virtrade.db.repositories.ledger import LedgerRepository
from virtrade.db.repositories.trade import TradeRepository
from virtrade.utils.exceptions import (
    CurrencyMismatchError,
    CurrencyNotFoundError,
    OwnershipMismatchError,
    PortfolioError,
    PortfolioNotFoundError,
    QuoteUnavailableError,
    ResetNotAllowedError,
)

from conftest import OTHER, TRADER


class UnavailableProvider:
    async def quote(self, symbols):
        raise TimeoutError("market data down")


@pytest_asyncio.fixture
async def bought(trading_engine, funded_trader):
    """TRADER bought 10 ABC at 150.00."""
    return await trading_engine.buy(BuyRequest(TRADER, "ABC", 10))


class TestCreate:
    """Tests for portfolio creation."""

    @pytest.mark.asyncio
    async def test_create_starts_at_zero(self, portfolio_service):
        portfolio = await portfolio_service.create(TRADER, "Tech", "usd")
        assert portfolio.currency == "USD"
        assert portfolio.invested_amount == Decimal("0")
        assert portfolio.profit_loss == Decimal("0")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("currency", ["XXX", "VEF"])
    async def test_inactive_currency(self, portfolio_service, currency):
        with pytest.raises(CurrencyNotFoundError):
            await portfolio_service.create(TRADER, "Bad", currency)

    @pytest.mark.asyncio
    async def test_blank_name(self, portfolio_service):
        with pytest.raises(PortfolioError):
            await portfolio_service.create(TRADER, "  ", "USD")

    @pytest.mark.asyncio
    async def test_list_portfolios(self, portfolio_service):
        await portfolio_service.create(TRADER, "A", "USD")
        await portfolio_service.create(TRADER, "B", "HKD")
        await portfolio_service.create(OTHER, "C", "USD")
        assert [p.name for p in await portfolio_service.list_portfolios(TRADER)] == ["A", "B"]
        assert [p.name for p in await portfolio_service.list_portfolios(TRADER, "HKD")] == ["B"]


class TestLinking:
    """Tests for linking and unlinking transactions."""

    @pytest.mark.asyncio
    async def test_link_values_portfolio(self, portfolio_service, bought):
        portfolio = await portfolio_service.create(TRADER, "Tech", "USD")
        assert await portfolio_service.link_transactions(TRADER, portfolio.id, [bought.transaction_id]) == 1

        portfolio = (await portfolio_service.get_details(TRADER, portfolio.id)).portfolio
        assert portfolio.invested_amount == Decimal("1502.68")
        assert portfolio.current_amount == Decimal("1500")
        assert portfolio.profit_loss == Decimal("-2.68")

    @pytest.mark.asyncio
    async def test_relinking_counts_only_new(self, portfolio_service, bought):
        portfolio = await portfolio_service.create(TRADER, "Tech", "USD")
        await portfolio_service.link_transactions(TRADER, portfolio.id, [bought.transaction_id])
        assert await portfolio_service.link_transactions(TRADER, portfolio.id, [bought.transaction_id]) == 0

    @pytest.mark.asyncio
    async def test_link_with_sells(self, portfolio_service, trading_engine, bought):
        sold = await trading_engine.sell(SellRequest(TRADER, "ABC", 4))
        portfolio = await portfolio_service.create_and_link(
            TRADER, "Tech", "USD", [bought.transaction_id, sold.transaction_id]
        )
        # invested 1502.68 - 598.428, six shares left at 150.00
        assert portfolio.invested_amount == Decimal("904.252")
        assert portfolio.current_amount == Decimal("900")
        assert portfolio.profit_loss == Decimal("-4.252")

    @pytest.mark.asyncio
    async def test_link_other_accounts_transaction(self, portfolio_service, bought):
        portfolio = await portfolio_service.create(OTHER, "Mine", "USD")
        with pytest.raises(OwnershipMismatchError):
            await portfolio_service.link_transactions(OTHER, portfolio.id, [bought.transaction_id])

    @pytest.mark.asyncio
    async def test_link_into_other_accounts_portfolio(self, portfolio_service, bought):
        portfolio = await portfolio_service.create(OTHER, "Theirs", "USD")
        with pytest.raises(OwnershipMismatchError):
            await portfolio_service.link_transactions(TRADER, portfolio.id, [bought.transaction_id])

    @pytest.mark.asyncio
    async def test_link_currency_mismatch(self, portfolio_service, bought):
        portfolio = await portfolio_service.create(TRADER, "HK", "HKD")
        with pytest.raises(CurrencyMismatchError):
            await portfolio_service.link_transactions(TRADER, portfolio.id, [bought.transaction_id])

    @pytest.mark.asyncio
    async def test_link_unknown_portfolio(self, portfolio_service, bought):
        with pytest.raises(PortfolioNotFoundError):
            await portfolio_service.link_transactions(TRADER, 404, [bought.transaction_id])

    @pytest.mark.asyncio
    async def test_unlink_keeps_transaction(self, portfolio_service, session_maker, bought):
        portfolio = await portfolio_service.create_and_link(TRADER, "Tech", "USD", [bought.transaction_id])
        assert await portfolio_service.unlink_transactions(TRADER, portfolio.id, [bought.transaction_id]) == 1

        async with session_maker() as db:
            txn = await TradeRepository(db).get_by_id(bought.transaction_id)
        assert txn is not None
        assert txn.portfolio_id is None

        details = await portfolio_service.get_details(TRADER, portfolio.id)
        assert details.transactions == []
        assert details.portfolio.invested_amount == Decimal("0")
        assert details.portfolio.current_amount == Decimal("0")


class TestRevalue:
    """Tests for revaluation."""

    @pytest.mark.asyncio
    async def test_revalue_at_new_price(self, portfolio_service, quote_provider, bought):
        portfolio = await portfolio_service.create_and_link(TRADER, "Tech", "USD", [bought.transaction_id])
        quote_provider.set_price("ABC", Decimal("160.00"))

        portfolio = await portfolio_service.revalue(portfolio.id)
        assert portfolio.current_amount == Decimal("1600")
        assert portfolio.profit_loss == Decimal("97.32")
        assert portfolio.valued_at is not None

    @pytest.mark.asyncio
    async def test_trade_revalues_linked_portfolios(self, portfolio_service, trading_engine, quote_provider, bought):
        portfolio = await portfolio_service.create_and_link(TRADER, "Tech", "USD", [bought.transaction_id])
        quote_provider.set_price("ABC", Decimal("155.00"))

        await trading_engine.buy(BuyRequest(TRADER, "ABC", 1))

        details = await portfolio_service.get_details(TRADER, portfolio.id)
        assert details.portfolio.current_amount == Decimal("1550")
        assert [p.quantity for p in details.positions] == [10]

    @pytest.mark.asyncio
    async def test_strict_revalue_without_quotes(self, session_maker, locks, portfolio_service, bought):
        portfolio = await portfolio_service.create_and_link(TRADER, "Tech", "USD", [bought.transaction_id])
        offline = PortfolioService(session_maker, QuoteResolver(UnavailableProvider()), locks)

        with pytest.raises(QuoteUnavailableError):
            await offline.revalue(portfolio.id)

        revalued = await offline.revalue_for_symbol(TRADER, "USD", "ABC", Decimal("170.00"))
        assert [p.current_amount for p in revalued] == [Decimal("1700")]

    @pytest.mark.asyncio
    async def test_revalue_other_accounts_portfolio(self, portfolio_service):
        portfolio = await portfolio_service.create(OTHER, "Theirs", "USD")
        with pytest.raises(OwnershipMismatchError):
            await portfolio_service.revalue(portfolio.id, email=TRADER)


class TestReset:
    """Tests for reset."""

    @pytest.mark.asyncio
    async def test_reset_not_allowed(self, portfolio_service):
        with pytest.raises(ResetNotAllowedError):
            await portfolio_service.reset(OTHER)

    @pytest.mark.asyncio
    async def test_reset_clears_currency_scope(
        self, portfolio_service, trading_engine, ledger, session_maker, quote_resolver, bank_account, bought
    ):
        await ledger.deposit(TRADER, "HKD", Decimal("1000"))
        await portfolio_service.create_and_link(TRADER, "Tech", "USD", [bought.transaction_id])
        watch_list = WatchListService(session_maker, quote_resolver)
        await watch_list.add(TRADER, "ABC")
        await watch_list.add(TRADER, "0700.HK")

        result = await portfolio_service.reset(TRADER, "usd")

        assert result.transactions_deleted == 1
        assert result.portfolios_deleted == 1
        assert result.watch_list_deleted == 1
        assert result.balances_zeroed == ["USD"]
        assert await trading_engine.positions(TRADER) == {}
        assert await portfolio_service.list_portfolios(TRADER) == []
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("0"), Decimal("0"))
        assert await ledger.raw_balance(TRADER, "HKD") == (Decimal("1000"), Decimal("0"))
        assert [w.symbol for w in await watch_list.list(TRADER)] == ["0700.HK"]

        async with session_maker() as db:
            descriptions = [t.description for t in await LedgerRepository(db).list_account_transactions(TRADER)]
            bank_accounts = await BankAccountRepository(db).list_for_account(TRADER)
        assert descriptions[0] == "Deposited USD 10,000.0000"
        assert descriptions[-1] == "Reset USD balance of 8,497.3200 to zero"
        assert len(bank_accounts) == 1

    @pytest.mark.asyncio
    async def test_reset_all_currencies(self, portfolio_service, ledger, bought):
        await ledger.deposit(TRADER, "HKD", Decimal("1000"))
        result = await portfolio_service.reset(TRADER)
        assert result.currencies == ["HKD", "USD"]
        assert sorted(result.balances_zeroed) == ["HKD", "USD"]
        assert all(view.total_amount == 0 for view in await ledger.list_balances(TRADER))

    @pytest.mark.asyncio
    async def test_reset_all_retries_when_currency_appears(self, portfolio_service, ledger, locks, bought):
        await ledger.deposit(TRADER, "HKD", Decimal("1000"))
        scope_currencies = PortfolioService._scope_currencies
        calls = []

        async def first_read_misses_hkd(db, email, currency):
            calls.append(currency)
            if len(calls) == 1:
                return {"USD"}
            return await scope_currencies(db, email, currency)

        with patch.object(PortfolioService, "_scope_currencies", AsyncMock(side_effect=first_read_misses_hkd)):
            result = await portfolio_service.reset(TRADER)

        # stale read, locked re-check, then a fresh read and re-check
        assert len(calls) == 4
        assert result.currencies == ["HKD", "USD"]
        assert await ledger.raw_balance(TRADER, "HKD") == (Decimal("0"), Decimal("0"))
        assert await ledger.raw_balance(TRADER, "USD") == (Decimal("0"), Decimal("0"))
        assert not locks.locked((TRADER, "HKD"))
