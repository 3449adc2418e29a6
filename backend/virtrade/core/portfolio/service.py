"""
Portfolio Service

Portfolios group trading transactions of one currency and carry an
aggregate valuation:

    invested    = sum(BUY cost) - sum(SELL cost) over linked transactions
    current     = sum(net linked quantity * latest price), open symbols only
    profit/loss = current - invested

Also owns the scope reset, which clears an account's trading history.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from loguru import logger

from virtrade.core.trading.position_tracker import Position, fold_positions
from virtrade.core.trading.quotes import QuoteResolver
from virtrade.db.models.portfolio import Portfolio
from virtrade.db.models.trade import TradingDeed, TradingTransaction
from virtrade.db.repositories.account import AccountRepository
from virtrade.db.repositories.iso_data import IsoDataRepository
from virtrade.db.repositories.ledger import LedgerRepository
from virtrade.db.repositories.portfolio import PortfolioRepository
from virtrade.db.repositories.trade import TradeRepository
from virtrade.db.repositories.watchlist import WatchListRepository
from virtrade.utils.currency import ZERO, format_amount, normalize_currency, to_decimal
from virtrade.utils.exceptions import (
    AccountNotFoundError,
    CurrencyMismatchError,
    CurrencyNotFoundError,
    OwnershipMismatchError,
    PortfolioError,
    PortfolioNotFoundError,
    QuoteUnavailableError,
    ResetNotAllowedError,
)
from virtrade.utils.locks import KeyedLock, ledger_key


@dataclass
class Valuation:
    invested_amount: Decimal
    current_amount: Decimal
    profit_loss: Decimal


@dataclass
class PortfolioDetails:
    """Portfolio with its linked transactions and the positions they imply."""
    portfolio: Portfolio
    transactions: list[TradingTransaction]
    positions: list[Position]


@dataclass
class ResetResult:
    email: str
    currencies: list[str]
    transactions_deleted: int = 0
    portfolios_deleted: int = 0
    watch_list_deleted: int = 0
    balances_zeroed: list[str] = field(default_factory=list)


def valuate(transactions: Iterable[TradingTransaction], prices: Mapping[str, Decimal]) -> Valuation:
    """
    Value a set of linked transactions.

    Symbols missing from ``prices`` are valued at their most recent linked
    transaction price.
    """
    invested = ZERO
    net: dict[str, int] = {}
    last_price: dict[str, Decimal] = {}
    for txn in sorted(transactions, key=lambda t: t.id or 0):
        cost = to_decimal(txn.cost)
        invested += cost if txn.deed == TradingDeed.BUY else -cost
        net[txn.symbol] = net.get(txn.symbol, 0) + txn.signed_quantity
        last_price[txn.symbol] = to_decimal(txn.price)

    current = ZERO
    for symbol, quantity in net.items():
        if quantity > 0:
            price = prices.get(symbol)
            current += to_decimal(price if price is not None else last_price[symbol]) * quantity
    return Valuation(invested_amount=invested, current_amount=current, profit_loss=current - invested)


class PortfolioService:
    """
    Service for portfolio operations.

    Usage:
        service = PortfolioService(session_maker, quote_resolver)
        portfolio = await service.create("a@example.com", "Tech", "USD")
        await service.link_transactions("a@example.com", portfolio.id, [1, 2])
        await service.revalue(portfolio.id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        quote_resolver: QuoteResolver,
        locks: Optional[KeyedLock] = None,
    ):
        self.session_factory = session_factory
        self.quote_resolver = quote_resolver
        self.locks = locks or KeyedLock()

    # ==================== Helpers ====================

    @staticmethod
    async def _owned_portfolio(db: AsyncSession, email: str, portfolio_id: int) -> Portfolio:
        portfolio = await PortfolioRepository(db).get_by_id(portfolio_id)
        if portfolio is None:
            raise PortfolioNotFoundError(f"Portfolio {portfolio_id} not found")
        if portfolio.email != email:
            logger.warning(f"{email} attempted to access portfolio {portfolio_id} of {portfolio.email}")
            raise OwnershipMismatchError("Portfolio does not belong to the account")
        return portfolio

    async def _prices(
        self,
        symbols: Iterable[str],
        prices: Optional[Mapping[str, Decimal]] = None,
        strict: bool = True,
    ) -> dict[str, Decimal]:
        """Known prices plus quotes for the rest; non-strict callers fall back to trade prices."""
        resolved = {s.upper(): to_decimal(p) for s, p in (prices or {}).items()}
        missing = {s.upper() for s in symbols} - resolved.keys()
        if not missing:
            return resolved
        try:
            quotes = await self.quote_resolver.resolve(missing)
        except QuoteUnavailableError as e:
            if strict:
                raise
            logger.warning(f"Valuing {sorted(missing)} at last trade price: {e.message}")
            return resolved
        resolved.update({symbol: info.price for symbol, info in quotes.items()})
        return resolved

    @staticmethod
    async def _apply_valuation(db: AsyncSession, portfolio: Portfolio, prices: Mapping[str, Decimal]) -> Portfolio:
        transactions = await TradeRepository(db).list_for_portfolio(portfolio.id)
        valuation = valuate(transactions, prices)
        portfolio.invested_amount = valuation.invested_amount
        portfolio.current_amount = valuation.current_amount
        portfolio.profit_loss = valuation.profit_loss
        portfolio.valued_at = datetime.utcnow()
        await db.flush()
        return portfolio

    async def _linked_symbols(self, portfolio_id: int, extra_ids: Iterable[int] = ()) -> set[str]:
        async with self.session_factory() as db:
            repo = TradeRepository(db)
            transactions = await repo.list_for_portfolio(portfolio_id)
            transactions += await repo.get_by_ids(extra_ids)
            return {txn.symbol for txn in transactions}

    async def _in_scope(self, email: str, currency: str, operation):
        async def in_transaction():
            async with self.session_factory() as db:
                async with db.begin():
                    return await operation(db)

        return await self.locks.run(ledger_key(email, currency), in_transaction)

    async def _link(self, db: AsyncSession, email: str, portfolio: Portfolio, transaction_ids: list[int]) -> int:
        transactions = await TradeRepository(db).get_by_ids(transaction_ids)
        found = {txn.id for txn in transactions}
        missing = sorted(set(transaction_ids) - found)
        if missing:
            raise OwnershipMismatchError(f"Trading transactions not found for account: {missing}")
        for txn in transactions:
            if txn.email != email:
                logger.warning(f"{email} attempted to link transaction {txn.id} of {txn.email}")
                raise OwnershipMismatchError(f"Trading transaction {txn.id} does not belong to the account")
            if txn.currency != portfolio.currency:
                raise CurrencyMismatchError(
                    f"Trading transaction {txn.id} is in {txn.currency}, portfolio is in {portfolio.currency}"
                )

        new_ids = [txn.id for txn in transactions if txn.portfolio_id != portfolio.id]
        linked = await TradeRepository(db).set_portfolio(new_ids, portfolio.id)
        if linked:
            logger.info(f"Linked {linked} transactions to portfolio {portfolio.id}")
        return linked

    # ==================== CRUD Operations ====================

    async def create(self, email: str, name: str, currency: str) -> Portfolio:
        """
        Create an empty portfolio.

        Raises:
            PortfolioError: name is blank
            AccountNotFoundError: unknown account
            CurrencyNotFoundError: currency is not an active ISO currency
        """
        if not name or not name.strip():
            raise PortfolioError("Portfolio name is required", code="INVALID_PORTFOLIO")
        currency = normalize_currency(currency)

        async def operation(db: AsyncSession) -> Portfolio:
            return await self._create(db, email, name.strip(), currency)

        return await self._in_scope(email, currency, operation)

    @staticmethod
    async def _create(db: AsyncSession, email: str, name: str, currency: str) -> Portfolio:
        if await AccountRepository(db).get_by_email(email) is None:
            raise AccountNotFoundError(email)
        if not await IsoDataRepository(db).is_active_currency(currency):
            raise CurrencyNotFoundError(currency)
        portfolio = await PortfolioRepository(db).create(email, name, currency)
        logger.info(f"Created portfolio {portfolio.id} '{name}' ({currency}) for {email}")
        return portfolio

    async def list_portfolios(self, email: str, currency: Optional[str] = None) -> list[Portfolio]:
        async with self.session_factory() as db:
            return await PortfolioRepository(db).list_for_account(email, currency)

    async def get_details(self, email: str, portfolio_id: int) -> PortfolioDetails:
        async with self.session_factory() as db:
            portfolio = await self._owned_portfolio(db, email, portfolio_id)
            transactions = await TradeRepository(db).list_for_portfolio(portfolio_id)
        positions = sorted(fold_positions(transactions).values(), key=lambda p: p.symbol)
        return PortfolioDetails(portfolio=portfolio, transactions=transactions, positions=positions)

    # ==================== Linking ====================

    async def link_transactions(self, email: str, portfolio_id: int, transaction_ids: Iterable[int]) -> int:
        """
        Link trading transactions to a portfolio and revalue it.

        Returns:
            Number of transactions newly linked

        Raises:
            PortfolioNotFoundError, OwnershipMismatchError, CurrencyMismatchError
        """
        transaction_ids = list(transaction_ids)
        async with self.session_factory() as db:
            portfolio = await self._owned_portfolio(db, email, portfolio_id)
        prices = await self._prices(await self._linked_symbols(portfolio_id, transaction_ids), strict=False)

        async def operation(db: AsyncSession) -> int:
            portfolio = await self._owned_portfolio(db, email, portfolio_id)
            linked = await self._link(db, email, portfolio, transaction_ids)
            if linked:
                await self._apply_valuation(db, portfolio, prices)
            return linked

        return await self._in_scope(email, portfolio.currency, operation)

    async def create_and_link(self, email: str, name: str, currency: str,
                              transaction_ids: Iterable[int]) -> Portfolio:
        """Create a portfolio and link transactions to it atomically."""
        if not name or not name.strip():
            raise PortfolioError("Portfolio name is required", code="INVALID_PORTFOLIO")
        currency = normalize_currency(currency)
        transaction_ids = list(transaction_ids)
        async with self.session_factory() as db:
            symbols = {txn.symbol for txn in await TradeRepository(db).get_by_ids(transaction_ids)}
        prices = await self._prices(symbols, strict=False)

        async def operation(db: AsyncSession) -> Portfolio:
            portfolio = await self._create(db, email, name.strip(), currency)
            await self._link(db, email, portfolio, transaction_ids)
            return await self._apply_valuation(db, portfolio, prices)

        return await self._in_scope(email, currency, operation)

    async def unlink_transactions(self, email: str, portfolio_id: int, transaction_ids: Iterable[int]) -> int:
        """
        Detach transactions from a portfolio. The transactions themselves are kept.

        Returns:
            Number of transactions unlinked
        """
        transaction_ids = list(transaction_ids)
        async with self.session_factory() as db:
            portfolio = await self._owned_portfolio(db, email, portfolio_id)
        prices = await self._prices(await self._linked_symbols(portfolio_id), strict=False)

        async def operation(db: AsyncSession) -> int:
            portfolio = await self._owned_portfolio(db, email, portfolio_id)
            transactions = await TradeRepository(db).get_by_ids(transaction_ids)
            for txn in transactions:
                if txn.email != email:
                    raise OwnershipMismatchError(f"Trading transaction {txn.id} does not belong to the account")
            ids = [txn.id for txn in transactions if txn.portfolio_id == portfolio.id]
            unlinked = await TradeRepository(db).set_portfolio(ids, None)
            if unlinked:
                await self._apply_valuation(db, portfolio, prices)
                logger.info(f"Unlinked {unlinked} transactions from portfolio {portfolio.id}")
            return unlinked

        return await self._in_scope(email, portfolio.currency, operation)

    # ==================== Valuation ====================

    async def revalue(self, portfolio_id: int, prices: Optional[Mapping[str, Decimal]] = None,
                      email: Optional[str] = None, strict: bool = True) -> Portfolio:
        """
        Recompute invested amount, current amount and profit/loss.

        Args:
            portfolio_id: Portfolio to revalue
            prices: Known prices by symbol; other symbols are quoted
            email: When given, the portfolio must belong to this account
            strict: Fail with QuoteUnavailableError instead of falling back
                to the last trade price

        Returns:
            Updated portfolio
        """
        async with self.session_factory() as db:
            portfolio = await PortfolioRepository(db).get_by_id(portfolio_id)
            if portfolio is None:
                raise PortfolioNotFoundError(f"Portfolio {portfolio_id} not found")
            if email is not None and portfolio.email != email:
                raise OwnershipMismatchError("Portfolio does not belong to the account")
        resolved = await self._prices(await self._linked_symbols(portfolio_id), prices, strict=strict)

        async def operation(db: AsyncSession) -> Portfolio:
            current = await PortfolioRepository(db).get_by_id(portfolio_id)
            if current is None:
                raise PortfolioNotFoundError(f"Portfolio {portfolio_id} not found")
            return await self._apply_valuation(db, current, resolved)

        return await self._in_scope(portfolio.email, portfolio.currency, operation)

    async def revalue_for_symbol(self, email: str, currency: str, symbol: str, price: Decimal) -> list[Portfolio]:
        """Revalue every portfolio of the scope that links ``symbol``."""
        async with self.session_factory() as db:
            ids = await PortfolioRepository(db).ids_linking_symbol(email, currency, symbol)
        revalued = []
        for portfolio_id in ids:
            revalued.append(await self.revalue(portfolio_id, {symbol.upper(): price}, strict=False))
        return revalued

    # ==================== Reset ====================

    async def reset(self, email: str, currency: Optional[str] = None) -> ResetResult:
        """
        Clear trading history and zero balances for one currency or all.

        Deletes trading transactions, portfolios and watch-list entries of
        the scope and zeroes its balances, with one account transaction per
        zeroed balance. Audit history and bank accounts are kept.

        Raises:
            AccountNotFoundError: unknown account
            ResetNotAllowedError: trader profile does not allow resets
        """
        currency = normalize_currency(currency) or None
        async with self.session_factory() as db:
            if await AccountRepository(db).get_by_email(email) is None:
                raise AccountNotFoundError(email)
            trader = await AccountRepository(db).get_trader(email)
            if trader is None or not trader.allow_reset:
                logger.warning(f"Reset refused for {email}")
                raise ResetNotAllowedError()

        while True:
            async with self.session_factory() as db:
                currencies = await self._scope_currencies(db, email, currency)
            result = await self.locks.run_all(
                [ledger_key(email, c) for c in currencies],
                lambda: self._reset_locked(email, currency, currencies),
            )
            if result is not None:
                break
            logger.info(f"Currencies of {email} changed before reset took its locks, retrying")

        logger.info(
            f"Reset {email} ({currency or 'all currencies'}): {result.transactions_deleted} transactions, "
            f"{result.portfolios_deleted} portfolios, {result.watch_list_deleted} watch list entries"
        )
        return result

    @staticmethod
    async def _scope_currencies(db: AsyncSession, email: str, currency: Optional[str]) -> set[str]:
        """Currencies a reset touches: the one given, or every currency the account has used."""
        if currency:
            return {currency}
        currencies = {b.currency for b in await LedgerRepository(db).list_balances(email)}
        currencies |= {t.currency for t in await TradeRepository(db).list_for_scope(email)}
        currencies |= {p.currency for p in await PortfolioRepository(db).list_for_account(email)}
        return currencies

    async def _reset_locked(self, email: str, currency: Optional[str], locked: set[str]) -> Optional[ResetResult]:
        """
        Reset body, run while holding the locks of ``locked``.

        Returns None without changing anything when the account has started
        using a currency outside ``locked`` since the locks were chosen.
        """
        async with self.session_factory() as db:
            async with db.begin():
                ledger = LedgerRepository(db)
                balances = await ledger.list_balances(email, currency, for_update=True)
                currencies = await self._scope_currencies(db, email, currency)
                if not currencies <= locked:
                    return None

                result = ResetResult(email=email, currencies=sorted(currencies))
                result.transactions_deleted = await TradeRepository(db).delete_for_scope(email, currency)
                result.portfolios_deleted = await PortfolioRepository(db).delete_for_scope(email, currency)
                result.watch_list_deleted = await WatchListRepository(db).delete_for_scope(email, currency)

                for balance in balances:
                    if to_decimal(balance.trading_amount) == ZERO and to_decimal(balance.non_trading_amount) == ZERO:
                        continue
                    previous = balance.total_amount
                    balance.trading_amount = ZERO
                    balance.non_trading_amount = ZERO
                    await ledger.add_account_transaction(
                        email, balance.currency,
                        f"Reset {balance.currency} balance of {format_amount(previous)} to zero",
                    )
                    result.balances_zeroed.append(balance.currency)
                return result
