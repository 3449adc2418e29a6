"""
Virtual Trading - Trading Engine

Executes market buys and sells against the latest quote.

A trade goes through these steps:
1. Validate the request and the account
2. Resolve the quote (outside any lock)
3. Compute gross amount and fee
4. Under the (email, currency) lock, in one database transaction:
   check funds, position and bank account, then record the trading
   transaction, settle cash and append the audit entries
5. Revalue the portfolios of the scope that link the traded symbol

Anything that fails in step 4 leaves balances, positions and the audit
trail exactly as they were.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from loguru import logger

from virtrade.core.trading.fees import calculate_fee
from virtrade.core.trading.ledger import BalanceLedger, Subaccount
from virtrade.core.trading.position_tracker import PositionTracker
from virtrade.core.trading.quotes import QuoteInfo, QuoteResolver
from virtrade.db.models.account import Account
from virtrade.db.models.trade import TradingDeed
from virtrade.db.repositories.account import AccountRepository
from virtrade.db.repositories.bank_account import BankAccountRepository
from virtrade.db.repositories.ledger import LedgerRepository
from virtrade.db.repositories.trade import TradeRepository
from virtrade.utils.currency import LEDGER_SCALE, format_amount
from virtrade.utils.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    IndexNotTradableError,
    InvalidBankAccountError,
    InvalidOrderError,
    TradeFailedError,
    VirtualTradingException,
)
from virtrade.utils.locks import KeyedLock, ledger_key


@dataclass
class BuyRequest:
    email: str
    symbol: str
    quantity: int


@dataclass
class SellRequest:
    """
    Sell instruction.

    ``auto_transfer_to_bank`` None means "use the trader's profile setting";
    when transfer applies and no bank account id is given, the account's
    in-use bank account for the quote currency is used.
    """
    email: str
    symbol: str
    quantity: int
    auto_transfer_to_bank: Optional[bool] = None
    bank_account_id: Optional[int] = None


@dataclass
class TradeResult:
    """Outcome of an executed trade."""
    deed: TradingDeed
    symbol: str
    name: str
    currency: str
    quantity: int
    price: Decimal
    gross_amount: Decimal
    fee: Decimal
    total: Decimal
    remaining_quantity: int
    transaction_id: int
    message: str
    transferred_to_bank: bool = False
    bank_account_id: Optional[int] = None


def trade_description(quantity: int, quote: QuoteInfo, total: Decimal) -> str:
    return (
        f"{quantity} shares of {quote.symbol} at {quote.currency} {quote.price}"
        f", total cost {quote.currency} {format_amount(total)}"
    )


class TradingEngine:
    """
    Trading Engine

    Usage:
        engine = TradingEngine(session_maker, QuoteResolver(provider))
        result = await engine.buy(BuyRequest("a@example.com", "AAPL", 10))
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        quote_resolver: QuoteResolver,
        portfolio_service=None,
        ledger: Optional[BalanceLedger] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.session_factory = session_factory
        self.quote_resolver = quote_resolver
        self.portfolio_service = portfolio_service
        self.locks = locks or (ledger.locks if ledger else KeyedLock())
        self.ledger = ledger or BalanceLedger(session_factory, self.locks)

    # ==================== Validation ====================

    @staticmethod
    def _validate_order(symbol: str, quantity) -> str:
        if not symbol or not symbol.strip():
            raise InvalidOrderError("Trading symbol is required")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidOrderError(f"Quantity must be a positive integer: {quantity!r}")
        return symbol.strip().upper()

    @staticmethod
    async def _active_account(db: AsyncSession, email: str) -> Account:
        account = await AccountRepository(db).get_by_email(email)
        if account is None:
            raise AccountNotFoundError(email)
        if not account.is_active:
            logger.warning(f"Rejected trade for inactive account {email}")
            raise AccountInactiveError()
        return account

    async def _tradable_quote(self, symbol: str) -> QuoteInfo:
        quote = await self.quote_resolver.resolve_one(symbol)
        if quote.is_index:
            logger.warning(f"Rejected trade in index {symbol}")
            raise IndexNotTradableError(symbol)
        return quote

    async def _execute(self, email: str, quote: QuoteInfo, operation):
        """Run the mutation phase under the scope lock, mapping store errors to TradeFailedError."""
        async def in_transaction():
            try:
                async with self.session_factory() as db:
                    async with db.begin():
                        await self._active_account(db, email)
                        await LedgerRepository(db).get_or_create_balance(email, quote.currency)
                        return await operation(db)
            except VirtualTradingException:
                raise
            except Exception as e:
                logger.exception(f"Trade in {quote.symbol} for {email} failed and was rolled back")
                raise TradeFailedError(f"Trade in {quote.symbol} failed: {e}") from e

        return await self.locks.run(ledger_key(email, quote.currency), in_transaction)

    async def _after_trade(self, result: TradeResult, email: str) -> None:
        if self.portfolio_service is None:
            return
        try:
            await self.portfolio_service.revalue_for_symbol(
                email, result.currency, result.symbol, result.price
            )
        except Exception as e:
            logger.warning(f"Post-trade revaluation of {result.symbol} for {email} failed: {e}")

    # ==================== Buy ====================

    async def buy(self, request: BuyRequest) -> TradeResult:
        """
        Buy at the latest price.

        Debits gross plus fee from the trading subaccount of the quote currency.

        Raises:
            InvalidOrderError, AccountNotFoundError, AccountInactiveError,
            QuoteUnavailableError, IndexNotTradableError,
            InsufficientFundsError, TradeFailedError
        """
        symbol = self._validate_order(request.symbol, request.quantity)
        email = request.email
        async with self.session_factory() as db:
            await self._active_account(db, email)

        quote = await self._tradable_quote(symbol)
        gross = quote.price * request.quantity
        fee = calculate_fee(gross)
        total = (gross + fee).quantize(LEDGER_SCALE, rounding=ROUND_HALF_UP)
        description = trade_description(request.quantity, quote, total)

        async def operation(db: AsyncSession) -> TradeResult:
            await self.ledger.apply_debit(
                db, email, quote.currency, Subaccount.TRADING, total, f"Bought {description}"
            )
            change = await PositionTracker(db).open_or_increase(
                email, quote.symbol, quote.currency, request.quantity, quote.price, total, quote.name
            )
            return TradeResult(
                deed=TradingDeed.BUY,
                symbol=quote.symbol,
                name=quote.name,
                currency=quote.currency,
                quantity=request.quantity,
                price=quote.price,
                gross_amount=gross,
                fee=fee,
                total=total,
                remaining_quantity=change.remaining,
                transaction_id=change.transaction.id,
                message=f"Bought {description}",
            )

        result = await self._execute(email, quote, operation)
        logger.info(f"{email}: {result.message}")
        await self._after_trade(result, email)
        return result

    # ==================== Sell ====================

    async def sell(self, request: SellRequest) -> TradeResult:
        """
        Sell at the latest price.

        Net proceeds (gross less fee) go to the trading subaccount, or, with
        auto transfer, out of the non-trading subaccount to the bank account.

        Raises:
            InvalidOrderError, AccountNotFoundError, AccountInactiveError,
            QuoteUnavailableError, IndexNotTradableError,
            InsufficientPositionError, InvalidBankAccountError,
            InsufficientFundsError, TradeFailedError
        """
        symbol = self._validate_order(request.symbol, request.quantity)
        email = request.email
        async with self.session_factory() as db:
            await self._active_account(db, email)
            auto_transfer = request.auto_transfer_to_bank
            if auto_transfer is None:
                trader = await AccountRepository(db).get_trader(email)
                auto_transfer = bool(trader and trader.auto_transfer_to_bank)

        if auto_transfer and request.bank_account_id is None and request.auto_transfer_to_bank:
            raise InvalidBankAccountError("Bank account is required for auto transfer")

        quote = await self._tradable_quote(symbol)
        gross = quote.price * request.quantity
        fee = calculate_fee(gross)
        net = (gross - fee).quantize(LEDGER_SCALE, rounding=ROUND_HALF_UP)
        description = trade_description(request.quantity, quote, net)

        async def operation(db: AsyncSession) -> TradeResult:
            bank_account_id = request.bank_account_id
            if auto_transfer:
                if bank_account_id is None:
                    in_use = await BankAccountRepository(db).get_in_use(email, quote.currency)
                    bank_account_id = in_use.id if in_use else None
                await self.ledger.validate_bank_account(db, email, quote.currency, bank_account_id)

            change = await PositionTracker(db).decrease(
                email, quote.symbol, quote.currency, request.quantity, quote.price, net, quote.name
            )
            if auto_transfer:
                await LedgerRepository(db).add_account_transaction(
                    email, quote.currency, f"Sold {description}"
                )
                await self.ledger.apply_transfer_to_bank(
                    db, email, quote.currency, net, bank_account_id
                )
            else:
                await self.ledger.apply_credit(
                    db, email, quote.currency, Subaccount.TRADING, net, f"Sold {description}"
                )
            return TradeResult(
                deed=TradingDeed.SELL,
                symbol=quote.symbol,
                name=quote.name,
                currency=quote.currency,
                quantity=request.quantity,
                price=quote.price,
                gross_amount=gross,
                fee=fee,
                total=net,
                remaining_quantity=change.remaining,
                transaction_id=change.transaction.id,
                message=f"Sold {description}",
                transferred_to_bank=bool(auto_transfer),
                bank_account_id=bank_account_id if auto_transfer else None,
            )

        result = await self._execute(email, quote, operation)
        logger.info(f"{email}: {result.message}")
        await self._after_trade(result, email)
        return result

    # ==================== Queries ====================

    async def transactions(self, email: str, currency: Optional[str] = None, symbol: Optional[str] = None):
        """Trading transactions of an account, oldest first."""
        async with self.session_factory() as db:
            return await TradeRepository(db).list_for_scope(email, currency, symbol)

    async def positions(self, email: str, currency: Optional[str] = None, mark: bool = False):
        """
        Open positions of an account.

        Args:
            email: Account email
            currency: Restrict to one currency
            mark: Value positions at live quotes instead of the last trade price
        """
        async with self.session_factory() as db:
            positions = await PositionTracker(db).positions(email, currency)
        if mark and positions:
            quotes = await self.quote_resolver.resolve({symbol for symbol, _ in positions})
            for position in positions.values():
                position.mark(quotes[position.symbol].price)
        return positions
