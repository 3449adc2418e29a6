"""
Virtual Trading - Position Tracker

Positions are not stored; they are folded from the trading transaction
log. Within one (email, currency) scope the quantity held in a symbol is
the sum of its BUY quantities less the sum of its SELL quantities, and a
position exists only while that quantity is positive.

The tracker works on the caller's session. Mutating calls must run while
the caller holds the (email, currency) lock and inside the transaction
that also settles the cash side of the trade.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from virtrade.db.models.trade import TradingDeed, TradingTransaction
from virtrade.db.repositories.trade import TradeRepository
from virtrade.utils.currency import normalize_currency, to_decimal
from virtrade.utils.exceptions import InsufficientPositionError, InvalidOrderError


@dataclass(eq=False)
class Position:
    """Open holding of one symbol in one (email, currency) scope."""
    email: str
    symbol: str
    currency: str
    quantity: int
    symbol_name: Optional[str] = None
    current_price: Decimal = Decimal("0")
    current_amount: Decimal = Decimal("0")
    last_traded_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.email, self.symbol, self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Position):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def mark(self, price: Decimal) -> None:
        """Value the position at ``price``; the latest price replaces any earlier mark."""
        self.current_price = to_decimal(price)
        self.current_amount = self.current_price * self.quantity


@dataclass
class PositionChange:
    """Result of recording a trade against a position."""
    transaction: TradingTransaction
    remaining: int


def fold_positions(transactions: Iterable[TradingTransaction]) -> dict[tuple[str, str], Position]:
    """
    Fold transactions, in id order, into open positions.

    Returns:
        Mapping of (symbol, currency) to Position, marked at the price of
        the most recent transaction; symbols with no quantity left are absent
    """
    positions: dict[tuple[str, str], Position] = {}
    for txn in sorted(transactions, key=lambda t: t.id or 0):
        key = (txn.symbol, txn.currency)
        position = positions.get(key)
        if position is None:
            position = positions[key] = Position(
                email=txn.email, symbol=txn.symbol, currency=txn.currency, quantity=0,
            )
        position.quantity += txn.signed_quantity
        position.symbol_name = txn.symbol_name or position.symbol_name
        position.current_price = to_decimal(txn.price)
        position.last_traded_at = txn.transaction_date

    open_positions = {}
    for key, position in positions.items():
        if position.quantity > 0:
            position.mark(position.current_price)
            open_positions[key] = position
    return open_positions


def mark_positions(positions: Iterable[Position], prices: Mapping[str, Decimal]) -> None:
    """Mark positions whose symbol has a price in ``prices``."""
    for position in positions:
        price = prices.get(position.symbol)
        if price is not None:
            position.mark(price)


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidOrderError(f"Quantity must be a positive integer: {quantity!r}")
    return quantity


class PositionTracker:
    """
    Position Tracker

    Responsible for:
    - Deriving open positions from the transaction log
    - Recording buys and sells as trading transactions
    - Refusing sells larger than the outstanding quantity
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.trades = TradeRepository(db)

    async def positions(self, email: str, currency: Optional[str] = None) -> dict[tuple[str, str], Position]:
        """Open positions of an account, optionally for one currency."""
        return fold_positions(await self.trades.list_for_scope(email, currency))

    async def outstanding_quantity(self, email: str, symbol: str, currency: str) -> int:
        transactions = await self.trades.list_for_scope(email, currency, symbol)
        return sum(txn.signed_quantity for txn in transactions)

    async def holds(self, email: str, symbol: str) -> bool:
        """Whether the account holds ``symbol`` in any currency."""
        transactions = await self.trades.list_for_scope(email, symbol=symbol)
        totals: dict[str, int] = {}
        for txn in transactions:
            totals[txn.currency] = totals.get(txn.currency, 0) + txn.signed_quantity
        return any(quantity > 0 for quantity in totals.values())

    async def _record(
        self,
        deed: TradingDeed,
        email: str,
        symbol: str,
        currency: str,
        quantity: int,
        price: Decimal,
        cost: Decimal,
        symbol_name: Optional[str],
    ) -> TradingTransaction:
        return await self.trades.create(
            TradingTransaction(
                email=email,
                symbol=symbol.upper(),
                symbol_name=symbol_name,
                deed=deed,
                quantity=quantity,
                currency=normalize_currency(currency),
                price=to_decimal(price),
                cost=to_decimal(cost),
                transaction_date=datetime.utcnow(),
            )
        )

    async def open_or_increase(
        self,
        email: str,
        symbol: str,
        currency: str,
        quantity: int,
        price: Decimal,
        cost: Decimal,
        symbol_name: Optional[str] = None,
    ) -> PositionChange:
        """
        Record a BUY.

        Args:
            email: Account email
            symbol: Trading symbol
            currency: Quote currency
            quantity: Shares bought, positive
            price: Execution price
            cost: Cash consideration (gross plus fee)
            symbol_name: Display name of the symbol

        Returns:
            PositionChange with the new transaction and the quantity now held
        """
        quantity = _check_quantity(quantity)
        held = await self.outstanding_quantity(email, symbol, currency)
        txn = await self._record(TradingDeed.BUY, email, symbol, currency, quantity, price, cost, symbol_name)
        logger.info(f"Position {symbol.upper()} ({currency}) of {email}: {held} -> {held + quantity}")
        return PositionChange(transaction=txn, remaining=held + quantity)

    async def decrease(
        self,
        email: str,
        symbol: str,
        currency: str,
        quantity: int,
        price: Decimal,
        cost: Decimal,
        symbol_name: Optional[str] = None,
    ) -> PositionChange:
        """
        Record a SELL; selling down to zero closes the position.

        Raises:
            InsufficientPositionError: quantity exceeds the outstanding quantity
        """
        quantity = _check_quantity(quantity)
        held = await self.outstanding_quantity(email, symbol, currency)
        if quantity > held:
            logger.warning(
                f"Insufficient position in {symbol.upper()} for {email}: selling {quantity}, holding {held}"
            )
            raise InsufficientPositionError(
                f"Insufficient quantity of {symbol.upper()} to sell: holding {held}, requested {quantity}"
            )
        txn = await self._record(TradingDeed.SELL, email, symbol, currency, quantity, price, cost, symbol_name)
        logger.info(f"Position {symbol.upper()} ({currency}) of {email}: {held} -> {held - quantity}")
        return PositionChange(transaction=txn, remaining=held - quantity)
