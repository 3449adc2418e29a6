"""
Trade Repository

Database operations for the trading transaction log.
"""
from typing import Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, and_

from virtrade.db.models.trade import TradingTransaction
from virtrade.utils.currency import normalize_currency


class TradeRepository:
    """Repository for TradingTransaction rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== CREATE ====================

    async def create(self, transaction: TradingTransaction) -> TradingTransaction:
        self.db.add(transaction)
        await self.db.flush()
        return transaction

    # ==================== READ ====================

    async def get_by_id(self, transaction_id: int) -> Optional[TradingTransaction]:
        result = await self.db.execute(
            select(TradingTransaction).where(TradingTransaction.id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def get_by_ids(self, transaction_ids: Iterable[int]) -> list[TradingTransaction]:
        ids = list(set(transaction_ids))
        if not ids:
            return []
        result = await self.db.execute(
            select(TradingTransaction).where(TradingTransaction.id.in_(ids))
        )
        return list(result.scalars().all())

    async def list_for_scope(
        self,
        email: str,
        currency: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> list[TradingTransaction]:
        """Transactions of an account, optionally narrowed by currency and symbol."""
        conditions = [TradingTransaction.email == email]
        if currency:
            conditions.append(TradingTransaction.currency == normalize_currency(currency))
        if symbol:
            conditions.append(TradingTransaction.symbol == symbol.upper())
        result = await self.db.execute(
            select(TradingTransaction)
            .where(and_(*conditions))
            .order_by(TradingTransaction.id)
        )
        return list(result.scalars().all())

    async def list_for_portfolio(self, portfolio_id: int) -> list[TradingTransaction]:
        result = await self.db.execute(
            select(TradingTransaction)
            .where(TradingTransaction.portfolio_id == portfolio_id)
            .order_by(TradingTransaction.id)
        )
        return list(result.scalars().all())

    # ==================== UPDATE ====================

    async def set_portfolio(self, transaction_ids: Iterable[int], portfolio_id: Optional[int]) -> int:
        ids = list(set(transaction_ids))
        if not ids:
            return 0
        result = await self.db.execute(
            update(TradingTransaction)
            .where(TradingTransaction.id.in_(ids))
            .values(portfolio_id=portfolio_id)
        )
        return result.rowcount or 0

    # ==================== DELETE ====================

    async def delete_for_scope(self, email: str, currency: Optional[str] = None) -> int:
        query = delete(TradingTransaction).where(TradingTransaction.email == email)
        if currency:
            query = query.where(TradingTransaction.currency == normalize_currency(currency))
        result = await self.db.execute(query)
        return result.rowcount or 0
