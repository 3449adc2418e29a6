"""
Portfolio Repository
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, and_

from virtrade.db.models.portfolio import Portfolio
from virtrade.db.models.trade import TradingTransaction
from virtrade.utils.currency import normalize_currency


class PortfolioRepository:
    """Repository for Portfolio rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, email: str, name: str, currency: str) -> Portfolio:
        portfolio = Portfolio(email=email, name=name, currency=normalize_currency(currency))
        self.db.add(portfolio)
        await self.db.flush()
        return portfolio

    async def get_by_id(self, portfolio_id: int) -> Optional[Portfolio]:
        result = await self.db.execute(
            select(Portfolio).where(Portfolio.id == portfolio_id)
        )
        return result.scalar_one_or_none()

    async def list_for_account(self, email: str, currency: Optional[str] = None) -> list[Portfolio]:
        query = select(Portfolio).where(Portfolio.email == email)
        if currency:
            query = query.where(Portfolio.currency == normalize_currency(currency))
        result = await self.db.execute(query.order_by(Portfolio.id))
        return list(result.scalars().all())

    async def ids_linking_symbol(self, email: str, currency: str, symbol: str) -> list[int]:
        """Ids of the scope's portfolios holding a linked transaction in ``symbol``."""
        result = await self.db.execute(
            select(Portfolio.id)
            .join(TradingTransaction, TradingTransaction.portfolio_id == Portfolio.id)
            .where(
                and_(
                    Portfolio.email == email,
                    Portfolio.currency == normalize_currency(currency),
                    TradingTransaction.symbol == symbol.upper(),
                )
            )
            .distinct()
            .order_by(Portfolio.id)
        )
        return list(result.scalars().all())

    async def delete_for_scope(self, email: str, currency: Optional[str] = None) -> int:
        query = delete(Portfolio).where(Portfolio.email == email)
        if currency:
            query = query.where(Portfolio.currency == normalize_currency(currency))
        result = await self.db.execute(query)
        return result.rowcount or 0
