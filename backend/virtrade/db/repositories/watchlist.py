"""
Watch List Repository
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, and_

from virtrade.db.models.watchlist import WatchList
from virtrade.utils.currency import normalize_currency


class WatchListRepository:
    """Repository for WatchList rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, email: str, symbol: str) -> Optional[WatchList]:
        result = await self.db.execute(
            select(WatchList).where(
                and_(WatchList.email == email, WatchList.symbol == symbol.upper())
            )
        )
        return result.scalar_one_or_none()

    async def add(self, email: str, symbol: str, symbol_name: Optional[str], currency: Optional[str]) -> WatchList:
        entry = WatchList(
            email=email,
            symbol=symbol.upper(),
            symbol_name=symbol_name,
            currency=normalize_currency(currency) or None,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def remove(self, email: str, symbol: str) -> bool:
        result = await self.db.execute(
            delete(WatchList).where(
                and_(WatchList.email == email, WatchList.symbol == symbol.upper())
            )
        )
        return (result.rowcount or 0) > 0

    async def list_for_account(self, email: str) -> list[WatchList]:
        result = await self.db.execute(
            select(WatchList).where(WatchList.email == email).order_by(WatchList.symbol)
        )
        return list(result.scalars().all())

    async def delete_for_scope(self, email: str, currency: Optional[str] = None) -> int:
        """Delete entries; with a currency, only entries quoted in it."""
        query = delete(WatchList).where(WatchList.email == email)
        if currency:
            query = query.where(WatchList.currency == normalize_currency(currency))
        result = await self.db.execute(query)
        return result.rowcount or 0
