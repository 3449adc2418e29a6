"""
Account Repository

Database operations for accounts and trader profiles.
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from virtrade.db.models.account import Account, Trader


class AccountRepository:
    """Repository for Account and Trader lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, email: str, is_active: bool = True) -> Account:
        account = Account(email=email, is_active=is_active)
        self.db.add(account)
        await self.db.flush()
        return account

    async def get_by_email(self, email: str) -> Optional[Account]:
        result = await self.db.execute(
            select(Account).where(Account.email == email)
        )
        return result.scalar_one_or_none()

    async def get_trader(self, email: str) -> Optional[Trader]:
        result = await self.db.execute(
            select(Trader).where(Trader.email == email)
        )
        return result.scalar_one_or_none()

    async def save_trader(self, trader: Trader) -> Trader:
        self.db.add(trader)
        await self.db.flush()
        return trader
