"""
Bank Account Repository
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_

from virtrade.db.models.balance import BankAccount
from virtrade.utils.currency import normalize_currency


class BankAccountRepository:
    """Repository for BankAccount rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, bank_account_id: int) -> Optional[BankAccount]:
        result = await self.db.execute(
            select(BankAccount).where(BankAccount.id == bank_account_id)
        )
        return result.scalar_one_or_none()

    async def get_in_use(self, email: str, currency: str) -> Optional[BankAccount]:
        result = await self.db.execute(
            select(BankAccount).where(
                and_(
                    BankAccount.email == email,
                    BankAccount.currency == normalize_currency(currency),
                    BankAccount.in_use.is_(True),
                )
            )
        )
        return result.scalars().first()

    async def list_for_account(self, email: str, in_use_only: bool = False) -> list[BankAccount]:
        query = select(BankAccount).where(BankAccount.email == email)
        if in_use_only:
            query = query.where(BankAccount.in_use.is_(True))
        result = await self.db.execute(query.order_by(BankAccount.id))
        return list(result.scalars().all())

    async def create(
        self,
        email: str,
        currency: str,
        bank_name: str,
        bank_account_number: str,
    ) -> BankAccount:
        account = BankAccount(
            email=email,
            currency=normalize_currency(currency),
            bank_name=bank_name,
            bank_account_number=bank_account_number,
            in_use=True,
        )
        self.db.add(account)
        await self.db.flush()
        return account

    async def retire_in_use(self, email: str, currency: str) -> int:
        """Mark every in-use account for the currency as not in use."""
        result = await self.db.execute(
            update(BankAccount)
            .where(
                and_(
                    BankAccount.email == email,
                    BankAccount.currency == normalize_currency(currency),
                    BankAccount.in_use.is_(True),
                )
            )
            .values(in_use=False)
        )
        return result.rowcount or 0
