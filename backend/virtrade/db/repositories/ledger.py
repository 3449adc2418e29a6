"""
Ledger Repository

Balance rows and their audit trail. Callers own the transaction: nothing
here commits, so a failed operation rolls back every row it touched.
"""
from decimal import Decimal
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import Select, select, and_

from virtrade.db.models.balance import (
    AccountBalance,
    AccountTransaction,
    BankAccountTransaction,
)
from virtrade.utils.currency import normalize_currency


def balance_query(email: str, currency: str, for_update: bool = False) -> Select:
    """Select the balance row of one (email, currency) scope."""
    query = select(AccountBalance).where(
        and_(
            AccountBalance.email == email,
            AccountBalance.currency == normalize_currency(currency),
        )
    )
    if for_update:
        query = query.with_for_update()
    return query


class LedgerRepository:
    """Repository for AccountBalance and the audit tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== BALANCES ====================

    async def get_balance(self, email: str, currency: str, for_update: bool = False) -> Optional[AccountBalance]:
        """
        Balance row of one scope.

        With ``for_update`` the row stays locked until the caller's
        transaction ends, serializing writers across processes.
        """
        result = await self.db.execute(balance_query(email, currency, for_update))
        return result.scalar_one_or_none()

    async def get_or_create_balance(self, email: str, currency: str) -> AccountBalance:
        """Fetch and lock the balance row, creating a zero balance on first use."""
        balance = await self.get_balance(email, currency, for_update=True)
        if balance is None:
            balance = AccountBalance(
                email=email,
                currency=normalize_currency(currency),
                trading_amount=Decimal("0"),
                non_trading_amount=Decimal("0"),
            )
            self.db.add(balance)
            await self.db.flush()
        return balance

    async def list_balances(
        self,
        email: str,
        currency: Optional[str] = None,
        for_update: bool = False,
    ) -> list[AccountBalance]:
        query = select(AccountBalance).where(AccountBalance.email == email)
        if currency:
            query = query.where(AccountBalance.currency == normalize_currency(currency))
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query.order_by(AccountBalance.currency))
        return list(result.scalars().all())

    # ==================== AUDIT ====================

    async def add_account_transaction(self, email: str, currency: str, description: str) -> AccountTransaction:
        entry = AccountTransaction(
            email=email,
            currency=normalize_currency(currency),
            description=description,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def add_bank_transaction(
        self,
        email: str,
        bank_account_id: Optional[int],
        currency: str,
        amount: Optional[Decimal],
        description: str,
    ) -> BankAccountTransaction:
        entry = BankAccountTransaction(
            email=email,
            bank_account_id=bank_account_id,
            currency=normalize_currency(currency),
            amount=amount,
            description=description,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_account_transactions(self, email: str) -> list[AccountTransaction]:
        result = await self.db.execute(
            select(AccountTransaction)
            .where(AccountTransaction.email == email)
            .order_by(AccountTransaction.id)
        )
        return list(result.scalars().all())

    async def list_bank_transactions(self, email: str) -> list[BankAccountTransaction]:
        result = await self.db.execute(
            select(BankAccountTransaction)
            .where(BankAccountTransaction.email == email)
            .order_by(BankAccountTransaction.id)
        )
        return list(result.scalars().all())
