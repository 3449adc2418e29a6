"""
Virtual Trading - Balance and Bank Account Models
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey

from virtrade.db.database import Base


class AccountBalance(Base):
    """
    Cash held by one account in one currency.

    Split into a trading subaccount (funds for buying) and a non-trading
    subaccount (funds eligible for bank transfer). Neither may go negative.
    """

    __tablename__ = "account_balances"

    email = Column(String(255), ForeignKey("accounts.email", ondelete="CASCADE"), primary_key=True)
    currency = Column(String(3), primary_key=True)

    trading_amount = Column(Numeric(20, 4), default=Decimal("0"), nullable=False)
    non_trading_amount = Column(Numeric(20, 4), default=Decimal("0"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def total_amount(self) -> Decimal:
        return (self.trading_amount or Decimal("0")) + (self.non_trading_amount or Decimal("0"))

    def __repr__(self):
        return f"<AccountBalance {self.email} {self.currency} trading={self.trading_amount}>"


class AccountTransaction(Base):
    """Append-only audit entry for a balance mutation."""

    __tablename__ = "account_transactions"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    description = Column(String(500), nullable=False)
    transaction_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<AccountTransaction {self.id} {self.email}: {self.description}>"


class BankAccount(Base):
    """External bank account; superseded accounts are kept with in_use=False."""

    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), ForeignKey("accounts.email", ondelete="CASCADE"), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    bank_name = Column(String(255), nullable=False)
    bank_account_number = Column(String(64), nullable=False)
    in_use = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<BankAccount {self.id} {self.bank_name} ({self.currency}) in_use={self.in_use}>"


class BankAccountTransaction(Base):
    """Append-only audit entry for bank account events and transfers."""

    __tablename__ = "bank_account_transactions"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=True)
    currency = Column(String(3), nullable=False)
    amount = Column(Numeric(20, 4), nullable=True)  # None for non-monetary events
    description = Column(String(500), nullable=False)
    transaction_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<BankAccountTransaction {self.id} {self.amount} {self.currency}>"
