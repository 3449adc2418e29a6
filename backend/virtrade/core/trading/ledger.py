"""
Balance Ledger

Per (email, currency) balances split into a trading and a non-trading
subaccount, plus transfers out to registered bank accounts.

Every public operation takes the (email, currency) lock and runs in one
database transaction: validation happens before any row changes, and a
failure leaves no balance change and no audit row behind. The ``apply_*``
methods are the same steps without lock or transaction, for callers such
as the trading engine that compose them into a larger atomic operation.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from loguru import logger

from virtrade.config import settings
from virtrade.db.models.balance import AccountBalance, BankAccount
from virtrade.db.repositories.bank_account import BankAccountRepository
from virtrade.db.repositories.iso_data import IsoDataRepository
from virtrade.db.repositories.ledger import LedgerRepository
from virtrade.utils.currency import (
    LEDGER_SCALE,
    ZERO,
    format_amount,
    normalize_currency,
    quantize_minor_units,
    to_decimal,
)
from virtrade.utils.exceptions import (
    BalanceLimitError,
    CurrencyNotFoundError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidBankAccountError,
)
from virtrade.utils.locks import KeyedLock, ledger_key


class Subaccount(str, Enum):
    """Part of a balance an operation targets."""
    TRADING = "TRADING"
    NON_TRADING = "NON_TRADING"

    @property
    def column(self) -> str:
        return "trading_amount" if self is Subaccount.TRADING else "non_trading_amount"

    @property
    def label(self) -> str:
        return "trading" if self is Subaccount.TRADING else "non-trading"


@dataclass
class BalanceView:
    """Balance rounded to the currency's display precision."""
    email: str
    currency: str
    trading_amount: Decimal
    non_trading_amount: Decimal
    minor_units: int

    @property
    def total_amount(self) -> Decimal:
        return self.trading_amount + self.non_trading_amount


@dataclass
class TransferResult:
    """Outcome of a transfer to a bank account."""
    email: str
    currency: str
    amount: Decimal
    bank_account_id: int
    non_trading_amount: Decimal
    description: str


def _check_amount(amount) -> Decimal:
    """Non-negative amount representable at the ledger scale of 4 decimals."""
    amount = to_decimal(amount)
    if not amount.is_finite():
        raise InvalidAmountError(f"Amount must be a finite number: {amount}")
    if amount < 0:
        raise InvalidAmountError(f"Amount must not be negative: {amount}")
    if amount.normalize().as_tuple().exponent < LEDGER_SCALE.as_tuple().exponent:
        raise InvalidAmountError(f"Amount must not have more than 4 decimal places: {amount}")
    return amount


def transfer_description(currency: str, amount: Decimal, bank_account: BankAccount) -> str:
    return (
        f"Transferred {currency} {format_amount(amount)} to bank {bank_account.bank_name}"
        f" with bank account number {bank_account.bank_account_number}"
        f" for currency {bank_account.currency}"
    )


class BalanceLedger:
    """
    Owner of account balances and bank transfer postings.

    Usage:
        ledger = BalanceLedger(session_maker, locks)
        await ledger.deposit("a@example.com", "USD", Decimal("10000"))
        await ledger.debit("a@example.com", "USD", Subaccount.TRADING, Decimal("150"))
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: Optional[KeyedLock] = None,
        max_balance: Decimal = settings.MAX_ACCOUNT_BALANCE,
    ):
        self.session_factory = session_factory
        self.locks = locks or KeyedLock()
        self.max_balance = max_balance

    async def _run(self, email: str, currency: str, operation):
        """Run ``operation(db)`` in one transaction under the scope's lock."""
        async def in_transaction():
            async with self.session_factory() as db:
                async with db.begin():
                    return await operation(db)

        return await self.locks.run(ledger_key(email, currency), in_transaction)

    # ==================== IN-TRANSACTION STEPS ====================

    async def apply_credit(
        self,
        db: AsyncSession,
        email: str,
        currency: str,
        subaccount: Subaccount,
        amount: Decimal,
        description: Optional[str] = None,
    ) -> AccountBalance:
        """Add to a subaccount and append one account transaction."""
        amount = _check_amount(amount)
        currency = normalize_currency(currency)
        repo = LedgerRepository(db)
        balance = await repo.get_or_create_balance(email, currency)

        new_amount = to_decimal(getattr(balance, subaccount.column)) + amount
        if new_amount >= self.max_balance:
            raise BalanceLimitError(
                f"{currency} {subaccount.label} balance would reach {format_amount(new_amount)}"
            )
        setattr(balance, subaccount.column, new_amount)

        await repo.add_account_transaction(
            email,
            currency,
            description or f"Credited {currency} {format_amount(amount)} to {subaccount.label} account",
        )
        await db.flush()
        logger.info(f"Credited {currency} {amount} to {subaccount.label} account of {email}")
        return balance

    async def apply_debit(
        self,
        db: AsyncSession,
        email: str,
        currency: str,
        subaccount: Subaccount,
        amount: Decimal,
        description: Optional[str] = None,
    ) -> AccountBalance:
        """Take from a subaccount and append one account transaction; never goes negative."""
        amount = _check_amount(amount)
        currency = normalize_currency(currency)
        repo = LedgerRepository(db)
        balance = await repo.get_or_create_balance(email, currency)

        available = to_decimal(getattr(balance, subaccount.column))
        if available - amount < ZERO:
            logger.warning(
                f"Insufficient {currency} {subaccount.label} funds for {email}: "
                f"need {amount}, have {available}"
            )
            raise InsufficientFundsError(f"Insufficient funds for currency {currency}")
        setattr(balance, subaccount.column, available - amount)

        await repo.add_account_transaction(
            email,
            currency,
            description or f"Debited {currency} {format_amount(amount)} from {subaccount.label} account",
        )
        await db.flush()
        logger.info(f"Debited {currency} {amount} from {subaccount.label} account of {email}")
        return balance

    async def validate_bank_account(
        self,
        db: AsyncSession,
        email: str,
        currency: str,
        bank_account_id: Optional[int],
    ) -> BankAccount:
        """Bank account must exist, be in use, belong to ``email`` and hold ``currency``."""
        if bank_account_id is None:
            raise InvalidBankAccountError("Bank account is required")
        bank_account = await BankAccountRepository(db).get_by_id(bank_account_id)
        if bank_account is None:
            raise InvalidBankAccountError("Bank account not found")
        if not bank_account.in_use:
            raise InvalidBankAccountError("Bank account is not in use")
        if bank_account.email != email:
            raise InvalidBankAccountError("Bank account does not belong to the account")
        if normalize_currency(bank_account.currency) != normalize_currency(currency):
            raise InvalidBankAccountError(
                f"Bank account currency {bank_account.currency} does not match {normalize_currency(currency)}"
            )
        return bank_account

    async def apply_transfer_to_bank(
        self,
        db: AsyncSession,
        email: str,
        currency: str,
        amount: Decimal,
        bank_account_id: Optional[int],
    ) -> TransferResult:
        """Debit the non-trading subaccount and append one bank account transaction."""
        amount = _check_amount(amount)
        currency = normalize_currency(currency)
        bank_account = await self.validate_bank_account(db, email, currency, bank_account_id)

        repo = LedgerRepository(db)
        balance = await repo.get_or_create_balance(email, currency)
        available = to_decimal(balance.non_trading_amount)
        if available - amount < ZERO:
            logger.warning(
                f"Insufficient {currency} non-trading funds for transfer by {email}: "
                f"need {amount}, have {available}"
            )
            raise InsufficientFundsError(f"Insufficient funds for currency {currency}")
        balance.non_trading_amount = available - amount

        description = transfer_description(currency, amount, bank_account)
        await repo.add_bank_transaction(email, bank_account.id, currency, amount, description)
        await db.flush()
        logger.info(f"Transferred {currency} {amount} of {email} to bank account {bank_account.id}")
        return TransferResult(
            email=email,
            currency=currency,
            amount=amount,
            bank_account_id=bank_account.id,
            non_trading_amount=balance.non_trading_amount,
            description=description,
        )

    # ==================== PUBLIC OPERATIONS ====================

    async def credit(self, email: str, currency: str, subaccount: Subaccount, amount,
                     description: Optional[str] = None) -> AccountBalance:
        return await self._run(
            email, currency,
            lambda db: self.apply_credit(db, email, currency, subaccount, amount, description),
        )

    async def debit(self, email: str, currency: str, subaccount: Subaccount, amount,
                    description: Optional[str] = None) -> AccountBalance:
        return await self._run(
            email, currency,
            lambda db: self.apply_debit(db, email, currency, subaccount, amount, description),
        )

    async def transfer_to_bank(self, email: str, from_currency: str, amount,
                               bank_account_id: int) -> TransferResult:
        """
        Move funds from the non-trading subaccount to a bank account.

        Raises:
            InvalidBankAccountError: bank account missing, not in use,
                owned by another account or held in another currency
            InsufficientFundsError: non-trading funds are short
        """
        return await self._run(
            email, from_currency,
            lambda db: self.apply_transfer_to_bank(db, email, from_currency, amount, bank_account_id),
        )

    async def deposit(self, email: str, currency: str, amount,
                      subaccount: Subaccount = Subaccount.TRADING) -> AccountBalance:
        """
        Add funds to an account in an active ISO currency.

        Args:
            email: Account email
            currency: ISO 4217 alpha code
            amount: Strictly positive and below one trillion
            subaccount: Target subaccount (trading by default)

        Raises:
            InvalidAmountError: amount out of range
            CurrencyNotFoundError: currency is not an active ISO currency
            BalanceLimitError: resulting balance would reach one trillion
        """
        amount = _check_amount(amount)
        if amount <= ZERO or amount >= self.max_balance:
            raise InvalidAmountError(
                f"Deposit amount must be greater than zero and less than {format_amount(self.max_balance)}"
            )
        currency = normalize_currency(currency)

        async def operation(db: AsyncSession):
            if not await IsoDataRepository(db).is_active_currency(currency):
                raise CurrencyNotFoundError(currency)
            return await self.apply_credit(
                db, email, currency, subaccount, amount,
                f"Deposited {currency} {format_amount(amount)}",
            )

        return await self._run(email, currency, operation)

    # ==================== QUERIES ====================

    async def _view(self, db: AsyncSession, balance: AccountBalance) -> BalanceView:
        minor_units = await IsoDataRepository(db).minor_units(balance.currency)
        return BalanceView(
            email=balance.email,
            currency=balance.currency,
            trading_amount=quantize_minor_units(balance.trading_amount, minor_units),
            non_trading_amount=quantize_minor_units(balance.non_trading_amount, minor_units),
            minor_units=minor_units,
        )

    async def get_balance(self, email: str, currency: str) -> BalanceView:
        """Current balance; a currency never used reads as zero."""
        currency = normalize_currency(currency)
        async with self.session_factory() as db:
            balance = await LedgerRepository(db).get_balance(email, currency)
            if balance is None:
                balance = AccountBalance(
                    email=email, currency=currency,
                    trading_amount=ZERO, non_trading_amount=ZERO,
                )
            return await self._view(db, balance)

    async def list_balances(self, email: str) -> list[BalanceView]:
        async with self.session_factory() as db:
            balances = await LedgerRepository(db).list_balances(email)
            return [await self._view(db, balance) for balance in balances]

    async def raw_balance(self, email: str, currency: str) -> tuple[Decimal, Decimal]:
        """Unrounded (trading, non-trading) amounts."""
        async with self.session_factory() as db:
            balance = await LedgerRepository(db).get_balance(email, currency)
            if balance is None:
                return ZERO, ZERO
            return to_decimal(balance.trading_amount), to_decimal(balance.non_trading_amount)

    async def history(self, email: str) -> tuple[list, list]:
        """Audit trail: (account transactions, bank account transactions), oldest first."""
        async with self.session_factory() as db:
            repo = LedgerRepository(db)
            return await repo.list_account_transactions(email), await repo.list_bank_transactions(email)
