"""
Account Services

Bank account registration and watch lists. Neither touches balances.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from loguru import logger

from virtrade.core.trading.quotes import QuoteResolver
from virtrade.db.models.balance import BankAccount
from virtrade.db.models.watchlist import WatchList
from virtrade.db.repositories.account import AccountRepository
from virtrade.db.repositories.bank_account import BankAccountRepository
from virtrade.db.repositories.iso_data import IsoDataRepository
from virtrade.db.repositories.ledger import LedgerRepository
from virtrade.db.repositories.watchlist import WatchListRepository
from virtrade.utils.currency import normalize_currency
from virtrade.utils.exceptions import (
    AccountNotFoundError,
    CurrencyNotFoundError,
    InvalidBankAccountError,
    InvalidOrderError,
)


class BankAccountService:
    """Registers bank accounts; at most one account per currency is in use."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add(self, email: str, currency: str, bank_name: str, bank_account_number: str) -> BankAccount:
        """
        Register a bank account, superseding the in-use one for the currency.

        Raises:
            InvalidBankAccountError: a field is blank
            AccountNotFoundError: unknown account
            CurrencyNotFoundError: currency is not an active ISO currency
        """
        currency = normalize_currency(currency)
        if not currency or not (bank_name or "").strip() or not (bank_account_number or "").strip():
            raise InvalidBankAccountError("Currency, bank name and bank account number are required")
        bank_name = bank_name.strip()
        bank_account_number = bank_account_number.strip()

        async with self.session_factory() as db:
            async with db.begin():
                if await AccountRepository(db).get_by_email(email) is None:
                    raise AccountNotFoundError(email)
                if not await IsoDataRepository(db).is_active_currency(currency):
                    raise CurrencyNotFoundError(currency)

                repo = BankAccountRepository(db)
                retired = await repo.retire_in_use(email, currency)
                bank_account = await repo.create(email, currency, bank_name, bank_account_number)
                await LedgerRepository(db).add_bank_transaction(
                    email, bank_account.id, currency, None,
                    f"Added bank {bank_name} with account number {bank_account_number} for currency {currency}",
                )

        logger.info(f"Added {currency} bank account {bank_account.id} for {email} (superseded {retired})")
        return bank_account

    async def list(self, email: str, in_use_only: bool = False) -> list[BankAccount]:
        async with self.session_factory() as db:
            return await BankAccountRepository(db).list_for_account(email, in_use_only)


class WatchListService:
    """Symbols an account follows, named and priced through the quote resolver."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], quote_resolver: QuoteResolver):
        self.session_factory = session_factory
        self.quote_resolver = quote_resolver

    async def add(self, email: str, symbol: str) -> WatchList:
        """Watch a symbol; adding one already watched returns the existing entry."""
        if not symbol or not symbol.strip():
            raise InvalidOrderError("Trading symbol is required")
        quote = await self.quote_resolver.resolve_one(symbol)

        async with self.session_factory() as db:
            async with db.begin():
                if await AccountRepository(db).get_by_email(email) is None:
                    raise AccountNotFoundError(email)
                repo = WatchListRepository(db)
                entry = await repo.get(email, quote.symbol)
                if entry is None:
                    entry = await repo.add(email, quote.symbol, quote.name, quote.currency)
                    logger.info(f"{email} is watching {quote.symbol}")
        return entry

    async def remove(self, email: str, symbol: str) -> bool:
        async with self.session_factory() as db:
            async with db.begin():
                removed = await WatchListRepository(db).remove(email, symbol)
        if removed:
            logger.info(f"{email} stopped watching {symbol.upper()}")
        return removed

    async def list(self, email: str) -> list[WatchList]:
        async with self.session_factory() as db:
            return await WatchListRepository(db).list_for_account(email)
