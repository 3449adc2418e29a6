"""
Integration Tests - Bank Account and Watch List Services
"""
import pytest

from virtrade.core.accounts import BankAccountService, WatchListService
from virtrade.db.repositories.ledger import LedgerRepository
from virtrade.utils.exceptions import (
    AccountNotFoundError,
    CurrencyNotFoundError,
    InvalidBankAccountError,
    QuoteUnavailableError,
)

from conftest import TRADER


class TestBankAccountService:
    @pytest.mark.asyncio
    async def test_add_supersedes_in_use_account(self, session_maker):
        service = BankAccountService(session_maker)
        first = await service.add(TRADER, "usd", "First Bank", "111")
        second = await service.add(TRADER, "USD", "Second Bank", "222")
        hkd = await service.add(TRADER, "HKD", "HK Bank", "333")

        in_use = {account.id for account in await service.list(TRADER, in_use_only=True)}
        assert in_use == {second.id, hkd.id}
        assert first.id not in in_use
        assert len(await service.list(TRADER)) == 3

        async with session_maker() as db:
            bank_txns = await LedgerRepository(db).list_bank_transactions(TRADER)
        assert bank_txns[0].description == "Added bank First Bank with account number 111 for currency USD"

    @pytest.mark.asyncio
    async def test_blank_fields(self, session_maker):
        with pytest.raises(InvalidBankAccountError):
            await BankAccountService(session_maker).add(TRADER, "USD", "", "111")

    @pytest.mark.asyncio
    async def test_inactive_currency(self, session_maker):
        with pytest.raises(CurrencyNotFoundError):
            await BankAccountService(session_maker).add(TRADER, "VEF", "Bank", "111")

    @pytest.mark.asyncio
    async def test_unknown_account(self, session_maker):
        with pytest.raises(AccountNotFoundError):
            await BankAccountService(session_maker).add("ghost@example.com", "USD", "Bank", "111")


class TestWatchListService:
    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, session_maker, quote_resolver):
        service = WatchListService(session_maker, quote_resolver)
        first = await service.add(TRADER, "abc")
        again = await service.add(TRADER, "ABC")

        assert first.id == again.id
        assert first.symbol_name == "ABC Corp"
        assert first.currency == "USD"
        assert [w.symbol for w in await service.list(TRADER)] == ["ABC"]

    @pytest.mark.asyncio
    async def test_remove(self, session_maker, quote_resolver):
        service = WatchListService(session_maker, quote_resolver)
        await service.add(TRADER, "XYZ")
        assert await service.remove(TRADER, "xyz")
        assert not await service.remove(TRADER, "xyz")
        assert await service.list(TRADER) == []

    @pytest.mark.asyncio
    async def test_unknown_symbol(self, session_maker, quote_resolver):
        with pytest.raises(QuoteUnavailableError):
            await WatchListService(session_maker, quote_resolver).add(TRADER, "NOPE")
