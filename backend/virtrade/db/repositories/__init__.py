"""
Virtual Trading - Repositories
"""
from virtrade.db.repositories.account import AccountRepository
from virtrade.db.repositories.bank_account import BankAccountRepository
from virtrade.db.repositories.iso_data import IsoDataRepository
from virtrade.db.repositories.ledger import LedgerRepository
from virtrade.db.repositories.portfolio import PortfolioRepository
from virtrade.db.repositories.trade import TradeRepository
from virtrade.db.repositories.watchlist import WatchListRepository

__all__ = [
    "AccountRepository",
    "BankAccountRepository",
    "IsoDataRepository",
    "LedgerRepository",
    "PortfolioRepository",
    "TradeRepository",
    "WatchListRepository",
]
