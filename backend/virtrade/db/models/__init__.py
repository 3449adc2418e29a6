"""
Virtual Trading - Database Models
"""
from virtrade.db.models.account import Account, Trader, RiskTolerance
from virtrade.db.models.balance import (
    AccountBalance,
    AccountTransaction,
    BankAccount,
    BankAccountTransaction,
)
from virtrade.db.models.iso_data import IsoData
from virtrade.db.models.portfolio import Portfolio
from virtrade.db.models.trade import TradingTransaction, TradingDeed
from virtrade.db.models.watchlist import WatchList

__all__ = [
    "Account",
    "Trader",
    "RiskTolerance",
    "AccountBalance",
    "AccountTransaction",
    "BankAccount",
    "BankAccountTransaction",
    "IsoData",
    "Portfolio",
    "TradingTransaction",
    "TradingDeed",
    "WatchList",
]
