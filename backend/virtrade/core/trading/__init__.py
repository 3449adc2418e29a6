"""
Virtual Trading - Trading Core
"""
from virtrade.core.trading.fees import calculate_fee, estimate_consideration
from virtrade.core.trading.quotes import (
    Classification,
    MarketDataProvider,
    QuoteInfo,
    QuoteResolver,
    StaticQuoteProvider,
)
from virtrade.core.trading.ledger import BalanceLedger, BalanceView, Subaccount, TransferResult
from virtrade.core.trading.position_tracker import Position, PositionChange, PositionTracker
from virtrade.core.trading.engine import (
    BuyRequest,
    SellRequest,
    TradeResult,
    TradingEngine,
)

__all__ = [
    "calculate_fee",
    "estimate_consideration",
    "Classification",
    "MarketDataProvider",
    "QuoteInfo",
    "QuoteResolver",
    "StaticQuoteProvider",
    "BalanceLedger",
    "BalanceView",
    "Subaccount",
    "TransferResult",
    "Position",
    "PositionChange",
    "PositionTracker",
    "BuyRequest",
    "SellRequest",
    "TradeResult",
    "TradingEngine",
]
