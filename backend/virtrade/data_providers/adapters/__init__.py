"""
Market Data Adapters
"""
from virtrade.data_providers.adapters.base import (
    Listing,
    ProviderError,
    InvalidResponseError,
    DataNotAvailableError,
)
from virtrade.data_providers.adapters.yahoo import YahooQuoteProvider, parse_stock_list

__all__ = [
    "Listing",
    "ProviderError",
    "InvalidResponseError",
    "DataNotAvailableError",
    "YahooQuoteProvider",
    "parse_stock_list",
]
