"""
Market Data Providers
"""
from virtrade.config import settings
from virtrade.core.trading.quotes import MarketDataProvider, StaticQuoteProvider


def create_provider(name: str = None) -> MarketDataProvider:
    """Build the provider named by MARKET_DATA_PROVIDER ("yahoo" or "static")."""
    name = (name or settings.MARKET_DATA_PROVIDER).lower()
    if name == "static":
        return StaticQuoteProvider()
    if name == "yahoo":
        from virtrade.data_providers.adapters.yahoo import YahooQuoteProvider
        return YahooQuoteProvider(settings.STOCK_LIST_URL, timeout=settings.QUOTE_TIMEOUT_SECONDS)
    raise ValueError(f"Unknown market data provider: {name}")
