"""
Yahoo Quote Provider

Quotes the tradable-symbol universe with Yahoo Finance prices.

The universe (symbol, description, type, currency) is a JSON document of
the form ``{"stocks": [{...}, ...]}`` served at STOCK_LIST_URL and read
with aiohttp. Last prices come from yfinance, run in a thread executor
because the library is synchronous.
"""
import asyncio
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from typing import Optional
import aiohttp
from loguru import logger

from virtrade.core.trading.quotes import Classification, QuoteInfo
from virtrade.data_providers.adapters.base import (
    Listing,
    ProviderError,
    InvalidResponseError,
    DataNotAvailableError,
)
from virtrade.utils.currency import normalize_currency

PROVIDER = "yahoo"


def parse_stock_list(payload) -> dict[str, Listing]:
    """Parse the stock list document into listings keyed by upper-cased symbol."""
    if not isinstance(payload, dict) or not isinstance(payload.get("stocks"), list):
        raise InvalidResponseError(PROVIDER, "Stock list must be an object with a 'stocks' array")

    listings = {}
    for entry in payload["stocks"]:
        if not isinstance(entry, dict) or not entry.get("symbol"):
            raise InvalidResponseError(PROVIDER, f"Malformed stock entry: {entry!r}")
        symbol = str(entry["symbol"]).strip().upper()
        listings[symbol] = Listing(
            symbol=symbol,
            description=entry.get("description") or symbol,
            type=entry.get("type") or "equity",
            currency=normalize_currency(entry.get("currency")),
            location=entry.get("location"),
        )
    return listings


class YahooQuoteProvider:
    """
    Market data provider backed by a stock list and yfinance.

    Usage:
        provider = YahooQuoteProvider(settings.STOCK_LIST_URL)
        quotes = await provider.quote({"AAPL", "^HSI"})
    """

    def __init__(self, stock_list_url: str, timeout: float = 10.0, max_workers: int = 5):
        self.stock_list_url = stock_list_url
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers)
        self._yf = None

    async def close(self) -> None:
        """Close executor."""
        self._executor.shutdown(wait=False)
        logger.info("Yahoo quote provider closed")

    async def _run_sync(self, func):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func)

    async def fetch_listings(self) -> dict[str, Listing]:
        """Download and parse the stock list."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.stock_list_url) as response:
                    if response.status != 200:
                        raise ProviderError(PROVIDER, f"Stock list request failed: HTTP {response.status}")
                    payload = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise ProviderError(PROVIDER, f"Stock list request failed: {e}") from e
        except ValueError as e:
            raise InvalidResponseError(PROVIDER, f"Stock list is not JSON: {e}") from e
        return parse_stock_list(payload)

    async def fetch_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        """Last traded prices from yfinance; symbols without a price are omitted."""
        if self._yf is None:
            import yfinance as yf
            self._yf = yf

        def fetch():
            tickers = self._yf.Tickers(" ".join(symbols))
            prices = {}
            for symbol in symbols:
                ticker = tickers.tickers.get(symbol)
                if ticker is None:
                    continue
                info = ticker.fast_info
                last_price = getattr(info, "last_price", None)
                if last_price:
                    prices[symbol] = Decimal(str(last_price))
            return prices

        return await self._run_sync(fetch)

    async def quote(self, symbols: set[str]) -> dict[str, QuoteInfo]:
        listings = await self.fetch_listings()
        known = sorted(s for s in symbols if s in listings)
        unknown = set(symbols) - set(known)
        if unknown:
            logger.warning(f"Symbols not in stock list: {sorted(unknown)}")
        if not known:
            return {}

        prices = await self.fetch_prices(known)
        quotes = {}
        for symbol in known:
            price: Optional[Decimal] = prices.get(symbol)
            if price is None:
                logger.warning(str(DataNotAvailableError(PROVIDER, symbol, "quote")))
                continue
            listing = listings[symbol]
            quotes[symbol] = QuoteInfo(
                symbol=symbol,
                name=listing.description,
                currency=listing.currency,
                price=price,
                classification=Classification.from_type(listing.type),
            )
        return quotes
