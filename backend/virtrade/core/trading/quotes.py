"""
Quote Resolver

Resolves trading symbols to their current quote through a pluggable
market data provider. A quote is either available for every requested
symbol or the call fails with QuoteUnavailableError; there are no
partial results and no internal retries.
"""
import asyncio
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Protocol
from urllib.parse import quote as url_quote
from loguru import logger

from virtrade.utils.currency import normalize_currency
from virtrade.utils.exceptions import QuoteUnavailableError


class Classification(str, Enum):
    """What a symbol represents."""
    EQUITY = "EQUITY"
    INDEX = "INDEX"

    @classmethod
    def from_type(cls, value: Optional[str]) -> "Classification":
        """Map a listing type ("index", "equity", "stock", ...) to a classification."""
        if value and value.strip().upper() == cls.INDEX.value:
            return cls.INDEX
        return cls.EQUITY


@dataclass(frozen=True)
class QuoteInfo:
    """Latest quote for one symbol."""
    symbol: str
    name: str
    currency: str
    price: Decimal
    classification: Classification = Classification.EQUITY

    @property
    def encoded_symbol(self) -> str:
        """Symbol percent-encoded for use in URLs."""
        return url_quote(self.symbol, safe="")

    @property
    def is_index(self) -> bool:
        return self.classification == Classification.INDEX


class MarketDataProvider(Protocol):
    """Anything that can quote a set of symbols."""

    async def quote(self, symbols: set[str]) -> dict[str, QuoteInfo]:
        ...


class QuoteResolver:
    """
    Front door to the market data provider.

    Normalizes symbols, bounds the provider call with a timeout and turns
    every provider failure or omission into QuoteUnavailableError.
    """

    def __init__(self, provider: MarketDataProvider, timeout: float = 10.0):
        self.provider = provider
        self.timeout = timeout

    async def resolve(self, symbols: Iterable[str]) -> dict[str, QuoteInfo]:
        """
        Quote every symbol.

        Args:
            symbols: Trading symbols, any case

        Returns:
            Mapping of upper-cased symbol to QuoteInfo

        Raises:
            QuoteUnavailableError: provider failed, timed out or omitted a symbol
        """
        wanted = {s.strip().upper() for s in symbols if s and s.strip()}
        if not wanted:
            return {}

        try:
            quotes = await asyncio.wait_for(self.provider.quote(wanted), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Quote request timed out after {self.timeout}s: {sorted(wanted)}")
            raise QuoteUnavailableError("Quote request timed out", symbols=list(wanted))
        except QuoteUnavailableError:
            raise
        except Exception as e:
            logger.warning(f"Quote provider failed for {sorted(wanted)}: {e}")
            raise QuoteUnavailableError(f"Quote provider failed: {e}", symbols=list(wanted)) from e

        resolved = {symbol.upper(): info for symbol, info in quotes.items()}
        missing = wanted - resolved.keys()
        if missing:
            logger.warning(f"No quote for {sorted(missing)}")
            raise QuoteUnavailableError(
                f"No quote for {', '.join(sorted(missing))}",
                symbols=list(missing),
            )
        return {symbol: resolved[symbol] for symbol in wanted}

    async def resolve_one(self, symbol: str) -> QuoteInfo:
        quotes = await self.resolve([symbol])
        return quotes[symbol.strip().upper()]


class StaticQuoteProvider:
    """In-memory provider with fixed quotes, for local runs and tests."""

    def __init__(self, quotes: Optional[Iterable[QuoteInfo]] = None):
        self._quotes: dict[str, QuoteInfo] = {}
        for info in quotes or []:
            self.set_quote(info)

    def set_quote(self, info: QuoteInfo) -> None:
        self._quotes[info.symbol.upper()] = info

    def set_price(self, symbol: str, price: Decimal) -> None:
        """Move the price of an already known symbol."""
        current = self._quotes[symbol.upper()]
        self._quotes[symbol.upper()] = QuoteInfo(
            symbol=current.symbol,
            name=current.name,
            currency=current.currency,
            price=price,
            classification=current.classification,
        )

    async def quote(self, symbols: set[str]) -> dict[str, QuoteInfo]:
        return {s: self._quotes[s] for s in symbols if s in self._quotes}


def make_quote(symbol: str, price, currency: str = "USD", name: Optional[str] = None,
               classification: Classification = Classification.EQUITY) -> QuoteInfo:
    """Convenience constructor normalizing symbol, currency and price."""
    return QuoteInfo(
        symbol=symbol.strip().upper(),
        name=name or symbol.strip().upper(),
        currency=normalize_currency(currency),
        price=Decimal(str(price)),
        classification=classification,
    )
