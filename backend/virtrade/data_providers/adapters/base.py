"""
Base Provider Adapter

Errors and listing records shared by market data adapters.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Listing:
    """One entry of the tradable-symbol universe."""
    symbol: str
    description: str
    type: str
    currency: str
    location: Optional[str] = None


class ProviderError(Exception):
    """Base exception for provider errors."""
    def __init__(self, provider: str, message: str, recoverable: bool = True):
        self.provider = provider
        self.message = message
        self.recoverable = recoverable
        super().__init__(f"[{provider}] {message}")


class InvalidResponseError(ProviderError):
    """Provider answered with a document we cannot parse."""
    def __init__(self, provider: str, message: str = "Invalid response"):
        super().__init__(provider, message, recoverable=False)


class DataNotAvailableError(ProviderError):
    """Requested data not available."""
    def __init__(self, provider: str, symbol: str, data_type: str):
        super().__init__(provider, f"Data not available for {symbol} ({data_type})", recoverable=False)
