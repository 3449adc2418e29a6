"""
Virtual Trading - Custom Exceptions
Ledger and trading exceptions with HTTP status mapping
"""
from typing import Optional, Any, Dict
from fastapi import status


class VirtualTradingException(Exception):
    """Base exception for Virtual Trading."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str = "An error occurred",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


# =========================
# Account Exceptions
# =========================

class AccountError(VirtualTradingException):
    """Account related errors."""
    pass


class AccountNotFoundError(AccountError):
    """Account not found."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, email: str = ""):
        message = f"Account '{email}' not found" if email else "Account not found"
        super().__init__(message=message, code="ACCOUNT_NOT_FOUND")


class AccountInactiveError(AccountError):
    """Account is deactivated."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Account is inactive"):
        super().__init__(message=message, code="ACCOUNT_INACTIVE")


class OwnershipMismatchError(AccountError):
    """Resource does not belong to the caller."""

    status_code = status.HTTP_406_NOT_ACCEPTABLE

    def __init__(self, message: str = "Resource does not belong to caller"):
        super().__init__(message=message, code="OWNERSHIP_MISMATCH")


class ResetNotAllowedError(AccountError):
    """Trader profile does not allow resets."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Reset is not allowed for this trader"):
        super().__init__(message=message, code="RESET_NOT_ALLOWED")


# =========================
# Ledger Exceptions
# =========================

class LedgerError(VirtualTradingException):
    """Balance ledger related errors."""
    pass


class InsufficientFundsError(LedgerError):
    """Insufficient funds for operation."""

    status_code = status.HTTP_406_NOT_ACCEPTABLE

    def __init__(self, message: str = "Insufficient funds"):
        super().__init__(message=message, code="INSUFFICIENT_FUNDS")


class InvalidAmountError(LedgerError):
    """Amount is negative, zero where not allowed, or out of range."""

    def __init__(self, message: str = "Invalid amount"):
        super().__init__(message=message, code="INVALID_AMOUNT")


class BalanceLimitError(LedgerError):
    """Balance would exceed the maximum account balance."""

    status_code = status.HTTP_406_NOT_ACCEPTABLE

    def __init__(self, message: str = "Balance limit exceeded"):
        super().__init__(message=message, code="BALANCE_LIMIT_EXCEEDED")


class InvalidBankAccountError(LedgerError):
    """Bank account missing, not in use, or not owned by the caller."""

    status_code = status.HTTP_406_NOT_ACCEPTABLE

    def __init__(self, message: str = "Invalid bank account"):
        super().__init__(message=message, code="INVALID_BANK_ACCOUNT")


class CurrencyNotFoundError(LedgerError):
    """Currency is unknown or not active."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, currency: str = ""):
        message = f"Currency '{currency}' not found" if currency else "Currency not found"
        super().__init__(message=message, code="CURRENCY_NOT_FOUND")


class CurrencyMismatchError(LedgerError):
    """Currencies of the records involved do not match."""

    status_code = status.HTTP_406_NOT_ACCEPTABLE

    def __init__(self, message: str = "Currency mismatch"):
        super().__init__(message=message, code="CURRENCY_MISMATCH")


# =========================
# Portfolio Exceptions
# =========================

class PortfolioError(VirtualTradingException):
    """Portfolio related errors."""
    pass


class PortfolioNotFoundError(PortfolioError):
    """Portfolio not found."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Portfolio not found"):
        super().__init__(message=message, code="PORTFOLIO_NOT_FOUND")


# =========================
# Trading Exceptions
# =========================

class TradingError(VirtualTradingException):
    """Trading related errors."""
    pass


class InvalidOrderError(TradingError):
    """Invalid order parameters."""

    def __init__(self, message: str = "Invalid order"):
        super().__init__(message=message, code="INVALID_ORDER")


class InsufficientPositionError(TradingError):
    """Insufficient outstanding quantity to sell."""

    status_code = status.HTTP_406_NOT_ACCEPTABLE

    def __init__(self, message: str = "Insufficient position"):
        super().__init__(message=message, code="INSUFFICIENT_POSITION")


class IndexNotTradableError(TradingError):
    """Symbol is an index rather than an equity."""

    status_code = status.HTTP_406_NOT_ACCEPTABLE

    def __init__(self, symbol: str = ""):
        super().__init__(
            message=f"Trading symbol {symbol} is an index rather than an equity",
            code="INDEX_NOT_TRADABLE"
        )


class TradeFailedError(TradingError):
    """Unexpected failure after validation; the trade was rolled back."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Trade failed"):
        super().__init__(message=message, code="TRADE_FAILED")


# =========================
# Market Data Exceptions
# =========================

class MarketDataError(VirtualTradingException):
    """Market data related errors."""
    pass


class QuoteUnavailableError(MarketDataError):
    """Quote could not be obtained; callers may retry."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str = "Quote unavailable", symbols: Optional[list] = None):
        super().__init__(
            message=message,
            code="QUOTE_UNAVAILABLE",
            details={"symbols": sorted(symbols)} if symbols else None
        )
