"""
Virtual Trading - Dependencies
Dependency injection for FastAPI endpoints
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from virtrade.core.accounts import BankAccountService, WatchListService
from virtrade.core.portfolio.service import PortfolioService
from virtrade.core.trading.engine import TradingEngine
from virtrade.core.trading.ledger import BalanceLedger
from virtrade.core.security import verify_token


bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_email(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> str:
    """
    Email of the caller, taken from the bearer token subject.

    Raises:
        HTTPException: token missing or invalid
    """
    email = verify_token(credentials.credentials) if credentials else None
    if not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return email


def get_trading_engine(request: Request) -> TradingEngine:
    return request.app.state.trading_engine


def get_ledger(request: Request) -> BalanceLedger:
    return request.app.state.ledger


def get_portfolio_service(request: Request) -> PortfolioService:
    return request.app.state.portfolio_service


def get_bank_account_service(request: Request) -> BankAccountService:
    return request.app.state.bank_account_service


def get_watch_list_service(request: Request) -> WatchListService:
    return request.app.state.watch_list_service
