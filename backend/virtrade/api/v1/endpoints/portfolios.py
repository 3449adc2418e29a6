"""
Virtual Trading - Portfolio Endpoints
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from virtrade.core.portfolio.service import PortfolioService
from virtrade.dependencies import get_current_email, get_portfolio_service

router = APIRouter()


# ==================== SCHEMAS ====================

class PortfolioCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    currency: str = Field(..., min_length=3, max_length=3)
    transaction_ids: list[int] = Field(default_factory=list)


class LinkRequest(BaseModel):
    transaction_ids: list[int] = Field(..., min_length=1)


class LinkResponse(BaseModel):
    portfolio_id: int
    count: int


class PortfolioResponse(BaseModel):
    id: int
    name: str
    currency: str
    invested_amount: Decimal
    current_amount: Decimal
    profit_loss: Decimal
    valued_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TransactionResponse(BaseModel):
    id: int
    symbol: str
    symbol_name: Optional[str] = None
    deed: str
    quantity: int
    currency: str
    price: Decimal
    cost: Decimal
    transaction_date: datetime


class HoldingResponse(BaseModel):
    symbol: str
    quantity: int
    current_price: Decimal
    current_amount: Decimal


class PortfolioDetailsResponse(PortfolioResponse):
    transactions: list[TransactionResponse]
    positions: list[HoldingResponse]


class ResetResponse(BaseModel):
    currencies: list[str]
    transactions_deleted: int
    portfolios_deleted: int
    watch_list_deleted: int
    balances_zeroed: list[str]


# ==================== ENDPOINTS ====================

@router.get("", response_model=list[PortfolioResponse])
async def list_portfolios(
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    email: str = Depends(get_current_email),
    service: PortfolioService = Depends(get_portfolio_service),
):
    return await service.list_portfolios(email, currency)


@router.post("", response_model=PortfolioResponse, status_code=status.HTTP_201_CREATED)
async def create_portfolio(
    request: PortfolioCreateRequest,
    email: str = Depends(get_current_email),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Create a portfolio, optionally linking transactions right away."""
    if request.transaction_ids:
        return await service.create_and_link(email, request.name, request.currency, request.transaction_ids)
    return await service.create(email, request.name, request.currency)


@router.post("/reset", response_model=ResetResponse)
async def reset(
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    email: str = Depends(get_current_email),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Clear trading history and balances for one currency or all."""
    result = await service.reset(email, currency)
    return ResetResponse(
        currencies=result.currencies,
        transactions_deleted=result.transactions_deleted,
        portfolios_deleted=result.portfolios_deleted,
        watch_list_deleted=result.watch_list_deleted,
        balances_zeroed=result.balances_zeroed,
    )


@router.get("/{portfolio_id}", response_model=PortfolioDetailsResponse)
async def get_portfolio(
    portfolio_id: int,
    email: str = Depends(get_current_email),
    service: PortfolioService = Depends(get_portfolio_service),
):
    details = await service.get_details(email, portfolio_id)
    portfolio = details.portfolio
    return PortfolioDetailsResponse(
        id=portfolio.id,
        name=portfolio.name,
        currency=portfolio.currency,
        invested_amount=portfolio.invested_amount,
        current_amount=portfolio.current_amount,
        profit_loss=portfolio.profit_loss,
        valued_at=portfolio.valued_at,
        transactions=[
            TransactionResponse(
                id=txn.id,
                symbol=txn.symbol,
                symbol_name=txn.symbol_name,
                deed=txn.deed.value,
                quantity=txn.quantity,
                currency=txn.currency,
                price=txn.price,
                cost=txn.cost,
                transaction_date=txn.transaction_date,
            )
            for txn in details.transactions
        ],
        positions=[
            HoldingResponse(
                symbol=p.symbol,
                quantity=p.quantity,
                current_price=p.current_price,
                current_amount=p.current_amount,
            )
            for p in details.positions
        ],
    )


@router.post("/{portfolio_id}/link", response_model=LinkResponse)
async def link_transactions(
    portfolio_id: int,
    request: LinkRequest,
    email: str = Depends(get_current_email),
    service: PortfolioService = Depends(get_portfolio_service),
):
    count = await service.link_transactions(email, portfolio_id, request.transaction_ids)
    return LinkResponse(portfolio_id=portfolio_id, count=count)


@router.post("/{portfolio_id}/unlink", response_model=LinkResponse)
async def unlink_transactions(
    portfolio_id: int,
    request: LinkRequest,
    email: str = Depends(get_current_email),
    service: PortfolioService = Depends(get_portfolio_service),
):
    count = await service.unlink_transactions(email, portfolio_id, request.transaction_ids)
    return LinkResponse(portfolio_id=portfolio_id, count=count)


@router.post("/{portfolio_id}/revalue", response_model=PortfolioResponse)
async def revalue(
    portfolio_id: int,
    email: str = Depends(get_current_email),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Revalue at live quotes."""
    return await service.revalue(portfolio_id, email=email)
