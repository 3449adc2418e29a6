"""
Virtual Trading - Trading Endpoints

Market buys and sells, and the open positions they produce.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from virtrade.core.trading.engine import BuyRequest, SellRequest, TradeResult, TradingEngine
from virtrade.dependencies import get_current_email, get_trading_engine

router = APIRouter()


# ==================== SCHEMAS ====================

class BuyOrderRequest(BaseModel):
    """Request to buy at market."""
    symbol: str = Field(..., min_length=1, max_length=32, description="Trading symbol")
    quantity: int = Field(..., gt=0, description="Number of shares")


class SellOrderRequest(BaseModel):
    """Request to sell at market."""
    symbol: str = Field(..., min_length=1, max_length=32, description="Trading symbol")
    quantity: int = Field(..., gt=0, description="Number of shares")
    auto_transfer_to_bank: Optional[bool] = Field(
        None, description="Send net proceeds to the bank; defaults to the trader profile setting"
    )
    bank_account_id: Optional[int] = Field(None, description="Target bank account for auto transfer")


class TradeResponse(BaseModel):
    deed: str
    symbol: str
    name: str
    currency: str
    quantity: int
    price: Decimal
    gross_amount: Decimal
    fee: Decimal
    total: Decimal
    remaining_quantity: int
    transaction_id: int
    message: str
    transferred_to_bank: bool
    bank_account_id: Optional[int] = None

    @classmethod
    def from_result(cls, result: TradeResult) -> "TradeResponse":
        return cls(
            deed=result.deed.value,
            symbol=result.symbol,
            name=result.name,
            currency=result.currency,
            quantity=result.quantity,
            price=result.price,
            gross_amount=result.gross_amount,
            fee=result.fee,
            total=result.total,
            remaining_quantity=result.remaining_quantity,
            transaction_id=result.transaction_id,
            message=result.message,
            transferred_to_bank=result.transferred_to_bank,
            bank_account_id=result.bank_account_id,
        )


class TransactionResponse(BaseModel):
    id: int
    symbol: str
    symbol_name: Optional[str] = None
    deed: str
    quantity: int
    currency: str
    price: Decimal
    cost: Decimal
    portfolio_id: Optional[int] = None
    transaction_date: datetime


class PositionResponse(BaseModel):
    symbol: str
    symbol_name: Optional[str] = None
    currency: str
    quantity: int
    current_price: Decimal
    current_amount: Decimal


# ==================== ENDPOINTS ====================

@router.post("/buy", response_model=TradeResponse)
async def buy(
    order: BuyOrderRequest,
    email: str = Depends(get_current_email),
    engine: TradingEngine = Depends(get_trading_engine),
):
    """Buy shares at the latest price."""
    result = await engine.buy(BuyRequest(email=email, symbol=order.symbol, quantity=order.quantity))
    return TradeResponse.from_result(result)


@router.post("/sell", response_model=TradeResponse)
async def sell(
    order: SellOrderRequest,
    email: str = Depends(get_current_email),
    engine: TradingEngine = Depends(get_trading_engine),
):
    """Sell shares at the latest price."""
    result = await engine.sell(
        SellRequest(
            email=email,
            symbol=order.symbol,
            quantity=order.quantity,
            auto_transfer_to_bank=order.auto_transfer_to_bank,
            bank_account_id=order.bank_account_id,
        )
    )
    return TradeResponse.from_result(result)


@router.get("/positions", response_model=list[PositionResponse])
async def list_positions(
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    live: bool = Query(False, description="Value at live quotes instead of the last trade price"),
    email: str = Depends(get_current_email),
    engine: TradingEngine = Depends(get_trading_engine),
):
    """Open positions of the caller."""
    positions = await engine.positions(email, currency, mark=live)
    return [
        PositionResponse(
            symbol=p.symbol,
            symbol_name=p.symbol_name,
            currency=p.currency,
            quantity=p.quantity,
            current_price=p.current_price,
            current_amount=p.current_amount,
        )
        for p in sorted(positions.values(), key=lambda p: (p.currency, p.symbol))
    ]


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    symbol: Optional[str] = Query(None, max_length=32),
    email: str = Depends(get_current_email),
    engine: TradingEngine = Depends(get_trading_engine),
):
    """Trade history of the caller."""
    return [
        TransactionResponse(
            id=txn.id,
            symbol=txn.symbol,
            symbol_name=txn.symbol_name,
            deed=txn.deed.value,
            quantity=txn.quantity,
            currency=txn.currency,
            price=txn.price,
            cost=txn.cost,
            portfolio_id=txn.portfolio_id,
            transaction_date=txn.transaction_date,
        )
        for txn in await engine.transactions(email, currency, symbol)
    ]
