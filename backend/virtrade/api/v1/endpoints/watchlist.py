"""
Virtual Trading - Watch List Endpoints
"""
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from virtrade.core.accounts import WatchListService
from virtrade.dependencies import get_current_email, get_watch_list_service

router = APIRouter()


class AddSymbolRequest(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=32, description="Trading symbol")


class WatchListResponse(BaseModel):
    symbol: str
    symbol_name: Optional[str] = None
    currency: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


@router.get("", response_model=list[WatchListResponse])
async def list_watch_list(
    email: str = Depends(get_current_email),
    service: WatchListService = Depends(get_watch_list_service),
):
    return await service.list(email)


@router.post("", response_model=WatchListResponse, status_code=status.HTTP_201_CREATED)
async def add_symbol(
    request: AddSymbolRequest,
    email: str = Depends(get_current_email),
    service: WatchListService = Depends(get_watch_list_service),
):
    return await service.add(email, request.symbol)


@router.delete("/{symbol}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_symbol(
    symbol: str,
    email: str = Depends(get_current_email),
    service: WatchListService = Depends(get_watch_list_service),
):
    if not await service.remove(email, symbol):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{symbol.upper()} is not watched")
