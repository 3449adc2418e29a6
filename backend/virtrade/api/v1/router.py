"""
Virtual Trading - API v1 Router
"""
from fastapi import APIRouter

from virtrade.api.v1.endpoints import balances, portfolios, trading, watchlist

api_router = APIRouter()


@api_router.get("/", tags=["API Info"])
async def api_root():
    """API v1 root - returns version info."""
    return {
        "api": "Virtual Trading",
        "version": "v1",
        "status": "operational"
    }


api_router.include_router(trading.router, prefix="/trading", tags=["Trading"])
api_router.include_router(balances.router, prefix="/balances", tags=["Balances"])
api_router.include_router(portfolios.router, prefix="/portfolios", tags=["Portfolios"])
api_router.include_router(watchlist.router, prefix="/watchlist", tags=["Watch List"])
