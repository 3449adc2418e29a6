"""
Virtual Trading - Main Application Entry Point
"""
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from virtrade.config import settings
from virtrade.api.v1.router import api_router
from virtrade.core.accounts import BankAccountService, WatchListService
from virtrade.core.portfolio.service import PortfolioService
from virtrade.core.trading.engine import TradingEngine
from virtrade.core.trading.ledger import BalanceLedger
from virtrade.core.trading.quotes import MarketDataProvider, QuoteResolver
from virtrade.data_providers import create_provider
from virtrade.db.database import async_session_maker, engine, init_db
from virtrade.utils.exceptions import VirtualTradingException
from virtrade.utils.locks import KeyedLock
from virtrade.utils.logger import logger


def configure_services(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    provider: MarketDataProvider,
) -> None:
    """Wire the ledger services onto app.state; all of them share one lock registry."""
    locks = KeyedLock()
    resolver = QuoteResolver(provider, timeout=settings.QUOTE_TIMEOUT_SECONDS)
    ledger = BalanceLedger(session_factory, locks)
    portfolio_service = PortfolioService(session_factory, resolver, locks)

    app.state.market_data_provider = provider
    app.state.quote_resolver = resolver
    app.state.ledger = ledger
    app.state.portfolio_service = portfolio_service
    app.state.trading_engine = TradingEngine(
        session_factory, resolver, portfolio_service, ledger=ledger, locks=locks
    )
    app.state.bank_account_service = BankAccountService(session_factory)
    app.state.watch_list_service = WatchListService(session_factory, resolver)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events handler."""
    logger.info("Starting Virtual Trading...")

    await init_db()
    logger.info("Database initialized")

    if not hasattr(app.state, "trading_engine"):
        configure_services(app, async_session_maker, create_provider())
    logger.info(f"Market data provider: {settings.MARKET_DATA_PROVIDER}")

    yield

    logger.info("Shutting down Virtual Trading...")
    close = getattr(app.state.market_data_provider, "close", None)
    if close is not None:
        await close()
    await engine.dispose()


async def handle_domain_error(request: Request, exc: VirtualTradingException) -> JSONResponse:
    """Map domain exceptions to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "details": exc.details},
    )


def create_application(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    provider: Optional[MarketDataProvider] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        session_factory: Session factory to wire services with immediately
        provider: Market data provider to use with ``session_factory``
    """
    app = FastAPI(
        title=settings.APP_NAME,
        description="Virtual stock trading ledger with fees, positions and portfolios",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(VirtualTradingException, handle_domain_error)

    if session_factory is not None:
        configure_services(app, session_factory, provider or create_provider())

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for load balancers."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": "1.0.0"
        }

    return app


# Create the application instance
app = create_application()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "virtrade.main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        reload=settings.DEBUG,
    )
