"""
Virtual Trading - Test Configuration
Shared fixtures and test configuration.
"""
import os
import sys
from decimal import Decimal

import pytest
import pytest_asyncio

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["DEBUG"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["MARKET_DATA_PROVIDER"] = "static"
os.environ["LOG_TO_FILE"] = "false"

TRADER = "trader@example.com"
OTHER = "other@example.com"
INACTIVE = "inactive@example.com"


# =========================
# Market Data Fixtures
# =========================

@pytest.fixture
def quote_provider():
    """Static provider seeded with a few USD and HKD listings."""
    from virtrade.core.trading.quotes import Classification, StaticQuoteProvider, make_quote

    return StaticQuoteProvider([
        make_quote("ABC", "150.00", "USD", name="ABC Corp"),
        make_quote("XYZ", "20.00", "USD", name="XYZ Holdings"),
        make_quote("0700.HK", "300.00", "HKD", name="Tencent"),
        make_quote("^HSI", "17000.00", "HKD", name="Hang Seng Index",
                   classification=Classification.INDEX),
    ])


@pytest.fixture
def quote_resolver(quote_provider):
    from virtrade.core.trading.quotes import QuoteResolver
    return QuoteResolver(quote_provider, timeout=1.0)


# =========================
# Database Fixtures
# =========================

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database per test."""
    from virtrade.db.database import create_engine_for, init_db

    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'virtrade.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(db_engine):
    """Session factory with reference data and three accounts."""
    from virtrade.db.database import create_session_maker
    from virtrade.db.models import Account, IsoData, RiskTolerance, Trader

    maker = create_session_maker(db_engine)
    async with maker() as db:
        async with db.begin():
            db.add_all([
                IsoData(country_alpha2_code="US", country_name="United States",
                        currency_alpha_code="USD", currency_minor_units=2, active=True),
                IsoData(country_alpha2_code="HK", country_name="Hong Kong",
                        currency_alpha_code="HKD", currency_minor_units=2, active=True),
                IsoData(country_alpha2_code="JP", country_name="Japan",
                        currency_alpha_code="JPY", currency_minor_units=0, active=True),
                IsoData(country_alpha2_code="VE", country_name="Venezuela",
                        currency_alpha_code="VEF", currency_minor_units=2, active=False),
                Account(email=TRADER),
                Account(email=OTHER),
                Account(email=INACTIVE, is_active=False),
            ])
            await db.flush()
            db.add_all([
                Trader(email=TRADER, full_name="Test Trader", risk_tolerance=RiskTolerance.MEDIUM,
                       auto_transfer_to_bank=False, allow_reset=True),
                Trader(email=OTHER, full_name="Other Trader", risk_tolerance=RiskTolerance.LOW,
                       auto_transfer_to_bank=False, allow_reset=False),
            ])
    return maker


# =========================
# Service Fixtures
# =========================

@pytest.fixture
def locks():
    from virtrade.utils.locks import KeyedLock
    return KeyedLock()


@pytest.fixture
def ledger(session_maker, locks):
    from virtrade.core.trading.ledger import BalanceLedger
    return BalanceLedger(session_maker, locks)


@pytest.fixture
def portfolio_service(session_maker, quote_resolver, locks):
    from virtrade.core.portfolio.service import PortfolioService
    return PortfolioService(session_maker, quote_resolver, locks)


@pytest.fixture
def trading_engine(session_maker, quote_resolver, portfolio_service, ledger, locks):
    from virtrade.core.trading.engine import TradingEngine
    return TradingEngine(session_maker, quote_resolver, portfolio_service, ledger=ledger, locks=locks)


@pytest_asyncio.fixture
async def funded_trader(ledger):
    """TRADER with USD 10,000 in the trading subaccount."""
    await ledger.deposit(TRADER, "USD", Decimal("10000"))
    return TRADER


@pytest_asyncio.fixture
async def bank_account(session_maker):
    """In-use USD bank account of TRADER."""
    from virtrade.core.accounts import BankAccountService
    return await BankAccountService(session_maker).add(TRADER, "USD", "First Bank", "123-456-789")
