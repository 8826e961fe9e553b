"""
Shared pytest fixtures.

- session_factory: in-memory SQLite (aiosqlite) with every table created
- fake_async_redis / fake_redis: fakeredis clients
- dashboard_cache: DashboardCache on fakeredis
- fake providers for NSE quotes, NSE corporate data and Yahoo Finance bars
- client: httpx client driving the FastAPI app with services wired to the above
"""

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import folio.models  # noqa: F401
from folio.core.config import settings
from folio.core.database import Base
from folio.services.dashboard_cache import DashboardCache
from fakes import FakeCorporateDataProvider, FakeMarketDataProvider, FakeQuoteProvider


# ============================================================================
# Settings
# ============================================================================

@pytest.fixture(autouse=True)
def no_throttle(monkeypatch):
    """Refresh loops sleep between external calls; tests should not."""
    for name in (
        "NSE_REQUEST_DELAY_SEC",
        "CORPORATE_BATCH_DELAY_SEC",
        "DAILY_DATA_STOCK_DELAY_SEC",
        "DAILY_DATA_BATCH_PAUSE_SEC",
        "HISTORY_REFRESH_DELAY_SEC",
        "HISTORY_FULL_FETCH_DELAY_SEC",
    ):
        monkeypatch.setattr(settings, name, 0)


# ============================================================================
# Database / Redis
# ============================================================================

@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def fake_async_redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def fake_redis():
    client = fakeredis.FakeStrictRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def dashboard_cache(fake_async_redis):
    return DashboardCache(redis=fake_async_redis, ttl_sec=60)


# ============================================================================
# Fake providers
# ============================================================================

@pytest.fixture
def corporate_provider():
    return FakeCorporateDataProvider()


@pytest.fixture
def quote_provider():
    return FakeQuoteProvider()


@pytest.fixture
def market_data_provider():
    return FakeMarketDataProvider()


# ============================================================================
# API client
# ============================================================================

@pytest_asyncio.fixture
async def client(
    session_factory,
    dashboard_cache,
    corporate_provider,
    quote_provider,
    market_data_provider,
):
    from folio.api import deps
    from folio.api.main import app
    from folio.services.auth_service import AuthService
    from folio.services.corporate_data_service import CorporateDataService
    from folio.services.dashboard_service import DashboardService
    from folio.services.nse_daily_data_service import NseDailyDataService
    from folio.services.portfolio_import_service import PortfolioImportService
    from folio.services.stock_data_service import StockDataService

    app.dependency_overrides = {
        deps.get_auth_service: lambda: AuthService(email="owner@example.com", password="secret"),
        deps.get_corporate_data_service: lambda: CorporateDataService(
            session_factory, provider=corporate_provider
        ),
        deps.get_stock_data_service: lambda: StockDataService(
            session_factory, provider=market_data_provider
        ),
        deps.get_dashboard_service: lambda: DashboardService(session_factory, cache=dashboard_cache),
        deps.get_nse_daily_data_service: lambda: NseDailyDataService(
            session_factory, provider=quote_provider
        ),
        deps.get_portfolio_import_service: lambda: PortfolioImportService(
            session_factory, cache=dashboard_cache
        ),
    }

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides = {}
