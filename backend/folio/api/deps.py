"""
Service dependencies for the routers.

Each service is built per request on the process-wide session factory and
Redis client. Services holding an NSE client close it once the
response is sent. Tests swap them out through ``app.dependency_overrides``.
"""

from typing import AsyncIterator

from folio.services.auth_service import AuthService
from folio.services.corporate_data_service import CorporateDataService
from folio.services.dashboard_service import DashboardService
from folio.services.nse_daily_data_service import NseDailyDataService
from folio.services.portfolio_import_service import PortfolioImportService
from folio.services.stock_data_service import StockDataService


def get_auth_service() -> AuthService:
    return AuthService()


async def get_corporate_data_service() -> AsyncIterator[CorporateDataService]:
    service = CorporateDataService()
    try:
        yield service
    finally:
        await service.aclose()


def get_stock_data_service() -> StockDataService:
    return StockDataService()


def get_dashboard_service() -> DashboardService:
    return DashboardService()


async def get_nse_daily_data_service() -> AsyncIterator[NseDailyDataService]:
    service = NseDailyDataService()
    try:
        yield service
    finally:
        await service.aclose()


def get_portfolio_import_service() -> PortfolioImportService:
    return PortfolioImportService()
