import asyncio
import logging

from folio.core.database import close_db
from folio.scheduler.celery_app import app
from folio.services.dashboard_cache import invalidate_all_dashboards
from folio.services.nse_daily_data_service import NseDailyDataService

logger = logging.getLogger(__name__)


async def _fetch_daily_data_async() -> dict:
    service = NseDailyDataService()
    try:
        return await service.process_all_stocks()
    finally:
        await service.aclose()
        await close_db()


@app.task(name="folio.tasks.nse_daily_data.fetch_nse_daily_data")
def fetch_nse_daily_data() -> dict:
    """Scheduled task to copy end-of-day NSE quote data for every NSE stock."""
    result = asyncio.run(_fetch_daily_data_async())

    logger.info(
        "NSE daily data: %s/%s stocks processed, %s failed",
        result["processed"],
        result["total"],
        result["failed"],
    )
    if result["processed"]:
        invalidate_all_dashboards()

    return {
        "status": "completed",
        "total": result["total"],
        "processed": result["processed"],
        "failed": result["failed"],
    }
