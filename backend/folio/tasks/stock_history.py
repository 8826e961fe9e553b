"""
Nightly price history refresh.

Stocks with incomplete history get a full Yahoo Finance fetch, the
rest only refresh the last few days. Cached dashboards are dropped afterwards
since their returns depend on these prices.
"""
import asyncio
import logging

from folio.core.database import close_db
from folio.scheduler.celery_app import app
from folio.services.dashboard_cache import invalidate_all_dashboards
from folio.services.stock_data_service import StockDataService

logger = logging.getLogger(__name__)


async def _refresh_history_async() -> dict:
    try:
        return await StockDataService().refresh_all_history()
    finally:
        await close_db()


@app.task(name="folio.tasks.stock_history.refresh_stock_history")
def refresh_stock_history() -> dict:
    """Scheduled task to refresh daily prices for every stock."""
    stats = asyncio.run(_refresh_history_async())

    if stats["failed"]:
        logger.warning("History refresh finished with %s failures", stats["failed"])
        for error in stats["errors"][:10]:
            logger.warning("  %s", error)

    dropped = invalidate_all_dashboards()
    logger.info("Dropped %s cached dashboards after price refresh", dropped)

    return {
        "status": "completed",
        "total": stats["total"],
        "full_fetched": stats["full_fetched"],
        "refreshed": stats["refreshed"],
        "records": stats["records"],
        "failed": stats["failed"],
    }
