import asyncio
import logging

from folio.core.database import close_db
from folio.scheduler.celery_app import app
from folio.services.stock_data_service import StockDataService

logger = logging.getLogger(__name__)


async def _cleanup_async() -> dict:
    try:
        return await StockDataService().cleanup_old_stock_data()
    finally:
        await close_db()


@app.task(name="folio.tasks.cleanup.cleanup_old_stock_data")
def cleanup_old_stock_data() -> dict:
    """Scheduled task to delete price rows older than the retention window."""
    result = asyncio.run(_cleanup_async())
    logger.info("Deleted %s stock data rows before %s", result["deletedCount"], result["cutoffDate"])
    return {
        "status": "completed",
        "deleted": result["deletedCount"],
        "cutoff_date": result["cutoffDate"],
    }
