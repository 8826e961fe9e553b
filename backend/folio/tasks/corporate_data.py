import asyncio
import logging

from folio.core.database import close_db
from folio.scheduler.celery_app import app
from folio.services.corporate_data_service import CorporateDataService

logger = logging.getLogger(__name__)


async def _refresh_corporate_data_async() -> dict:
    service = CorporateDataService()
    try:
        return await service.refresh_all()
    finally:
        await service.aclose()
        await close_db()


@app.task(name="folio.tasks.corporate_data.refresh_corporate_data")
def refresh_corporate_data() -> dict:
    """Scheduled task to refresh NSE corporate data for every NSE stock."""
    stats = asyncio.run(_refresh_corporate_data_async())

    if stats["updated"]:
        logger.info(
            "Updated corporate data for %s of %s stocks", stats["updated"], stats["total"]
        )
    else:
        logger.warning("No corporate data updated")

    return {
        "status": "completed",
        "total": stats["total"],
        "processed": stats["processed"],
        "updated": stats["updated"],
        "failed": stats["failed"],
        "skipped": stats["skipped"],
    }
