"""
Manual refresh API Router.

On-demand counterparts of the scheduled jobs.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from folio.api.deps import get_nse_daily_data_service
from folio.core.config import settings
from folio.services.nse_daily_data_service import RESULT_SAMPLE_SIZE, NseDailyDataService
from folio.tasks.stock_history import refresh_stock_history

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/fetch-pe-for-holdings")
async def fetch_pe_for_holdings(
    client_id: Optional[str] = Query(default=None, alias="clientId"),
    service: NseDailyDataService = Depends(get_nse_daily_data_service),
):
    """Refresh PE, sector PE and industry from NSE for a client's holdings."""
    return await service.enrich_holdings(client_id or settings.DEFAULT_CLIENT_ID)


@router.get("/fetch-nse-daily-data")
async def fetch_nse_daily_data(service: NseDailyDataService = Depends(get_nse_daily_data_service)):
    """Run the daily NSE quote refresh for every NSE stock and wait for it."""
    result = await service.process_all_stocks()
    return {
        "success": True,
        "message": f"Processed {result['processed']}/{result['total']} stocks",
        "total": result["total"],
        "processed": result["processed"],
        "failed": result["failed"],
        "errors": result["errors"][:RESULT_SAMPLE_SIZE],
    }


@router.get("/cron-trigger")
async def cron_trigger(secret: Optional[str] = None):
    """
    Queue the price history refresh for an external scheduler.

    Requires ``secret`` to match CRON_SECRET_KEY when one is configured.
    """
    if settings.CRON_SECRET_KEY and secret != settings.CRON_SECRET_KEY:
        raise HTTPException(status_code=401, detail="Unauthorized: Invalid secret key")

    result = refresh_stock_history.delay()
    logger.info("Queued stock history refresh (task %s)", result.id)
    return {
        "success": True,
        "message": "Stock data refresh started in background",
        "details": {
            "taskId": result.id,
            "startedAt": datetime.now(timezone.utc).isoformat(),
        },
    }
