"""
Stock price API Router.
"""
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from folio.api.deps import get_stock_data_service
from folio.services.stock_data_service import StockDataService

router = APIRouter()


def parse_date_param(value: Optional[str], name: str) -> Optional[date]:
    """Accept ``YYYY-MM-DD`` or a full ISO timestamp; only the day is kept."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}")


@router.get("/stock-ohlc")
async def get_stock_ohlc(
    isin: Optional[str] = None,
    from_date: Optional[str] = Query(default=None, alias="fromDate"),
    to_date: Optional[str] = Query(default=None, alias="toDate"),
    service: StockDataService = Depends(get_stock_data_service),
):
    """Daily OHLC series for one ISIN, oldest first. Both bounds inclusive."""
    if not isin:
        raise HTTPException(status_code=400, detail="ISIN is required")

    ohlc = await service.get_ohlc(
        isin,
        parse_date_param(from_date, "fromDate"),
        parse_date_param(to_date, "toDate"),
    )
    return {"success": True, "ohlcData": ohlc, "count": len(ohlc)}


@router.get("/latest-stock-date")
async def get_latest_stock_date(service: StockDataService = Depends(get_stock_data_service)):
    """Most recent trading day present in the price store."""
    return await service.get_latest_date()
