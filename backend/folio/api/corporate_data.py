"""
Corporate data API Router.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from folio.api.deps import get_corporate_data_service
from folio.services.corporate_data_service import CorporateDataService, StockNotFoundError

router = APIRouter()


@router.get("/corporate-data")
async def get_corporate_data(
    isin: Optional[str] = None,
    symbol: Optional[str] = None,
    service: CorporateDataService = Depends(get_corporate_data_service),
):
    """
    Announcements, upcoming corporate actions and board meetings, financial
    results and shareholding patterns for one stock.

    Served from the database; refreshed from NSE when older than a week.
    """
    try:
        data = await service.get_corporate_data(isin=isin, symbol=symbol)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StockNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "data": data}
