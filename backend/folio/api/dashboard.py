"""
Dashboard API Router.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from folio.api.deps import get_dashboard_service
from folio.core.config import settings
from folio.services.dashboard_service import DashboardService

router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(
    client_id: Optional[str] = Query(default=None, alias="clientId"),
    service: DashboardService = Depends(get_dashboard_service),
):
    """
    Portfolio summary, performers, monthly aggregates, sector split and
    realized positions for one client.
    """
    data = await service.get_dashboard(client_id or settings.DEFAULT_CLIENT_ID)
    return {"success": True, "data": data}
