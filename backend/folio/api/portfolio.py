"""
Portfolio API Router.

JSON ingestion of brokerage holdings, transactions and realized P&L. Every
write upserts on the row's natural key and drops the client's cached
dashboard.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from folio.api.deps import get_portfolio_import_service
from folio.core.config import settings
from folio.services.portfolio_import_service import PortfolioImportService

router = APIRouter()


# ---------- Pydantic Schemas ----------

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class HoldingIn(CamelModel):
    stock_name: str
    isin: str
    sector_name: str = "Unknown"
    portfolio_percentage: float = 0.0
    open_qty: float = 0.0
    market_price: float = 0.0
    market_value: float = 0.0
    investment_amount: float = 0.0
    avg_cost: float = 0.0
    profit_loss_till_date: float = 0.0
    profit_loss_till_date_percent: float = 0.0
    client_name: str = ""
    as_on_date: Optional[date] = None


class HoldingSchema(HoldingIn):
    client_id: str


class TransactionIn(CamelModel):
    stock_name: str
    isin: str
    transaction_date: date
    buy_sell: str
    sector_name: str = "Unknown"
    source: str = ""
    traded_qty: float = 0.0
    trade_price_adjusted: float = 0.0
    charges: float = 0.0
    trade_value_adjusted: float = 0.0


class RealizedProfitLossIn(CamelModel):
    stock_name: str
    closed_qty: float
    sell_date: date
    buy_date: date
    sector_name: str = "Unknown"
    isin: str = ""
    sell_price: float = 0.0
    sell_value: float = 0.0
    buy_price: float = 0.0
    buy_value: float = 0.0
    realized_profit_loss: float = 0.0


class HoldingsUpload(CamelModel):
    client_id: str = Field(default_factory=lambda: settings.DEFAULT_CLIENT_ID)
    holdings: list[HoldingIn]


class TransactionsUpload(CamelModel):
    client_id: str = Field(default_factory=lambda: settings.DEFAULT_CLIENT_ID)
    transactions: list[TransactionIn]


class RealizedProfitLossUpload(CamelModel):
    client_id: str = Field(default_factory=lambda: settings.DEFAULT_CLIENT_ID)
    records: list[RealizedProfitLossIn]


class UploadResult(BaseModel):
    success: bool
    message: str
    count: int


# ---------- Endpoints ----------

@router.post("/holdings", response_model=UploadResult)
async def upload_holdings(
    body: HoldingsUpload,
    service: PortfolioImportService = Depends(get_portfolio_import_service),
):
    count = await service.upsert_holdings(body.client_id, [h.model_dump() for h in body.holdings])
    return UploadResult(success=True, message=f"Upserted {count} holdings", count=count)


@router.post("/transactions", response_model=UploadResult)
async def upload_transactions(
    body: TransactionsUpload,
    service: PortfolioImportService = Depends(get_portfolio_import_service),
):
    count = await service.upsert_transactions(
        body.client_id, [t.model_dump() for t in body.transactions]
    )
    return UploadResult(success=True, message=f"Upserted {count} transactions", count=count)


@router.post("/realized-profit-loss", response_model=UploadResult)
async def upload_realized_profit_loss(
    body: RealizedProfitLossUpload,
    service: PortfolioImportService = Depends(get_portfolio_import_service),
):
    count = await service.upsert_realized(body.client_id, [r.model_dump() for r in body.records])
    return UploadResult(success=True, message=f"Upserted {count} realized P&L rows", count=count)


@router.get("/holdings", response_model=list[HoldingSchema])
async def list_holdings(
    client_id: Optional[str] = Query(default=None, alias="clientId"),
    service: PortfolioImportService = Depends(get_portfolio_import_service),
):
    """Current holdings for a client, largest position first."""
    return await service.list_holdings(client_id or settings.DEFAULT_CLIENT_ID)
