import logging
from typing import Any, Optional

import httpx

from folio.services.nse_client import NseClient, parse_nse_date
from folio.services.quotes.base import QuoteProvider

logger = logging.getLogger(__name__)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class NseQuoteProvider(QuoteProvider):
    """Quotes from the NSE ``quote-equity`` endpoint."""

    path = "/api/quote-equity"

    def __init__(self, client: NseClient | None = None) -> None:
        self.client = client or NseClient()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def fetch_quote(self, symbol: str) -> Optional[dict[str, Any]]:
        if not symbol:
            return None

        try:
            response = await self.client.get(
                self.path,
                params={"symbol": symbol},
                referer=f"/quote-equity?symbol={symbol}",
            )
        except httpx.HTTPError as exc:
            logger.debug("NSE quote request failed for %s: %s", symbol, exc)
            return None

        if response.status_code in (401, 403):
            logger.debug("NSE quote access denied (%s) for %s", response.status_code, symbol)
            return None
        if response.status_code != 200:
            logger.debug("NSE quote returned %s for %s", response.status_code, symbol)
            return None

        try:
            data = response.json()
        except ValueError:
            logger.debug("NSE quote for %s was not JSON", symbol)
            return None
        if not isinstance(data, dict) or not data:
            return None

        return parse_quote(data)


def parse_quote(data: dict[str, Any]) -> dict[str, Any]:
    """Pick the fields we store out of a ``quote-equity`` payload."""
    info = data.get("info") or {}
    metadata = data.get("metadata") or {}
    pre_open = data.get("preOpenMarket") or {}

    quote: dict[str, Any] = {}

    if metadata.get("lastUpdateTime"):
        trade_date = parse_nse_date(metadata["lastUpdateTime"])
        if trade_date is not None:
            quote["trade_date"] = trade_date

    for key, field in (
        ("totalTradedVolume", "total_traded_volume"),
        ("totalBuyQuantity", "total_buy_quantity"),
        ("totalSellQuantity", "total_sell_quantity"),
    ):
        value = _number(pre_open.get(key))
        if value is not None:
            quote[field] = value

    if info.get("industry"):
        quote["industry"] = info["industry"]
    if isinstance(info.get("isFNOSec"), bool):
        quote["is_fno_sec"] = info["isFNOSec"]
    if metadata.get("pdSectorInd"):
        quote["pd_sector_ind"] = metadata["pdSectorInd"]

    sector_pe = _number(metadata.get("pdSectorPe"))
    if sector_pe is not None:
        quote["pd_sector_pe"] = sector_pe
    symbol_pe = _number(metadata.get("pdSymbolPe"))
    if symbol_pe is not None:
        quote["pd_symbol_pe"] = symbol_pe

    return quote
