from abc import ABC, abstractmethod
from typing import Any, Optional

# Stock-level fields a quote may carry, named after StockMaster columns
STOCK_FIELDS = ("industry", "is_fno_sec", "pd_sector_ind", "pd_sector_pe", "pd_symbol_pe")

# Trading-day fields, named after StockData columns
DAILY_FIELDS = ("total_traded_volume", "total_buy_quantity", "total_sell_quantity")


class QuoteProvider(ABC):
    """Abstract base class for end-of-day quote providers."""

    @abstractmethod
    async def fetch_quote(self, symbol: str) -> Optional[dict[str, Any]]:
        """
        Fetch the latest quote for a symbol.

        Returns a dict holding only the fields the upstream actually reported
        (see STOCK_FIELDS and DAILY_FIELDS) plus ``trade_date`` when known,
        or None when the quote could not be fetched.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
