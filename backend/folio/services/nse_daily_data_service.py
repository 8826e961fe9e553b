import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.core.config import settings
from folio.core.database import get_session_factory, upsert
from folio.models.holding import Holding
from folio.models.stock_data import StockData
from folio.models.stock_master import StockMaster
from folio.services.quotes import QuoteProvider, get_quote_provider
from folio.services.quotes.base import DAILY_FIELDS, STOCK_FIELDS

logger = logging.getLogger(__name__)

# Sample size of per-holding messages returned to the caller
RESULT_SAMPLE_SIZE = 10

# Plain rows survive a session rollback, ORM instances would be expired
STOCK_COLUMNS = (
    StockMaster.isin,
    StockMaster.symbol,
    StockMaster.exchange,
    StockMaster.stock_name,
    *(getattr(StockMaster, field) for field in STOCK_FIELDS),
)


class NseDailyDataService:
    """Copies NSE quote data (PE, industry, volumes) into StockMaster and StockData."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        provider: QuoteProvider | None = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.provider = provider or get_quote_provider()

    async def aclose(self) -> None:
        await self.provider.aclose()

    async def enrich_holdings(self, client_id: str) -> dict[str, Any]:
        """
        Refresh PE and industry fields for the stocks a client holds.

        Each holding is counted once, as processed or failed. Failures never
        abort the batch. Quote calls are throttled by a fixed delay.
        """
        async with self.session_factory() as session:
            holdings = (
                await session.execute(
                    select(Holding.isin, Holding.stock_name).where(Holding.client_id == client_id)
                )
            ).all()

            if not holdings:
                return {"success": False, "message": "No holdings found"}

            isins = [h.isin for h in holdings if h.isin]
            masters = (
                await session.execute(
                    select(StockMaster.isin, StockMaster.symbol, StockMaster.exchange).where(
                        StockMaster.isin.in_(isins)
                    )
                )
            ).all()
            master_by_isin = {m.isin: m for m in masters}

            processed = 0
            failed = 0
            errors: list[str] = []
            updated: list[str] = []

            for holding in holdings:
                label = f"{holding.stock_name} ({holding.isin})"
                master = master_by_isin.get(holding.isin)
                if master is None or master.exchange != settings.NSE_EXCHANGE or not master.symbol:
                    failed += 1
                    errors.append(f"{label}: Not an NSE stock or missing symbol")
                    continue

                symbol = master.symbol
                try:
                    quote = await self.provider.fetch_quote(symbol)
                    await asyncio.sleep(settings.NSE_REQUEST_DELAY_SEC)

                    if quote is None:
                        failed += 1
                        errors.append(f"{label}: Failed to fetch NSE data")
                        continue

                    fields = {
                        field: quote[field] for field in STOCK_FIELDS if quote.get(field) is not None
                    }
                    if not fields:
                        failed += 1
                        errors.append(f"{label}: No PE data in NSE response")
                        continue

                    fields["last_updated"] = datetime.utcnow()
                    result = await session.execute(
                        update(StockMaster)
                        .where(StockMaster.isin == holding.isin)
                        .values(**fields)
                        .execution_options(synchronize_session=False)
                    )
                    await session.commit()

                    if result.rowcount == 0:
                        failed += 1
                        errors.append(f"{label}: Update failed (no document matched)")
                        continue

                    processed += 1
                    updated.append(
                        f"{holding.stock_name}: PE={quote.get('pd_symbol_pe') or 'N/A'}, "
                        f"Sector PE={quote.get('pd_sector_pe') or 'N/A'}"
                    )
                except Exception as exc:
                    await session.rollback()
                    logger.error("PE refresh failed for %s: %s", label, exc)
                    failed += 1
                    errors.append(f"{label}: {exc}")

        logger.info(
            "PE refresh for client %s: %s processed, %s failed of %s holdings",
            client_id,
            processed,
            failed,
            len(holdings),
        )
        return {
            "success": True,
            "message": f"Processed {processed}/{len(holdings)} holdings",
            "processed": processed,
            "failed": failed,
            "updated": updated[:RESULT_SAMPLE_SIZE],
            "errors": errors[:RESULT_SAMPLE_SIZE],
        }

    async def _fetch_throttled(self, symbol: str) -> Optional[dict[str, Any]]:
        try:
            return await self.provider.fetch_quote(symbol)
        finally:
            await asyncio.sleep(settings.DAILY_DATA_STOCK_DELAY_SEC)

    async def store_quote(
        self,
        session: AsyncSession,
        master: Any,
        quote: dict[str, Any],
    ) -> bool:
        """
        Apply one quote: changed stock-level fields go to StockMaster, the
        day's volumes and PE to the StockData row for the quote's trading day.

        Returns False when the quote carries no trading day.
        """
        changed = {
            field: quote[field]
            for field in STOCK_FIELDS
            if field in quote and getattr(master, field) != quote[field]
        }
        if changed:
            changed["last_updated"] = datetime.utcnow()
            await session.execute(
                update(StockMaster)
                .where(StockMaster.isin == master.isin)
                .values(**changed)
                .execution_options(synchronize_session=False)
            )
            logger.debug("Updated StockMaster %s: %s", master.symbol, ", ".join(changed))

        trade_date = quote.get("trade_date")
        if trade_date is None:
            await session.commit()
            return False

        row: dict[str, Any] = {
            "isin": master.isin,
            "date": trade_date,
            "stock_name": master.stock_name or "",
            "symbol": master.symbol,
            "exchange": master.exchange or settings.NSE_EXCHANGE,
            "last_updated": datetime.utcnow(),
        }
        for field in DAILY_FIELDS:
            if field in quote:
                row[field] = int(quote[field])
        if "pd_symbol_pe" in quote:
            row["pe"] = quote["pd_symbol_pe"]

        await session.execute(upsert(session, StockData, [row], ["isin", "date"]))
        await session.commit()
        return True

    async def process_all_stocks(self) -> dict[str, Any]:
        """Daily quote refresh for every NSE stock, in throttled batches."""
        async with self.session_factory() as session:
            stocks = (
                await session.execute(
                    select(*STOCK_COLUMNS).where(
                        StockMaster.exchange == settings.NSE_EXCHANGE,
                        StockMaster.symbol.is_not(None),
                        StockMaster.symbol != "",
                    )
                )
            ).all()

            total = len(stocks)
            processed = 0
            failed = 0
            errors: list[str] = []
            batch_size = settings.DAILY_DATA_BATCH_SIZE
            logger.info("Processing %s NSE stocks for daily data", total)

            for start in range(0, total, batch_size):
                batch = stocks[start:start + batch_size]
                logger.info(
                    "Processing batch %s/%s",
                    start // batch_size + 1,
                    (total + batch_size - 1) // batch_size,
                )
                quotes = await asyncio.gather(
                    *(self._fetch_throttled(stock.symbol) for stock in batch),
                    return_exceptions=True,
                )

                for stock, quote in zip(batch, quotes):
                    label = f"{stock.symbol} ({stock.isin})"
                    if isinstance(quote, Exception):
                        failed += 1
                        errors.append(f"{label}: {quote}")
                        continue
                    if quote is None:
                        failed += 1
                        errors.append(f"{label}: Failed to fetch/store data")
                        continue
                    try:
                        stored = await self.store_quote(session, stock, quote)
                    except Exception as exc:
                        await session.rollback()
                        logger.error("Error storing NSE daily data for %s: %s", label, exc)
                        failed += 1
                        errors.append(f"{label}: {exc}")
                        continue
                    if stored:
                        processed += 1
                    else:
                        failed += 1
                        errors.append(f"{label}: Failed to fetch/store data")

                if start + batch_size < total:
                    await asyncio.sleep(settings.DAILY_DATA_BATCH_PAUSE_SEC)

        logger.info("NSE daily data: %s processed, %s failed of %s", processed, failed, total)
        return {"total": total, "processed": processed, "failed": failed, "errors": errors}
