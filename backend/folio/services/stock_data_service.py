import asyncio
import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, List, Optional

import pandas as pd
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.core.clock import local_today
from folio.core.config import settings
from folio.core.database import get_session_factory, upsert
from folio.models.stock_data import StockData
from folio.models.stock_master import StockMaster
from folio.services.market_data import MarketDataProvider, get_market_data_provider

logger = logging.getLogger(__name__)

# Keeps each INSERT well below driver bind-parameter limits
UPSERT_CHUNK_SIZE = 500

PRICE_COLUMNS = ["stock_name", "symbol", "exchange", "open", "high", "low", "close", "volume", "last_updated"]


def _optional_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:  # Feb 29
        return day.replace(year=day.year - years, day=28)


def history_years() -> int:
    """Years of daily history a stock should hold: the full-fetch span, capped by retention."""
    return max(1, min(settings.HISTORY_FULL_YEARS, settings.STOCK_DATA_RETENTION_YEARS))


def complete_history_min_rows(years: int) -> int:
    """HISTORY_COMPLETE_MIN_ROWS is set for HISTORY_FULL_YEARS; scaled to ``years``."""
    return math.ceil(settings.HISTORY_COMPLETE_MIN_ROWS * years / settings.HISTORY_FULL_YEARS)


class StockDataService:
    """Daily price history: range queries, Yahoo Finance backfill and retention."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        provider: MarketDataProvider | None = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self._provider = provider

    @property
    def provider(self) -> MarketDataProvider:
        if self._provider is None:
            self._provider = get_market_data_provider()
        return self._provider

    async def get_ohlc(
        self,
        isin: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[dict[str, Any]]:
        """
        Daily points for an ISIN, oldest first.

        The range only applies when both bounds are given; both are inclusive.
        Missing prices and volume read as 0, a missing PE as None.
        """
        if not isin:
            raise ValueError("ISIN is required")

        stmt = select(StockData).where(StockData.isin == isin)
        if from_date is not None and to_date is not None:
            stmt = stmt.where(StockData.date >= from_date, StockData.date <= to_date)
        stmt = stmt.order_by(StockData.date.asc())

        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            {
                "date": row.date.isoformat(),
                "open": row.open or 0,
                "high": row.high or 0,
                "low": row.low or 0,
                "close": row.close or 0,
                "volume": row.volume or 0,
                "pe": row.pe or None,
            }
            for row in rows
        ]

    async def get_latest_date(self) -> dict[str, Any]:
        async with self.session_factory() as session:
            latest = (await session.execute(select(func.max(StockData.date)))).scalar()

        if latest is None:
            return {
                "success": True,
                "latestDate": None,
                "message": "No stock data found in database",
            }
        return {
            "success": True,
            "latestDate": latest.isoformat(),
            "formattedDate": latest.strftime("%d/%m/%Y"),
        }

    async def has_complete_history(self, isin: str) -> bool:
        """
        True when the kept history window (see ``history_years``) holds
        roughly that many years of trading days. Measured against what
        cleanup retains, so a cleaned-up stock is not refetched every night.
        """
        years = history_years()
        since = local_today() - timedelta(days=365 * years)
        async with self.session_factory() as session:
            count = (
                await session.execute(
                    select(func.count())
                    .select_from(StockData)
                    .where(StockData.isin == isin, StockData.date >= since)
                )
            ).scalar_one()
        return count >= complete_history_min_rows(years)

    async def fetch_and_store_history(self, isin: str, full: bool = False) -> int:
        """
        Fetch daily bars from the market data provider and upsert them.

        ``full`` fetches the whole kept window (``history_years``); otherwise
        only the last few days are refreshed. An NSE symbol with no data is
        retried on BSE, and the stock's exchange is switched when that succeeds.
        Returns the number of rows written.
        """
        async with self.session_factory() as session:
            master = await session.get(StockMaster, isin)
            if master is None or not master.symbol:
                logger.info("No symbol found for ISIN %s", isin)
                return 0

            symbol = master.symbol
            exchange = (master.exchange or "NSE").upper()
            stock_name = master.stock_name

            to_date = local_today()
            if full:
                from_date = to_date - timedelta(days=365 * history_years())
            else:
                from_date = to_date - timedelta(days=settings.HISTORY_REFRESH_DAYS)

            logger.info(
                "Fetching %s history for %s (%s.%s) from %s to %s",
                "full" if full else "recent",
                isin,
                symbol,
                exchange,
                from_date,
                to_date,
            )

            # yfinance is blocking
            bars = await asyncio.to_thread(
                self.provider.fetch_daily_bars, symbol, exchange, from_date, to_date
            )

            if bars.empty and exchange == "NSE":
                logger.info("No NSE data for %s, trying BSE", symbol)
                bars = await asyncio.to_thread(
                    self.provider.fetch_daily_bars, symbol, "BSE", from_date, to_date
                )
                if bars.empty:
                    logger.warning("No data retrieved for %s (%s)", isin, symbol)
                    return 0
                exchange = "BSE"
                await session.execute(
                    update(StockMaster).where(StockMaster.isin == isin).values(exchange="BSE")
                )
                logger.info("Found %s on BSE, updated exchange", symbol)
            elif bars.empty:
                logger.warning("No data retrieved for %s (%s)", isin, symbol)
                return 0

            now = datetime.utcnow()
            rows = [
                {
                    "isin": isin,
                    "date": bar.date,
                    "stock_name": stock_name,
                    "symbol": symbol,
                    "exchange": exchange,
                    "open": _optional_float(bar.open),
                    "high": _optional_float(bar.high),
                    "low": _optional_float(bar.low),
                    "close": _optional_float(bar.close),
                    "volume": None if pd.isna(bar.volume) else int(bar.volume),
                    "last_updated": now,
                }
                for bar in bars.itertuples(index=False)
            ]

            for start in range(0, len(rows), UPSERT_CHUNK_SIZE):
                chunk = rows[start:start + UPSERT_CHUNK_SIZE]
                await session.execute(
                    upsert(session, StockData, chunk, ["isin", "date"], PRICE_COLUMNS)
                )
            await session.commit()

        logger.info("Stored %s records for %s", len(rows), isin)
        return len(rows)

    async def refresh_all_history(self) -> dict[str, Any]:
        """
        Nightly price refresh for every stock.

        Stocks with incomplete history get a full fetch first; the rest
        only refresh the last few days.
        """
        async with self.session_factory() as session:
            isins = (await session.execute(select(StockMaster.isin))).scalars().all()

        needs_full = []
        needs_refresh = []
        for isin in isins:
            if await self.has_complete_history(isin):
                needs_refresh.append(isin)
            else:
                needs_full.append(isin)

        logger.info(
            "History refresh: %s stocks need a full fetch, %s need a refresh",
            len(needs_full),
            len(needs_refresh),
        )

        stats: dict[str, Any] = {
            "total": len(isins),
            "full_fetched": 0,
            "refreshed": 0,
            "records": 0,
            "failed": 0,
            "errors": [],
        }

        for full, group, delay in (
            (True, needs_full, settings.HISTORY_FULL_FETCH_DELAY_SEC),
            (False, needs_refresh, settings.HISTORY_REFRESH_DELAY_SEC),
        ):
            for index, isin in enumerate(group):
                try:
                    count = await self.fetch_and_store_history(isin, full=full)
                except Exception as exc:
                    logger.error("Error fetching history for %s: %s", isin, exc)
                    stats["failed"] += 1
                    stats["errors"].append(f"{isin}: {exc}")
                else:
                    stats["records"] += count
                    if count:
                        stats["full_fetched" if full else "refreshed"] += 1
                if index + 1 < len(group):
                    await asyncio.sleep(delay)

        logger.info(
            "History refresh complete: %s full, %s refreshed, %s records, %s failed",
            stats["full_fetched"],
            stats["refreshed"],
            stats["records"],
            stats["failed"],
        )
        return stats

    async def cleanup_old_stock_data(self) -> dict[str, Any]:
        """Delete StockData rows older than the retention window, in batches."""
        cutoff = _years_before(local_today(), settings.STOCK_DATA_RETENTION_YEARS)
        batch_size = settings.STOCK_DATA_CLEANUP_BATCH_SIZE
        logger.info("Deleting stock data before %s", cutoff)

        deleted = 0
        async with self.session_factory() as session:
            while True:
                ids = (
                    await session.execute(
                        select(StockData.id).where(StockData.date < cutoff).limit(batch_size)
                    )
                ).scalars().all()
                if not ids:
                    break

                result = await session.execute(delete(StockData).where(StockData.id.in_(ids)))
                await session.commit()
                deleted += result.rowcount or 0

                if len(ids) < batch_size:
                    break

        logger.info("Cleanup complete, deleted %s old records", deleted)
        return {"success": True, "deletedCount": deleted, "cutoffDate": cutoff.isoformat()}
