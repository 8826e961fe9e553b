import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.core.clock import local_today
from folio.core.config import settings
from folio.core.database import get_session_factory, is_storage_quota_error, upsert
from folio.models.corporate_info import CorporateInfo
from folio.models.stock_master import StockMaster
from folio.services.corporate_data import CorporateDataProvider, get_corporate_data_provider

logger = logging.getLogger(__name__)

# Provider payload key -> CorporateInfo column
LIST_FIELDS = {
    "announcements": "announcements",
    "corporateActions": "corporate_actions",
    "boardMeetings": "board_meetings",
    "financialResults": "financial_results",
    "shareholdingPatterns": "shareholding_patterns",
}

# Only calendar events are hidden once their date has passed
UPCOMING_ONLY = ("corporateActions", "boardMeetings")

MAX_UPCOMING_ENTRIES = 20

SHAREHOLDING_PERCENT_FIELDS = (
    "promoterAndPromoterGroup",
    "public",
    "sharesHeldByEmployeeTrusts",
    "foreignInstitutionalInvestors",
    "domesticInstitutionalInvestors",
    "other",
    "total",
)


class StockNotFoundError(LookupError):
    """No StockMaster row matches the requested isin/symbol."""


def _entry_date(entry: dict[str, Any]) -> Optional[date]:
    value = entry.get("date")
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def filter_upcoming(entries: Iterable[dict[str, Any]], today: date) -> list[dict[str, Any]]:
    """Keep entries dated today or later; undated entries are dropped."""
    upcoming = []
    for entry in entries or []:
        entry_date = _entry_date(entry)
        if entry_date is not None and entry_date >= today:
            upcoming.append(entry)
    return upcoming


def normalize_shareholding_patterns(patterns: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Convert fractional shareholding patterns to percentages.

    Some periods come back as fractions (total ~1.0) instead of percentages
    (total ~100). A pattern whose total is in (0, 2) is treated as fractional
    and every percentage field present on it is scaled by 100. Best effort:
    a genuine percentage total below 2 would be scaled too.
    """
    normalized = []
    for pattern in patterns or []:
        copy = dict(pattern)
        total = copy.get("total") or 0
        if isinstance(total, (int, float)) and 0 < total < 2:
            for field in SHAREHOLDING_PERCENT_FIELDS:
                value = copy.get(field)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    copy[field] = value * 100
        normalized.append(copy)
    return normalized


def has_data(payload: dict[str, list[dict[str, Any]]]) -> bool:
    return any(payload.get(key) for key in LIST_FIELDS)


class CorporateDataService:
    """Staleness-gated corporate data cache backed by the corporateinfo table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        provider: CorporateDataProvider | None = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.provider = provider or get_corporate_data_provider()

    async def aclose(self) -> None:
        await self.provider.aclose()

    @staticmethod
    def is_stale(info: Optional[CorporateInfo], now: Optional[datetime] = None) -> bool:
        if info is None or info.last_updated is None:
            return True
        now = now or datetime.utcnow()
        return now - info.last_updated > timedelta(days=settings.CORPORATE_DATA_STALE_DAYS)

    async def get_corporate_data(
        self,
        isin: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Return corporate data for a stock, refreshing it from the provider
        when the cached copy is missing or older than the staleness window.

        Provider failures and storage-quota errors keep the cached copy.
        Other storage errors propagate.
        """
        if not isin and not symbol:
            raise ValueError("Please provide either isin or symbol parameter")

        async with self.session_factory() as session:
            master = await self._find_stock(session, isin, symbol)
            if master is None:
                raise StockNotFoundError("Stock not found in database")

            stock_symbol = master.symbol or (symbol.upper() if symbol else "")
            info = await session.get(CorporateInfo, master.isin)

            if self.is_stale(info) and stock_symbol:
                info = await self._refresh(session, master, stock_symbol, info)

            return self.build_response(info)

    async def _find_stock(
        self,
        session: AsyncSession,
        isin: Optional[str],
        symbol: Optional[str],
    ) -> Optional[StockMaster]:
        if isin:
            return await session.get(StockMaster, isin)
        result = await session.execute(
            select(StockMaster).where(StockMaster.symbol == symbol.upper()).limit(1)
        )
        return result.scalars().first()

    async def _refresh(
        self,
        session: AsyncSession,
        master: StockMaster,
        symbol: str,
        cached: Optional[CorporateInfo],
    ) -> Optional[CorporateInfo]:
        isin = master.isin
        logger.info("Fetching corporate data for %s (%s)", symbol, isin)
        try:
            payload = await self.provider.fetch_corporate_data(symbol)
        except Exception as exc:
            logger.error("Error fetching fresh corporate data for %s: %s", symbol, exc)
            return cached

        if not has_data(payload):
            logger.info("No corporate data available for %s", symbol)
            return cached

        try:
            await self._store(session, isin, symbol, master.stock_name, payload)
        except SQLAlchemyError as exc:
            await session.rollback()
            if is_storage_quota_error(exc):
                logger.warning(
                    "Database space quota exceeded. Cannot store corporate data for %s", symbol
                )
                # rollback expired the cached instance
                return await session.get(CorporateInfo, isin, populate_existing=True)
            raise

        logger.info("Corporate data updated for %s", symbol)
        return await session.get(CorporateInfo, isin, populate_existing=True)

    async def _store(
        self,
        session: AsyncSession,
        isin: str,
        symbol: str,
        stock_name: str,
        payload: dict[str, list[dict[str, Any]]],
    ) -> None:
        """
        Upsert one CorporateInfo row.

        Identity fields and last_updated are always written. A list column is
        only overwritten when the fresh payload has entries for it, so a
        partial response does not wipe previously stored sections.
        """
        today = local_today()
        lists = {}
        for key, column in LIST_FIELDS.items():
            entries = payload.get(key) or []
            if key in UPCOMING_ONLY:
                entries = filter_upcoming(entries, today)[:MAX_UPCOMING_ENTRIES]
            lists[column] = entries

        row = {
            "isin": isin,
            "symbol": symbol,
            "stock_name": stock_name,
            "last_updated": datetime.utcnow(),
            **lists,
        }
        update_columns = ["symbol", "stock_name", "last_updated"]
        update_columns += [column for column, entries in lists.items() if entries]

        await session.execute(upsert(session, CorporateInfo, [row], ["isin"], update_columns))
        await session.commit()

    @staticmethod
    def build_response(info: Optional[CorporateInfo]) -> dict[str, Any]:
        today = local_today()
        if info is None:
            return {
                "announcements": [],
                "corporateActions": [],
                "boardMeetings": [],
                "financialResults": [],
                "shareholdingPatterns": [],
                "lastUpdated": None,
            }
        return {
            "announcements": info.announcements or [],
            "corporateActions": filter_upcoming(info.corporate_actions, today),
            "boardMeetings": filter_upcoming(info.board_meetings, today),
            "financialResults": info.financial_results or [],
            "shareholdingPatterns": normalize_shareholding_patterns(info.shareholding_patterns),
            "lastUpdated": info.last_updated.isoformat() if info.last_updated else None,
        }

    async def refresh_all(self) -> dict[str, Any]:
        """
        Refresh corporate data for every NSE stock.

        Fetches run concurrently within a batch; writes happen one at a time.
        """
        async with self.session_factory() as session:
            result = await session.execute(
                select(StockMaster.isin, StockMaster.symbol, StockMaster.stock_name).where(
                    StockMaster.exchange == settings.NSE_EXCHANGE
                )
            )
            stocks = result.all()

        stats: dict[str, Any] = {
            "total": len(stocks),
            "processed": 0,
            "updated": 0,
            "failed": 0,
            "skipped": 0,
            "errors": [],
        }
        logger.info("Processing %s stocks for corporate data", len(stocks))

        batch_size = settings.CORPORATE_BATCH_SIZE
        for start in range(0, len(stocks), batch_size):
            batch = stocks[start:start + batch_size]
            eligible = [stock for stock in batch if stock.symbol]
            stats["skipped"] += len(batch) - len(eligible)

            payloads = await asyncio.gather(
                *(self.provider.fetch_corporate_data(stock.symbol) for stock in eligible),
                return_exceptions=True,
            )

            async with self.session_factory() as session:
                for stock, payload in zip(eligible, payloads):
                    if isinstance(payload, Exception):
                        stats["failed"] += 1
                        stats["errors"].append(f"{stock.symbol}: {payload}")
                        continue
                    if not has_data(payload):
                        stats["skipped"] += 1
                        continue
                    try:
                        await self._store(
                            session, stock.isin, stock.symbol, stock.stock_name, payload
                        )
                    except SQLAlchemyError as exc:
                        await session.rollback()
                        stats["failed"] += 1
                        if is_storage_quota_error(exc):
                            stats["errors"].append(
                                f"Database space quota exceeded for {stock.symbol}"
                            )
                        else:
                            stats["errors"].append(f"{stock.symbol}: {exc}")
                        continue
                    stats["updated"] += 1
                    stats["processed"] += 1

            logger.info(
                "Corporate data progress %s/%s (updated=%s failed=%s skipped=%s)",
                min(start + batch_size, len(stocks)),
                len(stocks),
                stats["updated"],
                stats["failed"],
                stats["skipped"],
            )

            if start + batch_size < len(stocks):
                await asyncio.sleep(settings.CORPORATE_BATCH_DELAY_SEC)

        return stats
