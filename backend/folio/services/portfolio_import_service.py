import logging
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.core.database import get_session_factory, upsert
from folio.models.holding import Holding
from folio.models.realized_profit_loss import RealizedProfitLoss
from folio.models.stock_master import StockMaster
from folio.models.transaction import Transaction
from folio.services.dashboard_cache import DashboardCache
from folio.services.isin_matcher import find_isin

logger = logging.getLogger(__name__)

HOLDING_KEY = ["client_id", "isin"]
TRANSACTION_KEY = ["client_id", "isin", "transaction_date", "buy_sell", "traded_qty"]
REALIZED_KEY = ["client_id", "stock_name", "sell_date", "buy_date", "closed_qty"]


def normalize_isin(isin: str | None) -> str:
    return (isin or "").strip().upper()


def _dedupe(rows: list[dict[str, Any]], key: list[str]) -> list[dict[str, Any]]:
    """Last row wins; a single INSERT cannot touch the same key twice."""
    unique: dict[tuple, dict[str, Any]] = {}
    for row in rows:
        unique[tuple(row[column] for column in key)] = row
    return list(unique.values())


class PortfolioImportService:
    """
    Stores brokerage holdings, transactions and realized P&L rows.

    Every write is an upsert on the row's natural key and drops the client's
    cached dashboard.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        cache: DashboardCache | None = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.cache = cache or DashboardCache()

    async def upsert_holdings(self, client_id: str, holdings: Iterable[dict[str, Any]]) -> int:
        now = datetime.utcnow()
        rows = []
        for holding in holdings:
            isin = normalize_isin(holding.get("isin"))
            if not isin:
                logger.warning("Skipping holding without ISIN: %s", holding.get("stock_name"))
                continue
            rows.append({**holding, "isin": isin, "client_id": client_id, "last_updated": now})
        rows = _dedupe(rows, HOLDING_KEY)
        if not rows:
            return 0

        async with self.session_factory() as session:
            await self._ensure_stock_masters(session, rows)
            await session.execute(upsert(session, Holding, rows, HOLDING_KEY))
            await session.commit()

        logger.info("Upserted %s holdings for client %s", len(rows), client_id)
        await self.cache.invalidate(client_id)
        return len(rows)

    async def upsert_transactions(self, client_id: str, transactions: Iterable[dict[str, Any]]) -> int:
        now = datetime.utcnow()
        rows = [
            {
                **txn,
                "isin": normalize_isin(txn.get("isin")),
                "buy_sell": (txn.get("buy_sell") or "").strip().upper(),
                "client_id": client_id,
                "last_updated": now,
            }
            for txn in transactions
        ]
        rows = _dedupe(rows, TRANSACTION_KEY)
        if not rows:
            return 0

        async with self.session_factory() as session:
            await self._ensure_stock_masters(session, [r for r in rows if r["isin"]])
            await session.execute(upsert(session, Transaction, rows, TRANSACTION_KEY))
            await session.commit()

        logger.info("Upserted %s transactions for client %s", len(rows), client_id)
        await self.cache.invalidate(client_id)
        return len(rows)

    async def upsert_realized(self, client_id: str, records: Iterable[dict[str, Any]]) -> int:
        now = datetime.utcnow()
        rows = [
            {
                **record,
                "stock_name": (record.get("stock_name") or "").strip(),
                "sector_name": (record.get("sector_name") or "").strip() or "Unknown",
                "isin": normalize_isin(record.get("isin")),
                "client_id": client_id,
                "last_updated": now,
            }
            for record in records
        ]
        rows = _dedupe([r for r in rows if r["stock_name"]], REALIZED_KEY)
        if not rows:
            return 0

        async with self.session_factory() as session:
            await self._resolve_missing_isins(session, rows)
            await session.execute(upsert(session, RealizedProfitLoss, rows, REALIZED_KEY))
            await session.commit()

        logger.info("Upserted %s realized P&L rows for client %s", len(rows), client_id)
        await self.cache.invalidate(client_id)
        return len(rows)

    async def _resolve_missing_isins(self, session: AsyncSession, rows: list[dict[str, Any]]) -> None:
        """Fill in blank ISINs by matching the stock name against StockMaster."""
        names = {row["stock_name"] for row in rows if not row["isin"]}
        if not names:
            return

        masters = (await session.execute(select(StockMaster.isin, StockMaster.stock_name))).all()
        resolved = {}
        for name in names:
            match = find_isin(name, masters)
            if match is None:
                logger.info("No ISIN found for realized stock %r", name)
                continue
            logger.info(
                "Matched realized stock %r to %s (%s, %.0f%%)",
                name,
                match.isin,
                match.stock_name,
                match.similarity * 100,
            )
            resolved[name] = match.isin

        for row in rows:
            if not row["isin"] and row["stock_name"] in resolved:
                row["isin"] = resolved[row["stock_name"]]

    async def list_holdings(self, client_id: str) -> list[Holding]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Holding)
                .where(Holding.client_id == client_id)
                .order_by(Holding.market_value.desc())
            )
            return list(result.scalars().all())

    async def _ensure_stock_masters(self, session: AsyncSession, rows: list[dict[str, Any]]) -> None:
        """Create missing StockMaster rows; existing ones are left untouched."""
        masters = {}
        for row in rows:
            masters.setdefault(
                row["isin"],
                {
                    "isin": row["isin"],
                    "stock_name": row.get("stock_name") or row["isin"],
                    "sector": row.get("sector_name"),
                    "last_updated": datetime.utcnow(),
                },
            )
        if masters:
            await session.execute(
                upsert(session, StockMaster, list(masters.values()), ["isin"], update_columns=[])
            )
