"""
Price history: OHLC range reads, Yahoo Finance backfill with BSE fallback,
and retention cleanup.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from fakes import FakeMarketDataProvider, add_rows
from folio.core.clock import local_today
from folio.core.config import settings
from folio.models.stock_data import StockData
from folio.models.stock_master import StockMaster
from folio.services.stock_data_service import (
    StockDataService,
    _years_before,
    complete_history_min_rows,
    history_years,
)

ISIN = "INE467B01029"


def _bar(day: date, close: float, volume=1000):
    return {"date": day, "open": close - 1, "high": close + 1, "low": close - 2, "close": close, "volume": volume}


class TestGetOhlc:
    async def test_requires_isin(self, session_factory):
        with pytest.raises(ValueError, match="ISIN is required"):
            await StockDataService(session_factory).get_ohlc("")

    async def test_unknown_isin_is_empty(self, session_factory):
        assert await StockDataService(session_factory).get_ohlc("INE000000000") == []

    async def test_sorted_with_defaults(self, session_factory):
        await add_rows(
            session_factory,
            StockData(isin=ISIN, date=date(2025, 1, 3), close=101.5, pe=25.0),
            StockData(isin=ISIN, date=date(2025, 1, 1), open=99, high=102, low=98, close=100, volume=500),
        )

        points = await StockDataService(session_factory).get_ohlc(ISIN)

        assert points == [
            {"date": "2025-01-01", "open": 99, "high": 102, "low": 98, "close": 100, "volume": 500, "pe": None},
            {"date": "2025-01-03", "open": 0, "high": 0, "low": 0, "close": 101.5, "volume": 0, "pe": 25.0},
        ]

    async def test_range_needs_both_bounds_and_is_inclusive(self, session_factory):
        await add_rows(
            session_factory,
            *(StockData(isin=ISIN, date=date(2025, 1, d), close=100 + d) for d in range(1, 6)),
        )
        service = StockDataService(session_factory)

        ranged = await service.get_ohlc(ISIN, date(2025, 1, 2), date(2025, 1, 4))
        one_bound = await service.get_ohlc(ISIN, date(2025, 1, 2), None)

        assert [p["date"] for p in ranged] == ["2025-01-02", "2025-01-03", "2025-01-04"]
        assert len(one_bound) == 5


class TestLatestDate:
    async def test_empty_store(self, session_factory):
        result = await StockDataService(session_factory).get_latest_date()

        assert result == {
            "success": True,
            "latestDate": None,
            "message": "No stock data found in database",
        }

    async def test_latest_date_is_formatted(self, session_factory):
        await add_rows(
            session_factory,
            StockData(isin=ISIN, date=date(2025, 3, 7), close=1),
            StockData(isin="INE2", date=date(2025, 3, 9), close=1),
        )

        result = await StockDataService(session_factory).get_latest_date()

        assert result["latestDate"] == "2025-03-09"
        assert result["formattedDate"] == "09/03/2025"


class TestFetchAndStoreHistory:
    async def test_recent_refresh_upserts_bars(self, session_factory):
        today = local_today()
        await add_rows(
            session_factory,
            StockMaster(isin=ISIN, stock_name="TCS", symbol="TCS", exchange="NSE"),
            StockData(isin=ISIN, date=today, close=1.0, pe=30.0),
        )
        provider = FakeMarketDataProvider(
            {("TCS", "NSE"): [_bar(today - timedelta(days=1), 4000), _bar(today, 4010)]}
        )
        service = StockDataService(session_factory, provider=provider)

        count = await service.fetch_and_store_history(ISIN)

        assert count == 2
        [(symbol, exchange, start, end)] = provider.calls
        assert (symbol, exchange, end) == ("TCS", "NSE", today)
        assert start == today - timedelta(days=settings.HISTORY_REFRESH_DAYS)
        async with session_factory() as session:
            row = (
                await session.execute(select(StockData).where(StockData.isin == ISIN, StockData.date == today))
            ).scalar_one()
        assert row.close == 4010
        # price upsert leaves the quote-derived PE alone
        assert row.pe == 30.0

    async def test_full_fetch_covers_the_kept_window(self, session_factory):
        await add_rows(session_factory, StockMaster(isin=ISIN, stock_name="TCS", symbol="TCS", exchange="NSE"))
        provider = FakeMarketDataProvider()

        await StockDataService(session_factory, provider=provider).fetch_and_store_history(ISIN, full=True)

        start, end = provider.calls[0][2], provider.calls[0][3]
        # retention (2 years) is shorter than the full-fetch span (5 years)
        assert (end - start).days == 365 * settings.STOCK_DATA_RETENTION_YEARS

    async def test_empty_nse_falls_back_to_bse(self, session_factory):
        today = local_today()
        await add_rows(session_factory, StockMaster(isin=ISIN, stock_name="Tiny", symbol="TINY", exchange="NSE"))
        provider = FakeMarketDataProvider({("TINY", "BSE"): [_bar(today, 12.5)]})

        count = await StockDataService(session_factory, provider=provider).fetch_and_store_history(ISIN)

        assert count == 1
        assert [c[1] for c in provider.calls] == ["NSE", "BSE"]
        async with session_factory() as session:
            master = await session.get(StockMaster, ISIN)
            row = (await session.execute(select(StockData))).scalar_one()
        assert master.exchange == "BSE"
        assert row.exchange == "BSE"

    async def test_no_data_anywhere(self, session_factory):
        await add_rows(session_factory, StockMaster(isin=ISIN, stock_name="Gone", symbol="GONE", exchange="NSE"))

        count = await StockDataService(session_factory, provider=FakeMarketDataProvider()).fetch_and_store_history(ISIN)

        assert count == 0

    async def test_missing_symbol_skips_fetch(self, session_factory):
        await add_rows(session_factory, StockMaster(isin=ISIN, stock_name="No symbol"))
        provider = FakeMarketDataProvider()

        assert await StockDataService(session_factory, provider=provider).fetch_and_store_history(ISIN) == 0
        assert provider.calls == []


class TestRefreshAllHistory:
    async def test_incomplete_history_gets_full_fetch(self, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "HISTORY_COMPLETE_MIN_ROWS", 5)
        today = local_today()
        await add_rows(
            session_factory,
            StockMaster(isin="INE1", stock_name="A", symbol="AAA", exchange="NSE"),
            StockMaster(isin="INE2", stock_name="B", symbol="BBB", exchange="NSE"),
            *(StockData(isin="INE2", date=today - timedelta(days=d), close=10) for d in range(1, 4)),
        )
        provider = FakeMarketDataProvider(
            {("AAA", "NSE"): [_bar(today, 5)], ("BBB", "NSE"): [_bar(today, 11)]}
        )

        stats = await StockDataService(session_factory, provider=provider).refresh_all_history()

        assert stats["total"] == 2
        assert stats["full_fetched"] == 1
        assert stats["refreshed"] == 1
        assert stats["records"] == 2
        spans = {symbol: (end - start).days for symbol, _, start, end in provider.calls}
        assert spans["AAA"] == 365 * history_years()
        assert spans["BBB"] == settings.HISTORY_REFRESH_DAYS

    def test_window_is_capped_by_retention(self, monkeypatch):
        monkeypatch.setattr(settings, "HISTORY_FULL_YEARS", 5)
        monkeypatch.setattr(settings, "HISTORY_COMPLETE_MIN_ROWS", 1200)
        monkeypatch.setattr(settings, "STOCK_DATA_RETENTION_YEARS", 2)

        assert history_years() == 2
        assert complete_history_min_rows(2) == 480

        monkeypatch.setattr(settings, "STOCK_DATA_RETENTION_YEARS", 10)
        assert history_years() == 5
        assert complete_history_min_rows(5) == 1200

    async def test_history_left_by_cleanup_counts_as_complete(self, session_factory, monkeypatch):
        """
        Given: a stock holding every trading day the retention window keeps
        When: cleanup has run and the nightly refresh checks completeness
        Then: the stock only gets the short refresh, not another full fetch
        """
        monkeypatch.setattr(settings, "HISTORY_FULL_YEARS", 5)
        monkeypatch.setattr(settings, "HISTORY_COMPLETE_MIN_ROWS", 10)
        monkeypatch.setattr(settings, "STOCK_DATA_RETENTION_YEARS", 2)
        today = local_today()
        await add_rows(
            session_factory,
            StockMaster(isin="INE1", stock_name="A", symbol="AAA", exchange="NSE"),
            *(StockData(isin="INE1", date=today - timedelta(days=100 * d), close=10) for d in range(1, 6)),
        )
        service = StockDataService(
            session_factory, provider=FakeMarketDataProvider({("AAA", "NSE"): [_bar(today, 12)]})
        )

        await service.cleanup_old_stock_data()

        assert await service.has_complete_history("INE1")
        stats = await service.refresh_all_history()
        assert stats["full_fetched"] == 0
        assert stats["refreshed"] == 1
        [(_, _, start, end)] = service.provider.calls
        assert (end - start).days == settings.HISTORY_REFRESH_DAYS


class TestCleanup:
    def test_years_before_leap_day(self):
        assert _years_before(date(2024, 2, 29), 2) == date(2022, 2, 28)

    async def test_deletes_rows_before_cutoff(self, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "STOCK_DATA_CLEANUP_BATCH_SIZE", 2)
        today = local_today()
        cutoff = _years_before(today, settings.STOCK_DATA_RETENTION_YEARS)
        await add_rows(
            session_factory,
            *(StockData(isin=ISIN, date=cutoff - timedelta(days=d), close=1) for d in range(1, 6)),
            StockData(isin=ISIN, date=cutoff, close=1),
            StockData(isin=ISIN, date=today, close=1),
        )

        result = await StockDataService(session_factory).cleanup_old_stock_data()

        assert result == {"success": True, "deletedCount": 5, "cutoffDate": cutoff.isoformat()}
        async with session_factory() as session:
            remaining = (await session.execute(select(func.count()).select_from(StockData))).scalar_one()
        assert remaining == 2
