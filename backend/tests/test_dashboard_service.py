"""
Dashboard aggregation helpers and the cached dashboard read.
"""

from datetime import date
from types import SimpleNamespace

import pandas as pd
import pytest

from fakes import add_rows
from folio.models.holding import Holding
from folio.models.realized_profit_loss import RealizedProfitLoss
from folio.models.stock_data import StockData
from folio.models.transaction import Transaction
from folio.services.dashboard_cache import cache_key
from folio.services.dashboard_service import (
    DashboardService,
    build_price_series,
    cap_annualized,
    calculate_industry_distribution,
    calculate_monthly_dividends,
    calculate_monthly_investments,
    calculate_monthly_returns,
    calculate_performers,
    calculate_portfolio_xirr,
    calculate_realized_stocks,
    calculate_return_statistics,
    calculate_stock_cagr,
    calculate_stock_xirr,
    calculate_summary,
    month_label,
    nearest_price,
    serialize_holding,
)


def holding(name, isin, pct=0.0, value=0.0, invested=0.0, pl=0.0, sector="IT", qty=0.0):
    return SimpleNamespace(
        stock_name=name,
        isin=isin,
        sector_name=sector,
        profit_loss_till_date_percent=pct,
        profit_loss_till_date=pl,
        market_value=value,
        investment_amount=invested,
        open_qty=qty,
    )


def txn(day, side, name="Alpha", isin="INE1", qty=0.0, price=0.0, value=0.0, charges=0.0):
    return SimpleNamespace(
        transaction_date=day,
        buy_sell=side,
        stock_name=name,
        isin=isin,
        traded_qty=qty,
        trade_price_adjusted=price,
        trade_value_adjusted=value,
        charges=charges,
    )


def realized(name, isin="", qty=1.0, sell_date=date(2025, 1, 10), buy_date=date(2024, 1, 10),
             sell_price=0.0, buy_price=0.0, sell_value=0.0, buy_value=0.0, pl=0.0):
    return SimpleNamespace(
        stock_name=name,
        sector_name="Energy",
        isin=isin,
        closed_qty=qty,
        sell_date=sell_date,
        buy_date=buy_date,
        sell_price=sell_price,
        buy_price=buy_price,
        sell_value=sell_value,
        buy_value=buy_value,
        realized_profit_loss=pl,
    )


class TestSummaryAndPerformers:
    def test_summary(self):
        holdings = [
            holding("A", "INE1", value=1200, invested=1000, pl=200),
            holding("B", "INE2", value=300, invested=500, pl=-200),
        ]

        summary = calculate_summary(holdings, [realized("X", pl=150)])

        assert summary == {
            "currentValue": 1500,
            "totalInvested": 1500,
            "totalProfitLoss": 0,
            "totalRealizedPL": 150,
            "totalReturn": 0,
            "totalReturnPercent": 0,
        }

    def test_summary_without_investment(self):
        assert calculate_summary([], [])["totalReturnPercent"] == 0

    def test_top_and_worst_three(self):
        holdings = [holding(n, f"INE{i}", pct=p) for i, (n, p) in enumerate(
            [("A", 5), ("B", -10), ("C", 40), ("D", 12), ("E", -3)]
        )]

        performers = calculate_performers(holdings)

        assert [p["stockName"] for p in performers["topPerformers"]] == ["C", "D", "A"]
        assert [p["stockName"] for p in performers["worstPerformers"]] == ["B", "E", "A"]


class TestMonthlyAggregates:
    def test_month_label(self):
        assert month_label(date(2016, 3, 14)) == "Mar-16"

    def test_investments_exclude_dividends(self):
        transactions = [
            txn(date(2025, 1, 5), "BUY", "Alpha", qty=10, value=1000),
            txn(date(2025, 1, 20), "BUY", "Beta", qty=1, price=50, charges=2),
            txn(date(2025, 1, 25), "DIVIDEND", "Alpha", value=30),
            txn(date(2025, 2, 3), "SELL", "Alpha", qty=5, value=600),
        ]

        months = calculate_monthly_investments(transactions)

        assert [m["month"] for m in months] == ["Jan-25", "Feb-25"]
        jan, feb = months
        assert jan["investments"] == 1052
        assert jan["withdrawals"] == 0
        assert [d["stockName"] for d in jan["investmentDetails"]] == ["Alpha", "Beta"]
        assert feb["withdrawals"] == 600
        assert feb["withdrawalDetails"] == [{"stockName": "Alpha", "qty": 5, "amount": 600}]

    def test_dividends(self):
        transactions = [
            txn(date(2025, 1, 25), "DIVIDEND", "Alpha", value=30),
            txn(date(2025, 1, 26), "Dividend Credit", "Beta", qty=10, price=2),
            txn(date(2025, 1, 27), "BUY", "Beta", value=999),
        ]

        [jan] = calculate_monthly_dividends(transactions)

        assert jan["month"] == "Jan-25"
        assert jan["amount"] == 50
        assert jan["stockDetails"] == [
            {"stockName": "Alpha", "amount": 30},
            {"stockName": "Beta", "amount": 20},
        ]


class TestMonthlyReturns:
    def test_nearest_price(self):
        prices = pd.Series(
            [100.0, 110.0], index=pd.to_datetime([date(2025, 1, 2), date(2025, 1, 31)])
        )

        assert nearest_price(prices, date(2025, 1, 1)) == 100.0
        assert nearest_price(prices, date(2025, 2, 1)) == 110.0
        assert nearest_price(None, date(2025, 1, 1)) == 0.0

    def test_returns_follow_prices_and_are_capped(self):
        rows = [
            SimpleNamespace(isin="INE1", date=date(2025, 1, 1), close=100.0),
            SimpleNamespace(isin="INE1", date=date(2025, 1, 31), close=110.0),
            SimpleNamespace(isin="INE1", date=date(2025, 2, 1), close=110.0),
            SimpleNamespace(isin="INE1", date=date(2025, 2, 28), close=990.0),
        ]
        transactions = [txn(date(2024, 12, 15), "BUY", qty=10, value=900)]

        returns = calculate_monthly_returns(
            [], transactions, build_price_series(rows), today=date(2025, 2, 15), years=0
        )

        assert [r["month"] for r in returns] == ["Feb-25"]
        assert returns[0]["returnPercent"] == 200.0
        assert returns[0]["returnAmount"] == pytest.approx(8800.0)

    def test_open_quantity_fallback_for_holdings(self):
        rows = [
            SimpleNamespace(isin="INE1", date=date(2025, 2, 1), close=100.0),
            SimpleNamespace(isin="INE1", date=date(2025, 2, 28), close=90.0),
        ]

        [feb] = calculate_monthly_returns(
            [holding("A", "INE1", qty=4)], [], build_price_series(rows), today=date(2025, 2, 20), years=0
        )

        assert feb["returnPercent"] == pytest.approx(-10.0)
        assert feb["returnAmount"] == pytest.approx(-40.0)

    def test_nothing_held(self):
        assert calculate_monthly_returns([], [], {}, today=date(2025, 2, 1)) == []

    def test_statistics(self):
        monthly = [
            {"month": "Dec-24", "returnPercent": 4.0, "returnAmount": 40.0},
            {"month": "Jan-25", "returnPercent": -2.0, "returnAmount": -20.0},
            {"month": "Feb-25", "returnPercent": 6.0, "returnAmount": 60.0},
        ]
        transactions = [txn(date(2024, 2, 15), "BUY", qty=1, value=1000)]

        stats = calculate_return_statistics(monthly, transactions, 1100.0, date(2025, 2, 14))

        assert stats["cagr"] == pytest.approx(10.0, rel=1e-2)
        assert stats["avgReturnOverall"]["percent"] == pytest.approx(8 / 3)
        assert stats["avgReturnCurrentYear"]["percent"] == pytest.approx(2.0)
        assert stats["bestMonthCurrentYear"]["month"] == "Feb-25"
        assert stats["worstMonthCurrentYear"]["month"] == "Jan-25"


class TestIndustryDistribution:
    def test_grouped_by_sector_largest_first(self):
        holdings = [
            holding("A", "INE1", value=100, invested=80, pl=20, sector="IT"),
            holding("B", "INE2", value=300, invested=200, pl=100, sector="Banks"),
            holding("C", "INE3", value=100, invested=120, pl=-20, sector="IT"),
        ]

        distribution = calculate_industry_distribution(holdings)

        assert [d["sector"] for d in distribution] == ["Banks", "IT"]
        banks, it = distribution
        assert banks["percentage"] == pytest.approx(60.0)
        assert banks["overallReturnPercent"] == pytest.approx(50.0)
        assert it["amount"] == 200
        assert it["profitLossAmount"] == 0
        assert it["overallReturnPercent"] == pytest.approx(0.0)

    def test_empty(self):
        assert calculate_industry_distribution([]) == []


class TestRealizedStocks:
    def test_grouped_case_insensitively_and_held_names_excluded(self):
        rows = [
            realized("Reliance Industries", qty=5, sell_price=110, buy_price=100,
                     sell_value=550, buy_value=500, pl=50, sell_date=date(2025, 1, 10)),
            realized("RELIANCE INDUSTRIES ", isin="ine002a01018", qty=5, sell_price=130, buy_price=100,
                     sell_value=650, buy_value=500, pl=150, sell_date=date(2025, 3, 1),
                     buy_date=date(2023, 1, 1)),
            realized("Tata Motors", qty=2, pl=-10, buy_value=100, sell_date=date(2025, 2, 1)),
            realized("Infosys", qty=1, pl=5, sell_date=date(2025, 4, 1)),
        ]
        holdings = [holding("infosys", "INE009A01021")]

        stocks = calculate_realized_stocks(rows, holdings, {"INE002A01018": 140.0})

        assert [s["stockName"] for s in stocks] == ["Reliance Industries", "Tata Motors"]
        reliance = stocks[0]
        assert reliance["isin"] == "INE002A01018"
        assert reliance["qtySold"] == 10
        assert reliance["realizedPL"] == 200
        assert reliance["avgSoldPrice"] == pytest.approx(120.0)
        assert reliance["lastSoldDate"] == "2025-03-01"
        assert reliance["currentValue"] == pytest.approx(1400.0)
        assert reliance["totalPLPercent"] == pytest.approx(20.0)
        assert reliance["holdingPeriodYears"] == 2

    def test_held_isin_excluded(self):
        rows = [realized("Old Name Ltd", isin="INE1", pl=10)]

        assert calculate_realized_stocks(rows, [holding("New Name Ltd", "INE1")]) == []


class TestHoldingReturns:
    TODAY = date(2025, 1, 10)
    FIRST_BUY = date(2022, 11, 15)  # 787 days before TODAY

    def _txns(self):
        return [
            txn(self.FIRST_BUY, "BUY", qty=10, value=1000),
            txn(date(2023, 6, 1), "SELL", qty=2, value=200),
            txn(date(2023, 8, 1), "DIVIDEND", value=50),
            txn(date(2023, 1, 1), "BUY", name="Beta", isin="INE2", qty=5, value=9999),
        ]

    def test_holding_carries_xirr_cagr_and_period(self):
        """
        Given: a holding bought 26 months ago, partly sold since
        When: the holding is serialized with all of the client's transactions
        Then: XIRR counts sales plus market value against purchases of that stock only,
              CAGR compares market value with the investment amount
        """
        alpha = SimpleNamespace(
            stock_name="Alpha", isin="ine1 ", sector_name="IT", open_qty=8, market_price=151.25,
            market_value=1210, investment_amount=800, avg_cost=100, profit_loss_till_date=410,
            profit_loss_till_date_percent=51.25, portfolio_percentage=100, as_on_date=None,
        )

        row = serialize_holding(alpha, self._txns(), self.TODAY)

        assert row["xirr"] == pytest.approx(((1410 / 1000) ** (365 / 787) - 1) * 100)
        assert row["cagr"] == pytest.approx(((1210 / 800) ** (365 / 787) - 1) * 100)
        assert row["holdingPeriodYears"] == 2
        assert row["holdingPeriodMonths"] == 2

    def test_without_transactions_everything_is_zero(self):
        alpha = holding("Alpha", "INE1", value=1210, invested=800, qty=8)

        assert calculate_stock_xirr([], alpha, self.TODAY) == 0
        assert calculate_stock_cagr([], alpha, self.TODAY) == {
            "cagr": 0.0,
            "holdingPeriodYears": 0,
            "holdingPeriodMonths": 0,
        }

    def test_sold_out_position_has_no_cagr(self):
        gone = holding("Alpha", "INE1", value=0, invested=0, qty=0)

        assert calculate_stock_cagr(self._txns(), gone, self.TODAY)["cagr"] == 0

    def test_short_periods_capped_at_500(self):
        alpha = holding("Alpha", "INE1", value=1000, invested=100, qty=1)
        txns = [txn(date(2024, 12, 1), "BUY", qty=1, value=100)]

        assert calculate_stock_xirr(txns, alpha, self.TODAY) == 500
        assert calculate_stock_cagr(txns, alpha, self.TODAY)["cagr"] == 500

    def test_long_periods_capped_at_200(self):
        alpha = holding("Alpha", "INE1", value=1_000_000, invested=100, qty=1)
        txns = [txn(date(2020, 1, 1), "BUY", qty=1, value=100)]

        assert calculate_stock_xirr(txns, alpha, self.TODAY) == 200
        assert calculate_stock_cagr(txns, alpha, self.TODAY)["cagr"] == 200

    def test_cap_annualized_floor(self):
        assert cap_annualized(-250.0, 3) == -100

    def test_portfolio_xirr_blends_with_portfolio_cagr(self):
        alpha = holding("Alpha", "INE1", value=1210, invested=800, qty=8)
        txns = self._txns()[:3]

        stock_xirr = ((1410 / 1000) ** (365 / 787) - 1) * 100
        # (market value + withdrawn) over net invested
        portfolio_cagr = ((1410 / 800) ** (365 / 787) - 1) * 100

        assert calculate_portfolio_xirr([alpha], txns, self.TODAY) == pytest.approx(
            stock_xirr * 0.6 + portfolio_cagr * 0.4
        )

    def test_portfolio_xirr_without_holdings(self):
        txns = [
            txn(date(2024, 1, 10), "BUY", qty=1, value=1000),
            txn(date(2024, 6, 10), "SELL", qty=1, value=1100),
        ]

        assert calculate_portfolio_xirr([], txns, self.TODAY) == pytest.approx(
            ((1100 / 1000) ** (365 / 366) - 1) * 100
        )
        assert calculate_portfolio_xirr([], [], self.TODAY) == 0


class TestDashboardService:
    async def _seed(self, session_factory):
        await add_rows(
            session_factory,
            Holding(client_id="C1", isin="INE1", stock_name="Alpha", sector_name="IT",
                    market_value=1200, investment_amount=1000, profit_loss_till_date=200,
                    profit_loss_till_date_percent=20, open_qty=10),
            Holding(client_id="C2", isin="INE2", stock_name="Other client", market_value=5),
            Transaction(client_id="C1", isin="INE1", stock_name="Alpha", transaction_date=date(2024, 6, 3),
                        buy_sell="BUY", traded_qty=10, trade_value_adjusted=1000),
            RealizedProfitLoss(client_id="C1", stock_name="Beta", closed_qty=1, sell_date=date(2024, 5, 1),
                               buy_date=date(2024, 1, 1), buy_value=100, realized_profit_loss=25),
            StockData(isin="INE1", date=date(2024, 6, 3), close=100.0),
        )

    async def test_compute_dashboard(self, session_factory, dashboard_cache):
        await self._seed(session_factory)

        data = await DashboardService(session_factory, cache=dashboard_cache).compute_dashboard("C1")

        assert data["summary"]["currentValue"] == 1200
        assert data["summary"]["totalRealizedPL"] == 25
        assert [h["stockName"] for h in data["holdings"]] == ["Alpha"]
        assert set(data["holdings"][0]) >= {"xirr", "cagr", "holdingPeriodYears", "holdingPeriodMonths"}
        assert data["summary"]["xirr"] != 0
        assert data["topPerformers"][0]["stockName"] == "Alpha"
        assert data["monthlyInvestments"][0]["month"] == "Jun-24"
        assert data["industryDistribution"][0]["sector"] == "IT"
        assert [s["stockName"] for s in data["realizedStocks"]] == ["Beta"]
        assert isinstance(data["monthlyReturns"], list)
        assert set(data["returnStatistics"]) >= {"cagr", "avgReturnOverall"}

    async def test_get_dashboard_serves_from_cache(self, session_factory, dashboard_cache, fake_async_redis):
        await self._seed(session_factory)
        service = DashboardService(session_factory, cache=dashboard_cache)

        first = await service.get_dashboard("C1")
        assert await fake_async_redis.get(cache_key("C1")) is not None

        # a write that bypasses the import service is not seen until invalidation
        await add_rows(session_factory, Holding(client_id="C1", isin="INE9", stock_name="Late", market_value=1))
        cached = await service.get_dashboard("C1")
        await dashboard_cache.invalidate("C1")
        fresh = await service.get_dashboard("C1")

        assert cached["summary"] == first["summary"]
        assert fresh["summary"]["currentValue"] == 1201
