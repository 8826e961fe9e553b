"""
Dashboard aggregation.

Builds the dashboard payload for one client from raw holdings, transactions,
realized P&L rows and stored prices. The pure ``calculate_*`` helpers take
model instances (or anything with the same attributes) so they can be tested
without a database. Results are cached per client by DashboardCache.
"""
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from folio.core.clock import local_today
from folio.core.config import settings
from folio.core.database import get_session_factory
from folio.models.holding import Holding
from folio.models.realized_profit_loss import RealizedProfitLoss
from folio.models.stock_data import StockData
from folio.models.transaction import Transaction
from folio.services.dashboard_cache import DashboardCache

logger = logging.getLogger(__name__)

TOP_PERFORMERS = 3
MONTHLY_RETURN_FLOOR = -100.0
MONTHLY_RETURN_CAP = 200.0
SHORT_PERIOD_RETURN_CAP = 500.0
LONG_PERIOD_RETURN_CAP = 200.0


def month_label(day: date) -> str:
    """2016-03-14 -> 'Mar-16'"""
    return day.strftime("%b-%y")


def is_dividend(txn: Any) -> bool:
    return "DIVIDEND" in (txn.buy_sell or "").upper()


def trade_value(txn: Any) -> float:
    """Adjusted trade value, or price * qty + charges when the broker left it blank."""
    value = txn.trade_value_adjusted or 0
    if value == 0 and txn.trade_price_adjusted and txn.traded_qty:
        value = txn.trade_price_adjusted * txn.traded_qty + (txn.charges or 0)
    return float(value)


def _months_between(start: date, end: date) -> List[date]:
    months = []
    current = start.replace(day=1)
    while current <= end:
        months.append(current)
        current = (current + timedelta(days=32)).replace(day=1)
    return months


def _month_end(month_start: date) -> date:
    return (month_start + timedelta(days=32)).replace(day=1) - timedelta(days=1)


def calculate_summary(holdings: Sequence[Any], realized: Sequence[Any]) -> Dict[str, float]:
    current_value = sum(h.market_value or 0 for h in holdings)
    total_invested = sum(h.investment_amount or 0 for h in holdings)
    total_return = current_value - total_invested
    return {
        "currentValue": current_value,
        "totalInvested": total_invested,
        "totalProfitLoss": sum(h.profit_loss_till_date or 0 for h in holdings),
        "totalRealizedPL": sum(r.realized_profit_loss or 0 for r in realized),
        "totalReturn": total_return,
        "totalReturnPercent": (total_return / total_invested * 100) if total_invested > 0 else 0,
    }


def _performer(holding: Any) -> Dict[str, Any]:
    return {
        "stockName": holding.stock_name,
        "isin": holding.isin,
        "profitLossPercent": holding.profit_loss_till_date_percent,
        "profitLoss": holding.profit_loss_till_date,
        "marketValue": holding.market_value,
    }


def calculate_performers(holdings: Sequence[Any]) -> Dict[str, List[Dict[str, Any]]]:
    ranked = sorted(holdings, key=lambda h: h.profit_loss_till_date_percent or 0, reverse=True)
    worst = sorted(holdings, key=lambda h: h.profit_loss_till_date_percent or 0)
    return {
        "topPerformers": [_performer(h) for h in ranked[:TOP_PERFORMERS]],
        "worstPerformers": [_performer(h) for h in worst[:TOP_PERFORMERS]],
    }


def _grouped_details(details: Dict[str, Dict[str, float]]) -> List[Dict[str, Any]]:
    rows = [{"stockName": name, **values} for name, values in details.items()]
    return sorted(rows, key=lambda d: d["amount"], reverse=True)


def calculate_monthly_investments(transactions: Iterable[Any]) -> List[Dict[str, Any]]:
    """Money put in (BUY) and taken out (SELL) per month, grouped by stock. Dividends are skipped."""
    months: Dict[str, Dict[str, Any]] = {}
    for txn in sorted(transactions, key=lambda t: t.transaction_date):
        if is_dividend(txn):
            continue
        side = (txn.buy_sell or "").upper()
        if side not in ("BUY", "SELL"):
            continue

        label = month_label(txn.transaction_date)
        bucket = months.setdefault(
            label,
            {
                "investments": 0.0,
                "withdrawals": 0.0,
                "buy": defaultdict(lambda: {"qty": 0.0, "amount": 0.0}),
                "sell": defaultdict(lambda: {"qty": 0.0, "amount": 0.0}),
            },
        )
        value = trade_value(txn)
        name = txn.stock_name or "Unknown"
        if side == "BUY":
            bucket["investments"] += value
            details = bucket["buy"][name]
        else:
            bucket["withdrawals"] += value
            details = bucket["sell"][name]
        details["qty"] += txn.traded_qty or 0
        details["amount"] += value

    return [
        {
            "month": label,
            "investments": bucket["investments"],
            "withdrawals": bucket["withdrawals"],
            "investmentDetails": _grouped_details(bucket["buy"]),
            "withdrawalDetails": _grouped_details(bucket["sell"]),
        }
        for label, bucket in months.items()
    ]


def calculate_monthly_dividends(transactions: Iterable[Any]) -> List[Dict[str, Any]]:
    months: Dict[str, Dict[str, Any]] = {}
    for txn in sorted(transactions, key=lambda t: t.transaction_date):
        if not is_dividend(txn):
            continue
        value = txn.trade_value_adjusted or 0
        if value == 0 and txn.trade_price_adjusted and txn.traded_qty:
            value = txn.trade_price_adjusted * txn.traded_qty

        bucket = months.setdefault(
            month_label(txn.transaction_date), {"amount": 0.0, "stocks": defaultdict(float)}
        )
        bucket["amount"] += value
        bucket["stocks"][txn.stock_name or "Unknown"] += value

    return [
        {
            "month": label,
            "amount": bucket["amount"],
            "stockDetails": sorted(
                ({"stockName": name, "amount": amount} for name, amount in bucket["stocks"].items()),
                key=lambda d: d["amount"],
                reverse=True,
            ),
        }
        for label, bucket in months.items()
    ]


def build_price_series(rows: Iterable[Any]) -> Dict[str, pd.Series]:
    """(isin, date, close) rows -> close price series per ISIN, indexed by date."""
    frame = pd.DataFrame([(r.isin, r.date, r.close) for r in rows], columns=["isin", "date", "close"])
    if frame.empty:
        return {}
    frame["date"] = pd.to_datetime(frame["date"])
    frame["close"] = frame["close"].fillna(0.0)
    series = {}
    for isin, group in frame.groupby("isin"):
        prices = group.drop_duplicates("date", keep="last").set_index("date")["close"].sort_index()
        series[isin] = prices
    return series


def nearest_price(prices: Optional[pd.Series], target: date) -> float:
    """Close on the stored day nearest to ``target`` (either side), 0 when unknown."""
    if prices is None or prices.empty:
        return 0.0
    position = prices.index.get_indexer([pd.Timestamp(target)], method="nearest")[0]
    return float(prices.iloc[position])


def _quantity_change(txn: Any) -> float:
    side = (txn.buy_sell or "").upper()
    if side == "BUY":
        return txn.traded_qty or 0
    if side == "SELL":
        return -(txn.traded_qty or 0)
    return 0


def calculate_monthly_returns(
    holdings: Sequence[Any],
    transactions: Sequence[Any],
    prices: Dict[str, pd.Series],
    today: date,
    years: int = 5,
) -> List[Dict[str, Any]]:
    """
    Month-on-month portfolio return from stored closing prices.

    Quantities at the start of each month come from the transactions up to
    that day; a currently held stock with no such quantity falls back to its
    open quantity. Each month's return is capped to [-100, 200] percent.
    """
    if not holdings and not transactions:
        return []

    start = date(today.year - years, today.month, 1)
    ordered = sorted(transactions, key=lambda t: t.transaction_date)

    results = []
    for month_start in _months_between(start, today):
        quantities: Dict[str, float] = defaultdict(float)
        for txn in ordered:
            if txn.transaction_date > month_start:
                break
            quantities[txn.isin] += _quantity_change(txn)
        for holding in holdings:
            if not quantities.get(holding.isin):
                quantities[holding.isin] = holding.open_qty or 0

        month_end = _month_end(month_start)
        value_start = 0.0
        value_end = 0.0
        for isin, qty in quantities.items():
            if qty <= 0:
                continue
            price_start = nearest_price(prices.get(isin), month_start)
            if price_start <= 0:
                continue
            price_end = nearest_price(prices.get(isin), month_end)
            value_start += price_start * qty
            value_end += (price_end if price_end > 0 else price_start) * qty

        return_amount = value_end - value_start
        return_percent = 0.0
        if value_start > 0:
            return_percent = float(
                np.clip(return_amount / value_start * 100, MONTHLY_RETURN_FLOOR, MONTHLY_RETURN_CAP)
            )
        results.append(
            {"month": month_label(month_start), "returnPercent": return_percent, "returnAmount": return_amount}
        )
    return results


def calculate_return_statistics(
    monthly_returns: Sequence[Dict[str, Any]],
    transactions: Sequence[Any],
    current_value: float,
    today: date,
) -> Dict[str, Any]:
    stats: Dict[str, Any] = {
        "cagr": 0.0,
        "avgReturnOverall": {"percent": 0.0, "amount": 0.0},
        "avgReturnCurrentYear": {"percent": 0.0, "amount": 0.0},
        "bestMonthCurrentYear": {"month": "", "percent": 0.0, "amount": 0.0},
        "worstMonthCurrentYear": {"month": "", "percent": 0.0, "amount": 0.0},
    }

    buys = [t for t in transactions if (t.buy_sell or "").upper() == "BUY"]
    if buys:
        invested = sum(trade_value(t) for t in buys)
        withdrawn = sum(trade_value(t) for t in transactions if (t.buy_sell or "").upper() == "SELL")
        net_invested = invested - withdrawn
        effective = net_invested if net_invested > 0 else invested
        total_value = current_value + withdrawn
        first_buy = min(t.transaction_date for t in buys)
        years = max(1, (today - first_buy).days) / 365
        if effective > 0 and total_value > 0:
            stats["cagr"] = ((total_value / effective) ** (1 / years) - 1) * 100

    if not monthly_returns:
        return stats

    frame = pd.DataFrame(monthly_returns)
    stats["avgReturnOverall"] = {
        "percent": float(frame["returnPercent"].mean()),
        "amount": float(frame["returnAmount"].mean()),
    }

    this_year = frame[frame["month"].str.endswith(today.strftime("-%y"))]
    if not this_year.empty:
        stats["avgReturnCurrentYear"] = {
            "percent": float(this_year["returnPercent"].mean()),
            "amount": float(this_year["returnAmount"].mean()),
        }
        best = this_year.loc[this_year["returnPercent"].idxmax()]
        worst = this_year.loc[this_year["returnPercent"].idxmin()]
        stats["bestMonthCurrentYear"] = {
            "month": best["month"],
            "percent": float(best["returnPercent"]),
            "amount": float(best["returnAmount"]),
        }
        stats["worstMonthCurrentYear"] = {
            "month": worst["month"],
            "percent": float(worst["returnPercent"]),
            "amount": float(worst["returnAmount"]),
        }
    return stats


def cap_annualized(value: float, years: float) -> float:
    """Annualized returns over short periods blow up: [-100, 500] under a year, [-100, 200] after."""
    upper = SHORT_PERIOD_RETURN_CAP if years < 1 else LONG_PERIOD_RETURN_CAP
    return float(np.clip(value, -100.0, upper))


def _annualized(ratio: float, years: float) -> float:
    if ratio <= 0 or years <= 0:
        return 0.0
    value = (ratio ** (1 / years) - 1) * 100
    if not np.isfinite(value):
        return 0.0
    return cap_annualized(value, years)


def _transactions_for(transactions: Iterable[Any], isin: str) -> List[Any]:
    key = (isin or "").strip().upper()
    return [t for t in transactions if (t.isin or "").strip().upper() == key]


def calculate_stock_xirr(transactions: Sequence[Any], holding: Any, today: date) -> float:
    """
    Approximate XIRR for one stock: total money back (sales plus current
    market value) over total money in, annualized from the first trade.
    """
    invested = 0.0
    returned = 0.0
    dates = []
    for txn in transactions:
        side = (txn.buy_sell or "").upper()
        if side == "BUY":
            invested += abs(trade_value(txn))
        elif side == "SELL":
            returned += abs(trade_value(txn))
        else:
            continue
        if txn.transaction_date:
            dates.append(txn.transaction_date)

    if (holding.open_qty or 0) > 0 and (holding.market_value or 0) > 0:
        returned += holding.market_value

    if not dates or invested <= 0:
        return 0.0
    years = max(1, (today - min(dates)).days) / 365
    return _annualized(returned / invested, years)


def calculate_stock_cagr(transactions: Sequence[Any], holding: Any, today: date) -> Dict[str, float]:
    """CAGR of market value over investment amount since the first BUY, plus the holding period."""
    result = {"cagr": 0.0, "holdingPeriodYears": 0, "holdingPeriodMonths": 0}
    if not holding.open_qty:
        return result

    buys = [t.transaction_date for t in transactions if (t.buy_sell or "").upper() == "BUY" and t.transaction_date]
    if not buys:
        return result
    first_buy = min(buys)

    months = max(0, (today.year - first_buy.year) * 12 + (today.month - first_buy.month))
    result["holdingPeriodYears"] = months // 12
    result["holdingPeriodMonths"] = months % 12

    invested = holding.investment_amount or 0
    value = holding.market_value or 0
    if invested > 0 and value > 0:
        years = max(1, (today - first_buy).days) / 365
        result["cagr"] = _annualized(value / invested, years)
    return result


def calculate_portfolio_xirr(
    holdings: Sequence[Any],
    transactions: Sequence[Any],
    today: date,
) -> float:
    """
    Portfolio XIRR: per-stock XIRR weighted by current market value, blended
    60/40 with the portfolio CAGR when the two differ by more than five
    points. With nothing currently held it is the portfolio CAGR alone.
    """
    if not transactions:
        return 0.0

    weighted = 0.0
    weight = 0.0
    for holding in holdings:
        stock_txns = _transactions_for(transactions, holding.isin)
        if stock_txns and (holding.market_value or 0) > 0:
            weighted += calculate_stock_xirr(stock_txns, holding, today) * holding.market_value
            weight += holding.market_value

    buys = [t for t in transactions if (t.buy_sell or "").upper() == "BUY" and t.transaction_date]
    invested = sum(trade_value(t) for t in buys)
    withdrawn = sum(trade_value(t) for t in transactions if (t.buy_sell or "").upper() == "SELL")
    net_invested = invested - withdrawn
    total_value = weight + withdrawn

    portfolio_cagr = 0.0
    if buys:
        years = max(1, (today - min(t.transaction_date for t in buys)).days) / 365
        base = net_invested if net_invested > 0 else invested
        if base > 0 and total_value > 0:
            portfolio_cagr = _annualized(total_value / base, years)

    if weight == 0:
        return portfolio_cagr

    weighted_xirr = weighted / weight
    if abs(weighted_xirr - portfolio_cagr) > 5:
        return weighted_xirr * 0.6 + portfolio_cagr * 0.4
    return weighted_xirr


def calculate_industry_distribution(holdings: Sequence[Any]) -> List[Dict[str, Any]]:
    """Market value, share and return per sector, largest sector first."""
    if not holdings:
        return []

    frame = pd.DataFrame(
        {
            "sector": [h.sector_name or "Unknown" for h in holdings],
            "amount": [h.market_value or 0 for h in holdings],
            "invested": [h.investment_amount or 0 for h in holdings],
            "profit_loss": [h.profit_loss_till_date or 0 for h in holdings],
        }
    )
    total_value = frame["amount"].sum()
    grouped = frame.groupby("sector", sort=False).sum().sort_values("amount", ascending=False)

    distribution = []
    for sector, row in grouped.iterrows():
        invested = row["invested"]
        distribution.append(
            {
                "sector": sector,
                "amount": float(row["amount"]),
                "percentage": float(row["amount"] / total_value * 100) if total_value > 0 else 0.0,
                "overallReturnPercent": float((row["amount"] - invested) / invested * 100) if invested > 0 else 0.0,
                "profitLossPercent": float(row["profit_loss"] / invested * 100) if invested > 0 else 0.0,
                "profitLossAmount": float(row["profit_loss"]),
            }
        )
    return distribution


def _holding_period(first_buy: date, last_sell: date) -> Dict[str, int]:
    days = max(1, (last_sell - first_buy).days)
    if days < 30:
        return {"holdingPeriodYears": 0, "holdingPeriodMonths": 0, "holdingPeriodDays": days}
    months = days // 30
    return {"holdingPeriodYears": months // 12, "holdingPeriodMonths": months % 12, "holdingPeriodDays": 0}


def calculate_realized_stocks(
    realized: Sequence[Any],
    holdings: Sequence[Any],
    current_prices: Optional[Dict[str, float]] = None,
) -> List[Dict[str, Any]]:
    """
    Closed positions grouped by stock name (case-insensitive), most recently
    sold first. Stocks that are still held are left out.
    """
    current_prices = current_prices or {}
    held_names = {(h.stock_name or "").strip().lower() for h in holdings}
    held_isins = {(h.isin or "").strip().upper() for h in holdings} - {""}

    groups: Dict[str, Dict[str, Any]] = {}
    for row in realized:
        name_key = (row.stock_name or "").strip().lower()
        isin = (row.isin or "").strip().upper()
        if not name_key or name_key in held_names or (isin and isin in held_isins):
            continue

        group = groups.setdefault(
            name_key,
            {
                "stockName": (row.stock_name or "").strip(),
                "sectorName": (row.sector_name or "").strip() or "Unknown",
                "isin": isin,
                "qty": 0.0,
                "sell_value": 0.0,
                "buy_value": 0.0,
                "realized": 0.0,
                "sell_prices": [],
                "buy_prices": [],
                "last_sell": None,
                "first_buy": None,
            },
        )
        if not group["isin"] and isin:
            group["isin"] = isin
        group["qty"] += row.closed_qty or 0
        group["sell_value"] += row.sell_value or 0
        group["buy_value"] += row.buy_value or 0
        group["realized"] += row.realized_profit_loss or 0
        if row.sell_price and row.sell_price > 0:
            group["sell_prices"].append(row.sell_price)
        if row.buy_price and row.buy_price > 0:
            group["buy_prices"].append(row.buy_price)
        if row.sell_date and (group["last_sell"] is None or row.sell_date > group["last_sell"]):
            group["last_sell"] = row.sell_date
        if row.buy_date and (group["first_buy"] is None or row.buy_date < group["first_buy"]):
            group["first_buy"] = row.buy_date

    stocks = []
    for group in groups.values():
        if group["qty"] <= 0 and group["realized"] == 0:
            continue
        qty = group["qty"] if group["qty"] > 0 else 1
        last_sell = group["last_sell"] or group["first_buy"]
        first_buy = group["first_buy"] or group["last_sell"]
        if last_sell is None:
            continue

        avg_sold = float(np.mean(group["sell_prices"])) if group["sell_prices"] else group["sell_value"] / qty
        avg_cost = float(np.mean(group["buy_prices"])) if group["buy_prices"] else group["buy_value"] / qty
        current_price = current_prices.get(group["isin"], 0.0) if group["isin"] else 0.0
        current_value = current_price * qty if current_price > 0 else 0.0
        invested = group["buy_value"]

        stocks.append(
            {
                "stockName": group["stockName"],
                "sectorName": group["sectorName"],
                "isin": group["isin"],
                "qtySold": qty,
                "avgCost": avg_cost,
                "avgSoldPrice": avg_sold,
                "totalInvested": invested,
                "lastSoldDate": last_sell.isoformat(),
                "currentPrice": current_price,
                "currentValue": current_value,
                "realizedPL": group["realized"],
                "unrealizedPL": current_value - invested if current_price > 0 else 0.0,
                "totalPL": group["realized"],
                "totalPLPercent": group["realized"] / invested * 100 if invested > 0 else 0.0,
                **_holding_period(first_buy, last_sell),
            }
        )

    return sorted(stocks, key=lambda s: s["lastSoldDate"], reverse=True)


def serialize_holding(
    holding: Holding,
    transactions: Sequence[Any] = (),
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Holding row plus XIRR, CAGR and holding period from that stock's own transactions."""
    today = today or local_today()
    stock_txns = _transactions_for(transactions, holding.isin)
    return {
        "stockName": holding.stock_name,
        "isin": holding.isin,
        "sectorName": holding.sector_name,
        "openQty": holding.open_qty,
        "marketPrice": holding.market_price,
        "marketValue": holding.market_value,
        "investmentAmount": holding.investment_amount,
        "avgCost": holding.avg_cost,
        "profitLossTillDate": holding.profit_loss_till_date,
        "profitLossTillDatePercent": holding.profit_loss_till_date_percent,
        "portfolioPercentage": holding.portfolio_percentage,
        "asOnDate": holding.as_on_date.isoformat() if holding.as_on_date else None,
        "xirr": calculate_stock_xirr(stock_txns, holding, today),
        **calculate_stock_cagr(stock_txns, holding, today),
    }


class DashboardService:
    """Computes (or serves from cache) the dashboard for one client."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        cache: DashboardCache | None = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.cache = cache or DashboardCache()

    async def get_dashboard(self, client_id: str) -> Dict[str, Any]:
        cached = await self.cache.get(client_id)
        if cached is not None:
            logger.debug("Dashboard cache hit for client %s", client_id)
            return cached

        data = await self.compute_dashboard(client_id)
        await self.cache.set(client_id, data)
        return data

    async def compute_dashboard(self, client_id: str) -> Dict[str, Any]:
        today = local_today()
        years = settings.DASHBOARD_MONTHLY_RETURN_YEARS

        async with self.session_factory() as session:
            holdings = (
                await session.execute(select(Holding).where(Holding.client_id == client_id))
            ).scalars().all()
            transactions = (
                await session.execute(
                    select(Transaction)
                    .where(Transaction.client_id == client_id)
                    .order_by(Transaction.transaction_date)
                )
            ).scalars().all()
            realized = (
                await session.execute(
                    select(RealizedProfitLoss).where(RealizedProfitLoss.client_id == client_id)
                )
            ).scalars().all()

            held_isins = {h.isin for h in holdings} | {t.isin for t in transactions}
            # A month of slack so the first month can still find a nearby close
            price_floor = date(today.year - years, today.month, 1) - timedelta(days=31)
            price_rows = []
            if held_isins:
                price_rows = (
                    await session.execute(
                        select(StockData.isin, StockData.date, StockData.close).where(
                            StockData.isin.in_(held_isins),
                            StockData.date >= price_floor,
                            StockData.close.is_not(None),
                        )
                    )
                ).all()

            realized_isins = {(r.isin or "").strip().upper() for r in realized} - {""}
            current_prices = await self._latest_closes(session, realized_isins)

        logger.info(
            "Computing dashboard for client %s: %s holdings, %s transactions, %s realized rows",
            client_id,
            len(holdings),
            len(transactions),
            len(realized),
        )

        summary = calculate_summary(holdings, realized)
        summary["xirr"] = calculate_portfolio_xirr(holdings, transactions, today)
        monthly_returns = calculate_monthly_returns(
            holdings, transactions, build_price_series(price_rows), today, years
        )
        return {
            "summary": summary,
            **calculate_performers(holdings),
            "holdings": [serialize_holding(h, transactions, today) for h in holdings],
            "monthlyInvestments": calculate_monthly_investments(transactions),
            "monthlyDividends": calculate_monthly_dividends(transactions),
            "monthlyReturns": monthly_returns,
            "returnStatistics": calculate_return_statistics(
                monthly_returns, transactions, summary["currentValue"], today
            ),
            "industryDistribution": calculate_industry_distribution(holdings),
            "realizedStocks": calculate_realized_stocks(realized, holdings, current_prices),
        }

    async def _latest_closes(self, session: AsyncSession, isins: set[str]) -> Dict[str, float]:
        if not isins:
            return {}
        latest = (
            select(StockData.isin, func.max(StockData.date).label("date"))
            .where(StockData.isin.in_(isins), StockData.close.is_not(None))
            .group_by(StockData.isin)
            .subquery()
        )
        rows = (
            await session.execute(
                select(StockData.isin, StockData.close).join(
                    latest, (StockData.isin == latest.c.isin) & (StockData.date == latest.c.date)
                )
            )
        ).all()
        return {row.isin: float(row.close) for row in rows}
