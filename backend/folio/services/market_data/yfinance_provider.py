import yfinance as yf
from folio.services.market_data.base import MarketDataProvider
from datetime import date, timedelta
import pandas as pd
import logging

logger = logging.getLogger(__name__)

# Yahoo Finance ticker suffix per Indian exchange
EXCHANGE_SUFFIXES = {
    "NSE": ".NS",
    "BSE": ".BO",
}

COLUMNS = ["date", "open", "high", "low", "close", "volume"]


def yahoo_symbol(symbol: str, exchange: str) -> str:
    """RELIANCE on NSE -> RELIANCE.NS"""
    suffix = EXCHANGE_SUFFIXES.get((exchange or "NSE").upper(), ".NS")
    return f"{symbol.strip().upper()}{suffix}"


class YFinanceProvider(MarketDataProvider):
    """yfinance provider for NSE/BSE daily history."""

    def fetch_daily_bars(self, symbol: str, exchange: str, start_date: date, end_date: date) -> pd.DataFrame:
        if not symbol:
            return pd.DataFrame(columns=COLUMNS)

        ticker = yahoo_symbol(symbol, exchange)
        try:
            # yfinance treats `end` as exclusive
            data = yf.download(
                tickers=ticker,
                start=start_date.isoformat(),
                end=(end_date + timedelta(days=1)).isoformat(),
                interval="1d",
                auto_adjust=False,
                progress=False,
                multi_level_index=False,
            )
        except Exception as e:
            logger.error(f"yfinance download failed for {ticker}: {e}")
            return pd.DataFrame(columns=COLUMNS)

        if data is None or data.empty:
            logger.info(f"No yfinance data for {ticker}")
            return pd.DataFrame(columns=COLUMNS)

        # Older yfinance releases still return (Price, Ticker) columns for one ticker
        if isinstance(data.columns, pd.MultiIndex):
            data.columns = data.columns.get_level_values(0)

        result = data.copy()
        result.index.name = 'date'
        result = result.reset_index()

        cols_map = {
            'Date': 'date',
            'Open': 'open',
            'High': 'high',
            'Low': 'low',
            'Close': 'close',
            'Volume': 'volume'
        }
        result.rename(columns=cols_map, inplace=True)
        result['date'] = pd.to_datetime(result['date']).dt.date

        # Holidays can come back as all-NaN rows
        return result[COLUMNS].dropna(subset=['close'])
