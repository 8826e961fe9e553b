from abc import ABC, abstractmethod
from datetime import date
import pandas as pd

class MarketDataProvider(ABC):
    """Abstract base class for historical market data providers."""

    @abstractmethod
    def fetch_daily_bars(
        self,
        symbol: str,
        exchange: str,
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        """
        Fetch daily OHLCV bars for one exchange-listed symbol.
        Returns DataFrame with columns: [date, open, high, low, close, volume]
        (empty when the provider has no data). ``end_date`` is inclusive.
        """
        pass
