from sqlalchemy import BigInteger, Column, Date, Float, String, UniqueConstraint
from folio.core.database import Base
from folio.models.base import IdMixin, LastUpdatedMixin

class StockData(Base, IdMixin, LastUpdatedMixin):
    """
    Daily OHLCV series per ISIN, plus the NSE quote fields captured for the day.
    """
    __tablename__ = "stockdata"
    __table_args__ = (
        UniqueConstraint("isin", "date", name="uq_stockdata_isin_date"),
    )

    isin = Column(String(20), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    stock_name = Column(String(255), nullable=False, default="")
    symbol = Column(String(30))
    exchange = Column(String(10))
    open = Column(Float)
    high = Column(Float)
    low = Column(Float)
    close = Column(Float)
    volume = Column(BigInteger)
    pe = Column(Float)
    total_traded_volume = Column(BigInteger)
    total_buy_quantity = Column(BigInteger)
    total_sell_quantity = Column(BigInteger)
