from sqlalchemy import Column, Date, Float, String, UniqueConstraint
from folio.core.database import Base
from folio.models.base import IdMixin, LastUpdatedMixin

class Transaction(Base, IdMixin, LastUpdatedMixin):
    """
    Broker transaction (BUY, SELL or a dividend credit).
    """
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint(
            "client_id",
            "isin",
            "transaction_date",
            "buy_sell",
            "traded_qty",
            name="uq_transactions_client_isin_date_side_qty",
        ),
    )

    client_id = Column(String(50), nullable=False, index=True)
    isin = Column(String(20), nullable=False, index=True)
    stock_name = Column(String(255), nullable=False)
    sector_name = Column(String(100), nullable=False, default="Unknown")
    transaction_date = Column(Date, nullable=False)
    source = Column(String(50), nullable=False, default="")
    buy_sell = Column(String(30), nullable=False)
    traded_qty = Column(Float, nullable=False, default=0.0)
    trade_price_adjusted = Column(Float, nullable=False, default=0.0)
    charges = Column(Float, nullable=False, default=0.0)
    trade_value_adjusted = Column(Float, nullable=False, default=0.0)
