from sqlalchemy import Column, Date, Float, String, UniqueConstraint
from folio.core.database import Base
from folio.models.base import IdMixin, LastUpdatedMixin

class RealizedProfitLoss(Base, IdMixin, LastUpdatedMixin):
    """
    One closed-position event from the broker's realized P&L statement.

    ISIN is often missing in newer statements, so rows are keyed and matched
    to stocks by name.
    """
    __tablename__ = "realizedprofitloss"
    __table_args__ = (
        UniqueConstraint(
            "client_id",
            "stock_name",
            "sell_date",
            "buy_date",
            "closed_qty",
            name="uq_realized_client_stock_dates_qty",
        ),
    )

    client_id = Column(String(50), nullable=False, index=True)
    stock_name = Column(String(255), nullable=False, index=True)
    sector_name = Column(String(100), nullable=False, default="Unknown")
    isin = Column(String(20), nullable=False, default="", index=True)
    closed_qty = Column(Float, nullable=False)
    sell_date = Column(Date, nullable=False)
    sell_price = Column(Float, nullable=False, default=0.0)
    sell_value = Column(Float, nullable=False, default=0.0)
    buy_date = Column(Date, nullable=False)
    buy_price = Column(Float, nullable=False, default=0.0)
    buy_value = Column(Float, nullable=False, default=0.0)
    realized_profit_loss = Column(Float, nullable=False, default=0.0)
