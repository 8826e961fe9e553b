from sqlalchemy import Column, Date, Float, String, UniqueConstraint
from folio.core.database import Base
from folio.models.base import IdMixin, LastUpdatedMixin

class Holding(Base, IdMixin, LastUpdatedMixin):
    """
    A client's current position in one instrument.
    """
    __tablename__ = "holdings"
    __table_args__ = (
        UniqueConstraint("client_id", "isin", name="uq_holdings_client_isin"),
    )

    client_id = Column(String(50), nullable=False, index=True)
    client_name = Column(String(255), nullable=False, default="")
    isin = Column(String(20), nullable=False, index=True)
    stock_name = Column(String(255), nullable=False)
    sector_name = Column(String(100), nullable=False, default="Unknown")
    portfolio_percentage = Column(Float, nullable=False, default=0.0)
    open_qty = Column(Float, nullable=False, default=0.0)
    market_price = Column(Float, nullable=False, default=0.0)
    market_value = Column(Float, nullable=False, default=0.0)
    investment_amount = Column(Float, nullable=False, default=0.0)
    avg_cost = Column(Float, nullable=False, default=0.0)
    profit_loss_till_date = Column(Float, nullable=False, default=0.0)
    profit_loss_till_date_percent = Column(Float, nullable=False, default=0.0)
    as_on_date = Column(Date)
