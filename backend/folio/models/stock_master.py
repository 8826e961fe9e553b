from sqlalchemy import Boolean, Column, Float, String
from folio.core.database import Base
from folio.models.base import LastUpdatedMixin

class StockMaster(Base, LastUpdatedMixin):
    """
    Master table for instruments, keyed by ISIN.

    Sector, industry and PE fields are filled in opportunistically by the
    NSE refresh jobs.
    """
    __tablename__ = "stockmasters"

    isin = Column(String(20), primary_key=True)
    stock_name = Column(String(255), nullable=False)
    symbol = Column(String(30), index=True)
    exchange = Column(String(10))  # NSE, BSE
    sector = Column(String(100))
    industry = Column(String(150))
    pd_symbol_pe = Column(Float)
    pd_sector_pe = Column(Float)
    pd_sector_ind = Column(String(150))
    is_fno_sec = Column(Boolean)
