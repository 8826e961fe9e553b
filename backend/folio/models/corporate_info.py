from sqlalchemy import JSON, Column, String
from folio.core.database import Base
from folio.models.base import LastUpdatedMixin

class CorporateInfo(Base, LastUpdatedMixin):
    """
    Corporate data snapshot per ISIN.

    Each list column holds JSON objects whose dates are ISO ``YYYY-MM-DD``
    strings.
    """
    __tablename__ = "corporateinfo"

    isin = Column(String(20), primary_key=True)
    symbol = Column(String(30), index=True)
    stock_name = Column(String(255))
    announcements = Column(JSON, nullable=False, default=list)
    corporate_actions = Column(JSON, nullable=False, default=list)
    board_meetings = Column(JSON, nullable=False, default=list)
    financial_results = Column(JSON, nullable=False, default=list)
    shareholding_patterns = Column(JSON, nullable=False, default=list)
