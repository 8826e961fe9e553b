# Base
from folio.models.base import LastUpdatedMixin, IdMixin

# Instruments & market data
from folio.models.stock_master import StockMaster
from folio.models.stock_data import StockData
from folio.models.corporate_info import CorporateInfo

# Portfolio
from folio.models.holding import Holding
from folio.models.transaction import Transaction
from folio.models.realized_profit_loss import RealizedProfitLoss

__all__ = [
    "LastUpdatedMixin",
    "IdMixin",
    "StockMaster",
    "StockData",
    "CorporateInfo",
    "Holding",
    "Transaction",
    "RealizedProfitLoss",
]
