"""Initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2025-06-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _last_updated() -> sa.Column:
    return sa.Column("last_updated", sa.DateTime(), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "stockmasters",
        sa.Column("isin", sa.String(length=20), nullable=False),
        sa.Column("stock_name", sa.String(length=255), nullable=False),
        sa.Column("symbol", sa.String(length=30), nullable=True),
        sa.Column("exchange", sa.String(length=10), nullable=True),
        sa.Column("sector", sa.String(length=100), nullable=True),
        sa.Column("industry", sa.String(length=150), nullable=True),
        sa.Column("pd_symbol_pe", sa.Float(), nullable=True),
        sa.Column("pd_sector_pe", sa.Float(), nullable=True),
        sa.Column("pd_sector_ind", sa.String(length=150), nullable=True),
        sa.Column("is_fno_sec", sa.Boolean(), nullable=True),
        _last_updated(),
        sa.PrimaryKeyConstraint("isin"),
    )
    op.create_index("ix_stockmasters_symbol", "stockmasters", ["symbol"])

    op.create_table(
        "stockdata",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("isin", sa.String(length=20), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("stock_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("symbol", sa.String(length=30), nullable=True),
        sa.Column("exchange", sa.String(length=10), nullable=True),
        sa.Column("open", sa.Float(), nullable=True),
        sa.Column("high", sa.Float(), nullable=True),
        sa.Column("low", sa.Float(), nullable=True),
        sa.Column("close", sa.Float(), nullable=True),
        sa.Column("volume", sa.BigInteger(), nullable=True),
        sa.Column("pe", sa.Float(), nullable=True),
        sa.Column("total_traded_volume", sa.BigInteger(), nullable=True),
        sa.Column("total_buy_quantity", sa.BigInteger(), nullable=True),
        sa.Column("total_sell_quantity", sa.BigInteger(), nullable=True),
        _last_updated(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("isin", "date", name="uq_stockdata_isin_date"),
    )
    op.create_index("ix_stockdata_isin", "stockdata", ["isin"])
    op.create_index("ix_stockdata_date", "stockdata", ["date"])

    op.create_table(
        "corporateinfo",
        sa.Column("isin", sa.String(length=20), nullable=False),
        sa.Column("symbol", sa.String(length=30), nullable=True),
        sa.Column("stock_name", sa.String(length=255), nullable=True),
        sa.Column("announcements", sa.JSON(), nullable=False),
        sa.Column("corporate_actions", sa.JSON(), nullable=False),
        sa.Column("board_meetings", sa.JSON(), nullable=False),
        sa.Column("financial_results", sa.JSON(), nullable=False),
        sa.Column("shareholding_patterns", sa.JSON(), nullable=False),
        _last_updated(),
        sa.PrimaryKeyConstraint("isin"),
    )
    op.create_index("ix_corporateinfo_symbol", "corporateinfo", ["symbol"])

    op.create_table(
        "holdings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("client_id", sa.String(length=50), nullable=False),
        sa.Column("client_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("isin", sa.String(length=20), nullable=False),
        sa.Column("stock_name", sa.String(length=255), nullable=False),
        sa.Column("sector_name", sa.String(length=100), nullable=False, server_default="Unknown"),
        sa.Column("portfolio_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("open_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("market_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("market_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("investment_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("avg_cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("profit_loss_till_date", sa.Float(), nullable=False, server_default="0"),
        sa.Column("profit_loss_till_date_percent", sa.Float(), nullable=False, server_default="0"),
        sa.Column("as_on_date", sa.Date(), nullable=True),
        _last_updated(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("client_id", "isin", name="uq_holdings_client_isin"),
    )
    op.create_index("ix_holdings_client_id", "holdings", ["client_id"])
    op.create_index("ix_holdings_isin", "holdings", ["isin"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("client_id", sa.String(length=50), nullable=False),
        sa.Column("isin", sa.String(length=20), nullable=False),
        sa.Column("stock_name", sa.String(length=255), nullable=False),
        sa.Column("sector_name", sa.String(length=100), nullable=False, server_default="Unknown"),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("source", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("buy_sell", sa.String(length=30), nullable=False),
        sa.Column("traded_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("trade_price_adjusted", sa.Float(), nullable=False, server_default="0"),
        sa.Column("charges", sa.Float(), nullable=False, server_default="0"),
        sa.Column("trade_value_adjusted", sa.Float(), nullable=False, server_default="0"),
        _last_updated(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "client_id",
            "isin",
            "transaction_date",
            "buy_sell",
            "traded_qty",
            name="uq_transactions_client_isin_date_side_qty",
        ),
    )
    op.create_index("ix_transactions_client_id", "transactions", ["client_id"])
    op.create_index("ix_transactions_isin", "transactions", ["isin"])

    op.create_table(
        "realizedprofitloss",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("client_id", sa.String(length=50), nullable=False),
        sa.Column("stock_name", sa.String(length=255), nullable=False),
        sa.Column("sector_name", sa.String(length=100), nullable=False, server_default="Unknown"),
        sa.Column("isin", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("closed_qty", sa.Float(), nullable=False),
        sa.Column("sell_date", sa.Date(), nullable=False),
        sa.Column("sell_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("sell_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("buy_date", sa.Date(), nullable=False),
        sa.Column("buy_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("buy_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("realized_profit_loss", sa.Float(), nullable=False, server_default="0"),
        _last_updated(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "client_id",
            "stock_name",
            "sell_date",
            "buy_date",
            "closed_qty",
            name="uq_realized_client_stock_dates_qty",
        ),
    )
    op.create_index("ix_realizedprofitloss_client_id", "realizedprofitloss", ["client_id"])
    op.create_index("ix_realizedprofitloss_stock_name", "realizedprofitloss", ["stock_name"])
    op.create_index("ix_realizedprofitloss_isin", "realizedprofitloss", ["isin"])


def downgrade() -> None:
    op.drop_table("realizedprofitloss")
    op.drop_table("transactions")
    op.drop_table("holdings")
    op.drop_table("corporateinfo")
    op.drop_table("stockdata")
    op.drop_table("stockmasters")
