"""Normalize ISINs to trimmed upper case

Revision ID: 0002_normalize_isins
Revises: 0001_initial
Create Date: 2025-06-15 00:00:00.000000

Rows whose normalized key already exists are dropped before the update so the
unique constraints hold; the already-normalized row wins.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_normalize_isins"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NORMALIZED = "UPPER(TRIM({table}.isin))"

# table -> other columns of its unique key that include isin
KEYED_TABLES = {
    "stockmasters": [],
    "corporateinfo": [],
    "stockdata": ["date"],
    "holdings": ["client_id"],
    "transactions": ["client_id", "transaction_date", "buy_sell", "traded_qty"],
}


def upgrade() -> None:
    for table, key_columns in KEYED_TABLES.items():
        normalized = NORMALIZED.format(table=table)
        match = " AND ".join(
            [f"other.isin = {normalized}"] + [f"other.{col} = {table}.{col}" for col in key_columns]
        )
        op.execute(
            f"DELETE FROM {table} WHERE {table}.isin <> {normalized} "
            f"AND EXISTS (SELECT 1 FROM {table} AS other WHERE {match})"
        )
        op.execute(f"UPDATE {table} SET isin = UPPER(TRIM(isin)) WHERE isin <> UPPER(TRIM(isin))")

    op.execute(
        "UPDATE realizedprofitloss SET isin = UPPER(TRIM(isin)) WHERE isin <> UPPER(TRIM(isin))"
    )


def downgrade() -> None:
    # Original casing is not recoverable
    pass
