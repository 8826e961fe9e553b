#!/usr/bin/env python3
"""
Fetch the full kept window of daily prices for stocks with incomplete history.

Usage:
    python scripts/backfill_history.py [--isin INE002A01018 ...] [--force]
"""

import asyncio
import logging
import os
import sys
from argparse import ArgumentParser

# Add backend to path
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import select

from folio.core.database import close_db, get_session_factory
from folio.core.logging import setup_logging
from folio.models.stock_master import StockMaster
from folio.services.stock_data_service import StockDataService

setup_logging()
logger = logging.getLogger(__name__)


async def backfill_history(isins: list[str], force: bool = False) -> int:
    """Full fetch for every requested (default: every known) ISIN lacking history."""
    service = StockDataService()

    if not isins:
        async with get_session_factory()() as session:
            isins = list((await session.execute(select(StockMaster.isin))).scalars().all())

    logger.info("Checking %s stocks", len(isins))
    total = 0
    try:
        for isin in isins:
            if not force and await service.has_complete_history(isin):
                continue
            try:
                count = await service.fetch_and_store_history(isin, full=True)
            except Exception as e:
                logger.error("Backfill failed for %s: %s", isin, e)
                continue
            total += count
    finally:
        await close_db()

    return total


def main():
    parser = ArgumentParser(description="Backfill daily prices for stocks with incomplete history")
    parser.add_argument("--isin", action="append", default=[], help="ISIN to backfill (repeatable)")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Fetch even when the stock already has complete history",
    )
    args = parser.parse_args()

    result = asyncio.run(backfill_history([i.strip().upper() for i in args.isin], args.force))

    if result > 0:
        logger.info("Backfill completed: %s rows", result)
        sys.exit(0)
    else:
        logger.error("Backfill stored no data")
        sys.exit(1)


if __name__ == "__main__":
    main()
