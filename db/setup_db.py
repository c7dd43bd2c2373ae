#!/usr/bin/env python
"""
Database setup script for OnTheForm
This script creates the tables defined in db/schema.py
"""

import asyncio
import logging
import os
import sys

# Allow running as `python db/setup_db.py` from the repo root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.database import Base, engine  # noqa: E402
import db.schema  # noqa: E402,F401  (registers tables on Base.metadata)

logger = logging.getLogger("ontheform.db")


async def setup_tables(drop_existing: bool = False) -> None:
    """Create all tables (optionally dropping them first)."""
    async with engine.begin() as conn:
        if drop_existing:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created: %s", ", ".join(sorted(Base.metadata.tables)))


async def main(drop_existing: bool = False) -> None:
    try:
        await setup_tables(drop_existing=drop_existing)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    asyncio.run(main(drop_existing="--drop" in sys.argv))
