#!/usr/bin/env python3
"""Database setup script for TrendScout.

Creates the trends, niches and scan_runs tables and prints a summary of
the most recent scan runs already stored.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.exc import SQLAlchemyError

from trendscout.core.db import AsyncSessionLocal, create_all, drop_all
from trendscout.core.repositories import get_recent_scan_runs, get_top_niches
from trendscout.core.settings import get_settings

settings = get_settings()


def _safe_db_url(url: str) -> str:
    return url.split('@')[1] if '@' in url else url


async def print_scan_summary(session) -> None:
    print("\n" + "=" * 60)
    print("SCAN RUN SUMMARY")
    print("=" * 60)

    runs = await get_recent_scan_runs(session, limit=10)
    if not runs:
        print("No scan runs recorded yet.")
        return

    for run in runs:
        started = run.started_at.strftime('%Y-%m-%d %H:%M') if run.started_at else '-'
        print(f"  {started}  {run.status:<9}  trends: {run.trends_count:4d}  hot: {run.hot_count:3d}  niches: {run.niches_count:3d}")

    niches = await get_top_niches(session, limit=5)
    if niches:
        print("\nTop niches:")
        for niche in niches:
            print(f"  {niche.profitability_score:5.1f}  {niche.niche_name} ({niche.category})")


async def main(reset: bool = False) -> int:
    print("Setting up TrendScout database...")
    print(f"Database: {_safe_db_url(settings.db_url)}")

    try:
        if reset:
            print("Dropping existing tables...")
            await drop_all()

        await create_all()
        print("Database tables ready")

        async with AsyncSessionLocal() as session:
            await print_scan_summary(session)
        return 0

    except (SQLAlchemyError, OSError) as e:
        print(f"Error during database setup: {e}")
        return 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Create TrendScout tables')
    parser.add_argument('--reset', action='store_true', help='Drop all tables before creating them')
    args = parser.parse_args()
    sys.exit(asyncio.run(main(reset=args.reset)))
