"""Persistence collaborator for scan results.

Writes are insert-only and fire-and-forget from the engine's point of view:
any storage failure surfaces as PersistenceError for the scan cycle to log.
"""

from typing import Any, Dict, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trendscout.core.errors import PersistenceError
from trendscout.core.logging import get_logger
from trendscout.core.repositories import insert_trends, insert_niches, insert_scan_run
from trendscout.scout.types import Niche, Trend

logger = get_logger(__name__)


class TrendStore:
    """Archives trends, niches and scan runs through the repository layer."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from trendscout.core.db import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self.session_factory = session_factory

    async def save_trends(self, trends: Sequence[Trend], scan_id: Optional[str] = None) -> int:
        try:
            async with self.session_factory() as session:
                count = await insert_trends(session, trends, scan_id)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(f"Failed to store {len(trends)} trends: {e}") from e
        logger.info(f"Stored {count} trends")
        return count

    async def save_niches(self, niches: Sequence[Niche], scan_id: Optional[str] = None) -> int:
        try:
            async with self.session_factory() as session:
                count = await insert_niches(session, niches, scan_id)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(f"Failed to store {len(niches)} niches: {e}") from e
        logger.info(f"Stored {count} niches")
        return count

    async def record_scan_run(self, run: Dict[str, Any]) -> None:
        try:
            async with self.session_factory() as session:
                await insert_scan_run(session, run)
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(f"Failed to record scan run {run.get('scan_id')}: {e}") from e


class MemoryTrendStore(TrendStore):
    """Keeps everything in lists; for dry runs and tests."""

    def __init__(self):
        self.trends = []
        self.niches = []
        self.scan_runs = []

    async def save_trends(self, trends: Sequence[Trend], scan_id: Optional[str] = None) -> int:
        self.trends.extend(trends)
        return len(trends)

    async def save_niches(self, niches: Sequence[Niche], scan_id: Optional[str] = None) -> int:
        self.niches.extend(niches)
        return len(niches)

    async def record_scan_run(self, run: Dict[str, Any]) -> None:
        self.scan_runs.append(dict(run))
