"""Repository layer for database operations.

Insert-only writes for the scan archive: trends, promoted niches and one
row per scan run. The engine never reads its own writes back during a scan;
the read helpers here serve the API and operators.
"""

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from trendscout.core.models import TrendRecord, NicheRecord, ScanRun
from trendscout.core.logging import get_logger
from trendscout.scout.merge import normalize_topic_key
from trendscout.scout.types import Trend, Niche

logger = get_logger(__name__)


def _trend_to_record(trend: Trend, scan_id: Optional[str]) -> TrendRecord:
    return TrendRecord(
        id=trend.id,
        scan_id=scan_id,
        topic=trend.topic,
        topic_key=normalize_topic_key(trend.topic),
        platforms=sorted(trend.platforms),
        trend_score=trend.trend_score,
        search_volume=trend.search_volume,
        competition_level=trend.competition_level.value,
        lifecycle_stage=trend.lifecycle_stage.value,
        related_keywords=list(trend.related_keywords),
        discovery_date=trend.discovery_date,
        expiry_date=trend.expiry_date,
    )


def _niche_to_record(niche: Niche, scan_id: Optional[str]) -> NicheRecord:
    return NicheRecord(
        id=niche.id,
        scan_id=scan_id,
        niche_name=niche.niche_name,
        category=niche.category,
        market_size_estimate=niche.market_size_estimate,
        competition_score=niche.competition_score,
        profitability_score=niche.profitability_score,
        trend_direction=niche.trend_direction.value,
        recommended_products=list(niche.recommended_products),
        discovered_at=niche.discovered_at,
    )


async def insert_trends(
    session: AsyncSession,
    trends: Iterable[Trend],
    scan_id: Optional[str] = None
) -> int:
    """
    Insert a batch of trends in a single transaction.

    Args:
        session: Database session
        trends: Trends produced by one scan cycle
        scan_id: Scan run the batch belongs to

    Returns:
        Number of rows inserted
    """
    records = [_trend_to_record(t, scan_id) for t in trends]
    if not records:
        return 0

    try:
        session.add_all(records)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.debug(f"Inserted {len(records)} trends (scan {scan_id})")
    return len(records)


async def insert_niches(
    session: AsyncSession,
    niches: Iterable[Niche],
    scan_id: Optional[str] = None
) -> int:
    """Insert a batch of niches in a single transaction."""
    records = [_niche_to_record(n, scan_id) for n in niches]
    if not records:
        return 0

    try:
        session.add_all(records)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.debug(f"Inserted {len(records)} niches (scan {scan_id})")
    return len(records)


async def insert_scan_run(session: AsyncSession, run: Dict[str, Any]) -> ScanRun:
    """Persist the outcome of one scan cycle."""
    record = ScanRun(
        id=run['scan_id'],
        status=run.get('status', 'completed'),
        platforms_ok=run.get('platforms_ok', []),
        platforms_failed=run.get('platforms_failed', []),
        raw_count=run.get('raw_count', 0),
        trends_count=run.get('trends_count', 0),
        hot_count=run.get('hot_count', 0),
        niches_count=run.get('niches_count', 0),
        errors=run.get('errors', []),
        stage_timings=run.get('stage_timings', {}),
        error_message=run.get('error_message'),
        started_at=run.get('started_at'),
        completed_at=run.get('completed_at'),
    )
    try:
        session.add(record)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return record


async def get_recent_trends(
    session: AsyncSession,
    limit: int = 50,
    min_score: float = 0.0
) -> List[TrendRecord]:
    """Most recently discovered trends, newest first."""
    stmt = (
        select(TrendRecord)
        .where(TrendRecord.trend_score >= min_score)
        .order_by(desc(TrendRecord.discovery_date), desc(TrendRecord.trend_score))
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_top_niches(session: AsyncSession, limit: int = 20) -> List[NicheRecord]:
    """Niches ordered by profitability score."""
    stmt = (
        select(NicheRecord)
        .order_by(desc(NicheRecord.profitability_score), desc(NicheRecord.discovered_at))
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_recent_scan_runs(session: AsyncSession, limit: int = 10) -> List[ScanRun]:
    stmt = select(ScanRun).order_by(desc(ScanRun.started_at)).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
