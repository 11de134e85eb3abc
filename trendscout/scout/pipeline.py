"""Scan cycle orchestration.

One cycle runs these stages in order:
1. Fetch: one task per platform adapter, each bounded by a timeout
2. Merge: fold raw observations into one Trend per topic
3. History: record this cycle's volume for every topic
4. Score: composite 0-100 score per trend
5. Classify: lifecycle stage from volume history
6. Select: hot trends and niche candidates
7. Notify: one batched hot-trend notification, not awaited
8. Persist: all trends, promoted niches and the scan run record
"""

import asyncio
import random
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from trendscout.core.errors import AdapterError, InsufficientData, PersistenceError, NotificationError
from trendscout.core.logging import get_logger
from trendscout.core.settings import Settings, get_settings
from trendscout.core.time import add_days, utc_now
from trendscout.scout.lifecycle import percent_change, predict_lifecycle
from trendscout.scout.merge import merge_raw_trends
from trendscout.scout.niches import identify_emerging_niches
from trendscout.scout.notify import Notifier, build_notifier
from trendscout.scout.score import TrendScorer, VolumeHistoryCache, rank_trends
from trendscout.scout.sources import SourceAdapter, build_adapters
from trendscout.scout.store import TrendStore
from trendscout.scout.types import (
    CompetitorAnalysis, LifecyclePrediction, Niche, RawTrend, SearchMetrics, SocialSignal,
    Trend, TrendDirection, VolumeSample, new_id
)

logger = get_logger(__name__)

# Pipeline configuration
DEFAULT_HOT_THRESHOLD = 75.0
DEFAULT_NICHE_THRESHOLD = 70.0
DEFAULT_ADAPTER_TIMEOUT = 30.0
MAX_SCORING_CONCURRENCY = 16
DIRECTION_TOLERANCE = 5.0  # % change treated as flat when reporting search metrics
DEFAULT_COMPETITOR_LIMIT = 10


@dataclass
class ScanStats:
    """Statistics for one scan cycle."""
    scan_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    runtime_seconds: float = 0.0
    platforms_ok: List[str] = field(default_factory=list)
    platforms_failed: List[str] = field(default_factory=list)
    raw_count: int = 0
    trends_count: int = 0
    hot_count: int = 0
    niches_count: int = 0
    errors: List[str] = field(default_factory=list)
    stage_timings: Dict[str, float] = field(default_factory=dict)

    @property
    def status(self) -> str:
        return "degraded" if self.errors else "completed"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'scan_id': self.scan_id,
            'status': self.status,
            'started_at': self.started_at,
            'completed_at': self.completed_at,
            'runtime_seconds': self.runtime_seconds,
            'platforms_ok': list(self.platforms_ok),
            'platforms_failed': list(self.platforms_failed),
            'raw_count': self.raw_count,
            'trends_count': self.trends_count,
            'hot_count': self.hot_count,
            'niches_count': self.niches_count,
            'errors': list(self.errors),
            'stage_timings': dict(self.stage_timings),
        }


@dataclass
class ScanResult:
    """Everything one scan cycle produced."""
    trends: List[Trend]
    hot_trends: List[Trend]
    niches: List[Niche]
    stats: ScanStats

    def to_dict(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        for key in ('started_at', 'completed_at'):
            stats[key] = stats[key].isoformat() if stats[key] else None
        return {
            'stats': stats,
            'trends': [t.to_dict() for t in self.trends],
            'hot_trends': [t.to_dict() for t in self.hot_trends],
            'niches': [n.to_dict() for n in self.niches],
        }


class StageTimer:
    """Context manager for timing pipeline stages."""

    def __init__(self, stage_name: str, timings_dict: Dict[str, float]):
        self.stage_name = stage_name
        self.timings_dict = timings_dict
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.timings_dict[self.stage_name] = round(time.perf_counter() - self.start_time, 4)


class ScanPipeline:
    """Runs scan cycles over a fixed set of platform adapters."""

    def __init__(
        self,
        adapters: Dict[str, SourceAdapter],
        store: TrendStore,
        notifier: Notifier,
        history: VolumeHistoryCache,
        hot_threshold: float = DEFAULT_HOT_THRESHOLD,
        niche_threshold: float = DEFAULT_NICHE_THRESHOLD,
        adapter_timeout: float = DEFAULT_ADAPTER_TIMEOUT,
        rng: Optional[random.Random] = None
    ):
        self.adapters = dict(adapters)
        self.store = store
        self.notifier = notifier
        self.history = history
        self.scorer = TrendScorer(history)
        self.hot_threshold = hot_threshold
        self.niche_threshold = niche_threshold
        self.adapter_timeout = adapter_timeout
        self.rng = rng
        self._pending_notifications: Set[asyncio.Task] = set()

    # --- Fetch ---

    async def _fetch_platform(
        self, platform: str, adapter: SourceAdapter
    ) -> Tuple[List[RawTrend], List[SocialSignal]]:
        """Trends and social signals for one platform; signal failures degrade to []."""
        trends = await adapter.fetch_trends(platform)
        try:
            signals = await adapter.fetch_social_signals(platform)
        except AdapterError as e:
            logger.warning(f"Social signals unavailable for {platform}: {e}")
            signals = []
        except Exception as e:
            logger.error(f"Unexpected error fetching social signals for {platform}: {e}", exc_info=True)
            signals = []
        return trends, signals

    async def _fetch_with_timeout(
        self, platform: str, adapter: SourceAdapter
    ) -> Tuple[List[RawTrend], List[SocialSignal]]:
        try:
            return await asyncio.wait_for(
                self._fetch_platform(platform, adapter),
                timeout=self.adapter_timeout
            )
        except asyncio.TimeoutError as e:
            raise AdapterError(platform, f"timed out after {self.adapter_timeout}s", cause=e) from e

    async def fetch_all(
        self, stats: Optional[ScanStats] = None
    ) -> Tuple[List[RawTrend], List[SocialSignal]]:
        """
        Fetch every platform concurrently and wait for all of them to settle.

        A platform that fails or times out contributes nothing this cycle.
        """
        platforms = list(self.adapters)
        results = await asyncio.gather(
            *(self._fetch_with_timeout(p, self.adapters[p]) for p in platforms),
            return_exceptions=True
        )

        raw_trends: List[RawTrend] = []
        signals: List[SocialSignal] = []
        for platform, result in zip(platforms, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                error_msg = f"Source {platform}: {result}"
                logger.error(error_msg)
                if stats is not None:
                    stats.platforms_failed.append(platform)
                    stats.errors.append(error_msg)
                continue

            platform_trends, platform_signals = result
            raw_trends.extend(platform_trends)
            signals.extend(platform_signals)
            if stats is not None:
                stats.platforms_ok.append(platform)
            logger.info(f"Fetched {len(platform_trends)} trends, {len(platform_signals)} signals from {platform}")

        return raw_trends, signals

    # --- Score and classify ---

    async def _bounded_gather(self, func, items: Sequence[Any]) -> List[Any]:
        """Apply an async func to every item, at most MAX_SCORING_CONCURRENCY at a time."""
        semaphore = asyncio.Semaphore(MAX_SCORING_CONCURRENCY)

        async def _run(item):
            async with semaphore:
                return await func(item)

        return list(await asyncio.gather(*(_run(i) for i in items)))

    async def _record_sample(self, trend: Trend) -> None:
        sample = VolumeSample(
            keyword=trend.topic,
            volume=float(trend.search_volume),
            observed_at=trend.discovery_date,
        )
        try:
            await self.history.add_sample(trend.topic, sample)
        except Exception as e:
            logger.warning(f"Could not record volume history for '{trend.topic}': {e}")

    async def record_history(self, trends: Sequence[Trend]) -> None:
        await self._bounded_gather(self._record_sample, trends)

    async def _volume_for_scoring(self, trend: Trend) -> Optional[VolumeSample]:
        """Keyword sample from the trend's own platforms, or None when none answers."""
        names = [p for p in sorted(trend.platforms) if p in self.adapters]
        if not names:
            return None
        try:
            return await self._fetch_volume_from(names, trend.topic)
        except AdapterError as e:
            logger.debug(f"No volume sample for '{trend.topic}', using competition level: {e}")
            return None

    async def score_all(self, trends: Sequence[Trend], signals: Sequence[SocialSignal]) -> List[Trend]:
        async def _score(trend: Trend) -> Trend:
            sample = await self._volume_for_scoring(trend)
            return await self.scorer.score_trend(trend, signals, sample)

        return await self._bounded_gather(_score, trends)

    async def classify_all(self, trends: Sequence[Trend]) -> List[Trend]:
        return await self._bounded_gather(self.classify, trends)

    async def classify(self, trend: Trend) -> Trend:
        """
        Apply the lifecycle classifier to a scored trend.

        The classifier's stage replaces the merged adapter hint only once the
        topic has at least two volume samples; a single sample carries no
        direction. Any history sets the expiry date.
        """
        try:
            history = await self.history.get_history(trend.topic)
        except Exception as e:
            logger.warning(f"Volume history unavailable for '{trend.topic}': {e}")
            return trend

        if not history:
            return trend

        prediction = predict_lifecycle(trend.topic, history, rng=self.rng)
        expiry = add_days(trend.discovery_date, prediction.expected_duration_days)
        if len(history) < 2:
            return replace(trend, expiry_date=expiry)
        return replace(trend, lifecycle_stage=prediction.current_stage, expiry_date=expiry)

    # --- Notify ---

    async def _notify_safely(self, hot_trends: List[Trend], scan_id: str) -> None:
        try:
            await self.notifier.notify(hot_trends, scan_id=scan_id)
        except NotificationError as e:
            logger.error(f"Hot trend notification failed for scan {scan_id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected notifier error for scan {scan_id}: {e}", exc_info=True)

    def dispatch_notification(self, hot_trends: List[Trend], scan_id: str) -> asyncio.Task:
        """Send the batch in the background; the cycle does not wait for it."""
        task = asyncio.create_task(self._notify_safely(hot_trends, scan_id))
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)
        return task

    async def wait_for_notifications(self) -> None:
        if self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications), return_exceptions=True)

    # --- Persist ---

    async def persist(self, result: ScanResult) -> None:
        """Store trends, niches and the run record; each write fails independently."""
        stats = result.stats
        scan_id = stats.scan_id

        try:
            await self.store.save_trends(result.trends, scan_id=scan_id)
        except PersistenceError as e:
            logger.error(f"Persistence stage failed: {e}")
            stats.errors.append(str(e))

        if result.niches:
            try:
                await self.store.save_niches(result.niches, scan_id=scan_id)
            except PersistenceError as e:
                logger.error(f"Niche persistence failed: {e}")
                stats.errors.append(str(e))

    async def record_run(self, stats: ScanStats) -> None:
        try:
            await self.store.record_scan_run(stats.to_dict())
        except PersistenceError as e:
            logger.error(f"Could not record scan run: {e}")

    # --- Cycle ---

    async def run_cycle(self) -> ScanResult:
        """Run one complete scan cycle."""
        stats = ScanStats(scan_id=new_id("scan"), started_at=utc_now())
        timings = stats.stage_timings
        cycle_start = time.perf_counter()

        logger.info(f"Starting scan {stats.scan_id} over {len(self.adapters)} platforms")

        with StageTimer("fetch", timings):
            raw_trends, signals = await self.fetch_all(stats)
        stats.raw_count = len(raw_trends)

        with StageTimer("merge", timings):
            merged = merge_raw_trends(raw_trends)
        stats.trends_count = len(merged)

        with StageTimer("history", timings):
            await self.record_history(merged)

        with StageTimer("scoring", timings):
            scored = await self.score_all(merged, signals)

        with StageTimer("classify", timings):
            classified = await self.classify_all(scored)
            trends = rank_trends(classified)

        with StageTimer("selection", timings):
            hot_trends = [t for t in trends if t.trend_score > self.hot_threshold]
            niches = identify_emerging_niches(trends, self.niche_threshold)
        stats.hot_count = len(hot_trends)
        stats.niches_count = len(niches)

        if hot_trends:
            logger.info(f"{len(hot_trends)} HOT TRENDS detected")
            self.dispatch_notification(hot_trends, stats.scan_id)

        result = ScanResult(trends=trends, hot_trends=hot_trends, niches=niches, stats=stats)

        with StageTimer("persistence", timings):
            await self.persist(result)

        stats.completed_at = utc_now()
        stats.runtime_seconds = round(time.perf_counter() - cycle_start, 3)
        await self.record_run(stats)

        logger.info(
            f"Scan {stats.scan_id} {stats.status} in {stats.runtime_seconds:.2f}s: "
            f"{stats.raw_count} raw -> {stats.trends_count} trends, "
            f"{stats.hot_count} hot, {stats.niches_count} niches, "
            f"{len(stats.platforms_failed)} platforms failed"
        )
        return result

    # --- On-demand discovery ---

    def _unique_adapters(self, names: Sequence[str]) -> List[Tuple[str, SourceAdapter]]:
        """(platform, adapter) pairs with adapters shared across platforms queried once."""
        seen = set()
        pairs = []
        for name in names:
            adapter = self.adapters[name]
            if id(adapter) not in seen:
                seen.add(id(adapter))
                pairs.append((name, adapter))
        return pairs

    async def _fetch_volume_from(self, names: Sequence[str], keyword: str) -> VolumeSample:
        pairs = self._unique_adapters(names)
        results = await asyncio.gather(
            *(asyncio.wait_for(adapter.fetch_volume(keyword), timeout=self.adapter_timeout)
              for _, adapter in pairs),
            return_exceptions=True
        )

        samples = []
        for (name, _), result in zip(pairs, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(f"Volume lookup for '{keyword}' failed on {name}: {result}")
                continue
            samples.append(result)

        if not samples:
            raise AdapterError("all", f"no volume available for '{keyword}'")

        competitions = [s.competition for s in samples if s.competition is not None]
        return VolumeSample(
            keyword=keyword,
            volume=sum(s.volume for s in samples),
            observed_at=utc_now(),
            competition=sum(competitions) / len(competitions) if competitions else None,
        )

    async def fetch_volume(self, keyword: str) -> VolumeSample:
        """
        Volume for a keyword summed over all adapters that answer in time.

        Competition is the mean of the adapters that report one. An adapter
        serving several platforms is asked once.

        Raises:
            AdapterError: if no adapter returned a sample
        """
        return await self._fetch_volume_from(list(self.adapters), keyword)

    async def analyze_search_volume(self, keywords: Sequence[str]) -> List[SearchMetrics]:
        """Search metrics for each keyword; keywords nobody can size are skipped."""
        async def _analyze(keyword: str) -> Optional[SearchMetrics]:
            try:
                sample = await self.fetch_volume(keyword)
            except AdapterError as e:
                logger.error(f"Error analyzing keyword '{keyword}': {e}")
                return None

            history = await self.history.get_history(keyword)
            direction = TrendDirection.STABLE
            if history:
                change = percent_change(history[-1].volume, sample.volume)
                if change > DIRECTION_TOLERANCE:
                    direction = TrendDirection.UP
                elif change < -DIRECTION_TOLERANCE:
                    direction = TrendDirection.DOWN

            return SearchMetrics(
                keyword=keyword,
                search_volume=int(sample.volume),
                trend=direction,
                competition=sample.competition,
            )

        results = await asyncio.gather(*(_analyze(k) for k in keywords))
        return [m for m in results if m is not None]

    async def monitor_social_signals(self, platforms: Optional[Sequence[str]] = None) -> List[SocialSignal]:
        """Social signals from the given platforms (default all); failing platforms are skipped."""
        names = [p for p in (platforms or self.adapters) if p in self.adapters]
        results = await asyncio.gather(
            *(asyncio.wait_for(self.adapters[n].fetch_social_signals(n), timeout=self.adapter_timeout)
              for n in names),
            return_exceptions=True
        )

        signals = []
        for name, result in zip(names, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"Error monitoring {name}: {result}")
                continue
            signals.extend(result)
        return signals

    async def predict_trend_lifecycle(self, topic: str) -> LifecyclePrediction:
        """
        Lifecycle prediction from the topic's recorded volume history.

        Raises:
            InsufficientData: if no volume has been recorded for the topic
        """
        history = await self.history.get_history(topic)
        if not history:
            raise InsufficientData(f"No volume history recorded for topic '{topic}'")
        return predict_lifecycle(topic, history, rng=self.rng)

    async def track_competitors(
        self,
        niche: str,
        platforms: Optional[Sequence[str]] = None,
        limit: int = DEFAULT_COMPETITOR_LIMIT
    ) -> List[CompetitorAnalysis]:
        """
        Leading creators for a niche across the given platforms (default all).

        Platforms that fail or time out are skipped. Results are ordered by
        audience size, largest first, and cut to ``limit``.
        """
        names = [p for p in (platforms or self.adapters) if p in self.adapters]
        pairs = self._unique_adapters(names)
        results = await asyncio.gather(
            *(asyncio.wait_for(adapter.fetch_competitors(niche, limit), timeout=self.adapter_timeout)
              for _, adapter in pairs),
            return_exceptions=True
        )

        competitors: List[CompetitorAnalysis] = []
        for (name, _), result in zip(pairs, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(f"Error tracking competitors for '{niche}' on {name}: {result}")
                continue
            competitors.extend(result)

        competitors.sort(key=lambda c: c.subscribers, reverse=True)
        logger.info(f"Tracked {len(competitors)} competitors for '{niche}'")
        return competitors[:limit]

    async def aclose(self) -> None:
        await self.wait_for_notifications()
        closed = set()
        for adapter in self.adapters.values():
            if id(adapter) not in closed:
                closed.add(id(adapter))
                await adapter.aclose()
        await self.notifier.aclose()
        await self.history.close()


def build_pipeline(
    settings: Optional[Settings] = None,
    store: Optional[TrendStore] = None,
    notifier: Optional[Notifier] = None,
    history: Optional[VolumeHistoryCache] = None,
    adapters: Optional[Dict[str, SourceAdapter]] = None
) -> ScanPipeline:
    """Assemble a pipeline from settings, overriding any collaborator given."""
    settings = settings or get_settings()
    return ScanPipeline(
        adapters=adapters if adapters is not None else build_adapters(settings),
        store=store or TrendStore(),
        notifier=notifier or build_notifier(settings),
        history=history or VolumeHistoryCache(
            settings.redis_url,
            settings.volume_history_size,
            settings.volume_history_max_topics,
        ),
        hot_threshold=settings.hot_trend_threshold,
        niche_threshold=settings.niche_score_threshold,
        adapter_timeout=settings.adapter_timeout_seconds,
    )


async def run_scan(settings: Optional[Settings] = None, dry_run: bool = False) -> ScanResult:
    """
    Run a single scan cycle with collaborators built from settings.

    Args:
        settings: Settings to use (defaults to the environment)
        dry_run: Keep results in memory instead of the database
    """
    from trendscout.scout.store import MemoryTrendStore

    pipeline = build_pipeline(settings, store=MemoryTrendStore() if dry_run else None)
    try:
        return await pipeline.run_cycle()
    finally:
        await pipeline.aclose()


def main():
    """CLI entry point for running one scan cycle or the monitor loop."""
    import argparse

    from trendscout.core.logging import setup_logging

    parser = argparse.ArgumentParser(description='TrendScout scan cycle')
    parser.add_argument(
        '--platforms',
        type=str,
        help='Comma-separated platforms to poll (default: PLATFORMS setting)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Keep results in memory instead of writing to the database'
    )
    parser.add_argument(
        '--loop',
        action='store_true',
        help='Keep scanning on the configured interval until interrupted'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args()

    setup_logging("scout", level="DEBUG" if args.verbose else None)

    settings = get_settings()
    if args.platforms:
        settings = settings.model_copy(update={'platforms': args.platforms})

    if args.loop:
        from trendscout.scout.monitor import run_monitor_forever
        asyncio.run(run_monitor_forever(settings, dry_run=args.dry_run))
        return 0

    result = asyncio.run(run_scan(settings, dry_run=args.dry_run))
    stats = result.stats

    print("\n=== Scan Results ===")
    print(f"Scan: {stats.scan_id} ({stats.status})")
    print(f"Runtime: {stats.runtime_seconds:.2f}s")
    print(f"Platforms OK: {', '.join(stats.platforms_ok) or '-'}")
    print(f"Platforms failed: {', '.join(stats.platforms_failed) or '-'}")
    print(f"Raw trends: {stats.raw_count}")
    print(f"Merged trends: {stats.trends_count}")
    print(f"Hot trends: {stats.hot_count}")
    print(f"Niches: {stats.niches_count}")

    for trend in result.trends[:10]:
        print(f"  {trend.trend_score:5.0f}  {trend.lifecycle_stage.value:<9}  {trend.topic}")

    if stats.errors:
        print(f"\nErrors ({len(stats.errors)}):")
        for error in stats.errors[:10]:
            print(f"  - {error}")

    return 0 if not stats.errors else 1


if __name__ == "__main__":
    exit(main())
