"""Trend scoring.

Composite 0-100 trend score built from four sub-signals, each normalized
to [0, 100] before weighting:

- Volume score (0.4): search volume against a 1M ceiling
- Social score (0.3): mean strength of social signals mentioning the topic
- Growth score (0.2): % change between the last two volume samples
- Competition score (0.1): inverted competition index

Only the composite is clamped to [0, 100]; the growth sub-score is used raw.
A sub-signal that cannot be computed contributes 0 instead of failing the
whole score.
"""

import json
import math
import os
from collections import OrderedDict, deque
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

import numpy as np
import redis.asyncio as aioredis

from trendscout.core.logging import get_logger
from trendscout.core.time import parse_feed_date
from trendscout.scout.lifecycle import percent_change
from trendscout.scout.merge import normalize_topic_key
from trendscout.scout.types import CompetitionLevel, SocialSignal, Trend, VolumeSample

logger = get_logger(__name__)

# Scoring configuration
VOLUME_WEIGHT = 0.4
SOCIAL_WEIGHT = 0.3
GROWTH_WEIGHT = 0.2
COMPETITION_WEIGHT = 0.1

VOLUME_CEILING = 1_000_000
NEUTRAL_GROWTH_SCORE = 50.0  # fewer than two samples: no direction known yet

COMPETITION_INDEX = {
    CompetitionLevel.LOW: 30,
    CompetitionLevel.MEDIUM: 60,
    CompetitionLevel.HIGH: 90,
}

HISTORY_TTL_SECONDS = 30 * 24 * 3600
MAX_MEMORY_TOPICS = 10_000


# --- Volume History Cache ---
class VolumeHistoryCache:
    """Per-topic volume history across scan cycles, in Redis or in memory."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        max_history: int = 30,
        max_topics: int = MAX_MEMORY_TOPICS
    ):
        """
        Args:
            redis_url: Redis URL; None reads REDIS_URL, "" forces in-memory
            max_history: Samples kept per topic
            max_topics: Topics kept by the in-memory fallback; the least
                recently written are evicted first
        """
        if redis_url is None:
            redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.redis_url = redis_url
        self.max_history = max_history
        self.max_topics = max_topics
        self.redis = None
        self._connected = False
        self._memory_cache: "OrderedDict[str, deque]" = OrderedDict()

    async def _client(self):
        """Connect lazily; fall back to memory if Redis is unreachable."""
        if self._connected:
            return self.redis
        self._connected = True
        if not self.redis_url:
            logger.info("Volume history kept in memory")
            return None
        try:
            client = aioredis.from_url(self.redis_url, decode_responses=True)
            await client.ping()
            self.redis = client
            logger.info("Connected to Redis for volume history")
        except Exception as e:
            logger.warning(f"Redis not available, using in-memory volume history: {e}")
            self.redis = None
        return self.redis

    def _get_key(self, topic: str) -> str:
        return f"volume_history:{normalize_topic_key(topic)}"

    async def add_sample(self, topic: str, sample: VolumeSample) -> None:
        """Append a sample to the topic's history, keeping the newest max_history."""
        client = await self._client()
        if client is not None:
            key = self._get_key(topic)
            payload = json.dumps({
                "volume": sample.volume,
                "observed_at": sample.observed_at.isoformat(),
                "competition": sample.competition,
            })
            await client.rpush(key, payload)
            await client.ltrim(key, -self.max_history, -1)
            await client.expire(key, HISTORY_TTL_SECONDS)
        else:
            self._append_in_memory(self._get_key(topic), sample)

    def _append_in_memory(self, key: str, sample: VolumeSample) -> None:
        history = self._memory_cache.get(key)
        if history is None:
            history = self._memory_cache[key] = deque(maxlen=self.max_history)
        else:
            self._memory_cache.move_to_end(key)
        history.append(sample)
        while len(self._memory_cache) > self.max_topics:
            evicted, _ = self._memory_cache.popitem(last=False)
            logger.debug(f"Evicted in-memory volume history for {evicted}")

    async def get_history(self, topic: str) -> List[VolumeSample]:
        """Samples for a topic, oldest first."""
        client = await self._client()
        if client is None:
            return list(self._memory_cache.get(self._get_key(topic), []))

        raw = await client.lrange(self._get_key(topic), 0, -1)
        samples = []
        for entry in raw:
            data = json.loads(entry)
            samples.append(VolumeSample(
                keyword=topic,
                volume=float(data["volume"]),
                observed_at=parse_feed_date(data["observed_at"]),
                competition=data.get("competition"),
            ))
        return samples

    async def get_histories(self, topics: Sequence[str]) -> Dict[str, List[VolumeSample]]:
        return {topic: await self.get_history(topic) for topic in topics}

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()


# --- Sub-scores ---
def volume_score(search_volume: float) -> float:
    """Volume normalized to [0, 100] against a 1M ceiling."""
    return min(100.0, search_volume / VOLUME_CEILING * 100)


def matching_signals(topic: str, signals: Sequence[SocialSignal]) -> List[SocialSignal]:
    """Signals whose text contains the topic, case-insensitively."""
    needle = topic.lower()
    return [s for s in signals if needle in s.signal.lower()]


def social_score(topic: str, signals: Sequence[SocialSignal]) -> float:
    """Mean strength of matching signals, 0 when none match."""
    relevant = matching_signals(topic, signals)
    if not relevant:
        return 0.0
    return float(np.mean([s.strength for s in relevant]))


def growth_score(history: Sequence[VolumeSample]) -> float:
    """
    Raw % change between the last two samples.

    Not clamped here; a previous volume of 0 yields 0 and a history shorter
    than two samples yields the neutral 50.
    """
    if len(history) < 2:
        return NEUTRAL_GROWTH_SCORE
    return percent_change(history[-2].volume, history[-1].volume)


def assess_competition(trend: Trend, sample: Optional[VolumeSample] = None) -> float:
    """
    Keyword competition index in [0, 100].

    Uses the source's own competition figure when the volume sample carries
    one, otherwise maps the merged competition level (low 30, medium 60,
    high 90).
    """
    if sample is not None and sample.competition is not None:
        return min(100.0, max(0.0, float(sample.competition)))
    return float(COMPETITION_INDEX[trend.competition_level])


def competition_score(competition_index: float) -> float:
    return 100.0 - competition_index


def composite_score(volume: float, social: float, growth: float, competition: float) -> float:
    """Weighted sum clamped to [0, 100] and rounded half-up to an integer."""
    raw = (
        volume * VOLUME_WEIGHT
        + social * SOCIAL_WEIGHT
        + growth * GROWTH_WEIGHT
        + competition * COMPETITION_WEIGHT
    )
    return float(min(100, max(0, math.floor(raw + 0.5))))


@dataclass
class ScoreBreakdown:
    """Sub-scores and composite for one trend."""
    topic: str
    volume_score: float
    social_score: float
    growth_score: float
    competition_score: float
    composite_score: float
    degraded: List[str]

    def to_dict(self) -> Dict[str, object]:
        return {
            'topic': self.topic,
            'volume_score': self.volume_score,
            'social_score': self.social_score,
            'growth_score': self.growth_score,
            'competition_score': self.competition_score,
            'composite_score': self.composite_score,
            'degraded': list(self.degraded),
        }


class TrendScorer:
    """Scores merged trends against social signals and volume history."""

    def __init__(self, history_cache: VolumeHistoryCache):
        self.history_cache = history_cache

    async def score(
        self,
        trend: Trend,
        signals: Sequence[SocialSignal],
        sample: Optional[VolumeSample] = None
    ) -> ScoreBreakdown:
        """Compute the score breakdown for a trend, degrading failed sub-signals to 0."""
        degraded = []

        try:
            vol = volume_score(trend.search_volume)
        except Exception as e:
            logger.warning(f"Volume score failed for '{trend.topic}': {e}")
            vol, degraded = 0.0, degraded + ['volume']

        try:
            social = social_score(trend.topic, signals)
        except Exception as e:
            logger.warning(f"Social score failed for '{trend.topic}': {e}")
            social, degraded = 0.0, degraded + ['social']

        try:
            history = await self.history_cache.get_history(trend.topic)
            growth = growth_score(history)
        except Exception as e:
            logger.warning(f"Growth score failed for '{trend.topic}': {e}")
            growth, degraded = 0.0, degraded + ['growth']

        try:
            competition = competition_score(assess_competition(trend, sample))
        except Exception as e:
            logger.warning(f"Competition score failed for '{trend.topic}': {e}")
            competition, degraded = 0.0, degraded + ['competition']

        return ScoreBreakdown(
            topic=trend.topic,
            volume_score=vol,
            social_score=social,
            growth_score=growth,
            competition_score=competition,
            composite_score=composite_score(vol, social, growth, competition),
            degraded=degraded,
        )

    async def score_trend(
        self,
        trend: Trend,
        signals: Sequence[SocialSignal],
        sample: Optional[VolumeSample] = None
    ) -> Trend:
        """Return a copy of the trend carrying its composite score."""
        breakdown = await self.score(trend, signals, sample)
        return replace(trend, trend_score=breakdown.composite_score)


def rank_trends(trends: Sequence[Trend], k: Optional[int] = None) -> List[Trend]:
    """Trends ordered by score, highest first, optionally cut to the top k."""
    ranked = sorted(trends, key=lambda t: t.trend_score, reverse=True)
    return ranked[:k] if k is not None else ranked
