"""In-memory adapter fed from a YAML fixture.

Used for platforms without a public API and for offline runs::

    trends:
      - topic: AI Tools
        platform: tiktok
        search_volume: 50000
        competition_level: medium
        lifecycle_hint: emerging
        related_keywords: [ai tools, automation]
    signals:
      - platform: tiktok
        signal: "#aitools challenge"
        strength: 80
    volumes:
      ai tools: {volume: 52000, competition: 40}
    competitors:
      - niche: ai tools
        name: AI Explained
        platform: tiktok
        subscribers: 250000
        avg_views: 40000
        engagement_rate: 16.0
        content_frequency: 3 videos/week
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from trendscout.core.errors import AdapterError
from trendscout.core.logging import get_logger
from trendscout.core.time import utc_now
from trendscout.scout.merge import normalize_topic_key
from trendscout.scout.sources.base import SourceAdapter
from trendscout.scout.types import CompetitorAnalysis, RawTrend, SocialSignal, VolumeSample

logger = get_logger(__name__)


class StaticAdapter(SourceAdapter):
    """Serves fixed trends, signals, volumes and competitors."""

    name = "static"

    def __init__(
        self,
        trends: Optional[List[Dict[str, Any]]] = None,
        signals: Optional[List[Dict[str, Any]]] = None,
        volumes: Optional[Dict[str, Any]] = None,
        competitors: Optional[List[Dict[str, Any]]] = None
    ):
        self._trends = list(trends or [])
        self._signals = list(signals or [])
        self._volumes = {
            normalize_topic_key(k): v for k, v in (volumes or {}).items()
        }
        self._competitors = list(competitors or [])

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "StaticAdapter":
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
        logger.info(f"Loaded static trends from {path}")
        return cls(
            trends=config.get('trends', []),
            signals=config.get('signals', []),
            volumes=config.get('volumes', {}),
            competitors=config.get('competitors', []),
        )

    def platforms(self) -> List[str]:
        """Platforms that have at least one fixture trend."""
        seen = []
        for entry in self._trends:
            name = str(entry.get('platform', '')).lower()
            if name and name not in seen:
                seen.append(name)
        return seen

    async def fetch_trends(self, platform: str) -> List[RawTrend]:
        try:
            return [
                RawTrend(
                    topic=entry['topic'],
                    platform=platform,
                    search_volume=int(entry.get('search_volume', 0)),
                    competition_level=entry.get('competition_level', 'medium'),
                    lifecycle_hint=entry.get('lifecycle_hint', 'emerging'),
                    related_keywords=entry.get('related_keywords', []),
                )
                for entry in self._trends
                if str(entry.get('platform', platform)).lower() == platform.lower()
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise AdapterError(platform, f"Invalid static trend entry: {e}", cause=e) from e

    async def fetch_volume(self, keyword: str) -> VolumeSample:
        entry = self._volumes.get(normalize_topic_key(keyword), 0)
        if isinstance(entry, dict):
            return VolumeSample(
                keyword=keyword,
                volume=float(entry.get('volume', 0)),
                observed_at=utc_now(),
                competition=entry.get('competition'),
            )
        return VolumeSample(keyword=keyword, volume=float(entry), observed_at=utc_now())

    async def fetch_social_signals(self, platform: str) -> List[SocialSignal]:
        try:
            return [
                SocialSignal(
                    platform=platform,
                    signal=str(entry['signal']),
                    strength=float(entry.get('strength', 0)),
                )
                for entry in self._signals
                if str(entry.get('platform', platform)).lower() == platform.lower()
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise AdapterError(platform, f"Invalid static signal entry: {e}", cause=e) from e

    async def fetch_competitors(self, niche: str, limit: int = 10) -> List[CompetitorAnalysis]:
        key = normalize_topic_key(niche)
        try:
            competitors = [
                CompetitorAnalysis(
                    competitor_name=entry['name'],
                    platform=entry.get('platform', self.name),
                    subscribers=int(entry.get('subscribers', 0)),
                    avg_views=int(entry.get('avg_views', 0)),
                    engagement_rate=float(entry.get('engagement_rate', 0.0)),
                    content_frequency=str(entry.get('content_frequency', 'unknown')),
                )
                for entry in self._competitors
                if normalize_topic_key(str(entry.get('niche', ''))) == key
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise AdapterError(self.name, f"Invalid static competitor entry: {e}", cause=e) from e
        return competitors[:limit]
