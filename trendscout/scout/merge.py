"""Merging of per-platform trend observations.

Every adapter reports its own view of a topic. Within one scan cycle those
views are grouped by a normalized topic key and folded into a single
canonical Trend per key:

- platforms: union of reporting platforms
- search volume: sum across observations
- competition level: majority vote, ties go to the first-seen value
- related keywords: de-duplicated union in first-appearance order
- lifecycle stage: provisional (majority of the adapters' hints); the
  lifecycle classifier overrides it once enough volume history exists
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, TypeVar

from trendscout.core.logging import get_logger
from trendscout.scout.types import RawTrend, Trend, new_id

logger = get_logger(__name__)

T = TypeVar("T")


def normalize_topic_key(topic: str) -> str:
    """
    Merge key for a topic: surrounding whitespace trimmed, case-folded.

    "  AI Tools " and "ai tools" share the key "ai tools".
    """
    return topic.strip().casefold()


def dominant_value(values: List[T]) -> T:
    """Most frequent value; on a tie the value seen first wins."""
    if not values:
        raise ValueError("dominant_value() needs at least one value")
    counts = Counter(values)
    best = max(counts.values())
    for value in values:
        if counts[value] == best:
            return value


@dataclass
class _TopicGroup:
    """Accumulator for all observations sharing one merge key."""
    key: str
    topic: str
    platforms: List[str] = field(default_factory=list)
    search_volume: int = 0
    competition_levels: list = field(default_factory=list)
    lifecycle_hints: list = field(default_factory=list)
    related_keywords: List[str] = field(default_factory=list)
    observed_at: list = field(default_factory=list)

    def add(self, raw: RawTrend) -> None:
        if raw.platform not in self.platforms:
            self.platforms.append(raw.platform)
        self.search_volume += raw.search_volume
        self.competition_levels.append(raw.competition_level)
        self.lifecycle_hints.append(raw.lifecycle_hint)
        self.observed_at.append(raw.observed_at)
        for keyword in raw.related_keywords:
            if keyword not in self.related_keywords:
                self.related_keywords.append(keyword)

    def to_trend(self) -> Trend:
        return Trend(
            id=new_id("trend"),
            topic=self.topic,
            platforms=frozenset(self.platforms),
            search_volume=self.search_volume,
            competition_level=dominant_value(self.competition_levels),
            lifecycle_stage=dominant_value(self.lifecycle_hints),
            related_keywords=tuple(self.related_keywords),
            discovery_date=min(self.observed_at),
        )


def merge_raw_trends(raw_trends: Iterable[RawTrend]) -> List[Trend]:
    """
    Fold raw observations from all adapters into one Trend per topic key.

    Observations with an empty topic are dropped. Output order follows the
    first appearance of each key and carries no meaning for callers.
    """
    groups: Dict[str, _TopicGroup] = {}
    skipped = 0

    for raw in raw_trends:
        key = normalize_topic_key(raw.topic)
        if not key:
            skipped += 1
            continue

        group = groups.get(key)
        if group is None:
            group = groups[key] = _TopicGroup(key=key, topic=raw.topic.strip())
        group.add(raw)

    if skipped:
        logger.warning(f"Dropped {skipped} raw trends with an empty topic")

    merged = [group.to_trend() for group in groups.values()]
    logger.debug(f"Merged raw trends into {len(merged)} topics")
    return merged
