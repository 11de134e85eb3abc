"""Domain types shared by the scan pipeline."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from trendscout.core.time import utc_now


class CompetitionLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LifecycleStage(str, Enum):
    EMERGING = "emerging"
    GROWING = "growing"
    PEAK = "peak"
    DECLINING = "declining"


class TrendDirection(str, Enum):
    UP = "up"
    STABLE = "stable"
    DOWN = "down"


def new_id(prefix: str) -> str:
    """Opaque record id, e.g. ``trend-3f2a...``."""
    return f"{prefix}-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class RawTrend:
    """One platform's uncombined observation of a topic."""
    topic: str
    platform: str
    search_volume: int = 0
    competition_level: CompetitionLevel = CompetitionLevel.MEDIUM
    lifecycle_hint: LifecycleStage = LifecycleStage.EMERGING
    related_keywords: Tuple[str, ...] = ()
    observed_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.search_volume < 0:
            raise ValueError(f"search_volume must be >= 0, got {self.search_volume}")
        # Accept plain strings / lists from adapters and fixtures
        object.__setattr__(self, "competition_level", CompetitionLevel(self.competition_level))
        object.__setattr__(self, "lifecycle_hint", LifecycleStage(self.lifecycle_hint))
        object.__setattr__(self, "related_keywords", tuple(self.related_keywords))


@dataclass(frozen=True)
class Trend:
    """Canonical, merged record for one topic within one scan cycle."""
    id: str
    topic: str
    platforms: FrozenSet[str]
    search_volume: int
    competition_level: CompetitionLevel
    lifecycle_stage: LifecycleStage
    related_keywords: Tuple[str, ...] = ()
    trend_score: float = 0.0
    discovery_date: datetime = field(default_factory=utc_now)
    expiry_date: Optional[datetime] = None

    def __post_init__(self):
        if not self.platforms:
            raise ValueError("a Trend needs at least one platform")
        if not 0 <= self.trend_score <= 100:
            raise ValueError(f"trend_score must be within [0, 100], got {self.trend_score}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "platforms": sorted(self.platforms),
            "trend_score": self.trend_score,
            "search_volume": self.search_volume,
            "competition_level": self.competition_level.value,
            "lifecycle_stage": self.lifecycle_stage.value,
            "related_keywords": list(self.related_keywords),
            "discovery_date": self.discovery_date.isoformat(),
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
        }


@dataclass(frozen=True)
class VolumeSample:
    """A single observation of search interest for a keyword."""
    keyword: str
    volume: float
    observed_at: datetime = field(default_factory=utc_now)
    competition: Optional[float] = None  # keyword competition index in [0, 100], if the source knows it


@dataclass(frozen=True)
class SocialSignal:
    platform: str
    signal: str
    strength: float  # 0-100
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class SearchMetrics:
    keyword: str
    search_volume: int
    trend: TrendDirection
    competition: Optional[float] = None


@dataclass(frozen=True)
class LifecyclePrediction:
    topic: str
    current_stage: LifecycleStage
    growth_rate: float
    predicted_peak_date: datetime
    expected_duration_days: int
    confidence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "current_stage": self.current_stage.value,
            "growth_rate": self.growth_rate,
            "predicted_peak_date": self.predicted_peak_date.isoformat(),
            "expected_duration_days": self.expected_duration_days,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Niche:
    """A Trend promoted to a business-opportunity candidate."""
    id: str
    niche_name: str
    category: str
    market_size_estimate: int
    competition_score: int
    profitability_score: float
    trend_direction: TrendDirection
    recommended_products: List[str] = field(default_factory=list)
    discovered_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "niche_name": self.niche_name,
            "category": self.category,
            "market_size_estimate": self.market_size_estimate,
            "competition_score": self.competition_score,
            "profitability_score": self.profitability_score,
            "trend_direction": self.trend_direction.value,
            "recommended_products": list(self.recommended_products),
            "discovered_at": self.discovered_at.isoformat(),
        }


@dataclass(frozen=True)
class CompetitorAnalysis:
    """An established creator working a niche."""
    competitor_name: str
    platform: str
    subscribers: int
    avg_views: int
    engagement_rate: float  # average views per video as a % of subscribers
    content_frequency: str
    channel_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "competitor_name": self.competitor_name,
            "platform": self.platform,
            "subscribers": self.subscribers,
            "avg_views": self.avg_views,
            "engagement_rate": self.engagement_rate,
            "content_frequency": self.content_frequency,
            "channel_id": self.channel_id,
        }
