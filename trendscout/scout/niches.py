"""Niche promotion and related-topic discovery."""

from typing import Dict, Iterable, List, Optional, Sequence

from trendscout.core.logging import get_logger
from trendscout.core.time import utc_now
from trendscout.scout.types import (
    CompetitionLevel, LifecycleStage, Niche, Trend, TrendDirection, new_id
)

logger = get_logger(__name__)

DEFAULT_NICHE_THRESHOLD = 70.0
MARKET_SIZE_MULTIPLIER = 100
MAX_RELATED_TOPICS = 20

CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    'Technology': ['ai', 'software', 'tech', 'digital', 'automation'],
    'Business': ['marketing', 'sales', 'business', 'entrepreneur'],
    'Health': ['fitness', 'health', 'wellness', 'nutrition'],
    'Education': ['learning', 'course', 'tutorial', 'education'],
    'Finance': ['money', 'investing', 'crypto', 'finance'],
}
DEFAULT_CATEGORY = 'General'

COMPETITION_SCORES = {
    CompetitionLevel.LOW: 30,
    CompetitionLevel.MEDIUM: 60,
    CompetitionLevel.HIGH: 90,
}

PRODUCT_FORMATS = ['Template Pack', 'Course', 'Toolkit', 'Cheat Sheet']


def categorize_niche(topic: str) -> str:
    """First category with a keyword contained in the topic, else 'General'."""
    topic_lower = topic.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(kw in topic_lower for kw in keywords):
            return category
    return DEFAULT_CATEGORY


def competition_to_score(level: CompetitionLevel) -> int:
    return COMPETITION_SCORES[CompetitionLevel(level)]


def suggest_products(topic: str) -> List[str]:
    return [f"{topic} {fmt}" for fmt in PRODUCT_FORMATS]


def is_niche_candidate(trend: Trend, threshold: float = DEFAULT_NICHE_THRESHOLD) -> bool:
    """Emerging and strictly above the opportunity threshold."""
    return trend.lifecycle_stage == LifecycleStage.EMERGING and trend.trend_score > threshold


def trend_to_niche(trend: Trend) -> Niche:
    """Derive a Niche from a Trend. One-way; the trend is not touched."""
    return Niche(
        id=new_id("niche"),
        niche_name=trend.topic,
        category=categorize_niche(trend.topic),
        market_size_estimate=trend.search_volume * MARKET_SIZE_MULTIPLIER,
        competition_score=competition_to_score(trend.competition_level),
        profitability_score=trend.trend_score,
        trend_direction=(
            TrendDirection.UP if trend.lifecycle_stage == LifecycleStage.EMERGING
            else TrendDirection.STABLE
        ),
        recommended_products=suggest_products(trend.topic),
        discovered_at=utc_now(),
    )


def identify_emerging_niches(
    trends: Iterable[Trend],
    threshold: float = DEFAULT_NICHE_THRESHOLD
) -> List[Niche]:
    """Promote qualifying trends to niches, most profitable first."""
    niches = [trend_to_niche(t) for t in trends if is_niche_candidate(t, threshold)]
    niches.sort(key=lambda n: n.profitability_score, reverse=True)
    if niches:
        logger.info(f"Promoted {len(niches)} emerging trends to niches")
    return niches


def are_topics_related(seed: str, topic: str, keywords: Sequence[str]) -> bool:
    """Substring match in either direction against the topic or any keyword."""
    seed_lower = seed.strip().lower()
    topic_lower = topic.lower()
    if not seed_lower:
        return False

    if topic_lower in seed_lower or seed_lower in topic_lower:
        return True

    return any(
        kw.lower() in seed_lower or seed_lower in kw.lower()
        for kw in keywords if kw
    )


def find_related_topics(
    seed: str,
    trends: Iterable[Trend],
    limit: Optional[int] = MAX_RELATED_TOPICS
) -> List[str]:
    """Topics of trends related to the seed, in input order, at most ``limit``."""
    related = [
        t.topic for t in trends
        if are_topics_related(seed, t.topic, t.related_keywords)
    ]
    return related[:limit] if limit is not None else related
