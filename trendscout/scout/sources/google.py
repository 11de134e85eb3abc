"""Google Trends daily trending searches (RSS)."""

import re
from typing import List, Optional

import feedparser
import httpx

from trendscout.core.errors import AdapterError
from trendscout.core.logging import get_logger
from trendscout.core.time import parse_feed_date, utc_now
from trendscout.scout.merge import normalize_topic_key
from trendscout.scout.sources.base import HTTPSourceAdapter, volume_to_competition
from trendscout.scout.types import RawTrend, VolumeSample

logger = get_logger(__name__)

TRENDING_RSS_URL = "https://trends.google.com/trending/rss"


def parse_approx_traffic(value: Optional[str]) -> int:
    """'200,000+' -> 200000; missing or malformed -> 0."""
    if not value:
        return 0
    digits = re.sub(r"[^\d]", "", value)
    return int(digits) if digits else 0


class GoogleTrendsAdapter(HTTPSourceAdapter):
    """Trending searches for one region from the public Google Trends feed."""

    name = "google"

    def __init__(self, geo: str = "US", **kwargs):
        super().__init__(**kwargs)
        self.geo = geo

    async def _fetch_feed(self):
        content = await self.get_text(TRENDING_RSS_URL, params={"geo": self.geo})
        if not content.strip():
            logger.warning(f"Empty Google Trends feed for geo={self.geo}")
            return []

        feed = feedparser.parse(content)
        if feed.bozo and feed.bozo_exception:
            logger.warning(f"Google Trends feed parsing warning: {feed.bozo_exception}")
        return feed.entries

    def _entry_to_raw(self, entry, platform: str) -> Optional[RawTrend]:
        topic = (entry.get("title") or "").strip()
        if not topic:
            return None

        traffic = parse_approx_traffic(entry.get("ht_approx_traffic"))
        keywords = []
        news_title = entry.get("ht_news_item_title")
        if news_title:
            keywords.append(news_title.strip())

        return RawTrend(
            topic=topic,
            platform=platform,
            search_volume=traffic,
            competition_level=volume_to_competition(traffic, medium_at=50_000, high_at=500_000),
            lifecycle_hint="emerging",
            related_keywords=keywords,
            observed_at=parse_feed_date(entry.get("published")) or utc_now(),
        )

    async def fetch_trends(self, platform: str) -> List[RawTrend]:
        try:
            entries = await self._fetch_feed()
        except (httpx.HTTPError, ValueError) as e:
            raise self._wrap_error(platform, e) from e

        trends = [t for t in (self._entry_to_raw(e, platform) for e in entries) if t]
        logger.info(f"Google Trends ({self.geo}): {len(trends)} trending searches")
        return trends

    async def fetch_volume(self, keyword: str) -> VolumeSample:
        """Approximate traffic of today's trending searches matching the keyword."""
        try:
            entries = await self._fetch_feed()
        except (httpx.HTTPError, ValueError) as e:
            raise self._wrap_error(self.name, e) from e

        key = normalize_topic_key(keyword)
        if not key:
            raise AdapterError(self.name, "empty keyword")

        volume = sum(
            parse_approx_traffic(e.get("ht_approx_traffic"))
            for e in entries
            if key in normalize_topic_key(e.get("title") or "")
        )
        return VolumeSample(keyword=keyword, volume=float(volume), observed_at=utc_now())
