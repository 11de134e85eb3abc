"""YouTube most-popular videos and channel statistics (Data API v3)."""

from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from trendscout.core.logging import get_logger
from trendscout.core.time import add_days, parse_feed_date, utc_now
from trendscout.scout.sources.base import HTTPSourceAdapter, volume_to_competition
from trendscout.scout.types import CompetitorAnalysis, RawTrend, VolumeSample

logger = get_logger(__name__)

API_URL = "https://www.googleapis.com/youtube/v3"
MAX_RESULTS = 50
MAX_TAGS = 10
SEARCH_RESULTS_CEILING = 1_000_000  # total results that count as fully saturated


def _age_hint(published: datetime, now: datetime) -> str:
    days = (now - published).total_seconds() / 86400
    if days < 2:
        return "emerging"
    if days < 7:
        return "peak"
    return "declining"


def upload_frequency(video_count: int, created: Optional[datetime], now: datetime) -> str:
    """Average uploads per week since the channel was created."""
    if created is None:
        return "unknown"
    weeks = max(1.0, (now - created).total_seconds() / (7 * 86400))
    return f"{video_count / weeks:.1f} videos/week"


class YouTubeAdapter(HTTPSourceAdapter):
    """Most popular videos for a region, keyword volume and channel statistics."""

    name = "youtube"

    def __init__(self, api_key: str, region: str = "US", **kwargs):
        super().__init__(**kwargs)
        if not api_key:
            raise ValueError("YouTubeAdapter needs an API key")
        self.api_key = api_key
        self.region = region

    def _video_to_raw(self, item: Dict[str, Any], platform: str, now: datetime) -> Optional[RawTrend]:
        snippet = item.get("snippet", {})
        title = (snippet.get("title") or "").strip()
        if not title:
            return None

        views = int(item.get("statistics", {}).get("viewCount", 0))
        published = parse_feed_date(snippet.get("publishedAt")) or now

        return RawTrend(
            topic=title,
            platform=platform,
            search_volume=views,
            competition_level=volume_to_competition(views, medium_at=100_000, high_at=1_000_000),
            lifecycle_hint=_age_hint(published, now),
            related_keywords=snippet.get("tags", [])[:MAX_TAGS],
            observed_at=published,
        )

    async def fetch_trends(self, platform: str) -> List[RawTrend]:
        now = utc_now()
        try:
            payload = await self.get_json(f"{API_URL}/videos", params={
                "part": "snippet,statistics",
                "chart": "mostPopular",
                "regionCode": self.region,
                "maxResults": MAX_RESULTS,
                "key": self.api_key,
            })
            items = payload.get("items", [])
            trends = [t for t in (self._video_to_raw(i, platform, now) for i in items) if t]
        except (httpx.HTTPError, AttributeError, TypeError, ValueError) as e:
            raise self._wrap_error(platform, e) from e

        logger.info(f"YouTube ({self.region}): {len(trends)} popular videos")
        return trends

    async def fetch_volume(self, keyword: str) -> VolumeSample:
        """Videos published in the last week matching the keyword."""
        now = utc_now()
        try:
            payload = await self.get_json(f"{API_URL}/search", params={
                "part": "id",
                "q": keyword,
                "type": "video",
                "maxResults": 1,
                "publishedAfter": add_days(now, -7).strftime("%Y-%m-%dT%H:%M:%SZ"),
                "key": self.api_key,
            })
            total = int(payload["pageInfo"]["totalResults"])
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise self._wrap_error(self.name, e) from e

        return VolumeSample(
            keyword=keyword,
            volume=float(total),
            observed_at=now,
            competition=min(100.0, total / SEARCH_RESULTS_CEILING * 100),
        )

    def _channel_to_competitor(self, item: Dict[str, Any], now: datetime) -> CompetitorAnalysis:
        snippet = item.get("snippet", {})
        stats = item.get("statistics", {})

        subscribers = 0 if stats.get("hiddenSubscriberCount") else int(stats.get("subscriberCount", 0))
        videos = int(stats.get("videoCount", 0))
        avg_views = int(stats.get("viewCount", 0)) // videos if videos else 0

        return CompetitorAnalysis(
            competitor_name=snippet.get("title") or item["id"],
            platform=self.name,
            subscribers=subscribers,
            avg_views=avg_views,
            engagement_rate=round(avg_views / subscribers * 100, 2) if subscribers else 0.0,
            content_frequency=upload_frequency(videos, parse_feed_date(snippet.get("publishedAt")), now),
            channel_id=item["id"],
        )

    async def fetch_competitors(self, niche: str, limit: int = 10) -> List[CompetitorAnalysis]:
        """
        Channels ranking for the niche, with their public statistics.

        One channel search plus one batched statistics lookup.
        """
        now = utc_now()
        try:
            search = await self.get_json(f"{API_URL}/search", params={
                "part": "snippet",
                "q": niche,
                "type": "channel",
                "maxResults": min(limit, MAX_RESULTS),
                "key": self.api_key,
            })
            channel_ids = [item["id"]["channelId"] for item in search.get("items", [])]
            if not channel_ids:
                return []

            payload = await self.get_json(f"{API_URL}/channels", params={
                "part": "snippet,statistics",
                "id": ",".join(channel_ids),
                "maxResults": len(channel_ids),
                "key": self.api_key,
            })
            competitors = [self._channel_to_competitor(i, now) for i in payload.get("items", [])]
        except (httpx.HTTPError, AttributeError, KeyError, TypeError, ValueError) as e:
            raise self._wrap_error(self.name, e) from e

        logger.info(f"YouTube: {len(competitors)} channels for '{niche}'")
        return competitors
