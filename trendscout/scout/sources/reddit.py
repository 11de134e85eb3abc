"""Reddit hot posts and search (public JSON endpoints)."""

from datetime import datetime
from typing import Any, Dict, List, Sequence

import httpx

from trendscout.core.logging import get_logger
from trendscout.core.time import from_epoch, utc_now
from trendscout.scout.sources.base import HTTPSourceAdapter, volume_to_competition
from trendscout.scout.types import RawTrend, SocialSignal, VolumeSample

logger = get_logger(__name__)

BASE_URL = "https://www.reddit.com"
HOT_LIMIT = 50
SEARCH_LIMIT = 100
SIGNAL_SCORE_CEILING = 10_000  # post score that maps to full signal strength


def _age_hint(created: datetime, now: datetime) -> str:
    hours = (now - created).total_seconds() / 3600
    if hours < 6:
        return "emerging"
    if hours < 24:
        return "peak"
    return "declining"


class RedditAdapter(HTTPSourceAdapter):
    """Hot posts across a set of subreddits; search for keyword volume."""

    name = "reddit"

    def __init__(self, subreddits: Sequence[str] = ("popular",), **kwargs):
        super().__init__(**kwargs)
        self.subreddits = list(subreddits) or ["popular"]

    async def _hot_posts(self) -> List[Dict[str, Any]]:
        posts = []
        for subreddit in self.subreddits:
            payload = await self.get_json(
                f"{BASE_URL}/r/{subreddit}/hot.json",
                params={"limit": HOT_LIMIT}
            )
            posts.extend(child["data"] for child in payload["data"]["children"])
        return posts

    def _post_to_raw(self, post: Dict[str, Any], platform: str, now: datetime) -> RawTrend:
        score = max(0, int(post.get("score", 0)))
        comments = max(0, int(post.get("num_comments", 0)))
        created = from_epoch(post.get("created_utc")) or now

        keywords = [f"r/{post['subreddit']}"] if post.get("subreddit") else []
        if post.get("link_flair_text"):
            keywords.append(post["link_flair_text"])

        return RawTrend(
            topic=post["title"],
            platform=platform,
            search_volume=score + comments,
            competition_level=volume_to_competition(comments, medium_at=100, high_at=1_000),
            lifecycle_hint=_age_hint(created, now),
            related_keywords=keywords,
            observed_at=created,
        )

    async def fetch_trends(self, platform: str) -> List[RawTrend]:
        now = utc_now()
        try:
            posts = await self._hot_posts()
            trends = [self._post_to_raw(p, platform, now) for p in posts if p.get("title")]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise self._wrap_error(platform, e) from e

        logger.info(f"Reddit ({', '.join(self.subreddits)}): {len(trends)} hot posts")
        return trends

    async def fetch_volume(self, keyword: str) -> VolumeSample:
        """
        Summed score of today's top posts matching the keyword.

        The competition index is the share of the search page filled by
        matching posts: a full page means a crowded topic.
        """
        try:
            payload = await self.get_json(
                f"{BASE_URL}/search.json",
                params={"q": keyword, "sort": "top", "t": "day", "limit": SEARCH_LIMIT}
            )
            posts = [child["data"] for child in payload["data"]["children"]]
            volume = sum(max(0, int(p.get("score", 0))) for p in posts)
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise self._wrap_error(self.name, e) from e

        return VolumeSample(
            keyword=keyword,
            volume=float(volume),
            observed_at=utc_now(),
            competition=min(100.0, len(posts) / SEARCH_LIMIT * 100),
        )

    async def fetch_social_signals(self, platform: str) -> List[SocialSignal]:
        now = utc_now()
        try:
            posts = await self._hot_posts()
            return [
                SocialSignal(
                    platform=platform,
                    signal=p["title"],
                    strength=min(100.0, max(0, int(p.get("score", 0))) / SIGNAL_SCORE_CEILING * 100),
                    timestamp=from_epoch(p.get("created_utc")) or now,
                )
                for p in posts if p.get("title")
            ]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            raise self._wrap_error(platform, e) from e
