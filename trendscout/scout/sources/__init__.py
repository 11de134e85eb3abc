"""Source adapters and the platform registry."""

from pathlib import Path
from typing import Dict, Optional

from trendscout.core.logging import get_logger
from trendscout.core.settings import Settings, get_settings

from .base import SourceAdapter, HTTPSourceAdapter
from .google import GoogleTrendsAdapter
from .reddit import RedditAdapter
from .static import StaticAdapter
from .youtube import YouTubeAdapter

logger = get_logger(__name__)


def build_adapters(settings: Optional[Settings] = None) -> Dict[str, SourceAdapter]:
    """
    Map each configured platform name to the adapter that serves it.

    google, reddit and youtube use their HTTP adapters (youtube only with an
    API key). Any other platform is served by the static fixture file when
    one is configured and mentions it; otherwise it is skipped with a warning.
    """
    settings = settings or get_settings()
    http_kwargs = {
        "timeout": settings.http_timeout_seconds,
        "user_agent": settings.http_user_agent,
    }

    static = None
    if settings.static_trends_path and Path(settings.static_trends_path).exists():
        static = StaticAdapter.from_yaml(settings.static_trends_path)

    adapters: Dict[str, SourceAdapter] = {}
    for platform in settings.platform_list:
        if platform == "google":
            adapters[platform] = GoogleTrendsAdapter(geo=settings.google_trends_geo, **http_kwargs)
        elif platform == "reddit":
            adapters[platform] = RedditAdapter(subreddits=settings.subreddit_list, **http_kwargs)
        elif platform == "youtube" and settings.youtube_api_key:
            adapters[platform] = YouTubeAdapter(
                api_key=settings.youtube_api_key, region=settings.youtube_region, **http_kwargs
            )
        elif static is not None and platform in static.platforms():
            adapters[platform] = static
        else:
            logger.warning(f"No adapter available for platform '{platform}', skipping")

    logger.info(f"Configured adapters: {', '.join(adapters) or 'none'}")
    return adapters


__all__ = [
    'SourceAdapter',
    'HTTPSourceAdapter',
    'GoogleTrendsAdapter',
    'RedditAdapter',
    'StaticAdapter',
    'YouTubeAdapter',
    'build_adapters',
]
