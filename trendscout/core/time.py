"""Time and timezone utilities."""

import email.utils
from datetime import datetime, timezone, timedelta
from typing import Optional, Union

from trendscout.core.logging import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def from_epoch(value: Union[int, float, None]) -> Optional[datetime]:
    """Convert a unix timestamp (seconds) to an aware UTC datetime."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (ValueError, TypeError, OverflowError, OSError):
        logger.warning(f"Invalid epoch timestamp: {value!r}")
        return None


def parse_feed_date(date_string: Optional[str]) -> Optional[datetime]:
    """
    Parse a feed or API timestamp into an aware UTC datetime.

    Accepts RFC 2822 (RSS pubDate) and ISO 8601 (Atom, JSON APIs, with or
    without a trailing 'Z').
    """
    if not date_string:
        return None

    date_string = date_string.strip()

    try:
        return ensure_utc(email.utils.parsedate_to_datetime(date_string))
    except (ValueError, TypeError, IndexError):
        pass

    iso = date_string[:-1] + "+00:00" if date_string.endswith("Z") else date_string
    try:
        return ensure_utc(datetime.fromisoformat(iso))
    except ValueError:
        logger.warning(f"Could not parse date: {date_string}")
        return None


def add_days(dt: datetime, days: int) -> datetime:
    """Shift a datetime by a whole number of days."""
    return dt + timedelta(days=days)
