"""Error taxonomy for the trend engine.

Adapter, persistence and notification errors are contained at the smallest
scope that raised them and only ever logged by the scan cycle. InsufficientData
is a caller contract violation and propagates to the immediate caller.
"""
from typing import Optional


class TrendScoutError(Exception):
    """Base class for all trend engine errors."""
    pass


class AdapterError(TrendScoutError):
    """A source adapter failed or timed out for one platform."""

    def __init__(self, platform: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"[{platform}] {message}")
        self.platform = platform
        self.cause = cause


class InsufficientData(TrendScoutError):
    """The lifecycle classifier was given an empty volume history."""
    pass


class PersistenceError(TrendScoutError):
    """A storage write failed."""
    pass


class NotificationError(TrendScoutError):
    """Hot-trend notification delivery failed."""
    pass
