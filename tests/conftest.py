"""Shared fixtures for the TrendScout tests."""

import pytest

from trendscout.scout.pipeline import ScanPipeline
from trendscout.scout.score import VolumeHistoryCache
from trendscout.scout.store import MemoryTrendStore

from fakes import RecordingNotifier


@pytest.fixture
def memory_history():
    return VolumeHistoryCache(redis_url="", max_history=30)


@pytest.fixture
def memory_store():
    return MemoryTrendStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_pipeline(memory_history, memory_store, notifier):
    """Factory building a pipeline over in-memory collaborators."""
    def _make(adapters, **kwargs):
        kwargs.setdefault("store", memory_store)
        kwargs.setdefault("notifier", notifier)
        kwargs.setdefault("history", memory_history)
        kwargs.setdefault("adapter_timeout", 0.5)
        return ScanPipeline(adapters=adapters, **kwargs)
    return _make
