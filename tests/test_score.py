"""Tests for trend scoring and the volume history cache."""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from trendscout.scout.score import (
    NEUTRAL_GROWTH_SCORE,
    TrendScorer,
    VolumeHistoryCache,
    assess_competition,
    competition_score,
    composite_score,
    growth_score,
    rank_trends,
    social_score,
    volume_score,
)
from trendscout.scout.types import CompetitionLevel, LifecycleStage, SocialSignal, Trend, VolumeSample

from fakes import BASE_TIME


def make_trend(topic="AI Tools", volume=0, competition="medium", score=0.0):
    return Trend(
        id=f"trend-{topic}",
        topic=topic,
        platforms=frozenset({"google"}),
        search_volume=volume,
        competition_level=CompetitionLevel(competition),
        lifecycle_stage=LifecycleStage.EMERGING,
        trend_score=score,
        discovery_date=BASE_TIME,
    )


def samples(*volumes):
    return [
        VolumeSample(keyword="k", volume=v, observed_at=BASE_TIME + timedelta(minutes=15 * i))
        for i, v in enumerate(volumes)
    ]


class TestSubScores:

    def test_volume_score_scales_against_ceiling(self):
        assert volume_score(0) == 0.0
        assert volume_score(500_000) == 50.0
        assert volume_score(1_000_000) == 100.0
        assert volume_score(25_000_000) == 100.0

    def test_social_score_is_mean_of_matching_signals(self):
        signals = [
            SocialSignal(platform="reddit", signal="Best AI TOOLS this week", strength=80),
            SocialSignal(platform="tiktok", signal="#aitools", strength=10),
            SocialSignal(platform="tiktok", signal="ai tools for students", strength=40),
        ]

        assert social_score("AI Tools", signals) == pytest.approx(60.0)

    def test_social_score_zero_without_matches(self):
        signals = [SocialSignal(platform="reddit", signal="cats", strength=90)]

        assert social_score("AI Tools", signals) == 0.0
        assert social_score("AI Tools", []) == 0.0

    def test_growth_score_uses_raw_percent_change(self):
        assert growth_score(samples(100, 150)) == pytest.approx(50.0)
        assert growth_score(samples(100, 400)) == pytest.approx(300.0)
        assert growth_score(samples(100, 20)) == pytest.approx(-80.0)

    def test_growth_score_only_looks_at_last_two(self):
        assert growth_score(samples(1, 1000, 100, 110)) == pytest.approx(10.0)

    def test_growth_score_previous_zero_is_zero(self):
        for current in (0, 1, 10_000):
            assert growth_score(samples(0, current)) == 0.0

    def test_growth_score_neutral_without_two_samples(self):
        assert growth_score([]) == NEUTRAL_GROWTH_SCORE
        assert growth_score(samples(5000)) == NEUTRAL_GROWTH_SCORE

    def test_competition_from_level(self):
        assert assess_competition(make_trend(competition="low")) == 30.0
        assert assess_competition(make_trend(competition="medium")) == 60.0
        assert assess_competition(make_trend(competition="high")) == 90.0

    def test_competition_prefers_source_index(self):
        sample = VolumeSample(keyword="k", volume=1, competition=12.5)

        assert assess_competition(make_trend(competition="high"), sample) == 12.5

    def test_competition_score_is_inverted(self):
        assert competition_score(30) == 70
        assert competition_score(100) == 0


class TestCompositeScore:

    def test_weighted_sum(self):
        # 50*0.4 + 60*0.3 + 10*0.2 + 40*0.1 = 20 + 18 + 2 + 4
        assert composite_score(50, 60, 10, 40) == 44.0

    def test_rounds_half_up(self):
        # 5 * 0.1 = 0.5
        assert composite_score(0, 0, 0, 5) == 1.0
        assert composite_score(0, 0, 0, 4) == 0.0
        assert composite_score(0, 0, 0, 25) == 3.0

    def test_clamped_to_100(self):
        assert composite_score(100, 100, 10_000, 100) == 100.0

    def test_clamped_to_0(self):
        assert composite_score(0, 0, -10_000, 0) == 0.0

    @pytest.mark.parametrize("growth", [-1e6, -500, -100, 0, 50, 300, 1e6])
    def test_always_within_bounds(self, growth):
        score = composite_score(100, 100, growth, 100)
        assert 0 <= score <= 100


class TestVolumeHistoryCache:

    @pytest.mark.asyncio
    async def test_memory_history_oldest_first(self):
        cache = VolumeHistoryCache(redis_url="", max_history=30)
        for s in samples(10, 20, 30):
            await cache.add_sample("AI Tools", s)

        history = await cache.get_history("ai tools")

        assert [s.volume for s in history] == [10, 20, 30]

    @pytest.mark.asyncio
    async def test_memory_history_is_bounded(self):
        cache = VolumeHistoryCache(redis_url="", max_history=3)
        for s in samples(1, 2, 3, 4, 5):
            await cache.add_sample("x", s)

        history = await cache.get_history("x")

        assert [s.volume for s in history] == [3, 4, 5]

    @pytest.mark.asyncio
    async def test_memory_topics_evicted_least_recently_written(self):
        cache = VolumeHistoryCache(redis_url="", max_topics=3)
        for topic in ("a", "b", "c"):
            await cache.add_sample(topic, samples(1)[0])
        await cache.add_sample("a", samples(2)[0])
        for topic in ("d", "e"):
            await cache.add_sample(topic, samples(1)[0])

        assert len(cache._memory_cache) == 3
        assert await cache.get_history("b") == []
        assert await cache.get_history("c") == []
        assert [s.volume for s in await cache.get_history("a")] == [1, 2]
        assert len(await cache.get_history("e")) == 1

    @pytest.mark.asyncio
    async def test_unknown_topic_has_empty_history(self):
        cache = VolumeHistoryCache(redis_url="")

        assert await cache.get_history("never seen") == []

    @pytest.mark.asyncio
    async def test_falls_back_to_memory_when_redis_unreachable(self):
        cache = VolumeHistoryCache(redis_url="redis://localhost:6379/0")
        fake_client = AsyncMock()
        fake_client.ping.side_effect = ConnectionError("refused")

        with patch("trendscout.scout.score.aioredis.from_url", return_value=fake_client):
            await cache.add_sample("x", samples(42)[0])
            history = await cache.get_history("x")

        assert cache.redis is None
        assert [s.volume for s in history] == [42]

    @pytest.mark.asyncio
    async def test_redis_round_trip_uses_json_entries(self):
        stored = []
        fake_client = AsyncMock()
        fake_client.rpush.side_effect = lambda key, value: stored.append(value)
        fake_client.lrange.side_effect = lambda key, start, end: list(stored)

        cache = VolumeHistoryCache(redis_url="redis://cache:6379/0", max_history=5)
        with patch("trendscout.scout.score.aioredis.from_url", return_value=fake_client):
            for s in samples(100, 160):
                await cache.add_sample("AI Tools", s)
            history = await cache.get_history("AI Tools")

        fake_client.ltrim.assert_awaited_with("volume_history:ai tools", -5, -1)
        assert [s.volume for s in history] == [100.0, 160.0]
        assert history[1].observed_at == BASE_TIME + timedelta(minutes=15)


class TestTrendScorer:

    @pytest.mark.asyncio
    async def test_score_without_history_uses_neutral_growth(self, memory_history):
        scorer = TrendScorer(memory_history)
        trend = make_trend(volume=500_000, competition="low")

        breakdown = await scorer.score(trend, [])

        # 50*0.4 + 0 + 50*0.2 + 70*0.1 = 20 + 10 + 7
        assert breakdown.composite_score == 37.0
        assert breakdown.degraded == []

    @pytest.mark.asyncio
    async def test_score_uses_recorded_history(self, memory_history):
        for s in samples(100_000, 160_000):
            await memory_history.add_sample("AI Tools", s)
        scorer = TrendScorer(memory_history)
        signals = [SocialSignal(platform="reddit", signal="ai tools", strength=90)]

        breakdown = await scorer.score(make_trend(volume=1_000_000, competition="low"), signals)

        # 100*0.4 + 90*0.3 + 60*0.2 + 70*0.1 = 40 + 27 + 12 + 7 = 86
        assert breakdown.growth_score == pytest.approx(60.0)
        assert breakdown.composite_score == 86.0

    @pytest.mark.asyncio
    async def test_failed_history_degrades_growth_to_zero(self):
        history = VolumeHistoryCache(redis_url="")
        history.get_history = AsyncMock(side_effect=ConnectionError("redis gone"))
        scorer = TrendScorer(history)

        breakdown = await scorer.score(make_trend(volume=500_000, competition="low"), [])

        assert breakdown.growth_score == 0.0
        assert breakdown.degraded == ["growth"]
        # 20 + 0 + 0 + 7
        assert breakdown.composite_score == 27.0

    @pytest.mark.asyncio
    async def test_score_trend_returns_scored_copy(self, memory_history):
        scorer = TrendScorer(memory_history)
        trend = make_trend(volume=500_000, competition="low")

        scored = await scorer.score_trend(trend, [])

        assert scored.trend_score == 37.0
        assert trend.trend_score == 0.0
        assert scored.id == trend.id


class TestRankTrends:

    def test_highest_score_first(self):
        trends = [make_trend("a", score=10), make_trend("b", score=90), make_trend("c", score=50)]

        assert [t.topic for t in rank_trends(trends)] == ["b", "c", "a"]

    def test_top_k(self):
        trends = [make_trend(str(i), score=i) for i in range(10)]

        assert [t.topic for t in rank_trends(trends, k=3)] == ["9", "8", "7"]


class TestTrendValidation:

    def test_score_outside_range_rejected(self):
        with pytest.raises(ValueError):
            make_trend(score=101)

    def test_trend_needs_a_platform(self):
        with pytest.raises(ValueError):
            Trend(
                id="t", topic="x", platforms=frozenset(), search_volume=0,
                competition_level=CompetitionLevel.LOW, lifecycle_stage=LifecycleStage.PEAK,
            )
