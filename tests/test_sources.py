"""Tests for the platform source adapters."""

import json
import time
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from trendscout.core.errors import AdapterError
from trendscout.core.settings import Settings
from trendscout.scout.sources import (
    GoogleTrendsAdapter,
    RedditAdapter,
    StaticAdapter,
    YouTubeAdapter,
    build_adapters,
)
from trendscout.scout.sources.google import parse_approx_traffic
from trendscout.scout.sources.youtube import upload_frequency
from trendscout.scout.types import CompetitionLevel, LifecycleStage

GOOGLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss xmlns:ht="https://trends.google.com/trending/rss" version="2.0">
  <channel>
    <title>Daily Search Trends</title>
    <item>
      <title>AI Tools</title>
      <ht:approx_traffic>200,000+</ht:approx_traffic>
      <pubDate>Fri, 1 Mar 2024 10:00:00 -0800</pubDate>
      <ht:news_item>
        <ht:news_item_title>New AI tools launched this week</ht:news_item_title>
      </ht:news_item>
    </item>
    <item>
      <title>Local Election</title>
      <ht:approx_traffic>20,000+</ht:approx_traffic>
      <pubDate>Fri, 1 Mar 2024 09:00:00 -0800</pubDate>
    </item>
  </channel>
</rss>
"""


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def reddit_listing(*posts):
    return {"data": {"children": [{"data": p} for p in posts]}}


class TestGoogleTrendsAdapter:

    def test_parse_approx_traffic(self):
        assert parse_approx_traffic("200,000+") == 200000
        assert parse_approx_traffic("1M+") == 1
        assert parse_approx_traffic(None) == 0
        assert parse_approx_traffic("lots") == 0

    @pytest.mark.asyncio
    async def test_fetch_trends_parses_feed(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text=GOOGLE_FEED)

        adapter = GoogleTrendsAdapter(geo="GB", client=mock_client(handler))
        trends = await adapter.fetch_trends("google")

        assert requests[0].url.params["geo"] == "GB"
        assert [t.topic for t in trends] == ["AI Tools", "Local Election"]
        ai = trends[0]
        assert ai.platform == "google"
        assert ai.search_volume == 200000
        assert ai.competition_level is CompetitionLevel.MEDIUM
        assert ai.related_keywords == ("New AI tools launched this week",)
        assert ai.observed_at.hour == 18
        assert trends[1].competition_level is CompetitionLevel.LOW

    @pytest.mark.asyncio
    async def test_fetch_volume_sums_matching_entries(self):
        adapter = GoogleTrendsAdapter(client=mock_client(lambda r: httpx.Response(200, text=GOOGLE_FEED)))

        sample = await adapter.fetch_volume("ai tools")

        assert sample.volume == 200000.0

    @pytest.mark.asyncio
    async def test_http_error_becomes_adapter_error(self):
        adapter = GoogleTrendsAdapter(client=mock_client(lambda r: httpx.Response(404)))

        with pytest.raises(AdapterError) as exc_info:
            await adapter.fetch_trends("google")

        assert exc_info.value.platform == "google"
        assert "404" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_retries_transient_server_error(self):
        responses = iter([httpx.Response(503), httpx.Response(200, text=GOOGLE_FEED)])
        adapter = GoogleTrendsAdapter(client=mock_client(lambda r: next(responses)))

        trends = await adapter.fetch_trends("google")

        assert len(trends) == 2


class TestRedditAdapter:

    @pytest.mark.asyncio
    async def test_hot_posts_become_raw_trends(self):
        now = time.time()
        listing = reddit_listing(
            {"title": "AI Tools megathread", "score": 900, "num_comments": 150,
             "subreddit": "technology", "link_flair_text": "Discussion", "created_utc": now - 3600},
            {"title": "Old news", "score": 10, "num_comments": 2,
             "subreddit": "news", "created_utc": now - 3 * 86400},
            {"title": "", "score": 5},
        )
        adapter = RedditAdapter(
            subreddits=["technology"],
            client=mock_client(lambda r: httpx.Response(200, json=listing)),
        )

        trends = await adapter.fetch_trends("reddit")

        assert [t.topic for t in trends] == ["AI Tools megathread", "Old news"]
        first = trends[0]
        assert first.search_volume == 1050
        assert first.competition_level is CompetitionLevel.MEDIUM
        assert first.lifecycle_hint is LifecycleStage.EMERGING
        assert first.related_keywords == ("r/technology", "Discussion")
        assert trends[1].lifecycle_hint is LifecycleStage.DECLINING

    @pytest.mark.asyncio
    async def test_social_signals_strength_capped(self):
        listing = reddit_listing(
            {"title": "viral", "score": 50_000, "created_utc": time.time()},
            {"title": "quiet", "score": 500, "created_utc": time.time()},
        )
        adapter = RedditAdapter(client=mock_client(lambda r: httpx.Response(200, json=listing)))

        signals = await adapter.fetch_social_signals("reddit")

        assert [s.strength for s in signals] == [100.0, 5.0]
        assert all(s.platform == "reddit" for s in signals)

    @pytest.mark.asyncio
    async def test_fetch_volume_from_search(self):
        listing = reddit_listing({"title": "a", "score": 100}, {"title": "b", "score": 50})

        def handler(request):
            assert request.url.path == "/search.json"
            assert request.url.params["q"] == "ai tools"
            return httpx.Response(200, json=listing)

        adapter = RedditAdapter(client=mock_client(handler))
        sample = await adapter.fetch_volume("ai tools")

        assert sample.volume == 150.0
        assert sample.competition == 2.0

    @pytest.mark.asyncio
    async def test_malformed_payload_becomes_adapter_error(self):
        adapter = RedditAdapter(client=mock_client(lambda r: httpx.Response(200, json={"error": 403})))

        with pytest.raises(AdapterError):
            await adapter.fetch_trends("reddit")

    @pytest.mark.asyncio
    async def test_malformed_signal_score_becomes_adapter_error(self):
        listing = reddit_listing({"title": "viral", "score": "lots"})
        adapter = RedditAdapter(client=mock_client(lambda r: httpx.Response(200, json=listing)))

        with pytest.raises(AdapterError):
            await adapter.fetch_social_signals("reddit")


class TestYouTubeAdapter:

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            YouTubeAdapter(api_key="")

    @pytest.mark.asyncio
    async def test_most_popular_videos(self):
        payload = {"items": [{
            "snippet": {"title": "AI Tools Review", "publishedAt": "2024-03-01T08:00:00Z",
                        "tags": ["ai", "review"]},
            "statistics": {"viewCount": "2500000"},
        }]}

        def handler(request):
            assert request.url.params["chart"] == "mostPopular"
            assert request.url.params["key"] == "k3y"
            return httpx.Response(200, json=payload)

        adapter = YouTubeAdapter(api_key="k3y", client=mock_client(handler))
        trends = await adapter.fetch_trends("youtube")

        assert len(trends) == 1
        assert trends[0].search_volume == 2_500_000
        assert trends[0].competition_level is CompetitionLevel.HIGH
        assert trends[0].related_keywords == ("ai", "review")

    @pytest.mark.asyncio
    async def test_fetch_volume_from_total_results(self):
        payload = {"pageInfo": {"totalResults": 250000}}
        adapter = YouTubeAdapter(api_key="k", client=mock_client(lambda r: httpx.Response(200, json=payload)))

        sample = await adapter.fetch_volume("ai tools")

        assert sample.volume == 250000.0
        assert sample.competition == 25.0

    @pytest.mark.asyncio
    async def test_competitors_from_channel_statistics(self):
        search = {"items": [{"id": {"kind": "youtube#channel", "channelId": "UC1"}},
                            {"id": {"kind": "youtube#channel", "channelId": "UC2"}}]}
        channels = {"items": [
            {"id": "UC1",
             "snippet": {"title": "AI Explained", "publishedAt": "2020-01-01T00:00:00Z"},
             "statistics": {"subscriberCount": "100000", "viewCount": "5000000", "videoCount": "250"}},
            {"id": "UC2",
             "snippet": {"title": "Quiet Lab"},
             "statistics": {"hiddenSubscriberCount": True, "viewCount": "900", "videoCount": "3"}},
        ]}

        def handler(request):
            if request.url.path.endswith("/search"):
                assert request.url.params["type"] == "channel"
                assert request.url.params["q"] == "ai tools"
                return httpx.Response(200, json=search)
            assert request.url.params["id"] == "UC1,UC2"
            return httpx.Response(200, json=channels)

        adapter = YouTubeAdapter(api_key="k", client=mock_client(handler))
        found = await adapter.fetch_competitors("ai tools", limit=5)

        first, second = found
        assert first.competitor_name == "AI Explained"
        assert first.channel_id == "UC1"
        assert first.avg_views == 20000
        assert first.engagement_rate == 20.0
        assert first.content_frequency.endswith("videos/week")
        assert second.subscribers == 0
        assert second.engagement_rate == 0.0
        assert second.content_frequency == "unknown"

    @pytest.mark.asyncio
    async def test_no_channels_skips_statistics_call(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(200, json={"items": []})

        adapter = YouTubeAdapter(api_key="k", client=mock_client(handler))

        assert await adapter.fetch_competitors("nothing here") == []
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_competitor_http_error_is_adapter_error(self):
        adapter = YouTubeAdapter(api_key="k", client=mock_client(lambda r: httpx.Response(403)))

        with pytest.raises(AdapterError):
            await adapter.fetch_competitors("ai tools")

    def test_upload_frequency(self):
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)

        assert upload_frequency(30, created, created + timedelta(weeks=10)) == "3.0 videos/week"
        assert upload_frequency(4, created, created + timedelta(days=2)) == "4.0 videos/week"
        assert upload_frequency(4, None, created) == "unknown"


class TestStaticAdapter:

    @pytest.mark.asyncio
    async def test_from_yaml(self, tmp_path):
        path = tmp_path / "trends.yaml"
        path.write_text(
            "trends:\n"
            "  - {topic: AI Tools, platform: TikTok, search_volume: 20000, competition_level: low}\n"
            "  - {topic: Knitting, platform: pinterest, search_volume: 500}\n"
            "signals:\n"
            "  - {platform: tiktok, signal: ai tools hacks, strength: 75}\n"
            "volumes:\n"
            "  AI Tools: {volume: 21000, competition: 35}\n"
            "  knitting: 400\n"
        )

        adapter = StaticAdapter.from_yaml(path)

        assert adapter.platforms() == ["tiktok", "pinterest"]
        tiktok = await adapter.fetch_trends("tiktok")
        assert [t.topic for t in tiktok] == ["AI Tools"]
        assert tiktok[0].competition_level is CompetitionLevel.LOW
        assert [s.strength for s in await adapter.fetch_social_signals("tiktok")] == [75.0]

        ai_volume = await adapter.fetch_volume("ai tools")
        assert ai_volume.volume == 21000.0
        assert ai_volume.competition == 35
        assert (await adapter.fetch_volume("Knitting")).volume == 400.0
        assert (await adapter.fetch_volume("unknown")).volume == 0.0

    @pytest.mark.asyncio
    async def test_invalid_entry_is_adapter_error(self):
        adapter = StaticAdapter(trends=[{"platform": "tiktok"}])

        with pytest.raises(AdapterError):
            await adapter.fetch_trends("tiktok")

    @pytest.mark.asyncio
    async def test_malformed_signal_entry_is_adapter_error(self):
        adapter = StaticAdapter(signals=[{"platform": "tiktok", "strength": 50}])

        with pytest.raises(AdapterError):
            await adapter.fetch_social_signals("tiktok")

    @pytest.mark.asyncio
    async def test_competitors_matched_by_niche(self, tmp_path):
        path = tmp_path / "trends.yaml"
        path.write_text(
            "competitors:\n"
            "  - {niche: AI Tools, name: AI Explained, platform: tiktok, subscribers: 250000,\n"
            "     avg_views: 40000, engagement_rate: 16.0, content_frequency: 3 videos/week}\n"
            "  - {niche: ai tools, name: Bot Bench, subscribers: 1000}\n"
            "  - {niche: knitting, name: Purl Jam, subscribers: 5000}\n"
        )

        adapter = StaticAdapter.from_yaml(path)
        found = await adapter.fetch_competitors("  ai TOOLS ")

        assert [c.competitor_name for c in found] == ["AI Explained", "Bot Bench"]
        assert found[0].engagement_rate == 16.0
        assert found[1].platform == "static"
        assert found[1].content_frequency == "unknown"
        assert len(await adapter.fetch_competitors("ai tools", limit=1)) == 1
        assert await adapter.fetch_competitors("woodworking") == []

    @pytest.mark.asyncio
    async def test_invalid_competitor_entry_is_adapter_error(self):
        adapter = StaticAdapter(competitors=[{"niche": "x", "subscribers": 10}])

        with pytest.raises(AdapterError):
            await adapter.fetch_competitors("x")


class TestBuildAdapters:

    def test_registry_from_settings(self, tmp_path):
        path = tmp_path / "trends.yaml"
        path.write_text(json.dumps({"trends": [{"topic": "x", "platform": "tiktok"}]}))
        settings = Settings(
            platforms="google, Reddit,youtube,tiktok,myspace,google",
            youtube_api_key="",
            static_trends_path=str(path),
        )

        adapters = build_adapters(settings)

        assert list(adapters) == ["google", "reddit", "tiktok"]
        assert isinstance(adapters["google"], GoogleTrendsAdapter)
        assert isinstance(adapters["reddit"], RedditAdapter)
        assert isinstance(adapters["tiktok"], StaticAdapter)

    def test_youtube_registered_with_key(self):
        adapters = build_adapters(Settings(platforms="youtube", youtube_api_key="abc"))

        assert isinstance(adapters["youtube"], YouTubeAdapter)
