from datetime import timedelta

import httpx
import pytest

from tslafeed.config.settings import Settings
from tslafeed.errors import PipelineFailure
from tslafeed.news.models import FeedSource, RawFeedItem
from tslafeed.news.pipeline import NewsPipeline, normalize

from conftest import NOW

FEED_A = "https://a.example.com/feed"
FEED_B = "https://b.example.com/feed"
FEED_C = "https://c.example.com/feed"


@pytest.fixture
def feeds(rss_feed):
    return {
        "a.example.com": rss_feed(
            {
                "title": "Tesla Model Y deliveries climb in Europe",
                "link": "https://a.example.com/model-y-europe",
                "published": NOW - timedelta(hours=1),
                "description": "Registrations rose in March.",
            },
            {
                "title": "Tesla Cybertruck dated tomorrow",
                "link": "https://a.example.com/future",
                "published": NOW + timedelta(days=1),
            },
            {
                "title": "Weather update for the weekend",
                "link": "https://a.example.com/weather",
                "published": NOW - timedelta(hours=2),
            },
            {
                "title": "Tesla Semi gets new customer",
                "link": "https://electrek.co/2026/03/tesla-semi",
                "published": NOW - timedelta(hours=3),
                "extra": '<source url="https://electrek.co">electrek.co</source>',
            },
        ),
        "b.example.com": "",
        "c.example.com": rss_feed({
            "title": "Tesla Model Y deliveries climb in Europe",
            "link": "https://a.example.com/model-y-europe/",
            "published": NOW - timedelta(hours=1),
        }),
    }


@pytest.fixture
def client(feeds):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=feeds[request.url.host])

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def config():
    return Settings(batch_delay=0, excluded_sources=[r"electrek\.co"], image_suppressed_hosts=[])


async def test_end_to_end_run(client, config):
    pipeline = NewsPipeline(
        sources=[FeedSource(FEED_A), FeedSource(FEED_B)],
        config=config,
        client=client,
    )

    result = await pipeline.run(debug="test-version", now=NOW)

    assert [item.title for item in result.items] == ["Tesla Model Y deliveries climb in Europe"]
    item = result.items[0]
    assert item.topics == {"tesla"}
    assert item.link == "https://a.example.com/model-y-europe"
    assert result.report.feeds_ok == 2
    assert result.report.items_per_feed[FEED_B] == 0

    payload = result.to_payload()
    assert payload[0] == {"debug": "test-version"}
    assert payload[1]["title"] == item.title
    assert payload[1]["topics"] == ["tesla"]
    assert payload[1]["isYouTube"] is False
    assert payload[1]["metadata"]["articlePublishedTime"] == item.parsed_date.isoformat()


async def test_duplicates_across_feeds_collapse(client, config):
    pipeline = NewsPipeline(
        sources=[FeedSource(FEED_A), FeedSource(FEED_C)],
        config=config,
        client=client,
    )
    result = await pipeline.run(now=NOW)
    assert len(result.items) == 1
    assert result.debug == config.debug_version


async def test_unexpected_error_becomes_pipeline_failure(client, config, monkeypatch):
    pipeline = NewsPipeline(sources=[FeedSource(FEED_A)], config=config, client=client)

    def explode(raw_items, now):
        raise ValueError("bad state")

    monkeypatch.setattr(pipeline, "process", explode)

    with pytest.raises(PipelineFailure) as exc_info:
        await pipeline.run(now=NOW)
    assert isinstance(exc_info.value.__cause__, ValueError)


async def test_low_item_count_is_logged(client, config, caplog):
    pipeline = NewsPipeline(sources=[FeedSource(FEED_A)], config=config, client=client)
    with caplog.at_level("WARNING"):
        await pipeline.run(now=NOW)
    assert "Tesla-related items after filtering" in caplog.text


def raw_item(**overrides) -> RawFeedItem:
    fields = dict(
        title="Tesla news",
        link="https://www.example.com/a",
        pub_date_raw="",
        description="",
        image_url="",
        author=None,
        source_label="example.com",
        origin_feed_url=FEED_A,
        parsed_date=NOW - timedelta(hours=1),
    )
    fields.update(overrides)
    return RawFeedItem(**fields)


def test_normalize_fills_pub_date_from_parsed_date():
    item = normalize(raw_item(provider_hint="x.com"), NOW)
    assert item.provider_hint == "x.com"
    assert item.pub_date == (NOW - timedelta(hours=1)).isoformat()
    assert item.image_url is None


def test_normalize_drops_future_dates():
    item = normalize(raw_item(parsed_date=NOW + timedelta(minutes=5), pub_date_raw="later"), NOW)
    assert item.parsed_date is None
    assert item.pub_date == "later"


def test_normalize_blanks_non_http_links():
    assert normalize(raw_item(link="ftp://example.com/file"), NOW).link == ""
