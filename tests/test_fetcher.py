import asyncio

import httpx
import pytest

from tslafeed.errors import FetchFailure
from tslafeed.news.fetcher import NewsFetcher, browser_headers
from tslafeed.news.models import FeedSource


def feed_body(rss_feed, host: str, count: int = 1) -> str:
    return rss_feed(*[
        {"title": f"Tesla item {i} from {host}", "link": f"https://{host}/story-{i}"}
        for i in range(count)
    ])


@pytest.fixture
def transport(rss_feed):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        host = request.url.host
        if host.startswith("down"):
            return httpx.Response(503)
        if host.startswith("broken"):
            raise httpx.ConnectError("connection refused", request=request)
        if host.startswith("empty"):
            return httpx.Response(200, content=b"")
        return httpx.Response(200, text=feed_body(rss_feed, host, count=2))

    mock = httpx.MockTransport(handler)
    mock.seen = seen
    return mock


def sources(*hosts: str) -> list[FeedSource]:
    return [FeedSource(url=f"https://{host}/feed") for host in hosts]


async def test_failures_are_isolated(transport):
    async with httpx.AsyncClient(transport=transport) as client:
        fetcher = NewsFetcher(
            sources=sources("a.example.com", "down.example.com", "broken.example.com", "b.example.com"),
            batch_size=4,
            batch_delay=0,
            client=client,
            rules=[],
        )
        items = await fetcher.fetch_all()

    assert [item.link for item in items] == [
        "https://a.example.com/story-0",
        "https://a.example.com/story-1",
        "https://b.example.com/story-0",
        "https://b.example.com/story-1",
    ]
    assert fetcher.report.feeds_ok == 2
    assert fetcher.report.feeds_failed == 2
    assert fetcher.report.items_per_feed["https://down.example.com/feed"] == 0
    assert "503" in fetcher.report.errors["https://down.example.com/feed"]


async def test_empty_body_contributes_nothing(transport):
    async with httpx.AsyncClient(transport=transport) as client:
        fetcher = NewsFetcher(sources=sources("empty.example.com"), client=client, rules=[])
        assert await fetcher.fetch_all() == []
    assert fetcher.report.feeds_ok == 1


async def test_batches_pause_between_but_not_after(transport, monkeypatch):
    delays = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay, *args, **kwargs):
        delays.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async with httpx.AsyncClient(transport=transport) as client:
        fetcher = NewsFetcher(
            sources=sources(*[f"h{i}.example.com" for i in range(5)]),
            batch_size=2,
            batch_delay=0.2,
            client=client,
            rules=[],
        )
        items = await fetcher.fetch_all()

    assert len(items) == 10
    assert [d for d in delays if d] == [0.2, 0.2]
    assert len(transport.seen) == 5


async def test_requests_carry_browser_user_agent(transport):
    async with httpx.AsyncClient(transport=transport) as client:
        fetcher = NewsFetcher(sources=sources("a.example.com"), client=client, rules=[])
        await fetcher.fetch_all()

    assert transport.seen[0].headers["User-Agent"] == browser_headers()["User-Agent"]
    assert "Mozilla" in transport.seen[0].headers["User-Agent"]


async def test_fetch_feed_raises_fetch_failure(transport):
    async with httpx.AsyncClient(transport=transport) as client:
        fetcher = NewsFetcher(sources=[], client=client, rules=[])
        with pytest.raises(FetchFailure) as exc_info:
            await fetcher._fetch_feed(client, FeedSource(url="https://down.example.com/feed"))

    assert exc_info.value.details["status"] == 503
