import asyncio
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Optional

import pytest

from tslafeed.config.settings import settings
from tslafeed.errors import CacheStoreError
from tslafeed.news.models import FeedSource, NewsItem
from tslafeed.news.pipeline import PipelineResult
from tslafeed.news.relevance import load_keyword_model
from tslafeed.store import MemoryCacheStore

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture(scope="session")
def keyword_model():
    return load_keyword_model()


@pytest.fixture
def rss_feed():
    """Build an RSS 2.0 document from item dicts."""

    def build(*items: dict, site: str = "https://www.example.com/") -> str:
        parts = []
        for item in items:
            fields = []
            if "title" in item:
                fields.append(f"<title>{item['title']}</title>")
            if "link" in item:
                fields.append(f"<link>{item['link']}</link>")
            if "guid" in item:
                permalink = "true" if item["guid"].startswith("http") else "false"
                fields.append(f'<guid isPermaLink="{permalink}">{item["guid"]}</guid>')
            if "published" in item:
                published = item["published"]
                if isinstance(published, datetime):
                    published = format_datetime(published, usegmt=True)
                fields.append(f"<pubDate>{published}</pubDate>")
            if "description" in item:
                fields.append(f"<description>{item['description']}</description>")
            fields.append(item.get("extra", ""))
            parts.append("<item>" + "".join(fields) + "</item>")

        return (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">'
            f"<channel><title>Test feed</title><link>{site}</link>"
            + "".join(parts)
            + "</channel></rss>"
        )

    return build


@pytest.fixture
def make_item():
    """Factory for NewsItem with sensible defaults."""

    def build(
        title: str = "Tesla Model Y deliveries climb",
        link: Optional[str] = "https://www.example.com/tesla-model-y",
        age: Optional[timedelta] = timedelta(hours=1),
        description: str = "",
        source: str = "example.com",
        origin_feed_url: str = "https://www.example.com/feed",
        provider_hint: str = "example.com",
        topics: Optional[set] = None,
    ) -> NewsItem:
        parsed = NOW - age if age is not None else None
        return NewsItem(
            title=title,
            link=link or "",
            pub_date=format_datetime(parsed, usegmt=True) if parsed else "",
            parsed_date=parsed,
            description=description,
            source=source,
            origin_feed_url=origin_feed_url,
            provider_hint=provider_hint,
            topics=topics if topics is not None else set(),
        )

    return build


class RecordingStore(MemoryCacheStore):
    """Memory store that remembers every write and its TTL."""

    def __init__(self):
        super().__init__()
        self.puts = []

    def put(self, key, value, ttl_seconds=None):
        self.puts.append((key, ttl_seconds))
        super().put(key, value, ttl_seconds)


class FailingWriteStore(MemoryCacheStore):
    """Memory store that rejects writes to the feed key."""

    def put(self, key, value, ttl_seconds=None):
        if key == settings.cache_key:
            raise CacheStoreError("quota exceeded")
        super().put(key, value, ttl_seconds)


class FakePipeline:
    """Stands in for NewsPipeline; returns canned items or raises."""

    def __init__(self, items=None, error: Optional[Exception] = None):
        self.items = items or []
        self.error = error
        self.calls = []
        self.sources = [
            FeedSource("https://a.example.com/feed"),
            FeedSource("https://b.example.com/feed"),
        ]
        self.config = settings
        self.ran = asyncio.Event()

    async def run(self, debug=None, now=None):
        self.calls.append(debug)
        self.ran.set()
        if self.error is not None:
            raise self.error
        return PipelineResult(items=list(self.items), debug=debug or settings.debug_version)
