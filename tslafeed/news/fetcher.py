"""RSS/Atom feed fetching for news aggregation.

Fetches all configured feeds in fixed-size concurrent batches with a short
pause between batches, so providers do not rate-limit us. A failing feed
contributes zero items and never aborts the run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

from ..errors import FetchFailure
from .models import FeedSource, RawFeedItem
from .parser import parse_feed
from .providers import ProviderRule, is_google_news_feed

logger = logging.getLogger(__name__)


def browser_headers(user_agent: Optional[str] = None) -> dict[str, str]:
    if user_agent is None:
        from ..config.settings import settings

        user_agent = settings.user_agent
    return {
        "User-Agent": user_agent,
        "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, */*;q=0.8",
    }


@dataclass
class FetchReport:
    """Per-run bookkeeping of which feeds delivered."""

    feeds_ok: int = 0
    feeds_failed: int = 0
    items_per_feed: dict[str, int] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)


class NewsFetcher:
    """
    Fetches feed documents and parses them into RawFeedItem records.

    Feeds inside a batch run concurrently; batches run one after another
    with ``batch_delay`` seconds between them.
    """

    def __init__(
        self,
        sources: Optional[list[FeedSource]] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        rules: Optional[list[ProviderRule]] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize news fetcher.

        Args:
            sources: Feeds to fetch (default: loaded from feeds.json)
            batch_size: Feeds fetched concurrently per batch
            batch_delay: Seconds to wait between batches
            client: Shared HTTP client; one is created per run if omitted
            rules: Provider rule table handed to the parser
            timeout: Network timeout for a client created here
        """
        from ..config.settings import settings

        if sources is None:
            from .feed_loader import get_feed_sources

            sources = get_feed_sources()

        self.sources = sources
        self.batch_size = max(1, batch_size or settings.batch_size)
        self.batch_delay = settings.batch_delay if batch_delay is None else batch_delay
        self.client = client
        self.rules = rules
        self.timeout = timeout or settings.fetch_timeout
        self.report = FetchReport()

    async def fetch_all(self) -> list[RawFeedItem]:
        """
        Fetch items from all configured feeds.

        Returns:
            Items from every feed that responded, concatenated in feed order.
        """
        self.report = FetchReport()
        if self.client is not None:
            return await self._fetch_batches(self.client)

        async with httpx.AsyncClient(
            follow_redirects=True, timeout=self.timeout, headers=browser_headers()
        ) as client:
            return await self._fetch_batches(client)

    async def _fetch_batches(self, client: httpx.AsyncClient) -> list[RawFeedItem]:
        items: list[RawFeedItem] = []

        for start in range(0, len(self.sources), self.batch_size):
            batch = self.sources[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self._fetch_feed(client, source) for source in batch),
                return_exceptions=True,
            )

            for source, result in zip(batch, results):
                if isinstance(result, list):
                    items.extend(result)
                    self.report.feeds_ok += 1
                    self.report.items_per_feed[source.url] = len(result)
                else:
                    self.report.feeds_failed += 1
                    self.report.items_per_feed[source.url] = 0
                    self.report.errors[source.url] = str(result)
                    logger.warning("[FETCHER] Failed to fetch or parse %s: %s", source.url, result)

            if start + self.batch_size < len(self.sources):
                await asyncio.sleep(self.batch_delay)

        logger.info(
            "[FETCHER] Fetched %d items from %d feeds (%d failed)",
            len(items),
            self.report.feeds_ok,
            self.report.feeds_failed,
        )
        return items

    async def _fetch_feed(self, client: httpx.AsyncClient, source: FeedSource) -> list[RawFeedItem]:
        """
        Fetch and parse a single feed.

        Raises:
            FetchFailure: On network errors and non-2xx responses
        """
        try:
            response = await client.get(source.url, headers=browser_headers())
        except httpx.HTTPError as e:
            raise FetchFailure(f"network error: {e!r}", {"url": source.url}) from e

        if not response.is_success:
            raise FetchFailure(
                f"HTTP {response.status_code}",
                {"url": source.url, "status": response.status_code},
            )

        items = list(parse_feed(response.content, source.url, self.rules, source.provider_hint))
        if is_google_news_feed(source.url):
            logger.info("[FETCHER] Google News %s: %d items", source.url, len(items))
        return items

    def fetch_sync(self) -> list[RawFeedItem]:
        """Synchronous wrapper for fetch_all()."""
        return asyncio.run(self.fetch_all())
