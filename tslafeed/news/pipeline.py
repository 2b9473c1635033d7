"""Fetch -> parse -> filter -> dedup -> rank pipeline.

``NewsPipeline`` is the explicit context passed through every stage: it
holds the feed list, keyword model, provider rules, tuning knobs from
settings and an optional injected HTTP client. Both the scheduler and the
cache-miss path call ``run()``; runs share no state.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from ..config.settings import Settings, settings as default_settings
from ..errors import FeedError, PipelineFailure
from .dedup import deduplicate, exclude_sources, rank_and_cap
from .fetcher import FetchReport, NewsFetcher
from .models import FeedSource, NewsItem, RawFeedItem
from .providers import ProviderRule, default_rules, is_absolute_http
from .relevance import AcceptancePolicy, KeywordModel, TopicClassifier, load_keyword_model

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Output of one pipeline run."""

    items: list[NewsItem]
    debug: str
    fetched: int = 0
    report: FetchReport = field(default_factory=FetchReport)
    timings: dict[str, float] = field(default_factory=dict)

    def to_payload(self) -> list[dict[str, Any]]:
        """Debug marker followed by the serialized items."""
        return [{"debug": self.debug}] + [item.to_payload() for item in self.items]


def normalize(raw: RawFeedItem, now: datetime) -> NewsItem:
    """Turn a parser record into a NewsItem, enforcing link and date invariants."""
    parsed_date = raw.parsed_date
    if parsed_date is not None and parsed_date >= now:
        logger.debug("[PIPELINE] Ignoring future date %s for %r", raw.pub_date_raw, raw.title)
        parsed_date = None

    pub_date = raw.pub_date_raw or (parsed_date.isoformat() if parsed_date else "")
    return NewsItem(
        title=raw.title,
        link=raw.link if is_absolute_http(raw.link) else "",
        pub_date=pub_date,
        parsed_date=parsed_date,
        description=raw.description,
        source=raw.source_label,
        image_url=raw.image_url or None,
        author=raw.author,
        origin_feed_url=raw.origin_feed_url,
        provider_hint=raw.provider_hint,
    )


class NewsPipeline:
    """
    Runs the full news aggregation pipeline.

    Stages: fetch all feeds, normalize, deduplicate, drop blocked sources,
    keyword acceptance, recency window + media cap + truncation, topic tags.
    """

    def __init__(
        self,
        sources: Optional[list[FeedSource]] = None,
        config: Optional[Settings] = None,
        keyword_model: Optional[KeywordModel] = None,
        rules: Optional[list[ProviderRule]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the pipeline context.

        Args:
            sources: Feeds to aggregate (default: feeds.json)
            config: Settings instance (default: global settings)
            keyword_model: Topic/acceptance model (default: topics.yaml)
            rules: Provider rule table (default: Google News + image rules)
            client: HTTP client to reuse, mainly for tests
        """
        self.config = config or default_settings
        if sources is None:
            from .feed_loader import get_feed_sources

            sources = get_feed_sources(self.config.feeds_file)
        self.sources = sources
        self.keyword_model = keyword_model or load_keyword_model(self.config.topics_file)
        self.rules = rules if rules is not None else default_rules(self.config.image_suppressed_hosts)
        self.client = client

        self.classifier = TopicClassifier(self.keyword_model)
        self.acceptance = AcceptancePolicy(
            self.keyword_model,
            authoritative_prefix=self.config.authoritative_feed_prefix,
            authoritative_term=self.config.authoritative_query_term,
        )

    def make_fetcher(self) -> NewsFetcher:
        return NewsFetcher(
            sources=self.sources,
            batch_size=self.config.batch_size,
            batch_delay=self.config.batch_delay,
            client=self.client,
            rules=self.rules,
            timeout=self.config.fetch_timeout,
        )

    def process(self, raw_items: list[RawFeedItem], now: datetime) -> list[NewsItem]:
        """Everything after fetching: pure and synchronous."""
        items = [normalize(raw, now) for raw in raw_items]

        items = deduplicate(items)
        logger.info("[PIPELINE] Item count after deduplication: %d", len(items))

        items = exclude_sources(items, self.config.excluded_sources)
        logger.info("[PIPELINE] Item count after source exclusion: %d", len(items))

        items = [item for item in items if self.acceptance.accepts(item)]
        logger.info("[PIPELINE] Item count after keyword filter: %d", len(items))
        if len(items) < self.config.low_item_warning:
            logger.warning("[PIPELINE] Only %d Tesla-related items after filtering", len(items))

        items = rank_and_cap(
            items,
            now,
            media_filter=self.acceptance.strict_accepts,
            days=self.config.window_days,
            max_items=self.config.max_items,
            max_media=self.config.max_media_items,
        )

        for item in items:
            item.topics = self.classifier.classify(item.title, item.description)
        return items

    async def run(self, debug: Optional[str] = None, now: Optional[datetime] = None) -> PipelineResult:
        """
        Fetch and process all feeds.

        Args:
            debug: Version marker placed first in the payload
            now: Reference time (default: current UTC time)

        Raises:
            PipelineFailure: If anything other than a single feed fails
        """
        now = now or datetime.now(timezone.utc)
        debug = debug or self.config.debug_version
        timings: dict[str, float] = {}

        try:
            t0 = time.time()
            fetcher = self.make_fetcher()
            raw_items = await fetcher.fetch_all()
            timings["fetch"] = time.time() - t0

            t0 = time.time()
            items = self.process(raw_items, now)
            timings["process"] = time.time() - t0
        except FeedError:
            raise
        except Exception as e:
            logger.exception("[PIPELINE] Run failed")
            raise PipelineFailure(str(e) or e.__class__.__name__) from e

        logger.info(
            "[PIPELINE] %d items from %d raw (fetch %.2fs, process %.2fs)",
            len(items),
            len(raw_items),
            timings["fetch"],
            timings["process"],
        )
        return PipelineResult(
            items=items,
            debug=debug,
            fetched=len(raw_items),
            report=fetcher.report,
            timings=timings,
        )

    def run_sync(self, debug: Optional[str] = None) -> PipelineResult:
        """Synchronous wrapper for run()."""
        return asyncio.run(self.run(debug))
