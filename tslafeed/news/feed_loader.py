"""Read the configured feed list (feeds.json) into FeedSource records."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .models import FeedSource
from .providers import is_absolute_http

logger = logging.getLogger(__name__)


@dataclass
class FeedEntry:
    """One row of feeds.json."""

    name: str
    xml_url: str
    category: str = "news"
    enabled: bool = True
    provider_hint: str = ""

    @classmethod
    def from_json(cls, row: dict) -> "FeedEntry":
        return cls(
            name=row.get("name") or row["xml_url"],
            xml_url=row["xml_url"].strip(),
            category=row.get("category", "news"),
            enabled=bool(row.get("enabled", True)),
            provider_hint=row.get("provider_hint", ""),
        )


def load_feeds(path: Optional[Path] = None) -> list[FeedEntry]:
    """
    Enabled feeds from a feeds.json file, in file order.

    Rows without an absolute http(s) ``xml_url`` are skipped with a warning;
    a URL listed twice is kept once.
    """
    if path is None:
        from ..config.settings import settings

        path = settings.feeds_file

    if not path.exists():
        logger.warning("[FEEDS] Feed file not found: %s", path)
        return []

    rows = json.loads(path.read_text(encoding="utf-8")).get("feeds", [])

    entries: list[FeedEntry] = []
    seen: set[str] = set()
    for row in rows:
        try:
            entry = FeedEntry.from_json(row)
        except (KeyError, AttributeError, TypeError):
            logger.warning("[FEEDS] Skipping malformed row: %r", row)
            continue
        if not entry.enabled:
            continue
        if not is_absolute_http(entry.xml_url):
            logger.warning("[FEEDS] Skipping %s: not an http(s) URL", entry.name)
            continue
        if entry.xml_url in seen:
            logger.debug("[FEEDS] Duplicate feed URL ignored: %s", entry.xml_url)
            continue
        seen.add(entry.xml_url)
        entries.append(entry)

    logger.info("[FEEDS] %d of %d feeds enabled (%s)", len(entries), len(rows), path.name)
    return entries


def get_feed_sources(path: Optional[Path] = None) -> list[FeedSource]:
    """Configured feeds as immutable FeedSource records."""
    return [FeedSource(url=f.xml_url, provider_hint=f.provider_hint) for f in load_feeds(path)]
