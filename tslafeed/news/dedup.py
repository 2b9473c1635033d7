"""Deduplication, recency windowing and ranking of normalized items."""

import logging
import re
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional
from urllib.parse import urlparse

from .models import NewsItem

logger = logging.getLogger(__name__)

_MEDIA_HOSTS = ("youtube.com", "youtu.be", "youtube-nocookie.com")


def dedup_key(item: NewsItem) -> str:
    """Normalized link, or ``:title:source`` when the item has no link."""
    link = item.link.rstrip("/").lower() if item.link else ""
    if link:
        return link
    return f":{item.title.strip().lower()}:{(item.source or '').strip().lower()}"


def deduplicate(items: Iterable[NewsItem]) -> list[NewsItem]:
    """Keep the first item seen for every dedup key, preserving order."""
    seen: set[str] = set()
    unique = []
    for item in items:
        key = dedup_key(item)
        if key not in seen:
            seen.add(key)
            unique.append(item)
    return unique


def exclude_sources(items: Iterable[NewsItem], patterns: Iterable[str]) -> list[NewsItem]:
    """Drop items whose source label matches a blocked pattern."""
    blocked = [re.compile(p, re.IGNORECASE) for p in patterns]
    return [
        item for item in items
        if not (item.source and any(p.search(item.source) for p in blocked))
    ]


def within_window(items: Iterable[NewsItem], now: datetime, days: int = 7) -> list[NewsItem]:
    """Items dated inside the trailing window. Undated items are dropped."""
    window = timedelta(days=days)
    return [
        item for item in items
        if item.parsed_date is not None and now - item.parsed_date < window
    ]


def sort_newest_first(items: Iterable[NewsItem]) -> list[NewsItem]:
    """Stable sort by parsed date, newest first; undated items last."""
    return sorted(
        items,
        key=lambda it: it.parsed_date.timestamp() if it.parsed_date else 0.0,
        reverse=True,
    )


def is_media_item(item: NewsItem) -> bool:
    """Video-platform items, identified by link host or the feed's provider hint."""
    if not item.link:
        return False
    if "youtube" in item.provider_hint.lower():
        return True
    try:
        host = (urlparse(item.link).hostname or "").lower()
    except ValueError:
        return False
    return any(media in host for media in _MEDIA_HOSTS)


def cap_media(
    items: list[NewsItem],
    media_filter: Optional[Callable[[NewsItem], bool]] = None,
    limit: int = 7,
) -> tuple[list[NewsItem], list[NewsItem]]:
    """
    Split items into (others, media), keeping at most ``limit`` media items.

    Media items must also pass ``media_filter`` when given; survivors are
    flagged ``is_youtube``.
    """
    media = [it for it in items if is_media_item(it)]
    others = [it for it in items if not is_media_item(it)]

    if media_filter is not None:
        media = [it for it in media if media_filter(it)]
    return others, [replace(it, is_youtube=True) for it in media[:limit]]


def rank_and_cap(
    items: list[NewsItem],
    now: datetime,
    media_filter: Optional[Callable[[NewsItem], bool]] = None,
    days: int = 7,
    max_items: int = 250,
    max_media: int = 7,
) -> list[NewsItem]:
    """
    Window, sort and truncate, capping media items so they cannot crowd
    the feed.

    Args:
        items: Deduplicated, relevance-filtered items
        now: Reference time for the window
        media_filter: Extra relevance check media items must pass
        days: Window length
        max_items: Final size limit
        max_media: Maximum number of media items kept

    Returns:
        Items newest first, media items flagged ``is_youtube``.
    """
    ranked = sort_newest_first(within_window(items, now, days))[:max_items]
    others, media = cap_media(ranked, media_filter, max_media)

    merged = sort_newest_first(others + media)
    merged = within_window(merged, now, days)[:max_items]
    logger.info(
        "[DEDUP] %d items after ranking (%d media, cap %d)", len(merged), len(media), max_media
    )
    return merged
