"""Tolerant RSS/Atom parsing into RawFeedItem records.

feedparser does the XML work (malformed markup, CDATA, encodings, RSS and
Atom in one pass). On top of it this module resolves the item link with a
strategy chosen from the feed shape, extracts images and dates, and runs the
provider rule table from ``providers.py``.
"""

import io
import logging
import re
from datetime import datetime, timezone
from typing import Iterator, Optional, Union
from urllib.parse import urljoin

import feedparser

from ..errors import ParseAnomaly
from .entities import clean_text, decode_entities, strip_cdata
from .models import RawFeedItem, hostname_label
from .providers import (
    BARE_DOMAIN,
    HAS_PATH,
    ProviderRule,
    clean_link,
    default_rules,
    is_absolute_http,
)

logger = logging.getLogger(__name__)

_IMG_SRC = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Link strategies
# ---------------------------------------------------------------------------


def _guid_link(entry: feedparser.FeedParserDict) -> Optional[str]:
    guid = (entry.get("id") or "").strip()
    return guid if is_absolute_http(guid) else None


def _general_link(entry: feedparser.FeedParserDict) -> Optional[str]:
    link = (entry.get("link") or "").strip()
    if link:
        return link
    for candidate in entry.get("links", []):
        if candidate.get("href"):
            return candidate["href"].strip()
    return None


def _alternate_html_link(entry: feedparser.FeedParserDict) -> Optional[str]:
    for candidate in entry.get("links", []):
        if (
            candidate.get("rel", "alternate") == "alternate"
            and candidate.get("type", "") == "text/html"
            and candidate.get("href")
        ):
            return candidate["href"].strip()
    return None


class RssLinkStrategy:
    """GUID when it is a URL, else <link>, preferring a GUID with a path
    over a link that only points at the site root."""

    def resolve(self, entry: feedparser.FeedParserDict, link: str = "") -> str:
        guid = _guid_link(entry)

        if not is_absolute_http(link) and guid:
            link = guid

        if not is_absolute_http(link):
            general = _general_link(entry)
            if general:
                guid_is_specific = guid and HAS_PATH.match(guid) and BARE_DOMAIN.match(general)
                if not guid_is_specific:
                    link = general

        link_is_bare = bool(link) and bool(BARE_DOMAIN.match(link))
        if (not is_absolute_http(link) or link_is_bare) and guid and HAS_PATH.match(guid):
            link = guid
        return link or ""


class AtomLinkStrategy(RssLinkStrategy):
    """Atom alternate HTML link first, then the RSS chain."""

    def resolve(self, entry: feedparser.FeedParserDict, link: str = "") -> str:
        return super().resolve(entry, _alternate_html_link(entry) or "")


class GenericLinkStrategy:
    """Unknown shape: try Atom, then RSS."""

    def resolve(self, entry: feedparser.FeedParserDict, link: str = "") -> str:
        link = AtomLinkStrategy().resolve(entry)
        if is_absolute_http(link):
            return link
        return RssLinkStrategy().resolve(entry)


LINK_STRATEGIES = {
    "atom": AtomLinkStrategy(),
    "rss": RssLinkStrategy(),
    "generic": GenericLinkStrategy(),
}


def feed_shape(version: str) -> str:
    """Map a feedparser version string to a link strategy key."""
    version = version or ""
    if version.startswith("atom"):
        return "atom"
    if version.startswith("rss"):
        return "rss"
    return "generic"


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------


def _struct_to_datetime(value) -> Optional[datetime]:
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def extract_date(entry: feedparser.FeedParserDict, feed_url: str) -> tuple[str, Optional[datetime]]:
    """Raw date string and parsed UTC datetime, first matching tag wins.

    feedparser folds pubDate/published into ``published`` and
    updated/dc:date into ``updated``.
    """
    for key in ("published", "updated"):
        raw = (entry.get(key) or "").strip()
        if not raw:
            continue
        parsed = entry.get(f"{key}_parsed")
        parsed_date = _struct_to_datetime(parsed) if parsed else None
        if parsed_date is None:
            logger.warning("[PARSER] Invalid date %r from feed: %s", raw, feed_url)
        return raw, parsed_date
    return "", None


def extract_description(entry: feedparser.FeedParserDict) -> str:
    """Raw (markup-bearing) description: content:encoded, content, description, summary."""
    for content in entry.get("content", []):
        if content.get("value"):
            return content["value"]
    return entry.get("description") or entry.get("summary") or ""


def extract_image(entry: feedparser.FeedParserDict, raw_description: str) -> Optional[str]:
    """media:content, media:thumbnail, image enclosure, linked enclosure, inline <img>."""
    for media in entry.get("media_content", []):
        if media.get("url"):
            return media["url"]
    for thumb in entry.get("media_thumbnail", []):
        if thumb.get("url"):
            return thumb["url"]
    for enclosure in entry.get("enclosures", []):
        if enclosure.get("type", "").startswith("image/") and enclosure.get("href"):
            return enclosure["href"]
    for link in entry.get("links", []):
        if (
            link.get("rel") == "enclosure"
            and link.get("type", "").startswith("image/")
            and link.get("href")
        ):
            return link["href"]
    match = _IMG_SRC.search(raw_description or "")
    if match:
        return decode_entities(match.group(1))
    return None


def extract_source(entry: feedparser.FeedParserDict, feed_url: str) -> str:
    source = entry.get("source") or {}
    label = source.get("title") if hasattr(source, "get") else ""
    label = label or entry.get("news_source") or ""
    label = decode_entities(label).strip()
    return label or hostname_label(feed_url)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def parse_feed(
    content: Union[bytes, str, None],
    feed_url: str,
    rules: Optional[list[ProviderRule]] = None,
    provider_hint: str = "",
) -> Iterator[RawFeedItem]:
    """
    Parse one feed document into RawFeedItem records.

    Args:
        content: Raw feed body as returned by the server
        feed_url: URL the body came from (drives source label and rules)
        rules: Provider rule table (default: ``providers.default_rules()``)
        provider_hint: Feed-level provider tag (default: feed hostname)

    Yields:
        RawFeedItem in document order. Items without a title or an absolute
        http(s) link are skipped.
    """
    if not content or not content.strip():
        return
    if isinstance(content, str):
        content = content.encode("utf-8")

    feed = feedparser.parse(io.BytesIO(content))
    if feed.get("bozo"):
        logger.debug("[PARSER] Feed %s is malformed: %s", feed_url, feed.get("bozo_exception"))

    strategy = LINK_STRATEGIES[feed_shape(feed.get("version", ""))]
    if rules is None:
        rules = default_rules()
    active_rules = [rule for rule in rules if rule.applies_to(feed_url)]
    base_url = feed.feed.get("link") or feed_url
    provider_hint = provider_hint or hostname_label(feed_url)

    for entry in feed.entries:
        try:
            yield _build_item(entry, feed_url, base_url, strategy, active_rules, provider_hint)
        except ParseAnomaly as e:
            logger.warning(
                "[PARSER] Skipping item from %s: %s (%r)", feed_url, e, e.details.get("title")
            )
        except Exception as e:
            logger.warning("[PARSER] Error parsing item from %s: %s", feed_url, e)


def _build_item(
    entry: feedparser.FeedParserDict,
    feed_url: str,
    base_url: str,
    strategy,
    rules: list[ProviderRule],
    provider_hint: str = "",
) -> RawFeedItem:
    title = decode_entities(strip_cdata(entry.get("title") or "")).strip()
    raw_description = strip_cdata(extract_description(entry))

    link = clean_link(strategy.resolve(entry)) or ""
    if link and not is_absolute_http(link) and is_absolute_http(base_url):
        link = urljoin(base_url, link)

    pub_raw, parsed_date = extract_date(entry, feed_url)

    item = RawFeedItem(
        title=title,
        link=link,
        pub_date_raw=pub_raw,
        description=clean_text(raw_description),
        image_url=extract_image(entry, raw_description),
        author=(entry.get("author") or "").strip() or None,
        source_label=extract_source(entry, feed_url),
        origin_feed_url=feed_url,
        parsed_date=parsed_date,
        provider_hint=provider_hint,
    )

    for rule in rules:
        transformed = rule.transform(item, raw_description)
        if transformed is None:
            raise ParseAnomaly(f"dropped by {rule.name} rule", {"title": item.title})
        item = transformed

    if not item.title or not is_absolute_http(item.link):
        raise ParseAnomaly("missing title or http(s) link", {"title": item.title})
    return item
