"""Provider-specific rules consulted by the feed parser.

Each rule pairs a matcher on the feed URL with a transform applied to every
item parsed from a matching feed. A transform returns the (possibly updated)
item, or None to drop it. New providers are added to ``default_rules`` as
data instead of branching inside the parser.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Optional
from urllib.parse import parse_qs, unquote, urlparse

from .entities import decode_entities
from .models import RawFeedItem

logger = logging.getLogger(__name__)

ABSOLUTE_HTTP = re.compile(r"^https?://", re.IGNORECASE)
BARE_DOMAIN = re.compile(r"^https?://[^/]+/?$", re.IGNORECASE)
HAS_PATH = re.compile(r"^https?://[^/]+/", re.IGNORECASE)

_ANCHOR_HREF = re.compile(r"""<a\s[^>]*href=["']([^"']+)["']""", re.IGNORECASE)
_EMBEDDED_URL = re.compile(rb"https?://[\x21-\x7e]+")
# Protobuf header of old-style Google News article ids ("CBMi...")
_GOOGLE_ID_PREFIX = b"\x08\x13\x22"


@dataclass(frozen=True)
class ProviderRule:
    """A ``{matcher, transform}`` pair keyed on the originating feed URL."""

    name: str
    matcher: Callable[[str], bool]
    transform: Callable[[RawFeedItem, str], Optional[RawFeedItem]]

    def applies_to(self, feed_url: str) -> bool:
        return self.matcher(feed_url)


def is_absolute_http(url: Optional[str]) -> bool:
    return bool(url) and bool(ABSOLUTE_HTTP.match(url))


def clean_link(link: Optional[str]) -> Optional[str]:
    """Remove CDATA wrappers (raw or percent-encoded) and percent-decode."""
    if not link:
        return link
    link = re.sub(r"^<!\[CDATA\[|\]\]>$", "", link)
    link = re.sub(r"%3C!\[CDATA\[|\]\]%3E", "", link, flags=re.IGNORECASE)
    link = re.sub(r"^<|>$", "", link)
    link = unquote(link)
    return link.strip()


def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def host_matches(url: str, domain: str) -> bool:
    """True if the URL's host is ``domain`` or a subdomain of it."""
    host = _host(url)
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


# ---------------------------------------------------------------------------
# Google News
# ---------------------------------------------------------------------------


def is_google_news_feed(feed_url: str) -> bool:
    return bool(re.search(r"news\.google\.", feed_url or "", re.IGNORECASE))


def is_google_redirect(link: Optional[str]) -> bool:
    """True for Google News article redirects and google.com/url? links."""
    if not link:
        return False
    host = _host(link)
    if host.startswith("news.google."):
        return True
    return "google." in host and urlparse(link).path.startswith("/url")


def original_google_link(link: str) -> str:
    """Return the ``url=`` or ``q=`` query parameter, else the link itself."""
    try:
        params = parse_qs(urlparse(link).query)
    except ValueError:
        return link
    for key in ("url", "q"):
        if params.get(key):
            return params[key][0]
    return link


def decode_google_article_id(link: str) -> Optional[str]:
    """Decode the destination embedded in a ``/rss/articles/<id>`` link.

    Only old-style ids carry the URL inline; newer ids need a round trip to
    Google and yield None here.
    """
    path = urlparse(link).path
    if "/articles/" not in path:
        return None
    article_id = path.rstrip("/").rsplit("/", 1)[-1]
    try:
        raw = base64.urlsafe_b64decode(article_id + "=" * (-len(article_id) % 4))
    except (binascii.Error, ValueError):
        return None

    if raw.startswith(_GOOGLE_ID_PREFIX):
        raw = raw[len(_GOOGLE_ID_PREFIX):]
        if not raw:
            return None
        length, start = raw[0], 1
        if length >= 0x80 and len(raw) > 1:
            length, start = (length & 0x7F) | (raw[1] << 7), 2
        candidate = raw[start:start + length].decode("utf-8", errors="ignore")
        if is_absolute_http(candidate):
            return candidate

    match = _EMBEDDED_URL.search(raw)
    if match:
        return match.group(0).decode("ascii", errors="ignore")
    return None


def resolve_google_link(link: Optional[str], raw_description: str) -> Optional[str]:
    """Best destination URL for a Google News item, or None."""
    anchor = _ANCHOR_HREF.search(raw_description or "")
    if anchor:
        link = clean_link(decode_entities(anchor.group(1)))

    if link and is_google_redirect(link):
        original = clean_link(original_google_link(link))
        if original and is_absolute_http(original) and not is_google_redirect(original):
            link = original
        else:
            decoded = decode_google_article_id(link)
            if decoded:
                link = clean_link(decoded)

    if not is_absolute_http(link) or is_google_redirect(link):
        return None
    return link


_HEADLINE_SEPARATORS = (" - ", " | ", " — ", " – ", ": ")


def strip_source_suffix(title: str, source: str) -> str:
    """Remove a trailing ``" - Publisher"`` that aggregators append to titles."""
    if not title or not source:
        return title
    lower_title, lower_source = title.lower(), source.lower()
    for separator in _HEADLINE_SEPARATORS:
        if lower_title.endswith(separator + lower_source):
            return title[: -(len(separator) + len(source))].strip()
    return title


def strip_trailing_source(description: str, source: str) -> str:
    if not description or not source:
        return description
    pattern = re.compile(r"[\s\-–—|:]*" + re.escape(source) + r"$", re.IGNORECASE)
    return pattern.sub("", description).strip()


def _google_news_transform(item: RawFeedItem, raw_description: str) -> Optional[RawFeedItem]:
    link = resolve_google_link(item.link, raw_description)
    if link is None:
        logger.warning(
            "[PARSER] Skipping Google News item with no usable link: %r", item.title
        )
        return None
    return replace(
        item,
        link=link,
        title=strip_source_suffix(item.title, item.source_label),
        description=strip_trailing_source(item.description, item.source_label),
    )


# ---------------------------------------------------------------------------
# Image suppression
# ---------------------------------------------------------------------------


def image_suppression_rule(hosts: Iterable[str]) -> ProviderRule:
    """Drop images from providers whose enclosures are known to be broken."""
    hosts = [h.lower() for h in hosts]

    def matcher(feed_url: str) -> bool:
        return any(host_matches(feed_url, h) for h in hosts)

    def transform(item: RawFeedItem, raw_description: str) -> RawFeedItem:
        return replace(item, image_url=None)

    return ProviderRule(name="image-suppression", matcher=matcher, transform=transform)


GOOGLE_NEWS_RULE = ProviderRule(
    name="google-news",
    matcher=is_google_news_feed,
    transform=_google_news_transform,
)


def default_rules(image_suppressed_hosts: Optional[Iterable[str]] = None) -> list[ProviderRule]:
    """Rule table used when the caller does not supply one."""
    if image_suppressed_hosts is None:
        from ..config.settings import settings

        image_suppressed_hosts = settings.image_suppressed_hosts
    return [
        GOOGLE_NEWS_RULE,
        image_suppression_rule(image_suppressed_hosts),
    ]
