"""Data models for feed sources and news items."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlparse


def hostname_label(url: str) -> str:
    """Hostname of a URL without a leading ``www.``, or the URL itself."""
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        host = ""
    if host.startswith("www."):
        host = host[4:]
    return host or url


@dataclass(frozen=True)
class FeedSource:
    """A configured feed. Immutable for the lifetime of the process."""

    url: str
    provider_hint: str = ""

    def __post_init__(self):
        if not self.provider_hint:
            object.__setattr__(self, "provider_hint", hostname_label(self.url))


@dataclass
class RawFeedItem:
    """One <item>/<entry> as extracted from a feed, before normalization."""

    title: str
    link: str
    pub_date_raw: str
    description: str
    image_url: Optional[str]
    author: Optional[str]
    source_label: str
    origin_feed_url: str
    parsed_date: Optional[datetime] = None
    provider_hint: str = ""


@dataclass
class NewsItem:
    """Normalized news item: the unit persisted to cache and served."""

    title: str
    link: str
    pub_date: str
    parsed_date: Optional[datetime]
    description: str
    source: str
    image_url: Optional[str] = None
    is_youtube: bool = False
    topics: set[str] = field(default_factory=set)
    author: Optional[str] = None
    origin_feed_url: str = ""
    provider_hint: str = ""

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON shape consumed by the front end."""
        published = self.parsed_date.isoformat() if self.parsed_date else self.pub_date
        return {
            "title": self.title,
            "link": self.link,
            "pubDate": self.pub_date,
            "description": self.description,
            "source": self.source,
            "imageUrl": self.image_url,
            "metaTitle": self.title,
            "metaDescription": self.description,
            "metaImage": self.image_url,
            "isYouTube": self.is_youtube,
            "topics": sorted(self.topics),
            "metadata": {
                "title": self.title,
                "description": self.description,
                "image": self.image_url,
                "ogTitle": self.title,
                "ogDescription": self.description,
                "ogImage": self.image_url,
                "ogSiteName": self.source,
                "articlePublishedTime": published,
                "twitterTitle": self.title,
                "twitterDescription": self.description,
                "twitterImage": self.image_url,
                "author": self.author,
                "keywords": None,
                "htmlTitle": self.title,
            },
        }
