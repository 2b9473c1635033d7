"""Keyword-based relevance: topic tagging and feed acceptance.

Two independent checks run on every item:

* ``AcceptancePolicy`` decides whether the item is kept at all. Authoritative
  topic-scoped search feeds accept any single keyword hit; every other feed
  needs stronger evidence.
* ``TopicClassifier`` tags kept items with topics using weighted keywords,
  exclusion terms and a title boost. Items matching no topic are tagged
  ``general`` and only show up in unfiltered views.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import parse_qs, urlparse

import yaml

from .models import NewsItem

logger = logging.getLogger(__name__)

GENERAL_TOPIC = "general"


@dataclass
class TopicModel:
    """Keywords, weights and exclusions for one topic."""

    name: str
    keywords: list[str]
    weights: dict[str, int] = field(default_factory=dict)
    exclusions: list[str] = field(default_factory=list)

    def weight(self, keyword: str) -> int:
        return self.weights.get(keyword) or 1


@dataclass
class KeywordModel:
    """Everything loaded from topics.yaml."""

    topics: dict[str, TopicModel]
    threshold: int
    default_topic: str
    core_terms: list[str]
    patterns: list[re.Pattern]
    identity_figure: re.Pattern
    trusted_source: str
    trusted_link: re.Pattern
    false_positive: re.Pattern


def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


def load_keyword_model(path: Optional[Path] = None) -> KeywordModel:
    """
    Load the keyword model from YAML.

    Args:
        path: Path to topics.yaml. Defaults to ``settings.topics_file``.
    """
    if path is None:
        from ..config.settings import settings

        path = settings.topics_file

    with open(path) as f:
        data = yaml.safe_load(f)

    topics = {}
    for name, spec in (data.get("topics") or {}).items():
        topics[name] = TopicModel(
            name=name,
            keywords=[k.lower() for k in spec.get("keywords", [])],
            weights={k.lower(): int(v) for k, v in (spec.get("weights") or {}).items()},
            exclusions=[t.lower() for t in spec.get("exclusions", [])],
        )

    acceptance = data.get("acceptance") or {}
    model = KeywordModel(
        topics=topics,
        threshold=int(data.get("threshold", 5)),
        default_topic=data.get("default_topic", next(iter(topics), GENERAL_TOPIC)),
        core_terms=[t.lower() for t in data.get("core_terms", [])],
        patterns=[_compile(p) for p in acceptance.get("patterns", [])],
        identity_figure=_compile(acceptance.get("identity_figure", r"(elon\s+)?musk")),
        trusted_source=acceptance.get("trusted_source", "x.com").lower(),
        trusted_link=_compile(acceptance.get("trusted_link", r"\bx\.com\b")),
        false_positive=_compile(acceptance.get("false_positive", r"\bmodel\s+x\b")),
    )
    logger.info(
        "[RELEVANCE] Loaded %d topics, %d acceptance patterns from %s",
        len(model.topics),
        len(model.patterns),
        Path(path).name,
    )
    return model


class TopicClassifier:
    """Weighted keyword scoring of title + description."""

    def __init__(self, model: KeywordModel):
        self.model = model

    def score(self, title: str, description: str) -> dict[str, int]:
        text = f"{title} {description}".lower()
        title_lower = title.lower()
        scores: dict[str, int] = {}

        for name, topic in self.model.topics.items():
            scores[name] = 0
            # An exclusion term mutes the topic unless the topic is named outright
            if any(term in text for term in topic.exclusions) and name.lower() not in text:
                continue
            for keyword in topic.keywords:
                if keyword in text:
                    weight = topic.weight(keyword)
                    scores[name] += weight
                    if keyword in title_lower:
                        scores[name] += weight
        return scores

    def classify(self, title: str, description: str) -> set[str]:
        """Topics whose score clears the threshold, else default/general."""
        scores = self.score(title, description)
        topics = {name for name, score in scores.items() if score >= self.model.threshold}
        if topics:
            return topics

        text = f"{title} {description}".lower()
        if any(term in text for term in self.model.core_terms):
            return {self.model.default_topic}
        return {GENERAL_TOPIC}


class AcceptancePolicy:
    """Source-aware keep/drop decision for a normalized item."""

    def __init__(
        self,
        model: KeywordModel,
        authoritative_prefix: Optional[str] = None,
        authoritative_term: Optional[str] = None,
    ):
        from ..config.settings import settings

        self.model = model
        self.authoritative_prefix = authoritative_prefix or settings.authoritative_feed_prefix
        self.authoritative_term = (authoritative_term or settings.authoritative_query_term).lower()

    def is_authoritative(self, feed_url: Optional[str]) -> bool:
        """A search feed whose own ``q`` parameter already names the topic."""
        if not feed_url or not feed_url.startswith(self.authoritative_prefix):
            return False
        query = parse_qs(urlparse(feed_url).query).get("q", [""])[0]
        return self.authoritative_term in query.lower().split()

    def hits(self, text: str) -> list[re.Pattern]:
        return [p for p in self.model.patterns if p.search(text)]

    def _title_hit(self, title: str) -> bool:
        return any(p.search(title) for p in self.model.patterns)

    def strict_accepts(self, item: NewsItem) -> bool:
        """More than one keyword, or exactly one that also matches the title."""
        text = f"{item.title} {item.description}".lower()
        hits = self.hits(text)
        return len(hits) > 1 or (len(hits) == 1 and self._title_hit(item.title.lower()))

    def accepts(self, item: NewsItem) -> bool:
        text = f"{item.title} {item.description}".lower()
        hits = self.hits(text)

        if self.is_authoritative(item.origin_feed_url):
            return len(hits) > 0

        from_trusted = (
            (item.source and item.source.lower() == self.model.trusted_source)
            or item.provider_hint.lower() == self.model.trusted_source
            or bool(self.model.trusted_link.search(item.link or ""))
        )
        return (
            len(hits) > 1
            or (len(hits) == 1 and self._title_hit(item.title.lower()))
            or (
                bool(self.model.identity_figure.search(text))
                and bool(from_trusted)
                and not self.model.false_positive.search(text)
            )
        )


def relevance_score(item: NewsItem, active_topics: set[str]) -> int:
    matching = item.topics & active_topics
    score = 100 + len(matching) * 10
    if len(matching) == len(item.topics):
        score += 5
    if len(item.topics) > 2:
        score -= (len(item.topics) - 2) * 2
    return score


def topic_view(items: Iterable[NewsItem], active_topics: Iterable[str]) -> list[NewsItem]:
    """
    Items tagged with any active topic, newest first.

    Equal or missing dates fall back to the relevance score; undated items
    sort last.
    """
    active = set(active_topics)
    if not active:
        return []
    selected = [item for item in items if item.topics & active]
    epoch = datetime.min.replace(tzinfo=timezone.utc)

    def sort_key(item: NewsItem):
        dated = item.parsed_date is not None
        return (dated, item.parsed_date or epoch, relevance_score(item, active))

    return sorted(selected, key=sort_key, reverse=True)


def filter_payload_by_topic(payload: list[dict], active_topics: Iterable[str]) -> list[dict]:
    """
    Topic view over an already serialized payload.

    The leading debug marker is kept; item order (newest first) is preserved.
    """
    active = set(active_topics)
    marker = [entry for entry in payload[:1] if "debug" in entry]
    items = payload[len(marker):]
    return marker + [item for item in items if active & set(item.get("topics") or [])]
