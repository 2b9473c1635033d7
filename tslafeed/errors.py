"""Error taxonomy for the news pipeline.

FetchFailure and ParseAnomaly are recovered where they happen (empty feed,
dropped item). CacheStoreError is recovered by the cache wrapper. Only
PipelineFailure, or an unexpected exception, reaches the HTTP layer.
"""

import traceback
from typing import Any, Optional


class FeedError(Exception):
    """Base exception for tslafeed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class FetchFailure(FeedError):
    """A single feed could not be retrieved (network error or non-2xx)."""


class ParseAnomaly(FeedError):
    """A feed item was malformed: bad date, unresolvable link, missing field."""


class CacheStoreError(FeedError):
    """Read or write against the key-value store failed."""


class PipelineFailure(FeedError):
    """The fetch/parse/filter/dedup run could not produce a result."""


def format_error(exc: BaseException, debug: str) -> dict[str, Any]:
    """Build the diagnostic payload returned with a 500 response."""
    message = exc.message if isinstance(exc, FeedError) else str(exc)
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return {
        "error": "Failed to fetch news",
        "message": message or exc.__class__.__name__,
        "stack": stack,
        "debug": debug,
    }
