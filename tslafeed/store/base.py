"""Cache store protocol and the news-specific wrapper around it."""

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..errors import CacheStoreError

logger = logging.getLogger(__name__)

ERROR_PREFIX = "error_"


class CacheStore(Protocol):
    """Minimal key-value store with optional per-key expiry."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def put(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        ...

    def list_keys(self, prefix: str) -> list[str]:
        ...


def _local_time(now: datetime, tz_name: str) -> str:
    try:
        local = now.astimezone(ZoneInfo(tz_name))
    except ZoneInfoNotFoundError:
        local = now
    return local.strftime("%A, %B %d, %Y at %I:%M %p")


class NewsCache:
    """
    The cached feed and failure notices on top of a CacheStore.

    Read errors count as a miss and write errors are logged, so a broken
    store degrades to "always regenerate" instead of failing requests.
    """

    def __init__(self, store: CacheStore, key: Optional[str] = None):
        from ..config.settings import settings

        self.store = store
        self.key = key or settings.cache_key
        self.config = settings

    def read_items(self) -> Optional[list[dict[str, Any]]]:
        """
        Cached payload, or None on a miss.

        Missing, expired, unreadable, undecodable and empty entries are all
        misses.
        """
        try:
            raw = self.store.get(self.key)
        except CacheStoreError as e:
            logger.warning("[CACHE] Read of %s failed, treating as miss: %s", self.key, e)
            return None
        if raw is None:
            return None

        try:
            payload = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning("[CACHE] Undecodable entry for %s: %s", self.key, e)
            return None

        if not isinstance(payload, list) or not payload:
            return None
        return payload

    def write_items(self, payload: list[dict[str, Any]], ttl_seconds: Optional[int] = None) -> bool:
        """Persist a payload. Returns False (and logs) when the store fails."""
        data = json.dumps(payload).encode("utf-8")
        try:
            self.store.put(self.key, data, ttl_seconds=ttl_seconds)
        except CacheStoreError as e:
            logger.error("[CACHE] Write of %s failed: %s", self.key, e)
            return False
        logger.info(
            "[CACHE] Stored %d entries under %s (ttl=%s)", len(payload), self.key, ttl_seconds
        )
        return True

    def record_failure(
        self,
        error: BaseException,
        context: str = "Newsfeed Update",
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Store a failure notice under ``error_<timestamp>`` for a week.

        Returns:
            The notice key, or None if it could not be written.
        """
        now = now or datetime.now(timezone.utc)
        timestamp = now.isoformat().replace("+00:00", "Z")
        notice = {
            "site": self.config.site_name,
            "context": context,
            "timestamp": timestamp,
            "pacificTime": _local_time(now, self.config.display_timezone),
            "error": {
                "message": str(error) or error.__class__.__name__,
                "stack": "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                ),
            },
            "email": self.config.notify_email,
        }

        logger.error("[CACHE] %s failure at %s: %s", context, timestamp, notice["error"]["message"])
        key = f"{ERROR_PREFIX}{timestamp}"
        try:
            self.store.put(key, json.dumps(notice).encode("utf-8"), self.config.error_ttl_seconds)
        except CacheStoreError as e:
            logger.error("[CACHE] Could not record failure notice: %s", e)
            return None
        return key

    def list_failures(self, limit: int = 10) -> list[dict[str, Any]]:
        """
        Recent failure notices, newest first, without the contact field.

        Raises:
            CacheStoreError: If the store cannot be listed or read
        """
        notices = []
        for key in sorted(self.store.list_keys(ERROR_PREFIX), reverse=True)[:limit]:
            raw = self.store.get(key)
            if raw is None:
                continue
            data = json.loads(raw)
            notices.append({
                "site": data.get("site"),
                "context": data.get("context"),
                "timestamp": data.get("timestamp"),
                "pacificTime": data.get("pacificTime"),
                "error": data.get("error"),
            })
        notices.sort(key=lambda n: n.get("timestamp") or "", reverse=True)
        return notices
