"""Periodic authoritative refresh of the cached feed."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from .errors import CacheStoreError
from .news.pipeline import NewsPipeline
from .store import NewsCache

logger = logging.getLogger(__name__)


async def refresh_news_cache(
    pipeline: NewsPipeline,
    cache: NewsCache,
    context: str = "Scheduled News Refresh",
) -> dict[str, Any]:
    """
    Run the pipeline and overwrite the cache entry without expiry.

    Never raises: a failed run (exception, zero items or a rejected cache
    write) is logged, recorded as a failure notice and reported with
    ``success: False``. A zero-item result is still written.

    Returns:
        ``{success, itemsCount | error, sources, timestamp}``
    """
    sources = [source.url for source in pipeline.sources]
    timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    try:
        result = await pipeline.run(debug=pipeline.config.scheduled_debug_version)
    except Exception as e:
        logger.exception("[SCHEDULER] Refresh failed")
        cache.record_failure(e, context)
        return {"success": False, "error": str(e), "sources": sources, "timestamp": timestamp}

    written = cache.write_items(result.to_payload())

    if not result.items:
        error = RuntimeError("No news items retrieved from RSS feeds")
        logger.error("[SCHEDULER] %s", error)
        cache.record_failure(error, context)
        return {"success": False, "error": str(error), "sources": sources, "timestamp": timestamp}

    if not written:
        error = CacheStoreError("cache write failed")
        logger.error("[SCHEDULER] %s for %d items", error, len(result.items))
        cache.record_failure(error, context)
        return {"success": False, "error": str(error), "sources": sources, "timestamp": timestamp}

    logger.info(
        "[SCHEDULER] Refreshed cache with %d items (%d/%d feeds ok)",
        len(result.items),
        result.report.feeds_ok,
        len(sources),
    )
    return {
        "success": True,
        "itemsCount": len(result.items),
        "sources": sources,
        "timestamp": timestamp,
    }


class NewsScheduler:
    """
    Refreshes the cache every ``interval`` seconds on a background task.

    The first refresh runs immediately on start.
    """

    def __init__(self, pipeline: NewsPipeline, cache: NewsCache, interval: Optional[int] = None):
        self.pipeline = pipeline
        self.cache = cache
        self.interval = interval or pipeline.config.refresh_interval_seconds
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._stop_event.clear()
        self._task = loop.create_task(self._run(), name="news-refresh")
        logger.info("[SCHEDULER] Started (every %ds)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
            logger.info("[SCHEDULER] Stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            summary = await refresh_news_cache(self.pipeline, self.cache)
            if not summary["success"]:
                logger.warning("[SCHEDULER] Scheduled refresh failed: %s", summary["error"])
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
