"""FastAPI web application serving the cached Tesla news feed."""

import logging
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from .auth import require_admin_secret
from .models import ErrorRecord, FailureResponse, HealthResponse, RefreshResponse
from ..config.settings import settings
from ..errors import CacheStoreError, format_error
from ..news.pipeline import NewsPipeline
from ..news.relevance import filter_payload_by_topic
from ..scheduler import NewsScheduler, refresh_news_cache
from ..store import NewsCache, get_cache_store

logger = logging.getLogger(__name__)

app = FastAPI(title="TSLA News Feed")

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": f"Content-Type, {settings.admin_header}",
}


@app.middleware("http")
async def cors_headers(request: Request, call_next):
    """Answer preflight requests for any path and tag every response for CORS."""
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=PREFLIGHT_HEADERS)
    response = await call_next(request)
    response.headers.setdefault("Access-Control-Allow-Origin", "*")
    return response


# ============================================================================
# Dependencies
# ============================================================================

_pipeline: Optional[NewsPipeline] = None
_scheduler: Optional[NewsScheduler] = None


def get_pipeline() -> NewsPipeline:
    """Get or create the shared pipeline context."""
    global _pipeline
    if _pipeline is None:
        _pipeline = NewsPipeline()
    return _pipeline


def get_news_cache() -> NewsCache:
    return NewsCache(get_cache_store())


def _resolve(dependency):
    """Call a dependency, honouring test overrides outside of a request."""
    return app.dependency_overrides.get(dependency, dependency)()


def _feed_headers(status_label: str, max_age: int) -> dict[str, str]:
    return {
        "X-Cache-Status": status_label,
        "Cache-Control": f"public, max-age={max_age}",
        "X-Worker-Version": settings.debug_version,
    }


# ============================================================================
# Feed Endpoints
# ============================================================================


FEED_RESPONSES = {500: {"model": FailureResponse, "description": "Feed generation failed"}}


@app.api_route("/", methods=["GET", "HEAD"], responses=FEED_RESPONSES)
@app.api_route("/newsfeed", methods=["GET", "HEAD"], responses=FEED_RESPONSES)
async def newsfeed(
    background_tasks: BackgroundTasks,
    topic: Optional[list[str]] = Query(None),
    pipeline: NewsPipeline = Depends(get_pipeline),
    cache: NewsCache = Depends(get_news_cache),
):
    """
    Serve the cached feed; on a miss, build it now and cache it in the
    background with a short TTL.
    """
    cached = cache.read_items()
    if cached is not None:
        logger.info("[API] Cache HIT (%d entries)", len(cached))
        payload = filter_payload_by_topic(cached, topic) if topic else cached
        return JSONResponse(payload, headers=_feed_headers("HIT", settings.hit_max_age))

    logger.info("[API] Cache MISS")
    try:
        result = await pipeline.run(debug=settings.debug_version)
    except Exception as e:
        logger.error("[API] Feed generation failed: %s", e)
        body = FailureResponse(**format_error(e, settings.debug_version))
        return JSONResponse(body.model_dump(), status_code=500)

    payload = result.to_payload()
    background_tasks.add_task(cache.write_items, payload, settings.miss_ttl_seconds)

    if topic:
        payload = filter_payload_by_topic(payload, topic)
    return JSONResponse(payload, headers=_feed_headers("MISS", settings.miss_max_age))


# ============================================================================
# Admin Endpoints
# ============================================================================


@app.api_route(
    "/admin/refresh-news",
    methods=["GET", "POST"],
    response_model=RefreshResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_admin_secret)],
)
async def admin_refresh_news(
    pipeline: NewsPipeline = Depends(get_pipeline),
    cache: NewsCache = Depends(get_news_cache),
):
    """Run an authoritative refresh now and report the outcome."""
    summary = await refresh_news_cache(pipeline, cache, context="Manual News Refresh")
    return RefreshResponse(**summary)


@app.get("/errors", response_model=list[ErrorRecord])
async def list_errors(cache: NewsCache = Depends(get_news_cache)):
    """Up to 10 recent failure notices, newest first."""
    try:
        return cache.list_failures()
    except (CacheStoreError, ValueError) as e:
        logger.error("[API] Failed to read failure notices: %s", e)
        return JSONResponse({"error": "Failed to retrieve errors"}, status_code=500)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint for Cloud Run."""
    return HealthResponse(status="healthy", version=settings.debug_version)


# ============================================================================
# Scheduler lifecycle
# ============================================================================


@app.on_event("startup")
async def _start_scheduler() -> None:
    global _scheduler
    if not settings.scheduler_enabled:
        logger.info("[SCHEDULER] Disabled by settings")
        return
    _scheduler = NewsScheduler(_resolve(get_pipeline), _resolve(get_news_cache))
    _scheduler.start()


@app.on_event("shutdown")
async def _stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


if __name__ == "__main__":
    import os

    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(
        "tslafeed.app.main:app",
        host="0.0.0.0",
        port=port,
    )
