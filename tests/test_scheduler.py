import asyncio

from tslafeed.config.settings import settings
from tslafeed.errors import PipelineFailure
from tslafeed.scheduler import NewsScheduler, refresh_news_cache
from tslafeed.store import ERROR_PREFIX, MemoryCacheStore, NewsCache

from conftest import FailingWriteStore, FakePipeline


def make_cache():
    store = MemoryCacheStore()
    return store, NewsCache(store, key=settings.cache_key)


async def test_refresh_writes_without_ttl(make_item):
    store, cache = make_cache()
    pipeline = FakePipeline(items=[make_item(), make_item(link="https://www.example.com/2")])

    summary = await refresh_news_cache(pipeline, cache)

    assert summary["success"] is True
    assert summary["itemsCount"] == 2
    assert summary["timestamp"].endswith("Z")
    assert pipeline.calls == [settings.scheduled_debug_version]
    assert store._data[settings.cache_key][1] is None
    assert cache.read_items()[0] == {"debug": settings.scheduled_debug_version}


async def test_zero_items_is_a_failure_but_still_overwrites():
    store, cache = make_cache()
    pipeline = FakePipeline(items=[])

    summary = await refresh_news_cache(pipeline, cache)

    assert summary["success"] is False
    assert "No news items" in summary["error"]
    assert summary["sources"] == [source.url for source in pipeline.sources]
    assert cache.read_items() == [{"debug": settings.scheduled_debug_version}]
    assert len(store.list_keys(ERROR_PREFIX)) == 1


async def test_rejected_cache_write_is_reported_as_failure(make_item):
    store = FailingWriteStore()
    cache = NewsCache(store, key=settings.cache_key)

    summary = await refresh_news_cache(FakePipeline(items=[make_item()]), cache)

    assert summary["success"] is False
    assert summary["error"] == "cache write failed"
    assert "itemsCount" not in summary
    assert store.get(settings.cache_key) is None
    assert cache.list_failures()[0]["error"]["message"] == "cache write failed"


async def test_pipeline_exception_is_recorded_not_raised():
    store, cache = make_cache()
    pipeline = FakePipeline(error=PipelineFailure("dns failure"))

    summary = await refresh_news_cache(pipeline, cache)

    assert summary == {
        "success": False,
        "error": "dns failure",
        "sources": summary["sources"],
        "timestamp": summary["timestamp"],
    }
    assert cache.list_failures()[0]["error"]["message"] == "dns failure"


async def test_scheduler_runs_immediately_and_stops(make_item):
    _, cache = make_cache()
    pipeline = FakePipeline(items=[make_item()])
    scheduler = NewsScheduler(pipeline, cache, interval=3600)

    scheduler.start()
    assert scheduler.running
    await asyncio.wait_for(pipeline.ran.wait(), timeout=2)
    await scheduler.stop()

    assert not scheduler.running
    assert len(pipeline.calls) == 1
    assert cache.read_items() is not None
