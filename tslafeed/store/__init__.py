"""Key-value stores for the cached feed and failure notices."""

import logging
from typing import Optional

from .base import ERROR_PREFIX, CacheStore, NewsCache
from .memory import MemoryCacheStore
from .sqlite import SQLiteCacheStore

logger = logging.getLogger(__name__)

# Singleton
_store_instance: Optional[CacheStore] = None


def get_cache_store(backend: Optional[str] = None) -> CacheStore:
    """
    Get or create the configured cache store.

    Args:
        backend: ``memory``, ``sqlite`` or ``firestore``. Defaults to
            ``settings.cache_backend``.
    """
    global _store_instance
    if backend is None and _store_instance is not None:
        return _store_instance

    from ..config.settings import settings

    backend = (backend or settings.cache_backend).lower()
    if backend == "sqlite":
        store: CacheStore = SQLiteCacheStore(settings.sqlite_path)
    elif backend == "firestore":
        from .firestore import FirestoreCacheStore

        store = FirestoreCacheStore()
    elif backend == "memory":
        store = MemoryCacheStore()
    else:
        raise ValueError(f"Unknown cache backend: {backend}")

    logger.info("[CACHE] Using %s cache store", backend)
    _store_instance = store
    return store


def reset_cache_store() -> None:
    global _store_instance
    _store_instance = None


__all__ = [
    "ERROR_PREFIX",
    "CacheStore",
    "MemoryCacheStore",
    "NewsCache",
    "SQLiteCacheStore",
    "get_cache_store",
    "reset_cache_store",
]
