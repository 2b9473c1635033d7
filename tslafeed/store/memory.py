"""Process-local cache store."""

import time
from typing import Callable, Optional


class MemoryCacheStore:
    """
    Dict-backed store. Expiry uses a monotonic clock so wall-clock jumps
    never resurrect or kill entries.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: dict[str, tuple[bytes, Optional[float]]] = {}
        self._clock = clock

    def get(self, key: str) -> Optional[bytes]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def put(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expires_at)

    def list_keys(self, prefix: str) -> list[str]:
        return sorted(
            key for key in list(self._data)
            if key.startswith(prefix) and self.get(key) is not None
        )
