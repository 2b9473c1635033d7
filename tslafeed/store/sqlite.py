"""SQLite-backed cache store for single-host deployments."""

import logging
import sqlite3
import time
from typing import Optional

from ..errors import CacheStoreError

logger = logging.getLogger(__name__)


class SQLiteCacheStore:
    """
    Key-value store backed by SQLite.
    Schema: cache(key TEXT PRIMARY KEY, data BLOB, expires_at REAL, created_at TIMESTAMP)
    """

    def __init__(self, db_path: str = "tslafeed_cache.db"):
        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS cache (
                        key TEXT PRIMARY KEY,
                        data BLOB,
                        expires_at REAL,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
        except sqlite3.Error as e:
            logger.error("[CACHE] Failed to init cache at %s: %s", self.db_path, e)

    def get(self, key: str) -> Optional[bytes]:
        """Stored bytes, or None when missing or expired."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT data, expires_at FROM cache WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheStoreError(f"get failed for {key}: {e}", {"key": key}) from e

        if not row:
            return None
        data, expires_at = row
        if expires_at is not None and time.time() >= expires_at:
            return None
        return bytes(data)

    def put(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        expires_at = time.time() + ttl_seconds if ttl_seconds else None
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("""
                    INSERT OR REPLACE INTO cache (key, data, expires_at, created_at)
                    VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                """, (key, sqlite3.Binary(value), expires_at))
                conn.commit()
        except sqlite3.Error as e:
            raise CacheStoreError(f"put failed for {key}: {e}", {"key": key}) from e

    def list_keys(self, prefix: str) -> list[str]:
        pattern = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        try:
            with sqlite3.connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT key FROM cache WHERE key LIKE ? ESCAPE '\\' "
                    "AND (expires_at IS NULL OR expires_at > ?) ORDER BY key",
                    (pattern, time.time()),
                ).fetchall()
        except sqlite3.Error as e:
            raise CacheStoreError(f"list failed for {prefix}: {e}", {"prefix": prefix}) from e
        return [row[0] for row in rows]
