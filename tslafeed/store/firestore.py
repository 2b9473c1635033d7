"""Firestore-backed cache store for Cloud Run deployments."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from google.cloud import firestore

from ..errors import CacheStoreError

logger = logging.getLogger(__name__)


class FirestoreCacheStore:
    """One document per key: {key, value, expires_at, created_at}."""

    def __init__(
        self,
        collection: Optional[str] = None,
        project: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        from ..config.settings import settings

        project = project or settings.firestore_project
        if client is None:
            client = firestore.Client(project=project) if project else firestore.Client()
        self.db = client
        self.collection = self.db.collection(collection or settings.firestore_collection)

    def get(self, key: str) -> Optional[bytes]:
        """Stored bytes, or None when missing or expired."""
        try:
            doc = self.collection.document(key).get()
        except Exception as e:
            raise CacheStoreError(f"get failed for {key}: {e}", {"key": key}) from e

        if not doc.exists:
            return None
        data = doc.to_dict()
        expires_at = data.get('expires_at')
        if expires_at is not None and expires_at <= datetime.now(timezone.utc):
            return None
        return data.get('value')

    def put(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        expires_at = None
        if ttl_seconds:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        try:
            self.collection.document(key).set({
                'key': key,
                'value': value,
                'expires_at': expires_at,
                'created_at': firestore.SERVER_TIMESTAMP,
            })
        except Exception as e:
            raise CacheStoreError(f"put failed for {key}: {e}", {"key": key}) from e

    def list_keys(self, prefix: str) -> list[str]:
        now = datetime.now(timezone.utc)
        try:
            docs = (
                self.collection
                .where('key', '>=', prefix)
                .where('key', '<', prefix + '\uf8ff')
                .stream()
            )
            keys = []
            for doc in docs:
                data = doc.to_dict()
                expires_at = data.get('expires_at')
                if expires_at is None or expires_at > now:
                    keys.append(data['key'])
        except Exception as e:
            raise CacheStoreError(f"list failed for {prefix}: {e}", {"prefix": prefix}) from e
        return sorted(keys)
