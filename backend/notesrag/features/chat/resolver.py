"""
Chat feature: Resolve cited file ids to downloadable URLs at render time.
"""

import logging
import threading

from cachetools import TTLCache

from notesrag.features.knowledge.repository import DocumentRepository, ObjectStore

logger = logging.getLogger(__name__)


class CitationResolver:
    """file id → short-lived signed URL, scoped to the requesting user.

    URLs are cached for half their lifetime so a cached URL is never expired
    when handed out. The cache is shared by render threads and only touched
    under ``_lock``.
    """

    def __init__(self, documents: DocumentRepository, store: ObjectStore, url_ttl_seconds: int = 60):
        self.documents = documents
        self.store = store
        self.url_ttl_seconds = url_ttl_seconds
        self._cache: TTLCache = TTLCache(maxsize=512, ttl=max(1, url_ttl_seconds // 2))
        self._lock = threading.Lock()

    def resolve(self, user_id: str, file_id: str) -> str | None:
        key = (user_id, file_id)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        record = self.documents.get_owned(file_id, user_id)
        if record is None:
            logger.warning(f"Citation references unknown or foreign file {file_id}")
            return None
        try:
            url = self.store.create_signed_url(record.storage_path, self.url_ttl_seconds)
        except Exception as ex:
            logger.warning(f"Could not generate signed URL for {record.storage_path}: {ex}")
            return None
        if url:
            with self._lock:
                self._cache[key] = url
        return url
