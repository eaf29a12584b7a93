"""
Persistent Cache Store — durable key → blob storage for the lock.

Two blobs are kept, each a JSON-encoded list of records:
  - ``users``: the last-known-good credential list
  - ``logs``:  audit events not yet acknowledged by the directory server

Both survive restarts, so the lock can authorize entries and keep its audit
trail while the directory server is unreachable.
"""

import json
import logging
import threading
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from smartlock.models import CacheBlob

logger = logging.getLogger(__name__)

USERS_CACHE = "users"
LOGS_CACHE = "logs"


class CacheStore:
    """Named list-of-records storage backed by the ``cache_blobs`` table.

    Calls are serialized: SQLite (the default backend) allows one writer.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._io_lock = threading.Lock()

    def load(self, name: str) -> Optional[list[dict]]:
        """Return the stored records, or None if the blob is missing or unreadable."""
        try:
            with self._io_lock, self._session_factory() as session:
                blob = session.get(CacheBlob, name)
                if blob is None:
                    return None
                records = json.loads(blob.payload)
        except (SQLAlchemyError, ValueError) as e:
            logger.warning(f"[CACHE] Failed to read '{name}': {e}")
            return None

        if not isinstance(records, list):
            logger.warning(f"[CACHE] Ignoring '{name}': payload is not a list")
            return None
        return records

    def store(self, name: str, records: list[dict]) -> bool:
        """Overwrite a blob. Returns False if the write did not commit."""
        payload = json.dumps(records)
        try:
            with self._io_lock, self._session_factory() as session:
                blob = session.get(CacheBlob, name)
                if blob is None:
                    session.add(CacheBlob(name=name, payload=payload, record_count=len(records)))
                else:
                    blob.payload = payload
                    blob.record_count = len(records)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"[CACHE] Failed to store '{name}' ({len(records)} records): {e}")
            return False
        logger.debug(f"[CACHE] Stored '{name}': {len(records)} records")
        return True


class CachedCollection:
    """
    Base for the in-memory stores that mirror themselves into a cache blob.

    Writers bump ``_version`` while holding ``_lock`` and take a snapshot of
    the records; the snapshot is written afterwards, outside ``_lock``.
    ``_persist_lock`` serializes writers and drops any snapshot older than the
    one already on disk, so a slow writer never rolls the cache back.

    A snapshot whose write failed is kept as pending. Any later persist
    writes the newest of the two, and ``retry_pending()`` writes it again
    without waiting for another mutation.
    """

    cache_name: str = ""

    def __init__(self, cache: CacheStore):
        self._cache = cache
        self._lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._version = 0
        self._persisted_version = 0
        self._pending: Optional[tuple[int, list[dict]]] = None

    def _bump(self) -> int:
        """Call with ``_lock`` held after a mutation; returns the new version."""
        self._version += 1
        return self._version

    def _persist(self, records: list[dict], version: int) -> bool:
        with self._persist_lock:
            if self._pending is not None and self._pending[0] > version:
                version, records = self._pending
            if version <= self._persisted_version:
                return True
            stored = self._cache.store(self.cache_name, records)
            if stored:
                self._persisted_version = version
                self._pending = None
            else:
                self._pending = (version, records)
            return stored

    def retry_pending(self) -> bool:
        """Write a snapshot left behind by a failed write. True if nothing is left pending."""
        with self._persist_lock:
            pending = self._pending
        if pending is None:
            return True
        logger.info(f"[CACHE] Retrying write of '{self.cache_name}' (version {pending[0]})")
        return self._persist(pending[1], pending[0])

    @property
    def has_pending_write(self) -> bool:
        with self._persist_lock:
            return self._pending is not None
