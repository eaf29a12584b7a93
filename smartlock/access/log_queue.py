"""
Log Queue — lock-side audit trail with batch delivery to the directory server.

Every access attempt and notable event is recorded locally first.
Entries are delivered to the server by the sync routine, oldest first.

Offline resilience:
  - Every append is written to the ``logs`` cache blob before returning
  - If delivery fails, entries stay queued (and cached) for the next cycle
  - Only the exact snapshot acknowledged by the server is removed, so
    entries appended while a delivery is in flight are never lost
"""

import logging
import threading
from typing import Callable, Optional, Sequence

from pydantic import ValidationError

from smartlock.access.cache_store import LOGS_CACHE, CachedCollection, CacheStore
from smartlock.schemas import LogEntry

logger = logging.getLogger(__name__)


class LogQueue(CachedCollection):
    """Append-only pending-log buffer with durable-before-send semantics."""

    cache_name = LOGS_CACHE

    def __init__(self, cache: CacheStore, on_urgent: Optional[Callable[[], None]] = None):
        super().__init__(cache)
        self._entries: list[LogEntry] = []
        self._on_urgent = on_urgent
        self._load_lock = threading.Lock()
        self._loaded = False

    def load(self) -> int:
        """
        Restore pending entries from the cache. Returns the number restored.

        Runs once; later calls return 0. The first append loads implicitly so
        an early entry can never overwrite the previous run's cached queue.
        """
        with self._load_lock:
            if self._loaded:
                return 0
            restored: list[LogEntry] = []
            for record in self._cache.load(self.cache_name) or []:
                try:
                    restored.append(LogEntry.model_validate(record))
                except ValidationError as e:
                    logger.warning(f"[LOGS] Skipping unreadable cached log: {e}")

            with self._lock:
                self._entries = restored + self._entries
            self._loaded = True

        if restored:
            logger.info(f"[LOGS] {len(restored)} logs loaded from cache")
        return len(restored)

    def set_urgent_handler(self, handler: Optional[Callable[[], None]]) -> None:
        self._on_urgent = handler

    def append(self, entry: LogEntry, urgent: Optional[bool] = None) -> None:
        """
        Queue an entry and persist the queue before returning.

        ``urgent=None`` derives urgency from severity: error entries ask the
        sync routine to run immediately instead of waiting for its next tick.
        """
        self.load()
        with self._lock:
            self._entries.append(entry)
            version = self._bump()
            records = [e.to_record() for e in self._entries]

        if not self._persist(records, version):
            logger.warning(f"[LOGS] Entry {entry.id[:8]} queued in memory only (cache write failed)")
        logger.debug(f"[LOGS] Queued: {entry.id[:8]} type={entry.type.name}")

        if urgent is None:
            urgent = entry.is_error
        if urgent and self._on_urgent is not None:
            self._on_urgent()

    def drain_for_send(self) -> tuple[LogEntry, ...]:
        """Stable snapshot of the queue for an outbound payload. Removes nothing."""
        with self._lock:
            return tuple(self._entries)

    def clear_if_unchanged(self, snapshot: Sequence[LogEntry]) -> int:
        """Remove exactly the entries of ``snapshot`` after confirmed delivery."""
        delivered = {entry.id for entry in snapshot}
        with self._lock:
            remaining = [e for e in self._entries if e.id not in delivered]
            removed = len(self._entries) - len(remaining)
            if not removed:
                return 0
            self._entries = remaining
            version = self._bump()
            records = [e.to_record() for e in remaining]

        self._persist(records, version)
        logger.debug(f"[LOGS] Cleared {removed} delivered logs, {len(records)} still pending")
        return removed

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def is_empty(self) -> bool:
        return self.size == 0
