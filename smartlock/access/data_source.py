"""
Data Source — which store currently backs authorization decisions.

  UNKNOWN   : nothing loaded yet (process start)
  ERROR     : no credentials available: every check denies
  CACHE     : last-known-good list loaded from the local cache
  REMOTE    : list confirmed by the last successful sync
  REFRESHING: a sync cycle is in progress

Display adapters subscribe to changes in-process, or follow them over HTTP
with ``wait_for_change`` (long poll). The sync engine is the only writer.
"""

import logging
import threading
from enum import IntEnum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class DataSource(IntEnum):
    UNKNOWN = 0
    ERROR = 1
    CACHE = 2
    REMOTE = 3
    REFRESHING = 4


DataSourceObserver = Callable[[DataSource], None]


class DataSourceState:
    """Process-wide data source value with change notification."""

    def __init__(self, initial: DataSource = DataSource.UNKNOWN):
        self._state = initial
        self._observers: list[DataSourceObserver] = []
        # Re-entrant so an observer may read or set the state it is notified about
        self._transition_lock = threading.RLock()
        self._changed = threading.Condition(self._transition_lock)
        self._revision = 0

    @property
    def current(self) -> DataSource:
        with self._transition_lock:
            return self._state

    @property
    def revision(self) -> int:
        """Number of transitions committed so far."""
        with self._transition_lock:
            return self._revision

    def wait_for_change(self, since: int, timeout: Optional[float] = None) -> tuple[DataSource, int]:
        """
        Block until the revision moves past ``since`` or ``timeout`` elapses.

        Returns the current state and revision either way; callers compare
        the revision with ``since`` to tell a change from a timeout.
        """
        with self._changed:
            self._changed.wait_for(lambda: self._revision > since, timeout)
            return self._state, self._revision

    def subscribe(self, observer: DataSourceObserver) -> Callable[[], None]:
        """Register an observer. Returns a callable that unsubscribes it."""
        with self._transition_lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._transition_lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def set_state(self, new_state: DataSource) -> bool:
        """Commit ``new_state`` and notify observers. No-op if unchanged."""
        with self._transition_lock:
            if new_state == self._state:
                return False
            previous = self._state
            self._state = new_state
            self._revision += 1
            self._changed.notify_all()
            logger.info(f"[DATA-SOURCE] {previous.name} → {new_state.name}")
            for observer in list(self._observers):
                try:
                    observer(new_state)
                except Exception:
                    logger.exception(f"[DATA-SOURCE] Observer {observer!r} failed")
            return True

    @staticmethod
    def fallback_for(has_credentials: bool) -> DataSource:
        """State to use when the remote directory is not confirming the list."""
        return DataSource.CACHE if has_credentials else DataSource.ERROR
