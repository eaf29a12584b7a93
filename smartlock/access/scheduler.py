"""
Sync Scheduler — the lock's single background worker.

One supervisor thread is created on the first ``start()`` and lives until
``shutdown()``. It never gets replaced; callers only send it signals:

  start()     resume cycling (wakes the worker if it is already running)
  stop()      finish the current cycle, then park until the next start()
  wake()      cut the current wait short and run a cycle now
  shutdown()  exit the thread and join it

Between cycles the worker waits the success interval after a good cycle
and the (shorter) retry interval after a failed one.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Periodic + on-demand runner for the sync cycle."""

    def __init__(
        self,
        run_cycle: Callable[[], bool],
        success_interval: float,
        retry_interval: float,
        name: str = "smartlock-sync",
    ):
        self._run_cycle = run_cycle
        self.success_interval = success_interval
        self.retry_interval = retry_interval
        self._name = name

        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._closed = False

        self.cycles_run = 0
        self.last_success: Optional[bool] = None
        self.last_cycle_at: Optional[datetime] = None

    # ──────────────────────────────────────────────
    # Control signals
    # ──────────────────────────────────────────────

    def start(self) -> None:
        with self._lock:
            if self._closed:
                logger.warning("[SCHEDULER] start() ignored: scheduler is shut down")
                return
            self._running = True
            if self._thread is None:
                self._thread = threading.Thread(target=self._supervise, name=self._name, daemon=True)
                self._thread.start()
                logger.info("[SCHEDULER] Sync worker started")
                return
        self._wake.set()

    def stop(self) -> None:
        with self._lock:
            if self._running:
                logger.info("[SCHEDULER] Sync worker stopping after current cycle")
            self._running = False

    def wake(self) -> None:
        self._wake.set()

    def shutdown(self, timeout: Optional[float] = 5.0) -> bool:
        """Close the scheduler. Returns False if the worker is still mid-cycle."""
        with self._lock:
            self._closed = True
            self._running = False
            thread = self._thread
        self._wake.set()
        if thread is None or thread is threading.current_thread():
            return True
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("[SCHEDULER] Sync worker still busy after shutdown timeout")
            return False
        return True

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running and not self._closed

    # ──────────────────────────────────────────────
    # Worker
    # ──────────────────────────────────────────────

    def _supervise(self) -> None:
        while True:
            with self._lock:
                if self._closed:
                    break
                running = self._running

            if not running:
                # Parked: wait for start() or shutdown()
                self._wake.wait()
                self._wake.clear()
                continue

            success = self._run_once()
            period = self.success_interval if success else self.retry_interval
            if success:
                logger.info(f"[SCHEDULER] Sync routine completed! Next event in {period}s")
            else:
                logger.info(f"[SCHEDULER] Sync routine failed! Next event in {period}s")

            self._wake.wait(period)
            self._wake.clear()

        logger.info("[SCHEDULER] Sync worker exited")

    def _run_once(self) -> bool:
        try:
            success = bool(self._run_cycle())
        except Exception:
            logger.exception("[SCHEDULER] Sync cycle raised; treating as failed")
            success = False
        self.cycles_run += 1
        self.last_success = success
        self.last_cycle_at = datetime.now(timezone.utc)
        return success
