"""
Sync Engine — authorization data for a lock with an intermittent uplink.

Owns the credential store, the log queue, the data-source state and the
background sync worker. Reader input is served from local data only; the
worker keeps that data fresh whenever the directory server is reachable.

Sync cycle (background thread, strictly sequential, first failure stops it):
  1. Network down               → failed, no I/O
  2. State REFRESHING, lock must hold a usable address
  3. Time check (once per session), corrects the lock clock on drift
  4. Deliver pending logs (only if any)
  5. Refresh the full user list
  Success → REMOTE (if the link is still up), next cycle after the routine period
  Failure → CACHE (or ERROR with no users), next cycle after the retry period

Design principle: nothing here raises into the reader path. With no
directory loaded every check denies, and the data source is the only
visible sign of degraded operation.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from smartlock.access.cache_store import CacheStore
from smartlock.access.clock import LockClock
from smartlock.access.credential_store import CredentialStore
from smartlock.access.data_source import DataSource, DataSourceState
from smartlock.access.log_queue import LogQueue
from smartlock.access.network import NetworkLink
from smartlock.access.scheduler import SyncScheduler
from smartlock.access.sync_client import DirectorySyncClient
from smartlock.schemas import LogEntry, LogType

logger = logging.getLogger(__name__)


@dataclass
class AccessDecision:
    authorized: bool
    reason: str
    card_enrollment_required: bool = False

    @property
    def verdict(self) -> str:
        return "allow" if self.authorized else "deny"


class SyncEngine:
    """Facade over the lock's authorization data and its sync routine."""

    def __init__(
        self,
        cache: CacheStore,
        client: DirectorySyncClient,
        success_interval: float,
        retry_interval: float,
        network: Optional[NetworkLink] = None,
        clock: Optional[LockClock] = None,
    ):
        self.client = client
        self.network = network or NetworkLink()
        self.clock = clock or LockClock()
        self.data_source = DataSourceState()
        self.credentials = CredentialStore(cache)
        self.logs = LogQueue(cache)
        self.scheduler = SyncScheduler(self.run_cycle, success_interval, retry_interval)
        self.logs.set_urgent_handler(self.scheduler.wake)
        self._time_checked = False
        self._initialized = False
        # Link transitions and the post-cycle state commit happen together
        self._link_lock = threading.RLock()

    # ──────────────────────────────────────────────
    # Startup / shutdown
    # ──────────────────────────────────────────────

    def initialize(self) -> DataSource:
        """Load users and pending logs from the cache."""
        self.data_source.set_state(DataSource.UNKNOWN)

        if self.credentials.load():
            self.data_source.set_state(DataSource.CACHE)
        else:
            # An empty user cache is treated as an error, not an empty directory
            logger.warning("[SMARTLOCK] No users in cache; denying all access until first sync")
            self.data_source.set_state(DataSource.ERROR)

        self.logs.load()
        self._initialized = True
        return self.data_source.current

    def shutdown(self, flush: bool = True, timeout: float = 5.0) -> None:
        """Stop the worker; with the link up, make a last attempt to deliver logs."""
        if not self.scheduler.shutdown(timeout):
            # The worker may still be delivering this same snapshot
            if flush and not self.logs.is_empty:
                logger.warning(f"[SMARTLOCK] Sync worker still busy; {self.logs.size} logs left to the cache")
            return
        if flush and self.network.is_up and not self.logs.is_empty:
            if self.client.flush_logs(self.logs):
                logger.info("[SMARTLOCK] Pending logs delivered on shutdown")
            else:
                logger.warning(f"[SMARTLOCK] {self.logs.size} logs kept in cache for next start")

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def time_checked(self) -> bool:
        return self._time_checked

    # ──────────────────────────────────────────────
    # Reader path
    # ──────────────────────────────────────────────

    def check_card(self, card_id: str) -> bool:
        return self.credentials.check_card(card_id)

    def check_pin(self, pin: str) -> bool:
        return self.credentials.check_pin(pin)

    def pin_has_no_card(self, pin: str) -> bool:
        return self.credentials.pin_has_no_card(pin)

    def bind_card(self, pin: str, card_id: str) -> bool:
        bound = self.credentials.bind_card(pin, card_id)
        if bound:
            self.add_log(LogEntry.create(
                LogType.INFO, f"Card {card_id} bound to existing pin.",
                when=self.clock.now(), pin=pin, card_id=card_id,
            ))
        return bound

    def add_log(self, entry: LogEntry, urgent: Optional[bool] = None) -> None:
        self.logs.append(entry, urgent)

    def handle_card(self, card_id: str) -> AccessDecision:
        """A card was presented: check it and record the attempt."""
        authorized = self.check_card(card_id)
        if authorized:
            text = f"Card {card_id} inserted. Authorized access."
        else:
            text = f"Card {card_id} inserted. Access denied!"
        logger.info(f"[ACCESS] {text}")
        self.add_log(LogEntry.create(LogType.ACCESS_ATTEMPT, text, when=self.clock.now(), card_id=card_id))
        return AccessDecision(authorized=authorized, reason=text)

    def handle_pin(self, pin: str) -> AccessDecision:
        """A PIN was entered: check it, record the attempt, flag missing card enrollment."""
        authorized = self.check_pin(pin)
        if authorized:
            text = f"Pin {pin} inserted. Authorized access."
        else:
            text = f"Pin {pin} inserted. Access denied!"
        logger.info(f"[ACCESS] {'Pin accepted' if authorized else 'Pin rejected'}")
        self.add_log(LogEntry.create(LogType.ACCESS_ATTEMPT, text, when=self.clock.now(), pin=pin))
        return AccessDecision(
            authorized=authorized,
            reason=text,
            card_enrollment_required=authorized and self.pin_has_no_card(pin),
        )

    # ──────────────────────────────────────────────
    # Network events
    # ──────────────────────────────────────────────

    def network_up(self, address: Optional[str] = None) -> None:
        logger.info("[SMARTLOCK] Network is up!")
        with self._link_lock:
            self.network.mark_up(address)
        self.scheduler.start()

    def network_down(self) -> None:
        logger.info("[SMARTLOCK] Network is down!")
        with self._link_lock:
            self.network.mark_down()
            self.data_source.set_state(self._fallback_state())
        self.scheduler.stop()

    def request_sync(self) -> None:
        """Run a sync cycle now instead of waiting for the next tick."""
        self.scheduler.wake()

    # ──────────────────────────────────────────────
    # Sync cycle (scheduler thread)
    # ──────────────────────────────────────────────

    def run_cycle(self) -> bool:
        self.credentials.retry_pending()
        self.logs.retry_pending()

        success = self._sync_steps()
        with self._link_lock:
            # A link that dropped mid-cycle overrides the cycle's own result
            if success and self.network.is_up:
                self.data_source.set_state(DataSource.REMOTE)
            else:
                if success:
                    logger.warning("[SYNC] Link went down during the cycle; keeping fallback data source")
                self.data_source.set_state(self._fallback_state())
        return success

    def _sync_steps(self) -> bool:
        with self._link_lock:
            if not self.network.is_up:
                logger.warning("[SYNC] No connection, skipping scheduled server polling routine")
                return False
            self.data_source.set_state(DataSource.REFRESHING)
        logger.debug("[SYNC] Beginning server routine...")

        if not self.network.has_address:
            logger.warning("[SYNC] Lock address appears to be null!")
            return False

        if not self._time_checked:
            if not self.client.check_time(self.clock, self.logs):
                return False
            self._time_checked = True

        if not self.logs.is_empty:
            if not self.client.flush_logs(self.logs):
                return False

        return self.client.sync_users(self.credentials)

    def _fallback_state(self) -> DataSource:
        return DataSourceState.fallback_for(not self.credentials.is_empty)

    # ──────────────────────────────────────────────
    # Status
    # ──────────────────────────────────────────────

    def status(self) -> dict:
        return {
            "data_source": self.data_source.current.name,
            "initialized": self._initialized,
            "network_up": self.network.is_up,
            "address": self.network.address,
            "credentials": self.credentials.size,
            "pending_logs": self.logs.size,
            "scheduler_running": self.scheduler.is_running,
            "cycles_run": self.scheduler.cycles_run,
            "last_sync_success": self.scheduler.last_success,
            "last_sync_at": self.scheduler.last_cycle_at,
            "time_checked": self._time_checked,
            "timestamp": datetime.now(timezone.utc),
        }
