"""
Directory Sync Client — time check, user list fetch and log delivery.

All three exchanges go to the same service with a fixed path per field:

    http://<server_ip>:<server_port>/<service_path>/<field>/?id=<lock_id>

    GET  time  → raw timestamp string
    GET  data  → {"AllowedUsers": [{"CardID", "Expire", "Pin"}, ...]}
    POST data  ← {"Log": [{"Type", "Pin", "CardID", "Text", "DateTime"}, ...]}

Each exchange is a single attempt that reports success or failure; retrying
is the scheduler's job, one whole cycle at a time.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from pydantic import ValidationError

from smartlock.access.clock import LockClock, to_local_naive, weak_compare
from smartlock.access.credential_store import CredentialStore
from smartlock.access.log_queue import LogQueue
from smartlock.config import Settings
from smartlock.schemas import (
    LogEntry,
    LogPayload,
    LogType,
    PayloadError,
    UserListPayload,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

DATA_REQUEST = "data"
TIME_REQUEST = "time"


@dataclass
class RemoteResult:
    success: bool
    content: str = ""
    status_code: Optional[int] = None


class DirectorySyncClient:
    """
    Talks to the directory server on behalf of the sync routine.
    Never raises on network or payload problems: failures come back as False.
    """

    def __init__(
        self,
        server_ip: str,
        server_port: int,
        lock_id: str,
        service_path: str = "SmartLockRESTService",
        timeout: float = 5.0,
        time_tolerance_seconds: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = f"http://{server_ip}:{server_port}/{service_path.strip('/')}"
        self.lock_id = lock_id
        self.timeout = timeout
        self.time_tolerance_seconds = time_tolerance_seconds
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        return cls(
            server_ip=settings.server_ip,
            server_port=settings.server_port,
            lock_id=settings.lock_id,
            service_path=settings.service_path,
            timeout=settings.request_timeout_seconds,
            time_tolerance_seconds=settings.time_tolerance_seconds,
            transport=transport,
        )

    def build_url(self, field: str) -> str:
        return f"{self.base_url}/{field}/"

    def request(self, method: str, field: str, json: Optional[dict] = None) -> RemoteResult:
        """One HTTP exchange. Success means HTTP 200; transport errors are failures."""
        url = self.build_url(field)
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                r = client.request(method, url, params={"id": self.lock_id}, json=json)
        except httpx.HTTPError as e:
            logger.warning(f"[SYNC] {method} {field} failed: {e}")
            return RemoteResult(success=False)

        if r.status_code != 200:
            logger.warning(f"[SYNC] {method} {field} returned HTTP {r.status_code}")
        return RemoteResult(success=r.status_code == 200, content=r.text, status_code=r.status_code)

    # ──────────────────────────────────────────────
    # Exchanges
    # ──────────────────────────────────────────────

    def check_time(self, clock: LockClock, log_queue: LogQueue) -> bool:
        """Compare the lock clock with the server's and correct it on mismatch."""
        logger.debug("[SYNC] Requesting current time from server...")
        result = self.request("GET", TIME_REQUEST)
        if not result.success:
            return False

        try:
            server_time = to_local_naive(parse_timestamp(result.content))
        except PayloadError as e:
            logger.warning(f"[SYNC] Time check failed: {e}")
            return False

        local_time = clock.now()
        if weak_compare(server_time, local_time, self.time_tolerance_seconds):
            logger.debug("[SYNC] Lock clock already synced with server time")
            return True

        text = (
            f"RTC/Server time mismatch! Server: {format_timestamp(server_time)}, "
            f"RTC: {format_timestamp(local_time)}"
        )
        logger.warning(f"[SYNC] {text}; setting lock clock")
        clock.set(server_time)
        log_queue.append(LogEntry.create(LogType.INFO, text, when=clock.now()))
        return True

    def flush_logs(self, log_queue: LogQueue) -> bool:
        """Push queued log entries; clear exactly what was sent once the server accepts it."""
        pending = log_queue.drain_for_send()
        if not pending:
            return True

        logger.info(f"[SYNC] Sending {len(pending)} stored logs to server...")
        payload = LogPayload(log=list(pending)).to_wire()
        result = self.request("POST", DATA_REQUEST, json=payload)
        if not result.success:
            logger.warning(f"[SYNC] Log delivery failed, {len(pending)} logs kept for retry")
            return False

        cleared = log_queue.clear_if_unchanged(pending)
        logger.info(f"[SYNC] Flushed {cleared} logs to server")
        return True

    def sync_users(self, store: CredentialStore) -> bool:
        """Download the allowed-users list and adopt it wholesale."""
        logger.debug("[SYNC] Requesting user list from server...")
        result = self.request("GET", DATA_REQUEST)
        if not result.success:
            return False

        try:
            payload = UserListPayload.model_validate_json(result.content)
        except ValidationError as e:
            logger.warning(f"[SYNC] User list request failed, unreadable payload: {e}")
            return False

        store.replace_all(payload.allowed_users)
        return True
