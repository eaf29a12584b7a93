"""Shared fixtures: in-memory cache database and an in-process directory server."""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from smartlock.access.cache_store import CacheStore
from smartlock.access.clock import LockClock
from smartlock.access.engine import SyncEngine
from smartlock.access.network import NetworkLink
from smartlock.access.sync_client import DirectorySyncClient
from smartlock.database import build_engine, build_session_factory, init_db
from smartlock.schemas import format_timestamp

LOCK_ADDRESS = "192.168.100.2"


class FakeDirectory:
    """Directory server double served through ``httpx.MockTransport``."""

    def __init__(self, users: Optional[list[dict]] = None, server_time: Optional[datetime] = None):
        self.users = users or []
        self.server_time = server_time
        self.users_body: Optional[str] = None
        self.time_body: Optional[str] = None
        self.time_status = 200
        self.users_status = 200
        self.log_status = 200
        self.received_logs: list[dict] = []
        self.requests: list[tuple[str, str]] = []
        self.on_request: Optional[Callable[[str, str], None]] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        field = request.url.path.rstrip("/").rsplit("/", 1)[-1]
        self.requests.append((request.method, field))
        if self.on_request is not None:
            self.on_request(request.method, field)

        if field == "time":
            if self.time_body is not None:
                body = self.time_body
            else:
                body = json.dumps(format_timestamp(self.server_time or datetime.now()))
            return httpx.Response(self.time_status, text=body, request=request)

        if request.method == "GET":
            body = self.users_body
            if body is None:
                body = json.dumps({"AllowedUsers": self.users})
            return httpx.Response(self.users_status, text=body, request=request)

        payload = json.loads(request.content)
        if self.log_status == 200:
            self.received_logs.extend(payload["Log"])
        return httpx.Response(self.log_status, request=request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, field: str) -> int:
        return self.requests.count((method, field))


@pytest.fixture
def cache() -> CacheStore:
    """Cache store over a fresh in-memory SQLite database."""
    db_engine = build_engine("sqlite://")
    init_db(db_engine)
    return CacheStore(build_session_factory(db_engine))


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def client(directory: FakeDirectory) -> DirectorySyncClient:
    return DirectorySyncClient(
        server_ip="192.168.100.1",
        server_port=8000,
        lock_id="7",
        transport=directory.transport,
    )


@pytest.fixture
def make_engine(cache: CacheStore, client: DirectorySyncClient):
    """Build a SyncEngine over the shared cache; ``users`` pre-populates the user cache."""
    built: list[SyncEngine] = []

    def _make(
        users: Optional[list[dict]] = None,
        success_interval: float = 60.0,
        retry_interval: float = 60.0,
        clock: Optional[LockClock] = None,
    ) -> SyncEngine:
        if users is not None:
            cache.store("users", users)
        engine = SyncEngine(
            cache=cache,
            client=client,
            success_interval=success_interval,
            retry_interval=retry_interval,
            network=NetworkLink(address=LOCK_ADDRESS),
            clock=clock,
        )
        built.append(engine)
        return engine

    yield _make

    for engine in built:
        engine.scheduler.shutdown(timeout=2.0)
