"""Tests for the directory sync protocol over httpx.MockTransport."""

from __future__ import annotations

import json
from datetime import datetime, timedelta

import httpx

from smartlock.access.cache_store import CacheStore
from smartlock.access.clock import LockClock
from smartlock.access.credential_store import CredentialStore
from smartlock.access.log_queue import LogQueue
from smartlock.access.sync_client import DirectorySyncClient
from smartlock.schemas import Credential, LogEntry, LogType

NOW = datetime(2026, 10, 19, 9, 0, 0)


def _fixed_clock(value: datetime = NOW) -> LockClock:
    return LockClock(source=lambda: value)


def test_build_url_uses_service_path_and_field() -> None:
    client = DirectorySyncClient(server_ip="10.0.0.1", server_port=8080, lock_id="3")

    assert client.build_url("data") == "http://10.0.0.1:8080/SmartLockRESTService/data/"
    assert client.build_url("time") == "http://10.0.0.1:8080/SmartLockRESTService/time/"


def test_request_sends_lock_id_query() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="ok", request=request)

    client = DirectorySyncClient("10.0.0.1", 8080, "3", transport=httpx.MockTransport(handler))
    result = client.request("GET", "data")

    assert result.success is True
    assert result.content == "ok"
    assert seen[0].url.params["id"] == "3"


def test_transport_failure_is_reported_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = DirectorySyncClient("10.0.0.1", 8080, "3", transport=httpx.MockTransport(handler))
    result = client.request("GET", "data")

    assert result.success is False
    assert result.status_code is None


def test_sync_users_replaces_store(cache: CacheStore, directory, client) -> None:
    directory.users_body = (
        r'{"AllowedUsers":[{"CardID":"ABCDE","Expire":"31\/03\/2027 12:46:59","Pin":"12345"},'
        r'{"CardID":null,"Expire":"01\/04\/2027 12:46:59","Pin":"67891"}]}'
    )
    store = CredentialStore(cache)
    store.replace_all([Credential(pin="stale")])

    assert client.sync_users(store) is True

    assert store.check_pin("stale") is False
    assert store.check_card("ABCDE") is True
    assert store.pin_has_no_card("67891") is True
    assert store.snapshot()[0].expire == datetime(2027, 3, 31, 12, 46, 59)


def test_sync_users_accepts_camel_case_fields(cache: CacheStore, directory, client) -> None:
    directory.users = [{"cardId": "X1", "expire": None, "pin": "42"}]
    store = CredentialStore(cache)

    assert client.sync_users(store) is True
    assert store.check_card("X1") is True


def test_sync_users_parse_failure_leaves_store(cache: CacheStore, directory, client) -> None:
    store = CredentialStore(cache)
    store.replace_all([Credential(pin="1234")])

    for body in ('{"AllowedUsers": [{"CardID": "A"', '{"Users": []}', '{"AllowedUsers": [{"CardID": "A"}]}'):
        directory.users_body = body
        assert client.sync_users(store) is False

    assert [c.pin for c in store.snapshot()] == ["1234"]


def test_sync_users_http_error_is_failure(cache: CacheStore, directory, client) -> None:
    directory.users_status = 500
    store = CredentialStore(cache)

    assert client.sync_users(store) is False
    assert store.initialized is False


def test_flush_logs_posts_named_array(cache: CacheStore, directory, client) -> None:
    queue = LogQueue(cache)
    queue.append(LogEntry.create(LogType.ACCESS_ATTEMPT, "Pin 1234 inserted. Authorized access.", when=NOW, pin="1234"))
    queue.append(LogEntry.create(LogType.ERROR, "Reader fault", when=NOW))

    assert client.flush_logs(queue) is True

    assert queue.is_empty
    assert directory.received_logs == [
        {"Type": 1, "Pin": "1234", "CardID": None,
         "Text": "Pin 1234 inserted. Authorized access.", "DateTime": "19/10/2026 09:00:00"},
        {"Type": 3, "Pin": None, "CardID": None, "Text": "Reader fault", "DateTime": "19/10/2026 09:00:00"},
    ]


def test_flush_logs_non_200_keeps_queue(cache: CacheStore, directory, client) -> None:
    directory.log_status = 503
    queue = LogQueue(cache)
    queue.append(LogEntry.create(LogType.INFO, "a", when=NOW))
    queue.append(LogEntry.create(LogType.INFO, "b", when=NOW))

    assert client.flush_logs(queue) is False
    assert [e.text for e in queue.drain_for_send()] == ["a", "b"]


def test_flush_logs_keeps_entries_appended_during_send(cache: CacheStore, directory, client) -> None:
    queue = LogQueue(cache)
    queue.append(LogEntry.create(LogType.INFO, "sent", when=NOW))

    def append_during_post(method: str, field: str) -> None:
        if method == "POST":
            queue.append(LogEntry.create(LogType.INFO, "late", when=NOW))

    directory.on_request = append_during_post

    assert client.flush_logs(queue) is True
    assert [e["Text"] for e in directory.received_logs] == ["sent"]
    assert [e.text for e in queue.drain_for_send()] == ["late"]


def test_flush_logs_with_empty_queue_sends_nothing(cache: CacheStore, directory, client) -> None:
    assert client.flush_logs(LogQueue(cache)) is True
    assert directory.requests == []


def test_check_time_in_tolerance_leaves_clock(cache: CacheStore, directory, client) -> None:
    directory.server_time = NOW + timedelta(seconds=3)
    clock = _fixed_clock()
    queue = LogQueue(cache)

    assert client.check_time(clock, queue) is True
    assert clock.offset == timedelta(0)
    assert queue.is_empty


def test_check_time_mismatch_corrects_clock_and_logs(cache: CacheStore, directory, client) -> None:
    directory.server_time = NOW + timedelta(hours=2)
    clock = _fixed_clock()
    queue = LogQueue(cache)

    assert client.check_time(clock, queue) is True

    assert clock.now() == NOW + timedelta(hours=2)
    [entry] = queue.drain_for_send()
    assert entry.type is LogType.INFO
    assert "Server: 19/10/2026 11:00:00" in entry.text
    assert "RTC: 19/10/2026 09:00:00" in entry.text


def test_check_time_accepts_iso_timestamp(cache: CacheStore, directory, client) -> None:
    directory.time_body = json.dumps((NOW + timedelta(minutes=10)).isoformat())
    clock = _fixed_clock()

    assert client.check_time(clock, LogQueue(cache)) is True
    assert clock.now() == NOW + timedelta(minutes=10)


def test_check_time_unparseable_body_fails(cache: CacheStore, directory, client) -> None:
    directory.time_body = "not a time"
    clock = _fixed_clock()

    assert client.check_time(clock, LogQueue(cache)) is False
    assert clock.offset == timedelta(0)
