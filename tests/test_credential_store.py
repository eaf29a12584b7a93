"""Tests for the credential store: lookups, card binding, refresh and persistence."""

from __future__ import annotations

import threading

from smartlock.access.cache_store import CacheStore
from smartlock.access.credential_store import CredentialStore
from smartlock.schemas import Credential


def _loaded(cache: CacheStore, records: list[dict]) -> CredentialStore:
    cache.store("users", records)
    store = CredentialStore(cache)
    store.load()
    return store


def test_checks_deny_before_load(cache: CacheStore) -> None:
    """An uninitialized store denies everything instead of raising."""
    cache.store("users", [{"Pin": "1234", "CardID": "AA"}])
    store = CredentialStore(cache)

    assert store.check_pin("1234") is False
    assert store.check_card("AA") is False
    assert store.pin_has_no_card("1234") is False
    assert store.bind_card("1234", "BB") is False


def test_load_reports_empty_cache(cache: CacheStore) -> None:
    store = CredentialStore(cache)

    assert store.load() is False
    assert store.initialized is True
    assert store.check_pin("1234") is False


def test_check_pin_exact_match(cache: CacheStore) -> None:
    store = _loaded(cache, [{"Pin": "1234"}, {"Pin": "5678", "CardID": "CAFE"}])

    assert store.check_pin("1234") is True
    assert store.check_pin("5678") is True
    assert store.check_pin("0000") is False
    assert store.check_pin("123") is False
    assert store.check_pin("12345") is False


def test_check_card_is_case_sensitive(cache: CacheStore) -> None:
    store = _loaded(cache, [{"Pin": "1", "CardID": "CafeBabe"}])

    assert store.check_card("CafeBabe") is True
    assert store.check_card("cafebabe") is False


def test_missing_card_never_matches(cache: CacheStore) -> None:
    """PIN-only users must not make an empty card id valid."""
    store = _loaded(cache, [{"Pin": "1", "CardID": None}, {"Pin": "2", "CardID": ""}])

    assert store.check_card("") is False
    assert store.check_card(None) is False


def test_pin_has_no_card(cache: CacheStore) -> None:
    store = _loaded(cache, [
        {"Pin": "1", "CardID": None},
        {"Pin": "2", "CardID": ""},
        {"Pin": "3", "CardID": "C3"},
    ])

    assert store.pin_has_no_card("1") is True
    assert store.pin_has_no_card("2") is True
    assert store.pin_has_no_card("3") is False
    assert store.pin_has_no_card("9") is False


def test_bind_card_then_check_card(cache: CacheStore) -> None:
    store = _loaded(cache, [{"Pin": "1234"}])

    assert store.bind_card("1234", "NEWCARD") is True
    assert store.check_card("NEWCARD") is True
    assert store.pin_has_no_card("1234") is False


def test_bind_card_updates_first_match_only(cache: CacheStore) -> None:
    store = _loaded(cache, [{"Pin": "1234"}, {"Pin": "1234"}])

    store.bind_card("1234", "C1")

    cards = [c.card_id for c in store.snapshot()]
    assert cards == ["C1", None]


def test_bind_card_unknown_pin_is_noop(cache: CacheStore) -> None:
    store = _loaded(cache, [{"Pin": "1234"}])
    before = cache.load("users")

    assert store.bind_card("9999", "C1") is False
    assert cache.load("users") == before


def test_bind_card_is_persisted(cache: CacheStore) -> None:
    store = _loaded(cache, [{"Pin": "1234"}])
    store.bind_card("1234", "C1")

    reloaded = CredentialStore(cache)
    reloaded.load()
    assert reloaded.check_card("C1") is True


def test_replace_all_discards_old_entries(cache: CacheStore) -> None:
    store = _loaded(cache, [{"Pin": "old"}])

    store.replace_all([Credential(pin="a"), Credential(pin="b", card_id="B")])

    assert store.check_pin("old") is False
    assert store.check_pin("a") is True
    assert store.check_card("B") is True
    assert store.size == 2


def test_persist_then_load_round_trip(cache: CacheStore) -> None:
    """Persisted credentials reload with equal field values."""
    store = CredentialStore(cache)
    credentials = [
        Credential(pin="1234", card_id="ABCDE", expire="31/03/2017 12:46:59"),
        Credential(pin="67891", card_id=None, expire=None),
    ]
    store.replace_all(credentials)

    reloaded = CredentialStore(cache)
    assert reloaded.load() is True
    assert list(reloaded.snapshot()) == credentials


def test_concurrent_lookups_during_replace(cache: CacheStore) -> None:
    """Readers see either the old or the new list, never a partial one."""
    old = [Credential(pin=f"old-{i}") for i in range(200)]
    new = [Credential(pin=f"new-{i}") for i in range(200)]
    store = CredentialStore(cache)
    store.replace_all(old)
    torn: list[int] = []

    def reader() -> None:
        for _ in range(200):
            snapshot = store.snapshot()
            prefixes = {c.pin.split("-")[0] for c in snapshot}
            if len(prefixes) != 1:
                torn.append(len(prefixes))

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for _ in range(20):
        store.replace_all(new)
        store.replace_all(old)
    for t in threads:
        t.join()

    assert torn == []
