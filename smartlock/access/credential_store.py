"""
Credential Store — the lock's list of authorized people.

Lookups run 100% offline against the last-known list:
  - No network calls, never blocks on the sync routine
  - Linear scan, first match wins, exact case-sensitive comparison
  - Deny-by-default: every check is False until the store has been loaded

The list is refreshed wholesale by the sync routine (remote is always
authoritative) and mirrored to the ``users`` cache blob after every change.
"""

import logging
from typing import Iterable, Optional

from pydantic import ValidationError

from smartlock.access.cache_store import USERS_CACHE, CachedCollection, CacheStore
from smartlock.schemas import Credential

logger = logging.getLogger(__name__)


class CredentialStore(CachedCollection):
    """Thread-safe credential list shared by the reader path and the sync thread."""

    cache_name = USERS_CACHE

    def __init__(self, cache: CacheStore):
        super().__init__(cache)
        self._credentials: tuple[Credential, ...] = ()
        self._initialized = False

    def load(self) -> bool:
        """Populate from the cache. Returns True if any credential was found."""
        records = self._cache.load(self.cache_name) or []
        loaded: list[Credential] = []
        for record in records:
            try:
                loaded.append(Credential.model_validate(record))
            except ValidationError as e:
                logger.warning(f"[USERS] Skipping unreadable cached credential: {e}")

        with self._lock:
            self._credentials = tuple(loaded)
            self._initialized = True

        logger.info(f"[USERS] {len(loaded)} users loaded from cache")
        return bool(loaded)

    # ──────────────────────────────────────────────
    # Lookups
    # ──────────────────────────────────────────────

    def check_card(self, card_id: str) -> bool:
        if not card_id:
            return False
        return self._first(lambda c: c.card_id == card_id) is not None

    def check_pin(self, pin: str) -> bool:
        return self._first(lambda c: c.pin == pin) is not None

    def pin_has_no_card(self, pin: str) -> bool:
        """True if the PIN is valid but no card has been enrolled for it yet."""
        match = self._first(lambda c: c.pin == pin)
        return match is not None and not match.has_card

    def _first(self, predicate) -> Optional[Credential]:
        with self._lock:
            if not self._initialized:
                return None
            for credential in self._credentials:
                if predicate(credential):
                    return credential
        return None

    # ──────────────────────────────────────────────
    # Mutations
    # ──────────────────────────────────────────────

    def bind_card(self, pin: str, card_id: str) -> bool:
        """Enroll ``card_id`` on the first credential holding ``pin``."""
        with self._lock:
            if not self._initialized:
                return False
            credentials = list(self._credentials)
            for index, credential in enumerate(credentials):
                if credential.pin == pin:
                    credentials[index] = credential.model_copy(update={"card_id": card_id})
                    break
            else:
                return False
            self._credentials = tuple(credentials)
            version = self._bump()
            records = [c.to_record() for c in self._credentials]

        logger.info(f"[USERS] Card {card_id} enrolled on existing PIN")
        self._persist(records, version)
        return True

    def replace_all(self, credentials: Iterable[Credential]) -> None:
        """Swap in a complete new list (remote refresh) and persist it."""
        new_list = tuple(credentials)
        with self._lock:
            self._credentials = new_list
            self._initialized = True
            version = self._bump()
            records = [c.to_record() for c in new_list]

        self._persist(records, version)
        logger.info(f"[USERS] {len(new_list)} users received from server")

    # ──────────────────────────────────────────────
    # Inspection
    # ──────────────────────────────────────────────

    def snapshot(self) -> tuple[Credential, ...]:
        with self._lock:
            return self._credentials

    @property
    def initialized(self) -> bool:
        with self._lock:
            return self._initialized

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._credentials)

    @property
    def is_empty(self) -> bool:
        return self.size == 0
