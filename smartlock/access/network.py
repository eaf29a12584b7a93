"""Network link state as reported by the lock's network adapter."""

import threading
from typing import Optional

NULL_ADDRESS = "0.0.0.0"


class NetworkLink:
    """Up/down flag plus the address the lock was given on the last link-up."""

    def __init__(self, address: Optional[str] = None):
        self._lock = threading.Lock()
        self._up = False
        self._address = address

    def mark_up(self, address: Optional[str] = None) -> None:
        with self._lock:
            self._up = True
            if address is not None:
                self._address = address

    def mark_down(self) -> None:
        with self._lock:
            self._up = False

    @property
    def is_up(self) -> bool:
        with self._lock:
            return self._up

    @property
    def address(self) -> Optional[str]:
        with self._lock:
            return self._address

    @property
    def has_address(self) -> bool:
        """True if the lock holds a usable (non-null) address."""
        address = self.address
        return bool(address) and address != NULL_ADDRESS
