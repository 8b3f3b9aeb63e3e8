"""Process-wide downstream target address.

One instance is created per relay and injected into both the hub and
the forwarder. Every read and write goes through a lock; the last
writer wins.
"""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class TargetAddress:
    """Mutable host identifier of the Roku the relay forwards to."""

    def __init__(self, initial: str = "") -> None:
        self._lock = threading.Lock()
        self._value = initial.strip()

    def get(self) -> str:
        with self._lock:
            return self._value

    def set(self, address: str) -> str:
        """Replace the current target.

        Raises:
            ValueError: If the address is empty.
        """
        address = (address or "").strip()
        if not address:
            raise ValueError("Target address must not be empty")
        with self._lock:
            self._value = address
        logger.info("Roku IP set to: %s", address)
        return address

    @property
    def is_configured(self) -> bool:
        return bool(self.get())
