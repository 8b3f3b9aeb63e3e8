"""Registry of live controller connections keyed by client identity."""

from __future__ import annotations

import logging
import threading
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

C = TypeVar("C")


class ConnectionRegistry(Generic[C]):
    """Holds at most one live connection per originating identity.

    The registry only tracks entries; closing an evicted connection is
    the caller's job, since that is an I/O operation.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections: dict[str, C] = {}

    def register(self, identity: str, connection: C) -> C | None:
        """Make ``connection`` the live entry for ``identity``.

        Returns:
            The previously registered connection, if any, which the
            caller must close.
        """
        with self._lock:
            previous = self._connections.get(identity)
            self._connections[identity] = connection
        if previous is connection:
            return None
        return previous

    def unregister(self, identity: str, connection: C) -> bool:
        """Drop the entry only if it still refers to ``connection``.

        A newer connection from the same identity may already have
        replaced it, in which case this is a no-op.
        """
        with self._lock:
            if self._connections.get(identity) is not connection:
                return False
            del self._connections[identity]
            return True

    def get(self, identity: str) -> C | None:
        with self._lock:
            return self._connections.get(identity)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._connections
