"""Registry of the connections of currently connected clients."""

from __future__ import annotations

import logging
import socket
import threading
from typing import List, Optional

log = logging.getLogger(__name__)

MAX_CLIENTS = 1024


class ClientRegistry:
    """Tracks connected clients and lets a thread wait until none remain."""

    def __init__(self, capacity: int = MAX_CLIENTS) -> None:
        self._capacity = capacity
        self._clients: List[object] = []
        self._cond = threading.Condition()

    def __len__(self) -> int:
        with self._cond:
            return len(self._clients)

    def register(self, conn) -> None:
        """Add a client connection; raises RuntimeError when the registry is full."""
        with self._cond:
            if len(self._clients) >= self._capacity:
                raise RuntimeError("too many clients to register")
            self._clients.append(conn)
            log.debug("registered client %r (total=%d)", conn, len(self._clients))

    def unregister(self, conn) -> None:
        """Remove a client connection, waking waiters when none remain."""
        with self._cond:
            try:
                self._clients.remove(conn)
            except ValueError:
                return
            log.debug("unregistered client %r (remaining=%d)",
                      conn, len(self._clients))
            if not self._clients:
                self._cond.notify_all()

    def wait_for_empty(self, timeout: Optional[float] = None) -> bool:
        """Block until no clients are registered.

        Returns False if ``timeout`` seconds pass first.
        """
        with self._cond:
            return self._cond.wait_for(lambda: not self._clients, timeout)

    def shutdown_all(self) -> None:
        """Shut down the reading side of every registered connection."""
        with self._cond:
            for conn in self._clients:
                try:
                    conn.shutdown(socket.SHUT_RD)
                except OSError as exc:
                    log.debug("shutdown of %r failed: %s", conn, exc)
                else:
                    log.debug("shut down client %r", conn)