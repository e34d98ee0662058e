"""Shared TCP accept loop used by the sensor and monitor listeners."""

from __future__ import annotations

import logging
import socket
import time
from threading import Event
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

ACCEPT_POLL_SECONDS = 0.5
INITIAL_BACKOFF_SECONDS = 0.05
MAX_BACKOFF_SECONDS = 1.0


class BrokerStartupError(RuntimeError):
    """A listening socket could not be bound."""


class TcpListener:
    """Accepts connections on ``host:port`` and hands each one to ``dispatch``."""

    name = "listener"

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self._socket: Optional[socket.socket] = None
        self._stopping = Event()

    @property
    def address(self) -> Tuple[str, int]:
        if self._socket is None:
            raise RuntimeError(f"{self.name} is not bound.")
        host, port = self._socket.getsockname()[:2]
        return host, port

    def bind(self) -> Tuple[str, int]:
        try:
            listener = socket.create_server((self.host, self.port))
        except OSError as exc:
            raise BrokerStartupError(
                f"Cannot bind {self.name} to {self.host}:{self.port}: {exc}"
            ) from exc
        listener.settimeout(ACCEPT_POLL_SECONDS)
        self._socket = listener
        return self.address

    def serve_forever(self) -> None:
        if self._socket is None:
            self.bind()
        listener = self._socket
        assert listener is not None

        backoff = INITIAL_BACKOFF_SECONDS
        while not self._stopping.is_set():
            try:
                conn, addr = listener.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if self._stopping.is_set():
                    break
                logger.warning(
                    "Accept failed on %s, retrying in %.2fs",
                    self.name,
                    backoff,
                    extra={"reason": str(exc)},
                )
                time.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF_SECONDS)
                continue

            backoff = INITIAL_BACKOFF_SECONDS
            try:
                self.dispatch(conn, addr)
            except RuntimeError:
                # Worker pool already shut down.
                conn.close()
                break

    def dispatch(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        raise NotImplementedError

    def shutdown(self) -> None:
        self._stopping.set()
        if self._socket is not None:
            self._socket.close()
