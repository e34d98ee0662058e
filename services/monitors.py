"""Connected monitor sessions and the registry the broadcaster fans out to."""

from __future__ import annotations

import logging
import socket
from queue import Full, Queue
from threading import Event, Lock, Thread, current_thread
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_USERNAME = "unknown user"

# Batches a session may have queued before it is treated as stalled.
OUTBOX_LIMIT = 1024


class LineSink(Protocol):
    def write_lines(self, lines: Sequence[str]) -> None: ...

    def close(self) -> None: ...


class SocketSink:
    """Write-only, newline-terminated UTF-8 view of a monitor socket."""

    def __init__(self, conn: socket.socket) -> None:
        self._conn = conn

    def write_lines(self, lines: Sequence[str]) -> None:
        payload = "".join(f"{line}\n" for line in lines)
        self._conn.sendall(payload.encode("utf-8"))

    def close(self) -> None:
        # Wakes the session's reader, which owns closing the socket itself.
        try:
            self._conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            logger.debug("Monitor socket already shut down")


class MonitorSession:
    """One monitor connection with its own FIFO outbox and sender thread.

    Replies and broadcast events share the outbox, so a monitor receives lines
    in exactly the order they were queued. A batch of lines queued together is
    written without anything in between. A monitor that stops reading fills
    its outbox; the session is then dropped rather than buffering without end.
    """

    def __init__(
        self,
        monitor_id: str,
        sink: LineSink,
        username: str = DEFAULT_USERNAME,
        outbox_limit: int = OUTBOX_LIMIT,
    ) -> None:
        self.monitor_id = monitor_id
        self.sink = sink
        self.username = username
        self._outbox: Queue[Optional[Tuple[str, ...]]] = Queue(maxsize=outbox_limit)
        self._closed = Event()
        self._aborted = False
        self._sender: Optional[Thread] = None

    def start(self) -> None:
        if self._sender is not None:
            return
        self._sender = Thread(
            target=self._drain,
            name=f"monitor-sender-{self.monitor_id[:8]}",
            daemon=True,
        )
        self._sender.start()

    def send(self, line: str) -> bool:
        return self.send_lines((line,))

    def send_lines(self, lines: Sequence[str]) -> bool:
        if self._closed.is_set():
            return False
        try:
            self._outbox.put_nowait(tuple(lines))
        except Full:
            logger.warning(
                "Monitor outbox full, dropping session",
                extra={"monitor_id": self.monitor_id, "username": self.username},
            )
            self._abort()
            return False
        return True

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop accepting lines, flush what is queued and stop the sender."""
        if not self._closed.is_set():
            self._closed.set()
            try:
                self._outbox.put_nowait(None)
            except Full:
                self._abort()
        sender = self._sender
        if sender is not None and sender is not current_thread():
            sender.join(timeout)

    def _drain(self) -> None:
        while True:
            batch = self._outbox.get()
            if batch is None or self._aborted:
                return
            try:
                self.sink.write_lines(batch)
            except OSError as exc:
                logger.warning(
                    "Failed to deliver to monitor",
                    extra={"monitor_id": self.monitor_id, "reason": str(exc)},
                )
                self._abort()
                return

    def _abort(self) -> None:
        # Shutting the socket down unblocks a stalled write and ends the reader loop.
        self._aborted = True
        self._closed.set()
        self.sink.close()


class MonitorRegistry:
    """Process-wide mapping of monitor id to its live session."""

    def __init__(self) -> None:
        self._sessions: Dict[str, MonitorSession] = {}
        self._lock = Lock()

    def register(self, session: MonitorSession) -> Optional[MonitorSession]:
        """Register ``session``; return the session it displaced, if any."""
        with self._lock:
            previous = self._sessions.get(session.monitor_id)
            self._sessions[session.monitor_id] = session
            return previous

    def unregister(self, session: MonitorSession) -> bool:
        with self._lock:
            if self._sessions.get(session.monitor_id) is not session:
                return False
            del self._sessions[session.monitor_id]
            return True

    def sessions(self) -> List[MonitorSession]:
        with self._lock:
            return list(self._sessions.values())
