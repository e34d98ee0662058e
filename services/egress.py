"""Monitor egress: HELLO handshake followed by a line-oriented command loop."""

from __future__ import annotations

import logging
import socket
from threading import Thread
from typing import Tuple

from services.commands import CommandHandler
from services.listener import TcpListener
from services.monitors import MonitorRegistry, MonitorSession, SocketSink

logger = logging.getLogger(__name__)

FLUSH_TIMEOUT_SECONDS = 2.0


class MonitorGateway(TcpListener):
    """Accepts monitor connections, each served by its own thread until QUIT or EOF."""

    name = "monitor listener"

    def __init__(
        self,
        registry: MonitorRegistry,
        commands: CommandHandler,
        host: str = "0.0.0.0",
        port: int = 9100,
    ) -> None:
        super().__init__(host, port)
        self.registry = registry
        self.commands = commands

    def dispatch(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        Thread(
            target=self.handle_connection,
            args=(conn, addr),
            name=f"monitor-{addr[1] if addr else '?'}",
            daemon=True,
        ).start()

    def shutdown(self) -> None:
        super().shutdown()
        for session in self.registry.sessions():
            session.close(timeout=FLUSH_TIMEOUT_SECONDS)
            session.sink.close()

    def handle_connection(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        peer = addr[0] if addr else None
        sink = SocketSink(conn)
        reader = conn.makefile("r", encoding="utf-8", errors="replace")
        session = None
        try:
            sink.write_lines(("HELLO",))
            monitor_id = reader.readline().strip()
            if not monitor_id:
                sink.write_lines(("ERROR Invalid monitor id",))
                return

            session = MonitorSession(monitor_id, sink)
            session.start()
            replaced = self.registry.register(session)
            if replaced is not None:
                replaced.close(timeout=FLUSH_TIMEOUT_SECONDS)
                replaced.sink.close()
            logger.info("Monitor connected", extra={"monitor_id": monitor_id, "peer": peer})

            for raw in reader:
                if not self.commands.execute(session, raw.rstrip("\r\n")):
                    break
        except OSError as exc:
            logger.debug("Monitor connection dropped", extra={"peer": peer, "reason": str(exc)})
        except Exception:
            logger.exception("Unexpected error in monitor session", extra={"peer": peer})
        finally:
            if session is not None:
                self.registry.unregister(session)
                # Flush queued replies before the socket goes away.
                session.close(timeout=FLUSH_TIMEOUT_SECONDS)
                logger.info(
                    "Monitor disconnected",
                    extra={"monitor_id": session.monitor_id, "username": session.username},
                )
            reader.close()
            conn.close()
