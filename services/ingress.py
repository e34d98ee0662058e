"""Sensor ingress: one JSON-shaped payload per connection."""

from __future__ import annotations

import logging
import socket
from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Optional, Tuple

from datastore.sensor_store import SensorStore
from models.records import Reading
from services.broadcaster import Broadcaster
from services.listener import TcpListener
from services.payload_parser import parse_payload
from storage.csv_log import CsvSensorLog

logger = logging.getLogger(__name__)


class SensorIngress(TcpListener):
    """Accepts sensor connections and turns each payload into a stored reading."""

    name = "sensor listener"

    def __init__(
        self,
        store: SensorStore,
        log: CsvSensorLog,
        broadcaster: Broadcaster,
        host: str = "127.0.0.1",
        port: int = 9000,
        workers: int = 8,
    ) -> None:
        super().__init__(host, port)
        self.store = store
        self.log = log
        self.broadcaster = broadcaster
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sensor")
        self._ingest_lock = Lock()

    def dispatch(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        self.executor.submit(self._handle_connection, conn, addr)

    def shutdown(self) -> None:
        super().shutdown()
        self.executor.shutdown(wait=False, cancel_futures=True)

    def handle_payload(self, line: Optional[str], peer: Optional[str] = None) -> Optional[Reading]:
        """Parse and record one payload; malformed input is dropped without a reply."""
        reading = parse_payload(line)
        if reading is None:
            logger.debug("Dropped sensor payload", extra={"peer": peer, "reason": "malformed"})
            return None
        self.record(reading, peer)
        return reading

    def record(self, reading: Reading, peer: Optional[str] = None) -> None:
        # Store, log and publish together so every monitor sees UPDATEs in
        # the order the store applied them.
        with self._ingest_lock:
            first_seen = self.store.ingest(reading)
            try:
                self.log.append(reading)
            except (OSError, ValueError) as exc:
                logger.warning(
                    "Failed to persist reading",
                    extra={"device_id": reading.device_id, "reason": str(exc)},
                )
            self.broadcaster.publish_update(reading.device_id, reading)

        if first_seen:
            logger.info(
                "Sensor connected",
                extra={"device_id": reading.device_id, "peer": peer},
            )

    def _handle_connection(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        peer = addr[0] if addr else None
        try:
            with conn, conn.makefile("r", encoding="utf-8", errors="replace") as stream:
                line = stream.readline()
            self.handle_payload(line, peer)
        except OSError as exc:
            logger.debug("Sensor connection failed", extra={"peer": peer, "reason": str(exc)})
        except Exception:
            logger.exception("Unexpected error while handling sensor payload", extra={"peer": peer})
