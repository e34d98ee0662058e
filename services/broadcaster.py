"""Fan-out of broker events to every connected monitor."""

from __future__ import annotations

import logging

from models.records import Reading
from services.monitors import MonitorRegistry

logger = logging.getLogger(__name__)


class Broadcaster:
    """Formats broker events and queues them on every registered session.

    Queueing never blocks on a socket; each session's sender thread performs
    the write, so a slow or broken monitor cannot hold up the others.
    """

    def __init__(self, registry: MonitorRegistry) -> None:
        self.registry = registry

    def publish_update(self, device_id: str, reading: Reading) -> int:
        return self._publish(f"UPDATE {reading.to_csv()}")

    def publish_new_sensor(self, device_id: str) -> int:
        return self._publish(f"NEW_SENSOR {device_id}")

    def publish_info(self, device_id: str, name: str, plant: str = "", room: str = "") -> int:
        return self._publish(f"SENSOR_INFO {device_id},{name},{plant},{room}")

    def publish_removed(self, device_id: str) -> int:
        return self._publish(f"SENSOR_REMOVED {device_id}")

    def _publish(self, line: str) -> int:
        delivered = 0
        for session in self.registry.sessions():
            try:
                if session.send(line):
                    delivered += 1
            except Exception:
                logger.exception(
                    "Failed to queue event for monitor",
                    extra={"monitor_id": session.monitor_id},
                )
        return delivered

