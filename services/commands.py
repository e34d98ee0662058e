"""Monitor command dispatch.

Each command line is ``COMMAND[ args]``. Replies go to the requesting session;
PAIR, UNPAIR and UPDATE_INFO additionally publish an event to every monitor.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict

from datastore.sensor_store import SensorStore
from models.records import EXPORT_HEADER
from services.broadcaster import Broadcaster
from services.monitors import MonitorSession

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100

SENSOR_NOT_FOUND = "ERROR Sensor not found"
INVALID_PARAMETERS = "ERROR Invalid parameters"


class CommandError(ValueError):
    """Raised by a handler to reply ``ERROR <message>`` and keep the session."""


class CommandHandler:

    def __init__(
        self,
        store: SensorStore,
        broadcaster: Broadcaster,
        default_history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.default_history_limit = default_history_limit
        self._handlers: Dict[str, Callable[[MonitorSession, str], None]] = {
            "GET": self.handle_get,
            "LIST": self.handle_list,
            "PAIR": self.handle_pair,
            "UNPAIR": self.handle_unpair,
            "UPDATE_INFO": self.handle_update_info,
            "HISTORY": self.handle_history,
            "EXPORT": self.handle_export,
            "USERNAME": self.handle_username,
        }

    def execute(self, session: MonitorSession, line: str) -> bool:
        """Run one command line; return False once the monitor has asked to quit."""
        stripped = line.strip()
        if stripped.upper() == "QUIT":
            return False
        if not stripped:
            session.send("ERROR Empty command")
            return True

        command, _, args = line.partition(" ")
        handler = self._handlers.get(command)
        if handler is None:
            session.send(f"ERROR Unknown command: {line}")
            return True

        try:
            handler(session, args.strip())
        except CommandError as exc:
            session.send(f"ERROR {exc}")
        return True

    def handle_get(self, session: MonitorSession, device_id: str) -> None:
        reading = self.store.get_latest(device_id)
        if reading is None:
            session.send(SENSOR_NOT_FOUND)
            return
        session.send(f"UPDATE {reading.to_csv()}")

    def handle_list(self, session: MonitorSession, _args: str) -> None:
        session.send(" ".join(["SENSORS", *self.store.ids()]))

    def handle_pair(self, session: MonitorSession, args: str) -> None:
        parts = args.split(",")
        if len(parts) < 2 or not parts[0].strip():
            session.send(INVALID_PARAMETERS)
            return
        device_id = parts[0].strip()
        display_name = parts[1].strip()

        if not self.store.exists(device_id):
            session.send(SENSOR_NOT_FOUND)
            return

        session.send(f"PAIRED {device_id}")
        logger.info(
            "Sensor paired",
            extra={"username": session.username, "device_id": device_id},
        )
        # Monitors create a placeholder on NEW_SENSOR; the info event names it.
        self.broadcaster.publish_new_sensor(device_id)
        self.broadcaster.publish_info(device_id, display_name, "", "")

    def handle_unpair(self, session: MonitorSession, device_id: str) -> None:
        if not device_id:
            session.send("ERROR Invalid sensor id")
            return
        session.send(f"UNPAIRED {device_id}")
        logger.info(
            "Sensor unpaired",
            extra={"username": session.username, "device_id": device_id},
        )
        self.broadcaster.publish_removed(device_id)

    def handle_update_info(self, session: MonitorSession, args: str) -> None:
        parts = args.split(",", 3)
        if len(parts) < 4:
            session.send(INVALID_PARAMETERS)
            return
        device_id, name, plant, room = (part.strip() for part in parts)

        if not self.store.exists(device_id):
            session.send(SENSOR_NOT_FOUND)
            return

        session.send(f"INFO_UPDATED {device_id}")
        logger.info(
            "Sensor info updated (name=%s, plant=%s, room=%s)",
            name,
            plant,
            room,
            extra={"username": session.username, "device_id": device_id},
        )
        self.broadcaster.publish_info(device_id, name, plant, room)

    def handle_history(self, session: MonitorSession, args: str) -> None:
        parts = args.split(",")
        device_id = parts[0].strip()
        limit = self.default_history_limit
        if len(parts) > 1:
            limit = _parse_limit(parts[1])

        history = self.store.get_history(device_id)
        if not history:
            session.send("ERROR No history")
            return

        tail = history[max(len(history) - limit, 0) :] if limit else []
        lines = [f"HISTORY_START {device_id} {len(tail)}"]
        lines.extend(f"DATA {reading.to_csv()}" for reading in tail)
        lines.append("HISTORY_END")
        session.send_lines(lines)

    def handle_export(self, session: MonitorSession, device_id: str) -> None:
        history = self.store.get_history(device_id)
        if not history:
            session.send("ERROR No data")
            return

        lines = [f"EXPORT_START {device_id}", EXPORT_HEADER]
        lines.extend(reading.to_export_row() for reading in history)
        lines.append("EXPORT_END")
        session.send_lines(lines)

    def handle_username(self, session: MonitorSession, username: str) -> None:
        if not username:
            return
        session.username = username
        logger.info(
            "Monitor identified itself",
            extra={"monitor_id": session.monitor_id, "username": username},
        )


def _parse_limit(raw: str) -> int:
    candidate = raw.strip()
    try:
        limit = int(candidate)
    except ValueError as exc:
        raise CommandError(f"Invalid limit: {candidate}") from exc
    if limit < 0:
        raise CommandError(f"Invalid limit: {candidate}")
    return limit
