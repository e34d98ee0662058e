from __future__ import annotations

import socket
from contextlib import suppress
from typing import Callable, List, NoReturn, Optional, TextIO
from uuid import uuid4

import typer

from cli.config import CLIConfig
from models.payload import SensorPayload
from models.records import Reading, parse_csv_line


class MonitorClient:
    """Minimal monitor-protocol client; connects on first use.

    Broadcast events (UPDATE, SENSOR_INFO, ...) may arrive while a reply is
    awaited; lines that do not answer the pending command are skipped.
    """

    def __init__(self, config: CLIConfig, monitor_id: Optional[str] = None) -> None:
        self._config = config
        self.monitor_id = monitor_id or str(uuid4())
        self._sock: Optional[socket.socket] = None
        self._reader: Optional[TextIO] = None

    def connect(self) -> None:
        if self._sock is not None:
            return
        address = (self._config.host, self._config.monitor_port)
        try:
            self._sock = socket.create_connection(address, timeout=self._config.timeout)
        except OSError as exc:
            self._fail(f"Cannot reach broker at {address[0]}:{address[1]}: {exc}")
        self._reader = self._sock.makefile("r", encoding="utf-8")

        greeting = self._read_line()
        if greeting != "HELLO":
            self._fail(f"Unexpected greeting from broker: {greeting!r}")
        self._send(self.monitor_id)
        if self._config.username:
            self.set_username(self._config.username)

    def close(self) -> None:
        if self._sock is None:
            return
        with suppress(OSError):
            self._sock.sendall(b"QUIT\n")
        if self._reader is not None:
            self._reader.close()
        self._sock.close()
        self._sock = None
        self._reader = None

    def set_username(self, username: str) -> None:
        self._send(f"USERNAME {username}")

    def list_sensors(self) -> List[str]:
        self._send("LIST")
        line = self._await(lambda candidate: candidate.split(" ", 1)[0] == "SENSORS")
        return line.split()[1:]

    def get_latest(self, sensor_id: str) -> Reading:
        self._send(f"GET {sensor_id}")
        line = self._await(lambda candidate: candidate.startswith(f"UPDATE {sensor_id},"))
        reading = parse_csv_line(line[len("UPDATE ") :])
        if reading is None:
            self._fail(f"Malformed reading from broker: {line!r}")
        return reading

    def get_history(self, sensor_id: str, limit: int) -> List[Reading]:
        self._send(f"HISTORY {sensor_id},{limit}")
        self._await(lambda candidate: candidate.startswith(f"HISTORY_START {sensor_id} "))
        readings: List[Reading] = []
        for line in self._read_until("HISTORY_END"):
            if not line.startswith("DATA "):
                continue
            reading = parse_csv_line(line[len("DATA ") :])
            if reading is not None:
                readings.append(reading)
        return readings

    def export(self, sensor_id: str) -> List[str]:
        """Return the export body: header line followed by one row per reading."""
        self._send(f"EXPORT {sensor_id}")
        self._await(lambda candidate: candidate == f"EXPORT_START {sensor_id}")
        return self._read_until("EXPORT_END")

    def _send(self, line: str) -> None:
        self.connect()
        assert self._sock is not None
        try:
            self._sock.sendall(f"{line}\n".encode("utf-8"))
        except OSError as exc:
            self._fail(f"Connection to broker lost: {exc}")

    def _read_line(self) -> str:
        assert self._reader is not None
        try:
            line = self._reader.readline()
        except OSError as exc:
            self._fail(f"Connection to broker lost: {exc}")
        if not line:
            self._fail("Broker closed the connection.")
        return line.rstrip("\r\n")

    def _read_until(self, terminator: str) -> List[str]:
        lines: List[str] = []
        while True:
            line = self._read_line()
            if line == terminator:
                return lines
            lines.append(line)

    def _await(self, matches: Callable[[str], bool]) -> str:
        while True:
            line = self._read_line()
            if line.startswith("ERROR"):
                self._fail(line[len("ERROR") :].strip() or "Broker reported an error.")
            if matches(line):
                return line

    @staticmethod
    def _fail(message: str) -> NoReturn:
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def send_payload(config: CLIConfig, payload: SensorPayload) -> str:
    """Push one payload to the sensor port the way sensor firmware does."""
    line = payload.to_line()
    address = (config.host, config.sensor_port)
    try:
        with socket.create_connection(address, timeout=config.timeout) as sock:
            sock.sendall(f"{line}\n".encode("utf-8"))
    except OSError as exc:
        typer.secho(
            f"Cannot deliver payload to {address[0]}:{address[1]}: {exc}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)
    return line
