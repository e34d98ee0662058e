"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
NULL_TOKEN = "null"

CSV_COLUMNS = (
    "deviceId",
    "temperature",
    "humidity",
    "soil",
    "lux",
    "red",
    "green",
    "blue",
    "white",
    "colorTemperature",
    "timestamp",
)
CSV_HEADER = ",".join(CSV_COLUMNS)

EXPORT_COLUMNS = (
    "timestamp",
    "temperature",
    "humidity",
    "soil",
    "lux",
    "red",
    "green",
    "blue",
    "white",
    "colorTemp",
)
EXPORT_HEADER = ",".join(EXPORT_COLUMNS)


def now() -> datetime:
    """Local wall-clock time truncated to whole seconds."""
    return datetime.now().replace(microsecond=0)


@dataclass(frozen=True, slots=True)
class Reading:
    """A single environmental sample pushed by a sensor.

    Every measurement is optional; ``None`` travels as the ``null`` token.
    """

    device_id: str
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    soil: Optional[int] = None
    lux: Optional[float] = None
    red: Optional[int] = None
    green: Optional[int] = None
    blue: Optional[int] = None
    white: Optional[int] = None
    color_temperature: Optional[float] = None
    timestamp: datetime = field(default_factory=now)

    def measurements(self) -> tuple[object, ...]:
        return (
            self.temperature,
            self.humidity,
            self.soil,
            self.lux,
            self.red,
            self.green,
            self.blue,
            self.white,
            self.color_temperature,
        )

    def to_csv(self) -> str:
        """Render the eleven-field line used on disk and in UPDATE/DATA replies."""
        fields = [self.device_id]
        fields.extend(format_value(value) for value in self.measurements())
        fields.append(format_timestamp(self.timestamp))
        return ",".join(fields)

    def to_export_row(self) -> str:
        fields = [format_timestamp(self.timestamp)]
        fields.extend(format_value(value) for value in self.measurements())
        return ",".join(fields)


def format_value(value: object) -> str:
    if value is None:
        return NULL_TOKEN
    return str(value)


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return NULL_TOKEN
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value.strip(), TIMESTAMP_FORMAT)


def parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    candidate = value.strip()
    if not candidate or candidate == NULL_TOKEN:
        return None
    try:
        return int(candidate)
    except ValueError:
        return None


def parse_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    candidate = value.strip()
    if not candidate or candidate == NULL_TOKEN:
        return None
    try:
        return float(candidate)
    except ValueError:
        return None


def reading_from_fields(parts: Sequence[str]) -> Optional[Reading]:
    """Build a reading from the eleven CSV columns.

    Returns ``None`` when columns are missing or the device id is blank. An
    unparsable timestamp falls back to the current time so legacy files still
    replay.
    """
    if len(parts) < len(CSV_COLUMNS):
        return None

    device_id = parts[0].strip()
    if not device_id:
        return None

    try:
        timestamp = parse_timestamp(parts[10])
    except ValueError:
        timestamp = now()

    return Reading(
        device_id=device_id,
        temperature=parse_float(parts[1]),
        humidity=parse_float(parts[2]),
        soil=parse_int(parts[3]),
        lux=parse_float(parts[4]),
        red=parse_int(parts[5]),
        green=parse_int(parts[6]),
        blue=parse_int(parts[7]),
        white=parse_int(parts[8]),
        color_temperature=parse_float(parts[9]),
        timestamp=timestamp,
    )


def parse_csv_line(line: str) -> Optional[Reading]:
    return reading_from_fields(line.rstrip("\r\n").split(","))
