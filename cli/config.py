from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_HOST = "127.0.0.1"
DEFAULT_MONITOR_PORT = 9100
DEFAULT_SENSOR_PORT = 9000
DEFAULT_TIMEOUT = 5.0

_HOST_ENV = "PLANT_BROKER_HOST"
_MONITOR_PORT_ENV = "PLANT_MONITOR_PORT"
_SENSOR_PORT_ENV = "PLANT_SENSOR_PORT"
_TIMEOUT_ENV = "PLANT_CLIENT_TIMEOUT"
_USERNAME_ENV = "PLANT_MONITOR_USERNAME"


@dataclass(frozen=True)
class CLIConfig:
    host: str = DEFAULT_HOST
    monitor_port: int = DEFAULT_MONITOR_PORT
    sensor_port: int = DEFAULT_SENSOR_PORT
    timeout: float = DEFAULT_TIMEOUT
    username: Optional[str] = None


def _read_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_port(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if 0 < parsed <= 65535 else default


def load_config(
    host: Optional[str] = None,
    monitor_port: Optional[int] = None,
    sensor_port: Optional[int] = None,
    timeout: Optional[float] = None,
    username: Optional[str] = None,
) -> CLIConfig:
    broker_host = host or os.getenv(_HOST_ENV) or DEFAULT_HOST
    if monitor_port is None:
        monitor_port = _read_port(os.getenv(_MONITOR_PORT_ENV), DEFAULT_MONITOR_PORT)
    if sensor_port is None:
        sensor_port = _read_port(os.getenv(_SENSOR_PORT_ENV), DEFAULT_SENSOR_PORT)
    if timeout is None:
        timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    monitor_username = (username or os.getenv(_USERNAME_ENV) or "").strip()
    return CLIConfig(
        host=broker_host.strip(),
        monitor_port=monitor_port,
        sensor_port=sensor_port,
        timeout=timeout,
        username=monitor_username or None,
    )
