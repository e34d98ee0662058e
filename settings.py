from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


_SENSOR_HOST_ENV = "PLANT_SENSOR_HOST"
_SENSOR_PORT_ENV = "PLANT_SENSOR_PORT"
_MONITOR_HOST_ENV = "PLANT_MONITOR_HOST"
_MONITOR_PORT_ENV = "PLANT_MONITOR_PORT"
_DATA_DIR_ENV = "PLANT_DATA_DIR"
_HISTORY_CAP_ENV = "PLANT_HISTORY_CAP"
_WORKER_COUNT_ENV = "INGEST_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_SENSOR_PORT = 9000
DEFAULT_MONITOR_PORT = 9100
HISTORY_CAP = 1000


@dataclass(frozen=True)
class Settings:
    sensor_host: str
    sensor_port: int
    monitor_host: str
    monitor_port: int
    data_dir: str
    history_cap: int
    ingest_workers: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_port(name: str, default: int) -> int:
    port = _read_int_env(name, default, minimum=0)
    return port if port <= 65535 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        sensor_host=_read_str_env(_SENSOR_HOST_ENV, "127.0.0.1"),
        sensor_port=_read_port(_SENSOR_PORT_ENV, DEFAULT_SENSOR_PORT),
        monitor_host=_read_str_env(_MONITOR_HOST_ENV, "0.0.0.0"),
        monitor_port=_read_port(_MONITOR_PORT_ENV, DEFAULT_MONITOR_PORT),
        data_dir=_read_str_env(_DATA_DIR_ENV, "sensor_data"),
        history_cap=_read_int_env(_HISTORY_CAP_ENV, HISTORY_CAP),
        ingest_workers=_read_int_env(_WORKER_COUNT_ENV, 8),
        log_level=_read_log_level("INFO"),
    )
