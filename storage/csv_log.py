from __future__ import annotations

import logging
from collections import deque
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Deque, Dict, List, Optional

from datastore.sensor_store import SensorStore
from models.records import CSV_HEADER, Reading, parse_csv_line
from settings import get_settings

logger = logging.getLogger(__name__)

_SUFFIX = ".csv"


class CsvSensorLog:
    """Append-only CSV file per sensor under ``root_path``."""

    def __init__(self, root_path: Path, history_cap: int = 1000) -> None:
        self.root_path = root_path
        self.history_cap = history_cap
        self._lock = Lock()

    def ensure_root(self) -> None:
        self.root_path.mkdir(parents=True, exist_ok=True)

    def path_for(self, device_id: str) -> Path:
        if (
            not device_id
            or device_id in {".", ".."}
            or "/" in device_id
            or "\\" in device_id
            or "\x00" in device_id
        ):
            raise ValueError(f"Device id {device_id!r} cannot be used as a file name.")
        return self.root_path / f"{device_id}{_SUFFIX}"

    def append(self, reading: Reading) -> None:
        """Append one reading, writing the header first when the file is new."""
        path = self.path_for(reading.device_id)
        with self._lock:
            self.ensure_root()
            is_new = not path.exists()
            with path.open("a", encoding="utf-8", newline="") as handle:
                if is_new:
                    handle.write(CSV_HEADER + "\n")
                handle.write(reading.to_csv() + "\n")

    def read_tail(self, path: Path) -> List[Reading]:
        """Decode the newest ``history_cap`` readings of one file."""
        readings: Deque[Reading] = deque(maxlen=self.history_cap)
        with path.open("r", encoding="utf-8", newline="") as handle:
            for line_number, line in enumerate(handle, start=1):
                if line_number == 1:
                    continue
                if not line.strip():
                    continue
                reading = parse_csv_line(line)
                if reading is None:
                    logger.warning(
                        "Skipping unreadable history line",
                        extra={"path": str(path), "line_number": line_number},
                    )
                    continue
                readings.append(reading)
        return list(readings)

    def replay(self) -> Dict[str, List[Reading]]:
        """Read every ``*.csv`` file; a failing file is logged and skipped."""
        if not self.root_path.is_dir():
            return {}

        replayed: Dict[str, List[Reading]] = {}
        for path in sorted(self.root_path.iterdir()):
            if not path.is_file() or not path.name.endswith(_SUFFIX):
                continue
            device_id = path.name[: -len(_SUFFIX)]
            try:
                readings = self.read_tail(path)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning(
                    "Failed to replay history file",
                    extra={"path": str(path), "reason": str(exc)},
                )
                continue
            if readings:
                replayed[device_id] = readings
        return replayed

    def load_into(self, store: SensorStore) -> int:
        """Seed ``store`` from disk and return the number of sensors restored."""
        restored = 0
        for device_id, readings in self.replay().items():
            count = store.seed(device_id, readings)
            logger.info(
                "Replayed sensor history",
                extra={"device_id": device_id, "reading_count": count},
            )
            restored += 1
        return restored


@lru_cache
def build_default_log(root_path: Optional[str] = None) -> CsvSensorLog:
    settings = get_settings()
    root = settings.data_dir if root_path is None else root_path
    return CsvSensorLog(root_path=Path(root), history_cap=settings.history_cap)
