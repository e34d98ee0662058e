from __future__ import annotations

from collections import deque
from functools import lru_cache
from threading import Lock
from typing import Deque, Dict, Iterable, List, Optional, Set

from models.records import Reading
from settings import get_settings


class SensorStore:
    """Latest reading and bounded history per sensor, shared by every connection.

    Both maps change under one lock so readers never see a ``latest`` entry that
    disagrees with the tail of its history.
    """

    def __init__(self, history_cap: int = 1000) -> None:
        if history_cap < 1:
            raise ValueError("history_cap must be positive.")
        self.history_cap = history_cap
        self._latest: Dict[str, Reading] = {}
        self._history: Dict[str, Deque[Reading]] = {}
        self._seen: Set[str] = set()
        self._lock = Lock()

    def ingest(self, reading: Reading) -> bool:
        """Record a reading; return True the first time its device is seen this run."""
        device_id = reading.device_id
        with self._lock:
            self._latest[device_id] = reading
            history = self._history.get(device_id)
            if history is None:
                history = deque(maxlen=self.history_cap)
                self._history[device_id] = history
            history.append(reading)

            if device_id in self._seen:
                return False
            self._seen.add(device_id)
            return True

    def seed(self, device_id: str, readings: Iterable[Reading]) -> int:
        """Replace a sensor's history with replayed readings, keeping the newest."""
        history: Deque[Reading] = deque(readings, maxlen=self.history_cap)
        if not history:
            return 0
        with self._lock:
            self._history[device_id] = history
            self._latest[device_id] = history[-1]
        return len(history)

    def get_latest(self, device_id: str) -> Optional[Reading]:
        with self._lock:
            return self._latest.get(device_id)

    def get_history(self, device_id: str) -> Optional[List[Reading]]:
        """Return a copy of the sensor's history, oldest first."""
        with self._lock:
            history = self._history.get(device_id)
            if history is None:
                return None
            return list(history)

    def exists(self, device_id: str) -> bool:
        with self._lock:
            return device_id in self._latest

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._latest.keys())


@lru_cache
def build_default_store(history_cap: Optional[int] = None) -> SensorStore:
    settings = get_settings()
    cap = settings.history_cap if history_cap is None else history_cap
    return SensorStore(history_cap=cap)
