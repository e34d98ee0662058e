from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Sequence

import pytest

from datastore.sensor_store import SensorStore
from models.records import EXPORT_HEADER, Reading
from services.broadcaster import Broadcaster
from services.commands import CommandHandler
from services.monitors import DEFAULT_USERNAME, MonitorRegistry

BASE_TIME = datetime(2024, 4, 1, 9, 0, 0)


class FakeSession:
    def __init__(self, monitor_id: str) -> None:
        self.monitor_id = monitor_id
        self.username = DEFAULT_USERNAME
        self.lines: List[str] = []

    def send(self, line: str) -> bool:
        self.lines.append(line)
        return True

    def send_lines(self, lines: Sequence[str]) -> bool:
        self.lines.extend(lines)
        return True


def _reading(index: int, device_id: str = "plant-01") -> Reading:
    return Reading(
        device_id=device_id,
        temperature=20.0 + index,
        humidity=50.0,
        soil=2500,
        timestamp=BASE_TIME + timedelta(minutes=index),
    )


@pytest.fixture()
def store() -> SensorStore:
    return SensorStore()


@pytest.fixture()
def sessions() -> tuple[FakeSession, FakeSession]:
    return FakeSession("monitor-a"), FakeSession("monitor-b")


@pytest.fixture()
def handler(store: SensorStore, sessions: tuple[FakeSession, FakeSession]) -> CommandHandler:
    registry = MonitorRegistry()
    for session in sessions:
        registry.register(session)  # type: ignore[arg-type]
    return CommandHandler(store=store, broadcaster=Broadcaster(registry))


def _run(handler: CommandHandler, session: FakeSession, line: str) -> bool:
    return handler.execute(session, line)  # type: ignore[arg-type]


def test_list_on_empty_store(handler, sessions) -> None:
    requester, _ = sessions

    assert _run(handler, requester, "LIST") is True
    assert requester.lines == ["SENSORS"]


def test_list_names_known_sensors(handler, store, sessions) -> None:
    requester, _ = sessions
    store.ingest(_reading(0, "a"))
    store.ingest(_reading(1, "b"))

    _run(handler, requester, "LIST")

    assert requester.lines[0].split(" ")[0] == "SENSORS"
    assert sorted(requester.lines[0].split(" ")[1:]) == ["a", "b"]


def test_quit_is_case_insensitive(handler, sessions) -> None:
    requester, _ = sessions

    assert _run(handler, requester, "QUIT") is False
    assert _run(handler, requester, "quit") is False
    assert requester.lines == []


def test_empty_and_unknown_commands(handler, sessions) -> None:
    requester, _ = sessions

    _run(handler, requester, "   ")
    _run(handler, requester, "DANCE now")
    _run(handler, requester, "get plant-01")
    _run(handler, requester, " GET plant-01")

    assert requester.lines == [
        "ERROR Empty command",
        "ERROR Unknown command: DANCE now",
        "ERROR Unknown command: get plant-01",
        "ERROR Unknown command:  GET plant-01",
    ]


def test_get_known_and_unknown_sensor(handler, store, sessions) -> None:
    requester, other = sessions
    store.ingest(_reading(1))

    _run(handler, requester, "GET plant-01")
    _run(handler, requester, "GET ghost")

    assert requester.lines == [
        f"UPDATE {_reading(1).to_csv()}",
        "ERROR Sensor not found",
    ]
    assert other.lines == []


def test_pair_replies_then_broadcasts_in_order(handler, store, sessions) -> None:
    requester, other = sessions
    store.ingest(_reading(0))

    _run(handler, requester, "PAIR plant-01,Ficus")

    assert requester.lines == [
        "PAIRED plant-01",
        "NEW_SENSOR plant-01",
        "SENSOR_INFO plant-01,Ficus,,",
    ]
    assert other.lines == ["NEW_SENSOR plant-01", "SENSOR_INFO plant-01,Ficus,,"]


def test_pair_unknown_sensor_emits_no_events(handler, sessions) -> None:
    requester, other = sessions

    _run(handler, requester, "PAIR ghost,Nobody")
    _run(handler, requester, "PAIR plant-01")

    assert requester.lines == ["ERROR Sensor not found", "ERROR Invalid parameters"]
    assert other.lines == []


def test_unpair_is_unconditional(handler, sessions) -> None:
    requester, other = sessions

    _run(handler, requester, "UNPAIR ghost")
    _run(handler, requester, "UNPAIR")

    assert requester.lines == [
        "UNPAIRED ghost",
        "SENSOR_REMOVED ghost",
        "ERROR Invalid sensor id",
    ]
    assert other.lines == ["SENSOR_REMOVED ghost"]


def test_update_info_fans_out(handler, store, sessions) -> None:
    requester, other = sessions
    store.ingest(_reading(0))

    _run(handler, requester, "UPDATE_INFO plant-01,Ficus,Fig,Kitchen")
    _run(handler, requester, "UPDATE_INFO ghost,A,B,C")
    _run(handler, requester, "UPDATE_INFO plant-01,Ficus")

    assert requester.lines == [
        "INFO_UPDATED plant-01",
        "SENSOR_INFO plant-01,Ficus,Fig,Kitchen",
        "ERROR Sensor not found",
        "ERROR Invalid parameters",
    ]
    assert other.lines == ["SENSOR_INFO plant-01,Ficus,Fig,Kitchen"]


def test_update_info_keeps_commas_in_room(handler, store, sessions) -> None:
    requester, _ = sessions
    store.ingest(_reading(0))

    _run(handler, requester, "UPDATE_INFO plant-01,Ficus,Fig,Kitchen, east window")

    assert requester.lines[-1] == "SENSOR_INFO plant-01,Ficus,Fig,Kitchen, east window"


def test_history_returns_tail_oldest_first(handler, store, sessions) -> None:
    requester, other = sessions
    readings = [_reading(index) for index in range(7)]
    for reading in readings:
        store.ingest(reading)

    _run(handler, requester, "HISTORY plant-01,5")

    assert requester.lines == (
        ["HISTORY_START plant-01 5"]
        + [f"DATA {reading.to_csv()}" for reading in readings[2:]]
        + ["HISTORY_END"]
    )
    assert other.lines == []


def test_history_limit_larger_than_history(handler, store, sessions) -> None:
    requester, _ = sessions
    for index in range(3):
        store.ingest(_reading(index))

    _run(handler, requester, "HISTORY plant-01,1001")

    assert requester.lines[0] == "HISTORY_START plant-01 3"
    assert len(requester.lines) == 5


def test_history_limit_between_length_and_twice_length(handler, store, sessions) -> None:
    requester, _ = sessions
    readings = [_reading(index) for index in range(7)]
    for reading in readings:
        store.ingest(reading)

    _run(handler, requester, "HISTORY plant-01,10")

    assert requester.lines == (
        ["HISTORY_START plant-01 7"]
        + [f"DATA {reading.to_csv()}" for reading in readings]
        + ["HISTORY_END"]
    )


def test_history_default_limit_on_short_history(handler, store, sessions) -> None:
    requester, _ = sessions
    for index in range(60):
        store.ingest(_reading(index))

    _run(handler, requester, "HISTORY plant-01")

    assert requester.lines[0] == "HISTORY_START plant-01 60"
    assert requester.lines[1] == f"DATA {_reading(0).to_csv()}"
    assert len(requester.lines) == 62


def test_history_zero_limit_sends_empty_envelope(handler, store, sessions) -> None:
    requester, _ = sessions
    store.ingest(_reading(0))

    _run(handler, requester, "HISTORY plant-01,0")

    assert requester.lines == ["HISTORY_START plant-01 0", "HISTORY_END"]


def test_history_defaults_to_one_hundred(handler, store, sessions) -> None:
    requester, _ = sessions
    for index in range(150):
        store.ingest(_reading(index))

    _run(handler, requester, "HISTORY plant-01")

    assert requester.lines[0] == "HISTORY_START plant-01 100"
    assert requester.lines[1] == f"DATA {_reading(50).to_csv()}"


def test_history_errors(handler, store, sessions) -> None:
    requester, _ = sessions
    store.ingest(_reading(0))

    _run(handler, requester, "HISTORY ghost,5")
    _run(handler, requester, "HISTORY plant-01,many")
    _run(handler, requester, "HISTORY plant-01,-2")

    assert requester.lines == [
        "ERROR No history",
        "ERROR Invalid limit: many",
        "ERROR Invalid limit: -2",
    ]


def test_export_streams_whole_history(handler, store, sessions) -> None:
    requester, _ = sessions
    readings = [_reading(index) for index in range(3)]
    for reading in readings:
        store.ingest(reading)

    _run(handler, requester, "EXPORT plant-01")
    _run(handler, requester, "EXPORT ghost")

    assert requester.lines == (
        ["EXPORT_START plant-01", EXPORT_HEADER]
        + [reading.to_export_row() for reading in readings]
        + ["EXPORT_END", "ERROR No data"]
    )


def test_username_is_silent_and_sticky(handler, sessions) -> None:
    requester, _ = sessions

    _run(handler, requester, "USERNAME alice")
    _run(handler, requester, "USERNAME ")

    assert requester.lines == []
    assert requester.username == "alice"
