from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from datastore.sensor_store import SensorStore
from models.records import CSV_HEADER, Reading
from storage.csv_log import CsvSensorLog

BASE_TIME = datetime(2024, 3, 1, 6, 0, 0)


def _reading(device_id: str, index: int) -> Reading:
    return Reading(
        device_id=device_id,
        temperature=20.0 + index,
        soil=2000 + index,
        timestamp=BASE_TIME + timedelta(minutes=index),
    )


def test_append_creates_file_with_header(tmp_path: Path) -> None:
    log = CsvSensorLog(root_path=tmp_path / "sensor_data")

    log.append(_reading("plant-01", 0))
    log.append(_reading("plant-01", 1))

    lines = (tmp_path / "sensor_data" / "plant-01.csv").read_text().splitlines()
    assert lines[0] == CSV_HEADER
    assert lines[1:] == [_reading("plant-01", 0).to_csv(), _reading("plant-01", 1).to_csv()]


def test_append_rejects_ids_that_escape_the_directory(tmp_path: Path) -> None:
    log = CsvSensorLog(root_path=tmp_path)

    for device_id in ("../evil", "a/b", "..", ""):
        with pytest.raises(ValueError):
            log.append(Reading(device_id=device_id))

    assert list(tmp_path.iterdir()) == []


def test_replay_restores_history_and_latest(tmp_path: Path) -> None:
    writer = CsvSensorLog(root_path=tmp_path)
    readings = [_reading("plant-01", index) for index in range(7)]
    for reading in readings:
        writer.append(reading)

    store = SensorStore()
    restored = CsvSensorLog(root_path=tmp_path).load_into(store)

    assert restored == 1
    assert store.get_history("plant-01") == readings
    assert store.get_latest("plant-01") == readings[-1]


def test_replay_keeps_only_the_newest_readings(tmp_path: Path) -> None:
    writer = CsvSensorLog(root_path=tmp_path)
    readings = [_reading("busy", index) for index in range(12)]
    for reading in readings:
        writer.append(reading)

    store = SensorStore(history_cap=10)
    CsvSensorLog(root_path=tmp_path, history_cap=10).load_into(store)

    history = store.get_history("busy")
    assert history == readings[2:]
    assert store.get_latest("busy") == readings[-1]


def test_replay_skips_bad_lines_and_foreign_files(tmp_path: Path) -> None:
    good = _reading("plant-02", 1)
    (tmp_path / "plant-02.csv").write_text(
        "\n".join([CSV_HEADER, "garbage", good.to_csv(), "too,short", ""]) + "\n"
    )
    (tmp_path / "notes.txt").write_text("not a sensor log\n")
    (tmp_path / "empty.csv").write_text(CSV_HEADER + "\n")

    replayed = CsvSensorLog(root_path=tmp_path).replay()

    assert replayed == {"plant-02": [good]}


def test_replay_of_missing_directory_is_empty(tmp_path: Path) -> None:
    store = SensorStore()

    assert CsvSensorLog(root_path=tmp_path / "absent").load_into(store) == 0
    assert store.ids() == []
