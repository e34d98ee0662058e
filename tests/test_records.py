"""Unit tests for the reading CSV codecs."""

from __future__ import annotations

from datetime import datetime

from models.records import (
    CSV_HEADER,
    EXPORT_HEADER,
    Reading,
    parse_csv_line,
    reading_from_fields,
)


def _full_reading() -> Reading:
    return Reading(
        device_id="plant-01",
        temperature=22.5,
        humidity=48.0,
        soil=2600,
        lux=410.0,
        red=12000,
        green=8000,
        blue=3000,
        white=15000,
        color_temperature=3800.0,
        timestamp=datetime(2024, 5, 1, 8, 30, 15),
    )


def test_to_csv_uses_fixed_field_order() -> None:
    line = _full_reading().to_csv()

    assert line == (
        "plant-01,22.5,48.0,2600,410.0,12000,8000,3000,15000,3800.0,2024-05-01 08:30:15"
    )


def test_absent_fields_serialize_as_null() -> None:
    reading = Reading(device_id="bare", timestamp=datetime(2024, 1, 1, 0, 0, 0))

    assert reading.to_csv() == "bare,null,null,null,null,null,null,null,null,null,2024-01-01 00:00:00"


def test_csv_line_parses_back_to_equal_reading() -> None:
    original = _full_reading()
    sparse = Reading(
        device_id="sparse",
        humidity=61.25,
        white=7,
        timestamp=datetime(2023, 12, 31, 23, 59, 59),
    )

    assert parse_csv_line(original.to_csv()) == original
    assert parse_csv_line(sparse.to_csv() + "\n") == sparse


def test_short_line_is_rejected() -> None:
    assert parse_csv_line("plant-01,22.5,48.0") is None
    assert reading_from_fields([]) is None


def test_blank_device_id_is_rejected() -> None:
    assert parse_csv_line(",1,2,3,4,5,6,7,8,9,2024-01-01 00:00:00") is None


def test_unparsable_numbers_become_absent() -> None:
    reading = parse_csv_line("s,warm,48.0,2600.5,x,1,2,3,4,cold,2024-01-01 00:00:00")

    assert reading is not None
    assert reading.temperature is None
    assert reading.humidity == 48.0
    assert reading.soil is None
    assert reading.lux is None
    assert reading.red == 1
    assert reading.color_temperature is None


def test_unparsable_timestamp_falls_back_to_now() -> None:
    before = datetime.now().replace(microsecond=0)
    reading = parse_csv_line("legacy,1.0,2.0,3,4.0,5,6,7,8,9.0,yesterday")
    after = datetime.now()

    assert reading is not None
    assert before <= reading.timestamp <= after
    assert reading.timestamp.microsecond == 0


def test_export_row_puts_timestamp_first_without_device_id() -> None:
    row = _full_reading().to_export_row()

    assert row == "2024-05-01 08:30:15,22.5,48.0,2600,410.0,12000,8000,3000,15000,3800.0"
    assert EXPORT_HEADER == "timestamp,temperature,humidity,soil,lux,red,green,blue,white,colorTemp"
    assert CSV_HEADER.startswith("deviceId,") and CSV_HEADER.endswith(",timestamp")
