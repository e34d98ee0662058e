from __future__ import annotations

from typing import Any, Iterable, Sequence

import typer

from models.records import Reading, format_timestamp, format_value


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_sensors(sensor_ids: Sequence[str]) -> None:
    echo_heading("Sensors")
    if not sensor_ids:
        typer.echo("No sensors reported yet.")
        return
    for sensor_id in sensor_ids:
        typer.echo(f"  - {sensor_id}")


def render_reading(reading: Reading) -> None:
    echo_heading(f"Latest reading for {reading.device_id}")
    echo_key_values(
        [
            ("timestamp", format_timestamp(reading.timestamp)),
            ("temperature", format_value(reading.temperature)),
            ("humidity", format_value(reading.humidity)),
            ("soil", format_value(reading.soil)),
            ("lux", format_value(reading.lux)),
            ("red", format_value(reading.red)),
            ("green", format_value(reading.green)),
            ("blue", format_value(reading.blue)),
            ("white", format_value(reading.white)),
            ("color_temperature", format_value(reading.color_temperature)),
        ]
    )


def render_history(sensor_id: str, readings: Sequence[Reading]) -> None:
    echo_heading(f"History for {sensor_id} ({len(readings)} readings)")
    for reading in readings:
        typer.echo(
            f"  {format_timestamp(reading.timestamp)}"
            f"  T={format_value(reading.temperature)}"
            f"  H={format_value(reading.humidity)}"
            f"  soil={format_value(reading.soil)}"
            f"  lux={format_value(reading.lux)}"
        )
