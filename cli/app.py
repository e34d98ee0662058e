from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from broker.main import run
from cli.client import MonitorClient, send_payload
from cli.config import CLIConfig, load_config
from cli.render import render_history, render_reading, render_sensors
from models.payload import LightColor, SensorPayload
from services.listener import BrokerStartupError


@dataclass
class CLIState:
    config: CLIConfig
    client: MonitorClient


app = typer.Typer(
    help="Run the plant climate broker or talk to a running one.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(
        None,
        "--host",
        "-H",
        help="Broker host (defaults to PLANT_BROKER_HOST env or 127.0.0.1).",
    ),
    monitor_port: Optional[int] = typer.Option(
        None, "--monitor-port", help="Monitor protocol port (default 9100)."
    ),
    sensor_port: Optional[int] = typer.Option(
        None, "--sensor-port", help="Sensor ingress port (default 9000)."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Socket timeout in seconds."
    ),
    username: Optional[str] = typer.Option(
        None,
        "--username",
        "-u",
        help="Name reported to the broker for its logs (defaults to PLANT_MONITOR_USERNAME env).",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        host=host,
        monitor_port=monitor_port,
        sensor_port=sensor_port,
        timeout=timeout,
        username=username,
    )
    client = MonitorClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("serve")
def serve_command() -> None:
    """Run the broker in the foreground until interrupted."""
    try:
        run()
    except BrokerStartupError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command("sensors")
def sensors_command(ctx: typer.Context) -> None:
    """List sensors the broker has readings for."""
    state = _get_state(ctx)
    render_sensors(state.client.list_sensors())


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
) -> None:
    """Show the most recent reading of a sensor."""
    state = _get_state(ctx)
    render_reading(state.client.get_latest(sensor_id))


@app.command("history")
def history_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
    limit: int = typer.Option(100, "--limit", "-n", min=0, help="Number of newest readings."),
) -> None:
    """Show the newest readings kept in memory for a sensor."""
    state = _get_state(ctx)
    render_history(sensor_id, state.client.get_history(sensor_id, limit))


@app.command("export")
def export_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", dir_okay=False, help="Write CSV here instead of stdout."
    ),
) -> None:
    """Export a sensor's in-memory history as CSV."""
    state = _get_state(ctx)
    lines = state.client.export(sensor_id)
    body = "\n".join(lines) + "\n"
    if output is None:
        typer.echo(body, nl=False)
        return
    output.write_text(body, encoding="utf-8")
    typer.secho(f"Exported {max(len(lines) - 1, 0)} readings to {output}", fg=typer.colors.GREEN)


@app.command("push")
def push_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Device id to report as."),
    temperature: Optional[float] = typer.Option(None, help="Air temperature in °C."),
    humidity: Optional[float] = typer.Option(None, help="Air humidity in %."),
    soil: Optional[int] = typer.Option(None, help="Raw soil moisture."),
    lux: Optional[float] = typer.Option(None, help="Illuminance in lux."),
    red: Optional[int] = typer.Option(None, help="Red channel intensity."),
    green: Optional[int] = typer.Option(None, help="Green channel intensity."),
    blue: Optional[int] = typer.Option(None, help="Blue channel intensity."),
    white: Optional[int] = typer.Option(None, help="White channel intensity."),
    color_temperature: Optional[float] = typer.Option(
        None, "--color-temperature", help="Correlated colour temperature in K."
    ),
) -> None:
    """Send one reading to the sensor port, as sensor firmware would."""
    state = _get_state(ctx)
    channels = (red, green, blue, white, color_temperature)
    try:
        light_color = None
        if any(value is not None for value in channels):
            light_color = LightColor(
                red=red,
                green=green,
                blue=blue,
                white=white,
                color_temperature=color_temperature,
            )
        payload = SensorPayload(
            id=sensor_id,
            temperature=temperature,
            humidity=humidity,
            soil=soil,
            lux=lux,
            light_color=light_color,
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    line = send_payload(state.config, payload)
    typer.secho(f"Sent {line}", fg=typer.colors.GREEN)
