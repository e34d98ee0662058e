"""Permissive parser for sensor ingress payloads.

Sensors send a single JSON-shaped object per connection. The scanner does not
validate JSON grammar: it looks up each ``"key"`` and reads the value token up
to the next unquoted ``,`` or ``}``. Values that fail to convert are dropped
individually. A payload is rejected as a whole when its device id is missing
or contains a comma or whitespace.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional, TypeVar

from models.records import NULL_TOKEN, Reading, now

T = TypeVar("T")

_LIGHT_COLOR_KEY = '"lightColor"'


def is_json_object(line: Optional[str]) -> bool:
    if line is None:
        return False
    candidate = line.strip()
    return bool(candidate) and candidate.startswith("{") and candidate.endswith("}")


def is_valid_device_id(device_id: str) -> bool:
    """Ids travel unquoted in CSV lines and space-separated replies."""
    return bool(device_id) and not any(char == "," or char.isspace() for char in device_id)


def _find_value_end(text: str, value_start: int) -> int:
    in_quotes = False
    for index in range(value_start + 1, len(text)):
        char = text[index]
        if char == '"':
            in_quotes = not in_quotes
        elif not in_quotes and char in ",}":
            return index
    return -1


def _raw_value(text: str, key: str) -> Optional[str]:
    key_index = text.find(f'"{key}"')
    if key_index == -1:
        return None

    colon = text.find(":", key_index)
    if colon == -1:
        return None

    end = _find_value_end(text, colon)
    if end == -1:
        end = len(text)

    raw = text[colon + 1 : end].strip()
    if not raw or raw == NULL_TOKEN:
        return None
    return raw


def _scan(text: str, key: str, convert: Callable[[str], T]) -> Optional[T]:
    raw = _raw_value(text, key)
    if raw is None:
        return None
    try:
        return convert(raw)
    except ValueError:
        return None


def _unquote(raw: str) -> str:
    if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
        return raw[1:-1]
    return raw


def parse_payload(line: Optional[str], received_at: Optional[datetime] = None) -> Optional[Reading]:
    """Turn an ingress line into a reading stamped with ``received_at``.

    Returns ``None`` when the line is not object-shaped or carries no usable
    device id.
    """
    if not is_json_object(line):
        return None
    assert line is not None
    text = line.strip()

    device_id = _scan(text, "id", _unquote)
    if not device_id:
        device_id = _scan(text, "deviceId", _unquote)
    device_id = (device_id or "").strip()
    if not is_valid_device_id(device_id):
        return None

    red = green = blue = white = None
    color_temperature = None
    light_index = text.find(_LIGHT_COLOR_KEY)
    if light_index != -1:
        light = text[light_index:]
        red = _scan(light, "red", int)
        green = _scan(light, "green", int)
        blue = _scan(light, "blue", int)
        white = _scan(light, "white", int)
        color_temperature = _scan(light, "colorTemperature", float)

    return Reading(
        device_id=device_id,
        temperature=_scan(text, "temperature", float),
        humidity=_scan(text, "humidity", float),
        soil=_scan(text, "soil", int),
        lux=_scan(text, "lux", float),
        red=red,
        green=green,
        blue=blue,
        white=white,
        color_temperature=color_temperature,
        timestamp=received_at or now(),
    )
