"""Pydantic schema of the JSON object a sensor pushes to the ingress port."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LightColor(BaseModel):
    """Colour channel intensities reported by the light sensor."""

    red: Optional[int] = Field(default=None, ge=0, le=65535)
    green: Optional[int] = Field(default=None, ge=0, le=65535)
    blue: Optional[int] = Field(default=None, ge=0, le=65535)
    white: Optional[int] = Field(default=None, ge=0, le=65535)
    color_temperature: Optional[float] = Field(default=None, alias="colorTemperature")

    model_config = ConfigDict(populate_by_name=True)


class SensorPayload(BaseModel):
    """One reading as sent on the wire by sensor firmware."""

    id: str = Field(..., min_length=1, description="Device identifier.")
    temperature: Optional[float] = Field(default=None, description="Air temperature in °C.")
    humidity: Optional[float] = Field(default=None, ge=0, le=100)
    soil: Optional[int] = Field(
        default=None, description="Raw soil moisture, 1500 is wet and 4000 is dry."
    )
    lux: Optional[float] = Field(default=None, ge=0)
    light_color: Optional[LightColor] = Field(default=None, alias="lightColor")

    model_config = ConfigDict(populate_by_name=True)

    def to_line(self) -> str:
        """Serialise to the single-line form the ingress port expects."""
        return self.model_dump_json(by_alias=True, exclude_none=True)
