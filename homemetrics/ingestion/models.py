"""
Pydantic models for attachments and the readings extracted from them.
"""

import math
from datetime import datetime
from typing import Optional

import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


class Attachment(BaseModel):
    """A named file payload recovered from a raw email message."""

    model_config = ConfigDict(frozen=True)

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class TemperatureReading(BaseModel):
    """One temperature (and optional humidity) sample from a sensor."""

    model_config = ConfigDict(frozen=True)

    sensor_id: str
    timestamp: datetime
    temperature: float
    humidity: Optional[float] = None
    location: Optional[str] = None

    @field_validator('sensor_id')
    @classmethod
    def validate_sensor_id(cls, v):
        if not v or not v.strip():
            raise ValueError('Sensor ID is required')
        return v.strip()

    @field_validator('timestamp')
    @classmethod
    def validate_timestamp(cls, v):
        return _as_utc(v)

    @field_validator('temperature')
    @classmethod
    def validate_temperature(cls, v):
        if not math.isfinite(v):
            raise ValueError('Temperature must be a finite number')
        return v


class PoolReading(BaseModel):
    """Pool water chemistry extracted from a report email."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    temperature: Optional[float] = None
    ph: Optional[float] = Field(default=None, ge=0.0, le=14.0)
    orp: Optional[int] = Field(default=None, ge=0, le=1000)

    @field_validator('timestamp')
    @classmethod
    def validate_timestamp(cls, v):
        return _as_utc(v)

    @model_validator(mode='after')
    def validate_has_metric(self):
        if self.temperature is None and self.ph is None and self.orp is None:
            raise ValueError('Pool reading needs at least one of temperature, pH or ORP')
        return self
