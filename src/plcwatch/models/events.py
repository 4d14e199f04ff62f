"""Events pushed by the Connection Service."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class EventKind(StrEnum):
    """Event stream categories."""
    TELEMETRY = "telemetry"
    DEVICE_ERROR = "device_error"


class TelemetryEvent(BaseModel):
    """A telemetry payload received from a device."""
    model_config = {"frozen": True}

    device_id: int
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class DeviceErrorEvent(BaseModel):
    """An error reported while talking to a device."""
    model_config = {"frozen": True}

    device_id: int
    error: str
    raw_data: bytes = b""
    timestamp: datetime


DeviceEvent = TelemetryEvent | DeviceErrorEvent
