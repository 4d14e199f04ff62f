"""Transient per-device connection and telemetry state."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ConnectionPhase(StrEnum):
    """Connection phase of a device as seen by the dashboard."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class TelemetryRecord(BaseModel):
    """Most recent telemetry payload received from a device."""
    model_config = {"frozen": True}

    payload: dict[str, Any] = Field(default_factory=dict)
    received_at: datetime


class ErrorRecord(BaseModel):
    """Most recent error reported for a device."""
    model_config = {"frozen": True}

    message: str
    raw: bytes = b""
    timestamp: datetime

    @property
    def hex_dump(self) -> str:
        return " ".join(f"{b:02X}" for b in self.raw)


class ConnectionState(BaseModel):
    """Snapshot of one device's connection state.

    Instances are frozen; the tracker replaces them on every change.
    """
    model_config = {"frozen": True}

    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    last_telemetry: TelemetryRecord | None = None
    last_error: ErrorRecord | None = None
    last_received: datetime | None = None
