"""Pydantic data models for plcwatch."""

from plcwatch.models.device import DeviceConfig, DeviceDraft, Endpoint
from plcwatch.models.display import DashboardView, DisplayRecord, ViewStatus
from plcwatch.models.events import (
    DeviceErrorEvent,
    DeviceEvent,
    EventKind,
    TelemetryEvent,
)
from plcwatch.models.state import (
    ConnectionPhase,
    ConnectionState,
    ErrorRecord,
    TelemetryRecord,
)

__all__ = [
    "ConnectionPhase",
    "ConnectionState",
    "DashboardView",
    "DeviceConfig",
    "DeviceDraft",
    "DeviceErrorEvent",
    "DeviceEvent",
    "DisplayRecord",
    "Endpoint",
    "ErrorRecord",
    "EventKind",
    "TelemetryEvent",
    "TelemetryRecord",
    "ViewStatus",
]
