"""Pure projection of registry and tracker into display records."""

from __future__ import annotations

from datetime import datetime

from plcwatch.core.registry import DeviceRegistry
from plcwatch.core.tracker import ConnectionStateTracker
from plcwatch.models.device import DeviceConfig
from plcwatch.models.display import DashboardView, DisplayRecord, ViewStatus
from plcwatch.models.state import ConnectionState

NEVER_RECEIVED = "-"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return NEVER_RECEIVED
    return value.strftime(TIMESTAMP_FORMAT)


def to_record(config: DeviceConfig, state: ConnectionState) -> DisplayRecord:
    """Join one config with its connection state."""
    error = state.last_error
    telemetry = state.last_telemetry
    return DisplayRecord(
        id=config.id,
        name=config.name,
        table_name=config.table_name,
        device_address=config.device_address,
        local_address=config.local_address,
        phase=state.phase,
        last_received=format_timestamp(state.last_received),
        data=dict(telemetry.payload) if telemetry is not None else None,
        last_error=error.message if error is not None else None,
        last_error_hex=error.hex_dump if error is not None else None,
        last_error_at=error.timestamp if error is not None else None,
    )


def project(registry: DeviceRegistry, tracker: ConnectionStateTracker) -> list[DisplayRecord]:
    """Build display records in registry order.

    Raises:
        UnknownDeviceError: If a registered device has no tracker entry.
    """
    return [to_record(cfg, tracker.get(cfg.id)) for cfg in registry]


def build_view(
    registry: DeviceRegistry,
    tracker: ConnectionStateTracker,
    *,
    status: ViewStatus = ViewStatus.READY,
    error: str | None = None,
) -> DashboardView:
    """Build the full dashboard view; device rows are omitted unless ready."""
    if status != ViewStatus.READY:
        return DashboardView(status=status, devices=[], error=error)
    return DashboardView(status=status, devices=project(registry, tracker), error=error)
