"""Per-device connection phase and telemetry state."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from plcwatch.exceptions import UnknownDeviceError
from plcwatch.models.state import (
    ConnectionPhase,
    ConnectionState,
    ErrorRecord,
    TelemetryRecord,
)
from plcwatch.utils.logging import get_logger

logger = get_logger(__name__)


class ConnectionStateTracker:
    """Mapping of device ID to an immutable :class:`ConnectionState`.

    Entries are only created by :meth:`init_for`. Telemetry and error
    records for unknown IDs are dropped, never inserted, so the set of
    tracked IDs always follows the device registry.
    """

    def __init__(self) -> None:
        self._states: dict[int, ConnectionState] = {}

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._states

    def __len__(self) -> int:
        return len(self._states)

    def init_for(self, device_id: int) -> ConnectionState:
        """Create a fresh ``disconnected`` entry for *device_id*."""
        state = ConnectionState()
        self._states[device_id] = state
        return state

    def get(self, device_id: int) -> ConnectionState:
        try:
            return self._states[device_id]
        except KeyError:
            raise UnknownDeviceError(
                f"No connection state for device {device_id}", device_id=device_id
            ) from None

    def set_phase(
        self,
        device_id: int,
        phase: ConnectionPhase,
        *,
        stamp: datetime | None = None,
    ) -> ConnectionState:
        """Move *device_id* to *phase*, optionally stamping ``last_received``.

        Raises:
            UnknownDeviceError: If the device has no entry.
        """
        current = self.get(device_id)
        update: dict[str, Any] = {"phase": phase}
        if stamp is not None:
            update["last_received"] = stamp
        state = current.model_copy(update=update)
        self._states[device_id] = state
        logger.debug("phase_changed", device_id=device_id, old=current.phase, new=phase)
        return state

    def record_telemetry(
        self, device_id: int, payload: dict[str, Any], timestamp: datetime
    ) -> bool:
        """Store *payload* as the latest telemetry. Returns False if dropped."""
        current = self._states.get(device_id)
        if current is None:
            logger.debug("event_dropped_unknown_device", device_id=device_id, kind="telemetry")
            return False
        record = TelemetryRecord(payload=payload, received_at=timestamp)
        self._states[device_id] = current.model_copy(
            update={"last_telemetry": record, "last_received": timestamp}
        )
        return True

    def record_error(
        self, device_id: int, message: str, raw: bytes, timestamp: datetime
    ) -> bool:
        """Store the latest error without touching the phase. Returns False if dropped."""
        current = self._states.get(device_id)
        if current is None:
            logger.debug("event_dropped_unknown_device", device_id=device_id, kind="device_error")
            return False
        record = ErrorRecord(message=message, raw=raw, timestamp=timestamp)
        self._states[device_id] = current.model_copy(update={"last_error": record})
        return True

    def clear_telemetry(self, device_id: int) -> ConnectionState:
        current = self.get(device_id)
        state = current.model_copy(update={"last_telemetry": None})
        self._states[device_id] = state
        return state

    def remove(self, device_id: int) -> None:
        if self._states.pop(device_id, None) is None:
            raise UnknownDeviceError(
                f"No connection state for device {device_id}", device_id=device_id
            )

    def clear(self) -> None:
        self._states = {}

    def ids(self) -> list[int]:
        return list(self._states)

    def snapshot(self) -> dict[int, ConnectionState]:
        """Return a shallow copy; the contained states are immutable."""
        return dict(self._states)
