"""Exception hierarchy for dashboard state operations."""

from __future__ import annotations


class PlcWatchError(Exception):
    """Base exception for all plcwatch errors."""

    def __init__(self, message: str, device_id: int | None = None) -> None:
        self.device_id = device_id
        super().__init__(message)


class LoadError(PlcWatchError):
    """The initial device snapshot could not be obtained or was invalid."""


class ConflictError(PlcWatchError):
    """The operation is not allowed in the device's current connection phase."""


class NotFoundError(PlcWatchError):
    """No device with the given ID is registered."""


class UnknownDeviceError(PlcWatchError):
    """The connection state tracker has no entry for the given ID."""


class CommandFailure(PlcWatchError):
    """A Connection Service command failed."""

    def __init__(
        self,
        message: str,
        device_id: int | None = None,
        operation: str | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message, device_id=device_id)


class ServiceError(PlcWatchError):
    """Error raised by a Connection Service implementation."""
