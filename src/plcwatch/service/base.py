"""Abstract interface for the connection-management backend."""

from __future__ import annotations

import abc

from plcwatch.models.device import DeviceConfig, DeviceDraft, Endpoint
from plcwatch.models.events import EventKind
from plcwatch.service.events import EventSubscription


class ConnectionService(abc.ABC):
    """Command channel and event stream of the backend that owns device I/O.

    Command methods either return their result or raise. Events are
    delivered through subscriptions obtained from :meth:`subscribe`.
    """

    @abc.abstractmethod
    async def init(self) -> list[DeviceConfig]:
        """Return the authoritative list of configured devices."""

    @abc.abstractmethod
    async def connect(
        self, device_id: int, device_address: Endpoint, local_address: Endpoint
    ) -> None:
        """Open the connection to a device."""

    @abc.abstractmethod
    async def disconnect(self, device_id: int) -> None:
        """Close the connection to a device."""

    @abc.abstractmethod
    async def add_config(self, draft: DeviceDraft) -> DeviceConfig:
        """Persist a new device and return it with its assigned ID."""

    @abc.abstractmethod
    async def edit_config(
        self, device_id: int, draft: DeviceDraft
    ) -> DeviceConfig | list[DeviceConfig]:
        """Replace a device's parameters.

        Returns the updated config, or the full config list.
        """

    @abc.abstractmethod
    async def delete_config(self, device_id: int) -> None:
        """Remove a device configuration."""

    @abc.abstractmethod
    def subscribe(self, kind: EventKind) -> EventSubscription:
        """Open a subscription to one event category."""
