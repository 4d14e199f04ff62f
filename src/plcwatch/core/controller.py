"""Device lifecycle orchestration against the Connection Service."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

from plcwatch.core.ingestion import EventIngestionPipeline
from plcwatch.core.projection import build_view, to_record
from plcwatch.core.registry import DeviceRegistry
from plcwatch.core.tracker import ConnectionStateTracker
from plcwatch.exceptions import CommandFailure, ConflictError, LoadError, NotFoundError
from plcwatch.models.device import DeviceConfig, DeviceDraft
from plcwatch.models.display import DashboardView, DisplayRecord, ViewStatus
from plcwatch.models.state import ConnectionPhase
from plcwatch.service.base import ConnectionService
from plcwatch.utils.logging import get_logger

logger = get_logger(__name__)

ViewListener = Callable[[DashboardView], None]


def _local_now() -> datetime:
    return datetime.now().astimezone()


class LifecycleController:
    """Runs operator commands and keeps registry and tracker in step.

    Every command calls the Connection Service first and only then
    writes the registry and tracker, with no suspension point between
    the two writes. Failed commands leave both stores as they were
    (apart from the optimistic ``connecting`` phase, which is reverted)
    and surface as :class:`CommandFailure`.
    """

    def __init__(
        self,
        service: ConnectionService,
        *,
        registry: DeviceRegistry | None = None,
        tracker: ConnectionStateTracker | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._service = service
        self._registry = registry if registry is not None else DeviceRegistry()
        self._tracker = tracker if tracker is not None else ConnectionStateTracker()
        self._clock = clock or _local_now
        self._pipeline = EventIngestionPipeline(self._tracker, on_change=self._on_event_applied)
        self._status = ViewStatus.LOADING
        self._load_error: str | None = None
        self._listeners: list[ViewListener] = []
        # device_id -> number of connect calls awaiting the service
        self._connects_in_flight: dict[int, int] = {}
        # device_id -> phase before the first of the in-flight connects
        self._connect_baseline: dict[int, ConnectionPhase] = {}
        # device_id -> operation of a pending edit or delete
        self._config_ops_in_flight: dict[int, str] = {}

    @property
    def registry(self) -> DeviceRegistry:
        return self._registry

    @property
    def tracker(self) -> ConnectionStateTracker:
        return self._tracker

    @property
    def pipeline(self) -> EventIngestionPipeline:
        return self._pipeline

    @property
    def status(self) -> ViewStatus:
        return self._status

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    def view(self) -> DashboardView:
        """Return the current dashboard view."""
        return build_view(
            self._registry, self._tracker, status=self._status, error=self._load_error
        )

    def record(self, device_id: int) -> DisplayRecord:
        """Return the display record of one device.

        Raises:
            NotFoundError: If the device is not registered.
        """
        config = self._registry.get(device_id)
        return to_record(config, self._tracker.get(device_id))

    def add_listener(self, listener: ViewListener) -> None:
        """Call *listener* with a fresh view after every state change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ViewListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Startup and teardown
    # ------------------------------------------------------------------

    async def initialize(self) -> DashboardView:
        """Load the device snapshot and start event ingestion.

        May be called again to reload; the previous subscription is
        closed first.

        Raises:
            LoadError: If the snapshot cannot be obtained. The dashboard is
                left in the ``error`` status with no devices.
        """
        await self._pipeline.stop()
        self._registry.clear()
        self._tracker.clear()
        self._connects_in_flight.clear()
        self._connect_baseline.clear()
        self._config_ops_in_flight.clear()
        self._status = ViewStatus.LOADING
        self._load_error = None
        self._notify()

        try:
            configs = await self._service.init()
        except Exception as exc:
            self._fail_load(f"Failed to load device list: {exc}")
            raise LoadError(f"Failed to load device list: {exc}") from exc

        try:
            self._registry.load(configs)
        except LoadError as exc:
            self._fail_load(str(exc))
            raise
        for config in self._registry:
            self._tracker.init_for(config.id)

        try:
            await self._pipeline.start(self._service)
        except Exception as exc:
            self._fail_load(f"Failed to subscribe to device events: {exc}")
            raise LoadError(f"Failed to subscribe to device events: {exc}") from exc

        self._status = ViewStatus.READY
        logger.info("dashboard_initialized", device_count=len(self._registry))
        return self._notify()

    async def shutdown(self) -> None:
        """Stop event ingestion. Safe to call more than once."""
        await self._pipeline.stop()
        logger.info("dashboard_shutdown")

    def _fail_load(self, message: str) -> None:
        self._registry.clear()
        self._tracker.clear()
        self._status = ViewStatus.ERROR
        self._load_error = message
        logger.error("dashboard_load_failed", error=message)
        self._notify()

    # ------------------------------------------------------------------
    # Connection commands
    # ------------------------------------------------------------------

    async def connect(self, device_id: int) -> DisplayRecord:
        """Connect a registered device.

        The device shows ``connecting`` while the service call is pending.

        Raises:
            NotFoundError: If the device is not registered.
            ConflictError: If an edit or delete of the device is pending.
            CommandFailure: If the service refused or failed the connect.
        """
        config = self._registry.get(device_id)
        state = self._tracker.get(device_id)
        pending_op = self._config_ops_in_flight.get(device_id)
        if pending_op is not None:
            raise ConflictError(
                f"Cannot connect {config.name!r} while its {pending_op} is pending",
                device_id=device_id,
            )

        pending = self._connects_in_flight.get(device_id, 0)
        if pending == 0:
            self._connect_baseline[device_id] = state.phase
        self._connects_in_flight[device_id] = pending + 1
        self._tracker.set_phase(device_id, ConnectionPhase.CONNECTING)
        self._notify()
        logger.info("device_connecting", device_id=device_id, address=str(config.device_address))

        try:
            await self._service.connect(device_id, config.device_address, config.local_address)
        except asyncio.CancelledError:
            self._finish_connect(device_id, succeeded=False)
            raise
        except Exception as exc:
            self._finish_connect(device_id, succeeded=False)
            logger.warning("device_connect_failed", device_id=device_id, error=str(exc))
            raise CommandFailure(
                f"Failed to connect device {device_id}: {exc}",
                device_id=device_id,
                operation="connect",
            ) from exc

        if not self._finish_connect(device_id, succeeded=True):
            raise NotFoundError(
                f"Device {device_id} was removed while connecting", device_id=device_id
            )
        logger.info("device_connected", device_id=device_id)
        return self.record(device_id)

    def _finish_connect(self, device_id: int, *, succeeded: bool) -> bool:
        """Resolve one in-flight connect. Returns False if the device is gone."""
        remaining = self._connects_in_flight.get(device_id, 1) - 1
        if remaining > 0:
            self._connects_in_flight[device_id] = remaining
            baseline = self._connect_baseline.get(device_id, ConnectionPhase.DISCONNECTED)
        else:
            self._connects_in_flight.pop(device_id, None)
            baseline = self._connect_baseline.pop(device_id, ConnectionPhase.DISCONNECTED)

        if device_id not in self._tracker:
            logger.warning("connect_resolved_for_removed_device", device_id=device_id)
            return False

        if succeeded:
            self._tracker.set_phase(device_id, ConnectionPhase.CONNECTED, stamp=self._clock())
        elif remaining == 0 and self._tracker.get(device_id).phase == ConnectionPhase.CONNECTING:
            self._tracker.set_phase(device_id, baseline)
        self._notify()
        return True

    async def disconnect(self, device_id: int) -> DisplayRecord:
        """Disconnect a device and clear its last telemetry.

        Raises:
            NotFoundError: If the device is not registered.
            CommandFailure: If the service failed; state is unchanged.
        """
        self._registry.get(device_id)
        try:
            await self._service.disconnect(device_id)
        except Exception as exc:
            logger.warning("device_disconnect_failed", device_id=device_id, error=str(exc))
            raise CommandFailure(
                f"Failed to disconnect device {device_id}: {exc}",
                device_id=device_id,
                operation="disconnect",
            ) from exc

        if device_id not in self._tracker:
            raise NotFoundError(
                f"Device {device_id} was removed while disconnecting", device_id=device_id
            )
        self._tracker.set_phase(device_id, ConnectionPhase.DISCONNECTED)
        self._tracker.clear_telemetry(device_id)
        self._notify()
        logger.info("device_disconnected", device_id=device_id)
        return self.record(device_id)

    # ------------------------------------------------------------------
    # Configuration commands
    # ------------------------------------------------------------------

    async def add(self, draft: DeviceDraft) -> DisplayRecord:
        """Create a device through the service and register it.

        Raises:
            CommandFailure: If the service failed; nothing is changed.
            ConflictError: If the service returned an ID that is already
                registered.
        """
        try:
            config = await self._service.add_config(draft)
        except Exception as exc:
            logger.warning("device_add_failed", name=draft.name, error=str(exc))
            raise CommandFailure(
                f"Failed to add device {draft.name!r}: {exc}", operation="add"
            ) from exc

        if config.id in self._registry:
            raise ConflictError(
                f"Backend assigned id {config.id}, which is already registered",
                device_id=config.id,
            )
        self._registry.upsert(config)
        self._tracker.init_for(config.id)
        self._notify()
        logger.info("device_added", device_id=config.id, name=config.name)
        return self.record(config.id)

    async def edit(self, device_id: int, draft: DeviceDraft) -> DisplayRecord:
        """Replace a disconnected device's parameters, keeping its state.

        Raises:
            NotFoundError: If the device is not registered.
            ConflictError: If the device is not disconnected or another edit
                or delete of it is pending. The service is not called.
            CommandFailure: If the service failed or returned no matching
                config.
        """
        self._require_disconnected(device_id, "edit")
        self._config_ops_in_flight[device_id] = "edit"
        try:
            result = await self._service.edit_config(device_id, draft)
        except Exception as exc:
            logger.warning("device_edit_failed", device_id=device_id, error=str(exc))
            raise CommandFailure(
                f"Failed to edit device {device_id}: {exc}",
                device_id=device_id,
                operation="edit",
            ) from exc
        finally:
            self._config_ops_in_flight.pop(device_id, None)

        updated = self._select_edited(device_id, result)
        if device_id not in self._registry:
            raise NotFoundError(
                f"Device {device_id} was removed while editing", device_id=device_id
            )
        self._registry.upsert(updated)
        self._notify()
        logger.info("device_edited", device_id=device_id, name=updated.name)
        return self.record(device_id)

    async def delete(self, device_id: int) -> None:
        """Delete a disconnected device from the service and both stores.

        Raises:
            NotFoundError: If the device is not registered.
            ConflictError: If the device is not disconnected or another edit
                or delete of it is pending. The service is not called.
            CommandFailure: If the service failed; nothing is changed.
        """
        self._require_disconnected(device_id, "delete")
        self._config_ops_in_flight[device_id] = "delete"
        try:
            await self._service.delete_config(device_id)
        except Exception as exc:
            logger.warning("device_delete_failed", device_id=device_id, error=str(exc))
            raise CommandFailure(
                f"Failed to delete device {device_id}: {exc}",
                device_id=device_id,
                operation="delete",
            ) from exc
        finally:
            self._config_ops_in_flight.pop(device_id, None)

        if device_id not in self._registry:
            raise NotFoundError(
                f"Device {device_id} was already removed", device_id=device_id
            )
        self._registry.remove(device_id)
        self._tracker.remove(device_id)
        self._notify()
        logger.info("device_deleted", device_id=device_id)

    def _require_disconnected(self, device_id: int, operation: str) -> None:
        config = self._registry.get(device_id)
        phase = self._tracker.get(device_id).phase
        if phase != ConnectionPhase.DISCONNECTED:
            logger.info(
                "device_operation_rejected",
                device_id=device_id,
                operation=operation,
                phase=phase,
            )
            raise ConflictError(
                f"Cannot {operation} {config.name!r} while {phase}; disconnect it first",
                device_id=device_id,
            )
        pending_op = self._config_ops_in_flight.get(device_id)
        if pending_op is not None:
            raise ConflictError(
                f"Cannot {operation} {config.name!r} while its {pending_op} is pending",
                device_id=device_id,
            )

    @staticmethod
    def _select_edited(
        device_id: int, result: DeviceConfig | list[DeviceConfig]
    ) -> DeviceConfig:
        """Pick the edited device out of the service's response."""
        if isinstance(result, DeviceConfig):
            if result.id != device_id:
                raise CommandFailure(
                    f"Backend returned device {result.id} for an edit of device {device_id}",
                    device_id=device_id,
                    operation="edit",
                )
            return result
        for config in result:
            if config.id == device_id:
                return config
        raise CommandFailure(
            f"Backend response does not contain device {device_id}",
            device_id=device_id,
            operation="edit",
        )

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def _on_event_applied(self, device_id: int) -> None:
        self._notify()

    def _notify(self) -> DashboardView:
        view = self.view()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("view_listener_failed")
        return view
