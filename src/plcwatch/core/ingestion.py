"""Routes Connection Service events into the connection state tracker."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

from plcwatch.core.tracker import ConnectionStateTracker
from plcwatch.models.events import DeviceErrorEvent, DeviceEvent, EventKind, TelemetryEvent
from plcwatch.service.base import ConnectionService
from plcwatch.service.events import EventSubscription
from plcwatch.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class IngestionStats:
    """Event counters since the pipeline was created."""

    received: int = 0
    applied: int = 0
    dropped: int = 0
    failed: int = 0
    streams_failed: int = 0


class EventIngestionPipeline:
    """Consumes the telemetry and device-error streams.

    Each event category is read by its own task, so a slow or failing
    error handler never holds back telemetry. Within a category events
    are applied in arrival order. Events for devices the tracker does not
    know are dropped; handler errors are logged and never propagate.
    """

    def __init__(
        self,
        tracker: ConnectionStateTracker,
        on_change: Callable[[int], None] | None = None,
    ) -> None:
        self._tracker = tracker
        self._on_change = on_change
        self._subscriptions: list[EventSubscription] = []
        self._tasks: list[asyncio.Task[None]] = []
        self._stats = IngestionStats()

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def stats(self) -> IngestionStats:
        return self._stats

    async def start(self, service: ConnectionService) -> None:
        """Subscribe to both event categories and start consuming.

        Raises:
            RuntimeError: If the pipeline is already running.
        """
        if self.is_running:
            raise RuntimeError("Event ingestion is already running")
        # reap consumers whose stream ended on its own
        await self.stop()

        subscriptions: list[EventSubscription] = []
        try:
            for kind in EventKind:
                subscriptions.append(service.subscribe(kind))
        except Exception:
            for sub in subscriptions:
                sub.close()
            raise

        self._subscriptions = subscriptions
        self._tasks = [
            asyncio.create_task(self._consume(sub), name=f"plcwatch-ingest-{sub.kind}")
            for sub in subscriptions
        ]
        logger.info("ingestion_started", channels=[str(s.kind) for s in subscriptions])

    async def stop(self) -> None:
        """Unsubscribe and stop the consumer tasks. Idempotent."""
        subscriptions, self._subscriptions = self._subscriptions, []
        tasks, self._tasks = self._tasks, []
        if not subscriptions and not tasks:
            return

        for sub in subscriptions:
            sub.close()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(
            "ingestion_stopped",
            received=self._stats.received,
            applied=self._stats.applied,
            dropped=self._stats.dropped,
            failed=self._stats.failed,
            streams_failed=self._stats.streams_failed,
        )

    async def _consume(self, subscription: EventSubscription) -> None:
        try:
            async for event in subscription:
                self._handle(subscription, event)
        except Exception:
            self._stats.streams_failed += 1
            logger.exception("event_stream_failed", kind=subscription.kind)

    def _handle(self, subscription: EventSubscription, event: DeviceEvent) -> None:
        self._stats.received += 1
        try:
            applied = self._apply(event)
        except Exception:
            self._stats.failed += 1
            logger.exception(
                "event_handler_failed",
                kind=subscription.kind,
                device_id=getattr(event, "device_id", None),
            )
            return
        if not applied:
            self._stats.dropped += 1
            return
        self._stats.applied += 1
        if self._on_change is not None:
            try:
                self._on_change(event.device_id)
            except Exception:
                logger.exception("change_callback_failed", device_id=event.device_id)

    def _apply(self, event: DeviceEvent) -> bool:
        if isinstance(event, TelemetryEvent):
            return self._tracker.record_telemetry(event.device_id, event.payload, event.timestamp)
        if isinstance(event, DeviceErrorEvent):
            logger.warning(
                "device_error_reported",
                device_id=event.device_id,
                error=event.error,
                raw=event.raw_data.hex(" ").upper(),
            )
            return self._tracker.record_error(
                event.device_id, event.error, event.raw_data, event.timestamp
            )
        raise TypeError(f"Unsupported event type: {type(event).__name__}")
