"""Push-stream plumbing shared by Connection Service implementations."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from plcwatch.models.events import DeviceErrorEvent, DeviceEvent, EventKind, TelemetryEvent
from plcwatch.utils.logging import get_logger

logger = get_logger(__name__)

_CLOSED = object()

DEFAULT_MAX_BACKLOG = 1000


class EventSubscription:
    """An async iterator over one event category.

    Iteration ends after :meth:`close`. Events published after close are
    discarded. At most *max_backlog* undelivered events are kept; when a
    slow consumer falls behind, the oldest ones are dropped first.
    """

    def __init__(
        self,
        kind: EventKind,
        on_close: Callable[[EventSubscription], None] | None = None,
        max_backlog: int = DEFAULT_MAX_BACKLOG,
    ) -> None:
        if max_backlog < 1:
            raise ValueError("max_backlog must be at least 1")
        self.kind = kind
        self.dropped = 0
        self._max_backlog = max_backlog
        # unbounded so the close sentinel always fits; push enforces the limit
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: DeviceEvent) -> None:
        if self._closed:
            return
        if self._queue.qsize() >= self._max_backlog:
            self._queue.get_nowait()
            self.dropped += 1
            if self.dropped == 1 or self.dropped % self._max_backlog == 0:
                logger.warning("event_backlog_overflow", kind=self.kind, dropped=self.dropped)
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Stop the subscription. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            self._on_close(self)

    def __aiter__(self) -> EventSubscription:
        return self

    async def __anext__(self) -> DeviceEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


class EventHub:
    """Fan-out of published events to the open subscriptions of each kind."""

    def __init__(self, max_backlog: int = DEFAULT_MAX_BACKLOG) -> None:
        self._max_backlog = max_backlog
        self._subscribers: dict[EventKind, list[EventSubscription]] = {
            kind: [] for kind in EventKind
        }

    def subscribe(self, kind: EventKind) -> EventSubscription:
        sub = EventSubscription(kind, on_close=self._detach, max_backlog=self._max_backlog)
        self._subscribers[kind].append(sub)
        logger.debug("event_subscribed", kind=kind)
        return sub

    def subscriber_count(self, kind: EventKind) -> int:
        return len(self._subscribers[kind])

    def publish(self, event: DeviceEvent) -> None:
        if isinstance(event, TelemetryEvent):
            kind = EventKind.TELEMETRY
        elif isinstance(event, DeviceErrorEvent):
            kind = EventKind.DEVICE_ERROR
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")
        for sub in list(self._subscribers[kind]):
            sub.push(event)

    def close_all(self) -> None:
        for subs in self._subscribers.values():
            for sub in list(subs):
                sub.close()

    def _detach(self, sub: EventSubscription) -> None:
        subs = self._subscribers[sub.kind]
        if sub in subs:
            subs.remove(sub)
        logger.debug("event_unsubscribed", kind=sub.kind)
