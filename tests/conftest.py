"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from plcwatch.core.controller import LifecycleController
from plcwatch.models.device import DeviceConfig, DeviceDraft, Endpoint
from plcwatch.models.events import DeviceEvent, EventKind
from plcwatch.service.base import ConnectionService
from plcwatch.service.events import EventHub, EventSubscription

FIXED_NOW = datetime(2024, 11, 4, 14, 30, 25, tzinfo=timezone.utc)


class FakeConnectionService(ConnectionService):
    """Scriptable Connection Service that records every call.

    ``failures[name]`` makes every call of that command raise. ``hold(name)``
    returns a future the next call of that command waits on, so tests can
    interleave concurrent commands and resolve them in any order.
    """

    def __init__(self, configs: list[DeviceConfig] | None = None) -> None:
        self.configs: list[DeviceConfig] = list(configs or [])
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.edit_returns_list = False
        self.subscriptions: list[EventSubscription] = []
        self.hub = EventHub()
        self._held: dict[str, list[asyncio.Future]] = {}
        self._next_id = max((c.id for c in self.configs), default=0) + 1

    def call_count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def hold(self, name: str) -> asyncio.Future:
        fut = asyncio.get_running_loop().create_future()
        self._held.setdefault(name, []).append(fut)
        return fut

    def publish(self, event: DeviceEvent) -> None:
        self.hub.publish(event)

    async def _enter(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        held = self._held.get(name)
        if held:
            await held.pop(0)
        exc = self.failures.get(name)
        if exc is not None:
            raise exc

    async def init(self) -> list[DeviceConfig]:
        await self._enter("init")
        return list(self.configs)

    async def connect(self, device_id, device_address, local_address) -> None:
        await self._enter("connect", device_id, device_address, local_address)

    async def disconnect(self, device_id) -> None:
        await self._enter("disconnect", device_id)

    async def add_config(self, draft: DeviceDraft) -> DeviceConfig:
        await self._enter("add_config", draft)
        config = DeviceConfig.from_draft(self._next_id, draft)
        self._next_id += 1
        self.configs.append(config)
        return config

    async def edit_config(self, device_id, draft):
        await self._enter("edit_config", device_id, draft)
        config = DeviceConfig.from_draft(device_id, draft)
        self.configs = [config if c.id == device_id else c for c in self.configs]
        if self.edit_returns_list:
            return list(self.configs)
        return config

    async def delete_config(self, device_id) -> None:
        await self._enter("delete_config", device_id)
        self.configs = [c for c in self.configs if c.id != device_id]

    def subscribe(self, kind: EventKind) -> EventSubscription:
        self.calls.append(("subscribe", kind))
        exc = self.failures.get("subscribe")
        if exc is not None:
            raise exc
        sub = self.hub.subscribe(kind)
        self.subscriptions.append(sub)
        return sub


def make_config(device_id: int, name: str, host: str = "10.0.0.5", port: int = 502) -> DeviceConfig:
    return DeviceConfig(
        id=device_id,
        name=name,
        table_name=f"plc_table_{device_id}",
        device_address=Endpoint(host=host, port=port),
        local_address=Endpoint(host="10.0.0.1", port=6000 + device_id),
    )


def make_draft(name: str = "Line-C", host: str = "10.0.0.7", port: int = 5000) -> DeviceDraft:
    return DeviceDraft(
        name=name,
        table_name="clt_table_1",
        device_address=Endpoint(host=host, port=port),
        local_address=Endpoint(host="10.0.0.1", port=6100),
    )


@pytest.fixture
def sample_configs() -> list[DeviceConfig]:
    return [
        make_config(1, "Line-A"),
        make_config(2, "Line-B", host="10.0.0.6", port=5000),
    ]


@pytest.fixture
def service(sample_configs) -> FakeConnectionService:
    return FakeConnectionService(sample_configs)


@pytest.fixture
def controller(service) -> LifecycleController:
    return LifecycleController(service, clock=lambda: FIXED_NOW)


@pytest.fixture
def settle():
    """Return a coroutine function that lets pending event tasks run."""

    async def _settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def draft_factory():
    return make_draft
