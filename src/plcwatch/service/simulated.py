"""File-backed simulated Connection Service.

Stores the device list in a JSON file and, for every connected device,
pushes synthetic telemetry (and optionally error) events. Useful for
running the CLI and API without real PLCs.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from plcwatch.exceptions import ServiceError
from plcwatch.models.device import DeviceConfig, DeviceDraft, Endpoint
from plcwatch.models.events import DeviceErrorEvent, DeviceEvent, EventKind, TelemetryEvent
from plcwatch.service.base import ConnectionService
from plcwatch.service.events import EventHub, EventSubscription
from plcwatch.utils.logging import get_logger

logger = get_logger(__name__)


class ConfigFile(BaseModel):
    """On-disk layout of the simulated backend's device list."""

    next_id: int = Field(default=1, gt=0)
    plcs: list[DeviceConfig] = Field(default_factory=list)

    def allocate_id(self) -> int:
        """Return a fresh ID. IDs are never handed out twice."""
        device_id = max([self.next_id, *(c.id + 1 for c in self.plcs)])
        self.next_id = device_id + 1
        return device_id


class SimulatedConnectionService(ConnectionService):
    """In-process stand-in for the connection-management backend.

    Args:
        config_path: JSON file holding the device list. ``None`` keeps the
            list in memory only.
        telemetry_interval: Seconds between telemetry events per device.
        error_every: Emit a device error every N telemetry ticks (0 = never).
        connect_delay: Simulated connection setup time in seconds.
        seed: Seed for the synthetic telemetry values.
    """

    def __init__(
        self,
        config_path: Path | str | None = None,
        *,
        telemetry_interval: float = 1.0,
        error_every: int = 0,
        connect_delay: float = 0.0,
        seed: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(config_path) if config_path is not None else None
        self._interval = telemetry_interval
        self._error_every = error_every
        self._connect_delay = connect_delay
        self._rng = random.Random(seed)
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._store = ConfigFile()
        self._loaded = False
        self._lock = asyncio.Lock()
        self._hub = EventHub()
        self._connections: dict[int, asyncio.Task[None]] = {}

    @property
    def connected_ids(self) -> list[int]:
        return list(self._connections)

    # ------------------------------------------------------------------
    # Configuration commands
    # ------------------------------------------------------------------

    async def init(self) -> list[DeviceConfig]:
        async with self._lock:
            self._store = await asyncio.to_thread(self._read)
            self._loaded = True
            logger.info("sim_config_loaded", path=str(self._path), count=len(self._store.plcs))
            return list(self._store.plcs)

    async def add_config(self, draft: DeviceDraft) -> DeviceConfig:
        async with self._lock:
            await self._ensure_loaded()
            store = self._store.model_copy(deep=True)
            config = DeviceConfig.from_draft(store.allocate_id(), draft)
            store.plcs.append(config)
            await self._commit(store)
            logger.info("sim_config_added", device_id=config.id)
            return config

    async def edit_config(self, device_id: int, draft: DeviceDraft) -> DeviceConfig:
        async with self._lock:
            await self._ensure_loaded()
            index = self._index_of(device_id)
            updated = DeviceConfig.from_draft(device_id, draft)
            store = self._store.model_copy(deep=True)
            store.plcs[index] = updated
            await self._commit(store)
            logger.info("sim_config_edited", device_id=device_id)
            return updated

    async def delete_config(self, device_id: int) -> None:
        async with self._lock:
            await self._ensure_loaded()
            index = self._index_of(device_id)
            store = self._store.model_copy(deep=True)
            del store.plcs[index]
            await self._commit(store)
        await self._stop_device(device_id)
        logger.info("sim_config_deleted", device_id=device_id)

    # ------------------------------------------------------------------
    # Connection commands
    # ------------------------------------------------------------------

    async def connect(
        self, device_id: int, device_address: Endpoint, local_address: Endpoint
    ) -> None:
        if device_id in self._connections:
            raise ServiceError("Already connected", device_id=device_id)
        async with self._lock:
            await self._ensure_loaded()
            self._index_of(device_id)
        if self._connect_delay:
            await asyncio.sleep(self._connect_delay)
        if device_id in self._connections:
            raise ServiceError("Already connected", device_id=device_id)
        self._connections[device_id] = asyncio.create_task(
            self._run_device(device_id), name=f"plcwatch-sim-{device_id}"
        )
        logger.info(
            "sim_connected",
            device_id=device_id,
            device=str(device_address),
            local=str(local_address),
        )

    async def disconnect(self, device_id: int) -> None:
        if device_id not in self._connections:
            raise ServiceError("Not connected", device_id=device_id)
        await self._stop_device(device_id)
        logger.info("sim_disconnected", device_id=device_id)

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    def subscribe(self, kind: EventKind) -> EventSubscription:
        return self._hub.subscribe(kind)

    def publish(self, event: DeviceEvent) -> None:
        """Inject an event as if a device had produced it."""
        self._hub.publish(event)

    async def close(self) -> None:
        """Stop all telemetry generators and close every subscription."""
        for device_id in list(self._connections):
            await self._stop_device(device_id)
        self._hub.close_all()

    async def _run_device(self, device_id: int) -> None:
        tick = 0
        while True:
            await asyncio.sleep(self._interval)
            tick += 1
            now = self._clock()
            self._hub.publish(
                TelemetryEvent(device_id=device_id, payload=self._sample(tick), timestamp=now)
            )
            if self._error_every and tick % self._error_every == 0:
                raw = bytes(self._rng.randrange(256) for _ in range(8))
                self._hub.publish(
                    DeviceErrorEvent(
                        device_id=device_id,
                        error="Frame checksum mismatch",
                        raw_data=raw,
                        timestamp=now,
                    )
                )

    def _sample(self, tick: int) -> dict[str, Any]:
        return {
            "temperature": round(self._rng.uniform(80.0, 90.0), 1),
            "pressure": self._rng.randint(110, 125),
            "cycle_count": tick,
        }

    async def _stop_device(self, device_id: int) -> None:
        task = self._connections.pop(device_id, None)
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _index_of(self, device_id: int) -> int:
        for i, config in enumerate(self._store.plcs):
            if config.id == device_id:
                return i
        raise ServiceError(f"PLC with ID {device_id} not found", device_id=device_id)

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._store = await asyncio.to_thread(self._read)
            self._loaded = True

    async def _commit(self, store: ConfigFile) -> None:
        """Persist *store*, then make it current. A failed write changes nothing."""
        if self._path is not None:
            await asyncio.to_thread(self._write, self._path, store)
        self._store = store

    def _read(self) -> ConfigFile:
        if self._path is None:
            return self._store
        if not self._path.exists():
            return ConfigFile()
        try:
            return ConfigFile.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            raise ServiceError(f"Failed to read config file at {self._path}: {exc}") from exc

    @staticmethod
    def _write(path: Path, store: ConfigFile) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(store.model_dump_json(indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise ServiceError(f"Failed to write config file at {path}: {exc}") from exc
