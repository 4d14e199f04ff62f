"""Canonical ordered store of device configurations."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from plcwatch.exceptions import LoadError, NotFoundError
from plcwatch.models.device import DeviceConfig
from plcwatch.utils.logging import get_logger

logger = get_logger(__name__)


class DeviceRegistry:
    """Ordered mapping of device ID to :class:`DeviceConfig`.

    Insertion order is the display order. Replacing an existing entry
    keeps its position.
    """

    def __init__(self) -> None:
        self._configs: dict[int, DeviceConfig] = {}

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._configs

    def __len__(self) -> int:
        return len(self._configs)

    def __iter__(self) -> Iterator[DeviceConfig]:
        return iter(list(self._configs.values()))

    def load(self, configs: Iterable[DeviceConfig]) -> None:
        """Replace the whole registry with *configs*.

        Raises:
            LoadError: If the snapshot holds duplicate IDs. The registry is
                left empty in that case.
        """
        loaded: dict[int, DeviceConfig] = {}
        for config in configs:
            if config.id in loaded:
                self._configs = {}
                raise LoadError(
                    f"Duplicate device id {config.id} in snapshot", device_id=config.id
                )
            loaded[config.id] = config
        self._configs = loaded
        logger.debug("registry_loaded", count=len(loaded))

    def upsert(self, config: DeviceConfig) -> bool:
        """Insert or replace *config*. Returns True if it was newly inserted."""
        inserted = config.id not in self._configs
        self._configs[config.id] = config
        return inserted

    def remove(self, device_id: int) -> DeviceConfig:
        """Remove and return the config for *device_id*.

        Raises:
            NotFoundError: If no such device is registered.
        """
        try:
            return self._configs.pop(device_id)
        except KeyError:
            raise NotFoundError(f"Device {device_id} not found", device_id=device_id) from None

    def get(self, device_id: int) -> DeviceConfig:
        try:
            return self._configs[device_id]
        except KeyError:
            raise NotFoundError(f"Device {device_id} not found", device_id=device_id) from None

    def ids(self) -> list[int]:
        return list(self._configs)

    def configs(self) -> list[DeviceConfig]:
        return list(self._configs.values())

    def clear(self) -> None:
        self._configs = {}
