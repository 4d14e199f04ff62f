"""Read-only display models produced by the projection layer."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field

from plcwatch.models.device import Endpoint
from plcwatch.models.state import ConnectionPhase


class ViewStatus(StrEnum):
    """Overall presentation state of the dashboard."""
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class DisplayRecord(BaseModel):
    """One device row: configuration joined with its connection state."""
    model_config = {"frozen": True}

    id: int
    name: str
    table_name: str
    device_address: Endpoint
    local_address: Endpoint
    phase: ConnectionPhase
    last_received: str = Field(default="-", description="Formatted last-heard time or '-'")
    data: dict[str, Any] | None = None
    last_error: str | None = None
    last_error_hex: str | None = None
    last_error_at: datetime | None = None

    @computed_field
    @property
    def is_connected(self) -> bool:
        return self.phase == ConnectionPhase.CONNECTED

    @computed_field
    @property
    def is_connecting(self) -> bool:
        return self.phase == ConnectionPhase.CONNECTING

    @computed_field
    @property
    def can_modify(self) -> bool:
        """Edit and delete are only allowed while disconnected."""
        return self.phase == ConnectionPhase.DISCONNECTED


class DashboardView(BaseModel):
    """The complete renderable dashboard state."""
    model_config = {"frozen": True}

    status: ViewStatus
    devices: list[DisplayRecord] = Field(default_factory=list)
    error: str | None = None

    @computed_field
    @property
    def total_count(self) -> int:
        return len(self.devices)

    @computed_field
    @property
    def connected_count(self) -> int:
        return sum(1 for d in self.devices if d.is_connected)
