"""Device configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class Endpoint(BaseModel):
    """A host/port pair used as a connection endpoint."""
    model_config = {"frozen": True}

    host: str = Field(min_length=1, description="IP address or host name")
    port: int = Field(ge=0, le=65535, description="TCP port")

    @field_validator("host")
    @classmethod
    def strip_host(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("host must not be blank")
        return v

    @classmethod
    def parse(cls, value: str) -> Endpoint:
        """Build an endpoint from ``"host:port"``.

        Raises:
            ValueError: If *value* has no port or the port is not an integer.
        """
        host, sep, port = value.strip().rpartition(":")
        if not sep or not host:
            raise ValueError(f"Expected HOST:PORT, got {value!r}")
        try:
            port_number = int(port)
        except ValueError as exc:
            raise ValueError(f"Invalid port in {value!r}") from exc
        return cls(host=host, port=port_number)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class DeviceDraft(BaseModel):
    """Normalized operator input for creating or editing a device."""
    model_config = {"frozen": True}

    name: str = Field(min_length=1, description="Operator-facing label")
    table_name: str = Field(default="", description="Backend storage key")
    device_address: Endpoint = Field(description="Target device endpoint")
    local_address: Endpoint = Field(description="Originating local endpoint")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class DeviceConfig(DeviceDraft):
    """Persisted identity and connection parameters of one device."""

    id: int = Field(gt=0, description="Backend-assigned stable identifier")

    @classmethod
    def from_draft(cls, device_id: int, draft: DeviceDraft) -> DeviceConfig:
        return cls(id=device_id, **draft.model_dump())

    def to_draft(self) -> DeviceDraft:
        return DeviceDraft(**self.model_dump(exclude={"id"}))
