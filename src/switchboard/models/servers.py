"""Tool server configuration and status models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TransportKind(str, Enum):
    """Wire transport spoken by a tool server."""

    SSE = "sse"
    HTTP = "http"


class ConnectionState(str, Enum):
    """User-facing connection state for one configured server."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class KeyValue(BaseModel):
    """One ordered header or environment entry."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str


class LaunchSpec(BaseModel):
    """Process launch details kept alongside a server record."""

    model_config = ConfigDict(frozen=True)

    command: str
    args: tuple[str, ...] = ()
    env: tuple[KeyValue, ...] = ()


class ServerConfig(BaseModel):
    """Configured tool server, owned by the external config store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    transport: TransportKind = TransportKind.SSE
    url: str = Field(min_length=1)
    headers: tuple[KeyValue, ...] = ()
    launch: LaunchSpec | None = None

    def header_map(self) -> dict[str, str]:
        """Headers as a mapping; later entries win on duplicate keys."""
        return {entry.key: entry.value for entry in self.headers if entry.key}


class ToolDescriptor(BaseModel):
    """Schema for one tool advertised by a server."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)
    server_id: str


class ServerStatus(BaseModel):
    """Snapshot of one server's connection state."""

    model_config = ConfigDict(frozen=True)

    server_id: str
    name: str
    state: ConnectionState = ConnectionState.DISCONNECTED
    last_error: str | None = None
    tools: tuple[ToolDescriptor, ...] = ()
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
