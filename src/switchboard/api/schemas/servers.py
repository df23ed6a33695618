"""Server status API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from switchboard.models.servers import ConnectionState


class ToolDescriptorResponse(BaseModel):
    """One tool discovered on a server."""

    name: str
    description: str
    input_schema: dict[str, Any]


class ServerStatusResponse(BaseModel):
    """Connection status payload for one server."""

    server_id: str
    name: str
    state: ConnectionState
    last_error: str | None
    tools: list[ToolDescriptorResponse]
    updated_at: datetime


class ServerStatusesResponse(BaseModel):
    """Collection of server statuses."""

    items: list[ServerStatusResponse]


class StatusTransitionResponse(BaseModel):
    """One recorded connection state change."""

    server_id: str
    from_state: ConnectionState
    to_state: ConnectionState
    reason: str
    timestamp: datetime


class StatusTransitionsResponse(BaseModel):
    """Collection of state changes."""

    items: list[StatusTransitionResponse]
