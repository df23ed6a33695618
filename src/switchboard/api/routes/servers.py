"""Tool server status routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from switchboard.api.deps import get_settings, get_status_tracker, get_store
from switchboard.api.schemas.servers import (
    ServerStatusesResponse,
    ServerStatusResponse,
    StatusTransitionResponse,
    StatusTransitionsResponse,
    ToolDescriptorResponse,
)
from switchboard.config import Settings
from switchboard.db.store import SQLiteConfigStore
from switchboard.mcp.status import ServerStatusTracker
from switchboard.models.servers import ServerStatus

router = APIRouter(prefix="/api/v1/servers", tags=["servers"])


async def synced_tracker(
    tracker: ServerStatusTracker = Depends(get_status_tracker),
    store: SQLiteConfigStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> ServerStatusTracker:
    tracker.sync(await store.list_server_configs(settings.user_id))
    return tracker


def _as_response(server: ServerStatus) -> ServerStatusResponse:
    return ServerStatusResponse(
        server_id=server.server_id,
        name=server.name,
        state=server.state,
        last_error=server.last_error,
        tools=[
            ToolDescriptorResponse(
                name=tool.name,
                description=tool.description,
                input_schema=tool.input_schema,
            )
            for tool in server.tools
        ],
        updated_at=server.updated_at,
    )


def _require(server: ServerStatus | None) -> ServerStatusResponse:
    if server is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Server not found")
    return _as_response(server)


@router.get("", response_model=ServerStatusesResponse)
async def list_servers(
    tracker: ServerStatusTracker = Depends(synced_tracker),
) -> ServerStatusesResponse:
    return ServerStatusesResponse(items=[_as_response(item) for item in tracker.list_statuses()])


@router.get("/events", response_model=StatusTransitionsResponse)
async def list_server_events(
    server_id: str | None = None,
    limit: int | None = None,
    tracker: ServerStatusTracker = Depends(get_status_tracker),
) -> StatusTransitionsResponse:
    return StatusTransitionsResponse(
        items=[
            StatusTransitionResponse(
                server_id=event.server_id,
                from_state=event.from_state,
                to_state=event.to_state,
                reason=event.reason,
                timestamp=event.timestamp,
            )
            for event in tracker.list_events(server_id=server_id, limit=limit)
        ]
    )


@router.get("/{server_id}", response_model=ServerStatusResponse)
async def get_server(
    server_id: str,
    tracker: ServerStatusTracker = Depends(synced_tracker),
) -> ServerStatusResponse:
    return _require(tracker.get(server_id))


@router.post("/{server_id}/start", response_model=ServerStatusResponse)
async def start_server(
    server_id: str,
    tracker: ServerStatusTracker = Depends(synced_tracker),
) -> ServerStatusResponse:
    return _require(await tracker.start_server(server_id))


@router.post("/{server_id}/stop", response_model=ServerStatusResponse)
async def stop_server(
    server_id: str,
    tracker: ServerStatusTracker = Depends(synced_tracker),
) -> ServerStatusResponse:
    return _require(await tracker.stop_server(server_id))


@router.post("/{server_id}/restart", response_model=ServerStatusResponse)
async def restart_server(
    server_id: str,
    tracker: ServerStatusTracker = Depends(synced_tracker),
) -> ServerStatusResponse:
    return _require(await tracker.restart_server(server_id))
