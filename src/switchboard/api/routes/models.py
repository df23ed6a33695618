"""Model registry routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from switchboard.api.deps import get_discovery, get_model_registry, get_settings, get_store
from switchboard.api.schemas.models import (
    EndpointModelsResponse,
    ModelResponse,
    ModelsResponse,
    ResolutionResponse,
)
from switchboard.config import Settings
from switchboard.core.discovery import ModelDiscovery
from switchboard.core.model_registry import ModelRegistry, RegistryEntry, RegistrySnapshot
from switchboard.db.store import SQLiteConfigStore

router = APIRouter(prefix="/api/v1/models", tags=["models"])


def _as_response(entry: RegistryEntry) -> ModelResponse:
    return ModelResponse(
        id=entry.model_id,
        name=entry.metadata.display_name,
        provider=entry.metadata.provider,
        description=entry.metadata.description,
        api_version=entry.metadata.api_version,
        capabilities=sorted(entry.metadata.capabilities),
        builtin=entry.builtin,
        base_url=entry.endpoint.base_url if entry.endpoint is not None else None,
    )


def _listing(snapshot: RegistrySnapshot) -> ModelsResponse:
    return ModelsResponse(
        models=[_as_response(entry) for entry in snapshot.entries.values()],
        base_count=len(snapshot.builtin_ids),
        local_count=len(snapshot.dynamic_ids),
        version=snapshot.version,
    )


@router.get("", response_model=ModelsResponse)
async def list_models(
    registry: ModelRegistry = Depends(get_model_registry),
) -> ModelsResponse:
    return _listing(registry.snapshot)


@router.post("/refresh", response_model=ModelsResponse)
async def refresh_models(
    registry: ModelRegistry = Depends(get_model_registry),
) -> ModelsResponse:
    return _listing(await registry.refresh())


@router.get("/resolve", response_model=ResolutionResponse)
async def resolve_model(
    model_id: str,
    registry: ModelRegistry = Depends(get_model_registry),
) -> ResolutionResponse:
    resolution = registry.resolve_with_reason(model_id)
    return ResolutionResponse(
        requested_id=model_id,
        model_id=resolution.binding.model_id,
        match=resolution.match,
        model=_as_response(resolution.entry),
    )


@router.get("/endpoints/{endpoint_id}/models", response_model=EndpointModelsResponse)
async def discover_endpoint_models(
    endpoint_id: str,
    store: SQLiteConfigStore = Depends(get_store),
    discovery: ModelDiscovery = Depends(get_discovery),
    settings: Settings = Depends(get_settings),
) -> EndpointModelsResponse:
    endpoint = await store.get_endpoint(settings.user_id, endpoint_id)
    if endpoint is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Endpoint not found")
    result = await discovery.probe(endpoint.base_url, endpoint.api_key)
    return EndpointModelsResponse(
        endpoint_id=endpoint.id,
        name=endpoint.name,
        endpoint_type=endpoint.endpoint_type,
        base_url=endpoint.base_url,
        healthy=result.healthy,
        dialect=result.dialect,
        models=result.models,
        error=result.error,
    )
