"""Model registry API schemas."""

from __future__ import annotations

from pydantic import BaseModel


class ModelResponse(BaseModel):
    """One registered model."""

    id: str
    name: str
    provider: str
    description: str
    api_version: str
    capabilities: list[str]
    builtin: bool
    base_url: str | None = None


class ModelsResponse(BaseModel):
    """Registry listing with built-in and discovered counts."""

    models: list[ModelResponse]
    base_count: int
    local_count: int
    version: int


class ResolutionResponse(BaseModel):
    """Outcome of resolving one requested identifier."""

    requested_id: str
    model_id: str
    match: str
    model: ModelResponse


class EndpointModelsResponse(BaseModel):
    """Live model listing for one stored inference endpoint."""

    endpoint_id: str
    name: str
    endpoint_type: str
    base_url: str
    healthy: bool
    dialect: str | None = None
    models: list[str]
    error: str | None = None
