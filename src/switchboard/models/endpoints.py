"""Inference endpoint and model binding models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class EndpointConfig(BaseModel):
    """Persisted OpenAI-compatible inference endpoint."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    name: str
    base_url: str = Field(min_length=1)
    api_key: str | None = None
    is_active: bool = False
    endpoint_type: str = "ollama"
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def touch(self) -> None:
        """Update mutation timestamp."""
        self.updated_at = datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class ModelEndpoint:
    """Discovered model that has not been bound to a client yet."""

    model_id: str
    base_url: str
    credential: str | None
    source_server_id: str
    source_name: str


@dataclass(frozen=True, slots=True)
class ModelMetadata:
    """Display metadata for one registered model."""

    provider: str
    display_name: str
    description: str
    api_version: str
    capabilities: frozenset[str]


@dataclass(frozen=True, slots=True)
class ModelBinding:
    """Model identifier bound to an invocable inference backend."""

    model_id: str
    backend: Any
    metadata: ModelMetadata
    builtin: bool = False
