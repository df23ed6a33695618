"""Shared API dependency providers."""

from __future__ import annotations

from switchboard.config import Settings
from switchboard.core.catalog import builtin_aliases, builtin_entries
from switchboard.core.discovery import ModelDiscovery
from switchboard.core.model_registry import ModelRegistry
from switchboard.db.store import SQLiteConfigStore
from switchboard.mcp.connection_manager import ConnectionManager
from switchboard.mcp.status import ServerStatusTracker
from switchboard.models.endpoints import EndpointConfig

_SETTINGS = Settings()
_DISCOVERY = ModelDiscovery(timeout_seconds=_SETTINGS.discovery_timeout_seconds)
_STATUS_TRACKER = ServerStatusTracker(
    timeout_seconds=_SETTINGS.connect_timeout_seconds,
    settle_seconds=_SETTINGS.restart_settle_seconds,
)
_CONNECTION_MANAGER = ConnectionManager(
    tracker=_STATUS_TRACKER,
    timeout_seconds=_SETTINGS.connect_timeout_seconds,
)


async def _active_endpoints() -> list[EndpointConfig]:
    return await get_store().list_endpoints(_SETTINGS.user_id, active_only=True)


_MODEL_REGISTRY = ModelRegistry(
    builtins=builtin_entries(_SETTINGS),
    default_model_id=_SETTINGS.default_model,
    endpoint_source=_active_endpoints,
    discovery=_DISCOVERY,
    aliases=builtin_aliases(),
)


def get_settings() -> Settings:
    return _SETTINGS


def get_discovery() -> ModelDiscovery:
    return _DISCOVERY


def get_store() -> SQLiteConfigStore:
    _SETTINGS.db_path.parent.mkdir(parents=True, exist_ok=True)
    return SQLiteConfigStore(db_path=_SETTINGS.db_path)


def get_status_tracker() -> ServerStatusTracker:
    return _STATUS_TRACKER


def get_connection_manager() -> ConnectionManager:
    return _CONNECTION_MANAGER


def get_model_registry() -> ModelRegistry:
    return _MODEL_REGISTRY
