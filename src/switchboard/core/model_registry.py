"""Process-wide registry of model identifiers and their inference backends."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Literal

from switchboard.core.backends import (
    BackendFactory,
    BackendSpec,
    normalize_openai_base_url,
    openai_backend,
)
from switchboard.core.discovery import ModelDiscovery
from switchboard.models.endpoints import (
    EndpointConfig,
    ModelBinding,
    ModelEndpoint,
    ModelMetadata,
)

logger = logging.getLogger(__name__)

type MatchKind = Literal["exact", "alias", "substring", "dynamic", "default"]
type EndpointSource = Callable[[], Awaitable[Sequence[EndpointConfig]]]
type SnapshotListener = Callable[[RegistrySnapshot], None]

DISCOVERED_CAPABILITIES = frozenset({"Local", "Reasoning", "Code"})


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    """One registered model; dynamic entries carry their discovered endpoint."""

    model_id: str
    spec: BackendSpec
    metadata: ModelMetadata
    endpoint: ModelEndpoint | None = None

    @property
    def builtin(self) -> bool:
        return self.endpoint is None


@dataclass(frozen=True, slots=True)
class Resolution:
    """Binding chosen for a requested identifier and how it was matched."""

    requested_id: str
    binding: ModelBinding
    entry: RegistryEntry
    match: MatchKind


class RegistrySnapshot:
    """Immutable set of registry entries with a lazily filled binding cache."""

    def __init__(
        self,
        entries: Sequence[RegistryEntry],
        *,
        version: int,
        bindings: Mapping[str, ModelBinding] | None = None,
    ) -> None:
        self._entries = MappingProxyType({entry.model_id: entry for entry in entries})
        self._bindings: dict[str, ModelBinding] = dict(bindings or {})
        self._lock = threading.Lock()
        self.version = version
        self.created_at = datetime.now(UTC)

    @property
    def entries(self) -> Mapping[str, RegistryEntry]:
        return self._entries

    @property
    def model_ids(self) -> tuple[str, ...]:
        return tuple(self._entries)

    @property
    def builtin_ids(self) -> tuple[str, ...]:
        return tuple(model_id for model_id, entry in self._entries.items() if entry.builtin)

    @property
    def dynamic_ids(self) -> tuple[str, ...]:
        return tuple(model_id for model_id, entry in self._entries.items() if not entry.builtin)

    def get(self, model_id: str) -> RegistryEntry | None:
        return self._entries.get(model_id)

    def binding_for(self, model_id: str, factory: BackendFactory) -> ModelBinding:
        """Return the cached binding, building it on first use."""
        with self._lock:
            cached = self._bindings.get(model_id)
            if cached is not None:
                return cached
            entry = self._entries[model_id]
            binding = ModelBinding(
                model_id=model_id,
                backend=factory(entry.spec),
                metadata=entry.metadata,
                builtin=entry.builtin,
            )
            self._bindings[model_id] = binding
            return binding

    def cached_bindings(self) -> dict[str, ModelBinding]:
        with self._lock:
            return dict(self._bindings)


class ModelRegistry:
    """Built-in models plus a dynamic set rebuilt from endpoint discovery.

    Readers grab the current snapshot reference once per call. `refresh`
    builds a complete replacement and swaps the reference, so a reader sees
    either the old snapshot or the new one, never a mix.
    """

    def __init__(
        self,
        *,
        builtins: Sequence[RegistryEntry],
        default_model_id: str,
        endpoint_source: EndpointSource | None = None,
        discovery: ModelDiscovery | None = None,
        backend_factory: BackendFactory = openai_backend,
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        builtin_ids = {entry.model_id for entry in builtins}
        if default_model_id not in builtin_ids:
            msg = f"Default model {default_model_id!r} is not a built-in model"
            raise ValueError(msg)
        self._builtins = tuple(builtins)
        self._default_model_id = default_model_id
        self._endpoint_source = endpoint_source
        self._discovery = discovery or ModelDiscovery()
        self._backend_factory = backend_factory
        self._aliases = _build_aliases(self._builtins, aliases or {})
        self._snapshot = RegistrySnapshot(self._builtins, version=0)
        self._refresh_lock = asyncio.Lock()
        self._listeners: list[SnapshotListener] = []
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def default_model_id(self) -> str:
        return self._default_model_id

    @property
    def snapshot(self) -> RegistrySnapshot:
        return self._snapshot

    def list_models(self) -> list[RegistryEntry]:
        return list(self._snapshot.entries.values())

    def resolve(self, requested_id: str) -> ModelBinding:
        """Return a usable binding for any identifier."""
        return self.resolve_with_reason(requested_id).binding

    def resolve_with_reason(self, requested_id: str) -> Resolution:
        snapshot = self._snapshot
        model_id, match = self._match(snapshot, requested_id)
        if match != "exact":
            logger.info("Model %r resolved to %s (%s)", requested_id, model_id, match)
        try:
            binding = snapshot.binding_for(model_id, self._backend_factory)
        except Exception:
            if model_id == self._default_model_id:
                raise
            logger.exception("Failed to build backend for %s; using default model", model_id)
            binding = snapshot.binding_for(self._default_model_id, self._backend_factory)
            match = "default"
        return Resolution(
            requested_id=requested_id,
            binding=binding,
            entry=snapshot.entries[binding.model_id],
            match=match,
        )

    async def refresh(self) -> RegistrySnapshot:
        """Rediscover dynamic models and publish a new snapshot."""
        async with self._refresh_lock:
            previous = self._snapshot
            if self._endpoint_source is None:
                return previous
            try:
                endpoints = list(await self._endpoint_source())
            except Exception:
                logger.exception(
                    "Failed to load endpoint configs; keeping registry version %d",
                    previous.version,
                )
                return previous

            active = [endpoint for endpoint in endpoints if endpoint.is_active]
            discovered = await asyncio.gather(*(self._discover(endpoint) for endpoint in active))
            entries = self._build_entries(active, discovered)
            carried = {
                model_id: binding
                for model_id, binding in previous.cached_bindings().items()
                if entries.get(model_id) is not None and entries[model_id] == previous.get(model_id)
            }
            snapshot = RegistrySnapshot(
                list(entries.values()),
                version=previous.version + 1,
                bindings=carried,
            )
            self._snapshot = snapshot

        logger.info(
            "Model registry version %d: %d built-in, %d discovered from %d endpoints",
            snapshot.version,
            len(snapshot.builtin_ids),
            len(snapshot.dynamic_ids),
            len(active),
        )
        self._notify(snapshot)
        return snapshot

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call `listener` with each newly published snapshot."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def start_periodic_refresh(self, interval_seconds: float) -> asyncio.Task[None]:
        task = self._refresh_task
        if task is not None and not task.done():
            return task
        task = asyncio.create_task(
            self._refresh_loop(interval_seconds),
            name="model-registry-refresh",
        )
        self._refresh_task = task
        return task

    async def stop_periodic_refresh(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _refresh_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.refresh()
            except Exception:
                logger.exception("Scheduled model registry refresh failed")

    async def _discover(self, endpoint: EndpointConfig) -> list[str]:
        try:
            return await self._discovery.discover(endpoint.base_url, endpoint.api_key)
        except Exception:
            logger.exception("Model discovery raised for endpoint %s", endpoint.name)
            return []

    def _build_entries(
        self,
        endpoints: Sequence[EndpointConfig],
        discovered: Sequence[list[str]],
    ) -> dict[str, RegistryEntry]:
        entries = {entry.model_id: entry for entry in self._builtins}
        for endpoint, model_names in zip(endpoints, discovered, strict=True):
            base_url = normalize_openai_base_url(endpoint.base_url)
            for model_name in model_names:
                existing = entries.get(model_name)
                if existing is not None and existing.builtin:
                    logger.debug(
                        "Ignoring %s from %s: built-in id", model_name, endpoint.name
                    )
                    continue
                entries[model_name] = RegistryEntry(
                    model_id=model_name,
                    spec=BackendSpec(
                        provider=endpoint.name,
                        base_url=base_url,
                        api_model=model_name,
                        credential=endpoint.api_key,
                    ),
                    metadata=ModelMetadata(
                        provider=endpoint.name,
                        display_name=model_name,
                        description=f"Local model from {endpoint.name} ({endpoint.base_url})",
                        api_version="OpenAI-compatible",
                        capabilities=DISCOVERED_CAPABILITIES,
                    ),
                    endpoint=ModelEndpoint(
                        model_id=model_name,
                        base_url=base_url,
                        credential=endpoint.api_key,
                        source_server_id=endpoint.id,
                        source_name=endpoint.name,
                    ),
                )
        return entries

    def _match(self, snapshot: RegistrySnapshot, requested_id: str) -> tuple[str, MatchKind]:
        if requested_id in snapshot.entries:
            return requested_id, "exact"

        key = requested_id.strip().lower()
        if key:
            target = self._aliases.get(key)
            if target is not None and target in snapshot.entries:
                return target, "alias"

            for model_id in snapshot.model_ids:
                if key in model_id.lower():
                    return model_id, "substring"

        dynamic_ids = snapshot.dynamic_ids
        if dynamic_ids:
            return dynamic_ids[0], "dynamic"
        return self._default_model_id, "default"

    def _notify(self, snapshot: RegistrySnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Model registry listener failed")


def _build_aliases(
    builtins: Sequence[RegistryEntry],
    extra: Mapping[str, str],
) -> dict[str, str]:
    aliases: dict[str, str] = {}
    for entry in builtins:
        aliases[entry.spec.api_model.lower()] = entry.model_id
    for alias, target in extra.items():
        aliases[alias.strip().lower()] = target
    return aliases
