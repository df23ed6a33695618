"""Model discovery and liveness probing for inference endpoints."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

logger = logging.getLogger(__name__)

type Dialect = Literal["ollama", "openai"]
type DiscoveryErrorCategory = Literal[
    "network_timeout",
    "http_status",
    "transport_error",
    "invalid_payload",
]


class DiscoveryError(RuntimeError):
    """One listing call failed."""

    def __init__(self, message: str, *, category: DiscoveryErrorCategory) -> None:
        super().__init__(message)
        self.category = category


@dataclass(slots=True)
class DiscoveryResult:
    """Outcome of probing one endpoint."""

    healthy: bool
    models: list[str] = field(default_factory=list)
    dialect: Dialect | None = None
    error: str | None = None


def api_root(base_url: str) -> str:
    """Strip a trailing slash and `/v1` suffix from an endpoint URL."""
    trimmed = base_url.strip().rstrip("/")
    if trimmed.endswith("/v1"):
        trimmed = trimmed[: -len("/v1")]
    return trimmed.rstrip("/")


class ModelDiscovery:
    """List models served by an Ollama or OpenAI-compatible endpoint.

    The Ollama tags listing is tried first. Any failure there falls back to
    the OpenAI `/v1/models` listing. When neither answers, the endpoint is
    reported unhealthy with no models; no error reaches the caller.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 5.0,
        client_factory: Callable[[float], httpx.AsyncClient] | None = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory or self._default_client

    async def discover(self, base_url: str, credential: str | None = None) -> list[str]:
        """Return model identifiers in the endpoint's own order."""
        return (await self.probe(base_url, credential)).models

    async def is_healthy(self, base_url: str, credential: str | None = None) -> bool:
        return (await self.probe(base_url, credential)).healthy

    async def probe(self, base_url: str, credential: str | None = None) -> DiscoveryResult:
        root = api_root(base_url)
        headers = {"Content-Type": "application/json"}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        errors: list[str] = []
        async with self._client_factory(self._timeout_seconds) as client:
            try:
                payload = await self._fetch(client, f"{root}/api/tags", headers)
                return DiscoveryResult(
                    healthy=True,
                    models=_names(payload.get("models"), keys=("name",)),
                    dialect="ollama",
                )
            except DiscoveryError as exc:
                logger.debug("Ollama listing failed for %s: %s", root, exc)
                errors.append(f"ollama: {exc}")

            try:
                payload = await self._fetch(client, f"{root}/v1/models", headers)
                data = payload.get("data")
                if not isinstance(data, list):
                    msg = "missing data list"
                    raise DiscoveryError(msg, category="invalid_payload")
                return DiscoveryResult(
                    healthy=True,
                    models=_names(data, keys=("id", "name")),
                    dialect="openai",
                )
            except DiscoveryError as exc:
                logger.debug("OpenAI listing failed for %s: %s", root, exc)
                errors.append(f"openai: {exc}")

        joined = "; ".join(errors)
        logger.warning("Model discovery failed for %s: %s", root, joined)
        return DiscoveryResult(healthy=False, error=joined)

    @staticmethod
    async def _fetch(
        client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str],
    ) -> dict[str, Any]:
        try:
            response = await client.get(url, headers=headers)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise DiscoveryError(str(exc) or "timed out", category="network_timeout") from exc
        except httpx.HTTPStatusError as exc:
            message = f"http status {exc.response.status_code}"
            raise DiscoveryError(message, category="http_status") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DiscoveryError(str(exc), category="transport_error") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            msg = "Invalid JSON listing payload"
            raise DiscoveryError(msg, category="invalid_payload") from exc
        if not isinstance(payload, dict):
            msg = "Invalid JSON listing payload"
            raise DiscoveryError(msg, category="invalid_payload")
        return payload

    @staticmethod
    def _default_client(timeout_seconds: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout_seconds)


def _names(records: Any, *, keys: tuple[str, ...]) -> list[str]:
    if not isinstance(records, list):
        return []
    names: list[str] = []
    for record in records:
        if not isinstance(record, dict):
            continue
        for key in keys:
            value = record.get(key)
            if isinstance(value, str) and value:
                names.append(value)
                break
    return names
