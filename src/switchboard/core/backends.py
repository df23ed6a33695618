"""OpenAI-compatible inference backend handles."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from openai import AsyncOpenAI

PLACEHOLDER_API_KEY = "not-needed"


@dataclass(frozen=True, slots=True)
class BackendSpec:
    """Everything needed to build a client for one model."""

    provider: str
    base_url: str
    api_model: str
    credential: str | None = None


@dataclass(slots=True)
class InferenceBackend:
    """Async OpenAI client bound to one model name."""

    spec: BackendSpec
    client: Any

    @property
    def model(self) -> str:
        return self.spec.api_model

    async def chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> Any:
        """Forward a chat completion request for the bound model."""
        return await self.client.chat.completions.create(
            model=self.spec.api_model,
            messages=messages,
            **kwargs,
        )


type BackendFactory = Callable[[BackendSpec], Any]


def openai_backend(spec: BackendSpec) -> InferenceBackend:
    client = AsyncOpenAI(
        base_url=spec.base_url,
        api_key=spec.credential or PLACEHOLDER_API_KEY,
    )
    return InferenceBackend(spec=spec, client=client)


def normalize_openai_base_url(raw: str) -> str:
    """Ensure an OpenAI-compatible base URL ends with `/v1`."""
    trimmed = raw.strip().rstrip("/")
    if trimmed.endswith("/v1"):
        return trimmed
    return f"{trimmed}/v1"
