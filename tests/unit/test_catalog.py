from types import SimpleNamespace
from typing import Any

import pytest

from switchboard.config import Settings
from switchboard.core.backends import (
    PLACEHOLDER_API_KEY,
    BackendSpec,
    InferenceBackend,
    normalize_openai_base_url,
    openai_backend,
)
from switchboard.core.catalog import (
    LEGACY_LOCAL_MODEL_ID,
    builtin_aliases,
    builtin_entries,
)


def test_builtin_catalog_order_and_credentials() -> None:
    entries = builtin_entries(Settings(groq_api_key="groq", xai_api_key="xai"))

    assert [entry.model_id for entry in entries] == ["qwen3-32b", "grok-3-mini", "kimi-k2", "llama4"]
    credentials = {entry.model_id: entry.spec.credential for entry in entries}
    assert credentials == {
        "qwen3-32b": "groq",
        "grok-3-mini": "xai",
        "kimi-k2": "groq",
        "llama4": "groq",
    }
    assert all(entry.builtin for entry in entries)


def test_legacy_local_model_requires_base_url() -> None:
    assert LEGACY_LOCAL_MODEL_ID not in {
        entry.model_id for entry in builtin_entries(Settings(local_openai_base_url=None))
    }

    entries = builtin_entries(
        Settings(local_openai_base_url="http://gpu-box:8000/", local_openai_api_key="k")
    )
    legacy = entries[-1]
    assert legacy.model_id == LEGACY_LOCAL_MODEL_ID
    assert legacy.spec.base_url == "http://gpu-box:8000/v1"
    assert legacy.spec.api_model == "gpt-oss:20b"
    assert legacy.spec.credential == "k"
    assert legacy.metadata.provider == "Local"


def test_builtin_aliases_map_api_versions() -> None:
    aliases = builtin_aliases()

    assert aliases["kimi-k2-instruct"] == "kimi-k2"
    assert aliases["grok-3-mini-latest"] == "grok-3-mini"


def test_normalize_openai_base_url() -> None:
    assert normalize_openai_base_url("http://host:11434") == "http://host:11434/v1"
    assert normalize_openai_base_url("http://host:11434/") == "http://host:11434/v1"
    assert normalize_openai_base_url("http://host:11434/v1/") == "http://host:11434/v1"


def test_openai_backend_uses_placeholder_key_without_credential() -> None:
    spec = BackendSpec(provider="Ollama", base_url="http://host:11434/v1", api_model="llama3.2")

    backend = openai_backend(spec)

    assert isinstance(backend, InferenceBackend)
    assert backend.model == "llama3.2"
    assert backend.client.api_key == PLACEHOLDER_API_KEY
    assert str(backend.client.base_url).rstrip("/") == "http://host:11434/v1"


class RecordingCompletions:
    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> dict[str, Any]:
        self.requests.append(kwargs)
        return {"choices": [{"message": {"role": "assistant", "content": "hi"}}]}


@pytest.mark.asyncio
async def test_backend_chat_sends_bound_model_name() -> None:
    completions = RecordingCompletions()
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    spec = BackendSpec(
        provider="Groq",
        base_url="https://api.groq.com/openai/v1",
        api_model="qwen/qwen3-32b",
    )
    backend = InferenceBackend(spec=spec, client=client)
    messages = [{"role": "user", "content": "hello"}]

    response = await backend.chat(messages, temperature=0.2)

    assert response["choices"][0]["message"]["content"] == "hi"
    assert completions.requests == [
        {"model": "qwen/qwen3-32b", "messages": messages, "temperature": 0.2}
    ]
