"""Built-in hosted models."""

from __future__ import annotations

from dataclasses import dataclass

from switchboard.config import Settings
from switchboard.core.backends import BackendSpec, normalize_openai_base_url
from switchboard.core.model_registry import RegistryEntry
from switchboard.models.endpoints import ModelMetadata

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
XAI_BASE_URL = "https://api.x.ai/v1"
LEGACY_LOCAL_MODEL_ID = "gpt-oss-20b"


@dataclass(frozen=True, slots=True)
class BuiltinModel:
    model_id: str
    provider: str
    base_url: str
    api_model: str
    credential_setting: str
    display_name: str
    description: str
    api_version: str
    capabilities: frozenset[str]


BUILTIN_MODELS: tuple[BuiltinModel, ...] = (
    BuiltinModel(
        model_id="qwen3-32b",
        provider="Groq",
        base_url=GROQ_BASE_URL,
        api_model="qwen/qwen3-32b",
        credential_setting="groq_api_key",
        display_name="Qwen 3 32B",
        description=(
            "Latest version of Alibaba's Qwen 32B with strong reasoning and coding capabilities."
        ),
        api_version="qwen3-32b",
        capabilities=frozenset({"Reasoning", "Efficient", "Agentic"}),
    ),
    BuiltinModel(
        model_id="grok-3-mini",
        provider="XAI",
        base_url=XAI_BASE_URL,
        api_model="grok-3-mini-latest",
        credential_setting="xai_api_key",
        display_name="Grok 3 Mini",
        description=(
            "Latest version of XAI's Grok 3 Mini with strong reasoning and coding capabilities."
        ),
        api_version="grok-3-mini-latest",
        capabilities=frozenset({"Reasoning", "Efficient", "Agentic"}),
    ),
    BuiltinModel(
        model_id="kimi-k2",
        provider="Groq",
        base_url=GROQ_BASE_URL,
        api_model="moonshotai/kimi-k2-instruct",
        credential_setting="groq_api_key",
        display_name="Kimi K2",
        description=(
            "Latest version of Moonshot AI's Kimi K2 with good balance of capabilities."
        ),
        api_version="kimi-k2-instruct",
        capabilities=frozenset({"Balanced", "Efficient", "Agentic"}),
    ),
    BuiltinModel(
        model_id="llama4",
        provider="Groq",
        base_url=GROQ_BASE_URL,
        api_model="meta-llama/llama-4-scout-17b-16e-instruct",
        credential_setting="groq_api_key",
        display_name="Llama 4",
        description="Latest version of Meta's Llama 4 with good balance of capabilities.",
        api_version="llama-4-scout-17b-16e-instruct",
        capabilities=frozenset({"Balanced", "Efficient", "Agentic"}),
    ),
)


def builtin_entries(settings: Settings) -> list[RegistryEntry]:
    """Registry entries for the hosted catalog plus the optional legacy local model."""
    entries = [
        RegistryEntry(
            model_id=model.model_id,
            spec=BackendSpec(
                provider=model.provider,
                base_url=model.base_url,
                api_model=model.api_model,
                credential=getattr(settings, model.credential_setting),
            ),
            metadata=ModelMetadata(
                provider=model.provider,
                display_name=model.display_name,
                description=model.description,
                api_version=model.api_version,
                capabilities=model.capabilities,
            ),
        )
        for model in BUILTIN_MODELS
    ]
    if settings.local_openai_base_url:
        entries.append(
            RegistryEntry(
                model_id=LEGACY_LOCAL_MODEL_ID,
                spec=BackendSpec(
                    provider="Local",
                    base_url=normalize_openai_base_url(settings.local_openai_base_url),
                    api_model="gpt-oss:20b",
                    credential=settings.local_openai_api_key,
                ),
                metadata=ModelMetadata(
                    provider="Local",
                    display_name="gpt-oss:20b",
                    description=(
                        "Local OpenAI-compatible model. Configure LOCAL_OPENAI_BASE_URL "
                        "and optional LOCAL_OPENAI_API_KEY."
                    ),
                    api_version="OpenAI-compatible",
                    capabilities=frozenset({"Reasoning", "Code", "Efficient"}),
                ),
            )
        )
    return entries


def builtin_aliases() -> dict[str, str]:
    """Short API version names for the hosted catalog."""
    return {model.api_version: model.model_id for model in BUILTIN_MODELS}
