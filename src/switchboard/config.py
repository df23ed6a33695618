"""Runtime settings for the switchboard service."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide configuration.

    Switchboard options read `SWITCHBOARD_<FIELD>` variables. Provider
    credentials keep their conventional unprefixed names.
    """

    groq_api_key: str | None = Field(default=None, validation_alias=AliasChoices("GROQ_API_KEY"))
    xai_api_key: str | None = Field(default=None, validation_alias=AliasChoices("XAI_API_KEY"))
    local_openai_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("LOCAL_OPENAI_BASE_URL"),
    )
    local_openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("LOCAL_OPENAI_API_KEY"),
    )
    db_path: Path = Path(".switchboard/switchboard.db")
    user_id: str = "default-user"
    default_model: str = "kimi-k2"
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    discovery_timeout_seconds: float = Field(default=5.0, gt=0)
    restart_settle_seconds: float = Field(default=0.5, ge=0)
    refresh_interval_seconds: float = Field(default=0.0, ge=0)
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="SWITCHBOARD_",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
