from pathlib import Path

import pytest
from pydantic import ValidationError

from switchboard.config import Settings

_ENV_NAMES = (
    "GROQ_API_KEY",
    "XAI_API_KEY",
    "LOCAL_OPENAI_BASE_URL",
    "LOCAL_OPENAI_API_KEY",
    "SWITCHBOARD_DB_PATH",
    "SWITCHBOARD_USER_ID",
    "SWITCHBOARD_DEFAULT_MODEL",
    "SWITCHBOARD_CONNECT_TIMEOUT_SECONDS",
    "SWITCHBOARD_DISCOVERY_TIMEOUT_SECONDS",
    "SWITCHBOARD_RESTART_SETTLE_SECONDS",
    "SWITCHBOARD_REFRESH_INTERVAL_SECONDS",
    "SWITCHBOARD_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_settings_defaults(clean_env: pytest.MonkeyPatch) -> None:
    settings = Settings()

    assert settings.default_model == "kimi-k2"
    assert settings.user_id == "default-user"
    assert settings.db_path == Path(".switchboard/switchboard.db")
    assert settings.connect_timeout_seconds == 10.0
    assert settings.refresh_interval_seconds == 0.0
    assert settings.groq_api_key is None


def test_settings_read_environment_values(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("GROQ_API_KEY", "groq")
    clean_env.setenv("XAI_API_KEY", "xai")
    clean_env.setenv("LOCAL_OPENAI_BASE_URL", "http://gpu-box:8000")
    clean_env.setenv("SWITCHBOARD_DB_PATH", "/tmp/sb.db")
    clean_env.setenv("SWITCHBOARD_CONNECT_TIMEOUT_SECONDS", "2.5")
    clean_env.setenv("SWITCHBOARD_REFRESH_INTERVAL_SECONDS", "60")
    clean_env.setenv("SWITCHBOARD_LOG_LEVEL", "debug")

    settings = Settings()

    assert settings.groq_api_key == "groq"
    assert settings.xai_api_key == "xai"
    assert settings.local_openai_base_url == "http://gpu-box:8000"
    assert settings.db_path == Path("/tmp/sb.db")
    assert settings.connect_timeout_seconds == 2.5
    assert settings.refresh_interval_seconds == 60.0
    assert settings.log_level == "debug"


def test_settings_ignore_empty_values(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("GROQ_API_KEY", "")
    clean_env.setenv("SWITCHBOARD_USER_ID", "")

    settings = Settings()

    assert settings.groq_api_key is None
    assert settings.user_id == "default-user"


def test_settings_accept_field_names_as_keywords(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("GROQ_API_KEY", "from-env")

    settings = Settings(groq_api_key="explicit", local_openai_base_url=None)

    assert settings.groq_api_key == "explicit"
    assert settings.local_openai_base_url is None


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("SWITCHBOARD_CONNECT_TIMEOUT_SECONDS", "0"),
        ("SWITCHBOARD_DISCOVERY_TIMEOUT_SECONDS", "-1"),
        ("SWITCHBOARD_RESTART_SETTLE_SECONDS", "soon"),
    ],
)
def test_settings_reject_invalid_numbers(
    clean_env: pytest.MonkeyPatch,
    name: str,
    value: str,
) -> None:
    clean_env.setenv(name, value)

    with pytest.raises(ValidationError):
        Settings()
