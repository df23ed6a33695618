import pytest
from pydantic import ValidationError

from switchboard.models.servers import (
    ConnectionState,
    KeyValue,
    ServerConfig,
    ServerStatus,
    TransportKind,
)


def test_server_config_defaults_to_sse() -> None:
    config = ServerConfig(id="docs", name="Docs", url="http://docs.local/sse")

    assert config.transport is TransportKind.SSE
    assert config.headers == ()
    assert config.launch is None


def test_header_map_later_entries_win_and_blank_keys_are_dropped() -> None:
    config = ServerConfig(
        id="docs",
        name="Docs",
        url="http://docs.local/sse",
        headers=(
            KeyValue(key="Authorization", value="Bearer old"),
            KeyValue(key="", value="ignored"),
            KeyValue(key="Authorization", value="Bearer new"),
        ),
    )

    assert config.header_map() == {"Authorization": "Bearer new"}


@pytest.mark.parametrize(
    "payload",
    [
        {"id": "", "name": "Docs", "url": "http://docs.local"},
        {"id": "docs", "name": "Docs", "url": ""},
        {"id": "docs", "name": "Docs", "url": "http://docs.local", "transport": "stdio"},
    ],
)
def test_server_config_validation(payload: dict[str, str]) -> None:
    with pytest.raises(ValidationError):
        ServerConfig.model_validate(payload)


def test_server_status_is_immutable() -> None:
    status = ServerStatus(server_id="docs", name="Docs")

    assert status.state is ConnectionState.DISCONNECTED
    with pytest.raises(ValidationError):
        status.state = ConnectionState.CONNECTED  # type: ignore[misc]
