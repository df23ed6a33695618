from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from switchboard.db.store import SQLiteConfigStore
from switchboard.models.endpoints import EndpointConfig
from switchboard.models.servers import KeyValue, LaunchSpec, ServerConfig, TransportKind


@pytest.mark.asyncio
async def test_store_server_config_crud(tmp_path: Path) -> None:
    store = SQLiteConfigStore(tmp_path / "switchboard.db")
    config = ServerConfig(
        id="docs",
        name="Docs",
        transport=TransportKind.HTTP,
        url="http://docs.local/mcp",
        headers=(KeyValue(key="X-Team", value="core"), KeyValue(key="X-Team", value="infra")),
        launch=LaunchSpec(command="npx", args=("docs-mcp",), env=(KeyValue(key="A", value="1"),)),
    )

    await store.upsert_server_config("alice", config)

    fetched = await store.get_server_config("alice", "docs")
    assert fetched == config
    assert fetched is not None
    assert fetched.header_map() == {"X-Team": "infra"}
    assert await store.get_server_config("bob", "docs") is None

    await store.delete_server_config("alice", "docs")
    assert await store.get_server_config("alice", "docs") is None


@pytest.mark.asyncio
async def test_store_lists_server_configs_in_insertion_order(tmp_path: Path) -> None:
    store = SQLiteConfigStore(tmp_path / "switchboard.db")
    for server_id in ("zeta", "alpha", "mid"):
        await store.upsert_server_config(
            "alice",
            ServerConfig(id=server_id, name=server_id, url=f"http://{server_id}.local/sse"),
        )

    renamed = ServerConfig(id="zeta", name="Zeta", url="http://zeta.local/sse")
    await store.upsert_server_config("alice", renamed)

    listed = await store.list_server_configs("alice")
    assert [config.id for config in listed] == ["zeta", "alpha", "mid"]
    assert listed[0].name == "Zeta"
    assert listed[0].transport is TransportKind.SSE
    assert await store.list_server_configs("bob") == []


@pytest.mark.asyncio
async def test_store_endpoint_filters(tmp_path: Path) -> None:
    store = SQLiteConfigStore(tmp_path / "switchboard.db")
    created = datetime.now(UTC)
    active = EndpointConfig(
        user_id="alice",
        name="Ollama",
        base_url="http://localhost:11434",
        is_active=True,
        created_at=created,
    )
    inactive = EndpointConfig(
        user_id="alice",
        name="LM Studio",
        base_url="http://localhost:1234/v1",
        api_key="lm-key",
        created_at=created + timedelta(seconds=1),
    )
    await store.upsert_endpoint(active)
    await store.upsert_endpoint(inactive)

    listed = await store.list_endpoints("alice")
    assert [endpoint.name for endpoint in listed] == ["Ollama", "LM Studio"]
    assert listed[0].api_key is None
    assert listed[1].api_key == "lm-key"

    only_active = await store.list_endpoints("alice", active_only=True)
    assert [endpoint.id for endpoint in only_active] == [active.id]

    fetched = await store.get_endpoint("alice", inactive.id)
    assert fetched is not None
    assert fetched.base_url == "http://localhost:1234/v1"
    assert fetched.endpoint_type == "ollama"
    assert await store.get_endpoint("bob", inactive.id) is None
    assert await store.get_endpoint("alice", "missing") is None

    await store.delete_endpoint("alice", active.id)
    assert [endpoint.id for endpoint in await store.list_endpoints("alice")] == [inactive.id]


@pytest.mark.asyncio
async def test_store_endpoint_update_keeps_created_at(tmp_path: Path) -> None:
    store = SQLiteConfigStore(tmp_path / "switchboard.db")
    endpoint = EndpointConfig(user_id="alice", name="Ollama", base_url="http://localhost:11434")
    await store.upsert_endpoint(endpoint)

    endpoint.is_active = True
    endpoint.touch()
    await store.upsert_endpoint(endpoint)

    [stored] = await store.list_endpoints("alice")
    assert stored.is_active is True
    assert stored.created_at == endpoint.created_at
    assert stored.updated_at == endpoint.updated_at
