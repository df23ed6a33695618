"""Async SQLite access to server and endpoint configuration."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import aiosqlite

from switchboard.db.migrations import apply_migrations
from switchboard.models.endpoints import EndpointConfig
from switchboard.models.servers import KeyValue, LaunchSpec, ServerConfig, TransportKind


class SQLiteConfigStore:
    """Per-user tool server and inference endpoint records."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        try:
            await apply_migrations(conn)
            yield conn
        finally:
            await conn.close()

    async def upsert_server_config(self, user_id: str, config: ServerConfig) -> None:
        async with self.connection() as conn:
            cursor = await conn.execute(
                "SELECT COALESCE(MAX(position), -1) + 1 FROM mcp_servers WHERE user_id = ?",
                (user_id,),
            )
            row = await cursor.fetchone()
            next_position = int(row[0]) if row is not None else 0
            await conn.execute(
                """
                INSERT INTO mcp_servers(id, user_id, name, transport, url, headers, launch, position)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    transport=excluded.transport,
                    url=excluded.url,
                    headers=excluded.headers,
                    launch=excluded.launch
                """,
                (
                    config.id,
                    user_id,
                    config.name,
                    config.transport.value,
                    config.url,
                    json.dumps([entry.model_dump() for entry in config.headers]),
                    config.launch.model_dump_json() if config.launch is not None else None,
                    next_position,
                ),
            )
            await conn.commit()

    async def list_server_configs(self, user_id: str) -> list[ServerConfig]:
        async with self.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM mcp_servers WHERE user_id = ? ORDER BY position ASC",
                (user_id,),
            )
            rows = await cursor.fetchall()
        return [self._server_from_row(row) for row in rows]

    async def get_server_config(self, user_id: str, server_id: str) -> ServerConfig | None:
        async with self.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM mcp_servers WHERE user_id = ? AND id = ?",
                (user_id, server_id),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._server_from_row(row)

    async def delete_server_config(self, user_id: str, server_id: str) -> None:
        async with self.connection() as conn:
            await conn.execute(
                "DELETE FROM mcp_servers WHERE user_id = ? AND id = ?",
                (user_id, server_id),
            )
            await conn.commit()

    async def upsert_endpoint(self, endpoint: EndpointConfig) -> None:
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO model_endpoints(
                    id,
                    user_id,
                    name,
                    base_url,
                    api_key,
                    is_active,
                    endpoint_type,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    base_url=excluded.base_url,
                    api_key=excluded.api_key,
                    is_active=excluded.is_active,
                    endpoint_type=excluded.endpoint_type,
                    updated_at=excluded.updated_at
                """,
                (
                    endpoint.id,
                    endpoint.user_id,
                    endpoint.name,
                    endpoint.base_url,
                    endpoint.api_key,
                    int(endpoint.is_active),
                    endpoint.endpoint_type,
                    endpoint.created_at.isoformat(),
                    endpoint.updated_at.isoformat(),
                ),
            )
            await conn.commit()

    async def list_endpoints(
        self,
        user_id: str,
        *,
        active_only: bool = False,
    ) -> list[EndpointConfig]:
        query = "SELECT * FROM model_endpoints WHERE user_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY created_at ASC"

        async with self.connection() as conn:
            cursor = await conn.execute(query, (user_id,))
            rows = await cursor.fetchall()
        return [self._endpoint_from_row(row) for row in rows]

    async def get_endpoint(self, user_id: str, endpoint_id: str) -> EndpointConfig | None:
        async with self.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM model_endpoints WHERE user_id = ? AND id = ?",
                (user_id, endpoint_id),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return self._endpoint_from_row(row)

    async def delete_endpoint(self, user_id: str, endpoint_id: str) -> None:
        async with self.connection() as conn:
            await conn.execute(
                "DELETE FROM model_endpoints WHERE user_id = ? AND id = ?",
                (user_id, endpoint_id),
            )
            await conn.commit()

    @staticmethod
    def _server_from_row(row: aiosqlite.Row) -> ServerConfig:
        headers = json.loads(str(row["headers"]))
        return ServerConfig(
            id=str(row["id"]),
            name=str(row["name"]),
            transport=TransportKind(str(row["transport"])),
            url=str(row["url"]),
            headers=tuple(KeyValue.model_validate(entry) for entry in headers),
            launch=LaunchSpec.model_validate_json(str(row["launch"])) if row["launch"] else None,
        )

    @staticmethod
    def _endpoint_from_row(row: aiosqlite.Row) -> EndpointConfig:
        return EndpointConfig(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=str(row["name"]),
            base_url=str(row["base_url"]),
            api_key=str(row["api_key"]) if row["api_key"] else None,
            is_active=bool(row["is_active"]),
            endpoint_type=str(row["endpoint_type"]),
            created_at=datetime.fromisoformat(str(row["created_at"])),
            updated_at=datetime.fromisoformat(str(row["updated_at"])),
        )
