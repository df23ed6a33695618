"""MCP client sessions for configured tool servers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import timedelta
from typing import Any, Literal, Protocol, cast

import httpx
from mcp.client.session import ClientSession
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.shared.exceptions import McpError

from switchboard.models.servers import ServerConfig, ToolDescriptor, TransportKind

logger = logging.getLogger(__name__)

type ErrorCategory = Literal[
    "network_timeout",
    "http_status",
    "transport_error",
    "invalid_payload",
    "protocol_error",
]


class MCPConnectionError(RuntimeError):
    """Transport or protocol failure talking to one server."""

    def __init__(self, message: str, *, category: ErrorCategory) -> None:
        super().__init__(message)
        self.category = category


class MCPSession(Protocol):
    """Minimal MCP SDK session surface used by switchboard."""

    async def initialize(self) -> Any:
        """Run MCP initialize handshake."""

    async def list_tools(self, cursor: str | None = None) -> Any:
        """List one page of tools."""

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        read_timeout_seconds: timedelta | None = None,
    ) -> Any:
        """Call one tool."""


class MCPSessionFactory(Protocol):
    """Factory for server-bound MCP session contexts."""

    def __call__(self, config: ServerConfig) -> AbstractAsyncContextManager[MCPSession]:
        """Return async context manager for one server session."""


class SDKSessionFactory:
    """Open MCP SDK sessions over SSE or Streamable HTTP."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        sse_read_timeout_seconds: float = 300.0,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._sse_read_timeout_seconds = sse_read_timeout_seconds

    def __call__(self, config: ServerConfig) -> AbstractAsyncContextManager[MCPSession]:
        return self._open(config)

    @asynccontextmanager
    async def _open(self, config: ServerConfig) -> AsyncIterator[MCPSession]:
        headers = config.header_map() or None
        if config.transport is TransportKind.SSE:
            async with sse_client(
                url=config.url,
                headers=headers,
                timeout=self._timeout_seconds,
                sse_read_timeout=self._sse_read_timeout_seconds,
            ) as (read, write):
                async with ClientSession(read, write) as session:
                    yield cast(MCPSession, session)
        else:
            timeout = timedelta(seconds=self._timeout_seconds)
            async with streamablehttp_client(
                url=config.url,
                headers=headers,
                timeout=timeout,
            ) as (read, write, _):
                async with ClientSession(read, write) as session:
                    yield cast(MCPSession, session)


class ServerConnection:
    """One open MCP session, entered and exited by a dedicated task."""

    def __init__(
        self,
        config: ServerConfig,
        session_factory: MCPSessionFactory,
        *,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.config = config
        self._session_factory = session_factory
        self._timeout_seconds = timeout_seconds
        self._session: MCPSession | None = None
        self._task: asyncio.Task[None] | None = None
        self._closing = asyncio.Event()
        self.closed = False

    @property
    def session(self) -> MCPSession:
        if self._session is None:
            msg = f"Session for {self.config.name} is not open"
            raise MCPConnectionError(msg, category="transport_error")
        return self._session

    async def open(self) -> list[ToolDescriptor]:
        """Connect, initialize and fetch the tool catalog."""
        ready: asyncio.Future[list[ToolDescriptor]] = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._run(ready), name=f"mcp-session:{self.config.id}")
        try:
            return await asyncio.wait_for(ready, timeout=self._timeout_seconds)
        except TimeoutError as exc:
            await self._abort()
            msg = f"timed out after {self._timeout_seconds:g}s"
            raise MCPConnectionError(msg, category="network_timeout") from exc
        except (asyncio.CancelledError, MCPConnectionError):
            await self._abort()
            raise
        except Exception as exc:
            await self._abort()
            raise map_exception(exc) from exc

    async def close(self) -> None:
        """Signal the owning task to exit its session context and wait for it."""
        if self.closed:
            return
        self.closed = True
        self._closing.set()
        task = self._task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(task, timeout=self._timeout_seconds)
        except TimeoutError:
            logger.warning("Timed out closing MCP server %s", self.config.name)

    async def _run(self, ready: asyncio.Future[list[ToolDescriptor]]) -> None:
        try:
            async with self._session_factory(self.config) as session:
                await session.initialize()
                tools = await list_server_tools(session, self.config.id)
                if ready.done():
                    return
                self._session = session
                ready.set_result(tools)
                await self._closing.wait()
        except Exception as exc:  # noqa: BLE001
            if not ready.done():
                ready.set_exception(exc)
            else:
                logger.warning(
                    "Session for MCP server %s ended with error: %s",
                    self.config.name,
                    describe_exception(exc),
                )
        finally:
            self._session = None

    async def _abort(self) -> None:
        self.closed = True
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


async def list_server_tools(session: MCPSession, server_id: str) -> list[ToolDescriptor]:
    """Page through `tools/list` and return descriptors in server order."""
    tools: list[ToolDescriptor] = []
    seen_cursors: set[str] = set()
    cursor: str | None = None
    while True:
        if cursor is None:
            result = await session.list_tools()
        else:
            result = await session.list_tools(cursor=cursor)
        payload = to_json_object(result)
        raw_tools = payload.get("tools", [])
        if not isinstance(raw_tools, list):
            msg = "Invalid tools/list payload: expected tool list"
            raise MCPConnectionError(msg, category="invalid_payload")
        for raw in raw_tools:
            descriptor = _tool_descriptor(raw, server_id)
            if descriptor is not None:
                tools.append(descriptor)
        next_cursor = payload.get("nextCursor")
        if not isinstance(next_cursor, str) or not next_cursor or next_cursor in seen_cursors:
            return tools
        seen_cursors.add(next_cursor)
        cursor = next_cursor


async def probe_server(
    config: ServerConfig,
    session_factory: MCPSessionFactory,
    *,
    timeout_seconds: float = 10.0,
) -> list[ToolDescriptor]:
    """Open a throwaway session and return the server's tool catalog."""
    connection = ServerConnection(config, session_factory, timeout_seconds=timeout_seconds)
    tools = await connection.open()
    await connection.close()
    return tools


def _tool_descriptor(raw: Any, server_id: str) -> ToolDescriptor | None:
    payload = raw.model_dump(mode="json", exclude_none=True) if hasattr(raw, "model_dump") else raw
    if not isinstance(payload, dict) or not isinstance(payload.get("name"), str):
        logger.warning("Skipping malformed tool entry from MCP server %s", server_id)
        return None
    schema = payload.get("inputSchema")
    description = payload.get("description")
    return ToolDescriptor(
        name=payload["name"],
        description=description if isinstance(description, str) else "",
        input_schema=schema if isinstance(schema, dict) else {},
        server_id=server_id,
    )


def to_json_object(value: Any) -> dict[str, Any]:
    if hasattr(value, "model_dump"):
        payload = value.model_dump(mode="json", exclude_none=True)
    else:
        payload = value
    if not isinstance(payload, dict):
        msg = "Invalid MCP SDK response payload"
        raise MCPConnectionError(msg, category="invalid_payload")
    if not all(isinstance(key, str) for key in payload):
        msg = "Invalid MCP SDK response keys"
        raise MCPConnectionError(msg, category="invalid_payload")
    return cast(dict[str, Any], payload)


def map_exception(exc: BaseException) -> MCPConnectionError:
    """Categorize a failure raised while talking to a server."""
    if isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        return map_exception(exc.exceptions[0])
    if isinstance(exc, MCPConnectionError):
        return exc
    if isinstance(exc, TimeoutError | httpx.TimeoutException):
        return MCPConnectionError(describe_exception(exc), category="network_timeout")
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        return MCPConnectionError(f"http status {status_code}", category="http_status")
    if isinstance(exc, httpx.HTTPError):
        return MCPConnectionError(describe_exception(exc), category="transport_error")
    if isinstance(exc, McpError):
        return MCPConnectionError(describe_exception(exc), category="protocol_error")
    if isinstance(exc, ValueError | TypeError):
        return MCPConnectionError(describe_exception(exc), category="invalid_payload")
    return MCPConnectionError(describe_exception(exc), category="transport_error")


def describe_exception(exc: BaseException) -> str:
    """Readable message for exceptions whose str() is empty."""
    message = str(exc)
    if message:
        return message
    return f"{type(exc).__name__}: connection closed or timed out"

