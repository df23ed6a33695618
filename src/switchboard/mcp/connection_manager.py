"""Per-turn MCP connections and merged tool catalogs."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from uuid import uuid4

from switchboard.mcp.client import (
    MCPConnectionError,
    MCPSessionFactory,
    SDKSessionFactory,
    ServerConnection,
    map_exception,
    to_json_object,
)
from switchboard.mcp.status import ServerStatusTracker
from switchboard.models.servers import ServerConfig, ToolDescriptor

logger = logging.getLogger(__name__)

type Release = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class RemoteTool:
    """Tool advertised by one server, bound to that server's live session."""

    descriptor: ToolDescriptor
    connection: ServerConnection
    timeout_seconds: float = 60.0

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def description(self) -> str:
        return self.descriptor.description

    @property
    def input_schema(self) -> dict[str, Any]:
        return self.descriptor.input_schema

    @property
    def server_id(self) -> str:
        return self.descriptor.server_id

    async def invoke(self, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Call the tool and return the MCP result payload."""
        session = self.connection.session
        try:
            result = await session.call_tool(
                self.name,
                arguments or {},
                read_timeout_seconds=timedelta(seconds=self.timeout_seconds),
            )
        except Exception as exc:
            raise map_exception(exc) from exc
        return to_json_object(result)


type ToolMap = dict[str, RemoteTool]


class TurnConnections:
    """Connections opened for one turn, released exactly once."""

    def __init__(self, connections: Sequence[ServerConnection], *, turn_id: str) -> None:
        self._connections = list(connections)
        self._turn_id = turn_id
        self._release_task: asyncio.Task[None] | None = None
        self._watcher: asyncio.Task[Any] | None = None

    @property
    def released(self) -> bool:
        return self._release_task is not None

    def watch(self, cancel_event: asyncio.Event) -> None:
        """Release automatically once the turn's cancellation event fires."""
        if self._watcher is not None or self.released:
            return
        watcher = asyncio.create_task(cancel_event.wait(), name=f"turn-cancel:{self._turn_id}")
        watcher.add_done_callback(self._on_cancel)
        self._watcher = watcher

    async def release(self) -> None:
        """Disconnect every client; repeated or concurrent calls share one release."""
        await asyncio.shield(self._start_release())

    def _on_cancel(self, watcher: asyncio.Task[Any]) -> None:
        if watcher.cancelled():
            return
        logger.info("Turn %s cancelled; releasing MCP connections", self._turn_id)
        self._start_release()

    def _start_release(self) -> asyncio.Task[None]:
        if self._release_task is None:
            self._release_task = asyncio.get_running_loop().create_task(
                self._disconnect_all(),
                name=f"turn-release:{self._turn_id}",
            )
            watcher = self._watcher
            if watcher is not None and not watcher.done():
                watcher.cancel()
        return self._release_task

    async def _disconnect_all(self) -> None:
        results = await asyncio.gather(
            *(connection.close() for connection in self._connections),
            return_exceptions=True,
        )
        for connection, result in zip(self._connections, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "Error disconnecting MCP server %s: %s",
                    connection.config.name,
                    result,
                )
        logger.debug(
            "Turn %s released %d MCP connections", self._turn_id, len(self._connections)
        )


class ConnectionManager:
    """Open the selected servers for one turn and merge their tools.

    Unreachable servers are logged and skipped. Tool names colliding across
    servers resolve to the later server in config order.
    """

    def __init__(
        self,
        *,
        session_factory: MCPSessionFactory | None = None,
        tracker: ServerStatusTracker | None = None,
        timeout_seconds: float = 10.0,
        tool_timeout_seconds: float = 60.0,
    ) -> None:
        self._session_factory = session_factory or SDKSessionFactory(
            timeout_seconds=timeout_seconds
        )
        self._tracker = tracker
        self._timeout_seconds = timeout_seconds
        self._tool_timeout_seconds = tool_timeout_seconds
        self._reports: set[asyncio.Task[Any]] = set()

    async def initialize(
        self,
        configs: Sequence[ServerConfig],
        cancel_event: asyncio.Event | None = None,
    ) -> tuple[ToolMap, Release]:
        """Connect to every config and return (tool map, release)."""
        _ensure_unique_ids(configs)
        turn_id = str(uuid4())
        if cancel_event is not None and cancel_event.is_set():
            empty = TurnConnections([], turn_id=turn_id)
            return {}, empty.release

        opened: list[ServerConnection] = []
        connect = asyncio.ensure_future(
            asyncio.gather(*(self._connect(config, opened) for config in configs))
        )
        try:
            finished = await _wait_for_connects(connect, cancel_event)
        except asyncio.CancelledError:
            connect.cancel()
            await asyncio.wait({connect})
            await asyncio.gather(
                *(connection.close() for connection in opened),
                return_exceptions=True,
            )
            raise

        if not finished or (cancel_event is not None and cancel_event.is_set()):
            turn = TurnConnections(opened, turn_id=turn_id)
            logger.info(
                "Turn %s cancelled while connecting; releasing %d connections",
                turn_id,
                len(opened),
            )
            await turn.release()
            return {}, turn.release

        connected = [outcome for outcome in connect.result() if outcome is not None]
        turn = TurnConnections([connection for connection, _ in connected], turn_id=turn_id)

        tool_map = merge_tools(connected, tool_timeout_seconds=self._tool_timeout_seconds)
        if cancel_event is not None:
            turn.watch(cancel_event)
        logger.info(
            "Turn %s connected to %d/%d MCP servers with %d tools",
            turn_id,
            len(connected),
            len(configs),
            len(tool_map),
        )
        return tool_map, turn.release

    async def _connect(
        self,
        config: ServerConfig,
        opened: list[ServerConnection],
    ) -> tuple[ServerConnection, list[ToolDescriptor]] | None:
        connection = ServerConnection(
            config,
            self._session_factory,
            timeout_seconds=self._timeout_seconds,
        )
        try:
            tools = await connection.open()
        except MCPConnectionError as exc:
            logger.warning(
                "Skipping MCP server %s (%s): %s",
                config.name,
                exc.category,
                exc,
            )
            self._report(config, error=str(exc))
            return None
        opened.append(connection)
        self._report(config, tools=tools)
        return connection, tools

    def _report(
        self,
        config: ServerConfig,
        *,
        tools: list[ToolDescriptor] | None = None,
        error: str | None = None,
    ) -> None:
        """Hand the outcome to the tracker without waiting on its per-server lock."""
        if self._tracker is None:
            return
        task = asyncio.create_task(
            self._tracker.record_result(config, tools=tools, error=error),
            name=f"status-report:{config.id}",
        )
        self._reports.add(task)
        task.add_done_callback(self._report_done)

    def _report_done(self, task: asyncio.Task[Any]) -> None:
        self._reports.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Failed to record status (%s): %s", task.get_name(), exc)


def merge_tools(
    connected: Iterable[tuple[ServerConnection, list[ToolDescriptor]]],
    *,
    tool_timeout_seconds: float = 60.0,
) -> ToolMap:
    """Merge per-server catalogs by tool name; the later server wins."""
    merged: ToolMap = {}
    for connection, tools in connected:
        for descriptor in tools:
            previous = merged.get(descriptor.name)
            if previous is not None:
                logger.debug(
                    "Tool %s from server %s overrides server %s",
                    descriptor.name,
                    descriptor.server_id,
                    previous.server_id,
                )
            merged[descriptor.name] = RemoteTool(
                descriptor=descriptor,
                connection=connection,
                timeout_seconds=tool_timeout_seconds,
            )
    return merged


async def _wait_for_connects(
    connect: asyncio.Future[Any],
    cancel_event: asyncio.Event | None,
) -> bool:
    """Wait for every connect attempt; False when the turn was cancelled first."""
    if cancel_event is None:
        await asyncio.wait({connect})
        return True
    watcher = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({connect, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
    if connect.done():
        return True
    connect.cancel()
    await asyncio.wait({connect})
    return False


def _ensure_unique_ids(configs: Sequence[ServerConfig]) -> None:
    seen: set[str] = set()
    for config in configs:
        if config.id in seen:
            msg = f"Duplicate server id in config set: {config.id}"
            raise ValueError(msg)
        seen.add(config.id)
