"""Long-lived connection status tracking for configured tool servers."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from switchboard.mcp.client import (
    MCPSessionFactory,
    SDKSessionFactory,
    describe_exception,
    map_exception,
    probe_server,
)
from switchboard.models.servers import (
    ConnectionState,
    ServerConfig,
    ServerStatus,
    ToolDescriptor,
)

logger = logging.getLogger(__name__)

type ServerProbe = Callable[[ServerConfig], Awaitable[list[ToolDescriptor]]]

_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.ERROR, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.CONNECTED: frozenset(
        {ConnectionState.DISCONNECTED, ConnectionState.CONNECTING}
    ),
    ConnectionState.ERROR: frozenset({ConnectionState.CONNECTING, ConnectionState.DISCONNECTED}),
}


@dataclass(slots=True)
class StatusTransition:
    """One recorded state change for a server."""

    server_id: str
    from_state: ConnectionState
    to_state: ConnectionState
    reason: str
    timestamp: datetime


class StatusTransitionError(RuntimeError):
    """Raised for a state change the connection state machine does not allow."""

    def __init__(
        self,
        server_id: str,
        from_state: ConnectionState,
        to_state: ConnectionState,
    ) -> None:
        super().__init__(
            f"Illegal transition for {server_id}: {from_state.value} -> {to_state.value}"
        )
        self.server_id = server_id
        self.from_state = from_state
        self.to_state = to_state


class ServerStatusTracker:
    """Per-server connection state machine, serialized per server id.

    Operations on one id run one at a time behind that id's lock, so two
    concurrent starts cannot both probe the same server. Different ids do not
    block each other.
    """

    def __init__(
        self,
        *,
        probe: ServerProbe | None = None,
        session_factory: MCPSessionFactory | None = None,
        timeout_seconds: float = 10.0,
        settle_seconds: float = 0.5,
        max_events: int = 500,
    ) -> None:
        self._configs: dict[str, ServerConfig] = {}
        self._statuses: dict[str, ServerStatus] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._events: deque[StatusTransition] = deque(maxlen=max(1, max_events))
        self._session_factory = session_factory or SDKSessionFactory(
            timeout_seconds=timeout_seconds
        )
        self._probe = probe or self._default_probe
        self._timeout_seconds = timeout_seconds
        self._settle_seconds = settle_seconds

    def register(self, config: ServerConfig) -> ServerStatus:
        """Track a server config, keeping any existing status."""
        self._configs[config.id] = config
        existing = self._statuses.get(config.id)
        if existing is None:
            created = ServerStatus(server_id=config.id, name=config.name)
            self._statuses[config.id] = created
            return created
        if existing.name != config.name:
            existing = existing.model_copy(update={"name": config.name})
            self._statuses[config.id] = existing
        return existing

    def unregister(self, server_id: str) -> None:
        """Forget a server whose config was deleted."""
        self._configs.pop(server_id, None)
        self._statuses.pop(server_id, None)
        lock = self._locks.get(server_id)
        if lock is not None and not lock.locked():
            del self._locks[server_id]

    def sync(self, configs: Iterable[ServerConfig]) -> list[ServerStatus]:
        """Align tracked servers with the current config set."""
        current: set[str] = set()
        for config in configs:
            self.register(config)
            current.add(config.id)
        for stale in [server_id for server_id in self._statuses if server_id not in current]:
            self.unregister(stale)
        return self.list_statuses()

    def get(self, server_id: str) -> ServerStatus | None:
        return self._statuses.get(server_id)

    def list_statuses(self) -> list[ServerStatus]:
        """Status snapshots in registration order."""
        return list(self._statuses.values())

    def list_events(
        self,
        *,
        server_id: str | None = None,
        limit: int | None = None,
    ) -> list[StatusTransition]:
        """List recorded transitions with optional filtering."""
        events = [
            event for event in self._events if server_id is None or event.server_id == server_id
        ]
        if limit is not None:
            if limit <= 0:
                return []
            events = events[-limit:]
        return events

    async def start_server(self, server_id: str) -> ServerStatus | None:
        """Connect a disconnected or failed server; no-op when already connected."""
        if server_id not in self._configs:
            return None
        async with self._lock_for(server_id):
            status = self._statuses.get(server_id)
            if status is None or status.state is ConnectionState.CONNECTED:
                return status
            if status.state is not ConnectionState.CONNECTING:
                self._transition(server_id, ConnectionState.CONNECTING, reason="start")
            return await self._connect(server_id)

    async def stop_server(self, server_id: str) -> ServerStatus | None:
        """Mark a server disconnected and drop its discovered tools."""
        if server_id not in self._configs:
            return None
        async with self._lock_for(server_id):
            status = self._statuses.get(server_id)
            if status is None or status.state is ConnectionState.DISCONNECTED:
                return status
            return self._transition(server_id, ConnectionState.DISCONNECTED, reason="stop")

    async def restart_server(self, server_id: str) -> ServerStatus | None:
        """Tear down, wait for the settle window, then connect again."""
        if server_id not in self._configs:
            return None
        async with self._lock_for(server_id):
            status = self._statuses.get(server_id)
            if status is None:
                return None
            previous = status.state
            if previous is not ConnectionState.CONNECTING:
                self._transition(server_id, ConnectionState.CONNECTING, reason="restart")
            if previous in {ConnectionState.CONNECTED, ConnectionState.CONNECTING}:
                await asyncio.sleep(self._settle_seconds)
            return await self._connect(server_id)

    async def update_status(
        self,
        server_id: str,
        state: ConnectionState,
        message: str | None = None,
        *,
        tools: Iterable[ToolDescriptor] | None = None,
    ) -> ServerStatus | None:
        """Apply an explicit state change; illegal changes raise StatusTransitionError."""
        if server_id not in self._configs:
            return None
        async with self._lock_for(server_id):
            return self._transition(
                server_id,
                state,
                reason=message or "update",
                message=message,
                tools=tools,
            )

    async def record_result(
        self,
        config: ServerConfig,
        *,
        tools: Iterable[ToolDescriptor] | None = None,
        error: str | None = None,
    ) -> ServerStatus | None:
        """Reflect the outcome of a per-turn connection attempt."""
        if config.id not in self._configs:
            self.register(config)
        target = ConnectionState.CONNECTED if error is None else ConnectionState.ERROR
        async with self._lock_for(config.id):
            status = self._statuses.get(config.id)
            if status is None:
                return None
            if status.state not in {target, ConnectionState.CONNECTING}:
                self._transition(config.id, ConnectionState.CONNECTING, reason="turn connect")
            return self._transition(
                config.id,
                target,
                reason=error or "connected",
                message=error,
                tools=tools,
            )

    async def _connect(self, server_id: str) -> ServerStatus | None:
        config = self._configs.get(server_id)
        if config is None:
            return None
        tools: list[ToolDescriptor] = []
        message: str | None = None
        try:
            tools = await asyncio.wait_for(self._probe(config), timeout=self._timeout_seconds)
        except TimeoutError:
            message = f"timed out after {self._timeout_seconds:g}s"
        except Exception as exc:  # noqa: BLE001
            message = describe_exception(map_exception(exc))
        current = self._statuses.get(server_id)
        if current is None or current.state is not ConnectionState.CONNECTING:
            # Unregistered or reset while the probe was running.
            return current
        if message is None:
            logger.info("MCP server %s connected with %d tools", config.name, len(tools))
            return self._transition(
                server_id,
                ConnectionState.CONNECTED,
                reason="connected",
                tools=tools,
            )
        logger.warning("MCP server %s failed to connect: %s", config.name, message)
        return self._transition(server_id, ConnectionState.ERROR, reason=message, message=message)

    def _transition(
        self,
        server_id: str,
        to_state: ConnectionState,
        *,
        reason: str,
        message: str | None = None,
        tools: Iterable[ToolDescriptor] | None = None,
    ) -> ServerStatus | None:
        status = self._statuses.get(server_id)
        if status is None:
            return None
        from_state = status.state
        if to_state is not from_state and to_state not in _ALLOWED_TRANSITIONS[from_state]:
            raise StatusTransitionError(server_id, from_state, to_state)

        if tools is not None:
            next_tools = tuple(tools)
        elif to_state in {ConnectionState.DISCONNECTED, ConnectionState.ERROR}:
            next_tools = ()
        else:
            next_tools = status.tools
        now = datetime.now(UTC)
        updated = status.model_copy(
            update={
                "state": to_state,
                "last_error": (message or "connection failed")
                if to_state is ConnectionState.ERROR
                else None,
                "tools": next_tools,
                "updated_at": now,
            }
        )
        self._statuses[server_id] = updated
        if to_state is not from_state:
            self._events.append(
                StatusTransition(
                    server_id=server_id,
                    from_state=from_state,
                    to_state=to_state,
                    reason=reason,
                    timestamp=now,
                )
            )
        return updated

    def _lock_for(self, server_id: str) -> asyncio.Lock:
        return self._locks.setdefault(server_id, asyncio.Lock())

    async def _default_probe(self, config: ServerConfig) -> list[ToolDescriptor]:
        return await probe_server(
            config,
            self._session_factory,
            timeout_seconds=self._timeout_seconds,
        )
