"""
Session Manager

Owns one ProtocolSession per configured tool server and publishes a single
aggregated catalog of their tools.

Catalog rules:
    - only READY sessions contribute tools
    - servers with ``toolPrefix`` expose ``mcp_<prefix>_<remote>``
    - otherwise the canonical remote name is used, unless another server or a
      local built-in offers the same name; then every colliding remote tool is
      exposed as ``mcp_<serverId>_<remote>``
    - anything still colliding is dropped (first server in config order wins)

The catalog is rebuilt whenever a session finishes discovery, rediscovers,
faults or closes. Each rebuild produces a new read-only mapping that replaces
the previous one in a single assignment, so readers always see a complete
snapshot.
"""

import asyncio
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from loguru import logger

from tool_gateway.config import ServerConfig
from tool_gateway.errors import (
    GatewayError,
    ServerConnectionError,
    ServerUnavailable,
    ToolNotFound,
    TransportError,
)
from tool_gateway.protocol.messages import ToolInfo
from tool_gateway.protocol.session import ProtocolSession, TransportFactory
from tool_gateway.tools.naming import normalize_tool_name, qualify_remote_name
from tool_gateway.tools.policy import ConfirmationRule, RiskClass
from tool_gateway.transport import create_transport


@dataclass(frozen=True)
class CatalogEntry:
    qualified_name: str
    server_id: str
    remote_name: str
    tool: ToolInfo


class SessionManager:
    """
    Fleet of ProtocolSessions behind one consistent catalog.

    Args:
        local_names: Canonical names of local built-ins (they take precedence)
        max_concurrent_connects: Startup connect parallelism, 0 = unbounded
        handshake_timeout: Passed to every ProtocolSession
        tool_timeout: Default per-invocation bound passed to every ProtocolSession
        transport_factory: Builds transports; tests inject in-memory peers
    """

    def __init__(
        self,
        *,
        local_names: Iterable[str] = (),
        max_concurrent_connects: int = 0,
        handshake_timeout: float = 10.0,
        tool_timeout: float = 30.0,
        transport_factory: TransportFactory = create_transport,
    ) -> None:
        self._local_names = frozenset(local_names)
        self._max_concurrent_connects = max_concurrent_connects
        self._handshake_timeout = handshake_timeout
        self._tool_timeout = tool_timeout
        self._transport_factory = transport_factory

        self._sessions: dict[str, ProtocolSession] = {}
        self._catalog: Mapping[str, CatalogEntry] = MappingProxyType({})
        self._rules: tuple[ConfirmationRule, ...] = ()
        self._shadowed: frozenset[str] = frozenset()

    # ========== Lifecycle ==========

    async def initialize(self, configs: Iterable[ServerConfig]) -> None:
        """
        Connect every configured server concurrently. Never raises for a failing server.

        Calling it again replaces the whole fleet; the previous sessions are closed first.
        """
        sessions = [self._create_session(config) for config in configs]
        displaced, self._sessions = list(self._sessions.values()), {}
        if displaced:
            logger.info(f"[SessionManager] Re-initializing, closing {len(displaced)} previous session(s)")
            await self._close_all(displaced)
        self._sessions = {session.server_id: session for session in sessions}

        await self._connect_all(sessions)
        self._rebuild_catalog()

        ready = sum(1 for session in sessions if session.is_ready)
        logger.info(
            f"[SessionManager] Initialized {ready}/{len(sessions)} server(s), "
            f"{len(self._catalog)} remote tool(s)"
        )

    async def reconcile(self, configs: Iterable[ServerConfig]) -> dict[str, list[str]]:
        """
        Apply a new server list: start added servers, close removed ones,
        restart servers whose configuration changed. Unchanged sessions are
        left running.

        Returns:
            {"added": [...], "removed": [...], "restarted": [...]}
        """
        new_configs = list(configs)
        new_ids = {config.id for config in new_configs}

        removed = [server_id for server_id in self._sessions if server_id not in new_ids]
        added = [config for config in new_configs if config.id not in self._sessions]
        changed = [
            config
            for config in new_configs
            if config.id in self._sessions and self._sessions[config.id].config != config
        ]

        retired = [self._sessions[server_id] for server_id in removed]
        retired += [self._sessions[config.id] for config in changed]
        fresh = {config.id: self._create_session(config) for config in (*added, *changed)}

        self._sessions = {
            config.id: fresh.get(config.id) or self._sessions[config.id] for config in new_configs
        }
        self._rebuild_catalog()

        await self._close_all(retired)
        await self._connect_all(list(fresh.values()))
        self._rebuild_catalog()

        report = {
            "added": [config.id for config in added],
            "removed": removed,
            "restarted": [config.id for config in changed],
        }
        logger.info(f"[SessionManager] Reconciled: {report}")
        return report

    async def shutdown(self) -> None:
        sessions, self._sessions = list(self._sessions.values()), {}
        self._rebuild_catalog()
        await self._close_all(sessions)
        logger.info(f"[SessionManager] Shut down {len(sessions)} session(s)")

    # ========== Catalog ==========

    def catalog(self) -> Mapping[str, CatalogEntry]:
        """Current snapshot: qualified name → CatalogEntry. Never mutated after publication."""
        return self._catalog

    def confirmation_rules(self) -> tuple[ConfirmationRule, ...]:
        """Exact rules for tools of servers configured with ``requiresConfirmation``."""
        return self._rules

    def shadowed_names(self) -> frozenset[str]:
        """Remote tool names that a local built-in with the same canonical name hides."""
        return self._shadowed

    def tools_for_agent(self, agent_name: str) -> list[ToolInfo]:
        entries = []
        for entry in self._catalog.values():
            session = self._sessions.get(entry.server_id)
            if session is not None and session.config.allows_agent(agent_name):
                entries.append(entry.tool)
        return entries

    def status(self) -> list[dict[str, Any]]:
        return [
            {
                "id": session.server_id,
                "state": session.state.value,
                "toolCount": len(session.tools),
                "error": session.last_error,
            }
            for session in self._sessions.values()
        ]

    def session(self, server_id: str) -> ProtocolSession | None:
        return self._sessions.get(server_id)

    # ========== Invocation ==========

    async def invoke(
        self, qualified_name: str, arguments: dict[str, Any], timeout: float | None = None
    ) -> Any:
        """
        Route a call to the owning session.

        Raises:
            ToolNotFound: No catalog entry for ``qualified_name``
            ServerUnavailable: Owning session is not READY or its link failed mid-call
            InvocationTimeout: No response in time
            RemoteToolError: Peer reported the call as failed
        """
        entry = self._catalog.get(qualified_name)
        if entry is None:
            raise ToolNotFound(qualified_name)

        session = self._sessions.get(entry.server_id)
        if session is None or not session.is_ready:
            state = session.state.value if session is not None else "removed"
            raise ServerUnavailable(entry.server_id, f"session is {state}")

        try:  # nosemgrep: forbid-try-except - link failures surface as ServerUnavailable
            return await session.invoke(entry.remote_name, arguments, timeout)
        except (TransportError, ServerConnectionError) as e:
            logger.warning(f"[SessionManager] {qualified_name} lost its server: {e!s}")
            raise ServerUnavailable(entry.server_id, str(e)) from e

    # ========== Internals ==========

    def _create_session(self, config: ServerConfig) -> ProtocolSession:
        return ProtocolSession(
            config,
            handshake_timeout=self._handshake_timeout,
            tool_timeout=self._tool_timeout,
            transport_factory=self._transport_factory,
            on_change=self._on_session_change,
        )

    async def _connect_all(self, sessions: list[ProtocolSession]) -> None:
        if not sessions:
            return
        limit = self._max_concurrent_connects
        semaphore = asyncio.Semaphore(limit) if limit > 0 else None

        async def connect_one(session: ProtocolSession) -> None:
            if semaphore is None:
                await self._connect_isolated(session)
                return
            async with semaphore:
                await self._connect_isolated(session)

        await asyncio.gather(*(connect_one(session) for session in sessions))

    async def _close_all(self, sessions: list[ProtocolSession]) -> None:
        results = await asyncio.gather(*(session.close() for session in sessions), return_exceptions=True)
        for session, result in zip(sessions, results, strict=True):
            if isinstance(result, Exception):
                logger.warning(f"[SessionManager] {session.server_id} did not close cleanly: {result!s}")

    async def _connect_isolated(self, session: ProtocolSession) -> None:
        try:  # nosemgrep: forbid-try-except - one server failing must not affect the others
            await session.connect()
        except GatewayError as e:
            logger.error(f"[SessionManager] {session.server_id} unavailable: {e!s}")
        except Exception as e:
            logger.exception(f"[SessionManager] {session.server_id} crashed during connect: {e!s}")

    def _on_session_change(self, session: ProtocolSession) -> None:
        if self._sessions.get(session.server_id) is session:
            self._rebuild_catalog()

    def _rebuild_catalog(self) -> None:
        candidates: list[tuple[str, bool, ProtocolSession, ToolInfo]] = []
        for session in self._sessions.values():
            if not session.is_ready:
                continue
            prefix = session.config.tool_prefix
            for tool in session.tools:
                if prefix:
                    candidates.append((qualify_remote_name(prefix, tool.remote_name), True, session, tool))
                else:
                    candidates.append((normalize_tool_name(tool.remote_name), False, session, tool))

        bare_counts = Counter(name for name, prefixed, _, _ in candidates if not prefixed)
        entries: dict[str, CatalogEntry] = {}
        rules: list[ConfirmationRule] = []
        shadowed: set[str] = set()

        for name, prefixed, session, tool in candidates:
            if not prefixed and (bare_counts[name] > 1 or name in self._local_names):
                if name in self._local_names:
                    shadowed.add(name)
                name = qualify_remote_name(session.server_id, tool.remote_name)
            if name in entries or name in self._local_names:
                logger.warning(
                    f"[SessionManager] Dropping {session.server_id}:{tool.remote_name}, "
                    f"name {name!r} already taken"
                )
                continue
            entries[name] = CatalogEntry(
                qualified_name=name,
                server_id=session.server_id,
                remote_name=tool.remote_name,
                tool=tool.model_copy(update={"qualified_name": name}),
            )
            if session.config.requires_confirmation:
                rules.append(ConfirmationRule(name, RiskClass.REQUIRES_CONFIRMATION))

        for name in sorted(shadowed - self._shadowed):
            logger.warning(f"[SessionManager] Local tool {name!r} shadows a remote tool of the same name")

        self._catalog = MappingProxyType(entries)
        self._rules = tuple(rules)
        self._shadowed = frozenset(shadowed)
        logger.debug(f"[SessionManager] Catalog rebuilt: {len(entries)} remote tool(s)")
