"""
Protocol Session

Manages exactly one connection to an external tool server.

State machine:
    IDLE → CONNECTING → NEGOTIATING → READY ⇄ INVOKING → CLOSING → CLOSED
    any state → FAULTED on transport error; FAULTED → CONNECTING after backoff
    (bounded by the server's RestartPolicy, then permanently FAULTED)

Correlation:
    Every request carries an id from a per-session counter. The pending map
    holds one Future per in-flight id; the reader task resolves it when the
    matching response arrives. A timed-out id is removed from the map, so a
    response that arrives later finds no waiter and is dropped.

Outbound sends share one lock so that messages are never interleaved on
ordered transports. Responses are still matched out of order by id.
"""

import asyncio
import itertools
from collections.abc import Callable
from enum import Enum
from typing import Any

from loguru import logger

from tool_gateway.config import ServerConfig, TransportConfig
from tool_gateway.errors import (
    DiscoveryError,
    GatewayError,
    HandshakeTimeout,
    InvocationTimeout,
    RemoteToolError,
    ServerConnectionError,
    TransportError,
)
from tool_gateway.transport import Transport, create_transport

from .messages import (
    METHOD_NOT_FOUND,
    PROTOCOL_VERSION,
    JsonRpcErrorObject,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    ToolInfo,
    parse_incoming,
    parse_tool_list,
    render_call_result,
)


CLIENT_INFO = {"name": "tool-gateway", "version": "0.1.0"}
TOOLS_CHANGED = "notifications/tools/list_changed"

TransportFactory = Callable[[str, TransportConfig], Transport]
SessionListener = Callable[["ProtocolSession"], None]


class SessionState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    NEGOTIATING = "negotiating"
    READY = "ready"
    INVOKING = "invoking"
    CLOSING = "closing"
    CLOSED = "closed"
    FAULTED = "faulted"


class ProtocolSession:
    """
    One managed connection to a tool server.

    Args:
        config: Immutable server configuration
        handshake_timeout: Bound on transport open + initialize exchange
        tool_timeout: Default bound on one request (tools/call, tools/list page)
        transport_factory: Builds the Transport; tests inject in-memory peers
        on_change: Called when the session's tools or readiness change
    """

    def __init__(
        self,
        config: ServerConfig,
        *,
        handshake_timeout: float = 10.0,
        tool_timeout: float = 30.0,
        transport_factory: TransportFactory = create_transport,
        on_change: SessionListener | None = None,
    ) -> None:
        self.config = config
        self.server_id = config.id
        self._handshake_timeout = handshake_timeout
        self._tool_timeout = tool_timeout
        self._transport_factory = transport_factory
        self._on_change = on_change

        self._state = SessionState.IDLE
        self._transport: Transport | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._send_lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self._pending: dict[int | str, asyncio.Future[Any]] = {}
        self._in_flight = 0
        self._consecutive_timeouts = 0
        self._closing = False

        self._tools: tuple[ToolInfo, ...] = ()
        self._server_info: dict[str, Any] = {}
        self.last_error: str | None = None

    # ========== Introspection ==========

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state in (SessionState.READY, SessionState.INVOKING)

    @property
    def tools(self) -> tuple[ToolInfo, ...]:
        """Tools from the last successful discovery; empty unless ready."""
        return self._tools if self.is_ready else ()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def server_info(self) -> dict[str, Any]:
        return self._server_info

    # ========== Lifecycle ==========

    async def connect(self) -> None:
        """
        Open the transport, negotiate capabilities, and discover tools.

        Raises:
            HandshakeTimeout: Peer did not complete the handshake in time
            ServerConnectionError: Transport could not be opened or the peer rejected initialize
            DiscoveryError: Peer returned a malformed tool catalog
        """
        if self.is_ready:
            return
        self._closing = False
        self._set_state(SessionState.CONNECTING)

        try:  # nosemgrep: forbid-try-except - handshake failures fault the session, then propagate
            await asyncio.wait_for(self._open_and_negotiate(), timeout=self._handshake_timeout)
        except TimeoutError as e:
            reason = f"no handshake response within {self._handshake_timeout}s"
            await self._abort(reason)
            raise HandshakeTimeout(f"[{self.server_id}] {reason}") from e
        except (TransportError, RemoteToolError) as e:
            await self._abort(str(e))
            raise ServerConnectionError(f"[{self.server_id}] handshake failed: {e}") from e
        except GatewayError as e:
            await self._abort(str(e))
            raise

        logger.info(f"[Session:{self.server_id}] Handshake complete ({self._server_info or 'no serverInfo'})")

        try:  # nosemgrep: forbid-try-except - discovery failures fault the session, then propagate
            tools = await self.list_tools()
        except GatewayError as e:
            await self._abort(f"discovery failed: {e}")
            raise

        self._tools = tuple(tools)
        self._consecutive_timeouts = 0
        self.last_error = None
        self._set_state(SessionState.READY)
        self._notify_change()

    async def close(self) -> None:
        """Shut down gracefully, then forcibly. Always ends in CLOSED."""
        self._closing = True
        if self._state is SessionState.CLOSED:
            return
        self._set_state(SessionState.CLOSING)

        for task in (self._reconnect_task, self._refresh_task):
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                await asyncio.wait([task])

        try:
            self._fail_pending("session closed")
            await self._teardown_transport()
        finally:
            self._tools = ()
            self._set_state(SessionState.CLOSED)
            self._notify_change()

    # ========== Operations ==========

    async def list_tools(self) -> list[ToolInfo]:
        """
        Fetch the full tool catalog, following ``nextCursor`` pagination.

        Raises:
            DiscoveryError: Malformed page, duplicate tool names, or a cursor loop
        """
        tools: list[ToolInfo] = []
        seen_names: set[str] = set()
        seen_cursors: set[str] = set()
        cursor: str | None = None

        while True:
            params = {"cursor": cursor} if cursor else None
            try:  # nosemgrep: forbid-try-except - peer-side errors become DiscoveryError
                result = await self._request("tools/list", params, timeout=self._tool_timeout)
            except RemoteToolError as e:
                raise DiscoveryError(f"[{self.server_id}] tools/list failed: {e}") from e

            page, cursor = parse_tool_list(result, self.server_id)
            for tool in page:
                if tool.remote_name in seen_names:
                    raise DiscoveryError(f"[{self.server_id}] duplicate tool name {tool.remote_name!r}")
                seen_names.add(tool.remote_name)
            tools.extend(page)

            if cursor is None:
                break
            if cursor in seen_cursors:
                raise DiscoveryError(f"[{self.server_id}] tools/list cursor {cursor!r} repeated")
            seen_cursors.add(cursor)

        logger.info(f"[Session:{self.server_id}] Discovered {len(tools)} tool(s)")
        return tools

    async def invoke(
        self, remote_name: str, arguments: dict[str, Any], timeout: float | None = None
    ) -> Any:
        """
        Call one remote tool and wait for its result.

        Raises:
            InvocationTimeout: No response within ``timeout`` (default: tool_timeout)
            RemoteToolError: Peer reported the call as failed
            TransportError: Session not ready, or the link dropped mid-call
        """
        if not self.is_ready:
            raise TransportError(f"[{self.server_id}] session is {self._state.value}")

        self._in_flight += 1
        if self._state is SessionState.READY:
            self._set_state(SessionState.INVOKING)
        try:
            result = await self._request(
                "tools/call",
                {"name": remote_name, "arguments": arguments},
                timeout=self._tool_timeout if timeout is None else timeout,
            )
        except InvocationTimeout:
            self._record_timeout()
            raise
        except RemoteToolError:
            self._consecutive_timeouts = 0
            raise
        finally:
            self._in_flight -= 1
            if self._in_flight == 0 and self._state is SessionState.INVOKING:
                self._set_state(SessionState.READY)

        self._consecutive_timeouts = 0
        return render_call_result(result, remote_name)

    # ========== Request / Response ==========

    async def _request(self, method: str, params: dict[str, Any] | None, timeout: float | None) -> Any:
        request_id = next(self._ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        message = JsonRpcRequest(id=request_id, method=method, params=params).to_wire()

        async def send_and_wait() -> Any:
            await self._send(message)
            return await future

        try:
            return await asyncio.wait_for(send_and_wait(), timeout=timeout)
        except TimeoutError as e:
            logger.warning(f"[Session:{self.server_id}] {method} id={request_id} timed out after {timeout}s")
            raise InvocationTimeout(
                f"[{self.server_id}] {method} did not respond within {timeout}s"
            ) from e
        finally:
            self._pending.pop(request_id, None)

    async def _send(self, message: dict[str, Any]) -> None:
        transport = self._transport
        if transport is None:
            raise TransportError(f"[{self.server_id}] no open transport")
        async with self._send_lock:
            await transport.send(message)

    async def _open_and_negotiate(self) -> None:
        transport = self._transport_factory(self.server_id, self.config.transport)
        self._transport = transport
        await transport.open()
        self._reader_task = asyncio.create_task(self._read_loop(transport))

        self._set_state(SessionState.NEGOTIATING)
        result = await self._request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": CLIENT_INFO,
            },
            timeout=None,
        )
        if not isinstance(result, dict) or not isinstance(result.get("capabilities"), dict):
            raise ServerConnectionError(f"[{self.server_id}] initialize result has no capabilities object")
        server_info = result.get("serverInfo")
        self._server_info = server_info if isinstance(server_info, dict) else {}

        await self._send(JsonRpcNotification(method="notifications/initialized").to_wire())

    # ========== Reader ==========

    async def _read_loop(self, transport: Transport) -> None:
        reason = "connection closed by peer"
        try:  # nosemgrep: forbid-try-except - a broken link faults the session
            while True:
                data = await transport.receive()
                if data is None:
                    break
                for item in data if isinstance(data, list) else [data]:
                    await self._dispatch(item)
        except TransportError as e:
            reason = str(e)

        if transport is self._transport and not self._closing:
            self._fault(reason)

    async def _dispatch(self, data: Any) -> None:
        try:  # nosemgrep: forbid-try-except - malformed peer messages are logged and skipped
            message = parse_incoming(data)
        except ValueError as e:
            logger.warning(f"[Session:{self.server_id}] {e}")
            return

        match message:
            case JsonRpcResponse():
                self._resolve(message)
            case JsonRpcRequest():
                await self._answer_peer_request(message)
            case JsonRpcNotification(method=method) if method == TOOLS_CHANGED:
                logger.info(f"[Session:{self.server_id}] Peer reported tool list change")
                if self.is_ready and (self._refresh_task is None or self._refresh_task.done()):
                    self._refresh_task = asyncio.create_task(self._refresh_tools())
            case JsonRpcNotification():
                logger.debug(f"[Session:{self.server_id}] Notification {message.method}")

    def _resolve(self, response: JsonRpcResponse) -> None:
        future = self._pending.get(response.id) if response.id is not None else None
        if future is None or future.done():
            logger.debug(f"[Session:{self.server_id}] Ignoring response for unknown or expired id={response.id}")
            return
        if response.error is not None:
            future.set_exception(
                RemoteToolError(f"{response.error.message} (code {response.error.code})")
            )
        else:
            future.set_result(response.result)

    async def _answer_peer_request(self, request: JsonRpcRequest) -> None:
        if request.method == "ping":
            reply = JsonRpcResponse(id=request.id, result={})
        else:
            reply = JsonRpcResponse(
                id=request.id,
                error=JsonRpcErrorObject(code=METHOD_NOT_FOUND, message=f"Method not found: {request.method}"),
            )
        try:  # nosemgrep: forbid-try-except - a failed reply is noticed by the reader anyway
            await self._send(reply.to_wire())
        except TransportError as e:
            logger.warning(f"[Session:{self.server_id}] Could not answer {request.method}: {e!s}")

    async def _refresh_tools(self) -> None:
        try:  # nosemgrep: forbid-try-except - a failed refresh keeps the previous catalog
            tools = await self.list_tools()
        except GatewayError as e:
            logger.warning(f"[Session:{self.server_id}] Rediscovery failed, keeping previous tools: {e!s}")
            return
        if self.is_ready:
            self._tools = tuple(tools)
            self._notify_change()

    # ========== Faults / Reconnect ==========

    def _record_timeout(self) -> None:
        self._consecutive_timeouts += 1
        limit = self.config.restart.max_consecutive_timeouts
        if self._consecutive_timeouts >= limit:
            self._fault(f"{self._consecutive_timeouts} consecutive invocation timeouts")

    def _fault(self, reason: str) -> None:
        """Transport lost while in service: drop tools, fail waiters, schedule reconnect."""
        self._fail_pending(reason)
        if not self.is_ready:
            return
        logger.error(f"[Session:{self.server_id}] Faulted: {reason}")
        self.last_error = reason
        self._tools = ()
        self._set_state(SessionState.FAULTED)
        self._notify_change()
        self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        await self._teardown_transport()
        policy = self.config.restart
        for attempt in range(1, policy.max_attempts + 1):
            delay = policy.backoff_for(attempt)
            logger.info(
                f"[Session:{self.server_id}] Reconnect attempt {attempt}/{policy.max_attempts} in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
            if self._closing:
                return
            try:  # nosemgrep: forbid-try-except - each failed attempt is retried until the policy gives up
                await self.connect()
            except GatewayError as e:
                logger.warning(f"[Session:{self.server_id}] Reconnect attempt {attempt} failed: {e!s}")
                continue
            logger.info(f"[Session:{self.server_id}] Reconnected")
            return
        logger.error(
            f"[Session:{self.server_id}] Giving up after {policy.max_attempts} reconnect attempt(s)"
        )

    async def _abort(self, reason: str) -> None:
        self.last_error = reason
        self._fail_pending(reason)
        await self._teardown_transport()
        self._tools = ()
        if self._state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        logger.error(f"[Session:{self.server_id}] Connect failed: {reason}")
        self._set_state(SessionState.FAULTED)
        self._notify_change()

    async def _teardown_transport(self) -> None:
        transport, self._transport = self._transport, None
        reader, self._reader_task = self._reader_task, None
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
            await asyncio.wait([reader])
        if transport is not None:
            try:  # nosemgrep: forbid-try-except - teardown is best effort, the session still ends closed
                await transport.close()
            except Exception as e:
                logger.warning(f"[Session:{self.server_id}] Transport close failed: {e!s}")

    def _fail_pending(self, reason: str) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(TransportError(f"[{self.server_id}] {reason}"))

    # ========== Helpers ==========

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.debug(f"[Session:{self.server_id}] {self._state.value} → {state.value}")
        self._state = state

    def _notify_change(self) -> None:
        if self._on_change is not None:
            self._on_change(self)
