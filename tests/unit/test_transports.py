"""
Unit tests for the Transport implementations.

HTTP and WebSocket transports run against in-process aiohttp / websockets
servers bound to an ephemeral port. The stdio transport is exercised end to
end by the integration tests.
"""

import asyncio
import json
from typing import Any

import pytest
from aiohttp import test_utils, web
from websockets.asyncio.server import ServerConnection, serve

from tool_gateway.config import (
    HttpTransportConfig,
    ServerConfig,
    StdioTransportConfig,
    WebSocketTransportConfig,
)
from tool_gateway.errors import ServerConnectionError, TransportError
from tool_gateway.transport import HttpTransport, StdioTransport, WebSocketTransport, create_transport
from tool_gateway.transport.http import SESSION_HEADER, _iter_sse_payloads


# ============================================================
# Factory
# ============================================================


@pytest.mark.parametrize(
    ("entry", "expected"),
    [
        ({"name": "a", "command": "uvx", "args": ["srv"]}, StdioTransport),
        ({"name": "b", "url": "wss://tools.example/ws"}, WebSocketTransport),
        ({"name": "c", "url": "https://tools.example/mcp"}, HttpTransport),
    ],
)
def test_factory_picks_transport_from_config(entry: dict[str, Any], expected: type) -> None:
    config = ServerConfig.model_validate(entry)

    transport = create_transport(config.id, config.transport)

    assert isinstance(transport, expected)
    assert transport.server_id == config.id


# ============================================================
# Server-Sent Events
# ============================================================


def test_sse_body_yields_each_data_event() -> None:
    body = (
        ": keep-alive\n\n"
        'event: message\ndata: {"jsonrpc": "2.0", "id": 1, "result": {}}\n\n'
        "data: not json\n\n"
        'data: {"jsonrpc": "2.0",\r\ndata: "method": "ping", "id": "s1"}\r\n\r\n'
    )

    payloads = _iter_sse_payloads(body)

    assert payloads == [
        {"jsonrpc": "2.0", "id": 1, "result": {}},
        {"jsonrpc": "2.0", "method": "ping", "id": "s1"},
    ]


# ============================================================
# Streamable HTTP
# ============================================================


class _HttpToolServer:
    """Minimal streamable-HTTP endpoint: JSON for ids, SSE for batches, errors on demand."""

    def __init__(self) -> None:
        self.seen_session_ids: list[str | None] = []
        self.deleted: list[str | None] = []
        self.fail_with: int | None = None

    async def post(self, request: web.Request) -> web.StreamResponse:
        self.seen_session_ids.append(request.headers.get(SESSION_HEADER))
        message = await request.json()
        if self.fail_with is not None:
            return web.Response(status=self.fail_with, text="upstream broke")
        if "id" not in message:
            return web.Response(status=202)
        reply = {"jsonrpc": "2.0", "id": message["id"], "result": {"method": message["method"]}}
        headers = {SESSION_HEADER: "sess-42"}
        if message["method"] == "stream":
            body = f"data: {json.dumps(reply)}\n\n"
            return web.Response(text=body, content_type="text/event-stream", headers=headers)
        return web.json_response(reply, headers=headers)

    async def delete(self, request: web.Request) -> web.Response:
        self.deleted.append(request.headers.get(SESSION_HEADER))
        return web.Response(status=204)


@pytest.mark.asyncio
async def test_http_transport_round_trip_with_session_affinity() -> None:
    # given
    endpoint = _HttpToolServer()
    app = web.Application()
    app.router.add_post("/mcp", endpoint.post)
    app.router.add_delete("/mcp", endpoint.delete)
    server = test_utils.TestServer(app)
    await server.start_server()
    transport = HttpTransport("remote", HttpTransportConfig(url=str(server.make_url("/mcp"))))

    try:
        await transport.open()

        # when
        await transport.send({"jsonrpc": "2.0", "id": 1, "method": "initialize"})
        first = await asyncio.wait_for(transport.receive(), timeout=2)
        await transport.send({"jsonrpc": "2.0", "id": 2, "method": "stream"})
        second = await asyncio.wait_for(transport.receive(), timeout=2)
        await transport.send({"jsonrpc": "2.0", "method": "notifications/initialized"})

        # then
        assert first == {"jsonrpc": "2.0", "id": 1, "result": {"method": "initialize"}}
        assert second == {"jsonrpc": "2.0", "id": 2, "result": {"method": "stream"}}
        await asyncio.sleep(0.05)
        assert endpoint.seen_session_ids[0] is None
        assert endpoint.seen_session_ids[1:] == ["sess-42", "sess-42"]

        await transport.close()
        assert await asyncio.wait_for(transport.receive(), timeout=2) is None
        assert endpoint.deleted == ["sess-42"]
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_http_error_status_answers_the_request_with_jsonrpc_error() -> None:
    endpoint = _HttpToolServer()
    endpoint.fail_with = 503
    app = web.Application()
    app.router.add_post("/mcp", endpoint.post)
    server = test_utils.TestServer(app)
    await server.start_server()
    transport = HttpTransport("remote", HttpTransportConfig(url=str(server.make_url("/mcp"))))

    try:
        await transport.open()
        await transport.send({"jsonrpc": "2.0", "id": 7, "method": "tools/list"})
        reply = await asyncio.wait_for(transport.receive(), timeout=2)

        assert reply["id"] == 7
        assert reply["error"]["code"] == -32000
        assert "HTTP 503" in reply["error"]["message"]
        await transport.close()
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_http_connection_failure_surfaces_as_transport_error() -> None:
    transport = HttpTransport("remote", HttpTransportConfig(url="http://127.0.0.1:1/mcp"))
    await transport.open()

    await transport.send({"jsonrpc": "2.0", "id": 1, "method": "initialize"})

    with pytest.raises(TransportError):
        await asyncio.wait_for(transport.receive(), timeout=5)
    await transport.close()


class _TimingOutClient:
    """Stands in for aiohttp.ClientSession when the POST deadline expires."""

    closed = False

    def post(self, *args: Any, **kwargs: Any) -> Any:
        raise TimeoutError

    async def close(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_http_post_timeout_surfaces_as_transport_error() -> None:
    # given
    transport = HttpTransport("remote", HttpTransportConfig(url="http://127.0.0.1:1/mcp"))
    transport._http = _TimingOutClient()  # type: ignore[assignment]

    # when
    await transport.send({"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

    # then
    with pytest.raises(TransportError, match="POST failed: TimeoutError"):
        await asyncio.wait_for(transport.receive(), timeout=1)
    await transport.close()


@pytest.mark.asyncio
async def test_http_send_after_close_is_transport_error() -> None:
    transport = HttpTransport("remote", HttpTransportConfig(url="http://127.0.0.1:1/mcp"))
    await transport.open()
    await transport.close()

    with pytest.raises(TransportError):
        await transport.send({"jsonrpc": "2.0", "id": 1, "method": "ping"})


# ============================================================
# WebSocket
# ============================================================


@pytest.mark.asyncio
async def test_websocket_transport_exchanges_json_frames() -> None:
    # given
    async def echo(connection: ServerConnection) -> None:
        async for frame in connection:
            message = json.loads(frame)
            await connection.send("garbage")
            await connection.send(json.dumps({"jsonrpc": "2.0", "id": message["id"], "result": message}))
            await connection.close()

    async with serve(echo, "127.0.0.1", 0, subprotocols=["mcp"]) as server:
        port = server.sockets[0].getsockname()[1]
        transport = WebSocketTransport("ws", WebSocketTransportConfig(url=f"ws://127.0.0.1:{port}"))
        await transport.open()

        # when
        await transport.send({"jsonrpc": "2.0", "id": 3, "method": "ping"})
        reply = await asyncio.wait_for(transport.receive(), timeout=2)
        end = await asyncio.wait_for(transport.receive(), timeout=2)

        # then
        assert reply == {"jsonrpc": "2.0", "id": 3, "result": {"jsonrpc": "2.0", "id": 3, "method": "ping"}}
        assert end is None
        await transport.close()


@pytest.mark.asyncio
async def test_websocket_refused_connection_is_server_connection_error() -> None:
    transport = WebSocketTransport("ws", WebSocketTransportConfig(url="ws://127.0.0.1:1"))

    with pytest.raises(ServerConnectionError):
        await transport.open()


# ============================================================
# Stdio
# ============================================================


@pytest.mark.asyncio
async def test_stdio_missing_executable_is_server_connection_error() -> None:
    transport = StdioTransport("proc", StdioTransportConfig(command="definitely-not-a-real-tool-server"))

    with pytest.raises(ServerConnectionError):
        await transport.open()


@pytest.mark.asyncio
async def test_stdio_send_before_open_is_transport_error() -> None:
    transport = StdioTransport("proc", StdioTransportConfig(command="cat"))

    with pytest.raises(TransportError):
        await transport.send({"jsonrpc": "2.0", "method": "ping"})
    assert await transport.receive() is None
