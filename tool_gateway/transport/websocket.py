"""
WebSocket Transport

One JSON-RPC message per text frame over a ``ws://`` / ``wss://`` endpoint.
"""

import json
from typing import Any

from loguru import logger
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from tool_gateway.config import WebSocketTransportConfig
from tool_gateway.errors import ServerConnectionError, TransportError

from .base import Transport


class WebSocketTransport(Transport):
    def __init__(self, server_id: str, config: WebSocketTransportConfig) -> None:
        super().__init__(server_id)
        self._config = config
        self._ws: ClientConnection | None = None

    async def open(self) -> None:
        try:  # nosemgrep: forbid-try-except - connect failures become ServerConnectionError
            self._ws = await connect(
                self._config.url,
                additional_headers=self._config.headers or None,
                subprotocols=["mcp"],
            )
        except (OSError, InvalidHandshake, InvalidURI) as e:
            raise ServerConnectionError(
                f"[{self.server_id}] cannot connect to {self._config.url}: {e}"
            ) from e
        logger.info(f"[WebSocketTransport:{self.server_id}] Connected to {self._config.url}")

    async def send(self, message: dict[str, Any]) -> None:
        if self._ws is None:
            raise TransportError(f"[{self.server_id}] websocket is not open")
        try:  # nosemgrep: forbid-try-except - closed socket becomes TransportError
            await self._ws.send(json.dumps(message, ensure_ascii=False))
        except ConnectionClosed as e:
            raise TransportError(f"[{self.server_id}] websocket closed: {e}") from e

    async def receive(self) -> Any | None:
        if self._ws is None:
            return None
        while True:
            try:  # nosemgrep: forbid-try-except - peer close is end-of-stream
                frame = await self._ws.recv()
            except ConnectionClosed:
                return None
            try:  # nosemgrep: forbid-try-except - non-JSON frames are skipped
                return json.loads(frame)
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.warning(f"[WebSocketTransport:{self.server_id}] Ignoring non-JSON frame")

    async def close(self) -> None:
        if self._ws is None:
            return
        try:  # nosemgrep: forbid-try-except - close is best effort
            await self._ws.close()
        except Exception as e:
            logger.warning(f"[WebSocketTransport:{self.server_id}] Error during close: {e!s}")
        self._ws = None
        logger.info(f"[WebSocketTransport:{self.server_id}] Closed")
