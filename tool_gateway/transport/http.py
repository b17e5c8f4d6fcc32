"""
Streamable HTTP Transport

Each outgoing message is POSTed to the server URL. The reply body is either
``application/json`` (one message or a batch) or ``text/event-stream`` whose
``data:`` lines carry messages. Replies are queued for ``receive()`` so that
concurrent requests are not serialized behind each other's HTTP round trip.

Session affinity: the ``Mcp-Session-Id`` header returned by the server is
echoed on every later POST.
"""

import asyncio
import json
from typing import Any

import aiohttp
from loguru import logger

from tool_gateway.config import HttpTransportConfig
from tool_gateway.errors import ServerConnectionError, TransportError

from .base import Transport


SESSION_HEADER = "Mcp-Session-Id"
_CLOSED = object()


def _iter_sse_payloads(body: str) -> list[Any]:
    """Decode every ``data:`` event of an SSE body, skipping non-JSON events."""
    payloads: list[Any] = []
    for event in body.replace("\r\n", "\n").split("\n\n"):
        data_lines = [line[5:].strip() for line in event.split("\n") if line.startswith("data:")]
        if not data_lines:
            continue
        try:  # nosemgrep: forbid-try-except - keep-alive and comment events are not JSON
            payloads.append(json.loads("\n".join(data_lines)))
        except json.JSONDecodeError:
            continue
    return payloads


class HttpTransport(Transport):
    def __init__(self, server_id: str, config: HttpTransportConfig) -> None:
        super().__init__(server_id)
        self._config = config
        self._http: aiohttp.ClientSession | None = None
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self._posts: set[asyncio.Task[None]] = set()
        self._session_id: str | None = None

    async def open(self) -> None:
        if not self._config.url.startswith(("http://", "https://")):
            raise ServerConnectionError(f"[{self.server_id}] unsupported URL {self._config.url!r}")
        headers = {"Accept": "application/json, text/event-stream", **self._config.headers}
        self._http = aiohttp.ClientSession(headers=headers)
        logger.info(f"[HttpTransport:{self.server_id}] Ready for {self._config.url}")

    async def send(self, message: dict[str, Any]) -> None:
        if self._http is None or self._http.closed:
            raise TransportError(f"[{self.server_id}] HTTP client is closed")
        task = asyncio.create_task(self._post(message))
        self._posts.add(task)
        task.add_done_callback(self._posts.discard)

    async def receive(self) -> Any | None:
        item = await self._inbox.get()
        if item is _CLOSED:
            return None
        if isinstance(item, TransportError):
            raise item
        return item

    async def close(self) -> None:
        for task in list(self._posts):
            task.cancel()
        if self._http is not None and not self._http.closed:
            if self._session_id:
                try:  # nosemgrep: forbid-try-except - session DELETE is best effort
                    async with self._http.delete(
                        self._config.url,
                        headers={SESSION_HEADER: self._session_id},
                        timeout=aiohttp.ClientTimeout(total=2),
                    ):
                        pass
                except (aiohttp.ClientError, TimeoutError) as e:
                    logger.debug(f"[HttpTransport:{self.server_id}] Session DELETE failed: {e!s}")
            await self._http.close()
        self._inbox.put_nowait(_CLOSED)
        logger.info(f"[HttpTransport:{self.server_id}] Closed")

    async def _post(self, message: dict[str, Any]) -> None:
        assert self._http is not None
        headers = {SESSION_HEADER: self._session_id} if self._session_id else {}
        try:  # nosemgrep: forbid-try-except - HTTP failures are delivered through the inbox
            async with self._http.post(self._config.url, json=message, headers=headers) as response:
                if SESSION_HEADER in response.headers:
                    self._session_id = response.headers[SESSION_HEADER]
                if response.status >= 400:  # noqa: PLR2004
                    self._reject(message, f"HTTP {response.status}: {await response.text()}")
                    return
                body = await response.text()
                content_type = response.headers.get("Content-Type", "")
        except (aiohttp.ClientError, TimeoutError) as e:
            reason = str(e) or type(e).__name__
            self._inbox.put_nowait(TransportError(f"[{self.server_id}] POST failed: {reason}"))
            return

        if not body.strip():
            return
        if "text/event-stream" in content_type:
            payloads = _iter_sse_payloads(body)
        else:
            try:  # nosemgrep: forbid-try-except - a garbled body is a protocol error for this request
                decoded = json.loads(body)
            except json.JSONDecodeError:
                self._reject(message, "response body is not JSON")
                return
            payloads = decoded if isinstance(decoded, list) else [decoded]
        for payload in payloads:
            self._inbox.put_nowait(payload)

    def _reject(self, message: dict[str, Any], reason: str) -> None:
        """Answer a request locally with a JSON-RPC error (notifications are just logged)."""
        logger.warning(f"[HttpTransport:{self.server_id}] {message.get('method')}: {reason}")
        if message.get("id") is None:
            return
        self._inbox.put_nowait(
            {
                "jsonrpc": "2.0",
                "id": message["id"],
                "error": {"code": -32000, "message": reason},
            }
        )
