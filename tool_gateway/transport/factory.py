"""Build the Transport matching a server's transport descriptor."""

from typing import assert_never

from tool_gateway.config import (
    HttpTransportConfig,
    StdioTransportConfig,
    TransportConfig,
    WebSocketTransportConfig,
)

from .base import Transport
from .http import HttpTransport
from .stdio import StdioTransport
from .websocket import WebSocketTransport


def create_transport(server_id: str, config: TransportConfig) -> Transport:
    match config:
        case StdioTransportConfig():
            return StdioTransport(server_id, config)
        case WebSocketTransportConfig():
            return WebSocketTransport(server_id, config)
        case HttpTransportConfig():
            return HttpTransport(server_id, config)
        case _:
            assert_never(config)
