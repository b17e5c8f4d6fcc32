"""
Transport Layer

Moves JSON-RPC messages between a ProtocolSession and one tool server.

Components:
    - StdioTransport: subprocess, newline-delimited JSON over stdin/stdout
    - WebSocketTransport: one message per text frame
    - HttpTransport: streamable HTTP (JSON or SSE reply bodies)
"""

from .base import Transport
from .factory import create_transport
from .http import HttpTransport
from .stdio import StdioTransport
from .websocket import WebSocketTransport


__all__ = [
    "HttpTransport",
    "StdioTransport",
    "Transport",
    "WebSocketTransport",
    "create_transport",
]
