"""
Tool Gateway

Aggregates tools from external tool servers and local built-ins behind one
confirmation-gated entry point.

Layers:
    transport/   byte-level links to tool servers (stdio, WebSocket, HTTP)
    protocol/    JSON-RPC messages and the per-server ProtocolSession
    sessions/    SessionManager: session fleet and aggregated catalog
    tools/       naming, confirmation policy, built-ins, ToolGateway
"""

from .config import ServerConfig, load_server_configs
from .errors import GatewayError
from .sessions import SessionManager
from .settings import GatewaySettings, load_settings
from .tools import ApprovalQueue, InvocationResult, LocalToolRegistry, ToolGateway


__all__ = [
    "ApprovalQueue",
    "GatewayError",
    "GatewaySettings",
    "InvocationResult",
    "LocalToolRegistry",
    "ServerConfig",
    "SessionManager",
    "ToolGateway",
    "load_server_configs",
    "load_settings",
]
