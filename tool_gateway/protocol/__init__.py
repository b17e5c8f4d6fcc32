"""
Protocol Layer

JSON-RPC message types and the per-server ProtocolSession.
"""

from .messages import (
    LOCAL_OWNER,
    PROTOCOL_VERSION,
    InputSchema,
    PropertySchema,
    ToolInfo,
    parse_tool_list,
    render_call_result,
    validate_arguments,
)
from .session import ProtocolSession, SessionState


__all__ = [
    "LOCAL_OWNER",
    "PROTOCOL_VERSION",
    "InputSchema",
    "PropertySchema",
    "ProtocolSession",
    "SessionState",
    "ToolInfo",
    "parse_tool_list",
    "render_call_result",
    "validate_arguments",
]
