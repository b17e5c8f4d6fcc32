"""
Gateway Error Taxonomy

Every failure that can cross a component seam is one of these classes.

Propagation:
    Transport layer  → raises TransportError / ServerConnectionError
    ProtocolSession  → adds HandshakeTimeout, DiscoveryError, InvocationTimeout, RemoteToolError
    SessionManager   → converts transport-level failures into ServerUnavailable
    ToolGateway      → converts everything into InvocationResult(success=False)

``code`` is stable and is surfaced to callers as ``InvocationResult.error_code``.
"""


class GatewayError(Exception):
    """Base class for all gateway failures."""

    @property
    def code(self) -> str:
        return type(self).__name__


class ServerConnectionError(GatewayError, ConnectionError):
    """The transport to a tool server could not be established."""


class HandshakeTimeout(GatewayError, TimeoutError):
    """The peer did not answer the capability handshake in time."""


class DiscoveryError(GatewayError):
    """The peer returned a tool catalog that is not structurally valid."""


class ToolNotFound(GatewayError):
    """No local handler and no catalog entry matches the requested name."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ConfirmationRequired(GatewayError):
    """A side-effecting tool was requested without explicit user consent.

    Never retried automatically: the caller must send a new request with
    ``confirmed=True`` after obtaining consent out of band.
    """

    def __init__(self, tool_name: str, description: str | None = None) -> None:
        detail = f" ({description})" if description else ""
        super().__init__(
            f'Tool "{tool_name}"{detail} requires user confirmation before execution'
        )
        self.tool_name = tool_name
        self.description = description


class ServerUnavailable(GatewayError):
    """The owning session is not Ready, or it failed mid-call."""

    def __init__(self, server_id: str, reason: str = "") -> None:
        message = f'Tool server "{server_id}" is not available'
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.server_id = server_id


class InvocationTimeout(GatewayError, TimeoutError):
    """No response arrived before the invocation deadline."""


class TransportError(GatewayError):
    """The connection failed while a call was in flight."""


class RemoteToolError(GatewayError):
    """The peer answered, but reported the call as failed."""


class ArgumentValidationError(GatewayError):
    """Arguments do not satisfy the tool's input schema."""


class ActionNotFound(GatewayError):
    """No pending approval with this id (already decided, or never queued)."""

    def __init__(self, action_id: str) -> None:
        super().__init__(f"No pending action: {action_id}")
        self.action_id = action_id
