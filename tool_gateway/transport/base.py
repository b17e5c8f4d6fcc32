"""
Transport Interface

A Transport moves decoded JSON-RPC messages to and from exactly one tool
server. It knows nothing about correlation ids or sessions; ProtocolSession
owns those.

Contract:
    open()     establish the connection, raise ServerConnectionError on failure
    send()     deliver one message, raise TransportError if the link is broken
    receive()  next decoded message, or None once the peer has gone away
    close()    best-effort graceful shutdown then forced teardown; never raises
"""

from abc import ABC, abstractmethod
from typing import Any


class Transport(ABC):
    """Bidirectional message pipe to one tool server."""

    def __init__(self, server_id: str) -> None:
        self.server_id = server_id

    @abstractmethod
    async def open(self) -> None: ...

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None: ...

    @abstractmethod
    async def receive(self) -> Any | None: ...

    @abstractmethod
    async def close(self) -> None: ...
