"""Pytest configuration for integration tests.

Integration tests spawn the stdio tool server in ``fixtures/echo_server.py``
with the running interpreter.
"""

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest


ECHO_SERVER = Path(__file__).parent / "fixtures" / "echo_server.py"

EchoEntryFactory = Callable[..., dict[str, Any]]


@pytest.fixture
def make_echo_entry() -> EchoEntryFactory:
    """Build an mcp-servers.json entry that runs the echo server over stdio."""

    def build(server_id: str = "echo", *extra_args: str, **fields: Any) -> dict[str, Any]:
        return {
            "name": server_id,
            "command": sys.executable,
            "args": [str(ECHO_SERVER), *extra_args],
            **fields,
        }

    return build
