"""Pytest configuration and shared fixtures for tests.

This module provides common pytest fixtures that are shared across
unit and integration tests.
"""

from typing import Any

import pytest
from loguru import logger

from tests.utils import CallProbe
from tool_gateway.tools import LocalToolRegistry


# ============================================================
# Logging
# ============================================================


@pytest.fixture
def log_messages() -> Any:
    """Collect loguru messages emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="DEBUG", format="{level} {message}")
    yield messages
    logger.remove(handler_id)


# ============================================================
# Local Tool Fixtures
# ============================================================


@pytest.fixture
def probe_registry() -> tuple[LocalToolRegistry, dict[str, CallProbe]]:
    """Registry with call-count probes for a mix of safe and gated tools."""
    registry = LocalToolRegistry()
    probes: dict[str, CallProbe] = {}
    for name in ("fs_writeFile", "bash_execute", "devo_exec_session_start", "git_status", "fs_readFile"):
        probes[name] = CallProbe(output=f"{name} done")
        registry.register(name, probes[name], description=f"{name} probe")
    return registry, probes
