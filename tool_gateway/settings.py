"""
Process Settings

Runtime knobs read from environment variables. The composition root
(server.py) loads ``.env.local`` with python-dotenv before calling
``load_settings()``.

Environment Variables:
    MCP_CONFIG_PATH                 Tool server list (default: mcp-servers.json)
    MCP_HANDSHAKE_TIMEOUT_SECONDS   Bound on transport open + initialize (default: 10)
    MCP_TOOL_TIMEOUT_SECONDS        Bound on a single remote invocation (default: 30)
    MCP_MAX_CONCURRENT_CONNECTS     Startup connect parallelism, 0 = unbounded (default: 0)
    LOCAL_TOOL_TIMEOUT_SECONDS      Bound on async local handlers (default: 30)
    WORKSPACE_ROOT                  Root for filesystem built-ins (default: cwd)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger


@dataclass(frozen=True)
class GatewaySettings:
    config_path: Path = Path("mcp-servers.json")
    handshake_timeout: float = 10.0
    tool_timeout: float = 30.0
    max_concurrent_connects: int = 0
    local_tool_timeout: float = 30.0
    workspace_root: Path = field(default_factory=Path.cwd)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"[Settings] {name}={raw!r} is not a number, using {default}")
        return default
    if value <= 0:
        logger.warning(f"[Settings] {name}={raw!r} must be positive, using {default}")
        return default
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"[Settings] {name}={raw!r} is not an integer, using {default}")
        return default
    return max(value, 0)


def load_settings() -> GatewaySettings:
    """Build GatewaySettings from the current environment."""
    settings = GatewaySettings(
        config_path=Path(os.getenv("MCP_CONFIG_PATH", "mcp-servers.json")),
        handshake_timeout=_env_float("MCP_HANDSHAKE_TIMEOUT_SECONDS", 10.0),
        tool_timeout=_env_float("MCP_TOOL_TIMEOUT_SECONDS", 30.0),
        max_concurrent_connects=_env_int("MCP_MAX_CONCURRENT_CONNECTS", 0),
        local_tool_timeout=_env_float("LOCAL_TOOL_TIMEOUT_SECONDS", 30.0),
        workspace_root=Path(os.getenv("WORKSPACE_ROOT") or Path.cwd()),
    )
    logger.debug(f"[Settings] Loaded: {settings}")
    return settings
