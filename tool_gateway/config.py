"""
Tool Server Configuration

Immutable per-server configuration and the loader for ``mcp-servers.json``.

File format (camelCase keys, ``name`` is accepted as an alias of ``id``):

    {
      "mcpServers": [
        {
          "name": "serena",
          "command": "uvx",
          "args": ["serena", "--project", "${PROJECT_ROOT}"],
          "env": {"TOKEN": "${SERENA_TOKEN}"},
          "toolPrefix": "serena",
          "requiresConfirmation": true,
          "enabledForAgents": ["devo"]
        },
        {"name": "search", "url": "https://search.internal/mcp", "requiresConfirmation": false}
      ]
    }

A server is reached over stdio when it has ``command``, over WebSocket when
``url`` is ``ws://``/``wss://``, and over streamable HTTP for ``http(s)://``.
"""

import json
import os
import re
from pathlib import Path
from typing import Annotated, Any, Literal

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from .result import Error, Ok, Result


_ENV_REF = re.compile(r"\$\{([A-Za-z0-9_]+)\}")


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class RestartPolicy(_FrozenModel):
    """Reconnect behavior after a session becomes Faulted."""

    max_attempts: int = Field(3, alias="maxAttempts", ge=0)
    initial_backoff: float = Field(0.5, alias="initialBackoffSeconds", gt=0)
    max_backoff: float = Field(10.0, alias="maxBackoffSeconds", gt=0)
    max_consecutive_timeouts: int = Field(3, alias="maxConsecutiveTimeouts", ge=1)

    def backoff_for(self, attempt: int) -> float:
        """Delay before reconnect attempt number ``attempt`` (1-based)."""
        return min(self.initial_backoff * (2 ** max(attempt - 1, 0)), self.max_backoff)


class StdioTransportConfig(_FrozenModel):
    kind: Literal["stdio"] = "stdio"
    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None


class WebSocketTransportConfig(_FrozenModel):
    kind: Literal["websocket"] = "websocket"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)


class HttpTransportConfig(_FrozenModel):
    kind: Literal["http"] = "http"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)


TransportConfig = Annotated[
    StdioTransportConfig | WebSocketTransportConfig | HttpTransportConfig,
    Field(discriminator="kind"),
]


class ServerConfig(_FrozenModel):
    """One configured tool server. Immutable once loaded."""

    id: str = Field(validation_alias=AliasChoices("id", "name"), min_length=1)
    transport: TransportConfig
    restart: RestartPolicy = Field(default_factory=RestartPolicy)
    tool_prefix: str | None = Field(None, alias="toolPrefix")
    requires_confirmation: bool = Field(True, alias="requiresConfirmation")
    enabled_for_agents: tuple[str, ...] = Field(("*",), alias="enabledForAgents")

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_transport(cls, data: Any) -> Any:
        """Accept the flat file layout (command/args/env or url/headers)."""
        if not isinstance(data, dict) or "transport" in data:
            return data
        data = dict(data)
        if "command" in data:
            data["transport"] = {
                "kind": "stdio",
                "command": data.pop("command"),
                "args": data.pop("args", ()),
                "env": data.pop("env", {}),
                "cwd": data.pop("cwd", None),
            }
        elif "url" in data:
            url = str(data.pop("url"))
            kind = "websocket" if url.startswith(("ws://", "wss://")) else "http"
            data["transport"] = {"kind": kind, "url": url, "headers": data.pop("headers", {})}
        return data

    def allows_agent(self, agent_name: str) -> bool:
        return "*" in self.enabled_for_agents or agent_name in self.enabled_for_agents


def expand_env_refs(value: str) -> str:
    """Replace ``${VAR}`` references with environment values (missing → empty)."""
    return _ENV_REF.sub(lambda match: os.environ.get(match.group(1), ""), value)


def _expand_server_entry(entry: dict[str, Any]) -> dict[str, Any]:
    expanded = dict(entry)
    if isinstance(expanded.get("args"), list):
        expanded["args"] = [
            expand_env_refs(arg) if isinstance(arg, str) else arg for arg in expanded["args"]
        ]
    if isinstance(expanded.get("env"), dict):
        expanded["env"] = {
            key: expand_env_refs(value) if isinstance(value, str) else value
            for key, value in expanded["env"].items()
        }
    return expanded


def parse_server_configs(raw: Any) -> Result[list[ServerConfig], str]:
    """
    Validate an already-decoded ``{"mcpServers": [...]}`` document.

    Returns:
        Ok(list of ServerConfig in file order), or Error(message) on the first
        invalid entry or duplicate server id.
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("mcpServers"), list):
        return Error("mcpServers must be an array")

    configs: list[ServerConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw["mcpServers"]):
        if not isinstance(entry, dict):
            return Error(f"mcpServers[{index}] must be an object")
        try:
            config = ServerConfig.model_validate(_expand_server_entry(entry))
        except ValidationError as e:
            return Error(f"mcpServers[{index}] is invalid: {e}")
        if config.id in seen:
            return Error(f"Duplicate server id: {config.id}")
        seen.add(config.id)
        configs.append(config)
    return Ok(configs)


def load_server_configs(path: Path) -> Result[list[ServerConfig], str]:
    """
    Load tool server configuration from a JSON file.

    A missing file means "no remote servers" and is not an error.
    """
    if not path.exists():
        logger.info(f"[Config] No {path} found, remote tool servers disabled")
        return Ok([])

    try:  # nosemgrep: forbid-try-except - file and JSON errors become Error results
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        return Error(f"Failed to read {path}: {e!s}")

    result = parse_server_configs(raw)
    match result:
        case Ok(configs):
            logger.info(f"[Config] Loaded {len(configs)} tool server config(s) from {path}")
        case Error(message):
            logger.error(f"[Config] Invalid {path}: {message}")
    return result
