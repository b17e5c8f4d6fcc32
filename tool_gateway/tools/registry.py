"""
Local Tool Registry

In-process handlers keyed by canonical tool name. A handler receives the
validated arguments dict and returns any JSON-serializable output or raises.
Coroutine functions are awaited by the gateway under the local tool timeout;
plain functions run inline.
"""

import inspect
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from loguru import logger

from tool_gateway.protocol.messages import LOCAL_OWNER, InputSchema, ToolInfo

from .naming import normalize_tool_name


ToolHandler = Callable[[dict[str, Any]], Any]


@dataclass(frozen=True)
class LocalTool:
    info: ToolInfo
    handler: ToolHandler

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.handler)


class LocalToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, LocalTool] = {}

    def register(
        self,
        name: str,
        handler: ToolHandler,
        *,
        description: str = "",
        input_schema: InputSchema | dict[str, Any] | None = None,
    ) -> ToolInfo:
        """
        Add a handler under the canonical form of ``name``.

        Raises:
            ValueError: If the canonical name is empty or already registered
        """
        canonical = normalize_tool_name(name)
        if not canonical:
            raise ValueError("Tool name must not be empty")
        if canonical in self._tools:
            raise ValueError(f"Tool already registered: {canonical}")

        schema = (
            input_schema
            if isinstance(input_schema, InputSchema)
            else InputSchema.model_validate(input_schema or {"type": "object"})
        )
        info = ToolInfo(
            qualified_name=canonical,
            remote_name=canonical,
            description=description or inspect.getdoc(handler) or "",
            input_schema=schema,
            owner_server_id=LOCAL_OWNER,
        )
        self._tools[canonical] = LocalTool(info=info, handler=handler)
        logger.debug(f"[LocalToolRegistry] Registered {canonical}")
        return info

    def get(self, canonical_name: str) -> LocalTool | None:
        return self._tools.get(canonical_name)

    def names(self) -> frozenset[str]:
        return frozenset(self._tools)

    def infos(self) -> list[ToolInfo]:
        return [tool.info for tool in self._tools.values()]

    def __contains__(self, canonical_name: object) -> bool:
        return canonical_name in self._tools

    def __iter__(self) -> Iterator[LocalTool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
