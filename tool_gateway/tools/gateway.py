"""
Tool Invocation Gateway

Single entry point for executing a tool by name.

Pipeline (in this order, for every call):
    1. normalize   raw name → canonical name (dotted / legacy spellings)
    2. resolve     local registry first, then the SessionManager catalog
    3. gate        ConfirmationPolicy; blocked calls never reach a handler
    4. validate    arguments against the tool's input schema
    5. dispatch    local handler in-process, or SessionManager.invoke()

Every failure, whatever its origin, comes back as
``InvocationResult(success=False, error=..., error_code=...)``.

Usage:
    gateway = ToolGateway(manager, registry, approval_queue=ApprovalQueue())
    result = await gateway.execute("fs.writeFile", {"path": "a.txt", "content": "hi"})
    # result.error → 'Tool "fs_writeFile" (Write to file: a.txt) requires user confirmation before execution'
    result = await gateway.execute("fs.writeFile", {...}, confirmed=True)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel

from tool_gateway.errors import (
    ActionNotFound,
    ArgumentValidationError,
    ConfirmationRequired,
    GatewayError,
    InvocationTimeout,
    ToolNotFound,
)
from tool_gateway.protocol.messages import ToolInfo, validate_arguments
from tool_gateway.result import Error, Ok, Result

from .approval_queue import ApprovalQueue, PendingAction
from .naming import normalize_tool_name
from .policy import DEFAULT_POLICY, ConfirmationPolicy, ConfirmationRule, RiskClass, describe_action
from .registry import LocalTool, LocalToolRegistry


if TYPE_CHECKING:
    from tool_gateway.sessions.manager import SessionManager


class InvocationResult(BaseModel):
    """Uniform outcome of ``execute``: ``output`` on success, ``error`` otherwise."""

    success: bool
    output: Any = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def failure(cls, error: Exception) -> InvocationResult:
        code = error.code if isinstance(error, GatewayError) else type(error).__name__
        return cls(success=False, error=str(error) or type(error).__name__, error_code=code)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "output": self.output}
        return {"success": False, "error": self.error, "errorCode": self.error_code}


class ToolGateway:
    """
    Args:
        manager: Remote tool catalog and dispatch; None for a local-only gateway
        registry: Local built-in handlers
        policy: Static confirmation rules (server rules are layered on per catalog)
        approval_queue: Where blocked calls are parked by ``execute_or_queue``
        local_tool_timeout: Bound on async local handlers
    """

    def __init__(
        self,
        manager: SessionManager | None,
        registry: LocalToolRegistry,
        *,
        policy: ConfirmationPolicy = DEFAULT_POLICY,
        approval_queue: ApprovalQueue | None = None,
        local_tool_timeout: float = 30.0,
    ) -> None:
        self._manager = manager
        self._registry = registry
        self._policy = policy
        self._approval_queue = approval_queue or ApprovalQueue()
        self._local_tool_timeout = local_tool_timeout
        self._cached_rules: tuple[ConfirmationRule, ...] = ()
        self._cached_policy = policy

    @property
    def approval_queue(self) -> ApprovalQueue:
        return self._approval_queue

    # ========== Execution ==========

    async def execute(
        self, tool_name: str, arguments: dict[str, Any] | None = None, confirmed: bool = False
    ) -> InvocationResult:
        canonical = normalize_tool_name(tool_name)
        arguments = {} if arguments is None else arguments
        try:  # nosemgrep: forbid-try-except - the gateway is the single error-to-result boundary
            output = await self._execute(canonical, arguments, confirmed)
        except ConfirmationRequired as e:
            return InvocationResult.failure(e)
        except GatewayError as e:
            logger.error(f"[Gateway] {canonical} failed ({e.code}): {e!s}")
            return InvocationResult.failure(e)
        except Exception as e:
            logger.exception(f"[Gateway] {canonical} handler raised: {e!s}")
            return InvocationResult.failure(e)

        logger.info(f"[Gateway] {canonical} succeeded")
        return InvocationResult(success=True, output=output)

    async def execute_or_queue(
        self, tool_name: str, arguments: dict[str, Any] | None = None, confirmed: bool = False
    ) -> tuple[InvocationResult, PendingAction | None]:
        """Like ``execute``, but a confirmation block is parked in the approval queue."""
        result = await self.execute(tool_name, arguments, confirmed)
        if result.error_code != ConfirmationRequired.__name__:
            return result, None
        canonical = normalize_tool_name(tool_name)
        args = arguments if isinstance(arguments, dict) else {}
        action = self._approval_queue.request(canonical, args, describe_action(canonical, args))
        return result, action

    async def approve_action(self, action_id: str) -> InvocationResult:
        """Run a parked action as a new request carrying ``confirmed=True``."""
        match self._approval_queue.resolve(action_id, approved=True):
            case Ok(action):
                return await self.execute(action.tool_name, action.arguments, confirmed=True)
            case Error():
                return InvocationResult.failure(ActionNotFound(action_id))

    def reject_action(self, action_id: str) -> Result[PendingAction, str]:
        return self._approval_queue.resolve(action_id, approved=False)

    async def _execute(self, canonical: str, arguments: Any, confirmed: bool) -> Any:
        tool, local = self._resolve(canonical)

        if self._classify(canonical) is RiskClass.REQUIRES_CONFIRMATION and not confirmed:
            description = describe_action(canonical, arguments if isinstance(arguments, dict) else {})
            logger.warning(f"[Gateway] Blocked {canonical} pending user confirmation: {description}")
            raise ConfirmationRequired(canonical, description)

        match validate_arguments(tool, arguments):
            case Error(message):
                raise ArgumentValidationError(message)
            case Ok(validated):
                arguments = validated

        if local is not None:
            return await self._run_local(local, arguments)
        assert self._manager is not None
        return await self._manager.invoke(canonical, arguments)

    async def _run_local(self, tool: LocalTool, arguments: dict[str, Any]) -> Any:
        if not tool.is_async:
            return tool.handler(arguments)
        try:  # nosemgrep: forbid-try-except - local deadline becomes InvocationTimeout
            return await asyncio.wait_for(tool.handler(arguments), timeout=self._local_tool_timeout)
        except TimeoutError as e:
            raise InvocationTimeout(
                f"{tool.info.qualified_name} did not finish within {self._local_tool_timeout}s"
            ) from e

    # ========== Resolution / Policy ==========

    def _resolve(self, canonical: str) -> tuple[ToolInfo, LocalTool | None]:
        local = self._registry.get(canonical)
        if local is not None:
            return local.info, local
        if self._manager is not None:
            entry = self._manager.catalog().get(canonical)
            if entry is not None:
                return entry.tool, None
        raise ToolNotFound(canonical)

    def _current_policy(self) -> ConfirmationPolicy:
        if self._manager is None:
            return self._policy
        rules = self._manager.confirmation_rules()
        if rules is not self._cached_rules:
            self._cached_rules = rules
            self._cached_policy = self._policy.extended(rules)
        return self._cached_policy

    def classify(self, tool_name: str) -> RiskClass:
        return self._classify(normalize_tool_name(tool_name))

    def _classify(self, canonical: str) -> RiskClass:
        """
        Risk of the exposed name, tightened by the tool's own remote name.

        A remote tool exposed as ``mcp_<ns>_<remote>`` is also checked against
        the static rules under its canonical remote name, so namespacing never
        relaxes the gate.
        """
        risk = self._current_policy().classify(canonical)
        if risk is RiskClass.REQUIRES_CONFIRMATION or self._manager is None:
            return risk
        if self._registry.get(canonical) is not None:
            return risk
        entry = self._manager.catalog().get(canonical)
        if entry is None:
            return risk
        remote_canonical = normalize_tool_name(entry.remote_name)
        if remote_canonical == canonical:
            return risk
        return self._policy.classify(remote_canonical)

    # ========== Catalog Export ==========

    def list_tools(self, agent_name: str | None = None) -> list[ToolInfo]:
        """Local built-ins followed by remote tools (filtered by agent access if given)."""
        tools = self._registry.infos()
        if self._manager is not None:
            if agent_name is None:
                tools += [entry.tool for entry in self._manager.catalog().values()]
            else:
                tools += self._manager.tools_for_agent(agent_name)
        return tools

    def describe_tools(self, agent_name: str | None = None) -> list[dict[str, Any]]:
        """Tool definitions for prompt assembly: name, description, parameters."""
        return [tool.to_llm_format() for tool in self.list_tools(agent_name)]
