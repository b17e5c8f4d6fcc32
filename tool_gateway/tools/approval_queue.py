"""
Approval Queue for Confirmation-Gated Tool Calls

Holds calls the gateway refused with ConfirmationRequired until a human
decides. Nothing here executes a tool: approving an action hands it back to
``ToolGateway.approve_action()``, which issues a *new* request with
``confirmed=True``.

Usage:
    queue = ApprovalQueue()
    action = queue.request("fs_writeFile", {"path": "a.txt", ...}, "Write to file: a.txt")

    # HTTP handler, after the user clicked "approve"
    match queue.resolve(action.action_id, approved=True):
        case Ok(action):
            ...
        case Error(message):
            ...
"""

import time
import uuid
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from tool_gateway.result import Error, Ok, Result


class PendingAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    action_id: str = Field(default_factory=lambda: f"action-{uuid.uuid4().hex[:12]}")
    tool_name: str
    arguments: dict[str, Any]
    description: str
    created_at: float = Field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "actionId": self.action_id,
            "toolName": self.tool_name,
            "arguments": self.arguments,
            "description": self.description,
            "createdAt": self.created_at,
        }


class ApprovalQueue:
    """
    In-memory pending actions keyed by action id.

    Safe for concurrent tasks within a single event loop.
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingAction] = {}

    def request(self, tool_name: str, arguments: dict[str, Any], description: str) -> PendingAction:
        action = PendingAction(tool_name=tool_name, arguments=dict(arguments), description=description)
        self._pending[action.action_id] = action
        logger.info(f"[ApprovalQueue] Pending {action.action_id}: {description}")
        return action

    def resolve(self, action_id: str, approved: bool) -> Result[PendingAction, str]:
        """Remove the action. A second resolve of the same id is an Error."""
        action = self._pending.pop(action_id, None)
        if action is None:
            return Error(f"No pending action: {action_id}")

        logger.info(
            f"[ApprovalQueue] {'Approved' if approved else 'Rejected'} {action_id} ({action.tool_name})"
        )
        return Ok(action)

    def get(self, action_id: str) -> PendingAction | None:
        return self._pending.get(action_id)

    def get_pending_count(self) -> int:
        return len(self._pending)

    def get_pending_requests(self) -> list[PendingAction]:
        """Pending actions, oldest first."""
        return sorted(self._pending.values(), key=lambda action: action.created_at)
