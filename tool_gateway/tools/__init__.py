"""
Tools Layer

Name normalization, the confirmation policy, local built-ins, the approval
queue and the ToolGateway entry point.
"""

from .approval_queue import ApprovalQueue, PendingAction
from .builtin_fs import WorkspaceFiles, register_fs_tools
from .gateway import InvocationResult, ToolGateway
from .naming import TOOL_NAME_ALIASES, normalize_tool_name, qualify_remote_name
from .policy import (
    DEFAULT_POLICY,
    DEFAULT_RULES,
    ConfirmationPolicy,
    ConfirmationRule,
    MatchKind,
    RiskClass,
    classify,
    describe_action,
)
from .registry import LocalTool, LocalToolRegistry


__all__ = [
    "DEFAULT_POLICY",
    "DEFAULT_RULES",
    "TOOL_NAME_ALIASES",
    "ApprovalQueue",
    "ConfirmationPolicy",
    "ConfirmationRule",
    "InvocationResult",
    "LocalTool",
    "LocalToolRegistry",
    "MatchKind",
    "PendingAction",
    "RiskClass",
    "ToolGateway",
    "WorkspaceFiles",
    "classify",
    "describe_action",
    "normalize_tool_name",
    "qualify_remote_name",
    "register_fs_tools",
]
