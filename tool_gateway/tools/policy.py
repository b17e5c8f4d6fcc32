"""
Confirmation Policy

Stateless classification of a *normalized* tool name into a risk class.
The rule table below is the single source of truth; nothing else in the
gateway decides whether a tool needs user consent.

Resolution order:
    1. exact-name rule
    2. longest matching prefix rule
    3. mutating-verb heuristic over the name's tokens (``fs_writeFile`` →
       fs / write / file) → REQUIRES_CONFIRMATION on any hit
    4. otherwise SAFE

Per-server rules (``requiresConfirmation`` in mcp-servers.json) are layered
on top with ``ConfirmationPolicy.extended()``; later exact rules win.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class RiskClass(StrEnum):
    SAFE = "safe"
    REQUIRES_CONFIRMATION = "requiresConfirmation"


class MatchKind(StrEnum):
    EXACT = "exact"
    PREFIX = "prefix"


@dataclass(frozen=True)
class ConfirmationRule:
    match_pattern: str
    risk_class: RiskClass
    kind: MatchKind = MatchKind.EXACT

    def matches(self, name: str) -> bool:
        if self.kind is MatchKind.EXACT:
            return name == self.match_pattern
        return name.startswith(self.match_pattern)


def _exact(names: Iterable[str], risk: RiskClass) -> tuple[ConfirmationRule, ...]:
    return tuple(ConfirmationRule(name, risk) for name in names)


def _prefix(prefixes: Iterable[str], risk: RiskClass) -> tuple[ConfirmationRule, ...]:
    return tuple(ConfirmationRule(prefix, risk, MatchKind.PREFIX) for prefix in prefixes)


_CONFIRM = RiskClass.REQUIRES_CONFIRMATION
_SAFE = RiskClass.SAFE

DEFAULT_RULES: tuple[ConfirmationRule, ...] = (
    # Filesystem / VCS / deployment side effects
    *_exact(
        [
            "fs_writeFile",
            "fs_edit",
            "fs_mkdir",
            "fs_move",
            "fs_delete",
            "git_commit",
            "git_push",
            "git_pull",
            "github_triggerWorkflow",
            "bash_execute",
            "ssh_execute",
            "pm2_restart",
            "pm2_stop",
            "pm2_start",
            "pm2_reloadAll",
            "pm2_save",
            "npm_install",
            "npm_run",
            "taskforge_create_task",
            "taskforge_move_task",
            "send_email",
            "skill_delete",
            "devo_exec_session_start",
        ],
        _CONFIRM,
    ),
    # Read-only tools whose names would otherwise trip the verb heuristic
    *_exact(
        [
            "fs_listFiles",
            "fs_readFile",
            "fs_glob",
            "fs_grep",
            "git_status",
            "git_diff",
            "git_add",
            "web_search",
            "web_fetch",
            "pm2_status",
            "pm2_logs",
            "logs_getStagingLogs",
        ],
        _SAFE,
    ),
    # Arbitrary command execution, whatever the suffix
    *_prefix(["bash_", "shell_", "ssh_", "devo_exec_", "npm_", "pm2_"], _CONFIRM),
    # Assistant-internal state
    *_prefix(["context_", "memory_", "scheduler_"], _SAFE),
)

MUTATING_VERBS: frozenset[str] = frozenset(
    {
        "apply",
        "commit",
        "create",
        "delete",
        "deploy",
        "drop",
        "edit",
        "exec",
        "execute",
        "install",
        "kill",
        "merge",
        "mkdir",
        "modify",
        "move",
        "mv",
        "overwrite",
        "patch",
        "publish",
        "pull",
        "push",
        "put",
        "remove",
        "reload",
        "rename",
        "reset",
        "restart",
        "rm",
        "run",
        "save",
        "send",
        "shutdown",
        "start",
        "stop",
        "trigger",
        "truncate",
        "uninstall",
        "update",
        "upload",
        "write",
    }
)

_TOKEN = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])")


def name_tokens(name: str) -> list[str]:
    """Split on ``_``/``-`` and camelCase boundaries, lowercased."""
    return [token.lower() for token in _TOKEN.findall(name)]


class ConfirmationPolicy:
    """Immutable rule table with exact → longest-prefix → heuristic lookup."""

    def __init__(self, rules: Iterable[ConfirmationRule] = DEFAULT_RULES) -> None:
        self._rules = tuple(rules)
        self._exact: dict[str, RiskClass] = {}
        prefixes: dict[str, RiskClass] = {}
        for rule in self._rules:
            if rule.kind is MatchKind.EXACT:
                self._exact[rule.match_pattern] = rule.risk_class
            else:
                prefixes[rule.match_pattern] = rule.risk_class
        self._prefixes = sorted(prefixes.items(), key=lambda item: len(item[0]), reverse=True)

    @property
    def rules(self) -> tuple[ConfirmationRule, ...]:
        return self._rules

    def classify(self, normalized_name: str) -> RiskClass:
        exact = self._exact.get(normalized_name)
        if exact is not None:
            return exact
        for prefix, risk in self._prefixes:
            if normalized_name.startswith(prefix):
                return risk
        if MUTATING_VERBS.intersection(name_tokens(normalized_name)):
            return RiskClass.REQUIRES_CONFIRMATION
        return RiskClass.SAFE

    def requires_confirmation(self, normalized_name: str) -> bool:
        return self.classify(normalized_name) is RiskClass.REQUIRES_CONFIRMATION

    def extended(self, rules: Iterable[ConfirmationRule]) -> "ConfirmationPolicy":
        """New policy with ``rules`` appended; the receiver is left untouched."""
        return ConfirmationPolicy((*self._rules, *rules))


DEFAULT_POLICY = ConfirmationPolicy()


def classify(normalized_name: str) -> RiskClass:
    return DEFAULT_POLICY.classify(normalized_name)


def describe_action(tool_name: str, args: Mapping[str, Any]) -> str:
    """Human readable one-liner for a pending side-effecting call."""
    match tool_name:
        case "fs_writeFile":
            return f"Write to file: {args.get('path')}"
        case "fs_edit":
            return f"Edit file: {args.get('path')}"
        case "fs_mkdir":
            return f"Create directory: {args.get('path')}"
        case "fs_move":
            return f"Move: {args.get('source')} -> {args.get('destination')}"
        case "fs_delete":
            return f"Delete: {args.get('path')}"
        case "git_commit":
            return f'Git commit: "{args.get("message")}"'
        case "git_push":
            return f"Git push to {args.get('remote') or 'origin'}/{args.get('branch') or 'current branch'}"
        case "git_pull":
            return f"Git pull from {args.get('remote') or 'origin'}/{args.get('branch') or 'current branch'}"
        case "github_triggerWorkflow":
            return f"Trigger workflow: {args.get('workflow')} on {args.get('ref')}"
        case "bash_execute" | "devo_exec_session_start":
            return f"Execute: {args.get('command')}"
        case "ssh_execute":
            return f"SSH to {args.get('host')}: {args.get('command')}"
        case "pm2_restart" | "pm2_stop" | "pm2_start":
            return f"PM2 {tool_name.removeprefix('pm2_')}: {args.get('processName')}"
        case "pm2_reloadAll":
            return "PM2 reload all processes"
        case "npm_install":
            package = args.get("packageName")
            return f"npm install {package}" if package else "npm install"
        case "npm_run":
            return f"npm run {args.get('script')}"
        case _:
            return f"Execute: {tool_name}"
