"""Unit tests for the confirmation policy."""

import pytest

from tool_gateway.tools.policy import (
    DEFAULT_POLICY,
    DEFAULT_RULES,
    ConfirmationPolicy,
    ConfirmationRule,
    MatchKind,
    RiskClass,
    classify,
    describe_action,
    name_tokens,
)


GATED = [
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
    "pm2_reloadAll",
    "npm_install",
    "npm_run",
    "send_email",
    "skill_delete",
    "devo_exec_session_start",
]

SAFE = [
    "fs_listFiles",
    "fs_readFile",
    "fs_glob",
    "fs_grep",
    "git_status",
    "git_diff",
    "web_search",
    "web_fetch",
    "pm2_status",
    "pm2_logs",
    "context_listDocuments",
    "memory_remember",
    "scheduler_list",
]


# ============================================================
# Static table
# ============================================================


@pytest.mark.parametrize("name", GATED)
def test_side_effecting_tools_require_confirmation(name: str) -> None:
    assert classify(name) is RiskClass.REQUIRES_CONFIRMATION


@pytest.mark.parametrize("name", SAFE)
def test_read_only_tools_are_safe(name: str) -> None:
    assert classify(name) is RiskClass.SAFE


def test_exact_rule_beats_prefix_rule() -> None:
    # pm2_ prefix is gated but pm2_status is explicitly safe
    assert DEFAULT_POLICY.classify("pm2_status") is RiskClass.SAFE
    assert DEFAULT_POLICY.classify("pm2_flush") is RiskClass.REQUIRES_CONFIRMATION


def test_longest_prefix_wins() -> None:
    policy = ConfirmationPolicy(
        [
            ConfirmationRule("db_", RiskClass.REQUIRES_CONFIRMATION, MatchKind.PREFIX),
            ConfirmationRule("db_read_", RiskClass.SAFE, MatchKind.PREFIX),
        ]
    )

    assert policy.classify("db_read_rows") is RiskClass.SAFE
    assert policy.classify("db_vacuum") is RiskClass.REQUIRES_CONFIRMATION


def test_unknown_shell_variants_are_caught_by_prefix() -> None:
    assert classify("bash_spawn_background") is RiskClass.REQUIRES_CONFIRMATION
    assert classify("devo_exec_anything") is RiskClass.REQUIRES_CONFIRMATION


# ============================================================
# Heuristic
# ============================================================


def test_name_tokens_split_camel_case_and_separators() -> None:
    assert name_tokens("github_triggerWorkflow") == ["github", "trigger", "workflow"]
    assert name_tokens("mcp_repo-deleteHTTPHook") == ["mcp", "repo", "delete", "http", "hook"]


@pytest.mark.parametrize(
    "name",
    ["mcp_repo_deleteBranch", "jira_createIssue", "mcp_s_upload_file", "mcp_vcs_git_pull", "config_save", "nginx_reload"],
)
def test_unlisted_mutating_names_require_confirmation(name: str) -> None:
    assert classify(name) is RiskClass.REQUIRES_CONFIRMATION


@pytest.mark.parametrize("name", ["get_weather", "mcp_repo_listBranches", "calendar_runs_summary"])
def test_unlisted_read_names_are_safe(name: str) -> None:
    assert classify(name) is RiskClass.SAFE


# ============================================================
# Extension
# ============================================================


def test_extended_adds_rules_without_touching_original() -> None:
    # given
    extra = [ConfirmationRule("get_weather", RiskClass.REQUIRES_CONFIRMATION)]

    # when
    policy = DEFAULT_POLICY.extended(extra)

    # then
    assert policy.requires_confirmation("get_weather")
    assert not DEFAULT_POLICY.requires_confirmation("get_weather")
    assert policy.rules == (*DEFAULT_RULES, *extra)


def test_default_table_has_no_conflicting_exact_rules() -> None:
    seen: dict[str, RiskClass] = {}
    for rule in DEFAULT_RULES:
        if rule.kind is MatchKind.EXACT:
            assert seen.setdefault(rule.match_pattern, rule.risk_class) is rule.risk_class


# ============================================================
# Action descriptions
# ============================================================


@pytest.mark.parametrize(
    ("name", "args", "expected"),
    [
        ("fs_writeFile", {"path": "notes.txt"}, "Write to file: notes.txt"),
        ("fs_move", {"source": "a", "destination": "b"}, "Move: a -> b"),
        ("git_commit", {"message": "fix"}, 'Git commit: "fix"'),
        ("git_push", {}, "Git push to origin/current branch"),
        ("bash_execute", {"command": "ls"}, "Execute: ls"),
        ("devo_exec_session_start", {"command": "npm test"}, "Execute: npm test"),
        ("ssh_execute", {"host": "web1", "command": "uptime"}, "SSH to web1: uptime"),
        ("pm2_restart", {"processName": "api"}, "PM2 restart: api"),
        ("npm_install", {}, "npm install"),
        ("npm_install", {"packageName": "left-pad"}, "npm install left-pad"),
        ("mcp_repo_deleteBranch", {"name": "x"}, "Execute: mcp_repo_deleteBranch"),
    ],
)
def test_describe_action(name: str, args: dict, expected: str) -> None:
    assert describe_action(name, args) == expected
