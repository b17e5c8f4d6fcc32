"""
Tool Name Normalization

Single point of truth for the canonical form of a tool name. Routing and the
confirmation policy only ever see names that went through
``normalize_tool_name``, so dotted, underscored and legacy spellings of one
tool can never be classified differently.

Canonical form:
    1. surrounding whitespace removed
    2. every "." replaced by "_"      (fs.writeFile → fs_writeFile)
    3. exact lookup in TOOL_NAME_ALIASES (legacy spelling → current name)

Case is preserved: ``fs_writeFile`` and ``fs_writefile`` are different tools.
"""

import re
from types import MappingProxyType


# Legacy spellings still emitted by older prompts and clients.
# Keys are already dot-free; values must be canonical (never themselves keys).
TOOL_NAME_ALIASES: MappingProxyType[str, str] = MappingProxyType(
    {
        "fs_list": "fs_listFiles",
        "fs_ls": "fs_listFiles",
        "fs_read": "fs_readFile",
        "fs_cat": "fs_readFile",
        "fs_write": "fs_writeFile",
        "fs_editFile": "fs_edit",
        "fs_rm": "fs_delete",
        "fs_remove": "fs_delete",
        "fs_mv": "fs_move",
        "shell_execute": "bash_execute",
        "bash_run": "bash_execute",
        "exec_command": "bash_execute",
        "devo_exec": "devo_exec_session_start",
        "email_send": "send_email",
    }
)

_MCP_UNSAFE = re.compile(r"[^A-Za-z0-9_\-]")


def normalize_tool_name(name: str) -> str:
    """Map any accepted spelling of a tool name to its canonical form."""
    canonical = str(name or "").strip().replace(".", "_")
    return TOOL_NAME_ALIASES.get(canonical, canonical)


def qualify_remote_name(namespace: str, remote_name: str) -> str:
    """
    Build the namespaced name of a remote tool: ``mcp_<namespace>_<remote>``.

    Characters other than letters, digits, "_" and "-" become "_" so the
    result is a valid function name for every LLM provider.
    """
    namespace = _MCP_UNSAFE.sub("_", namespace.strip())
    remote = _MCP_UNSAFE.sub("_", remote_name.strip())
    return f"mcp_{namespace}_{remote}"
