"""Unit tests for JSON-RPC envelopes, tool schemas and argument validation."""

import pytest

from tests.utils import assert_error, assert_ok
from tool_gateway.errors import DiscoveryError, RemoteToolError
from tool_gateway.protocol.messages import (
    InputSchema,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    ToolInfo,
    parse_incoming,
    parse_tool_list,
    render_call_result,
    validate_arguments,
)


# ============================================================
# Envelopes
# ============================================================


def test_request_to_wire_omits_missing_params() -> None:
    assert JsonRpcRequest(id=1, method="tools/list").to_wire() == {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "tools/list",
    }


def test_response_to_wire_always_has_result_or_error() -> None:
    assert JsonRpcResponse(id=7, result={}).to_wire() == {"jsonrpc": "2.0", "id": 7, "result": {}}


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"jsonrpc": "2.0", "id": 1, "method": "ping"}, JsonRpcRequest),
        ({"jsonrpc": "2.0", "method": "notifications/tools/list_changed"}, JsonRpcNotification),
        ({"jsonrpc": "2.0", "id": 1, "result": {"ok": True}}, JsonRpcResponse),
        ({"jsonrpc": "2.0", "id": 2, "error": {"code": -1, "message": "no"}}, JsonRpcResponse),
    ],
)
def test_parse_incoming_classifies_messages(payload: dict, expected: type) -> None:
    assert isinstance(parse_incoming(payload), expected)


@pytest.mark.parametrize("payload", [[], {"id": 1}, {"jsonrpc": "1.0", "id": 1, "result": 1}, {"jsonrpc": "2.0"}])
def test_parse_incoming_rejects_non_jsonrpc(payload: object) -> None:
    with pytest.raises(ValueError):
        parse_incoming(payload)


# ============================================================
# Discovery
# ============================================================


def test_parse_tool_list_builds_tool_infos() -> None:
    # given
    result = {
        "tools": [
            {
                "name": "search",
                "description": "Search the web",
                "inputSchema": {
                    "type": "object",
                    "properties": {"query": {"type": "string"}},
                    "required": ["query"],
                },
            },
            {"name": "now"},
        ],
        "nextCursor": "page-2",
    }

    # when
    tools, cursor = parse_tool_list(result, "alpha")

    # then
    assert [tool.remote_name for tool in tools] == ["search", "now"]
    assert tools[0].owner_server_id == "alpha"
    assert tools[0].input_schema.required == ["query"]
    assert tools[1].input_schema == InputSchema()
    assert cursor == "page-2"


@pytest.mark.parametrize(
    "result",
    [
        {},
        {"tools": "nope"},
        {"tools": [{"description": "no name"}]},
        {"tools": [{"name": "x", "inputSchema": {"type": "array"}}]},
        {"tools": [{"name": "x", "inputSchema": {"type": "object", "required": ["missing"]}}]},
        {"tools": [{"name": "x", "inputSchema": {"type": "object", "properties": {"a": {"type": "text"}}}}]},
        {"tools": [{"name": "x", "inputSchema": {"type": "object", "properties": {"a": "string"}}}]},
        {"tools": [], "nextCursor": 3},
    ],
)
def test_parse_tool_list_rejects_malformed_catalogs(result: dict) -> None:
    with pytest.raises(DiscoveryError):
        parse_tool_list(result, "alpha")


def test_to_llm_format() -> None:
    tool = ToolInfo(qualified_name="mcp_s_find", remote_name="find", description="Find", owner_server_id="s")

    assert tool.to_llm_format() == {
        "name": "mcp_s_find",
        "description": "Find",
        "parameters": {"type": "object", "properties": {}, "required": []},
    }
    assert not tool.is_local


# ============================================================
# Argument Validation
# ============================================================


def _tool(schema: dict) -> ToolInfo:
    return ToolInfo(qualified_name="t", remote_name="t", input_schema=InputSchema.model_validate(schema))


WRITE_SCHEMA = {
    "type": "object",
    "properties": {
        "path": {"type": "string"},
        "mode": {"enum": ["overwrite", "append"]},
        "retries": {"type": "integer"},
        "ratio": {"type": "number"},
    },
    "required": ["path"],
    "additionalProperties": False,
}


def test_valid_arguments_pass_unchanged() -> None:
    arguments = {"path": "a.txt", "mode": "append", "retries": 2, "ratio": 1}

    assert assert_ok(validate_arguments(_tool(WRITE_SCHEMA), arguments)) is arguments


@pytest.mark.parametrize(
    ("arguments", "fragment"),
    [
        ({}, "path"),
        ({"path": 3}, "path"),
        ({"path": "a", "mode": "truncate"}, "mode"),
        ({"path": "a", "retries": "2"}, "retries"),
        ({"path": "a", "unexpected": True}, "unexpected"),
    ],
)
def test_invalid_arguments_are_reported(arguments: dict, fragment: str) -> None:
    message = assert_error(validate_arguments(_tool(WRITE_SCHEMA), arguments))

    assert message.startswith("Invalid arguments for t:")
    assert fragment in message


def test_extra_arguments_allowed_unless_forbidden() -> None:
    schema = {"type": "object", "properties": {"q": {"type": "string"}}}

    assert_ok(validate_arguments(_tool(schema), {"q": "x", "limit": 5}))


def test_non_object_arguments_rejected() -> None:
    assert_error(validate_arguments(_tool({"type": "object"}), ["a"]), containing="must be an object")


# ============================================================
# Call Results
# ============================================================


def test_render_joins_text_content() -> None:
    result = {"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}

    assert render_call_result(result, "t") == "a\nb"


def test_render_serializes_non_text_items() -> None:
    result = {"content": [{"type": "image", "data": "x", "mimeType": "image/png"}]}

    assert render_call_result(result, "t") == '{"type": "image", "data": "x", "mimeType": "image/png"}'


def test_render_without_content_returns_structured_result() -> None:
    assert render_call_result({"structuredContent": {"n": 1}}, "t") == {"n": 1}


def test_render_raises_on_is_error() -> None:
    with pytest.raises(RemoteToolError, match="t failed: disk full"):
        render_call_result({"content": [{"type": "text", "text": "disk full"}], "isError": True}, "t")
