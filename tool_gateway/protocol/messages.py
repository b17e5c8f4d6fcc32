"""
Tool Protocol Message Types

JSON-RPC 2.0 envelopes exchanged with tool servers, the ToolInfo catalog
entry, and structural validation of tool input schemas and call arguments.

Wire methods used by ProtocolSession:
    initialize                  → capability handshake
    notifications/initialized   → handshake completion (notification)
    tools/list                  → catalog discovery (paginated via nextCursor)
    tools/call                  → invocation
    ping                        → liveness (answered when the peer asks)
"""

import json
from functools import lru_cache
from typing import Any, Literal

from loguru import logger
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    create_model,
    field_validator,
    model_validator,
)

from tool_gateway.errors import DiscoveryError, RemoteToolError
from tool_gateway.result import Error, Ok, Result


JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"
LOCAL_OWNER = "local"

# JSON-RPC reserved error codes
METHOD_NOT_FOUND = -32601
INVALID_REQUEST = -32600

JSON_TYPES: frozenset[str] = frozenset(
    {"string", "number", "integer", "boolean", "array", "object", "null"}
)


# ============================================================
# JSON-RPC Envelopes
# ============================================================


class JsonRpcErrorObject(BaseModel):
    code: int
    message: str
    data: Any = None


class JsonRpcRequest(BaseModel):
    """Request (has ``id``) sent by either side."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: int | str
    method: str
    params: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class JsonRpcNotification(BaseModel):
    """Fire-and-forget message (no ``id``)."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str
    params: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class JsonRpcResponse(BaseModel):
    """Response to a request; exactly one of ``result`` / ``error`` is meaningful."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: int | str | None
    result: Any = None
    error: JsonRpcErrorObject | None = None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            wire["error"] = self.error.model_dump(exclude_none=True)
        else:
            wire["result"] = self.result if self.result is not None else {}
        return wire


IncomingMessage = JsonRpcRequest | JsonRpcNotification | JsonRpcResponse


def parse_incoming(data: Any) -> IncomingMessage:
    """
    Classify a decoded JSON-RPC message from a peer.

    Raises:
        ValueError: If the payload is not a JSON-RPC 2.0 message
    """
    if not isinstance(data, dict) or data.get("jsonrpc") != JSONRPC_VERSION:
        raise ValueError(f"Not a JSON-RPC 2.0 message: {data!r}")
    try:  # nosemgrep: forbid-try-except - pydantic errors become ValueError for the reader loop
        if "method" in data:
            if "id" in data and data["id"] is not None:
                return JsonRpcRequest.model_validate(data)
            return JsonRpcNotification.model_validate(data)
        if "result" in data or "error" in data:
            return JsonRpcResponse.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Malformed JSON-RPC message: {e}") from e
    raise ValueError(f"JSON-RPC message has neither method nor result: {data!r}")


# ============================================================
# Input Schemas
# ============================================================


class PropertySchema(BaseModel):
    """One property of a tool's input schema (JSON Schema subset)."""

    model_config = ConfigDict(extra="allow")

    type: str | list[str] | None = None
    description: str | None = None
    enum: list[Any] | None = None

    @field_validator("type")
    @classmethod
    def _known_json_type(cls, value: str | list[str] | None) -> str | list[str] | None:
        types = [value] if isinstance(value, str) else (value or [])
        unknown = [t for t in types if t not in JSON_TYPES]
        if unknown:
            raise ValueError(f"unknown JSON type(s): {unknown}")
        return value


class InputSchema(BaseModel):
    """
    Top-level input schema of a tool.

    Structural rules beyond type checks:
    - ``type`` must be "object"
    - every ``properties`` value must itself be a valid property schema
    - ``required`` entries must be unique and name declared properties
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Literal["object"] = "object"
    properties: dict[str, PropertySchema] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    additional_properties: bool | dict[str, Any] | None = Field(None, alias="additionalProperties")

    @model_validator(mode="after")
    def _required_names_declared(self) -> "InputSchema":
        if len(set(self.required)) != len(self.required):
            raise ValueError("required contains duplicate names")
        undeclared = [name for name in self.required if name not in self.properties]
        if undeclared:
            raise ValueError(f"required names not declared in properties: {undeclared}")
        return self

    def to_json_schema(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ToolInfo(BaseModel):
    """A named, schema-described callable capability (local or remote)."""

    model_config = ConfigDict(frozen=True)

    qualified_name: str
    remote_name: str
    description: str = ""
    input_schema: InputSchema = Field(default_factory=InputSchema)
    owner_server_id: str = LOCAL_OWNER

    @property
    def is_local(self) -> bool:
        return self.owner_server_id == LOCAL_OWNER

    def to_llm_format(self) -> dict[str, Any]:
        """Shape used for prompt assembly: name, description, parameters."""
        return {
            "name": self.qualified_name,
            "description": self.description,
            "parameters": self.input_schema.to_json_schema(),
        }


def parse_tool_list(result: Any, server_id: str) -> tuple[list[ToolInfo], str | None]:
    """
    Parse one ``tools/list`` result page.

    Returns:
        (tools in provider order, nextCursor or None)

    Raises:
        DiscoveryError: If the page or any tool entry is malformed
    """
    if not isinstance(result, dict) or not isinstance(result.get("tools"), list):
        raise DiscoveryError(f"[{server_id}] tools/list result must contain a tools array")

    tools: list[ToolInfo] = []
    for index, entry in enumerate(result["tools"]):
        if not isinstance(entry, dict):
            raise DiscoveryError(f"[{server_id}] tools[{index}] must be an object")
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            raise DiscoveryError(f"[{server_id}] tools[{index}] has no valid name")
        description = entry.get("description") or ""
        if not isinstance(description, str):
            raise DiscoveryError(f"[{server_id}] tool {name!r} description must be a string")
        try:  # nosemgrep: forbid-try-except - schema errors become DiscoveryError
            schema = InputSchema.model_validate(entry.get("inputSchema") or {"type": "object"})
        except ValidationError as e:
            raise DiscoveryError(f"[{server_id}] tool {name!r} has a malformed inputSchema: {e}") from e
        tools.append(
            ToolInfo(
                qualified_name=name,
                remote_name=name,
                description=description,
                input_schema=schema,
                owner_server_id=server_id,
            )
        )

    cursor = result.get("nextCursor")
    if cursor is not None and not isinstance(cursor, str):
        raise DiscoveryError(f"[{server_id}] nextCursor must be a string")
    return tools, cursor or None


# ============================================================
# Argument Validation
# ============================================================

_SCALAR_TYPES: dict[str, Any] = {
    "string": StrictStr,
    "integer": StrictInt,
    "number": StrictFloat | StrictInt,
    "boolean": StrictBool,
    "array": list[Any],
    "object": dict[str, Any],
    "null": type(None),
}


def _python_type(prop: PropertySchema) -> Any:
    if prop.enum and all(isinstance(v, str | int | bool) or v is None for v in prop.enum):
        return Literal[tuple(prop.enum)]
    if prop.type is None:
        return Any
    names = [prop.type] if isinstance(prop.type, str) else prop.type
    members = [_SCALAR_TYPES[name] for name in names]
    annotation = members[0]
    for member in members[1:]:
        annotation = annotation | member
    return annotation


@lru_cache(maxsize=512)
def _arguments_model(schema_json: str) -> type[BaseModel]:
    schema = InputSchema.model_validate_json(schema_json)
    fields: dict[str, Any] = {}
    for index, (name, prop) in enumerate(schema.properties.items()):
        annotation = _python_type(prop)
        if name in schema.required:
            fields[f"field_{index}"] = (annotation, Field(..., alias=name))
        else:
            optional = annotation if annotation is Any else annotation | None
            fields[f"field_{index}"] = (optional, Field(None, alias=name))
    extra = "forbid" if schema.additional_properties is False else "allow"
    return create_model(
        "ToolArguments",
        __config__=ConfigDict(strict=True, extra=extra),
        **fields,
    )


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def validate_arguments(tool: ToolInfo, arguments: Any) -> Result[dict[str, Any], str]:
    """
    Check call arguments against the tool's input schema before dispatch.

    Returns:
        Ok(arguments) unchanged on success, Error(message) describing every violation
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        return Error(f"Arguments for {tool.qualified_name} must be an object")

    model = _arguments_model(tool.input_schema.model_dump_json(by_alias=True))
    try:  # nosemgrep: forbid-try-except - pydantic errors become Error results
        model.model_validate(arguments)
    except ValidationError as e:
        message = _format_validation_error(e)
        logger.debug(f"[Arguments] {tool.qualified_name} rejected: {message}")
        return Error(f"Invalid arguments for {tool.qualified_name}: {message}")
    return Ok(arguments)


# ============================================================
# Call Results
# ============================================================


def render_call_result(result: Any, tool_name: str) -> Any:
    """
    Extract the output of a ``tools/call`` result.

    Text content items are joined with newlines; other items are rendered as
    JSON. Results without a content array are returned unchanged.

    Raises:
        RemoteToolError: If the peer flagged the result with ``isError``
    """
    if not isinstance(result, dict):
        return result

    content = result.get("content")
    if isinstance(content, list):
        texts = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                texts.append(str(item.get("text", "")))
            else:
                texts.append(json.dumps(item, ensure_ascii=False))
        output: Any = "\n".join(texts)
    else:
        output = result.get("structuredContent", result)

    if result.get("isError") is True:
        raise RemoteToolError(f"{tool_name} failed: {output}")
    return output
