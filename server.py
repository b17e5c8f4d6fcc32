"""
Tool Gateway Server with FastAPI

Composition root: builds the local tool registry, the SessionManager and the
ToolGateway at startup, and exposes them over HTTP.

Endpoints:
    GET  /health                     tool server status
    GET  /tools[?agent=]             tool definitions for prompt assembly
    POST /tools/execute              run a tool (blocked calls are queued for approval)
    GET  /actions/pending            queued confirmation-gated calls
    POST /actions/{id}/approve       run a queued call with confirmed=True
    POST /actions/{id}/reject        discard a queued call
    POST /servers/reload             re-read mcp-servers.json and reconcile sessions
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv


# Load environment variables from .env.local BEFORE any local imports
load_dotenv(".env.local")

from fastapi import FastAPI, HTTPException, Request  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from loguru import logger  # noqa: E402
from pydantic import BaseModel, ConfigDict, Field  # noqa: E402

from tool_gateway import (  # noqa: E402
    ApprovalQueue,
    LocalToolRegistry,
    SessionManager,
    ToolGateway,
    load_server_configs,
    load_settings,
)
from tool_gateway.logging_config import configure_logging  # noqa: E402
from tool_gateway.result import Error, Ok  # noqa: E402
from tool_gateway.tools import RiskClass, register_fs_tools  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    settings = load_settings()
    logger.info("Tool Gateway Server starting up...")

    registry = LocalToolRegistry()
    register_fs_tools(registry, settings.workspace_root)

    manager = SessionManager(
        local_names=registry.names(),
        max_concurrent_connects=settings.max_concurrent_connects,
        handshake_timeout=settings.handshake_timeout,
        tool_timeout=settings.tool_timeout,
    )
    match load_server_configs(settings.config_path):
        case Ok(configs):
            await manager.initialize(configs)
        case Error(message):
            logger.error(f"Starting without remote tool servers: {message}")

    app.state.settings = settings
    app.state.manager = manager
    app.state.gateway = ToolGateway(
        manager,
        registry,
        approval_queue=ApprovalQueue(),
        local_tool_timeout=settings.local_tool_timeout,
    )
    try:
        yield
    finally:
        logger.info("Tool Gateway Server shutting down...")
        await manager.shutdown()


app = FastAPI(
    title="Tool Gateway Server",
    description="Confirmation-gated tool execution across local built-ins and external tool servers",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for frontend communication
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:3001",
        "http://localhost:3002",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ExecuteRequest(BaseModel):
    """Tool execution request model"""

    model_config = ConfigDict(populate_by_name=True)

    tool_name: str = Field(alias="toolName", min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)
    confirmed: bool = False


def _gateway(request: Request) -> ToolGateway:
    return request.app.state.gateway


def _manager(request: Request) -> SessionManager:
    return request.app.state.manager


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Tool Gateway Server",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health(request: Request):
    """Health check endpoint with per-server session state"""
    servers = _manager(request).status()
    return {"status": "healthy", "servers": servers}


@app.get("/tools")
async def list_tools(request: Request, agent: str | None = None):
    gateway = _gateway(request)
    return {
        "tools": [
            {
                **tool.to_llm_format(),
                "requiresConfirmation": gateway.classify(tool.qualified_name) is RiskClass.REQUIRES_CONFIRMATION,
            }
            for tool in gateway.list_tools(agent)
        ]
    }


@app.post("/tools/execute")
async def execute_tool(body: ExecuteRequest, request: Request):
    """
    Execute a tool.

    A call blocked by the confirmation policy is queued; the response carries
    its ``actionId`` for a later approve/reject.
    """
    logger.info(f"[/tools/execute] {body.tool_name} (confirmed={body.confirmed})")
    result, action = await _gateway(request).execute_or_queue(
        body.tool_name, body.arguments, body.confirmed
    )
    response = result.to_dict()
    if action is not None:
        response["actionId"] = action.action_id
        response["description"] = action.description
    return response


@app.get("/actions/pending")
async def pending_actions(request: Request):
    queue = _gateway(request).approval_queue
    return {"actions": [action.to_dict() for action in queue.get_pending_requests()]}


@app.post("/actions/{action_id}/approve")
async def approve_action(action_id: str, request: Request):
    result = await _gateway(request).approve_action(action_id)
    if result.error_code == "ActionNotFound":
        raise HTTPException(status_code=404, detail=result.error)
    return result.to_dict()


@app.post("/actions/{action_id}/reject")
async def reject_action(action_id: str, request: Request):
    match _gateway(request).reject_action(action_id):
        case Ok(action):
            return {"status": "rejected", "actionId": action.action_id}
        case Error(message):
            raise HTTPException(status_code=404, detail=message)


@app.post("/servers/reload")
async def reload_servers(request: Request):
    """Re-read the server config file and reconcile running sessions."""
    settings = request.app.state.settings
    match load_server_configs(settings.config_path):
        case Ok(configs):
            report = await _manager(request).reconcile(configs)
            return {"status": "success", **report}
        case Error(message):
            raise HTTPException(status_code=400, detail=message)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")  # noqa: S104
