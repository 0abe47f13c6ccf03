"""API routes for listing and invoking tools."""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
import logging

from dbgateway.api.dependencies import get_dispatcher
from dbgateway.api.models.tool import ToolInvocation, ToolEnvelope, ToolListResponse
from dbgateway.core.exceptions import UnknownToolError
from dbgateway.dispatcher import ToolDispatcher


router = APIRouter(prefix="/mcp", tags=["tools"])
logger = logging.getLogger(__name__)


@router.get("/tools", response_model=ToolListResponse)
async def list_tools():
    """List the available tools and their arguments."""
    return {"tools": ToolDispatcher.tool_definitions()}


@router.post("/tool", response_model=ToolEnvelope, response_model_exclude_unset=True)
async def invoke_tool(
    invocation: ToolInvocation,
    request: Request,
    dispatcher: ToolDispatcher = Depends(get_dispatcher)
):
    """
    Invoke a tool.

    Tool failures are reported in the envelope with HTTP 200; an unknown
    server name or tool name is rejected with HTTP 400.
    """
    server_name = request.app.state.settings.MCP_SERVER_NAME
    if invocation.server_name is not None and invocation.server_name != server_name:
        logger.warning(f"Rejected call for unknown server {invocation.server_name}")
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": f"Unknown server: {invocation.server_name}",
                "error_type": "NotFoundError",
            },
        )

    envelope = await dispatcher.invoke(invocation.tool_name, invocation.args)
    if envelope.get("error_type") == UnknownToolError.__name__:
        return JSONResponse(status_code=400, content=envelope)
    return envelope
