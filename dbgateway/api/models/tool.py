"""Request and response models for tool invocation."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any, List


class ToolInvocation(BaseModel):
    """Request body for POST /mcp/tool."""
    server_name: Optional[str] = None
    tool_name: str = Field(min_length=1)
    args: Dict[str, Any] = Field(default_factory=dict)


class ToolEnvelope(BaseModel):
    """Outcome of a tool call; successful calls carry the tool's result fields."""
    model_config = ConfigDict(extra="allow")

    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = None


class ToolDescription(BaseModel):
    name: str
    description: str
    required: List[str]
    optional: List[str] = []


class ToolListResponse(BaseModel):
    tools: List[ToolDescription]
