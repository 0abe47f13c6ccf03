from .tool_dispatcher import ToolDispatcher
from .tools import TOOLS, ToolDefinition

__all__ = ['ToolDispatcher', 'TOOLS', 'ToolDefinition']
