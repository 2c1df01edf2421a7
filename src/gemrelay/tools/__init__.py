"""Tool interface, dispatch and built-in memory tools."""

from gemrelay.tools.base import BaseTool, Tool
from gemrelay.tools.dispatcher import DispatchOutcome, ToolCallDispatcher, serialize_tool_result
from gemrelay.tools.memory import MemoryReadTool, MemoryWriteTool

__all__ = [
    "BaseTool",
    "DispatchOutcome",
    "MemoryReadTool",
    "MemoryWriteTool",
    "Tool",
    "ToolCallDispatcher",
    "serialize_tool_result",
]
