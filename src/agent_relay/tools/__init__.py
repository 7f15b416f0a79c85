"""
Tools an agent can call during a turn.
"""

from .agent import create_agent_tool
from .base import Tool, ToolContext, ToolParameter, ToolResult, parameters_schema
from .http import create_http_tool
from .knowledge import create_knowledge_base_tool
from .registry import ToolRegistry

__all__ = [
    "Tool",
    "ToolContext",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "create_agent_tool",
    "create_http_tool",
    "create_knowledge_base_tool",
    "parameters_schema",
]
