"""
Tool registry for the tools available during one turn.
"""

import structlog

from ..llm.base import ToolDefinition
from ..llm.messages import ToolCall
from .base import Tool, ToolResult

logger = structlog.get_logger()


class ToolRegistry:
    """Registry for managing tools."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            logger.warning("Tool name already registered, replacing", tool_name=tool.name)
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for the model."""
        return [tool.to_definition() for tool in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, call: ToolCall) -> ToolResult:
        """Execute a requested tool call."""
        tool = self.get(call.tool_name)
        if tool is None:
            logger.warning("Tool not found", tool_name=call.tool_name)
            return ToolResult(
                call_id=call.id,
                success=False,
                error=f"Tool not found: {call.tool_name}",
            )

        logger.info("Executing tool", tool_name=call.tool_name, call_id=call.id)
        result = await tool.run(call.params, call.id)
        logger.info("Tool executed", tool_name=call.tool_name, success=result.success)
        return result
