"""
Sub-agent tool: lets an agent delegate a message to one of its helpers.
"""

import json
from typing import Any, Awaitable, Callable

from ..llm.messages import HumanMessage, OutputMessage, message_to_dict
from ..records import Agent
from .base import Tool, ToolParameter, parameters_schema, tool_name

# Runs the helper agent on a message and returns its final output
Delegate = Callable[[Agent, HumanMessage], Awaitable[OutputMessage]]


def create_agent_tool(helper: Agent, parent: Agent, delegate: Delegate) -> Tool:
    """Expose ``helper`` as a tool of ``parent``."""

    async def ask_agent(params: dict[str, Any]) -> str:
        message = HumanMessage(content=params["message"], name=parent.name)
        result = await delegate(helper, message)
        return json.dumps(message_to_dict(result))

    description = f"Ask the agent {helper.name} for help."
    if helper.description:
        description = f"{description} {helper.description}"

    return Tool(
        name=tool_name("agent", helper.name),
        description=description,
        parameters=parameters_schema(
            [
                ToolParameter(
                    name="message",
                    param_type="string",
                    description="The message to send to the agent",
                ),
            ]
        ),
        handler=ask_agent,
    )
