"""
Conversation summarization used by context scaling.
"""

import asyncio

import structlog

from ..errors import ProviderError
from ..llm.factory import AdapterRegistry
from ..llm.messages import AiMessage, Message, SystemMessage

logger = structlog.get_logger()

SUMMARY_PROMPT = """Generate a structured summary of the conversation, organized in the following sections:

1. Key Conversation Points
- Clearly attribute each point to the respective participant
- Keep focus on main discussion points and decisions made

2. Tool Interactions & Commands
- List the significant tools or commands that were used
- Include the purpose and outcome of each tool interaction

3. Actions Taken
- Summarize important actions or changes made during the conversation

Keep each section concise and focused on essential information. Maintain clear attribution of who said or did what throughout the summary."""


async def summarize(
    adapters: AdapterRegistry,
    model: str,
    messages: list[Message],
    signal: asyncio.Event | None = None,
) -> AiMessage:
    """Summarize ``messages`` with a single tool-less model call."""
    if not messages:
        raise ValueError("Cannot summarize an empty message list")

    adapter, model_name = adapters.resolve(model)
    logger.info("Summarizing messages", model=model, count=len(messages))

    reply = await adapter.infer(
        model_name,
        [SystemMessage(content=SUMMARY_PROMPT), *messages],
        signal=signal,
    )

    if not isinstance(reply, AiMessage):
        raise ProviderError(adapter.provider_name, "Summary request returned tool calls instead of text")

    return reply
