"""
Context scaling: bound a thread's history before each model call.

Three algorithms, chosen per thread:

- window: keep the last ``size`` messages
- threshold: past ``total_window`` messages, replace everything but the last
  ``summarization_threshold`` messages with one cached summary
- block: split history into ``block_size`` blocks and replace every block
  but the last with its cached summary

Summaries are generated once and persisted; later turns reuse them.
"""

import asyncio
import math

import structlog

from ..llm.factory import AdapterRegistry
from ..llm.messages import Message, SystemMessage
from ..records import (
    Agent,
    BlockScaling,
    Summary,
    Thread,
    ThresholdScaling,
    WindowScaling,
    parse_scaling_config,
)
from ..store import RecordStore
from .summarizer import summarize

logger = structlog.get_logger()


def summary_message(summary: Summary) -> SystemMessage:
    """A stored summary as it appears in the model's history."""
    return SystemMessage(
        content=summary.content,
        db_id=summary.id,
        context_id=summary.context_id,
    )


class ContextScaler:
    """Applies a thread's scaling algorithm to its history."""

    def __init__(self, store: RecordStore, adapters: AdapterRegistry):
        self.store = store
        self.adapters = adapters

    async def scale(
        self,
        thread: Thread,
        agent: Agent,
        history: list[Message],
        signal: asyncio.Event | None = None,
    ) -> list[Message]:
        config = parse_scaling_config(thread.scaling_algorithm, thread.scaling_config)

        match config:
            case None:
                return list(history)
            case WindowScaling(size=size):
                return history[-size:]
            case ThresholdScaling():
                return await self._threshold(thread, agent, history, config, signal)
            case BlockScaling():
                return await self._block(thread, agent, history, config, signal)
            case _:
                raise TypeError(f"Unhandled scaling config: {config!r}")

    async def _threshold(
        self,
        thread: Thread,
        agent: Agent,
        history: list[Message],
        config: ThresholdScaling,
        signal: asyncio.Event | None,
    ) -> list[Message]:
        if len(history) <= config.total_window:
            return list(history)

        split = len(history) - config.summarization_threshold
        older, recent = history[:split], history[split:]
        if not older:
            return list(history)

        # Once a summary exists it is reused as is, even as history grows
        summary = await self.store.get_latest_summary(thread.id)
        if summary is None:
            summary = await self._create_summary(thread, agent, older, signal)
        else:
            logger.debug("Reusing summary", context_id=thread.id, summary_id=summary.id)

        return [summary_message(summary), *recent]

    async def _block(
        self,
        thread: Thread,
        agent: Agent,
        history: list[Message],
        config: BlockScaling,
        signal: asyncio.Event | None,
    ) -> list[Message]:
        threshold = config.block_summarization_threshold
        if threshold is not None and len(history) <= threshold:
            return list(history)

        size = config.block_size
        total_blocks = math.ceil(len(history) / size)
        if total_blocks <= 1:
            return list(history)

        last_block = total_blocks - 1
        first_block = 0
        if config.max_blocks is not None:
            first_block = max(0, last_block - config.max_blocks)

        existing = {s.block_number: s for s in await self.store.get_block_summaries(thread.id)}

        summaries = []
        for block in range(first_block, last_block):
            summary = existing.get(block)
            if summary is None:
                block_messages = history[block * size : (block + 1) * size]
                summary = await self._create_summary(
                    thread, agent, block_messages, signal, block_number=block
                )
            summaries.append(summary_message(summary))

        return [*summaries, *history[last_block * size :]]

    async def _create_summary(
        self,
        thread: Thread,
        agent: Agent,
        messages: list[Message],
        signal: asyncio.Event | None,
        block_number: int | None = None,
    ) -> Summary:
        reply = await summarize(self.adapters, agent.primary_model, messages, signal=signal)
        summary = await self.store.add_summary(
            thread.id,
            reply.content,
            messages[0].db_id,
            messages[-1].db_id,
            block_number=block_number,
        )
        logger.info(
            "Summary created",
            context_id=thread.id,
            block_number=block_number,
            messages=len(messages),
        )
        return summary
