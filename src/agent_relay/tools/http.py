"""
HTTP tools built from registered tool records.
"""

import asyncio
import json
from typing import Any

import httpx
import structlog

from ..errors import ToolExecutionError
from ..llm.base import cancellable
from ..llm.messages import message_to_dict
from ..records import ToolRecord
from .base import Tool, ToolContext

logger = structlog.get_logger()

BODY_METHODS = ("POST", "PUT", "PATCH")


def _query_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def create_http_tool(
    record: ToolRecord,
    context: ToolContext,
    client: httpx.AsyncClient,
    signal: asyncio.Event | None = None,
) -> Tool:
    """Wrap a tool record as a Tool calling its endpoint.

    GET sends parameters as a query string; POST/PUT/PATCH send
    ``{"context": {...}, "payload": params}`` as JSON.
    """
    method = record.method.upper()

    async def call_endpoint(params: dict[str, Any]) -> str:
        kwargs: dict[str, Any] = {}

        if method in BODY_METHODS:
            latest = context.latest_message
            kwargs["json"] = {
                "context": {
                    "platform": context.platform,
                    "latestMessage": message_to_dict(latest) if latest else None,
                },
                "payload": params,
            }
        elif method == "GET" and params:
            kwargs["params"] = {key: _query_value(value) for key, value in params.items()}

        logger.info("Calling tool endpoint", tool=record.name, method=method, endpoint=record.endpoint)
        response = await cancellable(client.request(method, record.endpoint, **kwargs), signal)

        if not response.is_success:
            raise ToolExecutionError(f"HTTP error! status: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ToolExecutionError(f"Endpoint returned invalid JSON: {e}") from e

        return json.dumps(data)

    return Tool(
        name=record.name,
        description=record.description or record.name,
        parameters=record.parameters or {"type": "object", "properties": {}},
        handler=call_endpoint,
    )
