"""
Knowledge base search tool.
"""

import json
from typing import Any

from ..errors import ToolParameterError
from ..knowledge.search import KnowledgeSearch
from ..records import KnowledgeBase
from .base import Tool, ToolParameter, parameters_schema, tool_name

MAX_RESULT_WORDS = 1000
DEFAULT_K = "2"


def truncate_words(content: str, max_words: int = MAX_RESULT_WORDS) -> str:
    words = content.split(" ")
    if len(words) <= max_words:
        return content
    return " ".join(words[:max_words])


def _normalize_k(params: dict[str, Any]) -> dict[str, Any]:
    k = params.get("k")
    if k is None:
        return params
    # Models often send k as a number
    if isinstance(k, int) and not isinstance(k, bool):
        k = str(k)
    if not isinstance(k, str) or not k.strip().isdigit() or int(k) < 1:
        raise ToolParameterError(f"k must be a positive whole number, got {params['k']!r}")
    return {**params, "k": k.strip()}


def create_knowledge_base_tool(kb: KnowledgeBase, search: KnowledgeSearch) -> Tool:
    """Tool searching one knowledge base by semantic similarity."""

    async def search_knowledge_base(params: dict[str, Any]) -> str:
        k = int(params.get("k") or DEFAULT_K)
        results = await search.search(kb, params["query"], k)
        return json.dumps(
            [
                {"content": truncate_words(result.content), "metadata": result.metadata}
                for result in results
            ]
        )

    description = (
        f"Search the knowledge base {kb.name}. {kb.description or ''}".strip()
    )
    return Tool(
        name=tool_name("search-knowledge-base", kb.name),
        description=description,
        parameters=parameters_schema(
            [
                ToolParameter(
                    name="query",
                    param_type="string",
                    description="The query to search for",
                ),
                ToolParameter(
                    name="k",
                    param_type="string",
                    description="Number of results to return",
                    required=False,
                    default=DEFAULT_K,
                ),
            ]
        ),
        handler=search_knowledge_base,
        parser=_normalize_k,
    )
