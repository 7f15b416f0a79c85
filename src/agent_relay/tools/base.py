"""
Base classes for tools.

A tool never raises for expected failures: ``Tool.run`` turns bad
parameters and handler errors into a failed ToolResult whose text is fed
back to the model.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog
from jsonschema import ValidationError
from jsonschema.validators import validator_for

from ..errors import InferenceCancelledError, ToolParameterError
from ..llm.base import ToolDefinition
from ..llm.messages import Message, ToolResponseMessage

logger = structlog.get_logger()

INVALID_PARAMS_PREFIX = "There was an error caused by you by providing invalid parameters:"


@dataclass
class ToolResult:
    """Result from a tool execution."""

    call_id: str
    success: bool
    output: str = ""
    error: str | None = None

    def to_message(self) -> ToolResponseMessage:
        """The tool_response message the model will see."""
        content = self.output if self.success else (self.error or "")
        return ToolResponseMessage(call_id=self.call_id, content=content)


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    param_type: str  # string, integer, boolean, array, object
    description: str
    required: bool = True
    default: Any = None
    enum: list[str] | None = None


def parameters_schema(parameters: list[ToolParameter]) -> dict[str, Any]:
    """Convert parameters to JSON Schema format."""
    properties = {}
    required = []

    for param in parameters:
        prop: dict[str, Any] = {
            "type": param.param_type,
            "description": param.description,
        }
        if param.enum:
            prop["enum"] = param.enum
        if param.default is not None:
            prop["default"] = param.default

        properties[param.name] = prop

        if param.required:
            required.append(param.name)

    return {
        "type": "object",
        "properties": properties,
        "required": required,
    }


@dataclass
class ToolContext:
    """Where a tool call originates; sent along to HTTP tools."""

    platform: str
    latest_message: Message | None = None
    author_id: str | None = None


def tool_name(*parts: str) -> str:
    """Build a provider-safe function name (letters, digits, _ and -)."""
    name = "-".join(parts)
    return re.sub(r"[^a-zA-Z0-9_-]", "_", name)[:64]


def default_error_formatter(error: Exception) -> str:
    return f"Error: {error}"


@dataclass
class Tool:
    """A callable capability with a JSON schema for its parameters.

    ``parser`` may normalize the decoded parameters before schema
    validation; ``error_formatter`` renders failures for the model.
    """

    name: str
    description: str
    parameters: dict[str, Any]
    handler: Callable[[dict[str, Any]], Awaitable[Any]]
    parser: Callable[[dict[str, Any]], dict[str, Any]] | None = None
    error_formatter: Callable[[Exception], str] = field(default=default_error_formatter)

    def to_definition(self) -> ToolDefinition:
        """Convert to a tool definition for the model."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def parse_params(self, raw: dict[str, Any] | str | None) -> dict[str, Any]:
        """Decode and validate raw parameters from the model."""
        if raw is None or raw == "":
            params: Any = {}
        elif isinstance(raw, str):
            try:
                params = json.loads(raw)
            except json.JSONDecodeError as e:
                raise ToolParameterError(f"Parameters are not valid JSON: {e}") from e
        else:
            params = raw

        if not isinstance(params, dict):
            raise ToolParameterError("Parameters must be a JSON object")

        if self.parser:
            params = self.parser(params)

        validator = validator_for(self.parameters)(self.parameters)
        try:
            validator.validate(params)
        except ValidationError as e:
            raise ToolParameterError(e.message) from e

        return params

    async def run(self, raw_params: dict[str, Any] | str | None, call_id: str) -> ToolResult:
        """Parse, execute and capture failures as a ToolResult."""
        try:
            params = self.parse_params(raw_params)
        except ToolParameterError as e:
            logger.warning("Invalid tool parameters", tool=self.name, error=str(e))
            return ToolResult(
                call_id=call_id,
                success=False,
                error=f"{INVALID_PARAMS_PREFIX}\n{self.error_formatter(e)}",
            )

        try:
            result = await self.handler(params)
        except InferenceCancelledError:
            raise
        except Exception as e:
            logger.error("Tool execution error", tool=self.name, error=str(e))
            return ToolResult(call_id=call_id, success=False, error=self.error_formatter(e))

        output = result if isinstance(result, str) else json.dumps(result)
        return ToolResult(call_id=call_id, success=True, output=output)
