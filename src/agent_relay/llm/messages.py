"""
Canonical message model.

Every conversation turn is one of five message types, tagged by ``role``.
Adapters translate these to and from their provider's wire format; the
store persists them through ``message_to_dict`` / ``message_from_dict``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Literal, Union


@dataclass
class ImagePart:
    """An image attached to a human message (URL or data URL)."""

    url: str
    detail: Literal["auto", "low", "high"] | None = None
    type: ClassVar[str] = "image"


@dataclass
class AudioPart:
    """Base64 encoded audio attached to a human message."""

    url: str
    format: Literal["wav", "mp3"] = "wav"
    type: ClassVar[str] = "audio"


ContentPart = Union[ImagePart, AudioPart]
MessageContent = Union[str, list[ContentPart]]


@dataclass(kw_only=True)
class BaseMessage:
    """Fields shared by every message."""

    db_id: str | None = None
    context_id: str | None = None
    created_at: datetime | None = None


@dataclass
class SystemMessage(BaseMessage):
    content: str
    role: ClassVar[str] = "system"


@dataclass
class HumanMessage(BaseMessage):
    content: MessageContent
    name: str = "user"
    author_id: str | None = None
    role: ClassVar[str] = "human"


@dataclass
class AiMessage(BaseMessage):
    content: str
    name: str = "assistant"
    role: ClassVar[str] = "ai"


@dataclass
class ToolCall:
    """A single invocation requested by the model.

    ``params`` is normally a dict; it stays a raw string when the provider
    returned arguments that are not valid JSON, so the tool can report the
    problem back to the model.
    """

    id: str
    tool_name: str
    params: dict[str, Any] | str = field(default_factory=dict)


@dataclass
class ToolCallsMessage(BaseMessage):
    calls: list[ToolCall] = field(default_factory=list)
    content: str | None = None
    role: ClassVar[str] = "tool_calls"


@dataclass
class ToolResponseMessage(BaseMessage):
    call_id: str
    content: str
    role: ClassVar[str] = "tool_response"


Message = Union[SystemMessage, HumanMessage, AiMessage, ToolCallsMessage, ToolResponseMessage]
OutputMessage = Union[AiMessage, ToolCallsMessage]


def content_to_text(content: MessageContent | None) -> str:
    """Flatten message content to plain text (parts become placeholders)."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return " ".join(f"[{part.type}]" for part in content)


def _parts_to_dicts(content: MessageContent) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content
    parts = []
    for part in content:
        if isinstance(part, ImagePart):
            parts.append({"type": "image", "url": part.url, "detail": part.detail})
        else:
            parts.append({"type": "audio", "url": part.url, "format": part.format})
    return parts


def _parts_from_dicts(content: Any) -> MessageContent:
    if isinstance(content, str):
        return content
    parts: list[ContentPart] = []
    for part in content or []:
        if part.get("type") == "image":
            parts.append(ImagePart(url=part["url"], detail=part.get("detail")))
        elif part.get("type") == "audio":
            parts.append(AudioPart(url=part["url"], format=part.get("format", "wav")))
        else:
            raise ValueError(f"Unknown content part type: {part.get('type')}")
    return parts


def message_to_dict(message: Message) -> dict[str, Any]:
    """Serialize a message to a JSON-compatible dict."""
    data: dict[str, Any] = {"role": message.role}

    match message:
        case SystemMessage(content=content):
            data["content"] = content
        case HumanMessage(content=content, name=name, author_id=author_id):
            data["name"] = name
            data["content"] = _parts_to_dicts(content)
            if author_id:
                data["authorId"] = author_id
        case AiMessage(content=content, name=name):
            data["name"] = name
            data["content"] = content
        case ToolCallsMessage(calls=calls, content=content):
            data["content"] = content
            data["calls"] = [
                {"id": call.id, "tool_name": call.tool_name, "params": call.params}
                for call in calls
            ]
        case ToolResponseMessage(call_id=call_id, content=content):
            data["id"] = call_id
            data["content"] = content
        case _:
            raise TypeError(f"Unsupported message type: {type(message).__name__}")

    if message.db_id:
        data["db_id"] = message.db_id
    if message.context_id:
        data["context_id"] = message.context_id
    if message.created_at:
        data["created_at"] = message.created_at.isoformat()
    return data


def message_from_dict(data: dict[str, Any]) -> Message:
    """Inverse of ``message_to_dict``."""
    created_at = data.get("created_at")
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    common = {
        "db_id": data.get("db_id"),
        "context_id": data.get("context_id"),
        "created_at": created_at,
    }

    role = data.get("role")
    match role:
        case "system":
            return SystemMessage(content=data.get("content") or "", **common)
        case "human":
            return HumanMessage(
                content=_parts_from_dicts(data.get("content") or ""),
                name=data.get("name") or "user",
                author_id=data.get("authorId"),
                **common,
            )
        case "ai":
            return AiMessage(
                content=data.get("content") or "",
                name=data.get("name") or "assistant",
                **common,
            )
        case "tool_calls":
            return ToolCallsMessage(
                calls=[
                    ToolCall(id=c["id"], tool_name=c["tool_name"], params=c.get("params", {}))
                    for c in data.get("calls") or []
                ],
                content=data.get("content"),
                **common,
            )
        case "tool_response":
            return ToolResponseMessage(
                call_id=data["id"],
                content=data.get("content") or "",
                **common,
            )
        case _:
            raise ValueError(f"Unknown message role: {role}")
