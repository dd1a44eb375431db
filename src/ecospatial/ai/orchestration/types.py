"""Core type definitions for the conversation pipeline.

Messages, tool calls, and results are frozen so they can be shared between the
session, the dispatcher, and the gateway without defensive copies.
``ConversationContext`` is the one mutable record and is owned by the session.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Mapping, Sequence

from openai.types.chat import ChatCompletionMessageParam

from ...core.layers import ActiveLayer, LayerKind, LayerPayload
from ...core.places import CanonicalLocation

__all__ = [
    "ChatMessage",
    "ToolCall",
    "AgentResponse",
    "ToolResult",
    "ConversationContext",
    "ProviderOutcome",
    "LayerUpdate",
    "MapView",
    "DispatcherState",
    "DispatchOutcome",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------------------------------------------------------------
# Message Type
# -----------------------------------------------------------------------------

MessageRole = Literal["system", "user", "assistant", "tool"]


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """Immutable chat message shown in the transcript and sent as history.

    Attributes:
        role: The role of the message sender.
        content: The text content of the message.
        tool_call_id: ID linking a tool result to its call.
        tool_calls: Tool calls made by the assistant, in OpenAI wire format.
        created_at: When the message was created.
    """

    role: MessageRole
    content: str
    tool_call_id: str | None = None
    tool_calls: tuple[Mapping[str, Any], ...] | None = None
    created_at: datetime = field(default_factory=_utcnow, compare=False)

    def to_chat_param(self) -> ChatCompletionMessageParam:
        """Convert to OpenAI's ChatCompletionMessageParam format."""
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls is not None:
            payload["tool_calls"] = list(self.tool_calls)
        return payload  # type: ignore[return-value]

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Sequence[Mapping[str, Any]] | None = None) -> ChatMessage:
        return cls(
            role="assistant",
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> ChatMessage:
        return cls(role="tool", content=content, tool_call_id=tool_call_id)


# -----------------------------------------------------------------------------
# Agent round-trip types
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A tool invocation emitted by the agent. Never constructed from user input."""

    id: str
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)
    raw_arguments: str = ""

    def to_wire(self) -> dict[str, Any]:
        """Assistant ``tool_calls`` entry echoed back in the second round."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": self.raw_arguments or json.dumps(dict(self.arguments), ensure_ascii=False),
            },
        }


@dataclass(slots=True, frozen=True)
class AgentResponse:
    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    from_cache: bool = False

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass(slots=True, frozen=True)
class ToolResult:
    """Structured payload returned to the agent in the second round."""

    success: bool
    location: str | None
    activated_kinds: tuple[LayerKind, ...]
    summaries: tuple[str, ...]
    message: str
    error: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "location": self.location,
            "activatedLayers": [kind.value for kind in self.activated_kinds],
            "summaries": list(self.summaries),
            "message": self.message,
        }
        if self.error:
            data["error"] = dict(self.error)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


# -----------------------------------------------------------------------------
# Session-scoped state
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ConversationContext:
    """What the conversation is currently about, for elliptical follow-ups."""

    last_location: CanonicalLocation | None = None
    last_layer_kinds: tuple[LayerKind, ...] = ()
    last_topic: str | None = None

    def update(self, location: CanonicalLocation | None, kinds: Sequence[LayerKind]) -> None:
        if location is not None:
            self.last_location = location
        self.last_layer_kinds = tuple(kinds)
        self.last_topic = f"{', '.join(kind.value for kind in kinds)} 분석" if kinds else None

    def reset(self) -> None:
        self.last_location = None
        self.last_layer_kinds = ()
        self.last_topic = None

    @property
    def is_empty(self) -> bool:
        return self.last_location is None and not self.last_layer_kinds and self.last_topic is None


@dataclass(slots=True, frozen=True)
class MapView:
    lat: float
    lon: float
    zoom: int

    @classmethod
    def for_location(cls, location: CanonicalLocation) -> MapView:
        return cls(lat=location.lat, lon=location.lon, zoom=location.zoom_hint)


# -----------------------------------------------------------------------------
# Dispatcher outputs
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ProviderOutcome:
    """Settled result of one provider fetch: exactly one of payload/error is set."""

    kind: LayerKind
    payload: LayerPayload | None = None
    error: Exception | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


@dataclass(slots=True, frozen=True)
class LayerUpdate:
    """What a tool execution publishes to the session before the second round.

    ``layers`` is ``None`` when reconciliation kept the current set.
    """

    layers: tuple[ActiveLayer, ...] | None
    location: CanonicalLocation | None
    kinds: tuple[LayerKind, ...]


class DispatcherState(str, Enum):
    IDLE = "idle"
    AWAITING_FIRST_RESPONSE = "awaiting_first_response"
    NO_TOOL_CALL = "no_tool_call"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_SECOND_RESPONSE = "awaiting_second_response"


@dataclass(slots=True)
class DispatchOutcome:
    text: str = ""
    tool_result: ToolResult | None = None
    outcomes: tuple[ProviderOutcome, ...] = ()
    update: LayerUpdate | None = None
    from_cache: bool = False
    states: list[DispatcherState] = field(default_factory=list)
