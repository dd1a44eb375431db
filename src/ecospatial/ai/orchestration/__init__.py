"""Conversation orchestration: dispatch, cancellation, and session state."""

from .cancellation import CancellationToken
from .response_cache import ResponseCache, compute_history_hash
from .session import SessionController, SessionListener, SessionSnapshot
from .tool_dispatcher import LayerSink, ToolDispatcher
from .types import (
    AgentResponse,
    ChatMessage,
    ConversationContext,
    DispatchOutcome,
    DispatcherState,
    LayerUpdate,
    MapView,
    ProviderOutcome,
    ToolCall,
    ToolResult,
)

__all__ = [
    "AgentResponse",
    "CancellationToken",
    "ChatMessage",
    "ConversationContext",
    "DispatchOutcome",
    "DispatcherState",
    "LayerSink",
    "LayerUpdate",
    "MapView",
    "ProviderOutcome",
    "ResponseCache",
    "SessionController",
    "SessionListener",
    "SessionSnapshot",
    "ToolCall",
    "ToolDispatcher",
    "ToolResult",
    "compute_history_hash",
]
