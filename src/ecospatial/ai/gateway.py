"""Agent gateway: the two chat-completion rounds of one request.

Round one sends the user message with the ``activate_layers`` declaration and
returns either text or tool calls. Round two echoes the tool call, appends the
tool result, and asks for the final text. Transport and API failures are
translated into :class:`AgentTimeout` and :class:`AgentGatewayFailure`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Protocol, Sequence

import httpx
from openai import APIError, APITimeoutError
from openai.types.chat import ChatCompletionMessage, ChatCompletionMessageParam

from ..errors import AgentGatewayFailure, AgentTimeout
from .client import AIClient
from .orchestration.response_cache import ResponseCache
from .orchestration.types import AgentResponse, ChatMessage, ConversationContext, ToolCall, ToolResult
from .prompts import build_system_prompt
from .tools import ACTIVATE_LAYERS_TOOL

__all__ = ["AgentGateway", "ChatGateway", "parse_tool_calls"]

LOGGER = logging.getLogger(__name__)


class ChatGateway(Protocol):
    """What the dispatcher needs from an agent backend."""

    async def send_message(
        self,
        message: str,
        history: Sequence[ChatMessage],
        context: ConversationContext | None = None,
    ) -> AgentResponse:
        ...

    async def send_tool_result(
        self,
        message: str,
        history: Sequence[ChatMessage],
        tool_call: ToolCall,
        tool_result: ToolResult,
        context: ConversationContext | None = None,
    ) -> AgentResponse:
        ...


def parse_tool_calls(message: ChatCompletionMessage) -> tuple[ToolCall, ...]:
    """Convert SDK tool calls into :class:`ToolCall` records.

    Arguments that are not a JSON object are kept as ``raw_arguments`` with an
    empty mapping, so validation rejects them downstream.
    """

    calls: list[ToolCall] = []
    for index, raw in enumerate(message.tool_calls or ()):
        function = getattr(raw, "function", None)
        if function is None:
            LOGGER.debug("Ignoring non-function tool call %r", raw)
            continue
        raw_arguments = function.arguments or ""
        try:
            arguments = json.loads(raw_arguments) if raw_arguments.strip() else {}
        except json.JSONDecodeError:
            LOGGER.warning("Tool call %s carried non-JSON arguments", function.name)
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        calls.append(
            ToolCall(
                id=raw.id or f"call-{index}",
                name=function.name,
                arguments=arguments,
                raw_arguments=raw_arguments,
            )
        )
    return tuple(calls)


class AgentGateway:
    """OpenAI-compatible implementation of :class:`ChatGateway`."""

    def __init__(self, client: AIClient, *, response_cache: ResponseCache | None = None) -> None:
        self._client = client
        self._cache = response_cache if response_cache is not None else ResponseCache()

    @property
    def response_cache(self) -> ResponseCache:
        return self._cache

    async def send_message(
        self,
        message: str,
        history: Sequence[ChatMessage],
        context: ConversationContext | None = None,
    ) -> AgentResponse:
        cached = self._cache.get(message, history)
        if cached is not None:
            LOGGER.debug("Response cache hit for %r", message[:40])
            return AgentResponse(text=cached.text, tool_calls=cached.tool_calls, from_cache=True)

        messages = self._base_messages(history, context)
        messages.append(ChatMessage.user(message).to_chat_param())
        reply = await self._complete(messages, tool_choice="auto")
        response = AgentResponse(text=reply.content or "", tool_calls=parse_tool_calls(reply))
        self._cache.put(message, history, response)
        return response

    async def send_tool_result(
        self,
        message: str,
        history: Sequence[ChatMessage],
        tool_call: ToolCall,
        tool_result: ToolResult,
        context: ConversationContext | None = None,
    ) -> AgentResponse:
        messages = self._base_messages(history, context)
        messages.append(ChatMessage.user(message).to_chat_param())
        messages.append(ChatMessage.assistant("", tool_calls=[tool_call.to_wire()]).to_chat_param())
        messages.append(ChatMessage.tool(tool_result.to_json(), tool_call.id).to_chat_param())
        reply = await self._complete(messages, tool_choice="none")
        return AgentResponse(text=reply.content or "")

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _base_messages(
        self, history: Sequence[ChatMessage], context: ConversationContext | None
    ) -> List[ChatCompletionMessageParam]:
        messages: List[ChatCompletionMessageParam] = [
            ChatMessage.system(build_system_prompt(context)).to_chat_param()
        ]
        messages.extend(item.to_chat_param() for item in history if item.role in ("user", "assistant"))
        return messages

    async def _complete(self, messages: List[ChatCompletionMessageParam], *, tool_choice: Any) -> ChatCompletionMessage:
        try:
            return await self._client.complete_chat(
                messages,
                tools=[ACTIVATE_LAYERS_TOOL],
                tool_choice=tool_choice,
            )
        except (APITimeoutError, httpx.TimeoutException) as exc:
            LOGGER.warning("Agent request timed out: %s", exc)
            raise AgentTimeout(timeout_seconds=self._client.settings.request_timeout) from exc
        except (APIError, httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("Agent request failed: %s", exc)
            raise AgentGatewayFailure(details={"reason": str(exc)}) from exc
