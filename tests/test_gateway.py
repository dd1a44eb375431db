"""Tests for the chat-completions agent gateway."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, cast

import httpx
import pytest
from openai import APIConnectionError, APITimeoutError, AsyncOpenAI

from ecospatial.ai.client import AIClient, ClientSettings
from ecospatial.ai.gateway import AgentGateway, parse_tool_calls
from ecospatial.ai.orchestration.response_cache import ResponseCache
from ecospatial.ai.orchestration.types import ChatMessage, ConversationContext, ToolResult
from ecospatial.core.layers import LayerKind
from ecospatial.core.places import CanonicalLocation
from ecospatial.errors import AgentGatewayFailure, AgentTimeout
from tests.helpers import tool_call

_REQUEST = httpx.Request("POST", "https://llm.test/v1/chat/completions")


def _message(content: str | None = None, tool_calls: list[Any] | None = None) -> SimpleNamespace:
    return SimpleNamespace(role="assistant", content=content, tool_calls=tool_calls)


def _function_call(name: str, arguments: str, call_id: str = "call-1") -> SimpleNamespace:
    return SimpleNamespace(id=call_id, type="function", function=SimpleNamespace(name=name, arguments=arguments))


class _FakeCompletions:
    def __init__(self, replies: list[Any]) -> None:
        self._replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=reply)])


def _gateway(*replies: Any) -> tuple[AgentGateway, _FakeCompletions]:
    completions = _FakeCompletions(list(replies))
    fake_client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    client = AIClient(
        ClientSettings(base_url="https://llm.test/v1", api_key="test", model="stub-model"),
        client=cast(AsyncOpenAI, fake_client),
    )
    return AgentGateway(client, response_cache=ResponseCache()), completions


def test_parse_tool_calls_decodes_arguments() -> None:
    message = _message(tool_calls=[_function_call("activate_layers", '{"requestedKinds": ["elderly"]}')])

    (call,) = parse_tool_calls(cast(Any, message))

    assert call.name == "activate_layers"
    assert call.arguments == {"requestedKinds": ["elderly"]}
    assert call.raw_arguments == '{"requestedKinds": ["elderly"]}'


def test_parse_tool_calls_keeps_invalid_json_as_empty_arguments() -> None:
    message = _message(tool_calls=[_function_call("activate_layers", "{not json")])

    (call,) = parse_tool_calls(cast(Any, message))

    assert call.arguments == {}
    assert call.raw_arguments == "{not json"


@pytest.mark.asyncio
async def test_send_message_builds_prompt_with_tool_declaration() -> None:
    gateway, completions = _gateway(_message("안녕하세요"))
    history = [ChatMessage.assistant("환영합니다"), ChatMessage.user("이전 질문")]

    response = await gateway.send_message("안녕", history)

    assert response.text == "안녕하세요"
    assert not response.has_tool_calls
    payload = completions.calls[0]
    assert payload["model"] == "stub-model"
    assert payload["tool_choice"] == "auto"
    assert payload["tools"][0]["function"]["name"] == "activate_layers"
    roles = [message["role"] for message in payload["messages"]]
    assert roles == ["system", "assistant", "user", "user"]
    assert payload["messages"][-1]["content"] == "안녕"


@pytest.mark.asyncio
async def test_system_prompt_includes_conversation_context(suwon: CanonicalLocation) -> None:
    gateway, completions = _gateway(_message("네"))
    context = ConversationContext()
    context.update(suwon, [LayerKind.ELDERLY])

    await gateway.send_message("용인은?", [], context)

    system = completions.calls[0]["messages"][0]["content"]
    assert "마지막 지역: 수원" in system
    assert "활성 레이어: elderly" in system


@pytest.mark.asyncio
async def test_text_reply_is_cached_for_same_history() -> None:
    gateway, completions = _gateway(_message("반갑습니다"))

    first = await gateway.send_message("안녕", [])
    second = await gateway.send_message("안녕", [])

    assert not first.from_cache
    assert second.from_cache
    assert second.text == "반갑습니다"
    assert len(completions.calls) == 1


@pytest.mark.asyncio
async def test_tool_call_reply_is_never_cached() -> None:
    arguments = json.dumps({"requestedKinds": ["weather"], "locationName": "수원"})
    gateway, completions = _gateway(
        _message(tool_calls=[_function_call("activate_layers", arguments)]),
        _message(tool_calls=[_function_call("activate_layers", arguments)]),
    )

    first = await gateway.send_message("수원 날씨", [])
    second = await gateway.send_message("수원 날씨", [])

    assert first.has_tool_calls and second.has_tool_calls
    assert not second.from_cache
    assert len(completions.calls) == 2


@pytest.mark.asyncio
async def test_send_tool_result_echoes_call_and_result() -> None:
    gateway, completions = _gateway(_message("수원시 노인 비율은 8.12%입니다."))
    call = tool_call(["elderly"], "수원시")
    result = ToolResult(
        success=True,
        location="수원",
        activated_kinds=(LayerKind.ELDERLY,),
        summaries=("[elderly] 수원시 70세 이상 인구 98,765명 (비율 8.12%)",),
        message="=== 수원 기후 데이터 분석 결과 ===",
    )

    response = await gateway.send_tool_result("수원시 노인 인구 밀도 보여줘", [], call, result)

    assert response.text == "수원시 노인 비율은 8.12%입니다."
    messages = completions.calls[0]["messages"]
    assert [message["role"] for message in messages[-3:]] == ["user", "assistant", "tool"]
    assert messages[-2]["tool_calls"][0]["id"] == call.id
    assert messages[-2]["tool_calls"][0]["function"]["name"] == "activate_layers"
    assert messages[-1]["tool_call_id"] == call.id
    assert json.loads(messages[-1]["content"])["activatedLayers"] == ["elderly"]
    assert completions.calls[0]["tool_choice"] == "none"


@pytest.mark.asyncio
async def test_sdk_timeout_maps_to_agent_timeout() -> None:
    gateway, _ = _gateway(APITimeoutError(request=_REQUEST))

    with pytest.raises(AgentTimeout):
        await gateway.send_message("안녕", [])


@pytest.mark.asyncio
async def test_api_error_maps_to_gateway_failure() -> None:
    gateway, _ = _gateway(APIConnectionError(message="connection refused", request=_REQUEST))

    with pytest.raises(AgentGatewayFailure) as excinfo:
        await gateway.send_message("안녕", [])

    assert excinfo.value.user_visible
    assert "데이터 연동 중 오류" in excinfo.value.message


@pytest.mark.asyncio
async def test_failures_are_not_cached() -> None:
    gateway, completions = _gateway(APIConnectionError(request=_REQUEST), _message("복구되었습니다"))

    with pytest.raises(AgentGatewayFailure):
        await gateway.send_message("안녕", [])
    response = await gateway.send_message("안녕", [])

    assert response.text == "복구되었습니다"
    assert len(completions.calls) == 2
