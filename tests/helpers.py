"""Shared test fakes.

Import from here instead of redefining gateways, adapters, and HTTP stubs in
each test module.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Mapping, Sequence, cast

import httpx

from ecospatial.ai.orchestration.cancellation import CancellationToken
from ecospatial.ai.orchestration.types import (
    AgentResponse,
    ChatMessage,
    ConversationContext,
    LayerUpdate,
    ToolCall,
    ToolResult,
)
from ecospatial.core.layers import ElderlyPopulationRecord, LayerKind, LayerPayload
from ecospatial.core.places import CanonicalLocation, PlaceResolver
from ecospatial.providers.base import ProviderAdapter

Handler = Callable[[httpx.Request], httpx.Response]


def resolve(name: str) -> CanonicalLocation:
    location = PlaceResolver().resolve(name)
    assert isinstance(location, CanonicalLocation), name
    return location


def mock_client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
        headers={"content-type": "application/json;charset=UTF-8"},
    )


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def tool_call(
    kinds: Sequence[str],
    location: str | None = None,
    *,
    filter_condition: str | None = None,
    name: str = "activate_layers",
    call_id: str = "call-1",
) -> ToolCall:
    arguments: dict[str, Any] = {"requestedKinds": list(kinds)}
    if location is not None:
        arguments["locationName"] = location
    if filter_condition is not None:
        arguments["filterCondition"] = filter_condition
    return ToolCall(id=call_id, name=name, arguments=arguments, raw_arguments=json.dumps(arguments, ensure_ascii=False))


class FakeGateway:
    """Scripted stand-in for the agent gateway.

    ``first`` answers round one (or ``first_by_message[message]`` when set);
    ``second`` answers round two. Exceptions are raised instead of returned.
    ``gates`` holds round one for a message until the event is set.
    """

    def __init__(
        self,
        *,
        first: AgentResponse | BaseException | None = None,
        second: AgentResponse | BaseException | None = None,
        first_by_message: Mapping[str, AgentResponse | BaseException] | None = None,
        gates: Mapping[str, asyncio.Event] | None = None,
    ) -> None:
        self.first = first if first is not None else AgentResponse(text="ok")
        self.second = second if second is not None else AgentResponse(text="final")
        self.first_by_message = dict(first_by_message or {})
        self.gates = dict(gates or {})
        self.sent: list[tuple[str, tuple[ChatMessage, ...]]] = []
        self.tool_results: list[ToolResult] = []
        self.contexts: list[ConversationContext | None] = []

    async def send_message(
        self,
        message: str,
        history: Sequence[ChatMessage],
        context: ConversationContext | None = None,
    ) -> AgentResponse:
        self.sent.append((message, tuple(history)))
        gate = self.gates.get(message)
        if gate is not None:
            await gate.wait()
        reply = self.first_by_message.get(message, self.first)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def send_tool_result(
        self,
        message: str,
        history: Sequence[ChatMessage],
        tool_call: ToolCall,
        tool_result: ToolResult,
        context: ConversationContext | None = None,
    ) -> AgentResponse:
        self.tool_results.append(tool_result)
        self.contexts.append(context)
        if isinstance(self.second, BaseException):
            raise self.second
        return self.second


class FakeAdapter(ProviderAdapter):
    """Adapter returning a fixed payload or raising a fixed error."""

    provider = "fake"

    def __init__(
        self,
        kind: LayerKind,
        *,
        payload: LayerPayload | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        super().__init__(kind, client=cast(httpx.AsyncClient, None))
        self.payload = payload
        self.error = error
        self.gate = gate
        self.calls: list[CanonicalLocation] = []

    async def fetch(self, location: CanonicalLocation) -> LayerPayload:
        self.calls.append(location)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        assert self.payload is not None
        return self.payload


class RecordingSink:
    def __init__(self, *, accept: bool = True) -> None:
        self.accept = accept
        self.updates: list[LayerUpdate] = []

    def commit_tool_execution(self, token: CancellationToken, update: LayerUpdate) -> bool:
        if not self.accept or token.cancelled:
            return False
        self.updates.append(update)
        return True


SUWON_ELDERLY = ElderlyPopulationRecord(
    district_name="수원시",
    district_code="31010",
    seventy_plus_count=98_765,
    seventy_plus_ratio=8.12,
)
