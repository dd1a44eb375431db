"""Tests for the session controller."""

from __future__ import annotations

import asyncio

import pytest

from ecospatial.ai.orchestration.response_cache import ResponseCache
from ecospatial.ai.orchestration.session import SessionController, SessionSnapshot
from ecospatial.ai.orchestration.tool_dispatcher import ToolDispatcher
from ecospatial.ai.orchestration.types import AgentResponse, MapView
from ecospatial.ai.prompts import WELCOME_MESSAGE
from ecospatial.core.layers import LayerKind
from ecospatial.core.places import CanonicalLocation, PlaceResolver
from ecospatial.errors import AgentGatewayFailure, AgentTimeout, ToolArgumentsInvalid
from ecospatial.providers.registry import ProviderRegistry
from tests.helpers import SUWON_ELDERLY, FakeAdapter, FakeGateway, tool_call


def _session(gateway: FakeGateway, *adapters: FakeAdapter, **kwargs) -> SessionController:
    registry = ProviderRegistry({adapter.kind: adapter for adapter in adapters})
    dispatcher = ToolDispatcher(gateway, PlaceResolver(), registry)
    return SessionController(dispatcher, **kwargs)


def _activate(*kinds: str, location: str | None = None) -> AgentResponse:
    return AgentResponse(tool_calls=(tool_call(list(kinds), location),))


class _Recorder:
    def __init__(self) -> None:
        self.snapshots: list[SessionSnapshot] = []

    def on_snapshot(self, snapshot: SessionSnapshot) -> None:
        self.snapshots.append(snapshot)


def test_new_session_starts_with_welcome() -> None:
    session = _session(FakeGateway(), warnings=("SGIS 키가 설정되지 않아 해당 데이터를 사용할 수 없습니다.",))

    (message,) = session.messages
    assert message.role == "assistant"
    assert message.content == WELCOME_MESSAGE
    assert session.layers == ()
    assert session.view is None
    assert not session.busy
    assert session.warnings == ("SGIS 키가 설정되지 않아 해당 데이터를 사용할 수 없습니다.",)


@pytest.mark.asyncio
async def test_ask_appends_user_and_agent_messages() -> None:
    session = _session(FakeGateway(first=AgentResponse(text="네, 말씀하세요.")))

    outcome = await session.ask("  안녕  ")

    assert outcome is not None
    assert [(message.role, message.content) for message in session.messages[1:]] == [
        ("user", "안녕"),
        ("assistant", "네, 말씀하세요."),
    ]
    assert not session.busy


@pytest.mark.asyncio
async def test_empty_submission_is_rejected() -> None:
    session = _session(FakeGateway())

    with pytest.raises(ValueError):
        session.submit("   ")
    assert len(session.messages) == 1


@pytest.mark.asyncio
async def test_tool_execution_updates_layers_context_and_view(suwon: CanonicalLocation) -> None:
    gateway = FakeGateway(first=_activate("elderly", location="수원시"), second=AgentResponse(text="완료"))
    session = _session(gateway, FakeAdapter(LayerKind.ELDERLY, payload=SUWON_ELDERLY))

    await session.ask("수원시 노인 인구 밀도 보여줘")

    (layer,) = session.layers
    assert layer.kind is LayerKind.ELDERLY
    assert layer.payload == SUWON_ELDERLY
    assert session.context.last_location == suwon
    assert session.context.last_layer_kinds == (LayerKind.ELDERLY,)
    assert session.view == MapView.for_location(suwon)
    assert session.messages[-1].content == "완료"


@pytest.mark.asyncio
async def test_follow_up_reuses_context_location() -> None:
    gateway = FakeGateway(
        first_by_message={
            "수원 침수 위험": _activate("flood_risk", location="수원"),
            "폭염은?": _activate("heatwave"),
        }
    )
    session = _session(gateway)

    await session.ask("수원 침수 위험")
    await session.ask("폭염은?")

    (layer,) = session.layers
    assert layer.kind is LayerKind.HEATWAVE
    assert layer.normalized_location == "수원"
    assert gateway.contexts[-1] is session.context


@pytest.mark.asyncio
async def test_history_sent_excludes_current_message() -> None:
    gateway = FakeGateway()
    session = _session(gateway)

    await session.ask("첫 질문")
    await session.ask("두 번째 질문")

    message, history = gateway.sent[-1]
    assert message == "두 번째 질문"
    assert [item.content for item in history] == [WELCOME_MESSAGE, "첫 질문", "ok"]


@pytest.mark.asyncio
async def test_newer_submission_supersedes_pending_request() -> None:
    gate = asyncio.Event()
    gateway = FakeGateway(
        first_by_message={
            "수원 노인": _activate("elderly", location="수원"),
            "용인 폭염": _activate("heatwave", location="용인"),
        },
        gates={"수원 노인": gate},
    )
    session = _session(gateway, FakeAdapter(LayerKind.ELDERLY, payload=SUWON_ELDERLY))

    stale = session.submit("수원 노인")
    await asyncio.sleep(0)
    fresh = await session.submit("용인 폭염")
    gate.set()
    late = await stale

    assert late is None
    assert fresh is not None
    (layer,) = session.layers
    assert layer.kind is LayerKind.HEATWAVE
    assert layer.normalized_location == "용인"
    assert session.context.last_location is not None
    assert session.context.last_location.normalized_name == "용인"
    contents = [message.content for message in session.messages]
    assert contents.count("final") == 1
    assert contents[-3:] == ["수원 노인", "용인 폭염", "final"]
    assert len(gateway.tool_results) == 1


@pytest.mark.asyncio
async def test_timeout_posts_apology() -> None:
    gateway = FakeGateway(gates={"느린 질문": asyncio.Event()})
    session = _session(gateway, request_timeout=0.05)

    outcome = await session.ask("느린 질문")

    assert outcome is None
    assert session.messages[-1].content == AgentTimeout().message
    assert not session.busy


@pytest.mark.asyncio
async def test_gateway_failure_posts_apology_and_keeps_layers(suwon: CanonicalLocation) -> None:
    gateway = FakeGateway(
        first_by_message={"수원 침수": _activate("flood_risk", location="수원시"), "다시": AgentGatewayFailure()}
    )
    session = _session(gateway)
    await session.ask("수원 침수")
    layers = session.layers

    outcome = await session.ask("다시")

    assert outcome is None
    assert session.messages[-1].content == AgentGatewayFailure().message
    assert session.layers == layers
    assert session.context.last_location == suwon


@pytest.mark.asyncio
async def test_internal_error_message_is_not_shown() -> None:
    internal = ToolArgumentsInvalid(message="schema mismatch at $.requestedKinds", tool_name="activate_layers")
    session = _session(FakeGateway(first=internal))

    outcome = await session.ask("안녕")

    assert outcome is None
    assert not internal.user_visible
    assert session.messages[-1].content == AgentGatewayFailure().message
    assert not session.busy


@pytest.mark.asyncio
async def test_new_conversation_resets_state() -> None:
    cache = ResponseCache()
    cache.put("안녕", [], AgentResponse(text="cached"))
    gateway = FakeGateway(first=_activate("parks", location="파주"))
    session = _session(gateway, response_cache=cache)
    await session.ask("파주 녹지")

    session.new_conversation()

    assert [message.content for message in session.messages] == [WELCOME_MESSAGE]
    assert session.layers == ()
    assert session.context.is_empty
    assert session.view is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_new_conversation_drops_pending_answer() -> None:
    gate = asyncio.Event()
    session = _session(FakeGateway(gates={"대기": gate}))

    pending = session.submit("대기")
    await asyncio.sleep(0)
    session.new_conversation()
    gate.set()

    assert await pending is None
    assert [message.content for message in session.messages] == [WELCOME_MESSAGE]


@pytest.mark.asyncio
async def test_listeners_receive_snapshots() -> None:
    recorder = _Recorder()
    session = _session(FakeGateway(first=_activate("flood_risk", location="파주")))
    session.add_listener(recorder)

    await session.ask("파주 침수")

    first, *_, last = recorder.snapshots
    assert first.busy
    assert first.messages[-1].content == "파주 침수"
    assert not last.busy
    assert last.layers[0].kind is LayerKind.FLOOD_RISK
    assert any(snapshot.view is not None for snapshot in recorder.snapshots)

    session.remove_listener(recorder)
    count = len(recorder.snapshots)
    session.new_conversation()
    assert len(recorder.snapshots) == count


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_session() -> None:
    class Broken:
        def on_snapshot(self, snapshot: SessionSnapshot) -> None:
            raise RuntimeError("boom")

    session = _session(FakeGateway(first=AgentResponse(text="ok")))
    session.add_listener(Broken())

    outcome = await session.ask("안녕")

    assert outcome is not None
    assert session.messages[-1].content == "ok"


@pytest.mark.asyncio
async def test_aclose_runs_closers() -> None:
    closed: list[str] = []

    async def close() -> None:
        closed.append("registry")

    session = _session(FakeGateway(), closers=(close,))

    await session.aclose()

    assert closed == ["registry"]
