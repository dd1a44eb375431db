"""Two-round tool dispatch for one user request.

``IDLE -> AWAITING_FIRST_RESPONSE -> NO_TOOL_CALL -> IDLE`` when the agent
answers directly, otherwise ``... -> EXECUTING_TOOLS ->
AWAITING_SECOND_RESPONSE -> IDLE``. The cancellation token is checked before
every await; results that arrive after cancellation are discarded unread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol, Sequence

from ...core.layers import ActiveLayer, LayerKind
from ...core.places import CanonicalLocation, PlaceNotFound, PlaceResolver
from ...core.reconciler import LayerReconciler
from ...errors import EcoSpatialError, ErrorCode, LocationUnresolved, RequestSuperseded
from ...providers.registry import ProviderRegistry
from ..prompts import DEFAULT_FINAL_TEXT
from ..tools import ActivateLayersArgs, parse_arguments
from .cancellation import CancellationToken
from .summaries import compose_message, summarize_outcome
from .types import (
    ChatMessage,
    ConversationContext,
    DispatcherState,
    DispatchOutcome,
    LayerUpdate,
    ProviderOutcome,
    ToolCall,
    ToolResult,
)

if TYPE_CHECKING:
    from ..gateway import ChatGateway

__all__ = ["ToolDispatcher", "LayerSink", "DEFAULT_HISTORY_WINDOW"]

LOGGER = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 6
NO_LOCATION_LABEL = "위치 미지정"


class LayerSink(Protocol):
    """Receives the layer/context update of a tool execution.

    Returns ``False`` when ``token`` is no longer the live request, in which
    case nothing was applied.
    """

    def commit_tool_execution(self, token: CancellationToken, update: LayerUpdate) -> bool:
        ...


class ToolDispatcher:
    def __init__(
        self,
        gateway: "ChatGateway",
        resolver: PlaceResolver,
        registry: ProviderRegistry,
        *,
        reconciler: LayerReconciler | None = None,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ) -> None:
        self._gateway = gateway
        self._resolver = resolver
        self._registry = registry
        self._reconciler = reconciler or LayerReconciler(registry.has)
        self._history_window = max(0, history_window)

    async def run(
        self,
        message: str,
        history: Sequence[ChatMessage],
        *,
        context: ConversationContext,
        current_layers: Sequence[ActiveLayer],
        sink: LayerSink,
        token: CancellationToken,
    ) -> DispatchOutcome:
        outcome = DispatchOutcome(states=[DispatcherState.IDLE])
        trimmed = self._trim(history)

        token.raise_if_cancelled()
        outcome.states.append(DispatcherState.AWAITING_FIRST_RESPONSE)
        first = await self._gateway.send_message(message, trimmed, context)
        token.raise_if_cancelled()
        outcome.from_cache = first.from_cache

        if not first.has_tool_calls:
            outcome.states.append(DispatcherState.NO_TOOL_CALL)
            outcome.text = first.text
            outcome.states.append(DispatcherState.IDLE)
            return outcome

        if len(first.tool_calls) > 1:
            LOGGER.info("Agent issued %d tool calls; executing the first", len(first.tool_calls))
        tool_call = first.tool_calls[0]

        outcome.states.append(DispatcherState.EXECUTING_TOOLS)
        tool_result = await self._execute(
            tool_call,
            context=context,
            current_layers=current_layers,
            sink=sink,
            token=token,
            outcome=outcome,
        )
        outcome.tool_result = tool_result

        token.raise_if_cancelled()
        outcome.states.append(DispatcherState.AWAITING_SECOND_RESPONSE)
        second = await self._gateway.send_tool_result(message, trimmed, tool_call, tool_result, context)
        token.raise_if_cancelled()

        outcome.text = second.text.strip() or DEFAULT_FINAL_TEXT
        outcome.states.append(DispatcherState.IDLE)
        return outcome

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------
    async def _execute(
        self,
        tool_call: ToolCall,
        *,
        context: ConversationContext,
        current_layers: Sequence[ActiveLayer],
        sink: LayerSink,
        token: CancellationToken,
        outcome: DispatchOutcome,
    ) -> ToolResult:
        try:
            args = parse_arguments(tool_call)
            return await self._activate_layers(
                args,
                context=context,
                current_layers=current_layers,
                sink=sink,
                token=token,
                outcome=outcome,
            )
        except RequestSuperseded:
            raise
        except EcoSpatialError as exc:
            LOGGER.warning("Tool %s failed [%s]: %s", tool_call.name, exc.error_code, exc.message)
            return self._failure(tool_call, exc.to_dict())
        except Exception as exc:
            LOGGER.exception("Tool %s raised unexpectedly", tool_call.name)
            return self._failure(
                tool_call,
                {"error": ErrorCode.INTERNAL_ERROR, "message": str(exc) or type(exc).__name__},
            )

    async def _activate_layers(
        self,
        args: ActivateLayersArgs,
        *,
        context: ConversationContext,
        current_layers: Sequence[ActiveLayer],
        sink: LayerSink,
        token: CancellationToken,
        outcome: DispatchOutcome,
    ) -> ToolResult:
        location, location_error = self._resolve_location(args.location_name, context)

        token.raise_if_cancelled()
        outcomes = await self._fan_out(args.kinds, location)
        # Late results from a superseded request are dropped here.
        token.raise_if_cancelled()
        outcome.outcomes = outcomes

        # Without a location only purely visual kinds can be shown.
        activated = tuple(kind for kind in args.kinds if location is not None or not self._registry.has(kind))
        decision = self._reconciler.reconcile(current_layers, activated, location)
        LOGGER.debug("Reconcile %s: %s", [kind.value for kind in activated], decision.reason)
        layers: tuple[ActiveLayer, ...] | None = None
        if decision.needs_update:
            payloads = {item.kind: item.payload for item in outcomes}
            layers = tuple(
                ActiveLayer.activate(kind, location, payloads.get(kind), filter=args.filter_condition)
                for kind in activated
            )

        update = LayerUpdate(layers=layers, location=location, kinds=args.kinds)
        if not sink.commit_tool_execution(token, update):
            raise RequestSuperseded(request_id=token.request_id)
        outcome.update = update

        summaries = tuple(summarize_outcome(item) for item in outcomes)
        label = location.normalized_name if location is not None else NO_LOCATION_LABEL
        return ToolResult(
            success=True,
            location=location.normalized_name if location is not None else None,
            activated_kinds=activated,
            summaries=summaries,
            message=compose_message(label, summaries),
            error=location_error.to_dict() if location_error is not None else None,
        )

    def _resolve_location(
        self, location_name: str | None, context: ConversationContext
    ) -> tuple[CanonicalLocation | None, LocationUnresolved | None]:
        if location_name is None:
            return context.last_location, None
        resolved = self._resolver.resolve(location_name)
        if isinstance(resolved, PlaceNotFound):
            error = LocationUnresolved(raw_name=location_name)
            LOGGER.info("[%s] %s", error.error_code, location_name)
            return None, error
        return resolved, None

    async def _fan_out(
        self, kinds: Sequence[LayerKind], location: CanonicalLocation | None
    ) -> tuple[ProviderOutcome, ...]:
        adapters = [(kind, self._registry.get(kind)) for kind in kinds]
        bound = [(kind, adapter) for kind, adapter in adapters if adapter is not None]
        if location is None:
            return tuple(ProviderOutcome(kind=kind, skipped=True) for kind, _ in bound)

        results: list[Any] = await asyncio.gather(
            *(adapter.fetch(location) for _, adapter in bound), return_exceptions=True
        )

        outcomes: list[ProviderOutcome] = []
        for (kind, _), result in zip(bound, results):
            if isinstance(result, Exception):
                code = getattr(result, "error_code", type(result).__name__)
                LOGGER.warning("Provider for %s failed [%s]: %s", kind.value, code, result)
                outcomes.append(ProviderOutcome(kind=kind, error=result))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes.append(ProviderOutcome(kind=kind, payload=result))
        return tuple(outcomes)

    def _failure(self, tool_call: ToolCall, error: dict[str, Any]) -> ToolResult:
        return ToolResult(
            success=False,
            location=None,
            activated_kinds=(),
            summaries=(),
            message=f"{tool_call.name} 실행에 실패했습니다. {error.get('message', '')}".strip(),
            error=error,
        )

    def _trim(self, history: Sequence[ChatMessage]) -> tuple[ChatMessage, ...]:
        if self._history_window == 0:
            return ()
        return tuple(history[-self._history_window :])
