"""Session controller: transcript, active layers, and the single live request."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Protocol, Sequence

from ...core.layers import ActiveLayer
from ...errors import AgentGatewayFailure, AgentTimeout, EcoSpatialError, RequestSuperseded
from ..prompts import WELCOME_MESSAGE
from .cancellation import CancellationToken
from .response_cache import ResponseCache
from .tool_dispatcher import ToolDispatcher
from .types import ChatMessage, ConversationContext, DispatchOutcome, LayerUpdate, MapView

__all__ = ["SessionController", "SessionListener", "SessionSnapshot", "DEFAULT_REQUEST_TIMEOUT"]

LOGGER = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 15.0


@dataclass(slots=True, frozen=True)
class SessionSnapshot:
    """Read-only view of the session pushed to listeners after every change."""

    messages: tuple[ChatMessage, ...]
    layers: tuple[ActiveLayer, ...]
    context: ConversationContext
    view: MapView | None
    warnings: tuple[str, ...]
    busy: bool


class SessionListener(Protocol):
    """Callback for session state changes."""

    def on_snapshot(self, snapshot: SessionSnapshot) -> None:
        """Called with the latest snapshot after each state change."""
        ...


class SessionController:
    """Owns the conversation state and enforces one live request at a time.

    ``submit`` replaces the live token synchronously before scheduling the new
    request, so a superseded request can never commit layers, context, or an
    answer: every mutation is gated on its token still being the live one.
    """

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        warnings: Sequence[str] = (),
        response_cache: ResponseCache | None = None,
        closers: Sequence[Callable[[], Awaitable[None]]] = (),
    ) -> None:
        self._dispatcher = dispatcher
        self._request_timeout = request_timeout
        self._warnings = tuple(warnings)
        self._response_cache = response_cache
        self._closers = tuple(closers)
        self._listeners: list[SessionListener] = []

        self._messages: list[ChatMessage] = [ChatMessage.assistant(WELCOME_MESSAGE)]
        self._layers: tuple[ActiveLayer, ...] = ()
        self._context = ConversationContext()
        self._view: MapView | None = None
        self._token: CancellationToken | None = None
        self._task: asyncio.Task[DispatchOutcome | None] | None = None

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------
    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def layers(self) -> tuple[ActiveLayer, ...]:
        return self._layers

    @property
    def context(self) -> ConversationContext:
        return self._context

    @property
    def view(self) -> MapView | None:
        return self._view

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._warnings

    @property
    def busy(self) -> bool:
        return self._token is not None and not self._token.cancelled

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            messages=tuple(self._messages),
            layers=self._layers,
            context=replace(self._context),
            view=self._view,
            warnings=self._warnings,
            busy=self.busy,
        )

    def add_listener(self, listener: SessionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def submit(self, text: str) -> asyncio.Task[DispatchOutcome | None]:
        """Supersede any live request and start a new one for ``text``.

        Must be called from a running event loop.
        """

        message = text.strip()
        if not message:
            raise ValueError("Cannot submit an empty message")

        if self._token is not None:
            LOGGER.debug("Superseding request %s", self._token.request_id)
            self._token.cancel()
        token = CancellationToken()
        self._token = token

        history = tuple(self._messages)
        self._messages.append(ChatMessage.user(message))
        self._notify()

        task = asyncio.create_task(self._run(message, history, token))
        self._task = task
        return task

    async def ask(self, text: str) -> DispatchOutcome | None:
        """Submit ``text`` and wait for its outcome. ``None`` if it did not complete."""

        return await self.submit(text)

    async def _run(
        self, message: str, history: tuple[ChatMessage, ...], token: CancellationToken
    ) -> DispatchOutcome | None:
        try:
            outcome = await asyncio.wait_for(
                self._dispatcher.run(
                    message,
                    history,
                    context=self._context,
                    current_layers=self._layers,
                    sink=self,
                    token=token,
                ),
                timeout=self._request_timeout,
            )
        except asyncio.TimeoutError:
            LOGGER.warning("Request %s timed out after %.1fs", token.request_id, self._request_timeout)
            self._finish_with_error(token, AgentTimeout(timeout_seconds=self._request_timeout))
            return None
        except RequestSuperseded:
            LOGGER.debug("Request %s superseded", token.request_id)
            return None
        except EcoSpatialError as exc:
            self._finish_with_error(token, exc)
            return None

        if not self._is_live(token):
            LOGGER.debug("Dropping late result of request %s", token.request_id)
            return None
        self._messages.append(ChatMessage.assistant(outcome.text))
        self._token = None
        self._notify()
        return outcome

    def _finish_with_error(self, token: CancellationToken, error: EcoSpatialError) -> None:
        if not self._is_live(token):
            LOGGER.debug("Dropping late %s of request %s", error.error_code, token.request_id)
            return
        LOGGER.info("Request %s failed [%s]: %s", token.request_id, error.error_code, error.message)
        # Internal messages are replaced by the generic apology.
        text = error.message if error.user_visible else AgentGatewayFailure().message
        self._messages.append(ChatMessage.assistant(text))
        self._token = None
        self._notify()

    def _is_live(self, token: CancellationToken) -> bool:
        return token is self._token and not token.cancelled

    # ------------------------------------------------------------------
    # LayerSink
    # ------------------------------------------------------------------
    def commit_tool_execution(self, token: CancellationToken, update: LayerUpdate) -> bool:
        if not self._is_live(token):
            LOGGER.debug("Refusing layer update from request %s", token.request_id)
            return False
        if update.layers is not None:
            self._layers = update.layers
        self._context.update(update.location, update.kinds)
        if update.location is not None:
            self._view = MapView.for_location(update.location)
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def new_conversation(self) -> None:
        """Reset history, layers, context and cache, superseding any live request."""

        if self._token is not None:
            self._token.cancel()
        self._token = None
        self._messages = [ChatMessage.assistant(WELCOME_MESSAGE)]
        self._layers = ()
        self._context.reset()
        self._view = None
        if self._response_cache is not None:
            self._response_cache.clear()
        self._notify()

    async def aclose(self) -> None:
        if self._token is not None:
            self._token.cancel()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for close in self._closers:
            await close()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener.on_snapshot(snapshot)
            except Exception:
                LOGGER.debug("Session listener failed", exc_info=True)
