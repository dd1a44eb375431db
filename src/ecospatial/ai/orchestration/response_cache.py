"""Cache of agent first-round responses keyed by message and history.

The key is the literal message text plus a hash of the serialized history.
Any change to the history changes the key, so hit rates fall as a conversation
grows. Responses carrying tool calls are never stored: they must trigger a
fresh provider fetch every time.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Sequence

from ...utils.cache import CacheConfig, CacheStats, ExpiringCache
from .types import AgentResponse, ChatMessage

__all__ = ["ResponseCache", "compute_history_hash"]

LOGGER = logging.getLogger(__name__)


def compute_history_hash(history: Sequence[ChatMessage]) -> str:
    """Stable short hash over role and content of each history message."""

    hasher = hashlib.sha256()
    for message in history:
        hasher.update(json.dumps([message.role, message.content], ensure_ascii=False).encode("utf-8"))
        hasher.update(b"\x1e")
    return hasher.hexdigest()[:16]


class ResponseCache:
    def __init__(self, max_entries: int = 64) -> None:
        # Entries never expire; the key already pins the full conversation.
        self._cache: ExpiringCache[tuple[str, str], AgentResponse] = ExpiringCache(
            CacheConfig(max_entries=max_entries, ttl_seconds=0)
        )

    @property
    def stats(self) -> CacheStats | None:
        return self._cache.stats

    def get(self, message: str, history: Sequence[ChatMessage]) -> AgentResponse | None:
        return self._cache.get((message, compute_history_hash(history)))

    def put(self, message: str, history: Sequence[ChatMessage], response: AgentResponse) -> bool:
        """Store ``response`` unless it contains tool calls. Returns whether it was stored."""

        if response.has_tool_calls:
            LOGGER.debug("Not caching response with %d tool call(s)", len(response.tool_calls))
            return False
        self._cache.set((message, compute_history_hash(history)), response)
        return True

    def clear(self) -> None:
        self._cache.invalidate_all()

    def __len__(self) -> int:
        return len(self._cache)
