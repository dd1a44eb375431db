"""Decides whether a requested layer set can reuse the currently active one."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from .layers import ActiveLayer, LayerKind
from .places import CanonicalLocation

__all__ = ["LayerReconciler", "ReconcileDecision"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ReconcileDecision:
    needs_update: bool
    reason: str


class LayerReconciler:
    """Pure reconciliation policy.

    When an update is needed the caller discards the whole active set and
    rebuilds it. No per-kind merge is attempted: payload shapes differ per kind
    and a partial merge could leave one city's data next to another's.
    """

    def __init__(self, is_data_bearing: Callable[[LayerKind], bool]) -> None:
        self._is_data_bearing = is_data_bearing

    def reconcile(
        self,
        current: Sequence[ActiveLayer],
        requested_kinds: Iterable[LayerKind],
        location: CanonicalLocation | None,
    ) -> ReconcileDecision:
        requested = frozenset(requested_kinds)
        active = frozenset(layer.kind for layer in current)
        if requested != active:
            return ReconcileDecision(True, "kinds-changed")

        target = location.normalized_name if location is not None else None
        for layer in current:
            if not self._is_data_bearing(layer.kind):
                continue
            if layer.normalized_location != target:
                LOGGER.debug(
                    "Layer %s bound to %s, requested %s", layer.kind.value, layer.normalized_location, target
                )
                return ReconcileDecision(True, "location-changed")

        return ReconcileDecision(False, "unchanged")
