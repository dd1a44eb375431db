"""Core domain types: places, layers, and reconciliation."""

from .layers import LAYER_CATALOG, ActiveLayer, LayerKind, LayerMetadata
from .places import CanonicalLocation, PlaceNotFound, PlaceResolver
from .reconciler import LayerReconciler, ReconcileDecision

__all__ = [
    "ActiveLayer",
    "CanonicalLocation",
    "LAYER_CATALOG",
    "LayerKind",
    "LayerMetadata",
    "LayerReconciler",
    "PlaceNotFound",
    "PlaceResolver",
    "ReconcileDecision",
]
