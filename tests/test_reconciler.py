"""Tests for the layer reconciliation policy."""

from __future__ import annotations

from ecospatial.core.layers import ActiveLayer, LayerKind
from ecospatial.core.places import CanonicalLocation, PlaceResolver
from ecospatial.core.reconciler import LayerReconciler

DATA_BEARING = {LayerKind.ELDERLY, LayerKind.AIR_QUALITY, LayerKind.WEATHER}


def _reconciler() -> LayerReconciler:
    return LayerReconciler(lambda kind: kind in DATA_BEARING)


def test_first_activation_needs_update(suwon: CanonicalLocation) -> None:
    decision = _reconciler().reconcile([], [LayerKind.WEATHER], suwon)

    assert decision.needs_update
    assert decision.reason == "kinds-changed"


def test_same_kinds_same_location_is_unchanged(suwon: CanonicalLocation) -> None:
    current = [ActiveLayer.activate(LayerKind.WEATHER, suwon)]

    decision = _reconciler().reconcile(current, [LayerKind.WEATHER], suwon)

    assert not decision.needs_update
    assert decision.reason == "unchanged"


def test_suffix_variants_count_as_same_location(resolver: PlaceResolver) -> None:
    bare = resolver.resolve("수원")
    suffixed = resolver.resolve("수원시")
    assert isinstance(bare, CanonicalLocation) and isinstance(suffixed, CanonicalLocation)
    current = [ActiveLayer.activate(LayerKind.ELDERLY, bare)]

    assert not _reconciler().reconcile(current, [LayerKind.ELDERLY], suffixed).needs_update


def test_location_change_with_data_bearing_layer_needs_update(
    suwon: CanonicalLocation, yongin: CanonicalLocation
) -> None:
    current = [
        ActiveLayer.activate(LayerKind.FLOOD_RISK, suwon),
        ActiveLayer.activate(LayerKind.AIR_QUALITY, suwon),
    ]

    decision = _reconciler().reconcile(current, [LayerKind.AIR_QUALITY, LayerKind.FLOOD_RISK], yongin)

    assert decision.needs_update
    assert decision.reason == "location-changed"


def test_location_change_with_only_visual_layers_is_unchanged(
    suwon: CanonicalLocation, yongin: CanonicalLocation
) -> None:
    current = [ActiveLayer.activate(LayerKind.FLOOD_RISK, suwon)]

    assert not _reconciler().reconcile(current, [LayerKind.FLOOD_RISK], yongin).needs_update


def test_kind_order_is_irrelevant(suwon: CanonicalLocation) -> None:
    current = [
        ActiveLayer.activate(LayerKind.WEATHER, suwon),
        ActiveLayer.activate(LayerKind.ELDERLY, suwon),
    ]

    assert not _reconciler().reconcile(current, [LayerKind.ELDERLY, LayerKind.WEATHER], suwon).needs_update


def test_missing_location_differs_from_bound_location(suwon: CanonicalLocation) -> None:
    current = [ActiveLayer.activate(LayerKind.ELDERLY, suwon)]

    assert _reconciler().reconcile(current, [LayerKind.ELDERLY], None).needs_update


def test_reconcile_is_idempotent_and_does_not_mutate_input(
    suwon: CanonicalLocation, yongin: CanonicalLocation
) -> None:
    current = [ActiveLayer.activate(LayerKind.WEATHER, suwon)]
    before = list(current)
    reconciler = _reconciler()

    first = reconciler.reconcile(current, [LayerKind.WEATHER], yongin)
    second = reconciler.reconcile(current, [LayerKind.WEATHER], yongin)

    assert first == second
    assert current == before


def test_layer_ids_are_never_reused(suwon: CanonicalLocation) -> None:
    first = ActiveLayer.activate(LayerKind.WEATHER, suwon)
    second = ActiveLayer.activate(LayerKind.WEATHER, suwon)

    assert first.id != second.id
    assert first.id.startswith("layer-weather-")
