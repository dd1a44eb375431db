"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from ecospatial.core.places import CanonicalLocation, PlaceResolver


@pytest.fixture
def resolver() -> PlaceResolver:
    return PlaceResolver()


@pytest.fixture
def suwon(resolver: PlaceResolver) -> CanonicalLocation:
    location = resolver.resolve("수원시")
    assert isinstance(location, CanonicalLocation)
    return location


@pytest.fixture
def yongin(resolver: PlaceResolver) -> CanonicalLocation:
    location = resolver.resolve("용인")
    assert isinstance(location, CanonicalLocation)
    return location
