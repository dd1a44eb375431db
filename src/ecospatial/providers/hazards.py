"""Flood-trace and heatwave-vulnerability samples from the climate WFS."""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from ..core.layers import HazardRecord, LayerKind
from ..core.places import CanonicalLocation
from ..utils.cache import Clock
from .base import DEFAULT_CACHE_TTL
from .wfs import WfsAdapter

__all__ = ["HazardAdapter", "HAZARD_TYPE_NAMES"]

HAZARD_TYPE_NAMES: Mapping[LayerKind, str] = {
    LayerKind.FLOOD_RISK: "spggcee:tm_fldn_trce",
    LayerKind.HEATWAVE: "spggcee:rst_thrcf_evl_41",
}
_SAMPLE_LIMIT = 5
_SUMMARY_SAMPLES = 3


class HazardAdapter(WfsAdapter):
    """Samples a province-wide hazard layer.

    These layers have no district column, so the request is not filtered and
    the record is shared by every location; it is cached under the type name.
    """

    wfs_version = "1.0.0"

    def __init__(
        self,
        kind: LayerKind,
        *,
        client: httpx.AsyncClient,
        url: str,
        api_key: str,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Clock | None = None,
    ) -> None:
        if kind not in HAZARD_TYPE_NAMES:
            raise ValueError(f"{kind.value} is not a hazard layer")
        super().__init__(
            kind,
            client=client,
            url=url,
            api_key=api_key,
            type_name=HAZARD_TYPE_NAMES[kind],
            cache_ttl=cache_ttl,
            clock=clock,
        )

    async def fetch(self, location: CanonicalLocation) -> HazardRecord:
        cached = self._cache.get(self.type_name)
        if cached is not None:
            return cached
        collection = await self._get_features(_SAMPLE_LIMIT)
        features: list[Any] = collection["features"]
        samples = tuple(
            dict(feature.get("properties") or {})
            for feature in features[:_SUMMARY_SAMPLES]
            if isinstance(feature, Mapping)
        )
        total = collection.get("totalFeatures")
        record = HazardRecord(
            kind=self.kind,
            type_name=self.type_name,
            total_features=int(total) if isinstance(total, (int, float)) else len(features),
            samples=samples,
        )
        self._cache.set(self.type_name, record)
        return record
