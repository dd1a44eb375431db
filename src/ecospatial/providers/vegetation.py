"""Green-space (biotope) coverage from the ``spggcee:grbt`` WFS layer."""

from __future__ import annotations

import re
from collections import Counter
from typing import Any, Iterable, Mapping

import httpx

from ..core.layers import GreenSpaceClassification, GreenSpaceRecord, LayerKind
from ..core.places import CanonicalLocation
from ..errors import ProviderRecordNotFound
from ..utils.cache import Clock
from .base import DEFAULT_CACHE_TTL
from .wfs import WfsAdapter

__all__ = ["GreenSpaceAdapter", "GREEN_SPACE_TYPE_NAME", "build_sgg_filter", "aggregate_biotopes", "format_area"]

GREEN_SPACE_TYPE_NAME = "spggcee:grbt"
_FEATURE_LIMIT = 5000
_TOP_CLASSIFICATIONS = 5
_UNCLASSIFIED = "미분류"
_TRAILING_SI = re.compile(r"시$")


def build_sgg_filter(sgg_names: Iterable[str]) -> str:
    """CQL filter matching any of the district names, ignoring a trailing 시."""

    clauses = []
    for name in sgg_names:
        needle = _TRAILING_SI.sub("", name).replace("'", "''")
        clauses.append(f"sgg_nm LIKE '%{needle}%'")
    return " OR ".join(clauses)


def format_area(area_m2: float) -> str:
    if area_m2 >= 1_000_000:
        return f"{area_m2 / 1_000_000:.2f} ㎢"
    if area_m2 >= 10_000:
        return f"{area_m2 / 10_000:.2f} ha"
    return f"{area_m2:,.0f} ㎡"


def _area(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def aggregate_biotopes(
    features: Iterable[Mapping[str, Any]], location: CanonicalLocation
) -> GreenSpaceRecord:
    total = 0.0
    count = 0
    sgg_name = location.provider_keys.sgis_name
    sgg_code = ""
    areas: Counter[tuple[str, ...]] = Counter()
    counts: Counter[tuple[str, ...]] = Counter()
    for feature in features:
        count += 1
        props = feature.get("properties") or {}
        if not sgg_code and props.get("sgg_cd"):
            sgg_code = str(props["sgg_cd"])
        if props.get("sgg_nm"):
            sgg_name = str(props["sgg_nm"])
        area = _area(props.get("biotop_area"))
        total += area
        key = tuple(
            str(props.get(name) or _UNCLASSIFIED) for name in ("lclsf_nm", "mclsf_nm", "sclsf_nm", "dclsf_nm")
        )
        areas[key] += area
        counts[key] += 1

    ranked = sorted(areas, key=areas.__getitem__, reverse=True)[:_TOP_CLASSIFICATIONS]
    top = tuple(
        GreenSpaceClassification(
            large=key[0], middle=key[1], small=key[2], detail=key[3], area_m2=areas[key], feature_count=counts[key]
        )
        for key in ranked
    )
    return GreenSpaceRecord(
        sgg_name=sgg_name,
        sgg_code=sgg_code,
        district_names=location.provider_keys.sgg_names,
        total_area_m2=total,
        feature_count=count,
        top_classifications=top,
    )


class GreenSpaceAdapter(WfsAdapter):
    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        url: str,
        api_key: str,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(
            LayerKind.PARKS,
            client=client,
            url=url,
            api_key=api_key,
            type_name=GREEN_SPACE_TYPE_NAME,
            cache_ttl=cache_ttl,
            clock=clock,
        )

    async def fetch(self, location: CanonicalLocation) -> GreenSpaceRecord:
        cached = self._cache.get(location.normalized_name)
        if cached is not None:
            return cached
        collection = await self._get_features(_FEATURE_LIMIT, build_sgg_filter(location.provider_keys.sgg_names))
        features = [item for item in collection["features"] if isinstance(item, Mapping)]
        if not features:
            raise ProviderRecordNotFound(
                message=f"No green-space features for {location.normalized_name}",
                provider=self.provider,
            )
        record = aggregate_biotopes(features, location)
        self._cache.set(location.normalized_name, record)
        return record
