"""Base adapter for the Gyeonggi climate platform GeoServer WFS."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..core.layers import LayerKind
from ..errors import ProviderUnavailable
from ..utils.cache import Clock
from .base import DEFAULT_CACHE_TTL, ProviderAdapter

__all__ = ["WfsAdapter", "FeatureCollection"]

LOGGER = logging.getLogger(__name__)

FeatureCollection = Mapping[str, Any]


class WfsAdapter(ProviderAdapter):
    """Issues ``GetFeature`` requests for one feature type."""

    provider = "GG-Climate-WFS"
    wfs_version = "2.0.0"

    def __init__(
        self,
        kind: LayerKind,
        *,
        client: httpx.AsyncClient,
        url: str,
        api_key: str,
        type_name: str,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(kind, client=client, cache_ttl=cache_ttl, clock=clock)
        self._url = url
        self._api_key = api_key
        self.type_name = type_name

    def _feature_params(self, limit: int, cql_filter: str | None = None) -> dict[str, str]:
        params = {
            "service": "WFS",
            "version": self.wfs_version,
            "request": "GetFeature",
            "typeName": self.type_name,
            "outputFormat": "application/json",
            "apiKey": self._api_key,
        }
        # WFS 2.0 renamed maxFeatures to count.
        if self.wfs_version.startswith("2"):
            params["count"] = str(limit)
            params["srsname"] = "EPSG:4326"
        else:
            params["maxFeatures"] = str(limit)
        if cql_filter:
            params["CQL_FILTER"] = cql_filter
        return params

    async def _get_features(self, limit: int, cql_filter: str | None = None) -> FeatureCollection:
        self._require_credentials(gg_climate_api_key=self._api_key)
        response = await self._get(self._url, self._feature_params(limit, cql_filter))
        content_type = response.headers.get("content-type", "")
        if "xml" in content_type:
            # GeoServer answers unknown layers and bad filters with an XML exception report.
            raise ProviderUnavailable(
                message=f"WFS returned an XML exception report for {self.type_name}",
                provider=self.provider,
                details={"preview": response.text[:200]},
            )
        payload = self._decode_json(response.text)
        if not isinstance(payload, Mapping) or not isinstance(payload.get("features"), list):
            raise self._malformed("response has no 'features' array", response.text)
        LOGGER.debug("WFS %s returned %d feature(s)", self.type_name, len(payload["features"]))
        return payload
