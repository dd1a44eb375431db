"""Kind → adapter lookup table and the default wiring from settings."""

from __future__ import annotations

import logging
from typing import Iterator, Mapping

import httpx

from ..core.layers import LayerKind
from ..services.settings import Settings
from .air_quality import AirQualityAdapter
from .base import ProviderAdapter
from .demographics import DemographicsAdapter
from .hazards import HazardAdapter
from .vegetation import GreenSpaceAdapter
from .weather import WeatherAdapter

__all__ = ["ProviderRegistry", "build_default_registry"]

LOGGER = logging.getLogger(__name__)


class ProviderRegistry:
    """Holds at most one adapter per :class:`LayerKind`.

    Kinds without an adapter are purely visual layers.
    """

    def __init__(
        self,
        adapters: Mapping[LayerKind, ProviderAdapter] | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._adapters: dict[LayerKind, ProviderAdapter] = dict(adapters or {})
        self._client = client

    def register(self, adapter: ProviderAdapter) -> None:
        if adapter.kind in self._adapters:
            LOGGER.debug("Replacing adapter for %s", adapter.kind.value)
        self._adapters[adapter.kind] = adapter

    def get(self, kind: LayerKind) -> ProviderAdapter | None:
        return self._adapters.get(kind)

    def has(self, kind: LayerKind) -> bool:
        return kind in self._adapters

    def __iter__(self) -> Iterator[ProviderAdapter]:
        return iter(self._adapters.values())

    def __len__(self) -> int:
        return len(self._adapters)

    async def aclose(self) -> None:
        """Close the shared HTTP client if this registry created it."""

        if self._client is not None:
            await self._client.aclose()
            self._client = None


def build_default_registry(settings: Settings, *, client: httpx.AsyncClient | None = None) -> ProviderRegistry:
    """Wire every provider from ``settings`` on one shared ``httpx.AsyncClient``.

    Adapters are registered even when their credentials are missing; they
    raise ``CredentialsMissing`` at fetch time so that one unconfigured source
    only degrades its own layer.
    """

    owned = client is None
    http = client or httpx.AsyncClient(timeout=settings.provider_timeout, follow_redirects=True)
    ttl = settings.provider_cache_ttl
    registry = ProviderRegistry(client=http if owned else None)
    registry.register(
        DemographicsAdapter(
            client=http,
            base_url=settings.sgis_base_url,
            consumer_key=settings.sgis_consumer_key,
            consumer_secret=settings.sgis_consumer_secret,
            cache_ttl=ttl,
        )
    )
    registry.register(
        AirQualityAdapter(
            client=http,
            base_url=settings.airkorea_base_url,
            service_key=settings.airkorea_service_key,
            cache_ttl=ttl,
        )
    )
    registry.register(WeatherAdapter(client=http, url=settings.gg_aws_url, api_key=settings.gg_aws_api_key, cache_ttl=ttl))
    registry.register(
        GreenSpaceAdapter(client=http, url=settings.gg_wfs_url, api_key=settings.gg_climate_api_key, cache_ttl=ttl)
    )
    for kind in (LayerKind.FLOOD_RISK, LayerKind.HEATWAVE):
        registry.register(
            HazardAdapter(kind, client=http, url=settings.gg_wfs_url, api_key=settings.gg_climate_api_key, cache_ttl=ttl)
        )
    return registry
