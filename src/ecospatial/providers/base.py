"""Shared plumbing for provider adapters.

Adapters fetch one typed record for a :class:`CanonicalLocation`. HTTP and
decoding failures are translated into the provider error taxonomy here so that
subclasses only deal with provider-specific payload shapes.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Mapping

import httpx

from ..core.layers import LayerKind, LayerPayload
from ..core.places import CanonicalLocation
from ..errors import CredentialsMissing, ProviderMalformedResponse, ProviderUnavailable
from ..utils.cache import CacheConfig, Clock, ExpiringCache
from ..utils.logging import mask_query_secrets

__all__ = ["ProviderAdapter", "DEFAULT_CACHE_TTL"]

LOGGER = logging.getLogger(__name__)
DEFAULT_CACHE_TTL = 600.0
_PREVIEW_CHARS = 200


class ProviderAdapter(ABC):
    """Base class for one upstream data source bound to one layer kind."""

    provider: ClassVar[str] = "provider"

    def __init__(
        self,
        kind: LayerKind,
        *,
        client: httpx.AsyncClient,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Clock | None = None,
    ) -> None:
        self.kind = kind
        self._client = client
        self._cache: ExpiringCache[Any, Any] = ExpiringCache(
            CacheConfig(max_entries=32, ttl_seconds=cache_ttl), clock=clock
        )

    @property
    def cache(self) -> ExpiringCache[Any, Any]:
        return self._cache

    @abstractmethod
    async def fetch(self, location: CanonicalLocation) -> LayerPayload:
        """Return the typed record for ``location`` or raise a provider error."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require_credentials(self, **values: str) -> None:
        missing = [name for name, value in values.items() if not (value or "").strip()]
        if missing:
            raise CredentialsMissing.for_provider(self.provider, *missing)

    async def _get(self, url: str, params: Mapping[str, Any]) -> httpx.Response:
        try:
            response = await self._client.get(url, params=dict(params))
        except httpx.TimeoutException as exc:
            raise ProviderUnavailable(
                message=f"{self.provider} request timed out",
                provider=self.provider,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(
                message=f"{self.provider} request failed: {mask_query_secrets(str(exc))}",
                provider=self.provider,
            ) from exc

        if response.is_error:
            raise ProviderUnavailable(
                message=f"{self.provider} returned HTTP {response.status_code}",
                provider=self.provider,
                status_code=response.status_code,
            )
        return response

    async def _get_json(self, url: str, params: Mapping[str, Any]) -> Any:
        """GET ``url`` and decode JSON without trusting the content type."""

        response = await self._get(url, params)
        return self._decode_json(response.text)

    def _decode_json(self, text: str) -> Any:
        stripped = text.lstrip()
        if not stripped.startswith(("{", "[")):
            raise self._malformed("response body is not JSON", text)
        try:
            return json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise self._malformed(f"response body could not be parsed: {exc.msg}", text) from exc

    def _malformed(self, reason: str, body: str = "") -> ProviderMalformedResponse:
        LOGGER.debug("%s malformed payload: %s", self.provider, reason)
        return ProviderMalformedResponse(
            message=f"{self.provider} {reason}",
            provider=self.provider,
            preview=body[:_PREVIEW_CHARS],
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r})"
