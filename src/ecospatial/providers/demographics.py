"""SGIS (Statistics Korea) elderly-population adapter."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from ..core.layers import ElderlyPopulationRecord, LayerKind
from ..core.places import CanonicalLocation, normalize_place_name
from ..errors import ProviderRecordNotFound, ProviderUnavailable
from ..utils.cache import Clock
from .base import DEFAULT_CACHE_TTL, ProviderAdapter

__all__ = ["BearerToken", "DemographicsAdapter", "GYEONGGI_SIDO_CODE", "TOKEN_LIFETIME_SECONDS"]

LOGGER = logging.getLogger(__name__)

GYEONGGI_SIDO_CODE = "31"
TOKEN_LIFETIME_SECONDS = 50 * 60
_NO_RESULT_CODE = -100


@dataclass(slots=True, frozen=True)
class BearerToken:
    value: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return bool(self.value) and now < self.expires_at


class DemographicsAdapter(ProviderAdapter):
    """Fetches the 70+ population count and ratio for a district.

    The access token is acquired lazily and re-acquired only once expired.
    District codes for 경기도 are cached by search name for the adapter's
    lifetime, since administrative codes do not change at runtime.
    """

    provider = "SGIS"

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(LayerKind.ELDERLY, client=client, cache_ttl=cache_ttl, clock=clock)
        self._base_url = base_url.rstrip("/")
        self._consumer_key = consumer_key
        self._consumer_secret = consumer_secret
        self._clock = clock or time.monotonic
        self._token: BearerToken | None = None
        self._token_lock = asyncio.Lock()
        self._district_codes: dict[str, str] = {}

    async def fetch(self, location: CanonicalLocation) -> ElderlyPopulationRecord:
        self._require_credentials(
            sgis_consumer_key=self._consumer_key,
            sgis_consumer_secret=self._consumer_secret,
        )
        district_code = await self._district_code(location.provider_keys.sgis_name)
        token = await self._access_token()
        payload = await self._get_json(
            f"{self._base_url}/startupbiz/pplsummary.json",
            {"accessToken": token, "adm_cd": district_code},
        )
        return self._parse_population(payload, district_code, location)

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------
    async def _access_token(self) -> str:
        token = self._token
        if token is not None and token.is_valid(self._clock()):
            return token.value
        async with self._token_lock:
            token = self._token
            if token is not None and token.is_valid(self._clock()):
                return token.value
            LOGGER.debug("Requesting SGIS access token")
            payload = await self._get_json(
                f"{self._base_url}/auth/authentication.json",
                {"consumer_key": self._consumer_key, "consumer_secret": self._consumer_secret},
            )
            self._check_err_code(payload)
            value = _dig(payload, "result", "accessToken")
            if not isinstance(value, str) or not value:
                raise self._malformed("authentication response has no accessToken")
            self._token = BearerToken(value=value, expires_at=self._clock() + TOKEN_LIFETIME_SECONDS)
            return value

    # ------------------------------------------------------------------
    # District codes
    # ------------------------------------------------------------------
    async def _district_code(self, sgis_name: str) -> str:
        cached = self._district_codes.get(sgis_name)
        if cached is not None:
            return cached
        token = await self._access_token()
        payload = await self._get_json(
            f"{self._base_url}/addr/stage.json",
            {"accessToken": token, "cd": GYEONGGI_SIDO_CODE},
        )
        self._check_err_code(payload)
        entries = payload.get("result") if isinstance(payload, Mapping) else None
        if not isinstance(entries, list) or not entries:
            raise ProviderRecordNotFound(
                message="SGIS returned no districts for 경기도",
                provider=self.provider,
            )
        entry = _match_district(entries, sgis_name)
        code = str(entry.get("cd", "")) if entry is not None else ""
        if not code:
            raise ProviderRecordNotFound(
                message=f"SGIS has no district matching '{sgis_name}'",
                provider=self.provider,
                details={"search_name": sgis_name},
            )
        self._district_codes[sgis_name] = code
        LOGGER.debug("SGIS district code %s for %s", code, sgis_name)
        return code

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------
    def _check_err_code(self, payload: Any) -> None:
        if not isinstance(payload, Mapping):
            raise self._malformed("response is not a JSON object")
        try:
            code = int(payload.get("errCd", 0) or 0)
        except (TypeError, ValueError):
            raise self._malformed(f"unexpected errCd {payload.get('errCd')!r}") from None
        if code == _NO_RESULT_CODE:
            raise ProviderRecordNotFound(
                message="SGIS reports no matching records",
                provider=self.provider,
                details={"errCd": code},
            )
        if code != 0:
            raise ProviderUnavailable(
                message=f"SGIS error {code}: {payload.get('errMsg', '')}",
                provider=self.provider,
                details={"errCd": code},
            )

    def _parse_population(
        self, payload: Any, district_code: str, location: CanonicalLocation
    ) -> ElderlyPopulationRecord:
        self._check_err_code(payload)
        rows = payload.get("result")
        if not isinstance(rows, list) or not rows:
            raise ProviderRecordNotFound(
                message=f"SGIS has no population data for {district_code}",
                provider=self.provider,
            )
        row = next(
            (item for item in rows if isinstance(item, Mapping) and item.get("adm_cd") == district_code),
            rows[0],
        )
        if not isinstance(row, Mapping):
            raise self._malformed("population row is not an object")
        return ElderlyPopulationRecord(
            district_name=str(row.get("adm_nm") or location.provider_keys.sgis_name),
            district_code=str(row.get("adm_cd") or district_code),
            seventy_plus_count=_to_int(row.get("seventy_more_than_cnt")),
            seventy_plus_ratio=_to_float(row.get("seventy_more_than_per")),
        )


def _match_district(entries: list[Any], sgis_name: str) -> Mapping[str, Any] | None:
    """Pick the stage entry for ``sgis_name``.

    The last token of ``addr_name`` must equal the full name ("양주시" never
    matches "경기도 남양주시"). Substring matching on the suffix-stripped name
    is only a fallback for entries whose naming differs.
    """

    rows = [entry for entry in entries if isinstance(entry, Mapping)]
    for entry in rows:
        tokens = str(entry.get("addr_name", "")).split()
        if tokens and tokens[-1] == sgis_name:
            return entry
    search_name = normalize_place_name(sgis_name)
    if not search_name:
        return None
    for entry in rows:
        if search_name in str(entry.get("addr_name", "")):
            return entry
    return None


def _dig(payload: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(payload, Mapping):
            return None
        payload = payload.get(key)
    return payload


def _to_int(value: Any) -> int:
    try:
        return int(float(str(value).replace(",", "")))
    except (TypeError, ValueError):
        return 0


def _to_float(value: Any) -> float:
    try:
        return float(str(value).replace(",", ""))
    except (TypeError, ValueError):
        return 0.0
