"""Gyeonggi-do AWS hourly observation adapter (nearest station)."""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Sequence

import httpx

from ..core.layers import LayerKind, WeatherRecord
from ..core.places import CanonicalLocation, great_circle_km
from ..errors import ProviderRecordNotFound, ProviderUnavailable
from ..utils.cache import Clock
from .base import DEFAULT_CACHE_TTL, ProviderAdapter

__all__ = ["WeatherAdapter", "heat_index", "wind_chill", "parse_observation"]

LOGGER = logging.getLogger(__name__)

_SERVICE = "AWS1hourObser"
_SUCCESS_CODE = "INFO-000"
_BULK_CACHE_KEY = "observations"


def heat_index(temperature_c: float, humidity_pct: float) -> float | None:
    """NOAA Rothfusz heat index in °C; ``None`` below 27 °C."""

    if temperature_c < 27:
        return None
    t = temperature_c * 9 / 5 + 32
    rh = humidity_pct
    hi = (
        -42.379
        + 2.04901523 * t
        + 10.14333127 * rh
        - 0.22475541 * t * rh
        - 0.00683783 * t * t
        - 0.05481717 * rh * rh
        + 0.00122874 * t * t * rh
        + 0.00085282 * t * rh * rh
        - 0.00000199 * t * t * rh * rh
    )
    if rh < 13 and 80 <= t <= 112:
        hi -= ((13 - rh) / 4) * math.sqrt((17 - abs(t - 95)) / 17)
    elif rh > 85 and 80 <= t <= 87:
        hi += ((rh - 85) / 10) * ((87 - t) / 5)
    return round((hi - 32) * 5 / 9, 1)


def wind_chill(temperature_c: float, wind_speed_ms: float) -> float | None:
    """KMA wind chill in °C; ``None`` above 10 °C, the air temperature in calm wind."""

    if temperature_c > 10:
        return None
    v = wind_speed_ms * 3.6
    if v < 4.8:
        return temperature_c
    factor = v**0.16
    return round(13.12 + 0.6215 * temperature_c - 11.37 * factor + 0.3965 * temperature_c * factor, 1)


def _number(value: Any) -> float:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0


def parse_observation(row: Mapping[str, Any]) -> WeatherRecord:
    temperature = _number(row.get("TP_INFO"))
    humidity = _number(row.get("HD_INFO"))
    wind_speed = _number(row.get("WS_INFO"))
    date = str(row.get("MESURE_DE") or "")
    hour = str(row.get("MESURE_TM") or "0").strip().zfill(2)
    observed_at = f"{date[0:4]}-{date[4:6]}-{date[6:8]}T{hour}:00:00+09:00" if len(date) >= 8 else ""
    return WeatherRecord(
        sigun=str(row.get("SIGUN_NM") or ""),
        station=str(row.get("SPOT_NM") or ""),
        station_id=str(row.get("SPOT_NO") or ""),
        observed_at=observed_at,
        lat=_number(row.get("WGS84_LAT")),
        lon=_number(row.get("WGS84_LOGT")),
        temperature_c=temperature,
        humidity_pct=humidity,
        wind_speed_ms=wind_speed,
        wind_direction_deg=_number(row.get("WD_INFO")),
        heat_index=heat_index(temperature, humidity),
        wind_chill=wind_chill(temperature, wind_speed),
    )


class WeatherAdapter(ProviderAdapter):
    provider = "GG-AWS"

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        url: str,
        api_key: str,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(LayerKind.WEATHER, client=client, cache_ttl=cache_ttl, clock=clock)
        self._url = url
        self._api_key = api_key

    async def fetch(self, location: CanonicalLocation) -> WeatherRecord:
        self._require_credentials(gg_aws_api_key=self._api_key)
        observations = await self._observations()
        return self._nearest(observations, location)

    async def _observations(self) -> list[WeatherRecord]:
        cached = self._cache.get(_BULK_CACHE_KEY)
        if cached is not None:
            return cached

        payload = await self._get_json(
            self._url,
            {"KEY": self._api_key, "Type": "json", "pIndex": "1", "pSize": "500"},
        )
        sections = payload.get(_SERVICE) if isinstance(payload, Mapping) else None
        if not isinstance(sections, list):
            raise self._malformed(f"payload has no '{_SERVICE}' list")

        head = sections[0].get("head") if sections and isinstance(sections[0], Mapping) else None
        if isinstance(head, list) and len(head) > 1 and isinstance(head[1], Mapping):
            result = head[1].get("RESULT") or {}
            code = result.get("CODE")
            if code and code != _SUCCESS_CODE:
                raise ProviderUnavailable(
                    message=f"GG AWS error {code}: {result.get('MESSAGE', '')}",
                    provider=self.provider,
                )

        rows: Sequence[Any] = []
        if len(sections) > 1 and isinstance(sections[1], Mapping):
            rows = sections[1].get("row") or []
        observations = [parse_observation(row) for row in rows if isinstance(row, Mapping)]
        if observations:
            self._cache.set(_BULK_CACHE_KEY, observations)
        LOGGER.debug("Fetched %d AWS observations", len(observations))
        return observations

    def _nearest(self, observations: Sequence[WeatherRecord], location: CanonicalLocation) -> WeatherRecord:
        best: WeatherRecord | None = None
        best_distance = math.inf
        for observation in observations:
            if observation.lat == 0 or observation.lon == 0:
                continue
            distance = great_circle_km(location.coordinates, (observation.lat, observation.lon))
            if distance < best_distance:
                best, best_distance = observation, distance
        if best is None:
            raise ProviderRecordNotFound(
                message=f"No AWS station reported near {location.normalized_name}",
                provider=self.provider,
            )
        LOGGER.debug("Nearest AWS station to %s: %s (%.2f km)", location.normalized_name, best.station, best_distance)
        return best
