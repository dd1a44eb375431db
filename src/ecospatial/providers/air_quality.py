"""AirKorea real-time air-quality adapter (nearest station in 경기)."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx

from ..core.layers import AirQualityRecord, LayerKind
from ..core.places import CanonicalLocation, great_circle_km
from ..errors import ProviderRecordNotFound, ProviderUnavailable
from ..utils.cache import Clock
from .base import DEFAULT_CACHE_TTL, ProviderAdapter

__all__ = ["AirQualityAdapter", "STATION_KEYWORDS", "parse_measurement", "parse_grade"]

LOGGER = logging.getLogger(__name__)

_SIDO_NAME = "경기"
_BULK_CACHE_KEY = "stations"

# The bulk endpoint carries no coordinates. Station names embed the district,
# so the first keyword contained in a station name gives its approximate position.
STATION_KEYWORDS: Mapping[str, tuple[float, float]] = {
    "수원": (37.2636, 127.0286),
    "성남": (37.4201, 127.1265),
    "분당": (37.3838, 127.1192),
    "용인": (37.2411, 127.1776),
    "안양": (37.3943, 126.9568),
    "부천": (37.5034, 126.7660),
    "광명": (37.4786, 126.8644),
    "평택": (36.9921, 127.0857),
    "안산": (37.3219, 126.8309),
    "고양": (37.6583, 126.8320),
    "일산": (37.6755, 126.7706),
    "과천": (37.4292, 126.9876),
    "구리": (37.5943, 127.1295),
    "남양주": (37.6360, 127.2165),
    "오산": (37.1498, 127.0772),
    "시흥": (37.3800, 126.8028),
    "군포": (37.3616, 126.9352),
    "의왕": (37.3447, 126.9685),
    "하남": (37.5392, 127.2147),
    "파주": (37.7126, 126.7610),
    "이천": (37.2719, 127.4348),
    "안성": (37.0078, 127.2797),
    "김포": (37.6153, 126.7156),
    "화성": (37.1995, 126.8313),
    "동탄": (37.2007, 127.0714),
    "광주": (37.4095, 127.2550),
    "양주": (37.7854, 127.0456),
    "포천": (37.8949, 127.2003),
    "여주": (37.2984, 127.6374),
    "의정부": (37.7381, 127.0337),
    "영통": (37.2479, 127.0735),
    "권선": (37.2504, 127.0030),
    "장안": (37.3035, 127.0106),
    "팔달": (37.2795, 127.0392),
    "중원": (37.4344, 127.1365),
    "수정": (37.4530, 127.1455),
    "판교": (37.3947, 127.1112),
}


def parse_measurement(value: Any) -> float:
    """Numeric reading; AirKorea reports missing values as '-' or blank."""

    text = str(value).strip() if value is not None else ""
    if not text or text == "-":
        return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def parse_grade(value: Any) -> int:
    """Grade 1..4; anything else falls back to 1 (좋음)."""

    try:
        grade = int(str(value).strip())
    except (TypeError, ValueError):
        return 1
    return grade if 1 <= grade <= 4 else 1


def station_coordinates(station_name: str) -> tuple[float, float] | None:
    for keyword, coords in STATION_KEYWORDS.items():
        if keyword in station_name:
            return coords
    return None


class AirQualityAdapter(ProviderAdapter):
    provider = "AirKorea"

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        base_url: str,
        service_key: str,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(LayerKind.AIR_QUALITY, client=client, cache_ttl=cache_ttl, clock=clock)
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key

    async def fetch(self, location: CanonicalLocation) -> AirQualityRecord:
        self._require_credentials(airkorea_service_key=self._service_key)
        items = await self._province_items()
        item, coords, distance = self._nearest(items, location)
        LOGGER.debug(
            "Nearest AirKorea station to %s: %s (%.2f km)",
            location.normalized_name,
            item.get("stationName"),
            distance,
        )
        return AirQualityRecord(
            station_name=str(item.get("stationName", "")),
            location_name=location.normalized_name,
            measure_time=str(item.get("dataTime", "")),
            lat=coords[0],
            lon=coords[1],
            khai_value=parse_measurement(item.get("khaiValue")),
            khai_grade=parse_grade(item.get("khaiGrade")),
            pm10_value=parse_measurement(item.get("pm10Value")),
            pm10_grade=parse_grade(item.get("pm10Grade")),
            pm10_grade_1h=parse_grade(item.get("pm10Grade1h")),
            pm25_value=parse_measurement(item.get("pm25Value")),
            pm25_grade=parse_grade(item.get("pm25Grade")),
            pm25_grade_1h=parse_grade(item.get("pm25Grade1h")),
            so2_value=parse_measurement(item.get("so2Value")),
            co_value=parse_measurement(item.get("coValue")),
            o3_value=parse_measurement(item.get("o3Value")),
            no2_value=parse_measurement(item.get("no2Value")),
            pm10_flag=item.get("pm10Flag"),
            pm25_flag=item.get("pm25Flag"),
        )

    async def _province_items(self) -> list[Mapping[str, Any]]:
        cached = self._cache.get(_BULK_CACHE_KEY)
        if cached is not None:
            return cached

        payload = await self._get_json(
            f"{self._base_url}/getCtprvnRltmMesureDnsty",
            {
                "serviceKey": self._service_key,
                "returnType": "json",
                "numOfRows": "200",
                "pageNo": "1",
                "sidoName": _SIDO_NAME,
                "ver": "1.0",
            },
        )
        response = payload.get("response") if isinstance(payload, Mapping) else None
        if not isinstance(response, Mapping):
            raise self._malformed("payload has no 'response' object")
        header = response.get("header") or {}
        if str(header.get("resultCode")) != "00":
            raise ProviderUnavailable(
                message=f"AirKorea error {header.get('resultCode')}: {header.get('resultMsg', '')}",
                provider=self.provider,
            )
        body = response.get("body") or {}
        items = body.get("items") if isinstance(body, Mapping) else None
        if items is None:
            items = []
        if not isinstance(items, list):
            raise self._malformed("'body.items' is not a list")
        stations = [item for item in items if isinstance(item, Mapping)]
        self._cache.set(_BULK_CACHE_KEY, stations)
        LOGGER.debug("Fetched %d AirKorea stations in %s", len(stations), _SIDO_NAME)
        return stations

    def _nearest(
        self, items: Sequence[Mapping[str, Any]], location: CanonicalLocation
    ) -> tuple[Mapping[str, Any], tuple[float, float], float]:
        best: tuple[Mapping[str, Any], tuple[float, float], float] | None = None
        for item in items:
            coords = station_coordinates(str(item.get("stationName", "")))
            if coords is None:
                continue
            distance = great_circle_km(location.coordinates, coords)
            if best is None or distance < best[2]:
                best = (item, coords, distance)
        if best is None:
            raise ProviderRecordNotFound(
                message=f"No AirKorea station could be located near {location.normalized_name}",
                provider=self.provider,
            )
        return best
