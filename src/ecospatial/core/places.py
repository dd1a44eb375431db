"""Place-name resolution for Gyeonggi-do districts."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Mapping

__all__ = [
    "CanonicalLocation",
    "PlaceNotFound",
    "PlaceResolver",
    "ProviderKeys",
    "normalize_place_name",
    "great_circle_km",
]

EARTH_RADIUS_KM = 6371.0
_PROVINCE_PREFIX = re.compile(r"^(경기도|경기)\s*")
_ADMIN_SUFFIX = re.compile(r"(시|군)$")
_WARD_SUFFIX = re.compile(r"구$")


@dataclass(slots=True, frozen=True)
class ProviderKeys:
    """Identifiers each upstream provider uses for the same place."""

    sgis_name: str
    sgg_names: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class CanonicalLocation:
    """Normalized, coordinate-bearing representation of a user place name.

    ``raw_name`` records what the user typed and is excluded from equality, so
    "수원시" and "수원" resolve to equal locations.
    """

    normalized_name: str
    lat: float
    lon: float
    zoom_hint: int
    provider_keys: ProviderKeys
    raw_name: str = field(default="", compare=False)

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.lat, self.lon)


@dataclass(slots=True, frozen=True)
class PlaceNotFound:
    """Typed miss returned by :class:`PlaceResolver` instead of raising."""

    raw_name: str
    normalized_name: str

    def __bool__(self) -> bool:
        return False


@dataclass(slots=True, frozen=True)
class _PlaceEntry:
    lat: float
    lon: float
    zoom: int = 13
    sgg_names: tuple[str, ...] = ()
    sgis_name: str | None = None
    suffix: str = "시"


def _city(lat: float, lon: float, zoom: int = 13, *, county: bool = False, sgg: tuple[str, ...] = ()) -> _PlaceEntry:
    return _PlaceEntry(lat=lat, lon=lon, zoom=zoom, sgg_names=sgg, suffix="군" if county else "시")


# Keys are suffix-stripped names. Entries without sgis_name use "<key><suffix>".
_PLACES: Mapping[str, _PlaceEntry] = {
    "수원": _city(37.2635, 127.0287, 13, sgg=("수원시", "수원시장안구", "수원시권선구", "수원시팔달구", "수원시영통구")),
    "성남": _city(37.4201, 127.1265, 13, sgg=("성남시", "성남시수정구", "성남시중원구", "성남시분당구")),
    "용인": _city(37.2411, 127.1776, 12, sgg=("용인시", "용인시처인구", "용인시기흥구", "용인시수지구")),
    "안양": _city(37.3943, 126.9568, 13, sgg=("안양시", "안양시만안구", "안양시동안구")),
    "안산": _city(37.3219, 126.8309, 13, sgg=("안산시", "안산시상록구", "안산시단원구")),
    "고양": _city(37.6583, 126.8320, 12, sgg=("고양시", "고양시덕양구", "고양시일산동구", "고양시일산서구")),
    "부천": _city(37.5034, 126.7660),
    "광명": _city(37.4786, 126.8644),
    "평택": _city(36.9921, 127.0857, 12),
    "시흥": _city(37.3800, 126.8028),
    "군포": _city(37.3616, 126.9352),
    "의왕": _city(37.3447, 126.9685),
    "과천": _city(37.4292, 126.9876),
    "하남": _city(37.5392, 127.2147),
    "오산": _city(37.1498, 127.0772),
    "이천": _city(37.2719, 127.4348, 12),
    "안성": _city(37.0078, 127.2797, 12),
    "김포": _city(37.6153, 126.7156, 12),
    "화성": _city(37.1995, 126.8313, 11),
    "광주": _city(37.4095, 127.2550, 12),
    "양주": _city(37.7854, 127.0456, 12),
    "포천": _city(37.8949, 127.2003, 12),
    "여주": _city(37.2984, 127.6374, 12),
    "의정부": _city(37.7381, 127.0337),
    "동두천": _city(37.9035, 127.0606),
    "구리": _city(37.5943, 127.1295),
    "남양주": _city(37.6360, 127.2165, 12),
    "파주": _city(37.7126, 126.7610, 12),
    "연천": _city(38.0965, 127.0748, 11, county=True),
    "가평": _city(37.8315, 127.5097, 11, county=True),
    "양평": _city(37.4917, 127.4876, 11, county=True),
    # Subdistricts and well-known neighbourhoods.
    "장안구": _PlaceEntry(37.3035, 127.0106, 14, ("수원시장안구",), "수원시"),
    "팔달구": _PlaceEntry(37.2795, 127.0392, 14, ("수원시팔달구",), "수원시"),
    "권선구": _PlaceEntry(37.2504, 127.0030, 14, ("수원시권선구",), "수원시"),
    "영통구": _PlaceEntry(37.2479, 127.0735, 14, ("수원시영통구",), "수원시"),
    "분당": _PlaceEntry(37.3838, 127.1192, 14, ("성남시분당구",), "성남시"),
    "판교": _PlaceEntry(37.3947, 127.1112, 14, ("성남시분당구",), "성남시"),
    "일산": _PlaceEntry(37.6755, 126.7706, 14, ("고양시일산동구", "고양시일산서구"), "고양시"),
    "동탄": _PlaceEntry(37.2007, 127.0714, 14, ("화성시",), "화성시"),
}


def normalize_place_name(raw_name: str) -> str:
    """Strip whitespace, the province prefix, and a trailing 시/군 suffix."""

    text = _PROVINCE_PREFIX.sub("", (raw_name or "").strip()).strip()
    return _ADMIN_SUFFIX.sub("", text).strip()


def great_circle_km(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Haversine distance in kilometres between two ``(lat, lon)`` pairs."""

    lat1, lon1 = a
    lat2, lon2 = b
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


class PlaceResolver:
    """Maps free-text place names to :class:`CanonicalLocation` records.

    Pure and deterministic. Lookup tries the normalized key first and then the
    raw (trimmed, prefix-stripped) key, so subdistrict names ending in 구 and
    unusual inputs such as "광주" still resolve.
    """

    def __init__(self, places: Mapping[str, _PlaceEntry] | None = None) -> None:
        self._places = dict(places or _PLACES)

    def resolve(self, raw_name: str | None) -> CanonicalLocation | PlaceNotFound:
        raw = (raw_name or "").strip()
        normalized = normalize_place_name(raw)
        unprefixed = _PROVINCE_PREFIX.sub("", raw).strip()
        # "분당구" is stored as "분당"
        candidates = (normalized, unprefixed, _WARD_SUFFIX.sub("", unprefixed))
        for key in candidates:
            entry = self._places.get(key)
            if entry is not None:
                return self._build(key, entry, raw)
        return PlaceNotFound(raw_name=raw, normalized_name=normalized)

    def known_names(self) -> tuple[str, ...]:
        return tuple(self._places)

    @staticmethod
    def _build(key: str, entry: _PlaceEntry, raw: str) -> CanonicalLocation:
        sgis_name = entry.sgis_name or f"{key}{entry.suffix}"
        sgg_names = entry.sgg_names or (sgis_name,)
        return CanonicalLocation(
            normalized_name=key,
            lat=entry.lat,
            lon=entry.lon,
            zoom_hint=entry.zoom,
            provider_keys=ProviderKeys(sgis_name=sgis_name, sgg_names=sgg_names),
            raw_name=raw,
        )
