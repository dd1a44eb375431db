"""Layer kinds, catalog metadata, and typed provider payloads."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union

from .places import CanonicalLocation

__all__ = [
    "LayerKind",
    "LayerMetadata",
    "LAYER_CATALOG",
    "ActiveLayer",
    "ElderlyPopulationRecord",
    "AirQualityRecord",
    "WeatherRecord",
    "GreenSpaceClassification",
    "GreenSpaceRecord",
    "HazardRecord",
    "LayerPayload",
    "AIR_QUALITY_LABELS",
    "new_layer_id",
]

DEFAULT_OPACITY = 0.75


class LayerKind(str, Enum):
    """Closed set of analyzable indicators."""

    FLOOD_RISK = "flood_risk"
    HEATWAVE = "heatwave"
    ELDERLY = "elderly"
    PARKS = "parks"
    AIR_QUALITY = "air_quality"
    WEATHER = "weather"

    @classmethod
    def parse(cls, value: "str | LayerKind") -> "LayerKind":
        if isinstance(value, LayerKind):
            return value
        return cls(str(value).strip().lower())


@dataclass(slots=True, frozen=True)
class LayerMetadata:
    name: str
    color: str
    description: str
    wms_layer: str | None = None


LAYER_CATALOG: Mapping[LayerKind, LayerMetadata] = {
    LayerKind.FLOOD_RISK: LayerMetadata(
        name="침수위험지역",
        color="#ef4444",
        description="침수 흔적 및 지형 기반 위험 지역입니다.",
        wms_layer="spggcee:tm_fldn_trce",
    ),
    LayerKind.HEATWAVE: LayerMetadata(
        name="폭염취약성",
        color="#f97316",
        description="도시 열섬 현상 및 폭염 취약성 등급 데이터입니다.",
        wms_layer="spggcee:rst_thrcf_evl_41",
    ),
    LayerKind.ELDERLY: LayerMetadata(
        name="노인 인구 밀도",
        color="#8b5cf6",
        description="통계청 SGIS 기반 70세 이상 고령인구 분포입니다.",
    ),
    LayerKind.PARKS: LayerMetadata(
        name="녹지 및 공원",
        color="#22c55e",
        description="도시 공원 및 녹지 구역 정보입니다.",
        wms_layer="spggcee:grbt",
    ),
    LayerKind.AIR_QUALITY: LayerMetadata(
        name="대기질 정보",
        color="#06b6d4",
        description="에어코리아 실시간 대기오염 측정 정보입니다.",
    ),
    LayerKind.WEATHER: LayerMetadata(
        name="기상 관측",
        color="#0ea5e9",
        description="경기도 AWS 1시간 관측 자료입니다.",
    ),
}

AIR_QUALITY_LABELS: Mapping[int, str] = {
    1: "좋음",
    2: "보통",
    3: "나쁨",
    4: "매우 나쁨",
}


# -----------------------------------------------------------------------------
# Provider payloads
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ElderlyPopulationRecord:
    district_name: str
    district_code: str
    seventy_plus_count: int
    seventy_plus_ratio: float

    kind: LayerKind = field(default=LayerKind.ELDERLY, init=False)


@dataclass(slots=True, frozen=True)
class AirQualityRecord:
    """Nearest-station air quality. ``lat``/``lon`` are the station's own."""

    station_name: str
    location_name: str
    measure_time: str
    lat: float
    lon: float
    khai_value: float
    khai_grade: int
    pm10_value: float
    pm10_grade: int
    pm10_grade_1h: int
    pm25_value: float
    pm25_grade: int
    pm25_grade_1h: int
    so2_value: float = 0.0
    co_value: float = 0.0
    o3_value: float = 0.0
    no2_value: float = 0.0
    pm10_flag: str | None = None
    pm25_flag: str | None = None

    kind: LayerKind = field(default=LayerKind.AIR_QUALITY, init=False)

    @property
    def khai_label(self) -> str:
        return AIR_QUALITY_LABELS.get(self.khai_grade, AIR_QUALITY_LABELS[1])

    @property
    def pm25_label(self) -> str:
        return AIR_QUALITY_LABELS.get(self.pm25_grade, AIR_QUALITY_LABELS[1])


@dataclass(slots=True, frozen=True)
class WeatherRecord:
    """Nearest AWS station observation. ``lat``/``lon`` are the station's own."""

    sigun: str
    station: str
    station_id: str
    observed_at: str
    lat: float
    lon: float
    temperature_c: float
    humidity_pct: float
    wind_speed_ms: float
    wind_direction_deg: float
    heat_index: float | None = None
    wind_chill: float | None = None

    kind: LayerKind = field(default=LayerKind.WEATHER, init=False)


@dataclass(slots=True, frozen=True)
class GreenSpaceClassification:
    large: str
    middle: str
    small: str
    detail: str
    area_m2: float
    feature_count: int

    @property
    def label(self) -> str:
        return " > ".join(part for part in (self.large, self.middle, self.small, self.detail) if part)


@dataclass(slots=True, frozen=True)
class GreenSpaceRecord:
    sgg_name: str
    sgg_code: str
    district_names: tuple[str, ...]
    total_area_m2: float
    feature_count: int
    top_classifications: tuple[GreenSpaceClassification, ...] = ()

    kind: LayerKind = field(default=LayerKind.PARKS, init=False)

    @property
    def total_area_ha(self) -> float:
        return self.total_area_m2 / 10_000

    @property
    def total_area_km2(self) -> float:
        return self.total_area_m2 / 1_000_000


@dataclass(slots=True, frozen=True)
class HazardRecord:
    """Sampled WFS features for a hazard layer (flood or heatwave)."""

    kind: LayerKind
    type_name: str
    total_features: int
    samples: tuple[Mapping[str, Any], ...] = ()


LayerPayload = Union[
    ElderlyPopulationRecord,
    AirQualityRecord,
    WeatherRecord,
    GreenSpaceRecord,
    HazardRecord,
]


# -----------------------------------------------------------------------------
# Active layer
# -----------------------------------------------------------------------------


def new_layer_id(kind: LayerKind) -> str:
    """Return an activation id that is never reused."""

    return f"layer-{kind.value}-{uuid.uuid4().hex}"


@dataclass(slots=True, frozen=True)
class ActiveLayer:
    """One live layer on the map. Replaced, never mutated."""

    id: str
    kind: LayerKind
    bound_location: CanonicalLocation | None
    payload: LayerPayload | None = None
    opacity: float = DEFAULT_OPACITY
    visible: bool = True
    filter: str | None = None

    @classmethod
    def activate(
        cls,
        kind: LayerKind,
        location: CanonicalLocation | None,
        payload: LayerPayload | None = None,
        *,
        filter: str | None = None,
    ) -> "ActiveLayer":
        return cls(
            id=new_layer_id(kind),
            kind=kind,
            bound_location=location,
            payload=payload,
            filter=filter,
        )

    @property
    def metadata(self) -> LayerMetadata:
        return LAYER_CATALOG[self.kind]

    @property
    def normalized_location(self) -> str | None:
        return self.bound_location.normalized_name if self.bound_location else None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "name": self.metadata.name,
            "color": self.metadata.color,
            "opacity": self.opacity,
            "visible": self.visible,
            "location": self.normalized_location,
        }
        if self.metadata.wms_layer:
            data["wmsLayer"] = self.metadata.wms_layer
        if self.filter:
            data["filter"] = self.filter
        return data
