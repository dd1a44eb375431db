"""Per-kind summary lines for the tool result sent back to the agent."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

from ...core.layers import (
    AIR_QUALITY_LABELS,
    AirQualityRecord,
    ElderlyPopulationRecord,
    GreenSpaceRecord,
    HazardRecord,
    LayerKind,
    LayerPayload,
    WeatherRecord,
)
from ...providers.vegetation import format_area
from .types import ProviderOutcome

__all__ = [
    "SUMMARY_FORMATTERS",
    "summarize_outcome",
    "compose_message",
    "failure_line",
    "no_location_line",
]

_MISSING = "정보없음"


def _elderly(record: ElderlyPopulationRecord) -> str:
    return (
        f"[elderly] {record.district_name} 70세 이상 인구 {record.seventy_plus_count:,}명 "
        f"(비율 {record.seventy_plus_ratio:.2f}%)"
    )


def _air_quality(record: AirQualityRecord) -> str:
    return (
        f"[air_quality] 측정소 {record.station_name} ({record.measure_time}) "
        f"통합대기환경지수 {record.khai_value:g} ({record.khai_label}), "
        f"PM10 {record.pm10_value:g}㎍/㎥ ({AIR_QUALITY_LABELS.get(record.pm10_grade, '좋음')}), "
        f"PM2.5 {record.pm25_value:g}㎍/㎥ ({record.pm25_label})"
    )


def _weather(record: WeatherRecord) -> str:
    line = (
        f"[weather] {record.sigun} {record.station} 관측소 ({record.observed_at}) "
        f"기온 {record.temperature_c:.1f}℃, 습도 {record.humidity_pct:.0f}%, "
        f"풍속 {record.wind_speed_ms:.1f}m/s"
    )
    if record.heat_index is not None:
        line += f", 열지수 {record.heat_index:.1f}℃"
    if record.wind_chill is not None:
        line += f", 체감온도 {record.wind_chill:.1f}℃"
    return line


def _green_space(record: GreenSpaceRecord) -> str:
    lines = [
        f"[parks] {record.sgg_name} 녹지 비오톱 총 {record.total_area_ha:,.2f} ha "
        f"({record.total_area_km2:.2f} ㎢), 피처 {record.feature_count:,}개"
    ]
    for index, item in enumerate(record.top_classifications, start=1):
        lines.append(f"  {index}. {item.label}: {format_area(item.area_m2)}")
    return "\n".join(lines)


def _pick(props: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = props.get(name)
        if value is not None and value != "":
            return value
    return _MISSING


def _hazard(record: HazardRecord) -> str:
    lines = [f"[{record.kind.value}] 총 {record.total_features}개 피처 중 {len(record.samples)}개 샘플:"]
    for index, props in enumerate(record.samples, start=1):
        if record.kind is LayerKind.FLOOD_RISK:
            depth = _pick(props, "fldn_dowa", "FLD_DEPTH")
            grade = _pick(props, "fldn_grd", "FLD_GRADE")
            disaster = _pick(props, "fldn_dstr_nm", "DSTR_NM")
            lines.append(f"  {index}. 침수심: {depth}m, 등급: {grade}, 재해명: {disaster}")
        elif record.kind is LayerKind.HEATWAVE:
            level = _pick(props, "vuln_level", "VULN_LV")
            temp = _pick(props, "avg_temp", "AVG_TEMP")
            lines.append(f"  {index}. 취약등급: {level}, 평균기온: {temp}")
        else:
            pairs = ", ".join(f"{key}: {value}" for key, value in list(props.items())[:3])
            lines.append(f"  {index}. {pairs}")
    return "\n".join(lines)


SUMMARY_FORMATTERS: Mapping[type, Callable[[Any], str]] = {
    ElderlyPopulationRecord: _elderly,
    AirQualityRecord: _air_quality,
    WeatherRecord: _weather,
    GreenSpaceRecord: _green_space,
    HazardRecord: _hazard,
}


def failure_line(kind: LayerKind) -> str:
    return f"[{kind.value}] 데이터를 가져오지 못했습니다."


def no_location_line(kind: LayerKind) -> str:
    return f"[{kind.value}] 위치 정보가 없어 데이터를 조회하지 않았습니다."


def summarize_payload(payload: LayerPayload) -> str:
    formatter = SUMMARY_FORMATTERS.get(type(payload))
    if formatter is None:
        return f"[{payload.kind.value}] {payload!r}"
    return formatter(payload)


def summarize_outcome(outcome: ProviderOutcome) -> str:
    if outcome.skipped:
        return no_location_line(outcome.kind)
    if outcome.error is not None or outcome.payload is None:
        return failure_line(outcome.kind)
    return summarize_payload(outcome.payload)


def compose_message(location_label: str, summaries: Sequence[str]) -> str:
    header = f"=== {location_label} 기후 데이터 분석 결과 ==="
    if not summaries:
        return header
    return header + "\n\n" + "\n\n".join(summaries)
