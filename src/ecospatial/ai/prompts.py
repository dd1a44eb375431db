"""Prompt templates for the EcoSpatial agent.

The system prompt is rebuilt for every round so the conversation context
block always reflects the latest tool execution.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .orchestration.types import ConversationContext

__all__ = [
    "SYSTEM_PROMPT",
    "WELCOME_MESSAGE",
    "DEFAULT_FINAL_TEXT",
    "build_system_prompt",
    "format_context_block",
]

WELCOME_MESSAGE = (
    "안녕하세요! EcoSpatial AI 에이전트입니다. "
    "경기도의 기후 재난 위험과 사회적 취약성을 분석해 드립니다.\n"
    "예: \"수원시 폭염 취약 지역과 노인 인구 밀도를 보여줘\", \"판교 대기질은 어때?\""
)

DEFAULT_FINAL_TEXT = "분석된 GIS 데이터를 지도에 시각화했습니다."


def _identity_section() -> str:
    return """당신은 'EcoSpatial AI'입니다. 경기도 기후 위기 대응을 위한 GIS 데이터 분석 전문가입니다.

## 데이터 출처
- 경기기후플랫폼 WMS/WFS: 침수흔적(flood_risk), 폭염취약성(heatwave), 녹지 비오톱(parks)
- 통계청 SGIS: 70세 이상 노인 인구(elderly)
- 에어코리아: 실시간 대기질(air_quality)
- 경기도 AWS: 기온·습도·풍속(weather)"""


def _analysis_section() -> str:
    return """## 분석 지침
1. 특정 지역이나 지표에 대한 질문에는 반드시 activate_layers 도구를 호출하세요. 지역이 언급되면 locationName에 그 시·군·구 이름을 넣으세요.
2. 취약성 분석 질문(예: 폭염에 취약한 노인 인구)에는 관련 레이어를 함께 요청해 중첩 분석이 가능하게 하세요.
3. 인구나 취약계층 질문에는 elderly 레이어를 포함하세요.
4. 도구 결과에 포함된 수치(인구 수, 비율, 면적, 농도, 기온)를 답변에 그대로 인용하세요. 결과에 없는 수치는 만들지 마세요.
5. 분석 범위는 경기도입니다. 경기도 밖의 지역은 지원하지 않는다고 안내하세요."""


def _continuity_section() -> str:
    return """## 대화 연속성
6. 사용자가 지역만 바꿔 묻는 후속 질문(예: "용인은?")에는 직전과 같은 레이어 종류를 유지하세요.
7. 사용자가 지역 없이 지표만 묻는 후속 질문에는 locationName을 비워 두세요. 직전 지역이 자동으로 사용됩니다."""


def _format_section() -> str:
    return """## 답변 형식
- 한국어로 간결하게 답하세요.
- 구체적인 수치와 등급을 포함하고, 데이터를 가져오지 못한 항목은 그렇다고 밝히세요."""


SYSTEM_PROMPT = "\n\n".join(
    (_identity_section(), _analysis_section(), _continuity_section(), _format_section())
)


def format_context_block(context: ConversationContext | None) -> str:
    """Return the ``현재 대화 맥락`` block, or an empty string for a fresh context."""

    if context is None or context.is_empty:
        return ""
    location = context.last_location.normalized_name if context.last_location else "없음"
    kinds = ", ".join(kind.value for kind in context.last_layer_kinds) or "없음"
    topic = context.last_topic or "없음"
    return (
        "## 현재 대화 맥락\n"
        f"- 마지막 지역: {location}\n"
        f"- 활성 레이어: {kinds}\n"
        f"- 마지막 주제: {topic}"
    )


def build_system_prompt(context: ConversationContext | None = None) -> str:
    block = format_context_block(context)
    if not block:
        return SYSTEM_PROMPT
    return f"{SYSTEM_PROMPT}\n\n{block}"
