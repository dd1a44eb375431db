"""Declaration and argument validation for the ``activate_layers`` tool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

from jsonschema import Draft7Validator
from openai.types.chat import ChatCompletionToolParam

from ...core.layers import LayerKind
from ...errors import ToolArgumentsInvalid

if TYPE_CHECKING:
    from ..orchestration.types import ToolCall

__all__ = [
    "TOOL_NAME",
    "ARGUMENTS_SCHEMA",
    "ACTIVATE_LAYERS_TOOL",
    "ActivateLayersArgs",
    "parse_arguments",
]

LOGGER = logging.getLogger(__name__)

TOOL_NAME = "activate_layers"

MAX_SCHEMA_ERRORS = 5

ARGUMENTS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "requestedKinds": {
            "type": "array",
            "description": "List of layer kinds to activate on the map.",
            "items": {"type": "string", "enum": [kind.value for kind in LayerKind]},
            "minItems": 1,
        },
        "locationName": {
            "type": "string",
            "description": (
                "The specific city (Si/Gun) or district in Gyeonggi-do to focus on "
                "(e.g., 수원, 용인, 판교). Omit to keep the previous location."
            ),
        },
        "filterCondition": {
            "type": "string",
            "description": "Optional spatial filter or attribute query.",
        },
    },
    "required": ["requestedKinds"],
    "additionalProperties": False,
}

ACTIVATE_LAYERS_TOOL: ChatCompletionToolParam = {
    "type": "function",
    "function": {
        "name": TOOL_NAME,
        "description": (
            "Update the visible climate and social data layers on the map and fetch "
            "the matching statistics for a location in Gyeonggi-do."
        ),
        "parameters": ARGUMENTS_SCHEMA,
    },
}

_VALIDATOR = Draft7Validator(ARGUMENTS_SCHEMA)


@dataclass(slots=True, frozen=True)
class ActivateLayersArgs:
    kinds: tuple[LayerKind, ...]
    location_name: str | None = None
    filter_condition: str | None = None


def _format_path(path: Any) -> str:
    return ".".join(str(part) for part in path)


def parse_arguments(tool_call: ToolCall) -> ActivateLayersArgs:
    """Validate ``tool_call.arguments`` and return typed arguments.

    Raises:
        ToolArgumentsInvalid: when the call targets another tool or the
            arguments fail schema validation.
    """

    if tool_call.name != TOOL_NAME:
        raise ToolArgumentsInvalid(
            message=f"Unknown tool '{tool_call.name}'",
            tool_name=tool_call.name,
        )

    arguments: Mapping[str, Any] = tool_call.arguments
    problems: list[str] = []
    for issue in _VALIDATOR.iter_errors(arguments):
        path = _format_path(issue.absolute_path)
        problems.append(f"{path}: {issue.message}" if path else issue.message)
        if len(problems) >= MAX_SCHEMA_ERRORS:
            break
    if problems:
        LOGGER.debug("Rejected %s arguments: %s", TOOL_NAME, problems)
        raise ToolArgumentsInvalid(
            message=f"Invalid arguments for {TOOL_NAME}",
            details={"errors": problems},
            tool_name=TOOL_NAME,
        )

    # Duplicates collapse while keeping the first-seen order.
    kinds = tuple(dict.fromkeys(LayerKind.parse(value) for value in arguments["requestedKinds"]))
    location = (arguments.get("locationName") or "").strip() or None
    filter_condition = (arguments.get("filterCondition") or "").strip() or None
    return ActivateLayersArgs(kinds=kinds, location_name=location, filter_condition=filter_condition)
