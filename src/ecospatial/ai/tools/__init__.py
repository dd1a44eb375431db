"""Tools exposed to the agent."""

from .activate_layers import (
    ACTIVATE_LAYERS_TOOL,
    ARGUMENTS_SCHEMA,
    TOOL_NAME,
    ActivateLayersArgs,
    parse_arguments,
)

__all__ = [
    "ACTIVATE_LAYERS_TOOL",
    "ARGUMENTS_SCHEMA",
    "TOOL_NAME",
    "ActivateLayersArgs",
    "parse_arguments",
]
