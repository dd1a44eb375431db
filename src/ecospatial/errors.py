"""Error taxonomy shared by providers, the agent gateway, and the session.

Every error carries a machine-readable code plus a flag telling the session
whether the condition may surface to the user.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

__all__ = [
    "ErrorCode",
    "EcoSpatialError",
    "CredentialsMissing",
    "LocationUnresolved",
    "ProviderError",
    "ProviderUnavailable",
    "ProviderRecordNotFound",
    "ProviderMalformedResponse",
    "ToolArgumentsInvalid",
    "AgentTimeout",
    "AgentGatewayFailure",
    "RequestSuperseded",
]


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------


class ErrorCode:
    """Constants for error codes used in logs and tool results."""

    CREDENTIALS_MISSING = "credentials_missing"
    LOCATION_UNRESOLVED = "location_unresolved"

    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PROVIDER_RECORD_NOT_FOUND = "provider_record_not_found"
    PROVIDER_MALFORMED_RESPONSE = "provider_malformed_response"

    TOOL_ARGUMENTS_INVALID = "tool_arguments_invalid"

    AGENT_TIMEOUT = "agent_timeout"
    AGENT_GATEWAY_FAILURE = "agent_gateway_failure"
    REQUEST_SUPERSEDED = "request_superseded"

    INTERNAL_ERROR = "internal_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------


@dataclass
class EcoSpatialError(Exception):
    """Base exception for every categorized failure.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    # Whether the session may show this condition to the user.
    user_visible: ClassVar[bool] = False

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for tool results and logs."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Configuration / Location Errors
# -----------------------------------------------------------------------------


@dataclass
class CredentialsMissing(EcoSpatialError):
    """A provider or the agent gateway has no credentials configured."""

    error_code: str = field(default=ErrorCode.CREDENTIALS_MISSING)
    message: str = field(default="Credentials are not configured")
    details: dict[str, Any] = field(default_factory=dict)

    provider: str = ""

    user_visible: ClassVar[bool] = True

    @classmethod
    def for_provider(cls, provider: str, *settings_keys: str) -> "CredentialsMissing":
        keys = ", ".join(settings_keys)
        return cls(
            message=f"{provider} credentials are not configured ({keys})",
            details={"settings": list(settings_keys)},
            provider=provider,
        )


@dataclass
class LocationUnresolved(EcoSpatialError):
    """A free-text place name did not match any known location."""

    error_code: str = field(default=ErrorCode.LOCATION_UNRESOLVED)
    message: str = field(default="Location could not be resolved")
    details: dict[str, Any] = field(default_factory=dict)

    raw_name: str = ""


# -----------------------------------------------------------------------------
# Provider Errors
# -----------------------------------------------------------------------------


@dataclass
class ProviderError(EcoSpatialError):
    """Base class for per-provider failures recovered during tool execution."""

    error_code: str = field(default=ErrorCode.PROVIDER_UNAVAILABLE)
    message: str = field(default="Provider request failed")
    details: dict[str, Any] = field(default_factory=dict)

    provider: str = ""


@dataclass
class ProviderUnavailable(ProviderError):
    """Upstream returned a non-success status or could not be reached."""

    error_code: str = field(default=ErrorCode.PROVIDER_UNAVAILABLE)
    message: str = field(default="Provider returned a non-success status")
    details: dict[str, Any] = field(default_factory=dict)

    status_code: int | None = None


@dataclass
class ProviderRecordNotFound(ProviderError):
    """Upstream answered successfully but had no record for the location."""

    error_code: str = field(default=ErrorCode.PROVIDER_RECORD_NOT_FOUND)
    message: str = field(default="Provider has no matching record")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderMalformedResponse(ProviderError):
    """Upstream body was not JSON or did not match the expected shape."""

    error_code: str = field(default=ErrorCode.PROVIDER_MALFORMED_RESPONSE)
    message: str = field(default="Provider returned a malformed payload")
    details: dict[str, Any] = field(default_factory=dict)

    preview: str = ""

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.preview:
            result["preview"] = self.preview
        return result


# -----------------------------------------------------------------------------
# Tool / Agent Errors
# -----------------------------------------------------------------------------


@dataclass
class ToolArgumentsInvalid(EcoSpatialError):
    """The agent issued a tool call whose arguments fail validation."""

    error_code: str = field(default=ErrorCode.TOOL_ARGUMENTS_INVALID)
    message: str = field(default="Tool arguments are invalid")
    details: dict[str, Any] = field(default_factory=dict)

    tool_name: str = ""


@dataclass
class AgentTimeout(EcoSpatialError):
    """The request did not complete within the configured timeout."""

    error_code: str = field(default=ErrorCode.AGENT_TIMEOUT)
    message: str = field(default="요청 시간이 초과되었습니다. 다시 시도해 주세요.")
    details: dict[str, Any] = field(default_factory=dict)

    timeout_seconds: float | None = None

    user_visible: ClassVar[bool] = True


@dataclass
class AgentGatewayFailure(EcoSpatialError):
    """The agent gateway rejected the request or returned an unusable reply."""

    error_code: str = field(default=ErrorCode.AGENT_GATEWAY_FAILURE)
    message: str = field(default="데이터 연동 중 오류가 발생했습니다. 잠시 후 다시 시도해 주세요.")
    details: dict[str, Any] = field(default_factory=dict)

    user_visible: ClassVar[bool] = True


@dataclass
class RequestSuperseded(EcoSpatialError):
    """A newer submission replaced this request. Never shown to the user."""

    error_code: str = field(default=ErrorCode.REQUEST_SUPERSEDED)
    message: str = field(default="Request superseded by a newer submission")
    details: dict[str, Any] = field(default_factory=dict)

    request_id: str = ""
