"""Settings dataclass and loader.

Settings come from three layers, later ones winning: an optional JSON file at
``~/.ecospatial/settings.json``, CLI ``--set`` overrides, and ``ECOSPATIAL_*``
environment variables. Settings are never written back to disk.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

__all__ = [
    "Settings",
    "SettingsStore",
    "CREDENTIAL_FIELDS",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".ecospatial"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_ENV_OVERRIDES: Mapping[str, str] = {
    "ECOSPATIAL_API_KEY": "api_key",
    "ECOSPATIAL_BASE_URL": "base_url",
    "ECOSPATIAL_MODEL": "model",
    "ECOSPATIAL_ORGANIZATION": "organization",
    "ECOSPATIAL_SGIS_CONSUMER_KEY": "sgis_consumer_key",
    "ECOSPATIAL_SGIS_CONSUMER_SECRET": "sgis_consumer_secret",
    "ECOSPATIAL_AIRKOREA_SERVICE_KEY": "airkorea_service_key",
    "ECOSPATIAL_GG_AWS_API_KEY": "gg_aws_api_key",
    "ECOSPATIAL_GG_CLIMATE_API_KEY": "gg_climate_api_key",
    "ECOSPATIAL_SGIS_BASE_URL": "sgis_base_url",
    "ECOSPATIAL_AIRKOREA_BASE_URL": "airkorea_base_url",
    "ECOSPATIAL_GG_AWS_URL": "gg_aws_url",
    "ECOSPATIAL_GG_WFS_URL": "gg_wfs_url",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "ECOSPATIAL_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "ECOSPATIAL_REQUEST_TIMEOUT": "request_timeout",
    "ECOSPATIAL_PROVIDER_TIMEOUT": "provider_timeout",
    "ECOSPATIAL_PROVIDER_CACHE_TTL": "provider_cache_ttl",
    "ECOSPATIAL_TEMPERATURE": "temperature",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "ECOSPATIAL_HISTORY_WINDOW": "history_window",
    "ECOSPATIAL_RESPONSE_CACHE_SIZE": "response_cache_size",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}

# Provider label -> settings fields it needs.
CREDENTIAL_FIELDS: Mapping[str, tuple[str, ...]] = {
    "에이전트(LLM)": ("api_key",),
    "SGIS 인구통계": ("sgis_consumer_key", "sgis_consumer_secret"),
    "에어코리아 대기질": ("airkorea_service_key",),
    "경기도 AWS 기상": ("gg_aws_api_key",),
    "경기기후플랫폼 WFS": ("gg_climate_api_key",),
}
_SECRET_FIELDS = frozenset(name for names in CREDENTIAL_FIELDS.values() for name in names)


@dataclass(slots=True)
class Settings:
    """Runtime configuration for the agent and its data providers."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    organization: str | None = None
    request_timeout: float = 15.0
    provider_timeout: float = 10.0
    history_window: int = 6
    response_cache_size: int = 64
    provider_cache_ttl: float = 600.0
    sgis_consumer_key: str = ""
    sgis_consumer_secret: str = ""
    airkorea_service_key: str = ""
    gg_aws_api_key: str = ""
    gg_climate_api_key: str = ""
    sgis_base_url: str = "https://sgisapi.kostat.go.kr/OpenAPI3"
    airkorea_base_url: str = "https://apis.data.go.kr/B552584/ArpltnInforInqireSvc"
    gg_aws_url: str = "https://openapi.gg.go.kr/AWS1hourObser"
    gg_wfs_url: str = "https://climate.gg.go.kr/ols/api/geoserver/wfs"
    debug_logging: bool = False

    def missing_credentials(self) -> list[str]:
        """Return labels of providers whose credentials are not configured."""

        missing: list[str] = []
        for label, names in CREDENTIAL_FIELDS.items():
            if any(not str(getattr(self, name) or "").strip() for name in names):
                missing.append(label)
        return missing

    def redacted(self) -> dict[str, Any]:
        """Return a JSON-friendly dump with every secret masked."""

        data = asdict(self)
        for name in _SECRET_FIELDS:
            data[name] = redact_secret(data.get(name) or "")
        return data


class SettingsStore:
    """Loader for :class:`Settings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            LOGGER.debug("Settings loaded from %s: %s", self._path, sorted(data))

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        return self._apply_env_overrides(settings)

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s must contain a JSON object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
