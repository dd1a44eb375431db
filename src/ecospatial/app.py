"""Application bootstrap and the interactive ``ecospatial`` console."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.client import AIClient, ClientSettings
from .ai.gateway import AgentGateway
from .ai.orchestration import ResponseCache, SessionController, ToolDispatcher
from .core.places import PlaceResolver
from .errors import CredentialsMissing
from .providers.registry import build_default_registry
from .services.settings import CREDENTIAL_FIELDS, Settings, SettingsStore
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)

_PROMPT = "you> "
_COMMANDS_HELP = "명령어: /new (새 대화), /layers (활성 레이어), /quit (종료)"


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load settings, falling back to defaults when the file cannot be used."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, TypeError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def credential_warnings(settings: Settings) -> list[str]:
    """One warning per provider whose keys are missing, shown once per session."""

    warnings: list[str] = []
    for label in settings.missing_credentials():
        error = CredentialsMissing.for_provider(label, *CREDENTIAL_FIELDS[label])
        _LOGGER.warning("[%s] %s", error.error_code, error.message)
        warnings.append(f"{label} 키가 설정되지 않아 해당 데이터를 사용할 수 없습니다.")
    return warnings


def build_session(settings: Settings, *, debug_logging: bool = False) -> SessionController:
    """Wire client, gateway, providers, and dispatcher into a session."""

    client = AIClient(
        ClientSettings(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=settings.organization,
            request_timeout=settings.request_timeout,
            temperature=settings.temperature,
            debug_logging=debug_logging or settings.debug_logging,
        )
    )
    response_cache = ResponseCache(max_entries=settings.response_cache_size)
    gateway = AgentGateway(client, response_cache=response_cache)
    registry = build_default_registry(settings)
    dispatcher = ToolDispatcher(
        gateway,
        PlaceResolver(),
        registry,
        history_window=settings.history_window,
    )
    return SessionController(
        dispatcher,
        request_timeout=settings.request_timeout,
        warnings=credential_warnings(settings),
        response_cache=response_cache,
        closers=(gateway.aclose, registry.aclose),
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the ``ecospatial`` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("ECOSPATIAL_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("ECOSPATIAL_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)
        debug = True

    try:
        asyncio.run(_repl(settings, debug_logging=debug))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")


async def _repl(
    settings: Settings,
    *,
    debug_logging: bool = False,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> None:
    source = stdin or sys.stdin
    out = stdout or sys.stdout
    session = build_session(settings, debug_logging=debug_logging)
    try:
        for warning in session.warnings:
            print(f"[경고] {warning}", file=out)
        print(session.messages[-1].content, file=out)
        print(_COMMANDS_HELP, file=out)

        while True:
            out.write(_PROMPT)
            out.flush()
            line = await asyncio.to_thread(source.readline)
            if not line:
                break
            text = line.strip()
            if not text:
                continue
            if text == "/quit":
                break
            if text == "/new":
                session.new_conversation()
                print(session.messages[-1].content, file=out)
                continue
            if text == "/layers":
                _print_layers(session, out)
                continue

            await session.ask(text)
            print(f"agent> {session.messages[-1].content}", file=out)
            if session.view is not None:
                view = session.view
                print(f"  [지도] {view.lat:.4f}, {view.lon:.4f} (zoom {view.zoom})", file=out)
    finally:
        await session.aclose()


def _print_layers(session: SessionController, out: TextIO) -> None:
    if not session.layers:
        print("활성 레이어가 없습니다.", file=out)
        return
    for layer in session.layers:
        data = layer.to_dict()
        location = data.get("location") or "-"
        status = "데이터 있음" if layer.payload is not None else "시각화 전용"
        print(f"  - {data['name']} ({data['type']}) @ {location}: {status}", file=out)


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ecospatial",
        add_help=True,
        description="Chat with the EcoSpatial climate-layer agent for Gyeonggi-do.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.ecospatial/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override settings for this run (repeatable).",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    if raw_value.lower() in {"none", "null"} and _is_optional(annotation):
        return None
    if target is bool:
        return _parse_bool(raw_value)
    if target is int:
        return int(raw_value, 10)
    if target is float:
        return float(raw_value)
    return raw_value


def _resolve_annotation(annotation: Any) -> Any:
    if get_origin(annotation) is None:
        return annotation
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    return args[0] if args else annotation


def _is_optional(annotation: Any) -> bool:
    return type(None) in get_args(annotation)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
        "missing_credentials": settings.missing_credentials(),
    }
    output = {"settings": settings.redacted(), "meta": metadata}
    json.dump(output, destination, indent=2, ensure_ascii=False)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("ECOSPATIAL_"))


if __name__ == "__main__":  # pragma: no cover
    main()
