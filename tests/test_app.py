"""Tests covering the application bootstrap helpers."""

from __future__ import annotations

import io
import json
import os
from pathlib import Path
from typing import Any

import pytest

from ecospatial import app
from ecospatial.ai.orchestration import SessionController, ToolDispatcher
from ecospatial.ai.orchestration.types import AgentResponse
from ecospatial.ai.prompts import WELCOME_MESSAGE
from ecospatial.core.places import PlaceResolver
from ecospatial.providers.registry import ProviderRegistry
from ecospatial.services.settings import Settings, SettingsStore
from tests.helpers import FakeGateway, tool_call


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("ECOSPATIAL_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(app, "configure_logging", lambda debug=False, *, force=False: None)


def test_coerce_cli_overrides_uses_field_types() -> None:
    overrides = app._coerce_cli_overrides(
        ["request_timeout=30", "history_window=4", "debug_logging=on", "organization=none", "model= gpt-4.1 "]
    )

    assert overrides == {
        "request_timeout": 30.0,
        "history_window": 4,
        "debug_logging": True,
        "organization": None,
        "model": "gpt-4.1",
    }


@pytest.mark.parametrize("entry", ["model", "=value", "theme=dark", "debug_logging=maybe", "history_window=1.5"])
def test_coerce_cli_overrides_rejects_bad_entries(entry: str) -> None:
    with pytest.raises(ValueError):
        app._coerce_cli_overrides([entry])


def test_credential_warnings_name_each_provider() -> None:
    warnings = app.credential_warnings(Settings(api_key="sk", gg_aws_api_key="aws", gg_climate_api_key="wfs"))

    assert warnings == [
        "SGIS 인구통계 키가 설정되지 않아 해당 데이터를 사용할 수 없습니다.",
        "에어코리아 대기질 키가 설정되지 않아 해당 데이터를 사용할 수 없습니다.",
    ]


def test_dump_settings_redacts_secrets(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    settings = Settings(api_key="sk-abcdef123456", sgis_consumer_key="sgis-key-1234")
    stream = io.StringIO()

    app._dump_settings(settings, store, overrides={"model": "x"}, stream=stream)

    payload = json.loads(stream.getvalue())
    assert "abcdef" not in stream.getvalue()
    assert payload["settings"]["api_key"].startswith("sk")
    assert payload["meta"]["path"] == str(tmp_path / "settings.json")
    assert payload["meta"]["cli_overrides"] == ["model"]
    assert "에어코리아 대기질" in payload["meta"]["missing_credentials"]


def test_main_dump_settings_reads_path_and_overrides(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"model": "file-model", "api_key": "sk-file-0000"}), encoding="utf-8")
    monkeypatch.setenv("ECOSPATIAL_SETTINGS_PATH", str(path))

    app.main(["--dump-settings", "--set", "history_window=3"])

    payload = json.loads(capsys.readouterr().out)
    assert payload["settings"]["model"] == "file-model"
    assert payload["settings"]["history_window"] == 3
    assert payload["settings"]["api_key"] != "sk-file-0000"
    assert payload["meta"]["environment_variables"] == ["ECOSPATIAL_SETTINGS_PATH"]


def test_main_rejects_invalid_override(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        app.main(["--set", "history_window=many"])

    assert excinfo.value.code == 2
    assert "Invalid --set override" in capsys.readouterr().err


def test_load_settings_falls_back_on_store_errors() -> None:
    class _BrokenStore(SettingsStore):
        def load(self, *, overrides: Any = None) -> Settings:
            raise OSError("permission denied")

    assert app.load_settings(store=_BrokenStore()) == Settings()


@pytest.mark.asyncio
async def test_build_session_wires_settings() -> None:
    settings = Settings(api_key="sk-test", request_timeout=9.0, history_window=2)

    session = app.build_session(settings)
    try:
        assert session.messages[0].content == WELCOME_MESSAGE
        assert len(session.warnings) == 4
        assert not session.busy
    finally:
        await session.aclose()


@pytest.mark.asyncio
async def test_repl_runs_commands_and_questions(monkeypatch: pytest.MonkeyPatch) -> None:
    gateway = FakeGateway(
        first_by_message={"수원 침수": AgentResponse(tool_calls=(tool_call(["flood_risk"], "수원"),))},
        second=AgentResponse(text="수원 침수 위험 지역을 표시했습니다."),
    )
    session = SessionController(
        ToolDispatcher(gateway, PlaceResolver(), ProviderRegistry()),
        warnings=("SGIS 인구통계 키가 설정되지 않아 해당 데이터를 사용할 수 없습니다.",),
    )
    monkeypatch.setattr(app, "build_session", lambda settings, *, debug_logging=False: session)
    stdin = io.StringIO("수원 침수\n\n/layers\n/new\n/layers\n/quit\n")
    stdout = io.StringIO()

    await app._repl(Settings(), stdin=stdin, stdout=stdout)

    output = stdout.getvalue()
    assert "[경고] SGIS 인구통계 키가" in output
    assert "agent> 수원 침수 위험 지역을 표시했습니다." in output
    assert "[지도] " in output
    assert "(flood_risk) @ 수원: 시각화 전용" in output
    assert output.count(WELCOME_MESSAGE) == 2
    assert "활성 레이어가 없습니다." in output
