from __future__ import annotations

from pathlib import Path

import pytest
from helpers import ScriptedModel

from quill.bootstrap import build_session
from quill.config import DEFAULT_SYSTEM_PROMPT, Settings, build_system_prompt, read_workspace_prompt
from quill.errors import ApiKeyNotConfiguredError, WorkspaceNotFoundError


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("QUILL_MODEL", "QUILL_MAX_TOKENS", "QUILL_MAX_ROUND_TRIPS"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings(_env_file=None)

    assert settings.model == "claude-3-7-sonnet-20250219"
    assert settings.max_tokens == 1024
    assert settings.max_round_trips == 25
    assert settings.stream_queue_size == 100
    assert settings.system_prompt == DEFAULT_SYSTEM_PROMPT


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUILL_MODEL", "claude-sonnet-4-5")
    monkeypatch.setenv("QUILL_MAX_TOKENS", "2048")
    monkeypatch.setenv("QUILL_MAX_ROUND_TRIPS", "3")

    settings = Settings(_env_file=None)
    assert settings.model == "claude-sonnet-4-5"
    assert settings.max_tokens == 2048
    assert settings.max_round_trips == 3


def test_settings_read_env_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("QUILL_MODEL", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("QUILL_MODEL=claude-from-file\nUNRELATED=1\n", encoding="utf-8")

    assert Settings(_env_file=env_file).model == "claude-from-file"


def test_api_key_falls_back_to_anthropic_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("QUILL_API_KEY", raising=False)
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-fallback")
    assert Settings(_env_file=None).resolved_api_key == "sk-fallback"
    assert Settings(_env_file=None, api_key="sk-explicit").resolved_api_key == "sk-explicit"


def test_missing_api_key_is_a_configuration_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("QUILL_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(ApiKeyNotConfiguredError):
        _ = Settings(_env_file=None).resolved_api_key


def test_resolve_workspace(tmp_path: Path) -> None:
    assert Settings(_env_file=None, workspace=tmp_path).resolve_workspace() == tmp_path.resolve()
    with pytest.raises(WorkspaceNotFoundError):
        Settings(_env_file=None, workspace=tmp_path / "missing").resolve_workspace()


def test_workspace_prompt_is_appended(tmp_path: Path, settings: Settings) -> None:
    assert read_workspace_prompt(tmp_path) == ""
    assert build_system_prompt(settings, tmp_path) == settings.system_prompt

    (tmp_path / "QUILL.md").write_text("  Use tabs for indentation.\n", encoding="utf-8")
    prompt = build_system_prompt(settings, tmp_path)
    assert prompt == f"{settings.system_prompt}\n\nUse tabs for indentation."


def test_build_session_applies_overrides(tmp_path: Path, settings: Settings) -> None:
    model = ScriptedModel([])
    context = build_session(tmp_path, model="claude-override", max_tokens=77, settings=settings, client=model)

    assert context.workspace == tmp_path.resolve()
    assert context.settings.model == "claude-override"
    assert context.settings.max_tokens == 77
    assert settings.max_tokens == 1024
    assert context.model is model
    assert "edit_file" in context.registry
