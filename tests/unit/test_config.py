"""Tests for settings loading and validation helpers."""

import json
from pathlib import Path

import pytest

from todosync.config import (
    DEFAULT_POLL_INTERVAL,
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
    SyncSettings,
    clamp_poll_interval,
    is_valid_file_name,
    is_valid_gist_id,
    load_settings,
    resolve_data_directory,
    save_settings,
    workspace_file_name,
)
from todosync.models.todo import Scope


def test_clamp_poll_interval() -> None:
    assert clamp_poll_interval(5) == MIN_POLL_INTERVAL
    assert clamp_poll_interval(10_000) == MAX_POLL_INTERVAL
    assert clamp_poll_interval(120) == 120


def test_is_valid_gist_id() -> None:
    assert is_valid_gist_id("0123456789abcdef0123456789ABCDEF")
    assert not is_valid_gist_id("0123")
    assert not is_valid_gist_id("g123456789abcdef0123456789abcdef")


def test_is_valid_file_name() -> None:
    assert is_valid_file_name("user-todos.json")
    assert not is_valid_file_name("user-todos.txt")
    assert not is_valid_file_name("dir/user.json")


def test_workspace_file_name_replaces_unsafe_characters() -> None:
    assert workspace_file_name("proj") == "workspace-proj.json"
    assert workspace_file_name("my proj/x") == "workspace-my-proj-x.json"
    assert workspace_file_name("  ") == "workspace-default.json"


def test_settings_file_name_per_scope() -> None:
    settings = SyncSettings(workspace_name="proj")
    assert settings.file_name(Scope.USER) == "user-todos.json"
    assert settings.file_name(Scope.WORKSPACE) == "workspace-proj.json"
    assert settings.file_name(Scope.FILE) == "workspace-proj.json"
    assert settings.with_changes(workspace_file="w.json").file_name(Scope.FILE) == "w.json"


def test_load_settings_defaults_without_files(tmp_path: Path) -> None:
    settings = load_settings([tmp_path / "missing.json"])
    assert settings == SyncSettings()


def test_load_settings_reads_first_existing_file(tmp_path: Path) -> None:
    first = tmp_path / "first.json"
    second = tmp_path / "second.json"
    first.write_text(json.dumps({"gistId": "a" * 32, "pollInterval": 5}))
    second.write_text(json.dumps({"gistId": "b" * 32}))

    settings = load_settings([tmp_path / "missing.json", first, second])

    assert settings.gist_id == "a" * 32
    assert settings.poll_interval == MIN_POLL_INTERVAL


def test_load_settings_skips_unreadable_file(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{nope")
    good = tmp_path / "good.json"
    good.write_text(json.dumps({"workspaceName": "w"}))

    assert load_settings([broken, good]).workspace_name == "w"



def test_invalid_poll_interval_keeps_default(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"gistId": "a" * 32, "pollInterval": None}))

    settings = load_settings([path])

    assert settings.gist_id == "a" * 32
    assert settings.poll_interval == DEFAULT_POLL_INTERVAL

    monkeypatch.setenv("TODOSYNC_POLL_INTERVAL", "5m")
    assert load_settings([path]).poll_interval == DEFAULT_POLL_INTERVAL

def test_env_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"gistId": "a" * 32, "pollOnlyWhenVisible": True}))
    monkeypatch.setenv("TODOSYNC_GIST_ID", "c" * 32)
    monkeypatch.setenv("TODOSYNC_POLL_ONLY_WHEN_VISIBLE", "no")

    settings = load_settings([path])

    assert settings.gist_id == "c" * 32
    assert settings.poll_only_when_visible is False


def test_save_settings_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.json"
    settings = SyncSettings(gist_id="d" * 32, workspace_name="w", poll_interval=60)

    written = save_settings(settings, path)

    assert written == path
    assert json.loads(path.read_text())["gistId"] == "d" * 32
    assert load_settings([path]) == settings


def test_resolve_data_directory_honours_env(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("TODOSYNC_DATA_DIR", str(tmp_path))
    assert resolve_data_directory() == tmp_path
