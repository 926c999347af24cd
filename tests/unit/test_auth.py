"""Tests for GitHub token lookup."""

from pathlib import Path

import pytest

from todosync.remote.auth import FileTokenProvider, StaticTokenProvider


def test_token_from_first_existing_file(tmp_path: Path) -> None:
    second = tmp_path / "second.txt"
    second.write_text("  ghp_second\n")
    provider = FileTokenProvider([tmp_path / "missing.txt", second])
    assert provider.get_token() == "ghp_second"


def test_empty_token_file_is_skipped(tmp_path: Path) -> None:
    empty = tmp_path / "empty.txt"
    empty.write_text("\n")
    good = tmp_path / "good.txt"
    good.write_text("ghp_good")
    assert FileTokenProvider([empty, good]).get_token() == "ghp_good"


def test_env_token_wins(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    token_file = tmp_path / "token.txt"
    token_file.write_text("ghp_file")
    monkeypatch.setenv("TODOSYNC_GITHUB_TOKEN", "ghp_env")
    assert FileTokenProvider([token_file]).get_token() == "ghp_env"


def test_no_token(tmp_path: Path) -> None:
    assert FileTokenProvider([tmp_path / "missing.txt"]).get_token() is None


def test_token_is_read_on_every_call(tmp_path: Path) -> None:
    token_file = tmp_path / "token.txt"
    provider = FileTokenProvider([token_file])
    assert provider.get_token() is None
    token_file.write_text("ghp_later")
    assert provider.get_token() == "ghp_later"


def test_sign_out_removes_token_file(tmp_path: Path) -> None:
    token_file = tmp_path / "token.txt"
    token_file.write_text("ghp_x")
    provider = FileTokenProvider([token_file])

    assert provider.sign_out() is True
    assert not token_file.exists()
    assert provider.sign_out() is False


def test_static_token_provider() -> None:
    assert StaticTokenProvider("t").get_token() == "t"
    assert StaticTokenProvider(None).get_token() is None
