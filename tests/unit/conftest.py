"""Shared test fixtures."""

import sqlite3
from pathlib import Path

import pytest

from tests.unit.fakes import GIST_ID, FakeRemote, RecordingResolver
from todosync.config import SyncSettings
from todosync.core.database.schema import migrate_schema
from todosync.core.storage.cache_store import CacheStore
from todosync.core.sync.engine import SyncEngine
from todosync.models.sync import SyncMode
from todosync.models.todo import Scope

_ENV_VARS = (
    "TODOSYNC_GIST_ID",
    "TODOSYNC_USER_FILE",
    "TODOSYNC_WORKSPACE",
    "TODOSYNC_WORKSPACE_FILE",
    "TODOSYNC_POLL_INTERVAL",
    "TODOSYNC_POLL_ONLY_WHEN_VISIBLE",
    "TODOSYNC_GITHUB_TOKEN",
    "TODOSYNC_DATA_DIR",
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep tests away from the real config files and TODOSYNC_* variables."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    config_file = tmp_path / "config" / "config.json"
    monkeypatch.setattr("todosync.config.CONFIG_FILES", [config_file])
    return config_file


@pytest.fixture
def conn() -> sqlite3.Connection:
    """In-memory state database.

    Shared across threads because the engine calls the remote from a worker
    thread, and some fakes edit the store from there.
    """
    db = sqlite3.connect(":memory:", check_same_thread=False)
    migrate_schema(db)
    return db


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(gist_id=GIST_ID, workspace_name="proj")


@pytest.fixture
def store(conn: sqlite3.Connection) -> CacheStore:
    cache = CacheStore(conn, workspace="proj")
    cache.set_mode(Scope.USER, SyncMode.GITHUB)
    cache.set_mode(Scope.WORKSPACE, SyncMode.GITHUB)
    return cache


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def resolver() -> RecordingResolver:
    return RecordingResolver()


@pytest.fixture
def engine(
    store: CacheStore, remote: FakeRemote, settings: SyncSettings, resolver: RecordingResolver
) -> SyncEngine:
    return SyncEngine(store, remote, settings, resolver=resolver)
