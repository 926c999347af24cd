"""Per-document cache entries and local-mode storage, backed by the state table.

Every scope has its own storage area (``global`` for the user document,
``workspace:<name>`` for a workspace). Inside an area, local mode and GitHub
mode use disjoint keys, so switching modes never moves data between them:

    local mode   globalTodos | workspaceTodos + filesData
    github mode  gistCache_global_<file> | gistCache_workspace_<file>
"""

import json
import sqlite3
from dataclasses import replace

from loguru import logger

from todosync.core.database.schema import delete_state, get_state, list_state_keys, set_state
from todosync.models.sync import CacheEntry, SyncMode
from todosync.models.todo import (
    DocumentSnapshot,
    FilesData,
    Scope,
    todos_from_list,
    todos_to_list,
)

GLOBAL_LOCAL_KEY = "globalTodos"
WORKSPACE_LOCAL_KEY = "workspaceTodos"
FILES_LOCAL_KEY = "filesData"
SYNC_MODE_KEY = "syncMode"


def cache_key(scope: Scope, file_name: str) -> str:
    """Storage key of the GitHub-mode cache entry for ``file_name``."""
    kind = "global" if scope.document is Scope.USER else "workspace"
    return f"gistCache_{kind}_{file_name}"


class CacheStore:
    """Reads and writes sync state for the user document and one workspace."""

    def __init__(self, conn: sqlite3.Connection, *, workspace: str = "default") -> None:
        self.conn = conn
        self.workspace = workspace

    def area(self, scope: Scope) -> str:
        if scope.document is Scope.USER:
            return "global"
        return f"workspace:{self.workspace}"

    # --- Sync mode ---

    def get_mode(self, scope: Scope) -> SyncMode:
        raw = get_state(self.conn, self.area(scope), SYNC_MODE_KEY)
        try:
            return SyncMode(raw) if raw else SyncMode.LOCAL
        except ValueError:
            logger.warning("Unknown sync mode {!r} for {}, using local", raw, scope)
            return SyncMode.LOCAL

    def set_mode(self, scope: Scope, mode: SyncMode) -> None:
        set_state(self.conn, self.area(scope), SYNC_MODE_KEY, mode.value)
        logger.debug("Sync mode for {} set to {}", self.area(scope), mode)

    # --- GitHub mode cache entries ---

    def load_entry(self, scope: Scope, file_name: str) -> CacheEntry | None:
        """Return the cache entry, or None if absent or unreadable."""
        key = cache_key(scope, file_name)
        raw = get_state(self.conn, self.area(scope), key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_dict(json.loads(raw), scope.document)
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Discarding corrupt cache entry {}: {}", key, e)
            return None

    def save_entry(self, scope: Scope, file_name: str, entry: CacheEntry) -> None:
        payload = json.dumps(entry.to_dict(scope.document))
        set_state(self.conn, self.area(scope), cache_key(scope, file_name), payload)

    def remove_entry(self, scope: Scope, file_name: str) -> bool:
        """Drop the cache entry. Used when the user disconnects remote sync."""
        removed = delete_state(self.conn, self.area(scope), cache_key(scope, file_name))
        if removed:
            logger.info("Removed cache entry {}", cache_key(scope, file_name))
        return removed

    def mark_dirty(self, scope: Scope, file_name: str, snapshot: DocumentSnapshot) -> CacheEntry:
        """Store a local edit; the clean snapshot is left untouched."""
        entry = self.load_entry(scope, file_name)
        if entry is None:
            entry = CacheEntry(data=snapshot, is_dirty=True)
        else:
            entry = replace(entry, data=snapshot, is_dirty=True)
        self.save_entry(scope, file_name, entry)
        return entry

    def cached_files(self, scope: Scope) -> list[str]:
        """File names that have a cache entry in this scope's area."""
        prefix = cache_key(scope, "")
        return [
            key[len(prefix) :]
            for key in list_state_keys(self.conn, self.area(scope))
            if key.startswith(prefix)
        ]

    # --- Local mode ---

    def _load_json(self, area: str, key: str) -> object:
        raw = get_state(self.conn, area, key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt local data {}/{}", area, key)
            return None

    def load_local(self, scope: Scope) -> DocumentSnapshot:
        area = self.area(scope)
        try:
            if scope.document is Scope.USER:
                raw_todos = self._load_json(area, GLOBAL_LOCAL_KEY)
                return DocumentSnapshot.build(todos_from_list(raw_todos))
            raw_files = self._load_json(area, FILES_LOCAL_KEY)
            files: FilesData = {}
            if isinstance(raw_files, dict):
                files = {str(p): todos_from_list(items) for p, items in raw_files.items()}
            return DocumentSnapshot.build(
                todos_from_list(self._load_json(area, WORKSPACE_LOCAL_KEY)), files
            )
        except (ValueError, TypeError) as e:
            logger.warning("Discarding malformed local todos in {}: {}", area, e)
            return DocumentSnapshot.empty(scope.document)

    def save_local(self, scope: Scope, snapshot: DocumentSnapshot) -> None:
        area = self.area(scope)
        if scope.document is Scope.USER:
            set_state(self.conn, area, GLOBAL_LOCAL_KEY, json.dumps(todos_to_list(snapshot.todos)))
            return
        set_state(self.conn, area, WORKSPACE_LOCAL_KEY, json.dumps(todos_to_list(snapshot.todos)))
        files = {path: todos_to_list(items) for path, items in (snapshot.files_data or {}).items()}
        set_state(self.conn, area, FILES_LOCAL_KEY, json.dumps(files, sort_keys=True))

    # --- Mode-aware working copy ---

    def load_snapshot(self, scope: Scope, file_name: str) -> DocumentSnapshot:
        """The current working copy for ``scope`` in whatever mode it is in."""
        if self.get_mode(scope) is SyncMode.LOCAL:
            return self.load_local(scope)
        entry = self.load_entry(scope, file_name)
        return entry.data if entry else DocumentSnapshot.empty(scope.document)

    def save_snapshot(self, scope: Scope, file_name: str, snapshot: DocumentSnapshot) -> bool:
        """Persist a local edit. Returns True when the edit needs to be synced."""
        if self.get_mode(scope) is SyncMode.LOCAL:
            self.save_local(scope, snapshot)
            return False
        self.mark_dirty(scope, file_name, snapshot)
        return True
