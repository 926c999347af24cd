"""Wiring of the state database, stores, engine and scheduler."""

import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from todosync.config import STATE_DB_NAME, SyncSettings, load_settings, resolve_data_directory
from todosync.core.database.schema import migrate_schema
from todosync.core.storage.cache_store import CacheStore
from todosync.core.sync.engine import SyncEngine
from todosync.core.sync.scheduler import SyncScheduler
from todosync.core.sync.visibility import DOCUMENT_SCOPES, VisibilityCoordinator
from todosync.core.todos.service import TodoService
from todosync.models.sync import SyncMode
from todosync.models.todo import Scope
from todosync.protocols import ConflictResolver, RemoteDocumentProtocol, TokenProvider
from todosync.remote.auth import FileTokenProvider
from todosync.remote.gist_client import GistClient


def open_state_db(data_dir: Path | None = None) -> sqlite3.Connection:
    """Open (creating if needed) the state database in ``data_dir``."""
    directory = data_dir or resolve_data_directory()
    directory.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(directory / STATE_DB_NAME))
    migrate_schema(conn)
    logger.debug("State database: {}", directory / STATE_DB_NAME)
    return conn


@dataclass
class Runtime:
    """Everything a CLI command or the MCP server needs, built once."""

    conn: sqlite3.Connection
    settings: SyncSettings
    store: CacheStore
    engine: SyncEngine
    scheduler: SyncScheduler
    coordinator: VisibilityCoordinator
    service: TodoService = field(init=False)
    live: bool = False

    def __post_init__(self) -> None:
        self.service = TodoService(self.store, self.settings, on_change=self._on_local_edit)

    def _on_local_edit(self, scope: Scope) -> None:
        self.engine.mark_local_edit(scope)
        if self.live:
            self.scheduler.trigger_debounce(scope)

    def sync_modes(self) -> dict[Scope, SyncMode]:
        return {scope: self.store.get_mode(scope) for scope in DOCUMENT_SCOPES}

    def set_mode(self, scope: Scope, mode: SyncMode) -> None:
        self.store.set_mode(scope.document, mode)
        self.coordinator.update_sync_modes({scope.document: mode})

    def go_live(self) -> None:
        """Start debounced uploads and polling for a long-running front end.

        The front end counts as a visible view, so polling runs whether or not
        it is gated on visibility.
        """
        self.live = True
        self.coordinator.start()
        self.coordinator.increment_visibility()

    async def aclose(self) -> None:
        self.coordinator.dispose()
        await self.scheduler.aclose()
        self.conn.close()


def build_runtime(
    *,
    conn: sqlite3.Connection | None = None,
    data_dir: Path | None = None,
    settings: SyncSettings | None = None,
    remote: RemoteDocumentProtocol | None = None,
    token_provider: TokenProvider | None = None,
    resolver: ConflictResolver | None = None,
) -> Runtime:
    settings = settings or load_settings()
    conn = conn or open_state_db(data_dir)
    store = CacheStore(conn, workspace=settings.workspace_name)
    remote = remote or GistClient(token_provider or FileTokenProvider())
    engine = SyncEngine(store, remote, settings, resolver=resolver)
    scheduler = SyncScheduler(engine)
    coordinator = VisibilityCoordinator(
        scheduler,
        settings,
        sync_modes={scope: store.get_mode(scope) for scope in DOCUMENT_SCOPES},
    )
    return Runtime(
        conn=conn,
        settings=settings,
        store=store,
        engine=engine,
        scheduler=scheduler,
        coordinator=coordinator,
    )
