"""One synchronization pass per document: download, upload or three-way merge.

A pass compares three versions of a document: the cached working copy
(``data``), the last version known to match the remote (``last_clean``), and
what the remote holds now. Only the sides that moved away from ``last_clean``
count as changed:

    local   remote   action
    -       -        nothing, status synced
    -       x        download
    x       -        upload
    x       x        merge against last_clean, ask the resolver on conflicts, upload

Failures are returned as ``SyncResult`` values; nothing raises past ``sync()``.
"""

import asyncio
import inspect
import json
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import TypeVar

from loguru import logger

from todosync.config import SyncSettings
from todosync.core.merge.resolution import apply_file_resolutions, apply_resolutions, resolve_all
from todosync.core.merge.three_way import format_merge_summary, merge_files_data, merge_todos
from todosync.core.storage.cache_store import CacheStore
from todosync.models.conflict import Resolution
from todosync.models.sync import CacheEntry, ErrorKind, SyncError, SyncResult, SyncStatus
from todosync.models.todo import DocumentSnapshot, Scope
from todosync.protocols import ConflictResolver, RemoteDocumentProtocol

T = TypeVar("T")

StatusListener = Callable[[Scope, SyncStatus], None]
DownloadListener = Callable[[Scope], None]


def serialize_snapshot(snapshot: DocumentSnapshot, scope: Scope) -> str:
    """Remote file content: the document JSON, pretty-printed."""
    return json.dumps(snapshot.to_dict(scope), indent=2, ensure_ascii=False)


def parse_snapshot(content: str, scope: Scope) -> DocumentSnapshot:
    return DocumentSnapshot.from_dict(json.loads(content), scope)


async def _maybe_await(value: T | Awaitable[T]) -> T:
    if inspect.isawaitable(value):
        return await value
    return value


class SyncEngine:
    """Synchronizes the user document and the workspace document with one gist."""

    def __init__(
        self,
        store: CacheStore,
        remote: RemoteDocumentProtocol,
        settings: SyncSettings,
        *,
        resolver: ConflictResolver | None = None,
    ) -> None:
        self.store = store
        self.remote = remote
        self.settings = settings
        self.resolver = resolver
        self.serializer: Callable[[DocumentSnapshot, Scope], str] = serialize_snapshot
        self.last_errors: dict[Scope, SyncError] = {}
        self._statuses: dict[Scope, SyncStatus] = {}
        self._in_progress: set[str] = set()
        self._status_listeners: list[StatusListener] = []
        self._download_listeners: list[DownloadListener] = []

    # --- Identity and status ---

    def file_name(self, scope: Scope) -> str:
        return self.settings.file_name(scope)

    def document_id(self, scope: Scope) -> str:
        return f"{self.store.area(scope)}/{self.file_name(scope)}"

    def status(self, scope: Scope) -> SyncStatus:
        return self._statuses.get(scope.document, SyncStatus.OFFLINE)

    def is_syncing(self, scope: Scope) -> bool:
        return self.document_id(scope) in self._in_progress

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._status_listeners.append(listener)
        return lambda: self._status_listeners.remove(listener)

    def on_data_downloaded(self, listener: DownloadListener) -> Callable[[], None]:
        """Called after remote content replaced or merged into the cache."""
        self._download_listeners.append(listener)
        return lambda: self._download_listeners.remove(listener)

    def _set_status(self, scope: Scope, status: SyncStatus) -> None:
        self._statuses[scope] = status
        for listener in list(self._status_listeners):
            try:
                listener(scope, status)
            except Exception:
                logger.exception("Status listener failed for {}", scope)

    def _emit_downloaded(self, scope: Scope) -> None:
        for listener in list(self._download_listeners):
            try:
                listener(scope)
            except Exception:
                logger.exception("Download listener failed for {}", scope)

    def mark_local_edit(self, scope: Scope) -> None:
        """Reflect a local edit in the status unless a pass is running."""
        if not self.is_syncing(scope):
            self._set_status(scope.document, SyncStatus.DIRTY)

    def disconnect(self, scope: Scope) -> bool:
        """Forget the cached remote copy of ``scope``'s document."""
        removed = self.store.remove_entry(scope.document, self.file_name(scope))
        self.last_errors.pop(scope.document, None)
        self._set_status(scope.document, SyncStatus.OFFLINE)
        return removed

    # --- The pass ---

    async def sync(self, scope: Scope) -> SyncResult[None]:
        """Run one pass for ``scope``'s document. A second concurrent call is a no-op."""
        scope = scope.document
        gist_id = self.settings.gist_id
        if not gist_id:
            return SyncResult.fail(ErrorKind.VALIDATION, "Gist ID not configured", retryable=False)

        doc_id = self.document_id(scope)
        if doc_id in self._in_progress:
            logger.debug("Sync of {} already running, skipping", doc_id)
            return SyncResult.ok()

        self._in_progress.add(doc_id)
        try:
            self._set_status(scope, SyncStatus.SYNCING)
            result = await self._run_pass(scope, gist_id, self.file_name(scope))
        except Exception as e:
            logger.exception("Sync of {} failed unexpectedly", doc_id)
            message = str(e) or type(e).__name__
            result = SyncResult.fail(ErrorKind.UNKNOWN, message, retryable=True)
        finally:
            self._in_progress.discard(doc_id)

        if not result.success and result.error is not None:
            self.last_errors[scope] = result.error
            logger.warning("Sync of {} failed: {}", doc_id, result.error)
            self._set_status(scope, SyncStatus.ERROR)
        else:
            self.last_errors.pop(scope, None)
        return result

    async def _run_pass(self, scope: Scope, gist_id: str, file_name: str) -> SyncResult[None]:
        entry = self.store.load_entry(scope, file_name)
        if entry is None:
            return await self._initial_download(scope, gist_id, file_name)

        fetched = await self._read_remote(scope, gist_id, file_name)
        if not fetched.success:
            return SyncResult.from_error(fetched.error)
        remote = fetched.data

        # Decide on the cache as it is now, not as it was before the fetch.
        entry = self.store.load_entry(scope, file_name) or entry
        clean = entry.last_clean_remote_data

        if entry.is_dirty and clean is not None and entry.data == clean:
            logger.debug("Clearing stale dirty flag on {}", file_name)
            entry = replace(entry, is_dirty=False)
            self.store.save_entry(scope, file_name, entry)

        if remote is None:
            logger.info("Remote file {} is missing, uploading local copy", file_name)
            return await self._upload(scope, gist_id, file_name, entry.data, decided_on=entry.data)

        local_changed = entry.is_dirty and (clean is None or entry.data != clean)
        remote_changed = remote != (clean if clean is not None else entry.data)
        logger.debug(
            "Sync {}: local_changed={} remote_changed={}", file_name, local_changed, remote_changed
        )

        if not local_changed and not remote_changed:
            stored = self._commit(scope, file_name, remote, decided_on=entry.data)
            self._finish(scope, stored, downloaded=False)
            return SyncResult.ok()

        if remote_changed and not local_changed:
            stored = self._commit(scope, file_name, remote, decided_on=entry.data)
            logger.info("Downloaded {}", file_name)
            self._finish(scope, stored, downloaded=True)
            return SyncResult.ok()

        if local_changed and not remote_changed:
            return await self._upload(scope, gist_id, file_name, entry.data, decided_on=entry.data)

        return await self._merge(scope, gist_id, file_name, entry, remote)

    async def _initial_download(
        self, scope: Scope, gist_id: str, file_name: str
    ) -> SyncResult[None]:
        fetched = await self._read_remote(scope, gist_id, file_name)
        if not fetched.success:
            return SyncResult.from_error(fetched.error)

        if fetched.data is None:
            logger.info("Remote file {} does not exist yet, starting empty", file_name)
            self.store.save_entry(
                scope, file_name, CacheEntry(data=DocumentSnapshot.empty(scope), is_dirty=True)
            )
            self._set_status(scope, SyncStatus.DIRTY)
            self._emit_downloaded(scope)
            return SyncResult.ok()

        entry = CacheEntry.clean(fetched.data)
        self.store.save_entry(scope, file_name, entry)
        logger.info("Downloaded {}", file_name)
        self._finish(scope, entry, downloaded=True)
        return SyncResult.ok()

    async def _read_remote(
        self, scope: Scope, gist_id: str, file_name: str
    ) -> SyncResult[DocumentSnapshot]:
        """Remote snapshot; ``data`` is None when the file does not exist."""
        result = await asyncio.to_thread(self.remote.read_file, gist_id, file_name)
        if not result.success:
            if result.error is not None and result.error.kind is ErrorKind.NOT_FOUND:
                return SyncResult.ok(None)
            return SyncResult.from_error(result.error)
        try:
            return SyncResult.ok(parse_snapshot(result.data or "", scope))
        except (ValueError, TypeError) as e:
            return SyncResult.fail(
                ErrorKind.UNKNOWN, f"Failed to parse remote {file_name}: {e}", retryable=False
            )

    async def _merge(
        self,
        scope: Scope,
        gist_id: str,
        file_name: str,
        entry: CacheEntry,
        remote: DocumentSnapshot,
    ) -> SyncResult[None]:
        base = entry.last_clean_remote_data or DocumentSnapshot.empty(scope)
        local = entry.data

        todo_merge = merge_todos(base.todos, local.todos, remote.todos)
        todos = todo_merge.merged
        if todo_merge.conflicts:
            logger.info("{} todo conflict(s) in {}", len(todo_merge.conflicts), file_name)
            if self.resolver is None:
                return self._cancelled("no conflict resolver configured")
            resolutions = await _maybe_await(
                self.resolver.resolve_todos(todo_merge.conflicts, todo_merge.merged, base.todos)
            )
            if resolutions is None:
                return self._cancelled("conflict resolution cancelled")
            todos = apply_resolutions(
                base.todos, todo_merge.merged, todo_merge.conflicts, resolutions
            )

        files = None
        if scope is Scope.WORKSPACE:
            files_merge = merge_files_data(
                base.files_dict(), local.files_dict(), remote.files_dict()
            )
            files = files_merge.merged
            if files_merge.conflicts:
                logger.info("{} file conflict(s) in {}", len(files_merge.conflicts), file_name)
                if self.resolver is None:
                    return self._cancelled("no conflict resolver configured")
                file_resolutions = await _maybe_await(
                    self.resolver.resolve_files(files_merge.conflicts)
                )
                if file_resolutions is None:
                    return self._cancelled("conflict resolution cancelled")
                files = apply_file_resolutions(
                    files_merge.merged, files_merge.conflicts, file_resolutions
                )

        merged = DocumentSnapshot.build(todos, files)
        logger.info("Merged {}: {}", file_name, format_merge_summary(merged.todos, base.todos))

        if merged == remote:
            stored = self._commit(scope, file_name, remote, decided_on=local)
            self._finish(scope, stored, downloaded=True)
            return SyncResult.ok()

        result = await self._upload(scope, gist_id, file_name, merged, decided_on=local)
        if result.success:
            self._emit_downloaded(scope)
        return result

    def _cancelled(self, reason: str) -> SyncResult[None]:
        logger.info("Sync aborted: {}", reason)
        return SyncResult.fail(ErrorKind.CANCELLED, reason, retryable=False)

    async def _upload(
        self,
        scope: Scope,
        gist_id: str,
        file_name: str,
        snapshot: DocumentSnapshot,
        *,
        decided_on: DocumentSnapshot,
    ) -> SyncResult[None]:
        content = self.serializer(snapshot, scope)
        if not content or not content.strip():
            return SyncResult.fail(
                ErrorKind.VALIDATION,
                f"Refusing to upload empty content to {file_name}",
                retryable=False,
            )

        result = await asyncio.to_thread(self.remote.write_file, gist_id, file_name, content)
        if not result.success:
            return SyncResult.from_error(result.error)

        stored = self._commit(scope, file_name, snapshot, decided_on=decided_on)
        logger.info("Uploaded {}", file_name)
        self._finish(scope, stored, downloaded=False)
        return SyncResult.ok()

    def _commit(
        self,
        scope: Scope,
        file_name: str,
        snapshot: DocumentSnapshot,
        *,
        decided_on: DocumentSnapshot,
    ) -> CacheEntry:
        """Store ``snapshot`` as the new clean state.

        If the working copy changed since the pass decided what to do, that
        edit is rebased onto ``snapshot`` and left dirty for the next pass.
        """
        current = self.store.load_entry(scope, file_name)
        if current is not None and current.data != decided_on:
            logger.info("Local edit landed during sync of {}, kept for the next pass", file_name)
            rebased = rebase_local_edit(decided_on, current.data, snapshot, scope)
            entry = CacheEntry(data=rebased, last_clean_remote_data=snapshot, is_dirty=True)
        else:
            entry = CacheEntry.clean(snapshot)
        self.store.save_entry(scope, file_name, entry)
        return entry

    def _finish(self, scope: Scope, entry: CacheEntry, *, downloaded: bool) -> None:
        self._set_status(scope, SyncStatus.DIRTY if entry.is_dirty else SyncStatus.SYNCED)
        if downloaded:
            self._emit_downloaded(scope)


def rebase_local_edit(
    decided_on: DocumentSnapshot,
    edited: DocumentSnapshot,
    snapshot: DocumentSnapshot,
    scope: Scope,
) -> DocumentSnapshot:
    """Replay the change from ``decided_on`` to ``edited`` on top of ``snapshot``.

    The edit is the most recent user action, so it wins any conflict.
    """
    todo_merge = merge_todos(decided_on.todos, edited.todos, snapshot.todos)
    todos = apply_resolutions(
        decided_on.todos,
        todo_merge.merged,
        todo_merge.conflicts,
        resolve_all(todo_merge.conflicts, Resolution.LOCAL),
    )
    if scope.document is Scope.USER:
        return DocumentSnapshot.build(todos)

    files_merge = merge_files_data(
        decided_on.files_dict(), edited.files_dict(), snapshot.files_dict()
    )
    files = apply_file_resolutions(
        files_merge.merged,
        files_merge.conflicts,
        resolve_all(files_merge.conflicts, Resolution.LOCAL),
    )
    return DocumentSnapshot.build(todos, files)
