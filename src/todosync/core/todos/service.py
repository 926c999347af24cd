"""Local edits to todo lists: the write path that feeds the sync engine."""

from collections.abc import Callable
from dataclasses import replace
from typing import Any

from loguru import logger

from todosync.config import SyncSettings
from todosync.core.storage.cache_store import CacheStore
from todosync.models.sync import utc_now_iso
from todosync.models.todo import DocumentSnapshot, FilesData, Scope, Todo

ChangeListener = Callable[[Scope], None]


class TodoService:
    """Reads and edits todos of the user, workspace and per-file scopes.

    Edits go to the store of whatever mode the scope is in. In GitHub mode the
    cache entry is marked dirty and ``on_change`` is called so the caller can
    schedule a sync.
    """

    def __init__(
        self,
        store: CacheStore,
        settings: SyncSettings,
        *,
        on_change: ChangeListener | None = None,
        read_only: bool = False,
    ) -> None:
        self.store = store
        self.settings = settings
        self.on_change = on_change
        self.read_only = read_only

    # --- Reading ---

    def snapshot(self, scope: Scope) -> DocumentSnapshot:
        return self.store.load_snapshot(scope.document, self.settings.file_name(scope))

    def list_todos(
        self,
        scope: Scope,
        *,
        file_path: str | None = None,
        completed: bool | None = None,
        notes: bool | None = None,
    ) -> list[Todo]:
        """Todos of ``scope`` in display order, optionally filtered."""
        todos = self._todos(self.snapshot(scope), scope, file_path)
        if completed is not None:
            todos = [t for t in todos if t.completed is completed]
        if notes is not None:
            todos = [t for t in todos if t.is_note is notes]
        return todos

    def list_files(self) -> list[tuple[str, int]]:
        """Files that have todos, with their todo count."""
        files = self.snapshot(Scope.WORKSPACE).files_dict()
        return [(path, len(todos)) for path, todos in files.items() if todos]

    def get_counts(self) -> dict[str, dict[str, int]]:
        counts: dict[str, dict[str, int]] = {}
        for scope in (Scope.USER, Scope.WORKSPACE):
            todos = self.list_todos(scope)
            counts[scope.value] = {
                "todos": sum(1 for t in todos if not t.is_note),
                "notes": sum(1 for t in todos if t.is_note),
                "completed": sum(1 for t in todos if t.completed and not t.is_note),
            }
        return counts

    def get_todo(self, scope: Scope, todo_id: int, *, file_path: str | None = None) -> Todo:
        for todo in self.list_todos(scope, file_path=file_path):
            if todo.id == todo_id:
                return todo
        msg = f"No todo with id {todo_id} in {scope}"
        raise KeyError(msg)

    # --- Editing ---

    def add_todo(
        self,
        scope: Scope,
        text: str,
        *,
        file_path: str | None = None,
        is_note: bool = False,
        is_markdown: bool = False,
    ) -> Todo:
        if not text.strip():
            msg = "Todo text must not be empty"
            raise ValueError(msg)

        def edit(todos: list[Todo]) -> tuple[list[Todo], Todo]:
            todo = Todo(
                id=max((t.id for t in todos), default=0) + 1,
                text=text.strip(),
                creation_date=utc_now_iso(),
                is_markdown=is_markdown,
                is_note=is_note,
            )
            return [*todos, todo], todo

        return self._edit(scope, file_path, edit)

    def update_todo(
        self,
        scope: Scope,
        todo_id: int,
        *,
        file_path: str | None = None,
        text: str | None = None,
        completed: bool | None = None,
        is_markdown: bool | None = None,
        is_note: bool | None = None,
    ) -> Todo:
        changes: dict[str, Any] = {}
        if text is not None:
            if not text.strip():
                msg = "Todo text must not be empty"
                raise ValueError(msg)
            changes["text"] = text.strip()
        if is_markdown is not None:
            changes["is_markdown"] = is_markdown
        if is_note is not None:
            changes["is_note"] = is_note
        if not changes and completed is None:
            msg = "No fields to update"
            raise ValueError(msg)

        def edit(todos: list[Todo]) -> tuple[list[Todo], Todo]:
            index = _find(todos, todo_id, scope)
            updated = replace(todos[index], **changes)
            if completed is not None:
                updated = _with_completed(updated, completed)
            todos[index] = updated
            return todos, updated

        return self._edit(scope, file_path, edit)

    def toggle_todo(self, scope: Scope, todo_id: int, *, file_path: str | None = None) -> Todo:
        def edit(todos: list[Todo]) -> tuple[list[Todo], Todo]:
            index = _find(todos, todo_id, scope)
            todos[index] = _with_completed(todos[index], not todos[index].completed)
            return todos, todos[index]

        return self._edit(scope, file_path, edit)

    def delete_todos(
        self, scope: Scope, ids: list[int], *, file_path: str | None = None
    ) -> list[int]:
        """Delete todos by id. Returns the ids that were actually present."""

        def edit(todos: list[Todo]) -> tuple[list[Todo], list[int]]:
            wanted = set(ids)
            deleted = [t.id for t in todos if t.id in wanted]
            return [t for t in todos if t.id not in wanted], deleted

        deleted = self._edit(scope, file_path, edit)
        if len(deleted) < len(set(ids)):
            missing = sorted(set(ids) - set(deleted))
            logger.debug("Some ids were not found in {}: {}", scope, missing)
        return deleted

    def delete_completed(self, scope: Scope, *, file_path: str | None = None) -> list[int]:
        ids = [t.id for t in self.list_todos(scope, file_path=file_path, completed=True)]
        if not ids:
            return []
        return self.delete_todos(scope, ids, file_path=file_path)

    def move_todo(
        self, scope: Scope, todo_id: int, position: int, *, file_path: str | None = None
    ) -> list[Todo]:
        """Move a todo to ``position`` (0-based, clamped to the list)."""

        def edit(todos: list[Todo]) -> tuple[list[Todo], list[Todo]]:
            todo = todos.pop(_find(todos, todo_id, scope))
            todos.insert(max(0, min(position, len(todos))), todo)
            return todos, list(todos)

        return self._edit(scope, file_path, edit)

    # --- Internals ---

    @staticmethod
    def _todos(snapshot: DocumentSnapshot, scope: Scope, file_path: str | None) -> list[Todo]:
        if scope is Scope.FILE:
            return list((snapshot.files_data or {}).get(_require_path(file_path), ()))
        return snapshot.todo_list()

    def _edit(
        self, scope: Scope, file_path: str | None, edit: Callable[[list[Todo]], Any]
    ) -> Any:
        if self.read_only:
            msg = "Todo service is read-only"
            raise PermissionError(msg)

        file_name = self.settings.file_name(scope)
        snapshot = self.store.load_snapshot(scope.document, file_name)
        todos, result = edit(self._todos(snapshot, scope, file_path))

        if scope is Scope.FILE:
            path = _require_path(file_path)
            files: FilesData = snapshot.files_dict()
            if todos:
                files[path] = todos
            else:
                files.pop(path, None)
            updated = DocumentSnapshot.build(snapshot.todo_list(), files)
        else:
            files_data = snapshot.files_dict() if scope is Scope.WORKSPACE else None
            updated = DocumentSnapshot.build(todos, files_data)

        needs_sync = self.store.save_snapshot(scope.document, file_name, updated)
        logger.debug("Saved {} todos for {}", len(todos), scope)
        if needs_sync and self.on_change is not None:
            self.on_change(scope.document)
        return result


def _require_path(file_path: str | None) -> str:
    if not file_path:
        msg = "file scope requires a file path"
        raise ValueError(msg)
    return file_path


def _find(todos: list[Todo], todo_id: int, scope: Scope) -> int:
    for index, todo in enumerate(todos):
        if todo.id == todo_id:
            return index
    msg = f"No todo with id {todo_id} in {scope}"
    raise KeyError(msg)


def _with_completed(todo: Todo, completed: bool) -> Todo:
    if completed == todo.completed:
        return todo
    return replace(todo, completed=completed, completion_date=utc_now_iso() if completed else None)
