"""Fake implementations for testing the sync engine."""

import json
from collections.abc import Callable, Sequence
from typing import Any

from todosync.models.conflict import (
    ConflictRecord,
    ConflictResolution,
    FileConflictRecord,
    Resolution,
)
from todosync.models.sync import ErrorKind, SyncResult
from todosync.models.todo import DocumentSnapshot, Scope, Todo

GIST_ID = "0123456789abcdef0123456789abcdef"


class FakeRemote:
    """In-memory fake for GistClient.

    Stores gist files in a dict and records all calls for assertions.
    ``read_errors`` / ``write_errors`` are consumed one per call before the
    stored files are consulted. ``on_read`` and ``on_write`` run inside the
    remote call, which lets a test simulate an edit landing mid-pass.
    """

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.reads: list[str] = []
        self.writes: list[tuple[str, str]] = []
        self.read_errors: list[tuple[ErrorKind, bool]] = []
        self.write_errors: list[tuple[ErrorKind, bool]] = []
        self.on_read: Callable[[str], None] | None = None
        self.on_write: Callable[[str], None] | None = None

    def put(self, name: str, snapshot: DocumentSnapshot, scope: Scope) -> None:
        """Store ``snapshot`` as the content of ``name``."""
        self.files[name] = json.dumps(snapshot.to_dict(scope), indent=2)

    def snapshot(self, name: str, scope: Scope) -> DocumentSnapshot:
        return DocumentSnapshot.from_dict(json.loads(self.files[name]), scope)

    def fetch_document(self, gist_id: str) -> SyncResult[dict[str, Any]]:
        files = {
            name: {"content": content, "size": len(content)} for name, content in self.files.items()
        }
        return SyncResult.ok({"id": gist_id, "files": files})

    def read_file(self, gist_id: str, name: str) -> SyncResult[str]:
        self.reads.append(name)
        if self.on_read is not None:
            self.on_read(name)
        if self.read_errors:
            kind, retryable = self.read_errors.pop(0)
            return SyncResult.fail(kind, f"fake {kind}", retryable=retryable)
        if name not in self.files:
            return SyncResult.fail(ErrorKind.NOT_FOUND, f"File '{name}' not found", retryable=False)
        return SyncResult.ok(self.files[name])

    def write_file(self, gist_id: str, name: str, content: str) -> SyncResult[None]:
        if self.on_write is not None:
            self.on_write(name)
        if self.write_errors:
            kind, retryable = self.write_errors.pop(0)
            return SyncResult.fail(kind, f"fake {kind}", retryable=retryable)
        self.writes.append((name, content))
        self.files[name] = content
        return SyncResult.ok(None)


class RecordingResolver:
    """Resolves every conflict with a fixed choice and records what it was asked.

    ``choice=None`` cancels the pass.
    """

    def __init__(self, choice: Resolution | None = Resolution.LOCAL) -> None:
        self.choice = choice
        self.todo_calls: list[list[ConflictRecord]] = []
        self.file_calls: list[list[FileConflictRecord]] = []

    def resolve_todos(
        self,
        conflicts: Sequence[ConflictRecord],
        auto_merged: Sequence[Todo],
        base: Sequence[Todo],
    ) -> list[ConflictResolution] | None:
        self.todo_calls.append(list(conflicts))
        if self.choice is None:
            return None
        return [ConflictResolution(key=c.todo_id, resolution=self.choice) for c in conflicts]

    def resolve_files(
        self, conflicts: Sequence[FileConflictRecord]
    ) -> list[ConflictResolution] | None:
        self.file_calls.append(list(conflicts))
        if self.choice is None:
            return None
        return [ConflictResolution(key=c.path, resolution=self.choice) for c in conflicts]


def todo(todo_id: int, text: str | None = None, *, completed: bool = False) -> Todo:
    """Build a todo with a fixed creation date so equality is predictable."""
    return Todo(
        id=todo_id,
        text=text if text is not None else f"todo {todo_id}",
        completed=completed,
        creation_date="2024-01-01T00:00:00+00:00",
    )


def ids(todos: Sequence[Todo]) -> list[int]:
    return [t.id for t in todos]
