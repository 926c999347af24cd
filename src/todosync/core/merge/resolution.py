"""Applying conflict resolutions on top of an automatic merge."""

from collections.abc import Sequence
from typing import TypeVar

from todosync.models.conflict import (
    ConflictRecord,
    ConflictResolution,
    FileConflictRecord,
    Resolution,
)
from todosync.models.todo import FilesData, Todo

V = TypeVar("V")


def _pick(local: V | None, remote: V | None, resolution: Resolution) -> V | None:
    if resolution is Resolution.LOCAL:
        return local
    if resolution is Resolution.REMOTE:
        return remote
    return None


def apply_resolutions(
    base: Sequence[Todo],
    auto_merged: Sequence[Todo],
    conflicts: Sequence[ConflictRecord],
    resolutions: Sequence[ConflictResolution],
) -> list[Todo]:
    """Overlay the chosen sides of ``conflicts`` onto ``auto_merged``.

    ``skip`` (or choosing a side where the todo was deleted) leaves the todo
    out. Items that exist in ``base`` keep their base position; the rest are
    appended in auto-merged order, then in resolution order.
    """
    if not conflicts:
        return list(auto_merged)

    by_id = {c.todo_id: c for c in conflicts}

    current: dict[int, Todo] = {t.id: t for t in auto_merged}
    resolved_order: list[int] = []
    for res in resolutions:
        conflict = by_id.get(int(res.key))
        if conflict is None:
            continue
        chosen = _pick(conflict.local, conflict.remote, res.resolution)
        if chosen is None:
            current.pop(conflict.todo_id, None)
            continue
        current[conflict.todo_id] = chosen
        resolved_order.append(conflict.todo_id)

    result: list[Todo] = []
    positioned: set[int] = set()

    def emit(todo_id: int) -> None:
        if todo_id in current and todo_id not in positioned:
            result.append(current[todo_id])
            positioned.add(todo_id)

    for todo in base:
        emit(todo.id)
    for todo in auto_merged:
        emit(todo.id)
    for todo_id in resolved_order:
        emit(todo_id)
    return result


def apply_file_resolutions(
    auto_merged: FilesData,
    conflicts: Sequence[FileConflictRecord],
    resolutions: Sequence[ConflictResolution],
) -> FilesData:
    """Keep the local or remote list for each conflicting path, or drop the path."""
    by_path = {c.path: c for c in conflicts}
    result = {path: list(todos) for path, todos in auto_merged.items()}

    for res in resolutions:
        conflict = by_path.get(str(res.key))
        if conflict is None:
            continue
        chosen = _pick(conflict.local, conflict.remote, res.resolution)
        if chosen is None:
            result.pop(conflict.path, None)
        else:
            result[conflict.path] = list(chosen)

    return dict(sorted(result.items()))


def resolve_all(
    conflicts: Sequence[ConflictRecord | FileConflictRecord], choice: Resolution
) -> list[ConflictResolution]:
    """Apply the same choice to every conflict (keep all local / keep all remote)."""
    return [
        ConflictResolution(
            key=c.todo_id if isinstance(c, ConflictRecord) else c.path, resolution=choice
        )
        for c in conflicts
    ]
