"""Three-way merge of todo lists and of per-file todo maps.

Both merges classify every key by which of base/local/remote hold it:

    base local remote
     x     x     -      deleted remotely: conflict if local edited it
     x     -     x      deleted locally: conflict if remote edited it
     -     x     x      added on both sides: conflict if the two differ
     x     x     x      edited: conflict only if both sides changed it differently
     -     x     -      added locally
     -     -     x      added remotely

Everything here is pure; no I/O, no logging.
"""

from collections.abc import Sequence
from typing import TypeVar

from todosync.models.conflict import (
    ConflictKind,
    ConflictRecord,
    FileConflictKind,
    FileConflictRecord,
    FilesMergeResult,
    MergeResult,
)
from todosync.models.todo import FilesData, Todo

V = TypeVar("V")

_DELETED_REMOTELY = "deleted-remotely"
_DELETED_LOCALLY = "deleted-locally"
_ADDED_BOTH = "added-both"
_EDITED = "edited"


def _classify(base: V | None, local: V | None, remote: V | None) -> tuple[str | None, V | None]:
    """Return ``(conflict_pattern, None)`` or ``(None, winning_value)``.

    A winning value of ``None`` means the key is dropped from the result.
    """
    in_base, in_local, in_remote = base is not None, local is not None, remote is not None

    if in_base and in_local and not in_remote:
        return (_DELETED_REMOTELY, None) if local != base else (None, None)
    if in_base and in_remote and not in_local:
        return (_DELETED_LOCALLY, None) if remote != base else (None, None)
    if in_local and in_remote and not in_base:
        return (_ADDED_BOTH, None) if local != remote else (None, local)
    if in_base and in_local and in_remote:
        local_changed = local != base
        remote_changed = remote != base
        if local_changed and remote_changed and local != remote:
            return _EDITED, None
        return None, (remote if remote_changed else local)
    # Present on exactly one side, or nowhere.
    return None, (local if in_local else remote)


_TODO_KINDS = {
    _DELETED_REMOTELY: ConflictKind.EDIT_DELETE,
    _DELETED_LOCALLY: ConflictKind.DELETE_EDIT,
    _ADDED_BOTH: ConflictKind.ID_COLLISION,
    _EDITED: ConflictKind.EDIT_EDIT,
}

_FILE_KINDS = {
    _DELETED_REMOTELY: FileConflictKind.EDIT_DELETE,
    _DELETED_LOCALLY: FileConflictKind.DELETE_EDIT,
    _ADDED_BOTH: FileConflictKind.ADDED_BOTH,
    _EDITED: FileConflictKind.EDIT_EDIT,
}


def _index(todos: Sequence[Todo]) -> dict[int, Todo]:
    return {t.id: t for t in todos}


def _union_ids(*collections: Sequence[Todo]) -> list[int]:
    seen: dict[int, None] = {}
    for todos in collections:
        for t in todos:
            seen.setdefault(t.id, None)
    return list(seen)


def find_insertion_index(
    merged: list[Todo], remote: Sequence[Todo], remote_index: int, placed: set[int]
) -> int:
    """Where to insert ``remote[remote_index]`` into ``merged``.

    Goes right after the closest earlier remote neighbour already placed, but
    never past the closest later one. With no placed neighbour it is appended.
    """
    prev_id: int | None = None
    for i in range(remote_index - 1, -1, -1):
        if remote[i].id in placed:
            prev_id = remote[i].id
            break

    next_id: int | None = None
    for i in range(remote_index + 1, len(remote)):
        if remote[i].id in placed:
            next_id = remote[i].id
            break

    positions = {t.id: pos for pos, t in enumerate(merged)}
    next_pos = positions[next_id] if next_id is not None else len(merged)

    if prev_id is not None:
        return min(positions[prev_id] + 1, next_pos)
    return next_pos


def merge_todos(
    base: Sequence[Todo], local: Sequence[Todo], remote: Sequence[Todo]
) -> MergeResult:
    """Merge two diverged todo lists against their common ancestor.

    Conflicted ids are reported and left out of ``merged``. The order follows
    ``local``; remote-only additions are slotted next to their remote neighbours.
    """
    base_map, local_map, remote_map = _index(base), _index(local), _index(remote)

    conflicts: list[ConflictRecord] = []
    winners: dict[int, Todo] = {}
    for todo_id in _union_ids(base, local, remote):
        b, lo, r = base_map.get(todo_id), local_map.get(todo_id), remote_map.get(todo_id)
        pattern, winner = _classify(b, lo, r)
        if pattern is not None:
            conflicts.append(
                ConflictRecord(
                    todo_id=todo_id, base=b, local=lo, remote=r, kind=_TODO_KINDS[pattern]
                )
            )
        elif winner is not None:
            winners[todo_id] = winner

    merged: list[Todo] = []
    placed: set[int] = set()
    for todo in local:
        if todo.id in winners and todo.id not in placed:
            merged.append(winners[todo.id])
            placed.add(todo.id)

    for i, todo in enumerate(remote):
        if todo.id not in winners or todo.id in placed:
            continue
        merged.insert(find_insertion_index(merged, remote, i, placed), winners[todo.id])
        placed.add(todo.id)

    return MergeResult(merged=merged, conflicts=conflicts)


def merge_files_data(
    base: FilesData | None, local: FilesData | None, remote: FilesData | None
) -> FilesMergeResult:
    """Merge per-file todo maps, treating each file's list as a single value."""
    base, local, remote = base or {}, local or {}, remote or {}

    paths: dict[str, None] = {}
    for mapping in (base, local, remote):
        for path in mapping:
            paths.setdefault(path, None)

    merged: FilesData = {}
    conflicts: list[FileConflictRecord] = []
    for path in paths:
        b, lo, r = base.get(path), local.get(path), remote.get(path)
        pattern, winner = _classify(b, lo, r)
        if pattern is not None:
            conflicts.append(
                FileConflictRecord(
                    path=path,
                    base=tuple(b) if b is not None else None,
                    local=tuple(lo) if lo is not None else None,
                    remote=tuple(r) if r is not None else None,
                    kind=_FILE_KINDS[pattern],
                )
            )
        elif winner is not None:
            merged[path] = list(winner)

    return FilesMergeResult(merged=dict(sorted(merged.items())), conflicts=conflicts)


def format_merge_summary(merged: Sequence[Todo], base: Sequence[Todo]) -> str:
    """Describe ``merged`` relative to ``base``, e.g. ``"2 added, 1 deleted"``."""
    base_map = _index(base)
    merged_ids = {t.id for t in merged}

    added = sum(1 for t in merged if t.id not in base_map)
    modified = sum(1 for t in merged if t.id in base_map and base_map[t.id] != t)
    deleted = sum(1 for t in base if t.id not in merged_ids)

    parts = []
    if added:
        parts.append(f"{added} added")
    if modified:
        parts.append(f"{modified} modified")
    if deleted:
        parts.append(f"{deleted} deleted")
    return ", ".join(parts) if parts else "No changes"
