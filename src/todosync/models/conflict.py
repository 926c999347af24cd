"""Conflict records produced by the three-way merge."""

from dataclasses import dataclass, field
from enum import StrEnum

from todosync.models.todo import FilesData, Todo


class ConflictKind(StrEnum):
    EDIT_EDIT = "edit-edit"
    EDIT_DELETE = "edit-delete"
    DELETE_EDIT = "delete-edit"
    ID_COLLISION = "id-collision"


class FileConflictKind(StrEnum):
    EDIT_EDIT = "collection-edit-edit"
    EDIT_DELETE = "collection-edit-delete"
    DELETE_EDIT = "collection-delete-edit"
    ADDED_BOTH = "collection-added-both"


class Resolution(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"
    SKIP = "skip"


@dataclass(frozen=True)
class ConflictRecord:
    """One todo changed incompatibly on both sides. ``None`` means absent on that side."""

    todo_id: int
    base: Todo | None
    local: Todo | None
    remote: Todo | None
    kind: ConflictKind


@dataclass(frozen=True)
class FileConflictRecord:
    """A whole per-file todo list that both sides changed differently."""

    path: str
    base: tuple[Todo, ...] | None
    local: tuple[Todo, ...] | None
    remote: tuple[Todo, ...] | None
    kind: FileConflictKind


@dataclass(frozen=True)
class ConflictResolution:
    """A decision for one conflict; ``key`` is the todo id or the file path."""

    key: int | str
    resolution: Resolution


@dataclass
class MergeResult:
    merged: list[Todo] = field(default_factory=list)
    conflicts: list[ConflictRecord] = field(default_factory=list)


@dataclass
class FilesMergeResult:
    merged: FilesData = field(default_factory=dict)
    conflicts: list[FileConflictRecord] = field(default_factory=list)
