"""Sync state, results and errors."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from todosync.models.todo import DocumentSnapshot, Scope

T = TypeVar("T")


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


class SyncStatus(StrEnum):
    OFFLINE = "offline"
    DIRTY = "dirty"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


class SyncMode(StrEnum):
    """Storage backend of a scope. Each mode keeps its own data."""

    LOCAL = "local"
    GITHUB = "github"


class ErrorKind(StrEnum):
    NETWORK = "network"
    AUTH = "auth"
    NOT_FOUND = "not-found"
    RATE_LIMIT = "rate-limit"
    VALIDATION = "validation"
    UNKNOWN = "unknown"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SyncError:
    kind: ErrorKind
    message: str
    retryable: bool
    timestamp: str = field(default_factory=utc_now_iso)

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


@dataclass(frozen=True)
class SyncResult(Generic[T]):
    """Outcome of a remote call or a sync pass. Failures are values, not exceptions."""

    success: bool
    data: T | None = None
    error: SyncError | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> "SyncResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, *, retryable: bool) -> "SyncResult[T]":
        return cls(success=False, error=SyncError(kind=kind, message=message, retryable=retryable))

    @classmethod
    def from_error(cls, error: SyncError | None) -> "SyncResult[T]":
        if error is None:
            error = SyncError(kind=ErrorKind.UNKNOWN, message="unknown failure", retryable=True)
        return cls(success=False, error=error)


@dataclass(frozen=True)
class CacheEntry:
    """Cached copy of one remote document.

    ``data`` may hold local edits not yet uploaded (``is_dirty``).
    ``last_clean_remote_data`` mirrors the remote as of the last successful
    sync and serves as the merge base.
    """

    data: DocumentSnapshot
    last_clean_remote_data: DocumentSnapshot | None = None
    last_synced: str = field(default_factory=utc_now_iso)
    is_dirty: bool = False

    @classmethod
    def empty(cls, scope: Scope) -> "CacheEntry":
        return cls(data=DocumentSnapshot.empty(scope))

    @classmethod
    def clean(cls, snapshot: DocumentSnapshot) -> "CacheEntry":
        return cls(data=snapshot, last_clean_remote_data=snapshot, is_dirty=False)

    def to_dict(self, scope: Scope) -> dict[str, Any]:
        out: dict[str, Any] = {"data": self.data.to_dict(scope)}
        if self.last_clean_remote_data is not None:
            out["lastCleanRemoteData"] = self.last_clean_remote_data.to_dict(scope)
        out["lastSynced"] = self.last_synced
        out["isDirty"] = self.is_dirty
        return out

    @classmethod
    def from_dict(cls, raw: Any, scope: Scope) -> "CacheEntry":
        if not isinstance(raw, dict) or "data" not in raw:
            msg = "cache entry must be an object with a 'data' field"
            raise ValueError(msg)
        clean = raw.get("lastCleanRemoteData")
        return cls(
            data=DocumentSnapshot.from_dict(raw["data"], scope),
            last_clean_remote_data=(
                DocumentSnapshot.from_dict(clean, scope) if clean is not None else None
            ),
            last_synced=str(raw.get("lastSynced") or utc_now_iso()),
            is_dirty=bool(raw.get("isDirty", False)),
        )
