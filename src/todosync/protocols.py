"""Protocols for the collaborators injected into the sync engine."""

from collections.abc import Awaitable, Sequence
from typing import Any, Protocol, runtime_checkable

from todosync.models.conflict import ConflictRecord, ConflictResolution, FileConflictRecord
from todosync.models.sync import SyncResult
from todosync.models.todo import Todo

Resolutions = list[ConflictResolution] | None


@runtime_checkable
class TokenProvider(Protocol):
    """Supplies the bearer token for remote calls."""

    def get_token(self) -> str | None:
        """Return the token, or None when not signed in."""
        ...


@runtime_checkable
class RemoteDocumentProtocol(Protocol):
    """Read and write named files inside one remote document."""

    def fetch_document(self, gist_id: str) -> SyncResult[dict[str, Any]]:
        """Return the document metadata including its ``files`` map."""
        ...

    def read_file(self, gist_id: str, name: str) -> SyncResult[str]:
        """Return the text content of one file."""
        ...

    def write_file(self, gist_id: str, name: str, content: str) -> SyncResult[None]:
        """Replace the content of one file, creating it if needed."""
        ...


@runtime_checkable
class ConflictResolver(Protocol):
    """Decides conflicts the merge could not. ``None`` cancels the whole pass.

    Implementations may be plain or ``async`` methods.
    """

    def resolve_todos(
        self,
        conflicts: Sequence[ConflictRecord],
        auto_merged: Sequence[Todo],
        base: Sequence[Todo],
    ) -> Resolutions | Awaitable[Resolutions]:
        ...

    def resolve_files(
        self, conflicts: Sequence[FileConflictRecord]
    ) -> Resolutions | Awaitable[Resolutions]:
        ...
