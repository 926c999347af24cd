"""Todo lists kept in sync with a GitHub Gist using three-way merge."""

from todosync.core.merge.three_way import merge_files_data, merge_todos
from todosync.core.sync.engine import SyncEngine
from todosync.models.todo import DocumentSnapshot, Scope, Todo
from todosync.protocols import ConflictResolver, RemoteDocumentProtocol, TokenProvider

__all__ = [
    "ConflictResolver",
    "DocumentSnapshot",
    "RemoteDocumentProtocol",
    "Scope",
    "SyncEngine",
    "Todo",
    "TokenProvider",
    "merge_files_data",
    "merge_todos",
]
