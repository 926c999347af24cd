"""Domain models for todo items and the documents that hold them."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class Scope(StrEnum):
    """Where a todo lives.

    ``user`` and ``workspace`` are synchronized documents; ``file`` todos are
    stored inside the workspace document, keyed by file path.
    """

    USER = "user"
    WORKSPACE = "workspace"
    FILE = "file"

    @property
    def document(self) -> "Scope":
        """The synchronized document holding todos of this scope."""
        return Scope.USER if self is Scope.USER else Scope.WORKSPACE


@dataclass(frozen=True)
class Todo:
    """A single todo item. Identity is ``id``; everything else is content."""

    id: int
    text: str
    completed: bool = False
    creation_date: str = ""
    completion_date: str | None = None
    is_markdown: bool = False
    is_note: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "completed": self.completed,
            "creationDate": self.creation_date,
        }
        if self.completion_date is not None:
            data["completionDate"] = self.completion_date
        data["isMarkdown"] = self.is_markdown
        data["isNote"] = self.is_note
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Todo":
        if "id" not in data:
            msg = f"todo without id: {data!r}"
            raise ValueError(msg)
        return cls(
            id=int(data["id"]),
            text=str(data.get("text", "")),
            completed=bool(data.get("completed", False)),
            creation_date=str(data.get("creationDate", "")),
            completion_date=data.get("completionDate"),
            is_markdown=bool(data.get("isMarkdown", False)),
            is_note=bool(data.get("isNote", False)),
        )


FilesData = dict[str, list[Todo]]


def todos_from_list(raw: Any) -> list[Todo]:
    """Parse a JSON list of todos; anything that is not a list yields []."""
    if not isinstance(raw, list):
        return []
    return [Todo.from_dict(item) for item in raw]


def todos_to_list(todos: "list[Todo] | tuple[Todo, ...]") -> list[dict[str, Any]]:
    return [t.to_dict() for t in todos]


@dataclass(frozen=True)
class DocumentSnapshot:
    """The content of one synchronized document.

    ``files_data`` is ``None`` for the user document and a (possibly empty)
    mapping for the workspace document.
    """

    todos: tuple[Todo, ...] = ()
    files_data: dict[str, tuple[Todo, ...]] | None = None

    @classmethod
    def empty(cls, scope: Scope) -> "DocumentSnapshot":
        return cls(todos=(), files_data=None if scope is Scope.USER else {})

    @classmethod
    def build(
        cls, todos: list[Todo], files_data: FilesData | None = None
    ) -> "DocumentSnapshot":
        files = None
        if files_data is not None:
            files = {path: tuple(items) for path, items in sorted(files_data.items())}
        return cls(todos=tuple(todos), files_data=files)

    def todo_list(self) -> list[Todo]:
        return list(self.todos)

    def files_dict(self) -> FilesData:
        return {path: list(items) for path, items in (self.files_data or {}).items()}

    def to_dict(self, scope: Scope) -> dict[str, Any]:
        """Serialize with the key names of the remote file format."""
        if scope.document is Scope.USER:
            return {"userTodos": todos_to_list(self.todos)}
        files = self.files_data or {}
        return {
            "workspaceTodos": todos_to_list(self.todos),
            "filesData": {path: todos_to_list(files[path]) for path in sorted(files)},
        }

    @classmethod
    def from_dict(cls, data: Any, scope: Scope) -> "DocumentSnapshot":
        if not isinstance(data, dict):
            msg = f"document must be a JSON object, got {type(data).__name__}"
            raise ValueError(msg)
        if scope.document is Scope.USER:
            return cls.build(todos_from_list(data.get("userTodos")))
        raw_files = data.get("filesData")
        files: FilesData = {}
        if isinstance(raw_files, dict):
            files = {str(path): todos_from_list(items) for path, items in raw_files.items()}
        return cls.build(todos_from_list(data.get("workspaceTodos")), files)
