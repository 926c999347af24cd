"""Conflict resolvers: a fixed policy, and an interactive terminal prompt."""

import asyncio
from collections.abc import Callable, Sequence
from enum import StrEnum

import typer
from loguru import logger

from todosync.core.merge.resolution import resolve_all
from todosync.core.merge.three_way import format_merge_summary
from todosync.models.conflict import (
    ConflictRecord,
    ConflictResolution,
    FileConflictRecord,
    Resolution,
)
from todosync.models.todo import Todo


class ResolutionPolicy(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"
    SKIP = "skip"
    CANCEL = "cancel"


class PolicyConflictResolver:
    """Resolves every conflict the same way, or cancels the pass."""

    def __init__(self, policy: ResolutionPolicy | str = ResolutionPolicy.CANCEL) -> None:
        self.policy = ResolutionPolicy(policy)

    def _resolve(
        self, conflicts: Sequence[ConflictRecord | FileConflictRecord]
    ) -> list[ConflictResolution] | None:
        if self.policy is ResolutionPolicy.CANCEL:
            logger.info("{} conflict(s), cancelling sync", len(conflicts))
            return None
        logger.info("Resolving {} conflict(s) with policy {}", len(conflicts), self.policy)
        return resolve_all(conflicts, Resolution(self.policy.value))

    def resolve_todos(
        self,
        conflicts: Sequence[ConflictRecord],
        auto_merged: Sequence[Todo],
        base: Sequence[Todo],
    ) -> list[ConflictResolution] | None:
        return self._resolve(conflicts)

    def resolve_files(
        self, conflicts: Sequence[FileConflictRecord]
    ) -> list[ConflictResolution] | None:
        return self._resolve(conflicts)


class _Cancelled(Exception):
    pass


def describe_todo(todo: Todo | None) -> str:
    if todo is None:
        return "(deleted)"
    mark = "x" if todo.completed else " "
    kind = " [note]" if todo.is_note else ""
    return f"[{mark}] {todo.text}{kind}"


def describe_todos(todos: Sequence[Todo] | None) -> str:
    if todos is None:
        return "(deleted)"
    preview = "; ".join(t.text[:30] for t in todos[:3])
    more = " ..." if len(todos) > 3 else ""
    return f"{len(todos)} todo(s): {preview}{more}"


PromptFn = Callable[..., str]


class PromptConflictResolver:
    """Asks on the terminal how to resolve conflicts.

    First offers to go through conflicts one by one, keep all local, keep all
    remote, or cancel. Per conflict the answers are local / remote / skip /
    cancel.

    The dialogue runs in a worker thread so other documents keep syncing while
    it waits for an answer. Dialogues for different documents take turns.
    """

    def __init__(self, prompt: PromptFn = typer.prompt, echo: Callable[[str], None] = typer.echo):
        self.prompt = prompt
        self.echo = echo
        self._turn = asyncio.Lock()

    def _ask(self, question: str, choices: dict[str, str], default: str) -> str:
        keys = "/".join(choices)
        while True:
            answer = self.prompt(f"{question} [{keys}]", default=default).strip().lower()
            if answer in choices:
                return choices[answer]
            self.echo(f"Please answer one of: {keys}")

    def _overview(self, count: int) -> str:
        return self._ask(
            f"{count} conflict(s). Resolve (e)ach, keep all (l)ocal, all (r)emote, or (c)ancel?",
            {"e": "each", "l": "local", "r": "remote", "c": "cancel"},
            default="e",
        )

    def _per_item(self, label: str, local: str, remote: str) -> Resolution:
        self.echo(label)
        self.echo(f"  local:  {local}")
        self.echo(f"  remote: {remote}")
        answer = self._ask(
            "Keep (l)ocal, (r)emote, (s)kip or (c)ancel?",
            {"l": "local", "r": "remote", "s": "skip", "c": "cancel"},
            default="l",
        )
        if answer == "cancel":
            raise _Cancelled
        return Resolution(answer)

    def _run(
        self,
        conflicts: Sequence[ConflictRecord | FileConflictRecord],
        ask_one: Callable[[ConflictRecord | FileConflictRecord], ConflictResolution],
    ) -> list[ConflictResolution] | None:
        mode = self._overview(len(conflicts))
        if mode == "cancel":
            return None
        if mode in ("local", "remote"):
            return resolve_all(conflicts, Resolution(mode))
        try:
            return [ask_one(c) for c in conflicts]
        except _Cancelled:
            return None

    async def _in_thread(
        self,
        conflicts: Sequence[ConflictRecord | FileConflictRecord],
        ask_one: Callable[[ConflictRecord | FileConflictRecord], ConflictResolution],
        header: str | None = None,
    ) -> list[ConflictResolution] | None:
        def dialogue() -> list[ConflictResolution] | None:
            if header:
                self.echo(header)
            return self._run(conflicts, ask_one)

        async with self._turn:
            return await asyncio.to_thread(dialogue)

    async def resolve_todos(
        self,
        conflicts: Sequence[ConflictRecord],
        auto_merged: Sequence[Todo],
        base: Sequence[Todo],
    ) -> list[ConflictResolution] | None:
        summary = f"Merged without conflict: {format_merge_summary(auto_merged, base)}"

        def ask_one(c: ConflictRecord | FileConflictRecord) -> ConflictResolution:
            assert isinstance(c, ConflictRecord)
            choice = self._per_item(
                f"Todo #{c.todo_id} ({c.kind})", describe_todo(c.local), describe_todo(c.remote)
            )
            return ConflictResolution(key=c.todo_id, resolution=choice)

        return await self._in_thread(conflicts, ask_one, header=summary)

    async def resolve_files(
        self, conflicts: Sequence[FileConflictRecord]
    ) -> list[ConflictResolution] | None:
        def ask_one(c: ConflictRecord | FileConflictRecord) -> ConflictResolution:
            assert isinstance(c, FileConflictRecord)
            choice = self._per_item(
                f"File {c.path} ({c.kind})", describe_todos(c.local), describe_todos(c.remote)
            )
            return ConflictResolution(key=c.path, resolution=choice)

        return await self._in_thread(conflicts, ask_one)
