"""CLI for todosync: edit todos locally and sync them with a GitHub Gist."""

import asyncio
import json
from collections.abc import Iterator
from contextlib import contextmanager
from enum import StrEnum
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from loguru import logger

from todosync.config import (
    USER_FILE_PREFIX,
    WORKSPACE_FILE_PREFIX,
    LOG_FILE_NAME,
    clamp_poll_interval,
    is_valid_file_name,
    is_valid_gist_id,
    load_settings,
    resolve_data_directory,
    save_settings,
)
from todosync.core.sync.visibility import DOCUMENT_SCOPES
from todosync.logging_config import add_log_file, configure_logging
from todosync.models.sync import SyncMode, SyncResult, SyncStatus
from todosync.models.todo import Scope, Todo
from todosync.protocols import ConflictResolver
from todosync.remote.auth import FileTokenProvider
from todosync.remote.gist_client import GistClient
from todosync.resolvers import PolicyConflictResolver, PromptConflictResolver, ResolutionPolicy
from todosync.runtime import Runtime, build_runtime

app = typer.Typer(help="todosync: todo lists kept in sync through a GitHub Gist.")


class Prefer(StrEnum):
    ASK = "ask"
    LOCAL = "local"
    REMOTE = "remote"
    SKIP = "skip"
    CANCEL = "cancel"


class DocumentChoice(StrEnum):
    USER = "user"
    WORKSPACE = "workspace"
    ALL = "all"


ScopeOption = Annotated[
    Scope, typer.Option("--scope", "-s", help="user, workspace or file")
]
FileOption = Annotated[
    str | None, typer.Option("--file", "-f", help="File path, for --scope file")
]


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", "-d", help="Directory of the state database"),
    ] = None,
) -> None:
    configure_logging(verbose=verbose)
    ctx.obj = {"data_dir": data_dir, "verbose": verbose}


@contextmanager
def _open(ctx: typer.Context, *, resolver: ConflictResolver | None = None) -> Iterator[Runtime]:
    rt = build_runtime(data_dir=(ctx.obj or {}).get("data_dir"), resolver=resolver)
    try:
        yield rt
    finally:
        rt.conn.close()


def _documents(choice: DocumentChoice) -> list[Scope]:
    if choice is DocumentChoice.ALL:
        return list(DOCUMENT_SCOPES)
    return [Scope(choice.value)]


def _format_todo(todo: Todo) -> str:
    mark = "x" if todo.completed else " "
    if todo.is_note:
        return f"  {todo.id:>3}  (note) {todo.text}"
    return f"  {todo.id:>3}  [{mark}] {todo.text}"


def _fail(message: str) -> NoReturn:
    typer.echo(message, err=True)
    raise typer.Exit(1)


# --- Todo editing ---


@app.command(name="list")
def list_cmd(
    ctx: typer.Context,
    scope: ScopeOption = Scope.USER,
    file_path: FileOption = None,
    show_all: bool = typer.Option(True, "--all/--open", help="Include completed todos"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List todos of a scope."""
    with _open(ctx) as rt:
        try:
            todos = rt.service.list_todos(
                scope, file_path=file_path, completed=None if show_all else False
            )
        except ValueError as e:
            _fail(str(e))

        if output_json:
            typer.echo(json.dumps([t.to_dict() for t in todos], indent=2))
            return
        label = f"{scope} ({file_path})" if file_path else str(scope)
        typer.echo(f"{len(todos)} todos in {label}:")
        for todo in todos:
            typer.echo(_format_todo(todo))


@app.command()
def add(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Todo text"),
    scope: ScopeOption = Scope.USER,
    file_path: FileOption = None,
    note: bool = typer.Option(False, "--note", help="Add a note instead of a todo"),
    markdown: bool = typer.Option(False, "--markdown", "-m", help="Render text as markdown"),
) -> None:
    """Add a todo."""
    with _open(ctx) as rt:
        try:
            todo = rt.service.add_todo(
                scope, text, file_path=file_path, is_note=note, is_markdown=markdown
            )
        except ValueError as e:
            _fail(str(e))
        typer.echo(f"Added #{todo.id}: {todo.text}")
        _hint_unsynced(rt, scope)


@app.command()
def done(
    ctx: typer.Context,
    todo_id: int = typer.Argument(..., help="Todo id"),
    scope: ScopeOption = Scope.USER,
    file_path: FileOption = None,
    undo: bool = typer.Option(False, "--undo", help="Mark as not completed"),
) -> None:
    """Mark a todo as completed."""
    with _open(ctx) as rt:
        try:
            todo = rt.service.update_todo(
                scope, todo_id, file_path=file_path, completed=not undo
            )
        except (KeyError, ValueError) as e:
            _fail(str(e).strip("'\""))
        typer.echo(_format_todo(todo))
        _hint_unsynced(rt, scope)


@app.command()
def edit(
    ctx: typer.Context,
    todo_id: int = typer.Argument(..., help="Todo id"),
    text: str = typer.Argument(..., help="New text"),
    scope: ScopeOption = Scope.USER,
    file_path: FileOption = None,
) -> None:
    """Change the text of a todo."""
    with _open(ctx) as rt:
        try:
            todo = rt.service.update_todo(scope, todo_id, file_path=file_path, text=text)
        except (KeyError, ValueError) as e:
            _fail(str(e).strip("'\""))
        typer.echo(_format_todo(todo))
        _hint_unsynced(rt, scope)


@app.command()
def rm(
    ctx: typer.Context,
    todo_ids: list[int] = typer.Argument(..., help="Todo ids"),
    scope: ScopeOption = Scope.USER,
    file_path: FileOption = None,
) -> None:
    """Delete todos."""
    with _open(ctx) as rt:
        try:
            deleted = rt.service.delete_todos(scope, todo_ids, file_path=file_path)
        except ValueError as e:
            _fail(str(e))
        typer.echo(f"Deleted {len(deleted)} todo(s)")
        if deleted:
            _hint_unsynced(rt, scope)


@app.command()
def move(
    ctx: typer.Context,
    todo_id: int = typer.Argument(..., help="Todo id"),
    position: int = typer.Argument(..., help="New position, starting at 1"),
    scope: ScopeOption = Scope.USER,
    file_path: FileOption = None,
) -> None:
    """Move a todo to another position."""
    with _open(ctx) as rt:
        try:
            todos = rt.service.move_todo(scope, todo_id, position - 1, file_path=file_path)
        except (KeyError, ValueError) as e:
            _fail(str(e).strip("'\""))
        for todo in todos:
            typer.echo(_format_todo(todo))
        _hint_unsynced(rt, scope)


def _hint_unsynced(rt: Runtime, scope: Scope) -> None:
    if rt.store.get_mode(scope.document) is SyncMode.GITHUB:
        typer.echo("Not synced yet; run 'todosync sync' to upload.")


# --- Sync ---


def _resolver_for(prefer: Prefer) -> ConflictResolver:
    if prefer is Prefer.ASK:
        return PromptConflictResolver()
    return PolicyConflictResolver(ResolutionPolicy(prefer.value))


def _report(scope: Scope, result: SyncResult[None]) -> None:
    if result.success:
        typer.echo(f"{scope}: synced")
    elif result.error is not None:
        typer.echo(f"{scope}: {result.error.kind}: {result.error.message}", err=True)


async def _sync_scopes(rt: Runtime, scopes: list[Scope]) -> list[SyncResult[None]]:
    return list(await asyncio.gather(*(rt.scheduler.sync_now(scope) for scope in scopes)))


@app.command()
def sync(
    ctx: typer.Context,
    document: DocumentChoice = typer.Option(
        DocumentChoice.ALL, "--document", "-D", help="user, workspace or all"
    ),
    prefer: Prefer = typer.Option(
        Prefer.ASK, "--prefer", "-p", help="Conflict handling: ask, local, remote, skip, cancel"
    ),
) -> None:
    """Synchronize todos with the gist now."""
    with _open(ctx, resolver=_resolver_for(prefer)) as rt:
        if not rt.settings.gist_id:
            _fail("No gist configured. Run 'todosync config --gist-id <id>' first.")
        scopes = [s for s in _documents(document) if rt.store.get_mode(s) is SyncMode.GITHUB]
        if not scopes:
            typer.echo("Nothing to sync: no scope is in github mode. See 'todosync mode'.")
            return
        results = asyncio.run(_sync_scopes(rt, scopes))
        for scope, result in zip(scopes, results, strict=True):
            _report(scope, result)
        if not all(r.success for r in results):
            raise typer.Exit(1)


async def _watch(rt: Runtime, interval: int | None) -> None:
    rt.engine.on_status_change(lambda scope, status: typer.echo(f"{scope}: {status}"))
    if interval is not None:
        rt.coordinator.update_poll_interval(interval)
    rt.go_live()
    try:
        await asyncio.Event().wait()
    finally:
        await rt.aclose()


@app.command()
def watch(
    ctx: typer.Context,
    interval: Annotated[
        int | None,
        typer.Option("--interval", "-i", help="Poll interval in seconds (30-600)"),
    ] = None,
    prefer: Prefer = typer.Option(
        Prefer.CANCEL, "--prefer", "-p", help="How to resolve conflicts while watching"
    ),
) -> None:
    """Keep polling the gist until interrupted."""
    with _open(ctx, resolver=_resolver_for(prefer)) as rt:
        if not rt.settings.gist_id:
            _fail("No gist configured. Run 'todosync config --gist-id <id>' first.")
        obj = ctx.obj or {}
        data_dir = obj.get("data_dir") or resolve_data_directory()
        add_log_file(data_dir / LOG_FILE_NAME, verbose=obj.get("verbose", False))
        typer.echo(f"Watching gist {rt.settings.gist_id}, press Ctrl+C to stop")
        try:
            asyncio.run(_watch(rt, interval))
        except KeyboardInterrupt:
            typer.echo("Stopped.")


# --- Configuration and status ---


@app.command()
def status(ctx: typer.Context) -> None:
    """Show sync mode and cache state of each document."""
    with _open(ctx) as rt:
        gist = rt.settings.gist_id
        typer.echo(f"Gist: {GistClient.gist_url(gist) if gist else '(not configured)'}")
        for scope in DOCUMENT_SCOPES:
            mode = rt.store.get_mode(scope)
            file_name = rt.settings.file_name(scope)
            if mode is SyncMode.LOCAL:
                typer.echo(f"{scope}: local mode")
                continue
            entry = rt.store.load_entry(scope, file_name)
            if entry is None:
                state = SyncStatus.OFFLINE
            else:
                state = SyncStatus.DIRTY if entry.is_dirty else SyncStatus.SYNCED
            last = entry.last_synced if entry else "never"
            typer.echo(f"{scope}: github mode, {file_name}, {state}, last synced {last}")


@app.command()
def mode(
    ctx: typer.Context,
    document: DocumentChoice = typer.Argument(..., help="user, workspace or all"),
    new_mode: SyncMode = typer.Argument(..., help="local or github"),
) -> None:
    """Switch where a document's todos are stored."""
    with _open(ctx) as rt:
        for scope in _documents(document):
            rt.set_mode(scope, new_mode)
            typer.echo(f"{scope}: {new_mode} mode")


@app.command(name="config")
def config_cmd(
    gist_id: Annotated[str | None, typer.Option("--gist-id", help="Gist id")] = None,
    user_file: Annotated[str | None, typer.Option("--user-file", help="User file name")] = None,
    workspace: Annotated[str | None, typer.Option("--workspace", help="Workspace name")] = None,
    poll_interval: Annotated[
        int | None, typer.Option("--poll-interval", help="Poll interval in seconds")
    ] = None,
    config_file: Annotated[
        Path | None, typer.Option("--config-file", help="Settings file to write")
    ] = None,
) -> None:
    """Show or change settings."""
    settings = load_settings([config_file] if config_file else None)
    changes: dict[str, object] = {}
    if gist_id is not None:
        if not is_valid_gist_id(gist_id):
            _fail(f"Invalid gist id: {gist_id!r} (expected 32 hex characters)")
        changes["gist_id"] = gist_id
    if user_file is not None:
        if not is_valid_file_name(user_file):
            _fail(f"Invalid file name: {user_file!r}")
        changes["user_file"] = user_file
    if workspace is not None:
        changes["workspace_name"] = workspace
    if poll_interval is not None:
        changes["poll_interval"] = clamp_poll_interval(poll_interval)

    if changes:
        settings = settings.with_changes(**changes)
        path = save_settings(settings, config_file)
        logger.info("Saved settings to {}", path)

    typer.echo(f"gist id:        {settings.gist_id or '(not set)'}")
    typer.echo(f"user file:      {settings.user_file}")
    typer.echo(f"workspace file: {settings.workspace_file_name}")
    typer.echo(f"poll interval:  {settings.poll_interval}s")


@app.command()
def files(
    document: DocumentChoice = typer.Option(
        DocumentChoice.ALL, "--document", "-D", help="user, workspace or all"
    ),
) -> None:
    """List todo files stored in the gist."""
    settings = load_settings()
    if not settings.gist_id:
        _fail("No gist configured. Run 'todosync config --gist-id <id>' first.")
    client = GistClient(FileTokenProvider())
    for scope in _documents(document):
        prefix = USER_FILE_PREFIX if scope is Scope.USER else WORKSPACE_FILE_PREFIX
        result = client.list_files(settings.gist_id, prefix)
        if not result.success or result.data is None:
            _report(scope, SyncResult.from_error(result.error))
            raise typer.Exit(1)
        typer.echo(f"{scope} files:")
        for info in result.data:
            typer.echo(f"  {info.display_name:<24} {info.full_path} ({info.size} bytes)")


@app.command()
def disconnect(
    ctx: typer.Context,
    document: DocumentChoice = typer.Option(
        DocumentChoice.ALL, "--document", "-D", help="user, workspace or all"
    ),
) -> None:
    """Forget the cached gist copy and switch back to local mode."""
    with _open(ctx) as rt:
        for scope in _documents(document):
            removed = rt.engine.disconnect(scope)
            rt.set_mode(scope, SyncMode.LOCAL)
            typer.echo(f"{scope}: disconnected" + ("" if removed else " (nothing cached)"))


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from todosync.mcp.server import run_mcp_server

    run_mcp_server()
