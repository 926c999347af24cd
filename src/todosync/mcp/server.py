"""MCP server exposing todo editing and gist sync tools."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from todosync.core.sync.visibility import DOCUMENT_SCOPES
from todosync.core.todos.service import TodoService
from todosync.models.sync import SyncMode
from todosync.models.todo import Scope
from todosync.remote.gist_client import GistClient
from todosync.resolvers import PolicyConflictResolver, ResolutionPolicy
from todosync.runtime import Runtime, build_runtime


def _parse_scope(scope: str) -> Scope | None:
    try:
        return Scope(scope)
    except ValueError:
        return None


def _bad_scope(scope: str) -> dict[str, Any]:
    return {"error": f"Unknown scope '{scope}'. Use user, workspace or file."}


# --- Core functions (testable without MCP context) ---


def todosync_list_todos(
    service: TodoService,
    *,
    scope: str = "user",
    file_path: str | None = None,
    completed: bool | None = None,
    notes: bool | None = None,
) -> dict[str, Any]:
    """List todos of a scope.

    Args:
        scope: "user", "workspace" or "file".
        file_path: File path, required for the file scope.
        completed: Only completed (True) or only open (False) todos.
        notes: Only notes (True) or only todos (False).
    """
    parsed = _parse_scope(scope)
    if parsed is None:
        return _bad_scope(scope)
    try:
        todos = service.list_todos(parsed, file_path=file_path, completed=completed, notes=notes)
    except ValueError as e:
        return {"error": str(e)}
    output: dict[str, Any] = {
        "scope": parsed.value,
        "todos": [t.to_dict() for t in todos],
        "count": len(todos),
    }
    if file_path:
        output["file_path"] = file_path
    return output


def todosync_list_files(service: TodoService) -> dict[str, Any]:
    """Files of the workspace that have todos attached."""
    files = service.list_files()
    return {
        "files": [{"file_path": path, "todo_count": count} for path, count in files],
        "count": len(files),
    }


def todosync_add_todo(
    service: TodoService,
    *,
    text: str,
    scope: str = "user",
    file_path: str | None = None,
    is_note: bool = False,
    is_markdown: bool = False,
) -> dict[str, Any]:
    """Add a todo (or note) at the end of a scope."""
    parsed = _parse_scope(scope)
    if parsed is None:
        return _bad_scope(scope)
    try:
        todo = service.add_todo(
            parsed, text, file_path=file_path, is_note=is_note, is_markdown=is_markdown
        )
    except (ValueError, PermissionError) as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "todo": todo.to_dict()}


def todosync_update_todo(
    service: TodoService,
    *,
    todo_id: int,
    scope: str = "user",
    file_path: str | None = None,
    text: str | None = None,
    completed: bool | None = None,
    is_note: bool | None = None,
    is_markdown: bool | None = None,
) -> dict[str, Any]:
    """Change fields of one todo."""
    parsed = _parse_scope(scope)
    if parsed is None:
        return _bad_scope(scope)
    try:
        todo = service.update_todo(
            parsed,
            todo_id,
            file_path=file_path,
            text=text,
            completed=completed,
            is_note=is_note,
            is_markdown=is_markdown,
        )
    except KeyError:
        return {"success": False, "error": f"Todo {todo_id} not found in {parsed}."}
    except (ValueError, PermissionError) as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "todo": todo.to_dict()}


def todosync_delete_todos(
    service: TodoService,
    *,
    todo_ids: list[int],
    scope: str = "user",
    file_path: str | None = None,
) -> dict[str, Any]:
    """Delete todos by id."""
    parsed = _parse_scope(scope)
    if parsed is None:
        return _bad_scope(scope)
    if not todo_ids:
        return {"success": False, "error": "No todo ids given."}
    try:
        deleted = service.delete_todos(parsed, todo_ids, file_path=file_path)
    except (ValueError, PermissionError) as e:
        return {"success": False, "error": str(e)}
    remaining = len(service.list_todos(parsed, file_path=file_path))
    return {"success": True, "deleted_ids": deleted, "remaining_count": remaining}


def todosync_move_todo(
    service: TodoService,
    *,
    todo_id: int,
    position: int,
    scope: str = "user",
    file_path: str | None = None,
) -> dict[str, Any]:
    """Move a todo to a 0-based position."""
    parsed = _parse_scope(scope)
    if parsed is None:
        return _bad_scope(scope)
    try:
        todos = service.move_todo(parsed, todo_id, position, file_path=file_path)
    except KeyError:
        return {"success": False, "error": f"Todo {todo_id} not found in {parsed}."}
    except (ValueError, PermissionError) as e:
        return {"success": False, "error": str(e)}
    return {"success": True, "order": [t.id for t in todos]}


def todosync_status(rt: Runtime) -> dict[str, Any]:
    """Mode, sync status and cache state of each document."""
    documents = []
    for scope in DOCUMENT_SCOPES:
        file_name = rt.settings.file_name(scope)
        entry = rt.store.load_entry(scope, file_name)
        error = rt.engine.last_errors.get(scope)
        info: dict[str, Any] = {
            "scope": scope.value,
            "mode": rt.store.get_mode(scope).value,
            "file": file_name,
            "status": rt.engine.status(scope).value,
            "dirty": entry.is_dirty if entry else False,
            "last_synced": entry.last_synced if entry else None,
        }
        if error is not None:
            info["error"] = {"kind": error.kind.value, "message": error.message}
        documents.append(info)
    gist_id = rt.settings.gist_id
    return {
        "gist_url": GistClient.gist_url(gist_id) if gist_id else None,
        "documents": documents,
        "counts": rt.service.get_counts(),
    }


async def todosync_sync(rt: Runtime, *, scope: str = "all") -> dict[str, Any]:
    """Run a sync pass now for one or both documents."""
    if scope == "all":
        scopes = [s for s in DOCUMENT_SCOPES if rt.store.get_mode(s) is SyncMode.GITHUB]
    else:
        parsed = _parse_scope(scope)
        if parsed is None:
            return _bad_scope(scope)
        scopes = [parsed.document]
    if not scopes:
        return {"results": [], "message": "No document is in github mode."}

    results = await asyncio.gather(*(rt.scheduler.sync_now(s) for s in scopes))
    output = []
    for s, result in zip(scopes, results, strict=True):
        entry: dict[str, Any] = {"scope": s.value, "success": result.success}
        if result.error is not None:
            entry["error"] = {
                "kind": result.error.kind.value,
                "message": result.error.message,
                "retryable": result.error.retryable,
            }
        output.append(entry)
    return {"results": output}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    runtime: Runtime
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open the state database and start polling; stop everything on shutdown."""
    rt = build_runtime(resolver=PolicyConflictResolver(ResolutionPolicy.CANCEL))
    rt.go_live()
    logger.info("todosync MCP server ready (gist {})", rt.settings.gist_id or "not configured")
    try:
        yield ServerContext(runtime=rt)
    finally:
        await rt.aclose()


mcp_server = FastMCP(
    "todosync",
    instructions="""\
Todo lists in three scopes: "user" (global), "workspace" (current project) and
"file" (todos attached to a file path inside the workspace).

Edits are saved locally right away. Scopes in github mode are uploaded to the
configured gist a few seconds after the last edit, and remote changes are
merged in on every poll. Use todosync_sync_tool to sync immediately and
todosync_status_tool to check for sync errors or conflicts.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def todosync_list_todos_tool(
    ctx: Context,
    scope: str = "user",
    file_path: str | None = None,
    completed: bool | None = None,
    notes: bool | None = None,
) -> dict[str, Any]:
    """List todos of a scope in display order.

    Args:
        scope: "user", "workspace" or "file".
        file_path: File path, required for the file scope.
        completed: Only completed (true) or only open (false) todos.
        notes: Only notes (true) or only todos (false).
    """
    return todosync_list_todos(
        _ctx(ctx).runtime.service,
        scope=scope,
        file_path=file_path,
        completed=completed,
        notes=notes,
    )


@mcp_server.tool()
async def todosync_list_files_tool(ctx: Context) -> dict[str, Any]:
    """List workspace files that have todos attached."""
    return todosync_list_files(_ctx(ctx).runtime.service)


@mcp_server.tool()
async def todosync_add_todo_tool(
    ctx: Context,
    text: str,
    scope: str = "user",
    file_path: str | None = None,
    is_note: bool = False,
    is_markdown: bool = False,
) -> dict[str, Any]:
    """Add a todo at the end of a scope.

    Args:
        text: Todo text.
        scope: "user", "workspace" or "file".
        file_path: File path, required for the file scope.
        is_note: Add a note instead of a todo.
        is_markdown: Text is markdown.
    """
    async with _ctx(ctx).lock:
        return todosync_add_todo(
            _ctx(ctx).runtime.service,
            text=text,
            scope=scope,
            file_path=file_path,
            is_note=is_note,
            is_markdown=is_markdown,
        )


@mcp_server.tool()
async def todosync_update_todo_tool(
    ctx: Context,
    todo_id: int,
    scope: str = "user",
    file_path: str | None = None,
    text: str | None = None,
    completed: bool | None = None,
    is_note: bool | None = None,
    is_markdown: bool | None = None,
) -> dict[str, Any]:
    """Change text, completion or kind of a todo.

    Args:
        todo_id: Todo id.
        scope: "user", "workspace" or "file".
        file_path: File path, required for the file scope.
        text: New text.
        completed: New completion state.
        is_note: Turn into a note (true) or a todo (false).
        is_markdown: Text is markdown.
    """
    async with _ctx(ctx).lock:
        return todosync_update_todo(
            _ctx(ctx).runtime.service,
            todo_id=todo_id,
            scope=scope,
            file_path=file_path,
            text=text,
            completed=completed,
            is_note=is_note,
            is_markdown=is_markdown,
        )


@mcp_server.tool()
async def todosync_delete_todos_tool(
    ctx: Context,
    todo_ids: list[int],
    scope: str = "user",
    file_path: str | None = None,
) -> dict[str, Any]:
    """Delete todos by id.

    Args:
        todo_ids: Ids to delete.
        scope: "user", "workspace" or "file".
        file_path: File path, required for the file scope.
    """
    async with _ctx(ctx).lock:
        return todosync_delete_todos(
            _ctx(ctx).runtime.service, todo_ids=todo_ids, scope=scope, file_path=file_path
        )


@mcp_server.tool()
async def todosync_move_todo_tool(
    ctx: Context,
    todo_id: int,
    position: int,
    scope: str = "user",
    file_path: str | None = None,
) -> dict[str, Any]:
    """Move a todo to a new 0-based position.

    Args:
        todo_id: Todo id.
        position: Target index (clamped to the list).
        scope: "user", "workspace" or "file".
        file_path: File path, required for the file scope.
    """
    async with _ctx(ctx).lock:
        return todosync_move_todo(
            _ctx(ctx).runtime.service,
            todo_id=todo_id,
            position=position,
            scope=scope,
            file_path=file_path,
        )


@mcp_server.tool()
async def todosync_status_tool(ctx: Context) -> dict[str, Any]:
    """Show sync mode, status, last sync time and todo counts per document."""
    return todosync_status(_ctx(ctx).runtime)


@mcp_server.tool()
async def todosync_sync_tool(ctx: Context, scope: str = "all") -> dict[str, Any]:
    """Sync with the gist now.

    Conflicting edits are not resolved automatically; a pass with conflicts
    fails with kind "cancelled" and leaves local data untouched.

    Args:
        scope: "user", "workspace" or "all".
    """
    return await todosync_sync(_ctx(ctx).runtime, scope=scope)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from todosync.config import LOG_FILE_NAME, resolve_data_directory
    from todosync.logging_config import add_log_file, configure_logging

    configure_logging(verbose=False)
    add_log_file(resolve_data_directory() / LOG_FILE_NAME)
    mcp_server.run(transport="stdio")
