"""Configuration constants and settings loading for todosync."""

import json
import os
import re
from dataclasses import dataclass, replace
from pathlib import Path

from loguru import logger

from todosync.models.todo import Scope

# Poll interval bounds and default, in seconds.
MIN_POLL_INTERVAL: int = 30
MAX_POLL_INTERVAL: int = 600
DEFAULT_POLL_INTERVAL: int = 180

# Quiet period after the last local edit before a sync pass runs, in seconds.
DEBOUNCE_DELAY: float = 3.0

# Timer-driven passes are skipped this long after a rate-limit response, in seconds.
RATE_LIMIT_RETRY_DELAY: int = 900

GIST_API_URL: str = "https://api.github.com/gists"
GIST_WEB_URL: str = "https://gist.github.com"
REQUEST_TIMEOUT: float = 30.0

USER_FILE_PREFIX: str = "user-"
WORKSPACE_FILE_PREFIX: str = "workspace-"
DEFAULT_USER_FILE: str = "user-todos.json"

GIST_ID_RE = re.compile(r"^[a-f0-9]{32}$", re.IGNORECASE)
FILE_NAME_RE = re.compile(r'^[^\\/:*?"<>|]+$')

TOKEN_ENV_VAR: str = "TODOSYNC_GITHUB_TOKEN"

# GitHub token location. First file found is used.
TOKEN_FILES: list[Path] = [
    Path("~/.config/todosync-token.txt").expanduser(),
    Path("~/.config/secret/todosync-token.txt").expanduser(),
]

# Settings file. First file found is used.
CONFIG_FILES: list[Path] = [
    Path("~/.config/todosync/config.json").expanduser(),
    Path("~/.todosync.json").expanduser(),
]

# Directory with the state database. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/todosync").expanduser(),
    Path("~/.todosync").expanduser(),
]

STATE_DB_NAME: str = "state.db"
LOG_FILE_NAME: str = "todosync.log"


def resolve_data_directory() -> Path:
    """Return the first existing data directory, or the first candidate if none exist."""
    env = os.environ.get("TODOSYNC_DATA_DIR")
    if env:
        return Path(env)
    for d in DATA_DIRECTORIES:
        if d.is_dir():
            return d
    return DATA_DIRECTORIES[0]


def clamp_poll_interval(seconds: int) -> int:
    return max(MIN_POLL_INTERVAL, min(MAX_POLL_INTERVAL, int(seconds)))


def is_valid_gist_id(gist_id: str) -> bool:
    return bool(GIST_ID_RE.match(gist_id))


def is_valid_file_name(name: str) -> bool:
    return bool(FILE_NAME_RE.match(name)) and name.endswith(".json")


def workspace_file_name(workspace_name: str) -> str:
    """Default remote file for a workspace: ``workspace-<name>.json``."""
    safe = re.sub(r'[\\/:*?"<>|\s]+', "-", workspace_name.strip()).strip("-") or "default"
    return f"{WORKSPACE_FILE_PREFIX}{safe}.json"


@dataclass(frozen=True)
class SyncSettings:
    """Settings consumed by the sync engine and scheduler."""

    gist_id: str | None = None
    user_file: str = DEFAULT_USER_FILE
    workspace_name: str = "default"
    workspace_file: str | None = None
    poll_interval: int = DEFAULT_POLL_INTERVAL
    poll_only_when_visible: bool = True

    @property
    def workspace_file_name(self) -> str:
        return self.workspace_file or workspace_file_name(self.workspace_name)

    def file_name(self, scope: Scope) -> str:
        """Remote file holding the document of ``scope``."""
        if scope.document is Scope.USER:
            return self.user_file
        return self.workspace_file_name

    def with_changes(self, **changes: object) -> "SyncSettings":
        return replace(self, **changes)  # type: ignore[arg-type]


_ENV_OVERRIDES: dict[str, str] = {
    "TODOSYNC_GIST_ID": "gist_id",
    "TODOSYNC_USER_FILE": "user_file",
    "TODOSYNC_WORKSPACE": "workspace_name",
    "TODOSYNC_WORKSPACE_FILE": "workspace_file",
    "TODOSYNC_POLL_INTERVAL": "poll_interval",
    "TODOSYNC_POLL_ONLY_WHEN_VISIBLE": "poll_only_when_visible",
}

_JSON_KEYS: dict[str, str] = {
    "gistId": "gist_id",
    "userFile": "user_file",
    "workspaceName": "workspace_name",
    "workspaceFile": "workspace_file",
    "pollInterval": "poll_interval",
    "pollOnlyWhenVisible": "poll_only_when_visible",
}


def _coerce(field_name: str, value: object) -> object:
    if field_name == "poll_interval":
        return clamp_poll_interval(int(value))  # type: ignore[call-overload]
    if field_name == "poll_only_when_visible":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    return str(value) if value is not None else None


def _apply(values: dict[str, object], field_name: str, value: object, source: object) -> None:
    try:
        values[field_name] = _coerce(field_name, value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid {} {!r} from {}", field_name, value, source)


def load_settings(config_files: list[Path] | None = None) -> SyncSettings:
    """Load settings from the first config file found, then apply ``TODOSYNC_*`` overrides."""
    values: dict[str, object] = {}

    for path in config_files if config_files is not None else CONFIG_FILES:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            continue
        except (OSError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable config file {}", path)
            continue
        if not isinstance(raw, dict):
            logger.warning("Ignoring config file {}: not a JSON object", path)
            continue
        for key, field_name in _JSON_KEYS.items():
            if key in raw:
                _apply(values, field_name, raw[key], path)
        logger.debug("Loaded settings from {}", path)
        break

    for env_name, field_name in _ENV_OVERRIDES.items():
        env_value = os.environ.get(env_name)
        if env_value:
            _apply(values, field_name, env_value, env_name)

    settings = SyncSettings(**values)  # type: ignore[arg-type]
    if settings.gist_id and not is_valid_gist_id(settings.gist_id):
        logger.warning("Configured gist id {!r} does not look like a gist id", settings.gist_id)
    return settings


def save_settings(settings: SyncSettings, path: Path | None = None) -> Path:
    """Write settings as JSON to ``path`` (default: the first config file candidate)."""
    target = path or CONFIG_FILES[0]
    target.parent.mkdir(parents=True, exist_ok=True)
    data = {key: getattr(settings, field_name) for key, field_name in _JSON_KEYS.items()}
    target.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return target
