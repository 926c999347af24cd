"""GitHub token lookup."""

import os
from pathlib import Path

from loguru import logger

from todosync.config import TOKEN_ENV_VAR, TOKEN_FILES


class FileTokenProvider:
    """Reads a GitHub token from the environment or the first token file found.

    The token is looked up on every call so that a token written while the
    process runs is picked up without a restart.
    """

    def __init__(self, token_files: list[Path] | None = None, *, env_var: str = TOKEN_ENV_VAR):
        self.token_files = token_files if token_files is not None else TOKEN_FILES
        self.env_var = env_var

    def get_token(self) -> str | None:
        env_token = os.environ.get(self.env_var, "").strip()
        if env_token:
            return env_token
        for token_path in self.token_files:
            try:
                token = token_path.read_text(encoding="utf-8").strip()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Cannot read token file {}: {}", token_path, e)
                continue
            if token:
                logger.debug("Using GitHub token from {}", token_path)
                return token
        return None

    def sign_out(self) -> bool:
        """Delete the first token file found. Returns True if one was removed."""
        for token_path in self.token_files:
            if token_path.exists():
                token_path.unlink()
                logger.info("Removed token file {}", token_path)
                return True
        return False


class StaticTokenProvider:
    """A fixed token, for scripting and tests."""

    def __init__(self, token: str | None) -> None:
        self.token = token

    def get_token(self) -> str | None:
        return self.token
