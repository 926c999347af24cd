"""GitHub Gist REST client.

Every call returns a ``SyncResult``; HTTP and transport failures become typed
``SyncError`` values instead of exceptions.
"""

from dataclasses import dataclass
from typing import Any

import requests
from loguru import logger

from todosync.config import GIST_API_URL, GIST_WEB_URL, REQUEST_TIMEOUT, is_valid_gist_id
from todosync.models.sync import ErrorKind, SyncResult
from todosync.protocols import TokenProvider

# status code -> (kind, retryable); anything else is unknown and retryable
_STATUS_ERRORS: dict[int, tuple[ErrorKind, bool]] = {
    401: (ErrorKind.AUTH, True),
    403: (ErrorKind.AUTH, True),
    404: (ErrorKind.NOT_FOUND, False),
    422: (ErrorKind.VALIDATION, False),
    429: (ErrorKind.RATE_LIMIT, True),
}


@dataclass(frozen=True)
class GistFileInfo:
    display_name: str
    full_path: str
    size: int


class GistClient:
    """Reads and writes files of one GitHub Gist."""

    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        session: requests.Session | None = None,
        api_url: str = GIST_API_URL,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.token_provider = token_provider
        self.sess = session or requests.Session()
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def _headers(self) -> dict[str, str] | None:
        token = self.token_provider.get_token()
        if not token:
            return None
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github.v3+json",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _error_from_response(response: requests.Response) -> SyncResult[Any]:
        status = response.status_code
        message = f"HTTP {status}: {response.reason}"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            if body.get("message"):
                message = str(body["message"])
            errors = body.get("errors")
            if isinstance(errors, list) and errors:
                details = ", ".join(
                    str(e.get("message") or e.get("code") or e) if isinstance(e, dict) else str(e)
                    for e in errors
                )
                message += f" - Details: {details}"
        kind, retryable = _STATUS_ERRORS.get(status, (ErrorKind.UNKNOWN, True))
        logger.warning("GitHub API error: status={} kind={} message={}", status, kind, message)
        return SyncResult.fail(kind, message, retryable=retryable)

    def _request(self, method: str, url: str, **kwargs: Any) -> SyncResult[requests.Response]:
        headers = self._headers()
        if headers is None:
            return SyncResult.fail(ErrorKind.AUTH, "Not signed in to GitHub", retryable=True)
        logger.debug("{} {}", method, url)
        try:
            response = self.sess.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.warning("Request to {} failed: {}", url, e)
            return SyncResult.fail(ErrorKind.NETWORK, str(e) or type(e).__name__, retryable=True)
        if not response.ok:
            return self._error_from_response(response)
        return SyncResult.ok(response)

    def _check_id(self, gist_id: str) -> SyncResult[Any] | None:
        if is_valid_gist_id(gist_id):
            return None
        return SyncResult.fail(
            ErrorKind.VALIDATION, f"Invalid gist id: {gist_id!r}", retryable=False
        )

    def fetch_document(self, gist_id: str) -> SyncResult[dict[str, Any]]:
        """Fetch the gist JSON, including its ``files`` map."""
        if (bad := self._check_id(gist_id)) is not None:
            return bad
        result = self._request("GET", f"{self.api_url}/{gist_id}")
        if not result.success or result.data is None:
            return SyncResult.from_error(result.error)
        try:
            data = result.data.json()
        except ValueError as e:
            return SyncResult.fail(ErrorKind.UNKNOWN, f"Invalid gist response: {e}", retryable=True)
        if not isinstance(data, dict):
            return SyncResult.fail(ErrorKind.UNKNOWN, "Invalid gist response", retryable=True)
        data.setdefault("files", {})
        return SyncResult.ok(data)

    def read_file(self, gist_id: str, name: str) -> SyncResult[str]:
        """Return the content of ``name``; large files are fetched from their raw URL."""
        gist = self.fetch_document(gist_id)
        if not gist.success or gist.data is None:
            return SyncResult.from_error(gist.error)

        file = gist.data["files"].get(name)
        if not file:
            return SyncResult.fail(
                ErrorKind.NOT_FOUND, f"File '{name}' not found in gist", retryable=False
            )
        if file.get("content") is not None and not file.get("truncated"):
            return SyncResult.ok(file["content"])

        raw_url = file.get("raw_url")
        if not raw_url:
            return SyncResult.fail(
                ErrorKind.UNKNOWN, f"File '{name}' has no content", retryable=True
            )
        raw = self._request("GET", raw_url)
        if not raw.success or raw.data is None:
            return SyncResult.from_error(raw.error)
        return SyncResult.ok(raw.data.text)

    def write_file(self, gist_id: str, name: str, content: str) -> SyncResult[None]:
        """Create or replace ``name`` in the gist. Empty content is refused."""
        if not content.strip():
            return SyncResult.fail(
                ErrorKind.VALIDATION, "Cannot write empty content to gist", retryable=False
            )
        if (bad := self._check_id(gist_id)) is not None:
            return bad
        result = self._request(
            "PATCH", f"{self.api_url}/{gist_id}", json={"files": {name: {"content": content}}}
        )
        if not result.success:
            return SyncResult.from_error(result.error)
        logger.debug("Wrote {} ({} bytes) to gist {}", name, len(content), gist_id)
        return SyncResult.ok(None)

    def list_files(self, gist_id: str, prefix: str) -> SyncResult[list[GistFileInfo]]:
        """JSON files in the gist whose names start with ``prefix``."""
        gist = self.fetch_document(gist_id)
        if not gist.success or gist.data is None:
            return SyncResult.from_error(gist.error)
        files = [
            GistFileInfo(
                display_name=file_name[len(prefix) : -len(".json")],
                full_path=file_name,
                size=int((file_data or {}).get("size", 0)),
            )
            for file_name, file_data in gist.data["files"].items()
            if file_name.startswith(prefix) and file_name.endswith(".json")
        ]
        return SyncResult.ok(sorted(files, key=lambda f: f.full_path))

    def verify_gist(self, gist_id: str) -> SyncResult[bool]:
        result = self.fetch_document(gist_id)
        if not result.success:
            return SyncResult.from_error(result.error)
        return SyncResult.ok(True)

    @staticmethod
    def gist_url(gist_id: str) -> str:
        return f"{GIST_WEB_URL}/{gist_id}"
