import logging
import threading
from typing import Any

import requests

from ..config import Config
from ..errors import RemoteApiError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500
CONNECT_TIMEOUT = 10


class SyncApiClient:
    """HTTPS/JSON client for the remote sync endpoints.

    Every transport, HTTP, and payload failure is raised as
    ``RemoteApiError`` so the engine can report it before touching disk.
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = self._get_base_url()

    @property
    def session(self) -> requests.Session:
        """Return the current thread's session."""
        return self._get_session()

    def _get_base_url(self) -> str:
        return (
            f"{self.config.api_url.rstrip('/')}"
            f"/projects/{self.config.project}/sync"
        )

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.verify = not self.config.insecure
        session.headers.update(self._auth_headers())
        session.headers["Accept"] = "application/json"
        return session

    def _auth_headers(self) -> dict[str, str]:
        if self.config.access_token:
            return {"Authorization": f"Bearer {self.config.access_token}"}
        if self.config.api_key:
            return {"X-API-Key": self.config.api_key}
        return {}

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Send a request to a sync endpoint and return the decoded JSON object.
        """
        url = f"{self.base_url}/{endpoint}"
        session = self._get_session()
        logger.debug("%s %s params=%s", method, url, params)
        try:
            response = session.request(
                method,
                url,
                params=params,
                json=json_body,
                timeout=(CONNECT_TIMEOUT, self.config.timeout),
            )
        except requests.RequestException as e:
            raise RemoteApiError(
                f"Request to {url} failed: {e}"
            ) from e

        if not response.ok:
            raise RemoteApiError(
                f"{method} {endpoint} returned HTTP "
                f"{response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteApiError(
                f"{method} {endpoint} returned invalid JSON",
                status_code=response.status_code,
            ) from e

        if not isinstance(payload, dict):
            raise RemoteApiError(
                f"{method} {endpoint} returned a {type(payload).__name__}, "
                "expected a JSON object",
                status_code=response.status_code,
            )
        return payload

    def pull(
        self, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> dict[str, Any]:
        """
        Fetch one page of remote entries plus the remote config.
        """
        return self._request(
            "GET", "pull", params={"limit": limit, "offset": offset}
        )

    def pull_all(self, page_size: int = DEFAULT_PAGE_SIZE) -> dict[str, Any]:
        """
        Fetch every remote entry by following ``hasMore``.

        Args:
            page_size: Entries requested per page.

        Returns:
            A single pull payload with all entries concatenated and the
            config block of the first page.

        Raises:
            RemoteApiError: On any failed page, or when the server keeps
                reporting ``hasMore`` without returning entries.
        """
        entries: list[Any] = []
        config: Any = None
        offset = 0
        while True:
            page = self.pull(limit=page_size, offset=offset)
            page_entries = page.get("entries") or []
            if not isinstance(page_entries, list):
                raise RemoteApiError(
                    "Pull response 'entries' is not a list"
                )
            if config is None:
                config = page.get("config")
            entries.extend(page_entries)
            offset += len(page_entries)
            if not page.get("hasMore"):
                break
            if not page_entries:
                raise RemoteApiError(
                    f"Pull pagination stalled at offset {offset}"
                )
        logger.debug("Pulled %d remote entries", len(entries))
        return {
            "entries": entries,
            "config": config,
            "total": len(entries),
            "hasMore": False,
        }

    def push(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Send local changes to the remote store.

        Args:
            payload: Wire-format push request
                (``{entries, deletions, config, message}``).

        Returns:
            The decoded push response.
        """
        return self._request("POST", "push", json_body=payload)


def _error_detail(response: requests.Response) -> str:
    """Best-effort error message from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return (response.text or response.reason or "").strip()[:200]
    if isinstance(body, dict):
        for key in ("message", "error", "detail", "title"):
            if isinstance(body.get(key), str):
                return body[key]
    return str(body)[:200]
