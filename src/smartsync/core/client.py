import logging
import threading
from typing import Any
from urllib.parse import quote

import requests
from pydantic import BaseModel

from ..config import Config
from ..exceptions import ConnectivityError, SmartSyncError
from ..validators import require_relative_path

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store, must-revalidate"}

# Returned by delete_file() when no HTTP response was received at all
STATUS_TRANSPORT_ERROR = 0

_TIMEOUT = (10, 60)


class RemoteStatus(BaseModel):
    """Reachability report from ``GET /status``."""

    online: bool
    file_count: int = 0

    model_config = {"frozen": True}


class SmartSyncClient:
    """Blocking HTTP client for a SmartSync server.

    Every vault path is joined with ``base_path`` before it goes on the
    wire, and checksum listings are filtered back to that prefix, so the
    rest of the code only ever sees vault-relative paths.

    Args:
        config: Connection settings.
        base_path: Optional remote directory holding the vault.
    """

    def __init__(self, config: Config, base_path: str = ""):
        self.config = config
        self.base_path = base_path.strip("/")
        self._thread_local = threading.local()
        self.base_url = config.base_url.rstrip("/")

    @property
    def session(self) -> requests.Session:
        """Session for the current thread."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def close(self) -> None:
        """Close the session of the current thread, if one was opened."""
        session = getattr(self._thread_local, "session", None)
        if session is not None:
            session.close()
            del self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.verify = not self.config.insecure
        session.headers.update(NO_CACHE_HEADERS)
        if self.config.auth_token:
            session.headers["Authorization"] = (
                f"Bearer {self.config.auth_token}"
            )
        return session

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _file_url(self, path: str) -> str:
        require_relative_path(path)
        remote = f"{self.base_path}/{path}" if self.base_path else path
        return self._url(f"file/{quote(remote, safe='/')}")

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send a request, mapping transport failures onto ``ConnectivityError``."""
        try:
            return self._get_session().request(
                method, url, timeout=_TIMEOUT, **kwargs
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise ConnectivityError(
                f"{method} {url} failed: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Server endpoints
    # ------------------------------------------------------------------

    def get_status(self) -> RemoteStatus:
        """
        Report whether the server is online.

        Never raises: any failure is reported as offline.
        """
        try:
            response = self._request("GET", self._url("status"))
            response.raise_for_status()
            payload = response.json()
        except (SmartSyncError, requests.RequestException, ValueError) as exc:
            logger.warning("Status request failed: %s", exc)
            return RemoteStatus(online=False)

        if not isinstance(payload, dict) or not isinstance(
            payload.get("online"), bool
        ):
            logger.warning("Invalid status response: %r", payload)
            return RemoteStatus(online=False)
        return RemoteStatus(
            online=payload["online"],
            file_count=int(payload.get("file_count") or 0),
        )

    def get_checksums(self) -> dict[str, str]:
        """
        Fetch the path -> digest listing of every remote file.

        Raises:
            ConnectivityError: If the server cannot be reached.
            SmartSyncError: If the response is not a checksum listing.
        """
        response = self._request("GET", self._url("checksums"))
        if response.status_code != 200:
            raise SmartSyncError(
                f"Checksum listing failed with HTTP {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SmartSyncError(f"Invalid checksum listing: {exc}") from exc

        checksums = payload.get("checksums") if isinstance(payload, dict) else None
        if not isinstance(checksums, dict):
            raise SmartSyncError("Checksum listing has no 'checksums' map")

        expected = payload.get("file_count")
        if isinstance(expected, int) and expected != len(checksums):
            logger.warning(
                "Server reported %d files but listed %d",
                expected,
                len(checksums),
            )
        return self._strip_base_path(checksums)

    def _strip_base_path(self, checksums: dict[str, Any]) -> dict[str, str]:
        prefix = f"{self.base_path}/" if self.base_path else ""
        files: dict[str, str] = {}
        for path, digest in checksums.items():
            # Directory entries and empty digests are not files
            if path.endswith("/") or not digest:
                continue
            if prefix:
                if not path.startswith(prefix):
                    continue
                path = path[len(prefix):]
            files[path] = str(digest)
        return files

    def get_file(self, path: str) -> tuple[bytes, int]:
        """
        Download one file.

        Returns:
            Tuple of (content, HTTP status). Content is only meaningful
            when the status is 200.

        Raises:
            ConnectivityError: If the server cannot be reached.
        """
        response = self._request("GET", self._file_url(path))
        return (response.content, response.status_code)

    def put_file(self, path: str, data: bytes) -> bool:
        """
        Upload one file. Returns True on HTTP 200/201.
        """
        try:
            response = self._request(
                "PUT",
                self._file_url(path),
                data=data,
                headers={"Content-Type": "application/octet-stream"},
            )
        except ConnectivityError as exc:
            logger.warning("Upload of %s failed: %s", path, exc)
            return False
        return response.status_code in (200, 201)

    def delete_file(self, path: str) -> int:
        """
        Delete one file and return the HTTP status.

        Returns ``STATUS_TRANSPORT_ERROR`` when no response was received.
        """
        try:
            response = self._request("DELETE", self._file_url(path))
        except ConnectivityError as exc:
            logger.warning("Delete of %s failed: %s", path, exc)
            return STATUS_TRANSPORT_ERROR
        return response.status_code

    def trigger_rescan(self) -> int:
        """
        Ask the server to rebuild its checksum cache.

        Returns:
            The number of files the server scanned.
        """
        response = self._request("PUT", self._url("checksums"))
        response.raise_for_status()
        payload = response.json()
        return int(payload.get("file_count") or 0)
