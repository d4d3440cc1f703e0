"""
HTTP (and local file) retrieval of vendor feeds.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import unquote, urlparse

import requests

from feed_catalog.core.config import settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class DownloadError(Exception):
    """Raised when a feed cannot be retrieved."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        self.message = message
        super().__init__(message)


class FeedDownloader:
    """
    Fetches feed payloads.

    Full downloads have no size cap and a generous read timeout; preview
    callers pass ``max_bytes`` and only that much of the body is read.
    Absolute paths and ``file://`` URLs are read from disk only when
    ``allow_local_paths`` is on (``FEED_ALLOW_LOCAL_PATHS``) and refused otherwise.
    """

    DEFAULT_HEADERS: Dict[str, str] = {"Accept": "*/*"}

    def __init__(
        self,
        timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
        allow_local_paths: Optional[bool] = None,
    ):
        self.timeout = timeout or settings.feed_download_timeout_seconds
        self.connect_timeout = connect_timeout or settings.feed_connect_timeout_seconds
        self.allow_local_paths = (
            settings.feed_allow_local_paths if allow_local_paths is None else allow_local_paths
        )
        self.session = session or requests.Session()
        self.session.headers.update(self.DEFAULT_HEADERS)
        self.session.headers["User-Agent"] = user_agent or settings.feed_user_agent

    def fetch(self, url: str, max_bytes: Optional[int] = None) -> bytes:
        """
        Download ``url`` and return the body.

        Args:
            url: HTTP(S) URL, ``file://`` URL or absolute local path
            max_bytes: Stop reading after this many bytes (preview mode)

        Raises:
            DownloadError: On transport failures, timeouts, non-2xx statuses
                and local paths while they are disabled
        """
        local_path = self._local_path(url)
        if local_path is not None:
            if not self.allow_local_paths:
                raise DownloadError(url, "Local feed paths are disabled")
            return self._read_local(url, local_path, max_bytes)

        try:
            with self.session.get(
                url,
                stream=True,
                timeout=(self.connect_timeout, self.timeout),
            ) as response:
                if not 200 <= response.status_code < 300:
                    raise DownloadError(url, f"HTTP {response.status_code}", status_code=response.status_code)
                body = self._read_body(response, max_bytes)
        except requests.RequestException as exc:
            raise DownloadError(url, f"Download failed: {exc}") from exc

        logger.info("Downloaded %d KB from %s", len(body) // 1024, url)
        return body

    @staticmethod
    def _read_body(response: requests.Response, max_bytes: Optional[int]) -> bytes:
        buffer = bytearray()
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            buffer.extend(chunk)
            if max_bytes and len(buffer) >= max_bytes:
                del buffer[max_bytes:]
                break
        return bytes(buffer)

    @staticmethod
    def _local_path(url: str) -> Optional[Path]:
        if url.startswith("/"):
            return Path(url)
        parsed = urlparse(url)
        if parsed.scheme == "file":
            return Path(unquote(parsed.path))
        return None

    @staticmethod
    def _read_local(url: str, path: Path, max_bytes: Optional[int]) -> bytes:
        try:
            with path.open("rb") as handle:
                return handle.read(max_bytes) if max_bytes else handle.read()
        except OSError as exc:
            raise DownloadError(url, f"Cannot read local feed: {exc}") from exc
