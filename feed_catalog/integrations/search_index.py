"""
Minimal Elasticsearch client for pushing imported products to the search index.

Only the write path used by feed imports lives here: bulk indexing and a
refresh so the new documents become visible.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from feed_catalog.core.config import settings

logger = logging.getLogger(__name__)

BULK_BATCH_SIZE = 500


class SearchIndexError(Exception):
    """Raised when the search index rejects a request."""


class SearchIndexClient:
    def __init__(
        self,
        base_url: str,
        index: str = "products",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.index = index
        self.timeout = timeout
        self.session = session or requests.Session()

    def _bulk_body(self, documents: Sequence[Dict[str, Any]]) -> str:
        lines: List[str] = []
        for document in documents:
            lines.append(json.dumps({"index": {"_index": self.index, "_id": document["id"]}}))
            lines.append(json.dumps(document, default=str))
        return "\n".join(lines) + "\n"

    def bulk_upsert(self, documents: Sequence[Dict[str, Any]]) -> int:
        """
        Index (replace) documents by id in batches.

        Returns:
            Number of documents sent
        """
        sent = 0
        for start in range(0, len(documents), BULK_BATCH_SIZE):
            batch = documents[start:start + BULK_BATCH_SIZE]
            response = self.session.post(
                f"{self.base_url}/_bulk",
                data=self._bulk_body(batch).encode("utf-8"),
                headers={"Content-Type": "application/x-ndjson"},
                timeout=self.timeout,
            )
            if response.status_code >= 400:
                raise SearchIndexError(f"Bulk index failed: HTTP {response.status_code}")
            payload = response.json()
            if payload.get("errors"):
                logger.warning("Search index reported item errors in a bulk batch of %d documents", len(batch))
            sent += len(batch)
        return sent

    def refresh(self) -> None:
        """Force recently indexed documents to become searchable."""
        response = self.session.post(f"{self.base_url}/{self.index}/_refresh", timeout=self.timeout)
        if response.status_code >= 400:
            raise SearchIndexError(f"Index refresh failed: HTTP {response.status_code}")


def build_search_index() -> Optional[SearchIndexClient]:
    """Return a configured client, or None when no search index URL is set."""
    if not settings.elasticsearch_url:
        return None
    return SearchIndexClient(
        settings.elasticsearch_url,
        index=settings.elasticsearch_index,
        timeout=settings.search_timeout_seconds,
    )
