"""
Pytest configuration and shared fixtures for the feed catalog tests.

Every test that touches the database gets its own SQLite file under
``tmp_path``; nothing here needs a running PostgreSQL server. Remote
collaborators (downloader, search index) are replaced by in-process fakes.
"""
import os
import threading
from typing import Dict, List, Optional, Sequence, Tuple

# Avoid database bootstrap when the application module is imported.
os.environ["SKIP_DB_INIT"] = "1"

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from feed_catalog.db import models  # noqa: E402,F401
from feed_catalog.db.session import Base, build_engine  # noqa: E402
from feed_catalog.domain.feeds.catalog_store import SqlCatalogStore  # noqa: E402
from feed_catalog.domain.feeds.progress import ProgressTracker  # noqa: E402
from feed_catalog.integrations.downloader import DownloadError  # noqa: E402


def build_shop_xml(items: Sequence[Dict[str, str]], params_per_item: int = 0) -> bytes:
    """Render a Heureka-style SHOP document with one SHOPITEM per dict."""
    parts = ['<?xml version="1.0" encoding="utf-8"?>', "<SHOP>"]
    for item in items:
        parts.append("<SHOPITEM>")
        for name, value in item.items():
            parts.append(f"<{name}>{value}</{name}>")
        for index in range(params_per_item):
            parts.append(
                f"<PARAM><PARAM_NAME>Param {index + 1}</PARAM_NAME><VAL>Value {index + 1}</VAL></PARAM>"
            )
        parts.append("</SHOPITEM>")
    parts.append("</SHOP>")
    return "\n".join(parts).encode("utf-8")


class FakeDownloader:
    """Serves canned payloads by URL and remembers every request."""

    def __init__(self, payloads: Optional[Dict[str, object]] = None):
        self.payloads: Dict[str, object] = dict(payloads or {})
        self.calls: List[Tuple[str, Optional[int]]] = []

    def fetch(self, url: str, max_bytes: Optional[int] = None) -> bytes:
        self.calls.append((url, max_bytes))
        payload = self.payloads.get(url)
        if payload is None:
            raise DownloadError(url, "HTTP 404", status_code=404)
        if isinstance(payload, Exception):
            raise payload
        return payload


class BlockingDownloader(FakeDownloader):
    """Holds every fetch until ``release`` is called."""

    def __init__(self, payloads=None):
        super().__init__(payloads)
        self.entered = threading.Event()
        self._gate = threading.Event()

    def release(self) -> None:
        self._gate.set()

    def fetch(self, url: str, max_bytes: Optional[int] = None) -> bytes:
        self.entered.set()
        self._gate.wait(timeout=10)
        return super().fetch(url, max_bytes)


class FakeSearchIndex:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.documents: List[dict] = []
        self.refreshed = 0

    def bulk_upsert(self, documents):
        if self.fail:
            raise RuntimeError("search cluster unavailable")
        self.documents.extend(documents)
        return len(documents)

    def refresh(self):
        self.refreshed += 1


class InMemoryCatalogStore:
    """Thread-safe dictionary store used to exercise concurrent workers."""

    def __init__(self):
        self._lock = threading.Lock()
        self.products: Dict[str, dict] = {}
        self.categories: Dict[Tuple[Optional[str], str], str] = {}
        self.attributes: Dict[str, list] = {}
        self.images: Dict[str, list] = {}
        self._sequence = 0

    def _next_id(self, prefix: str) -> str:
        self._sequence += 1
        return f"{prefix}-{self._sequence}"

    def find_product_by_ean(self, ean):
        with self._lock:
            return next((pid for pid, row in self.products.items() if ean and row.get("ean") == ean), None)

    def find_product_by_sku(self, sku):
        with self._lock:
            return next((pid for pid, row in self.products.items() if sku and row.get("sku") == sku), None)

    def create_product(self, fields, feed_id=None, attributes=(), image_urls=()):
        with self._lock:
            product_id = self._next_id("product")
            self.products[product_id] = dict(fields, feed_id=feed_id)
            self.attributes[product_id] = list(attributes)
            if image_urls:
                self.images[product_id] = list(image_urls)
            return product_id

    def update_product(self, product_id, fields, attributes=None, image_urls=None):
        with self._lock:
            self.products[product_id].update(fields)
            if attributes is not None:
                self.attributes[product_id] = list(attributes)
            if image_urls:
                self.images[product_id] = list(image_urls)

    def replace_attributes(self, product_id, attributes):
        with self._lock:
            self.attributes[product_id] = list(attributes)

    def replace_images(self, product_id, urls):
        with self._lock:
            self.images[product_id] = list(urls)

    def find_or_create_category(self, name, parent_id=None):
        with self._lock:
            key = (parent_id, name.lower())
            if key not in self.categories:
                self.categories[key] = self._next_id("category")
            return self.categories[key]

    def list_product_documents(self, product_ids):
        with self._lock:
            return [dict(self.products[pid], id=pid) for pid in product_ids if pid in self.products]

    def mark_feed_run_started(self, feed_id):
        pass

    def record_feed_run_result(self, feed_id, status, product_count=None):
        pass

    def record_feed_history(self, feed_id, summary):
        pass


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def store(session_factory):
    return SqlCatalogStore(session_factory)


@pytest.fixture
def tracker():
    return ProgressTracker()


@pytest.fixture
def feed(store):
    return store.create_feed(
        {
            "name": "Test vendor",
            "url": "https://vendor.example/feed.xml",
            "type": "xml",
            "xml_item_path": "SHOPITEM",
        }
    )
