"""
Create-vs-update decisions for normalized feed records.
"""
from __future__ import annotations

import logging
import threading
from contextlib import ExitStack
from typing import Dict, List, Optional, Tuple

from .mapper import NormalizedRecord, validate_record

logger = logging.getLogger(__name__)

# Checked in priority order; the first one present in the path wins.
CATEGORY_DELIMITERS = (" | ", "|", " > ", ">")

OUTCOME_CREATED = "created"
OUTCOME_UPDATED = "updated"
OUTCOME_SKIPPED = "skipped"

KEY_LOCK_STRIPES = 64


def split_category_path(path: str) -> List[str]:
    """Split ``"A | B | C"`` style paths into trimmed, non-empty segments."""
    if not path:
        return []
    for delimiter in CATEGORY_DELIMITERS:
        if delimiter in path:
            parts = path.split(delimiter)
            break
    else:
        parts = [path]
    return [part.strip() for part in parts if part.strip()]


class CategoryResolver:
    """
    Resolves category paths to leaf category ids, creating missing ancestors.

    Resolved prefixes are cached for the lifetime of the resolver (one import
    run). The cache is only an optimization: the store's find-or-create is
    idempotent, so racing workers converge on the same rows.
    """

    def __init__(self, store):
        self._store = store
        self._cache: Dict[Tuple[str, ...], str] = {}
        self._lock = threading.Lock()

    def resolve(self, path: str) -> Optional[str]:
        segments = split_category_path(path)
        parent_id: Optional[str] = None
        walked: List[str] = []

        for segment in segments:
            walked.append(segment)
            key = tuple(walked)
            with self._lock:
                cached = self._cache.get(key)
            if cached is None:
                cached = self._store.find_or_create_category(segment, parent_id)
                with self._lock:
                    self._cache[key] = cached
            parent_id = cached

        return parent_id


class ProductReconciler:
    """
    Matches records to catalog products by EAN, then SKU, and applies the write.

    Workers share one reconciler. Records carrying the same EAN or SKU are
    serialized on a striped lock from lookup to commit, so a key repeated in
    one feed yields a single product.
    """

    def __init__(self, store, category_resolver: Optional[CategoryResolver] = None):
        self._store = store
        self._categories = category_resolver or CategoryResolver(store)
        self._key_locks = [threading.Lock() for _ in range(KEY_LOCK_STRIPES)]

    def match(self, record: NormalizedRecord) -> Optional[str]:
        """
        Return the id of the existing product for ``record``, if any.

        EAN is the global product code and outranks the vendor-specific SKU.
        """
        if record.ean:
            product_id = self._store.find_product_by_ean(record.ean)
            if product_id:
                return product_id
        if record.sku:
            return self._store.find_product_by_sku(record.sku)
        return None

    def reconcile(self, record: NormalizedRecord, feed_id: Optional[str] = None) -> Tuple[str, Optional[str]]:
        """
        Upsert one record.

        Returns:
            Tuple of (outcome, product_id). Skipped records have no product id.
            Store errors propagate so the caller can count them.
        """
        if validate_record(record) is not None:
            return OUTCOME_SKIPPED, None

        category_id = self._categories.resolve(record.category_path) if record.category_path else None

        with ExitStack() as stack:
            for lock in self._locks_for(record):
                stack.enter_context(lock)
            return self._write(record, category_id, feed_id)

    def _locks_for(self, record: NormalizedRecord) -> List[threading.Lock]:
        # Sorted stripe order keeps two-key records from deadlocking each other.
        stripes = set()
        if record.ean:
            stripes.add(hash(("ean", record.ean)) % KEY_LOCK_STRIPES)
        if record.sku:
            stripes.add(hash(("sku", record.sku)) % KEY_LOCK_STRIPES)
        return [self._key_locks[stripe] for stripe in sorted(stripes)]

    def _write(
        self, record: NormalizedRecord, category_id: Optional[str], feed_id: Optional[str]
    ) -> Tuple[str, str]:
        attributes = list(record.parameters)
        image_urls = list(record.image_urls)
        product_id = self.match(record)

        if product_id is None:
            fields = record.canonical_fields()
            fields["category_id"] = category_id
            product_id = self._store.create_product(fields, feed_id, attributes=attributes, image_urls=image_urls)
            return OUTCOME_CREATED, product_id

        self._store.update_product(
            product_id,
            self._update_fields(record, category_id),
            attributes=attributes,
            image_urls=image_urls or None,
        )
        return OUTCOME_UPDATED, product_id

    @staticmethod
    def _update_fields(record: NormalizedRecord, category_id: Optional[str]) -> Dict[str, object]:
        fields: Dict[str, object] = {
            "title": record.title,
            "description": record.description,
            "image_url": record.image_url,
            "price": record.price,
        }
        # Optional fields only overwrite when the vendor sent them.
        for name in ("brand", "short_description", "affiliate_url"):
            value = getattr(record, name)
            if value:
                fields[name] = value
        if category_id:
            fields["category_id"] = category_id
        return fields
