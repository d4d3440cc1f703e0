import json
import logging
from typing import Any, Iterator, List

from feed_catalog.domain.feeds.records import RawRecord

logger = logging.getLogger(__name__)

# Checked in order; the first key holding a list wins.
WRAPPER_KEYS = ("products", "items", "data", "results", "offers")


def _locate_items(data: Any) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in WRAPPER_KEYS:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


def iter_json_records(file_content: bytes) -> Iterator[RawRecord]:
    """
    Yield item objects from a JSON feed.

    Accepts a top-level array of objects or an object wrapping such an array
    under one of ``WRAPPER_KEYS``. Any other shape yields nothing.
    """
    try:
        data = json.loads(file_content.decode("utf-8-sig", errors="replace"))
    except ValueError as exc:
        logger.warning("JSON feed could not be decoded: %s", exc)
        return

    for item in _locate_items(data):
        if isinstance(item, dict):
            yield item


def process_json(file_content: bytes) -> List[RawRecord]:
    """Process a JSON feed and return its item objects."""
    return list(iter_json_records(file_content))
