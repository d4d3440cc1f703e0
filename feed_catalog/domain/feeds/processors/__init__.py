"""
Feed extractors.

Each extractor turns a byte buffer into a stream of raw records. The full run
materializes the stream with ``process_feed_content``; the feed preview uses
``preview_feed_content`` which keeps only a handful of samples while counting
the rest.
"""
from typing import Iterator, List, Optional, Set

from feed_catalog.domain.feeds.records import (
    PREVIEW_SAMPLE_SIZE,
    RESERVED_KEYS,
    FeedPreview,
    RawRecord,
)
from .csv_processor import iter_csv_records
from .json_processor import iter_json_records
from .xml_processor import iter_xml_records


def iter_feed_records(file_content: bytes, feed_type: str, item_element: Optional[str] = None) -> Iterator[RawRecord]:
    """Dispatch to the extractor for ``feed_type``."""
    if feed_type == "xml":
        return iter_xml_records(file_content, item_element)
    if feed_type == "json":
        return iter_json_records(file_content)
    if feed_type == "csv":
        return iter_csv_records(file_content)
    raise ValueError(f"Unsupported feed type: {feed_type}")


def process_feed_content(file_content: bytes, feed_type: str, item_element: Optional[str] = None) -> List[RawRecord]:
    """Parse the whole payload into raw records."""
    return list(iter_feed_records(file_content, feed_type, item_element))


def preview_feed_content(
    file_content: bytes,
    feed_type: str,
    item_element: Optional[str] = None,
    sample_size: int = PREVIEW_SAMPLE_SIZE,
) -> FeedPreview:
    """
    Summarize a payload without retaining records past the sample.

    Returns:
        FeedPreview with up to ``sample_size`` records, the total item count
        and the sorted union of raw field names seen across all items.
    """
    sample: List[RawRecord] = []
    fields: Set[str] = set()
    total = 0

    for record in iter_feed_records(file_content, feed_type, item_element):
        total += 1
        fields.update(key for key in record if key not in RESERVED_KEYS)
        if len(sample) < sample_size:
            sample.append(record)

    return FeedPreview(
        fields=sorted(fields),
        sample=sample,
        total_items=total,
        detected_type=feed_type,
    )
