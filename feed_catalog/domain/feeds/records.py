"""
Shared record shapes for the feed pipeline.

Raw records stay open key/value maps because every vendor names its fields
differently; the field mapper is where they become ``NormalizedRecord``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List

RawRecord = Dict[str, Any]

# Reserved raw-record keys populated by the XML extractor.
PARAMS_KEY = "_params"
IMAGES_KEY = "_images"
RESERVED_KEYS = frozenset({PARAMS_KEY, IMAGES_KEY})

PREVIEW_SAMPLE_SIZE = 5


@dataclass
class FeedPreview:
    """Bounded view of a feed: a few sample records plus totals."""
    fields: List[str] = field(default_factory=list)
    sample: List[RawRecord] = field(default_factory=list)
    total_items: int = 0
    detected_type: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fields": list(self.fields),
            "sample": [jsonable_record(record) for record in self.sample],
            "total_items": self.total_items,
            "detected_type": self.detected_type,
        }


def jsonable_record(record: RawRecord) -> Dict[str, Any]:
    """Convert reserved tuple payloads into JSON-friendly structures."""
    payload: Dict[str, Any] = {}
    for key, value in record.items():
        if key == PARAMS_KEY:
            payload[key] = [{"name": name, "value": val} for name, val in value]
        else:
            payload[key] = value
    return payload
