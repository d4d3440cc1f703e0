"""
Payload classification for vendor feeds.
"""
from typing import Optional

SUPPORTED_FEED_TYPES = ("xml", "json", "csv")

# Only the leading bytes matter; feeds can be tens of megabytes.
SNIFF_BYTES = 4096

_UTF8_BOM = b"\xef\xbb\xbf"


def normalize_feed_type(value: Optional[str]) -> Optional[str]:
    """Return the lower-cased feed type when it is supported, else None."""
    if not value:
        return None
    candidate = value.strip().lower()
    return candidate if candidate in SUPPORTED_FEED_TYPES else None


def detect_feed_type(content: bytes, hint: Optional[str] = None) -> str:
    """
    Classify a payload as ``xml``, ``json`` or ``csv``.

    A supported hint is trusted as-is. Otherwise the first non-whitespace
    byte decides: ``<`` is XML, ``[`` or ``{`` is JSON, anything else is CSV.
    This is a heuristic; extractors return no records for misclassified input.
    """
    explicit = normalize_feed_type(hint)
    if explicit:
        return explicit

    head = content[:SNIFF_BYTES]
    if head.startswith(_UTF8_BOM):
        head = head[len(_UTF8_BOM):]
    head = head.lstrip()

    if head.startswith(b"<"):
        return "xml"
    if head.startswith((b"[", b"{")):
        return "json"
    return "csv"
