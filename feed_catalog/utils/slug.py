import hashlib
import re
import unicodedata

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """
    Build a URL slug: lowercase, diacritics stripped, non-alphanumeric runs
    collapsed to one hyphen, no leading or trailing hyphens.

    Text with no ASCII letters or digits at all (e.g. CJK names) falls back to
    a short digest so distinct names keep distinct slugs.
    """
    decomposed = unicodedata.normalize("NFKD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = _NON_ALNUM.sub("-", stripped).strip("-")
    if slug or not value.strip():
        return slug
    return hashlib.sha1(value.strip().encode("utf-8")).hexdigest()[:12]
