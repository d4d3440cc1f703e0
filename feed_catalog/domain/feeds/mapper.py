"""
Field mapping from vendor records onto the canonical catalog fields.
"""
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging
import math
import re

from .field_aliases import CANONICAL_FIELDS, FIELD_ALIASES, TARGET_ALIASES
from .records import IMAGES_KEY, PARAMS_KEY, RawRecord

logger = logging.getLogger(__name__)

_NON_NUMERIC = re.compile(r"[^0-9.]")


@dataclass(frozen=True)
class NormalizedRecord:
    """A feed item reduced to the fixed canonical field set."""
    title: str = ""
    description: str = ""
    short_description: str = ""
    ean: str = ""
    sku: str = ""
    brand: str = ""
    image_url: str = ""
    affiliate_url: str = ""
    category_path: str = ""
    price: float = 0.0
    parameters: Tuple[Tuple[str, str], ...] = ()
    image_urls: Tuple[str, ...] = ()

    def canonical_fields(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in CANONICAL_FIELDS}

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["parameters"] = [{"name": name, "value": value} for name, value in self.parameters]
        payload["image_urls"] = list(self.image_urls)
        return payload


def _is_present(value: Any) -> bool:
    if value is None or isinstance(value, (dict, list, tuple)):
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return str(value).strip() != ""


def _as_text(value: Any) -> str:
    if not _is_present(value):
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        # Numeric codes (EAN, SKU) arrive as floats from some JSON exporters.
        return str(int(value))
    return str(value).strip()


def coerce_price(value: Any) -> float:
    """
    Convert a raw price into a float.

    Numbers pass through. Strings have comma decimal separators turned into
    dots and every other non-digit, non-dot character removed before parsing.
    Anything unparsable becomes 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    if not isinstance(value, str):
        return 0.0

    token = _NON_NUMERIC.sub("", value.replace(",", "."))
    if not token:
        return 0.0
    try:
        number = float(token)
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _canonical_target(target: Any) -> Optional[str]:
    if not isinstance(target, str):
        return None
    name = target.strip()
    name = TARGET_ALIASES.get(name, name)
    return name if name in CANONICAL_FIELDS else None


def _resolve_values(raw: RawRecord, field_mapping: Optional[Mapping[str, str]]) -> Dict[str, Any]:
    resolved: Dict[str, Any] = {}

    # Explicit vendor mapping always wins over the heuristic table.
    for source, target in (field_mapping or {}).items():
        canonical = _canonical_target(target)
        if canonical is None or canonical in resolved:
            continue
        value = raw.get(source)
        if _is_present(value):
            resolved[canonical] = value

    for canonical, candidates in FIELD_ALIASES.items():
        if canonical in resolved:
            continue
        for candidate in candidates:
            value = raw.get(candidate)
            if _is_present(value):
                resolved[canonical] = value
                break

    return resolved


def _collect_parameters(raw: RawRecord) -> Tuple[Tuple[str, str], ...]:
    pairs: List[Tuple[str, str]] = []
    for pair in raw.get(PARAMS_KEY) or ():
        try:
            name, value = pair
        except (TypeError, ValueError):
            continue
        name_text, value_text = _as_text(name), _as_text(value)
        if name_text and value_text:
            pairs.append((name_text, value_text))
    return tuple(pairs)


def _collect_images(primary: str, raw: RawRecord) -> Tuple[str, ...]:
    urls: List[str] = []
    for candidate in [primary, *(raw.get(IMAGES_KEY) or ())]:
        url = _as_text(candidate)
        if url and url not in urls:
            urls.append(url)
    return tuple(urls)


def map_record(raw: RawRecord, field_mapping: Optional[Mapping[str, str]] = None) -> NormalizedRecord:
    """
    Map one raw record onto the canonical field set.

    Args:
        raw: Raw record as produced by an extractor
        field_mapping: Vendor field name -> canonical field name (may be empty)

    Returns:
        NormalizedRecord; unresolved fields stay empty / zero
    """
    values = _resolve_values(raw, field_mapping)

    text_fields = {
        name: _as_text(values.get(name))
        for name in CANONICAL_FIELDS
        if name != "price"
    }
    return NormalizedRecord(
        price=coerce_price(values.get("price")),
        parameters=_collect_parameters(raw),
        image_urls=_collect_images(text_fields["image_url"], raw),
        **text_fields,
    )


def validate_record(record: NormalizedRecord) -> Optional[str]:
    """Return the reason a record cannot be imported, or None when it can."""
    if not record.title:
        return "missing title"
    if record.price <= 0:
        return "non-positive price"
    return None
