from lxml import etree
from typing import Iterator, List, Optional, Tuple
import io
import logging

from feed_catalog.domain.feeds.records import IMAGES_KEY, PARAMS_KEY, RawRecord

logger = logging.getLogger(__name__)

DEFAULT_ITEM_ELEMENT = "SHOPITEM"

PARAM_ELEMENT = "PARAM"
PARAM_NAME_ELEMENTS = ("PARAM_NAME", "NAME")
PARAM_VALUE_ELEMENTS = ("VAL", "VALUE")
ALTERNATE_IMAGE_ELEMENTS = frozenset({"IMGURL_ALTERNATIVE", "IMAGE_ALTERNATIVE", "ADDITIONAL_IMAGE_LINK"})


def _local_name(element) -> str:
    return etree.QName(element).localname


def _element_text(element) -> str:
    """Direct text of a leaf element; CDATA is already unwrapped by the parser."""
    return (element.text or "").strip()


def _is_leaf(element) -> bool:
    return not any(isinstance(child.tag, str) for child in element)


def _param_pair(element) -> Optional[Tuple[str, str]]:
    name = ""
    value = ""
    for child in element:
        if not isinstance(child.tag, str):
            continue
        tag = _local_name(child).upper()
        if tag in PARAM_NAME_ELEMENTS and not name:
            name = _element_text(child)
        elif tag in PARAM_VALUE_ELEMENTS and not value:
            value = _element_text(child)
    if name and value:
        return name, value
    return None


def _element_to_record(item) -> RawRecord:
    """
    Flatten one item element into a raw record.

    Leaf children become fields (first occurrence wins, empty bodies are
    omitted). PARAM blocks and alternate image URLs are collected into the
    reserved keys; any other nested structure is ignored.
    """
    record: RawRecord = {}
    params: List[Tuple[str, str]] = []
    images: List[str] = []

    for child in item:
        if not isinstance(child.tag, str):
            continue
        name = _local_name(child)
        upper = name.upper()

        if upper == PARAM_ELEMENT:
            pair = _param_pair(child)
            if pair:
                params.append(pair)
            continue

        if not _is_leaf(child):
            continue

        value = _element_text(child)
        if not value:
            continue

        if upper in ALTERNATE_IMAGE_ELEMENTS:
            images.append(value)
            continue

        record.setdefault(name, value)

    if params:
        record[PARAMS_KEY] = params
    if images:
        record[IMAGES_KEY] = images
    return record


def iter_xml_records(file_content: bytes, item_element: Optional[str] = None) -> Iterator[RawRecord]:
    """
    Stream records from an XML feed.

    Items are matched by local name so namespaced feeds work without
    configuration. The parser runs in recover mode; if the markup is damaged
    beyond recovery, iteration stops and the items already yielded stand.
    """
    item_name = (item_element or DEFAULT_ITEM_ELEMENT).strip() or DEFAULT_ITEM_ELEMENT

    context = etree.iterparse(
        io.BytesIO(file_content),
        events=("end",),
        recover=True,
        huge_tree=True,
        remove_comments=True,
        resolve_entities=False,
        no_network=True,
    )

    try:
        for _event, element in context:
            if not isinstance(element.tag, str) or _local_name(element) != item_name:
                continue

            record = _element_to_record(element)

            # Release parsed items so memory stays flat on large feeds.
            element.clear(keep_tail=True)
            parent = element.getparent()
            if parent is not None:
                while element.getprevious() is not None:
                    del parent[0]

            if record:
                yield record
    except etree.XMLSyntaxError as exc:
        logger.warning("XML feed parsing stopped early: %s", exc)


def process_xml(file_content: bytes, item_element: Optional[str] = None) -> List[RawRecord]:
    """Process an XML feed and return every item as a raw record."""
    return list(iter_xml_records(file_content, item_element))
