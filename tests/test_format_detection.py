import pytest

from feed_catalog.domain.feeds.detector import detect_feed_type, normalize_feed_type


@pytest.mark.parametrize(
    "payload, expected",
    [
        (b"<?xml version='1.0'?><SHOP/>", "xml"),
        (b"   \n\t<SHOP></SHOP>", "xml"),
        (b"\xef\xbb\xbf<SHOP></SHOP>", "xml"),
        (b'[{"title": "x"}]', "json"),
        (b'\n  {"products": []}', "json"),
        (b"title,price\nfoo,1", "csv"),
        (b"", "csv"),
        (b"   ", "csv"),
    ],
)
def test_detects_type_from_first_non_whitespace_byte(payload, expected):
    assert detect_feed_type(payload) == expected


def test_supported_hint_is_trusted_over_content():
    assert detect_feed_type(b"<SHOP/>", hint="csv") == "csv"
    assert detect_feed_type(b"a,b", hint=" JSON ") == "json"


def test_unsupported_hint_falls_back_to_sniffing():
    assert detect_feed_type(b"<SHOP/>", hint="excel") == "xml"
    assert detect_feed_type(b"[1]", hint="") == "json"


def test_normalize_feed_type():
    assert normalize_feed_type("XML") == "xml"
    assert normalize_feed_type("yaml") is None
    assert normalize_feed_type(None) is None
