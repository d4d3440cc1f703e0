import pytest

from feed_catalog.domain.feeds.processors.csv_processor import detect_delimiter, process_csv


@pytest.mark.parametrize(
    "header, expected",
    [
        ("a;b;c", ";"),
        ("a,b,c", ","),
        ("a\tb\tc", "\t"),
        ("title;price,with,commas", ","),
        ("single_column", ","),
        ("a,b;c", ","),
    ],
)
def test_detect_delimiter(header, expected):
    assert detect_delimiter(header) == expected


def test_semicolon_feed_with_decimal_commas():
    payload = "NAZOV;CENA;EAN\nPohár;12,50;8590000000001\nTanier;3,90;8590000000002\n".encode("utf-8")

    records = process_csv(payload)

    assert records == [
        {"NAZOV": "Pohár", "CENA": "12,50", "EAN": "8590000000001"},
        {"NAZOV": "Tanier", "CENA": "3,90", "EAN": "8590000000002"},
    ]


def test_values_stay_strings():
    payload = b"sku,ean,price\n00123,0859000000001,10\n"

    assert process_csv(payload) == [{"sku": "00123", "ean": "0859000000001", "price": "10"}]


def test_quoted_fields_may_contain_delimiters():
    payload = b'title,description,price\n"Desk, oak","Sturdy, 120cm",199\n'

    records = process_csv(payload)

    assert records == [{"title": "Desk, oak", "description": "Sturdy, 120cm", "price": "199"}]


def test_short_and_long_rows_are_tolerated():
    payload = b"title,price,brand\nShort,5\nLong,7,Acme,extra,cells\nNormal,9,Brand\n"

    records = process_csv(payload)

    assert records == [
        {"title": "Short", "price": "5"},
        {"title": "Long", "price": "7", "brand": "Acme"},
        {"title": "Normal", "price": "9", "brand": "Brand"},
    ]


def test_blank_lines_and_blank_cells_are_dropped():
    payload = b"title,price\n\nA,1\n,\nB,\n"

    assert process_csv(payload) == [{"title": "A", "price": "1"}, {"title": "B"}]


def test_header_only_or_empty_payload_yields_nothing():
    assert process_csv(b"") == []
    assert process_csv(b"\n\n") == []
    assert process_csv(b"title,price\n") == []
