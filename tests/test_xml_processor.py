from feed_catalog.domain.feeds.processors import preview_feed_content, process_feed_content
from feed_catalog.domain.feeds.processors.xml_processor import process_xml
from feed_catalog.domain.feeds.records import IMAGES_KEY, PARAMS_KEY

from conftest import build_shop_xml


def test_three_shopitems_with_two_params_each():
    payload = build_shop_xml(
        [
            {"PRODUCTNAME": "Phone A", "EAN": "8590000000001"},
            {"PRODUCTNAME": "Phone B", "EAN": "8590000000002"},
            {"PRODUCTNAME": "Phone C", "EAN": "8590000000003"},
        ],
        params_per_item=2,
    )

    records = process_xml(payload)

    assert len(records) == 3
    for index, record in enumerate(records, start=1):
        assert record["PRODUCTNAME"] == f"Phone {'ABC'[index - 1]}"
        assert record["EAN"] == f"859000000000{index}"
        assert record[PARAMS_KEY] == [("Param 1", "Value 1"), ("Param 2", "Value 2")]


def test_cdata_is_unwrapped_and_empty_elements_are_omitted():
    payload = b"""<SHOP>
      <SHOPITEM>
        <PRODUCTNAME><![CDATA[Kettle <b>2L</b>]]></PRODUCTNAME>
        <DESCRIPTION></DESCRIPTION>
        <BRAND/>
        <PRICE_VAT>19.90</PRICE_VAT>
      </SHOPITEM>
    </SHOP>"""

    records = process_xml(payload)

    assert records == [{"PRODUCTNAME": "Kettle <b>2L</b>", "PRICE_VAT": "19.90"}]


def test_alternate_images_are_collected_in_order():
    payload = b"""<SHOP><SHOPITEM>
        <PRODUCTNAME>Lamp</PRODUCTNAME>
        <IMGURL>https://img.example/1.jpg</IMGURL>
        <IMGURL_ALTERNATIVE>https://img.example/2.jpg</IMGURL_ALTERNATIVE>
        <IMGURL_ALTERNATIVE>https://img.example/3.jpg</IMGURL_ALTERNATIVE>
    </SHOPITEM></SHOP>"""

    record = process_xml(payload)[0]

    assert record["IMGURL"] == "https://img.example/1.jpg"
    assert record[IMAGES_KEY] == ["https://img.example/2.jpg", "https://img.example/3.jpg"]


def test_unknown_nested_elements_are_ignored():
    payload = b"""<SHOP><SHOPITEM>
        <PRODUCTNAME>Chair</PRODUCTNAME>
        <DELIVERY><DELIVERY_ID>PPL</DELIVERY_ID><DELIVERY_PRICE>3</DELIVERY_PRICE></DELIVERY>
    </SHOPITEM></SHOP>"""

    assert process_xml(payload) == [{"PRODUCTNAME": "Chair"}]


def test_custom_item_element_and_namespaces():
    payload = b"""<rss xmlns:g="http://base.google.com/ns/1.0"><channel>
        <item><g:id>A1</g:id><title>First</title></item>
        <item><g:id>A2</g:id><title>Second</title></item>
    </channel></rss>"""

    records = process_feed_content(payload, "xml", "item")

    assert [record["id"] for record in records] == ["A1", "A2"]
    assert records[1]["title"] == "Second"


def test_missing_closing_tags_are_recovered():
    payload = b"""<SHOP>
      <SHOPITEM><PRODUCTNAME>Good</PRODUCTNAME></SHOPITEM>
      <SHOPITEM><PRODUCTNAME>Broken</PRODUCTNAME>
    </SHOP>"""

    records = process_xml(payload)

    assert records[0] == {"PRODUCTNAME": "Good"}
    assert 1 <= len(records) <= 2


def test_non_xml_payload_yields_no_records():
    assert process_xml(b'{"products": []}') == []
    assert process_xml(b"") == []


def test_preview_counts_everything_but_keeps_five_samples():
    payload = build_shop_xml(
        [{"PRODUCTNAME": f"Item {n}", "PRICE_VAT": str(n + 1)} for n in range(10000)]
    )

    preview = preview_feed_content(payload, "xml")

    assert preview.total_items == 10000
    assert len(preview.sample) == 5
    assert preview.sample[0]["PRODUCTNAME"] == "Item 0"
    assert preview.fields == ["PRICE_VAT", "PRODUCTNAME"]
    assert preview.detected_type == "xml"
