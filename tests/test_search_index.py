import json

import pytest

from feed_catalog.integrations import search_index as search_index_module
from feed_catalog.integrations.search_index import SearchIndexClient, SearchIndexError, build_search_index


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {"errors": False}

    def json(self):
        return self._payload


class RecordingSession:
    def __init__(self, status_code=200, payload=None):
        self.calls = []
        self.status_code = status_code
        self.payload = payload

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        return FakeResponse(self.status_code, self.payload)


def test_bulk_upsert_sends_ndjson_index_actions():
    session = RecordingSession()
    client = SearchIndexClient("http://search:9200/", index="products", session=session)

    sent = client.bulk_upsert([{"id": "p1", "title": "Mug"}, {"id": "p2", "title": "Cup"}])

    assert sent == 2
    call = session.calls[0]
    assert call["url"] == "http://search:9200/_bulk"
    assert call["headers"]["Content-Type"] == "application/x-ndjson"
    lines = call["data"].decode("utf-8").strip().split("\n")
    assert json.loads(lines[0]) == {"index": {"_index": "products", "_id": "p1"}}
    assert json.loads(lines[1]) == {"id": "p1", "title": "Mug"}
    assert len(lines) == 4


def test_bulk_upsert_batches_large_sets():
    session = RecordingSession()
    client = SearchIndexClient("http://search:9200", session=session)

    sent = client.bulk_upsert([{"id": str(n)} for n in range(501)])

    assert sent == 501
    assert len(session.calls) == 2


def test_bulk_upsert_raises_on_http_error():
    client = SearchIndexClient("http://search:9200", session=RecordingSession(status_code=500))

    with pytest.raises(SearchIndexError):
        client.bulk_upsert([{"id": "p1"}])


def test_item_errors_are_logged_not_raised(caplog):
    session = RecordingSession(payload={"errors": True, "items": []})
    client = SearchIndexClient("http://search:9200", session=session)

    assert client.bulk_upsert([{"id": "p1"}]) == 1
    assert "item errors" in caplog.text


def test_refresh_targets_the_index():
    session = RecordingSession()
    client = SearchIndexClient("http://search:9200", index="catalog", session=session)

    client.refresh()

    assert session.calls[0]["url"] == "http://search:9200/catalog/_refresh"


def test_build_search_index_is_disabled_without_url(monkeypatch):
    monkeypatch.setattr(search_index_module.settings, "elasticsearch_url", "")
    assert build_search_index() is None

    monkeypatch.setattr(search_index_module.settings, "elasticsearch_url", "http://search:9200")
    client = build_search_index()
    assert isinstance(client, SearchIndexClient)
    assert client.base_url == "http://search:9200"
