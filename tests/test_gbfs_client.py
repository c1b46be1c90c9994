from __future__ import annotations

from typing import Any

import pytest
import requests

from mendozabike.config.models import FeedSettings
from mendozabike.errors import EnrichmentUnavailable, MalformedRecord, UpstreamError
from mendozabike.ingestion.gbfs_client import GBFSClient
from mendozabike.ingestion.http_base import FeedHTTPClient


SETTINGS = FeedSettings(status_url="https://feed.test/status.json", info_url="https://feed.test/info.json")


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


def _client_returning(responses: dict[str, Any]) -> GBFSClient:
    http = FeedHTTPClient()

    def fake_get_json(url: str, *, params=None):  # type: ignore[no-untyped-def]
        result = responses[url]
        if isinstance(result, Exception):
            raise result
        return result

    http.get_json = fake_get_json  # type: ignore[method-assign]
    return GBFSClient(http=http, settings=SETTINGS)


def test_get_json_raises_upstream_error_with_status(monkeypatch) -> None:
    http = FeedHTTPClient()
    monkeypatch.setattr(http._session, "get", lambda url, params=None, timeout=None: FakeResponse(503, text="down"))
    with pytest.raises(UpstreamError) as excinfo:
        http.get_json("https://feed.test/status.json")
    assert excinfo.value.status_code == 503
    assert excinfo.value.url == "https://feed.test/status.json"


def test_get_json_rejects_non_json_body(monkeypatch) -> None:
    http = FeedHTTPClient()
    monkeypatch.setattr(http._session, "get", lambda url, params=None, timeout=None: FakeResponse(200, None, "<html>"))
    with pytest.raises(UpstreamError):
        http.get_json("https://feed.test/status.json")


def test_get_json_maps_timeout_to_upstream_error(monkeypatch) -> None:
    http = FeedHTTPClient(timeout_s=0.5)

    def boom(url, params=None, timeout=None):  # type: ignore[no-untyped-def]
        assert timeout == 0.5
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(http._session, "get", boom)
    with pytest.raises(UpstreamError, match="timed out"):
        http.get_json("https://feed.test/status.json")


def test_fetch_status_parses_and_drops_malformed_records() -> None:
    client = _client_returning(
        {
            SETTINGS.status_url: {
                "data": {
                    "stations": [
                        {"station_id": "5", "num_bikes_available": 3, "num_docks_available": 2, "last_reported": 1700000000},
                        {"station_id": 7, "num_bikes_available": "4"},
                        {"num_bikes_available": 1},
                        {"station_id": "8", "num_bikes_available": "lots"},
                        {"station_id": "5", "num_bikes_available": 0},
                        "not-a-record",
                    ]
                }
            }
        }
    )
    records = client.fetch_status()
    assert [r.station_id for r in records] == ["5", "7"]
    assert records[0].num_docks_available == 2
    assert records[0].last_reported == 1700000000
    assert records[1].num_bikes_available == 4
    assert records[1].num_docks_available is None


@pytest.mark.parametrize("payload", [{}, {"data": {}}, {"data": {"stations": {}}}, []])
def test_fetch_status_rejects_unexpected_shape(payload: Any) -> None:
    client = _client_returning({SETTINGS.status_url: payload})
    with pytest.raises(UpstreamError):
        client.fetch_status()


def test_fetch_status_propagates_upstream_failure() -> None:
    client = _client_returning({SETTINGS.status_url: UpstreamError("boom", status_code=500)})
    with pytest.raises(UpstreamError):
        client.fetch_status()


def test_fetch_info_degrades_to_none() -> None:
    client = _client_returning({SETTINGS.info_url: UpstreamError("boom", status_code=404)})
    assert client.fetch_info() is None
    with pytest.raises(EnrichmentUnavailable):
        client.load_info()


def test_fetch_info_tolerates_garbled_enrichment_fields() -> None:
    client = _client_returning(
        {
            SETTINGS.info_url: {
                "data": {
                    "stations": [
                        {"station_id": "5", "name": "Plaza", "lat": -32.9, "lon": -68.8, "capacity": 5},
                        {"station_id": "6", "name": "  ", "lat": "n/a", "lon": None, "capacity": "x"},
                    ]
                }
            }
        }
    )
    records = client.fetch_info()
    assert records is not None
    assert records[0].capacity == 5
    assert records[1].name is None
    assert records[1].lat is None
    assert records[1].capacity is None


def test_parse_status_clamps_negative_counts() -> None:
    record = GBFSClient.parse_status({"station_id": "1", "num_bikes_available": -2, "num_docks_available": -1})
    assert record.num_bikes_available == 0
    assert record.num_docks_available == 0


def test_parse_status_requires_station_id() -> None:
    with pytest.raises(MalformedRecord):
        GBFSClient.parse_status({"station_id": "", "num_bikes_available": 1})
