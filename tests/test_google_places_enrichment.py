from __future__ import annotations

import pytest
import requests

from conftest import make_place
from place_pipeline.config import EnrichmentConfig
from place_pipeline.enrich import google_places
from place_pipeline.enrich.google_places import enrich_places, fetch_place_details
from place_pipeline.errors import EnrichmentError


class _FakeResponse:
    def __init__(self, payload: dict, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.ok = status_code < 400

    def json(self) -> dict:
        return self._payload


DETAILS = {
    "status": "OK",
    "result": {
        "place_id": "ChIJjoes",
        "name": "Joe's Pizza",
        "rating": 4.6,
        "user_ratings_total": 15000,
        "price_level": 1,
        "website": "https://joespizzanyc.com",
        "formatted_phone_number": "(212) 366-1182",
        "opening_hours": {"weekday_text": ["Monday: 10AM-4AM", "Tuesday: 10AM-4AM"]},
        "types": ["restaurant", "food"],
        "photos": [{"photo_reference": "ref1", "width": 1024, "height": 768}],
        "reviews": [{"author_name": "Ann", "rating": 5, "text": "Classic", "time": 1700000000}],
    },
}


def test_fetch_place_details_parses_result(monkeypatch) -> None:
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, params, timeout))
        return _FakeResponse(DETAILS)

    monkeypatch.setattr(google_places.requests, "get", fake_get)
    details = fetch_place_details("ChIJjoes", "key", timeout=5)

    assert calls[0][1]["place_id"] == "ChIJjoes"
    assert calls[0][2] == 5
    assert details.rating == 4.6
    assert details.rating_count == 15000
    assert details.hours == ["Monday: 10AM-4AM", "Tuesday: 10AM-4AM"]
    assert details.categories == ["restaurant", "food"]
    assert details.photos[0].reference == "ref1"
    assert details.reviews[0].author == "Ann"
    assert details.reviews[0].time.year == 2023


def test_fetch_requires_provider_id() -> None:
    with pytest.raises(EnrichmentError, match="no provider id"):
        fetch_place_details("", "key")


@pytest.mark.parametrize(
    "response",
    [_FakeResponse({}, status_code=500), _FakeResponse({"status": "NOT_FOUND"})],
)
def test_fetch_errors(monkeypatch, response) -> None:
    monkeypatch.setattr(google_places.requests, "get", lambda *args, **kwargs: response)
    with pytest.raises(EnrichmentError):
        fetch_place_details("ChIJjoes", "key")


def test_network_error_becomes_enrichment_error(monkeypatch) -> None:
    def boom(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(google_places.requests, "get", boom)
    with pytest.raises(EnrichmentError, match="offline"):
        fetch_place_details("ChIJjoes", "key")


def test_enrich_places_paces_requests_and_skips_synthetic_ids(store, monkeypatch) -> None:
    monkeypatch.setenv("GOOGLE_PLACES_API_KEY", "key")
    requested: list[str] = []

    def fake_get(url, params=None, timeout=None):
        requested.append(params["place_id"])
        return _FakeResponse(DETAILS)

    monkeypatch.setattr(google_places.requests, "get", fake_get)
    store.save(make_place(categories=["Pizza"], user_notes="mine"))
    store.save(make_place(name="Manual", provider_id="takeout_abc", lat=1, lng=1))

    sleeps: list[float] = []
    result = enrich_places(
        store,
        EnrichmentConfig(enabled=True, delay_seconds=0.25),
        report=lambda _: None,
        sleep=sleeps.append,
    )
    assert result == (1, 0)
    assert requested == ["ChIJjoes"]
    assert sleeps == [0.25]

    place = store.search("Joe's")[0]
    assert place.rating == 4.6
    assert place.categories == ["Pizza", "restaurant", "food"]
    assert place.hours == "Monday: 10AM-4AM, Tuesday: 10AM-4AM"
    assert place.user_notes == "mine"
    assert place.reviews == []
    assert "last_sync" in place.custom_fields


def test_enrich_places_rotates_through_least_recently_synced(store, monkeypatch) -> None:
    monkeypatch.setenv("GOOGLE_PLACES_API_KEY", "key")
    requested: list[str] = []

    def fake_get(url, params=None, timeout=None):
        requested.append(params["place_id"])
        return _FakeResponse({"status": "OK", "result": {**DETAILS["result"], "place_id": params["place_id"]}})

    monkeypatch.setattr(google_places.requests, "get", fake_get)
    for i in range(4):
        store.save(make_place(name=f"Cafe {i}", provider_id=f"ChIJ{i}", lat=i, lng=i))
    store.save(make_place(name="Pinned", provider_id="takeout_pin", lat=9, lng=9))
    store.save(make_place(name="Unknown", provider_id="", lat=8, lng=8))

    cfg = EnrichmentConfig(enabled=True, max_rows_per_run=2, delay_seconds=0)
    first = enrich_places(store, cfg, report=lambda _: None, sleep=lambda _: None)
    second = enrich_places(store, cfg, report=lambda _: None, sleep=lambda _: None)

    assert first == second == (2, 0)
    assert sorted(requested) == ["ChIJ0", "ChIJ1", "ChIJ2", "ChIJ3"]
    synced = {p.provider_id for p in store.list() if "last_sync" in p.custom_fields}
    assert synced == {"ChIJ0", "ChIJ1", "ChIJ2", "ChIJ3"}


def test_enrich_places_counts_failures_and_still_pauses(store, monkeypatch) -> None:
    monkeypatch.setenv("GOOGLE_PLACES_API_KEY", "key")
    monkeypatch.setattr(google_places.requests, "get", lambda *args, **kwargs: _FakeResponse({"status": "DENIED"}))
    store.save(make_place())
    store.save(make_place(name="Tartine", provider_id="ChIJtartine", lat=37.76, lng=-122.42))

    sleeps: list[float] = []
    lines: list[str] = []
    result = enrich_places(
        store,
        EnrichmentConfig(enabled=True, delay_seconds=0.5),
        report=lines.append,
        sleep=sleeps.append,
    )
    assert result == (0, 2)
    assert sleeps == [0.5, 0.5]
    assert sum(line.startswith("Failed to enrich") for line in lines) == 2


def test_enrich_places_does_nothing_when_disabled(store, monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_PLACES_API_KEY", raising=False)

    def fail_get(*args, **kwargs):
        raise AssertionError("no request expected")

    monkeypatch.setattr(google_places.requests, "get", fail_get)
    store.save(make_place())
    assert enrich_places(store, EnrichmentConfig(), report=lambda _: None) == (0, 0)
    assert "last_sync" not in store.list()[0].custom_fields


def test_enrich_places_requires_api_key(store, monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_PLACES_API_KEY", raising=False)
    with pytest.raises(EnrichmentError, match="GOOGLE_PLACES_API_KEY"):
        enrich_places(store, EnrichmentConfig(enabled=True))
