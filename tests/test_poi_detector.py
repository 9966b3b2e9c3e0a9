"""
Tests for the POI collaborator: the Google Places client (over
httpx.MockTransport) and the caching, failure-tolerant detector.
"""
import json

import httpx
import pytest

from app.core.errors import PoiLookupError, ValidationError
from app.services.poi_detector import (
    DEFAULT_INCLUDED_TYPES,
    PlacesClient,
    PoiCandidate,
    PoiDetector,
)

from conftest import FakePlacesLookup

PLACES_PAYLOAD = {
    "places": [
        {
            "id": "park-1",
            "displayName": {"text": "Yarkon Park", "languageCode": "en"},
            "location": {"latitude": 32.1, "longitude": 34.8},
            "types": ["park", "tourist_attraction"],
        },
        {
            "id": "vet-1",
            "displayName": {"text": "City Vet"},
            "location": {"latitude": 32.101, "longitude": 34.801},
            "types": ["veterinary_care", "point_of_interest"],
        },
        {
            "id": "cafe-1",
            "location": {"latitude": 32.102, "longitude": 34.802},
            "types": ["cafe"],
        },
        {"id": "broken", "displayName": {"text": "No location"}},
    ]
}


def _client(handler, api_key="test-key") -> PlacesClient:
    return PlacesClient(
        api_key=api_key,
        base_url="https://places.example.test/v1",
        timeout_s=1.0,
        transport=httpx.MockTransport(handler),
    )


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# ---------------------------------------------------------------------------
# PlacesClient
# ---------------------------------------------------------------------------

class TestPlacesClient:
    def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"places": []})

        assert _client(handler).find_nearby(32.1, 34.8, 100) == []
        assert seen["path"] == "/v1/places:searchNearby"
        assert seen["headers"]["X-Goog-Api-Key"] == "test-key"
        assert "places.location" in seen["headers"]["X-Goog-FieldMask"]
        circle = seen["body"]["locationRestriction"]["circle"]
        assert circle["center"] == {"latitude": 32.1, "longitude": 34.8}
        assert circle["radius"] == 100.0
        assert seen["body"]["includedTypes"] == list(DEFAULT_INCLUDED_TYPES)

    def test_parses_and_maps_types(self):
        client = _client(lambda request: httpx.Response(200, json=PLACES_PAYLOAD))
        results = client.find_nearby(32.1, 34.8, 100)
        assert [r.place_id for r in results] == ["park-1", "vet-1", "cafe-1"]
        assert results[0] == PoiCandidate("park-1", "Yarkon Park", "park", 32.1, 34.8)
        assert results[1].type == "vet"
        assert results[2].type == "other"
        assert results[2].name == "Unnamed place"

    def test_empty_response_body(self):
        client = _client(lambda request: httpx.Response(200, json={}))
        assert client.find_nearby(32.1, 34.8, 100) == []

    def test_http_error_status(self):
        client = _client(lambda request: httpx.Response(403, json={"error": {"status": "PERMISSION_DENIED"}}))
        with pytest.raises(PoiLookupError):
            client.find_nearby(32.1, 34.8, 100)

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(PoiLookupError):
            _client(handler).find_nearby(32.1, 34.8, 100)

    def test_invalid_json(self):
        client = _client(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(PoiLookupError):
            client.find_nearby(32.1, 34.8, 100)

    def test_missing_api_key_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        with pytest.raises(PoiLookupError):
            _client(handler, api_key="").find_nearby(32.1, 34.8, 100)
        assert calls == []


# ---------------------------------------------------------------------------
# PoiDetector
# ---------------------------------------------------------------------------

class TestPoiDetector:
    PARK = PoiCandidate("park-1", "Park", "park", 32.1, 34.8)

    def test_negative_radius_rejected_before_lookup(self):
        lookup = FakePlacesLookup([self.PARK])
        with pytest.raises(ValidationError):
            PoiDetector(lookup).find_nearby(32.1, 34.8, -1)
        assert lookup.calls == []

    def test_zero_radius_is_allowed(self):
        lookup = FakePlacesLookup([self.PARK])
        assert PoiDetector(lookup).find_nearby(32.1, 34.8, 0) == [self.PARK]

    def test_results_cached_per_cell(self):
        lookup = FakePlacesLookup([self.PARK])
        detector = PoiDetector(lookup, ttl_s=600, clock=FakeClock())
        first = detector.find_nearby(32.1, 34.8, 100)
        # Same 0.001° cell
        second = detector.find_nearby(32.10004, 34.80004, 100)
        assert first == second == [self.PARK]
        assert len(lookup.calls) == 1

    def test_cache_key_includes_radius(self):
        lookup = FakePlacesLookup([self.PARK])
        detector = PoiDetector(lookup, ttl_s=600, clock=FakeClock())
        detector.find_nearby(32.1, 34.8, 100)
        detector.find_nearby(32.1, 34.8, 200)
        assert len(lookup.calls) == 2

    def test_cache_expires_after_ttl(self):
        clock = FakeClock()
        lookup = FakePlacesLookup([self.PARK])
        detector = PoiDetector(lookup, ttl_s=60, clock=clock)
        detector.find_nearby(32.1, 34.8, 100)
        clock.now += 59
        detector.find_nearby(32.1, 34.8, 100)
        assert len(lookup.calls) == 1
        clock.now += 2
        detector.find_nearby(32.1, 34.8, 100)
        assert len(lookup.calls) == 2

    def test_lookup_failure_degrades_to_empty_and_is_not_cached(self):
        lookup = FakePlacesLookup([self.PARK], error=PoiLookupError("boom"))
        detector = PoiDetector(lookup, ttl_s=600, clock=FakeClock())
        assert detector.find_nearby(32.1, 34.8, 100) == []
        lookup.error = None
        assert detector.find_nearby(32.1, 34.8, 100) == [self.PARK]
        assert len(lookup.calls) == 2

    def test_client_timeout_degrades_to_empty(self):
        def handler(request):
            raise httpx.ConnectTimeout("unreachable", request=request)

        detector = PoiDetector(_client(handler))
        assert detector.find_nearby(32.1, 34.8, 100) == []

    def test_returned_list_is_a_copy(self):
        lookup = FakePlacesLookup([self.PARK])
        detector = PoiDetector(lookup, ttl_s=600, clock=FakeClock())
        detector.find_nearby(32.1, 34.8, 100).clear()
        assert detector.find_nearby(32.1, 34.8, 100) == [self.PARK]


# ---------------------------------------------------------------------------
# Malformed responses
# ---------------------------------------------------------------------------

class TestMalformedResponses:
    @pytest.mark.parametrize("payload", [
        [],
        ["places"],
        "nope",
        {"places": {"id": "x"}},
    ])
    def test_wrong_shape_raises_lookup_error(self, payload):
        client = _client(lambda request: httpx.Response(200, json=payload))
        with pytest.raises(PoiLookupError):
            client.find_nearby(32.1, 34.8, 100)

    def test_bad_entries_skipped(self):
        payload = {
            "places": [
                "not-a-place",
                {"id": "x", "location": {"latitude": "abc", "longitude": 1}},
                {"id": "y", "location": {"latitude": None, "longitude": 1}},
                {"id": "z", "location": [32.1, 34.8]},
                {"id": "w", "location": {"latitude": 32.1, "longitude": 34.8},
                 "displayName": "flat string", "types": "park"},
                PLACES_PAYLOAD["places"][1],
            ]
        }
        client = _client(lambda request: httpx.Response(200, json=payload))
        results = client.find_nearby(32.1, 34.8, 100)
        assert [r.place_id for r in results] == ["w", "vet-1"]
        assert results[0] == PoiCandidate("w", "Unnamed place", "other", 32.1, 34.8)

    def test_detector_degrades_to_empty(self):
        detector = PoiDetector(_client(lambda request: httpx.Response(200, json=[])))
        assert detector.find_nearby(32.0, 34.8, 100) == []

    def test_detector_degrades_on_unexpected_adapter_error(self):
        lookup = FakePlacesLookup(error=RuntimeError("adapter bug"))
        assert PoiDetector(lookup).find_nearby(32.0, 34.8, 100) == []


# ---------------------------------------------------------------------------
# Cache bounds
# ---------------------------------------------------------------------------

class TestCacheBounds:
    PARK = PoiCandidate("park-1", "Park", "park", 32.1, 34.8)

    def test_expired_entries_purged_on_write(self):
        clock = FakeClock()
        detector = PoiDetector(FakePlacesLookup([self.PARK]), ttl_s=1, clock=clock)
        for i in range(1000):
            detector.find_nearby(32.0 + i * 0.01, 34.8, 100)
            clock.now += 10
        assert detector.cache_size() == 1

    def test_size_capped_oldest_dropped_first(self):
        clock = FakeClock()
        lookup = FakePlacesLookup([self.PARK])
        detector = PoiDetector(lookup, ttl_s=3600, clock=clock, max_entries=3)
        for i in range(5):
            detector.find_nearby(32.0 + i * 0.01, 34.8, 100)
        assert detector.cache_size() == 3

        # Newest cell still cached, oldest evicted
        detector.find_nearby(32.04, 34.8, 100)
        assert len(lookup.calls) == 5
        detector.find_nearby(32.0, 34.8, 100)
        assert len(lookup.calls) == 6

    def test_max_entries_must_be_positive(self):
        with pytest.raises(ValidationError):
            PoiDetector(FakePlacesLookup(), max_entries=0)
