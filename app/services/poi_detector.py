"""
POI detection collaborator: Google Places (New) nearby search + TTL cache.

The walk engine only depends on `PoiDetector.find_nearby(lat, lng, radius_m)`.
Contract:
  - negative radius           → ValidationError (before any I/O)
  - lookup error / timeout    → logged, treated as zero results
  - successful lookups cached → key = (lat/lng cell of 0.001°, radius, categories),
                                expired entries purged on write, at most
                                `max_entries` kept (oldest dropped first)
  - malformed 200 responses   → PoiLookupError (bad entries alone are skipped)

Failures are never cached, so the next route tick retries naturally.

Google Places searchNearby response (fields we request):
  {"places": [{"id": "...", "displayName": {"text": "..."},
               "location": {"latitude": .., "longitude": ..},
               "types": ["park", ...]}]}
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
import time
from dataclasses import dataclass
from math import isfinite
from typing import Any, Callable, Optional, Protocol

import httpx

from app.core.config import settings
from app.core.errors import PoiLookupError, ValidationError
from app.models.walk import PoiType

logger = logging.getLogger(__name__)

# Place categories a dog walk cares about
DEFAULT_INCLUDED_TYPES: tuple[str, ...] = (
    "park",
    "dog_park",
    "veterinary_care",
    "pet_store",
)

_FIELD_MASK = "places.id,places.displayName,places.location,places.types"
_MAX_RESULTS = 20

# ~111 m per cell at the equator
_CELL_PRECISION = 0.001

# Google place type → our POI type; first match in the place's type list wins
_TYPE_MAP: dict[str, PoiType] = {
    "dog_park": PoiType.park,
    "park": PoiType.park,
    "national_park": PoiType.park,
    "veterinary_care": PoiType.vet,
    "pet_store": PoiType.pet_store,
    "beach": PoiType.water,
    "lake": PoiType.water,
    "pet_groomer": PoiType.groomer,
    "pet_boarding_service": PoiType.boarding,
}


@dataclass(frozen=True)
class PoiCandidate:
    place_id: str
    name: str
    type: str
    lat: float
    lng: float


class PoiLookup(Protocol):
    def find_nearby(self, lat: float, lng: float, radius_m: float) -> list[PoiCandidate]:
        ...


def _poi_type(google_types: list[str]) -> str:
    for t in google_types:
        if t in _TYPE_MAP:
            return _TYPE_MAP[t].value
    return PoiType.other.value


def _parse_place(place: Any) -> Optional[PoiCandidate]:
    """One `places[]` entry, or None when it lacks an id or usable coordinates."""
    if not isinstance(place, dict) or not place.get("id"):
        return None
    location = place.get("location")
    if not isinstance(location, dict):
        return None
    try:
        lat = float(location["latitude"])
        lng = float(location["longitude"])
    except (KeyError, TypeError, ValueError):
        return None
    if not (isfinite(lat) and isfinite(lng)):
        return None

    display = place.get("displayName")
    name = display.get("text") if isinstance(display, dict) else None
    types = place.get("types")
    return PoiCandidate(
        place_id=str(place["id"]),
        name=str(name) if name else "Unnamed place",
        type=_poi_type([t for t in types if isinstance(t, str)] if isinstance(types, list) else []),
        lat=lat,
        lng=lng,
    )


def _parse_places(payload: Any) -> list[PoiCandidate]:
    """
    Parse a searchNearby body. A body that is not an object, or whose
    `places` is not a list, raises PoiLookupError; bad entries are skipped.
    """
    if not isinstance(payload, dict):
        raise PoiLookupError(f"Places searchNearby returned {type(payload).__name__}, expected an object")
    places = payload.get("places") or []
    if not isinstance(places, list):
        raise PoiLookupError("Places searchNearby `places` is not a list")

    candidates = []
    for place in places:
        candidate = _parse_place(place)
        if candidate is None:
            logger.debug("Skipping malformed place entry: %r", place)
            continue
        candidates.append(candidate)
    return candidates


# ---------------------------------------------------------------------------
# Google Places (New) client
# ---------------------------------------------------------------------------

class PlacesClient:
    """
    Thin synchronous client for `POST /places:searchNearby`.

    Raises PoiLookupError for every failure mode; callers decide whether to
    degrade. `transport` lets tests plug in httpx.MockTransport.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://places.googleapis.com/v1",
        timeout_s: float = 3.0,
        included_types: tuple[str, ...] = DEFAULT_INCLUDED_TYPES,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._included_types = included_types
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout_s,
            transport=transport,
        )

    @property
    def included_types(self) -> tuple[str, ...]:
        return self._included_types

    def find_nearby(self, lat: float, lng: float, radius_m: float) -> list[PoiCandidate]:
        if not self._api_key:
            raise PoiLookupError("GOOGLE_MAPS_API_KEY is not configured")

        body = {
            "includedTypes": list(self._included_types),
            "maxResultCount": _MAX_RESULTS,
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": lat, "longitude": lng},
                    "radius": float(radius_m),
                },
            },
        }
        headers = {
            "X-Goog-Api-Key": self._api_key,
            "X-Goog-FieldMask": _FIELD_MASK,
        }
        try:
            response = self._client.post("/places:searchNearby", json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise PoiLookupError(f"Places request failed: {exc!r}") from exc

        if response.status_code >= 400:
            raise PoiLookupError(
                f"Places searchNearby returned HTTP {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise PoiLookupError("Places searchNearby returned invalid JSON") from exc
        return _parse_places(payload)

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# Detector (cache + degrade-to-empty)
# ---------------------------------------------------------------------------

def _cell(value: float) -> float:
    return round(round(value / _CELL_PRECISION) * _CELL_PRECISION, 6)


class PoiDetector:
    """Cached, failure-tolerant front for a PoiLookup."""

    def __init__(
        self,
        lookup: PoiLookup,
        ttl_s: float = 15 * 60,
        category_key: str = "default",
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 5000,
    ) -> None:
        if max_entries < 1:
            raise ValidationError("max_entries must be at least 1", field="max_entries")
        self._lookup = lookup
        self._ttl_s = ttl_s
        self._max_entries = max_entries
        self._category_key = category_key
        self._clock = clock
        # Insertion order is expiry order (constant TTL, monotonic clock)
        self._cache: OrderedDict[tuple, tuple[float, list[PoiCandidate]]] = OrderedDict()
        self._lock = threading.Lock()

    def _cache_key(self, lat: float, lng: float, radius_m: float) -> tuple:
        return (_cell(lat), _cell(lng), round(float(radius_m), 1), self._category_key)

    def _cache_get(self, key: tuple) -> Optional[list[PoiCandidate]]:
        with self._lock:
            hit = self._cache.get(key)
            if hit is None:
                return None
            expires_at, value = hit
            if expires_at < self._clock():
                del self._cache[key]
                return None
            return value

    def _cache_set(self, key: tuple, value: list[PoiCandidate]) -> None:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._cache[key] = (now + self._ttl_s, value)
            self._cache.move_to_end(key)
            while len(self._cache) > self._max_entries:
                self._cache.popitem(last=False)

    def _purge_expired(self, now: float) -> None:
        """Drop expired entries from the oldest end. Caller holds the lock."""
        while self._cache:
            oldest = next(iter(self._cache))
            if self._cache[oldest][0] >= now:
                break
            del self._cache[oldest]

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def find_nearby(self, lat: float, lng: float, radius_m: float) -> list[PoiCandidate]:
        if radius_m < 0:
            raise ValidationError("radius_m must not be negative", field="radius_m")

        key = self._cache_key(lat, lng, radius_m)
        cached = self._cache_get(key)
        if cached is not None:
            logger.debug("POI cache hit: %s", key)
            return list(cached)

        try:
            results = self._lookup.find_nearby(lat, lng, radius_m)
        except PoiLookupError:
            logger.warning("POI lookup failed at (%.5f, %.5f) r=%sm", lat, lng, radius_m, exc_info=True)
            return []
        except Exception:
            # Lookup adapters other than PlacesClient may raise anything
            logger.error("Unexpected POI lookup error at (%.5f, %.5f) r=%sm", lat, lng, radius_m, exc_info=True)
            return []

        self._cache_set(key, results)
        logger.debug("POI lookup: %d candidates at %s", len(results), key)
        return list(results)


_detector: Optional[PoiDetector] = None


def get_poi_detector() -> PoiDetector:
    """Process-wide detector built from settings (FastAPI dependency)."""
    global _detector
    if _detector is None:
        client = PlacesClient(
            api_key=settings.GOOGLE_MAPS_API_KEY,
            base_url=settings.PLACES_BASE_URL,
            timeout_s=settings.POI_LOOKUP_TIMEOUT_SECONDS,
        )
        _detector = PoiDetector(
            client,
            ttl_s=settings.POI_CACHE_TTL_SECONDS,
            max_entries=settings.POI_CACHE_MAX_ENTRIES,
            category_key=",".join(sorted(client.included_types)),
        )
    return _detector
