"""
Geospatial calculator: pure functions over ordered, timestamped routes.

Points are duck-typed: anything with `.lat` / `.lng` (and `.timestamp`
for route functions) works, so ORM rows and TrackPoint values mix freely.
Naive timestamps are read as UTC.

No I/O, no errors for finite coordinates.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from math import asin, cos, radians, sin, sqrt
from typing import Optional, Sequence


EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float


@dataclass(frozen=True)
class TrackPoint:
    lat: float
    lng: float
    timestamp: datetime
    accuracy: Optional[float] = None


def _epoch_seconds(ts: datetime) -> float:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.timestamp()


# ---------------------------------------------------------------------------
# Point-to-point
# ---------------------------------------------------------------------------

def distance(a, b) -> float:
    """Great-circle distance between two points in metres (haversine)."""
    dlat = radians(b.lat - a.lat)
    dlng = radians(b.lng - a.lng)
    h = sin(dlat / 2) ** 2 + cos(radians(a.lat)) * cos(radians(b.lat)) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * asin(sqrt(min(1.0, h)))


def is_near(point, center, radius_m: float) -> bool:
    return distance(point, center) <= radius_m


# ---------------------------------------------------------------------------
# Route aggregates
# ---------------------------------------------------------------------------

def total_distance(route: Sequence) -> float:
    if len(route) < 2:
        return 0.0
    return sum(distance(route[i], route[i + 1]) for i in range(len(route) - 1))


def total_duration(route: Sequence) -> float:
    """Seconds between the first and last point."""
    if len(route) < 2:
        return 0.0
    return _epoch_seconds(route[-1].timestamp) - _epoch_seconds(route[0].timestamp)


# ---------------------------------------------------------------------------
# Stop detection
# ---------------------------------------------------------------------------

def stopped_duration(route: Sequence, center, radius_m: float) -> float:
    """
    Length in seconds of the contiguous tail of `route` that stays within
    `radius_m` of `center`. 0 if the last point is already outside.
    """
    if len(route) < 2:
        return 0.0

    last = route[-1]
    if not is_near(last, center, radius_m):
        return 0.0

    stop_start = last.timestamp
    for point in reversed(route[:-1]):
        if not is_near(point, center, radius_m):
            break
        stop_start = point.timestamp

    return _epoch_seconds(last.timestamp) - _epoch_seconds(stop_start)


def is_stopped_near(
    route: Sequence,
    center,
    min_stop_s: float,
    radius_m: float,
) -> bool:
    return stopped_duration(route, center, radius_m) >= min_stop_s
