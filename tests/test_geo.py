"""
Unit tests for the geospatial calculator (pure functions, no DB).
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.services import geo
from app.services.geo import Coordinate, TrackPoint

from conftest import M_LAT, straight_route

T0 = datetime(2030, 5, 1, 8, 0, tzinfo=timezone.utc)


def _pt(lat, lng, seconds):
    return TrackPoint(lat=lat, lng=lng, timestamp=T0 + timedelta(seconds=seconds))


class TestDistance:
    def test_same_point_is_zero(self):
        p = Coordinate(32.08, 34.78)
        assert geo.distance(p, p) == 0.0

    def test_one_degree_of_latitude(self):
        d = geo.distance(Coordinate(0, 0), Coordinate(1, 0))
        assert d == pytest.approx(111_195, rel=1e-4)

    def test_symmetric(self):
        a, b = Coordinate(32.08, 34.78), Coordinate(31.77, 35.21)
        assert geo.distance(a, b) == pytest.approx(geo.distance(b, a))

    def test_antipodal_points_do_not_raise(self):
        d = geo.distance(Coordinate(0, 0), Coordinate(0, 180))
        assert d == pytest.approx(geo.EARTH_RADIUS_M * 3.141592653589793, rel=1e-6)

    def test_is_near_boundary_inclusive(self):
        a = Coordinate(32.0, 34.8)
        b = Coordinate(32.0 + 50 * M_LAT, 34.8)
        d = geo.distance(a, b)
        assert geo.is_near(a, b, d)
        assert not geo.is_near(a, b, d - 0.01)


class TestRouteAggregates:
    def test_empty_and_single_point(self):
        assert geo.total_distance([]) == 0.0
        assert geo.total_duration([]) == 0.0
        one = [_pt(32.0, 34.8, 0)]
        assert geo.total_distance(one) == 0.0
        assert geo.total_duration(one) == 0.0

    def test_distance_is_sum_of_legs(self):
        route = straight_route(32.0, 34.8, metres=1200, step_m=100, step_s=100, t0=T0)
        expected = sum(geo.distance(route[i], route[i + 1]) for i in range(len(route) - 1))
        assert geo.total_distance(route) == pytest.approx(expected)
        assert geo.total_distance(route) == pytest.approx(1200, rel=1e-3)

    def test_appending_never_decreases_distance(self):
        route = straight_route(32.0, 34.8, metres=500, step_m=50, step_s=30, t0=T0)
        previous = 0.0
        for i in range(1, len(route) + 1):
            current = geo.total_distance(route[:i])
            assert current >= previous
            previous = current

    def test_duration_is_first_to_last(self):
        route = straight_route(32.0, 34.8, metres=1200, step_m=100, step_s=100, t0=T0)
        assert geo.total_duration(route) == 1200.0

    def test_naive_timestamps_read_as_utc(self):
        naive = TrackPoint(32.0, 34.8, T0.replace(tzinfo=None))
        aware = _pt(32.0, 34.8, 60)
        assert geo.total_duration([naive, aware]) == 60.0


class TestStopDetection:
    PARK = Coordinate(32.0, 34.8)

    def test_single_point_never_stopped(self):
        assert geo.stopped_duration([_pt(32.0, 34.8, 0)], self.PARK, 50) == 0.0

    def test_last_point_outside_radius(self):
        route = [_pt(32.0, 34.8, 0), _pt(32.0, 34.8, 300), _pt(32.0 + 80 * M_LAT, 34.8, 360)]
        assert geo.stopped_duration(route, self.PARK, 50) == 0.0

    def test_contiguous_tail_only(self):
        route = [
            _pt(32.0, 34.8, 0),                       # near, but separated
            _pt(32.0 + 200 * M_LAT, 34.8, 100),       # away
            _pt(32.0 + 30 * M_LAT, 34.8, 200),        # near again
            _pt(32.0 + 10 * M_LAT, 34.8, 320),
            _pt(32.0, 34.8, 440),
        ]
        assert geo.stopped_duration(route, self.PARK, 50) == 240.0

    def test_is_stopped_near_threshold(self):
        route = [_pt(32.0, 34.8, 0), _pt(32.0 + 5 * M_LAT, 34.8, 180)]
        assert geo.is_stopped_near(route, self.PARK, 180, 50)
        assert not geo.is_stopped_near(route, self.PARK, 181, 50)

    def test_passing_by_is_not_a_stop(self):
        route = straight_route(32.0 - 300 * M_LAT, 34.8, metres=300, step_m=100, step_s=60, t0=T0)
        assert geo.distance(route[-1], self.PARK) < 1
        assert geo.stopped_duration(route, self.PARK, 50) == 0.0
