"""Tests for pure geometry helpers."""
import math

import pytest

from conftest import square_ring
from locationmart.services.location.geometry import (
    centroid,
    distance_to_polygon_boundary,
    distance_to_polyline,
    distance_to_segment,
    envelope_for_radius,
    haversine_km,
    haversine_miles,
    miles_to_meters,
    point_in_polygon,
)

BOSTON = (42.3601, -71.0589)
NEW_YORK = (40.7128, -74.0060)


class TestHaversine:

    def test_zero_for_same_point(self):
        assert haversine_miles(*BOSTON, *BOSTON) == 0

    def test_symmetric(self):
        assert haversine_miles(*BOSTON, *NEW_YORK) == pytest.approx(haversine_miles(*NEW_YORK, *BOSTON))

    def test_boston_to_new_york(self):
        assert haversine_miles(*BOSTON, *NEW_YORK) == pytest.approx(190, abs=3)

    def test_one_degree_of_latitude(self):
        assert haversine_miles(0, 0, 1, 0) == pytest.approx(69.09, abs=0.01)

    def test_km_and_miles_agree(self):
        km = haversine_km(*BOSTON, *NEW_YORK)
        miles = haversine_miles(*BOSTON, *NEW_YORK)
        assert km / miles == pytest.approx(1.609, abs=0.002)

    def test_miles_to_meters(self):
        assert miles_to_meters(1) == pytest.approx(1609.34)


class TestSegmentDistance:

    def test_degenerate_segment_is_endpoint_distance(self):
        seg = [-71.0, 42.0]
        assert distance_to_segment(42.1, -71.0, seg, seg) == pytest.approx(haversine_miles(42.1, -71.0, 42.0, -71.0))

    def test_projection_onto_interior(self):
        # Segment along the equator, point one degree north of its middle
        d = distance_to_segment(1.0, 0.5, [0.0, 0.0], [1.0, 0.0])
        assert d == pytest.approx(haversine_miles(1.0, 0.5, 0.0, 0.5))

    def test_projection_clamped_to_endpoint(self):
        d = distance_to_segment(0.0, 3.0, [0.0, 0.0], [1.0, 0.0])
        assert d == pytest.approx(haversine_miles(0.0, 3.0, 0.0, 1.0))

    def test_polyline_takes_nearest_segment(self):
        paths = [[[0.0, 0.0], [1.0, 0.0]], [[0.0, 2.0], [1.0, 2.0]]]
        d = distance_to_polyline(1.9, 0.5, paths)
        assert d == pytest.approx(haversine_miles(1.9, 0.5, 2.0, 0.5))

    def test_empty_polyline_is_infinite(self):
        assert math.isinf(distance_to_polyline(0, 0, []))
        assert math.isinf(distance_to_polyline(0, 0, None))


class TestPolygon:

    def test_point_inside_square(self):
        assert point_in_polygon(10.0, 20.0, [square_ring(10.0, 20.0, 0.5)])

    def test_point_outside_square(self):
        assert not point_in_polygon(12.0, 20.0, [square_ring(10.0, 20.0, 0.5)])

    def test_point_in_hole_is_not_contained(self):
        rings = [square_ring(10.0, 20.0, 1.0), square_ring(10.0, 20.0, 0.2)]
        assert not point_in_polygon(10.0, 20.0, rings)
        assert point_in_polygon(10.5, 20.5, rings)

    def test_degenerate_ring_contains_nothing(self):
        assert not point_in_polygon(0.0, 0.0, [[[0.0, 0.0], [1.0, 1.0]]])
        assert not point_in_polygon(0.0, 0.0, [])

    def test_unclosed_ring_is_treated_as_closed(self):
        ring = square_ring(0.0, 0.0, 0.1)[:-1]
        d = distance_to_polygon_boundary(0.0, 0.0, [ring])
        assert d == pytest.approx(haversine_miles(0.0, 0.0, 0.0, 0.1), rel=1e-3)

    def test_boundary_distance_from_inside(self):
        d = distance_to_polygon_boundary(0.0, 0.0, [square_ring(0.0, 0.0, 0.1)])
        assert d == pytest.approx(6.9, abs=0.1)

    def test_empty_polygon_is_infinite(self):
        assert math.isinf(distance_to_polygon_boundary(0, 0, []))

    def test_centroid_of_square(self):
        lat, lon = centroid([square_ring(10.0, 20.0, 0.5)[:-1]])
        assert lat == pytest.approx(10.0)
        assert lon == pytest.approx(20.0)

    def test_centroid_of_nothing(self):
        assert centroid([]) is None
        assert centroid(None) is None


class TestEnvelope:

    def test_latitude_span(self):
        env = envelope_for_radius(0.0, 0.0, 69.0)
        assert env["ymax"] - env["ymin"] == pytest.approx(2.0)
        assert env["xmax"] - env["xmin"] == pytest.approx(2.0)

    def test_longitude_span_widens_with_latitude(self):
        env = envelope_for_radius(60.0, 10.0, 69.0)
        assert env["xmax"] - env["xmin"] == pytest.approx(4.0, rel=1e-6)

    def test_pole_is_bounded(self):
        env = envelope_for_radius(90.0, 0.0, 10.0)
        assert env["xmax"] - env["xmin"] <= 360.0
