"""Tests for coordinate text parsing."""
import pytest

from locationmart.services.location.coordinates import parse_coordinate_pair, parse_dms, parse_lat


class TestParseDms:

    def test_decimal(self):
        assert parse_dms("42.3601") == pytest.approx(42.3601)
        assert parse_dms("-71.0589") == pytest.approx(-71.0589)

    def test_degrees_minutes_seconds(self):
        assert parse_dms("42°21'36\"N") == pytest.approx(42.36)
        assert parse_dms("71°3'32\"W") == pytest.approx(-71.058889, abs=1e-6)

    def test_hemisphere_overrides_sign(self):
        assert parse_dms("33 52 S") == pytest.approx(-33.866667, abs=1e-6)

    def test_bad_minutes(self):
        with pytest.raises(ValueError):
            parse_dms("42 75 00 N")

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_dms("Boston")

    def test_latitude_range(self):
        with pytest.raises(ValueError):
            parse_lat("91")


class TestParseCoordinatePair:

    @pytest.mark.parametrize("text", [
        "42.3601, -71.0589",
        "42.3601 -71.0589",
        "42.3601;-71.0589",
    ])
    def test_decimal_pairs(self, text):
        lat, lon = parse_coordinate_pair(text)
        assert lat == pytest.approx(42.3601)
        assert lon == pytest.approx(-71.0589)

    def test_dms_pair(self):
        lat, lon = parse_coordinate_pair("42°21'36\"N 71°3'32\"W")
        assert lat == pytest.approx(42.36)
        assert lon == pytest.approx(-71.058889, abs=1e-6)

    def test_lon_first_with_hemispheres(self):
        lat, lon = parse_coordinate_pair("71.05W, 42.36N")
        assert lat == pytest.approx(42.36)
        assert lon == pytest.approx(-71.05)

    @pytest.mark.parametrize("text", ["", "   ", "Boston, MA", "10 Downing St", "95.0, 10.0", "1, 2, 3"])
    def test_not_a_pair(self, text):
        assert parse_coordinate_pair(text) is None
