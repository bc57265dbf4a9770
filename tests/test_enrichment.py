"""Tests for multi-layer enrichment and geocode-then-enrich lookup."""
import pytest

from conftest import json_response, point_feature, query_params
from locationmart.schemas_location import RequestTarget, ResolutionResult
from locationmart.services.location import enrichment
from locationmart.services.location.enrichment import enrich, lookup
from locationmart.services.location.geocoders import CoordinateAdapter, GeocodingAdapter
from locationmart.services.location.geocoding import CompositeGeocoder
from locationmart.services.location.layers import LayerRegistry

LAT, LON = 40.0, -75.0

ROWS = (
    ("stations", "Stations", "https://example.test/Stations/FeatureServer", 0, "point", 25),
    ("hydrants", "Hydrants", "https://example.test/Hydrants/FeatureServer", 0, "point", 1),
)


@pytest.fixture
def registry():
    return LayerRegistry.from_rows(ROWS)


def service_handler(seen):
    def handler(request):
        seen.setdefault(request.url.path, []).append(query_params(request))
        if "Stations" in request.url.path:
            return json_response({"features": [point_feature(1, LAT + 0.01, LON)]})
        return json_response({"features": [point_feature(7, LAT + 0.001, LON)]})

    return handler


class NothingFound(GeocodingAdapter):
    name = "Nothing"

    def build_requests(self, query):
        return [RequestTarget(url="https://geo.test/search")]

    def parse_response(self, raw, query):
        return []


class TestEnrich:

    @pytest.mark.asyncio
    async def test_resolves_each_layer(self, make_client, registry):
        seen = {}
        result = await enrich(registry, LAT, LON, ["stations", "hydrants"], client=make_client(service_handler(seen)))

        assert set(result.layers) == {"stations", "hydrants"}
        assert result.layers["stations"].features[0].object_id == "1"
        assert result.layers["hydrants"].features[0].object_id == "7"
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_unknown_layers_become_warnings(self, make_client, registry):
        result = await enrich(registry, LAT, LON, ["stations", "nope"], client=make_client(service_handler({})))

        assert list(result.layers) == ["stations"]
        assert result.warnings == ["Unknown enrichment layer: nope"]

    @pytest.mark.asyncio
    async def test_per_layer_radius_and_cap(self, make_client, registry):
        seen = {}
        await enrich(
            registry, LAT, LON, ["stations", "hydrants"],
            radii={"stations": 10, "hydrants": 50},
            client=make_client(service_handler(seen)),
        )

        stations = seen["/Stations/FeatureServer/0/query"][0]
        hydrants = seen["/Hydrants/FeatureServer/0/query"][0]
        assert float(stations["distance"]) == pytest.approx(10 * 1609.34)
        assert float(hydrants["distance"]) == pytest.approx(1 * 1609.34)

    @pytest.mark.asyncio
    async def test_duplicate_ids_resolved_once(self, make_client, registry):
        seen = {}
        await enrich(registry, LAT, LON, ["stations", "stations"], client=make_client(service_handler(seen)))
        assert len(seen["/Stations/FeatureServer/0/query"]) == 1

    @pytest.mark.asyncio
    async def test_one_failing_layer_does_not_abort_others(self, make_client, registry, monkeypatch):
        async def flaky_resolve(layer, lat, lon, radius, client=None):
            if layer.layer_id == "hydrants":
                raise RuntimeError("boom")
            return ResolutionResult(layer_id=layer.layer_id, layer_label=layer.label, effective_radius_miles=5)

        monkeypatch.setattr(enrichment, "resolve_layer", flaky_resolve)

        result = await enrich(registry, LAT, LON, ["stations", "hydrants"], client=make_client(service_handler({})))

        assert result.layers["stations"].warnings == []
        assert result.layers["hydrants"].features == []
        assert result.layers["hydrants"].warnings == ["hydrants: boom"]
        assert "hydrants: boom" in result.warnings

    @pytest.mark.asyncio
    async def test_remote_errors_surface_as_warnings(self, make_client, registry):
        def handler(request):
            return json_response({"error": {"code": 500, "message": "Service down"}})

        result = await enrich(registry, LAT, LON, ["stations"], client=make_client(handler))

        assert result.layers["stations"].features == []
        assert any("Service down" in w for w in result.warnings)


class TestLookup:

    @pytest.mark.asyncio
    async def test_geocodes_then_enriches_best_candidate(self, make_client, registry):
        seen = {}
        client = make_client(service_handler(seen))
        geocoder = CompositeGeocoder([CoordinateAdapter()], client=client)

        result = await lookup(geocoder, registry, f"{LAT}, {LON}", ["stations"], client=client)

        assert result.location.lat == LAT and result.location.lon == LON
        assert len(result.candidates) == 1
        assert result.enrichment.lat == LAT
        assert result.enrichment.layers["stations"].features[0].object_id == "1"

    @pytest.mark.asyncio
    async def test_nothing_found(self, make_client, registry):
        client = make_client(lambda request: json_response([]))
        geocoder = CompositeGeocoder([NothingFound()], client=client)

        result = await lookup(geocoder, registry, "nowhere at all", ["stations"], client=client)

        assert result.location is None
        assert result.enrichment is None
        assert result.candidates == []
