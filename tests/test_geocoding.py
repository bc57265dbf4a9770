"""Tests for the composite geocoder: fan-out, pacing, timeouts, merge, exhaustion."""
import asyncio
import time

import httpx
import pytest

from conftest import json_response
from locationmart.schemas_location import GeocodeResult, RateLimit, RequestTarget
from locationmart.services.location.geocoders import CoordinateAdapter, GeocodingAdapter
from locationmart.services.location.geocoding import (
    CompositeGeocoder,
    GeocodingExhaustedError,
    dedupe_results,
    rank_results,
)


class FakeAdapter(GeocodingAdapter):
    """Issues one GET per path; the fake server answers {"hits": [[lat, lon, confidence], ...]}."""

    def __init__(self, name, paths, rps=100.0, accepts=True, broken_parser=False):
        self.name = name
        self.paths = paths
        self.rate_limit = RateLimit(rps=rps)
        self.accepts = accepts
        self.broken_parser = broken_parser

    def supports(self, query):
        return self.accepts

    def build_requests(self, query):
        return [RequestTarget(url=f"https://geo.test{p}") for p in self.paths]

    def parse_response(self, raw, query):
        if self.broken_parser:
            raise KeyError("hits")
        return [GeocodeResult(source=self.name, lat=lat, lon=lon, name=self.name, confidence=c)
                for lat, lon, c in raw["hits"]]


def routes(table):
    """MockTransport handler answering from {path: hits | status code | coroutine}."""

    async def handler(request):
        answer = table[request.url.path]
        if callable(answer):
            return await answer()
        if isinstance(answer, int):
            return httpx.Response(answer)
        return json_response({"hits": answer})

    return handler


def result(lat, lon, confidence, source="x"):
    return GeocodeResult(source=source, lat=lat, lon=lon, name=source, confidence=confidence)


class TestMerge:

    def test_near_duplicates_keep_first_seen(self):
        merged = dedupe_results([
            result(42.0, -71.0, 0.6, "first"),
            result(42.00005, -71.00003, 0.9, "dup"),
            result(42.001, -71.0, 0.8, "distinct"),
        ])
        assert [r.source for r in merged] == ["first", "distinct"]

    def test_rank_is_descending_and_stable(self):
        ranked = rank_results([result(0, 0, 0.6, "a"), result(1, 1, 0.95, "b"), result(2, 2, 0.8, "c"),
                               result(3, 3, 0.8, "d")])
        assert [r.confidence for r in ranked] == [0.95, 0.8, 0.8, 0.6]
        assert [r.source for r in ranked] == ["b", "c", "d", "a"]

    def test_confidence_is_clamped(self):
        assert result(0, 0, 1.7).confidence == 1.0
        assert result(0, 0, -2).confidence == 0.0


class TestRateLimit:

    def test_rps_is_the_only_pacing_knob(self):
        assert set(RateLimit.model_fields) == {"rps"}
        assert RateLimit().rps == 10.0

    def test_rps_must_be_positive(self):
        with pytest.raises(ValueError):
            RateLimit(rps=0)

    def test_interval_follows_rps(self):
        geocoder = CompositeGeocoder([], default_rps=4)
        assert geocoder._interval(FakeAdapter("A", [], rps=20)) == pytest.approx(0.05)

        unlimited = FakeAdapter("B", [])
        unlimited.rate_limit = None
        assert geocoder._interval(unlimited) == pytest.approx(0.25)


class TestCompositeGeocoder:

    @pytest.mark.asyncio
    async def test_merges_adapters_and_drops_duplicates(self, make_client):
        client = make_client(routes({
            "/a": [[42.0, -71.0, 0.6]],
            "/b": [[42.00005, -71.00003, 0.9], [42.001, -71.0, 0.8]],
        }))
        geocoder = CompositeGeocoder([FakeAdapter("A", ["/a"]), FakeAdapter("B", ["/b"])], client=client)

        results = await geocoder.search("somewhere")

        assert [(r.source, r.confidence) for r in results] == [("B", 0.8), ("A", 0.6)]

    @pytest.mark.asyncio
    async def test_sorted_by_confidence(self, make_client):
        client = make_client(routes({
            "/a": [[1, 1, 0.6]],
            "/b": [[2, 2, 0.95]],
            "/c": [[3, 3, 0.8]],
        }))
        geocoder = CompositeGeocoder(
            [FakeAdapter("A", ["/a"]), FakeAdapter("B", ["/b"]), FakeAdapter("C", ["/c"])], client=client,
        )

        results = await geocoder.search("somewhere")

        assert [r.confidence for r in results] == [0.95, 0.8, 0.6]

    @pytest.mark.asyncio
    async def test_requests_spaced_by_rate_limit(self, make_client):
        stamps = []

        async def stamp():
            stamps.append(time.monotonic())
            return json_response({"hits": []})

        client = make_client(routes({"/1": stamp, "/2": stamp, "/3": stamp}))
        geocoder = CompositeGeocoder([FakeAdapter("A", ["/1", "/2", "/3"], rps=20)], client=client)

        await geocoder.search("somewhere")

        assert len(stamps) == 3
        gaps = [b - a for a, b in zip(stamps, stamps[1:])]
        assert all(gap >= 0.045 for gap in gaps)

    @pytest.mark.asyncio
    async def test_timed_out_request_is_skipped(self, make_client):
        async def hang():
            await asyncio.sleep(5)
            return json_response({"hits": []})

        client = make_client(routes({"/slow": hang, "/fast": [[10.0, 10.0, 0.7]]}))
        geocoder = CompositeGeocoder([FakeAdapter("A", ["/slow", "/fast"])], client=client, timeout_seconds=0.05)

        results = await geocoder.search("somewhere")

        assert [(r.lat, r.lon) for r in results] == [(10.0, 10.0)]

    @pytest.mark.asyncio
    async def test_failed_adapter_does_not_sink_the_others(self, make_client):
        client = make_client(routes({"/down": 503, "/up": [[5.0, 5.0, 0.5]]}))
        geocoder = CompositeGeocoder([FakeAdapter("Down", ["/down"]), FakeAdapter("Up", ["/up"])], client=client)

        results = await geocoder.search("somewhere")

        assert [r.source for r in results] == ["Up"]

    @pytest.mark.asyncio
    async def test_parser_failure_is_skipped(self, make_client):
        client = make_client(routes({"/a": [[1, 1, 0.5]], "/b": [[2, 2, 0.5]]}))
        geocoder = CompositeGeocoder(
            [FakeAdapter("Broken", ["/a"], broken_parser=True), FakeAdapter("Fine", ["/b"])], client=client,
        )

        results = await geocoder.search("somewhere")

        assert [r.source for r in results] == ["Fine"]

    @pytest.mark.asyncio
    async def test_only_eligible_adapters_are_called(self, make_client):
        called = []

        def handler(request):
            called.append(request.url.path)
            return json_response({"hits": []})

        geocoder = CompositeGeocoder(
            [FakeAdapter("No", ["/no"], accepts=False), FakeAdapter("Yes", ["/yes"])], client=make_client(handler),
        )

        await geocoder.search("somewhere")

        assert called == ["/yes"]

    @pytest.mark.asyncio
    async def test_no_matches_is_an_empty_list(self, make_client):
        geocoder = CompositeGeocoder([FakeAdapter("A", ["/a"])], client=make_client(routes({"/a": []})))
        assert await geocoder.search("nowhere") == []

    @pytest.mark.asyncio
    async def test_no_eligible_adapter_is_exhaustion(self, make_client):
        geocoder = CompositeGeocoder([FakeAdapter("A", ["/a"], accepts=False)], client=make_client(routes({})))
        with pytest.raises(GeocodingExhaustedError):
            await geocoder.search("somewhere")

    @pytest.mark.asyncio
    async def test_every_request_failing_is_exhaustion(self, make_client):
        client = make_client(routes({"/a": 500, "/b": 429}))
        geocoder = CompositeGeocoder([FakeAdapter("A", ["/a"]), FakeAdapter("B", ["/b"])], client=client)
        with pytest.raises(GeocodingExhaustedError):
            await geocoder.search("somewhere")

    @pytest.mark.asyncio
    async def test_local_coordinates_survive_network_failure(self, make_client):
        client = make_client(routes({"/a": 500}))
        geocoder = CompositeGeocoder([CoordinateAdapter(), FakeAdapter("A", ["/a"])], client=client)

        results = await geocoder.search("42.3601, -71.0589")

        assert len(results) == 1
        assert results[0].source == "Coordinates"
        assert results[0].confidence == 1.0
