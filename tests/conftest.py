"""Shared fixtures: fake feature services and layer configs, no network."""
import json
from typing import Callable, List
from urllib.parse import parse_qs

import httpx
import pytest

from locationmart.schemas_location import LayerConfig


def square_ring(lat: float, lon: float, half: float) -> List[List[float]]:
    """Closed square ring around (lat, lon), coordinates as [lon, lat]."""
    return [
        [lon - half, lat - half],
        [lon + half, lat - half],
        [lon + half, lat + half],
        [lon - half, lat + half],
        [lon - half, lat - half],
    ]


def point_feature(object_id, lat: float, lon: float, **attrs) -> dict:
    return {"attributes": {"OBJECTID": object_id, **attrs}, "geometry": {"x": lon, "y": lat}}


def polygon_feature(object_id, rings, **attrs) -> dict:
    return {"attributes": {"OBJECTID": object_id, **attrs}, "geometry": {"rings": rings}}


def query_params(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.url.query.decode()).items()}


def is_containment_query(request: httpx.Request) -> bool:
    params = query_params(request)
    return params.get("geometryType") == "esriGeometryPoint" and "distance" not in params


def json_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload).encode(), headers={"content-type": "application/json"})


@pytest.fixture
def make_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose every request goes to `handler`."""

    def _make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def point_layer() -> LayerConfig:
    return LayerConfig(
        layer_id="test_points",
        label="Test Points",
        service_url="https://example.test/arcgis/rest/services/Points/FeatureServer",
        geometry_kind="point",
        max_radius_miles=25,
    )


@pytest.fixture
def polygon_layer() -> LayerConfig:
    return LayerConfig(
        layer_id="test_polygons",
        label="Test Polygons",
        service_url="https://example.test/arcgis/rest/services/Polygons/FeatureServer",
        layer_index=2,
        geometry_kind="polygon",
        max_radius_miles=25,
    )
