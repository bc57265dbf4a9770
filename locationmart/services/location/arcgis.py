"""
ArcGIS REST Feature Service Client

Speaks the geometry query protocol shared by every MapServer/FeatureServer
layer we enrich from: point or envelope geometry, intersects relation,
optional buffer distance, WGS84 in and out, paged with resultOffset and
resultRecordCount.

Pagination follows the server: keep paging while a page comes back full or
the server sets exceededTransferLimit. A hard ceiling stops runaway layers,
and a short fixed pause between pages keeps us polite to third-party
services.

Usage:
    from locationmart.services.location.arcgis import (
        build_point_query,
        build_envelope_query,
        fetch_all_features,
        fetch_layer_metadata,
    )
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx

from locationmart.config import settings
from locationmart.schemas_location import FetchResult
from .geometry import miles_to_meters

logger = logging.getLogger(__name__)

ARCGIS_TIMEOUT = settings.ARCGIS_TIMEOUT_SECONDS
PAGE_SIZE = settings.ARCGIS_PAGE_SIZE
MAX_TOTAL_FEATURES = settings.ARCGIS_MAX_FEATURES
PAGE_DELAY_SECONDS = settings.ARCGIS_PAGE_DELAY_SECONDS

WGS84 = {"wkid": 4326}

OBJECT_ID_FIELDS = ("OBJECTID", "objectid", "OBJECTID_1", "FID", "fid", "GlobalID")


class FeatureServiceError(ValueError):
    """Remote feature service returned an error object or an unusable body."""


@asynccontextmanager
async def client_scope(client: Optional[httpx.AsyncClient], timeout: float = ARCGIS_TIMEOUT):
    """Yield the caller's client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
        yield owned


# =============================================================================
# QUERY PARAMETERS
# =============================================================================

def _base_query(where: str, out_fields: str) -> Dict[str, str]:
    return {
        "f": "json",
        "where": where,
        "outFields": out_fields,
        "spatialRel": "esriSpatialRelIntersects",
        "inSR": "4326",
        "outSR": "4326",
        "returnGeometry": "true",
    }


def build_point_query(
    lat: float,
    lon: float,
    radius_miles: Optional[float] = None,
    where: str = "1=1",
    out_fields: str = "*",
) -> Dict[str, str]:
    """
    Point geometry query. With a positive radius the server buffers the
    point by that many miles (sent as meters); without one it is an exact
    point-intersects query.
    """
    params = _base_query(where, out_fields)
    params["geometry"] = json.dumps({"x": lon, "y": lat, "spatialReference": WGS84})
    params["geometryType"] = "esriGeometryPoint"
    if radius_miles and radius_miles > 0:
        params["distance"] = str(miles_to_meters(radius_miles))
        params["units"] = "esriSRUnit_Meter"
    return params


def build_envelope_query(
    envelope: Dict[str, float],
    where: str = "1=1",
    out_fields: str = "*",
) -> Dict[str, str]:
    """Envelope geometry query for services that cannot buffer a point."""
    params = _base_query(where, out_fields)
    params["geometry"] = json.dumps({
        "xmin": envelope["xmin"],
        "ymin": envelope["ymin"],
        "xmax": envelope["xmax"],
        "ymax": envelope["ymax"],
        "spatialReference": WGS84,
    })
    params["geometryType"] = "esriGeometryEnvelope"
    return params


def feature_object_id(feature: Dict[str, Any]) -> Optional[str]:
    """Server-assigned id used for dedup, or None when the layer exposes none."""
    attributes = feature.get("attributes") or {}
    for field in OBJECT_ID_FIELDS:
        value = attributes.get(field)
        if value is not None and value != "":
            return str(value)
    return None


# =============================================================================
# TRANSPORT
# =============================================================================

def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("details") or error)
    return str(error)


async def _get_json(client: httpx.AsyncClient, url: str, params: Optional[dict] = None) -> dict:
    """GET a JSON object, converting every transport or body problem to FeatureServiceError."""
    try:
        resp = await client.get(url, params=params)
        resp.raise_for_status()
    except httpx.TimeoutException as e:
        raise FeatureServiceError(f"Timed out querying {url}") from e
    except httpx.HTTPError as e:
        raise FeatureServiceError(f"HTTP error querying {url}: {e}") from e

    body = resp.text.lstrip()
    if body[:1] == "<":
        raise FeatureServiceError(f"Received HTML instead of JSON from {url}")

    try:
        data = resp.json()
    except ValueError as e:
        raise FeatureServiceError(f"Invalid JSON response from {url}") from e

    if not isinstance(data, dict):
        raise FeatureServiceError(f"Unexpected response shape from {url}")
    return data


# =============================================================================
# FEATURE FETCHING (paginated)
# =============================================================================

async def fetch_all_features(
    query_url: str,
    params: Dict[str, str],
    client: Optional[httpx.AsyncClient] = None,
    page_size: int = PAGE_SIZE,
    max_features: int = MAX_TOTAL_FEATURES,
    page_delay: float = PAGE_DELAY_SECONDS,
    strict: bool = False,
) -> FetchResult:
    """
    Fetch every feature matching a query, following resultOffset paging.

    strict=True raises FeatureServiceError on the first failed page.
    strict=False logs, records a warning, and returns what was accumulated.
    Crossing max_features stops paging with truncated=True.
    """
    result = FetchResult()
    offset = 0

    async with client_scope(client) as http:
        while True:
            page_params = {
                **params,
                "resultOffset": str(offset),
                "resultRecordCount": str(page_size),
            }

            try:
                data = await _get_json(http, query_url, page_params)
                if "error" in data:
                    raise FeatureServiceError(f"ArcGIS error: {_error_message(data['error'])}")
            except FeatureServiceError as e:
                if strict:
                    raise
                msg = f"{query_url} (offset={offset}): {e}"
                logger.warning(f"Stopping pagination, returning {len(result.features)} features: {msg}")
                result.warnings.append(msg)
                break

            result.pages += 1
            features = data.get("features") or []
            if not features:
                break

            result.features.extend(features)
            logger.debug(
                f"Fetched {len(features)} features (offset={offset}, total so far={len(result.features)})"
            )

            if len(result.features) > max_features:
                msg = f"{query_url}: stopped paging at {len(result.features)} features (limit {max_features})"
                logger.warning(msg)
                result.warnings.append(msg)
                result.truncated = True
                break

            if len(features) < page_size and not data.get("exceededTransferLimit"):
                break  # Last page

            offset += len(features)
            await asyncio.sleep(page_delay)

    logger.info(f"Fetched {len(result.features)} features from {query_url} in {result.pages} page(s)")
    return result


# =============================================================================
# METADATA
# =============================================================================

async def fetch_layer_metadata(url: str, client: Optional[httpx.AsyncClient] = None) -> dict:
    """
    Fetch layer metadata from an ArcGIS REST endpoint.

    Accepts .../MapServer/N and .../FeatureServer/N URLs.
    Returns dict with: url, name, description, geometry_kind, fields[],
    max_record_count, feature_count (if available), extent.
    """
    rest_url = normalize_layer_url(url)

    async with client_scope(client) as http:
        data = await _get_json(http, rest_url, {"f": "json"})
        if "error" in data:
            raise FeatureServiceError(f"ArcGIS error: {_error_message(data['error'])}")

        feature_count = None
        try:
            count_data = await _get_json(
                http,
                f"{rest_url}/query",
                {"where": "1=1", "returnCountOnly": "true", "f": "json"},
            )
            feature_count = count_data.get("count")
        except FeatureServiceError as e:
            logger.debug(f"Feature count unavailable for {rest_url}: {e}")

    fields = []
    for f in data.get("fields", []):
        fields.append({
            "name": f.get("name"),
            "alias": f.get("alias", f.get("name")),
            "type": _simplify_esri_type(f.get("type", "")),
            "esri_type": f.get("type", ""),
        })

    return {
        "url": rest_url,
        "name": data.get("name", "Unknown Layer"),
        "description": data.get("description", ""),
        "geometry_kind": _simplify_geometry_type(data.get("geometryType", "")),
        "fields": fields,
        "max_record_count": data.get("maxRecordCount", PAGE_SIZE),
        "feature_count": feature_count,
        "extent": data.get("extent"),
    }


# =============================================================================
# HELPERS
# =============================================================================

def normalize_layer_url(url: str) -> str:
    """Strip whitespace, trailing slashes and query params from a layer URL."""
    url = url.strip().rstrip("/")
    if "?" in url:
        url = url.split("?")[0]
    if url.endswith("/query"):
        url = url[: -len("/query")]
    return url


def _simplify_esri_type(esri_type: str) -> str:
    """Convert ESRI field type to simple type."""
    type_map = {
        "esriFieldTypeString": "text",
        "esriFieldTypeInteger": "number",
        "esriFieldTypeSmallInteger": "number",
        "esriFieldTypeDouble": "number",
        "esriFieldTypeSingle": "number",
        "esriFieldTypeDate": "date",
        "esriFieldTypeOID": "number",
        "esriFieldTypeGlobalID": "text",
        "esriFieldTypeGUID": "text",
    }
    return type_map.get(esri_type, "text")


def _simplify_geometry_type(esri_geom: str) -> str:
    """Convert ESRI geometry type to our geometry kind."""
    geom_map = {
        "esriGeometryPoint": "point",
        "esriGeometryMultipoint": "point",
        "esriGeometryPolyline": "polyline",
        "esriGeometryPolygon": "polygon",
    }
    return geom_map.get(esri_geom, "point")
