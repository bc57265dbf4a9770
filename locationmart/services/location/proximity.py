"""
Proximity Resolver for Enrichment Layers

One algorithm for every layer in the registry: given a layer, a point and
a requested radius, return the features that contain the point followed by
the features within the (capped) radius, nearest first.

Passes:
    1. Containment: exact point-intersects query (polygon layers only).
       Server hits are re-checked locally with ray casting; intersection on
       the server can be a boundary touch or a bounding-box match.
    2. Proximity: buffered point query, or an envelope for polygon layers
       whose service cannot buffer. Every hit gets a true distance.

Merge:
    - drop proximity hits already in the containing set (object id)
    - drop anything farther than the effective radius
    - containing first (server order), then ascending distance

Features without usable geometry sit at the effective radius rather than
being dropped.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from locationmart.schemas_location import LayerConfig, ResolutionResult, SpatialFeature
from .arcgis import (
    PAGE_DELAY_SECONDS,
    build_envelope_query,
    build_point_query,
    client_scope,
    feature_object_id,
    fetch_all_features,
)
from .geometry import (
    distance_to_polygon_boundary,
    distance_to_polyline,
    envelope_for_radius,
    haversine_miles,
    point_in_polygon,
)

logger = logging.getLogger(__name__)


# =============================================================================
# DISTANCE / CONTAINMENT PER FEATURE
# =============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def feature_distance(
    feature: Dict[str, Any],
    lat: float,
    lon: float,
    default_miles: float,
) -> Tuple[float, bool]:
    """
    Distance in miles from (lat, lon) to a raw service feature, and whether
    the feature contains the point. The geometry shape decides the formula:
    rings -> polygon boundary (0 when inside), paths -> polyline,
    points -> nearest vertex, x/y -> point.

    Missing or empty geometry returns (default_miles, False).
    """
    geometry = feature.get("geometry") or {}
    distance = math.inf

    if geometry.get("rings"):
        rings = geometry["rings"]
        if point_in_polygon(lat, lon, rings):
            return 0.0, True
        distance = distance_to_polygon_boundary(lat, lon, rings)
    elif geometry.get("paths"):
        distance = distance_to_polyline(lat, lon, geometry["paths"])
    elif geometry.get("points"):
        distance = min(
            (haversine_miles(lat, lon, p[1], p[0]) for p in geometry["points"] if len(p) >= 2),
            default=math.inf,
        )
    elif _is_number(geometry.get("x")) and _is_number(geometry.get("y")):
        distance = haversine_miles(lat, lon, geometry["y"], geometry["x"])

    if not math.isfinite(distance):
        return default_miles, False
    return distance, False


def _to_feature(
    raw: Dict[str, Any],
    layer: LayerConfig,
    distance: float,
    is_containing: bool,
) -> SpatialFeature:
    return SpatialFeature(
        object_id=feature_object_id(raw),
        attributes=raw.get("attributes") or {},
        geometry=raw.get("geometry"),
        distance_miles=distance,
        is_containing=is_containing,
        layer_id=layer.layer_id,
        layer_label=layer.label,
    )


# =============================================================================
# MERGE
# =============================================================================

def merge_passes(
    layer: LayerConfig,
    lat: float,
    lon: float,
    effective_radius: float,
    containment_hits: Iterable[Dict[str, Any]],
    proximity_hits: Iterable[Dict[str, Any]],
) -> List[SpatialFeature]:
    """
    Combine raw containment and proximity hits into the final ordered list.
    Pure; resolve_layer supplies the hits from the remote service.
    """
    containing: List[SpatialFeature] = []
    seen_ids = set()
    candidates: List[Dict[str, Any]] = []

    for raw in containment_hits:
        rings = (raw.get("geometry") or {}).get("rings")
        if rings and point_in_polygon(lat, lon, rings):
            object_id = feature_object_id(raw)
            if object_id is not None:
                if object_id in seen_ids:
                    continue
                seen_ids.add(object_id)
            containing.append(_to_feature(raw, layer, 0.0, True))
        else:
            # Server said intersects, local check disagrees: treat as nearby
            candidates.append(raw)

    candidates.extend(proximity_hits)

    nearby: List[SpatialFeature] = []
    for raw in candidates:
        object_id = feature_object_id(raw)
        if object_id is not None and object_id in seen_ids:
            continue

        distance, contains = feature_distance(raw, lat, lon, effective_radius)
        if contains:
            containing.append(_to_feature(raw, layer, 0.0, True))
        elif distance <= effective_radius:
            nearby.append(_to_feature(raw, layer, distance, False))
        else:
            continue

        if object_id is not None:
            seen_ids.add(object_id)

    nearby.sort(key=lambda f: f.distance_miles)
    return containing + nearby


# =============================================================================
# RESOLVE
# =============================================================================

def _proximity_query(layer: LayerConfig, lat: float, lon: float, radius: float) -> Dict[str, str]:
    if layer.geometry_kind == "polygon" and not layer.supports_buffer:
        return build_envelope_query(
            envelope_for_radius(lat, lon, radius),
            where=layer.where,
            out_fields=layer.out_fields,
        )
    return build_point_query(lat, lon, radius, where=layer.where, out_fields=layer.out_fields)


async def resolve_layer(
    layer: LayerConfig,
    lat: float,
    lon: float,
    requested_radius_miles: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
    strict: bool = False,
    page_delay: float = PAGE_DELAY_SECONDS,
) -> ResolutionResult:
    """
    Resolve one layer around a point.

    requested_radius_miles is clamped to [0, layer.max_radius_miles]; None
    uses the layer default. An effective radius of 0 skips the proximity
    pass, so point and polyline layers then return no features without
    querying the service. With strict=False remote failures become
    warnings on the result; with strict=True FeatureServiceError propagates.
    """
    effective = layer.effective_radius(requested_radius_miles)
    warnings: List[str] = []
    truncated = False
    containment_hits: List[Dict[str, Any]] = []
    proximity_hits: List[Dict[str, Any]] = []

    async with client_scope(client) as http:
        if layer.geometry_kind == "polygon":
            fetched = await fetch_all_features(
                layer.query_url,
                build_point_query(lat, lon, where=layer.where, out_fields=layer.out_fields),
                client=http,
                page_size=layer.page_size,
                page_delay=page_delay,
                strict=strict,
            )
            containment_hits = fetched.features
            warnings.extend(fetched.warnings)
            truncated = truncated or fetched.truncated

        if effective > 0:
            fetched = await fetch_all_features(
                layer.query_url,
                _proximity_query(layer, lat, lon, effective),
                client=http,
                page_size=layer.page_size,
                page_delay=page_delay,
                strict=strict,
            )
            proximity_hits = fetched.features
            warnings.extend(fetched.warnings)
            truncated = truncated or fetched.truncated

    features = merge_passes(layer, lat, lon, effective, containment_hits, proximity_hits)

    containing_count = sum(1 for f in features if f.is_containing)
    logger.info(
        f"{layer.layer_id}: {containing_count} containing, {len(features) - containing_count} nearby "
        f"within {effective} mi of ({lat}, {lon})"
    )

    return ResolutionResult(
        layer_id=layer.layer_id,
        layer_label=layer.label,
        effective_radius_miles=effective,
        features=features,
        warnings=warnings,
        truncated=truncated,
    )
