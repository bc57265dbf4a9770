"""
Multi-layer Enrichment

Runs the proximity resolver for many registered layers around one point,
and the geocode-then-enrich lookup built on top of it.

One failing layer never takes the others down: it shows up as a warning
and an empty result under its own id.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

import httpx

from locationmart.config import settings
from locationmart.schemas_location import (
    EnrichmentResult,
    GeocodeQuery,
    LookupResult,
    QueryMode,
    ResolutionResult,
)
from .arcgis import client_scope
from .geocoding import CompositeGeocoder
from .layers import LayerRegistry
from .proximity import resolve_layer

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = settings.ENRICHMENT_MAX_CONCURRENCY


async def enrich(
    registry: LayerRegistry,
    lat: float,
    lon: float,
    layer_ids: Iterable[str],
    radii: Optional[Dict[str, float]] = None,
    client: Optional[httpx.AsyncClient] = None,
    max_concurrency: int = MAX_CONCURRENCY,
) -> EnrichmentResult:
    """
    Resolve each requested layer around (lat, lon).

    radii maps layer id -> requested miles; layers without an entry use
    their default radius. Every radius is clamped by the layer's cap.
    Unknown ids are reported in warnings and skipped.
    """
    radii = radii or {}
    warnings: List[str] = []
    layers = []
    seen = set()

    for layer_id in layer_ids:
        if layer_id in seen:
            continue
        seen.add(layer_id)
        layer = registry.find(layer_id)
        if layer is None:
            logger.warning(f"Skipping unknown enrichment layer '{layer_id}'")
            warnings.append(f"Unknown enrichment layer: {layer_id}")
            continue
        layers.append(layer)

    semaphore = asyncio.Semaphore(max_concurrency)

    async def _resolve_one(layer, http) -> ResolutionResult:
        async with semaphore:
            try:
                return await resolve_layer(layer, lat, lon, radii.get(layer.layer_id), client=http)
            except Exception as e:
                logger.error(f"Enrichment layer '{layer.layer_id}' failed at ({lat}, {lon}): {e}")
                return ResolutionResult(
                    layer_id=layer.layer_id,
                    layer_label=layer.label,
                    effective_radius_miles=layer.effective_radius(radii.get(layer.layer_id)),
                    warnings=[f"{layer.layer_id}: {e}"],
                )

    async with client_scope(client) as http:
        resolved = await asyncio.gather(*(_resolve_one(layer, http) for layer in layers))

    result = EnrichmentResult(
        lat=lat,
        lon=lon,
        layers={r.layer_id: r for r in resolved},
        warnings=warnings,
    )
    for r in resolved:
        result.warnings.extend(r.warnings)

    total = sum(len(r.features) for r in resolved)
    logger.info(f"Enriched ({lat}, {lon}): {len(resolved)} layer(s), {total} feature(s)")
    return result


async def lookup(
    geocoder: CompositeGeocoder,
    registry: LayerRegistry,
    query_text: str,
    layer_ids: Iterable[str],
    radii: Optional[Dict[str, float]] = None,
    mode: Optional[QueryMode] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> LookupResult:
    """
    Geocode query_text and enrich the best candidate.

    No candidates -> location and enrichment are None. GeocodingExhaustedError
    from the geocoder propagates.
    """
    candidates = await geocoder.search(GeocodeQuery(text=query_text, by=mode))
    if not candidates:
        logger.info(f"Lookup '{query_text}': no location found")
        return LookupResult(query=query_text)

    best = candidates[0]
    enrichment = await enrich(registry, best.lat, best.lon, layer_ids, radii=radii, client=client)
    return LookupResult(query=query_text, location=best, candidates=candidates, enrichment=enrichment)
