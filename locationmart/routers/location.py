"""
Location Services Router

Endpoints for geocoding free text and enriching coordinates with nearby
features from the registered layers.

Endpoints:
    POST /api/location/geocode                    - Geocode free text (all sources)
    GET  /api/location/layers                     - List registered enrichment layers
    GET  /api/location/layers/{id}/metadata       - Describe a layer's remote service
    GET  /api/location/layers/{id}/features       - Features around a point for one layer
    POST /api/location/enrich                     - Many layers around one point
    POST /api/location/lookup                     - Geocode, then enrich the best match
    GET  /api/location/health                     - Registry size / liveness
"""

import logging
from typing import Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from locationmart.schemas_location import (
    BBox,
    EnrichmentResult,
    GeocodeQuery,
    GeocodeResult,
    LayerConfig,
    LookupResult,
    QueryMode,
    ResolutionResult,
)
from locationmart.services.location.arcgis import FeatureServiceError, fetch_layer_metadata
from locationmart.services.location.enrichment import enrich, lookup
from locationmart.services.location.geocoding import CompositeGeocoder, GeocodingExhaustedError
from locationmart.services.location.layers import LayerRegistry, UnknownLayerError
from locationmart.services.location.proximity import resolve_layer

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# DEPENDENCIES (populated in main.py lifespan)
# =============================================================================

def get_registry(request: Request) -> LayerRegistry:
    return request.app.state.registry


def get_geocoder(request: Request) -> CompositeGeocoder:
    return request.app.state.geocoder


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def _get_layer(registry: LayerRegistry, layer_id: str) -> LayerConfig:
    try:
        return registry.get(layer_id)
    except UnknownLayerError as e:
        raise HTTPException(status_code=404, detail=str(e))


# =============================================================================
# SCHEMAS
# =============================================================================

class GeocodeRequest(BaseModel):
    text: str = Field(min_length=1)
    by: Optional[QueryMode] = None
    country_codes: Optional[str] = None
    bbox: Optional[BBox] = None


class GeocodeResponse(BaseModel):
    success: bool
    results: List[GeocodeResult] = []
    message: Optional[str] = None


class EnrichRequest(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    layers: List[str] = Field(min_length=1)
    radii: Dict[str, float] = {}


class LookupRequest(BaseModel):
    text: str = Field(min_length=1)
    by: Optional[QueryMode] = None
    layers: List[str] = []
    radii: Dict[str, float] = {}


class LookupResponse(LookupResult):
    success: bool
    message: Optional[str] = None


# =============================================================================
# GEOCODING
# =============================================================================

@router.post("/geocode", response_model=GeocodeResponse)
async def geocode_endpoint(
    request: GeocodeRequest,
    geocoder: CompositeGeocoder = Depends(get_geocoder),
):
    """
    Geocode free text against every source that accepts it.
    Results are de-duplicated and sorted by confidence, best first.
    """
    query = GeocodeQuery(
        text=request.text,
        by=request.by,
        country_codes=request.country_codes,
        bbox=request.bbox,
    )
    try:
        results = await geocoder.search(query)
    except GeocodingExhaustedError as e:
        logger.warning(f"Geocoding unavailable for '{request.text}': {e}")
        raise HTTPException(status_code=503, detail=str(e))

    if not results:
        return GeocodeResponse(success=False, message="No matches found")
    return GeocodeResponse(success=True, results=results)


# =============================================================================
# LAYERS
# =============================================================================

@router.get("/layers", response_model=List[LayerConfig])
async def list_layers(registry: LayerRegistry = Depends(get_registry)):
    """All registered enrichment layers, in registration order."""
    return list(registry)


@router.get("/layers/{layer_id}/metadata")
async def layer_metadata(
    layer_id: str,
    registry: LayerRegistry = Depends(get_registry),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    layer = _get_layer(registry, layer_id)
    try:
        return await fetch_layer_metadata(layer.layer_url, client=client)
    except FeatureServiceError as e:
        logger.warning(f"Metadata fetch failed for {layer_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/layers/{layer_id}/features", response_model=ResolutionResult)
async def layer_features(
    layer_id: str,
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    radius: Optional[float] = Query(None, description="Requested radius in miles; clamped to [0, layer cap]"),
    registry: LayerRegistry = Depends(get_registry),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Features containing the point, then features within the radius,
    nearest first. Remote failures come back as warnings, not errors.
    """
    layer = _get_layer(registry, layer_id)
    return await resolve_layer(layer, lat, lon, radius, client=client)


# =============================================================================
# ENRICHMENT
# =============================================================================

@router.post("/enrich", response_model=EnrichmentResult)
async def enrich_endpoint(
    request: EnrichRequest,
    registry: LayerRegistry = Depends(get_registry),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    return await enrich(registry, request.lat, request.lon, request.layers, radii=request.radii, client=client)


@router.post("/lookup", response_model=LookupResponse)
async def lookup_endpoint(
    request: LookupRequest,
    registry: LayerRegistry = Depends(get_registry),
    geocoder: CompositeGeocoder = Depends(get_geocoder),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Geocode the text and enrich the best candidate with the requested layers.
    """
    try:
        result = await lookup(
            geocoder,
            registry,
            request.text,
            request.layers,
            radii=request.radii,
            mode=request.by,
            client=client,
        )
    except GeocodingExhaustedError as e:
        logger.warning(f"Lookup geocoding unavailable for '{request.text}': {e}")
        raise HTTPException(status_code=503, detail=str(e))

    if result.location is None:
        return LookupResponse(**result.model_dump(), success=False, message="No location found")
    return LookupResponse(**result.model_dump(), success=True)


@router.get("/health")
async def location_health(registry: LayerRegistry = Depends(get_registry)):
    return {"status": "healthy", "layers": len(registry)}
