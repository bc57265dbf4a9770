"""
Location Services Package

Geocoding, geometry, and spatial enrichment against remote feature services.

Components:
- geometry:     haversine, segment/polyline/polygon distance, point-in-polygon
- arcgis:       geometry query parameters, paginated fetching, layer metadata
- proximity:    containment + proximity passes for one layer around a point
- layers:       immutable registry of enrichment layers (data rows)
- enrichment:   many layers at once; geocode-then-enrich lookup
- coordinates:  "lat, lon" and DMS text parsing
- geocoders:    provider adapters (Nominatim, Census, GeoNames, ...)
- geocoding:    composite geocoder that fans out to the adapters

Usage:
    from locationmart.services.location import resolve_location, resolve_layer, load_default_registry

    candidates = await resolve_location("10 Downing St, London SW1A 2AA")
    registry = load_default_registry()
    result = await resolve_layer(registry.get("blm_national_acec"), 39.5, -119.8, 10)
"""

from .arcgis import FeatureServiceError, fetch_all_features, fetch_layer_metadata
from .enrichment import enrich, lookup
from .geocoding import CompositeGeocoder, GeocodingExhaustedError, resolve_location
from .layers import LayerRegistry, UnknownLayerError, load_default_registry
from .proximity import resolve_layer

__all__ = [
    'CompositeGeocoder',
    'FeatureServiceError',
    'GeocodingExhaustedError',
    'LayerRegistry',
    'UnknownLayerError',
    'enrich',
    'fetch_all_features',
    'fetch_layer_metadata',
    'load_default_registry',
    'lookup',
    'resolve_layer',
    'resolve_location',
]
