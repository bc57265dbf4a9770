"""
Pydantic Schemas for Location Services
Covers: geocoding queries and candidates, layer configuration, resolved
spatial features, and the partial-failure result wrappers returned by the
resolver, the paginator and multi-layer enrichment.

Organized by domain area matching the service modules.
"""

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


GeometryKind = Literal["point", "polyline", "polygon"]
QueryMode = Literal["lookup", "search", "auto"]
BBox = Tuple[float, float, float, float]        # (south, west, north, east)


# =============================================================================
# GEOCODING
# =============================================================================

class GeocodeQuery(BaseModel):
    """Free-text location query handed to every geocoding adapter"""
    model_config = ConfigDict(frozen=True)

    text: str
    by: Optional[QueryMode] = None              # disambiguation mode
    country_codes: Optional[str] = None         # "us,ca"
    bbox: Optional[BBox] = None


class GeocodeResult(BaseModel):
    """One candidate coordinate produced by one adapter invocation"""
    model_config = ConfigDict(frozen=True)

    source: str
    lat: float
    lon: float
    name: str
    confidence: float = 0.0                     # 0..1
    raw: Any = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        if v is None:
            return 0.0
        return min(max(float(v), 0.0), 1.0)


class RateLimit(BaseModel):
    model_config = ConfigDict(frozen=True)

    rps: float = Field(default=10.0, gt=0)      # requests per second ceiling


class RequestTarget(BaseModel):
    """A single HTTP GET an adapter wants issued"""
    model_config = ConfigDict(frozen=True)

    url: str
    params: Dict[str, Any] = {}
    headers: Dict[str, str] = {}


# =============================================================================
# LAYERS
# =============================================================================

class LayerConfig(BaseModel):
    """One enrichment layer backed by a remote feature service"""
    model_config = ConfigDict(frozen=True)

    layer_id: str                               # enrichment identifier
    label: str
    service_url: str                            # .../FeatureServer or .../MapServer
    layer_index: int = 0
    geometry_kind: GeometryKind
    max_radius_miles: float = Field(ge=0)       # hard cap, independent of the caller
    default_radius_miles: float = Field(default=5.0, ge=0)
    supports_buffer: bool = True                # False -> envelope proximity search
    page_size: int = Field(default=2000, gt=0)
    where: str = "1=1"
    out_fields: str = "*"

    @property
    def layer_url(self) -> str:
        return f"{self.service_url.rstrip('/')}/{self.layer_index}"

    @property
    def query_url(self) -> str:
        return f"{self.layer_url}/query"

    def effective_radius(self, requested: Optional[float]) -> float:
        """min(max(requested, 0), max_radius_miles); None means the layer default."""
        if requested is None:
            requested = self.default_radius_miles
        return min(max(float(requested), 0.0), self.max_radius_miles)


# =============================================================================
# RESOLVED FEATURES
# =============================================================================

class SpatialFeature(BaseModel):
    """A remote feature annotated with distance and containment"""
    model_config = ConfigDict(frozen=True)

    object_id: Optional[str] = None
    attributes: Dict[str, Any] = {}
    geometry: Optional[Dict[str, Any]] = None   # rings / paths / x,y
    distance_miles: float = 0.0
    is_containing: bool = False
    layer_id: str
    layer_label: str


class FetchResult(BaseModel):
    """Raw features from a paginated query plus what went wrong on the way"""
    features: List[Dict[str, Any]] = []
    warnings: List[str] = []
    truncated: bool = False
    pages: int = 0


class ResolutionResult(BaseModel):
    """Sorted features for one layer; warnings carry non-fatal degradation"""
    layer_id: str
    layer_label: Optional[str] = None
    effective_radius_miles: float = 0.0
    features: List[SpatialFeature] = []
    warnings: List[str] = []
    truncated: bool = False

    @property
    def containing(self) -> List[SpatialFeature]:
        return [f for f in self.features if f.is_containing]

    @property
    def nearby(self) -> List[SpatialFeature]:
        return [f for f in self.features if not f.is_containing]


class EnrichmentResult(BaseModel):
    """Resolution results for many layers around one coordinate"""
    lat: float
    lon: float
    layers: Dict[str, ResolutionResult] = {}
    warnings: List[str] = []


class LookupResult(BaseModel):
    """Geocode a query, then enrich the best candidate"""
    query: str
    location: Optional[GeocodeResult] = None    # best candidate, None when nothing matched
    candidates: List[GeocodeResult] = []
    enrichment: Optional[EnrichmentResult] = None
