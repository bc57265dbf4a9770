"""
Geocoding Adapters

Each adapter knows one provider: whether a query is worth sending there,
which GET requests to issue, and how to turn a JSON body into candidates.
Adapters never do I/O themselves; the CompositeGeocoder issues the requests,
paces them by the adapter's rate limit, and feeds bodies back to
parse_response.

Providers:
    Coordinates    local "lat, lon" / DMS text, no request (confidence 1.0)
    Nominatim      OpenStreetMap search, 1 req/s policy
    US Census      one-line US address matcher (free, government)
    GeoNames       place names, username required
    Postcodes.io   UK postcodes (lookup and/or search)
    NYC PLUTO      NYC tax-lot addresses and BBLs (ArcGIS)
    Google         only when GOOGLE_API_KEY is configured
    Geocodio       only when GEOCODIO_API_KEY is configured
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional
from urllib.parse import quote

from locationmart.schemas_location import GeocodeQuery, GeocodeResult, RateLimit, RequestTarget
from .arcgis import build_envelope_query
from .coordinates import parse_coordinate_pair
from .geometry import centroid

logger = logging.getLogger(__name__)


class GeocodingAdapter(ABC):
    """Stateless provider contract used by the composite geocoder."""

    name: str = "adapter"
    rate_limit: Optional[RateLimit] = None      # None -> geocoder default

    def supports(self, query: GeocodeQuery) -> bool:
        return bool(query.text and query.text.strip())

    @abstractmethod
    def build_requests(self, query: GeocodeQuery) -> List[RequestTarget]:
        ...

    @abstractmethod
    def parse_response(self, raw: Any, query: GeocodeQuery) -> List[GeocodeResult]:
        ...

    def parse_local(self, query: GeocodeQuery) -> List[GeocodeResult]:
        """Candidates answerable without a request. Most providers have none."""
        return []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


def _float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# =============================================================================
# LOCAL COORDINATES
# =============================================================================

class CoordinateAdapter(GeocodingAdapter):
    name = "Coordinates"

    def supports(self, query: GeocodeQuery) -> bool:
        return parse_coordinate_pair(query.text) is not None

    def build_requests(self, query: GeocodeQuery) -> List[RequestTarget]:
        return []

    def parse_response(self, raw: Any, query: GeocodeQuery) -> List[GeocodeResult]:
        return []

    def parse_local(self, query: GeocodeQuery) -> List[GeocodeResult]:
        pair = parse_coordinate_pair(query.text)
        if pair is None:
            return []
        lat, lon = pair
        return [GeocodeResult(
            source=self.name,
            lat=lat,
            lon=lon,
            name=f"{lat:.6f}, {lon:.6f}",
            confidence=1.0,
            raw={"text": query.text},
        )]


# =============================================================================
# OPENSTREETMAP NOMINATIM
# =============================================================================

NOMINATIM_BASE = "https://nominatim.openstreetmap.org/search"


class NominatimAdapter(GeocodingAdapter):
    name = "OSM Nominatim"
    rate_limit = RateLimit(rps=1)

    def __init__(self, user_agent: str, email: Optional[str] = None):
        self.user_agent = user_agent
        self.email = email

    def build_requests(self, query: GeocodeQuery) -> List[RequestTarget]:
        params = {
            "format": "json",
            "addressdetails": "1",
            "limit": "5",
            "q": query.text,
        }
        if query.country_codes:
            params["countrycodes"] = query.country_codes.lower()
        if query.bbox:
            s, w, n, e = query.bbox
            params["viewbox"] = f"{w},{n},{e},{s}"
            params["bounded"] = "1"
        if self.email:
            params["email"] = self.email

        # Usage policy requires an identifying User-Agent
        return [RequestTarget(url=NOMINATIM_BASE, params=params, headers={"User-Agent": self.user_agent})]

    def parse_response(self, raw: Any, query: GeocodeQuery) -> List[GeocodeResult]:
        results = []
        for item in raw or []:
            lat = _float(item.get("lat"))
            lon = _float(item.get("lon"))
            if lat is None or lon is None:
                continue
            importance = item.get("importance")
            results.append(GeocodeResult(
                source=self.name,
                lat=lat,
                lon=lon,
                name=item.get("display_name") or query.text,
                confidence=importance if importance is not None else 0.5,
                raw=item,
            ))
        return results


# =============================================================================
# US CENSUS
# =============================================================================

CENSUS_BASE = "https://geocoding.geo.census.gov/geocoder/locations/onelineaddress"

_US_COUNTRY_RE = re.compile(r"\b(USA?|United States)\b", re.IGNORECASE)
_US_STATE_SUFFIX_RE = re.compile(r",\s*[A-Z]{2}\b")
_US_ZIP_RE = re.compile(r"\b\d{5}(?:-\d{4})?\b")


def looks_like_us_address(text: str) -> bool:
    """Country name, ", ST" state suffix, or a ZIP code."""
    return bool(
        _US_COUNTRY_RE.search(text)
        or _US_STATE_SUFFIX_RE.search(text)
        or _US_ZIP_RE.search(text)
    )


class CensusAdapter(GeocodingAdapter):
    name = "US Census"
    rate_limit = RateLimit(rps=5)

    def supports(self, query: GeocodeQuery) -> bool:
        if not super().supports(query):
            return False
        if query.country_codes:
            codes = [c.strip().lower() for c in query.country_codes.split(",")]
            if "us" not in codes:
                return False
        return looks_like_us_address(query.text)

    def build_requests(self, query: GeocodeQuery) -> List[RequestTarget]:
        return [RequestTarget(url=CENSUS_BASE, params={
            "address": query.text.strip(),
            "benchmark": "Public_AR_Current",
            "format": "json",
        })]

    def parse_response(self, raw: Any, query: GeocodeQuery) -> List[GeocodeResult]:
        matches = ((raw or {}).get("result") or {}).get("addressMatches") or []
        results = []
        for m in matches:
            coords = m.get("coordinates") or {}
            lat = _float(coords.get("y"))
            lon = _float(coords.get("x"))
            if lat is None or lon is None:
                continue
            results.append(GeocodeResult(
                source=self.name,
                lat=lat,
                lon=lon,
                name=m.get("matchedAddress") or query.text,
                confidence=0.8,
                raw=m,
            ))
        return results


# =============================================================================
# GEONAMES
# =============================================================================

GEONAMES_BASE = "https://secure.geonames.org/searchJSON"


class GeoNamesAdapter(GeocodingAdapter):
    name = "GeoNames"
    rate_limit = RateLimit(rps=5)

    def __init__(self, username: str = "demo"):
        self.username = username

    def build_requests(self, query: GeocodeQuery) -> List[RequestTarget]:
        params = {"q": query.text, "maxRows": "5", "username": self.username}
        if query.country_codes:
            first = query.country_codes.split(",")[0].strip().upper()
            if first:
                params["countryBias"] = first
                if "," not in query.country_codes:
                    params["country"] = first
        if query.bbox:
            s, w, n, e = query.bbox
            params.update({"north": str(n), "south": str(s), "east": str(e), "west": str(w)})
        return [RequestTarget(url=GEONAMES_BASE, params=params)]

    def parse_response(self, raw: Any, query: GeocodeQuery) -> List[GeocodeResult]:
        if isinstance(raw, dict) and raw.get("status"):
            # GeoNames reports quota / auth problems in a 200 body
            logger.warning(f"GeoNames: {raw['status'].get('message', raw['status'])}")
            return []

        results = []
        for g in (raw or {}).get("geonames") or []:
            lat = _float(g.get("lat"))
            lon = _float(g.get("lng"))
            if lat is None or lon is None:
                continue
            name = ", ".join(p for p in (g.get("name"), g.get("adminName1"), g.get("countryName")) if p)
            results.append(GeocodeResult(
                source=self.name,
                lat=lat,
                lon=lon,
                name=name or query.text,
                confidence=0.6,
                raw=g,
            ))
        return results


# =============================================================================
# POSTCODES.IO (UK)
# =============================================================================

POSTCODES_BASE = "https://api.postcodes.io/postcodes"
UK_POSTCODE_RE = re.compile(r"\b[A-Z]{1,2}\d[A-Z0-9]?\s*\d[A-Z]{2}\b", re.IGNORECASE)


class PostcodesIOAdapter(GeocodingAdapter):
    name = "Postcodes.io"
    rate_limit = RateLimit(rps=10)

    def supports(self, query: GeocodeQuery) -> bool:
        return bool(UK_POSTCODE_RE.search(query.text or ""))

    def _lookup(self, text: str) -> RequestTarget:
        clean = re.sub(r"\s+", "", text)
        return RequestTarget(url=f"{POSTCODES_BASE}/{quote(clean, safe='')}")

    def build_requests(self, query: GeocodeQuery) -> List[RequestTarget]:
        method = query.by or "lookup"
        requests: List[RequestTarget] = []

        if method in ("lookup", "auto"):
            requests.append(self._lookup(query.text))

        if method in ("search", "auto") and len(query.text.strip()) > 3:
            requests.append(RequestTarget(url=POSTCODES_BASE, params={"q": query.text, "limit": "1"}))

        # search on a too-short query falls back to lookup
        if not requests:
            requests.append(self._lookup(query.text))

        return requests

    def parse_response(self, raw: Any, query: GeocodeQuery) -> List[GeocodeResult]:
        if not isinstance(raw, dict) or raw.get("status") != 200 or not raw.get("result"):
            return []

        items = raw["result"] if isinstance(raw["result"], list) else [raw["result"]]
        results = []
        for r in items:
            lat = _float(r.get("latitude"))
            lon = _float(r.get("longitude"))
            if lat is None or lon is None:
                continue
            results.append(GeocodeResult(
                source=self.name,
                lat=lat,
                lon=lon,
                name=r.get("postcode") or r.get("outcode") or r.get("admin_ward") or "UK Postcode",
                confidence=0.95 if r.get("postcode") else 0.8,
                raw=r,
            ))
        return results


# =============================================================================
# NYC PLUTO (ArcGIS tax lots)
# =============================================================================

PLUTO_QUERY_URL = (
    "https://services5.arcgis.com/GfwWNkhOj9bNBqoJ/arcgis/rest/services/MAPPLUTO/FeatureServer/0/query"
)
NYC_BBOX = (40.4774, -74.2591, 40.9176, -73.7002)       # (south, west, north, east)
PLUTO_FIELDS = "Address,Borough,Block,Lot,BBL,ZipCode"


def bbox_intersects(a, b) -> bool:
    s1, w1, n1, e1 = a
    s2, w2, n2, e2 = b
    return not (e1 < w2 or e2 < w1 or n1 < s2 or n2 < s1)


def _bbl_digits(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return re.sub(r"\D", "", str(value))


class NYCPlutoAdapter(GeocodingAdapter):
    name = "NYC PLUTO"
    rate_limit = RateLimit(rps=3)

    def supports(self, query: GeocodeQuery) -> bool:
        if not super().supports(query):
            return False
        if query.bbox is None:
            return True
        return bbox_intersects(query.bbox, NYC_BBOX)

    def build_requests(self, query: GeocodeQuery) -> List[RequestTarget]:
        text = query.text.strip().replace("'", "''")
        digits = re.sub(r"\D", "", query.text)
        where = f"UPPER(Address) LIKE UPPER('%{text}%')"
        if len(digits) >= 7:
            where += f" OR BBL={digits}"

        if query.bbox:
            s, w, n, e = query.bbox
            params = build_envelope_query(
                {"xmin": w, "ymin": s, "xmax": e, "ymax": n},
                where=where,
                out_fields=PLUTO_FIELDS,
            )
        else:
            params = {
                "f": "json",
                "where": where,
                "outFields": PLUTO_FIELDS,
                "returnGeometry": "true",
                "outSR": "4326",
            }
        params["returnCentroid"] = "true"
        return [RequestTarget(url=PLUTO_QUERY_URL, params=params)]

    def parse_response(self, raw: Any, query: GeocodeQuery) -> List[GeocodeResult]:
        query_digits = re.sub(r"\D", "", query.text)
        results = []

        for f in (raw or {}).get("features") or []:
            geometry = f.get("geometry") or {}
            server_centroid = f.get("centroid") or {}
            lat = lon = None

            # Prefer the server centroid, then the outer ring, then a point
            if _float(server_centroid.get("x")) is not None and _float(server_centroid.get("y")) is not None:
                lon, lat = float(server_centroid["x"]), float(server_centroid["y"])
            elif geometry.get("rings"):
                c = centroid(geometry["rings"])
                if c:
                    lat, lon = c
            elif _float(geometry.get("x")) is not None and _float(geometry.get("y")) is not None:
                lon, lat = float(geometry["x"]), float(geometry["y"])

            if lat is None or lon is None:
                continue

            a = f.get("attributes") or {}
            bbl = _bbl_digits(a.get("BBL"))
            label = ", ".join(p for p in (
                a.get("Address"),
                f"Borough {a['Borough']}" if a.get("Borough") else "",
                str(a.get("ZipCode") or ""),
                f"(BBL {bbl})" if bbl else "",
            ) if p)

            bbl_match = len(query_digits) >= 7 and bbl == query_digits
            results.append(GeocodeResult(
                source=self.name,
                lat=lat,
                lon=lon,
                name=label or "NYC parcel",
                confidence=0.85 + (0.07 if bbl_match else 0.0),
                raw=f,
            ))
        return results


# =============================================================================
# KEYED PROVIDERS
# =============================================================================

GOOGLE_BASE = "https://maps.googleapis.com/maps/api/geocode/json"

# Map Google confidence from location_type
GOOGLE_CONFIDENCE = {
    "ROOFTOP": 1.0,
    "RANGE_INTERPOLATED": 0.8,
    "GEOMETRIC_CENTER": 0.6,
    "APPROXIMATE": 0.4,
}


class GoogleAdapter(GeocodingAdapter):
    name = "Google"
    rate_limit = RateLimit(rps=10)

    def __init__(self, api_key: str):
        self.api_key = api_key

    def build_requests(self, query: GeocodeQuery) -> List[RequestTarget]:
        params = {"address": query.text.strip(), "key": self.api_key}
        if query.bbox:
            # Bias only; results outside bounds are still returned
            s, w, n, e = query.bbox
            params["bounds"] = f"{s},{w}|{n},{e}"
        if query.country_codes:
            params["components"] = "|".join(
                f"country:{c.strip().upper()}" for c in query.country_codes.split(",") if c.strip()
            )
        return [RequestTarget(url=GOOGLE_BASE, params=params)]

    def parse_response(self, raw: Any, query: GeocodeQuery) -> List[GeocodeResult]:
        status = (raw or {}).get("status", "")
        if status != "OK":
            logger.info(f"Google: status '{status}' for '{query.text}'")
            return []

        results = []
        for r in raw.get("results", []):
            geo = r.get("geometry", {})
            loc = geo.get("location", {})
            lat = _float(loc.get("lat"))
            lon = _float(loc.get("lng"))
            if lat is None or lon is None:
                continue
            results.append(GeocodeResult(
                source=self.name,
                lat=lat,
                lon=lon,
                name=r.get("formatted_address") or query.text,
                confidence=GOOGLE_CONFIDENCE.get(geo.get("location_type", ""), 0.5),
                raw=r,
            ))
        return results


GEOCODIO_BASE = "https://api.geocod.io/v1.7/geocode"


class GeocodioAdapter(GeocodingAdapter):
    name = "Geocodio"
    rate_limit = RateLimit(rps=10)

    def __init__(self, api_key: str):
        self.api_key = api_key

    def supports(self, query: GeocodeQuery) -> bool:
        # US and Canada only
        if not super().supports(query):
            return False
        if query.country_codes:
            codes = {c.strip().lower() for c in query.country_codes.split(",")}
            return bool(codes & {"us", "ca"})
        return True

    def build_requests(self, query: GeocodeQuery) -> List[RequestTarget]:
        return [RequestTarget(url=GEOCODIO_BASE, params={"q": query.text.strip(), "api_key": self.api_key})]

    def parse_response(self, raw: Any, query: GeocodeQuery) -> List[GeocodeResult]:
        results = []
        for r in (raw or {}).get("results", []):
            loc = r.get("location", {})
            lat = _float(loc.get("lat"))
            lon = _float(loc.get("lng"))
            if lat is None or lon is None:
                continue
            results.append(GeocodeResult(
                source=self.name,
                lat=lat,
                lon=lon,
                name=r.get("formatted_address") or query.text,
                confidence=r.get("accuracy", 0),
                raw=r,
            ))
        return results


# =============================================================================
# DEFAULT SET
# =============================================================================

def _secret(value) -> Optional[str]:
    if value is None:
        return None
    return value.get_secret_value() if hasattr(value, "get_secret_value") else str(value)


def default_adapters(settings) -> List[GeocodingAdapter]:
    """Adapters in registration order; keyed providers only when their key is set."""
    adapters: List[GeocodingAdapter] = [
        CoordinateAdapter(),
        NominatimAdapter(settings.GEOCODE_USER_AGENT, settings.GEOCODE_EMAIL),
        CensusAdapter(),
        GeoNamesAdapter(settings.GEONAMES_USERNAME),
        PostcodesIOAdapter(),
        NYCPlutoAdapter(),
    ]
    google_key = _secret(settings.GOOGLE_API_KEY)
    if google_key:
        adapters.append(GoogleAdapter(google_key))
    geocodio_key = _secret(settings.GEOCODIO_API_KEY)
    if geocodio_key:
        adapters.append(GeocodioAdapter(geocodio_key))
    return adapters
