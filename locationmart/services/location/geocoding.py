"""
Composite Geocoder

Fans one query out to every adapter that accepts it and merges the answers.

Strategy:
    1. Eligible adapters = those whose supports(query) is true
    2. One task per adapter; inside an adapter requests run one at a time,
       spaced 1/rps seconds (no pause after the last one)
    3. Each request has its own timeout; timeouts, transport errors, non-2xx
       responses and parser failures are logged and skipped
    4. Wait for every adapter, then merge in registration order
    5. Drop near-duplicates (first seen wins), sort by confidence, high first

Zero candidates is a normal answer. GeocodingExhaustedError is reserved for
"nobody could be asked" and "every request failed".

Usage:
    from locationmart.services.location.geocoding import resolve_location

    results = await resolve_location("1600 Pennsylvania Ave NW, Washington, DC")
"""

import asyncio
import logging
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

import httpx

from locationmart.config import settings
from locationmart.schemas_location import BBox, GeocodeQuery, GeocodeResult, QueryMode
from .arcgis import client_scope
from .geocoders import GeocodingAdapter, default_adapters

logger = logging.getLogger(__name__)

GEOCODE_TIMEOUT = settings.GEOCODE_TIMEOUT_SECONDS
DEFAULT_RPS = settings.GEOCODE_DEFAULT_RPS
DEDUP_TOLERANCE_DEGREES = 0.0001


class GeocodingExhaustedError(RuntimeError):
    """No adapter accepted the query, or every request it made failed."""


# =============================================================================
# MERGE
# =============================================================================

def dedupe_results(
    results: Iterable[GeocodeResult],
    tolerance: float = DEDUP_TOLERANCE_DEGREES,
) -> List[GeocodeResult]:
    """Keep the first of any candidates within tolerance on both lat and lon."""
    kept: List[GeocodeResult] = []
    for r in results:
        if any(abs(r.lat - k.lat) < tolerance and abs(r.lon - k.lon) < tolerance for k in kept):
            continue
        kept.append(r)
    return kept


def rank_results(results: Iterable[GeocodeResult]) -> List[GeocodeResult]:
    # sorted() is stable: equal confidence keeps merge order
    return sorted(results, key=lambda r: r.confidence, reverse=True)


# =============================================================================
# COMPOSITE
# =============================================================================

class CompositeGeocoder:
    """Runs a fixed, ordered set of adapters against one query at a time."""

    def __init__(
        self,
        adapters: Sequence[GeocodingAdapter],
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = GEOCODE_TIMEOUT,
        default_rps: float = DEFAULT_RPS,
    ):
        self.adapters = list(adapters)
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.default_rps = default_rps

    def _interval(self, adapter: GeocodingAdapter) -> float:
        rps = adapter.rate_limit.rps if adapter.rate_limit else self.default_rps
        return 1.0 / rps

    async def _fetch(self, http: httpx.AsyncClient, adapter: GeocodingAdapter, target) -> Optional[Any]:
        """One request; returns the JSON body or None when it should be skipped."""
        try:
            resp = await asyncio.wait_for(
                http.get(target.url, params=target.params or None, headers=target.headers or None),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"{adapter.name}: timed out after {self.timeout_seconds}s ({target.url})")
            return None
        except httpx.HTTPError as e:
            logger.warning(f"{adapter.name}: request failed ({target.url}): {e}")
            return None

        if not resp.is_success:
            logger.warning(f"{adapter.name}: HTTP {resp.status_code} from {target.url}")
            return None

        try:
            return resp.json()
        except ValueError:
            logger.warning(f"{adapter.name}: non-JSON body from {target.url}")
            return None

    async def _run_adapter(
        self,
        http: httpx.AsyncClient,
        adapter: GeocodingAdapter,
        query: GeocodeQuery,
    ) -> Tuple[List[GeocodeResult], bool]:
        """All of one adapter's requests in order. Returns (results, any_success)."""
        results = list(adapter.parse_local(query))
        succeeded = bool(results)

        targets = adapter.build_requests(query)
        interval = self._interval(adapter)

        for i, target in enumerate(targets):
            body = await self._fetch(http, adapter, target)
            if body is not None:
                try:
                    parsed = adapter.parse_response(body, query)
                except Exception as e:
                    logger.error(f"{adapter.name}: could not parse response from {target.url}: {e}")
                else:
                    results.extend(parsed)
                    succeeded = True

            if i < len(targets) - 1:
                await asyncio.sleep(interval)

        logger.debug(f"{adapter.name}: {len(results)} candidate(s) for '{query.text}'")
        return results, succeeded

    async def search(self, query: Union[str, GeocodeQuery]) -> List[GeocodeResult]:
        """
        Resolve a query to candidates, best first.

        Raises GeocodingExhaustedError when no adapter accepts the query or
        when no request from any eligible adapter succeeded.
        """
        if isinstance(query, str):
            query = GeocodeQuery(text=query)

        eligible = [a for a in self.adapters if a.supports(query)]
        if not eligible:
            raise GeocodingExhaustedError(f"No geocoding source accepts '{query.text}'")

        async with client_scope(self.client, timeout=self.timeout_seconds) as http:
            outcomes = await asyncio.gather(
                *(self._run_adapter(http, a, query) for a in eligible),
                return_exceptions=True,
            )

        merged: List[GeocodeResult] = []
        any_success = False
        for adapter, outcome in zip(eligible, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"{adapter.name}: adapter failed: {outcome!r}")
                continue
            results, succeeded = outcome
            merged.extend(results)
            any_success = any_success or succeeded

        if not any_success:
            raise GeocodingExhaustedError(
                f"All {len(eligible)} geocoding source(s) failed for '{query.text}'"
            )

        ranked = rank_results(dedupe_results(merged))
        logger.info(
            f"Geocoded '{query.text}': {len(ranked)} candidate(s) "
            f"from {len(eligible)} source(s) ({len(merged) - len(ranked)} duplicates dropped)"
        )
        return ranked


async def resolve_location(
    query_text: str,
    mode: Optional[QueryMode] = None,
    country_codes: Optional[str] = None,
    bbox: Optional[BBox] = None,
    client: Optional[httpx.AsyncClient] = None,
    adapters: Optional[Sequence[GeocodingAdapter]] = None,
) -> List[GeocodeResult]:
    """Geocode free text with the configured adapters."""
    geocoder = CompositeGeocoder(
        adapters if adapters is not None else default_adapters(settings),
        client=client,
    )
    query = GeocodeQuery(text=query_text, by=mode, country_codes=country_codes, bbox=bbox)
    return await geocoder.search(query)
