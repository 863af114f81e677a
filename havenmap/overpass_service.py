"""Overpass feature fetcher.

One query returns the settlements around an origin plus every context
feature the scorer needs (water, forest, care, magnets, junctions). Raw
elements are cached in memory for an hour.
"""

from __future__ import annotations

import logging
import time
from copy import deepcopy
from typing import Any, Dict, List, Sequence, Tuple

import httpx

from . import settings

logger = logging.getLogger(__name__)

CacheKey = Tuple[float, float, int]
CacheValue = Tuple[int, List[dict]]

_CACHE: Dict[CacheKey, CacheValue] = {}
_CACHE_TTL = 3600  # seconds

PLACES_LIMIT = 200
CONTEXT_LIMIT = 400

# (element types, filter) pairs for the context block
_CONTEXT_FILTERS: Sequence[Tuple[Sequence[str], str]] = (
    (("way", "relation"), '["waterway"="river"]'),
    (("node", "way"), '["natural"="water"]'),
    (("way",), '["landuse"="forest"]'),
    (("way",), '["natural"="wood"]'),
    (("node",), '["amenity"="clinic"]'),
    (("node", "way"), '["amenity"="hospital"]'),
    (("node",), '["amenity"="pharmacy"]'),
    (("node",), '["amenity"="fuel"]'),
    (("node",), '["shop"~"^(supermarket|hypermarket)$"]'),
    (("node",), '["amenity"="mall"]'),
    (("node",), '["highway"="motorway_junction"]'),
    (("way",), '["highway"~"^(motorway|trunk|primary)$"]'),
)


class UpstreamAPIError(RuntimeError):
    def __init__(self, stage: str, message: str):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.message = message


def _now_ts() -> int:
    return int(time.time())


def clear_cache() -> None:
    _CACHE.clear()


def build_overpass_query(lat: float, lng: float, radius_m: int) -> str:
    around = f"(around:{radius_m},{lat},{lng})"
    context = "\n".join(
        f"{kind}{flt}{around};" for kinds, flt in _CONTEXT_FILTERS for kind in kinds
    )
    query = f"""
    [out:json][timeout:25];
    (
      node["place"~"^(town|village|hamlet)$"]{around};
    );
    out center {PLACES_LIMIT};
    (
    {context}
    );
    out center {CONTEXT_LIMIT};
    """
    return "\n".join(line.strip() for line in query.splitlines() if line.strip())


async def _fetch_overpass(query: str, endpoints: Sequence[str]) -> dict:
    """Try Overpass endpoints sequentially until one succeeds."""
    timeout = httpx.Timeout(settings.OVERPASS_TIMEOUT_SECONDS, connect=10.0)
    last_error: Exception | None = None
    async with httpx.AsyncClient(timeout=timeout) as client:
        for endpoint in endpoints:
            try:
                resp = await client.post(endpoint, data={"data": query})
                resp.raise_for_status()
                return resp.json()
            except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
                logger.warning("overpass endpoint %s failed: %s", endpoint, exc)
                last_error = exc
                continue
    raise UpstreamAPIError(
        "overpass",
        "request failed for all endpoints" + (f": {last_error}" if last_error else ""),
    )


async def fetch_features(
    lat: float,
    lng: float,
    radius_m: int | None = None,
    *,
    endpoints: Sequence[str] | None = None,
) -> List[dict]:
    """Raw Overpass elements around a point. Raises UpstreamAPIError."""
    radius_m = radius_m or settings.OVERPASS_RADIUS_M
    key: CacheKey = (round(lat, 3), round(lng, 3), radius_m)
    now = _now_ts()

    cached = _CACHE.get(key)
    if cached:
        ts, elements = cached
        if now - ts < _CACHE_TTL:
            return deepcopy(elements)

    query = build_overpass_query(lat, lng, radius_m)
    payload: Any = await _fetch_overpass(query, endpoints or settings.OVERPASS_ENDPOINTS)
    elements = payload.get("elements", []) if isinstance(payload, dict) else []
    if not isinstance(elements, list):
        elements = []

    logger.info("overpass returned %d elements for (%.3f, %.3f)", len(elements), lat, lng)
    _CACHE[key] = (now, deepcopy(elements))
    return elements
