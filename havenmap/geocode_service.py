"""Place-name lookup against the Photon geocoder.

Both helpers return None on any failure so callers can treat "not found"
and "geocoder down" the same way.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from . import settings
from .schemas import GeocodeResult, ReverseGeocodeResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
HEADERS = {"User-Agent": "havenmap/0.1"}


def _first_feature(payload: Any) -> dict | None:
    if not isinstance(payload, dict):
        return None
    features = payload.get("features")
    if not isinstance(features, list) or not features:
        return None
    first = features[0]
    return first if isinstance(first, dict) else None


async def _get_json(client: httpx.AsyncClient, path: str, params: dict[str, str]) -> Any:
    try:
        resp = await client.get(f"{settings.PHOTON_BASE_URL}{path}", params=params, headers=HEADERS)
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("photon %s failed: %s", path, exc)
        return None


async def geocode_city(
    query: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> GeocodeResult | None:
    q = query.strip()
    if not q:
        return None

    if client is None:
        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS) as own_client:
            payload = await _get_json(own_client, "/api/", {"q": q, "limit": "1"})
    else:
        payload = await _get_json(client, "/api/", {"q": q, "limit": "1"})

    feat = _first_feature(payload)
    if feat is None:
        return None

    props = feat.get("properties") or {}
    coords = (feat.get("geometry") or {}).get("coordinates") or []
    if len(coords) < 2:
        return None
    lng, lat = coords[0], coords[1]
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in (lat, lng)):
        return None

    country = props.get("countrycode")
    return GeocodeResult(
        name=props.get("name") or q,
        lat=float(lat),
        lng=float(lng),
        countryCode=country.upper() if isinstance(country, str) else None,
    )


async def reverse_geocode(
    lat: float,
    lng: float,
    *,
    client: httpx.AsyncClient | None = None,
) -> ReverseGeocodeResult | None:
    params = {"lat": str(lat), "lon": str(lng), "limit": "1", "lang": "en"}
    if client is None:
        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS) as own_client:
            payload = await _get_json(own_client, "/reverse", params)
    else:
        payload = await _get_json(client, "/reverse", params)

    feat = _first_feature(payload)
    if feat is None:
        return None

    props = feat.get("properties") or {}
    locality = (
        props.get("name")
        or props.get("city")
        or props.get("town")
        or props.get("village")
        or props.get("county")
    )
    if not locality:
        return None
    admin = props.get("state") or props.get("region") or props.get("country")
    return ReverseGeocodeResult(name=locality, admin=admin)
