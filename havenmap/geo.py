"""Great-circle helpers shared by the facts extractor and the ranking pipeline."""

from __future__ import annotations

import math
from typing import Tuple

import h3

EARTH_RADIUS_KM = 6371.0

LatLng = Tuple[float, float]


def haversine_km(a: LatLng, b: LatLng) -> float:
    """Great-circle distance in kilometres between two (lat, lng) pairs."""
    lat1, lng1 = a
    lat2, lng2 = b
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lng2 - lng1)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Round-off can push h slightly outside [0, 1] for near-antipodal points.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def bearing_deg(origin: LatLng, target: LatLng) -> float:
    """Forward azimuth from origin to target, 0 = north, clockwise, in [0, 360).

    Undefined for identical points; callers must not pass them.
    """
    lat1, lng1 = math.radians(origin[0]), math.radians(origin[1])
    lat2, lng2 = math.radians(target[0]), math.radians(target[1])
    dlng = lng2 - lng1
    y = math.sin(dlng) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlng)
    brng = math.degrees(math.atan2(y, x))
    brng = (brng + 360.0) % 360.0
    # (-tiny + 360) % 360 can round to exactly 360.0
    return 0.0 if brng >= 360.0 else brng


def cell_id(lat: float, lng: float, resolution: int) -> str:
    """Stable H3 cell identifier, used only as an ordering key."""
    return h3.latlng_to_cell(lat, lng, resolution)
