"""Per-candidate fact extraction.

Turns a settlement candidate plus the partitioned raw features into a
``Facts`` record: nearest-feature distances, counts within a radius and the
boolean resource flags derived from them. Every lookup skips features
without a usable coordinate instead of failing the whole candidate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Literal, Tuple

from .features import FeatureSets, RawFeature
from .geo import haversine_km
from .rules import DEFAULT_RULES, Rules, Thresholds

WildfireRisk = Literal["low", "med", "high"]


@dataclass(frozen=True)
class Candidate:
    id: str
    name: str
    lat: float
    lng: float
    distance_km: float
    bearing_deg: float
    place: str | None = None
    population: float | None = None


@dataclass(frozen=True)
class Magnets:
    big_hospitals: int = 0
    hypermarkets: int = 0
    fuel: int = 0
    pharmacies: int = 0


@dataclass(frozen=True)
class Facts:
    lat: float
    lng: float
    dist_km_from_origin: float

    river_km: float | None = None
    lake_km: float | None = None
    forest_within_km: float | None = None
    gardenable_within3km: bool = False

    urban_within5km: bool = False
    pop_density: float | None = None
    delta_risk_vs_city: float | None = None

    exits_count10km: int = 0
    clinic_km: float | None = None
    hospital_km: float | None = None

    floodplain: bool | None = None
    wildfire_risk: WildfireRisk | None = None
    storm_surge: bool | None = None
    single_bridge: bool | None = None
    elevation_m: float | None = None
    slope_pct: float | None = None

    magnets: Magnets = field(default_factory=Magnets)


def _within(distance: float | None, limit: float) -> bool:
    # Absent distances count as infinitely far, never as zero.
    return distance is not None and distance <= limit


def has_river(facts: Facts, thresholds: Thresholds) -> bool:
    return _within(facts.river_km, thresholds.water_river_km)


def has_lake(facts: Facts, thresholds: Thresholds) -> bool:
    return _within(facts.lake_km, thresholds.water_lake_km)


def has_water(facts: Facts, thresholds: Thresholds) -> bool:
    return has_river(facts, thresholds) or has_lake(facts, thresholds)


def has_forest(facts: Facts, thresholds: Thresholds) -> bool:
    return _within(facts.forest_within_km, thresholds.forest_km)


def water_km(facts: Facts) -> float | None:
    known = [d for d in (facts.river_km, facts.lake_km) if d is not None]
    return min(known) if known else None


def nearest_distance_km(features: Iterable[RawFeature], point: Tuple[float, float]) -> float | None:
    best: float | None = None
    for f in features:
        coords = f.coords
        if coords is None:
            continue
        d = haversine_km(point, coords)
        if best is None or d < best:
            best = d
    return best


def count_within(features: Iterable[RawFeature], point: Tuple[float, float], radius_km: float) -> int:
    n = 0
    for f in features:
        coords = f.coords
        if coords is None:
            continue
        if haversine_km(point, coords) <= radius_km:
            n += 1
    return n


def parse_population(raw: str | None) -> float | None:
    """Numeric value of a ``population`` tag, or None when it is not a number."""
    if raw is None:
        return None
    text = raw.strip()
    # float() would accept digit separators such as "1_200"
    if "_" in text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def extract_facts(candidate: Candidate, sets: FeatureSets, *, rules: Rules = DEFAULT_RULES) -> Facts:
    t = rules.thresholds
    point = (candidate.lat, candidate.lng)

    nearest_town_km = nearest_distance_km(sets.towns, point)
    urban = candidate.place == "town" or _within(nearest_town_km, t.urban_within_km)

    magnets = Magnets(
        big_hospitals=count_within(sets.hospitals, point, t.loot_radius_km),
        hypermarkets=count_within(sets.hypermarkets, point, t.loot_radius_km),
        fuel=count_within(sets.fuel, point, t.loot_radius_km),
        pharmacies=count_within(sets.pharmacies, point, t.loot_radius_km),
    )

    return Facts(
        lat=candidate.lat,
        lng=candidate.lng,
        dist_km_from_origin=candidate.distance_km,
        river_km=nearest_distance_km(sets.rivers, point),
        lake_km=nearest_distance_km(sets.lakes, point),
        forest_within_km=nearest_distance_km(sets.forests, point),
        urban_within5km=urban,
        exits_count10km=count_within(sets.junctions, point, t.junction_radius_km),
        clinic_km=nearest_distance_km(sets.clinics, point),
        hospital_km=nearest_distance_km(sets.hospitals, point),
        magnets=magnets,
    )
