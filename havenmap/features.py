"""Raw tagged features and their partition into the sets the scorer consumes."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Tuple

SETTLEMENT_PLACES = frozenset({"town", "village", "hamlet"})
MAGNET_SHOPS = frozenset({"supermarket", "hypermarket"})


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            number = float(stripped)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class RawFeature:
    id: str
    kind: str
    lat: float | None = None
    lng: float | None = None
    center: Tuple[float, float] | None = None
    tags: Mapping[str, str] = field(default_factory=dict)

    @property
    def coords(self) -> Tuple[float, float] | None:
        """Own point when present, else the way/relation center."""
        if self.lat is not None and self.lng is not None:
            return self.lat, self.lng
        return self.center

    def tag(self, key: str) -> str | None:
        value = self.tags.get(key)
        return value if isinstance(value, str) and value else None

    @classmethod
    def from_element(cls, el: Mapping[str, Any]) -> "RawFeature":
        """Build from an Overpass element (``lon``) or a client payload (``lng``)."""
        lat = _to_float(el.get("lat"))
        lng = _to_float(el.get("lon", el.get("lng")))

        center = None
        raw_center = el.get("center")
        if isinstance(raw_center, Mapping):
            c_lat = _to_float(raw_center.get("lat"))
            c_lng = _to_float(raw_center.get("lon", raw_center.get("lng")))
            if c_lat is not None and c_lng is not None:
                center = (c_lat, c_lng)

        raw_tags = el.get("tags")
        tags: Dict[str, str] = {}
        if isinstance(raw_tags, Mapping):
            tags = {str(k): str(v) for k, v in raw_tags.items() if v is not None}

        return cls(
            id=str(el.get("id", "")),
            kind=str(el.get("type") or el.get("kind") or "node"),
            lat=lat,
            lng=lng,
            center=center,
            tags=tags,
        )


@dataclass
class FeatureSets:
    places: List[RawFeature] = field(default_factory=list)
    rivers: List[RawFeature] = field(default_factory=list)
    lakes: List[RawFeature] = field(default_factory=list)
    forests: List[RawFeature] = field(default_factory=list)
    clinics: List[RawFeature] = field(default_factory=list)
    hospitals: List[RawFeature] = field(default_factory=list)
    pharmacies: List[RawFeature] = field(default_factory=list)
    fuel: List[RawFeature] = field(default_factory=list)
    hypermarkets: List[RawFeature] = field(default_factory=list)
    junctions: List[RawFeature] = field(default_factory=list)

    @property
    def towns(self) -> List[RawFeature]:
        return [p for p in self.places if p.tag("place") == "town"]


def partition_features(features: Iterable[RawFeature]) -> FeatureSets:
    """Sort features into buckets. One feature may land in several."""
    sets = FeatureSets()
    for f in features:
        place = f.tag("place")
        amenity = f.tag("amenity")
        shop = f.tag("shop")
        natural = f.tag("natural")

        if f.kind == "node" and place in SETTLEMENT_PLACES:
            sets.places.append(f)
        if f.tag("waterway") == "river":
            sets.rivers.append(f)
        if natural == "water":
            sets.lakes.append(f)
        if f.tag("landuse") == "forest" or natural == "wood":
            sets.forests.append(f)
        if amenity == "clinic":
            sets.clinics.append(f)
        elif amenity == "hospital":
            sets.hospitals.append(f)
        elif amenity == "pharmacy":
            sets.pharmacies.append(f)
        elif amenity == "fuel":
            sets.fuel.append(f)
        if shop in MAGNET_SHOPS or amenity == "mall":
            sets.hypermarkets.append(f)
        if f.tag("highway") == "motorway_junction":
            sets.junctions.append(f)
    return sets


def parse_elements(elements: Iterable[Any]) -> List[RawFeature]:
    return [RawFeature.from_element(el) for el in elements if isinstance(el, Mapping)]
