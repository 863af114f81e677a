"""Static scoring configuration.

The whole table is a frozen dataclass tree so it can be shared between
concurrent requests and swapped out wholesale in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal, Mapping, Tuple, get_args

Phase = Literal["panic", "transit", "recovery"]
Mode = Literal["lite", "full"]

PHASES: Tuple[str, ...] = get_args(Phase)


@dataclass(frozen=True)
class Thresholds:
    water_river_km: float = 2.0
    water_lake_km: float = 1.5
    forest_km: float = 5.0
    garden_within_km: float = 3.0
    elevation_min: float = 200.0
    elevation_max: float = 800.0
    slope_pct_max: float = 15.0
    urban_within_km: float = 5.0
    clinic_sweet: Tuple[float, float] = (15.0, 60.0)
    hospital_sweet: Tuple[float, float] = (30.0, 120.0)
    loot_radius_km: float = 10.0
    junction_radius_km: float = 10.0
    access_near_km: float = 120.0


@dataclass(frozen=True)
class Weights:
    risk: float = 0.55
    resources: float = 0.30
    access: float = 0.05
    stability: float = 0.10
    # Hazards are surfaced per candidate but do not affect ranking yet.
    hazards: float = 0.0


@dataclass(frozen=True)
class ResourceWeights:
    water_bonus: float = 8.0
    forest_bonus: float = 5.0
    garden_bonus: float = 3.0
    fish_bonus: float = 2.0
    terrain_bonus: float = 2.0


@dataclass(frozen=True)
class Penalties:
    urban_proximity: float = 10.0
    floodplain: float = 10.0
    wildfire: float = 6.0
    storm_surge: float = 10.0
    single_bridge: float = 5.0


@dataclass(frozen=True)
class LootWeights:
    hospital_big: float = 3.0
    hypermarket: float = 1.5
    fuel: float = 1.5
    pharmacy: float = 1.0


@dataclass(frozen=True)
class PhaseWeight:
    edge: float
    loot: float


def _default_phase_weights() -> Mapping[str, PhaseWeight]:
    return MappingProxyType({
        "panic": PhaseWeight(edge=0.2, loot=1.0),
        "transit": PhaseWeight(edge=0.6, loot=0.8),
        "recovery": PhaseWeight(edge=1.0, loot=0.4),
    })


@dataclass(frozen=True)
class Rules:
    radius_km: float = 300.0
    cell_resolution: int = 7
    max_candidates: int = 300
    suggestions: int = 5
    lite_suggestions: int = 6
    min_separation_km: float = 20.0
    distance_window_km: Tuple[float, float] = (15.0, 120.0)
    density_scale: float = 1500.0
    phase: Phase = "transit"
    version: str = "v1"
    thresholds: Thresholds = field(default_factory=Thresholds)
    weights: Weights = field(default_factory=Weights)
    resource_weights: ResourceWeights = field(default_factory=ResourceWeights)
    penalties: Penalties = field(default_factory=Penalties)
    loot_weights: LootWeights = field(default_factory=LootWeights)
    phase_weights: Mapping[str, PhaseWeight] = field(default_factory=_default_phase_weights)

    def __post_init__(self) -> None:
        # copy so no caller keeps a writable handle on the shared table
        object.__setattr__(self, "phase_weights", MappingProxyType(dict(self.phase_weights)))

    def target_count(self, mode: Mode) -> int:
        return self.lite_suggestions if mode == "lite" else self.suggestions

    def phase_weight(self, phase: Phase | None) -> PhaseWeight:
        return self.phase_weights[phase or self.phase]


def _check_band(name: str, band: Tuple[float, float]) -> None:
    lo, hi = band
    if lo < 0 or hi <= lo:
        raise ValueError(f"{name} must be an increasing, non-negative pair. Got {band!r}")


def validate_rules(rules: Rules) -> Rules:
    """Reject structurally invalid tables. Meant to run once at startup."""
    t = rules.thresholds
    for name in (
        "water_river_km",
        "water_lake_km",
        "forest_km",
        "garden_within_km",
        "slope_pct_max",
        "urban_within_km",
        "loot_radius_km",
        "junction_radius_km",
        "access_near_km",
    ):
        if getattr(t, name) < 0:
            raise ValueError(f"thresholds.{name} must be non-negative")
    if t.elevation_max < t.elevation_min:
        raise ValueError("thresholds.elevation_max must be >= elevation_min")
    _check_band("thresholds.clinic_sweet", t.clinic_sweet)
    _check_band("thresholds.hospital_sweet", t.hospital_sweet)
    _check_band("distance_window_km", rules.distance_window_km)

    if rules.suggestions < 1 or rules.lite_suggestions < 1:
        raise ValueError("suggestion counts must be positive")
    if rules.max_candidates < 1:
        raise ValueError("max_candidates must be positive")
    if rules.min_separation_km < 0:
        raise ValueError("min_separation_km must be non-negative")
    if rules.density_scale <= 0:
        raise ValueError("density_scale must be positive")
    if not 0 <= rules.cell_resolution <= 15:
        raise ValueError(f"cell_resolution must be in 0..15. Got {rules.cell_resolution}")

    missing = set(PHASES) - set(rules.phase_weights)
    if missing:
        raise ValueError(f"phase_weights is missing: {', '.join(sorted(missing))}")
    if rules.phase not in PHASES:
        raise ValueError(f"phase must be one of {', '.join(PHASES)}. Got {rules.phase!r}")
    return rules


DEFAULT_RULES = Rules()
