"""Multi-factor candidate scoring.

``compute_scores`` is a pure function of (facts, rules, phase): no clock, no
randomness, no global state.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Tuple

from .facts import Facts, has_forest, has_water
from .rules import DEFAULT_RULES, Phase, Rules


@dataclass(frozen=True)
class Scores:
    risk: float
    resources: float
    access: float
    stability: float
    hazards: float
    total: float

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


def u_shape(distance: float | None, sweet: Tuple[float, float]) -> float:
    """Too close is a liability, in range is ideal, a bit far is acceptable."""
    if distance is None:
        return 0.0
    lo, hi = sweet
    if distance < lo * 0.7:
        return -0.5
    if lo <= distance <= hi:
        return 1.0
    if hi < distance <= hi * 1.3:
        return 0.5
    return 0.0


def risk_score(facts: Facts) -> float:
    return -(facts.delta_risk_vs_city or 0.0)


def resources_score(facts: Facts, rules: Rules) -> float:
    t = rules.thresholds
    rw = rules.resource_weights
    water = has_water(facts, t)

    s = 0.0
    if water:
        s += rw.water_bonus
    if has_forest(facts, t):
        s += rw.forest_bonus
    if facts.gardenable_within3km:
        s += rw.garden_bonus
    if water:
        s += rw.fish_bonus
    if facts.urban_within5km:
        s -= rules.penalties.urban_proximity

    elev_ok = (
        facts.elevation_m is not None
        and t.elevation_min <= facts.elevation_m <= t.elevation_max
    )
    slope_ok = facts.slope_pct is not None and facts.slope_pct <= t.slope_pct_max
    if elev_ok and slope_ok:
        s += rw.terrain_bonus
    return s


def access_score(facts: Facts, rules: Rules) -> float:
    s = float(min(facts.exits_count10km, 3))
    if facts.dist_km_from_origin < rules.thresholds.access_near_km:
        s += 0.5
    return s


def edge_of_care(facts: Facts, rules: Rules) -> float:
    t = rules.thresholds
    return u_shape(facts.clinic_km, t.clinic_sweet) + u_shape(facts.hospital_km, t.hospital_sweet)


def loot_magnet_penalty(facts: Facts, rules: Rules) -> float:
    m = facts.magnets
    lw = rules.loot_weights
    base = (
        m.big_hospitals * lw.hospital_big
        + m.hypermarkets * lw.hypermarket
        + m.fuel * lw.fuel
        + m.pharmacies * lw.pharmacy
    )
    # Unknown density means no crowd pressure can be inferred.
    density_factor = min(1.0, (facts.pop_density or 0.0) / rules.density_scale)
    return -base * density_factor


def stability_score(facts: Facts, rules: Rules, phase: Phase | None = None) -> float:
    pw = rules.phase_weight(phase)
    return pw.edge * edge_of_care(facts, rules) + pw.loot * loot_magnet_penalty(facts, rules)


def hazards_score(facts: Facts, rules: Rules) -> float:
    p = rules.penalties
    penalty = 0.0
    if facts.floodplain:
        penalty += p.floodplain
    if facts.storm_surge:
        penalty += p.storm_surge
    if facts.wildfire_risk == "high":
        penalty += p.wildfire
    if facts.single_bridge:
        penalty += p.single_bridge
    return -penalty


def compute_scores(facts: Facts, *, rules: Rules = DEFAULT_RULES, phase: Phase | None = None) -> Scores:
    risk = risk_score(facts)
    resources = resources_score(facts, rules)
    access = access_score(facts, rules)
    stability = stability_score(facts, rules, phase)
    hazards = hazards_score(facts, rules)

    w = rules.weights
    total = (
        w.risk * risk
        + w.resources * resources
        + w.access * access
        + w.stability * stability
        + w.hazards * hazards
    )
    return Scores(
        risk=risk,
        resources=resources,
        access=access,
        stability=stability,
        hazards=hazards,
        total=total,
    )
