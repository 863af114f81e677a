from __future__ import annotations

from dataclasses import replace

import pytest

from havenmap.facts import Facts, Magnets
from havenmap.rules import DEFAULT_RULES, Weights
from havenmap.scoring import (
    access_score,
    compute_scores,
    edge_of_care,
    hazards_score,
    loot_magnet_penalty,
    resources_score,
    stability_score,
    u_shape,
)


def _facts(**overrides) -> Facts:
    base = {"lat": 45.0, "lng": 5.0, "dist_km_from_origin": 30.0}
    base.update(overrides)
    return Facts(**base)


@pytest.mark.parametrize(
    "distance,expected",
    [
        (5, -0.5),
        (20, 1.0),
        (70, 0.5),
        (100, 0.0),
        (15, 1.0),
        (60, 1.0),
        (78, 0.5),
        (12, 0.0),
        (None, 0.0),
    ],
)
def test_u_shape(distance, expected):
    assert u_shape(distance, (15, 60)) == expected


def test_resources_water_and_forest():
    facts = _facts(river_km=1.0, forest_within_km=3.0)
    # water 8 + forest 5 + fish 2
    assert resources_score(facts, DEFAULT_RULES) == 15


def test_resources_lake_counts_as_water():
    assert resources_score(_facts(lake_km=1.0), DEFAULT_RULES) == 10
    assert resources_score(_facts(lake_km=1.6), DEFAULT_RULES) == 0


def test_resources_urban_penalty_and_terrain_bonus():
    facts = _facts(urban_within5km=True, elevation_m=300, slope_pct=5, gardenable_within3km=True)
    # garden 3 - urban 10 + terrain 2
    assert resources_score(facts, DEFAULT_RULES) == -5


def test_resources_terrain_needs_both_elevation_and_slope():
    assert resources_score(_facts(elevation_m=300), DEFAULT_RULES) == 0
    assert resources_score(_facts(elevation_m=900, slope_pct=5), DEFAULT_RULES) == 0


def test_access_caps_exits_and_rewards_near_distance():
    assert access_score(_facts(exits_count10km=5), DEFAULT_RULES) == 3.5
    assert access_score(_facts(exits_count10km=1, dist_km_from_origin=120.0), DEFAULT_RULES) == 1.0
    assert access_score(_facts(), DEFAULT_RULES) == 0.5


def test_edge_of_care_sums_clinic_and_hospital():
    assert edge_of_care(_facts(clinic_km=20, hospital_km=50), DEFAULT_RULES) == 2.0
    assert edge_of_care(_facts(clinic_km=2, hospital_km=200), DEFAULT_RULES) == -0.5


def test_loot_penalty_needs_density():
    magnets = Magnets(big_hospitals=1, hypermarkets=0, fuel=2, pharmacies=0)
    assert loot_magnet_penalty(_facts(magnets=magnets), DEFAULT_RULES) == 0
    # hospital 3 + fuel 2*1.5, density factor capped at 1
    assert loot_magnet_penalty(_facts(magnets=magnets, pop_density=3000), DEFAULT_RULES) == -6.0
    assert loot_magnet_penalty(_facts(magnets=magnets, pop_density=750), DEFAULT_RULES) == -3.0


@pytest.mark.parametrize(
    "phase,expected",
    [
        ("panic", 0.2 * 2.0 + 1.0 * -6.0),
        ("transit", 0.6 * 2.0 + 0.8 * -6.0),
        ("recovery", 1.0 * 2.0 + 0.4 * -6.0),
    ],
)
def test_stability_is_phase_weighted(phase, expected):
    facts = _facts(
        clinic_km=20,
        hospital_km=50,
        pop_density=3000,
        magnets=Magnets(big_hospitals=1, fuel=2),
    )
    assert stability_score(facts, DEFAULT_RULES, phase) == pytest.approx(expected)


def test_stability_defaults_to_configured_phase():
    facts = _facts(clinic_km=20, hospital_km=50)
    assert stability_score(facts, DEFAULT_RULES) == pytest.approx(0.6 * 2.0)


def test_hazards_penalties():
    facts = _facts(floodplain=True, wildfire_risk="high", storm_surge=False, single_bridge=True)
    assert hazards_score(facts, DEFAULT_RULES) == -(10 + 6 + 5)
    assert hazards_score(_facts(wildfire_risk="med"), DEFAULT_RULES) == 0


def test_total_is_weighted_sum_and_ignores_hazards():
    facts = _facts(
        river_km=1.0,
        exits_count10km=2,
        clinic_km=20,
        delta_risk_vs_city=-10.0,
        floodplain=True,
    )
    scores = compute_scores(facts, phase="transit")

    assert scores.risk == 10.0
    assert scores.resources == 10
    assert scores.access == 2.5
    assert scores.stability == pytest.approx(0.6)
    assert scores.hazards == -10
    expected = 0.55 * 10 + 0.30 * 10 + 0.05 * 2.5 + 0.10 * 0.6
    assert scores.total == pytest.approx(expected)


def test_absent_risk_delta_contributes_nothing():
    assert compute_scores(_facts()).risk == 0


def test_hazard_weight_is_configurable():
    rules = replace(DEFAULT_RULES, weights=replace(Weights(), hazards=1.0))
    facts = _facts(floodplain=True)
    assert compute_scores(facts, rules=rules).total == pytest.approx(
        compute_scores(facts).total - 10
    )


def test_compute_scores_is_deterministic():
    facts = _facts(river_km=1.2, forest_within_km=4.0, clinic_km=30, hospital_km=80, exits_count10km=1)
    first = compute_scores(facts, phase="panic")
    for _ in range(5):
        assert compute_scores(facts, phase="panic") == first
