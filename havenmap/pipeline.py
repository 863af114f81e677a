"""Candidate ranking pipeline.

raw features + origin -> candidates -> facts/scores -> qualified ->
sorted -> spatially diversified shortlist -> response.

Everything except ``run_suggest_pipeline`` is synchronous and pure over its
inputs and the supplied rules, so concurrent requests need no coordination.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Sequence, Tuple

from .facts import (
    Candidate,
    Facts,
    extract_facts,
    has_forest,
    has_lake,
    has_river,
    has_water,
    parse_population,
    water_km,
)
from .features import FeatureSets, RawFeature, parse_elements, partition_features
from .geo import bearing_deg, cell_id, haversine_km
from .overpass_service import UpstreamAPIError, fetch_features
from .rules import DEFAULT_RULES, Mode, Phase, Rules
from .schemas import LiteResponse, Origin, ResponseMeta, SuggestItem, SuggestResponse, Suggestion
from .scoring import Scores, compute_scores

logger = logging.getLogger(__name__)

RATIONALE_SEPARATOR = " • "

FeatureFetcher = Callable[[float, float], Awaitable[List[dict]]]


@dataclass(frozen=True)
class Enriched:
    candidate: Candidate
    facts: Facts
    scores: Scores
    cell: str
    has_river: bool
    has_lake: bool
    has_water: bool
    has_forest: bool

    @property
    def water_km(self) -> float | None:
        return water_km(self.facts)


def _resolve_name(tags) -> str:
    return tags.get("name") or tags.get("name:en") or tags.get("place") or "Locality"


def build_candidates(origin: Origin, places: Iterable[RawFeature], *, rules: Rules = DEFAULT_RULES) -> List[Candidate]:
    """Settlements inside the distance window, in input order, de-duplicated by id."""
    lo, hi = rules.distance_window_km
    here = (origin.lat, origin.lng)
    seen: set[str] = set()
    out: List[Candidate] = []
    for p in places:
        coords = p.coords
        if coords is None or p.id in seen:
            continue
        distance = haversine_km(here, coords)
        if not lo <= distance <= hi:
            continue
        seen.add(p.id)
        out.append(
            Candidate(
                id=p.id,
                name=_resolve_name(p.tags),
                lat=coords[0],
                lng=coords[1],
                distance_km=distance,
                bearing_deg=bearing_deg(here, coords) if distance > 0 else 0.0,
                place=p.tag("place"),
                population=parse_population(p.tag("population")),
            )
        )
        if len(out) >= rules.max_candidates:
            break
    return out


def enrich(
    candidates: Iterable[Candidate],
    sets: FeatureSets,
    *,
    rules: Rules = DEFAULT_RULES,
    phase: Phase | None = None,
) -> List[Enriched]:
    t = rules.thresholds
    out: List[Enriched] = []
    for c in candidates:
        facts = extract_facts(c, sets, rules=rules)
        out.append(
            Enriched(
                candidate=c,
                facts=facts,
                scores=compute_scores(facts, rules=rules, phase=phase),
                cell=cell_id(c.lat, c.lng, rules.cell_resolution),
                has_river=has_river(facts, t),
                has_lake=has_lake(facts, t),
                has_water=has_water(facts, t),
                has_forest=has_forest(facts, t),
            )
        )
    return out


def qualify(items: Sequence[Enriched], mode: Mode) -> Tuple[List[Enriched], bool]:
    """Apply the mode's resource filter. Returns (kept, fallback_used).

    Lite falls back to the unfiltered set when nothing qualifies; full mode
    never does, so its output always respects the filter.
    """
    if mode == "lite":
        kept = [x for x in items if x.has_water or x.has_forest]
        if not kept and items:
            return list(items), True
        return kept, False
    kept = [x for x in items if (x.has_water or x.has_forest) and not x.facts.urban_within5km]
    return kept, False


def _sort_key(x: Enriched) -> Tuple[float, float, str]:
    return (-x.scores.total, -(x.facts.delta_risk_vs_city or 0.0), x.cell)


def sort_candidates(items: Iterable[Enriched]) -> List[Enriched]:
    return sorted(items, key=_sort_key)


def diversify(ranked: Sequence[Enriched], target: int, min_separation_km: float) -> Tuple[List[Enriched], int]:
    """Greedy spaced pick, then top-up by rank ignoring spacing.

    Returns the selection and how many of its leading entries satisfied the
    spacing rule.
    """
    chosen: List[Enriched] = []
    for x in ranked:
        if len(chosen) >= target:
            break
        here = (x.candidate.lat, x.candidate.lng)
        if all(
            haversine_km(here, (c.candidate.lat, c.candidate.lng)) >= min_separation_km
            for c in chosen
        ):
            chosen.append(x)
    spaced = len(chosen)

    if len(chosen) < target:
        picked = {c.candidate.id for c in chosen}
        for x in ranked:
            if len(chosen) >= target:
                break
            if x.candidate.id in picked:
                continue
            chosen.append(x)
            picked.add(x.candidate.id)
    return chosen, spaced


def _round_half_up(value: float, ndigits: int = 0) -> float:
    scale = 10 ** ndigits
    return math.floor(value * scale + 0.5) / scale


def risk_delta_mapper(totals: Sequence[float]) -> Callable[[float], int]:
    """Min-max map totals of the selected set onto the public [-40, -8] scale."""
    lo = min(totals) if totals else 0.0
    hi = max(totals) if totals else 0.0
    span = max(1e-6, hi - lo)

    def to_risk_delta(total: float) -> int:
        z = (total - lo) / span
        return -int(_round_half_up(min(40.0, max(8.0, 8.0 + z * 32.0))))

    return to_risk_delta


def _finite(value: float | None) -> bool:
    return value is not None and math.isfinite(value)


def format_rationale(water: float | None, forest: float | None, distance_km: float) -> str:
    parts = []
    if _finite(water):
        parts.append(f"water ~{int(_round_half_up(water))} km")
    if _finite(forest):
        parts.append(f"forest ~{int(_round_half_up(forest))} km")
    parts.append(f"{int(_round_half_up(distance_km))} km from city")
    return RATIONALE_SEPARATOR.join(parts)


def _round1(value: float | None) -> float | None:
    return round(value, 1) if _finite(value) else None


def _suggestion_fields(x: Enriched, to_risk_delta: Callable[[float], int]) -> dict[str, Any]:
    c = x.candidate
    water = x.water_km
    return {
        "id": c.id,
        "name": c.name,
        "lat": c.lat,
        "lng": c.lng,
        "distanceKm": c.distance_km,
        "bearingDeg": c.bearing_deg,
        "place": c.place,
        "population": c.population,
        "rationale": format_rationale(water, x.facts.forest_within_km, c.distance_km),
        "waterKm": water,
        "forestKm": x.facts.forest_within_km,
        "hasRiver": x.has_river,
        "hasLake": x.has_lake,
        "hasWater": x.has_water,
        "hasForest": x.has_forest,
        "score": _round_half_up(x.scores.total, 1),
        "riskDelta": to_risk_delta(x.scores.total),
    }


def _public_facts(facts: Facts) -> dict[str, Any]:
    out = asdict(facts)
    for key in ("river_km", "lake_km", "forest_within_km", "clinic_km", "hospital_km", "dist_km_from_origin"):
        out[key] = _round1(out[key])
    return out


def empty_response(mode: Mode, phase: Phase | None, *, rules: Rules = DEFAULT_RULES) -> LiteResponse | SuggestResponse:
    meta = ResponseMeta(phase=phase or rules.phase, version=rules.version)
    if mode == "lite":
        return LiteResponse(candidates=[], meta=meta)
    return SuggestResponse(items=[], meta=meta)


def rank_features(
    origin: Origin,
    features: Iterable[RawFeature],
    *,
    mode: Mode = "full",
    phase: Phase | None = None,
    rules: Rules = DEFAULT_RULES,
) -> LiteResponse | SuggestResponse:
    """Run the whole ranking over an in-memory feature snapshot."""
    sets = partition_features(features)
    candidates = build_candidates(origin, sets.places, rules=rules)
    enriched = enrich(candidates, sets, rules=rules, phase=phase)
    qualified, fallback = qualify(enriched, mode)
    logger.debug(
        "pipeline mode=%s places=%d in_window=%d qualified=%d fallback=%s",
        mode,
        len(sets.places),
        len(candidates),
        len(qualified),
        fallback,
    )
    if not qualified:
        return empty_response(mode, phase, rules=rules)

    ranked = sort_candidates(qualified)
    chosen, _spaced = diversify(ranked, rules.target_count(mode), rules.min_separation_km)
    to_risk_delta = risk_delta_mapper([x.scores.total for x in chosen])
    meta = ResponseMeta(phase=phase or rules.phase, version=rules.version, qualificationFallback=fallback)

    if mode == "lite":
        return LiteResponse(
            candidates=[Suggestion(**_suggestion_fields(x, to_risk_delta)) for x in chosen],
            meta=meta,
        )

    items = [
        SuggestItem(
            **_suggestion_fields(x, to_risk_delta),
            cell=x.cell,
            facts=_public_facts(x.facts),
            scores=x.scores.to_dict(),
        )
        for x in chosen
    ]
    return SuggestResponse(items=items, meta=meta)


async def run_suggest_pipeline(
    origin: Origin,
    *,
    mode: Mode = "full",
    phase: Phase | None = None,
    rules: Rules = DEFAULT_RULES,
    fetcher: FeatureFetcher | None = None,
) -> LiteResponse | SuggestResponse:
    """Fetch features around ``origin`` and rank them.

    Upstream failures degrade to an empty shortlist rather than an error.
    """
    fetch = fetcher or fetch_features
    try:
        elements = await fetch(origin.lat, origin.lng)
    except UpstreamAPIError as exc:
        logger.warning("feature fetch failed, returning empty shortlist: %s", exc)
        return empty_response(mode, phase, rules=rules)

    if not elements:
        return empty_response(mode, phase, rules=rules)
    return rank_features(origin, parse_elements(elements), mode=mode, phase=phase, rules=rules)
