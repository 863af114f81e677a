"""Tests for POST /api/candidates and POST /api/suggest.

The Overpass fetcher is monkeypatched so no real network calls are made.
"""
from __future__ import annotations

import math

import pytest
from fastapi.testclient import TestClient

KM_PER_DEG = 6371.0 * math.pi / 180.0
ORIGIN = {"lat": 45.0, "lng": 5.0}


def _point(north_km: float, east_km: float = 0.0) -> tuple[float, float]:
    return (
        45.0 + north_km / KM_PER_DEG,
        5.0 + east_km / (KM_PER_DEG * math.cos(math.radians(45.0))),
    )


def _mock_elements() -> list[dict]:
    a, b = _point(30.0), _point(-50.0, 10.0)
    river_a, forest_b = _point(30.0, 1.0), _point(-52.0, 10.0)
    return [
        {"type": "node", "id": 101, "lat": a[0], "lon": a[1], "tags": {"place": "village", "name": "Rivermead"}},
        {"type": "node", "id": 102, "lat": b[0], "lon": b[1], "tags": {"place": "hamlet", "name": "Oakley"}},
        {"type": "way", "id": 201, "center": {"lat": river_a[0], "lon": river_a[1]}, "tags": {"waterway": "river"}},
        {"type": "way", "id": 202, "center": {"lat": forest_b[0], "lon": forest_b[1]}, "tags": {"natural": "wood"}},
    ]


@pytest.fixture()
def calls():
    return []


@pytest.fixture()
def client(monkeypatch, calls):
    """Return a TestClient with the Overpass fetcher mocked out."""
    import havenmap.pipeline as pipeline_module

    async def _mock_fetch_features(lat, lng):
        calls.append((lat, lng))
        return _mock_elements()

    monkeypatch.setattr(pipeline_module, "fetch_features", _mock_fetch_features)

    import havenmap.main as main_module

    return TestClient(main_module.app)


@pytest.fixture()
def failing_client(monkeypatch):
    import havenmap.pipeline as pipeline_module
    from havenmap.overpass_service import UpstreamAPIError

    async def _mock_fetch_features(lat, lng):
        raise UpstreamAPIError("overpass", "request failed for all endpoints")

    monkeypatch.setattr(pipeline_module, "fetch_features", _mock_fetch_features)

    import havenmap.main as main_module

    return TestClient(main_module.app)


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_candidates_returns_200_and_shape(client, calls):
    resp = client.post("/api/candidates", json={"origin": {**ORIGIN, "name": "Origin City"}})
    assert resp.status_code == 200
    assert calls == [(45.0, 5.0)]

    data = resp.json()
    assert data["meta"] == {"phase": "transit", "version": "v1", "qualificationFallback": False}
    ids = [c["id"] for c in data["candidates"]]
    assert ids == ["101", "102"] or ids == ["102", "101"]

    for cand in data["candidates"]:
        for key in ("id", "name", "lat", "lng", "distanceKm", "rationale", "score", "riskDelta"):
            assert key in cand
        assert -40 <= cand["riskDelta"] <= -8
        assert cand["rationale"].endswith("km from city")


def test_candidates_flags_and_absent_fields(client):
    resp = client.post("/api/candidates", json={"origin": ORIGIN})
    by_id = {c["id"]: c for c in resp.json()["candidates"]}
    assert by_id["102"]["hasForest"] is True
    assert by_id["102"]["hasWater"] is False
    assert by_id["101"]["hasRiver"] is True
    assert by_id["101"]["place"] == "village"
    # no population tag on either settlement
    assert "population" not in by_id["101"]
    assert "population" not in by_id["102"]


def test_candidates_rejects_non_numeric_coordinates(client, calls):
    resp = client.post("/api/candidates", json={"origin": {"lat": "abc", "lng": 5.0}})
    assert resp.status_code == 400
    assert calls == []


def test_candidates_rejects_missing_origin(client):
    resp = client.post("/api/candidates", json={})
    assert resp.status_code == 400


def test_candidates_upstream_failure_is_empty_200(failing_client):
    resp = failing_client.post("/api/candidates", json={"origin": ORIGIN})
    assert resp.status_code == 200
    assert resp.json()["candidates"] == []


def test_suggest_returns_items_with_facts_and_scores(client):
    resp = client.post("/api/suggest", json={**ORIGIN, "phase": "recovery"})
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "public, max-age=60, s-maxage=60"

    data = resp.json()
    assert data["meta"]["phase"] == "recovery"
    assert len(data["items"]) == 2
    for item in data["items"]:
        assert set(item["scores"]) == {"risk", "resources", "access", "stability", "hazards", "total"}
        assert item["facts"]["urban_within5km"] is False
        assert "cell" in item


def test_suggest_rejects_bad_phase(client):
    resp = client.post("/api/suggest", json={**ORIGIN, "phase": "calm"})
    assert resp.status_code == 400


@pytest.mark.parametrize(
    "payload",
    [
        {"lat": "45", "lng": 5.0},
        {"lat": 45.0},
        {"lat": True, "lng": 5.0},
        {"lat": 95.0, "lng": 5.0},
    ],
)
def test_suggest_rejects_invalid_coordinates(client, payload):
    resp = client.post("/api/suggest", json=payload)
    assert resp.status_code == 400


def test_suggest_accepts_integer_coordinates(client, calls):
    resp = client.post("/api/suggest", json={"lat": 45, "lng": 5})
    assert resp.status_code == 200
    assert calls == [(45.0, 5.0)]


def test_suggest_upstream_failure_is_empty_200(failing_client):
    resp = failing_client.post("/api/suggest", json=ORIGIN)
    assert resp.status_code == 200
    assert resp.json()["items"] == []
