from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "scripts"))
import suggest_lookup as sl  # noqa: E402

from havenmap.overpass_service import UpstreamAPIError  # noqa: E402

ELEMENTS = [
    {"type": "node", "id": 1, "lat": 45.2698, "lon": 5.0, "tags": {"place": "village", "name": "Rivermead"}},
    {"type": "way", "id": 2, "center": {"lat": 45.2698, "lon": 5.0127}, "tags": {"waterway": "river"}},
]


@pytest.fixture()
def mock_fetch(monkeypatch):
    calls = []

    async def _fake_fetch(lat, lng, radius_m=None):
        calls.append((lat, lng, radius_m))
        return ELEMENTS

    monkeypatch.setattr(sl, "fetch_features", _fake_fetch)
    return calls


def test_main_prints_json_and_summary(mock_fetch, capsys):
    code = sl.main(["--lat", "45.0", "--lng", "5.0", "--mode", "lite", "--phase", "panic"])
    assert code == 0
    assert mock_fetch == [(45.0, 5.0, None)]

    out, err = capsys.readouterr()
    payload = json.loads(out)
    assert payload["meta"]["phase"] == "panic"
    assert [c["id"] for c in payload["candidates"]] == ["1"]
    assert "Rivermead (1)" in err


def test_main_writes_output_file(mock_fetch, tmp_path):
    out_path = tmp_path / "nested" / "result.json"
    code = sl.main(["--lat", "45.0", "--lng", "5.0", "--radius-m", "50000", "--out", str(out_path), "--pretty"])
    assert code == 0
    assert mock_fetch == [(45.0, 5.0, 50000)]

    payload = json.loads(out_path.read_text(encoding="utf-8"))
    assert [i["id"] for i in payload["items"]] == ["1"]
    assert "scores" in payload["items"][0]


def test_main_upstream_failure_exit_code(monkeypatch, capsys):
    async def _fail(lat, lng, radius_m=None):
        raise UpstreamAPIError("overpass", "request failed for all endpoints")

    monkeypatch.setattr(sl, "fetch_features", _fail)
    assert sl.main(["--lat", "45.0", "--lng", "5.0"]) == sl.EXIT_UPSTREAM_FAILURE
    assert "overpass" in capsys.readouterr().err


@pytest.mark.parametrize(
    "argv",
    [
        ["--lat", "95", "--lng", "5"],
        ["--lat", "45", "--lng", "500"],
        ["--lat", "45", "--lng", "5", "--radius-m", "0"],
        ["--lat", "45", "--lng", "5", "--phase", "calm"],
    ],
)
def test_main_rejects_invalid_args(argv):
    with pytest.raises(SystemExit) as excinfo:
        sl.main(argv)
    assert excinfo.value.code == sl.EXIT_INVALID_ARGS
