# Service settings: read from the environment after loading .env from the
# project root or cwd. Real environment variables always win over .env.

from __future__ import annotations

import os
from pathlib import Path

_project_root = Path(__file__).resolve().parents[1]


def _load_dotenv() -> None:
    for path in (_project_root / ".env", Path.cwd() / ".env"):
        if path.is_file():
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        k, _, v = line.partition("=")
                        v = v.strip().strip('"').strip("'")
                        os.environ.setdefault(k.strip(), v)
            break


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


_load_dotenv()

CORS_ORIGINS = _csv(os.getenv("CORS_ORIGINS", "*")) or ["*"]

OVERPASS_ENDPOINTS = _csv(os.getenv("OVERPASS_ENDPOINTS", "")) or [
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://overpass.nchc.org.tw/api/interpreter",
]
OVERPASS_RADIUS_M = int(_float_env("OVERPASS_RADIUS_M", 80000))
OVERPASS_TIMEOUT_SECONDS = _float_env("OVERPASS_TIMEOUT_SECONDS", 25.0)

GEMINI_API_KEY = (os.getenv("GEMINI_API_KEY") or "").strip()
REFINE_MODEL = (os.getenv("REFINE_MODEL", "gemini-2.5-flash") or "gemini-2.5-flash").strip()
REFINE_TIMEOUT_SECONDS = _float_env("REFINE_TIMEOUT_SECONDS", 2.0)

PHOTON_BASE_URL = (os.getenv("PHOTON_BASE_URL", "https://photon.komoot.io") or "").rstrip("/")

LOG_LEVEL = (os.getenv("HAVENMAP_LOG_LEVEL", "INFO") or "INFO").upper()
