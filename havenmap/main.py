from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from . import settings
from .geocode_service import geocode_city, reverse_geocode
from .pipeline import run_suggest_pipeline
from .refine_service import refine_suggestions
from .rules import DEFAULT_RULES, validate_rules
from .schemas import (
    CandidatesRequest,
    GeocodeResult,
    LiteResponse,
    Origin,
    RefineRequest,
    RefineResponse,
    ReverseGeocodeResult,
    SuggestRequest,
    SuggestResponse,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Fail at startup, not per request, if the scoring table is inconsistent.
RULES = validate_rules(DEFAULT_RULES)

app = FastAPI(title="HavenMap Suggestion API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/candidates", response_model=LiteResponse, response_model_exclude_none=True)
async def candidates(body: CandidatesRequest) -> LiteResponse:
    """Lite shortlist: resource-rich settlements, six at most.

    Upstream failures yield ``{"candidates": []}`` with HTTP 200.
    """
    return await run_suggest_pipeline(body.origin, mode="lite", phase=body.phase, rules=RULES)


@app.post("/api/suggest", response_model=SuggestResponse, response_model_exclude_none=True)
async def suggest(body: SuggestRequest, response: Response) -> SuggestResponse:
    """Full shortlist with facts and per-axis scores for each item."""
    result = await run_suggest_pipeline(
        Origin(lat=body.lat, lng=body.lng),
        mode="full",
        phase=body.phase,
        rules=RULES,
    )
    response.headers["Cache-Control"] = "public, max-age=60, s-maxage=60"
    return result


@app.post("/api/refine", response_model=RefineResponse)
async def refine(body: RefineRequest) -> RefineResponse:
    """Optional re-ranking/re-wording; falls back to the input order."""
    return await refine_suggestions(body)


@app.get("/api/geocode", response_model=GeocodeResult, response_model_exclude_none=True)
async def geocode(q: str = Query(..., min_length=1, max_length=200)) -> GeocodeResult:
    result = await geocode_city(q)
    if result is None:
        raise HTTPException(status_code=404, detail=f"No place found for {q!r}.")
    return result


@app.get("/api/geocode/reverse", response_model=ReverseGeocodeResult, response_model_exclude_none=True)
async def geocode_reverse(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
) -> ReverseGeocodeResult:
    result = await reverse_geocode(lat, lng)
    if result is None:
        raise HTTPException(status_code=404, detail="No locality found for the provided coordinates.")
    return result
