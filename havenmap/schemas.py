from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .rules import Phase


class Origin(BaseModel):
    lat: float = Field(..., strict=True, ge=-90, le=90)
    lng: float = Field(..., strict=True, ge=-180, le=180)
    name: str | None = Field(default=None, max_length=200)


class CandidatesRequest(BaseModel):
    origin: Origin
    phase: Phase | None = None


class SuggestRequest(BaseModel):
    lat: float = Field(..., strict=True, ge=-90, le=90)
    lng: float = Field(..., strict=True, ge=-180, le=180)
    phase: Phase | None = None


class ErrorResponse(BaseModel):
    detail: Any


class Suggestion(BaseModel):
    id: str
    name: str
    lat: float
    lng: float
    distanceKm: float = Field(..., ge=0)
    bearingDeg: float | None = Field(default=None, ge=0, lt=360)
    place: str | None = None
    population: float | None = None
    rationale: str
    waterKm: float | None = None
    forestKm: float | None = None
    hasRiver: bool | None = None
    hasLake: bool | None = None
    hasWater: bool | None = None
    hasForest: bool | None = None
    score: float
    riskDelta: int = Field(..., ge=-40, le=-8)


class SuggestItem(Suggestion):
    cell: str
    facts: dict[str, Any]
    scores: dict[str, float]


class ResponseMeta(BaseModel):
    phase: Phase
    version: str
    # True when the lite resource filter matched nothing and was bypassed.
    qualificationFallback: bool = False


class LiteResponse(BaseModel):
    candidates: list[Suggestion] = Field(default_factory=list)
    meta: ResponseMeta


class SuggestResponse(BaseModel):
    items: list[SuggestItem] = Field(default_factory=list)
    meta: ResponseMeta


class RefineOrigin(BaseModel):
    name: str = Field(default="Origin", max_length=200)
    riskBand: str = Field(default="Medium", max_length=40)


class RefineSuggestion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    distanceKm: float
    riskDelta: float
    rationale: str = Field(default="", max_length=400)


class RefineRequest(BaseModel):
    origin: RefineOrigin = Field(default_factory=RefineOrigin)
    suggestions: list[RefineSuggestion] = Field(default_factory=list, max_length=20)


class RefineResponse(BaseModel):
    suggestions: list[RefineSuggestion]
    refined: bool = False


class GeocodeResult(BaseModel):
    name: str
    lat: float
    lng: float
    countryCode: str | None = None


class ReverseGeocodeResult(BaseModel):
    name: str
    admin: str | None = None
