"""Optional LLM pass that re-orders the shortlist and rewrites rationales.

The pipeline's own output is always the fallback: a missing key, a timeout,
a provider error or an unusable reply all return the input unchanged.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from . import settings
from .schemas import RefineRequest, RefineResponse, RefineSuggestion

logger = logging.getLogger(__name__)

MAX_PROMPT_CANDIDATES_CHARS = 4000
MAX_RATIONALE_CHARS = 400

REFINE_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "suggestions": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "rationale": {"type": "string", "minLength": 1, "maxLength": 300},
                },
                "required": ["id", "rationale"],
            },
        }
    },
    "required": ["suggestions"],
}


class MissingAPIKeyError(RuntimeError):
    """Raised when GEMINI_API_KEY is not configured."""


class RefineTimeoutError(RuntimeError):
    """Raised when the model does not answer within the budget."""


class RefineProviderError(RuntimeError):
    """Raised when the model request or its reply is unusable."""


def _build_prompt(request: RefineRequest) -> str:
    candidates = json.dumps(
        [s.model_dump() for s in request.suggestions],
        ensure_ascii=True,
    )[:MAX_PROMPT_CANDIDATES_CHARS]
    return (
        "You are a safety-conscious assistant helping someone choose nearby areas "
        "that are quieter than their current city.\n"
        "Re-rank the candidate areas, preferring closer options first when the "
        "origin is rural or medium risk, and give each a concise one-sentence rationale.\n"
        "Use ONLY the provided data. Keep every id exactly as given.\n"
        f"Origin: {request.origin.name} (Risk: {request.origin.riskBand})\n\n"
        f"Candidates (JSON): {candidates}\n\n"
        'Return JSON of the form {"suggestions": [{"id": ..., "rationale": ...}]}.'
    )


def _extract_text_from_response(response: Any) -> str | None:
    text = getattr(response, "text", None)
    if isinstance(text, str) and text.strip():
        return text

    candidates = getattr(response, "candidates", None)
    if not isinstance(candidates, list):
        return None
    for candidate in candidates:
        parts = getattr(getattr(candidate, "content", None), "parts", None)
        if not isinstance(parts, list):
            continue
        for part in parts:
            part_text = getattr(part, "text", None)
            if isinstance(part_text, str) and part_text.strip():
                return part_text
    return None


def _ask_gemini(prompt: str, api_key: str, model_name: str) -> str:
    """Send the ranking prompt and return the raw reply text."""
    try:
        from google import genai
        from google.genai import types
    except ImportError as exc:  # pragma: no cover - import environment specific
        raise RefineProviderError("refinement needs the `google-genai` package") from exc

    client = genai.Client(api_key=api_key)
    try:
        response = client.models.generate_content(
            model=model_name,
            contents=prompt,
            config=types.GenerateContentConfig(
                temperature=0.2,
                response_mime_type="application/json",
                response_json_schema=REFINE_JSON_SCHEMA,
            ),
        )
    except Exception as exc:
        raise RefineProviderError(f"{model_name} ranking call failed: {exc}") from exc

    reply = _extract_text_from_response(response)
    if not reply:
        raise RefineProviderError(f"{model_name} sent back no ranking.")
    return reply


def parse_ranking_reply(reply: str) -> Any:
    """Decode the model's ranking, tolerating a markdown code fence around it."""
    text = reply.strip()
    if text.startswith("```"):
        text = text.strip("`").strip()
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise RefineProviderError("ranking reply is not JSON") from exc


def merge_refined(original: list[RefineSuggestion], raw_payload: Any) -> list[RefineSuggestion] | None:
    """Apply the model's order and rationales on top of the pipeline's values.

    Unknown ids are dropped; ids the model forgot keep their pipeline order at
    the end. Distances and risk deltas always come from the pipeline. Returns
    None when the reply carries nothing usable.
    """
    if isinstance(raw_payload, dict):
        entries = raw_payload.get("suggestions")
    else:
        entries = raw_payload
    if not isinstance(entries, list):
        return None

    by_id = {s.id: s for s in original}
    merged: list[RefineSuggestion] = []
    seen: set[str] = set()
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        entry_id = entry.get("id")
        if entry_id is None:
            continue
        entry_id = str(entry_id)
        base = by_id.get(entry_id)
        if base is None or entry_id in seen:
            continue
        rationale = entry.get("rationale")
        if isinstance(rationale, str) and rationale.strip():
            base = base.model_copy(update={"rationale": rationale.strip()[:MAX_RATIONALE_CHARS]})
        merged.append(base)
        seen.add(entry_id)

    if not merged:
        return None
    merged.extend(s for s in original if s.id not in seen)
    return merged


async def _request_refinement(
    request: RefineRequest,
    *,
    api_key: str,
    timeout_seconds: float,
    model_name: str,
) -> list[RefineSuggestion]:
    if not api_key:
        raise MissingAPIKeyError("GEMINI_API_KEY is not configured on the backend.")

    prompt = _build_prompt(request)
    try:
        reply = await asyncio.wait_for(
            asyncio.to_thread(_ask_gemini, prompt, api_key, model_name),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        raise RefineTimeoutError(
            f"Refinement timed out after {timeout_seconds * 1000:.0f}ms."
        ) from exc

    merged = merge_refined(list(request.suggestions), parse_ranking_reply(reply))
    if merged is None:
        raise RefineProviderError("Refinement reply did not reference any known suggestion.")
    return merged


async def refine_suggestions(
    request: RefineRequest,
    *,
    api_key: str | None = None,
    timeout_seconds: float | None = None,
    model_name: str | None = None,
) -> RefineResponse:
    if not request.suggestions:
        return RefineResponse(suggestions=[], refined=False)

    try:
        refined = await _request_refinement(
            request,
            api_key=settings.GEMINI_API_KEY if api_key is None else api_key,
            timeout_seconds=timeout_seconds or settings.REFINE_TIMEOUT_SECONDS,
            model_name=model_name or settings.REFINE_MODEL,
        )
    except MissingAPIKeyError:
        return RefineResponse(suggestions=list(request.suggestions), refined=False)
    except (RefineTimeoutError, RefineProviderError) as exc:
        logger.warning("refinement skipped, keeping pipeline order: %s", exc)
        return RefineResponse(suggestions=list(request.suggestions), refined=False)
    return RefineResponse(suggestions=refined, refined=True)
