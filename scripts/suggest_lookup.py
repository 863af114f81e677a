#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from havenmap.features import parse_elements
from havenmap.overpass_service import UpstreamAPIError, fetch_features
from havenmap.pipeline import rank_features
from havenmap.rules import DEFAULT_RULES, PHASES
from havenmap.schemas import LiteResponse, Origin, SuggestResponse

EXIT_INVALID_ARGS = 2
EXIT_UPSTREAM_FAILURE = 4


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Rank nearby settlements with water/forest access using OpenStreetMap data."
    )
    parser.add_argument("--lat", type=float, required=True, help="Origin latitude in decimal degrees.")
    parser.add_argument("--lng", type=float, required=True, help="Origin longitude in decimal degrees.")
    parser.add_argument(
        "--mode",
        choices=("lite", "full"),
        default="full",
        help="lite: resource filter only, 6 picks; full: also excludes near-urban places (default).",
    )
    parser.add_argument(
        "--phase",
        choices=PHASES,
        default=None,
        help=f"Stability weighting phase (default: {DEFAULT_RULES.phase}).",
    )
    parser.add_argument(
        "--radius-m",
        type=int,
        default=None,
        help="Overpass search radius in metres (default: OVERPASS_RADIUS_M or 80000).",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Write the JSON response to this path instead of stdout.",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty-print output JSON with indentation.",
    )
    return parser


def validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if not -90 <= args.lat <= 90:
        parser.error("--lat must be between -90 and 90")
    if not -180 <= args.lng <= 180:
        parser.error("--lng must be between -180 and 180")
    if args.radius_m is not None and args.radius_m <= 0:
        parser.error("--radius-m must be positive")


async def lookup(args: argparse.Namespace) -> LiteResponse | SuggestResponse:
    origin = Origin(lat=args.lat, lng=args.lng)
    elements = await fetch_features(origin.lat, origin.lng, args.radius_m)
    return rank_features(origin, parse_elements(elements), mode=args.mode, phase=args.phase)


def print_summary(result: LiteResponse | SuggestResponse) -> None:
    rows = result.candidates if isinstance(result, LiteResponse) else result.items
    print(f"{len(rows)} suggestion(s), phase={result.meta.phase}", file=sys.stderr)
    for row in rows:
        print(f"- {row.name} ({row.id}): {row.rationale}; riskDelta {row.riskDelta}", file=sys.stderr)


def write_output(payload: dict, output_path: Path | None, pretty: bool) -> None:
    text = json.dumps(payload, indent=2 if pretty else None, ensure_ascii=False)
    if output_path is None:
        print(text)
        return
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(text + "\n", encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    validate_args(parser, args)

    try:
        result = asyncio.run(lookup(args))
    except UpstreamAPIError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_UPSTREAM_FAILURE
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INVALID_ARGS

    write_output(result.model_dump(exclude_none=True), args.out, pretty=args.pretty)
    print_summary(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
