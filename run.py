"""CLI entrypoint."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv as _load_dotenv

from localrank import config
from localrank.entitlements import get_entitlements
from localrank.lead_scoring import score_lead
from localrank.listings import FeaturedPlacementConfig, Listing, parse_listings
from localrank.match_quiz import match_listings
from localrank.ranking import compute_rank_snapshots, rank_search, select_featured
from localrank.reporting import (
    build_match_row,
    build_search_rows,
    build_snapshot_row,
    ensure_dir,
    render_match_summary,
    render_search_summary,
    write_json_object,
    write_results_json,
    write_search_results_csv,
    write_summary,
)
from localrank.validation import (
    parse_lead_input,
    parse_quiz_answers,
    parse_search_query,
    parse_subscription,
)

logger = logging.getLogger("localrank.cli")


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    _load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rank, match and score directory listings")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--preflight", action="store_true", help="Check configuration only")
    group.add_argument("--search", action="store_true", help="Rank a listing snapshot for a query")
    group.add_argument("--match", action="store_true", help="Match quiz answers to listings")
    group.add_argument("--lead", action="store_true", help="Score inbound leads")
    group.add_argument("--entitlements", action="store_true", help="Resolve subscription entitlements")
    group.add_argument("--snapshots", action="store_true", help="Compute weekly rank snapshots")
    parser.add_argument("--input", type=str, default=None, help="JSON snapshot input file")
    parser.add_argument("--config", type=str, default=None, help="ranking_config.json override")
    parser.add_argument("--out", type=str, default=config.OUTPUT_DIR)
    parser.add_argument(
        "--no-filters",
        action="store_true",
        help="Search: score every listing instead of applying the query filters first",
    )
    return parser.parse_args(argv)


def load_input(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        raise ValueError("--input is required for this mode")
    input_path = Path(path).expanduser().resolve()
    if not input_path.exists():
        raise ValueError(f"Input missing: {input_path}")
    with open(input_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("Input must be a JSON object")
    return data


def _parse_now(payload: Dict[str, Any]) -> Optional[datetime]:
    raw = payload.get("now")
    if not raw:
        return None
    parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _featured_candidates(payload: Dict[str, Any], listings: List[Listing]) -> List[Listing]:
    if "featured_ids" in payload:
        by_id = {d.id: d for d in listings}
        extra = {d.id: d for d in parse_listings(payload.get("featured_listings") or [])}
        out = []
        for listing_id in payload["featured_ids"]:
            listing = by_id.get(str(listing_id)) or extra.get(str(listing_id))
            if listing is None:
                raise ValueError(f"Unknown featured listing id: {listing_id}")
            out.append(listing)
        return out
    raw_subs = payload.get("subscriptions") or {}
    subscriptions = {str(k): parse_subscription(v) for k, v in raw_subs.items()}
    return select_featured(listings, subscriptions)


def run_search(payload: Dict[str, Any], out_dir: str, apply_filters: bool = True) -> int:
    city = payload.get("city")
    listings = parse_listings(payload.get("listings") or [])
    if city:
        listings = [d for d in listings if d.city_slug == city]
    query = parse_search_query(payload.get("query") or {}, city=city)
    featured = _featured_candidates(payload, listings)
    result = rank_search(
        listings,
        query=query,
        featured=featured,
        placement=FeaturedPlacementConfig.from_config(),
        now=_parse_now(payload),
        apply_filters=apply_filters,
    )

    rows = build_search_rows(result)
    summary = render_search_summary(result)
    ensure_dir(out_dir)
    write_results_json(os.path.join(out_dir, "results.json"), rows)
    write_search_results_csv(os.path.join(out_dir, "results.csv"), rows)
    write_summary(os.path.join(out_dir, "summary.txt"), summary)
    for line in summary:
        print(line)
    print(f"Done. Results written to {out_dir}/results.csv and {out_dir}/results.json")
    return 0


def run_match(payload: Dict[str, Any], out_dir: str) -> int:
    answers = parse_quiz_answers(payload.get("answers") or {})
    listings = [d for d in parse_listings(payload.get("listings") or []) if d.city_slug == answers.city]
    matches = match_listings(listings, answers)

    ensure_dir(out_dir)
    write_results_json(
        os.path.join(out_dir, "matches.json"),
        [build_match_row(i + 1, m) for i, m in enumerate(matches)],
    )
    for line in render_match_summary(matches):
        print(line)
    return 0


def run_leads(payload: Dict[str, Any], out_dir: str) -> int:
    raw_leads = payload.get("leads")
    if raw_leads is None:
        raw_leads = [payload.get("lead") or {}]
    if not isinstance(raw_leads, list):
        raise ValueError("\"leads\" must be a JSON array")
    rows = []
    for raw in raw_leads:
        if not isinstance(raw, dict):
            raise ValueError(f"Lead entries must be JSON objects, got {raw!r}")
        result = score_lead(parse_lead_input(raw))
        row = result.as_dict()
        if "id" in raw:
            row["id"] = raw["id"]
        rows.append(row)
        print(f"Lead {raw.get('id', len(rows))}: score={result.score} ({', '.join(result.messages)})")

    ensure_dir(out_dir)
    write_results_json(os.path.join(out_dir, "leads.json"), rows)
    return 0


def run_entitlements(payload: Dict[str, Any], out_dir: str) -> int:
    subscription = parse_subscription(payload.get("subscription"))
    entitlements = get_entitlements(subscription, bool(payload.get("is_claimed")))
    flags = entitlements.as_dict()

    ensure_dir(out_dir)
    write_json_object(os.path.join(out_dir, "entitlements.json"), flags)
    for name, allowed in flags.items():
        print(f"- {name}: {allowed}")
    return 0


def run_snapshots(payload: Dict[str, Any], out_dir: str) -> int:
    listings = parse_listings(payload.get("listings") or [])
    snapshots = compute_rank_snapshots(
        listings,
        cities=payload.get("cities"),
        services=payload.get("services"),
        now=_parse_now(payload),
    )

    ensure_dir(out_dir)
    write_results_json(
        os.path.join(out_dir, "rank_snapshots.json"), [build_snapshot_row(s) for s in snapshots]
    )
    print(f"Rank snapshots: {len(snapshots)} rows for {len({s.city_slug for s in snapshots})} cities")
    return 0


def validate_cities(cities: Dict[str, Dict[str, Any]]) -> None:
    invalid = [k for k, v in cities.items() if v.get("lat") == 0.0 or v.get("lng") == 0.0]
    if invalid:
        raise ValueError(
            "City coordinates are not set. Please update lat/lng for: " + ", ".join(invalid)
        )


def run_preflight() -> int:
    ok = True
    try:
        validate_cities(config.CITIES)
        print(f"Cities: OK ({', '.join(sorted(config.CITIES))})")
    except ValueError as exc:
        print(f"Cities: FAIL ({exc})")
        ok = False

    placement = FeaturedPlacementConfig.from_config()
    positions = placement.normalized_positions()
    if len(positions) != len(tuple(placement.positions)):
        print(f"Featured positions: WARN (normalized {list(placement.positions)} -> {list(positions)})")
    else:
        print(f"Featured positions: OK ({list(positions)})")
    print(f"Featured quota: {placement.quota()}")
    print(f"Match top N: {config.MATCH_TOP_N}")

    print("Preflight: PASS" if ok else "Preflight: FAIL")
    return 0 if ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    args = parse_args(argv)
    level = os.environ.get(config.LOG_LEVEL_ENV_VAR, "INFO").upper()
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        loaded = config.load_ranking_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 1
    logger.info("Ranking config %s", "loaded" if loaded else "not found, using defaults")

    if args.preflight:
        return run_preflight()

    try:
        payload = load_input(args.input)
        if args.search:
            return run_search(payload, args.out, apply_filters=not args.no_filters)
        if args.match:
            return run_match(payload, args.out)
        if args.lead:
            return run_leads(payload, args.out)
        if args.entitlements:
            return run_entitlements(payload, args.out)
        return run_snapshots(payload, args.out)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
