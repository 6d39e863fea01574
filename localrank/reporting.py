"""Output reporting helpers."""
from __future__ import annotations

import csv
import json
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, TextIO

from .listings import Placement, listing_to_row
from .match_quiz import MatchResult
from .ranking import RankSnapshot, SearchResult


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_text(path: str, text: str) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        f.write(text)


def write_results_json(path: str, rows: Iterable[Dict[str, Any]]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(list(rows), f, ensure_ascii=False, indent=2)


def write_json_object(path: str, payload: Dict[str, Any]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


SEARCH_CSV_FIELDS = [
    "position",
    "id",
    "name",
    "slug",
    "city_slug",
    "verified_status",
    "completeness_score",
    "accepting_new_patients",
    "address",
    "phone",
    "organic_score",
    "is_sponsored",
]


def write_search_results_csv(path: str, rows: Iterable[Dict[str, Any]]) -> None:
    rows = list(rows)
    if not rows:
        with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
            f.write("")
        return

    with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=SEARCH_CSV_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def write_summary(path: str, summary_lines: List[str]) -> None:
    atomic_write_text(path, "\n".join(summary_lines))


# Row builders

def build_placement_row(position: int, placement: Placement) -> Dict[str, Any]:
    row = listing_to_row(placement.listing)
    row["position"] = position
    row["organic_score"] = (
        round(placement.organic_score, 4) if placement.organic_score is not None else None
    )
    row["is_sponsored"] = placement.is_sponsored
    return row


def build_search_rows(result: SearchResult) -> List[Dict[str, Any]]:
    return [build_placement_row(i + 1, p) for i, p in enumerate(result.placements)]


def build_match_row(rank: int, match: MatchResult) -> Dict[str, Any]:
    return {
        "rank": rank,
        "listing": listing_to_row(match.listing),
        "score": match.score,
        "reasons": [
            {"code": r.code, "message": r.message, "weight": r.weight} for r in match.reasons
        ],
    }


def build_snapshot_row(snapshot: RankSnapshot) -> Dict[str, Any]:
    return {
        "listing_id": snapshot.listing_id,
        "city_slug": snapshot.city_slug,
        "service_slug": snapshot.service_slug,
        "rank_position": snapshot.rank_position,
        "total_listings": snapshot.total_listings,
        "week_start": snapshot.week_start.isoformat(),
    }


def render_search_summary(result: SearchResult) -> List[str]:
    lines = [
        f"Generated: {utc_now_iso()}",
        f"Candidates: {result.candidates_count}",
        f"After filters: {result.filtered_count}",
        f"Placements: {len(result.placements)} "
        f"(organic={result.organic_count}, sponsored={result.sponsored_count})",
        "",
        "Top 10:",
    ]
    for i, placement in enumerate(result.placements[:10], start=1):
        tag = " [sponsored]" if placement.is_sponsored else ""
        score = (
            f"{placement.organic_score:.2f}" if placement.organic_score is not None else "-"
        )
        lines.append(f"{i:>3}. {placement.listing.name} (score={score}){tag}")
    return lines


def render_match_summary(matches: List[MatchResult]) -> List[str]:
    if not matches:
        return ["No matches."]
    lines = []
    for i, match in enumerate(matches, start=1):
        lines.append(f"{i}. {match.listing.name} score={match.score}")
        for reason in match.reasons:
            lines.append(f"   +{reason.weight} {reason.message}")
    return lines
