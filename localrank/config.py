"""Project configuration.

Loads ranking tunables from ranking_config.json when available, falling back
to the defaults below. Scoring code reads these module globals at call time.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

_REPO_ROOT = Path(__file__).resolve().parent.parent

CONFIG_ENV_VAR = "LOCALRANK_CONFIG"
LOG_LEVEL_ENV_VAR = "LOCALRANK_LOG_LEVEL"

# --- Markets ---

_DEFAULT_CITIES: Dict[str, Dict[str, Any]] = {
    "palm-bay": {"name": "Palm Bay", "lat": 28.0345, "lng": -80.5887},
    "melbourne": {"name": "Melbourne", "lat": 28.0836, "lng": -80.6081},
    "space-coast": {"name": "Space Coast", "lat": 28.2639, "lng": -80.7214},
}

CITIES: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in _DEFAULT_CITIES.items()}

# Service slug -> ServiceFlags attribute. Closed set: unknown slugs never match.
SERVICE_FLAG_MAP: Dict[str, str] = {
    "emergency-dentist": "emergency",
    "pediatric-dentist": "pediatric",
    "invisalign": "invisalign",
}
SEARCHABLE_SERVICES: List[str] = list(SERVICE_FLAG_MAP)
SNAPSHOT_SERVICES: List[str] = [
    "emergency-dentist",
    "pediatric-dentist",
    "invisalign",
    "dental-implants",
    "teeth-cleaning",
]

# --- Organic scoring ---

COMPLETENESS_WEIGHT = 0.4
VERIFIED_BONUS = 30.0
SERVICE_MATCH_BONUS = 20.0
RECENCY_WINDOW_DAYS = 30
RECENCY_MAX_BONUS = 10.0
RECENCY_DAYS_PER_POINT = 3.0
INSURANCE_MATCH_BONUS = 15.0
AVAILABILITY_MATCH_BONUS = 10.0
DISTANCE_MAX_BONUS = 20.0

TIER_RANK: Dict[str, int] = {"verified": 3, "pending": 2, "unverified": 1}

# --- Featured placement ---

FEATURED_MAX = 5
FEATURED_POSITIONS: Tuple[int, ...] = (1, 3, 6, 10, 15)
PAID_PLANS: Tuple[str, ...] = ("pro", "premium")

# --- Match quiz ---

MATCH_TOP_N = 3
MATCH_BASE_SCORE = 50

# --- Lead scoring ---

LEAD_BASE_SCORE = 50
LEAD_QUIZ_SOURCE_MARKER = "/match"
LEAD_PAGE_SOURCE_MARKER = "/fl/"

# --- Rate limiting (calling HTTP layer) ---

RATE_LIMIT_WINDOW_SECONDS = 60.0
RATE_LIMIT_MAX_REQUESTS = 10

# --- Outputs ---

OUTPUT_DIR = "out"


def city_center(city_slug: str) -> Optional[Tuple[float, float]]:
    city = CITIES.get(city_slug)
    if not city:
        return None
    return float(city["lat"]), float(city["lng"])


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return _REPO_ROOT / "ranking_config.json"


def load_ranking_config(path: Optional[str] = None) -> bool:
    """Load ranking configuration from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    config_path = Path(path) if path is not None else default_config_path()
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    globals_ref = globals()

    cities = data.get("cities")
    if cities:
        parsed: Dict[str, Dict[str, Any]] = {}
        for slug, city in cities.items():
            if "lat" not in city or "lng" not in city:
                raise ValueError(f"City {slug!r} is missing lat/lng in {config_path}")
            parsed[slug] = {
                "name": city.get("name", slug),
                "lat": float(city["lat"]),
                "lng": float(city["lng"]),
            }
        globals_ref["CITIES"] = parsed

    services = data.get("snapshot_services")
    if services:
        globals_ref["SNAPSHOT_SERVICES"] = [str(s) for s in services]

    featured = data.get("featured", {})
    if "max_featured" in featured:
        globals_ref["FEATURED_MAX"] = int(featured["max_featured"])
    if "positions" in featured:
        globals_ref["FEATURED_POSITIONS"] = tuple(int(p) for p in featured["positions"])

    scoring = data.get("scoring", {})
    weights = {
        "completeness_weight": "COMPLETENESS_WEIGHT",
        "verified_bonus": "VERIFIED_BONUS",
        "service_match_bonus": "SERVICE_MATCH_BONUS",
        "insurance_match_bonus": "INSURANCE_MATCH_BONUS",
        "availability_match_bonus": "AVAILABILITY_MATCH_BONUS",
        "distance_max_bonus": "DISTANCE_MAX_BONUS",
        "recency_max_bonus": "RECENCY_MAX_BONUS",
    }
    for key, name in weights.items():
        if key in scoring:
            globals_ref[name] = float(scoring[key])
    if "recency_window_days" in scoring:
        globals_ref["RECENCY_WINDOW_DAYS"] = int(scoring["recency_window_days"])

    match = data.get("match", {})
    if "top_n" in match:
        globals_ref["MATCH_TOP_N"] = int(match["top_n"])

    rate_limit = data.get("rate_limit", {})
    if "window_seconds" in rate_limit:
        globals_ref["RATE_LIMIT_WINDOW_SECONDS"] = float(rate_limit["window_seconds"])
    if "max_requests" in rate_limit:
        globals_ref["RATE_LIMIT_MAX_REQUESTS"] = int(rate_limit["max_requests"])

    return True
