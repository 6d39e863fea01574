"""Organic ranking, deterministic ordering and featured placement."""
from __future__ import annotations

import logging
import math
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from . import config
from .entitlements import Subscription, has_paid_placement
from .geo import haversine_miles, within_radius
from .listings import (
    AcceptingNewPatients,
    FeaturedPlacementConfig,
    Listing,
    Placement,
    ScoredListing,
    SearchQuery,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def service_flag_for(service: Optional[str]) -> Optional[str]:
    if not service:
        return None
    return config.SERVICE_FLAG_MAP.get(service)


def days_since_update(listing: Listing, now: datetime) -> Optional[int]:
    if listing.updated_at is None:
        return None
    updated = listing.updated_at
    if updated.tzinfo is None:
        updated = updated.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    elapsed = (now - updated).total_seconds()
    # Future timestamps count as updated today.
    return max(0, math.floor(elapsed / SECONDS_PER_DAY))


def recency_bonus(listing: Listing, now: datetime) -> float:
    days = days_since_update(listing, now)
    if days is None or days >= config.RECENCY_WINDOW_DAYS:
        return 0.0
    return max(0.0, float(config.RECENCY_MAX_BONUS) - days / float(config.RECENCY_DAYS_PER_POINT))


def _normalize_plan(plan: str) -> str:
    return plan.strip().casefold()


def accepts_insurance(listing: Listing, insurance: Optional[str]) -> bool:
    if not insurance or not insurance.strip():
        return False
    wanted = _normalize_plan(insurance)
    return any(plan and _normalize_plan(plan) == wanted for plan in listing.insurances)


def distance_bonus(listing: Listing, query: SearchQuery) -> float:
    radius = query.radius_miles
    if query.origin is None or not radius or radius <= 0:
        return 0.0
    coords = listing.coordinates
    if coords is None:
        return 0.0
    clamped = min(haversine_miles(query.origin, coords), radius)
    return max(0.0, (1 - clamped / radius) * float(config.DISTANCE_MAX_BONUS))


def score_organic(
    listing: Listing,
    query: Optional[SearchQuery] = None,
    now: Optional[datetime] = None,
) -> float:
    """Relevance of one listing for a query. Unbounded; only used for relative order.

    Payment and subscription state never feed into this score.
    """
    if now is None:
        now = utc_now()
    score = listing.completeness_score * float(config.COMPLETENESS_WEIGHT)

    if listing.is_verified:
        score += float(config.VERIFIED_BONUS)

    score += recency_bonus(listing, now)

    if query is None:
        return score

    flag = service_flag_for(query.service)
    if flag and listing.services.has(flag):
        score += float(config.SERVICE_MATCH_BONUS)

    if accepts_insurance(listing, query.insurance):
        score += float(config.INSURANCE_MATCH_BONUS)

    availability = listing.availability
    matches = [
        query.accepting_new_patients
        and listing.accepting_new_patients is AcceptingNewPatients.YES,
        query.same_week and availability.same_week,
        query.emergency_today and availability.emergency_today,
        query.weekend and availability.weekend,
    ]
    score += float(config.AVAILABILITY_MATCH_BONUS) * sum(1 for m in matches if m)

    score += distance_bonus(listing, query)
    return score


def score_listings(
    listings: Iterable[Listing],
    query: Optional[SearchQuery] = None,
    now: Optional[datetime] = None,
) -> List[ScoredListing]:
    if now is None:
        now = utc_now()
    return [ScoredListing(listing, score_organic(listing, query, now)) for listing in listings]


# Ordering

def name_sort_key(name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", name or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def tiebreak_key(listing: Listing) -> Tuple[int, int, str, str, str]:
    return (
        -listing.verified_status.rank,
        -int(listing.completeness_score),
        name_sort_key(listing.name),
        listing.name or "",
        listing.id,
    )


def ranking_sort_key(scored: ScoredListing) -> Tuple[float, Tuple[int, int, str, str, str]]:
    return (-float(scored.organic_score), tiebreak_key(scored.listing))


def sort_scored(scored: Iterable[ScoredListing]) -> List[ScoredListing]:
    return sorted(scored, key=ranking_sort_key)


def sort_listings(
    listings: Iterable[Listing],
    query: Optional[SearchQuery] = None,
    now: Optional[datetime] = None,
) -> List[Listing]:
    return [s.listing for s in sort_scored(score_listings(listings, query, now))]


# Filters

def filter_listings(listings: Iterable[Listing], query: Optional[SearchQuery]) -> List[Listing]:
    """Apply the search page filters; ranking bonuses are computed separately."""
    items = list(listings)
    if query is None:
        return items

    if query.verified_only:
        items = [d for d in items if d.is_verified]
    if query.text and query.text.strip():
        needle = query.text.strip().casefold()
        items = [d for d in items if needle in (d.name or "").casefold()]
    flag = service_flag_for(query.service)
    if flag:
        items = [d for d in items if d.services.has(flag)]
    if query.insurance and query.insurance.strip():
        items = [d for d in items if accepts_insurance(d, query.insurance)]
    if query.accepting_new_patients:
        items = [d for d in items if d.accepting_new_patients is AcceptingNewPatients.YES]
    if query.same_week:
        items = [d for d in items if d.availability.same_week]
    if query.weekend:
        items = [d for d in items if d.availability.weekend]
    if query.emergency_today:
        items = [d for d in items if d.availability.emergency_today]
    if query.origin is not None and query.radius_miles and query.radius_miles > 0:
        kept = []
        for d in items:
            coords = d.coordinates
            if coords is not None and within_radius(query.origin, coords, query.radius_miles):
                kept.append(d)
        items = kept
    return items


# Featured placement

OrganicEntry = Union[Listing, ScoredListing]


def _unwrap(entry: OrganicEntry) -> Tuple[Listing, Optional[float]]:
    if isinstance(entry, ScoredListing):
        return entry.listing, entry.organic_score
    return entry, None


def _sponsored_candidates(featured: Sequence[Listing], quota: int) -> List[Listing]:
    chosen: List[Listing] = []
    seen: Set[str] = set()
    for listing in featured:
        if len(chosen) >= quota:
            break
        if listing.id in seen:
            continue
        seen.add(listing.id)
        chosen.append(listing)
    return chosen


def inject_featured(
    sorted_organic: Sequence[OrganicEntry],
    featured: Sequence[Listing],
    placement: FeaturedPlacementConfig,
) -> List[Placement]:
    """Merge paid placements into the organic order at the configured 1-indexed slots.

    The first ``max_featured`` distinct featured listings are sponsored; each one
    appears only at its sponsored slot, never organically. Featured listings past
    the quota keep their organic rank. ``position`` counts emitted slots, so a
    skipped duplicate never consumes a configured position.
    """
    positions = set(placement.normalized_positions())
    sponsored = _sponsored_candidates(featured, placement.quota())
    sponsored_set = {d.id for d in sponsored}
    result: List[Placement] = []
    placed: Set[str] = set()
    organic_index = 0
    featured_index = 0
    position = 1

    while True:
        organic_left = organic_index < len(sorted_organic)
        featured_left = featured_index < len(sponsored)
        if not organic_left and not featured_left:
            break

        if featured_left and (position in positions or not organic_left):
            candidate = sponsored[featured_index]
            featured_index += 1
            result.append(Placement(candidate, is_sponsored=True))
            placed.add(candidate.id)
            position += 1
            continue

        listing, score = _unwrap(sorted_organic[organic_index])
        organic_index += 1
        if listing.id in placed or listing.id in sponsored_set:
            continue
        result.append(Placement(listing, is_sponsored=False, organic_score=score))
        placed.add(listing.id)
        position += 1

    logger.debug(
        "Featured merge: organic=%s featured=%s sponsored=%s output=%s",
        len(sorted_organic),
        len(featured),
        len(sponsored),
        len(result),
    )
    return result


def select_featured(
    listings: Iterable[Listing], subscriptions: Mapping[str, Optional[Subscription]]
) -> List[Listing]:
    return [d for d in listings if has_paid_placement(subscriptions.get(d.id))]


# Search pipeline

@dataclass
class SearchResult:
    placements: List[Placement]
    candidates_count: int
    filtered_count: int
    sponsored_count: int

    @property
    def organic_count(self) -> int:
        return len(self.placements) - self.sponsored_count


def rank_search(
    listings: Iterable[Listing],
    query: Optional[SearchQuery] = None,
    featured: Sequence[Listing] = (),
    placement: Optional[FeaturedPlacementConfig] = None,
    now: Optional[datetime] = None,
    apply_filters: bool = True,
) -> SearchResult:
    if now is None:
        now = utc_now()
    if placement is None:
        placement = FeaturedPlacementConfig.from_config()
    candidates = list(listings)

    logger.info("Stage 1: filters (%s candidates)", len(candidates))
    filtered = filter_listings(candidates, query) if apply_filters else candidates

    logger.info("Stage 2: organic scoring (%s listings)", len(filtered))
    ranked = sort_scored(score_listings(filtered, query, now))

    logger.info("Stage 3: featured placement (%s candidates)", len(featured))
    placements = inject_featured(ranked, featured, placement)

    sponsored = sum(1 for p in placements if p.is_sponsored)
    return SearchResult(
        placements=placements,
        candidates_count=len(candidates),
        filtered_count=len(filtered),
        sponsored_count=sponsored,
    )


# Rank snapshots

@dataclass(frozen=True)
class RankSnapshot:
    listing_id: str
    city_slug: str
    service_slug: Optional[str]
    rank_position: int
    total_listings: int
    week_start: datetime


def week_start(now: datetime) -> datetime:
    """Sunday 00:00 UTC of the week containing ``now``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    days_back = (now.weekday() + 1) % 7
    start = now - timedelta(days=days_back)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def _snapshot_rows(
    ranked: Sequence[Listing], city_slug: str, service_slug: Optional[str], start: datetime
) -> List[RankSnapshot]:
    total = len(ranked)
    return [
        RankSnapshot(
            listing_id=d.id,
            city_slug=city_slug,
            service_slug=service_slug,
            rank_position=i + 1,
            total_listings=total,
            week_start=start,
        )
        for i, d in enumerate(ranked)
    ]


def compute_rank_snapshots(
    listings: Iterable[Listing],
    cities: Optional[Iterable[str]] = None,
    services: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> List[RankSnapshot]:
    """Organic rank positions per city hub and per city/service page.

    ``week_start`` on every row lets the caller persist at most one snapshot
    per listing, city, service and week.
    """
    if now is None:
        now = utc_now()
    city_list = list(cities) if cities is not None else list(config.CITIES)
    service_list = list(services) if services is not None else list(config.SNAPSHOT_SERVICES)
    start = week_start(now)

    by_city: Dict[str, List[Listing]] = {city: [] for city in city_list}
    for listing in listings:
        if listing.city_slug in by_city:
            by_city[listing.city_slug].append(listing)

    snapshots: List[RankSnapshot] = []
    for city_slug in city_list:
        city_listings = by_city[city_slug]
        snapshots.extend(
            _snapshot_rows(sort_listings(city_listings, None, now), city_slug, None, start)
        )
        for service_slug in service_list:
            flag = service_flag_for(service_slug)
            if flag:
                pool = [d for d in city_listings if d.services.has(flag)]
            else:
                pool = list(city_listings)
            query = SearchQuery(service=service_slug)
            snapshots.extend(
                _snapshot_rows(sort_listings(pool, query, now), city_slug, service_slug, start)
            )
        logger.info("Rank snapshots: city=%s listings=%s", city_slug, len(city_listings))
    return snapshots
