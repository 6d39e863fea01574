"""Listing records and search inputs, plus parsing from raw snapshot dicts."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from . import config
from .geo import Coordinates, parse_coordinates


class VerificationTier(str, Enum):
    UNVERIFIED = "unverified"
    PENDING = "pending"
    VERIFIED = "verified"

    @property
    def rank(self) -> int:
        return config.TIER_RANK.get(self.value, 0)


class AcceptingNewPatients(str, Enum):
    YES = "yes"
    NO = "no"
    UNSPECIFIED = "unspecified"

    @classmethod
    def from_raw(cls, value: Any) -> "AcceptingNewPatients":
        if value is None:
            return cls.UNSPECIFIED
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.YES if value else cls.NO
        text = str(value).strip().lower()
        if text in ("yes", "true"):
            return cls.YES
        if text in ("no", "false"):
            return cls.NO
        return cls.UNSPECIFIED


@dataclass(frozen=True)
class ServiceFlags:
    """Service capabilities. None means the flag was never recorded."""

    emergency: Optional[bool] = None
    pediatric: Optional[bool] = None
    invisalign: Optional[bool] = None

    def has(self, name: str) -> bool:
        return getattr(self, name, None) is True

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass(frozen=True)
class AvailabilityFlags:
    same_week: bool = False
    emergency_today: bool = False
    weekend: bool = False


@dataclass(frozen=True)
class Badges:
    anxiety_friendly: bool = False
    pediatric_friendly: bool = False


@dataclass
class Listing:
    id: str
    name: str
    city_slug: str = ""
    slug: str = ""
    verified_status: VerificationTier = VerificationTier.UNVERIFIED
    completeness_score: int = 0
    services: ServiceFlags = field(default_factory=ServiceFlags)
    availability: AvailabilityFlags = field(default_factory=AvailabilityFlags)
    badges: Badges = field(default_factory=Badges)
    accepting_new_patients: AcceptingNewPatients = AcceptingNewPatients.UNSPECIFIED
    insurances: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    lat: Any = None
    lng: Any = None
    updated_at: Optional[datetime] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    hours: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0 <= self.completeness_score <= 100:
            raise ValueError(
                f"completeness_score must be within [0, 100], got {self.completeness_score} for {self.id}"
            )

    @property
    def coordinates(self) -> Optional[Coordinates]:
        return parse_coordinates(self.lat, self.lng)

    @property
    def is_verified(self) -> bool:
        return self.verified_status is VerificationTier.VERIFIED


@dataclass(frozen=True)
class SearchQuery:
    service: Optional[str] = None
    verified_only: bool = False
    insurance: Optional[str] = None
    accepting_new_patients: bool = False
    same_week: bool = False
    emergency_today: bool = False
    weekend: bool = False
    origin: Optional[Coordinates] = None
    radius_miles: Optional[float] = None
    text: Optional[str] = None


@dataclass
class ScoredListing:
    listing: Listing
    organic_score: float


@dataclass
class Placement:
    listing: Listing
    is_sponsored: bool = False
    organic_score: Optional[float] = None


@dataclass(frozen=True)
class FeaturedPlacementConfig:
    max_featured: int
    positions: Tuple[int, ...]

    @classmethod
    def from_config(cls) -> "FeaturedPlacementConfig":
        return cls(max_featured=config.FEATURED_MAX, positions=tuple(config.FEATURED_POSITIONS))

    def quota(self) -> int:
        return max(0, int(self.max_featured))

    def normalized_positions(self) -> Tuple[int, ...]:
        return tuple(sorted({int(p) for p in self.positions if int(p) >= 1}))


# Parsing

def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_flags(cls: type, raw: Any) -> Any:
    if not raw:
        return cls()
    if isinstance(raw, cls):
        return raw
    known = {f.name for f in fields(cls)}
    kwargs = {k: bool(v) if v is not None else None for k, v in dict(raw).items() if k in known}
    if cls is not ServiceFlags:
        kwargs = {k: bool(v) for k, v in kwargs.items()}
    return cls(**kwargs)


def _string_list(raw: Any) -> List[str]:
    if not raw:
        return []
    if isinstance(raw, str):
        return [raw]
    return [str(item) for item in raw if item is not None]


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def parse_listing(raw: Mapping[str, Any]) -> Listing:
    listing_id = _first(raw, "id", "listing_id")
    if listing_id is None:
        raise ValueError("Listing is missing an id")
    status = _first(raw, "verified_status", "verification") or VerificationTier.UNVERIFIED.value
    try:
        tier = VerificationTier(str(status).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unknown verification tier {status!r} for listing {listing_id}") from exc
    return Listing(
        id=str(listing_id),
        name=str(raw.get("name") or ""),
        city_slug=str(raw.get("city_slug") or ""),
        slug=str(raw.get("slug") or ""),
        verified_status=tier,
        completeness_score=int(raw.get("completeness_score") or 0),
        services=_parse_flags(ServiceFlags, _first(raw, "services", "services_flags")),
        availability=_parse_flags(AvailabilityFlags, _first(raw, "availability", "availability_flags")),
        badges=_parse_flags(Badges, raw.get("badges")),
        accepting_new_patients=AcceptingNewPatients.from_raw(raw.get("accepting_new_patients")),
        insurances=_string_list(raw.get("insurances")),
        languages=_string_list(raw.get("languages")),
        lat=raw.get("lat"),
        lng=raw.get("lng"),
        updated_at=_parse_timestamp(raw.get("updated_at")),
        address=raw.get("address") or None,
        phone=raw.get("phone") or None,
        website=raw.get("website") or None,
        hours=dict(raw.get("hours") or {}),
    )


def parse_listings(rows: Iterable[Mapping[str, Any]]) -> List[Listing]:
    return [parse_listing(row) for row in rows]


def listing_to_row(listing: Listing) -> Dict[str, Any]:
    return {
        "id": listing.id,
        "name": listing.name,
        "slug": listing.slug,
        "city_slug": listing.city_slug,
        "verified_status": listing.verified_status.value,
        "completeness_score": listing.completeness_score,
        "accepting_new_patients": listing.accepting_new_patients.value,
        "address": listing.address,
        "phone": listing.phone,
    }
