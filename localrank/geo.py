"""Geospatial helpers."""
from __future__ import annotations

import math
from typing import Any, NamedTuple, Optional

EARTH_RADIUS_MILES = 3958.8


class Coordinates(NamedTuple):
    lat: float
    lng: float


def haversine_miles(a: Coordinates, b: Coordinates) -> float:
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlambda = math.radians(b.lng - a.lng)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_MILES * c


def parse_coordinate(value: Any) -> Optional[float]:
    """Parse one coordinate component; blank, non-numeric and non-finite values give None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def parse_coordinates(lat: Any, lng: Any) -> Optional[Coordinates]:
    parsed_lat = parse_coordinate(lat)
    parsed_lng = parse_coordinate(lng)
    if parsed_lat is None or parsed_lng is None:
        return None
    return Coordinates(parsed_lat, parsed_lng)


def within_radius(origin: Coordinates, point: Coordinates, radius_miles: float) -> bool:
    return haversine_miles(origin, point) <= radius_miles
