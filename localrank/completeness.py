"""Profile completeness scoring (0-100)."""
from __future__ import annotations

from .listings import Listing

MAX_COMPLETENESS = 100


def score_completeness(listing: Listing) -> int:
    score = 0

    # Basic info
    if listing.name:
        score += 10
    if listing.address:
        score += 10
    if listing.phone:
        score += 10

    # Enhanced info
    if listing.website:
        score += 10
    if listing.hours:
        score += 15
    if not listing.services.is_empty():
        score += 15

    # Additional data
    if listing.insurances:
        score += 10
    if listing.languages:
        score += 10
    if listing.is_verified:
        score += 10

    return min(score, MAX_COMPLETENESS)
