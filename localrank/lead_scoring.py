"""Lead quality scoring.

Deterministic rules-based score (0-100) for an inbound patient inquiry. Reasons
are reported in the order the rules are evaluated.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from . import config
from .scoring import ReasonTally, ScoreResult


@dataclass(frozen=True)
class LeadScoringInput:
    urgency: Optional[str] = None
    insurance: Optional[str] = None
    message_length: int = 0
    has_phone: bool = False
    source_url: Optional[str] = None
    city_match: Optional[bool] = None
    time_preference: Optional[str] = None


def score_lead(lead: LeadScoringInput) -> ScoreResult:
    tally = ReasonTally(config.LEAD_BASE_SCORE)

    # Urgency
    if lead.urgency == "emergency":
        tally.add("urgency_emergency", "Emergency request", 20)
    elif lead.urgency == "same-week":
        tally.add("urgency_same_week", "Same-week appointment", 15)
    elif lead.urgency == "flexible":
        tally.add("urgency_flexible", "Flexible timing", 10)
    else:
        tally.add("urgency_routine", "Routine appointment", 5)

    if lead.insurance and lead.insurance.strip():
        tally.add("insurance_provided", "Insurance information provided", 15)

    # Message quality
    length = max(0, int(lead.message_length or 0))
    if length > 100:
        tally.add("message_detailed", "Detailed message", 15)
    elif length > 50:
        tally.add("message_moderate", "Moderate message detail", 10)
    elif length > 0:
        tally.add("message_brief", "Brief message", 5)

    if lead.has_phone:
        tally.add("phone_provided", "Phone number provided", 10)

    if lead.city_match:
        tally.add("city_match", "City match confirmed", 10)

    # Source quality
    source = lead.source_url or ""
    if config.LEAD_QUIZ_SOURCE_MARKER in source:
        tally.add("source_match_quiz", "From matching quiz", 10)
    elif config.LEAD_PAGE_SOURCE_MARKER in source:
        tally.add("source_directory_page", "From city/service page", 5)

    return tally.result()
