"""Patient matching quiz.

Scores each listing in the requested city against the patient's answers and
returns the best few, each with the reasons that earned its points.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from . import config
from .listings import AcceptingNewPatients, Listing
from .ranking import tiebreak_key
from .scoring import Reason, ReasonTally


class Urgency(str, Enum):
    EMERGENCY = "emergency"
    SAME_WEEK = "same-week"
    FLEXIBLE = "flexible"
    ROUTINE = "routine"


class PatientAge(str, Enum):
    ADULT = "adult"
    CHILD = "child"
    BOTH = "both"


class AnxietyLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class BudgetSensitivity(str, Enum):
    NOT_IMPORTANT = "not-important"
    SOMEWHAT = "somewhat"
    VERY_IMPORTANT = "very-important"


@dataclass(frozen=True)
class QuizAnswers:
    city: str
    urgency: Urgency
    adult_or_child: PatientAge
    anxiety_level: AnxietyLevel
    weekend_need: bool
    insurance: Optional[str] = None
    language: Optional[str] = None
    budget_sensitivity: Optional[BudgetSensitivity] = None


@dataclass
class MatchResult:
    listing: Listing
    score: int
    reasons: List[Reason] = field(default_factory=list)


def _insurance_overlaps(plans: Iterable[str], insurance: str) -> bool:
    wanted = insurance.lower()
    for plan in plans:
        have = (plan or "").lower()
        if have and (wanted in have or have in wanted):
            return True
    return False


def _speaks(languages: Iterable[str], language: str) -> bool:
    wanted = language.lower()
    return any(wanted in (lang or "").lower() for lang in languages)


def score_match(listing: Listing, answers: QuizAnswers) -> MatchResult:
    tally = ReasonTally(config.MATCH_BASE_SCORE)

    if listing.city_slug == answers.city:
        tally.add("city_match", f"Located in {answers.city}", 10)

    if answers.urgency is Urgency.EMERGENCY:
        if listing.services.has("emergency"):
            tally.add("emergency_service", "Offers emergency dental services", 20)
        if listing.availability.emergency_today:
            tally.add("emergency_available", "Available for emergency appointments today", 15)
    elif answers.urgency is Urgency.SAME_WEEK:
        if listing.availability.same_week:
            tally.add("same_week_available", "Can schedule same-week appointments", 15)

    if answers.weekend_need and listing.availability.weekend:
        tally.add("weekend_available", "Available on weekends", 15)

    if answers.adult_or_child in (PatientAge.CHILD, PatientAge.BOTH):
        if listing.services.has("pediatric"):
            tally.add("pediatric_service", "Specializes in pediatric dentistry", 20)

    if answers.anxiety_level in (AnxietyLevel.MODERATE, AnxietyLevel.HIGH):
        if listing.badges.anxiety_friendly:
            tally.add("anxiety_friendly", "Anxiety-friendly practice", 15)

    if answers.insurance and _insurance_overlaps(listing.insurances, answers.insurance):
        tally.add("insurance_match", "Accepts your insurance", 15)

    if answers.language and _speaks(listing.languages, answers.language):
        tally.add("language_match", f"Speaks {answers.language}", 10)

    if listing.accepting_new_patients is AcceptingNewPatients.YES:
        tally.add("accepting_new", "Currently accepting new patients", 10)

    if listing.is_verified:
        tally.add("verified", "Verified practice", 5)

    result = tally.result(sort_by_weight=True)
    return MatchResult(listing=listing, score=result.score, reasons=result.reasons)


def match_listings(
    listings: Iterable[Listing],
    answers: QuizAnswers,
    top_n: Optional[int] = None,
) -> List[MatchResult]:
    if top_n is None:
        top_n = config.MATCH_TOP_N
    scored = [score_match(listing, answers) for listing in listings]
    # Equal scores fall back to the organic tie-break chain so ties never depend on input order.
    scored.sort(key=lambda m: (-m.score, tiebreak_key(m.listing)))
    return scored[: max(0, top_n)]
