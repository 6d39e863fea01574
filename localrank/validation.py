"""Parse raw request payloads into typed engine inputs.

The engine trusts its inputs; everything a caller receives from the outside
world (query strings, quiz submissions, lead forms) goes through here first.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from . import config
from .entitlements import Subscription
from .geo import Coordinates, parse_coordinate
from .lead_scoring import LeadScoringInput
from .listings import SearchQuery
from .match_quiz import AnxietyLevel, BudgetSensitivity, PatientAge, QuizAnswers, Urgency

E = TypeVar("E", bound=Enum)

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


class ValidationError(ValueError):
    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = dict(errors)
        detail = "; ".join(f"{k}: {v}" for k, v in sorted(self.errors.items()))
        super().__init__(f"Invalid input ({detail})")


def validate_city_slug(slug: Optional[str]) -> bool:
    return bool(slug) and slug in config.CITIES


def validate_service_slug(slug: Optional[str]) -> bool:
    return bool(slug) and slug in config.SEARCHABLE_SERVICES


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _query_flag(value: Any) -> bool:
    # Query strings only switch a filter on with an explicit "true".
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() == "true"


def _strict_bool(value: Any, name: str, errors: Dict[str, str]) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    errors[name] = f"expected a boolean, got {value!r}"
    return False


def _enum(enum_cls: Type[E], value: Any, name: str, errors: Dict[str, str]) -> Optional[E]:
    if value is None:
        errors[name] = "is required"
        return None
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        errors[name] = f"must be one of: {allowed}"
        return None


def parse_search_query(params: Mapping[str, Any], city: Optional[str] = None) -> SearchQuery:
    """Build a SearchQuery from search-page parameters.

    The search origin defaults to the city center when ``city`` is known;
    explicit ``lat``/``lng`` parameters override it.
    """
    errors: Dict[str, str] = {}

    service = _optional_text(params.get("service"))
    if service is not None and not validate_service_slug(service):
        errors["service"] = f"unknown service {service!r}"

    origin: Optional[Coordinates] = None
    if city is not None:
        if not validate_city_slug(city):
            errors["city"] = f"unknown city {city!r}"
        else:
            center = config.city_center(city)
            if center is not None:
                origin = Coordinates(*center)

    raw_lat, raw_lng = params.get("lat"), params.get("lng")
    if raw_lat is not None or raw_lng is not None:
        lat = parse_coordinate(raw_lat)
        lng = parse_coordinate(raw_lng)
        if lat is None or lng is None:
            errors["origin"] = "lat and lng must both be finite numbers"
        else:
            origin = Coordinates(lat, lng)

    radius: Optional[float] = None
    raw_radius = params.get("radius")
    if raw_radius is not None and str(raw_radius).strip() != "":
        try:
            radius = float(raw_radius)
        except (TypeError, ValueError):
            errors["radius"] = f"not a number: {raw_radius!r}"
        else:
            if not math.isfinite(radius) or radius <= 0:
                errors["radius"] = "must be a positive, finite number of miles"
                radius = None

    if errors:
        raise ValidationError(errors)

    return SearchQuery(
        service=service,
        verified_only=_query_flag(params.get("verified")),
        insurance=_optional_text(params.get("insurance")),
        accepting_new_patients=_query_flag(_first(params, "acceptingNewPatients", "accepting_new_patients")),
        same_week=_query_flag(_first(params, "sameWeek", "same_week")),
        emergency_today=_query_flag(_first(params, "emergencyToday", "emergency_today")),
        weekend=_query_flag(params.get("weekend")),
        origin=origin,
        radius_miles=radius,
        text=_optional_text(params.get("q")),
    )


def parse_quiz_answers(payload: Mapping[str, Any]) -> QuizAnswers:
    errors: Dict[str, str] = {}

    city = _optional_text(payload.get("city"))
    if not validate_city_slug(city):
        errors["city"] = f"unknown city {city!r}"

    urgency = _enum(Urgency, payload.get("urgency"), "urgency", errors)
    age = _enum(PatientAge, payload.get("adult_or_child"), "adult_or_child", errors)
    anxiety = _enum(AnxietyLevel, payload.get("anxiety_level"), "anxiety_level", errors)

    weekend_raw = payload.get("weekend_need")
    if weekend_raw is None:
        errors["weekend_need"] = "is required"
        weekend = False
    else:
        weekend = _strict_bool(weekend_raw, "weekend_need", errors)

    budget: Optional[BudgetSensitivity] = None
    if payload.get("budget_sensitivity") is not None:
        budget = _enum(BudgetSensitivity, payload.get("budget_sensitivity"), "budget_sensitivity", errors)

    if errors:
        raise ValidationError(errors)

    return QuizAnswers(
        city=str(city),
        urgency=urgency,  # type: ignore[arg-type]
        adult_or_child=age,  # type: ignore[arg-type]
        anxiety_level=anxiety,  # type: ignore[arg-type]
        weekend_need=weekend,
        insurance=_optional_text(payload.get("insurance")),
        language=_optional_text(payload.get("language")),
        budget_sensitivity=budget,
    )


def parse_lead_input(payload: Mapping[str, Any]) -> LeadScoringInput:
    """Accepts either a raw ``message``/``phone`` form or precomputed fields."""
    errors: Dict[str, str] = {}

    message = payload.get("message")
    if message is not None:
        message_length = len(str(message).strip())
    else:
        raw_length = payload.get("message_length", 0)
        try:
            message_length = int(raw_length or 0)
        except (TypeError, ValueError):
            errors["message_length"] = f"not an integer: {raw_length!r}"
            message_length = 0
        if message_length < 0:
            errors["message_length"] = "must not be negative"

    if "has_phone" in payload and payload["has_phone"] is not None:
        has_phone = _strict_bool(payload["has_phone"], "has_phone", errors)
    else:
        has_phone = bool(_optional_text(payload.get("phone")))

    city_match: Optional[bool] = None
    if payload.get("city_match") is not None:
        city_match = _strict_bool(payload["city_match"], "city_match", errors)

    if errors:
        raise ValidationError(errors)

    return LeadScoringInput(
        urgency=_optional_text(payload.get("urgency")),
        insurance=_optional_text(payload.get("insurance")),
        message_length=message_length,
        has_phone=has_phone,
        source_url=_optional_text(payload.get("source_url")),
        city_match=city_match,
        time_preference=_optional_text(payload.get("time_preference")),
    )


def parse_subscription(payload: Optional[Mapping[str, Any]]) -> Optional[Subscription]:
    if not payload:
        return None
    errors: Dict[str, str] = {}
    plan = _optional_text(payload.get("plan"))
    status = _optional_text(payload.get("status"))
    if plan is None:
        errors["plan"] = "is required"
    if status is None:
        errors["status"] = "is required"
    if errors:
        raise ValidationError(errors)
    return Subscription(plan=str(plan).lower(), status=str(status).lower())
