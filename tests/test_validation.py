import pytest

import run
from localrank.geo import Coordinates
from localrank.match_quiz import AnxietyLevel, BudgetSensitivity, PatientAge, Urgency
from localrank.validation import (
    ValidationError,
    parse_lead_input,
    parse_quiz_answers,
    parse_search_query,
    parse_subscription,
    validate_city_slug,
    validate_service_slug,
)


def test_validate_cities_rejects_zero_coords():
    cities = {
        "bad": {"name": "Bad City", "lat": 0.0, "lng": -80.5},
    }
    with pytest.raises(ValueError):
        run.validate_cities(cities)


def test_slug_validators():
    assert validate_city_slug("palm-bay")
    assert not validate_city_slug("atlantis")
    assert not validate_city_slug(None)
    assert validate_service_slug("emergency-dentist")
    assert not validate_service_slug("teeth-whitening")


def test_search_query_flags_require_explicit_true():
    query = parse_search_query(
        {"verified": "true", "sameWeek": "TRUE", "weekend": "1", "emergency_today": True}
    )
    assert query.verified_only is True
    assert query.same_week is True
    assert query.weekend is False
    assert query.emergency_today is True
    assert query.accepting_new_patients is False


def test_search_query_origin_defaults_to_city_center():
    query = parse_search_query({"radius": "10"}, city="palm-bay")
    assert query.origin == Coordinates(28.0345, -80.5887)
    assert query.radius_miles == 10.0


def test_search_query_explicit_origin_overrides_city():
    query = parse_search_query({"lat": "28.1", "lng": "-80.6", "q": " smile "}, city="palm-bay")
    assert query.origin == Coordinates(28.1, -80.6)
    assert query.text == "smile"


@pytest.mark.parametrize(
    "params,field",
    [
        ({"service": "teeth-whitening"}, "service"),
        ({"lat": "28.1"}, "origin"),
        ({"lat": "nan", "lng": "-80.6"}, "origin"),
        ({"radius": "0"}, "radius"),
        ({"radius": "-5"}, "radius"),
        ({"radius": "inf"}, "radius"),
        ({"radius": "far"}, "radius"),
    ],
)
def test_search_query_rejects_bad_params(params, field):
    with pytest.raises(ValidationError) as excinfo:
        parse_search_query(params)
    assert field in excinfo.value.errors


def test_search_query_rejects_unknown_city():
    with pytest.raises(ValidationError) as excinfo:
        parse_search_query({}, city="atlantis")
    assert "city" in excinfo.value.errors


def test_quiz_answers_parse():
    answers = parse_quiz_answers(
        {
            "city": "melbourne",
            "urgency": "same-week",
            "adult_or_child": "both",
            "anxiety_level": "moderate",
            "weekend_need": "false",
            "insurance": " Aetna ",
            "budget_sensitivity": "very-important",
        }
    )
    assert answers.urgency is Urgency.SAME_WEEK
    assert answers.adult_or_child is PatientAge.BOTH
    assert answers.anxiety_level is AnxietyLevel.MODERATE
    assert answers.weekend_need is False
    assert answers.insurance == "Aetna"
    assert answers.language is None
    assert answers.budget_sensitivity is BudgetSensitivity.VERY_IMPORTANT


def test_quiz_answers_collect_every_error():
    with pytest.raises(ValidationError) as excinfo:
        parse_quiz_answers({"city": "atlantis", "urgency": "yesterday", "weekend_need": "maybe"})
    assert set(excinfo.value.errors) == {
        "city",
        "urgency",
        "adult_or_child",
        "anxiety_level",
        "weekend_need",
    }
    assert isinstance(excinfo.value, ValueError)


def test_lead_input_from_raw_form():
    lead = parse_lead_input(
        {
            "urgency": "emergency",
            "message": "  Cracked a molar last night.  ",
            "phone": "321-555-0100",
            "city_match": "true",
            "source_url": "/match",
        }
    )
    assert lead.message_length == len("Cracked a molar last night.")
    assert lead.has_phone is True
    assert lead.city_match is True
    assert lead.insurance is None


def test_lead_input_precomputed_fields():
    lead = parse_lead_input({"message_length": "75", "has_phone": False})
    assert lead.message_length == 75
    assert lead.has_phone is False
    assert lead.city_match is None


@pytest.mark.parametrize(
    "payload,field",
    [
        ({"message_length": "lots"}, "message_length"),
        ({"message_length": -1}, "message_length"),
        ({"has_phone": "sometimes"}, "has_phone"),
        ({"city_match": 3}, "city_match"),
    ],
)
def test_lead_input_rejects_bad_fields(payload, field):
    with pytest.raises(ValidationError) as excinfo:
        parse_lead_input(payload)
    assert field in excinfo.value.errors


def test_subscription_parse():
    assert parse_subscription(None) is None
    assert parse_subscription({}) is None
    sub = parse_subscription({"plan": "Premium", "status": "ACTIVE"})
    assert (sub.plan, sub.status) == ("premium", "active")
    with pytest.raises(ValidationError):
        parse_subscription({"plan": "pro"})
