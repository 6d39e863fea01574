from localrank.completeness import score_completeness
from localrank.listings import Listing, ServiceFlags, VerificationTier


def _listing(**overrides):
    data = {"id": "1", "name": ""}
    data.update(overrides)
    return Listing(**data)


def _full_listing():
    return _listing(
        name="Dr. Smith",
        address="123 Main St",
        phone="555-1234",
        website="https://example.com",
        hours={"monday": {"open": "9:00", "close": "17:00"}},
        services=ServiceFlags(emergency=True, pediatric=True),
        insurances=["Aetna", "Blue Cross"],
        languages=["English", "Spanish"],
        verified_status=VerificationTier.VERIFIED,
    )


def test_empty_listing_scores_zero():
    assert score_completeness(_listing()) == 0


def test_basic_info():
    listing = _listing(name="Dr. Smith", address="123 Main St", phone="555-1234")
    assert score_completeness(listing) == 30


def test_verified_status_only():
    assert score_completeness(_listing(verified_status=VerificationTier.VERIFIED)) == 10


def test_pending_does_not_count_as_verified():
    assert score_completeness(_listing(verified_status=VerificationTier.PENDING)) == 0


def test_recorded_service_flags_count_even_when_false():
    assert score_completeness(_listing(services=ServiceFlags(emergency=False))) == 15
    assert score_completeness(_listing(services=ServiceFlags())) == 0


def test_full_profile_reaches_exactly_100():
    assert score_completeness(_full_listing()) == 100


def test_each_field_contributes_once_regardless_of_richness():
    one = _listing(insurances=["Aetna"], languages=["English"])
    many = _listing(insurances=["Aetna", "Cigna", "Delta"], languages=["English", "Spanish", "French"])
    assert score_completeness(one) == score_completeness(many) == 20


def test_score_is_always_within_bounds():
    variants = [
        _listing(),
        _full_listing(),
        _listing(name="x", hours={"tue": {}}),
        _listing(website="w", services=ServiceFlags(invisalign=True)),
    ]
    for listing in variants:
        assert 0 <= score_completeness(listing) <= 100
