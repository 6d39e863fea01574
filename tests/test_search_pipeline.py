from datetime import datetime, timezone

from localrank import config
from localrank.entitlements import Subscription
from localrank.geo import Coordinates
from localrank.listings import (
    AcceptingNewPatients,
    AvailabilityFlags,
    FeaturedPlacementConfig,
    Listing,
    SearchQuery,
    ServiceFlags,
    VerificationTier,
)
from localrank.ranking import (
    compute_rank_snapshots,
    filter_listings,
    rank_search,
    select_featured,
    week_start,
)

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)  # a Thursday
PALM_BAY = Coordinates(28.0345, -80.5887)


def _listing(listing_id, **overrides):
    data = {
        "id": listing_id,
        "name": f"Dentist {listing_id}",
        "city_slug": "palm-bay",
        "completeness_score": 50,
    }
    data.update(overrides)
    return Listing(**data)


def _ids(listings):
    return [d.id for d in listings]


def test_filter_without_query_keeps_everything():
    listings = [_listing("a"), _listing("b")]
    assert _ids(filter_listings(listings, None)) == ["a", "b"]


def test_filter_verified_only_and_text():
    listings = [
        _listing("a", name="Bright Smiles", verified_status=VerificationTier.VERIFIED),
        _listing("b", name="Bright Teeth"),
        _listing("c", name="Other", verified_status=VerificationTier.VERIFIED),
    ]
    assert _ids(filter_listings(listings, SearchQuery(verified_only=True))) == ["a", "c"]
    assert _ids(filter_listings(listings, SearchQuery(text="bright"))) == ["a", "b"]


def test_filter_service_uses_mapped_flag_only():
    listings = [
        _listing("kids", services=ServiceFlags(pediatric=True)),
        _listing("adults", services=ServiceFlags(pediatric=False)),
    ]
    assert _ids(filter_listings(listings, SearchQuery(service="pediatric-dentist"))) == ["kids"]
    # Unmapped services do not filter.
    assert _ids(filter_listings(listings, SearchQuery(service="teeth-cleaning"))) == ["kids", "adults"]


def test_filter_insurance_and_availability():
    listings = [
        _listing(
            "open",
            insurances=[" Aetna "],
            accepting_new_patients=AcceptingNewPatients.YES,
            availability=AvailabilityFlags(same_week=True, weekend=True, emergency_today=True),
        ),
        _listing("closed", insurances=["Aetna"], accepting_new_patients=AcceptingNewPatients.NO),
        _listing("unknown", insurances=["Cigna"]),
    ]
    assert _ids(filter_listings(listings, SearchQuery(insurance="aetna"))) == ["open", "closed"]
    assert _ids(filter_listings(listings, SearchQuery(accepting_new_patients=True))) == ["open"]
    assert _ids(filter_listings(listings, SearchQuery(same_week=True))) == ["open"]
    assert _ids(filter_listings(listings, SearchQuery(weekend=True))) == ["open"]
    assert _ids(filter_listings(listings, SearchQuery(emergency_today=True))) == ["open"]


def test_filter_radius_drops_far_and_unlocated_listings():
    listings = [
        _listing("near", lat="28.0836", lng="-80.6081"),
        _listing("far", lat="25.7617", lng="-80.1918"),
        _listing("nowhere"),
    ]
    query = SearchQuery(origin=PALM_BAY, radius_miles=10)
    assert _ids(filter_listings(listings, query)) == ["near"]


def test_rank_search_merges_featured_into_filtered_ranking():
    listings = [
        _listing("a", completeness_score=90, verified_status=VerificationTier.VERIFIED),
        _listing("b", completeness_score=70),
        _listing("c", completeness_score=30),
        _listing("x", completeness_score=10, verified_status=VerificationTier.PENDING),
    ]
    featured = [_listing("paid", completeness_score=5)]
    result = rank_search(
        listings,
        query=SearchQuery(),
        featured=featured,
        placement=FeaturedPlacementConfig(max_featured=1, positions=(2,)),
        now=NOW,
    )

    assert [(p.listing.id, p.is_sponsored) for p in result.placements] == [
        ("a", False),
        ("paid", True),
        ("b", False),
        ("c", False),
        ("x", False),
    ]
    assert result.candidates_count == 4
    assert result.filtered_count == 4
    assert result.sponsored_count == 1
    assert result.organic_count == 4
    assert result.placements[0].organic_score is not None
    assert result.placements[1].organic_score is None


def test_rank_search_can_skip_filters():
    listings = [_listing("a", verified_status=VerificationTier.VERIFIED), _listing("b")]
    query = SearchQuery(verified_only=True)
    assert len(rank_search(listings, query=query, now=NOW).placements) == 1
    assert len(rank_search(listings, query=query, now=NOW, apply_filters=False).placements) == 2


def test_rank_search_defaults_to_configured_placement(monkeypatch):
    monkeypatch.setattr(config, "FEATURED_MAX", 1)
    monkeypatch.setattr(config, "FEATURED_POSITIONS", (1,))
    result = rank_search([_listing("a")], featured=[_listing("p1"), _listing("p2")], now=NOW)
    assert [(p.listing.id, p.is_sponsored) for p in result.placements] == [("p1", True), ("a", False)]


def test_select_featured_requires_active_paid_plan():
    listings = [_listing("pro"), _listing("premium"), _listing("lapsed"), _listing("free"), _listing("none")]
    subscriptions = {
        "pro": Subscription(plan="pro", status="active"),
        "premium": Subscription(plan="premium", status="active"),
        "lapsed": Subscription(plan="premium", status="past_due"),
        "free": Subscription(plan="free", status="active"),
    }
    assert _ids(select_featured(listings, subscriptions)) == ["pro", "premium"]


def test_week_start_is_previous_sunday_midnight_utc():
    assert week_start(NOW) == datetime(2026, 1, 11, tzinfo=timezone.utc)
    sunday = datetime(2026, 1, 11, 23, 59, tzinfo=timezone.utc)
    assert week_start(sunday) == datetime(2026, 1, 11, tzinfo=timezone.utc)


def test_rank_snapshots_per_city_and_service():
    listings = [
        _listing("a", completeness_score=80),
        _listing("b", completeness_score=60, services=ServiceFlags(emergency=True)),
        _listing("m", city_slug="melbourne"),
        _listing("elsewhere", city_slug="orlando"),
    ]
    snapshots = compute_rank_snapshots(
        listings,
        cities=["palm-bay", "melbourne"],
        services=["emergency-dentist", "teeth-cleaning"],
        now=NOW,
    )

    hub = [(s.listing_id, s.rank_position, s.total_listings) for s in snapshots
           if s.city_slug == "palm-bay" and s.service_slug is None]
    assert hub == [("a", 1, 2), ("b", 2, 2)]

    emergency = [(s.listing_id, s.rank_position) for s in snapshots
                 if s.city_slug == "palm-bay" and s.service_slug == "emergency-dentist"]
    assert emergency == [("b", 1)]

    cleaning = [s.listing_id for s in snapshots
                if s.city_slug == "palm-bay" and s.service_slug == "teeth-cleaning"]
    assert cleaning == ["a", "b"]

    assert {s.city_slug for s in snapshots} == {"palm-bay", "melbourne"}
    assert all(s.week_start == datetime(2026, 1, 11, tzinfo=timezone.utc) for s in snapshots)
    assert not any(s.listing_id == "elsewhere" for s in snapshots)
