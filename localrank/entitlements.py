"""Subscription entitlements and feature access."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Optional

from . import config

ACTIVE_STATUS = "active"


@dataclass(frozen=True)
class Subscription:
    plan: str
    status: str

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_STATUS


@dataclass(frozen=True)
class Entitlements:
    can_edit_availability: bool = False
    can_edit_pricing: bool = False
    can_view_lead_scoring: bool = False
    can_view_basic_analytics: bool = False
    can_view_advanced_analytics: bool = False
    can_export_csv: bool = False
    can_view_competitor_insights: bool = False
    can_view_feedback_insights: bool = False

    def as_dict(self) -> Dict[str, bool]:
        return asdict(self)


NO_ENTITLEMENTS = Entitlements()

PRO_ENTITLEMENTS = Entitlements(
    can_edit_availability=True,
    can_edit_pricing=True,
    can_view_lead_scoring=True,
    can_view_basic_analytics=True,
)

PREMIUM_ENTITLEMENTS = Entitlements(
    can_edit_availability=True,
    can_edit_pricing=True,
    can_view_lead_scoring=True,
    can_view_basic_analytics=True,
    can_view_advanced_analytics=True,
    can_export_csv=True,
    can_view_competitor_insights=True,
    can_view_feedback_insights=True,
)

_PLAN_ENTITLEMENTS: Dict[str, Entitlements] = {
    "pro": PRO_ENTITLEMENTS,
    "premium": PREMIUM_ENTITLEMENTS,
}


def get_entitlements(subscription: Optional[Subscription], is_claimed: bool) -> Entitlements:
    # Anything other than an active subscription on a claimed listing is the free tier.
    if not is_claimed or subscription is None or not subscription.is_active:
        return NO_ENTITLEMENTS
    return _PLAN_ENTITLEMENTS.get(subscription.plan, NO_ENTITLEMENTS)


def has_paid_placement(subscription: Optional[Subscription]) -> bool:
    if subscription is None or not subscription.is_active:
        return False
    return subscription.plan in config.PAID_PLANS
