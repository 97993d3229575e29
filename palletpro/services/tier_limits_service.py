from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal

from palletpro.models import SubscriptionTier

UNLIMITED = -1

TIER_ORDER: list[SubscriptionTier] = [
    SubscriptionTier.FREE,
    SubscriptionTier.STARTER,
    SubscriptionTier.PRO,
    SubscriptionTier.ENTERPRISE,
]

USAGE_WARNING_PERCENT = Decimal('75')


@dataclass(frozen=True)
class TierLimits:
    pallets: int
    items: int
    photos_per_item: int
    ai_descriptions_per_month: int
    analytics_retention_days: int
    csv_export: bool
    pdf_export: bool
    expense_tracking: bool
    mileage_tracking: bool
    mileage_saved_routes: bool
    bulk_import_export: bool
    priority_support: bool
    multi_user: bool


TIER_LIMITS: dict[SubscriptionTier, TierLimits] = {
    SubscriptionTier.FREE: TierLimits(
        pallets=1,
        items=20,
        photos_per_item=1,
        ai_descriptions_per_month=0,
        analytics_retention_days=30,
        csv_export=False,
        pdf_export=False,
        expense_tracking=False,
        mileage_tracking=False,
        mileage_saved_routes=False,
        bulk_import_export=False,
        priority_support=False,
        multi_user=False,
    ),
    SubscriptionTier.STARTER: TierLimits(
        pallets=25,
        items=500,
        photos_per_item=3,
        ai_descriptions_per_month=50,
        analytics_retention_days=UNLIMITED,
        csv_export=True,
        pdf_export=False,
        expense_tracking=True,
        mileage_tracking=True,
        mileage_saved_routes=False,
        bulk_import_export=False,
        priority_support=False,
        multi_user=False,
    ),
    SubscriptionTier.PRO: TierLimits(
        pallets=UNLIMITED,
        items=UNLIMITED,
        photos_per_item=10,
        ai_descriptions_per_month=200,
        analytics_retention_days=UNLIMITED,
        csv_export=True,
        pdf_export=True,
        expense_tracking=True,
        mileage_tracking=True,
        mileage_saved_routes=True,
        bulk_import_export=True,
        priority_support=True,
        multi_user=False,
    ),
    SubscriptionTier.ENTERPRISE: TierLimits(
        pallets=UNLIMITED,
        items=UNLIMITED,
        photos_per_item=UNLIMITED,
        ai_descriptions_per_month=UNLIMITED,
        analytics_retention_days=UNLIMITED,
        csv_export=True,
        pdf_export=True,
        expense_tracking=True,
        mileage_tracking=True,
        mileage_saved_routes=True,
        bulk_import_export=True,
        priority_support=True,
        multi_user=True,
    ),
}

_LIMIT_NAMES = {f.name for f in fields(TierLimits)}


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


def _allows(limit: int | bool, current_count: int) -> bool:
    if isinstance(limit, bool):
        return limit
    if is_unlimited(limit):
        return True
    return current_count < limit


class TierLimitChecker:
    """Capability checks for one subscriber.

    ``override_tier`` replaces the subscribed tier for every check; it is how
    support staff preview other plans without touching billing state.
    """

    def __init__(self, tier: SubscriptionTier, override_tier: SubscriptionTier | None = None) -> None:
        self.subscribed_tier = SubscriptionTier(tier)
        self.override_tier = SubscriptionTier(override_tier) if override_tier is not None else None

    @property
    def tier(self) -> SubscriptionTier:
        return self.override_tier or self.subscribed_tier

    @property
    def limits(self) -> TierLimits:
        return TIER_LIMITS[self.tier]

    def limit_for(self, limit_name: str) -> int | bool:
        if limit_name not in _LIMIT_NAMES:
            raise ValueError(f'Unknown tier limit: {limit_name}')
        return getattr(self.limits, limit_name)

    def can_perform(self, limit_name: str, current_count: int = 0) -> bool:
        return _allows(self.limit_for(limit_name), current_count)

    def required_tier_for(self, limit_name: str, current_count: int = 0) -> SubscriptionTier | None:
        """Lowest tier above the current one that would allow the action."""
        if limit_name not in _LIMIT_NAMES:
            raise ValueError(f'Unknown tier limit: {limit_name}')
        start = TIER_ORDER.index(self.tier) + 1
        for tier in TIER_ORDER[start:]:
            if _allows(getattr(TIER_LIMITS[tier], limit_name), current_count):
                return tier
        return None

    def usage_percentage(self, limit_name: str, current_count: int) -> Decimal | None:
        limit = self.limit_for(limit_name)
        if isinstance(limit, bool):
            raise ValueError(f'{limit_name} is not a numeric limit')
        if is_unlimited(limit) or limit == 0:
            return None
        return Decimal(current_count) / Decimal(limit) * Decimal('100')

    def is_near_limit(self, limit_name: str, current_count: int) -> bool:
        percent = self.usage_percentage(limit_name, current_count)
        return percent is not None and percent >= USAGE_WARNING_PERCENT
