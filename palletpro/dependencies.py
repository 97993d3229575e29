from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from palletpro.config import settings
from palletpro.services.platform_fee_service import FeeTable, build_fee_table
from palletpro.services.provider_factory import get_snapshot_provider
from palletpro.services.snapshot_provider import SnapshotProvider, UserSnapshot
from palletpro.services.tier_limits_service import TierLimitChecker


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    user_id = (x_user_id or '').strip()
    if not user_id:
        raise HTTPException(status_code=401, detail='Missing X-User-Id header')
    return user_id


def get_tier_checker(x_subscription_tier: str | None = Header(default=None)) -> TierLimitChecker:
    tier = (x_subscription_tier or '').strip().lower() or settings.default_tier
    try:
        return TierLimitChecker(tier, override_tier=settings.tier_override)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Unknown subscription tier: {tier}') from exc


def get_user_snapshot(
    user_id: str = Depends(get_current_user_id),
    provider: SnapshotProvider = Depends(get_snapshot_provider),
) -> UserSnapshot:
    return provider.load_snapshot(user_id=user_id)


@lru_cache(maxsize=1)
def get_fee_table() -> FeeTable:
    return build_fee_table(settings.platform_fee_overrides)
