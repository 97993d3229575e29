"""Rules-based dashboard insights.

Every rule looks at the current snapshot on its own and either returns one
``Insight`` or nothing. Celebrations and warnings always compete for a slot;
the comparative rules form a rotating pool whose order is reshuffled every
few hours so the dashboard does not repeat the same tips all day.
"""
from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TypeVar

from palletpro.config import settings
from palletpro.models import ItemStatus
from palletpro.services import aggregation_service as aggregation
from palletpro.services.period_filter_service import local_now
from palletpro.services.profit_service import (
    days_since_listed,
    format_currency,
    item_profit,
    round_percent,
)
from palletpro.services.snapshot_provider import ItemRecord, PalletRecord

T = TypeVar('T')

MILESTONES = (100, 50, 25, 10)
MILESTONE_WINDOW = 5
UNLISTED_REMINDER_MIN = 5

_LCG_MULTIPLIER = 1103515245
_LCG_INCREMENT = 12345
_LCG_MODULUS = 2**31


class InsightType(str, Enum):
    SUCCESS = 'success'
    WARNING = 'warning'
    INFO = 'info'
    TIP = 'tip'


class InsightIcon(str, Enum):
    TROPHY = 'trophy'
    ALERT_CIRCLE = 'alert-circle'
    TRENDING_UP = 'trending-up'
    TIME = 'time'
    BULB = 'bulb'
    CART = 'cart'
    CASH = 'cash'
    FLASH = 'flash'


class InsightPriority:
    FIRST_SALE = 100
    MILESTONE = 95
    STALE_INVENTORY = 90
    BEST_LOT = 78
    BEST_SUPPLIER = 76
    BEST_INDIVIDUAL_ITEM = 75
    BEST_SOURCE_TYPE = 74
    FASTEST_FLIP = 72
    QUICK_FLIPS = 70
    UNLISTED_ITEMS = 60


@dataclass(frozen=True)
class Insight:
    id: str
    type: InsightType
    icon: InsightIcon
    title: str
    message: str
    priority: int
    action_route: str | None = None


class UserStage(str, Enum):
    NEW_USER = 'new_user'
    HAS_INVENTORY = 'has_inventory'
    HAS_LISTINGS = 'has_listings'
    MAKING_SALES = 'making_sales'
    ESTABLISHED = 'established'


@dataclass(frozen=True)
class EmptyStateContent:
    title: str
    message: str
    action_label: str | None = None
    action_route: str | None = None


def _plural(count: int, word: str = 'item') -> str:
    return f'{count} {word}' + ('' if count == 1 else 's')


def rotation_seed(now: datetime, hours: int = 3) -> int:
    bucket_ms = hours * 60 * 60 * 1000
    epoch_ms = int(now.timestamp() * 1000)
    return epoch_ms // bucket_ms


def seeded_shuffle(values: Sequence[T], seed: int) -> list[T]:
    """Fisher-Yates driven by a linear congruential generator.

    The same pool and seed always produce the same order.
    """
    shuffled = list(values)
    state = seed
    for i in range(len(shuffled) - 1, 0, -1):
        state = (state * _LCG_MULTIPLIER + _LCG_INCREMENT) % _LCG_MODULUS
        j = state % (i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def first_sale_insight(sold_items: list[ItemRecord]) -> Insight | None:
    if len(sold_items) != 1:
        return None
    item = sold_items[0]
    profit = item_profit(item.sale_price, item.allocated_cost, item.purchase_cost)
    if item.sale_price is not None and profit >= 0:
        message = f'Congrats on your first sale! You made {format_currency(profit)}'
    else:
        message = 'Your first sale is in the books!'
    return Insight(
        id='first-sale',
        type=InsightType.SUCCESS,
        icon=InsightIcon.TROPHY,
        title='First Sale!',
        message=message,
        priority=InsightPriority.FIRST_SALE,
        action_route=f'/items/{item.id}',
    )


def milestone_insight(sold_items: list[ItemRecord]) -> Insight | None:
    count = len(sold_items)
    for milestone in MILESTONES:
        if milestone <= count < milestone + MILESTONE_WINDOW:
            return Insight(
                id=f'milestone-{milestone}',
                type=InsightType.SUCCESS,
                icon=InsightIcon.TROPHY,
                title=f'{milestone} Sales!',
                message=f"You've sold {count} items, keep it up!",
                priority=InsightPriority.MILESTONE,
            )
    return None


def stale_inventory_insight(listed_items: list[ItemRecord], threshold_days: int, now: datetime) -> Insight | None:
    stale = [
        item
        for item in listed_items
        if (days := days_since_listed(item, now)) is not None and days >= threshold_days
    ]
    if not stale:
        return None
    return Insight(
        id='stale-inventory',
        type=InsightType.WARNING,
        icon=InsightIcon.TIME,
        title='Stale Inventory',
        message=f'{_plural(len(stale))} listed {threshold_days}+ days. Consider repricing',
        priority=InsightPriority.STALE_INVENTORY,
        action_route='/(tabs)/inventory?filter=stale',
    )


def best_lot_insight(items: list[ItemRecord], pallets: list[PalletRecord]) -> Insight | None:
    best = aggregation.best_pallet(items, pallets)
    if best is None:
        return None
    return Insight(
        id='best-lot',
        type=InsightType.SUCCESS,
        icon=InsightIcon.TROPHY,
        title='Top Pallet',
        message=f'{best.label} is your best pallet at {round_percent(best.roi)}% ROI',
        priority=InsightPriority.BEST_LOT,
        action_route=f'/pallets/{best.key}',
    )


def best_supplier_insight(items: list[ItemRecord], pallets: list[PalletRecord]) -> Insight | None:
    best = aggregation.best_supplier(items, pallets)
    if best is None:
        return None
    return Insight(
        id='best-supplier',
        type=InsightType.INFO,
        icon=InsightIcon.TRENDING_UP,
        title='Best Supplier',
        message=f'{best.label} pallets return {round_percent(best.roi)}% ROI across {_plural(best.sold_count, "sale")}',
        priority=InsightPriority.BEST_SUPPLIER,
    )


def best_individual_item_insight(items: list[ItemRecord]) -> Insight | None:
    best = aggregation.best_individual_item(items)
    if best is None:
        return None
    return Insight(
        id='best-individual-item',
        type=InsightType.SUCCESS,
        icon=InsightIcon.CASH,
        title='Great Find',
        message=f'{best.item.name} earned {round_percent(best.roi)}% ROI',
        priority=InsightPriority.BEST_INDIVIDUAL_ITEM,
        action_route=f'/items/{best.item.id}',
    )


def best_source_type_insight(items: list[ItemRecord], pallets: list[PalletRecord]) -> Insight | None:
    best = aggregation.best_source_type(items, pallets)
    if best is None:
        return None
    return Insight(
        id='best-source-type',
        type=InsightType.INFO,
        icon=InsightIcon.BULB,
        title='Best Pallet Type',
        message=f'{best.label} is your top source type at {round_percent(best.roi)}% ROI',
        priority=InsightPriority.BEST_SOURCE_TYPE,
    )


def fastest_flip_insight(items: list[ItemRecord], now: datetime) -> Insight | None:
    flip = aggregation.fastest_flip(items, now)
    if flip is None:
        return None
    if flip.days_to_sell <= 0:
        message = f'{flip.item.name} sold the same day it was listed'
    else:
        message = f'{flip.item.name} sold {_plural(flip.days_to_sell, "day")} after listing'
    return Insight(
        id='fastest-flip',
        type=InsightType.SUCCESS,
        icon=InsightIcon.FLASH,
        title='Fastest Flip',
        message=message,
        priority=InsightPriority.FASTEST_FLIP,
        action_route=f'/items/{flip.item.id}',
    )


def quick_flips_insight(items: list[ItemRecord], now: datetime) -> Insight | None:
    summary = aggregation.quick_flips(items, now)
    if summary is None:
        return None
    return Insight(
        id='quick-flips',
        type=InsightType.SUCCESS,
        icon=InsightIcon.TRENDING_UP,
        title='Quick Flips',
        message=f'{_plural(summary.count)} sold within a week, avg {round_percent(summary.average_days)} days',
        priority=InsightPriority.QUICK_FLIPS,
    )


def unlisted_items_insight(unlisted_items: list[ItemRecord]) -> Insight | None:
    if len(unlisted_items) < UNLISTED_REMINDER_MIN:
        return None
    return Insight(
        id='unlisted-items',
        type=InsightType.TIP,
        icon=InsightIcon.CART,
        title='Ready to List',
        message=f'{len(unlisted_items)} items waiting to be listed',
        priority=InsightPriority.UNLISTED_ITEMS,
        action_route='/(tabs)/inventory?filter=unlisted',
    )


def _collect(rules: list[Callable[[], Insight | None]]) -> list[Insight]:
    return [insight for insight in (rule() for rule in rules) if insight is not None]


def generate_insights(
    *,
    pallets: Sequence[PalletRecord],
    items: Sequence[ItemRecord],
    stale_threshold_days: int | None = None,
    now: datetime | None = None,
    max_insights: int | None = None,
    rotation_hours: int | None = None,
) -> list[Insight]:
    pallets = list(pallets)
    items = list(items)
    now = now if now is not None else local_now()
    threshold = stale_threshold_days if stale_threshold_days is not None else settings.stale_threshold_days
    limit = max_insights if max_insights is not None else settings.max_insights
    hours = rotation_hours if rotation_hours is not None else settings.insight_rotation_hours

    # Celebrations count by status; a sale recorded without a price still counts.
    sold = [item for item in items if item.status == ItemStatus.SOLD]
    listed = [item for item in items if item.status == ItemStatus.LISTED]
    unlisted = [item for item in items if item.status == ItemStatus.UNLISTED]

    priority_pool = _collect(
        [
            lambda: first_sale_insight(sold),
            lambda: milestone_insight(sold),
            lambda: stale_inventory_insight(listed, threshold, now),
        ]
    )
    rotating_pool = _collect(
        [
            lambda: best_individual_item_insight(items),
            lambda: best_lot_insight(items, pallets),
            lambda: best_supplier_insight(items, pallets),
            lambda: best_source_type_insight(items, pallets),
            lambda: fastest_flip_insight(items, now),
            lambda: quick_flips_insight(items, now),
            lambda: unlisted_items_insight(unlisted),
        ]
    )

    candidates = priority_pool + seeded_shuffle(rotating_pool, rotation_seed(now, hours))
    # sorted() stays stable with reverse=True, so equal priorities keep pool order.
    ranked = sorted(candidates, key=lambda insight: insight.priority, reverse=True)
    return ranked[:limit]


def get_user_stage(*, pallets: Sequence[PalletRecord], items: Sequence[ItemRecord]) -> UserStage:
    sold_count = sum(1 for item in items if item.status == ItemStatus.SOLD)
    listed_count = sum(1 for item in items if item.status == ItemStatus.LISTED)

    if not pallets and not items:
        return UserStage.NEW_USER
    if sold_count >= 10:
        return UserStage.ESTABLISHED
    if sold_count > 0:
        return UserStage.MAKING_SALES
    if listed_count > 0:
        return UserStage.HAS_LISTINGS
    return UserStage.HAS_INVENTORY


EMPTY_STATE_CONTENT: dict[UserStage, EmptyStateContent] = {
    UserStage.NEW_USER: EmptyStateContent(
        title='Welcome!',
        message='Add your first pallet or item to start tracking profits.',
        action_label='Add Pallet',
        action_route='/pallets/new',
    ),
    UserStage.HAS_INVENTORY: EmptyStateContent(
        title='Ready to sell?',
        message='List your items to start making sales and unlock insights.',
        action_label='View Inventory',
        action_route='/(tabs)/inventory',
    ),
    UserStage.HAS_LISTINGS: EmptyStateContent(
        title='Looking good!',
        message="Once you make a few sales, I'll show you trends and tips.",
    ),
    UserStage.MAKING_SALES: EmptyStateContent(
        title='Keep it up!',
        message="A few more sales and I'll have insights about your best sources and strategies.",
    ),
    UserStage.ESTABLISHED: EmptyStateContent(
        title='All caught up!',
        message='No new insights right now. Keep selling and check back soon.',
    ),
}


def get_empty_state_content(stage: UserStage | str) -> EmptyStateContent:
    try:
        return EMPTY_STATE_CONTENT[UserStage(stage)]
    except ValueError:
        return EMPTY_STATE_CONTENT[UserStage.ESTABLISHED]
