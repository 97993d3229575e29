from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from palletpro.services.period_filter_service import to_local_datetime
from palletpro.services.profit_service import (
    HUNDRED,
    ZERO,
    is_sold,
    item_cost,
    item_roi,
    selling_costs,
    whole_days_between,
)
from palletpro.services.snapshot_provider import ItemRecord, PalletRecord

MIN_SOLD_PER_PALLET = 2
MIN_SOLD_PER_GROUP = 3
INDIVIDUAL_ROI_THRESHOLD = Decimal('20')
RECENT_WINDOW_DAYS = 30
QUICK_FLIP_DAYS = 7
FASTEST_FLIP_DAYS = 3
UNKNOWN_LABEL = 'Unknown'

_SKIP = object()


@dataclass(frozen=True)
class GroupStats:
    key: object
    label: str
    sold_count: int
    total_revenue: Decimal
    total_cost: Decimal
    roi: Decimal
    # Excluded from ranking regardless of performance (unlabelled bucket).
    rankable: bool = True


@dataclass(frozen=True)
class ItemROI:
    item: ItemRecord
    roi: Decimal


@dataclass(frozen=True)
class FlipRecord:
    item: ItemRecord
    days_to_sell: int


@dataclass(frozen=True)
class QuickFlipSummary:
    count: int
    average_days: Decimal
    flips: tuple[FlipRecord, ...]


def summarize_group(key: object, label: str, items: Iterable[ItemRecord], *, rankable: bool = True) -> GroupStats:
    sold = [item for item in items if is_sold(item)]
    revenue = sum((item.sale_price for item in sold), ZERO)
    cost = sum((item_cost(item) + selling_costs(item) for item in sold), ZERO)
    roi = (revenue - cost) / cost * HUNDRED if cost > 0 else ZERO
    return GroupStats(
        key=key,
        label=label,
        sold_count=len(sold),
        total_revenue=revenue,
        total_cost=cost,
        roi=roi,
        rankable=rankable,
    )


def rank_groups(groups: Iterable[GroupStats], min_sold: int) -> GroupStats | None:
    """Highest-ROI group meeting the sample gate; earlier groups win ties."""
    best: GroupStats | None = None
    for group in groups:
        if not group.rankable or group.sold_count < min_sold:
            continue
        if best is None or group.roi > best.roi:
            best = group
    if best is None or best.roi <= 0:
        return None
    return best


def _group_sold_items(
    sold_items: Iterable[ItemRecord],
    pallets: Iterable[PalletRecord],
    key_for: Callable[[PalletRecord], tuple[object, str]],
) -> dict[object, tuple[str, list[ItemRecord]]]:
    pallets_by_id = {pallet.id: pallet for pallet in pallets}
    grouped: dict[object, tuple[str, list[ItemRecord]]] = {}
    for item in sold_items:
        if item.pallet_id is None:
            continue
        pallet = pallets_by_id.get(item.pallet_id)
        if pallet is None:
            continue
        key, label = key_for(pallet)
        if key is _SKIP:
            continue
        grouped.setdefault(key, (label, []))[1].append(item)
    return grouped


def _clean(value: str | None) -> str:
    return (value or '').strip()


def pallet_groups(items: Iterable[ItemRecord], pallets: Iterable[PalletRecord]) -> list[GroupStats]:
    sold = [item for item in items if is_sold(item)]
    grouped = _group_sold_items(sold, pallets, lambda pallet: (pallet.id, pallet.name))
    return [summarize_group(key, label, members) for key, (label, members) in grouped.items()]


def supplier_groups(items: Iterable[ItemRecord], pallets: Iterable[PalletRecord]) -> list[GroupStats]:
    def key_for(pallet: PalletRecord) -> tuple[object, str]:
        supplier = _clean(pallet.supplier)
        if not supplier:
            return _SKIP, ''
        return supplier, supplier

    sold = [item for item in items if is_sold(item)]
    grouped = _group_sold_items(sold, pallets, key_for)
    return [summarize_group(key, label, members) for key, (label, members) in grouped.items()]


def source_type_groups(items: Iterable[ItemRecord], pallets: Iterable[PalletRecord]) -> list[GroupStats]:
    def key_for(pallet: PalletRecord) -> tuple[object, str]:
        label = _clean(pallet.source_name)
        # None keys the unlabelled bucket so a pallet literally labelled "Unknown" still ranks.
        return (label or None), (label or UNKNOWN_LABEL)

    sold = [item for item in items if is_sold(item)]
    grouped = _group_sold_items(sold, pallets, key_for)
    return [
        summarize_group(key, label, members, rankable=key is not None)
        for key, (label, members) in grouped.items()
    ]


def best_pallet(items: Iterable[ItemRecord], pallets: Iterable[PalletRecord]) -> GroupStats | None:
    return rank_groups(pallet_groups(items, pallets), MIN_SOLD_PER_PALLET)


def best_supplier(items: Iterable[ItemRecord], pallets: Iterable[PalletRecord]) -> GroupStats | None:
    return rank_groups(supplier_groups(items, pallets), MIN_SOLD_PER_GROUP)


def best_source_type(items: Iterable[ItemRecord], pallets: Iterable[PalletRecord]) -> GroupStats | None:
    return rank_groups(source_type_groups(items, pallets), MIN_SOLD_PER_GROUP)


def best_individual_item(items: Iterable[ItemRecord]) -> ItemROI | None:
    best: ItemROI | None = None
    for item in items:
        if item.pallet_id is not None or not is_sold(item):
            continue
        if item.purchase_cost is None or item.purchase_cost <= 0:
            continue
        roi = item_roi(item.sale_price, item.allocated_cost, item.purchase_cost)
        if best is None or roi > best.roi:
            best = ItemROI(item=item, roi=roi)
    if best is None or best.roi <= INDIVIDUAL_ROI_THRESHOLD:
        return None
    return best


def recent_flips(items: Iterable[ItemRecord], now: datetime, window_days: int = RECENT_WINDOW_DAYS) -> list[FlipRecord]:
    window_start = now - timedelta(days=window_days)
    flips: list[FlipRecord] = []
    for item in items:
        if not is_sold(item) or item.sale_date is None or item.listing_date is None:
            continue
        sold_at = to_local_datetime(item.sale_date, now)
        if sold_at < window_start:
            continue
        # A sale dated before its listing gives a negative duration and still counts.
        days = whole_days_between(to_local_datetime(item.listing_date, now), sold_at)
        flips.append(FlipRecord(item=item, days_to_sell=days))
    return flips


def fastest_flip(items: Iterable[ItemRecord], now: datetime) -> FlipRecord | None:
    best: FlipRecord | None = None
    for flip in recent_flips(items, now):
        if flip.days_to_sell > FASTEST_FLIP_DAYS:
            continue
        if best is None or flip.days_to_sell < best.days_to_sell:
            best = flip
    return best


def quick_flips(items: Iterable[ItemRecord], now: datetime) -> QuickFlipSummary | None:
    flips = tuple(flip for flip in recent_flips(items, now) if flip.days_to_sell <= QUICK_FLIP_DAYS)
    if not flips:
        return None
    average = Decimal(sum(flip.days_to_sell for flip in flips)) / len(flips)
    return QuickFlipSummary(count=len(flips), average_days=average, flips=flips)
