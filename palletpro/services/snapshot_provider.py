from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol

from palletpro.models import (
    ExpenseCategory,
    ItemCondition,
    ItemStatus,
    PalletStatus,
    SalesPlatform,
    SourceType,
)


@dataclass(frozen=True)
class PalletRecord:
    id: int
    name: str
    purchase_cost: Decimal
    purchase_date: date
    sales_tax: Decimal | None = None
    supplier: str | None = None
    source_type: SourceType = SourceType.PALLET
    source_name: str | None = None
    status: PalletStatus = PalletStatus.UNPROCESSED
    notes: str | None = None
    version: int = 1


@dataclass(frozen=True)
class ItemRecord:
    id: int
    name: str
    status: ItemStatus = ItemStatus.UNLISTED
    pallet_id: int | None = None
    quantity: int = 1
    condition: ItemCondition = ItemCondition.USED_GOOD
    retail_price: Decimal | None = None
    listing_price: Decimal | None = None
    purchase_cost: Decimal | None = None
    allocated_cost: Decimal | None = None
    sale_price: Decimal | None = None
    sale_date: date | None = None
    listing_date: date | None = None
    platform: SalesPlatform | None = None
    platform_fee: Decimal | None = None
    shipping_cost: Decimal | None = None
    storage_location: str | None = None
    barcode: str | None = None
    notes: str | None = None
    version: int = 1


@dataclass(frozen=True)
class ExpenseRecord:
    id: int
    amount: Decimal
    category: ExpenseCategory
    expense_date: date
    pallet_ids: tuple[int, ...] = ()
    description: str | None = None


@dataclass(frozen=True)
class UserSnapshot:
    pallets: list[PalletRecord] = field(default_factory=list)
    items: list[ItemRecord] = field(default_factory=list)
    expenses: list[ExpenseRecord] = field(default_factory=list)


class SnapshotProvider(Protocol):
    def load_snapshot(self, *, user_id: str) -> UserSnapshot: ...
