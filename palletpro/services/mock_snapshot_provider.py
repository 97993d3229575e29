from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

from palletpro.models import ExpenseCategory, ItemCondition, ItemStatus, PalletStatus, SalesPlatform, SourceType
from palletpro.services.cost_allocation_service import compute_allocated_cost
from palletpro.services.period_filter_service import local_now
from palletpro.services.platform_fee_service import calculate_platform_fee
from palletpro.services.snapshot_provider import ExpenseRecord, ItemRecord, PalletRecord, UserSnapshot

# (name, status, retail, listing, sale, listed days ago, sold days ago, platform)
_PALLET_ITEMS: dict[int, list[tuple]] = {
    1: [
        ('Ninja Air Fryer', ItemStatus.SOLD, '129.99', '79.99', '75.00', 12, 9, SalesPlatform.EBAY),
        ('Keurig K-Mini', ItemStatus.SOLD, '99.99', '55.00', '52.00', 20, 18, SalesPlatform.FACEBOOK),
        ('Bose SoundLink Flex', ItemStatus.SOLD, '149.00', '95.00', '90.00', 8, 6, SalesPlatform.MERCARI),
        ('Dyson V8 Battery', ItemStatus.LISTED, '89.99', '45.00', None, 41, None, None),
        ('Echo Dot 5th Gen', ItemStatus.LISTED, '49.99', '30.00', None, 5, None, None),
        ('Shark Mop Pads', ItemStatus.UNLISTED, '24.99', None, None, None, None, None),
    ],
    2: [
        ('Threshold Lamp', ItemStatus.SOLD, '39.99', '25.00', '25.00', 15, 13, SalesPlatform.OFFERUP),
        ('Hearth & Hand Blanket', ItemStatus.SOLD, '49.99', '30.00', '28.00', 10, 8, SalesPlatform.POSHMARK),
        ('Room Essentials Fan', ItemStatus.SOLD, '29.99', '18.00', '16.00', 4, 3, SalesPlatform.FACEBOOK),
        ('Pillowfort Tent', ItemStatus.UNLISTED, '34.99', None, None, None, None, None),
        ('Opalhouse Mirror', ItemStatus.UNLISTED, '59.99', None, None, None, None, None),
    ],
    3: [
        ('Mystery Headphones', ItemStatus.SOLD, '59.99', '35.00', '35.00', 3, 1, SalesPlatform.WHATNOT),
        ('Mystery Phone Case', ItemStatus.UNLISTED, '19.99', None, None, None, None, None),
    ],
}

# (name, purchase cost, sale, listed days ago, sold days ago, platform)
_INDIVIDUAL_ITEMS: list[tuple] = [
    ('Vintage Levi Jacket', '8.00', '65.00', 9, 2, SalesPlatform.POSHMARK),
    ('Pyrex Bowl Set', '5.00', None, 35, None, None),
]


class MockSnapshotProvider:
    """Deterministic demo inventory, dated relative to ``today``."""

    def __init__(self, today: date | None = None) -> None:
        self.today = today

    def _days_ago(self, today: date, days: int | None) -> date | None:
        return today - timedelta(days=days) if days is not None else None

    def _pallets(self, today: date) -> list[PalletRecord]:
        return [
            PalletRecord(
                id=1,
                name='Amazon Monster #1',
                purchase_cost=Decimal('300.00'),
                sales_tax=Decimal('24.00'),
                purchase_date=today - timedelta(days=45),
                supplier='Bulq',
                source_type=SourceType.PALLET,
                source_name='Amazon Monster',
                status=PalletStatus.PROCESSING,
            ),
            PalletRecord(
                id=2,
                name='Target GM Pallet',
                purchase_cost=Decimal('90.00'),
                sales_tax=Decimal('7.20'),
                purchase_date=today - timedelta(days=30),
                supplier='Via Trading',
                source_type=SourceType.PALLET,
                source_name='Target GM',
                status=PalletStatus.PROCESSING,
            ),
            PalletRecord(
                id=3,
                name='Amazon Mystery Box',
                purchase_cost=Decimal('25.00'),
                purchase_date=today - timedelta(days=7),
                supplier='Bulq',
                source_type=SourceType.MYSTERY_BOX,
                source_name='Amazon Mystery',
                status=PalletStatus.PROCESSING,
            ),
        ]

    def _items(self, today: date, pallets: list[PalletRecord]) -> list[ItemRecord]:
        items: list[ItemRecord] = []
        next_id = 1
        for pallet in pallets:
            members: list[ItemRecord] = []
            for name, status, retail, listing, sale, listed_ago, sold_ago, platform in _PALLET_ITEMS[pallet.id]:
                sale_price = Decimal(sale) if sale is not None else None
                members.append(
                    ItemRecord(
                        id=next_id,
                        name=name,
                        status=status,
                        pallet_id=pallet.id,
                        condition=ItemCondition.OPEN_BOX,
                        retail_price=Decimal(retail),
                        listing_price=Decimal(listing) if listing is not None else None,
                        sale_price=sale_price,
                        listing_date=self._days_ago(today, listed_ago),
                        sale_date=self._days_ago(today, sold_ago),
                        platform=platform,
                        platform_fee=calculate_platform_fee(sale_price, platform) if sale_price is not None else None,
                    )
                )
                next_id += 1
            allocation = compute_allocated_cost(pallet, members)
            items.extend(replace(member, allocated_cost=allocation[member.id]) for member in members)

        for name, cost, sale, listed_ago, sold_ago, platform in _INDIVIDUAL_ITEMS:
            sale_price = Decimal(sale) if sale is not None else None
            items.append(
                ItemRecord(
                    id=next_id,
                    name=name,
                    status=ItemStatus.SOLD if sale_price is not None else ItemStatus.LISTED,
                    condition=ItemCondition.USED_GOOD,
                    purchase_cost=Decimal(cost),
                    sale_price=sale_price,
                    listing_date=self._days_ago(today, listed_ago),
                    sale_date=self._days_ago(today, sold_ago),
                    platform=platform,
                    platform_fee=calculate_platform_fee(sale_price, platform) if sale_price is not None else None,
                )
            )
            next_id += 1
        return items

    def load_snapshot(self, *, user_id: str) -> UserSnapshot:
        today = self.today or local_now().date()
        pallets = self._pallets(today)
        expenses = [
            ExpenseRecord(
                id=1,
                amount=Decimal('18.50'),
                category=ExpenseCategory.SUPPLIES,
                expense_date=today - timedelta(days=14),
                pallet_ids=(1, 2),
                description='Poly mailers and tape',
            ),
            ExpenseRecord(
                id=2,
                amount=Decimal('22.00'),
                category=ExpenseCategory.GAS,
                expense_date=today - timedelta(days=45),
                pallet_ids=(1,),
                description='Warehouse pickup',
            ),
        ]
        return UserSnapshot(pallets=pallets, items=self._items(today, pallets), expenses=expenses)
