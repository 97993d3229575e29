from __future__ import annotations

import os
import tempfile
import unittest
from unittest import mock
from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from palletpro.errors import RecordNotFoundError, StaleWriteError, TierLimitError
from palletpro.models import (
    Base,
    Expense,
    ExpenseCategory,
    ExpensePallet,
    Item,
    ItemStatus,
    Pallet,
    PalletStatus,
    SalesPlatform,
    SubscriptionTier,
)
from palletpro.services import item_service
from palletpro.services.database_snapshot_provider import DatabaseSnapshotProvider
from palletpro.services.tier_limits_service import TierLimitChecker

USER = 'user-1'


class ItemServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        path = os.path.join(self.tmpdir.name, 'test.sqlite3')
        self.engine = create_engine(f'sqlite:///{path}', connect_args={'check_same_thread': False})
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.db = self.Session()
        self.checker = TierLimitChecker(SubscriptionTier.PRO)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()
        self.tmpdir.cleanup()

    def _pallet(self, cost: str = '100', tax: str | None = None, **fields) -> Pallet:
        values = {'name': 'Amazon Monster', 'purchase_cost': Decimal(cost), 'purchase_date': date(2024, 1, 1)}
        if tax is not None:
            values['sales_tax'] = Decimal(tax)
        values.update(fields)
        return item_service.create_pallet(self.db, user_id=USER, fields=values, tier_checker=self.checker)

    def _item(self, pallet_id: int | None = None, **fields) -> Item:
        values = {'name': 'Widget', 'pallet_id': pallet_id}
        values.update(fields)
        return item_service.create_item(self.db, user_id=USER, fields=values, tier_checker=self.checker)

    def _stored_allocations(self, pallet_id: int) -> list[Decimal | None]:
        with self.Session() as fresh:
            rows = fresh.execute(select(Item).where(Item.pallet_id == pallet_id).order_by(Item.id)).scalars().all()
            return [row.allocated_cost for row in rows]

    def test_adding_items_splits_cost_across_all_members(self) -> None:
        pallet = self._pallet('90', '10')
        for _ in range(3):
            self._item(pallet.id)

        allocations = self._stored_allocations(pallet.id)
        self.assertEqual(allocations, [Decimal('33.3333')] * 3)
        self.assertLess(abs(sum(allocations) - Decimal('100')), Decimal('0.001'))

    def test_first_item_advances_unprocessed_pallet(self) -> None:
        pallet = self._pallet()
        self.assertEqual(pallet.status, PalletStatus.UNPROCESSED)
        self._item(pallet.id)
        with self.Session() as fresh:
            self.assertEqual(fresh.get(Pallet, pallet.id).status, PalletStatus.PROCESSING)

    def test_individual_item_has_no_allocation(self) -> None:
        item = self._item(None, purchase_cost='12.50')
        self.assertIsNone(item.allocated_cost)
        self.assertEqual(item.purchase_cost, Decimal('12.50'))

    def test_listing_an_item_stamps_listing_date(self) -> None:
        item = self._item(None, status=ItemStatus.LISTED)
        self.assertIsNotNone(item.listing_date)

    def test_moving_item_reallocates_both_pallets(self) -> None:
        source = self._pallet('60')
        target = self._pallet('40')
        first = self._item(source.id)
        moved = self._item(source.id)
        self._item(target.id)

        item_service.update_item(self.db, user_id=USER, item_id=moved.id, changes={'pallet_id': target.id})

        self.assertEqual(self._stored_allocations(source.id), [Decimal('60')])
        self.assertEqual(self._stored_allocations(target.id), [Decimal('20'), Decimal('20')])
        with self.Session() as fresh:
            self.assertEqual(fresh.get(Item, first.id).allocated_cost, Decimal('60'))

    def test_moving_item_out_of_pallet_clears_allocation(self) -> None:
        pallet = self._pallet('50')
        keep = self._item(pallet.id)
        leave = self._item(pallet.id)

        updated = item_service.update_item(self.db, user_id=USER, item_id=leave.id, changes={'pallet_id': None})

        self.assertIsNone(updated.pallet_id)
        self.assertIsNone(updated.allocated_cost)
        with self.Session() as fresh:
            self.assertEqual(fresh.get(Item, keep.id).allocated_cost, Decimal('50'))

    def test_add_then_delete_restores_siblings(self) -> None:
        pallet = self._pallet('75')
        self._item(pallet.id)
        self._item(pallet.id)
        before = self._stored_allocations(pallet.id)

        extra = self._item(pallet.id)
        item_service.delete_item(self.db, user_id=USER, item_id=extra.id)

        self.assertEqual(self._stored_allocations(pallet.id), before)

    def test_cost_correction_reallocates_members(self) -> None:
        pallet = self._pallet('100')
        self._item(pallet.id)
        self._item(pallet.id)

        item_service.update_pallet(self.db, user_id=USER, pallet_id=pallet.id, changes={'purchase_cost': '150', 'sales_tax': '10'})

        self.assertEqual(self._stored_allocations(pallet.id), [Decimal('80'), Decimal('80')])

    def test_deleting_pallet_detaches_items(self) -> None:
        pallet = self._pallet('100')
        item = self._item(pallet.id)

        item_service.delete_pallet(self.db, user_id=USER, pallet_id=pallet.id)

        with self.Session() as fresh:
            self.assertIsNone(fresh.get(Pallet, pallet.id))
            row = fresh.get(Item, item.id)
            self.assertIsNone(row.pallet_id)
            self.assertIsNone(row.allocated_cost)

    def test_mark_sold_estimates_platform_fee(self) -> None:
        item = self._item(None, purchase_cost='20')
        sold = item_service.mark_item_sold(
            self.db,
            user_id=USER,
            item_id=item.id,
            sale_price='100',
            sale_date=date(2024, 2, 1),
            platform=SalesPlatform.EBAY,
        )
        self.assertEqual(sold.status, ItemStatus.SOLD)
        self.assertEqual(sold.platform_fee, Decimal('13.55'))
        self.assertEqual(sold.sale_date, date(2024, 2, 1))

        with self.assertRaises(ValueError):
            item_service.mark_item_sold(self.db, user_id=USER, item_id=item.id, sale_price='90')

    def test_version_mismatch_is_a_stale_write(self) -> None:
        item = self._item(None, notes='original')
        with self.assertRaises(StaleWriteError):
            item_service.update_item(
                self.db, user_id=USER, item_id=item.id, changes={'notes': 'edited'}, expected_version=item.version + 5
            )
        with self.Session() as fresh:
            self.assertEqual(fresh.get(Item, item.id).notes, 'original')

    def test_concurrent_update_is_detected(self) -> None:
        pallet = self._pallet('100')
        item = self._item(pallet.id)

        stale_session = self.Session()
        try:
            stale_session.get(Item, item.id)
            item_service.update_item(self.db, user_id=USER, item_id=item.id, changes={'notes': 'first writer'})

            with self.assertRaises(StaleWriteError):
                item_service.update_item(stale_session, user_id=USER, item_id=item.id, changes={'notes': 'second writer'})
        finally:
            stale_session.close()

        with self.Session() as fresh:
            self.assertEqual(fresh.get(Item, item.id).notes, 'first writer')

    def test_concurrent_adds_to_empty_pallet_conflict(self) -> None:
        pallet = self._pallet('100', status=PalletStatus.PROCESSING)
        other = self.Session()
        real_members = item_service.pallet_members
        calls = []

        def members_then_concurrent_add(db, *, pallet_id):
            members = real_members(db, pallet_id=pallet_id)
            if db is self.db and not calls:
                calls.append(pallet_id)
                item_service.create_item(
                    other, user_id=USER, fields={'name': 'Racer', 'pallet_id': pallet_id}, tier_checker=self.checker
                )
            return members

        try:
            with mock.patch.object(item_service, 'pallet_members', new=members_then_concurrent_add):
                with self.assertRaises(StaleWriteError):
                    self._item(pallet.id)
        finally:
            other.close()

        self.assertEqual(calls, [pallet.id])
        self.assertEqual(self._stored_allocations(pallet.id), [Decimal('100')])

    def test_membership_change_bumps_pallet_version(self) -> None:
        pallet = self._pallet('100', status=PalletStatus.PROCESSING)
        with self.Session() as fresh:
            before = fresh.get(Pallet, pallet.id).version
        item = self._item(pallet.id)
        item_service.delete_item(self.db, user_id=USER, item_id=item.id)
        with self.Session() as fresh:
            self.assertEqual(fresh.get(Pallet, pallet.id).version, before + 2)

    def test_other_users_records_are_not_found(self) -> None:
        pallet = self._pallet('100')
        with self.assertRaises(RecordNotFoundError):
            item_service.update_pallet(self.db, user_id='someone-else', pallet_id=pallet.id, changes={'name': 'x'})

    def test_tier_limit_blocks_second_pallet_on_free_plan(self) -> None:
        free = TierLimitChecker(SubscriptionTier.FREE)
        fields = {'name': 'First', 'purchase_cost': '10', 'purchase_date': date(2024, 1, 1)}
        item_service.create_pallet(self.db, user_id=USER, fields=fields, tier_checker=free)

        with self.assertRaises(TierLimitError) as ctx:
            item_service.create_pallet(self.db, user_id=USER, fields=dict(fields, name='Second'), tier_checker=free)
        self.assertEqual(ctx.exception.limit, 'pallets')
        self.assertEqual(ctx.exception.required_tier, 'starter')

    def test_tier_override_lifts_the_limit(self) -> None:
        previewing = TierLimitChecker(SubscriptionTier.FREE, override_tier=SubscriptionTier.PRO)
        fields = {'name': 'Pallet', 'purchase_cost': '10', 'purchase_date': date(2024, 1, 1)}
        item_service.create_pallet(self.db, user_id=USER, fields=fields, tier_checker=previewing)
        item_service.create_pallet(self.db, user_id=USER, fields=fields, tier_checker=previewing)

    def test_snapshot_reflects_stored_rows(self) -> None:
        pallet = self._pallet('40')
        self._item(pallet.id)
        self._item(None, purchase_cost='5')
        self._item(None, notes='spare')
        expense = Expense(user_id=USER, amount=Decimal('12'), category=ExpenseCategory.GAS, expense_date=date(2024, 1, 3))
        self.db.add(expense)
        self.db.flush()
        self.db.add(ExpensePallet(expense_id=expense.id, pallet_id=pallet.id))
        self.db.commit()

        snapshot = DatabaseSnapshotProvider(self.Session).load_snapshot(user_id=USER)

        self.assertEqual([record.id for record in snapshot.pallets], [pallet.id])
        self.assertEqual(len(snapshot.items), 3)
        self.assertEqual(snapshot.items[0].allocated_cost, Decimal('40'))
        self.assertEqual(snapshot.expenses[0].pallet_ids, (pallet.id,))
        self.assertEqual(DatabaseSnapshotProvider(self.Session).load_snapshot(user_id='nobody').items, [])

    def test_validation_errors(self) -> None:
        with self.assertRaises(ValueError):
            self._item(None, name='  ')
        with self.assertRaises(ValueError):
            self._item(None, quantity=0)
        with self.assertRaises(ValueError):
            self._item(None, allocated_cost='5')
        with self.assertRaises(ValueError):
            self._item(None, status=ItemStatus.SOLD)


if __name__ == '__main__':
    unittest.main()
