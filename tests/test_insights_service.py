from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from palletpro.models import ItemStatus
from palletpro.services.insights_service import (
    InsightPriority,
    UserStage,
    generate_insights,
    get_empty_state_content,
    get_user_stage,
    milestone_insight,
    rotation_seed,
    seeded_shuffle,
)
from palletpro.services.snapshot_provider import ItemRecord, PalletRecord

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=ZoneInfo('America/Los_Angeles'))


def _pallet(pallet_id: int, **overrides) -> PalletRecord:
    values = {
        'id': pallet_id,
        'name': f'Pallet {pallet_id}',
        'purchase_cost': Decimal('20'),
        'purchase_date': date(2024, 1, 1),
    }
    values.update(overrides)
    return PalletRecord(**values)


def _item(item_id: int, **overrides) -> ItemRecord:
    values = {'id': item_id, 'name': f'Item {item_id}'}
    values.update(overrides)
    return ItemRecord(**values)


def _sold(item_id: int, **overrides) -> ItemRecord:
    values = {'status': ItemStatus.SOLD, 'sale_price': Decimal('30'), 'purchase_cost': Decimal('10')}
    values.update(overrides)
    return _item(item_id, **values)


def _ids(insights) -> list[str]:
    return [insight.id for insight in insights]


class GenerateInsightsTests(unittest.TestCase):
    def test_best_lot_reports_roi(self) -> None:
        pallets = [_pallet(1, name='Amazon Monster')]
        items = [
            _sold(1, pallet_id=1, allocated_cost=Decimal('10'), purchase_cost=None),
            _sold(2, pallet_id=1, allocated_cost=Decimal('10'), purchase_cost=None),
        ]
        insights = generate_insights(pallets=pallets, items=items, now=NOW)
        best_lot = next(insight for insight in insights if insight.id == 'best-lot')
        self.assertIn('200%', best_lot.message)
        self.assertIn('Amazon Monster', best_lot.message)
        self.assertEqual(best_lot.priority, InsightPriority.BEST_LOT)

    def test_first_sale_celebrates_profit(self) -> None:
        items = [_sold(1, sale_price=Decimal('50'), purchase_cost=Decimal('20'))]
        insights = generate_insights(pallets=[], items=items, now=NOW)
        self.assertEqual(insights[0].id, 'first-sale')
        self.assertIn('$30.00', insights[0].message)

    def test_first_sale_without_price_still_counts(self) -> None:
        insights = generate_insights(pallets=[], items=[_sold(1, sale_price=None)], now=NOW)
        self.assertEqual(_ids(insights), ['first-sale'])
        self.assertEqual(insights[0].message, 'Your first sale is in the books!')

    def test_milestone_counts_sales_without_price(self) -> None:
        items = [_sold(i) for i in range(1, 10)] + [_sold(10, sale_price=None)]
        insights = generate_insights(pallets=[], items=items, now=NOW)
        self.assertIn('milestone-10', _ids(insights))

    def test_unlisted_reminder_needs_five_items(self) -> None:
        six = [_item(i) for i in range(1, 7)]
        insights = generate_insights(pallets=[], items=six, now=NOW)
        self.assertEqual(_ids(insights), ['unlisted-items'])
        self.assertIn('6 items', insights[0].message)

        four = [_item(i) for i in range(1, 5)]
        self.assertEqual(generate_insights(pallets=[], items=four, now=NOW), [])

    def test_stale_listings_warn(self) -> None:
        items = [
            _item(1, status=ItemStatus.LISTED, listing_date=date(2024, 1, 1)),
            _item(2, status=ItemStatus.LISTED, listing_date=date(2024, 3, 14)),
        ]
        insights = generate_insights(pallets=[], items=items, now=NOW, stale_threshold_days=30)
        self.assertEqual(_ids(insights), ['stale-inventory'])
        self.assertIn('1 item listed 30+ days', insights[0].message)

    def test_result_is_capped_and_ordered_by_priority(self) -> None:
        pallets = [_pallet(1, supplier='Bulq', source_name='Amazon Monster')]
        items = [
            _sold(i, pallet_id=1, allocated_cost=Decimal('5'), listing_date=date(2024, 3, 1), sale_date=date(2024, 3, 2))
            for i in range(1, 11)
        ]
        items += [_sold(11, sale_price=Decimal('40'), purchase_cost=Decimal('10'))]
        items += [_item(i, status=ItemStatus.LISTED, listing_date=date(2023, 12, 1)) for i in range(12, 14)]
        items += [_item(i) for i in range(14, 20)]

        insights = generate_insights(pallets=pallets, items=items, now=NOW, max_insights=3)

        self.assertEqual(len(insights), 3)
        priorities = [insight.priority for insight in insights]
        self.assertEqual(priorities, sorted(priorities, reverse=True))
        self.assertEqual(_ids(insights)[:2], ['milestone-10', 'stale-inventory'])

    def test_same_bucket_gives_same_insights(self) -> None:
        pallets = [_pallet(1, supplier='Bulq')]
        items = [_sold(i, pallet_id=1, allocated_cost=Decimal('5')) for i in range(1, 5)]
        items += [_item(i) for i in range(5, 11)]
        first = generate_insights(pallets=pallets, items=items, now=NOW)
        second = generate_insights(pallets=pallets, items=items, now=NOW.replace(minute=30))
        self.assertEqual(first, second)

    def test_empty_snapshot_has_no_insights(self) -> None:
        self.assertEqual(generate_insights(pallets=[], items=[], now=NOW), [])


class RotationTests(unittest.TestCase):
    def test_seeded_shuffle_is_deterministic(self) -> None:
        self.assertEqual(seeded_shuffle([0, 1, 2], 0), [1, 2, 0])
        values = list(range(10))
        self.assertEqual(seeded_shuffle(values, 42), seeded_shuffle(values, 42))
        self.assertEqual(sorted(seeded_shuffle(values, 7)), values)
        self.assertEqual(values, list(range(10)))

    def test_short_pools_are_unchanged(self) -> None:
        self.assertEqual(seeded_shuffle([], 5), [])
        self.assertEqual(seeded_shuffle(['only'], 5), ['only'])

    def test_rotation_seed_buckets(self) -> None:
        self.assertEqual(rotation_seed(datetime(1970, 1, 1, 2, 59, tzinfo=timezone.utc)), 0)
        self.assertEqual(rotation_seed(datetime(1970, 1, 1, 3, 0, tzinfo=timezone.utc)), 1)
        self.assertEqual(rotation_seed(datetime(1970, 1, 1, 3, 0, tzinfo=timezone.utc), hours=1), 3)


class MilestoneTests(unittest.TestCase):
    def test_milestone_window(self) -> None:
        sold = [_sold(i) for i in range(27)]
        self.assertEqual(milestone_insight(sold).id, 'milestone-25')
        self.assertIsNone(milestone_insight([_sold(i) for i in range(30)]))
        self.assertEqual(milestone_insight([_sold(i) for i in range(104)]).id, 'milestone-100')
        self.assertIsNone(milestone_insight([_sold(i) for i in range(9)]))


class UserStageTests(unittest.TestCase):
    def test_stages(self) -> None:
        self.assertEqual(get_user_stage(pallets=[], items=[]), UserStage.NEW_USER)
        self.assertEqual(get_user_stage(pallets=[_pallet(1)], items=[]), UserStage.HAS_INVENTORY)
        self.assertEqual(
            get_user_stage(pallets=[], items=[_item(1, status=ItemStatus.LISTED)]), UserStage.HAS_LISTINGS
        )
        self.assertEqual(get_user_stage(pallets=[], items=[_sold(1)]), UserStage.MAKING_SALES)
        self.assertEqual(
            get_user_stage(pallets=[], items=[_sold(i) for i in range(10)]), UserStage.ESTABLISHED
        )

    def test_empty_state_content(self) -> None:
        self.assertEqual(get_empty_state_content(UserStage.NEW_USER).action_route, '/pallets/new')
        self.assertEqual(get_empty_state_content('bogus').title, 'All caught up!')


if __name__ == '__main__':
    unittest.main()
