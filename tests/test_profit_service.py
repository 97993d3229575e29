from __future__ import annotations

import unittest
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from palletpro.models import ExpenseCategory, ItemStatus
from palletpro.services.profit_service import (
    average_days_to_sell,
    days_since_listed,
    days_to_sell,
    expense_share,
    format_currency,
    format_roi,
    is_item_stale,
    item_profit,
    item_roi,
    net_profit,
    pallet_profit,
    round_percent,
    to_decimal,
)
from palletpro.services.snapshot_provider import ExpenseRecord, ItemRecord, PalletRecord

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=ZoneInfo('America/Los_Angeles'))


def _pallet(**overrides) -> PalletRecord:
    values = {
        'id': 1,
        'name': 'Test Pallet',
        'purchase_cost': Decimal('100'),
        'sales_tax': Decimal('10'),
        'purchase_date': date(2024, 1, 1),
    }
    values.update(overrides)
    return PalletRecord(**values)


def _item(item_id: int, **overrides) -> ItemRecord:
    values = {'id': item_id, 'name': f'Item {item_id}', 'pallet_id': 1}
    values.update(overrides)
    return ItemRecord(**values)


class ItemProfitTests(unittest.TestCase):
    def test_profit_prefers_allocated_cost(self) -> None:
        self.assertEqual(item_profit(Decimal('30'), Decimal('10'), Decimal('25')), Decimal('20'))

    def test_profit_falls_back_to_purchase_cost(self) -> None:
        self.assertEqual(item_profit(50, None, 20), Decimal('30'))

    def test_unsold_profit_is_zero(self) -> None:
        self.assertEqual(item_profit(None, Decimal('10'), None), Decimal('0'))

    def test_roi_zero_cost_convention(self) -> None:
        self.assertEqual(item_roi(100, None, None), Decimal('100'))
        self.assertEqual(item_roi(0, 0, 0), Decimal('0'))
        self.assertEqual(item_roi(None, 10, None), Decimal('0'))

    def test_roi(self) -> None:
        self.assertEqual(item_roi(Decimal('30'), Decimal('10'), None), Decimal('200'))
        self.assertEqual(item_roi(Decimal('5'), Decimal('10'), None), Decimal('-50'))

    def test_profit_and_roi_signs_agree(self) -> None:
        cases = [(30, 10, None), (5, 10, None), (10, None, 10), (12, None, 7), (1, 3, 9)]
        for sale, allocated, purchase in cases:
            profit = item_profit(sale, allocated, purchase)
            roi = item_roi(sale, allocated, purchase)
            self.assertEqual(profit >= 0, roi >= 0, (sale, allocated, purchase))

    def test_net_profit_treats_missing_shipping_as_zero(self) -> None:
        self.assertEqual(net_profit(100, 40, Decimal('10'), None), Decimal('50'))
        self.assertEqual(net_profit(100, 40, Decimal('10'), Decimal('5')), Decimal('45'))

    def test_to_decimal_goes_through_str(self) -> None:
        self.assertEqual(to_decimal(0.1), Decimal('0.1'))
        with self.assertRaises(ValueError):
            to_decimal('abc')


class PalletProfitTests(unittest.TestCase):
    def test_pallet_profit_counts_sold_items_fees_and_expense_shares(self) -> None:
        pallet = _pallet()
        items = [
            _item(1, status=ItemStatus.SOLD, sale_price=Decimal('80'), platform_fee=Decimal('8'), shipping_cost=Decimal('5')),
            _item(2, status=ItemStatus.SOLD, sale_price=Decimal('70')),
            _item(3, status=ItemStatus.LISTED, listing_price=Decimal('40'), retail_price=Decimal('90')),
            _item(4, status=ItemStatus.UNLISTED, retail_price=Decimal('25')),
        ]
        expenses = [
            ExpenseRecord(
                id=1,
                amount=Decimal('40'),
                category=ExpenseCategory.SUPPLIES,
                expense_date=date(2024, 1, 10),
                pallet_ids=(1, 2),
            )
        ]

        result = pallet_profit(pallet, items, expenses)

        self.assertEqual(result.total_revenue, Decimal('150'))
        self.assertEqual(result.selling_costs, Decimal('13'))
        self.assertEqual(result.expenses, Decimal('20'))
        self.assertEqual(result.total_cost, Decimal('143'))
        self.assertEqual(result.net_profit, Decimal('7'))
        self.assertEqual(result.sold_items_count, 2)
        self.assertEqual(result.unsold_items_count, 2)
        self.assertEqual(result.unsold_value, Decimal('65'))

    def test_missing_pallet_yields_zero_result(self) -> None:
        result = pallet_profit(None, [_item(1), _item(2)], [])
        self.assertEqual(result.net_profit, Decimal('0'))
        self.assertEqual(result.roi, Decimal('0'))
        self.assertEqual(result.total_items_count, 2)

    def test_free_pallet_with_profit_reports_hundred_percent(self) -> None:
        pallet = _pallet(purchase_cost=Decimal('0'), sales_tax=None)
        result = pallet_profit(pallet, [_item(1, status=ItemStatus.SOLD, sale_price=Decimal('20'))], [])
        self.assertEqual(result.roi, Decimal('100'))

    def test_expense_share_without_links_is_whole_amount(self) -> None:
        expense = ExpenseRecord(id=1, amount=Decimal('12'), category=ExpenseCategory.GAS, expense_date=date(2024, 1, 1))
        self.assertEqual(expense_share(expense), Decimal('12'))


class TimingTests(unittest.TestCase):
    def test_days_to_sell(self) -> None:
        item = _item(1, status=ItemStatus.SOLD, listing_date=date(2024, 1, 1), sale_date=date(2024, 1, 5))
        self.assertEqual(days_to_sell(item, NOW), 4)
        self.assertIsNone(days_to_sell(_item(2, status=ItemStatus.LISTED, listing_date=date(2024, 1, 1)), NOW))

    def test_days_since_listed_and_stale(self) -> None:
        item = _item(1, status=ItemStatus.LISTED, listing_date=date(2024, 2, 1))
        self.assertEqual(days_since_listed(item, NOW), 43)
        self.assertTrue(is_item_stale(item, 30, NOW))
        self.assertFalse(is_item_stale(item, 60, NOW))

    def test_sold_items_are_never_stale(self) -> None:
        item = _item(1, status=ItemStatus.SOLD, listing_date=date(2023, 1, 1), sale_price=Decimal('5'))
        self.assertFalse(is_item_stale(item, 30, NOW))

    def test_average_days_to_sell(self) -> None:
        items = [
            _item(1, status=ItemStatus.SOLD, listing_date=date(2024, 1, 1), sale_date=date(2024, 1, 3)),
            _item(2, status=ItemStatus.SOLD, listing_date=date(2024, 1, 1), sale_date=date(2024, 1, 7)),
            _item(3, status=ItemStatus.SOLD),
        ]
        self.assertEqual(average_days_to_sell(items), Decimal('4'))
        self.assertIsNone(average_days_to_sell([_item(4)]))


class FormattingTests(unittest.TestCase):
    def test_format_currency(self) -> None:
        self.assertEqual(format_currency(Decimal('1234.5')), '$1,234.50')
        self.assertEqual(format_currency(Decimal('-1')), '-$1.00')
        self.assertEqual(format_currency(Decimal('30')), '$30.00')

    def test_format_roi(self) -> None:
        self.assertEqual(format_roi(Decimal('12.34')), '+12.3%')
        self.assertEqual(format_roi(Decimal('-5')), '-5.0%')
        self.assertEqual(format_roi(Decimal('-0.01')), '+0.0%')

    def test_round_percent_rounds_half_up(self) -> None:
        self.assertEqual(round_percent(Decimal('199.5')), 200)
        self.assertEqual(round_percent(Decimal('42.49')), 42)


if __name__ == '__main__':
    unittest.main()
