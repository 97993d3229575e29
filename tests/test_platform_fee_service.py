from __future__ import annotations

import unittest
from decimal import Decimal

from palletpro.models import SalesPlatform
from palletpro.services.platform_fee_service import build_fee_table, calculate_platform_fee


class PlatformFeeTests(unittest.TestCase):
    def test_percentage_plus_fixed(self) -> None:
        self.assertEqual(calculate_platform_fee(Decimal('100'), SalesPlatform.EBAY), Decimal('13.55'))

    def test_poshmark_flat_fee_below_threshold(self) -> None:
        self.assertEqual(calculate_platform_fee(Decimal('10'), 'poshmark'), Decimal('2.95'))
        self.assertEqual(calculate_platform_fee(Decimal('20'), 'poshmark'), Decimal('4.00'))

    def test_minimum_fee_applies(self) -> None:
        self.assertEqual(calculate_platform_fee(Decimal('5'), SalesPlatform.FACEBOOK), Decimal('0.40'))
        self.assertEqual(calculate_platform_fee(Decimal('10'), SalesPlatform.OFFERUP), Decimal('1.99'))

    def test_auction_rule_only_when_requested(self) -> None:
        self.assertEqual(calculate_platform_fee(Decimal('100'), SalesPlatform.WHATNOT, is_auction=True), Decimal('8.30'))
        self.assertEqual(calculate_platform_fee(Decimal('100'), SalesPlatform.WHATNOT), Decimal('11.20'))
        # Platforms without an auction schedule keep their normal fee.
        self.assertEqual(calculate_platform_fee(Decimal('100'), SalesPlatform.MERCARI, is_auction=True), Decimal('10.00'))

    def test_free_and_unknown_platforms(self) -> None:
        self.assertEqual(calculate_platform_fee(Decimal('100'), SalesPlatform.CRAIGSLIST), Decimal('0'))
        self.assertEqual(calculate_platform_fee(Decimal('100'), None), Decimal('0'))
        self.assertEqual(calculate_platform_fee(Decimal('100'), 'etsy'), Decimal('0'))

    def test_non_positive_price_has_no_fee(self) -> None:
        self.assertEqual(calculate_platform_fee(Decimal('0'), SalesPlatform.EBAY), Decimal('0'))
        self.assertEqual(calculate_platform_fee(None, SalesPlatform.EBAY), Decimal('0'))

    def test_overrides_merge_over_defaults(self) -> None:
        table = build_fee_table({'Mercari': {'percent': '12.9', 'fixed': '0.50'}})
        self.assertEqual(calculate_platform_fee(Decimal('100'), SalesPlatform.MERCARI, table=table), Decimal('13.40'))
        self.assertEqual(calculate_platform_fee(Decimal('100'), SalesPlatform.EBAY, table=table), Decimal('13.55'))

    def test_unknown_override_platform_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            build_fee_table({'etsy': {'percent': '6.5'}})


if __name__ == '__main__':
    unittest.main()
