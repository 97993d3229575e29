from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal

from palletpro.models import SalesPlatform
from palletpro.services.profit_service import CENTS, ZERO, Money, to_decimal


@dataclass(frozen=True)
class FeeTier:
    # None means no upper bound.
    upper_bound: Decimal | None
    percent: Decimal = ZERO
    fixed: Decimal = ZERO


@dataclass(frozen=True)
class FeeRule:
    percent: Decimal = ZERO
    fixed: Decimal = ZERO
    minimum: Decimal = ZERO
    tiers: tuple[FeeTier, ...] = ()
    auction_rule: FeeRule | None = field(default=None)

    def fee_for(self, price: Decimal) -> Decimal:
        percent, fixed = self.percent, self.fixed
        for tier in self.tiers:
            if tier.upper_bound is None or price < tier.upper_bound:
                percent, fixed = tier.percent, tier.fixed
                break
        fee = price * percent / Decimal('100') + fixed
        return max(fee, self.minimum)


FeeTable = dict[SalesPlatform, FeeRule]

DEFAULT_FEE_TABLE: FeeTable = {
    SalesPlatform.EBAY: FeeRule(percent=Decimal('13.25'), fixed=Decimal('0.30')),
    SalesPlatform.POSHMARK: FeeRule(
        tiers=(
            FeeTier(upper_bound=Decimal('15'), fixed=Decimal('2.95')),
            FeeTier(upper_bound=None, percent=Decimal('20')),
        ),
    ),
    SalesPlatform.MERCARI: FeeRule(percent=Decimal('10')),
    SalesPlatform.WHATNOT: FeeRule(
        percent=Decimal('10.9'),
        fixed=Decimal('0.30'),
        auction_rule=FeeRule(percent=Decimal('8'), fixed=Decimal('0.30')),
    ),
    SalesPlatform.FACEBOOK: FeeRule(percent=Decimal('5'), minimum=Decimal('0.40')),
    SalesPlatform.OFFERUP: FeeRule(percent=Decimal('12.9'), minimum=Decimal('1.99')),
    SalesPlatform.CRAIGSLIST: FeeRule(),
    SalesPlatform.OTHER: FeeRule(),
}


def _rule_from_mapping(base: FeeRule | None, raw: dict) -> FeeRule:
    rule = base or FeeRule()
    updates: dict = {}
    for key in ('percent', 'fixed', 'minimum'):
        if key in raw:
            updates[key] = to_decimal(raw[key])
    if 'tiers' in raw:
        updates['tiers'] = tuple(
            FeeTier(
                upper_bound=to_decimal(tier.get('upper_bound')),
                percent=to_decimal(tier.get('percent', 0)),
                fixed=to_decimal(tier.get('fixed', 0)),
            )
            for tier in raw['tiers']
        )
    if 'auction' in raw:
        updates['auction_rule'] = None if raw['auction'] is None else _rule_from_mapping(rule.auction_rule, raw['auction'])
    return replace(rule, **updates)


def build_fee_table(overrides: dict[str, dict] | None = None) -> FeeTable:
    """Merge per-platform overrides (as loaded from settings) over the defaults."""
    table = dict(DEFAULT_FEE_TABLE)
    for platform_key, raw in (overrides or {}).items():
        try:
            platform = SalesPlatform(platform_key.strip().lower())
        except ValueError as exc:
            raise ValueError(f'Unknown platform in fee overrides: {platform_key}') from exc
        table[platform] = _rule_from_mapping(table.get(platform), raw or {})
    return table


def calculate_platform_fee(
    price: Money | None,
    platform: SalesPlatform | str | None,
    is_auction: bool = False,
    table: FeeTable | None = None,
) -> Decimal:
    amount = to_decimal(price)
    if amount is None or amount <= 0 or platform is None:
        return ZERO
    try:
        platform = SalesPlatform(platform)
    except ValueError:
        return ZERO

    rule = (table if table is not None else DEFAULT_FEE_TABLE).get(platform)
    if rule is None:
        return ZERO
    if is_auction and rule.auction_rule is not None:
        rule = rule.auction_rule
    return rule.fee_for(amount).quantize(CENTS, rounding=ROUND_HALF_UP)
