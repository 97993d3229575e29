"""Dashboard analytics over a user snapshot.

Two costing models are used. Without a date range a pallet is charged its
full purchase cost, tax and linked expenses. With a date range only the
items sold inside it are counted, each carrying its own cost basis and
selling costs (cost of goods sold), so a quiet period does not show the
whole pallet as a loss.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum

from palletpro.models import ExpenseCategory, ItemStatus, SalesPlatform, SourceType
from palletpro.services.period_filter_service import (
    DateLike,
    TimePeriod,
    filter_by_date_range,
    get_period_label,
    get_period_start,
    get_previous_period_range,
    local_now,
    to_local_datetime,
)
from palletpro.services.profit_service import (
    HUNDRED,
    ZERO,
    days_since_listed,
    days_to_sell,
    expenses_for_pallet,
    is_item_stale,
    is_sold,
    item_cost,
    item_net_profit,
    pallet_profit,
    selling_costs,
)
from palletpro.services.snapshot_provider import ExpenseRecord, ItemRecord, PalletRecord

UNKNOWN_SUPPLIER = 'Unknown'
UNSPECIFIED_SOURCE = 'Unspecified'

SOURCE_TYPE_LABELS: dict[SourceType, str] = {
    SourceType.PALLET: 'Pallet',
    SourceType.THRIFT: 'Thrift Store',
    SourceType.GARAGE_SALE: 'Garage Sale',
    SourceType.RETAIL_ARBITRAGE: 'Retail Arbitrage',
    SourceType.MYSTERY_BOX: 'Mystery Box',
    SourceType.OTHER: 'Other',
}

PLATFORM_LABELS: dict[SalesPlatform, str] = {
    SalesPlatform.EBAY: 'eBay',
    SalesPlatform.POSHMARK: 'Poshmark',
    SalesPlatform.MERCARI: 'Mercari',
    SalesPlatform.WHATNOT: 'Whatnot',
    SalesPlatform.FACEBOOK: 'Facebook Marketplace',
    SalesPlatform.OFFERUP: 'OfferUp',
    SalesPlatform.CRAIGSLIST: 'Craigslist',
    SalesPlatform.OTHER: 'Other',
}

# Overhead categories on the profit and loss statement, in display order.
# The remaining categories are already counted per trip or per sale.
OPERATING_EXPENSE_LABELS: dict[ExpenseCategory, str] = {
    ExpenseCategory.SUPPLIES: 'Supplies',
    ExpenseCategory.STORAGE: 'Storage',
    ExpenseCategory.SUBSCRIPTIONS: 'Subscriptions',
    ExpenseCategory.EQUIPMENT: 'Equipment',
    ExpenseCategory.OTHER: 'Other',
}


class TrendGranularity(str, Enum):
    DAILY = 'daily'
    WEEKLY = 'weekly'
    MONTHLY = 'monthly'


@dataclass(frozen=True)
class DateRange:
    start: DateLike | None = None
    end: DateLike | None = None

    @property
    def is_bounded(self) -> bool:
        return self.start is not None or self.end is not None


@dataclass(frozen=True)
class COGSResult:
    total_revenue: Decimal
    total_cogs: Decimal
    total_fees: Decimal
    net_profit: Decimal


@dataclass(frozen=True)
class HeroMetrics:
    total_profit: Decimal
    total_items_sold: int
    average_roi: Decimal
    active_inventory_value: Decimal


@dataclass(frozen=True)
class RetailMetrics:
    total_retail_value: Decimal
    retail_recovery_rate: Decimal
    cost_per_dollar_retail: Decimal


@dataclass(frozen=True)
class PalletAnalytics:
    id: int
    name: str
    source_type: SourceType
    source_name: str | None
    profit: Decimal
    roi: Decimal
    total_cost: Decimal
    total_revenue: Decimal
    item_count: int
    sold_count: int
    average_days_to_sell: Decimal | None
    sell_through_rate: Decimal
    retail_metrics: RetailMetrics | None = None


@dataclass(frozen=True)
class GroupComparison:
    label: str
    pallet_count: int
    total_profit: Decimal
    total_cost: Decimal
    average_roi: Decimal
    average_profit_per_pallet: Decimal
    average_items_per_pallet: Decimal
    total_items_sold: int
    average_days_to_sell: Decimal | None
    sell_through_rate: Decimal
    is_mystery_box: bool = False


@dataclass(frozen=True)
class StaleItem:
    id: int
    name: str
    pallet_id: int | None
    pallet_name: str | None
    days_listed: int
    listing_price: Decimal | None


@dataclass(frozen=True)
class TrendPoint:
    date: str
    profit: Decimal
    revenue: Decimal
    items_sold: int


@dataclass(frozen=True)
class SalesSummary:
    items_sold: int
    revenue: Decimal
    profit: Decimal
    average_sale_price: Decimal


@dataclass(frozen=True)
class PeriodSummary:
    period: TimePeriod
    label: str
    current: SalesSummary
    # None for the all-time period, which has nothing before it.
    previous: SalesSummary | None


@dataclass(frozen=True)
class RevenueLines:
    gross_sales: Decimal
    items_sold: int
    average_sale_price: Decimal


@dataclass(frozen=True)
class COGSLines:
    pallet_purchases: Decimal
    pallet_item_count: int
    individual_item_purchases: Decimal
    individual_item_count: int
    sales_tax: Decimal
    total_cogs: Decimal


@dataclass(frozen=True)
class SellingExpenses:
    platform_fees: Decimal
    shipping_costs: Decimal
    total_selling_expenses: Decimal


@dataclass(frozen=True)
class PlatformLine:
    platform: str
    sales: Decimal
    fees: Decimal
    count: int


@dataclass(frozen=True)
class ExpenseCategoryLine:
    category: ExpenseCategory
    label: str
    amount: Decimal
    count: int


@dataclass(frozen=True)
class ProfitLossSummary:
    period_start: date
    period_end: date
    revenue: RevenueLines
    cogs: COGSLines
    gross_profit: Decimal
    gross_margin: Decimal
    selling_expenses: SellingExpenses
    platform_breakdown: list[PlatformLine]
    operating_expenses: list[ExpenseCategoryLine]
    total_operating_expenses: Decimal
    total_expenses: Decimal
    net_profit: Decimal
    net_margin: Decimal


@dataclass(frozen=True)
class _PalletTotals:
    profit: Decimal
    cost: Decimal
    revenue: Decimal
    item_count: int
    sold_count: int
    days_to_sell: tuple[int, ...]


def source_type_label(source_type: SourceType | str) -> str:
    try:
        return SOURCE_TYPE_LABELS[SourceType(source_type)]
    except ValueError:
        return str(source_type)


def _roi(profit: Decimal, cost: Decimal) -> Decimal:
    return profit / cost * HUNDRED if cost > 0 else ZERO


def _percent(part: int, whole: int) -> Decimal:
    return Decimal(part) / Decimal(whole) * HUNDRED if whole > 0 else ZERO


def _average_days(days: Sequence[int]) -> Decimal | None:
    if not days:
        return None
    return Decimal(sum(days)) / len(days)


def _sold_in_range(items: Iterable[ItemRecord], date_range: DateRange | None, reference: datetime | None) -> list[ItemRecord]:
    sold = [item for item in items if is_sold(item)]
    if date_range is None or not date_range.is_bounded:
        return sold
    return filter_by_date_range(sold, field='sale_date', start=date_range.start, end=date_range.end, reference=reference)


def calculate_cogs(items: Iterable[ItemRecord]) -> COGSResult:
    sold = [item for item in items if is_sold(item)]
    revenue = sum((item.sale_price for item in sold), ZERO)
    cogs = sum((item_cost(item) for item in sold), ZERO)
    fees = sum((selling_costs(item) for item in sold), ZERO)
    return COGSResult(total_revenue=revenue, total_cogs=cogs, total_fees=fees, net_profit=revenue - cogs - fees)


def retail_metrics(items: Iterable[ItemRecord], purchase_cost: Decimal) -> RetailMetrics | None:
    """Deal quality of a pallet measured against the retail value of its contents."""
    priced = [item for item in items if item.retail_price is not None and item.retail_price > 0]
    total_retail = sum((item.retail_price for item in priced), ZERO)
    if total_retail <= 0:
        return None

    sold = [item for item in priced if is_sold(item)]
    sold_retail = sum((item.retail_price for item in sold), ZERO)
    sold_revenue = sum((item.sale_price for item in sold), ZERO)
    recovery = sold_revenue / sold_retail * HUNDRED if sold_retail > 0 else ZERO
    return RetailMetrics(
        total_retail_value=total_retail,
        retail_recovery_rate=recovery,
        cost_per_dollar_retail=purchase_cost / total_retail,
    )


def _pallet_totals(
    pallet: PalletRecord,
    items: Sequence[ItemRecord],
    expenses: Sequence[ExpenseRecord],
    date_range: DateRange | None,
    reference: datetime | None,
) -> _PalletTotals:
    members = [item for item in items if item.pallet_id == pallet.id]
    sold_days = tuple(days for days in (days_to_sell(item, reference) for item in members) if days is not None)

    if date_range is not None and date_range.is_bounded:
        sold = _sold_in_range(members, date_range, reference)
        cogs = calculate_cogs(sold)
        cost = cogs.total_cogs + cogs.total_fees
        return _PalletTotals(
            profit=cogs.net_profit,
            cost=cost,
            revenue=cogs.total_revenue,
            item_count=len(members),
            sold_count=len(sold),
            days_to_sell=sold_days,
        )

    result = pallet_profit(pallet, members, expenses_for_pallet(pallet.id, expenses))
    return _PalletTotals(
        profit=result.net_profit,
        cost=result.total_cost,
        revenue=result.total_revenue,
        item_count=len(members),
        sold_count=result.sold_items_count,
        days_to_sell=sold_days,
    )


def _inventory_value(item: ItemRecord) -> Decimal:
    for value in (item.listing_price, item.retail_price, item.purchase_cost):
        if value is not None:
            return value
    return ZERO


def hero_metrics(
    pallets: Sequence[PalletRecord],
    items: Sequence[ItemRecord],
    expenses: Sequence[ExpenseRecord],
    start: DateLike | None = None,
    end: DateLike | None = None,
    reference: datetime | None = None,
) -> HeroMetrics:
    date_range = DateRange(start=start, end=end)
    sold = _sold_in_range(items, date_range, reference)

    if date_range.is_bounded:
        cogs = calculate_cogs(sold)
        total_profit = cogs.net_profit
        total_cost = cogs.total_cogs + cogs.total_fees
    else:
        total_profit = ZERO
        total_cost = ZERO
        for pallet in pallets:
            totals = _pallet_totals(pallet, items, expenses, None, reference)
            total_profit += totals.profit
            total_cost += totals.cost
        for item in items:
            if item.pallet_id is not None or not is_sold(item):
                continue
            cost = item.purchase_cost if item.purchase_cost is not None else ZERO
            fees = selling_costs(item)
            total_profit += item.sale_price - cost - fees
            total_cost += cost + fees

    active_value = sum((_inventory_value(item) for item in items if item.status != ItemStatus.SOLD), ZERO)
    return HeroMetrics(
        total_profit=total_profit,
        total_items_sold=len(sold),
        average_roi=_roi(total_profit, total_cost),
        active_inventory_value=active_value,
    )


def pallet_leaderboard(
    pallets: Sequence[PalletRecord],
    items: Sequence[ItemRecord],
    expenses: Sequence[ExpenseRecord],
    start: DateLike | None = None,
    end: DateLike | None = None,
    reference: datetime | None = None,
) -> list[PalletAnalytics]:
    """Per-pallet performance, most profitable first."""
    date_range = DateRange(start=start, end=end)
    rows: list[PalletAnalytics] = []
    for pallet in pallets:
        totals = _pallet_totals(pallet, items, expenses, date_range, reference)
        members = [item for item in items if item.pallet_id == pallet.id]
        rows.append(
            PalletAnalytics(
                id=pallet.id,
                name=pallet.name,
                source_type=pallet.source_type,
                source_name=pallet.source_name,
                profit=totals.profit,
                roi=_roi(totals.profit, totals.cost),
                total_cost=totals.cost,
                total_revenue=totals.revenue,
                item_count=totals.item_count,
                sold_count=totals.sold_count,
                average_days_to_sell=_average_days(totals.days_to_sell),
                sell_through_rate=_percent(totals.sold_count, totals.item_count),
                retail_metrics=retail_metrics(members, pallet.purchase_cost),
            )
        )
    return sorted(rows, key=lambda row: row.profit, reverse=True)


def _compare_groups(
    groups: dict[str, list[PalletRecord]],
    items: Sequence[ItemRecord],
    expenses: Sequence[ExpenseRecord],
    date_range: DateRange,
    reference: datetime | None,
) -> list[GroupComparison]:
    comparisons: list[GroupComparison] = []
    for label, group in groups.items():
        profit = cost = ZERO
        item_count = sold_count = 0
        days: list[int] = []
        for pallet in group:
            totals = _pallet_totals(pallet, items, expenses, date_range, reference)
            profit += totals.profit
            cost += totals.cost
            item_count += totals.item_count
            sold_count += totals.sold_count
            days.extend(totals.days_to_sell)

        pallet_count = len(group)
        comparisons.append(
            GroupComparison(
                label=label,
                pallet_count=pallet_count,
                total_profit=profit,
                total_cost=cost,
                average_roi=_roi(profit, cost),
                average_profit_per_pallet=profit / pallet_count,
                average_items_per_pallet=Decimal(item_count) / pallet_count,
                total_items_sold=sold_count,
                average_days_to_sell=_average_days(days),
                sell_through_rate=_percent(sold_count, item_count),
                is_mystery_box=any(pallet.source_type == SourceType.MYSTERY_BOX for pallet in group),
            )
        )
    return comparisons


def _group_pallets(pallets: Iterable[PalletRecord], label_for) -> dict[str, list[PalletRecord]]:
    groups: dict[str, list[PalletRecord]] = {}
    for pallet in pallets:
        groups.setdefault(label_for(pallet), []).append(pallet)
    return groups


def _label_or(value: str | None, fallback: str) -> str:
    cleaned = (value or '').strip()
    return cleaned or fallback


def source_type_comparison(
    pallets: Sequence[PalletRecord],
    items: Sequence[ItemRecord],
    expenses: Sequence[ExpenseRecord],
    start: DateLike | None = None,
    end: DateLike | None = None,
    reference: datetime | None = None,
) -> list[GroupComparison]:
    """Grouped by the ``SourceType`` enum value, best ROI first."""
    groups = _group_pallets(pallets, lambda pallet: SourceType(pallet.source_type).value)
    comparisons = _compare_groups(groups, items, expenses, DateRange(start, end), reference)
    return sorted(comparisons, key=lambda row: row.average_roi, reverse=True)


def supplier_comparison(
    pallets: Sequence[PalletRecord],
    items: Sequence[ItemRecord],
    expenses: Sequence[ExpenseRecord],
    start: DateLike | None = None,
    end: DateLike | None = None,
    reference: datetime | None = None,
) -> list[GroupComparison]:
    groups = _group_pallets(pallets, lambda pallet: _label_or(pallet.supplier, UNKNOWN_SUPPLIER))
    comparisons = _compare_groups(groups, items, expenses, DateRange(start, end), reference)
    return sorted(comparisons, key=lambda row: row.total_profit, reverse=True)


def source_label_comparison(
    pallets: Sequence[PalletRecord],
    items: Sequence[ItemRecord],
    expenses: Sequence[ExpenseRecord],
    start: DateLike | None = None,
    end: DateLike | None = None,
    reference: datetime | None = None,
) -> list[GroupComparison]:
    """Grouped by the freeform ``source_name`` label, e.g. "Amazon Monster"."""
    groups = _group_pallets(pallets, lambda pallet: _label_or(pallet.source_name, UNSPECIFIED_SOURCE))
    comparisons = _compare_groups(groups, items, expenses, DateRange(start, end), reference)
    return sorted(comparisons, key=lambda row: row.total_profit, reverse=True)


def stale_items(
    items: Sequence[ItemRecord],
    pallets: Sequence[PalletRecord],
    threshold_days: int = 30,
    now: datetime | None = None,
) -> list[StaleItem]:
    """Unsold items listed for at least ``threshold_days``, oldest first."""
    now = now if now is not None else local_now()
    pallet_names = {pallet.id: pallet.name for pallet in pallets}
    rows = [
        StaleItem(
            id=item.id,
            name=item.name,
            pallet_id=item.pallet_id,
            pallet_name=pallet_names.get(item.pallet_id) if item.pallet_id is not None else None,
            days_listed=days_since_listed(item, now) or 0,
            listing_price=item.listing_price,
        )
        for item in items
        if is_item_stale(item, threshold_days, now)
    ]
    return sorted(rows, key=lambda row: row.days_listed, reverse=True)


def _bucket_start(day: date, granularity: TrendGranularity) -> date:
    if granularity == TrendGranularity.DAILY:
        return day
    if granularity == TrendGranularity.WEEKLY:
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def profit_trend(
    items: Sequence[ItemRecord],
    granularity: TrendGranularity | str = TrendGranularity.MONTHLY,
    start: DateLike | None = None,
    end: DateLike | None = None,
    reference: datetime | None = None,
) -> list[TrendPoint]:
    """Sold-item profit bucketed by day, Monday-start week, or month."""
    granularity = TrendGranularity(granularity)
    ref = reference if reference is not None else local_now()
    sold = [item for item in _sold_in_range(items, DateRange(start, end), ref) if item.sale_date is not None]

    buckets: dict[date, list[ItemRecord]] = {}
    for item in sold:
        day = to_local_datetime(item.sale_date, ref).date()
        buckets.setdefault(_bucket_start(day, granularity), []).append(item)

    return [
        TrendPoint(
            date=bucket.isoformat(),
            profit=sum((item_net_profit(item) for item in members), ZERO),
            revenue=sum((item.sale_price for item in members), ZERO),
            items_sold=len(members),
        )
        for bucket, members in sorted(buckets.items())
    ]


def summarize_sales(
    items: Sequence[ItemRecord],
    start: DateLike | None = None,
    end: DateLike | None = None,
    reference: datetime | None = None,
) -> SalesSummary:
    sold = _sold_in_range(items, DateRange(start, end), reference)
    revenue = sum((item.sale_price for item in sold), ZERO)
    profit = sum((item_net_profit(item) for item in sold), ZERO)
    average = revenue / len(sold) if sold else ZERO
    return SalesSummary(items_sold=len(sold), revenue=revenue, profit=profit, average_sale_price=average)


def period_summary(
    items: Sequence[ItemRecord],
    period: TimePeriod | str,
    reference: datetime | None = None,
) -> PeriodSummary:
    """Sales for the current period alongside the same span just before it."""
    period = TimePeriod(period)
    ref = reference if reference is not None else local_now()

    if period == TimePeriod.ALL:
        return PeriodSummary(
            period=period,
            label=get_period_label(period),
            current=summarize_sales(items, reference=ref),
            previous=None,
        )

    previous_range = get_previous_period_range(period, ref)
    return PeriodSummary(
        period=period,
        label=get_period_label(period),
        current=summarize_sales(items, start=get_period_start(period, ref), end=ref, reference=ref),
        previous=summarize_sales(items, start=previous_range.start, end=previous_range.end, reference=ref),
    )


def _earliest_activity(
    pallets: Sequence[PalletRecord],
    items: Sequence[ItemRecord],
    expenses: Sequence[ExpenseRecord],
    ref: datetime,
) -> date:
    days = [pallet.purchase_date for pallet in pallets]
    days += [expense.expense_date for expense in expenses]
    for item in items:
        days += [day for day in (item.listing_date, item.sale_date) if day is not None]
    return min(days) if days else ref.date()


def _platform_breakdown(sold: Sequence[ItemRecord]) -> list[PlatformLine]:
    groups: dict[SalesPlatform, list[ItemRecord]] = {}
    for item in sold:
        groups.setdefault(item.platform or SalesPlatform.OTHER, []).append(item)
    lines = [
        PlatformLine(
            platform=PLATFORM_LABELS.get(platform, platform.value),
            sales=sum((item.sale_price for item in members), ZERO),
            fees=sum((item.platform_fee or ZERO for item in members), ZERO),
            count=len(members),
        )
        for platform, members in groups.items()
    ]
    return sorted(lines, key=lambda line: line.sales, reverse=True)


def _operating_expenses(expenses: Sequence[ExpenseRecord]) -> list[ExpenseCategoryLine]:
    lines = []
    for category, label in OPERATING_EXPENSE_LABELS.items():
        matching = [expense for expense in expenses if expense.category == category]
        amount = sum((expense.amount for expense in matching), ZERO)
        if amount > 0:
            lines.append(ExpenseCategoryLine(category=category, label=label, amount=amount, count=len(matching)))
    return lines


def profit_loss_summary(
    pallets: Sequence[PalletRecord],
    items: Sequence[ItemRecord],
    expenses: Sequence[ExpenseRecord],
    start: DateLike | None = None,
    end: DateLike | None = None,
    reference: datetime | None = None,
) -> ProfitLossSummary:
    """Profit and loss statement on an accrual basis.

    Cost of goods covers only the items sold in the range. Each pallet's
    sales tax is charged in proportion to the share of its items sold.
    Overhead counts the expenses dated inside the range. Mileage deductions
    are not tracked here.
    """
    ref = reference if reference is not None else local_now()
    date_range = DateRange(start=start, end=end)
    sold = _sold_in_range(items, date_range, ref)
    in_range_expenses = filter_by_date_range(expenses, field='expense_date', start=start, end=end, reference=ref)

    gross_sales = sum((item.sale_price for item in sold), ZERO)
    revenue = RevenueLines(
        gross_sales=gross_sales,
        items_sold=len(sold),
        average_sale_price=gross_sales / len(sold) if sold else ZERO,
    )

    sold_pallet_items = [item for item in sold if item.pallet_id is not None]
    sold_individual_items = [item for item in sold if item.pallet_id is None and item.purchase_cost is not None]
    pallet_purchases = sum((item_cost(item) for item in sold_pallet_items), ZERO)
    individual_purchases = sum((item.purchase_cost for item in sold_individual_items), ZERO)

    sales_tax = ZERO
    for pallet in pallets:
        sold_from_pallet = sum(1 for item in sold_pallet_items if item.pallet_id == pallet.id)
        if not sold_from_pallet or not pallet.sales_tax:
            continue
        pallet_size = sum(1 for item in items if item.pallet_id == pallet.id)
        sales_tax += Decimal(sold_from_pallet) / Decimal(pallet_size) * pallet.sales_tax

    total_cogs = pallet_purchases + sales_tax + individual_purchases
    cogs = COGSLines(
        pallet_purchases=pallet_purchases,
        pallet_item_count=len(sold_pallet_items),
        individual_item_purchases=individual_purchases,
        individual_item_count=len(sold_individual_items),
        sales_tax=sales_tax,
        total_cogs=total_cogs,
    )
    gross_profit = gross_sales - total_cogs

    platform_fees = sum((item.platform_fee or ZERO for item in sold), ZERO)
    shipping_costs = sum((item.shipping_cost or ZERO for item in sold), ZERO)
    selling = SellingExpenses(
        platform_fees=platform_fees,
        shipping_costs=shipping_costs,
        total_selling_expenses=platform_fees + shipping_costs,
    )

    operating = _operating_expenses(in_range_expenses)
    total_operating = sum((line.amount for line in operating), ZERO)
    total_expenses = selling.total_selling_expenses + total_operating
    net = gross_profit - total_expenses

    if start is not None:
        period_start = to_local_datetime(start, ref).date()
    else:
        period_start = _earliest_activity(pallets, items, in_range_expenses, ref)
    period_end = to_local_datetime(end, ref).date() if end is not None else ref.date()

    return ProfitLossSummary(
        period_start=period_start,
        period_end=period_end,
        revenue=revenue,
        cogs=cogs,
        gross_profit=gross_profit,
        gross_margin=gross_profit / gross_sales * HUNDRED if gross_sales > 0 else ZERO,
        selling_expenses=selling,
        platform_breakdown=_platform_breakdown(sold),
        operating_expenses=operating,
        total_operating_expenses=total_operating,
        total_expenses=total_expenses,
        net_profit=net,
        net_margin=net / gross_sales * HUNDRED if gross_sales > 0 else ZERO,
    )
