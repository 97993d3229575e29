from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from palletpro.models import ItemStatus
from palletpro.services.period_filter_service import local_now, to_local_datetime
from palletpro.services.snapshot_provider import ExpenseRecord, ItemRecord, PalletRecord

ZERO = Decimal('0')
HUNDRED = Decimal('100')
CENTS = Decimal('0.01')
_ONE_DAY = timedelta(days=1)

Money = Decimal | int | float | str


def to_decimal(value: Money | None) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        # str() keeps floats like 0.1 from dragging in their binary expansion.
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f'Invalid money value: {value!r}') from exc


def _or_zero(value: Money | None) -> Decimal:
    converted = to_decimal(value)
    return ZERO if converted is None else converted


def cost_basis(allocated_cost: Money | None, purchase_cost: Money | None) -> Decimal:
    """Allocated cost wins for pallet items; purchase cost covers individual items."""
    allocated = to_decimal(allocated_cost)
    if allocated is not None:
        return allocated
    return _or_zero(purchase_cost)


def item_profit(sale_price: Money | None, allocated_cost: Money | None, purchase_cost: Money | None) -> Decimal:
    sale = to_decimal(sale_price)
    if sale is None:
        return ZERO
    return sale - cost_basis(allocated_cost, purchase_cost)


def item_roi(sale_price: Money | None, allocated_cost: Money | None, purchase_cost: Money | None) -> Decimal:
    sale = to_decimal(sale_price)
    if sale is None:
        return ZERO
    cost = cost_basis(allocated_cost, purchase_cost)
    if cost == 0:
        return HUNDRED if sale > 0 else ZERO
    return (sale - cost) / cost * HUNDRED


def net_profit(sale_price: Money, cost: Money, platform_fee: Money | None, shipping_cost: Money | None) -> Decimal:
    return _or_zero(sale_price) - _or_zero(cost) - _or_zero(platform_fee) - _or_zero(shipping_cost)


def item_cost(item: ItemRecord) -> Decimal:
    return cost_basis(item.allocated_cost, item.purchase_cost)


def item_net_profit(item: ItemRecord) -> Decimal:
    if item.sale_price is None:
        return ZERO
    return net_profit(item.sale_price, item_cost(item), item.platform_fee, item.shipping_cost)


def selling_costs(item: ItemRecord) -> Decimal:
    return _or_zero(item.platform_fee) + _or_zero(item.shipping_cost)


def expense_share(expense: ExpenseRecord) -> Decimal:
    """Portion of ``expense`` charged to each pallet it is linked to."""
    return expense.amount / max(len(expense.pallet_ids), 1)


@dataclass(frozen=True)
class PalletProfitResult:
    total_revenue: Decimal
    total_cost: Decimal
    pallet_cost: Decimal
    sales_tax: Decimal
    selling_costs: Decimal
    expenses: Decimal
    net_profit: Decimal
    roi: Decimal
    sold_items_count: int
    total_items_count: int
    unsold_items_count: int
    unsold_value: Decimal


def is_sold(item: ItemRecord) -> bool:
    return item.status == ItemStatus.SOLD and item.sale_price is not None


def pallet_profit(
    pallet: PalletRecord | None,
    items: Iterable[ItemRecord],
    expenses: Iterable[ExpenseRecord],
) -> PalletProfitResult:
    """Profit for one pallet.

    ``items`` are the pallet's members and ``expenses`` the expenses linked to
    it; an expense shared by several pallets contributes only its share.
    """
    items = list(items)
    if pallet is None:
        return PalletProfitResult(
            total_revenue=ZERO,
            total_cost=ZERO,
            pallet_cost=ZERO,
            sales_tax=ZERO,
            selling_costs=ZERO,
            expenses=ZERO,
            net_profit=ZERO,
            roi=ZERO,
            sold_items_count=0,
            total_items_count=len(items),
            unsold_items_count=len(items),
            unsold_value=ZERO,
        )

    sold = [item for item in items if is_sold(item)]
    unsold = [item for item in items if item.status != ItemStatus.SOLD]

    total_revenue = sum((item.sale_price for item in sold), ZERO)
    fees = sum((selling_costs(item) for item in sold), ZERO)
    expense_total = sum((expense_share(expense) for expense in expenses), ZERO)
    sales_tax = _or_zero(pallet.sales_tax)
    total_cost = pallet.purchase_cost + sales_tax + fees + expense_total
    profit = total_revenue - total_cost

    if total_cost > 0:
        roi = profit / total_cost * HUNDRED
    else:
        roi = HUNDRED if profit > 0 else ZERO

    unsold_value = sum(
        (_or_zero(item.listing_price if item.listing_price is not None else item.retail_price) for item in unsold),
        ZERO,
    )

    return PalletProfitResult(
        total_revenue=total_revenue,
        total_cost=total_cost,
        pallet_cost=pallet.purchase_cost,
        sales_tax=sales_tax,
        selling_costs=fees,
        expenses=expense_total,
        net_profit=profit,
        roi=roi,
        sold_items_count=len(sold),
        total_items_count=len(items),
        unsold_items_count=len(unsold),
        unsold_value=unsold_value,
    )


def expenses_for_pallet(pallet_id: int, expenses: Iterable[ExpenseRecord]) -> list[ExpenseRecord]:
    return [expense for expense in expenses if pallet_id in expense.pallet_ids]


def whole_days_between(start: datetime, end: datetime) -> int:
    return (end - start) // _ONE_DAY


def days_to_sell(item: ItemRecord, reference: datetime | None = None) -> int | None:
    if item.status != ItemStatus.SOLD or item.listing_date is None or item.sale_date is None:
        return None
    ref = reference if reference is not None else local_now()
    return whole_days_between(to_local_datetime(item.listing_date, ref), to_local_datetime(item.sale_date, ref))


def days_since_listed(item: ItemRecord, now: datetime | None = None) -> int | None:
    if item.listing_date is None:
        return None
    now = now if now is not None else local_now()
    return whole_days_between(to_local_datetime(item.listing_date, now), now)


def is_item_stale(item: ItemRecord, threshold_days: int = 30, now: datetime | None = None) -> bool:
    if item.status == ItemStatus.SOLD:
        return False
    days = days_since_listed(item, now)
    return days is not None and days >= threshold_days


def average_days_to_sell(items: Iterable[ItemRecord]) -> Decimal | None:
    durations = [days for days in (days_to_sell(item) for item in items) if days is not None]
    if not durations:
        return None
    return Decimal(sum(durations)) / len(durations)


def round_percent(value: Decimal) -> int:
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def format_currency(amount: Money) -> str:
    value = _or_zero(amount).quantize(CENTS, rounding=ROUND_HALF_UP)
    if value < 0:
        return f'-${-value:,.2f}'
    return f'${value:,.2f}'


def format_roi(roi: Money) -> str:
    value = _or_zero(roi).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)
    if value == 0:
        value = abs(value)
    sign = '+' if value >= 0 else ''
    return f'{sign}{value}%'
