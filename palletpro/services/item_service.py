from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from palletpro.errors import RecordNotFoundError, StaleWriteError, TierLimitError
from palletpro.models import (
    ExpensePallet,
    Item,
    ItemCondition,
    ItemStatus,
    Pallet,
    PalletStatus,
    SalesPlatform,
    SourceType,
)
from palletpro.services.cost_allocation_service import AllocationPlan, plan_add, plan_move, plan_remove, plan_reprice
from palletpro.services.period_filter_service import local_now
from palletpro.services.platform_fee_service import FeeTable, calculate_platform_fee
from palletpro.services.profit_service import to_decimal
from palletpro.services.tier_limits_service import TierLimitChecker

logger = logging.getLogger(__name__)

ITEM_MONEY_FIELDS = (
    'retail_price',
    'listing_price',
    'purchase_cost',
    'sale_price',
    'platform_fee',
    'shipping_cost',
)
ITEM_TEXT_FIELDS = ('name', 'description', 'storage_location', 'barcode', 'notes')
ITEM_EDITABLE_FIELDS = frozenset(
    ITEM_MONEY_FIELDS
    + ITEM_TEXT_FIELDS
    + ('pallet_id', 'quantity', 'condition', 'status', 'sale_date', 'listing_date', 'platform')
)
PALLET_EDITABLE_FIELDS = frozenset(
    {'name', 'supplier', 'source_type', 'source_name', 'purchase_cost', 'sales_tax', 'purchase_date', 'status', 'notes'}
)


@contextmanager
def _transaction(db: Session, entity: str, entity_id: int | None = None) -> Iterator[None]:
    """Commit once on success; surface lost updates as ``StaleWriteError``."""
    try:
        yield
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        logger.warning('Stale write rejected for %s %s', entity, entity_id)
        raise StaleWriteError(entity, entity_id) from exc
    except StaleWriteError:
        db.rollback()
        logger.warning('Stale write rejected for %s %s', entity, entity_id)
        raise
    except Exception:
        db.rollback()
        raise


def _check_version(row: Item | Pallet, expected_version: int | None, entity: str) -> None:
    if expected_version is not None and row.version != expected_version:
        raise StaleWriteError(entity, row.id)


def get_item(db: Session, *, user_id: str, item_id: int) -> Item:
    row = db.execute(select(Item).where(Item.id == item_id, Item.user_id == user_id)).scalar_one_or_none()
    if row is None:
        raise RecordNotFoundError('Item', item_id)
    return row


def get_pallet(db: Session, *, user_id: str, pallet_id: int, for_update: bool = False) -> Pallet:
    stmt = select(Pallet).where(Pallet.id == pallet_id, Pallet.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    row = db.execute(stmt).scalar_one_or_none()
    if row is None:
        raise RecordNotFoundError('Pallet', pallet_id)
    return row


def pallet_members(db: Session, *, pallet_id: int) -> list[Item]:
    return list(db.execute(select(Item).where(Item.pallet_id == pallet_id).order_by(Item.id.asc())).scalars().all())


def _count_for_user(db: Session, model: type[Item] | type[Pallet], user_id: str) -> int:
    return int(db.execute(select(func.count()).select_from(model).where(model.user_id == user_id)).scalar_one())


def _require_capacity(tier_checker: TierLimitChecker, limit_name: str, current_count: int, noun: str) -> None:
    if tier_checker.can_perform(limit_name, current_count):
        return
    required = tier_checker.required_tier_for(limit_name, current_count)
    limit = tier_checker.limit_for(limit_name)
    message = f'The {tier_checker.tier.value} plan allows {limit} {noun}'
    if required is not None:
        message += f'; upgrade to {required.value} to add more'
    raise TierLimitError(limit_name, required.value if required is not None else None, message)


def apply_allocation_plan(db: Session, plan: AllocationPlan) -> None:
    for item_id, allocated_cost in plan.allocations.items():
        row = db.get(Item, item_id)
        if row is None:
            continue
        row.allocated_cost = allocated_cost
    if plan.allocations:
        logger.info('Allocated pallet cost across %s item(s) for pallets %s', len(plan.allocations), plan.pallet_ids)


def _touch_pallet(pallet: Pallet) -> None:
    # Membership changes rewrite the pallet row so concurrent ones conflict on its version.
    pallet.updated_at = func.now()


def _advance_pallet_status(pallet: Pallet) -> None:
    if pallet.status == PalletStatus.UNPROCESSED:
        pallet.status = PalletStatus.PROCESSING
        logger.info('Pallet %s advanced to %s', pallet.id, PalletStatus.PROCESSING.value)


def _clean_text(value: object, field: str, *, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise ValueError(f'{field} is required')
        return None
    cleaned = str(value).strip()
    if not cleaned:
        if required:
            raise ValueError(f'{field} is required')
        return None
    return cleaned


def _clean_money(value: object, field: str) -> Decimal | None:
    amount = to_decimal(value)
    if amount is not None and amount < 0:
        raise ValueError(f'{field} cannot be negative')
    return amount


def _clean_date(value: object, field: str) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise ValueError(f'Invalid {field}') from exc


def _clean_item_fields(fields: dict) -> dict:
    unknown = set(fields) - ITEM_EDITABLE_FIELDS
    if unknown:
        raise ValueError(f'Unknown item fields: {", ".join(sorted(unknown))}')

    cleaned: dict = {}
    for key, value in fields.items():
        if key in ITEM_MONEY_FIELDS:
            cleaned[key] = _clean_money(value, key)
        elif key in ITEM_TEXT_FIELDS:
            cleaned[key] = _clean_text(value, key, required=key == 'name')
        elif key == 'quantity':
            quantity = int(value)
            if quantity < 1:
                raise ValueError('quantity must be at least 1')
            cleaned[key] = quantity
        elif key == 'condition':
            cleaned[key] = ItemCondition(value)
        elif key == 'status':
            cleaned[key] = ItemStatus(value)
        elif key == 'platform':
            cleaned[key] = SalesPlatform(value) if value is not None else None
        elif key in ('sale_date', 'listing_date'):
            cleaned[key] = _clean_date(value, key)
        else:
            cleaned[key] = value
    return cleaned


def _clean_pallet_fields(fields: dict) -> dict:
    unknown = set(fields) - PALLET_EDITABLE_FIELDS
    if unknown:
        raise ValueError(f'Unknown pallet fields: {", ".join(sorted(unknown))}')

    cleaned: dict = {}
    for key, value in fields.items():
        if key == 'name':
            cleaned[key] = _clean_text(value, key, required=True)
        elif key in ('supplier', 'source_name', 'notes'):
            cleaned[key] = _clean_text(value, key)
        elif key == 'purchase_cost':
            amount = _clean_money(value, key)
            if amount is None:
                raise ValueError('purchase_cost is required')
            cleaned[key] = amount
        elif key == 'sales_tax':
            cleaned[key] = _clean_money(value, key)
        elif key == 'purchase_date':
            cleaned[key] = _clean_date(value, key)
        elif key == 'source_type':
            cleaned[key] = SourceType(value)
        elif key == 'status':
            cleaned[key] = PalletStatus(value)
    return cleaned


def _validate_sale(item: Item) -> None:
    if item.status == ItemStatus.SOLD and item.sale_price is None:
        raise ValueError('Sold items need a sale price')


def create_pallet(db: Session, *, user_id: str, fields: dict, tier_checker: TierLimitChecker) -> Pallet:
    cleaned = _clean_pallet_fields(fields)
    if 'name' not in cleaned:
        raise ValueError('name is required')
    if 'purchase_cost' not in cleaned:
        raise ValueError('purchase_cost is required')
    cleaned.setdefault('purchase_date', local_now().date())

    with _transaction(db, 'Pallet'):
        _require_capacity(tier_checker, 'pallets', _count_for_user(db, Pallet, user_id), 'pallets')
        pallet = Pallet(user_id=user_id, **cleaned)
        db.add(pallet)
        db.flush()
        logger.info('Created pallet %s for user %s', pallet.id, user_id)
    return pallet


def update_pallet(
    db: Session,
    *,
    user_id: str,
    pallet_id: int,
    changes: dict,
    expected_version: int | None = None,
) -> Pallet:
    """Edit a pallet; a cost correction reallocates every member in the same commit."""
    cleaned = _clean_pallet_fields(changes)
    with _transaction(db, 'Pallet', pallet_id):
        pallet = get_pallet(db, user_id=user_id, pallet_id=pallet_id)
        _check_version(pallet, expected_version, 'Pallet')

        cost_changed = any(
            key in cleaned and cleaned[key] != getattr(pallet, key) for key in ('purchase_cost', 'sales_tax')
        )
        for key, value in cleaned.items():
            setattr(pallet, key, value)

        if cost_changed:
            apply_allocation_plan(db, plan_reprice(pallet, pallet_members(db, pallet_id=pallet.id)))
        db.flush()
    return pallet


def delete_pallet(db: Session, *, user_id: str, pallet_id: int, expected_version: int | None = None) -> None:
    """Delete a pallet, keeping its items as individual inventory."""
    with _transaction(db, 'Pallet', pallet_id):
        pallet = get_pallet(db, user_id=user_id, pallet_id=pallet_id)
        _check_version(pallet, expected_version, 'Pallet')

        members = pallet_members(db, pallet_id=pallet.id)
        for item in members:
            item.pallet_id = None
            item.allocated_cost = None
        db.flush()
        db.execute(delete(ExpensePallet).where(ExpensePallet.pallet_id == pallet.id))
        db.delete(pallet)
        logger.info('Deleted pallet %s and detached %s item(s)', pallet_id, len(members))


def create_item(db: Session, *, user_id: str, fields: dict, tier_checker: TierLimitChecker) -> Item:
    cleaned = _clean_item_fields(fields)
    if 'name' not in cleaned:
        raise ValueError('name is required')
    pallet_id = cleaned.pop('pallet_id', None)

    with _transaction(db, 'Item'):
        _require_capacity(tier_checker, 'items', _count_for_user(db, Item, user_id), 'items')
        pallet = get_pallet(db, user_id=user_id, pallet_id=pallet_id, for_update=True) if pallet_id is not None else None
        members = pallet_members(db, pallet_id=pallet.id) if pallet is not None else []

        item = Item(user_id=user_id, pallet_id=pallet.id if pallet is not None else None, **cleaned)
        if item.status == ItemStatus.LISTED and item.listing_date is None:
            item.listing_date = local_now().date()
        _validate_sale(item)
        db.add(item)
        db.flush()

        if pallet is not None:
            apply_allocation_plan(db, plan_add(pallet, members, item.id))
            _advance_pallet_status(pallet)
            _touch_pallet(pallet)
        db.flush()
        logger.info('Created item %s for user %s', item.id, user_id)
    return item


def update_item(
    db: Session,
    *,
    user_id: str,
    item_id: int,
    changes: dict,
    expected_version: int | None = None,
) -> Item:
    """Edit an item; moving it between pallets reallocates both pallets."""
    cleaned = _clean_item_fields(changes)
    with _transaction(db, 'Item', item_id):
        item = get_item(db, user_id=user_id, item_id=item_id)
        _check_version(item, expected_version, 'Item')

        if 'pallet_id' in cleaned and cleaned['pallet_id'] != item.pallet_id:
            target_id = cleaned.pop('pallet_id')
            source = (
                get_pallet(db, user_id=user_id, pallet_id=item.pallet_id, for_update=True)
                if item.pallet_id is not None
                else None
            )
            target = get_pallet(db, user_id=user_id, pallet_id=target_id, for_update=True) if target_id is not None else None
            plan = plan_move(
                item.id,
                source=source,
                source_members=pallet_members(db, pallet_id=source.id) if source is not None else (),
                target=target,
                target_members=pallet_members(db, pallet_id=target.id) if target is not None else (),
            )
            item.pallet_id = target.id if target is not None else None
            apply_allocation_plan(db, plan)
            for pallet in (source, target):
                if pallet is not None:
                    _touch_pallet(pallet)
            if target is not None:
                _advance_pallet_status(target)
        cleaned.pop('pallet_id', None)

        previous_status = item.status
        for key, value in cleaned.items():
            setattr(item, key, value)
        if item.status == ItemStatus.LISTED and previous_status != ItemStatus.LISTED and item.listing_date is None:
            item.listing_date = local_now().date()
        _validate_sale(item)
        db.flush()
    return item


def mark_item_sold(
    db: Session,
    *,
    user_id: str,
    item_id: int,
    sale_price: Decimal | int | float | str,
    sale_date: date | str | None = None,
    platform: SalesPlatform | str | None = None,
    platform_fee: Decimal | int | float | str | None = None,
    shipping_cost: Decimal | int | float | str | None = None,
    is_auction: bool = False,
    expected_version: int | None = None,
    fee_table: FeeTable | None = None,
) -> Item:
    """Record a sale; the platform fee is estimated when not supplied."""
    price = _clean_money(sale_price, 'sale_price')
    if price is None:
        raise ValueError('sale_price is required')
    platform = SalesPlatform(platform) if platform is not None else None
    fee = _clean_money(platform_fee, 'platform_fee')
    if fee is None and platform is not None:
        fee = calculate_platform_fee(price, platform, is_auction=is_auction, table=fee_table)

    with _transaction(db, 'Item', item_id):
        item = get_item(db, user_id=user_id, item_id=item_id)
        _check_version(item, expected_version, 'Item')
        if item.status == ItemStatus.SOLD:
            raise ValueError('Item is already sold')

        item.status = ItemStatus.SOLD
        item.sale_price = price
        item.sale_date = _clean_date(sale_date, 'sale_date') or local_now().date()
        item.platform = platform
        item.platform_fee = fee
        item.shipping_cost = _clean_money(shipping_cost, 'shipping_cost')
        db.flush()
        logger.info('Item %s sold for %s', item.id, price)
    return item


def delete_item(db: Session, *, user_id: str, item_id: int, expected_version: int | None = None) -> None:
    """Delete an item and spread its pallet's cost over the items left behind."""
    with _transaction(db, 'Item', item_id):
        item = get_item(db, user_id=user_id, item_id=item_id)
        _check_version(item, expected_version, 'Item')

        plan = AllocationPlan()
        if item.pallet_id is not None:
            pallet = get_pallet(db, user_id=user_id, pallet_id=item.pallet_id, for_update=True)
            plan = plan_remove(pallet, pallet_members(db, pallet_id=pallet.id), item.id)
            _touch_pallet(pallet)
        db.delete(item)
        db.flush()
        apply_allocation_plan(db, plan)
        db.flush()
        logger.info('Deleted item %s', item_id)
