from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from palletpro.models import Expense, ExpensePallet, Item, Pallet
from palletpro.services.snapshot_provider import ExpenseRecord, ItemRecord, PalletRecord, UserSnapshot


def pallet_record(row: Pallet) -> PalletRecord:
    return PalletRecord(
        id=row.id,
        name=row.name,
        purchase_cost=row.purchase_cost,
        purchase_date=row.purchase_date,
        sales_tax=row.sales_tax,
        supplier=row.supplier,
        source_type=row.source_type,
        source_name=row.source_name,
        status=row.status,
        notes=row.notes,
        version=row.version,
    )


def item_record(row: Item) -> ItemRecord:
    return ItemRecord(
        id=row.id,
        name=row.name,
        status=row.status,
        pallet_id=row.pallet_id,
        quantity=row.quantity,
        condition=row.condition,
        retail_price=row.retail_price,
        listing_price=row.listing_price,
        purchase_cost=row.purchase_cost,
        allocated_cost=row.allocated_cost,
        sale_price=row.sale_price,
        sale_date=row.sale_date,
        listing_date=row.listing_date,
        platform=row.platform,
        platform_fee=row.platform_fee,
        shipping_cost=row.shipping_cost,
        storage_location=row.storage_location,
        barcode=row.barcode,
        notes=row.notes,
        version=row.version,
    )


class DatabaseSnapshotProvider:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def load_snapshot(self, *, user_id: str) -> UserSnapshot:
        with self.session_factory() as db:
            return load_user_snapshot(db, user_id=user_id)


def load_user_snapshot(db: Session, *, user_id: str) -> UserSnapshot:
    pallets = db.execute(
        select(Pallet).where(Pallet.user_id == user_id).order_by(Pallet.created_at.asc(), Pallet.id.asc())
    ).scalars().all()
    items = db.execute(
        select(Item).where(Item.user_id == user_id).order_by(Item.created_at.asc(), Item.id.asc())
    ).scalars().all()
    expenses = db.execute(
        select(Expense).where(Expense.user_id == user_id).order_by(Expense.expense_date.asc(), Expense.id.asc())
    ).scalars().all()

    links: dict[int, list[int]] = {}
    if expenses:
        rows = db.execute(
            select(ExpensePallet.expense_id, ExpensePallet.pallet_id)
            .where(ExpensePallet.expense_id.in_([expense.id for expense in expenses]))
            .order_by(ExpensePallet.expense_id.asc(), ExpensePallet.pallet_id.asc())
        ).all()
        for expense_id, pallet_id in rows:
            links.setdefault(expense_id, []).append(pallet_id)

    return UserSnapshot(
        pallets=[pallet_record(row) for row in pallets],
        items=[item_record(row) for row in items],
        expenses=[
            ExpenseRecord(
                id=expense.id,
                amount=expense.amount,
                category=expense.category,
                expense_date=expense.expense_date,
                pallet_ids=tuple(links.get(expense.id, [])),
                description=expense.description,
            )
            for expense in expenses
        ],
    )
