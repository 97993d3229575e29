from __future__ import annotations

import argparse

from sqlalchemy import select

from palletpro.db import SessionLocal, engine, init_db
from palletpro.models import Expense, ExpensePallet, ItemStatus, Pallet, SubscriptionTier
from palletpro.services import item_service
from palletpro.services.mock_snapshot_provider import MockSnapshotProvider
from palletpro.services.tier_limits_service import TierLimitChecker


def seed(*, user_id: str) -> bool:
    """Copy the demo snapshot into the database; returns False when the user already has data."""
    init_db(engine)
    snapshot = MockSnapshotProvider().load_snapshot(user_id=user_id)
    checker = TierLimitChecker(SubscriptionTier.ENTERPRISE)

    with SessionLocal() as db:
        if db.execute(select(Pallet.id).where(Pallet.user_id == user_id).limit(1)).first() is not None:
            return False

        pallet_ids: dict[int, int] = {}
        for pallet in snapshot.pallets:
            row = item_service.create_pallet(
                db,
                user_id=user_id,
                fields={
                    'name': pallet.name,
                    'purchase_cost': pallet.purchase_cost,
                    'sales_tax': pallet.sales_tax,
                    'purchase_date': pallet.purchase_date,
                    'supplier': pallet.supplier,
                    'source_type': pallet.source_type,
                    'source_name': pallet.source_name,
                },
                tier_checker=checker,
            )
            pallet_ids[pallet.id] = row.id

        for item in snapshot.items:
            row = item_service.create_item(
                db,
                user_id=user_id,
                fields={
                    'name': item.name,
                    'pallet_id': pallet_ids.get(item.pallet_id) if item.pallet_id is not None else None,
                    'condition': item.condition,
                    'status': ItemStatus.LISTED if item.listing_date is not None else ItemStatus.UNLISTED,
                    'retail_price': item.retail_price,
                    'listing_price': item.listing_price,
                    'purchase_cost': item.purchase_cost,
                    'listing_date': item.listing_date,
                },
                tier_checker=checker,
            )
            if item.status == ItemStatus.SOLD:
                item_service.mark_item_sold(
                    db,
                    user_id=user_id,
                    item_id=row.id,
                    sale_price=item.sale_price,
                    sale_date=item.sale_date,
                    platform=item.platform,
                    platform_fee=item.platform_fee,
                )

        for expense in snapshot.expenses:
            row = Expense(
                user_id=user_id,
                amount=expense.amount,
                category=expense.category,
                description=expense.description,
                expense_date=expense.expense_date,
            )
            db.add(row)
            db.flush()
            for pallet_id in expense.pallet_ids:
                db.add(ExpensePallet(expense_id=row.id, pallet_id=pallet_ids[pallet_id]))
        db.commit()
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description='Seed a demo user with pallets, items and expenses.')
    parser.add_argument('--user-id', default='demo-user', help='User id to own the demo data.')
    args = parser.parse_args()

    if seed(user_id=args.user_id):
        print(f'Seed data inserted for {args.user_id}.')
    else:
        print(f'{args.user_id} already has data; nothing seeded.')


if __name__ == '__main__':
    main()
