from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_ID = BigInteger().with_variant(Integer, 'sqlite')
_MONEY = Numeric(14, 4)


class Base(DeclarativeBase):
    pass


class PalletStatus(str, Enum):
    UNPROCESSED = 'unprocessed'
    PROCESSING = 'processing'
    COMPLETED = 'completed'


class ItemStatus(str, Enum):
    UNLISTED = 'unlisted'
    LISTED = 'listed'
    SOLD = 'sold'


class ItemCondition(str, Enum):
    NEW = 'new'
    OPEN_BOX = 'open_box'
    USED_GOOD = 'used_good'
    USED_FAIR = 'used_fair'
    DAMAGED = 'damaged'
    FOR_PARTS = 'for_parts'
    UNSELLABLE = 'unsellable'


class SalesPlatform(str, Enum):
    EBAY = 'ebay'
    POSHMARK = 'poshmark'
    MERCARI = 'mercari'
    WHATNOT = 'whatnot'
    FACEBOOK = 'facebook'
    OFFERUP = 'offerup'
    CRAIGSLIST = 'craigslist'
    OTHER = 'other'


class SourceType(str, Enum):
    PALLET = 'pallet'
    THRIFT = 'thrift'
    GARAGE_SALE = 'garage_sale'
    RETAIL_ARBITRAGE = 'retail_arbitrage'
    MYSTERY_BOX = 'mystery_box'
    OTHER = 'other'


class ExpenseCategory(str, Enum):
    SUPPLIES = 'supplies'
    GAS = 'gas'
    MILEAGE = 'mileage'
    STORAGE = 'storage'
    FEES = 'fees'
    SHIPPING = 'shipping'
    SUBSCRIPTIONS = 'subscriptions'
    EQUIPMENT = 'equipment'
    OTHER = 'other'


class SubscriptionTier(str, Enum):
    FREE = 'free'
    STARTER = 'starter'
    PRO = 'pro'
    ENTERPRISE = 'enterprise'


def _enum_column(enum_cls: type[Enum], name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, values_callable=lambda members: [member.value for member in members])


class Pallet(Base):
    __tablename__ = 'pallets'
    __table_args__ = (
        CheckConstraint('purchase_cost >= 0', name='pallets_purchase_cost_non_negative_ck'),
        CheckConstraint('sales_tax IS NULL OR sales_tax >= 0', name='pallets_sales_tax_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(_ID, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    supplier: Mapped[str | None] = mapped_column(Text)
    source_type: Mapped[SourceType] = mapped_column(
        _enum_column(SourceType, 'source_type'), nullable=False, default=SourceType.PALLET
    )
    source_name: Mapped[str | None] = mapped_column(Text)
    purchase_cost: Mapped[Decimal] = mapped_column(_MONEY, nullable=False, default=Decimal('0'))
    sales_tax: Mapped[Decimal | None] = mapped_column(_MONEY)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PalletStatus] = mapped_column(
        _enum_column(PalletStatus, 'pallet_status'), nullable=False, default=PalletStatus.UNPROCESSED
    )
    notes: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[list[Item]] = relationship(back_populates='pallet', passive_deletes=True)

    __mapper_args__ = {'version_id_col': version}


class Item(Base):
    __tablename__ = 'items'
    __table_args__ = (
        CheckConstraint('quantity >= 1', name='items_quantity_positive_ck'),
    )

    id: Mapped[int] = mapped_column(_ID, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    pallet_id: Mapped[int | None] = mapped_column(_ID, ForeignKey('pallets.id', ondelete='SET NULL'), index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    condition: Mapped[ItemCondition] = mapped_column(
        _enum_column(ItemCondition, 'item_condition'), nullable=False, default=ItemCondition.USED_GOOD
    )
    status: Mapped[ItemStatus] = mapped_column(
        _enum_column(ItemStatus, 'item_status'), nullable=False, default=ItemStatus.UNLISTED
    )
    retail_price: Mapped[Decimal | None] = mapped_column(_MONEY)
    listing_price: Mapped[Decimal | None] = mapped_column(_MONEY)
    purchase_cost: Mapped[Decimal | None] = mapped_column(_MONEY)
    allocated_cost: Mapped[Decimal | None] = mapped_column(_MONEY)
    sale_price: Mapped[Decimal | None] = mapped_column(_MONEY)
    sale_date: Mapped[date | None] = mapped_column(Date)
    listing_date: Mapped[date | None] = mapped_column(Date)
    platform: Mapped[SalesPlatform | None] = mapped_column(_enum_column(SalesPlatform, 'sales_platform'))
    platform_fee: Mapped[Decimal | None] = mapped_column(_MONEY)
    shipping_cost: Mapped[Decimal | None] = mapped_column(_MONEY)
    storage_location: Mapped[str | None] = mapped_column(Text)
    barcode: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    pallet: Mapped[Pallet | None] = relationship(back_populates='items')

    __mapper_args__ = {'version_id_col': version}


class Expense(Base):
    __tablename__ = 'expenses'

    id: Mapped[int] = mapped_column(_ID, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(_MONEY, nullable=False)
    category: Mapped[ExpenseCategory] = mapped_column(_enum_column(ExpenseCategory, 'expense_category'), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ExpensePallet(Base):
    __tablename__ = 'expense_pallets'

    expense_id: Mapped[int] = mapped_column(_ID, ForeignKey('expenses.id', ondelete='CASCADE'), primary_key=True)
    pallet_id: Mapped[int] = mapped_column(_ID, ForeignKey('pallets.id', ondelete='CASCADE'), primary_key=True)
