from __future__ import annotations

from dataclasses import asdict
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from palletpro.db import get_db
from palletpro.dependencies import get_current_user_id, get_fee_table, get_tier_checker
from palletpro.errors import RecordNotFoundError, StaleWriteError, TierLimitError
from palletpro.models import ItemCondition, ItemStatus, PalletStatus, SalesPlatform, SourceType
from palletpro.services import item_service
from palletpro.services.database_snapshot_provider import item_record, pallet_record
from palletpro.services.platform_fee_service import FeeTable
from palletpro.services.tier_limits_service import TierLimitChecker

router = APIRouter(prefix='/inventory', tags=['inventory'])


class PalletCreate(BaseModel):
    name: str
    purchase_cost: Decimal = Field(ge=0)
    sales_tax: Decimal | None = Field(default=None, ge=0)
    purchase_date: date | None = None
    supplier: str | None = None
    source_type: SourceType = SourceType.PALLET
    source_name: str | None = None
    notes: str | None = None


class PalletUpdate(BaseModel):
    name: str | None = None
    purchase_cost: Decimal | None = Field(default=None, ge=0)
    sales_tax: Decimal | None = Field(default=None, ge=0)
    purchase_date: date | None = None
    supplier: str | None = None
    source_type: SourceType | None = None
    source_name: str | None = None
    status: PalletStatus | None = None
    notes: str | None = None
    version: int | None = None


class ItemCreate(BaseModel):
    name: str
    pallet_id: int | None = None
    description: str | None = None
    quantity: int = Field(default=1, ge=1)
    condition: ItemCondition = ItemCondition.USED_GOOD
    status: ItemStatus = ItemStatus.UNLISTED
    retail_price: Decimal | None = Field(default=None, ge=0)
    listing_price: Decimal | None = Field(default=None, ge=0)
    purchase_cost: Decimal | None = Field(default=None, ge=0)
    sale_price: Decimal | None = Field(default=None, ge=0)
    listing_date: date | None = None
    sale_date: date | None = None
    platform: SalesPlatform | None = None
    platform_fee: Decimal | None = Field(default=None, ge=0)
    shipping_cost: Decimal | None = Field(default=None, ge=0)
    storage_location: str | None = None
    barcode: str | None = None
    notes: str | None = None


class ItemUpdate(BaseModel):
    name: str | None = None
    pallet_id: int | None = None
    description: str | None = None
    quantity: int | None = Field(default=None, ge=1)
    condition: ItemCondition | None = None
    status: ItemStatus | None = None
    retail_price: Decimal | None = Field(default=None, ge=0)
    listing_price: Decimal | None = Field(default=None, ge=0)
    purchase_cost: Decimal | None = Field(default=None, ge=0)
    listing_date: date | None = None
    storage_location: str | None = None
    barcode: str | None = None
    notes: str | None = None
    version: int | None = None


class SaleRequest(BaseModel):
    sale_price: Decimal = Field(ge=0)
    sale_date: date | None = None
    platform: SalesPlatform | None = None
    platform_fee: Decimal | None = Field(default=None, ge=0)
    shipping_cost: Decimal | None = Field(default=None, ge=0)
    is_auction: bool = False
    version: int | None = None


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, StaleWriteError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, TierLimitError):
        return HTTPException(
            status_code=402,
            detail={'message': str(exc), 'limit': exc.limit, 'required_tier': exc.required_tier},
        )
    if isinstance(exc, RecordNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


_DOMAIN_ERRORS = (StaleWriteError, TierLimitError, RecordNotFoundError, ValueError)


def _changes(payload: BaseModel) -> tuple[dict, int | None]:
    changes = payload.model_dump(exclude_unset=True)
    version = changes.pop('version', None)
    return changes, version


@router.post('/pallets', status_code=201)
def create_pallet(
    payload: PalletCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tier_checker: TierLimitChecker = Depends(get_tier_checker),
):
    try:
        pallet = item_service.create_pallet(
            db, user_id=user_id, fields=payload.model_dump(exclude_none=True), tier_checker=tier_checker
        )
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return asdict(pallet_record(pallet))


@router.patch('/pallets/{pallet_id}')
def update_pallet(
    pallet_id: int,
    payload: PalletUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    changes, version = _changes(payload)
    try:
        pallet = item_service.update_pallet(
            db, user_id=user_id, pallet_id=pallet_id, changes=changes, expected_version=version
        )
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return asdict(pallet_record(pallet))


@router.delete('/pallets/{pallet_id}', status_code=204)
def delete_pallet(
    pallet_id: int,
    version: int | None = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        item_service.delete_pallet(db, user_id=user_id, pallet_id=pallet_id, expected_version=version)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc


@router.post('/items', status_code=201)
def create_item(
    payload: ItemCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    tier_checker: TierLimitChecker = Depends(get_tier_checker),
):
    try:
        item = item_service.create_item(
            db, user_id=user_id, fields=payload.model_dump(exclude_none=True), tier_checker=tier_checker
        )
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return asdict(item_record(item))


@router.patch('/items/{item_id}')
def update_item(
    item_id: int,
    payload: ItemUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    changes, version = _changes(payload)
    try:
        item = item_service.update_item(db, user_id=user_id, item_id=item_id, changes=changes, expected_version=version)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return asdict(item_record(item))


@router.post('/items/{item_id}/sell')
def sell_item(
    item_id: int,
    payload: SaleRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    fee_table: FeeTable = Depends(get_fee_table),
):
    try:
        item = item_service.mark_item_sold(
            db,
            user_id=user_id,
            item_id=item_id,
            sale_price=payload.sale_price,
            sale_date=payload.sale_date,
            platform=payload.platform,
            platform_fee=payload.platform_fee,
            shipping_cost=payload.shipping_cost,
            is_auction=payload.is_auction,
            expected_version=payload.version,
            fee_table=fee_table,
        )
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
    return asdict(item_record(item))


@router.delete('/items/{item_id}', status_code=204)
def delete_item(
    item_id: int,
    version: int | None = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    try:
        item_service.delete_item(db, user_id=user_id, item_id=item_id, expected_version=version)
    except _DOMAIN_ERRORS as exc:
        raise _http_error(exc) from exc
