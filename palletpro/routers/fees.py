from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Query

from palletpro.dependencies import get_fee_table
from palletpro.models import SalesPlatform
from palletpro.services.platform_fee_service import FeeTable, calculate_platform_fee
from palletpro.services.profit_service import net_profit

router = APIRouter(prefix='/fees', tags=['fees'])


@router.get('/estimate')
def estimate_fee(
    price: Decimal = Query(ge=0),
    platform: SalesPlatform = Query(),
    auction: bool = False,
    shipping_cost: Decimal | None = Query(default=None, ge=0),
    cost: Decimal | None = Query(default=None, ge=0),
    fee_table: FeeTable = Depends(get_fee_table),
):
    fee = calculate_platform_fee(price, platform, is_auction=auction, table=fee_table)
    return {
        'platform': platform.value,
        'price': price,
        'is_auction': auction,
        'platform_fee': fee,
        'net_proceeds': price - fee - (shipping_cost or Decimal('0')),
        'net_profit': net_profit(price, cost, fee, shipping_cost) if cost is not None else None,
    }
