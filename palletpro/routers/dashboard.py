from __future__ import annotations

from dataclasses import asdict
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from palletpro.config import settings
from palletpro.dependencies import get_user_snapshot
from palletpro.services import analytics_service
from palletpro.services.insights_service import generate_insights, get_empty_state_content, get_user_stage
from palletpro.services.period_filter_service import TimePeriod, get_period_short_label, get_period_start, local_now
from palletpro.services.snapshot_provider import UserSnapshot

router = APIRouter(prefix='/dashboard', tags=['dashboard'])


def _parse_period(value: str) -> TimePeriod:
    try:
        return TimePeriod(value.strip().lower())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f'Unknown period: {value}') from exc


@router.get('/insights')
def dashboard_insights(
    stale_threshold_days: int | None = Query(default=None, ge=1),
    snapshot: UserSnapshot = Depends(get_user_snapshot),
):
    insights = generate_insights(
        pallets=snapshot.pallets,
        items=snapshot.items,
        stale_threshold_days=stale_threshold_days,
    )
    stage = get_user_stage(pallets=snapshot.pallets, items=snapshot.items)
    return {
        'insights': [asdict(insight) for insight in insights],
        'stage': stage.value,
        'empty_state': None if insights else asdict(get_empty_state_content(stage)),
    }


@router.get('/summary')
def dashboard_summary(
    period: str = Query(default=TimePeriod.MONTH.value),
    snapshot: UserSnapshot = Depends(get_user_snapshot),
):
    selected = _parse_period(period)
    now = local_now()
    start = get_period_start(selected, now)
    hero = analytics_service.hero_metrics(
        snapshot.pallets,
        snapshot.items,
        snapshot.expenses,
        start=start,
        end=now if start is not None else None,
        reference=now,
    )
    return {
        'period': asdict(analytics_service.period_summary(snapshot.items, selected, now)),
        'short_label': get_period_short_label(selected),
        'hero': asdict(hero),
    }


@router.get('/leaderboard')
def dashboard_leaderboard(
    start: date | None = None,
    end: date | None = None,
    snapshot: UserSnapshot = Depends(get_user_snapshot),
):
    rows = analytics_service.pallet_leaderboard(snapshot.pallets, snapshot.items, snapshot.expenses, start=start, end=end)
    return [asdict(row) for row in rows]


@router.get('/comparisons')
def dashboard_comparisons(
    start: date | None = None,
    end: date | None = None,
    snapshot: UserSnapshot = Depends(get_user_snapshot),
):
    args = (snapshot.pallets, snapshot.items, snapshot.expenses)
    return {
        'source_types': [
            asdict(row) for row in analytics_service.source_type_comparison(*args, start=start, end=end)
        ],
        'suppliers': [asdict(row) for row in analytics_service.supplier_comparison(*args, start=start, end=end)],
        'source_labels': [
            asdict(row) for row in analytics_service.source_label_comparison(*args, start=start, end=end)
        ],
    }


@router.get('/profit-loss')
def dashboard_profit_loss(
    start: date | None = None,
    end: date | None = None,
    snapshot: UserSnapshot = Depends(get_user_snapshot),
):
    if start is not None and end is not None and start > end:
        raise HTTPException(status_code=400, detail='start must be on or before end')
    summary = analytics_service.profit_loss_summary(
        snapshot.pallets, snapshot.items, snapshot.expenses, start=start, end=end
    )
    return asdict(summary)


@router.get('/stale-items')
def dashboard_stale_items(
    threshold_days: int | None = Query(default=None, ge=1),
    snapshot: UserSnapshot = Depends(get_user_snapshot),
):
    threshold = threshold_days if threshold_days is not None else settings.stale_threshold_days
    rows = analytics_service.stale_items(snapshot.items, snapshot.pallets, threshold)
    return [asdict(row) for row in rows]


@router.get('/trend')
def dashboard_trend(
    granularity: analytics_service.TrendGranularity = analytics_service.TrendGranularity.MONTHLY,
    start: date | None = None,
    end: date | None = None,
    snapshot: UserSnapshot = Depends(get_user_snapshot),
):
    points = analytics_service.profit_trend(snapshot.items, granularity, start=start, end=end)
    return [asdict(point) for point in points]
