from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import TypeVar
from zoneinfo import ZoneInfo

from palletpro.config import settings

T = TypeVar('T')


class TimePeriod(str, Enum):
    WEEK = 'week'
    MONTH = 'month'
    YEAR = 'year'
    ALL = 'all'


@dataclass(frozen=True)
class TimePeriodOption:
    value: TimePeriod
    label: str
    short_label: str


@dataclass(frozen=True)
class PeriodRange:
    start: datetime | None
    end: datetime | None


TIME_PERIOD_OPTIONS: list[TimePeriodOption] = [
    TimePeriodOption(TimePeriod.WEEK, 'This Week', 'Week'),
    TimePeriodOption(TimePeriod.MONTH, 'This Month', 'Month'),
    TimePeriodOption(TimePeriod.YEAR, 'This Year', 'Year'),
    TimePeriodOption(TimePeriod.ALL, 'All Time', 'All'),
]

DateLike = str | date | datetime


def local_now() -> datetime:
    return datetime.now(tz=ZoneInfo(settings.timezone))


def _resolve_reference(reference: datetime | None) -> datetime:
    return reference if reference is not None else local_now()


def _local_midnight(day: date, reference: datetime) -> datetime:
    return datetime.combine(day, time.min, tzinfo=reference.tzinfo)


def to_local_datetime(value: DateLike | None, reference: datetime) -> datetime | None:
    """Interpret ``value`` in the reference's timezone.

    Date-only strings and ``date`` values become local midnight; a UTC parse
    would shift them to the previous day west of Greenwich.
    """
    if value is None:
        return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if len(raw) == 10:
            return _local_midnight(date.fromisoformat(raw), reference)
        if raw.endswith('Z'):
            raw = raw[:-1] + '+00:00'
        value = datetime.fromisoformat(raw)
    if not isinstance(value, datetime):
        return _local_midnight(value, reference)

    if value.tzinfo is None:
        if reference.tzinfo is None:
            return value
        return value.replace(tzinfo=reference.tzinfo)
    if reference.tzinfo is None:
        return value.astimezone().replace(tzinfo=None)
    return value.astimezone(reference.tzinfo)


def get_period_start(period: TimePeriod | str, reference: datetime | None = None) -> datetime | None:
    period = TimePeriod(period)
    if period == TimePeriod.ALL:
        return None

    ref = _resolve_reference(reference)
    today = ref.date()
    if period == TimePeriod.WEEK:
        # weekday(): Monday=0, so Sunday rolls back 0 days.
        days_since_sunday = (today.weekday() + 1) % 7
        return _local_midnight(today - timedelta(days=days_since_sunday), ref)
    if period == TimePeriod.MONTH:
        return _local_midnight(today.replace(day=1), ref)
    return _local_midnight(today.replace(month=1, day=1), ref)


def is_within_period(value: DateLike | None, period: TimePeriod | str, reference: datetime | None = None) -> bool:
    if value is None or (isinstance(value, str) and not value.strip()):
        return False
    period = TimePeriod(period)
    if period == TimePeriod.ALL:
        return True

    ref = _resolve_reference(reference)
    start = get_period_start(period, ref)
    moment = to_local_datetime(value, ref)
    if moment is None:
        return False
    return start <= moment <= ref


def get_previous_period_range(period: TimePeriod | str, reference: datetime | None = None) -> PeriodRange:
    period = TimePeriod(period)
    if period == TimePeriod.ALL:
        return PeriodRange(start=None, end=None)

    ref = _resolve_reference(reference)
    current_start = get_period_start(period, ref)
    end = current_start - timedelta(milliseconds=1)
    start_day = current_start.date()
    if period == TimePeriod.WEEK:
        previous = start_day - timedelta(days=7)
    elif period == TimePeriod.MONTH:
        if start_day.month == 1:
            previous = start_day.replace(year=start_day.year - 1, month=12)
        else:
            previous = start_day.replace(month=start_day.month - 1)
    else:
        previous = start_day.replace(year=start_day.year - 1)
    return PeriodRange(start=_local_midnight(previous, ref), end=end)


def get_period_label(period: TimePeriod | str) -> str:
    for option in TIME_PERIOD_OPTIONS:
        if option.value == period:
            return option.label
    return 'All Time'


def get_period_short_label(period: TimePeriod | str) -> str:
    for option in TIME_PERIOD_OPTIONS:
        if option.value == period:
            return option.short_label
    return 'All'


def filter_by_date_range(
    records: Iterable[T],
    *,
    field: str,
    start: DateLike | None,
    end: DateLike | None,
    reference: datetime | None = None,
) -> list[T]:
    """Keep records whose ``field`` falls on a day in ``[start, end]``.

    Both bounds are compared as calendar days; records without a value for
    ``field`` are dropped unless the range is unbounded on both sides.
    """
    records = list(records)
    if start is None and end is None:
        return records

    ref = _resolve_reference(reference)
    start_day = to_local_datetime(start, ref).date() if start is not None else None
    end_day = to_local_datetime(end, ref).date() if end is not None else None

    kept: list[T] = []
    for record in records:
        moment = to_local_datetime(getattr(record, field, None), ref)
        if moment is None:
            continue
        day = moment.date()
        if start_day is not None and day < start_day:
            continue
        if end_day is not None and day > end_day:
            continue
        kept.append(record)
    return kept
