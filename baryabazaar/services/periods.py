"""Calendar and trading-day windows used by profit and analytics queries.

All windows are half-open: ``start`` is inclusive and ``end`` exclusive. Calendar
boundaries are computed in the configured local timezone and returned as UTC
instants so they can be compared with stored timestamps directly.
"""
from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Protocol, TypeVar
from zoneinfo import ZoneInfo


class Period(str, enum.Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    CUSTOM = "custom"


@dataclass(slots=True, frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= _as_utc(instant) < self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


class Timestamped(Protocol):
    timestamp: datetime


T = TypeVar("T", bound=Timestamped)


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _local_midnight(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)


def parse_reset_time(value: str) -> time:
    """Parse an ``HH:MM`` string into a time of day."""

    hours, sep, minutes = value.strip().partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2:
        raise ValueError(f"Invalid reset time '{value}', expected HH:MM")
    hour, minute = int(hours), int(minutes)
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid reset time '{value}', expected HH:MM")
    return time(hour, minute)


def period_window(
    period: Period,
    *,
    now: datetime,
    tz: ZoneInfo,
    start: datetime | None = None,
    end: datetime | None = None,
) -> TimeWindow:
    """Return the calendar window for ``period`` containing ``now``.

    Weeks start on Monday. ``Period.CUSTOM`` requires ``start`` and uses ``end``
    (default ``now``) as the exclusive upper bound.
    """

    local_today = _as_utc(now).astimezone(tz).date()
    if period is Period.TODAY:
        return TimeWindow(_local_midnight(local_today, tz), _local_midnight(local_today + timedelta(days=1), tz))
    if period is Period.WEEK:
        monday = local_today - timedelta(days=local_today.weekday())
        return TimeWindow(_local_midnight(monday, tz), _local_midnight(monday + timedelta(days=7), tz))
    if period is Period.MONTH:
        first = local_today.replace(day=1)
        following = (first + timedelta(days=32)).replace(day=1)
        return TimeWindow(_local_midnight(first, tz), _local_midnight(following, tz))
    if start is None:
        raise ValueError("A custom period requires a start")
    window_end = _as_utc(end) if end is not None else _as_utc(now)
    window_start = _as_utc(start)
    if window_end < window_start:
        raise ValueError("A custom period cannot end before it starts")
    return TimeWindow(window_start, window_end)


def trading_day_start(*, now: datetime, reset_time: time, tz: ZoneInfo) -> datetime:
    """Start of the trading day that contains ``now``.

    Before today's reset the trading day began at yesterday's reset.
    """

    local_now = _as_utc(now).astimezone(tz)
    todays_reset = datetime.combine(local_now.date(), reset_time, tzinfo=tz)
    if local_now < todays_reset:
        todays_reset = datetime.combine(local_now.date() - timedelta(days=1), reset_time, tzinfo=tz)
    return todays_reset.astimezone(timezone.utc)


def daily_profit_window(*, now: datetime, reset_time: time, tz: ZoneInfo) -> TimeWindow:
    start = trading_day_start(now=now, reset_time=reset_time, tz=tz)
    return TimeWindow(start, start + timedelta(days=1))


def lookback_window(*, now: datetime, days: int) -> TimeWindow:
    end = _as_utc(now)
    return TimeWindow(end - timedelta(days=max(days, 0)), end + timedelta(microseconds=1))


def split_window(window: TimeWindow) -> tuple[TimeWindow, TimeWindow]:
    """Split at the midpoint into ``(older, recent)`` halves."""

    midpoint = window.start + (window.end - window.start) / 2
    return TimeWindow(window.start, midpoint), TimeWindow(midpoint, window.end)


def percentage_change(recent: Decimal | float | int, older: Decimal | float | int) -> float:
    older_value = float(older)
    if older_value == 0:
        return 0.0
    return (float(recent) - older_value) / older_value * 100


def filter_by_window(items: Iterable[T], window: TimeWindow) -> list[T]:
    """Items inside ``window``, newest first."""

    selected = [item for item in items if window.contains(item.timestamp)]
    selected.sort(key=lambda item: _as_utc(item.timestamp), reverse=True)
    return selected


__all__ = [
    "Period",
    "TimeWindow",
    "Timestamped",
    "daily_profit_window",
    "filter_by_window",
    "lookback_window",
    "parse_reset_time",
    "percentage_change",
    "period_window",
    "split_window",
    "trading_day_start",
]
