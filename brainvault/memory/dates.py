"""UTC calendar arithmetic: ISO-8601 weeks, month ends and trailing windows.

Everything here is pure and never consults the local timezone.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterator


@dataclass(frozen=True, order=True)
class IsoWeek:
    year: int
    week: int

    @property
    def period(self) -> str:
        return weekly_period(self.year, self.week)


@dataclass(frozen=True, order=True)
class YearMonth:
    year: int
    month: int

    @property
    def period(self) -> str:
        return monthly_period(self.year, self.month)


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


def to_utc_date(value: date | datetime) -> date:
    """Calendar date of *value* in UTC. Naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def utc_today(now: datetime | None = None) -> date:
    return to_utc_date(now or datetime.now(timezone.utc))


def date_key(value: date | datetime) -> str:
    return to_utc_date(value).isoformat()


def utc_iso(moment: datetime) -> str:
    """Millisecond ISO-8601 timestamp in UTC with a ``Z`` suffix, as written to the event log."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: object) -> datetime | None:
    """Aware UTC datetime for an ISO-8601 string, or None when it does not parse."""
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield each day from *start* through *end* inclusive."""
    cursor = start
    while cursor <= end:
        yield cursor
        cursor = add_days(cursor, 1)


def trailing_window(today: date, days: int) -> list[date]:
    """The *days* calendar days ending with *today*, oldest first."""
    start = add_days(today, -(days - 1))
    return list(iter_days(start, today))


def weekly_period(year: int, week: int) -> str:
    return f"{year}-W{week:02d}"


def monthly_period(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


def iso_week_of(value: date | datetime) -> IsoWeek:
    """ISO-8601 week of *value*: the Thursday of its week decides the ISO year.

    >>> iso_week_of(date(2021, 1, 1))
    IsoWeek(year=2020, week=53)
    """
    day = to_utc_date(value)
    thursday = day + timedelta(days=3 - day.weekday())
    week = (thursday.timetuple().tm_yday - 1) // 7 + 1
    return IsoWeek(year=thursday.year, week=week)


def week_date_range(year: int, week: int) -> DateRange:
    """Monday through Sunday of ISO *week* in *year*.

    Week 1 is the week holding January 4th; later weeks are offset by whole weeks.
    """
    jan4 = date(year, 1, 4)
    week_one_monday = jan4 - timedelta(days=jan4.weekday())
    start = week_one_monday + timedelta(weeks=week - 1)
    return DateRange(start=start, end=start + timedelta(days=6))


def month_last_day(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def is_period_complete(end: date, today: date) -> bool:
    """A week or month is complete once its final day lies strictly before *today*."""
    return end < today


def unique_weeks(days: list[date]) -> list[IsoWeek]:
    """Distinct ISO weeks touched by *days*, in first-seen order."""
    weeks: list[IsoWeek] = []
    for day in days:
        week = iso_week_of(day)
        if week not in weeks:
            weeks.append(week)
    return weeks


def unique_months(days: list[date]) -> list[YearMonth]:
    months: list[YearMonth] = []
    for day in days:
        month = YearMonth(day.year, day.month)
        if month not in months:
            months.append(month)
    return months
