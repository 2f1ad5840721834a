"""Sleep consolidation: backfill dailies, then roll completed weeks and months into archives.

A full run walks a trailing window of days ending today (UTC) in three stages:

1. every day without a daily summary is consolidated;
2. every ISO week touched by the window that has fully elapsed and has no
   archive yet is rolled up from its dailies;
3. every calendar month touched by the window that has fully elapsed and has
   no archive yet is rolled up from its weekly archives.

Each day, week and month is an isolated unit. A failing unit contributes an
error string to the result and the batch moves on; ``consolidate`` never raises.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Literal

from brainvault.logging import get_logger
from brainvault.memory.archival import ArchivalRollup
from brainvault.memory.daily import DailyConsolidator
from brainvault.memory.dates import (
    IsoWeek,
    YearMonth,
    add_days,
    is_period_complete,
    iter_days,
    month_last_day,
    to_utc_date,
    trailing_window,
    unique_months,
    unique_weeks,
    utc_today,
    week_date_range,
)
from brainvault.memory.types import ArchivalMemory, DailyMemory

logger = get_logger(__name__)

Scope = Literal["daily", "full"]
DEFAULT_WINDOW_DAYS = 31


@dataclass
class SleepConsolidationResult:
    dailies_generated: int = 0
    weeklies_generated: int = 0
    monthlies_generated: int = 0
    errors: list[str] = field(default_factory=list)
    timestamp: str = ""


@dataclass
class UnitOutcome:
    """Result of one day, week or month of work."""

    generated: bool = False
    errors: list[str] = field(default_factory=list)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class SleepConsolidator:
    def __init__(
        self,
        daily_consolidator: DailyConsolidator,
        archival_rollup: ArchivalRollup,
        *,
        window_days: int = DEFAULT_WINDOW_DAYS,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.daily = daily_consolidator
        self.rollup = archival_rollup
        self.window_days = window_days
        self._now = now

    def today(self) -> date:
        return utc_today(self._now())

    def _timestamp(self) -> str:
        return self._now().astimezone(timezone.utc).isoformat()

    async def consolidate(self, scope: Scope, day: date | datetime | None = None) -> SleepConsolidationResult:
        if scope == "daily":
            return await self._consolidate_single(day if day is not None else self.today())
        if scope != "full":
            return SleepConsolidationResult(errors=[f"unknown consolidation scope: {scope}"], timestamp=self._timestamp())
        return await self._consolidate_full()

    async def _consolidate_single(self, day: date | datetime) -> SleepConsolidationResult:
        try:
            await self.daily.consolidate_date(day)
        except Exception as exc:
            logger.warning("Daily consolidation failed", date=str(day), error=_format_error(exc))
            return SleepConsolidationResult(
                errors=[f"daily consolidation failed: {_format_error(exc)}"],
                timestamp=self._timestamp(),
            )
        return SleepConsolidationResult(dailies_generated=1, timestamp=self._timestamp())

    async def _consolidate_full(self) -> SleepConsolidationResult:
        today = self.today()
        window = trailing_window(today, self.window_days)
        result = SleepConsolidationResult()

        # Stage order matters: weeklies read dailies, monthlies read weeklies.
        for day in window:
            outcome = await self._backfill_day(day)
            result.dailies_generated += int(outcome.generated)
            result.errors.extend(outcome.errors)

        for week in unique_weeks(window):
            outcome = await self._rollup_week(week, today)
            result.weeklies_generated += int(outcome.generated)
            result.errors.extend(outcome.errors)

        for month in unique_months(window):
            outcome = await self._rollup_month(month, window, today)
            result.monthlies_generated += int(outcome.generated)
            result.errors.extend(outcome.errors)

        result.timestamp = self._timestamp()
        logger.info(
            "Sleep consolidation finished",
            window_start=window[0],
            window_end=today,
            dailies=result.dailies_generated,
            weeklies=result.weeklies_generated,
            monthlies=result.monthlies_generated,
            errors=len(result.errors),
        )
        return result

    async def _backfill_day(self, day: date) -> UnitOutcome:
        try:
            if await self.daily.has_daily_summary(day):
                return UnitOutcome()
            await self.daily.consolidate_date(day)
        except Exception as exc:
            logger.warning("Daily backfill failed", date=day, error=_format_error(exc))
            return UnitOutcome(errors=[f"daily backfill failed for {day.isoformat()}: {_format_error(exc)}"])
        return UnitOutcome(generated=True)

    async def _rollup_week(self, week: IsoWeek, today: date) -> UnitOutcome:
        outcome = UnitOutcome()
        try:
            if await self.rollup.has_weekly_archive(week.year, week.week):
                logger.debug("Weekly archive exists", period=week.period)
                return outcome
            span = week_date_range(week.year, week.week)
            if not is_period_complete(span.end, today):
                logger.debug("Week still in progress", period=week.period)
                return outcome

            dailies: list[DailyMemory] = []
            for day in iter_days(span.start, span.end):
                try:
                    daily = await self.daily.read_daily_summary(day)
                except Exception as exc:
                    outcome.errors.append(f"daily read failed for {day.isoformat()}: {_format_error(exc)}")
                    continue
                if daily is not None:
                    dailies.append(daily)

            archive = self.rollup.rollup_weekly(week.year, week.week, dailies)
            await self.rollup.write_weekly_archive(archive, week.year, week.week)
            outcome.generated = True
        except Exception as exc:
            logger.warning("Weekly rollup failed", period=week.period, error=_format_error(exc))
            outcome.errors.append(f"weekly rollup failed for {week.period}: {_format_error(exc)}")
        return outcome

    async def _rollup_month(self, month: YearMonth, window: list[date], today: date) -> UnitOutcome:
        outcome = UnitOutcome()
        try:
            if await self.rollup.has_monthly_archive(month.year, month.month):
                logger.debug("Monthly archive exists", period=month.period)
                return outcome
            if not is_period_complete(month_last_day(month.year, month.month), today):
                logger.debug("Month still in progress", period=month.period)
                return outcome

            in_month = [day for day in window if (day.year, day.month) == (month.year, month.month)]
            weeklies: list[ArchivalMemory] = []
            for week in unique_weeks(in_month):
                try:
                    weekly = await self.rollup.read_weekly_archive(week.year, week.week)
                except Exception as exc:
                    outcome.errors.append(f"weekly archive read failed for {week.period}: {_format_error(exc)}")
                    continue
                if weekly is not None:
                    weeklies.append(weekly)

            archive = self.rollup.rollup_monthly(month.year, month.month, weeklies)
            await self.rollup.write_monthly_archive(archive, month.year, month.month)
            outcome.generated = True
        except Exception as exc:
            logger.warning("Monthly rollup failed", period=month.period, error=_format_error(exc))
            outcome.errors.append(f"monthly rollup failed for {month.period}: {_format_error(exc)}")
        return outcome

    def _yesterday(self) -> date:
        return add_days(self.today(), -1)

    async def should_auto_consolidate(self) -> bool:
        """True when yesterday (UTC) has no daily summary; errors count as False."""
        try:
            return not await self.daily.has_daily_summary(self._yesterday())
        except Exception as exc:
            logger.warning("Auto-consolidation check failed", error=_format_error(exc))
            return False

    async def auto_consolidate(self) -> SleepConsolidationResult | None:
        if not await self.should_auto_consolidate():
            return None
        return await self.consolidate("daily", self._yesterday())


def window_status(
    today: date | datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> tuple[list[date], list[IsoWeek], list[YearMonth]]:
    """Days, ISO weeks and months covered by the trailing window ending on *today*."""
    window = trailing_window(to_utc_date(today), window_days)
    return window, unique_weeks(window), unique_months(window)
