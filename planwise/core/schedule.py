"""
Planwise — Schedule Model.

Turns a declarative RoutineSchedule into the concrete due instants it implies.
Occurrence generation is lazy, finite and restartable: every call walks the
calendar again from scratch, so the same inputs always give the same sequence.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta
from typing import Iterator

from planwise.config import settings
from planwise.data.models import (
    Occurrence,
    Period,
    RecurrenceFrequency,
    RoutineSchedule,
)

# Lookback spans tried, in days, before falling back to the full search horizon.
_LOOKBACK_STEPS = (8, 35, 100, 370)


def start_of_day(instant: datetime) -> datetime:
    return datetime.combine(instant.date(), time.min)


def clamp_day(year: int, month: int, day: int) -> date:
    """`day` of the given month, or the month's last day when it is shorter."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def _week_monday(day: date) -> date:
    return day - timedelta(days=day.weekday())


# ---------------------------------------------------------------------------
# Occurrence generation
# ---------------------------------------------------------------------------


def iter_occurrences(
    schedule: RoutineSchedule,
    start: datetime,
    end: datetime,
    end_date: datetime | None = None,
) -> Iterator[Occurrence]:
    """Yield occurrences due within the closed range [start, end], in order.

    Nothing after `end_date` is ever yielded, even inside the range.
    """
    schedule.check_invariants()
    if end_date is not None and end_date < end:
        end = end_date
    if end < start:
        return

    if schedule.frequency is RecurrenceFrequency.DAILY:
        candidates = _daily(schedule, start, end)
    elif schedule.frequency is RecurrenceFrequency.WEEKLY:
        candidates = _weekly(schedule, start, end)
    else:
        candidates = _by_month(schedule, start, end)

    for occurrence in candidates:
        if start <= occurrence.due <= end:
            yield occurrence


def compute_occurrences(
    schedule: RoutineSchedule,
    start: datetime,
    end: datetime,
    end_date: datetime | None = None,
) -> list[Occurrence]:
    """Materialized form of iter_occurrences."""
    return list(iter_occurrences(schedule, start, end, end_date))


def _daily(schedule: RoutineSchedule, start: datetime, end: datetime) -> Iterator[Occurrence]:
    at = schedule.effective_time
    day = start.date()
    while day <= end.date():
        yield Occurrence(due=at.on(day))
        day += timedelta(days=1)


def _weekly(schedule: RoutineSchedule, start: datetime, end: datetime) -> Iterator[Occurrence]:
    monday = _week_monday(start.date())
    while monday <= end.date():
        week: list[Occurrence] = []
        for slot in schedule.weekday_occurrences:
            override = slot.specific_date_override
            if override is not None and _week_monday(override) == monday:
                week.append(Occurrence(
                    due=slot.time.on(override),
                    assigned_to=slot.assigned_to,
                    overridden=True,
                ))
            else:
                day = monday + timedelta(days=slot.day.index)
                week.append(Occurrence(due=slot.time.on(day), assigned_to=slot.assigned_to))
        # stable sort keeps slot order for identical instants
        week.sort(key=lambda occ: occ.due)
        yield from week
        monday += timedelta(days=7)


def _by_month(schedule: RoutineSchedule, start: datetime, end: datetime) -> Iterator[Occurrence]:
    at = schedule.effective_time
    months = None if schedule.frequency is RecurrenceFrequency.MONTHLY else set(schedule.months_of_year)
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        if months is None or month in months:
            yield Occurrence(due=at.on(clamp_day(year, month, schedule.day_of_month)))
        month += 1
        if month > 12:
            year, month = year + 1, 1


# ---------------------------------------------------------------------------
# Neighbouring occurrences
# ---------------------------------------------------------------------------


def next_occurrence(
    schedule: RoutineSchedule,
    after: datetime,
    end_date: datetime | None = None,
) -> Occurrence | None:
    """First occurrence due strictly after `after`, or None when the routine
    has ended or nothing falls inside the search horizon."""
    horizon = after + timedelta(days=settings.OCCURRENCE_SEARCH_DAYS)
    for occurrence in iter_occurrences(schedule, after, horizon, end_date):
        if occurrence.due > after:
            return occurrence
    return None


def previous_occurrence(
    schedule: RoutineSchedule,
    at: datetime,
    end_date: datetime | None = None,
) -> Occurrence | None:
    """Latest occurrence due at or before `at`."""
    steps = (*_LOOKBACK_STEPS, settings.OCCURRENCE_SEARCH_DAYS)
    for days in steps:
        found = compute_occurrences(schedule, at - timedelta(days=days), at, end_date)
        if found:
            return found[-1]
    return None


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------


def _boundary(previous: Occurrence | None, occurrence: Occurrence) -> datetime:
    # Two slots on the same day split that day at the later slot's due time.
    if previous is not None and previous.due.date() == occurrence.due.date():
        return occurrence.due
    return start_of_day(occurrence.due)


def iter_periods(
    schedule: RoutineSchedule,
    start: datetime,
    end: datetime,
    end_date: datetime | None = None,
) -> Iterator[Period]:
    """Yield the period of every occurrence due within [start, end].

    A period runs from the start of its due day to the start of the next due
    day. The last period of an ended routine closes at the end of `end_date`'s day.
    """
    occurrences = compute_occurrences(schedule, start, end, end_date)
    if not occurrences:
        return

    previous = previous_occurrence(
        schedule, occurrences[0].due - timedelta(microseconds=1), end_date
    )
    following = next_occurrence(schedule, occurrences[-1].due, end_date)

    for index, occurrence in enumerate(occurrences):
        prior = occurrences[index - 1] if index else previous
        period_start = _boundary(prior, occurrence)
        if index + 1 < len(occurrences):
            period_end = _boundary(occurrence, occurrences[index + 1])
        elif following is not None:
            period_end = _boundary(occurrence, following)
        elif end_date is not None:
            period_end = start_of_day(end_date) + timedelta(days=1)
        else:
            period_end = period_start + timedelta(days=settings.OCCURRENCE_SEARCH_DAYS)
        yield Period(start=period_start, end=max(period_end, occurrence.due), occurrence=occurrence)


def current_period(
    schedule: RoutineSchedule,
    now: datetime,
    end_date: datetime | None = None,
) -> Period | None:
    """Period of the most recent occurrence due at or before `now`.

    This is what the user currently owes: the latest due instant that has
    already come around. None when nothing has been due yet.
    """
    latest = previous_occurrence(schedule, now, end_date)
    if latest is None:
        return None
    for period in iter_periods(schedule, latest.due, latest.due, end_date):
        if period.occurrence == latest:
            return period
    return None
