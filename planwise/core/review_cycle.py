"""Review cycle calculator — pure date arithmetic for continuously tracked goals.

Month and year steps use relativedelta, which clamps to the target month's
length (Jan 31 + 1 month = Feb 29 in a leap year), so the result is always a
real calendar date.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, time, timedelta

from dateutil.relativedelta import relativedelta

from planwise.data.models import (
    CompletedReview,
    InvariantViolation,
    RecurringReview,
    ReviewCycle,
    TimeTracking,
    ValidationError,
)

_CYCLE_STEPS: dict[ReviewCycle, relativedelta] = {
    ReviewCycle.WEEKLY: relativedelta(days=7),
    ReviewCycle.MONTHLY: relativedelta(months=1),
    ReviewCycle.QUARTERLY: relativedelta(months=3),
    ReviewCycle.BIANNUAL: relativedelta(months=6),
    ReviewCycle.YEARLY: relativedelta(years=1),
}


def next_review_date(cycle: ReviewCycle | str, start: datetime) -> datetime:
    """The review instant one cycle after `start`."""
    try:
        cycle = ReviewCycle(cycle)
    except ValueError as exc:
        raise ValidationError("cycle", f"unknown review cycle {cycle!r}") from exc
    return start + _CYCLE_STEPS[cycle]


def check_review_invariant(tracking: RecurringReview) -> None:
    last = tracking.last_review_date
    if last is not None and tracking.next_review_date <= last:
        raise InvariantViolation(
            f"next review {tracking.next_review_date.isoformat()} is not after "
            f"last review {last.isoformat()}"
        )


def _require_recurring(tracking: TimeTracking) -> RecurringReview:
    if not isinstance(tracking, RecurringReview):
        raise ValidationError("time_tracking", "goal is tracked by a fixed deadline, not by review")
    return tracking


def complete_review(
    tracking: TimeTracking,
    at: datetime,
    made_progress: bool | None = None,
    adjustments: str = "",
) -> RecurringReview:
    """Record a review done at `at` and schedule the next one from it."""
    current = _require_recurring(tracking)
    updated = RecurringReview(
        cycle=current.cycle,
        next_review_date=next_review_date(current.cycle, at),
        last_review_date=at,
        completed_reviews=[
            *current.completed_reviews,
            CompletedReview(date=at, made_progress=made_progress, adjustments=adjustments),
        ],
    )
    check_review_invariant(updated)
    return updated


def push_review(tracking: TimeTracking) -> RecurringReview:
    """Move the next review one cycle later without recording a review."""
    current = _require_recurring(tracking)
    updated = replace(
        current, next_review_date=next_review_date(current.cycle, current.next_review_date)
    )
    check_review_invariant(updated)
    return updated


def nearest_review_day(day: date) -> date:
    """Snap a user-picked review date to a Sunday.

    Sunday itself moves to the following Sunday. Monday and Tuesday fall back
    to the Sunday just gone; every other day rolls forward to the next one.
    """
    since_sunday = (day.weekday() + 1) % 7
    previous_sunday = day - timedelta(days=since_sunday or 7)
    next_sunday = previous_sunday + timedelta(days=7)
    if since_sunday == 0:
        return day + timedelta(days=7)
    if day < previous_sunday + timedelta(days=3):
        return previous_sunday
    return next_sunday


def reschedule_review(tracking: TimeTracking, day: date) -> RecurringReview:
    """Set the next review to the Sunday nearest `day`."""
    current = _require_recurring(tracking)
    target = datetime.combine(nearest_review_day(day), time.min)
    if current.last_review_date is not None and target <= current.last_review_date:
        raise ValidationError(
            "next_review_date",
            f"{target.date().isoformat()} is not after the last review "
            f"{current.last_review_date.date().isoformat()}",
        )
    return replace(current, next_review_date=target)
