"""
Planwise — Completion Tracker.

Records routine completions and derives streak and adherence metrics from the
completion history measured against the routine's schedule.

Metrics are always recomputed from the full history, never patched
incrementally, so a removed or re-added completion can't cause drift.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Sequence

from planwise.config import settings
from planwise.core.schedule import compute_occurrences, iter_periods, start_of_day
from planwise.data.commands import RecordCompletion, RefreshMetrics, RemoveCompletion
from planwise.data.models import Period, Routine, RoutineSchedule, StreakData

if TYPE_CHECKING:
    from planwise.data.repository import PlanRepository
    from planwise.ports.clock_port import ClockPort

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric derivation (pure)
# ---------------------------------------------------------------------------


def completed_within(completions: Sequence[datetime], start: datetime, end: datetime) -> bool:
    """True if any completion falls in [start, end). `completions` must be sorted."""
    index = bisect.bisect_left(completions, start)
    return index < len(completions) and completions[index] < end


def _periods_until(
    schedule: RoutineSchedule,
    anchor: datetime,
    now: datetime,
    end_date: datetime | None,
) -> list[Period]:
    """Every period that has started by `now`, oldest first."""
    horizon = start_of_day(now) + timedelta(days=1)
    return [
        period
        for period in iter_periods(schedule, start_of_day(anchor), horizon, end_date)
        if period.start <= now
    ]


def compute_streak(
    schedule: RoutineSchedule,
    completions: Sequence[datetime],
    anchor: datetime,
    now: datetime,
    end_date: datetime | None = None,
) -> StreakData:
    """Count consecutive met periods.

    A period is met when at least one completion (made by `now`) falls inside
    it. The period still in progress is skipped while unmet, so today's routine
    doesn't break a streak before the day is over.
    """
    history = sorted(c for c in completions if c <= now)
    last_completed = history[-1] if history else None
    periods = _periods_until(schedule, anchor, now, end_date)

    met: list[bool] = []
    for period in periods:
        hit = completed_within(history, period.start, period.end)
        in_progress = period.end > now
        if in_progress and not hit:
            continue
        met.append(hit)

    longest = run = 0
    for hit in met:
        run = run + 1 if hit else 0
        longest = max(longest, run)

    current = 0
    for hit in reversed(met):
        if not hit:
            break
        current += 1

    return StreakData(
        current_streak=current,
        longest_streak=longest,
        last_completed_date=last_completed,
    )


def compute_adherence(
    schedule: RoutineSchedule,
    completions: Sequence[datetime],
    anchor: datetime,
    now: datetime,
    end_date: datetime | None = None,
    lookback: int = 0,
) -> float:
    """Completions per expected occurrence over the trailing window.

    The window is the most recent `lookback` occurrences due by `now`
    (0 → every occurrence since `anchor`). Clamped to [0, 1]; 0.0 while
    nothing has been due yet.
    """
    expected = compute_occurrences(schedule, start_of_day(anchor), now, end_date)
    if lookback:
        expected = expected[-lookback:]
    if not expected:
        return 0.0

    window_start = start_of_day(anchor) if not lookback else start_of_day(expected[0].due)
    window_end = now
    if end_date is not None:
        # an ended routine stops counting with its last day
        window_end = min(now, start_of_day(end_date) + timedelta(days=1) - timedelta(microseconds=1))
    done = sum(1 for c in completions if window_start <= c <= window_end)
    return max(0.0, min(1.0, done / len(expected)))


def refresh_metrics(routine: Routine, now: datetime, lookback: int | None = None) -> Routine:
    """Rederive streak data and adherence rate from the routine's history."""
    if lookback is None:
        lookback = settings.ADHERENCE_LOOKBACK
    streak = compute_streak(
        routine.schedule, routine.completion_dates, routine.anchor, now, routine.end_date,
    )
    rate = compute_adherence(
        routine.schedule, routine.completion_dates, routine.anchor, now,
        routine.end_date, lookback,
    )
    return replace(routine, streak_data=streak, adherence_rate=rate)


def record_completion(
    routine: Routine,
    instant: datetime,
    now: datetime,
    lookback: int | None = None,
) -> Routine:
    """Return `routine` with `instant` in its history (at most once)."""
    if instant in routine.completion_dates:
        return refresh_metrics(routine, now, lookback)
    updated = replace(
        routine,
        completion_dates=[*routine.completion_dates, instant],
        updated_at=now,
    )
    return refresh_metrics(updated, now, lookback)


def remove_completion(
    routine: Routine,
    instant: datetime,
    now: datetime,
    lookback: int | None = None,
) -> Routine:
    """Return `routine` without `instant` in its history."""
    if instant not in routine.completion_dates:
        return refresh_metrics(routine, now, lookback)
    updated = replace(
        routine,
        completion_dates=[c for c in routine.completion_dates if c != instant],
        updated_at=now,
    )
    return refresh_metrics(updated, now, lookback)


# ---------------------------------------------------------------------------
# Persistence-aware service
# ---------------------------------------------------------------------------


class CompletionTracker:
    """Records completions and writes the rederived routine to the store.

    The routine passed in is never mutated: on a PersistenceError the caller
    still holds the last known-good state.
    """

    def __init__(
        self,
        repository: PlanRepository,
        clock: ClockPort,
        lookback: int | None = None,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._lookback = lookback

    async def record(self, routine: Routine, instant: datetime | None = None) -> Routine:
        now = self._clock.now()
        instant = instant or now
        updated = record_completion(routine, instant, now, self._lookback)
        if updated.completion_dates == routine.completion_dates:
            logger.debug("Routine %s already has completion %s", routine.id, instant.isoformat())
            return updated

        await self._repository.apply(RecordCompletion.for_routine(updated, instant))
        logger.info(
            "Routine %s '%s' completed at %s (streak %d, adherence %.2f)",
            routine.id, routine.title, instant.isoformat(),
            updated.streak_data.current_streak, updated.adherence_rate,
        )
        return updated

    async def undo(self, routine: Routine, instant: datetime) -> Routine:
        now = self._clock.now()
        updated = remove_completion(routine, instant, now, self._lookback)
        if updated.completion_dates == routine.completion_dates:
            logger.warning("Routine %s has no completion at %s to undo", routine.id, instant.isoformat())
            return updated

        await self._repository.apply(RemoveCompletion.for_routine(updated, instant))
        logger.info("Routine %s completion at %s removed", routine.id, instant.isoformat())
        return updated

    async def refresh(self, routine_id: str) -> Routine | None:
        """Reload the routine's latest persisted history and rederive its metrics."""
        routine = await self._repository.get_routine(routine_id)
        if routine is None:
            return None
        updated = refresh_metrics(routine, self._clock.now(), self._lookback)
        await self._repository.apply(RefreshMetrics.for_routine(updated))
        return updated
