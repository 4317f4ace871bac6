"""Tests for planwise.core.schedule — occurrence generation and periods."""

import pytest
from datetime import date, datetime

from planwise.core.schedule import (
    clamp_day,
    compute_occurrences,
    current_period,
    iter_occurrences,
    iter_periods,
    next_occurrence,
    previous_occurrence,
)
from planwise.data.models import InvariantViolation, RoutineSchedule, TimeOfDay, WeekdayOccurrence


def _dues(occurrences):
    return [o.due for o in occurrences]


def _daily(hour=8):
    return RoutineSchedule(frequency="daily", time_of_day=TimeOfDay(hour, 0))


# ---------------------------------------------------------------------------
# Daily
# ---------------------------------------------------------------------------


class TestDaily:
    def test_one_per_day(self):
        result = compute_occurrences(_daily(), datetime(2024, 1, 1), datetime(2024, 1, 3, 23, 59))
        assert _dues(result) == [
            datetime(2024, 1, 1, 8, 0),
            datetime(2024, 1, 2, 8, 0),
            datetime(2024, 1, 3, 8, 0),
        ]

    def test_range_is_closed(self):
        result = compute_occurrences(_daily(), datetime(2024, 1, 1, 8, 0), datetime(2024, 1, 2, 8, 0))
        assert len(result) == 2

    def test_default_time_is_start_of_day(self):
        schedule = RoutineSchedule(frequency="daily")
        result = compute_occurrences(schedule, datetime(2024, 1, 1), datetime(2024, 1, 1, 12, 0))
        assert _dues(result) == [datetime(2024, 1, 1, 0, 0)]

    def test_nothing_after_end_date(self):
        result = compute_occurrences(
            _daily(), datetime(2024, 1, 1), datetime(2024, 1, 10),
            end_date=datetime(2024, 1, 3, 12, 0),
        )
        assert _dues(result)[-1] == datetime(2024, 1, 3, 8, 0)
        assert len(result) == 3

    def test_end_before_start_is_empty(self):
        assert compute_occurrences(_daily(), datetime(2024, 1, 5), datetime(2024, 1, 1)) == []

    def test_generation_is_deterministic(self):
        start, end = datetime(2024, 1, 1), datetime(2024, 3, 1)
        assert compute_occurrences(_daily(), start, end) == compute_occurrences(_daily(), start, end)

    def test_iterator_is_lazy(self):
        occurrences = iter_occurrences(_daily(), datetime(2024, 1, 1), datetime(2030, 1, 1))
        assert next(occurrences).due == datetime(2024, 1, 1, 8, 0)


# ---------------------------------------------------------------------------
# Weekly
# ---------------------------------------------------------------------------


class TestWeekly:
    def _monday_nine(self, override=None, assigned_to=None):
        return RoutineSchedule(
            frequency="weekly",
            target_count=1,
            weekday_occurrences=[
                WeekdayOccurrence(
                    day="monday",
                    time=TimeOfDay(9, 0),
                    specific_date_override=override,
                    assigned_to=assigned_to,
                )
            ],
        )

    def test_override_applies_only_to_its_week(self):
        schedule = self._monday_nine(override=date(2024, 3, 15))
        result = compute_occurrences(schedule, datetime(2024, 3, 4), datetime(2024, 3, 25, 23, 59))
        assert _dues(result) == [
            datetime(2024, 3, 4, 9, 0),
            datetime(2024, 3, 15, 9, 0),
            datetime(2024, 3, 18, 9, 0),
            datetime(2024, 3, 25, 9, 0),
        ]
        assert [o.overridden for o in result] == [False, True, False, False]

    def test_assignee_is_carried(self):
        schedule = self._monday_nine(assigned_to="dana")
        result = compute_occurrences(schedule, datetime(2024, 3, 4), datetime(2024, 3, 10))
        assert result[0].assigned_to == "dana"

    def test_slots_emitted_in_time_order(self):
        schedule = RoutineSchedule(
            frequency="weekly",
            target_count=2,
            weekday_occurrences=[
                WeekdayOccurrence(day="friday", time=TimeOfDay(7, 0)),
                WeekdayOccurrence(day="monday", time=TimeOfDay(7, 0)),
            ],
        )
        result = compute_occurrences(schedule, datetime(2024, 3, 11), datetime(2024, 3, 17, 23, 59))
        assert _dues(result) == [datetime(2024, 3, 11, 7, 0), datetime(2024, 3, 15, 7, 0)]

    def test_three_per_week_over_four_weeks(self):
        schedule = RoutineSchedule(
            frequency="weekly",
            target_count=3,
            weekday_occurrences=[
                WeekdayOccurrence(day=d, time=TimeOfDay(9, 0))
                for d in ("monday", "wednesday", "friday")
            ],
        )
        result = compute_occurrences(schedule, datetime(2024, 3, 4), datetime(2024, 3, 31, 23, 59))
        assert len(result) == 12

    def test_broken_slot_count_fails_loudly(self):
        schedule = self._monday_nine()
        schedule.target_count = 2
        with pytest.raises(InvariantViolation):
            compute_occurrences(schedule, datetime(2024, 3, 4), datetime(2024, 3, 10))


# ---------------------------------------------------------------------------
# Monthly, quarterly, yearly
# ---------------------------------------------------------------------------


class TestByMonth:
    def test_clamp_day(self):
        assert clamp_day(2024, 2, 31) == date(2024, 2, 29)
        assert clamp_day(2023, 2, 31) == date(2023, 2, 28)
        assert clamp_day(2024, 4, 15) == date(2024, 4, 15)

    def test_monthly_clamps_to_last_day(self):
        schedule = RoutineSchedule(frequency="monthly", day_of_month=31, time_of_day=TimeOfDay(18, 0))
        result = compute_occurrences(schedule, datetime(2024, 1, 1), datetime(2024, 4, 30, 23, 59))
        assert _dues(result) == [
            datetime(2024, 1, 31, 18, 0),
            datetime(2024, 2, 29, 18, 0),
            datetime(2024, 3, 31, 18, 0),
            datetime(2024, 4, 30, 18, 0),
        ]

    def test_quarterly_defaults_to_quarter_starts(self):
        schedule = RoutineSchedule(frequency="quarterly")
        result = compute_occurrences(schedule, datetime(2024, 1, 1), datetime(2024, 12, 31))
        assert [d.date() for d in _dues(result)] == [
            date(2024, 1, 1), date(2024, 4, 1), date(2024, 7, 1), date(2024, 10, 1),
        ]

    def test_yearly_leap_day(self):
        schedule = RoutineSchedule(frequency="yearly", months_of_year=[2], day_of_month=29)
        result = compute_occurrences(schedule, datetime(2023, 1, 1), datetime(2024, 12, 31))
        assert [d.date() for d in _dues(result)] == [date(2023, 2, 28), date(2024, 2, 29)]


# ---------------------------------------------------------------------------
# Neighbours and periods
# ---------------------------------------------------------------------------


class TestNextAndPrevious:
    def test_next_is_strictly_after(self):
        occurrence = next_occurrence(_daily(), datetime(2024, 3, 13, 8, 0))
        assert occurrence.due == datetime(2024, 3, 14, 8, 0)

    def test_next_after_end_date_is_none(self):
        assert next_occurrence(_daily(), datetime(2024, 3, 13, 10, 0), datetime(2024, 3, 13, 12, 0)) is None

    def test_next_yearly_spans_a_year(self):
        schedule = RoutineSchedule(frequency="yearly")
        occurrence = next_occurrence(schedule, datetime(2024, 1, 2))
        assert occurrence.due == datetime(2025, 1, 1)

    def test_previous_monthly(self):
        schedule = RoutineSchedule(frequency="monthly", day_of_month=15)
        occurrence = previous_occurrence(schedule, datetime(2024, 3, 13, 10, 0))
        assert occurrence.due == datetime(2024, 2, 15)

    def test_previous_includes_exact_instant(self):
        occurrence = previous_occurrence(_daily(), datetime(2024, 3, 13, 8, 0))
        assert occurrence.due == datetime(2024, 3, 13, 8, 0)


class TestPeriods:
    def test_daily_period_is_the_due_day(self):
        period = current_period(_daily(), datetime(2024, 3, 13, 10, 0))
        assert period.start == datetime(2024, 3, 13)
        assert period.end == datetime(2024, 3, 14)
        assert period.occurrence.due == datetime(2024, 3, 13, 8, 0)

    def test_before_todays_slot_the_period_is_yesterdays(self):
        period = current_period(_daily(), datetime(2024, 3, 13, 7, 0))
        assert period.occurrence.due == datetime(2024, 3, 12, 8, 0)
        assert period.end == datetime(2024, 3, 13)

    def test_weekly_period_runs_to_next_slot_day(self):
        schedule = RoutineSchedule(
            frequency="weekly",
            target_count=2,
            weekday_occurrences=[
                WeekdayOccurrence(day="monday", time=TimeOfDay(9, 0)),
                WeekdayOccurrence(day="thursday", time=TimeOfDay(9, 0)),
            ],
        )
        period = current_period(schedule, datetime(2024, 3, 13, 10, 0))
        assert period.occurrence.due == datetime(2024, 3, 11, 9, 0)
        assert period.start == datetime(2024, 3, 11)
        assert period.end == datetime(2024, 3, 14)
        assert period.contains(datetime(2024, 3, 13, 23, 0))
        assert not period.contains(datetime(2024, 3, 14))

    def test_same_day_slots_split_at_later_slot(self):
        schedule = RoutineSchedule(
            frequency="weekly",
            target_count=2,
            weekday_occurrences=[
                WeekdayOccurrence(day="monday", time=TimeOfDay(8, 0)),
                WeekdayOccurrence(day="monday", time=TimeOfDay(18, 0)),
            ],
        )
        periods = list(iter_periods(schedule, datetime(2024, 3, 11), datetime(2024, 3, 11, 23, 59)))
        assert [(p.start, p.end) for p in periods] == [
            (datetime(2024, 3, 11), datetime(2024, 3, 11, 18, 0)),
            (datetime(2024, 3, 11, 18, 0), datetime(2024, 3, 18)),
        ]

    def test_ended_routine_last_period_closes_at_end_of_day(self):
        periods = list(iter_periods(
            _daily(), datetime(2024, 3, 13), datetime(2024, 3, 13, 23, 59),
            end_date=datetime(2024, 3, 13, 12, 0),
        ))
        assert len(periods) == 1
        assert periods[0].end == datetime(2024, 3, 14)

    def test_no_occurrence_no_period(self):
        schedule = RoutineSchedule(frequency="monthly", day_of_month=20)
        assert list(iter_periods(schedule, datetime(2024, 3, 1), datetime(2024, 3, 10))) == []
