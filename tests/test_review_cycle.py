"""Tests for planwise.core.review_cycle — review date arithmetic."""

import pytest
from datetime import date, datetime

from planwise.core.review_cycle import (
    complete_review,
    next_review_date,
    nearest_review_day,
    push_review,
    reschedule_review,
)
from planwise.data.models import FixedDeadline, RecurringReview, ReviewCycle, ValidationError


class TestNextReviewDate:
    @pytest.mark.parametrize("cycle,expected", [
        ("weekly", datetime(2024, 1, 22, 9, 0)),
        ("monthly", datetime(2024, 2, 15, 9, 0)),
        ("quarterly", datetime(2024, 4, 15, 9, 0)),
        ("biannual", datetime(2024, 7, 15, 9, 0)),
        ("yearly", datetime(2025, 1, 15, 9, 0)),
    ])
    def test_every_cycle_is_handled(self, cycle, expected):
        assert next_review_date(cycle, datetime(2024, 1, 15, 9, 0)) == expected

    def test_monthly_from_january_31_clamps(self):
        assert next_review_date(ReviewCycle.MONTHLY, datetime(2024, 1, 31)) == datetime(2024, 2, 29)

    def test_monthly_from_january_31_non_leap(self):
        assert next_review_date(ReviewCycle.MONTHLY, datetime(2023, 1, 31)) == datetime(2023, 2, 28)

    def test_biannual_clamps(self):
        assert next_review_date(ReviewCycle.BIANNUAL, datetime(2024, 8, 31)) == datetime(2025, 2, 28)

    def test_yearly_from_leap_day(self):
        assert next_review_date(ReviewCycle.YEARLY, datetime(2024, 2, 29)) == datetime(2025, 2, 28)

    def test_unknown_cycle(self):
        with pytest.raises(ValidationError) as exc_info:
            next_review_date("fortnightly", datetime(2024, 1, 1))
        assert exc_info.value.field == "cycle"


class TestCompleteReview:
    def test_records_and_reschedules_from_completion(self):
        tracking = RecurringReview(cycle="monthly", next_review_date=datetime(2024, 3, 10))
        at = datetime(2024, 3, 13, 10, 0)
        updated = complete_review(tracking, at, made_progress=True, adjustments="less volume")
        assert updated.last_review_date == at
        assert updated.next_review_date == datetime(2024, 4, 13, 10, 0)
        assert len(updated.completed_reviews) == 1
        assert updated.completed_reviews[0].made_progress is True
        assert updated.completed_reviews[0].adjustments == "less volume"
        assert tracking.completed_reviews == []

    def test_fixed_deadline_goal_rejected(self):
        with pytest.raises(ValidationError):
            complete_review(FixedDeadline(deadline=datetime(2024, 6, 1)), datetime(2024, 3, 13))


class TestPushReview:
    def test_moves_one_cycle_without_recording(self):
        tracking = RecurringReview(cycle="quarterly", next_review_date=datetime(2024, 3, 10))
        pushed = push_review(tracking)
        assert pushed.next_review_date == datetime(2024, 6, 10)
        assert pushed.last_review_date is None
        assert pushed.completed_reviews == []


class TestNearestReviewDay:
    # 2024-03-17 is a Sunday.
    @pytest.mark.parametrize("day,expected", [
        (date(2024, 3, 17), date(2024, 3, 24)),
        (date(2024, 3, 18), date(2024, 3, 17)),
        (date(2024, 3, 19), date(2024, 3, 17)),
        (date(2024, 3, 20), date(2024, 3, 24)),
        (date(2024, 3, 23), date(2024, 3, 24)),
    ])
    def test_snaps_to_sunday(self, day, expected):
        assert nearest_review_day(day) == expected

    def test_reschedule_uses_snapped_day(self):
        tracking = RecurringReview(cycle="weekly", next_review_date=datetime(2024, 3, 17))
        moved = reschedule_review(tracking, date(2024, 3, 21))
        assert moved.next_review_date == datetime(2024, 3, 24)

    def test_reschedule_before_last_review_rejected(self):
        tracking = RecurringReview(
            cycle="weekly",
            next_review_date=datetime(2024, 3, 24),
            last_review_date=datetime(2024, 3, 17, 10, 0),
        )
        with pytest.raises(ValidationError):
            reschedule_review(tracking, date(2024, 3, 11))
