"""Tests for planwise.data.documents — model <-> document mapping."""

import pytest
from datetime import date, datetime

from planwise.data.documents import (
    goal_from_document,
    goal_to_document,
    routine_from_document,
    routine_to_document,
    schedule_from_document,
    schedule_to_document,
    session_from_document,
    session_to_document,
    time_tracking_from_document,
)
from planwise.data.models import (
    FixedDeadline,
    Goal,
    RecurringReview,
    ReviewItemStatus,
    ReviewSession,
    Routine,
    RoutineSchedule,
    SessionPhase,
    SharedGoalReview,
    StreakData,
    Task,
    TaskReviewItem,
    TimeOfDay,
    ValidationError,
    WeekdayOccurrence,
)


def _weekly_schedule():
    return RoutineSchedule(
        frequency="weekly",
        target_count=2,
        weekday_occurrences=[
            WeekdayOccurrence(day="monday", time=TimeOfDay(9, 0), specific_date_override=date(2024, 3, 15)),
            WeekdayOccurrence(day="thursday", time=TimeOfDay(18, 30), assigned_to="dana"),
        ],
    )


class TestScheduleDocuments:
    def test_weekly_shape(self):
        doc = schedule_to_document(_weekly_schedule())
        assert doc["frequency"] == "weekly"
        assert doc["targetCount"] == 2
        assert doc["weekdayOccurrences"][0] == {
            "day": "monday",
            "time": {"hour": 9, "minute": 0},
            "specificDateOverride": "2024-03-15",
            "assignedTo": None,
        }

    def test_weekly_read_back(self):
        schedule = _weekly_schedule()
        assert schedule_from_document(schedule_to_document(schedule)) == schedule

    def test_legacy_shape(self):
        schedule = schedule_from_document({
            "type": "weekly",
            "targetCount": 1,
            "daysOfWeek": [{"day": "friday", "time": "07:15"}],
        })
        assert schedule.weekday_occurrences[0].time == TimeOfDay(7, 15)
        assert schedule.weekday_occurrences[0].day.value == "friday"

    def test_missing_frequency(self):
        with pytest.raises(ValidationError):
            schedule_from_document({"targetCount": 1})

    def test_invalid_document_rejected(self):
        with pytest.raises(ValidationError):
            schedule_from_document({"frequency": "weekly", "targetCount": 2, "weekdayOccurrences": []})


class TestRoutineDocuments:
    def test_routine_document_fields(self):
        routine = Routine(
            id="r1",
            title="Run",
            schedule=RoutineSchedule(frequency="daily", time_of_day=TimeOfDay(7, 0)),
            owner_id="amit",
            created_at=datetime(2024, 3, 1),
            updated_at=datetime(2024, 3, 2),
            completion_dates=[datetime(2024, 3, 1, 7, 5)],
            streak_data=StreakData(1, 1, datetime(2024, 3, 1, 7, 5)),
            adherence_rate=0.5,
            missed_reason="too_busy",
        )
        doc = routine_to_document(routine)
        assert doc["targetCount"] == 1
        assert doc["completionDates"] == ["2024-03-01T07:05:00"]
        assert doc["streakData"]["currentStreak"] == 1
        assert doc["missedReason"] == "too_busy"
        assert routine_from_document(doc) == routine


class TestGoalDocuments:
    def test_fixed_deadline(self):
        tracking = time_tracking_from_document({"type": "fixed_deadline", "deadline": "2024-06-01T00:00:00"})
        assert tracking == FixedDeadline(deadline=datetime(2024, 6, 1))

    def test_unknown_tracking_type(self):
        with pytest.raises(ValidationError):
            time_tracking_from_document({"type": "vibes"})

    def test_goal_stores_routine_ids(self):
        routine = Routine(
            id="r1", title="Run", schedule=RoutineSchedule(frequency="daily"),
            owner_id="amit", created_at=datetime(2024, 3, 1), updated_at=datetime(2024, 3, 1),
        )
        goal = Goal(
            id="g1",
            name="Fitness",
            owner_id="amit",
            time_tracking=RecurringReview(cycle="monthly", next_review_date=datetime(2024, 4, 1)),
            tasks=[Task(id="t1", title="Buy shoes", due_date=datetime(2024, 3, 10))],
            routines=[routine],
            shared_with=["dana"],
            notes="knee",
        )
        doc = goal_to_document(goal)
        assert doc["routineIds"] == ["r1"]
        assert doc["timeTracking"]["reviewCycle"] == "monthly"
        assert goal_from_document(doc, [routine]) == goal


class TestSessionDocuments:
    def test_round_trip_with_items(self):
        session = ReviewSession(
            id="s1",
            owner_id="amit",
            week_start=datetime(2024, 3, 11),
            week_end=datetime(2024, 3, 18),
            created_at=datetime(2024, 3, 13, 10, 0),
            updated_at=datetime(2024, 3, 13, 10, 5),
            phase="review",
            review_started_at=datetime(2024, 3, 13, 10, 1),
        )
        session.review_phase.task_reviews.append(TaskReviewItem(
            kind="task", entity_id="t1", title="Call", due_date=datetime(2024, 3, 12),
            goal_id="g1", status="completed", completed_date=datetime(2024, 3, 13, 10, 4),
            action="mark_completed",
        ))
        session.review_phase.shared_goal_reviews.append(SharedGoalReview(
            goal_id="g1", completed_task_ids={"t1"}, pending_task_ids={"t2", "t3"},
            reminded_user_ids={"dana"},
        ))
        session.review_phase.summary.total_completed = 1

        doc = session_to_document(session)
        assert doc["phase"] == "review"
        assert doc["reviewPhase"]["sharedGoalReviews"][0]["pendingTasks"] == ["t2", "t3"]
        assert doc["reviewPhase"]["summary"]["totalCompleted"] == 1

        restored = session_from_document(doc)
        assert restored == session
        assert restored.phase is SessionPhase.REVIEW
        assert restored.review_phase.task_reviews[0].status is ReviewItemStatus.COMPLETED
