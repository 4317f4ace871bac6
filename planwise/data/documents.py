"""
Planwise — Document mapping.

Converts models to and from the camelCase records exchanged with the document
store. Instants are ISO-8601 strings. Readers also accept the older schedule
shape (`type` / `daysOfWeek`) written by earlier app versions.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from planwise.data.models import (
    CompletedReview,
    FixedDeadline,
    Goal,
    Milestone,
    RecurringReview,
    ReviewPhaseData,
    ReviewSession,
    ReviewSummary,
    Routine,
    RoutineDraft,
    RoutineSchedule,
    SharedGoalReview,
    StreakData,
    Task,
    TaskReviewItem,
    TimeOfDay,
    TimeTracking,
    ValidationError,
    WeekdayOccurrence,
)

ROUTINES = "routines"
GOALS = "goals"
TASKS = "tasks"
SESSIONS = "reviewSessions"


def isoformat(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_datetime(raw: str | None) -> datetime | None:
    if raw is None or raw == "":
        return None
    return datetime.fromisoformat(raw)


def parse_date(raw: str | None) -> date | None:
    if raw is None or raw == "":
        return None
    return date.fromisoformat(raw[:10])


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


def _time_to_document(value: TimeOfDay | None) -> dict[str, int] | None:
    if value is None:
        return None
    return {"hour": value.hour, "minute": value.minute}


def _time_from_document(raw: dict | str | None) -> TimeOfDay | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        return TimeOfDay.parse(raw)
    return TimeOfDay(hour=int(raw.get("hour", 0)), minute=int(raw.get("minute", 0)))


def schedule_to_document(schedule: RoutineSchedule) -> dict[str, Any]:
    return {
        "frequency": schedule.frequency.value,
        "targetCount": schedule.target_count,
        "timeOfDay": _time_to_document(schedule.time_of_day),
        "weekdayOccurrences": [
            {
                "day": slot.day.value,
                "time": _time_to_document(slot.time),
                "specificDateOverride": isoformat(slot.specific_date_override),
                "assignedTo": slot.assigned_to,
            }
            for slot in schedule.weekday_occurrences
        ],
        "dayOfMonth": schedule.day_of_month,
        "monthsOfYear": list(schedule.months_of_year),
    }


def schedule_from_document(doc: dict[str, Any]) -> RoutineSchedule:
    frequency = doc.get("frequency", doc.get("type"))
    if frequency is None:
        raise ValidationError("frequency", "schedule document has no frequency")
    slots = doc.get("weekdayOccurrences")
    if slots is None:
        slots = doc.get("daysOfWeek") or []
    return RoutineSchedule(
        frequency=frequency,
        target_count=doc.get("targetCount", 1),
        time_of_day=_time_from_document(doc.get("timeOfDay")),
        weekday_occurrences=[
            WeekdayOccurrence(
                day=slot["day"],
                time=_time_from_document(slot.get("time")) or TimeOfDay(),
                specific_date_override=parse_date(slot.get("specificDateOverride")),
                assigned_to=slot.get("assignedTo"),
            )
            for slot in slots
        ],
        day_of_month=doc.get("dayOfMonth"),
        months_of_year=list(doc.get("monthsOfYear") or []),
    )


# ---------------------------------------------------------------------------
# Routines
# ---------------------------------------------------------------------------


def streak_to_document(streak: StreakData) -> dict[str, Any]:
    return {
        "currentStreak": streak.current_streak,
        "longestStreak": streak.longest_streak,
        "lastCompletedDate": isoformat(streak.last_completed_date),
    }


def _streak_from_document(raw: dict[str, Any] | None) -> StreakData:
    raw = raw or {}
    return StreakData(
        current_streak=raw.get("currentStreak", 0),
        longest_streak=raw.get("longestStreak", 0),
        last_completed_date=parse_datetime(raw.get("lastCompletedDate")),
    )


def routine_draft_to_document(draft: RoutineDraft) -> dict[str, Any]:
    return {
        "title": draft.title,
        "description": draft.description,
        "frequency": draft.schedule.frequency.value,
        "schedule": schedule_to_document(draft.schedule),
        "targetCount": draft.schedule.target_count,
        "endDate": isoformat(draft.end_date),
        "areaId": draft.area_id,
        "assignedTo": draft.assigned_to,
        "completionDates": [isoformat(c) for c in sorted(set(draft.completion_dates))],
        "ownerId": draft.owner_id,
    }


def routine_to_document(routine: Routine) -> dict[str, Any]:
    return {
        "id": routine.id,
        "title": routine.title,
        "description": routine.description,
        "frequency": routine.frequency.value,
        "schedule": schedule_to_document(routine.schedule),
        "targetCount": routine.target_count,
        "endDate": isoformat(routine.end_date),
        "areaId": routine.area_id,
        "assignedTo": routine.assigned_to,
        "completionDates": [isoformat(c) for c in routine.completion_dates],
        "streakData": streak_to_document(routine.streak_data),
        "adherenceRate": routine.adherence_rate,
        "missedReason": routine.missed_reason.value if routine.missed_reason else None,
        "reviewArchived": routine.review_archived,
        "ownerId": routine.owner_id,
        "createdAt": isoformat(routine.created_at),
        "updatedAt": isoformat(routine.updated_at),
    }


def routine_from_document(doc: dict[str, Any]) -> Routine:
    return Routine(
        id=doc["id"],
        title=doc.get("title", ""),
        description=doc.get("description", ""),
        schedule=schedule_from_document(doc["schedule"]),
        owner_id=doc.get("ownerId", ""),
        created_at=parse_datetime(doc["createdAt"]),
        updated_at=parse_datetime(doc.get("updatedAt") or doc["createdAt"]),
        end_date=parse_datetime(doc.get("endDate")),
        area_id=doc.get("areaId"),
        assigned_to=doc.get("assignedTo"),
        completion_dates=[parse_datetime(c) for c in doc.get("completionDates", [])],
        streak_data=_streak_from_document(doc.get("streakData")),
        adherence_rate=doc.get("adherenceRate", 0.0),
        missed_reason=doc.get("missedReason"),
        review_archived=doc.get("reviewArchived", False),
    )


# ---------------------------------------------------------------------------
# Goals, milestones, tasks
# ---------------------------------------------------------------------------


def time_tracking_to_document(tracking: TimeTracking) -> dict[str, Any]:
    if isinstance(tracking, FixedDeadline):
        return {"type": "fixed_deadline", "deadline": isoformat(tracking.deadline)}
    return {
        "type": "recurring_review",
        "reviewCycle": tracking.cycle.value,
        "nextReviewDate": isoformat(tracking.next_review_date),
        "lastReviewDate": isoformat(tracking.last_review_date),
        "completedReviews": [
            {
                "date": isoformat(review.date),
                "madeProgress": review.made_progress,
                "adjustments": review.adjustments,
            }
            for review in tracking.completed_reviews
        ],
    }


def time_tracking_from_document(doc: dict[str, Any]) -> TimeTracking:
    kind = doc.get("type")
    if kind == "fixed_deadline":
        deadline = parse_datetime(doc.get("deadline"))
        if deadline is None:
            raise ValidationError("deadline", "fixed deadline goal has no deadline")
        return FixedDeadline(deadline=deadline)
    if kind == "recurring_review":
        next_review = parse_datetime(doc.get("nextReviewDate"))
        if next_review is None:
            raise ValidationError("nextReviewDate", "recurring review goal has no next review date")
        return RecurringReview(
            cycle=doc.get("reviewCycle"),
            next_review_date=next_review,
            last_review_date=parse_datetime(doc.get("lastReviewDate")),
            completed_reviews=[
                CompletedReview(
                    date=parse_datetime(review["date"]),
                    made_progress=review.get("madeProgress"),
                    adjustments=review.get("adjustments", ""),
                )
                for review in doc.get("completedReviews", [])
            ],
        )
    raise ValidationError("timeTracking.type", f"unknown time tracking type {kind!r}")


def task_to_document(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "dueDate": isoformat(task.due_date),
        "completed": task.completed,
        "goalId": task.goal_id,
        "milestoneId": task.milestone_id,
        "assignedTo": task.assigned_to,
        "priority": task.priority.value,
        "reviewArchived": task.review_archived,
        "ownerId": task.owner_id,
    }


def task_from_document(doc: dict[str, Any]) -> Task:
    return Task(
        id=doc["id"],
        title=doc.get("title", ""),
        due_date=parse_datetime(doc.get("dueDate")),
        completed=doc.get("completed", False),
        goal_id=doc.get("goalId"),
        milestone_id=doc.get("milestoneId"),
        assigned_to=doc.get("assignedTo"),
        priority=doc.get("priority", "medium"),
        review_archived=doc.get("reviewArchived", False),
        owner_id=doc.get("ownerId"),
    )


def _milestone_to_document(milestone: Milestone) -> dict[str, Any]:
    return {
        "id": milestone.id,
        "name": milestone.name,
        "targetDate": isoformat(milestone.target_date),
        "successCriteria": milestone.success_criteria,
        "tasks": list(milestone.task_ids),
    }


def _milestone_from_document(doc: dict[str, Any]) -> Milestone:
    return Milestone(
        id=doc["id"],
        name=doc.get("name", ""),
        target_date=parse_datetime(doc.get("targetDate")),
        success_criteria=doc.get("successCriteria", ""),
        task_ids=list(doc.get("tasks", [])),
    )


def goal_to_document(goal: Goal) -> dict[str, Any]:
    """Routines are stored in their own collection; the goal keeps their ids."""
    return {
        "id": goal.id,
        "name": goal.name,
        "ownerId": goal.owner_id,
        "timeTracking": time_tracking_to_document(goal.time_tracking),
        "areaId": goal.area_id,
        "milestones": [_milestone_to_document(m) for m in goal.milestones],
        "tasks": [task_to_document(t) for t in goal.tasks],
        "routineIds": [r.id for r in goal.routines],
        "sharedWith": list(goal.shared_with),
        "notes": goal.notes,
        "reviewArchived": goal.review_archived,
    }


def goal_from_document(doc: dict[str, Any], routines: list[Routine] | None = None) -> Goal:
    return Goal(
        id=doc["id"],
        name=doc.get("name", ""),
        owner_id=doc.get("ownerId", ""),
        time_tracking=time_tracking_from_document(doc["timeTracking"]),
        area_id=doc.get("areaId", ""),
        milestones=[_milestone_from_document(m) for m in doc.get("milestones", [])],
        tasks=[task_from_document(t) for t in doc.get("tasks", [])],
        routines=list(routines or []),
        shared_with=list(doc.get("sharedWith", [])),
        notes=doc.get("notes", ""),
        review_archived=doc.get("reviewArchived", False),
    )


# ---------------------------------------------------------------------------
# Review sessions
# ---------------------------------------------------------------------------


def _item_to_document(item: TaskReviewItem) -> dict[str, Any]:
    return {
        "kind": item.kind.value,
        "entityId": item.entity_id,
        "title": item.title,
        "goalId": item.goal_id,
        "status": item.status.value,
        "dueDate": isoformat(item.due_date),
        "completedDate": isoformat(item.completed_date),
        "action": item.action.value if item.action else None,
    }


def _item_from_document(doc: dict[str, Any]) -> TaskReviewItem:
    return TaskReviewItem(
        kind=doc["kind"],
        entity_id=doc["entityId"],
        title=doc.get("title", ""),
        due_date=parse_datetime(doc["dueDate"]),
        goal_id=doc.get("goalId"),
        status=doc.get("status", "pending"),
        completed_date=parse_datetime(doc.get("completedDate")),
        action=doc.get("action"),
    )


def session_to_document(session: ReviewSession) -> dict[str, Any]:
    summary = session.review_phase.summary
    return {
        "id": session.id,
        "ownerId": session.owner_id,
        "phase": session.phase.value,
        "weekStart": isoformat(session.week_start),
        "weekEnd": isoformat(session.week_end),
        "reviewStartedAt": isoformat(session.review_started_at),
        "reviewPhase": {
            "taskReviews": [_item_to_document(i) for i in session.review_phase.task_reviews],
            "sharedGoalReviews": [
                {
                    "goalId": review.goal_id,
                    "completedTasks": sorted(review.completed_task_ids),
                    "pendingTasks": sorted(review.pending_task_ids),
                    "teamReminders": sorted(review.reminded_user_ids),
                }
                for review in session.review_phase.shared_goal_reviews
            ],
            "summary": {
                "totalCompleted": summary.total_completed,
                "totalPushedForward": summary.total_pushed_forward,
                "totalMissed": summary.total_missed,
                "totalArchived": summary.total_archived,
            },
        },
        "createdAt": isoformat(session.created_at),
        "updatedAt": isoformat(session.updated_at),
    }


def session_from_document(doc: dict[str, Any]) -> ReviewSession:
    phase_doc = doc.get("reviewPhase") or {}
    summary_doc = phase_doc.get("summary") or {}
    return ReviewSession(
        id=doc["id"],
        owner_id=doc.get("ownerId", ""),
        phase=doc.get("phase", "planning"),
        week_start=parse_datetime(doc["weekStart"]),
        week_end=parse_datetime(doc["weekEnd"]),
        review_started_at=parse_datetime(doc.get("reviewStartedAt")),
        created_at=parse_datetime(doc["createdAt"]),
        updated_at=parse_datetime(doc.get("updatedAt") or doc["createdAt"]),
        review_phase=ReviewPhaseData(
            task_reviews=[_item_from_document(i) for i in phase_doc.get("taskReviews", [])],
            shared_goal_reviews=[
                SharedGoalReview(
                    goal_id=review["goalId"],
                    completed_task_ids=set(review.get("completedTasks", [])),
                    pending_task_ids=set(review.get("pendingTasks", [])),
                    reminded_user_ids=set(review.get("teamReminders", [])),
                )
                for review in phase_doc.get("sharedGoalReviews", [])
            ],
            summary=ReviewSummary(
                total_completed=summary_doc.get("totalCompleted", 0),
                total_pushed_forward=summary_doc.get("totalPushedForward", 0),
                total_missed=summary_doc.get("totalMissed", 0),
                total_archived=summary_doc.get("totalArchived", 0),
            ),
        ),
    )
