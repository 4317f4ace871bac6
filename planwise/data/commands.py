"""
Planwise — Patch Commands.

One pydantic model per mutation type. A command carries exactly the fields
its mutation may touch and renders them with `fields()` for
DocumentStorePort.update. Partial updates can't silently drop a dependent
field: changing a schedule always rewrites frequency, target count and slots
together.

JSON example (UpdateSchedule.fields()):
{
    "schedule": {"frequency": "weekly", "targetCount": 1, ...},
    "frequency": "weekly",
    "targetCount": 1,
    "updatedAt": "2024-03-15T09:00:00"
}
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, Field, field_validator

from planwise.data.documents import (
    ROUTINES,
    GOALS,
    SESSIONS,
    TASKS,
    isoformat,
    schedule_from_document,
    schedule_to_document,
    session_to_document,
    streak_to_document,
    task_to_document,
    time_tracking_from_document,
    time_tracking_to_document,
)
from planwise.data.models import (
    MissedReason,
    ReviewSession,
    Routine,
    RoutineSchedule,
    Task,
    TimeTracking,
)


class PatchCommand(BaseModel):
    """Base for all mutations sent through the document store."""

    collection: ClassVar[str]

    entity_id: str = Field(min_length=1)

    def target_collection(self) -> str:
        return self.collection

    def fields(self) -> dict[str, Any]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Routines
# ---------------------------------------------------------------------------


class UpdateSchedule(PatchCommand):
    """Replace a routine's whole schedule."""

    collection: ClassVar[str] = ROUTINES

    schedule: dict[str, Any]
    updated_at: datetime

    @field_validator("schedule")
    @classmethod
    def schedule_is_complete(cls, v: dict[str, Any]) -> dict[str, Any]:
        # Round-trip through the model so every schedule rule is enforced here too.
        return schedule_to_document(schedule_from_document(v))

    @classmethod
    def for_schedule(
        cls, routine_id: str, schedule: RoutineSchedule, updated_at: datetime
    ) -> UpdateSchedule:
        return cls(
            entity_id=routine_id,
            schedule=schedule_to_document(schedule),
            updated_at=updated_at,
        )

    def fields(self) -> dict[str, Any]:
        return {
            "schedule": self.schedule,
            "frequency": self.schedule["frequency"],
            "targetCount": self.schedule["targetCount"],
            "updatedAt": isoformat(self.updated_at),
        }


class _CompletionPatch(PatchCommand):
    collection: ClassVar[str] = ROUTINES

    completion_dates: list[datetime]
    streak_data: dict[str, Any]
    adherence_rate: float = Field(ge=0.0, le=1.0)
    updated_at: datetime
    instant: datetime | None = None

    @classmethod
    def for_routine(cls, routine: Routine, instant: datetime | None = None):
        return cls(
            entity_id=routine.id,
            completion_dates=routine.completion_dates,
            streak_data=streak_to_document(routine.streak_data),
            adherence_rate=routine.adherence_rate,
            updated_at=routine.updated_at,
            instant=instant,
        )

    def fields(self) -> dict[str, Any]:
        return {
            "completionDates": [isoformat(c) for c in sorted(self.completion_dates)],
            "streakData": self.streak_data,
            "adherenceRate": self.adherence_rate,
            "updatedAt": isoformat(self.updated_at),
        }


class RecordCompletion(_CompletionPatch):
    """History after adding a completion, with its rederived metrics."""


class RemoveCompletion(_CompletionPatch):
    """History after undoing a completion, with its rederived metrics."""


class RefreshMetrics(_CompletionPatch):
    """Unchanged history with metrics rederived as of a later instant."""


class RestoreRoutine(_CompletionPatch):
    """Put a routine's review-facing fields back to an earlier snapshot."""

    missed_reason: MissedReason | None = None
    review_archived: bool = False

    @classmethod
    def for_routine(cls, routine: Routine, instant: datetime | None = None):
        command = super().for_routine(routine, instant)
        return command.model_copy(update={
            "missed_reason": routine.missed_reason,
            "review_archived": routine.review_archived,
        })

    def fields(self) -> dict[str, Any]:
        return {
            **super().fields(),
            "missedReason": self.missed_reason.value if self.missed_reason else None,
            "reviewArchived": self.review_archived,
        }


class SetRoutineMissed(PatchCommand):
    collection: ClassVar[str] = ROUTINES

    reason: MissedReason | None = None

    def fields(self) -> dict[str, Any]:
        return {"missedReason": self.reason.value if self.reason else None}


# ---------------------------------------------------------------------------
# Goals and tasks
# ---------------------------------------------------------------------------


class SetTimeTracking(PatchCommand):
    collection: ClassVar[str] = GOALS

    time_tracking: dict[str, Any]

    @field_validator("time_tracking")
    @classmethod
    def tracking_is_valid(cls, v: dict[str, Any]) -> dict[str, Any]:
        return time_tracking_to_document(time_tracking_from_document(v))

    @classmethod
    def for_goal(cls, goal_id: str, tracking: TimeTracking) -> SetTimeTracking:
        return cls(entity_id=goal_id, time_tracking=time_tracking_to_document(tracking))

    def fields(self) -> dict[str, Any]:
        return {"timeTracking": self.time_tracking}


class UpdateGoalTasks(PatchCommand):
    """Rewrite the task list embedded in a goal document."""

    collection: ClassVar[str] = GOALS

    tasks: list[dict[str, Any]]

    @classmethod
    def for_tasks(cls, goal_id: str, tasks: list[Task]) -> UpdateGoalTasks:
        return cls(entity_id=goal_id, tasks=[task_to_document(t) for t in tasks])

    def fields(self) -> dict[str, Any]:
        return {"tasks": self.tasks}


class UpdateTask(PatchCommand):
    """Update a standalone task document (one not embedded in a goal)."""

    collection: ClassVar[str] = TASKS

    completed: bool
    due_date: datetime | None = None
    review_archived: bool = False

    @classmethod
    def for_task(cls, task: Task) -> UpdateTask:
        return cls(
            entity_id=task.id,
            completed=task.completed,
            due_date=task.due_date,
            review_archived=task.review_archived,
        )

    def fields(self) -> dict[str, Any]:
        return {
            "completed": self.completed,
            "dueDate": isoformat(self.due_date),
            "reviewArchived": self.review_archived,
        }


class ArchiveEntity(PatchCommand):
    """Exclude a routine or goal from future review aggregation (or take it back)."""

    archivable: ClassVar[tuple[str, ...]] = (ROUTINES, GOALS)

    target: str
    archived: bool = True

    @field_validator("target")
    @classmethod
    def target_is_archivable(cls, v: str) -> str:
        if v not in cls.archivable:
            raise ValueError(f"cannot archive documents in {v!r}")
        return v

    def target_collection(self) -> str:
        return self.target

    def fields(self) -> dict[str, Any]:
        return {"reviewArchived": self.archived}


# ---------------------------------------------------------------------------
# Review sessions
# ---------------------------------------------------------------------------


class SaveSession(PatchCommand):
    """Full review session snapshot after a transition or disposition."""

    collection: ClassVar[str] = SESSIONS

    document: dict[str, Any]

    @classmethod
    def for_session(cls, session: ReviewSession) -> SaveSession:
        document = session_to_document(session)
        document.pop("id", None)
        return cls(entity_id=session.id, document=document)

    def fields(self) -> dict[str, Any]:
        return dict(self.document)
