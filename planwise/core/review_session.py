"""
Planwise — Weekly Review Session.

State machine for one planning checkpoint: planning -> review -> closed.

Entering review collects everything the user owes as of that instant:
overdue tasks, routines whose current period is unmet, and goals whose
review date has come. Each becomes a pending item the user disposes of
(complete, push forward, mark missed, archive). The session closes once
nothing is pending.

Every action writes the entity change first and the session document
second. The in-memory session only moves forward after both writes
succeed. When the session write fails the entity is written back to its
prior state, the item stays pending and the caller may re-issue the action.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Iterable

from planwise.config import settings
from planwise.core.completion_tracker import CompletionTracker, completed_within
from planwise.core.review_cycle import complete_review, push_review
from planwise.core.schedule import current_period, next_occurrence, start_of_day
from planwise.core.write_queue import WriteCoalescer
from planwise.data.commands import (
    ArchiveEntity,
    RestoreRoutine,
    SaveSession,
    SetRoutineMissed,
    SetTimeTracking,
    UpdateGoalTasks,
    UpdateTask,
)
from planwise.data.documents import GOALS, ROUTINES
from planwise.data.models import (
    MissedReason,
    RecurringReview,
    ReviewAction,
    ReviewItemKind,
    ReviewItemStatus,
    ReviewSession,
    SessionPhase,
    SharedGoalReview,
    TaskReviewItem,
    ValidationError,
    coerce_enum,
    week_bounds,
)
from planwise.ports.document_store_port import PersistenceError
from planwise.ports.notification_port import NotificationError

if TYPE_CHECKING:
    from planwise.data.models import Goal, Routine, Task
    from planwise.data.repository import PlanRepository
    from planwise.ports.clock_port import ClockPort
    from planwise.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


class SessionStateError(Exception):
    """Raised when an action doesn't fit the session's phase or items."""


# ---------------------------------------------------------------------------
# Aggregation (pure)
# ---------------------------------------------------------------------------


def _routine_is_due(routine: Routine, now: datetime) -> datetime | None:
    """Due instant of the routine's current period if that period is unmet."""
    if routine.review_archived:
        return None
    if routine.end_date is not None and routine.end_date < start_of_day(now):
        return None
    period = current_period(routine.schedule, now, routine.end_date)
    if period is None:
        return None
    if completed_within(routine.completion_dates, period.start, min(period.end, now + timedelta(microseconds=1))):
        return None
    return period.occurrence.due


def aggregate_due_items(
    goals: Iterable[Goal],
    tasks: Iterable[Task],
    routines: Iterable[Routine],
    now: datetime,
) -> list[TaskReviewItem]:
    """Everything due for review as of `now`, oldest first."""
    items: dict[str, TaskReviewItem] = {}

    def add(item: TaskReviewItem) -> None:
        items.setdefault(item.item_id, item)

    def add_task(task: Task, goal_id: str | None) -> None:
        if task.completed or task.review_archived or task.due_date is None:
            return
        if task.due_date <= now:
            add(TaskReviewItem(
                kind=ReviewItemKind.TASK, entity_id=task.id, title=task.title,
                due_date=task.due_date, goal_id=goal_id,
            ))

    def add_routine(routine: Routine, goal_id: str | None) -> None:
        due = _routine_is_due(routine, now)
        if due is not None:
            add(TaskReviewItem(
                kind=ReviewItemKind.ROUTINE, entity_id=routine.id, title=routine.title,
                due_date=due, goal_id=goal_id,
            ))

    for goal in goals:
        for task in goal.tasks:
            add_task(task, goal.id)
        for routine in goal.routines:
            add_routine(routine, goal.id)
        tracking = goal.time_tracking
        if (
            isinstance(tracking, RecurringReview)
            and not goal.review_archived
            and tracking.next_review_date <= now
        ):
            add(TaskReviewItem(
                kind=ReviewItemKind.GOAL_REVIEW, entity_id=goal.id, title=goal.name,
                due_date=tracking.next_review_date, goal_id=goal.id,
            ))
    for task in tasks:
        add_task(task, task.goal_id)
    for routine in routines:
        add_routine(routine, None)

    return sorted(items.values(), key=lambda item: (item.due_date, item.kind.value, item.entity_id))


def build_shared_goal_reviews(goals: Iterable[Goal]) -> list[SharedGoalReview]:
    """Collaborative task status for every goal shared with someone."""
    reviews = []
    for goal in goals:
        if not goal.shared_with:
            continue
        open_tasks = [t for t in goal.tasks if not t.review_archived]
        reviews.append(SharedGoalReview(
            goal_id=goal.id,
            completed_task_ids={t.id for t in open_tasks if t.completed},
            pending_task_ids={t.id for t in open_tasks if not t.completed},
        ))
    return reviews


def _find_item(session: ReviewSession, item_id: str) -> TaskReviewItem | None:
    return next((i for i in session.review_phase.task_reviews if i.item_id == item_id), None)


def _find_shared(session: ReviewSession, goal_id: str) -> SharedGoalReview | None:
    return next((r for r in session.review_phase.shared_goal_reviews if r.goal_id == goal_id), None)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ReviewSessionService:
    """Drives one ReviewSession and persists every transition."""

    def __init__(
        self,
        session: ReviewSession,
        repository: PlanRepository,
        clock: ClockPort,
        tracker: CompletionTracker | None = None,
        notifier: NotificationPort | None = None,
        notes: WriteCoalescer | None = None,
        push_forward_days: int | None = None,
    ) -> None:
        self._session = session
        self._repository = repository
        self._clock = clock
        self._tracker = tracker or CompletionTracker(repository, clock)
        self._notifier = notifier
        self._notes = notes or WriteCoalescer(repository.store, GOALS)
        days = settings.TASK_PUSH_FORWARD_DAYS if push_forward_days is None else push_forward_days
        self._push_step = timedelta(days=max(1, days))

        self._goals: dict[str, Goal] = {}
        self._tasks: dict[str, Task] = {}
        self._task_goal: dict[str, str] = {}
        self._routines: dict[str, Routine] = {}
        self._item_locks: dict[str, asyncio.Lock] = {}
        self._save_lock = asyncio.Lock()

    # -- construction --------------------------------------------------------

    @classmethod
    async def open(
        cls,
        owner_id: str,
        repository: PlanRepository,
        clock: ClockPort,
        **kwargs: Any,
    ) -> ReviewSessionService:
        """Create and persist a new session in the planning phase."""
        now = clock.now()
        week_start, week_end = week_bounds(now)
        draft = ReviewSession(
            id="",
            owner_id=owner_id,
            week_start=week_start,
            week_end=week_end,
            created_at=now,
            updated_at=now,
        )
        session = await repository.create_session(draft)
        logger.info("Review session %s opened for %s (week of %s)", session.id, owner_id, week_start.date())
        return cls(session, repository, clock, **kwargs)

    @classmethod
    async def load(
        cls,
        session_id: str,
        repository: PlanRepository,
        clock: ClockPort,
        **kwargs: Any,
    ) -> ReviewSessionService:
        """Rehydrate a stored session. Call attach() before disposing of items."""
        session = await repository.get_session(session_id)
        if session is None:
            raise SessionStateError(f"Review session {session_id} not found")
        return cls(session, repository, clock, **kwargs)

    def attach(
        self,
        goals: Iterable[Goal] = (),
        tasks: Iterable[Task] = (),
        routines: Iterable[Routine] = (),
    ) -> None:
        """Register the entities the session's items refer to."""
        for goal in goals:
            self._goals[goal.id] = goal
            for task in goal.tasks:
                self._tasks[task.id] = task
                self._task_goal[task.id] = goal.id
            for routine in goal.routines:
                self._routines[routine.id] = routine
        for task in tasks:
            self._tasks[task.id] = task
            if task.goal_id:
                self._task_goal.setdefault(task.id, task.goal_id)
        for routine in routines:
            self._routines[routine.id] = routine

    # -- read access ---------------------------------------------------------

    @property
    def session(self) -> ReviewSession:
        return self._session

    @property
    def phase(self) -> SessionPhase:
        return self._session.phase

    @property
    def items(self) -> list[TaskReviewItem]:
        return list(self._session.review_phase.task_reviews)

    @property
    def pending_items(self) -> list[TaskReviewItem]:
        return [i for i in self.items if i.status is ReviewItemStatus.PENDING]

    def item(self, item_id: str) -> TaskReviewItem:
        found = _find_item(self._session, item_id)
        if found is None:
            raise SessionStateError(f"No review item {item_id!r} in session {self._session.id}")
        return found

    def shared_review(self, goal_id: str) -> SharedGoalReview:
        found = _find_shared(self._session, goal_id)
        if found is None:
            raise SessionStateError(f"Goal {goal_id} has no shared review in this session")
        return found

    def goal(self, goal_id: str) -> Goal:
        if goal_id not in self._goals:
            raise SessionStateError(f"Goal {goal_id} is not attached to this session")
        return self._goals[goal_id]

    def routine(self, routine_id: str) -> Routine:
        if routine_id not in self._routines:
            raise SessionStateError(f"Routine {routine_id} is not attached to this session")
        return self._routines[routine_id]

    def task(self, task_id: str) -> Task:
        if task_id not in self._tasks:
            raise SessionStateError(f"Task {task_id} is not attached to this session")
        return self._tasks[task_id]

    # -- phase transitions ---------------------------------------------------

    def _require_phase(self, phase: SessionPhase) -> None:
        if self._session.phase is not phase:
            raise SessionStateError(
                f"Session {self._session.id} is in {self._session.phase.value}, "
                f"expected {phase.value}"
            )

    async def _commit(self, mutate: Callable[[ReviewSession], None]) -> ReviewSession:
        """Apply `mutate` to a copy, persist it, then adopt it."""
        async with self._save_lock:
            updated = copy.deepcopy(self._session)
            mutate(updated)
            updated.updated_at = self._clock.now()
            try:
                await self._repository.apply(SaveSession.for_session(updated))
            except PersistenceError:
                logger.warning("Session %s: write failed, previous state kept", self._session.id)
                raise
            self._session = updated
            return updated

    async def start_review(
        self,
        goals: Iterable[Goal] = (),
        tasks: Iterable[Task] = (),
        routines: Iterable[Routine] = (),
    ) -> list[TaskReviewItem]:
        """planning -> review, collecting everything due right now."""
        self._require_phase(SessionPhase.PLANNING)
        goals, tasks, routines = list(goals), list(tasks), list(routines)
        self.attach(goals, tasks, routines)

        now = self._clock.now()
        due = aggregate_due_items(goals, tasks, routines, now)
        shared = build_shared_goal_reviews(goals)

        def mutate(session: ReviewSession) -> None:
            session.phase = SessionPhase.REVIEW
            session.review_started_at = now
            session.review_phase.task_reviews = due
            session.review_phase.shared_goal_reviews = shared

        await self._commit(mutate)
        logger.info(
            "Session %s in review: %d item(s), %d shared goal(s)",
            self._session.id, len(due), len(shared),
        )
        return self.items

    async def close(self) -> None:
        """review -> closed. Only allowed once nothing is pending."""
        self._require_phase(SessionPhase.REVIEW)
        await self.flush_notes()

        def mutate(session: ReviewSession) -> None:
            pending = [i.item_id for i in session.review_phase.task_reviews
                       if i.status is ReviewItemStatus.PENDING]
            if pending:
                raise SessionStateError(
                    f"Session {session.id} still has {len(pending)} pending item(s): "
                    + ", ".join(pending)
                )
            session.phase = SessionPhase.CLOSED

        try:
            await self._commit(mutate)
        except SessionStateError as exc:
            logger.warning("Close rejected: %s", exc)
            raise
        summary = self._session.review_phase.summary
        logger.info(
            "Session %s closed: %d completed, %d pushed, %d missed, %d archived",
            self._session.id, summary.total_completed, summary.total_pushed_forward,
            summary.total_missed, summary.total_archived,
        )

    # -- dispositions --------------------------------------------------------

    def _pending_item(self, item_id: str) -> TaskReviewItem:
        self._require_phase(SessionPhase.REVIEW)
        item = self.item(item_id)
        if item.status is not ReviewItemStatus.PENDING:
            raise SessionStateError(f"Item {item_id} is already {item.status.value}")
        return item

    async def _dispose(
        self,
        item_id: str,
        action: ReviewAction,
        apply_to_entity: Callable[[TaskReviewItem], Any],
    ) -> TaskReviewItem:
        lock = self._item_locks.setdefault(item_id, asyncio.Lock())
        async with lock:
            item = self._pending_item(item_id)
            # queued note edits land before this action's writes
            await self.flush_notes()
            before = self._entity(item)
            changes: dict[str, Any] = await apply_to_entity(item)

            def mutate(session: ReviewSession) -> None:
                target = _find_item(session, item_id)
                for name, value in changes.items():
                    setattr(target, name, value)
                target.action = action
                session.review_phase.summary.count(action)

            try:
                await self._commit(mutate)
            except PersistenceError:
                await self._restore(item, before)
                raise
            logger.info("Session %s: %s -> %s", self._session.id, item_id, action.value)
            return self.item(item_id)

    def _entity(self, item: TaskReviewItem) -> Goal | Task | Routine:
        if item.kind is ReviewItemKind.TASK:
            return self.task(item.entity_id)
        if item.kind is ReviewItemKind.ROUTINE:
            return self.routine(item.entity_id)
        return self.goal(item.entity_id)

    async def _restore(self, item: TaskReviewItem, before: Goal | Task | Routine) -> None:
        """Put an item's entity back the way it was before a failed disposition."""
        try:
            if item.kind is ReviewItemKind.TASK:
                self._tasks[before.id] = before
                await self._save_task(before)
            elif item.kind is ReviewItemKind.ROUTINE:
                self._cache_routine(before)
                await self._repository.apply(RestoreRoutine.for_routine(before))
            else:
                # notes may have moved on meanwhile; only the review fields go back
                current = self._goals[before.id]
                self._goals[before.id] = replace(
                    current,
                    time_tracking=before.time_tracking,
                    review_archived=before.review_archived,
                )
                await self._repository.apply(SetTimeTracking.for_goal(before.id, before.time_tracking))
                await self._repository.apply(
                    ArchiveEntity(entity_id=before.id, target=GOALS, archived=before.review_archived)
                )
        except PersistenceError as exc:
            logger.error("Session %s: could not restore %s: %s", self._session.id, item.item_id, exc)

    async def dispose(self, item_id: str, action: ReviewAction | str, **options: Any) -> TaskReviewItem:
        """Dispatch a disposition by name."""
        action = coerce_enum(ReviewAction, action, "action")
        if action is ReviewAction.MARK_COMPLETED:
            return await self.mark_completed(item_id, **options)
        if action is ReviewAction.PUSH_FORWARD:
            return await self.push_forward(item_id)
        if action is ReviewAction.MARK_MISSED:
            return await self.mark_missed(item_id, **options)
        return await self.archive(item_id)

    async def mark_completed(
        self,
        item_id: str,
        made_progress: bool | None = None,
        adjustments: str = "",
    ) -> TaskReviewItem:
        async def apply(item: TaskReviewItem) -> dict[str, Any]:
            now = self._clock.now()
            if item.kind is ReviewItemKind.TASK:
                await self._save_task(replace(self.task(item.entity_id), completed=True))
            elif item.kind is ReviewItemKind.ROUTINE:
                # Credit the period the item stands for, not the moment of review.
                updated = await self._tracker.record(self.routine(item.entity_id), item.due_date)
                self._cache_routine(updated)
            else:
                goal = self.goal(item.entity_id)
                tracking = complete_review(goal.time_tracking, now, made_progress, adjustments)
                await self._repository.apply(SetTimeTracking.for_goal(goal.id, tracking))
                self._goals[goal.id] = replace(goal, time_tracking=tracking)
            return {"status": ReviewItemStatus.COMPLETED, "completed_date": now}

        return await self._dispose(item_id, ReviewAction.MARK_COMPLETED, apply)

    async def push_forward(self, item_id: str) -> TaskReviewItem:
        async def apply(item: TaskReviewItem) -> dict[str, Any]:
            now = self._clock.now()
            if item.kind is ReviewItemKind.TASK:
                due = item.due_date + self._push_step
                while due <= now:
                    due += self._push_step
                await self._save_task(replace(self.task(item.entity_id), due_date=due))
            elif item.kind is ReviewItemKind.ROUTINE:
                routine = self.routine(item.entity_id)
                following = next_occurrence(routine.schedule, max(item.due_date, now), routine.end_date)
                if following is None:
                    raise SessionStateError(f"Routine {routine.id} has no further occurrence")
                due = following.due
            else:
                goal = self.goal(item.entity_id)
                tracking = push_review(goal.time_tracking)
                await self._repository.apply(SetTimeTracking.for_goal(goal.id, tracking))
                self._goals[goal.id] = replace(goal, time_tracking=tracking)
                due = tracking.next_review_date
            return {"due_date": due}

        return await self._dispose(item_id, ReviewAction.PUSH_FORWARD, apply)

    async def mark_missed(self, item_id: str, reason: MissedReason | str | None = None) -> TaskReviewItem:
        reason = coerce_enum(MissedReason, reason, "reason") if reason is not None else None

        async def apply(item: TaskReviewItem) -> dict[str, Any]:
            if item.kind is ReviewItemKind.ROUTINE and reason is not None:
                routine = self.routine(item.entity_id)
                await self._repository.apply(SetRoutineMissed(entity_id=routine.id, reason=reason))
                self._cache_routine(replace(routine, missed_reason=reason))
            return {"status": ReviewItemStatus.MISSED}

        return await self._dispose(item_id, ReviewAction.MARK_MISSED, apply)

    async def archive(self, item_id: str) -> TaskReviewItem:
        async def apply(item: TaskReviewItem) -> dict[str, Any]:
            if item.kind is ReviewItemKind.TASK:
                await self._save_task(replace(self.task(item.entity_id), review_archived=True))
            elif item.kind is ReviewItemKind.ROUTINE:
                routine = self.routine(item.entity_id)
                await self._repository.apply(ArchiveEntity(entity_id=routine.id, target=ROUTINES))
                self._cache_routine(replace(routine, review_archived=True))
            else:
                goal = self.goal(item.entity_id)
                await self._repository.apply(ArchiveEntity(entity_id=goal.id, target=GOALS))
                self._goals[goal.id] = replace(goal, review_archived=True)
            return {"status": ReviewItemStatus.ARCHIVED}

        return await self._dispose(item_id, ReviewAction.ARCHIVE, apply)

    # -- shared goals --------------------------------------------------------

    async def set_shared_task_status(self, goal_id: str, task_id: str, completed: bool) -> SharedGoalReview:
        """Record a collaborator task as done or still open."""
        self._require_phase(SessionPhase.REVIEW)
        review = self.shared_review(goal_id)
        if task_id not in review.completed_task_ids | review.pending_task_ids:
            raise ValidationError("task_id", f"{task_id} is not part of shared goal {goal_id}")

        def mutate(session: ReviewSession) -> None:
            shared = _find_shared(session, goal_id)
            if completed:
                shared.pending_task_ids.discard(task_id)
                shared.completed_task_ids.add(task_id)
            else:
                shared.completed_task_ids.discard(task_id)
                shared.pending_task_ids.add(task_id)

        await self._commit(mutate)
        return self.shared_review(goal_id)

    async def remind(self, goal_id: str, user_ids: Iterable[str], message: str | None = None) -> SharedGoalReview:
        """Ask collaborators to look at their open tasks on a shared goal."""
        self._require_phase(SessionPhase.REVIEW)
        review = self.shared_review(goal_id)
        goal = self.goal(goal_id)
        user_ids = list(dict.fromkeys(user_ids))
        strangers = sorted(set(user_ids) - set(goal.shared_with))
        if strangers:
            raise ValidationError("user_ids", f"not collaborators on goal {goal_id}: {', '.join(strangers)}")
        if self._notifier is None:
            raise SessionStateError("No notification channel configured for reminders")

        text = message or (
            f"Reminder: {len(review.pending_task_ids)} task(s) are still open "
            f"on the shared goal '{goal.name}'."
        )
        sent: list[str] = []
        failed: list[str] = []
        for user_id in user_ids:
            try:
                await self._notifier.send_message(user_id, text)
                sent.append(user_id)
            except NotificationError as exc:
                logger.warning("Reminder to %s for goal %s failed: %s", user_id, goal_id, exc)
                failed.append(user_id)

        if sent:
            def mutate(session: ReviewSession) -> None:
                _find_shared(session, goal_id).reminded_user_ids.update(sent)

            await self._commit(mutate)
            logger.info("Reminded %d collaborator(s) on goal %s", len(sent), goal_id)
        if failed:
            raise NotificationError(f"Could not remind: {', '.join(failed)}")
        return self.shared_review(goal_id)

    # -- notes ---------------------------------------------------------------

    def update_goal_notes(self, goal_id: str, text: str) -> int:
        """Queue a notes edit; rapid edits collapse into one write."""
        if self._session.phase is SessionPhase.CLOSED:
            raise SessionStateError(f"Session {self._session.id} is closed")
        goal = self.goal(goal_id)
        self._goals[goal_id] = replace(goal, notes=text)
        return self._notes.submit(goal_id, {"notes": text})

    async def flush_notes(self) -> None:
        await self._notes.flush_all()

    # -- entity writes -------------------------------------------------------

    async def _save_task(self, task: Task) -> None:
        goal_id = self._task_goal.get(task.id)
        if goal_id is not None and goal_id in self._goals:
            goal = self._goals[goal_id]
            tasks = [task if t.id == task.id else t for t in goal.tasks]
            await self._repository.apply(UpdateGoalTasks.for_tasks(goal_id, tasks))
            self._goals[goal_id] = replace(goal, tasks=tasks)
        else:
            await self._repository.apply(UpdateTask.for_task(task))
        self._tasks[task.id] = task

    def _cache_routine(self, routine: Routine) -> None:
        self._routines[routine.id] = routine
        for goal_id, goal in self._goals.items():
            if goal.find_routine(routine.id) is not None:
                routines = [routine if r.id == routine.id else r for r in goal.routines]
                self._goals[goal_id] = replace(goal, routines=routines)
