"""
Planwise — Data Models.

Routines, goals, tasks and review sessions. Every schedule is validated when it
is constructed, so a malformed rule never reaches the scheduler or the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum


class ValidationError(ValueError):
    """Raised when schedule or review input is malformed.

    `field` names the offending attribute so the caller can point at it.
    """

    def __init__(self, field_name: str, message: str) -> None:
        super().__init__(f"{field_name}: {message}")
        self.field = field_name


class InvariantViolation(RuntimeError):
    """Raised when an internal consistency check fails. Not recoverable."""


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class DayOfWeek(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def index(self) -> int:
        """Monday == 0, matching date.weekday()."""
        return list(DayOfWeek).index(self)


class ReviewCycle(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BIANNUAL = "biannual"
    YEARLY = "yearly"


class TaskPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MissedReason(str, Enum):
    TOO_BUSY = "too_busy"
    LOST_MOTIVATION = "lost_motivation"
    HEALTH_ISSUE = "health_issue"
    OTHER = "other"


class SessionPhase(str, Enum):
    PLANNING = "planning"
    REVIEW = "review"
    CLOSED = "closed"


class ReviewItemKind(str, Enum):
    TASK = "task"
    ROUTINE = "routine"
    GOAL_REVIEW = "goal_review"


class ReviewItemStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    MISSED = "missed"
    ARCHIVED = "archived"


class ReviewAction(str, Enum):
    MARK_COMPLETED = "mark_completed"
    PUSH_FORWARD = "push_forward"
    MARK_MISSED = "mark_missed"
    ARCHIVE = "archive"


def coerce_enum(enum_cls: type[Enum], value: object, field_name: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(field_name, f"{value!r} is not one of: {allowed}") from exc


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeOfDay:
    hour: int = 0
    minute: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise ValidationError("time_of_day.hour", f"{self.hour} is outside 0..23")
        if not 0 <= self.minute <= 59:
            raise ValidationError("time_of_day.minute", f"{self.minute} is outside 0..59")

    @classmethod
    def parse(cls, raw: str) -> TimeOfDay:
        """Parse "HH:MM"."""
        try:
            hour, minute = (int(part) for part in raw.split(":"))
        except (ValueError, AttributeError) as exc:
            raise ValidationError("time_of_day", f"expected HH:MM, got {raw!r}") from exc
        return cls(hour, minute)

    def on(self, day: date) -> datetime:
        """The instant at this time of day on `day`."""
        return datetime.combine(day, time(self.hour, self.minute))

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class WeekdayOccurrence:
    """One fixed weekly slot of a weekly routine.

    `specific_date_override` moves this slot to another date, but only for the
    week (Monday to Sunday) that contains that date.
    """

    day: DayOfWeek
    time: TimeOfDay = field(default_factory=TimeOfDay)
    specific_date_override: date | None = None
    assigned_to: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "day", coerce_enum(DayOfWeek, self.day, "weekday_occurrences.day"))
        if isinstance(self.specific_date_override, datetime):
            object.__setattr__(self, "specific_date_override", self.specific_date_override.date())


_QUARTER_MONTHS = [1, 4, 7, 10]


@dataclass
class RoutineSchedule:
    """Declarative recurrence rule.

    Which of `weekday_occurrences`, `day_of_month` and `months_of_year` is
    meaningful depends on `frequency`.
    """

    frequency: RecurrenceFrequency
    target_count: int = 1
    time_of_day: TimeOfDay | None = None
    weekday_occurrences: list[WeekdayOccurrence] = field(default_factory=list)
    day_of_month: int | None = None
    months_of_year: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.frequency = coerce_enum(RecurrenceFrequency, self.frequency, "frequency")
        self.weekday_occurrences = list(self.weekday_occurrences)

        if not isinstance(self.target_count, int) or self.target_count < 1:
            raise ValidationError("target_count", f"must be an integer >= 1, got {self.target_count!r}")
        if self.frequency is RecurrenceFrequency.WEEKLY and len(self.weekday_occurrences) != self.target_count:
            raise ValidationError(
                "weekday_occurrences",
                f"weekly schedule has {len(self.weekday_occurrences)} slots "
                f"but target_count is {self.target_count}",
            )
        if self.day_of_month is not None and not 1 <= self.day_of_month <= 31:
            raise ValidationError("day_of_month", f"{self.day_of_month} is outside 1..31")
        if self.frequency is RecurrenceFrequency.MONTHLY and self.day_of_month is None:
            raise ValidationError("day_of_month", "monthly schedule needs a day of month")
        bad_months = [m for m in self.months_of_year if not 1 <= m <= 12]
        if bad_months:
            raise ValidationError("months_of_year", f"{bad_months} outside 1..12")

        if self.frequency in (RecurrenceFrequency.QUARTERLY, RecurrenceFrequency.YEARLY):
            if not self.months_of_year:
                self.months_of_year = (
                    list(_QUARTER_MONTHS)
                    if self.frequency is RecurrenceFrequency.QUARTERLY
                    else [1]
                )
            if self.day_of_month is None:
                self.day_of_month = 1
        self.months_of_year = sorted(set(self.months_of_year))

    @property
    def effective_time(self) -> TimeOfDay:
        return self.time_of_day or TimeOfDay()

    def check_invariants(self) -> None:
        """Re-check rules that in-place edits could have broken."""
        if self.frequency is RecurrenceFrequency.WEEKLY and len(self.weekday_occurrences) != self.target_count:
            raise InvariantViolation(
                f"weekly schedule has {len(self.weekday_occurrences)} slots "
                f"but target_count is {self.target_count}"
            )


@dataclass(frozen=True)
class Occurrence:
    """One concrete due instant produced by a schedule."""

    due: datetime
    assigned_to: str | None = None
    overridden: bool = False


@dataclass(frozen=True)
class Period:
    """The span an occurrence covers: its due day up to the next due day."""

    start: datetime
    end: datetime
    occurrence: Occurrence

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


# ---------------------------------------------------------------------------
# Routines
# ---------------------------------------------------------------------------


@dataclass
class StreakData:
    current_streak: int = 0
    longest_streak: int = 0
    last_completed_date: datetime | None = None


@dataclass
class RoutineDraft:
    """A routine that has not been persisted yet: no id, no timestamps."""

    title: str
    schedule: RoutineSchedule
    owner_id: str
    description: str = ""
    end_date: datetime | None = None
    area_id: str | None = None
    assigned_to: str | None = None
    completion_dates: list[datetime] = field(default_factory=list)

    def stamp(self, routine_id: str, now: datetime) -> Routine:
        """Turn the draft into a persisted Routine with its identity."""
        if not routine_id:
            raise ValidationError("id", "a persisted routine needs a non-empty id")
        return Routine(
            id=routine_id,
            title=self.title,
            schedule=self.schedule,
            owner_id=self.owner_id,
            created_at=now,
            updated_at=now,
            description=self.description,
            end_date=self.end_date,
            area_id=self.area_id,
            assigned_to=self.assigned_to,
            completion_dates=list(self.completion_dates),
        )


@dataclass
class Routine:
    """A persisted recurring habit with its completion history and metrics."""

    id: str
    title: str
    schedule: RoutineSchedule
    owner_id: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    end_date: datetime | None = None
    area_id: str | None = None
    assigned_to: str | None = None
    completion_dates: list[datetime] = field(default_factory=list)
    streak_data: StreakData = field(default_factory=StreakData)
    adherence_rate: float = 0.0
    missed_reason: MissedReason | None = None
    review_archived: bool = False

    def __post_init__(self) -> None:
        self.completion_dates = sorted(set(self.completion_dates))
        if not 0.0 <= self.adherence_rate <= 1.0:
            raise ValidationError("adherence_rate", f"{self.adherence_rate} is outside [0, 1]")
        if self.missed_reason is not None:
            self.missed_reason = coerce_enum(MissedReason, self.missed_reason, "missed_reason")

    @property
    def frequency(self) -> RecurrenceFrequency:
        return self.schedule.frequency

    @property
    def target_count(self) -> int:
        return self.schedule.target_count

    @property
    def anchor(self) -> datetime:
        """Where expected occurrences start counting."""
        if self.completion_dates and self.completion_dates[0] < self.created_at:
            return self.completion_dates[0]
        return self.created_at


# ---------------------------------------------------------------------------
# Goals and tasks
# ---------------------------------------------------------------------------


@dataclass
class Task:
    id: str
    title: str
    due_date: datetime | None = None
    completed: bool = False
    goal_id: str | None = None
    milestone_id: str | None = None
    assigned_to: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    review_archived: bool = False
    owner_id: str | None = None

    def __post_init__(self) -> None:
        self.priority = coerce_enum(TaskPriority, self.priority, "priority")


@dataclass
class Milestone:
    id: str
    name: str
    target_date: datetime | None = None
    success_criteria: str = ""
    task_ids: list[str] = field(default_factory=list)


@dataclass
class FixedDeadline:
    deadline: datetime


@dataclass
class CompletedReview:
    date: datetime
    made_progress: bool | None = None
    adjustments: str = ""


@dataclass
class RecurringReview:
    """A goal revisited on a cadence instead of pursued toward a deadline."""

    cycle: ReviewCycle
    next_review_date: datetime
    last_review_date: datetime | None = None
    completed_reviews: list[CompletedReview] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.cycle = coerce_enum(ReviewCycle, self.cycle, "cycle")
        if self.last_review_date is not None and self.next_review_date <= self.last_review_date:
            raise InvariantViolation(
                f"next review {self.next_review_date.isoformat()} is not after "
                f"last review {self.last_review_date.isoformat()}"
            )


TimeTracking = FixedDeadline | RecurringReview


@dataclass
class Goal:
    """A long-running goal (the SourceActivity document)."""

    id: str
    name: str
    owner_id: str
    time_tracking: TimeTracking
    area_id: str = ""
    milestones: list[Milestone] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    routines: list[Routine] = field(default_factory=list)
    shared_with: list[str] = field(default_factory=list)
    notes: str = ""
    review_archived: bool = False

    def find_task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def find_routine(self, routine_id: str) -> Routine | None:
        return next((r for r in self.routines if r.id == routine_id), None)


# ---------------------------------------------------------------------------
# Review sessions
# ---------------------------------------------------------------------------


@dataclass
class TaskReviewItem:
    """One entry of the review phase: an overdue task, an unmet routine
    period or an elapsed goal review."""

    kind: ReviewItemKind
    entity_id: str
    title: str
    due_date: datetime
    goal_id: str | None = None
    status: ReviewItemStatus = ReviewItemStatus.PENDING
    completed_date: datetime | None = None
    action: ReviewAction | None = None

    def __post_init__(self) -> None:
        self.kind = coerce_enum(ReviewItemKind, self.kind, "kind")
        self.status = coerce_enum(ReviewItemStatus, self.status, "status")
        if self.action is not None:
            self.action = coerce_enum(ReviewAction, self.action, "action")

    @property
    def item_id(self) -> str:
        return f"{self.kind.value}:{self.entity_id}"


@dataclass
class SharedGoalReview:
    goal_id: str
    completed_task_ids: set[str] = field(default_factory=set)
    pending_task_ids: set[str] = field(default_factory=set)
    reminded_user_ids: set[str] = field(default_factory=set)


@dataclass
class ReviewSummary:
    total_completed: int = 0
    total_pushed_forward: int = 0
    total_missed: int = 0
    total_archived: int = 0

    def count(self, action: ReviewAction) -> None:
        if action is ReviewAction.MARK_COMPLETED:
            self.total_completed += 1
        elif action is ReviewAction.PUSH_FORWARD:
            self.total_pushed_forward += 1
        elif action is ReviewAction.MARK_MISSED:
            self.total_missed += 1
        elif action is ReviewAction.ARCHIVE:
            self.total_archived += 1


@dataclass
class ReviewPhaseData:
    task_reviews: list[TaskReviewItem] = field(default_factory=list)
    shared_goal_reviews: list[SharedGoalReview] = field(default_factory=list)
    summary: ReviewSummary = field(default_factory=ReviewSummary)


@dataclass
class ReviewSession:
    """One planning checkpoint (conventionally weekly) for one user."""

    id: str
    owner_id: str
    week_start: datetime
    week_end: datetime
    created_at: datetime
    updated_at: datetime
    phase: SessionPhase = SessionPhase.PLANNING
    review_phase: ReviewPhaseData = field(default_factory=ReviewPhaseData)
    review_started_at: datetime | None = None

    def __post_init__(self) -> None:
        self.phase = coerce_enum(SessionPhase, self.phase, "phase")


def week_bounds(instant: datetime) -> tuple[datetime, datetime]:
    """Monday 00:00 of the week containing `instant`, and the following Monday."""
    monday = instant.date() - timedelta(days=instant.weekday())
    start = datetime.combine(monday, time.min)
    return start, start + timedelta(days=7)
