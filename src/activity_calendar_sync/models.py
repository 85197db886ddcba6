"""
Pure data models — no sqlite imports.
"""

from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from enum import Enum
from pathlib import Path

DEFAULT_STATE_DB = Path.home() / ".local/share/activity-calendar-sync.db"
DEFAULT_CONFIG = Path.home() / ".config/activity-calendar-sync.conf"
DEFAULT_HORIZON_DAYS = 30


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class NotFoundError(CalendarSyncError):
    """A referenced activity, schedule or owner profile does not exist."""

    pass


class PersistenceError(CalendarSyncError):
    """The backing store rejected a read or write."""

    pass


class InvalidScheduleError(CalendarSyncError):
    """A schedule violates its shape constraints."""

    pass


class ActivityType(str, Enum):
    HABIT = "habit"
    GOAL = "goal"
    TASK = "task"
    MEETING = "meeting"
    MEAL = "meal"
    REMINDER = "reminder"
    TIME_BLOCK = "time_block"
    APPOINTMENT = "appointment"
    MILESTONE = "milestone"
    TRAVEL_SEGMENT = "travel_segment"
    EVENT = "event"


class ActivityStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    INACTIVE = "inactive"


class ScheduleType(str, Enum):
    SINGLE = "single"
    RECURRING = "recurring"
    DEADLINE = "deadline"
    TIME_BLOCK = "time_block"


class ProjectionState(str, Enum):
    ACTIVE = "active"
    HIDDEN = "hidden"
    REMOVED = "removed"


class CheckinStatus(str, Enum):
    DONE = "done"
    MISSED = "missed"
    SKIPPED = "skipped"
    PARTIAL = "partial"
    PENDING = "pending"  # derived only, never stored


class SyncLevel(str, Enum):
    PROJECT = "project"
    TRACK = "track"
    SUBTRACK = "subtrack"
    ITEM = "item"


# Projection source types
SOURCE_ACTIVITY = "activity"
SOURCE_ROADMAP = "roadmap"


@dataclass
class SyncConfig:
    """Configuration for a sync run."""

    owner_id: str
    state_db_path: Path
    dry_run: bool = False
    verbose: bool = False
    yes: bool = False  # Auto-confirm without prompting
    horizon_days: int = DEFAULT_HORIZON_DAYS


@dataclass
class SyncStats:
    """Statistics for sync operation."""

    added: int = 0
    modified: int = 0
    deleted: int = 0
    hidden: int = 0
    restored: int = 0
    errors: int = 0


@dataclass
class Activity:
    id: str
    type: ActivityType
    title: str
    owner_id: str
    description: str | None = None
    status: ActivityStatus = ActivityStatus.ACTIVE
    metadata: dict = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    archived_at: datetime | None = None

    def __post_init__(self):
        self.type = ActivityType(self.type)
        self.status = ActivityStatus(self.status)
        if (self.status == ActivityStatus.ARCHIVED) != (self.archived_at is not None):
            raise CalendarSyncError(
                f"Activity {self.id}: archived_at must be set iff status is 'archived'"
            )


@dataclass
class ActivitySchedule:
    id: str
    activity_id: str
    schedule_type: ScheduleType
    start_at: datetime | None = None
    end_at: datetime | None = None
    recurrence_rule: str | None = None
    timezone: str = "UTC"
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.schedule_type = ScheduleType(self.schedule_type)
        if self.schedule_type == ScheduleType.DEADLINE and self.end_at is not None:
            raise InvalidScheduleError(f"Deadline schedule {self.id} cannot carry an end time")
        if not self.timezone:
            self.timezone = "UTC"


@dataclass(frozen=True)
class ScheduleInstance:
    """One concrete occurrence of a schedule. Never persisted."""

    activity_id: str
    schedule_id: str
    start_at: datetime
    end_at: datetime | None
    local_date: date
    timezone: str

    @property
    def key(self) -> str:
        return f"{self.activity_id}:{self.schedule_id}:{self.local_date.isoformat()}"


@dataclass
class ProjectedEntry:
    """The persisted calendar-visible row for an activity or roadmap item."""

    id: str | None
    owner_id: str
    title: str
    start_at: datetime
    end_at: datetime | None = None
    all_day: bool = False
    event_type: str = "event"
    description: str | None = None
    calendar_id: str | None = None
    activity_id: str | None = None
    source_type: str = SOURCE_ACTIVITY
    source_entity_id: str | None = None
    source_project_id: str | None = None
    projection_state: ProjectionState = ProjectionState.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self):
        self.projection_state = ProjectionState(self.projection_state)


@dataclass(frozen=True)
class OwnerProfile:
    owner_id: str
    profile_id: str
    calendar_id: str


@dataclass
class Checkin:
    activity_id: str
    owner_id: str
    local_date: date
    status: CheckinStatus = CheckinStatus.DONE
    value: float | None = None
    notes: str | None = None

    def __post_init__(self):
        self.status = CheckinStatus(self.status)
        if self.status == CheckinStatus.PENDING:
            raise CalendarSyncError("'pending' is a derived status and cannot be recorded")


@dataclass(frozen=True)
class SyncEntry:
    """One committed selection at project/track/subtrack/item granularity."""

    owner_id: str
    project_id: str
    track_id: str | None = None
    subtrack_id: str | None = None
    item_id: str | None = None

    @property
    def level(self) -> SyncLevel:
        if self.item_id:
            return SyncLevel.ITEM
        if self.subtrack_id:
            return SyncLevel.SUBTRACK
        if self.track_id:
            return SyncLevel.TRACK
        return SyncLevel.PROJECT

    @property
    def key(self) -> tuple:
        return (self.owner_id, self.project_id, self.track_id, self.subtrack_id, self.item_id)


@dataclass(frozen=True)
class ExternalItem:
    """A roadmap item normalized at the hierarchy-source boundary."""

    id: str
    title: str
    project_id: str
    track_id: str | None = None
    subtrack_id: str | None = None
    description: str | None = None
    start: date | datetime | None = None
    end: date | datetime | None = None
    item_type: str = "task"
    status: str = "not_started"

    @property
    def is_dated(self) -> bool:
        return self.start is not None or self.end is not None

    @property
    def all_day(self) -> bool:
        return self.start is not None and not isinstance(self.start, datetime)
