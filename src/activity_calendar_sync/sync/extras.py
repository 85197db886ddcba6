"""
Read-path aggregation of habit instances and goal deadlines for a calendar range.

Nothing here is persisted: instances are regenerated from schedules on every
call and joined with recorded check-ins.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import timezone

from activity_calendar_sync.models import Activity
from activity_calendar_sync.models import ActivityStatus
from activity_calendar_sync.models import ActivityType
from activity_calendar_sync.models import CheckinStatus
from activity_calendar_sync.models import ScheduleType
from activity_calendar_sync.schedules import as_utc
from activity_calendar_sync.schedules import generate_instances


@dataclass(frozen=True)
class HabitInstance:
    activity_id: str
    schedule_id: str
    title: str
    start_at: datetime
    end_at: datetime | None
    local_date: date
    status: CheckinStatus = CheckinStatus.PENDING
    value: float | None = None

    @property
    def key(self) -> str:
        return f"{self.activity_id}:{self.schedule_id}:{self.local_date.isoformat()}"


@dataclass(frozen=True)
class GoalDeadline:
    activity_id: str
    schedule_id: str
    title: str
    deadline_at: datetime
    progress: float
    status: ActivityStatus = ActivityStatus.ACTIVE


@dataclass
class CalendarExtras:
    habit_instances: list[HabitInstance] = field(default_factory=list)
    goal_deadlines: list[GoalDeadline] = field(default_factory=list)


@dataclass(frozen=True)
class DerivedEvent:
    """A calendar row synthesized from a habit instance, never stored."""

    id: str
    title: str
    start_at: datetime
    end_at: datetime
    activity_id: str
    local_date: date
    status: CheckinStatus
    all_day: bool = True
    event_type: str = "habit"
    is_derived_instance: bool = True
    derived_type: str = "habit_instance"


class MetadataProgress:
    """Goal progress read from ``metadata["progress"]``, clamped to 0-100."""

    def progress(self, activity: Activity) -> float:
        raw = (activity.metadata or {}).get("progress", 0)
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(100.0, value))


class CalendarExtrasAggregator:
    def __init__(self, activities, schedules, checkins, progress=None, logger=None):
        self.activities = activities
        self.schedules = schedules
        self.checkins = checkins
        self.progress = progress or MetadataProgress()
        self.logger = logger or logging.getLogger(__name__)

    def get_extras(
        self, owner_id: str, range_start: datetime, range_end: datetime
    ) -> CalendarExtras:
        range_start = as_utc(range_start)
        range_end = as_utc(range_end)
        extras = CalendarExtras(
            habit_instances=self._habit_instances(owner_id, range_start, range_end),
            goal_deadlines=self._goal_deadlines(owner_id, range_start, range_end),
        )
        self.logger.debug(
            f"Extras for {owner_id}: {len(extras.habit_instances)} habit instance(s), "
            f"{len(extras.goal_deadlines)} goal deadline(s)"
        )
        return extras

    def _habit_instances(
        self, owner_id: str, range_start: datetime, range_end: datetime
    ) -> list[HabitInstance]:
        # Local dates can fall a day either side of the UTC range.
        first_day = (range_start - timedelta(days=1)).date()
        last_day = (range_end + timedelta(days=1)).date()

        results: list[HabitInstance] = []
        habits = self.activities.list_by_owner(
            owner_id, type=ActivityType.HABIT, status=ActivityStatus.ACTIVE
        )
        for habit in habits:
            instances = []
            for schedule in self.schedules.list_by_activity(habit.id):
                instances.extend(generate_instances(schedule, habit.id, range_start, range_end))
            if not instances:
                continue

            checkins = {
                c.local_date: c
                for c in self.checkins.list_for_range(owner_id, habit.id, first_day, last_day)
            }
            for instance in instances:
                checkin = checkins.get(instance.local_date)
                results.append(
                    HabitInstance(
                        activity_id=habit.id,
                        schedule_id=instance.schedule_id,
                        title=habit.title,
                        start_at=instance.start_at,
                        end_at=instance.end_at,
                        local_date=instance.local_date,
                        status=checkin.status if checkin else CheckinStatus.PENDING,
                        value=checkin.value if checkin else None,
                    )
                )

        results.sort(key=lambda h: (h.start_at, h.activity_id, h.schedule_id))
        return results

    def _goal_deadlines(
        self, owner_id: str, range_start: datetime, range_end: datetime
    ) -> list[GoalDeadline]:
        results: list[GoalDeadline] = []
        goals = self.activities.list_by_owner(
            owner_id, type=ActivityType.GOAL, status=ActivityStatus.ACTIVE
        )
        for goal in goals:
            for schedule in self.schedules.list_by_activity(goal.id):
                if schedule.schedule_type != ScheduleType.DEADLINE:
                    continue
                for instance in generate_instances(schedule, goal.id, range_start, range_end):
                    results.append(
                        GoalDeadline(
                            activity_id=goal.id,
                            schedule_id=schedule.id,
                            title=goal.title,
                            deadline_at=instance.start_at,
                            progress=self.progress.progress(goal),
                            status=goal.status,
                        )
                    )

        results.sort(key=lambda g: (g.deadline_at, g.activity_id))
        return results


def derived_events(extras: CalendarExtras) -> list[DerivedEvent]:
    """All-day calendar rows for each habit instance, keyed by instance."""
    events = []
    for habit in extras.habit_instances:
        start = datetime.combine(habit.local_date, time(0), tzinfo=timezone.utc)
        events.append(
            DerivedEvent(
                id=habit.key,
                title=habit.title,
                start_at=start,
                end_at=start + timedelta(days=1),
                activity_id=habit.activity_id,
                local_date=habit.local_date,
                status=habit.status,
            )
        )
    return events
