"""
Habit and goal adapters over the generic activity/schedule model.
"""

import logging
from datetime import date
from datetime import datetime

from activity_calendar_sync.models import Activity
from activity_calendar_sync.models import ActivitySchedule
from activity_calendar_sync.models import ActivityStatus
from activity_calendar_sync.models import ActivityType
from activity_calendar_sync.models import Checkin
from activity_calendar_sync.models import CheckinStatus
from activity_calendar_sync.models import NotFoundError
from activity_calendar_sync.models import ScheduleType

_logger = logging.getLogger(__name__)

# Habit repeat type → recurrence rule frequency
REPEAT_FREQS = {"daily": "DAILY", "weekly": "WEEKLY", "monthly": "MONTHLY"}


def repeat_rule(repeat: str) -> str:
    try:
        freq = REPEAT_FREQS[repeat.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown repeat type {repeat!r} (expected one of: {', '.join(REPEAT_FREQS)})"
        ) from None
    return f"FREQ={freq};INTERVAL=1"


def create_habit(
    activities,
    schedules,
    owner_id: str,
    title: str,
    start_at: datetime,
    repeat: str = "daily",
    description: str | None = None,
    timezone: str = "UTC",
    until: datetime | None = None,
    duration_minutes: int | None = None,
) -> tuple[Activity, ActivitySchedule]:
    """Create a habit activity with one recurring schedule."""
    rule = repeat_rule(repeat)
    activity = activities.create(
        Activity(
            id="",
            type=ActivityType.HABIT,
            title=title,
            owner_id=owner_id,
            description=description,
        )
    )
    metadata = {"duration_minutes": duration_minutes} if duration_minutes else {}
    schedule = schedules.create(
        ActivitySchedule(
            id="",
            activity_id=activity.id,
            schedule_type=ScheduleType.RECURRING,
            start_at=start_at,
            end_at=until,
            recurrence_rule=rule,
            timezone=timezone,
            metadata=metadata,
        )
    )
    _logger.info(f"Created habit '{title}' ({activity.id}) repeating {repeat}")
    return activity, schedule


def create_goal(
    activities,
    schedules,
    owner_id: str,
    title: str,
    deadline_at: datetime | None,
    description: str | None = None,
    progress: float = 0,
) -> tuple[Activity, ActivitySchedule | None]:
    """Create a goal activity; a deadline schedule is attached when a deadline is given."""
    activity = activities.create(
        Activity(
            id="",
            type=ActivityType.GOAL,
            title=title,
            owner_id=owner_id,
            description=description,
            metadata={"progress": progress},
        )
    )
    schedule = None
    if deadline_at is not None:
        schedule = schedules.create(
            ActivitySchedule(
                id="",
                activity_id=activity.id,
                schedule_type=ScheduleType.DEADLINE,
                start_at=deadline_at,
            )
        )
    _logger.info(f"Created goal '{title}' ({activity.id})")
    return activity, schedule


def _require(activities, owner_id: str, activity_id: str) -> Activity:
    activity = activities.get(activity_id)
    if activity is None or activity.owner_id != owner_id:
        raise NotFoundError(f"Activity {activity_id} not found for owner {owner_id}")
    return activity


def archive_activity(activities, reconciler, owner_id: str, activity_id: str) -> Activity:
    """Hide the activity's projections, then archive it."""
    _require(activities, owner_id, activity_id)
    hidden = reconciler.hide_all(owner_id, activity_id)
    archived = activities.update(activity_id, status=ActivityStatus.ARCHIVED)
    _logger.info(f"Archived activity {activity_id} ({hidden} projection(s) hidden)")
    return archived


def restore_activity(activities, reconciler, owner_id: str, activity_id: str) -> Activity:
    """Reactivate an archived activity and bring its projection back."""
    _require(activities, owner_id, activity_id)
    restored = activities.update(activity_id, status=ActivityStatus.ACTIVE)
    count = reconciler.restore_all(owner_id, activity_id)
    _logger.info(f"Restored activity {activity_id} ({count} projection(s) restored)")
    return restored


def record_checkin(
    checkins,
    activities,
    owner_id: str,
    activity_id: str,
    local_date: date,
    status: CheckinStatus = CheckinStatus.DONE,
    value: float | None = None,
    notes: str | None = None,
) -> Checkin:
    """Record (or overwrite) the check-in for one habit day."""
    _require(activities, owner_id, activity_id)
    checkin = Checkin(
        activity_id=activity_id,
        owner_id=owner_id,
        local_date=local_date,
        status=status,
        value=value,
        notes=notes,
    )
    checkins.upsert(checkin)
    _logger.debug(f"Check-in {activity_id} {local_date}: {checkin.status.value}")
    return checkin


def skip_instance(
    checkins, activities, owner_id: str, activity_id: str, local_date: date
) -> Checkin:
    """Remove one habit occurrence from the calendar by marking it skipped."""
    return record_checkin(
        checkins, activities, owner_id, activity_id, local_date, status=CheckinStatus.SKIPPED
    )
