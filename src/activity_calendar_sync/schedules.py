"""
Schedule → instance generation, dispatched on schedule type.
"""

import logging
from datetime import date
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

from activity_calendar_sync.models import ActivitySchedule
from activity_calendar_sync.models import ScheduleInstance
from activity_calendar_sync.models import ScheduleType
from activity_calendar_sync.recurrence import expand

_logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_timezone(name: str | None):
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        _logger.warning("Unknown timezone %r, using UTC", name)
        return timezone.utc


def local_date_for(instant: datetime, tz_name: str | None) -> date:
    """Civil date of ``instant`` in the given timezone."""
    return as_utc(instant).astimezone(resolve_timezone(tz_name)).date()


def _instance(
    schedule: ActivitySchedule, activity_id: str, start: datetime, end: datetime | None
) -> ScheduleInstance:
    return ScheduleInstance(
        activity_id=activity_id,
        schedule_id=schedule.id,
        start_at=start,
        end_at=end,
        local_date=local_date_for(start, schedule.timezone),
        timezone=schedule.timezone,
    )


def _recurring_duration(schedule: ActivitySchedule) -> timedelta | None:
    minutes = (schedule.metadata or {}).get("duration_minutes")
    if minutes is None:
        return None
    try:
        return timedelta(minutes=float(minutes))
    except (TypeError, ValueError):
        _logger.debug("Ignoring non-numeric duration_minutes on schedule %s", schedule.id)
        return None


def generate_instances(
    schedule: ActivitySchedule,
    activity_id: str,
    range_start: datetime,
    range_end: datetime,
) -> list[ScheduleInstance]:
    """Return the concrete occurrences of ``schedule`` inside [range_start, range_end].

    A schedule without a start instant cannot be projected and yields no
    instances. Output is fully determined by the arguments.
    """
    if schedule.start_at is None:
        return []

    start = as_utc(schedule.start_at)
    end = as_utc(schedule.end_at) if schedule.end_at is not None else None
    range_start = as_utc(range_start)
    range_end = as_utc(range_end)

    if schedule.schedule_type in (ScheduleType.SINGLE, ScheduleType.TIME_BLOCK):
        if start <= range_end and (end is None or end >= range_start):
            return [_instance(schedule, activity_id, start, end)]
        return []

    if schedule.schedule_type == ScheduleType.DEADLINE:
        if range_start <= start <= range_end:
            return [_instance(schedule, activity_id, start, None)]
        return []

    # Recurring: the schedule's end acts as the implicit UNTIL.
    if not schedule.recurrence_rule:
        _logger.debug(
            "Recurring schedule %s has no rule, stepping daily across its window", schedule.id
        )
    duration = _recurring_duration(schedule)
    return [
        _instance(schedule, activity_id, occ, occ + duration if duration else None)
        for occ in expand(schedule.recurrence_rule, start, range_start, range_end, until=end)
    ]
