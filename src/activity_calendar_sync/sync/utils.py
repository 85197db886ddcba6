"""
Shared projection helpers used by both the activity and roadmap write paths.
"""

import logging
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import timezone

from activity_calendar_sync.models import SOURCE_ACTIVITY
from activity_calendar_sync.models import Activity
from activity_calendar_sync.models import ActivitySchedule
from activity_calendar_sync.models import ExternalItem
from activity_calendar_sync.models import ProjectedEntry
from activity_calendar_sync.models import ProjectionState
from activity_calendar_sync.models import ScheduleInstance
from activity_calendar_sync.models import ScheduleType

_logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(hours=1)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


def reconcile_projection(
    projections,
    owners,
    owner_id: str,
    fields: dict,
    *,
    source_type: str = SOURCE_ACTIVITY,
    activity_id: str | None = None,
    source_entity_id: str | None = None,
    source_project_id: str | None = None,
    update_existing: bool = True,
) -> tuple[str, str]:
    """
    Look up an existing projection by source identity before inserting one.

    Activity projections are identified by (activity, owner) among active rows;
    any other source by (owner, source type, source entity id). When a match
    exists it is updated in place with ``fields`` (or left alone when
    ``update_existing`` is False). Otherwise the owner's profile is resolved
    (raising NotFoundError if missing) and a new active projection is inserted.

    Returns (projection_id, action) where action is "created", "updated" or
    "unchanged".
    """
    if source_type == SOURCE_ACTIVITY:
        existing = projections.find_active_by_activity(activity_id, owner_id)
    else:
        existing = projections.find_by_source_entity(owner_id, source_entity_id, source_type)

    if existing is not None:
        if not update_existing:
            _logger.debug(f"Projection {existing.id} already exists for {source_type} source")
            return existing.id, UNCHANGED
        projections.update(existing.id, **fields)
        _logger.debug(f"Updated projection {existing.id}")
        return existing.id, UPDATED

    profile = owners.resolve(owner_id)
    entry = ProjectedEntry(
        id=None,
        owner_id=owner_id,
        calendar_id=profile.calendar_id,
        activity_id=activity_id,
        source_type=source_type,
        source_entity_id=source_entity_id or activity_id,
        source_project_id=source_project_id,
        projection_state=ProjectionState.ACTIVE,
        **fields,
    )
    projection_id = projections.insert(entry)
    _logger.debug(f"Created projection {projection_id} for {source_type} {entry.source_entity_id}")
    return projection_id, CREATED


def activity_fields(
    activity: Activity, schedule: ActivitySchedule, instance: ScheduleInstance
) -> dict:
    """Calendar fields for an activity projected at ``instance``."""
    start = instance.start_at
    if schedule.schedule_type == ScheduleType.DEADLINE:
        end, all_day = None, True
    else:
        end, all_day = instance.end_at or start + DEFAULT_DURATION, False
    return {
        "title": activity.title,
        "description": activity.description,
        "start_at": start,
        "end_at": end,
        "all_day": all_day,
        "event_type": activity.type.value,
    }


def _as_instant(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time(0), tzinfo=timezone.utc)


def roadmap_fields(item: ExternalItem) -> dict | None:
    """Calendar fields for a roadmap item, or None when it has no start date."""
    if item.start is None:
        return None
    start = _as_instant(item.start)
    end = _as_instant(item.end) if item.end is not None else start + DEFAULT_DURATION
    return {
        "title": item.title,
        "description": item.description,
        "start_at": start,
        "end_at": end,
        "all_day": item.all_day,
        "event_type": "event" if item.item_type == "event" else "milestone",
    }
