"""
Activity → calendar projection lifecycle.
"""

import logging

from activity_calendar_sync.models import Activity
from activity_calendar_sync.models import ActivitySchedule
from activity_calendar_sync.models import ActivityStatus
from activity_calendar_sync.models import NotFoundError
from activity_calendar_sync.models import ProjectionState
from activity_calendar_sync.models import SyncStats
from activity_calendar_sync.schedules import as_utc
from activity_calendar_sync.schedules import generate_instances
from activity_calendar_sync.sync.utils import CREATED
from activity_calendar_sync.sync.utils import UPDATED
from activity_calendar_sync.sync.utils import activity_fields
from activity_calendar_sync.sync.utils import reconcile_projection


class ActivityProjectionReconciler:
    """Keeps at most one active calendar projection per (activity, owner)."""

    def __init__(self, projections, owners, stats: SyncStats | None = None, logger=None):
        self.projections = projections
        self.owners = owners
        self.stats = stats or SyncStats()
        self.logger = logger or logging.getLogger(__name__)

    def project_one(
        self, owner_id: str, activity: Activity, schedule: ActivitySchedule
    ) -> str | None:
        """Create or update the projection for ``schedule``; None if it cannot be projected.

        Only active activities are projected. Archived ones keep their hidden
        projection until they are restored.

        The projection sits at the schedule's anchor occurrence. For recurring
        schedules that is the first instance; later occurrences are served as
        derived events on the read path.
        """
        if activity.status != ActivityStatus.ACTIVE:
            self.logger.warning(
                f"Activity {activity.id} is {activity.status.value}, not projecting"
            )
            return None
        if schedule.start_at is None:
            self.logger.debug(f"Schedule {schedule.id} has no start, not projecting")
            return None

        anchor = as_utc(schedule.start_at)
        instances = generate_instances(schedule, activity.id, anchor, anchor)
        if not instances:
            self.logger.debug(f"Schedule {schedule.id} has no occurrence at its anchor")
            return None

        projection_id, action = reconcile_projection(
            self.projections,
            self.owners,
            owner_id,
            activity_fields(activity, schedule, instances[0]),
            activity_id=activity.id,
        )
        if action == CREATED:
            self.stats.added += 1
            self.logger.info(f"Projected '{activity.title}' onto calendar ({projection_id})")
        elif action == UPDATED:
            self.stats.modified += 1
        return projection_id

    def project_many(
        self, owner_id: str, activity: Activity, schedules: list[ActivitySchedule]
    ) -> list[str]:
        """Project each schedule in turn; unprojectable schedules are skipped."""
        ids = []
        for schedule in schedules:
            projection_id = self.project_one(owner_id, activity, schedule)
            if projection_id is not None and projection_id not in ids:
                ids.append(projection_id)
        return ids

    def hide_all(self, owner_id: str, activity_id: str) -> int:
        """Move every active projection of the activity to hidden."""
        active = self.projections.list_by_activity(
            activity_id, owner_id, states=[ProjectionState.ACTIVE]
        )
        for entry in active:
            self.projections.update(entry.id, projection_state=ProjectionState.HIDDEN)
            self.logger.debug(f"Hid projection {entry.id}")
        self.stats.hidden += len(active)
        return len(active)

    def restore_all(self, owner_id: str, activity_id: str) -> int:
        """Bring a hidden or removed projection back to active, keeping its id.

        Only one projection is restored so the activity never ends up with two
        active entries; hidden ones win over removed ones, newest first.
        """
        if self.projections.find_active_by_activity(activity_id, owner_id) is not None:
            self.logger.warning(
                f"Activity {activity_id} already has an active projection, nothing to restore"
            )
            return 0

        candidates = self.projections.list_by_activity(
            activity_id, owner_id, states=[ProjectionState.HIDDEN, ProjectionState.REMOVED]
        )
        if not candidates:
            return 0

        candidates.sort(key=lambda e: e.updated_at or e.created_at, reverse=True)
        candidates.sort(key=lambda e: e.projection_state != ProjectionState.HIDDEN)
        chosen = candidates[0]
        self.projections.update(chosen.id, projection_state=ProjectionState.ACTIVE)
        if len(candidates) > 1:
            self.logger.debug(
                f"Restored {chosen.id}; {len(candidates) - 1} older projection(s) left as-is"
            )
        self.stats.restored += 1
        return 1

    def remove(self, owner_id: str, projection_id: str):
        """Mark a projection as removed by explicit user action."""
        entry = self.projections.get(projection_id)
        if entry is None or entry.owner_id != owner_id:
            raise NotFoundError(f"Projection {projection_id} not found for owner {owner_id}")
        self.projections.update(projection_id, projection_state=ProjectionState.REMOVED)
        self.stats.deleted += 1
        self.logger.info(f"Removed projection {projection_id}")
