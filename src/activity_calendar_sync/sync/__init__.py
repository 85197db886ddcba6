"""
CalendarSyncEngine — thin orchestrator that wires stores to the sync submodules.
"""

import logging
from datetime import datetime

from activity_calendar_sync.db import StateDatabase
from activity_calendar_sync.hierarchy import ProjectHierarchy
from activity_calendar_sync.hierarchy import load_hierarchy
from activity_calendar_sync.models import Activity
from activity_calendar_sync.models import ActivityStatus
from activity_calendar_sync.models import CalendarSyncError
from activity_calendar_sync.models import NotFoundError
from activity_calendar_sync.models import SyncConfig
from activity_calendar_sync.models import SyncStats
from activity_calendar_sync.selection import SelectionTree
from activity_calendar_sync.stores import ActivityStore
from activity_calendar_sync.stores import CheckinStore
from activity_calendar_sync.stores import OwnerDirectory
from activity_calendar_sync.stores import ProjectionStore
from activity_calendar_sync.stores import RoadmapSource
from activity_calendar_sync.stores import ScheduleStore
from activity_calendar_sync.stores import SyncEntryStore
from activity_calendar_sync.sync.extras import CalendarExtras
from activity_calendar_sync.sync.extras import CalendarExtrasAggregator
from activity_calendar_sync.sync.projection import ActivityProjectionReconciler
from activity_calendar_sync.sync.selective import CommitResult
from activity_calendar_sync.sync.selective import SelectiveSyncReconciler
from activity_calendar_sync.sync.selective import SyncDiff


class CalendarSyncEngine:
    """Main synchronization engine for one owner."""

    def __init__(self, config: SyncConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.stats = SyncStats()
        self.db: StateDatabase | None = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def open(self):
        self.db = StateDatabase(self.config.state_db_path)
        self.db.connect()
        self.db.migrate_if_needed()

        self.activities = ActivityStore(self.db)
        self.schedules = ScheduleStore(self.db)
        self.projections = ProjectionStore(self.db)
        self.owners = OwnerDirectory(self.db)
        self.checkins = CheckinStore(self.db)
        self.entries = SyncEntryStore(self.db)
        self.roadmap = RoadmapSource(self.db)

        self.projector = ActivityProjectionReconciler(
            self.projections, self.owners, self.stats, self.logger
        )
        self.aggregator = CalendarExtrasAggregator(
            self.activities, self.schedules, self.checkins, logger=self.logger
        )
        self.selective = SelectiveSyncReconciler(
            self.entries,
            self.projections,
            self.owners,
            self.roadmap,
            self.stats,
            self.logger,
            dry_run=self.config.dry_run,
        )

    def close(self):
        if self.db:
            self.db.close()
            self.db = None

    # ------------------------------------------------------------------ #
    # Activity projections                                                 #
    # ------------------------------------------------------------------ #

    def _activity(self, activity_id: str) -> Activity:
        activity = self.activities.get(activity_id)
        if activity is None or activity.owner_id != self.config.owner_id:
            raise NotFoundError(
                f"Activity {activity_id} not found for owner {self.config.owner_id}"
            )
        return activity

    def project_activity(self, activity_id: str) -> list[str]:
        activity = self._activity(activity_id)
        if activity.status != ActivityStatus.ACTIVE:
            raise CalendarSyncError(
                f"Activity {activity_id} is {activity.status.value}; restore it before projecting"
            )
        schedules = self.schedules.list_by_activity(activity_id)
        if self.config.dry_run:
            self.logger.info(
                f"[DRY RUN] Would PROJECT '{activity.title}' ({len(schedules)} schedule(s))"
            )
            return []
        return self.projector.project_many(self.config.owner_id, activity, schedules)

    def project_all(self) -> SyncStats:
        """Project every active activity of the owner."""
        self.logger.info("Projecting active activities...")
        activities = self.activities.list_by_owner(
            self.config.owner_id, status=ActivityStatus.ACTIVE
        )
        for activity in activities:
            try:
                self.project_activity(activity.id)
            except CalendarSyncError as e:
                self.logger.error(f"Failed to project activity {activity.id}: {e}")
                self.stats.errors += 1
        return self.stats

    # ------------------------------------------------------------------ #
    # Calendar extras                                                      #
    # ------------------------------------------------------------------ #

    def extras(self, range_start: datetime, range_end: datetime) -> CalendarExtras:
        return self.aggregator.get_extras(self.config.owner_id, range_start, range_end)

    # ------------------------------------------------------------------ #
    # Selective sync                                                       #
    # ------------------------------------------------------------------ #

    def load_hierarchy(self) -> list[ProjectHierarchy]:
        self.logger.info("Loading roadmap hierarchy...")
        return load_hierarchy(self.roadmap, self.config.owner_id)

    def load_tree(self) -> SelectionTree:
        """Selection tree reflecting what is currently synced."""
        hierarchy = self.load_hierarchy()
        self.logger.info("Loading sync entries...")
        return SelectionTree.from_sync_entries(hierarchy, self.entries.list(self.config.owner_id))

    def diff_selection(self, tree: SelectionTree) -> SyncDiff:
        persisted = self.entries.list(self.config.owner_id)
        return self.selective.diff(self.config.owner_id, tree, persisted)

    def commit_selection(self, tree: SelectionTree) -> CommitResult:
        persisted = self.entries.list(self.config.owner_id)
        return self.selective.commit(self.config.owner_id, tree, persisted)

    def materialize_missing(self) -> CommitResult:
        return self.selective.materialize_missing(
            self.config.owner_id, self.entries.list(self.config.owner_id)
        )
