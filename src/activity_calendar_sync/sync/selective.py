"""
Commit a hierarchical selection: diff it against persisted sync entries, write
the entries, and materialize (or tear down) the roadmap projections they cover.
"""

import logging
from dataclasses import dataclass
from dataclasses import field

from activity_calendar_sync.models import SOURCE_ROADMAP
from activity_calendar_sync.models import CalendarSyncError
from activity_calendar_sync.models import ExternalItem
from activity_calendar_sync.models import SyncEntry
from activity_calendar_sync.models import SyncLevel
from activity_calendar_sync.models import SyncStats
from activity_calendar_sync.selection import NodePath
from activity_calendar_sync.selection import SelectionTree
from activity_calendar_sync.sync.utils import CREATED
from activity_calendar_sync.sync.utils import reconcile_projection
from activity_calendar_sync.sync.utils import roadmap_fields


@dataclass(frozen=True)
class ItemFailure:
    item_id: str | None  # None when the whole entry failed
    entry_key: str
    error: str


@dataclass
class SyncDiff:
    to_sync: list[SyncEntry] = field(default_factory=list)
    to_unsync: list[SyncEntry] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.to_sync and not self.to_unsync


@dataclass
class CommitResult:
    diff: SyncDiff = field(default_factory=SyncDiff)
    synced: list[SyncEntry] = field(default_factory=list)
    unsynced: list[SyncEntry] = field(default_factory=list)
    projected: list[str] = field(default_factory=list)
    unprojected: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def entry_key(entry: SyncEntry) -> str:
    return NodePath.from_entry(entry).key


class SelectiveSyncReconciler:
    def __init__(
        self,
        entries,
        projections,
        owners,
        source,
        stats: SyncStats | None = None,
        logger=None,
        dry_run: bool = False,
    ):
        self.entries = entries
        self.projections = projections
        self.owners = owners
        self.source = source
        self.stats = stats or SyncStats()
        self.logger = logger or logging.getLogger(__name__)
        self.dry_run = dry_run

    def diff(
        self, owner_id: str, tree: SelectionTree, persisted: list[SyncEntry]
    ) -> SyncDiff:
        """Minimal set of entry writes that turns ``persisted`` into the tree's selection."""
        persisted_keys = {e.key for e in persisted}
        to_sync = [
            entry
            for entry in (root.to_entry(owner_id) for root in tree.selected_roots())
            if entry.key not in persisted_keys
        ]
        to_unsync = [e for e in persisted if not tree.is_selected(NodePath.from_entry(e))]
        return SyncDiff(to_sync=to_sync, to_unsync=to_unsync)

    def commit(
        self, owner_id: str, tree: SelectionTree, persisted: list[SyncEntry]
    ) -> CommitResult:
        diff = self.diff(owner_id, tree, persisted)
        result = CommitResult(diff=diff)
        self.logger.info(
            f"Selection diff: {len(diff.to_sync)} to sync, {len(diff.to_unsync)} to unsync"
        )

        if self.dry_run:
            for entry in diff.to_sync:
                self.logger.info(f"[DRY RUN] Would SYNC {entry.level.value} {entry_key(entry)}")
            for entry in diff.to_unsync:
                self.logger.info(f"[DRY RUN] Would UNSYNC {entry.level.value} {entry_key(entry)}")
            return result

        self.apply(owner_id, diff, tree, result)
        return result

    def apply(self, owner_id: str, diff: SyncDiff, tree: SelectionTree, result: CommitResult):
        for entry in diff.to_sync:
            key = entry_key(entry)
            try:
                self.entries.upsert([entry])
            except CalendarSyncError as e:
                self.logger.error(f"Failed to save sync entry {key}: {e}")
                result.failures.append(ItemFailure(None, key, str(e)))
                self.stats.errors += 1
                continue
            result.synced.append(entry)
            self._materialize(owner_id, entry, result)

        still_selected = {item.id for item in tree.selected_items()}
        for entry in diff.to_unsync:
            self._unsync(owner_id, entry, still_selected, result)

    def materialize_missing(self, owner_id: str, entries: list[SyncEntry]) -> CommitResult:
        """Re-run projection creation for already persisted entries."""
        result = CommitResult()
        for entry in entries:
            if self.dry_run:
                self.logger.info(f"[DRY RUN] Would MATERIALIZE {entry_key(entry)}")
                continue
            self._materialize(owner_id, entry, result)
        return result

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def resolve_items(self, entry: SyncEntry, dated_only: bool = True) -> list[ExternalItem]:
        """Items covered by ``entry`` (track entries include subtrack items).

        Undated items are dropped unless ``dated_only`` is False.
        """
        level = entry.level
        if level == SyncLevel.ITEM:
            if entry.subtrack_id:
                scope = self.source.list_items(subtrack_id=entry.subtrack_id)
            elif entry.track_id:
                scope = self.source.list_items(track_id=entry.track_id)
            else:
                scope = self.source.list_items(project_id=entry.project_id)
            items = [i for i in scope if i.id == entry.item_id]
        elif level == SyncLevel.SUBTRACK:
            items = self.source.list_items(subtrack_id=entry.subtrack_id)
        elif level == SyncLevel.TRACK:
            items = self.source.list_items(track_id=entry.track_id)
        else:
            items = self.source.list_items(project_id=entry.project_id)
        if not dated_only:
            return items
        return [i for i in items if i.is_dated]

    def _materialize(self, owner_id: str, entry: SyncEntry, result: CommitResult):
        key = entry_key(entry)
        try:
            items = self.resolve_items(entry)
        except CalendarSyncError as e:
            self.logger.error(f"Failed to load items for {key}: {e}")
            result.failures.append(ItemFailure(None, key, str(e)))
            self.stats.errors += 1
            return

        for item in items:
            fields = roadmap_fields(item)
            if fields is None:
                self.logger.debug(f"Skipping {item.id}: no start date")
                result.skipped.append(item.id)
                continue
            try:
                projection_id, action = reconcile_projection(
                    self.projections,
                    self.owners,
                    owner_id,
                    fields,
                    source_type=SOURCE_ROADMAP,
                    source_entity_id=item.id,
                    source_project_id=item.project_id,
                    update_existing=False,
                )
            except CalendarSyncError as e:
                self.logger.error(f"Failed to project roadmap item {item.id}: {e}")
                result.failures.append(ItemFailure(item.id, key, str(e)))
                self.stats.errors += 1
                continue

            if action == CREATED:
                result.projected.append(item.id)
                self.stats.added += 1
                self.logger.debug(f"Projected roadmap item {item.id} as {projection_id}")
            else:
                result.skipped.append(item.id)

    def _unsync(
        self, owner_id: str, entry: SyncEntry, still_selected: set[str], result: CommitResult
    ):
        key = entry_key(entry)
        try:
            # Undated, moved or vanished items still lose their projections.
            covered = {i.id for i in self.resolve_items(entry, dated_only=False)}
            if entry.item_id:
                covered.add(entry.item_id)
            doomed = sorted(covered - still_selected)
            # Projections go first: a failure leaves the entry in place for a retry.
            deleted = self.projections.delete_by_source_entities(owner_id, doomed, SOURCE_ROADMAP)
        except CalendarSyncError as e:
            self.logger.error(f"Failed to remove projections for {key}: {e}")
            result.failures.append(ItemFailure(None, key, str(e)))
            self.stats.errors += 1
            return

        result.unprojected.extend(doomed)
        self.stats.deleted += deleted

        try:
            self.entries.delete([entry])
        except CalendarSyncError as e:
            self.logger.error(f"Failed to delete sync entry {key}: {e}")
            result.failures.append(ItemFailure(None, key, str(e)))
            self.stats.errors += 1
            return
        result.unsynced.append(entry)
        self.logger.debug(f"Unsynced {entry.level.value} {key}")
