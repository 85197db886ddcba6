"""
Tests for committing a hierarchical selection.

Uses the in-memory fakes so partial failures can be injected per item or
per entry without a database.
"""

from dataclasses import replace

import pytest

from activity_calendar_sync.hierarchy import load_hierarchy
from activity_calendar_sync.models import SOURCE_ROADMAP
from activity_calendar_sync.models import ExternalItem
from activity_calendar_sync.models import SyncEntry
from activity_calendar_sync.models import SyncStats
from activity_calendar_sync.selection import NodePath
from activity_calendar_sync.selection import SelectionTree
from activity_calendar_sync.sync.selective import SelectiveSyncReconciler
from tests.conftest import CALENDAR_ID
from tests.conftest import OWNER_ID
from tests.conftest import make_item
from tests.conftest import utc
from tests.fake_stores import FakeHierarchySource
from tests.fake_stores import FakeOwnerDirectory
from tests.fake_stores import FakeProjectionStore
from tests.fake_stores import FakeSyncEntryStore

P = NodePath("P")
T1 = NodePath("P", "T1")
T2 = NodePath("P", "T2")
S1 = NodePath("P", "T1", "S1")
I1 = NodePath("P", "T1", "S1", "i1")
I2 = NodePath("P", "T1", "S1", "i2")
I3 = NodePath("P", "T1", None, "i3")
I4 = NodePath("P", "T2", None, "i4")
E5 = NodePath("P", "T2", None, "e5")


def roadmap_items():
    return [
        make_item("i1", track_id="T1", subtrack_id="S1", start=utc(2024, 3, 1, 9)),
        make_item("i2", track_id="T1", subtrack_id="S1", start=utc(2024, 3, 2, 9)),
        make_item("i3", track_id="T1", start=utc(2024, 3, 3, 9)),
        make_item("i4", track_id="T2", start=utc(2024, 3, 4, 9), item_type="event"),
        # end-only: dated, so selectable, but there is nothing to project
        make_item("e5", track_id="T2", end=utc(2024, 3, 5, 9)),
        ExternalItem(id="u6", title="Undated", project_id="P", track_id="T2"),
    ]


class Env:
    def __init__(self, entries=None, projection_fail_on=None, entry_fail_on=None, dry_run=False):
        self.source = FakeHierarchySource(roadmap_items())
        self.projections = FakeProjectionStore(fail_on=projection_fail_on)
        self.owners = FakeOwnerDirectory({OWNER_ID: CALENDAR_ID})
        self.entries = FakeSyncEntryStore(entries, fail_on=entry_fail_on)
        self.stats = SyncStats()
        self.reconciler = SelectiveSyncReconciler(
            self.entries,
            self.projections,
            self.owners,
            self.source,
            stats=self.stats,
            dry_run=dry_run,
        )

    def tree(self) -> SelectionTree:
        return SelectionTree.from_sync_entries(
            load_hierarchy(self.source, OWNER_ID), self.entries.list(OWNER_ID)
        )

    def commit(self, tree):
        return self.reconciler.commit(OWNER_ID, tree, self.entries.list(OWNER_ID))

    def projected_items(self):
        return sorted(row.source_entity_id for row in self.projections.active())


@pytest.fixture
def env():
    return Env()


def entry(path: NodePath) -> SyncEntry:
    return path.to_entry(OWNER_ID)


class TestDiff:
    def test_single_leaf_deselection_is_minimal(self):
        """Only the deselected leaf is unsynced; nothing else is touched."""
        env = Env(entries=[entry(I1), entry(I4)])
        tree = env.tree()
        tree.toggle(I1)
        diff = env.reconciler.diff(OWNER_ID, tree, env.entries.list(OWNER_ID))
        assert diff.to_unsync == [entry(I1)]
        assert diff.to_sync == []

    def test_unchanged_selection_is_empty(self):
        env = Env(entries=[entry(S1), entry(I4)])
        diff = env.reconciler.diff(OWNER_ID, env.tree(), env.entries.list(OWNER_ID))
        assert diff.empty

    def test_new_selection_uses_highest_fully_selected_node(self, env):
        tree = env.tree()
        tree.toggle(T1)
        diff = env.reconciler.diff(OWNER_ID, tree, [])
        assert diff.to_sync == [entry(T1)]

    def test_completing_a_parent_replaces_child_entries(self):
        env = Env(entries=[entry(I1)])
        tree = env.tree()
        tree.toggle(I2)
        diff = env.reconciler.diff(OWNER_ID, tree, env.entries.list(OWNER_ID))
        assert diff.to_sync == [entry(S1)]
        # I1 is still fully selected, so its entry is kept
        assert diff.to_unsync == []


class TestCommit:
    def test_track_entry_projects_subtrack_and_direct_items(self, env):
        tree = env.tree()
        tree.toggle(T1)
        result = env.commit(tree)

        assert result.ok
        assert result.synced == [entry(T1)]
        assert sorted(result.projected) == ["i1", "i2", "i3"]
        assert env.projected_items() == ["i1", "i2", "i3"]
        assert env.stats.added == 3

    def test_projection_carries_roadmap_identity(self, env):
        tree = env.tree()
        tree.toggle(I4)
        env.commit(tree)

        (row,) = env.projections.active()
        assert row.source_type == SOURCE_ROADMAP
        assert row.source_entity_id == "i4"
        assert row.source_project_id == "P"
        assert row.calendar_id == CALENDAR_ID
        assert row.event_type == "event"
        assert row.activity_id is None

    def test_item_without_start_is_skipped(self, env):
        tree = env.tree()
        tree.toggle(T2)
        result = env.commit(tree)

        assert result.ok
        assert result.projected == ["i4"]
        assert result.skipped == ["e5"]

    def test_undated_items_are_never_projected(self, env):
        tree = env.tree()
        tree.toggle(P)
        env.commit(tree)
        assert "u6" not in env.projected_items()

    def test_recommit_does_not_duplicate(self, env):
        tree = env.tree()
        tree.toggle(T1)
        env.commit(tree)
        inserts = len(env.projections.inserts)

        result = env.reconciler.materialize_missing(OWNER_ID, env.entries.list(OWNER_ID))

        assert len(env.projections.inserts) == inserts
        assert result.projected == []
        assert sorted(result.skipped) == ["i1", "i2", "i3"]


class TestPartialFailure:
    def test_failed_item_does_not_abort_batch(self):
        env = Env(projection_fail_on={"i2"})
        tree = env.tree()
        tree.toggle(T1)
        result = env.commit(tree)

        assert not result.ok
        (failure,) = result.failures
        assert failure.item_id == "i2"
        assert failure.entry_key == T1.key
        assert env.projected_items() == ["i1", "i3"]
        assert env.stats.errors == 1
        # the entry itself is persisted; a later run can fill the gap
        assert env.entries.list(OWNER_ID) == [entry(T1)]

    def test_failed_entry_write_skips_materialization(self):
        env = Env(entry_fail_on={entry(S1).key})
        tree = env.tree()
        tree.toggle(S1)
        tree.toggle(I4)
        result = env.commit(tree)

        assert [f.item_id for f in result.failures] == [None]
        assert result.failures[0].entry_key == S1.key
        assert result.synced == [entry(I4)]
        assert env.projected_items() == ["i4"]

    def test_missing_owner_profile_is_reported_per_item(self, env):
        env.owners.profiles.clear()
        tree = env.tree()
        tree.toggle(S1)
        result = env.commit(tree)

        assert sorted(f.item_id for f in result.failures) == ["i1", "i2"]
        assert env.projections.rows == {}

    def test_materialize_missing_fills_gaps(self):
        env = Env(projection_fail_on={"i2"})
        tree = env.tree()
        tree.toggle(S1)
        env.commit(tree)
        env.projections.fail_on.clear()

        result = env.reconciler.materialize_missing(OWNER_ID, env.entries.list(OWNER_ID))

        assert result.projected == ["i2"]
        assert env.projected_items() == ["i1", "i2"]


class TestUnsync:
    def test_deselecting_removes_entry_and_projections(self, env):
        tree = env.tree()
        tree.toggle(S1)
        env.commit(tree)

        tree = env.tree()
        tree.toggle(S1)
        result = env.commit(tree)

        assert result.unsynced == [entry(S1)]
        assert sorted(result.unprojected) == ["i1", "i2"]
        assert env.projections.rows == {}
        assert env.entries.list(OWNER_ID) == []

    def test_items_still_selected_keep_their_projection(self):
        """Narrowing a track entry to one subtrack keeps the subtrack's projections."""
        env = Env(entries=[entry(T1)])
        env.reconciler.materialize_missing(OWNER_ID, env.entries.list(OWNER_ID))

        tree = env.tree()
        tree.toggle(I3)
        result = env.commit(tree)

        assert result.synced == [entry(S1)]
        assert result.unsynced == [entry(T1)]
        assert result.unprojected == ["i3"]
        assert env.projected_items() == ["i1", "i2"]
        assert env.entries.list(OWNER_ID) == [entry(S1)]

    def test_item_that_lost_its_date_is_unprojected(self, env):
        tree = env.tree()
        tree.toggle(I3)
        env.commit(tree)
        env.source.items = [
            replace(i, start=None) if i.id == "i3" else i for i in env.source.items
        ]

        result = env.commit(env.tree())

        assert result.unsynced == [entry(I3)]
        assert result.unprojected == ["i3"]
        assert env.projections.rows == {}
        assert env.entries.list(OWNER_ID) == []

    @pytest.mark.parametrize("change", ["vanished", "moved"])
    def test_item_gone_from_entry_scope_is_unprojected(self, env, change):
        tree = env.tree()
        tree.toggle(I4)
        env.commit(tree)
        if change == "vanished":
            env.source.items = [i for i in env.source.items if i.id != "i4"]
        else:
            env.source.items = [
                replace(i, track_id="T1") if i.id == "i4" else i for i in env.source.items
            ]

        result = env.commit(env.tree())

        assert result.unsynced == [entry(I4)]
        assert env.projections.rows == {}


class TestDryRun:
    def test_dry_run_writes_nothing(self):
        env = Env(entries=[entry(I4)], dry_run=True)
        tree = env.tree()
        tree.toggle(T1)
        tree.toggle(I4)
        result = env.commit(tree)

        assert result.diff.to_sync == [entry(T1)]
        assert result.diff.to_unsync == [entry(I4)]
        assert result.synced == []
        assert env.entries.upserts == []
        assert env.entries.deletes == []
        assert env.projections.inserts == []
