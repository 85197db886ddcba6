"""
Unit tests for StateDatabase and the SQLite stores: schema constraints, upsert
semantics, the projection-state migration and the status query.
"""

import sqlite3
from datetime import date

import pytest

from activity_calendar_sync.db import StateDatabase
from activity_calendar_sync.db import query_status
from activity_calendar_sync.models import SOURCE_ROADMAP
from activity_calendar_sync.models import ActivityStatus
from activity_calendar_sync.models import CalendarSyncError
from activity_calendar_sync.models import Checkin
from activity_calendar_sync.models import InvalidScheduleError
from activity_calendar_sync.models import NotFoundError
from activity_calendar_sync.models import PersistenceError
from activity_calendar_sync.models import ProjectedEntry
from activity_calendar_sync.models import ProjectionState
from activity_calendar_sync.models import SyncEntry
from tests.conftest import CALENDAR_ID
from tests.conftest import OWNER_ID
from tests.conftest import make_activity
from tests.conftest import make_schedule
from tests.conftest import utc


def make_projection(**kwargs) -> ProjectedEntry:
    fields = {
        "id": None,
        "owner_id": OWNER_ID,
        "title": "Projected",
        "start_at": utc(2024, 3, 10, 9),
        "calendar_id": CALENDAR_ID,
        "activity_id": "act-1",
        "source_entity_id": "act-1",
    }
    fields.update(kwargs)
    return ProjectedEntry(**fields)


class TestSchema:
    def test_archived_requires_archived_at(self, state_db):
        """The table-level CHECK rejects an archived row without archived_at."""
        with pytest.raises(sqlite3.IntegrityError):
            state_db.conn.execute(
                "INSERT INTO activities (id, owner_id, type, title, status, created_at, updated_at)"
                " VALUES ('a', 'o', 'task', 't', 'archived', 'x', 'x')"
            )

    def test_deadline_rejects_end(self, state_db):
        with pytest.raises(sqlite3.IntegrityError):
            state_db.conn.execute(
                "INSERT INTO activity_schedules (id, activity_id, schedule_type, start_at, end_at)"
                " VALUES ('s', 'a', 'deadline', 'x', 'y')"
            )

    def test_reopening_keeps_data(self, db_path, activity_store):
        activity_store.create(make_activity("act-1"))
        with StateDatabase(db_path) as db:
            count = db.conn.execute("SELECT COUNT(*) FROM activities").fetchone()[0]
        assert count == 1


class TestActivityStore:
    def test_create_and_get(self, activity_store):
        activity_store.create(make_activity("act-1", metadata={"progress": 10}))
        loaded = activity_store.get("act-1")
        assert loaded.title == "Activity act-1"
        assert loaded.metadata == {"progress": 10}
        assert loaded.created_at is not None

    def test_archive_sets_and_restore_clears_archived_at(self, activity_store):
        activity_store.create(make_activity("act-1"))

        archived = activity_store.update("act-1", status=ActivityStatus.ARCHIVED)
        assert archived.status == ActivityStatus.ARCHIVED
        assert archived.archived_at is not None

        restored = activity_store.update("act-1", status="active")
        assert restored.status == ActivityStatus.ACTIVE
        assert restored.archived_at is None

    def test_non_status_update_leaves_archived_at(self, activity_store):
        activity_store.create(make_activity("act-1"))
        activity_store.update("act-1", status=ActivityStatus.ARCHIVED)
        updated = activity_store.update("act-1", title="Renamed")
        assert updated.title == "Renamed"
        assert updated.archived_at is not None

    def test_unknown_field_is_rejected(self, activity_store):
        activity_store.create(make_activity("act-1"))
        with pytest.raises(ValueError):
            activity_store.update("act-1", owner_id="someone-else")

    def test_update_missing_activity(self, activity_store):
        with pytest.raises(NotFoundError):
            activity_store.update("nope", title="x")

    def test_duplicate_id_is_wrapped(self, activity_store):
        activity_store.create(make_activity("act-1"))
        with pytest.raises(PersistenceError):
            activity_store.create(make_activity("act-1"))

    def test_list_filters_by_type(self, activity_store):
        activity_store.create(make_activity("habit-1", type="habit"))
        activity_store.create(make_activity("goal-1", type="goal"))
        assert [a.id for a in activity_store.list_by_owner(OWNER_ID, type="habit")] == ["habit-1"]


class TestScheduleStore:
    def test_update_rechecks_deadline_invariant(self, schedule_store):
        schedule_store.create(
            make_schedule("sch-1", schedule_type="deadline", start_at=utc(2024, 1, 1))
        )
        with pytest.raises(InvalidScheduleError):
            schedule_store.update("sch-1", end_at=utc(2024, 1, 2))
        assert schedule_store.get("sch-1").end_at is None

    def test_delete_is_independent_of_activity(self, schedule_store, activity_store):
        activity_store.create(make_activity("act-1"))
        schedule_store.create(make_schedule("sch-1", start_at=utc(2024, 1, 1)))
        schedule_store.delete("sch-1")
        assert schedule_store.list_by_activity("act-1") == []
        assert activity_store.get("act-1") is not None


class TestProjectionStore:
    def test_insert_and_lookup(self, projection_store):
        projection_id = projection_store.insert(make_projection())
        found = projection_store.find_active_by_activity("act-1", OWNER_ID)
        assert found.id == projection_id
        assert found.start_at == utc(2024, 3, 10, 9)

    def test_hidden_rows_are_not_active(self, projection_store):
        projection_id = projection_store.insert(make_projection())
        projection_store.update(projection_id, projection_state=ProjectionState.HIDDEN)
        assert projection_store.find_active_by_activity("act-1", OWNER_ID) is None
        assert len(projection_store.list_by_activity("act-1", OWNER_ID, states=["hidden"])) == 1

    def test_update_missing_row(self, projection_store):
        with pytest.raises(NotFoundError):
            projection_store.update("nope", title="x")

    def test_delete_by_source_entities(self, projection_store):
        for item_id in ("i1", "i2", "i3"):
            projection_store.insert(
                make_projection(
                    activity_id=None, source_type=SOURCE_ROADMAP, source_entity_id=item_id
                )
            )
        assert projection_store.delete_by_source_entities(OWNER_ID, ["i1", "i3"]) == 2
        remaining = projection_store.list_by_owner(OWNER_ID, source_type=SOURCE_ROADMAP)
        assert [p.source_entity_id for p in remaining] == ["i2"]

    def test_delete_nothing(self, projection_store):
        assert projection_store.delete_by_source_entities(OWNER_ID, []) == 0

    def test_duplicate_audit(self, projection_store):
        projection_store.insert(make_projection())
        projection_store.insert(make_projection())
        assert projection_store.duplicate_active_activities(OWNER_ID) == [("act-1", 2)]


class TestOwnerDirectory:
    def test_resolve_registered(self, owner_directory):
        assert owner_directory.resolve(OWNER_ID).calendar_id == CALENDAR_ID

    def test_resolve_missing(self, owner_directory):
        with pytest.raises(NotFoundError):
            owner_directory.resolve("nobody")


class TestCheckinStore:
    def test_one_row_per_day(self, checkin_store, state_db):
        checkin_store.upsert(Checkin("habit-1", OWNER_ID, date(2024, 3, 1), "missed"))
        checkin_store.upsert(Checkin("habit-1", OWNER_ID, date(2024, 3, 1), "done", value=1))

        rows = checkin_store.list_for_range(OWNER_ID, "habit-1", date(2024, 3, 1), date(2024, 3, 1))
        assert len(rows) == 1
        assert rows[0].status.value == "done"
        assert rows[0].value == 1

    def test_range_without_activity_lists_every_habit(self, checkin_store):
        checkin_store.upsert(Checkin("habit-2", OWNER_ID, date(2024, 3, 2), "done"))
        checkin_store.upsert(Checkin("habit-1", OWNER_ID, date(2024, 3, 2), "skipped"))
        checkin_store.upsert(Checkin("habit-1", OWNER_ID, date(2024, 3, 1), "done"))
        checkin_store.upsert(Checkin("habit-1", "someone-else", date(2024, 3, 1), "done"))
        checkin_store.upsert(Checkin("habit-1", OWNER_ID, date(2024, 3, 5), "done"))

        rows = checkin_store.list_for_range(OWNER_ID, None, date(2024, 3, 1), date(2024, 3, 2))
        assert [(c.activity_id, c.local_date) for c in rows] == [
            ("habit-1", date(2024, 3, 1)),
            ("habit-1", date(2024, 3, 2)),
            ("habit-2", date(2024, 3, 2)),
        ]

    def test_pending_cannot_be_recorded(self):
        with pytest.raises(CalendarSyncError):
            Checkin("habit-1", OWNER_ID, date(2024, 3, 1), "pending")


class TestSyncEntryStore:
    def test_upsert_is_unique_with_null_levels(self, entry_store, state_db):
        """Project-level entries (null track/subtrack/item) still collide on upsert."""
        entry = SyncEntry(OWNER_ID, "P")
        entry_store.upsert([entry])
        entry_store.upsert([entry])

        count = state_db.conn.execute("SELECT COUNT(*) FROM sync_entries").fetchone()[0]
        assert count == 1
        assert entry_store.list(OWNER_ID) == [entry]

    def test_levels_round_trip(self, entry_store):
        entries = [
            SyncEntry(OWNER_ID, "P", "T"),
            SyncEntry(OWNER_ID, "P", "T", "S"),
            SyncEntry(OWNER_ID, "P", "T", None, "i1"),
        ]
        entry_store.upsert(entries)
        assert {e.key for e in entry_store.list(OWNER_ID)} == {e.key for e in entries}

    def test_delete(self, entry_store):
        keep, drop = SyncEntry(OWNER_ID, "P", "T1"), SyncEntry(OWNER_ID, "P", "T2")
        entry_store.upsert([keep, drop])
        entry_store.delete([drop])
        assert entry_store.list(OWNER_ID) == [keep]


class TestMigration:
    def test_legacy_hidden_column_is_carried_over(self, db_path):
        conn = sqlite3.connect(db_path)
        conn.executescript(
            """
            CREATE TABLE projections (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                calendar_id TEXT,
                title TEXT NOT NULL,
                description TEXT,
                start_at TEXT NOT NULL,
                end_at TEXT,
                all_day INTEGER NOT NULL DEFAULT 0,
                event_type TEXT NOT NULL DEFAULT 'event',
                activity_id TEXT,
                source_type TEXT NOT NULL DEFAULT 'activity',
                source_entity_id TEXT,
                source_project_id TEXT,
                hidden INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            INSERT INTO projections (id, owner_id, title, start_at, activity_id, hidden,
                                     created_at, updated_at)
            VALUES ('p1', 'o', 'Shown', '2024-01-01T00:00:00+00:00', 'a1', 0, 'x', 'x'),
                   ('p2', 'o', 'Hidden', '2024-01-01T00:00:00+00:00', 'a2', 1, 'x', 'x');
            """
        )
        conn.commit()
        conn.close()

        with StateDatabase(db_path) as db:
            db.migrate_if_needed()
            rows = db.conn.execute("SELECT id, projection_state FROM projections").fetchall()
        states = {r["id"]: r["projection_state"] for r in rows}
        assert states == {"p1": "active", "p2": "hidden"}

    def test_current_schema_is_left_alone(self, state_db):
        state_db.migrate_if_needed()
        state_db.migrate_if_needed()
        columns = [r["name"] for r in state_db.conn.execute("PRAGMA table_info(projections)")]
        assert columns.count("projection_state") == 1


class TestQueryStatus:
    def test_missing_db(self, tmp_path):
        assert query_status(tmp_path / "missing.db") == []

    def test_counts_by_state(self, projection_store, db_path):
        first = projection_store.insert(make_projection())
        projection_store.insert(make_projection(activity_id="act-2", source_entity_id="act-2"))
        projection_store.update(first, projection_state=ProjectionState.HIDDEN)

        rows = query_status(db_path)
        counts = {(r["source_type"], r["projection_state"]): r["count"] for r in rows}
        assert counts == {("activity", "active"): 1, ("activity", "hidden"): 1}
        assert {r["owner_id"] for r in rows} == {OWNER_ID}
