"""
SQLite-backed stores over a StateDatabase connection.

Every write commits on its own; a failed write raises PersistenceError and
leaves earlier writes in place.
"""

import json
import sqlite3
import uuid
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import date
from datetime import datetime
from datetime import timezone

from activity_calendar_sync.db import StateDatabase
from activity_calendar_sync.hierarchy import normalize_item
from activity_calendar_sync.models import SOURCE_ROADMAP
from activity_calendar_sync.models import Activity
from activity_calendar_sync.models import ActivitySchedule
from activity_calendar_sync.models import ActivityStatus
from activity_calendar_sync.models import Checkin
from activity_calendar_sync.models import ExternalItem
from activity_calendar_sync.models import NotFoundError
from activity_calendar_sync.models import OwnerProfile
from activity_calendar_sync.models import PersistenceError
from activity_calendar_sync.models import ProjectedEntry
from activity_calendar_sync.models import ProjectionState
from activity_calendar_sync.models import SyncEntry
from activity_calendar_sync.schedules import as_utc


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _new_id() -> str:
    return str(uuid.uuid4())


class _Store:
    def __init__(self, db: StateDatabase):
        self.db = db

    @contextmanager
    def _guard(self, action: str, write: bool = False):
        """Run a statement block, wrapping sqlite errors and committing writes."""
        try:
            yield self.db.conn
            if write:
                self.db.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to {action}: {e}") from e


# ---------------------------------------------------------------------- #
# Activities & schedules                                                  #
# ---------------------------------------------------------------------- #


def _activity_from_row(row: sqlite3.Row) -> Activity:
    return Activity(
        id=row["id"],
        type=row["type"],
        title=row["title"],
        owner_id=row["owner_id"],
        description=row["description"],
        status=row["status"],
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
        archived_at=_dt(row["archived_at"]),
    )


class ActivityStore(_Store):
    _PATCHABLE = {"type", "title", "description", "status", "metadata"}

    def get(self, activity_id: str) -> Activity | None:
        with self._guard(f"load activity {activity_id}") as conn:
            row = conn.execute("SELECT * FROM activities WHERE id = ?", (activity_id,)).fetchone()
        return _activity_from_row(row) if row else None

    def list_by_owner(self, owner_id: str, type=None, status=None) -> list[Activity]:
        sql = "SELECT * FROM activities WHERE owner_id = ?"
        params: list = [owner_id]
        if type is not None:
            sql += " AND type = ?"
            params.append(str(getattr(type, "value", type)))
        if status is not None:
            sql += " AND status = ?"
            params.append(str(getattr(status, "value", status)))
        sql += " ORDER BY created_at, id"
        with self._guard(f"list activities for {owner_id}") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_activity_from_row(r) for r in rows]

    def create(self, activity: Activity) -> Activity:
        now = _now()
        activity.id = activity.id or _new_id()
        activity.created_at = activity.created_at or now
        activity.updated_at = now
        with self._guard(f"create activity {activity.title!r}", write=True) as conn:
            conn.execute(
                "INSERT INTO activities "
                "(id, owner_id, type, title, description, status, metadata, "
                " created_at, updated_at, archived_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    activity.id,
                    activity.owner_id,
                    activity.type.value,
                    activity.title,
                    activity.description,
                    activity.status.value,
                    json.dumps(activity.metadata or {}),
                    _iso(activity.created_at),
                    _iso(activity.updated_at),
                    _iso(activity.archived_at),
                ),
            )
        return activity

    def update(self, activity_id: str, **patch) -> Activity:
        """Apply ``patch``; any status change sets or clears archived_at."""
        unknown = set(patch) - self._PATCHABLE
        if unknown:
            raise ValueError(f"Cannot update activity field(s): {', '.join(sorted(unknown))}")

        current = self.get(activity_id)
        if current is None:
            raise NotFoundError(f"Activity {activity_id} not found")

        now = _now()
        values = {k: getattr(v, "value", v) for k, v in patch.items()}
        if "metadata" in values:
            values["metadata"] = json.dumps(values["metadata"] or {})
        if "status" in values:
            archived = values["status"] == ActivityStatus.ARCHIVED.value
            values["archived_at"] = _iso(current.archived_at or now) if archived else None
        values["updated_at"] = _iso(now)

        assignments = ", ".join(f"{name} = ?" for name in values)
        with self._guard(f"update activity {activity_id}", write=True) as conn:
            conn.execute(
                f"UPDATE activities SET {assignments} WHERE id = ?",
                (*values.values(), activity_id),
            )
        return self.get(activity_id)


def _schedule_from_row(row: sqlite3.Row) -> ActivitySchedule:
    return ActivitySchedule(
        id=row["id"],
        activity_id=row["activity_id"],
        schedule_type=row["schedule_type"],
        start_at=_dt(row["start_at"]),
        end_at=_dt(row["end_at"]),
        recurrence_rule=row["recurrence_rule"],
        timezone=row["timezone"],
        metadata=json.loads(row["metadata"] or "{}"),
    )


class ScheduleStore(_Store):
    _PATCHABLE = {"schedule_type", "start_at", "end_at", "recurrence_rule", "timezone", "metadata"}

    def get(self, schedule_id: str) -> ActivitySchedule | None:
        with self._guard(f"load schedule {schedule_id}") as conn:
            row = conn.execute(
                "SELECT * FROM activity_schedules WHERE id = ?", (schedule_id,)
            ).fetchone()
        return _schedule_from_row(row) if row else None

    def list_by_activity(self, activity_id: str) -> list[ActivitySchedule]:
        with self._guard(f"list schedules for activity {activity_id}") as conn:
            rows = conn.execute(
                "SELECT * FROM activity_schedules WHERE activity_id = ? "
                "ORDER BY start_at IS NULL, start_at, id",
                (activity_id,),
            ).fetchall()
        return [_schedule_from_row(r) for r in rows]

    def create(self, schedule: ActivitySchedule) -> ActivitySchedule:
        schedule.id = schedule.id or _new_id()
        action = f"create schedule for activity {schedule.activity_id}"
        with self._guard(action, write=True) as conn:
            conn.execute(
                "INSERT INTO activity_schedules "
                "(id, activity_id, schedule_type, start_at, end_at, recurrence_rule, "
                " timezone, metadata) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    schedule.id,
                    schedule.activity_id,
                    schedule.schedule_type.value,
                    _iso(schedule.start_at),
                    _iso(schedule.end_at),
                    schedule.recurrence_rule,
                    schedule.timezone,
                    json.dumps(schedule.metadata or {}),
                ),
            )
        return schedule

    def update(self, schedule_id: str, **patch) -> ActivitySchedule:
        unknown = set(patch) - self._PATCHABLE
        if unknown:
            raise ValueError(f"Cannot update schedule field(s): {', '.join(sorted(unknown))}")

        current = self.get(schedule_id)
        if current is None:
            raise NotFoundError(f"Schedule {schedule_id} not found")

        # Rebuilding the dataclass re-checks the deadline/end invariant.
        merged = ActivitySchedule(**{**current.__dict__, **patch})
        with self._guard(f"update schedule {schedule_id}", write=True) as conn:
            conn.execute(
                "UPDATE activity_schedules SET schedule_type = ?, start_at = ?, end_at = ?, "
                "recurrence_rule = ?, timezone = ?, metadata = ? WHERE id = ?",
                (
                    merged.schedule_type.value,
                    _iso(merged.start_at),
                    _iso(merged.end_at),
                    merged.recurrence_rule,
                    merged.timezone,
                    json.dumps(merged.metadata or {}),
                    schedule_id,
                ),
            )
        return merged

    def delete(self, schedule_id: str):
        with self._guard(f"delete schedule {schedule_id}", write=True) as conn:
            conn.execute("DELETE FROM activity_schedules WHERE id = ?", (schedule_id,))


# ---------------------------------------------------------------------- #
# Projections                                                             #
# ---------------------------------------------------------------------- #


def _projection_from_row(row: sqlite3.Row) -> ProjectedEntry:
    return ProjectedEntry(
        id=row["id"],
        owner_id=row["owner_id"],
        calendar_id=row["calendar_id"],
        title=row["title"],
        description=row["description"],
        start_at=_dt(row["start_at"]),
        end_at=_dt(row["end_at"]),
        all_day=bool(row["all_day"]),
        event_type=row["event_type"],
        activity_id=row["activity_id"],
        source_type=row["source_type"],
        source_entity_id=row["source_entity_id"],
        source_project_id=row["source_project_id"],
        projection_state=row["projection_state"],
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
    )


class ProjectionStore(_Store):
    _PATCHABLE = {
        "title",
        "description",
        "start_at",
        "end_at",
        "all_day",
        "event_type",
        "calendar_id",
        "projection_state",
    }

    def get(self, projection_id: str) -> ProjectedEntry | None:
        with self._guard(f"load projection {projection_id}") as conn:
            row = conn.execute(
                "SELECT * FROM projections WHERE id = ?", (projection_id,)
            ).fetchone()
        return _projection_from_row(row) if row else None

    def find_active_by_activity(self, activity_id: str, owner_id: str) -> ProjectedEntry | None:
        with self._guard(f"look up projection for activity {activity_id}") as conn:
            row = conn.execute(
                "SELECT * FROM projections "
                "WHERE activity_id = ? AND owner_id = ? AND projection_state = 'active' "
                "ORDER BY created_at, id LIMIT 1",
                (activity_id, owner_id),
            ).fetchone()
        return _projection_from_row(row) if row else None

    def find_by_source_entity(
        self, owner_id: str, source_entity_id: str, source_type: str = SOURCE_ROADMAP
    ) -> ProjectedEntry | None:
        with self._guard(f"look up projection for {source_type} {source_entity_id}") as conn:
            row = conn.execute(
                "SELECT * FROM projections "
                "WHERE owner_id = ? AND source_type = ? AND source_entity_id = ? "
                "ORDER BY created_at, id LIMIT 1",
                (owner_id, source_type, source_entity_id),
            ).fetchone()
        return _projection_from_row(row) if row else None

    def list_by_activity(
        self, activity_id: str, owner_id: str, states: Iterable | None = None
    ) -> list[ProjectedEntry]:
        sql = "SELECT * FROM projections WHERE activity_id = ? AND owner_id = ?"
        params: list = [activity_id, owner_id]
        if states is not None:
            values = [ProjectionState(s).value for s in states]
            sql += f" AND projection_state IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        sql += " ORDER BY created_at, id"
        with self._guard(f"list projections for activity {activity_id}") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_projection_from_row(r) for r in rows]

    def list_by_owner(
        self, owner_id: str, source_type: str | None = None, states: Iterable | None = None
    ) -> list[ProjectedEntry]:
        sql = "SELECT * FROM projections WHERE owner_id = ?"
        params: list = [owner_id]
        if source_type is not None:
            sql += " AND source_type = ?"
            params.append(source_type)
        if states is not None:
            values = [ProjectionState(s).value for s in states]
            sql += f" AND projection_state IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        sql += " ORDER BY start_at, id"
        with self._guard(f"list projections for {owner_id}") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_projection_from_row(r) for r in rows]

    def duplicate_active_activities(self, owner_id: str) -> list[tuple[str, int]]:
        """Activities with more than one active projection for ``owner_id``."""
        with self._guard(f"audit projections for {owner_id}") as conn:
            rows = conn.execute(
                "SELECT activity_id, COUNT(*) AS count FROM projections "
                "WHERE owner_id = ? AND activity_id IS NOT NULL "
                "AND projection_state = 'active' "
                "GROUP BY activity_id HAVING COUNT(*) > 1 ORDER BY activity_id",
                (owner_id,),
            ).fetchall()
        return [(r["activity_id"], r["count"]) for r in rows]

    def insert(self, entry: ProjectedEntry) -> str:
        now = _now()
        entry.id = entry.id or _new_id()
        entry.created_at = entry.created_at or now
        entry.updated_at = now
        with self._guard(f"insert projection {entry.title!r}", write=True) as conn:
            conn.execute(
                "INSERT INTO projections "
                "(id, owner_id, calendar_id, title, description, start_at, end_at, all_day, "
                " event_type, activity_id, source_type, source_entity_id, source_project_id, "
                " projection_state, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    entry.id,
                    entry.owner_id,
                    entry.calendar_id,
                    entry.title,
                    entry.description,
                    _iso(entry.start_at),
                    _iso(entry.end_at),
                    int(entry.all_day),
                    entry.event_type,
                    entry.activity_id,
                    entry.source_type,
                    entry.source_entity_id,
                    entry.source_project_id,
                    entry.projection_state.value,
                    _iso(entry.created_at),
                    _iso(entry.updated_at),
                ),
            )
        return entry.id

    def update(self, projection_id: str, **patch):
        unknown = set(patch) - self._PATCHABLE
        if unknown:
            raise ValueError(f"Cannot update projection field(s): {', '.join(sorted(unknown))}")

        values = {}
        for name, value in patch.items():
            if isinstance(value, datetime):
                value = _iso(value)
            elif name == "all_day":
                value = int(bool(value))
            elif name == "projection_state":
                value = ProjectionState(value).value
            values[name] = value
        values["updated_at"] = _iso(_now())

        assignments = ", ".join(f"{name} = ?" for name in values)
        with self._guard(f"update projection {projection_id}", write=True) as conn:
            cursor = conn.execute(
                f"UPDATE projections SET {assignments} WHERE id = ?",
                (*values.values(), projection_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Projection {projection_id} not found")

    def delete_by_source_entities(
        self, owner_id: str, source_entity_ids: Iterable[str], source_type: str = SOURCE_ROADMAP
    ) -> int:
        ids = list(source_entity_ids)
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        with self._guard(f"delete {len(ids)} {source_type} projection(s)", write=True) as conn:
            cursor = conn.execute(
                "DELETE FROM projections WHERE owner_id = ? AND source_type = ? "
                f"AND source_entity_id IN ({placeholders})",
                (owner_id, source_type, *ids),
            )
        return cursor.rowcount


# ---------------------------------------------------------------------- #
# Owners                                                                  #
# ---------------------------------------------------------------------- #


class OwnerDirectory(_Store):
    def resolve(self, owner_id: str) -> OwnerProfile:
        with self._guard(f"resolve owner {owner_id}") as conn:
            row = conn.execute(
                "SELECT owner_id, profile_id, calendar_id FROM owners WHERE owner_id = ?",
                (owner_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"No profile registered for owner {owner_id}")
        return OwnerProfile(row["owner_id"], row["profile_id"], row["calendar_id"])

    def register(self, profile: OwnerProfile):
        with self._guard(f"register owner {profile.owner_id}", write=True) as conn:
            conn.execute(
                "INSERT INTO owners (owner_id, profile_id, calendar_id) VALUES (?, ?, ?) "
                "ON CONFLICT(owner_id) DO UPDATE SET "
                "profile_id = excluded.profile_id, calendar_id = excluded.calendar_id",
                (profile.owner_id, profile.profile_id, profile.calendar_id),
            )

    def list(self) -> list[OwnerProfile]:
        with self._guard("list owners") as conn:
            rows = conn.execute(
                "SELECT owner_id, profile_id, calendar_id FROM owners ORDER BY owner_id"
            ).fetchall()
        return [OwnerProfile(r["owner_id"], r["profile_id"], r["calendar_id"]) for r in rows]


# ---------------------------------------------------------------------- #
# Check-ins                                                               #
# ---------------------------------------------------------------------- #


class CheckinStore(_Store):
    def list_for_range(
        self, owner_id: str, activity_id: str | None, start_date: date, end_date: date
    ) -> list[Checkin]:
        """Check-ins in the inclusive date range; every habit when ``activity_id`` is None."""
        sql = "SELECT * FROM habit_checkins WHERE owner_id = ? AND local_date BETWEEN ? AND ?"
        params: list = [owner_id, start_date.isoformat(), end_date.isoformat()]
        if activity_id is not None:
            sql += " AND activity_id = ?"
            params.append(activity_id)
        sql += " ORDER BY local_date, activity_id"
        with self._guard(f"list check-ins for {activity_id or owner_id}") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            Checkin(
                activity_id=r["activity_id"],
                owner_id=r["owner_id"],
                local_date=date.fromisoformat(r["local_date"]),
                status=r["status"],
                value=r["value"],
                notes=r["notes"],
            )
            for r in rows
        ]

    def upsert(self, checkin: Checkin):
        with self._guard(
            f"record check-in for activity {checkin.activity_id} on {checkin.local_date}",
            write=True,
        ) as conn:
            conn.execute(
                "INSERT INTO habit_checkins "
                "(activity_id, owner_id, local_date, status, value, notes, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(activity_id, owner_id, local_date) DO UPDATE SET "
                "status = excluded.status, value = excluded.value, "
                "notes = excluded.notes, updated_at = excluded.updated_at",
                (
                    checkin.activity_id,
                    checkin.owner_id,
                    checkin.local_date.isoformat(),
                    checkin.status.value,
                    checkin.value,
                    checkin.notes,
                    _iso(_now()),
                ),
            )


# ---------------------------------------------------------------------- #
# Sync entries                                                            #
# ---------------------------------------------------------------------- #


def _entry_params(entry: SyncEntry) -> tuple:
    # Nullable ids are stored as '' so the UNIQUE constraint covers them.
    return (
        entry.owner_id,
        entry.project_id,
        entry.track_id or "",
        entry.subtrack_id or "",
        entry.item_id or "",
    )


class SyncEntryStore(_Store):
    def list(self, owner_id: str) -> list[SyncEntry]:
        with self._guard(f"list sync entries for {owner_id}") as conn:
            rows = conn.execute(
                "SELECT owner_id, project_id, track_id, subtrack_id, item_id "
                "FROM sync_entries WHERE owner_id = ? "
                "ORDER BY project_id, track_id, subtrack_id, item_id",
                (owner_id,),
            ).fetchall()
        return [
            SyncEntry(
                owner_id=r["owner_id"],
                project_id=r["project_id"],
                track_id=r["track_id"] or None,
                subtrack_id=r["subtrack_id"] or None,
                item_id=r["item_id"] or None,
            )
            for r in rows
        ]

    def upsert(self, entries: Iterable[SyncEntry]):
        now = _iso(_now())
        with self._guard("upsert sync entries", write=True) as conn:
            for entry in entries:
                conn.execute(
                    "INSERT INTO sync_entries "
                    "(owner_id, project_id, track_id, subtrack_id, item_id, "
                    " created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(owner_id, project_id, track_id, subtrack_id, item_id) "
                    "DO UPDATE SET updated_at = excluded.updated_at",
                    (*_entry_params(entry), now, now),
                )

    def delete(self, entries: Iterable[SyncEntry]):
        with self._guard("delete sync entries", write=True) as conn:
            for entry in entries:
                conn.execute(
                    "DELETE FROM sync_entries WHERE owner_id = ? AND project_id = ? "
                    "AND track_id = ? AND subtrack_id = ? AND item_id = ?",
                    _entry_params(entry),
                )


# ---------------------------------------------------------------------- #
# Roadmap hierarchy                                                       #
# ---------------------------------------------------------------------- #


class RoadmapSource(_Store):
    """Project/track/subtrack/item hierarchy stored alongside the state tables."""

    def list_projects(self, owner_id: str) -> list[dict]:
        with self._guard(f"list projects for {owner_id}") as conn:
            rows = conn.execute(
                "SELECT id, name FROM projects WHERE owner_id = ? ORDER BY name, id", (owner_id,)
            ).fetchall()
        return [dict(r) for r in rows]

    def list_tracks(self, project_id: str) -> list[dict]:
        with self._guard(f"list tracks for project {project_id}") as conn:
            rows = conn.execute(
                "SELECT id, name FROM tracks WHERE project_id = ? ORDER BY position, id",
                (project_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    def list_subtracks(self, track_id: str) -> list[dict]:
        with self._guard(f"list subtracks for track {track_id}") as conn:
            rows = conn.execute(
                "SELECT id, name FROM subtracks WHERE track_id = ? ORDER BY position, id",
                (track_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    def list_items(
        self,
        project_id: str | None = None,
        track_id: str | None = None,
        subtrack_id: str | None = None,
    ) -> list[ExternalItem]:
        """Items under exactly one of project, track or subtrack (all descendants)."""
        filters = [
            (col, val)
            for col, val in (
                ("project_id", project_id),
                ("track_id", track_id),
                ("subtrack_id", subtrack_id),
            )
            if val is not None
        ]
        if len(filters) != 1:
            raise ValueError("list_items needs exactly one of project_id, track_id, subtrack_id")
        column, value = filters[0]
        with self._guard(f"list roadmap items for {column}={value}") as conn:
            rows = conn.execute(
                f"SELECT * FROM roadmap_items WHERE {column} = ? "
                "ORDER BY start_date IS NULL, start_date, id",
                (value,),
            ).fetchall()
        return [normalize_item(dict(r)) for r in rows]

    def add_project(self, project_id: str, owner_id: str, name: str):
        with self._guard(f"save project {project_id}", write=True) as conn:
            conn.execute(
                "INSERT INTO projects (id, owner_id, name) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET owner_id = excluded.owner_id, name = excluded.name",
                (project_id, owner_id, name),
            )

    def add_track(self, track_id: str, project_id: str, name: str, position: int = 0):
        with self._guard(f"save track {track_id}", write=True) as conn:
            conn.execute(
                "INSERT INTO tracks (id, project_id, name, position) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET project_id = excluded.project_id, "
                "name = excluded.name, position = excluded.position",
                (track_id, project_id, name, position),
            )

    def add_subtrack(self, subtrack_id: str, track_id: str, name: str, position: int = 0):
        with self._guard(f"save subtrack {subtrack_id}", write=True) as conn:
            conn.execute(
                "INSERT INTO subtracks (id, track_id, name, position) VALUES (?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET track_id = excluded.track_id, "
                "name = excluded.name, position = excluded.position",
                (subtrack_id, track_id, name, position),
            )

    def add_item(self, raw: dict):
        """Store a raw roadmap row; it is normalized first so bad ids fail early."""
        item = normalize_item(raw)

        def _text(value):
            if value is None:
                return None
            return value.isoformat()

        with self._guard(f"save roadmap item {item.id}", write=True) as conn:
            conn.execute(
                "INSERT INTO roadmap_items "
                "(id, project_id, track_id, subtrack_id, title, description, type, status, "
                " start_date, end_date) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET project_id = excluded.project_id, "
                "track_id = excluded.track_id, subtrack_id = excluded.subtrack_id, "
                "title = excluded.title, description = excluded.description, "
                "type = excluded.type, status = excluded.status, "
                "start_date = excluded.start_date, end_date = excluded.end_date",
                (
                    item.id,
                    item.project_id,
                    item.track_id,
                    item.subtrack_id,
                    item.title,
                    item.description,
                    item.item_type,
                    item.status,
                    _text(item.start),
                    _text(item.end),
                ),
            )
