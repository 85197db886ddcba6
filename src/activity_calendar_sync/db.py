"""
SQLite state persistence for activities, projections and sync selections.
"""

import logging
import sqlite3
from pathlib import Path

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS owners (
        owner_id TEXT PRIMARY KEY,
        profile_id TEXT NOT NULL,
        calendar_id TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS activities (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'active',
        metadata TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        archived_at TEXT,
        CHECK ((status = 'archived') = (archived_at IS NOT NULL))
    );

    CREATE TABLE IF NOT EXISTS activity_schedules (
        id TEXT PRIMARY KEY,
        activity_id TEXT NOT NULL REFERENCES activities(id),
        schedule_type TEXT NOT NULL,
        start_at TEXT,
        end_at TEXT,
        recurrence_rule TEXT,
        timezone TEXT NOT NULL DEFAULT 'UTC',
        metadata TEXT NOT NULL DEFAULT '{}',
        CHECK (schedule_type != 'deadline' OR end_at IS NULL)
    );

    CREATE TABLE IF NOT EXISTS projections (
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
        projection_state TEXT NOT NULL DEFAULT 'active',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_projections_activity
        ON projections(activity_id, owner_id);
    CREATE INDEX IF NOT EXISTS idx_projections_source
        ON projections(owner_id, source_type, source_entity_id);

    CREATE TABLE IF NOT EXISTS habit_checkins (
        activity_id TEXT NOT NULL,
        owner_id TEXT NOT NULL,
        local_date TEXT NOT NULL,
        status TEXT NOT NULL,
        value REAL,
        notes TEXT,
        updated_at TEXT NOT NULL,
        UNIQUE(activity_id, owner_id, local_date)
    );

    CREATE TABLE IF NOT EXISTS sync_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        owner_id TEXT NOT NULL,
        project_id TEXT NOT NULL,
        track_id TEXT NOT NULL DEFAULT '',
        subtrack_id TEXT NOT NULL DEFAULT '',
        item_id TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE(owner_id, project_id, track_id, subtrack_id, item_id)
    );

    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        name TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS tracks (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL REFERENCES projects(id),
        name TEXT NOT NULL,
        position INTEGER NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS subtracks (
        id TEXT PRIMARY KEY,
        track_id TEXT NOT NULL REFERENCES tracks(id),
        name TEXT NOT NULL,
        position INTEGER NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS roadmap_items (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL REFERENCES projects(id),
        track_id TEXT,
        subtrack_id TEXT,
        title TEXT NOT NULL,
        description TEXT,
        type TEXT NOT NULL DEFAULT 'task',
        status TEXT NOT NULL DEFAULT 'not_started',
        start_date TEXT,
        end_date TEXT
    );
"""


class StateDatabase:
    """Manages the SQLite database behind every store."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the state database."""
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self._init_schema()

    def _init_schema(self):
        """Create all tables if they don't exist."""
        self.conn.executescript(_SCHEMA)
        self.conn.commit()

    def migrate_if_needed(self):
        """
        Bring a projections table from before projection states up to date.

        Older databases recorded a boolean ``hidden`` column instead of the
        active/hidden/removed state. Rows are carried over: hidden rows become
        'hidden', everything else 'active'.
        """
        logger = logging.getLogger(__name__)

        columns = {row["name"] for row in self.conn.execute("PRAGMA table_info(projections)")}
        if "projection_state" in columns:
            return

        logger.info("Migrating state database: adding projection_state to projections...")
        self.conn.execute(
            "ALTER TABLE projections "
            "ADD COLUMN projection_state TEXT NOT NULL DEFAULT 'active'"
        )
        if "hidden" in columns:
            cursor = self.conn.execute(
                "UPDATE projections SET projection_state = 'hidden' WHERE hidden = 1"
            )
            logger.info(f"Migration complete: {cursor.rowcount} hidden projection(s) carried over.")
        else:
            logger.info("Migration complete: all existing projections marked active.")
        self.conn.commit()

    def commit(self):
        """Commit pending transactions."""
        if self.conn:
            self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None


def query_status(db_path: Path) -> list:
    """
    Return aggregate projection rows for every owner recorded in the database.

    Each row exposes: owner_id, source_type, projection_state, count, last_updated_at.
    Returns an empty list when the DB file does not exist or has no projections
    table yet.
    """
    if not db_path.exists():
        return []
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        columns = {row["name"] for row in conn.execute("PRAGMA table_info(projections)")}
        if "projection_state" not in columns:
            return []
        cursor = conn.execute("""
            SELECT
                owner_id,
                source_type,
                projection_state,
                COUNT(*)        AS count,
                MAX(updated_at) AS last_updated_at
            FROM projections
            GROUP BY owner_id, source_type, projection_state
            ORDER BY owner_id, source_type, projection_state
        """)
        return cursor.fetchall()
    finally:
        conn.close()
