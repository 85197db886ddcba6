"""
Shared pytest fixtures and model helpers.
"""

import logging
from datetime import datetime
from datetime import timezone

import pytest

from activity_calendar_sync.db import StateDatabase
from activity_calendar_sync.models import Activity
from activity_calendar_sync.models import ActivitySchedule
from activity_calendar_sync.models import ExternalItem
from activity_calendar_sync.models import OwnerProfile
from activity_calendar_sync.models import SyncConfig
from activity_calendar_sync.models import SyncStats
from activity_calendar_sync.stores import ActivityStore
from activity_calendar_sync.stores import CheckinStore
from activity_calendar_sync.stores import OwnerDirectory
from activity_calendar_sync.stores import ProjectionStore
from activity_calendar_sync.stores import RoadmapSource
from activity_calendar_sync.stores import ScheduleStore
from activity_calendar_sync.stores import SyncEntryStore

OWNER_ID = "owner-test"
CALENDAR_ID = "calendar-test"


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_activity(activity_id: str = "act-1", type: str = "task", **kwargs) -> Activity:
    """Return an active activity owned by OWNER_ID."""
    fields = {"title": f"Activity {activity_id}", "owner_id": OWNER_ID}
    fields.update(kwargs)
    return Activity(id=activity_id, type=type, **fields)


def make_schedule(
    schedule_id: str = "sch-1",
    activity_id: str = "act-1",
    schedule_type: str = "single",
    **kwargs,
) -> ActivitySchedule:
    return ActivitySchedule(
        id=schedule_id, activity_id=activity_id, schedule_type=schedule_type, **kwargs
    )


def make_item(
    item_id: str,
    project_id: str = "P",
    track_id: str | None = "T",
    subtrack_id: str | None = None,
    start=None,
    end=None,
    **kwargs,
) -> ExternalItem:
    """Return a roadmap item; dated on 2024-03-10 unless start/end are given."""
    if start is None and end is None:
        start = utc(2024, 3, 10, 9)
    return ExternalItem(
        id=item_id,
        title=kwargs.pop("title", f"Item {item_id}"),
        project_id=project_id,
        track_id=track_id,
        subtrack_id=subtrack_id,
        start=start,
        end=end,
        **kwargs,
    )


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test_state.db"


@pytest.fixture
def state_db(db_path):
    with StateDatabase(db_path) as db:
        yield db


@pytest.fixture
def activity_store(state_db):
    return ActivityStore(state_db)


@pytest.fixture
def schedule_store(state_db):
    return ScheduleStore(state_db)


@pytest.fixture
def projection_store(state_db):
    return ProjectionStore(state_db)


@pytest.fixture
def owner_directory(state_db):
    directory = OwnerDirectory(state_db)
    directory.register(OwnerProfile(OWNER_ID, "profile-test", CALENDAR_ID))
    return directory


@pytest.fixture
def checkin_store(state_db):
    return CheckinStore(state_db)


@pytest.fixture
def entry_store(state_db):
    return SyncEntryStore(state_db)


@pytest.fixture
def roadmap(state_db):
    return RoadmapSource(state_db)


@pytest.fixture
def sync_config(db_path):
    return SyncConfig(
        owner_id=OWNER_ID,
        state_db_path=db_path,
        dry_run=False,
        verbose=False,
    )


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")


@pytest.fixture
def sync_stats():
    return SyncStats()
