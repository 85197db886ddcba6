"""
External project/track/subtrack/item hierarchy: boundary normalization and loading.

Roadmap rows arrive as loosely-typed mappings (column names differ between
backends, dates may be missing, empty or carry a time part). They are turned
into ExternalItem values here so the rest of the package never has to guess.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime

from activity_calendar_sync.models import ExternalItem
from activity_calendar_sync.schedules import as_utc

_logger = logging.getLogger(__name__)


@dataclass
class SubtrackHierarchy:
    id: str
    name: str
    items: list[ExternalItem] = field(default_factory=list)


@dataclass
class TrackHierarchy:
    id: str
    name: str
    subtracks: list[SubtrackHierarchy] = field(default_factory=list)
    items: list[ExternalItem] = field(default_factory=list)  # items outside any subtrack


@dataclass
class ProjectHierarchy:
    id: str
    name: str
    tracks: list[TrackHierarchy] = field(default_factory=list)


KEY_SEPARATOR = ":"


def check_node_id(value, kind: str = "item") -> str:
    """Return ``value`` as a string, rejecting ids that would break composite selection keys."""
    text = str(value)
    if not text or KEY_SEPARATOR in text:
        raise ValueError(
            f"Invalid roadmap {kind} id {text!r}: must be non-empty without {KEY_SEPARATOR!r}"
        )
    return text


def _first(raw: Mapping, *names: str):
    for name in names:
        value = raw.get(name)
        if value not in (None, ""):
            return value
    return None


def parse_item_date(value) -> date | datetime | None:
    """Parse a roadmap date: plain dates stay dates (all-day), datetimes become UTC."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if "T" not in text and " " not in text:
        return date.fromisoformat(text[:10])
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def _item_id(raw: Mapping) -> str:
    item_id = _first(raw, "id", "item_id")
    if item_id is None:
        raise ValueError("Roadmap item without an id")
    return check_node_id(item_id)


def normalize_item(raw: Mapping) -> ExternalItem:
    """Build an ExternalItem from a raw roadmap row (snake_case or camelCase keys)."""
    item_id = _item_id(raw)

    try:
        start = parse_item_date(_first(raw, "start_date", "startDate", "start"))
        end = parse_item_date(_first(raw, "end_date", "endDate", "end"))
    except ValueError as e:
        _logger.warning(f"Roadmap item {item_id} has an unparseable date, treating as undated: {e}")
        start = end = None

    return ExternalItem(
        id=item_id,
        title=str(_first(raw, "title", "name") or "Untitled"),
        project_id=str(_first(raw, "project_id", "projectId", "master_project_id") or ""),
        track_id=_first(raw, "track_id", "trackId"),
        subtrack_id=_first(raw, "subtrack_id", "subtrackId"),
        description=_first(raw, "description"),
        start=start,
        end=end,
        item_type=str(_first(raw, "type", "item_type") or "task"),
        status=str(_first(raw, "status") or "not_started"),
    )


def load_hierarchy(source, owner_id: str) -> list[ProjectHierarchy]:
    """Build the dated-item tree for every project visible to ``owner_id``.

    Only items with a start or end date are included; track-level item lists
    exclude items that belong to a subtrack.
    """
    projects: list[ProjectHierarchy] = []
    for project in source.list_projects(owner_id):
        tracks: list[TrackHierarchy] = []
        for track in source.list_tracks(project["id"]):
            subtracks = [
                SubtrackHierarchy(
                    id=subtrack["id"],
                    name=subtrack["name"],
                    items=[i for i in source.list_items(subtrack_id=subtrack["id"]) if i.is_dated],
                )
                for subtrack in source.list_subtracks(track["id"])
            ]
            direct_items = [
                i
                for i in source.list_items(track_id=track["id"])
                if i.is_dated and not i.subtrack_id
            ]
            tracks.append(
                TrackHierarchy(
                    id=track["id"], name=track["name"], subtracks=subtracks, items=direct_items
                )
            )
        projects.append(ProjectHierarchy(id=project["id"], name=project["name"], tracks=tracks))

    _logger.debug(f"Loaded hierarchy for {owner_id}: {len(projects)} project(s)")
    return projects


def _check_document(document: Mapping):
    # Validate every id up front so a bad document stores nothing.
    for project in document.get("projects", []):
        check_node_id(project["id"], "project")
        for track in project.get("tracks", []):
            check_node_id(track["id"], "track")
            for raw in track.get("items", []):
                _item_id(raw)
            for subtrack in track.get("subtracks", []):
                check_node_id(subtrack["id"], "subtrack")
                for raw in subtrack.get("items", []):
                    _item_id(raw)


def import_roadmap(source, owner_id: str, document: Mapping) -> int:
    """Store a nested project → track → subtrack → item document; returns items saved.

    Each item inherits project/track/subtrack ids from where it is nested.
    """
    _check_document(document)
    count = 0
    for project in document.get("projects", []):
        source.add_project(project["id"], owner_id, project.get("name") or project["id"])
        for t_pos, track in enumerate(project.get("tracks", [])):
            source.add_track(track["id"], project["id"], track.get("name") or track["id"], t_pos)
            for raw in track.get("items", []):
                source.add_item({**raw, "project_id": project["id"], "track_id": track["id"]})
                count += 1
            for s_pos, subtrack in enumerate(track.get("subtracks", [])):
                source.add_subtrack(
                    subtrack["id"], track["id"], subtrack.get("name") or subtrack["id"], s_pos
                )
                for raw in subtrack.get("items", []):
                    source.add_item(
                        {
                            **raw,
                            "project_id": project["id"],
                            "track_id": track["id"],
                            "subtrack_id": subtrack["id"],
                        }
                    )
                    count += 1

    _logger.info(f"Imported {count} roadmap item(s) for {owner_id}")
    return count
