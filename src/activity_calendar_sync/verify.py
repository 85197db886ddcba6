"""
Post-commit audit: check that sync entries and projections agree.
"""

import logging

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from activity_calendar_sync.models import SOURCE_ROADMAP
from activity_calendar_sync.models import CalendarSyncError
from activity_calendar_sync.models import ExternalItem
from activity_calendar_sync.models import SyncEntry
from activity_calendar_sync.sync.selective import entry_key

_logger = logging.getLogger(__name__)


def _short_id(value: str, max_len: int = 40) -> str:
    if len(value) <= max_len:
        return value
    return value[:max_len] + "…"


def find_missing(engine) -> list[tuple[SyncEntry, ExternalItem]]:
    """Dated items covered by a sync entry that have no roadmap projection."""
    owner_id = engine.config.owner_id
    missing = []
    for entry in engine.entries.list(owner_id):
        try:
            items = engine.selective.resolve_items(entry)
        except CalendarSyncError as e:
            _logger.warning(f"Verify: cannot resolve items for {entry_key(entry)}: {e}")
            continue
        for item in items:
            if item.start is None:
                continue
            if engine.projections.find_by_source_entity(owner_id, item.id, SOURCE_ROADMAP) is None:
                missing.append((entry, item))
    return missing


def run_verify(engine, console: Console, fix: bool = False) -> bool:
    """Audit the owner's sync entries and projections.

    Reports MISSING (entry covers an item with no projection), UNCOVERED
    (roadmap projection no entry covers) and DUPLICATE (activity with more
    than one active projection). With ``fix``, missing projections are
    materialized before the report.

    Returns True when no issues remain.
    """
    owner_id = engine.config.owner_id
    entries = engine.entries.list(owner_id)

    info = Text()
    info.append("  Owner:     ", style="bold")
    info.append(f"{owner_id}\n")
    info.append("  Entries:   ", style="bold")
    info.append(f"{len(entries)}\n")
    info.append("  Database:  ", style="bold")
    info.append(str(engine.config.state_db_path))
    console.print(Panel(info, title="[bold]Activity Calendar Sync — Verify[/bold]"))

    if fix:
        result = engine.materialize_missing()
        console.print(
            f"[bold]Fix:[/bold] {len(result.projected)} projection(s) created, "
            f"{len(result.failures)} failure(s)."
        )

    missing = find_missing(engine)

    covered: set[str] = set()
    for entry in entries:
        try:
            covered.update(item.id for item in engine.selective.resolve_items(entry))
        except CalendarSyncError as e:
            _logger.warning(f"Verify: cannot resolve items for {entry_key(entry)}: {e}")
    uncovered = [
        p
        for p in engine.projections.list_by_owner(owner_id, source_type=SOURCE_ROADMAP)
        if p.source_entity_id not in covered
    ]

    duplicates = engine.projections.duplicate_active_activities(owner_id)

    _logger.debug(
        f"Verify: {len(missing)} missing, {len(uncovered)} uncovered, "
        f"{len(duplicates)} duplicate(s)"
    )

    if not (missing or uncovered or duplicates):
        console.print(
            f"[bold green]✓[/] All [bold]{len(entries)}[/bold] sync entr(ies) "
            f"confirmed on the calendar."
        )
        return True

    if missing:
        t = Table(
            title="[bold red]MISSING[/] — synced items with no projection",
            show_header=True,
            header_style="bold",
        )
        t.add_column("Title", overflow="fold", min_width=30)
        t.add_column("Start", width=12)
        t.add_column("Entry", overflow="fold")
        for entry, item in missing:
            t.add_row(item.title, str(item.start)[:10], _short_id(entry_key(entry)))
        console.print(t)

    if uncovered:
        t = Table(
            title="[bold yellow]UNCOVERED[/] — roadmap projections no sync entry covers",
            show_header=True,
            header_style="bold",
        )
        t.add_column("Title", overflow="fold", min_width=30)
        t.add_column("Start", width=12)
        t.add_column("Item ID", overflow="fold")
        for p in uncovered:
            t.add_row(p.title, p.start_at.date().isoformat(), _short_id(p.source_entity_id or ""))
        console.print(t)

    if duplicates:
        t = Table(
            title="[bold magenta]DUPLICATE[/] — activities with several active projections",
            show_header=True,
            header_style="bold",
        )
        t.add_column("Activity ID", overflow="fold")
        t.add_column("Active", justify="right")
        for activity_id, count in duplicates:
            t.add_row(_short_id(activity_id), str(count))
        console.print(t)

    total_issues = len(missing) + len(uncovered) + len(duplicates)
    hint = ""
    if missing and not fix:
        hint = "\nRun [bold]verify --fix[/bold] to create missing projections."
    console.print(f"\n[bold red]{total_issues}[/bold red] issue(s) found.{hint}")
    return False
