"""
Command-line interface for Activity Calendar Sync.
"""

import json
import logging
from configparser import ConfigParser
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import timezone
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from activity_calendar_sync.activities import archive_activity
from activity_calendar_sync.activities import create_goal
from activity_calendar_sync.activities import create_habit
from activity_calendar_sync.activities import record_checkin
from activity_calendar_sync.activities import restore_activity
from activity_calendar_sync.db import query_status
from activity_calendar_sync.hierarchy import import_roadmap
from activity_calendar_sync.models import DEFAULT_CONFIG
from activity_calendar_sync.models import DEFAULT_HORIZON_DAYS
from activity_calendar_sync.models import DEFAULT_STATE_DB
from activity_calendar_sync.models import CalendarSyncError
from activity_calendar_sync.models import CheckinStatus
from activity_calendar_sync.models import OwnerProfile
from activity_calendar_sync.models import SyncConfig
from activity_calendar_sync.models import SyncStats
from activity_calendar_sync.preflight import run_preflight_checks
from activity_calendar_sync.selection import ALL
from activity_calendar_sync.selection import PARTIAL
from activity_calendar_sync.selection import NodePath
from activity_calendar_sync.selection import SelectionTree
from activity_calendar_sync.sync import CalendarSyncEngine
from activity_calendar_sync.sync.extras import derived_events
from activity_calendar_sync.sync.selective import CommitResult
from activity_calendar_sync.sync.selective import entry_key
from activity_calendar_sync.verify import run_verify

CONFIG_SECTION = "activity-calendar-sync"

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Project activities and selected roadmap items onto a calendar.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    state_db: Path = field(default_factory=lambda: DEFAULT_STATE_DB)
    owner: str | None = None
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    state_db: Annotated[
        Path,
        typer.Option("--state-db", help=f"State DB path (default: {DEFAULT_STATE_DB})"),
    ] = DEFAULT_STATE_DB,
    owner: Annotated[
        str | None,
        typer.Option("--owner", "-o", help="Owner id (overrides config)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.state_db = state_db
    state.owner = owner
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if CONFIG_SECTION not in parser:
        return {}
    return dict(parser[CONFIG_SECTION])


def _build_config(dry_run: bool = False, yes: bool = False) -> SyncConfig:
    config_file = _load_config_file(state.config_path)
    owner_id = state.owner or config_file.get("owner_id")
    if not owner_id:
        console.print(
            "[bold red]Error:[/] An owner id must be provided via "
            "[cyan]--owner[/] or [cyan]owner_id[/] in the config file."
        )
        raise typer.Exit(1)

    try:
        horizon = int(config_file.get("horizon_days", DEFAULT_HORIZON_DAYS))
    except ValueError:
        console.print("[bold red]Error:[/] horizon_days in the config file must be a number.")
        raise typer.Exit(1) from None

    return SyncConfig(
        owner_id=owner_id,
        state_db_path=state.state_db,
        dry_run=dry_run,
        verbose=state.verbose,
        yes=yes,
        horizon_days=horizon,
    )


def _parse_instant(value: str, option: str) -> datetime:
    """Parse an ISO date or datetime option; plain dates mean midnight UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        if "T" not in text and " " not in text:
            return datetime.combine(date.fromisoformat(text), time(0), tzinfo=timezone.utc)
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise typer.BadParameter(f"Invalid date/time: {value!r}", param_hint=option) from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _preflight(cfg: SyncConfig, require_profile: bool = True) -> None:
    if not run_preflight_checks(cfg, console, require_profile=require_profile):
        raise typer.Exit(1)


def _fail(e: Exception) -> typer.Exit:
    console.print(f"[bold red]Failed:[/] {e}")
    return typer.Exit(1)


def _print_stats(stats: SyncStats) -> None:
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Added", str(stats.added))
    results.add_row("Modified", str(stats.modified))
    results.add_row("Hidden", str(stats.hidden))
    results.add_row("Restored", str(stats.restored))
    results.add_row("Deleted", str(stats.deleted))
    error_val = Text(str(stats.errors))
    if stats.errors == 0:
        error_val.append(" ✓", style="green")
    else:
        error_val.stylize("bold red")
    results.add_row("Errors", error_val)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))


_DRY_RUN = Annotated[bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")]
_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]


# ---------------------------------------------------------------------------
# Subcommands: owner & activities
# ---------------------------------------------------------------------------


@app.command()
def init(
    calendar: Annotated[str, typer.Option("--calendar", help="Calendar id to project onto")],
    profile: Annotated[
        str | None, typer.Option("--profile", help="Profile id (defaults to the owner id)")
    ] = None,
) -> None:
    """Register the owner's profile and target calendar."""
    cfg = _build_config()
    _preflight(cfg, require_profile=False)
    try:
        with CalendarSyncEngine(cfg) as engine:
            engine.owners.register(OwnerProfile(cfg.owner_id, profile or cfg.owner_id, calendar))
    except CalendarSyncError as e:
        raise _fail(e) from None
    console.print(f"[bold green]✓[/] Registered [bold]{cfg.owner_id}[/bold] → {calendar}")


@app.command("add-habit")
def add_habit(
    title: Annotated[str, typer.Argument(help="Habit title")],
    start: Annotated[str, typer.Option("--start", help="First occurrence (ISO date/time)")],
    repeat: Annotated[str, typer.Option("--repeat", help="daily, weekly or monthly")] = "daily",
    tz: Annotated[str, typer.Option("--timezone", help="IANA timezone for local dates")] = "UTC",
    until: Annotated[str | None, typer.Option("--until", help="Last possible day")] = None,
    duration: Annotated[
        int | None, typer.Option("--duration", help="Minutes per occurrence")
    ] = None,
    project: Annotated[
        bool, typer.Option("--project/--no-project", help="Project onto the calendar now")
    ] = True,
) -> None:
    """Create a recurring habit."""
    cfg = _build_config()
    _preflight(cfg, require_profile=project)
    start_at = _parse_instant(start, "--start")
    until_at = _parse_instant(until, "--until") if until else None
    try:
        with CalendarSyncEngine(cfg) as engine:
            activity, _ = create_habit(
                engine.activities,
                engine.schedules,
                cfg.owner_id,
                title,
                start_at,
                repeat=repeat,
                timezone=tz,
                until=until_at,
                duration_minutes=duration,
            )
            if project:
                engine.project_activity(activity.id)
    except (CalendarSyncError, ValueError) as e:
        raise _fail(e) from None
    console.print(f"[bold green]✓[/] Habit [bold]{title}[/bold] created ({activity.id})")


@app.command("add-goal")
def add_goal(
    title: Annotated[str, typer.Argument(help="Goal title")],
    deadline: Annotated[
        str | None, typer.Option("--deadline", help="Deadline (ISO date/time)")
    ] = None,
    progress: Annotated[float, typer.Option("--progress", help="Progress 0-100")] = 0,
    project: Annotated[
        bool, typer.Option("--project/--no-project", help="Project onto the calendar now")
    ] = True,
) -> None:
    """Create a goal, optionally with a deadline."""
    cfg = _build_config()
    _preflight(cfg, require_profile=project)
    deadline_at = _parse_instant(deadline, "--deadline") if deadline else None
    try:
        with CalendarSyncEngine(cfg) as engine:
            activity, _ = create_goal(
                engine.activities,
                engine.schedules,
                cfg.owner_id,
                title,
                deadline_at,
                progress=progress,
            )
            if project:
                engine.project_activity(activity.id)
    except CalendarSyncError as e:
        raise _fail(e) from None
    console.print(f"[bold green]✓[/] Goal [bold]{title}[/bold] created ({activity.id})")


@app.command()
def checkin(
    activity_id: Annotated[str, typer.Argument(help="Habit activity id")],
    day: Annotated[
        str | None, typer.Option("--date", help="Local date (default: today)")
    ] = None,
    status_: Annotated[
        str, typer.Option("--status", help="done, missed, skipped or partial")
    ] = "done",
    value: Annotated[float | None, typer.Option("--value", help="Recorded amount")] = None,
) -> None:
    """Record a habit check-in for one day."""
    cfg = _build_config()
    _preflight(cfg, require_profile=False)
    try:
        local_date = date.fromisoformat(day) if day else date.today()
    except ValueError:
        raise typer.BadParameter(f"Invalid date: {day!r}", param_hint="--date") from None
    try:
        with CalendarSyncEngine(cfg) as engine:
            recorded = record_checkin(
                engine.checkins,
                engine.activities,
                cfg.owner_id,
                activity_id,
                local_date,
                status=CheckinStatus(status_),
                value=value,
            )
    except (CalendarSyncError, ValueError) as e:
        raise _fail(e) from None
    console.print(
        f"[bold green]✓[/] {recorded.local_date}: [bold]{recorded.status.value}[/bold]"
    )


@app.command()
def project(
    activity_id: Annotated[
        str | None, typer.Argument(help="Activity id (default: every active activity)")
    ] = None,
    dry_run: _DRY_RUN = False,
) -> None:
    """Create or refresh calendar projections for activities."""
    cfg = _build_config(dry_run=dry_run)
    _preflight(cfg)
    try:
        with CalendarSyncEngine(cfg) as engine:
            if activity_id:
                engine.project_activity(activity_id)
            else:
                engine.project_all()
            stats = engine.stats
    except CalendarSyncError as e:
        raise _fail(e) from None

    _print_stats(stats)
    if stats.errors:
        raise typer.Exit(1)


@app.command()
def archive(activity_id: Annotated[str, typer.Argument(help="Activity id")]) -> None:
    """Archive an activity and hide its projections."""
    cfg = _build_config()
    _preflight(cfg, require_profile=False)
    try:
        with CalendarSyncEngine(cfg) as engine:
            archive_activity(engine.activities, engine.projector, cfg.owner_id, activity_id)
            stats = engine.stats
    except CalendarSyncError as e:
        raise _fail(e) from None
    console.print(
        f"[bold green]✓[/] Archived {activity_id} ({stats.hidden} projection(s) hidden)"
    )


@app.command()
def restore(activity_id: Annotated[str, typer.Argument(help="Activity id")]) -> None:
    """Reactivate an archived activity and restore its projection."""
    cfg = _build_config()
    _preflight(cfg, require_profile=False)
    try:
        with CalendarSyncEngine(cfg) as engine:
            restore_activity(engine.activities, engine.projector, cfg.owner_id, activity_id)
            stats = engine.stats
    except CalendarSyncError as e:
        raise _fail(e) from None
    console.print(
        f"[bold green]✓[/] Restored {activity_id} ({stats.restored} projection(s) restored)"
    )


@app.command()
def remove(projection_id: Annotated[str, typer.Argument(help="Projection id")]) -> None:
    """Remove one projection from the calendar."""
    cfg = _build_config()
    _preflight(cfg, require_profile=False)
    try:
        with CalendarSyncEngine(cfg) as engine:
            engine.projector.remove(cfg.owner_id, projection_id)
    except CalendarSyncError as e:
        raise _fail(e) from None
    console.print(f"[bold green]✓[/] Removed projection {projection_id}")


@app.command()
def extras(
    from_date: Annotated[
        str | None, typer.Option("--from", help="Range start date (default: today)")
    ] = None,
    days: Annotated[
        int | None, typer.Option("--days", help="Range length (default: horizon_days)")
    ] = None,
) -> None:
    """Show habit instances and goal deadlines for a date range."""
    cfg = _build_config()
    if from_date:
        range_start = _parse_instant(from_date, "--from")
    else:
        range_start = datetime.combine(date.today(), time(0), tzinfo=timezone.utc)
    range_end = range_start + timedelta(days=days or cfg.horizon_days)
    try:
        with CalendarSyncEngine(cfg) as engine:
            result = engine.extras(range_start, range_end)
    except CalendarSyncError as e:
        raise _fail(e) from None

    habits = Table(title="[bold]Habit instances[/bold]", show_header=True, header_style="bold")
    habits.add_column("Date", width=12)
    habits.add_column("Habit", overflow="fold", min_width=24)
    habits.add_column("Status")
    status_styles = {"done": "green", "missed": "red", "skipped": "dim", "partial": "yellow"}
    for event in derived_events(result):
        habits.add_row(
            event.local_date.isoformat(),
            event.title,
            Text(event.status.value, style=status_styles.get(event.status.value, "cyan")),
        )
    console.print(habits)

    goals = Table(title="[bold]Goal deadlines[/bold]", show_header=True, header_style="bold")
    goals.add_column("Deadline", width=12)
    goals.add_column("Goal", overflow="fold", min_width=24)
    goals.add_column("Progress", justify="right")
    for goal in result.goal_deadlines:
        goals.add_row(goal.deadline_at.date().isoformat(), goal.title, f"{goal.progress:.0f}%")
    console.print(goals)


# ---------------------------------------------------------------------------
# Subcommands: roadmap selection
# ---------------------------------------------------------------------------


@app.command("import-roadmap")
def import_roadmap_cmd(
    path: Annotated[Path, typer.Argument(help="JSON file with a 'projects' list")],
) -> None:
    """Load a project/track/subtrack/item hierarchy from JSON."""
    cfg = _build_config()
    _preflight(cfg, require_profile=False)
    try:
        document = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise _fail(e) from None
    try:
        with CalendarSyncEngine(cfg) as engine:
            count = import_roadmap(engine.roadmap, cfg.owner_id, document)
    except (CalendarSyncError, KeyError, ValueError) as e:
        raise _fail(e) from None
    console.print(f"[bold green]✓[/] Imported {count} roadmap item(s)")


_MARKERS = {ALL: "[green]\\[x][/]", PARTIAL: "[yellow]\\[-][/]"}


def _label(tree: SelectionTree, path: NodePath, name: str) -> str:
    marker = _MARKERS.get(tree.state(path), "[dim]\\[ ][/]")
    return f"{marker} {name} [dim]{path.key}[/dim]"


def _render_tree(tree: SelectionTree) -> Tree:
    root = Tree("[bold]Roadmap[/bold]")
    for project_ in tree.hierarchy:
        p_path = NodePath(project_.id)
        p_node = root.add(_label(tree, p_path, project_.name))
        for track in project_.tracks:
            t_path = NodePath(project_.id, track.id)
            t_node = p_node.add(_label(tree, t_path, track.name))
            for subtrack in track.subtracks:
                s_path = NodePath(project_.id, track.id, subtrack.id)
                s_node = t_node.add(_label(tree, s_path, subtrack.name))
                for item in subtrack.items:
                    i_path = NodePath(project_.id, track.id, subtrack.id, item.id)
                    s_node.add(_label(tree, i_path, item.title))
            for item in track.items:
                i_path = NodePath(project_.id, track.id, None, item.id)
                t_node.add(_label(tree, i_path, item.title))
    return root


@app.command("tree")
def show_tree() -> None:
    """Show the roadmap hierarchy with the current sync selection."""
    cfg = _build_config()
    try:
        with CalendarSyncEngine(cfg) as engine:
            tree = engine.load_tree()
    except CalendarSyncError as e:
        raise _fail(e) from None
    console.print(_render_tree(tree))


def _print_commit(result: CommitResult) -> None:
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Entries synced", str(len(result.synced)))
    results.add_row("Entries unsynced", str(len(result.unsynced)))
    results.add_row("Items projected", str(len(result.projected)))
    results.add_row("Items unprojected", str(len(result.unprojected)))
    results.add_row("Items skipped", str(len(result.skipped)))
    failure_val = Text(str(len(result.failures)))
    if result.ok:
        failure_val.append(" ✓", style="green")
    else:
        failure_val.stylize("bold red")
    results.add_row("Failures", failure_val)
    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))

    if result.failures:
        t = Table(title="[bold red]FAILED[/]", show_header=True, header_style="bold")
        t.add_column("Entry", overflow="fold")
        t.add_column("Item", overflow="fold")
        t.add_column("Error", overflow="fold")
        for failure in result.failures:
            t.add_row(failure.entry_key, failure.item_id or "—", failure.error)
        console.print(t)


@app.command()
def select(
    keys: Annotated[
        list[str], typer.Argument(help="Node keys to toggle (project:track:subtrack:item)")
    ],
    dry_run: _DRY_RUN = False,
    yes: _YES = False,
) -> None:
    """Toggle roadmap nodes in or out of calendar sync, then commit."""
    cfg = _build_config(dry_run=dry_run, yes=yes)
    _preflight(cfg)
    try:
        with CalendarSyncEngine(cfg) as engine:
            tree = engine.load_tree()
            for key in keys:
                try:
                    tree.toggle(NodePath.from_key(key))
                except (KeyError, ValueError) as e:
                    console.print(f"[bold red]Error:[/] {e}")
                    raise typer.Exit(1) from None

            diff = engine.diff_selection(tree)
            if diff.empty:
                console.print("[green]Nothing to change.[/]")
                return

            summary = Text()
            for entry in diff.to_sync:
                summary.append("  + ", style="bold green")
                summary.append(f"{entry.level.value:<9}{entry_key(entry)}\n")
            for entry in diff.to_unsync:
                summary.append("  - ", style="bold red")
                summary.append(f"{entry.level.value:<9}{entry_key(entry)}\n")
            if cfg.dry_run:
                summary.append("  Mode:      ")
                summary.append("DRY RUN", style="bold magenta")
            console.print(Panel(summary, title="[bold]Selection changes[/bold]"))

            if not cfg.yes and not cfg.dry_run:
                typer.confirm("Proceed?", abort=True)

            result = engine.commit_selection(tree)
    except CalendarSyncError as e:
        raise _fail(e) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None

    if cfg.dry_run:
        return
    _print_commit(result)
    if not result.ok:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Subcommands: status & verify
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show configuration and state database summary."""
    config_exists = state.config_path.exists()
    db_exists = state.state_db.exists()

    cfg_info = Text()
    cfg_info.append("  Config:   ", style="bold")
    cfg_info.append(str(state.config_path) + " ")
    cfg_info.append(
        "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
    )
    cfg_info.append("\n  State DB: ", style="bold")
    cfg_info.append(str(state.state_db) + " ")
    cfg_info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")

    config_file = _load_config_file(state.config_path)
    owner_id = state.owner or config_file.get("owner_id")
    if owner_id:
        cfg_info.append("\n  Owner:    ", style="bold")
        cfg_info.append(owner_id)

    console.print(Panel(cfg_info, title="[bold]Activity Calendar Sync — Status[/bold]"))

    rows = query_status(state.state_db)
    if not rows:
        if not db_exists:
            console.print(
                "[yellow]No state database yet — run[/] "
                "[cyan]activity-calendar-sync init[/] "
                "[yellow]to create it.[/]"
            )
        else:
            console.print("[yellow]State database is empty — nothing projected yet.[/]")
        return

    owners = {}
    for row in rows:
        owners.setdefault(row["owner_id"], []).append(row)

    for row_owner, owner_rows in owners.items():
        title = f"[bold]{row_owner}[/bold]"
        if row_owner == owner_id:
            title += "  [green](configured)[/green]"

        table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
        table.add_column("Source")
        table.add_column("State")
        table.add_column("Projections", justify="right")
        table.add_column("Last update")
        for row in owner_rows:
            updated = row["last_updated_at"] or ""
            table.add_row(
                row["source_type"], row["projection_state"], str(row["count"]), updated[:19]
            )

        console.print(Panel(table, title=title, expand=False))


@app.command()
def verify(
    fix: Annotated[
        bool, typer.Option("--fix", help="Create projections missing for synced items")
    ] = False,
) -> None:
    """Audit sync entries against projections."""
    cfg = _build_config()
    _preflight(cfg, require_profile=fix)
    try:
        with CalendarSyncEngine(cfg) as engine:
            ok = run_verify(engine, console, fix=fix)
    except CalendarSyncError as e:
        raise _fail(e) from None
    if not ok:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
