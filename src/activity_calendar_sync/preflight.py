"""
Preflight checks run before write commands to catch common misconfigurations early.
"""

import logging
import sqlite3

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from activity_calendar_sync.models import SyncConfig

logger = logging.getLogger(__name__)


def run_preflight_checks(cfg: SyncConfig, console: Console, require_profile: bool = True) -> bool:
    """Return True if the command may proceed; print issues and return False otherwise."""
    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1. Owner configured
    if not cfg.owner_id:
        logger.error("No owner configured")
        issues.append(
            (
                "Owner",
                "no owner id given",
                "Pass --owner or set owner_id in the config file",
            )
        )
        _print_issues(issues, console)
        return False

    # 2. State DB parent dir writable + DB readable/writable if it exists
    db_path = cfg.state_db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create state DB directory %s: %s", db_path.parent, e)
        issues.append(
            (
                "State database",
                f"{db_path}: {e}",
                f"Check permissions on {db_path.parent}",
            )
        )
    else:
        if db_path.exists():
            conn = None
            try:
                conn = sqlite3.connect(db_path)
                conn.execute("SELECT 1")
                # BEGIN IMMEDIATE takes the write lock and needs a journal file.
                conn.execute("BEGIN IMMEDIATE")
                conn.execute("ROLLBACK")
                if require_profile and not _has_profile(conn, cfg.owner_id):
                    issues.append(
                        (
                            "Owner profile",
                            f"no calendar registered for {cfg.owner_id}",
                            "Run: activity-calendar-sync init --calendar <id>",
                        )
                    )
            except sqlite3.Error as e:
                logger.error("State DB not readable/writable (%s): %s", db_path, e)
                issues.append(
                    (
                        "State database",
                        f"{db_path}: {e}",
                        f"Check permissions on {db_path.parent} "
                        f"(journal files must be creatable alongside the DB)",
                    )
                )
            finally:
                if conn is not None:
                    conn.close()
        elif require_profile:
            issues.append(
                (
                    "Owner profile",
                    f"state database {db_path} does not exist yet",
                    "Run: activity-calendar-sync init --calendar <id>",
                )
            )

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _has_profile(conn: sqlite3.Connection, owner_id: str) -> bool:
    tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    if "owners" not in tables:
        return False
    row = conn.execute("SELECT 1 FROM owners WHERE owner_id = ?", (owner_id,)).fetchone()
    return row is not None


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
