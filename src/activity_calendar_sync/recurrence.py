"""
Recurrence-rule expansion for the FREQ/INTERVAL/COUNT/UNTIL subset of RFC 5545.

Everything here is pure: the evaluation window is always passed in, the wall
clock is never consulted.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta
from datetime import timezone

from dateutil.relativedelta import relativedelta

_logger = logging.getLogger(__name__)

DAILY = "DAILY"
WEEKLY = "WEEKLY"
MONTHLY = "MONTHLY"
_SUPPORTED_FREQS = (DAILY, WEEKLY, MONTHLY)

# UNTIL as a date (UNTIL=20240301) or UTC datetime (UNTIL=20240301T100000Z).
_UNTIL_RE = re.compile(r"^(\d{8})(?:T(\d{6})Z?)?$")


@dataclass(frozen=True)
class RecurrenceRule:
    freq: str = DAILY
    interval: int = 1
    count: int | None = None
    until: datetime | None = None


def _parse_until(value: str) -> datetime | None:
    m = _UNTIL_RE.match(value.strip())
    if not m:
        return None
    day, clock = m.group(1), m.group(2) or "235959"
    return datetime.strptime(day + clock, "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)


def _positive_int(value: str) -> int | None:
    try:
        n = int(value)
    except ValueError:
        return None
    return n if n > 0 else None


def parse_rule(rule: str | None) -> RecurrenceRule:
    """Parse a rule string such as ``FREQ=WEEKLY;INTERVAL=2;COUNT=10``.

    Unknown or missing FREQ falls back to DAILY. Malformed INTERVAL falls back
    to 1; malformed COUNT and UNTIL are ignored.
    """
    if not rule:
        return RecurrenceRule()

    text = rule.strip()
    if text.upper().startswith("RRULE:"):
        text = text[len("RRULE:") :]

    parts: dict[str, str] = {}
    for chunk in text.split(";"):
        if "=" not in chunk:
            continue
        name, _, value = chunk.partition("=")
        parts[name.strip().upper()] = value.strip()

    freq = parts.get("FREQ", "").upper()
    if freq not in _SUPPORTED_FREQS:
        _logger.debug("Unsupported or missing FREQ %r in rule %r, using DAILY", freq, rule)
        freq = DAILY

    interval = _positive_int(parts.get("INTERVAL", "1")) or 1
    count = _positive_int(parts["COUNT"]) if "COUNT" in parts else None
    until = _parse_until(parts["UNTIL"]) if "UNTIL" in parts else None

    return RecurrenceRule(freq=freq, interval=interval, count=count, until=until)


def _occurrence(start: datetime, rule: RecurrenceRule, n: int) -> datetime:
    """Return the n-th occurrence (0-based), always computed from ``start``."""
    if rule.freq == MONTHLY:
        return start + relativedelta(months=n * rule.interval)
    if rule.freq == WEEKLY:
        return start + timedelta(weeks=n * rule.interval)
    return start + timedelta(days=n * rule.interval)


def _first_index(start: datetime, rule: RecurrenceRule, range_start: datetime) -> int:
    """Index of the last occurrence at or before range_start (0 if range starts earlier)."""
    if range_start <= start:
        return 0
    if rule.freq == MONTHLY:
        months = (range_start.year - start.year) * 12 + (range_start.month - start.month)
        # Step back one period so month-end clamping never skips an occurrence.
        return max(0, months // rule.interval - 1)
    step = timedelta(days=7 * rule.interval if rule.freq == WEEKLY else rule.interval)
    return max(0, (range_start - start) // step)


def expand(
    rule: str | RecurrenceRule | None,
    start: datetime,
    range_start: datetime,
    range_end: datetime,
    until: datetime | None = None,
) -> list[datetime]:
    """Return the occurrences of ``rule`` anchored at ``start`` within [range_start, range_end].

    The walk stops at whichever comes first: ``until`` (or the rule's own UNTIL,
    the earlier of the two), COUNT generated occurrences, or ``range_end``.
    """
    parsed = rule if isinstance(rule, RecurrenceRule) else parse_rule(rule)

    limit = until
    if parsed.until is not None and (limit is None or parsed.until < limit):
        limit = parsed.until

    occurrences: list[datetime] = []
    n = _first_index(start, parsed, range_start)
    while True:
        if parsed.count is not None and n >= parsed.count:
            break
        occ = _occurrence(start, parsed, n)
        if limit is not None and occ > limit:
            break
        if occ > range_end:
            break
        if occ >= range_start:
            occurrences.append(occ)
        n += 1
    return occurrences
