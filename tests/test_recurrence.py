"""
Unit tests for recurrence-rule parsing and expansion.
"""

from datetime import datetime
from datetime import timezone

from activity_calendar_sync.recurrence import DAILY
from activity_calendar_sync.recurrence import MONTHLY
from activity_calendar_sync.recurrence import WEEKLY
from activity_calendar_sync.recurrence import RecurrenceRule
from activity_calendar_sync.recurrence import expand
from activity_calendar_sync.recurrence import parse_rule
from tests.conftest import utc


class TestParseRule:
    def test_full_rule(self):
        rule = parse_rule("FREQ=WEEKLY;INTERVAL=2;COUNT=10")
        assert rule == RecurrenceRule(freq=WEEKLY, interval=2, count=10)

    def test_rrule_prefix_is_tolerated(self):
        assert parse_rule("RRULE:FREQ=MONTHLY").freq == MONTHLY

    def test_unknown_freq_falls_back_to_daily(self):
        assert parse_rule("FREQ=YEARLY;INTERVAL=3") == RecurrenceRule(freq=DAILY, interval=3)

    def test_missing_rule_is_daily(self):
        assert parse_rule(None) == RecurrenceRule()
        assert parse_rule("") == RecurrenceRule()

    def test_bad_interval_falls_back_to_one(self):
        assert parse_rule("FREQ=DAILY;INTERVAL=0").interval == 1
        assert parse_rule("FREQ=DAILY;INTERVAL=abc").interval == 1

    def test_bad_count_is_ignored(self):
        assert parse_rule("FREQ=DAILY;COUNT=-2").count is None

    def test_until_date_means_end_of_day(self):
        rule = parse_rule("FREQ=DAILY;UNTIL=20240305")
        assert rule.until == datetime(2024, 3, 5, 23, 59, 59, tzinfo=timezone.utc)

    def test_until_datetime(self):
        rule = parse_rule("FREQ=DAILY;UNTIL=20240305T100000Z")
        assert rule.until == utc(2024, 3, 5, 10)


class TestExpand:
    def test_count_and_interval_bound_the_series(self):
        """INTERVAL=2;COUNT=3 over the whole year yields exactly three dates."""
        rule = "FREQ=DAILY;INTERVAL=2;COUNT=3"
        occ = expand(rule, utc(2024, 1, 1), utc(2024, 1, 1), utc(2024, 12, 31))
        assert occ == [utc(2024, 1, 1), utc(2024, 1, 3), utc(2024, 1, 5)]

    def test_count_is_counted_from_start_not_range(self):
        """Occurrences before the range still consume COUNT."""
        occ = expand("FREQ=DAILY;COUNT=5", utc(2024, 1, 1), utc(2024, 1, 4), utc(2024, 1, 31))
        assert occ == [utc(2024, 1, 4), utc(2024, 1, 5)]

    def test_weekly_fast_forward_keeps_phase(self):
        start = utc(2024, 1, 1, 8)  # Monday
        occ = expand("FREQ=WEEKLY", start, utc(2024, 3, 1), utc(2024, 3, 20))
        assert occ == [utc(2024, 3, 4, 8), utc(2024, 3, 11, 8), utc(2024, 3, 18, 8)]

    def test_monthly_clamps_without_drift(self):
        """Jan 31 monthly → Feb 29, Mar 31, Apr 30: each step is taken from the anchor."""
        occ = expand("FREQ=MONTHLY", utc(2024, 1, 31), utc(2024, 1, 1), utc(2024, 4, 30))
        assert occ == [utc(2024, 1, 31), utc(2024, 2, 29), utc(2024, 3, 31), utc(2024, 4, 30)]

    def test_monthly_fast_forward_finds_first_in_range(self):
        occ = expand("FREQ=MONTHLY;INTERVAL=2", utc(2023, 1, 15), utc(2024, 1, 1), utc(2024, 6, 1))
        assert occ == [utc(2024, 1, 15), utc(2024, 3, 15), utc(2024, 5, 15)]

    def test_implicit_until_stops_the_walk(self):
        occ = expand(
            "FREQ=DAILY", utc(2024, 1, 1), utc(2024, 1, 1), utc(2024, 1, 31), until=utc(2024, 1, 3)
        )
        assert occ == [utc(2024, 1, 1), utc(2024, 1, 2), utc(2024, 1, 3)]

    def test_earlier_of_rule_until_and_implicit_until_wins(self):
        rule = "FREQ=DAILY;UNTIL=20240102T000000Z"
        occ = expand(
            rule, utc(2024, 1, 1), utc(2024, 1, 1), utc(2024, 1, 31), until=utc(2024, 1, 10)
        )
        assert occ == [utc(2024, 1, 1), utc(2024, 1, 2)]

    def test_range_before_start_is_empty(self):
        assert expand("FREQ=DAILY", utc(2024, 5, 1), utc(2024, 1, 1), utc(2024, 4, 30)) == []

    def test_range_bounds_are_inclusive(self):
        occ = expand("FREQ=DAILY", utc(2024, 1, 1), utc(2024, 1, 2), utc(2024, 1, 3))
        assert occ == [utc(2024, 1, 2), utc(2024, 1, 3)]

    def test_expansion_is_deterministic(self):
        args = ("FREQ=WEEKLY;INTERVAL=3", utc(2024, 1, 1), utc(2024, 1, 1), utc(2024, 12, 31))
        assert expand(*args) == expand(*args)
