"""
Tests for recurrence rules and their clamped expansion.
"""

import pytest
from datetime import date, datetime

from taskcal.recurrence import (
    ClampPolicy,
    Ends,
    RecurrenceRule,
    RuleError,
    expand,
    occurs_on,
)

NOW = date(2024, 1, 10)


def weekly(**kwargs):
    return RecurrenceRule(every=1, unit="week", starts=date(2024, 1, 1), **kwargs)


@pytest.mark.unit
class TestRuleValidation:
    def test_string_start_is_parsed(self):
        rule = RecurrenceRule(every=1, unit="day", starts="2024-01-01")
        assert rule.starts == date(2024, 1, 1)

    @pytest.mark.parametrize("every", [0, -3])
    def test_every_must_be_positive(self, every):
        with pytest.raises(RuleError):
            RecurrenceRule(every=every, unit="day", starts=date(2024, 1, 1))

    def test_unknown_unit(self):
        with pytest.raises(RuleError):
            RecurrenceRule(every=1, unit="hour", starts=date(2024, 1, 1))

    def test_bad_time(self):
        with pytest.raises(RuleError):
            RecurrenceRule(every=1, unit="day", starts=date(2024, 1, 1), time="25:00")

    def test_end_before_start(self):
        with pytest.raises(RuleError):
            weekly(ends=Ends.on(date(2023, 12, 31)))

    def test_count_must_be_positive(self):
        with pytest.raises(RuleError):
            weekly(ends=Ends.after(0))

    def test_rule_error_is_a_value_error(self):
        assert issubclass(RuleError, ValueError)


@pytest.mark.unit
class TestFromDict:
    def test_strict_round_trip(self):
        rule = weekly(time="09:30", ends=Ends.on(date(2024, 3, 1)))
        assert RecurrenceRule.from_dict(rule.to_dict()) == rule

    def test_strict_rejects_zero_every(self):
        with pytest.raises(RuleError):
            RecurrenceRule.from_dict({"every": 0, "unit": "day", "starts": "2024-01-01"})

    def test_lenient_clamps(self):
        rule = RecurrenceRule.from_dict(
            {
                "every": 0,
                "unit": "fortnight",
                "starts": "2024-01-10",
                "time": "nope",
                "ends": {"type": "on", "date": "2024-01-01"},
            },
            strict=False,
        )
        assert rule.every == 1
        assert rule.unit == "day"
        assert rule.time is None
        assert rule.ends == Ends.on(date(2024, 1, 10))

    def test_lenient_clamps_count(self):
        rule = RecurrenceRule.from_dict(
            {"every": 2, "unit": "week", "starts": "2024-01-01", "ends": {"type": "after", "count": -4}},
            strict=False,
        )
        assert rule.ends == Ends.after(1)

    def test_missing_start_is_an_error_even_when_lenient(self):
        with pytest.raises(RuleError):
            RecurrenceRule.from_dict({"every": 1, "unit": "day"}, strict=False)


@pytest.mark.unit
class TestDescribe:
    def test_plain(self):
        assert RecurrenceRule(every=1, unit="day", starts=date(2024, 1, 1)).describe() == (
            "Every day (never ends)"
        )

    def test_until(self):
        rule = RecurrenceRule(
            every=2, unit="week", starts=date(2024, 1, 1), ends=Ends.on(date(2024, 3, 1))
        )
        assert rule.describe() == "Every 2 weeks (until 2024-03-01)"

    def test_after(self):
        rule = RecurrenceRule(every=1, unit="month", starts=date(2024, 1, 1), ends=Ends.after(3))
        assert rule.describe() == "Every month (after 3x)"


@pytest.mark.unit
class TestExpand:
    def test_weekly_after_three(self, weekly_rule):
        dates = expand(weekly_rule, date(2024, 1, 1), date(2024, 1, 31), NOW)
        assert dates == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)]

    def test_after_count_respects_every(self):
        rule = RecurrenceRule(every=2, unit="week", starts=date(2024, 1, 1), ends=Ends.after(3))
        dates = expand(rule, None, None, NOW)
        assert dates == [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29)]

    def test_until_is_inclusive(self):
        rule = weekly(ends=Ends.on(date(2024, 1, 15)))
        assert expand(rule, None, date(2024, 6, 1), NOW)[-1] == date(2024, 1, 15)

    def test_monthly_rollover(self):
        rule = RecurrenceRule(every=1, unit="month", starts=date(2024, 1, 31))
        dates = expand(rule, date(2024, 1, 1), date(2024, 4, 30), NOW)
        assert dates == [date(2024, 1, 31), date(2024, 3, 2), date(2024, 4, 2)]

    def test_window_start_is_met_exactly(self):
        dates = expand(weekly(), date(2024, 1, 8), date(2024, 1, 14), NOW)
        assert dates == [date(2024, 1, 8)]

    def test_window_between_occurrences(self):
        assert expand(weekly(), date(2024, 1, 9), date(2024, 1, 14), NOW) == []

    def test_window_before_start(self):
        assert expand(weekly(), date(2023, 12, 1), date(2023, 12, 31), NOW) == []

    def test_sorted_and_unique(self):
        rule = RecurrenceRule(every=3, unit="day", starts=date(2024, 1, 1))
        dates = expand(rule, date(2024, 1, 1), date(2024, 3, 1), NOW)
        assert dates == sorted(set(dates))

    def test_idempotent(self):
        rule = RecurrenceRule(every=1, unit="month", starts=date(2024, 1, 31))
        first = expand(rule, date(2024, 1, 1), date(2024, 12, 31), NOW)
        second = expand(rule, date(2024, 1, 1), date(2024, 12, 31), NOW)
        assert first == second

    def test_wider_window_is_a_superset(self):
        rule = RecurrenceRule(every=5, unit="day", starts=date(2024, 1, 1))
        narrow = expand(rule, date(2024, 2, 1), date(2024, 2, 29), NOW)
        wide = expand(rule, date(2024, 1, 15), date(2024, 3, 31), NOW)
        assert set(narrow) <= set(wide)

    def test_never_ending_rule_stops_at_lookahead(self):
        rule = RecurrenceRule(every=1, unit="day", starts=date(2024, 1, 1))
        dates = expand(rule, None, None, NOW, created_at=datetime(2024, 1, 1, 9, 0))
        assert dates[0] == date(2024, 1, 1)
        assert dates[-1] == date(2026, 1, 1)

    def test_lookback_hides_old_occurrences(self):
        rule = RecurrenceRule(every=1, unit="week", starts=date(2020, 1, 6))
        dates = expand(rule, None, date(2024, 1, 14), NOW, created_at=date(2023, 6, 1))
        assert dates[0] == date(2023, 1, 16)
        assert dates[-1] == date(2024, 1, 8)

    def test_custom_policy(self):
        rule = RecurrenceRule(every=1, unit="month", starts=date(2024, 1, 1))
        policy = ClampPolicy(lookback_years=0, lookahead_years=1)
        dates = expand(rule, None, None, NOW, policy=policy)
        assert dates[0] == date(2024, 2, 1)
        assert dates[-1] == date(2025, 1, 1)

    def test_lookahead_runs_from_creation(self):
        rule = RecurrenceRule(every=1, unit="year", starts=date(2024, 1, 1))
        dates = expand(rule, None, None, NOW, created_at=date(2025, 6, 1))
        assert dates == [date(2024, 1, 1), date(2025, 1, 1), date(2026, 1, 1), date(2027, 1, 1)]


@pytest.mark.unit
class TestOccursOn:
    def test_hits_and_misses(self, weekly_rule):
        assert occurs_on(weekly_rule, date(2024, 1, 8))
        assert not occurs_on(weekly_rule, date(2024, 1, 9))
        assert not occurs_on(weekly_rule, date(2024, 1, 22))
        assert not occurs_on(weekly_rule, date(2023, 12, 25))
