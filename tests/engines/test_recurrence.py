"""
Tests for the recurrence expansion engine.

Covers:
- Weekly and biweekly expansion from a Sunday anchor
- after_weeks and on_date end conditions
- Multiple days of week, mid-week anchors
- Disabled / missing rules, the max_dates cap
"""

from datetime import date

import pytest

from roster_engines.recurrence import expand_recurring_dates, start_of_week
from roster_kernel.domain.requests import RecurrenceEnd, RecurrencePattern, RecurrenceRule
from roster_kernel.exceptions import ValidationError


def _rule(
    days=(0,),
    pattern=RecurrencePattern.WEEKLY,
    weeks: int | None = None,
    end_date: date | None = None,
    enabled: bool = True,
) -> RecurrenceRule:
    return RecurrenceRule(
        pattern=pattern,
        days_of_week=frozenset(days),
        end_type=RecurrenceEnd.ON_DATE if end_date else RecurrenceEnd.AFTER_WEEKS,
        end_after_weeks=weeks,
        end_date=end_date,
        enabled=enabled,
    )


class TestStartOfWeek:
    def test_sunday_is_its_own_week_start(self):
        assert start_of_week(date(2026, 1, 4)) == date(2026, 1, 4)

    def test_saturday_maps_back_six_days(self):
        assert start_of_week(date(2026, 1, 10)) == date(2026, 1, 4)

    def test_monday_maps_back_one_day(self):
        assert start_of_week(date(2026, 1, 5)) == date(2026, 1, 4)


class TestWeeklyExpansion:
    def test_weekly_sunday_three_weeks(self):
        result = expand_recurring_dates([date(2026, 1, 4)], _rule(weeks=3))
        assert result == [date(2026, 1, 4), date(2026, 1, 11), date(2026, 1, 18)]

    def test_biweekly_sunday_three_occurrences(self):
        result = expand_recurring_dates(
            [date(2026, 1, 4)], _rule(pattern=RecurrencePattern.BIWEEKLY, weeks=3)
        )
        assert result == [date(2026, 1, 4), date(2026, 1, 18), date(2026, 2, 1)]

    def test_two_days_two_weeks(self):
        result = expand_recurring_dates([date(2026, 1, 5)], _rule(days=(1, 5), weeks=2))
        assert result == [
            date(2026, 1, 5),
            date(2026, 1, 9),
            date(2026, 1, 12),
            date(2026, 1, 16),
        ]

    def test_missing_week_count_means_one_week(self):
        result = expand_recurring_dates([date(2026, 1, 5)], _rule(days=(1, 3)))
        assert result == [date(2026, 1, 5), date(2026, 1, 7)]

    def test_anchor_week_days_before_anchor_are_emitted(self):
        # Anchor Wednesday; Monday of the same week is still part of week one.
        result = expand_recurring_dates([date(2026, 1, 7)], _rule(days=(1, 3), weeks=1))
        assert result == [date(2026, 1, 5), date(2026, 1, 7)]

    def test_multiple_anchor_dates_use_the_earliest_week(self):
        result = expand_recurring_dates(
            [date(2026, 1, 14), date(2026, 1, 5)], _rule(days=(1,), weeks=2)
        )
        assert result == [date(2026, 1, 5), date(2026, 1, 12)]


class TestOnDateEnd:
    def test_stops_at_end_date(self):
        result = expand_recurring_dates(
            [date(2026, 1, 5)], _rule(days=(1,), end_date=date(2026, 1, 20))
        )
        assert result == [date(2026, 1, 5), date(2026, 1, 12), date(2026, 1, 19)]

    def test_end_date_is_inclusive(self):
        result = expand_recurring_dates(
            [date(2026, 1, 5)], _rule(days=(1,), end_date=date(2026, 1, 19))
        )
        assert result[-1] == date(2026, 1, 19)

    def test_days_after_end_date_in_last_week_are_dropped(self):
        result = expand_recurring_dates(
            [date(2026, 1, 5)], _rule(days=(1, 5), end_date=date(2026, 1, 13))
        )
        assert result == [date(2026, 1, 5), date(2026, 1, 9), date(2026, 1, 12)]

    def test_biweekly_on_date(self):
        result = expand_recurring_dates(
            [date(2026, 1, 4)],
            _rule(pattern=RecurrencePattern.BIWEEKLY, end_date=date(2026, 2, 28)),
        )
        assert result == [
            date(2026, 1, 4),
            date(2026, 1, 18),
            date(2026, 2, 1),
            date(2026, 2, 15),
        ]


class TestNoRule:
    def test_none_rule_returns_dates_unchanged(self):
        dates = [date(2026, 1, 9), date(2026, 1, 5)]
        assert expand_recurring_dates(dates, None) == dates

    def test_disabled_rule_returns_dates_unchanged(self):
        dates = [date(2026, 1, 5)]
        assert expand_recurring_dates(dates, _rule(days=(), enabled=False)) == dates

    def test_empty_dates_with_rule(self):
        assert expand_recurring_dates([], _rule(weeks=3)) == []


class TestCap:
    def test_max_dates_caps_output(self):
        result = expand_recurring_dates(
            [date(2026, 1, 4)], _rule(days=range(7), weeks=10), max_dates=10
        )
        assert len(result) == 10
        assert result == sorted(result)
        assert result[0] == date(2026, 1, 4)

    def test_deterministic(self):
        rule = _rule(days=(0, 2, 4), weeks=4)
        first = expand_recurring_dates([date(2026, 1, 4)], rule)
        second = expand_recurring_dates([date(2026, 1, 4)], rule)
        assert first == second


class TestRuleValidation:
    def test_empty_days_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            _rule(days=())
        assert exc_info.value.field == "recurrence.days_of_week"

    def test_out_of_range_day_rejected(self):
        with pytest.raises(ValidationError):
            _rule(days=(7,))

    def test_on_date_requires_end_date(self):
        with pytest.raises(ValidationError):
            RecurrenceRule(
                pattern=RecurrencePattern.WEEKLY,
                days_of_week=frozenset({1}),
                end_type=RecurrenceEnd.ON_DATE,
            )

    def test_string_enums_are_coerced(self):
        rule = RecurrenceRule(pattern="biweekly", days_of_week={1}, end_after_weeks=2)
        assert rule.pattern is RecurrencePattern.BIWEEKLY
        assert rule.interval_weeks == 2
