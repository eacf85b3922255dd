"""
Tests for timesheet classification and pay.

Covers:
- Pay rounding (always up to the cent)
- Grace-window snapping of clock-in and of an early clock-out
- no_show / dirty / clean classification
- Late clock-out advisory note
"""

from datetime import datetime, timedelta, timezone

import pytest

from roster_engines.timesheet import (
    TimesheetClass,
    calculate_pay_cents,
    compute_timesheet,
    effective_clock_in,
    effective_clock_out,
)

START = datetime(2026, 1, 10, 9, 0, tzinfo=timezone.utc)
END = START + timedelta(hours=8)


def _at(minutes: int) -> datetime:
    return START + timedelta(minutes=minutes)


class TestCalculatePay:
    @pytest.mark.parametrize(
        "minutes,rate,expected",
        [
            (480, 1000, 8000),
            (465, 1000, 7750),
            (600, 2000, 20000),
            (90, 1000, 1500),
            (1, 2000, 34),
            (0, 1000, 0),
            (60, 0, 0),
        ],
    )
    def test_rounds_up(self, minutes, rate, expected):
        assert calculate_pay_cents(minutes, rate) == expected


class TestEffectiveTimes:
    def test_early_clock_in_snaps_to_start(self):
        assert effective_clock_in(_at(-30), START, 5) == START

    def test_within_grace_snaps_to_start(self):
        assert effective_clock_in(_at(5), START, 5) == START

    def test_after_grace_uses_actual(self):
        assert effective_clock_in(_at(6), START, 5) == _at(6)

    def test_late_clock_out_kept(self):
        assert effective_clock_out(END + timedelta(minutes=40), END, 5) == END + timedelta(minutes=40)

    def test_clock_out_at_end_kept(self):
        assert effective_clock_out(END, END, 5) == END

    @pytest.mark.parametrize("minutes_early", [1, 3, 5])
    def test_early_clock_out_within_grace_snaps_to_end(self, minutes_early):
        assert effective_clock_out(END - timedelta(minutes=minutes_early), END, 5) == END

    def test_early_clock_out_beyond_grace_kept(self):
        assert effective_clock_out(END - timedelta(minutes=6), END, 5) == END - timedelta(minutes=6)

    def test_zero_end_grace_never_snaps(self):
        assert effective_clock_out(END - timedelta(minutes=1), END, 0) == END - timedelta(minutes=1)


class TestComputeTimesheet:
    def test_full_shift_no_break(self):
        result = compute_timesheet(START, END, 1000, _at(-10), END)
        assert result.classification is TimesheetClass.CLEAN
        assert result.billable_minutes == 480
        assert result.gross_pay_cents == 8000
        assert result.effective_clock_in == START

    def test_fifteen_minute_break(self):
        result = compute_timesheet(START, END, 1000, START, END, break_minutes=15)
        assert result.billable_minutes == 465
        assert result.gross_pay_cents == 7750

    def test_late_arrival_paid_from_actual(self):
        result = compute_timesheet(START, END, 1000, _at(30), END)
        assert result.effective_clock_in == _at(30)
        assert result.billable_minutes == 450

    def test_no_punches_is_no_show(self):
        result = compute_timesheet(START, END, 1000, None, None)
        assert result.classification is TimesheetClass.NO_SHOW
        assert result.gross_pay_cents == 0
        assert result.break_minutes == 0

    def test_missing_clock_out_is_dirty(self):
        result = compute_timesheet(START, END, 1000, START, None)
        assert result.is_dirty
        assert result.dirty_reason == "missing_clock_out"
        assert result.gross_pay_cents == 0

    def test_clock_out_without_clock_in_is_dirty(self):
        result = compute_timesheet(START, END, 1000, None, END)
        assert result.dirty_reason == "clock_out_without_clock_in"

    def test_break_equal_to_total_is_dirty(self):
        result = compute_timesheet(START, END, 1000, START, END, break_minutes=480)
        assert result.dirty_reason == "invalid_break"

    def test_break_just_under_total_is_clean(self):
        result = compute_timesheet(START, END, 1000, START, END, break_minutes=479)
        assert result.classification is TimesheetClass.CLEAN
        assert result.billable_minutes == 1
        assert result.gross_pay_cents == 17

    def test_clock_out_before_start_is_dirty(self):
        result = compute_timesheet(START, END, 1000, _at(-50), _at(-20))
        assert result.dirty_reason == "no_time_worked"

    def test_late_clock_out_adds_note(self):
        result = compute_timesheet(START, END, 1000, START, END + timedelta(minutes=16))
        assert result.classification is TimesheetClass.CLEAN
        assert result.notes == ("Clocked out 16 minutes after scheduled end",)
        assert result.effective_clock_out == END + timedelta(minutes=16)
        assert result.billable_minutes == 496

    def test_hour_of_overtime_is_paid(self):
        result = compute_timesheet(START, END, 1000, START, END + timedelta(minutes=60))
        assert result.billable_minutes == 540
        assert result.gross_pay_cents == 9000

    def test_leaving_three_minutes_early_is_paid_to_end(self):
        result = compute_timesheet(START, END, 1000, START, END - timedelta(minutes=3))
        assert result.effective_clock_out == END
        assert result.billable_minutes == 480

    def test_end_grace_is_configurable(self):
        result = compute_timesheet(
            START, END, 1000, START, END - timedelta(minutes=3), end_grace_minutes=0
        )
        assert result.billable_minutes == 477

    def test_fifteen_minute_overrun_has_no_note(self):
        result = compute_timesheet(START, END, 1000, START, END + timedelta(minutes=15))
        assert result.notes == ()

    def test_break_is_not_checked_against_labor_minimums(self):
        result = compute_timesheet(START, START + timedelta(hours=12), 1000, START, START + timedelta(hours=12))
        assert result.classification is TimesheetClass.CLEAN
        assert result.break_minutes == 0
