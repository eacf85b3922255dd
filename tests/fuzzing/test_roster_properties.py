"""
Property-based tests for the pure roster engines.

Verifies:
- Recurrence expansion is deterministic, sorted, unique and capped
- Expanded dates fall on the rule's weekdays and respect the end date
- Interval overlap is symmetric and half-open
- Pay never decreases with more minutes or a higher rate
- Clean timesheets bill from the effective start to the actual clock-out,
  except an early leave inside the grace window, which bills to the end
"""

from datetime import date, datetime, timedelta, timezone

from hypothesis import assume, given, settings
from hypothesis import strategies as st

from roster_engines.overlap import BatchOverlapTracker, intervals_overlap
from roster_engines.recurrence import expand_recurring_dates, start_of_week
from roster_engines.timesheet import (
    TimesheetClass,
    calculate_pay_cents,
    compute_timesheet,
    whole_minutes,
)
from roster_kernel.domain.requests import RecurrenceEnd, RecurrenceRule

BASE = datetime(2026, 1, 6, 9, 0, tzinfo=timezone.utc)

anchor_dates = st.lists(
    st.dates(min_value=date(2026, 1, 1), max_value=date(2026, 12, 31)),
    min_size=1,
    max_size=7,
)
weekdays = st.frozensets(st.integers(min_value=0, max_value=6), min_size=1)
minutes = st.integers(min_value=-600, max_value=24 * 60)


@st.composite
def recurrence_rules(draw):
    end_type = draw(st.sampled_from(list(RecurrenceEnd)))
    return RecurrenceRule(
        pattern=draw(st.sampled_from(["weekly", "biweekly"])),
        days_of_week=draw(weekdays),
        end_type=end_type,
        end_after_weeks=draw(st.integers(min_value=1, max_value=12)),
        end_date=draw(st.dates(min_value=date(2026, 1, 1), max_value=date(2027, 6, 30))),
    )


def _sunday_index(day: date) -> int:
    return (day.weekday() + 1) % 7


class TestRecurrenceProperties:
    @settings(max_examples=200, deadline=None)
    @given(dates=anchor_dates, rule=recurrence_rules(), cap=st.integers(min_value=1, max_value=60))
    def test_expansion_is_sorted_unique_and_capped(self, dates, rule, cap):
        expanded = expand_recurring_dates(dates, rule, max_dates=cap)

        assert expanded == sorted(set(expanded))
        assert len(expanded) <= cap

    @settings(max_examples=100, deadline=None)
    @given(dates=anchor_dates, rule=recurrence_rules())
    def test_expansion_is_deterministic(self, dates, rule):
        assert expand_recurring_dates(dates, rule) == expand_recurring_dates(list(dates), rule)

    @settings(max_examples=200, deadline=None)
    @given(dates=anchor_dates, rule=recurrence_rules())
    def test_dates_follow_the_rule(self, dates, rule):
        expanded = expand_recurring_dates(dates, rule)
        first_week = start_of_week(min(dates))

        for day in expanded:
            assert _sunday_index(day) in rule.days_of_week
            assert day >= first_week
            weeks_from_anchor = (start_of_week(day) - first_week).days // 7
            assert weeks_from_anchor % rule.interval_weeks == 0
            if rule.end_type is RecurrenceEnd.ON_DATE:
                assert day <= rule.end_date

    @settings(max_examples=100, deadline=None)
    @given(dates=anchor_dates)
    def test_no_rule_returns_anchors(self, dates):
        assert expand_recurring_dates(dates, None) == dates


class TestOverlapProperties:
    @given(a_start=minutes, a_len=st.integers(1, 720), b_start=minutes, b_len=st.integers(1, 720))
    def test_symmetric(self, a_start, a_len, b_start, b_len):
        a = (BASE + timedelta(minutes=a_start), BASE + timedelta(minutes=a_start + a_len))
        b = (BASE + timedelta(minutes=b_start), BASE + timedelta(minutes=b_start + b_len))

        assert intervals_overlap(*a, *b) == intervals_overlap(*b, *a)

    @given(start=minutes, first_len=st.integers(1, 720), second_len=st.integers(1, 720))
    def test_back_to_back_never_overlaps(self, start, first_len, second_len):
        first_start = BASE + timedelta(minutes=start)
        boundary = first_start + timedelta(minutes=first_len)
        second_end = boundary + timedelta(minutes=second_len)

        assert not intervals_overlap(first_start, boundary, boundary, second_end)

    @given(start=minutes, length=st.integers(1, 720))
    def test_interval_overlaps_itself(self, start, length):
        s = BASE + timedelta(minutes=start)
        e = s + timedelta(minutes=length)

        assert intervals_overlap(s, e, s, e)

    @given(
        slots=st.lists(st.tuples(minutes, st.integers(1, 240)), min_size=1, max_size=20),
    )
    def test_tracker_agrees_with_pairwise_check(self, slots):
        tracker = BatchOverlapTracker()
        staged = []
        for offset, length in slots:
            s = BASE + timedelta(minutes=offset)
            e = s + timedelta(minutes=length)
            expected = any(intervals_overlap(ps, pe, s, e) for ps, pe in staged)

            assert (tracker.find_overlap("worker", s, e) is not None) == expected
            if not expected:
                tracker.stage("worker", s, e)
                staged.append((s, e))

        assert tracker.staged_count == len(staged)


class TestPayProperties:
    @given(
        billable=st.integers(min_value=0, max_value=24 * 60),
        extra=st.integers(min_value=0, max_value=600),
        rate=st.integers(min_value=0, max_value=100_000),
    )
    def test_more_minutes_never_pay_less(self, billable, extra, rate):
        assert calculate_pay_cents(billable + extra, rate) >= calculate_pay_cents(billable, rate)

    @given(
        billable=st.integers(min_value=0, max_value=24 * 60),
        rate=st.integers(min_value=0, max_value=100_000),
        raise_by=st.integers(min_value=0, max_value=10_000),
    )
    def test_higher_rate_never_pays_less(self, billable, rate, raise_by):
        assert calculate_pay_cents(billable, rate + raise_by) >= calculate_pay_cents(billable, rate)

    @given(
        billable=st.integers(min_value=1, max_value=24 * 60),
        rate=st.integers(min_value=1, max_value=100_000),
    )
    def test_rounds_up_to_the_cent(self, billable, rate):
        pay = calculate_pay_cents(billable, rate)

        assert pay * 60 >= billable * rate
        assert (pay - 1) * 60 < billable * rate

    @settings(max_examples=200, deadline=None)
    @given(
        length=st.integers(min_value=30, max_value=12 * 60),
        clock_in=st.integers(min_value=-120, max_value=12 * 60),
        worked=st.integers(min_value=0, max_value=14 * 60),
        break_minutes=st.integers(min_value=0, max_value=120),
        rate=st.integers(min_value=0, max_value=10_000),
    )
    def test_clean_timesheet_bills_time_actually_worked(
        self, length, clock_in, worked, break_minutes, rate
    ):
        scheduled_end = BASE + timedelta(minutes=length)
        actual_in = BASE + timedelta(minutes=clock_in)
        actual_out = actual_in + timedelta(minutes=worked)

        result = compute_timesheet(
            BASE, scheduled_end, rate, actual_in, actual_out, break_minutes
        )
        assume(result.classification is TimesheetClass.CLEAN)

        assert result.billable_minutes > 0
        assert result.billable_minutes == result.total_minutes - break_minutes
        assert result.gross_pay_cents == calculate_pay_cents(result.billable_minutes, rate)
        assert result.effective_clock_in >= BASE
        if scheduled_end - timedelta(minutes=5) <= actual_out < scheduled_end:
            assert result.effective_clock_out == scheduled_end
        else:
            assert result.effective_clock_out == actual_out
        assert result.total_minutes == whole_minutes(
            result.effective_clock_in, result.effective_clock_out
        )
