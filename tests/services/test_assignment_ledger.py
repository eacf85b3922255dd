"""
Tests for AssignmentLedger: clock-in, clock-out and manager adjustments.

Verifies:
- Punches record raw and effective times and geofence verification
- Punches outside the fence are accepted and flagged for review
- Device replay, poor accuracy and early clock-in are rejected
- Double punches are rejected
- The shift moves to in-progress on the first clock-in and to completed
  when the last open assignment clocks out
- Manager adjustments rewrite punches and are audited
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from roster_kernel.domain.lifecycle import AssignmentStatus, ShiftStatus
from roster_kernel.domain.requests import Coordinates, PunchRequest, TimesheetAdjustment
from roster_kernel.exceptions import (
    AlreadyClockedInError,
    AlreadyClockedOutError,
    ClockInTooEarlyError,
    ForbiddenError,
    InvalidShiftStateError,
    LowAccuracyError,
    NotClockedInError,
    ReplayDetectedError,
    ShiftNotFoundError,
    ValidationError,
)
from roster_kernel.models.audit_event import AuditAction, AuditEvent
from roster_kernel.models.shift import Assignment
from roster_kernel.services.assignment_ledger import MANUAL_OVERRIDE_METHOD, AssignmentLedger

START = datetime(2026, 1, 6, 9, 0, tzinfo=timezone.utc)
AT_VENUE = Coordinates(latitude=40.7128, longitude=-74.0060, accuracy_meters=10.0)
# About 1.1 km north of the venue
AWAY = Coordinates(latitude=40.7228, longitude=-74.0060, accuracy_meters=10.0)


@pytest.fixture
def ledger(session, deterministic_clock, policy):
    return AssignmentLedger(session, deterministic_clock, policy)


@pytest.fixture
def shift(location, make_shift):
    return make_shift(location, START, hours=8)


@pytest.fixture
def assignment(shift, make_assignment):
    return make_assignment(shift)


@pytest.fixture
def punch(deterministic_clock):
    def _punch(assignment, coordinates=AT_VENUE, device_timestamp=None) -> PunchRequest:
        return PunchRequest(
            shift_id=assignment.shift_id,
            worker_id=assignment.worker_id,
            coordinates=coordinates,
            device_timestamp=device_timestamp or deterministic_clock.now(),
        )

    return _punch


class TestClockIn:
    def test_on_time_clock_in(self, ledger, assignment, punch, deterministic_clock, session):
        deterministic_clock.set_time(START - timedelta(minutes=10))

        result = ledger.clock_in(punch(assignment))

        assert result.status is AssignmentStatus.IN_PROGRESS
        assert result.verified
        assert not result.needs_review
        assert result.effective_time == START

        session.refresh(assignment)
        assert assignment.actual_clock_in == START - timedelta(minutes=10)
        assert assignment.effective_clock_in == START
        assert assignment.clock_in_verified
        assert assignment.clock_in_method == "gps"
        assert assignment.status == AssignmentStatus.IN_PROGRESS.value

    def test_within_grace_snaps_to_start(self, ledger, assignment, punch, deterministic_clock):
        deterministic_clock.set_time(START + timedelta(minutes=4))

        result = ledger.clock_in(punch(assignment))

        assert result.effective_time == START

    def test_late_clock_in_keeps_actual_time(self, ledger, assignment, punch, deterministic_clock):
        deterministic_clock.set_time(START + timedelta(minutes=12))

        result = ledger.clock_in(punch(assignment))

        assert result.effective_time == START + timedelta(minutes=12)

    def test_outside_geofence_is_flagged(self, ledger, assignment, punch, deterministic_clock, session):
        deterministic_clock.set_time(START)

        result = ledger.clock_in(punch(assignment, AWAY))

        assert not result.verified
        assert result.needs_review
        assert result.review_reason == "outside_geofence"
        assert result.distance_meters > 1000
        session.refresh(assignment)
        assert assignment.needs_review

    def test_too_early(self, ledger, assignment, punch, deterministic_clock):
        deterministic_clock.set_time(START - timedelta(minutes=61))

        with pytest.raises(ClockInTooEarlyError):
            ledger.clock_in(punch(assignment))

    def test_device_clock_skew_is_replay(self, ledger, assignment, punch, deterministic_clock):
        deterministic_clock.set_time(START)
        stale = START - timedelta(minutes=6)

        with pytest.raises(ReplayDetectedError) as exc_info:
            ledger.clock_in(punch(assignment, device_timestamp=stale))

        assert exc_info.value.code == "REPLAY_DETECTED"

    def test_low_accuracy(self, ledger, assignment, punch, deterministic_clock):
        deterministic_clock.set_time(START)
        fuzzy = Coordinates(latitude=40.7128, longitude=-74.0060, accuracy_meters=500.0)

        with pytest.raises(LowAccuracyError):
            ledger.clock_in(punch(assignment, fuzzy))

    def test_double_clock_in(self, ledger, assignment, punch, deterministic_clock):
        deterministic_clock.set_time(START)
        ledger.clock_in(punch(assignment))
        deterministic_clock.advance_minutes(1)

        with pytest.raises(AlreadyClockedInError):
            ledger.clock_in(punch(assignment))

    def test_unassigned_worker(self, ledger, shift, deterministic_clock):
        deterministic_clock.set_time(START)
        request = PunchRequest(
            shift_id=shift.id,
            worker_id=uuid4(),
            coordinates=AT_VENUE,
            device_timestamp=START,
        )

        with pytest.raises(ForbiddenError):
            ledger.clock_in(request)

    def test_unknown_shift(self, ledger, deterministic_clock):
        deterministic_clock.set_time(START)
        request = PunchRequest(
            shift_id=uuid4(),
            worker_id=uuid4(),
            coordinates=AT_VENUE,
            device_timestamp=START,
        )

        with pytest.raises(ShiftNotFoundError):
            ledger.clock_in(request)

    def test_cancelled_shift_refuses_punches(
        self, ledger, location, make_shift, make_assignment, punch, deterministic_clock
    ):
        cancelled = make_shift(location, START, status=ShiftStatus.CANCELLED)
        assignment = make_assignment(cancelled)
        deterministic_clock.set_time(START)

        with pytest.raises(InvalidShiftStateError):
            ledger.clock_in(punch(assignment))

    def test_first_clock_in_starts_shift(
        self, ledger, shift, assignment, punch, deterministic_clock, session
    ):
        deterministic_clock.set_time(START)

        ledger.clock_in(punch(assignment))

        session.refresh(shift)
        assert shift.status == ShiftStatus.IN_PROGRESS.value

    def test_clock_in_is_audited(self, ledger, assignment, punch, deterministic_clock, session):
        deterministic_clock.set_time(START)

        ledger.clock_in(punch(assignment, AWAY))

        event = session.execute(
            select(AuditEvent).where(
                AuditEvent.entity_id == assignment.id,
                AuditEvent.action == AuditAction.ASSIGNMENT_STATUS_CHANGED.value,
            )
        ).scalar_one()
        assert event.payload["verification"]["verified"] is False
        assert event.payload["verification"]["review_reason"] == "outside_geofence"


class TestClockOut:
    def test_clock_out_completes_assignment_and_shift(
        self, ledger, shift, assignment, punch, deterministic_clock, session
    ):
        deterministic_clock.set_time(START)
        ledger.clock_in(punch(assignment))
        deterministic_clock.set_time(START + timedelta(hours=8, minutes=30))

        result = ledger.clock_out(punch(assignment))

        assert result.status is AssignmentStatus.COMPLETED
        assert result.effective_time == START + timedelta(hours=8, minutes=30)
        session.refresh(assignment)
        session.refresh(shift)
        assert assignment.actual_clock_out == START + timedelta(hours=8, minutes=30)
        assert assignment.status == AssignmentStatus.COMPLETED.value
        assert shift.status == ShiftStatus.COMPLETED.value

    def test_leaving_inside_end_grace_snaps_to_scheduled_end(
        self, ledger, assignment, punch, deterministic_clock, session
    ):
        deterministic_clock.set_time(START)
        ledger.clock_in(punch(assignment))
        deterministic_clock.set_time(START + timedelta(hours=7, minutes=56))

        result = ledger.clock_out(punch(assignment))

        assert result.effective_time == START + timedelta(hours=8)
        session.refresh(assignment)
        assert assignment.actual_clock_out == START + timedelta(hours=7, minutes=56)
        assert assignment.effective_clock_out == START + timedelta(hours=8)

    def test_shift_stays_in_progress_while_others_work(
        self, ledger, shift, make_assignment, punch, deterministic_clock, session
    ):
        first = make_assignment(shift)
        second = make_assignment(shift)
        deterministic_clock.set_time(START)
        ledger.clock_in(punch(first))
        ledger.clock_in(punch(second))
        deterministic_clock.set_time(START + timedelta(hours=8))

        ledger.clock_out(punch(first))

        session.refresh(shift)
        assert shift.status == ShiftStatus.IN_PROGRESS.value

    def test_clock_out_without_clock_in(self, ledger, assignment, punch, deterministic_clock):
        deterministic_clock.set_time(START)

        with pytest.raises(NotClockedInError):
            ledger.clock_out(punch(assignment))

    def test_double_clock_out(self, ledger, make_assignment, shift, punch, deterministic_clock):
        first = make_assignment(shift)
        make_assignment(shift)
        deterministic_clock.set_time(START)
        ledger.clock_in(punch(first))
        deterministic_clock.set_time(START + timedelta(hours=4))
        ledger.clock_out(punch(first))

        with pytest.raises(AlreadyClockedOutError):
            ledger.clock_out(punch(first))

    def test_review_flag_is_sticky(self, ledger, make_assignment, shift, punch, deterministic_clock):
        first = make_assignment(shift)
        make_assignment(shift)
        deterministic_clock.set_time(START)
        ledger.clock_in(punch(first, AWAY))
        deterministic_clock.set_time(START + timedelta(hours=8))

        result = ledger.clock_out(punch(first, AT_VENUE))

        assert result.verified
        assert result.needs_review
        assert result.review_reason == "outside_geofence"


class TestAdjustTimesheet:
    def test_adjust_sets_punches_and_marks_override(
        self, ledger, shift, assignment, manager, session
    ):
        adjustment = TimesheetAdjustment(
            assignment_id=assignment.id,
            clock_in=START + timedelta(minutes=2),
            clock_out=START + timedelta(hours=7),
            break_minutes=30,
            notes="Forgot to punch",
        )

        adjusted = ledger.adjust_timesheet(shift.tenant_id, adjustment, manager)

        assert adjusted.actual_clock_in == START + timedelta(minutes=2)
        assert adjusted.effective_clock_in == START
        assert adjusted.effective_clock_out == START + timedelta(hours=7)
        assert adjusted.break_minutes == 30
        assert adjusted.clock_in_method == MANUAL_OVERRIDE_METHOD
        assert not adjusted.clock_out_verified
        assert adjusted.adjusted_by_id == manager.actor_id
        assert adjusted.status == AssignmentStatus.COMPLETED.value

        session.refresh(shift)
        assert shift.status == ShiftStatus.COMPLETED.value

        event = session.execute(
            select(AuditEvent).where(AuditEvent.action == AuditAction.ASSIGNMENT_ADJUSTED.value)
        ).scalar_one()
        assert event.payload["notes"] == "Forgot to punch"
        assert "break_minutes" in event.payload["changes"]

    def test_adjusted_clock_out_inside_end_grace_snaps_to_end(self, ledger, shift, assignment, manager):
        adjustment = TimesheetAdjustment(
            assignment_id=assignment.id,
            clock_in=START,
            clock_out=START + timedelta(hours=7, minutes=57),
        )

        adjusted = ledger.adjust_timesheet(shift.tenant_id, adjustment, manager)

        assert adjusted.actual_clock_out == START + timedelta(hours=7, minutes=57)
        assert adjusted.effective_clock_out == START + timedelta(hours=8)

    def test_adjust_clears_review_flag(
        self, ledger, shift, assignment, punch, manager, deterministic_clock, session
    ):
        deterministic_clock.set_time(START)
        ledger.clock_in(punch(assignment, AWAY))

        ledger.adjust_timesheet(
            shift.tenant_id,
            TimesheetAdjustment(assignment_id=assignment.id, clock_out=START + timedelta(hours=8)),
            manager,
        )

        stored = session.get(Assignment, assignment.id)
        assert not stored.needs_review
        assert stored.review_reason is None

    def test_clock_out_before_clock_in(self, ledger, shift, assignment, manager):
        adjustment = TimesheetAdjustment(
            assignment_id=assignment.id,
            clock_in=START + timedelta(hours=2),
            clock_out=START + timedelta(hours=1),
        )

        with pytest.raises(ValidationError):
            ledger.adjust_timesheet(shift.tenant_id, adjustment, manager)

    def test_member_cannot_adjust(self, ledger, shift, assignment, member):
        with pytest.raises(ForbiddenError):
            ledger.adjust_timesheet(
                shift.tenant_id,
                TimesheetAdjustment(assignment_id=assignment.id, break_minutes=10),
                member,
            )

    def test_approved_shift_cannot_be_adjusted(
        self, ledger, location, make_shift, make_assignment, manager
    ):
        approved = make_shift(location, START, status=ShiftStatus.APPROVED)
        assignment = make_assignment(approved)

        with pytest.raises(InvalidShiftStateError):
            ledger.adjust_timesheet(
                location.tenant_id,
                TimesheetAdjustment(assignment_id=assignment.id, break_minutes=10),
                manager,
            )
