"""Tests for request DTO construction-time validation."""

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from roster_kernel.domain.lifecycle import AvailabilityType, ShiftStatus
from roster_kernel.domain.requests import (
    AvailabilityRequest,
    Coordinates,
    PositionSlot,
    PublishRequest,
    PunchRequest,
    ScheduleBlock,
    TimesheetAdjustment,
    parse_local_time,
    validate_timezone,
)
from roster_kernel.exceptions import ValidationError

NOW = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


def _position(**overrides) -> PositionSlot:
    fields = {"role_name": "Server", "price_cents": 2000, "worker_ids": (uuid4(), None)}
    fields.update(overrides)
    return PositionSlot(**fields)


def _block(**overrides) -> ScheduleBlock:
    fields = {
        "name": "Dinner",
        "dates": (date(2026, 1, 10),),
        "start_time": "17:00",
        "end_time": "23:00",
        "positions": (_position(),),
    }
    fields.update(overrides)
    return ScheduleBlock(**fields)


def _publish(**overrides) -> PublishRequest:
    fields = {
        "tenant_id": uuid4(),
        "location_id": uuid4(),
        "timezone": "America/New_York",
        "blocks": (_block(),),
    }
    fields.update(overrides)
    return PublishRequest(**fields)


class TestLocalTime:
    @pytest.mark.parametrize("value", ["00:00", "09:30", "23:59"])
    def test_valid(self, value):
        parsed = parse_local_time(value)
        assert parsed.strftime("%H:%M") == value

    @pytest.mark.parametrize("value", ["24:00", "9:30", "09:60", "0930", "", "noon"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_local_time(value)

    def test_non_string(self):
        with pytest.raises(ValidationError):
            parse_local_time(930)


class TestTimezone:
    def test_valid(self):
        assert validate_timezone("Europe/Berlin") == "Europe/Berlin"

    @pytest.mark.parametrize("value", ["", "Mars/Olympus", "not a zone"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError) as exc_info:
            validate_timezone(value)
        assert exc_info.value.field == "timezone"


class TestPositionAndBlock:
    def test_capacity_counts_open_slots(self):
        position = _position(worker_ids=(uuid4(), None, None))
        assert position.capacity == 3
        assert len(position.assigned_worker_ids) == 1

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            _position(price_cents=-1)

    def test_empty_slots_rejected(self):
        with pytest.raises(ValidationError):
            _position(worker_ids=())

    def test_blank_role_rejected(self):
        with pytest.raises(ValidationError):
            _position(role_name="  ")

    def test_same_start_and_end_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            _block(start_time="09:00", end_time="09:00")
        assert exc_info.value.field == "schedules.end_time"

    def test_overnight_block_allowed(self):
        block = _block(start_time="22:00", end_time="06:00")
        assert block.local_end < block.local_start

    def test_no_dates_rejected(self):
        with pytest.raises(ValidationError):
            _block(dates=())

    def test_no_positions_rejected(self):
        with pytest.raises(ValidationError):
            _block(positions=())


class TestPublishRequest:
    def test_defaults_to_published(self):
        assert _publish().status is ShiftStatus.PUBLISHED

    def test_string_status_coerced(self):
        assert _publish(status="draft").status is ShiftStatus.DRAFT

    @pytest.mark.parametrize("status", ["assigned", "approved", "bogus"])
    def test_other_statuses_rejected(self, status):
        with pytest.raises(ValidationError) as exc_info:
            _publish(status=status)
        assert exc_info.value.field == "status"

    def test_no_blocks_rejected(self):
        with pytest.raises(ValidationError):
            _publish(blocks=())

    def test_blank_idempotency_key_rejected(self):
        with pytest.raises(ValidationError):
            _publish(idempotency_key="   ")

    def test_overlong_idempotency_key_rejected(self):
        with pytest.raises(ValidationError):
            _publish(idempotency_key="k" * 256)

    def test_content_payload_ignores_idempotency_key_and_status(self):
        tenant_id, location_id = uuid4(), uuid4()
        block = _block()
        a = _publish(tenant_id=tenant_id, location_id=location_id, blocks=(block,), idempotency_key="a")
        b = _publish(
            tenant_id=tenant_id,
            location_id=location_id,
            blocks=(block,),
            idempotency_key="b",
            status="draft",
        )
        assert a.content_payload() == b.content_payload()


class TestPunchAndAvailability:
    def test_coordinates_range(self):
        with pytest.raises(ValidationError):
            Coordinates(latitude=91.0, longitude=0.0)
        with pytest.raises(ValidationError):
            Coordinates(latitude=0.0, longitude=-181.0)
        with pytest.raises(ValidationError):
            Coordinates(latitude=0.0, longitude=0.0, accuracy_meters=-1)

    def test_punch_requires_aware_timestamp(self):
        with pytest.raises(ValidationError):
            PunchRequest(
                shift_id=uuid4(),
                worker_id=uuid4(),
                coordinates=Coordinates(0.0, 0.0),
                device_timestamp=datetime(2026, 1, 5, 8, 0),
            )

    def test_availability_end_after_start(self):
        with pytest.raises(ValidationError) as exc_info:
            AvailabilityRequest(worker_id=uuid4(), start=NOW, end=NOW)
        assert exc_info.value.field == "time_range"

    def test_availability_defaults_to_unavailable(self):
        request = AvailabilityRequest(worker_id=uuid4(), start=NOW, end=NOW + timedelta(hours=1))
        assert request.availability_type is AvailabilityType.UNAVAILABLE

    def test_adjustment_negative_break_rejected(self):
        with pytest.raises(ValidationError):
            TimesheetAdjustment(assignment_id=uuid4(), break_minutes=-5)
