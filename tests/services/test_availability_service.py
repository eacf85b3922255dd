"""
Tests for AvailabilityService.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from roster_kernel.domain.lifecycle import AvailabilityType
from roster_kernel.domain.requests import AvailabilityRequest
from roster_kernel.exceptions import AvailabilityNotFoundError, ForbiddenError, ValidationError
from roster_kernel.models.audit_event import AuditAction, AuditEvent
from roster_kernel.services.availability_service import AvailabilityService

DAY = datetime(2026, 1, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(session, deterministic_clock):
    return AvailabilityService(session, deterministic_clock)


@pytest.fixture
def worker_id():
    return uuid4()


class TestSetAvailability:
    def test_creates_window(self, service, worker_id, session):
        window = service.set_availability(
            AvailabilityRequest(
                worker_id=worker_id,
                start=DAY,
                end=DAY + timedelta(days=1),
                reason="Wedding",
            )
        )

        assert window.worker_id == worker_id
        assert window.availability_type == AvailabilityType.UNAVAILABLE.value
        assert window.reason == "Wedding"
        actions = session.execute(select(AuditEvent.action)).scalars().all()
        assert actions == [AuditAction.AVAILABILITY_CREATED.value]

    def test_preferred_window(self, service, worker_id):
        window = service.set_availability(
            AvailabilityRequest(
                worker_id=worker_id,
                start=DAY,
                end=DAY + timedelta(hours=4),
                availability_type="preferred",
            )
        )

        assert window.availability_type == AvailabilityType.PREFERRED.value

    def test_end_must_follow_start(self, worker_id):
        with pytest.raises(ValidationError):
            AvailabilityRequest(worker_id=worker_id, start=DAY, end=DAY)


class TestListAvailability:
    def test_lists_intersecting_windows_in_order(self, service, worker_id):
        later = service.set_availability(
            AvailabilityRequest(worker_id, DAY + timedelta(days=2), DAY + timedelta(days=3))
        )
        earlier = service.set_availability(
            AvailabilityRequest(worker_id, DAY, DAY + timedelta(days=1))
        )
        service.set_availability(
            AvailabilityRequest(worker_id, DAY + timedelta(days=10), DAY + timedelta(days=11))
        )
        service.set_availability(AvailabilityRequest(uuid4(), DAY, DAY + timedelta(days=1)))

        windows = service.list_availability(worker_id, DAY, DAY + timedelta(days=5))

        assert [w.id for w in windows] == [earlier.id, later.id]

    def test_invalid_range(self, service, worker_id):
        with pytest.raises(ValidationError):
            service.list_availability(worker_id, DAY, DAY - timedelta(hours=1))


class TestDeleteAvailability:
    def test_owner_deletes(self, service, worker_id, session):
        window = service.set_availability(
            AvailabilityRequest(worker_id, DAY, DAY + timedelta(days=1))
        )

        service.delete_availability(window.id, worker_id)

        assert service.list_availability(worker_id, DAY, DAY + timedelta(days=1)) == []
        actions = session.execute(select(AuditEvent.action).order_by(AuditEvent.seq)).scalars().all()
        assert actions[-1] == AuditAction.AVAILABILITY_DELETED.value

    def test_other_worker_cannot_delete(self, service, worker_id):
        window = service.set_availability(
            AvailabilityRequest(worker_id, DAY, DAY + timedelta(days=1))
        )

        with pytest.raises(ForbiddenError):
            service.delete_availability(window.id, uuid4())

    def test_missing_window(self, service, worker_id):
        with pytest.raises(AvailabilityNotFoundError):
            service.delete_availability(uuid4(), worker_id)
