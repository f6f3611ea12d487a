from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import RecordNotFoundError, StoreError, ValidationError
from app.models.domain import BookingStatus, User, UserRole
from app.services.admin_service import AdminService
from app.storage.repository import InMemoryRepository

from conftest import NOW, fixed_clock, make_booking, no_sleep
from app.services.retry import RetryPolicy

pytestmark = pytest.mark.asyncio


class FlakyRepository(InMemoryRepository):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.list_calls = 0

    async def list_bookings(self, offset, limit, status=None):
        self.list_calls += 1
        if self.list_calls <= self.failures:
            raise ConnectionError("store unavailable")
        return await super().list_bookings(offset, limit, status)


def admin(repository) -> AdminService:
    return AdminService(repository=repository, retry=RetryPolicy(sleep=no_sleep), clock=fixed_clock)


async def seed(repository, count, status=BookingStatus.paid):
    for i in range(count):
        await repository.create_booking(make_booking(NOW - timedelta(minutes=i), status=status))


async def test_empty_store_returns_empty_page(repository):
    page = await admin(repository).list_bookings(page=1, limit=10)

    assert page.data == []
    assert page.count == 0
    assert page.total_pages == 0


async def test_pages_are_newest_first(repository):
    await seed(repository, 12)

    page = await admin(repository).list_bookings(page=2, limit=5)

    assert page.count == 12
    assert page.total_pages == 3
    created = [row.booking.created_at for row in page.data]
    assert created == [NOW - timedelta(minutes=i) for i in range(5, 10)]


async def test_page_past_the_end_keeps_count(repository):
    await seed(repository, 3)

    page = await admin(repository).list_bookings(page=4, limit=2)

    assert page.data == []
    assert page.count == 3
    assert page.total_pages == 2


async def test_rows_joined_with_user_and_service(repository):
    await repository.create_user(User(id="u1", email="jane@example.com"))
    service = await repository.create_service("u1", "key-1", BookingStatus.paid)
    await repository.create_booking(
        make_booking(NOW, user_id="u1", service_id=service.id, service_number=service.service_number)
    )

    row = (await admin(repository).list_bookings()).data[0]

    assert row.user.email == "jane@example.com"
    assert row.service.service_number == service.service_number


async def test_status_filter(repository):
    await seed(repository, 2, status=BookingStatus.paid)
    await repository.create_booking(make_booking(NOW + timedelta(minutes=5), status=BookingStatus.test_mode))

    page = await admin(repository).list_bookings(status=BookingStatus.paid)

    assert page.count == 2
    assert all(row.booking.status == BookingStatus.paid for row in page.data)


async def test_invalid_paging_rejected(repository):
    with pytest.raises(ValidationError):
        await admin(repository).list_bookings(page=0, limit=10)


async def test_transient_failures_are_retried():
    repository = FlakyRepository(failures=2)
    await seed(repository, 1)

    page = await admin(repository).list_bookings()

    assert page.count == 1
    assert repository.list_calls == 3


async def test_persistent_failure_surfaces_store_error():
    repository = FlakyRepository(failures=3)

    with pytest.raises(StoreError) as exc:
        await admin(repository).list_bookings()
    assert exc.value.attempts == 3


async def test_update_booking_respects_status_rule(repository):
    pending = await repository.create_booking(make_booking(NOW, status=BookingStatus.pending))
    service = admin(repository)

    updated = await service.update_booking(pending.id, {"status": "paid"})
    assert updated.status == BookingStatus.paid

    with pytest.raises(ValidationError):
        await service.update_booking(pending.id, {"status": BookingStatus.pending})


async def test_update_and_delete_missing_rows(repository):
    service = admin(repository)

    with pytest.raises(RecordNotFoundError):
        await service.update_booking("missing", {"additional_details": "x"})
    with pytest.raises(RecordNotFoundError):
        await service.delete_booking("missing")


async def test_unknown_fields_rejected(repository):
    booking = await repository.create_booking(make_booking(NOW))

    with pytest.raises(ValidationError):
        await admin(repository).update_booking(booking.id, {"id": "other"})


async def test_user_crud(repository):
    service = admin(repository)
    user = await service.create_user(email="ops@example.com", role=UserRole.admin)

    assert user.id
    updated = await service.update_user(user.id, {"role": "super_admin"})
    assert updated.role == UserRole.super_admin

    await service.delete_user(user.id)
    assert await service.list_users() == []


async def test_service_crud(repository):
    created = await repository.create_service(None, "key-1", BookingStatus.pending)
    service = admin(repository)

    updated = await service.update_service(created.id, {"status": BookingStatus.paid})
    assert updated.status == BookingStatus.paid
    assert [s.id for s in await service.list_services()] == [created.id]

    await service.delete_service(created.id)
    assert await service.list_services() == []


async def test_analytics(repository):
    await repository.create_user(User(id="u1", email="a@example.com"))
    await seed(repository, 2)
    await repository.create_booking(make_booking(NOW + timedelta(minutes=1), status=BookingStatus.test_mode))

    summary = await admin(repository).analytics()

    assert summary.total_bookings == 3
    assert summary.bookings_by_status == {"paid": 2, "test_mode": 1}
    assert summary.paid_revenue == 180
    assert summary.test_mode_bookings == 1
    assert summary.total_users == 1


async def test_reconcile_removes_only_old_orphans(repository):
    stale = await repository.create_service(None, "stale", BookingStatus.paid)
    repository.services[stale.id].created_at = NOW - timedelta(hours=2)
    fresh = await repository.create_service(None, "fresh", BookingStatus.paid)
    repository.services[fresh.id].created_at = NOW - timedelta(minutes=5)
    linked = await repository.create_service(None, "linked", BookingStatus.paid)
    repository.services[linked.id].created_at = NOW - timedelta(hours=2)
    await repository.create_booking(make_booking(NOW, service_id=linked.id))

    removed = await admin(repository).reconcile_orphaned_services(timedelta(minutes=30))

    assert removed == [stale.id]
    assert set(repository.services) == {fresh.id, linked.id}


async def test_update_booking_applies_form_rules(repository):
    booking = await repository.create_booking(make_booking(NOW, status=BookingStatus.pending))
    service = admin(repository)

    with pytest.raises(ValidationError) as exc:
        await service.update_booking(booking.id, {"phone_number": "555-0000", "drop_off_address": "x"})
    assert set(exc.value.errors) == {"phone_number", "drop_off_address"}
    assert repository.bookings[booking.id].phone_number == "5551234567"

    local = datetime(2026, 10, 19, 9, 30, tzinfo=timezone(timedelta(hours=-5)))
    updated = await service.update_booking(booking.id, {"pickup_datetime": local})
    assert updated.pickup_datetime == datetime(2026, 10, 19, 14, 30, tzinfo=timezone.utc)
    assert updated.pickup_datetime.utcoffset() == timedelta(0)
