from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest

from app.core.config import Settings
from app.integrations.payment import MockPaymentGateway
from app.models.domain import BookingForm, Booking, BookingStatus
from app.services.booking_service import BookingService
from app.services.retry import RetryPolicy
from app.storage.repository import InMemoryRepository

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


async def no_sleep(seconds: float) -> None:
    return None


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: List[Tuple[BookingForm, float, bool]] = []

    async def notify(self, form: BookingForm, total_cost: float, is_test_mode: bool) -> None:
        self.calls.append((form, total_cost, is_test_mode))


class StaticRouteClient:
    def __init__(self, distance: float) -> None:
        self.distance = distance
        self.calls = 0

    async def distance_km(self, origin: str, destination: str) -> float:
        self.calls += 1
        return self.distance


def make_form(**overrides) -> BookingForm:
    values = dict(
        user_name="Jane Driver",
        phone_number="5551234567",
        vehicle_brand="Honda",
        vehicle_model="Civic",
        vehicle_color="Blue",
        license_plate="abc123",
        vehicle_size="Medium",
        pickup_address="123 Main St, Springfield",
        drop_off_address="456 Elm Ave, Shelbyville",
        pickup_datetime=NOW + timedelta(hours=2),
        distance=10.0,
    )
    values.update(overrides)
    return BookingForm(**values)


def make_booking(created_at: datetime, status: BookingStatus = BookingStatus.paid, **overrides) -> Booking:
    values = dict(
        id="",
        user_id=None,
        service_id=None,
        service_number=None,
        idempotency_key=f"key-{created_at.isoformat()}",
        service_type="Tow",
        user_name="Jane Driver",
        phone_number="5551234567",
        vehicle_brand="Honda",
        vehicle_model="Civic",
        vehicle_color="Blue",
        license_plate="ABC123",
        vehicle_size="Medium",
        pickup_address="123 Main St, Springfield",
        drop_off_address="456 Elm Ave, Shelbyville",
        pickup_datetime=created_at + timedelta(hours=2),
        distance=10.0,
        total_cost=90.0,
        tow_truck_type="Standard",
        status=status,
        created_at=created_at,
    )
    values.update(overrides)
    return Booking(**values)


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(sleep=no_sleep)


@pytest.fixture
def booking_service(repository, gateway, notifier) -> BookingService:
    return BookingService(
        repository=repository,
        payment_gateway=gateway,
        notifier=notifier,
        settings=Settings(allow_test_mode=True),
        clock=fixed_clock,
    )
