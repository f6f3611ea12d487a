from __future__ import annotations

import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from app.core.errors import InvalidTransitionError, ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VehicleSize(str, Enum):
    small = "Small"
    medium = "Medium"
    large = "Large"
    extra_large = "Extra Large"


class TowTruckType(str, Enum):
    light_duty = "Light Duty"
    standard = "Standard"
    heavy_duty = "Heavy Duty"
    flatbed = "Flatbed"


class BookingStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    test_mode = "test_mode"


class UserRole(str, Enum):
    user = "user"
    admin = "admin"
    super_admin = "super_admin"


class BookingStep(str, Enum):
    editing = "editing"
    validating = "validating"
    awaiting_payment = "awaiting_payment"
    persisting = "persisting"
    notifying = "notifying"
    confirmed = "confirmed"
    failed = "failed"


STATUS_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.pending: frozenset({BookingStatus.paid, BookingStatus.test_mode}),
    BookingStatus.paid: frozenset(),
    BookingStatus.test_mode: frozenset(),
}

STEP_TRANSITIONS: Dict[BookingStep, FrozenSet[BookingStep]] = {
    BookingStep.editing: frozenset({BookingStep.validating}),
    BookingStep.validating: frozenset({BookingStep.awaiting_payment}),
    BookingStep.awaiting_payment: frozenset({BookingStep.persisting, BookingStep.confirmed}),
    BookingStep.persisting: frozenset({BookingStep.notifying}),
    BookingStep.notifying: frozenset({BookingStep.confirmed}),
    BookingStep.confirmed: frozenset(),
    BookingStep.failed: frozenset(),
}


def transition_status(current: BookingStatus, new: BookingStatus) -> BookingStatus:
    """Status only moves forward: pending -> paid or pending -> test_mode."""
    current, new = BookingStatus(current), BookingStatus(new)
    if current == new:
        return new
    if new not in STATUS_TRANSITIONS[current]:
        raise ValidationError(
            f"Cannot change booking status from {current.value} to {new.value}",
            {"status": "invalid status transition"},
        )
    return new


def generate_service_number(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"TW-{now:%y%m%d}-{secrets.token_hex(3).upper()}"


@dataclass(frozen=True)
class TowTruckRate:
    base_price: float
    per_km: float


@dataclass(frozen=True)
class PriceQuote:
    vehicle_size: str
    tow_truck_type: TowTruckType
    base_price: float
    per_km: float
    distance: float
    total_cost: float


@dataclass(frozen=True)
class BookingForm:
    user_name: str = ""
    phone_number: str = ""
    vehicle_brand: str = ""
    vehicle_model: str = ""
    vehicle_color: str = ""
    license_plate: str = ""
    vehicle_size: str = ""
    pickup_address: str = ""
    drop_off_address: str = ""
    pickup_datetime: Optional[datetime] = None
    service_type: str = "Tow"
    vehicle_issue: str = ""
    additional_details: str = ""
    wheels_status: str = ""
    payment_method: str = "card"
    distance: Optional[float] = None


@dataclass(frozen=True)
class BookingDraft:
    """Transient state of one submission; every transition returns a new draft."""

    form: BookingForm
    idempotency_key: str
    is_test_mode: bool = False
    step: BookingStep = BookingStep.editing
    quote: Optional[PriceQuote] = None
    failure_reason: Optional[str] = None

    def with_changes(self, **changes) -> "BookingDraft":
        if self.step != BookingStep.editing:
            raise InvalidTransitionError(f"Form is not editable in step {self.step.value}")
        return replace(self, form=replace(self.form, **changes), quote=None)

    def with_distance(self, distance: float) -> "BookingDraft":
        return replace(self, form=replace(self.form, distance=distance), quote=None)

    def with_quote(self, quote: PriceQuote) -> "BookingDraft":
        return replace(self, quote=quote)

    def advance(self, step: BookingStep) -> "BookingDraft":
        if step not in STEP_TRANSITIONS[self.step]:
            raise InvalidTransitionError(
                f"Cannot move booking from {self.step.value} to {step.value}"
            )
        return replace(self, step=step)

    def fail(self, reason: str) -> "BookingDraft":
        if self.step in (BookingStep.confirmed, BookingStep.failed):
            raise InvalidTransitionError(f"Booking already {self.step.value}")
        return replace(self, step=BookingStep.failed, failure_reason=reason)


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    email: str = ""
    role: UserRole = UserRole.user

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.admin, UserRole.super_admin)


@dataclass
class User:
    id: str
    email: str
    full_name: str = ""
    phone: str = ""
    role: UserRole = UserRole.user
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Service:
    id: str
    service_number: str
    user_id: Optional[str]
    idempotency_key: str
    status: BookingStatus
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Booking:
    id: str
    user_id: Optional[str]
    service_id: Optional[str]
    service_number: Optional[str]
    idempotency_key: str
    service_type: str
    user_name: str
    phone_number: str
    vehicle_brand: str
    vehicle_model: str
    vehicle_color: str
    license_plate: str
    vehicle_size: str
    pickup_address: str
    drop_off_address: str
    pickup_datetime: datetime
    distance: float
    total_cost: float
    tow_truck_type: str
    status: BookingStatus = BookingStatus.pending
    payment_method: str = "card"
    vehicle_issue: str = ""
    additional_details: str = ""
    wheels_status: str = ""
    payment_intent_id: Optional[str] = None
    is_test_mode: bool = False
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class UserSummary:
    id: str
    email: str


@dataclass
class ServiceSummary:
    id: str
    service_number: str
    status: BookingStatus


@dataclass
class BookingSummary:
    booking: Booking
    user: Optional[UserSummary] = None
    service: Optional[ServiceSummary] = None


@dataclass
class BookingPage:
    data: List[BookingSummary]
    count: int
    total_pages: int


@dataclass
class BookingConfirmation:
    booking_id: str
    service_id: str
    service_number: str
    status: BookingStatus
    total_cost: float
    tow_truck_type: str
    idempotency_key: str
    is_test_mode: bool
    replayed: bool = False

    @classmethod
    def from_booking(cls, booking: Booking, replayed: bool = False) -> "BookingConfirmation":
        return cls(
            booking_id=booking.id,
            service_id=booking.service_id or "",
            service_number=booking.service_number or "",
            status=booking.status,
            total_cost=booking.total_cost,
            tow_truck_type=booking.tow_truck_type,
            idempotency_key=booking.idempotency_key,
            is_test_mode=booking.is_test_mode,
            replayed=replayed,
        )


@dataclass
class AnalyticsSummary:
    total_bookings: int
    bookings_by_status: Dict[str, int]
    paid_revenue: float
    test_mode_bookings: int
    total_users: int
