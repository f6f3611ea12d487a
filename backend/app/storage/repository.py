from __future__ import annotations

from dataclasses import fields, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple
from uuid import uuid4

from app.core.errors import RecordNotFoundError, ValidationError
from app.models.domain import (
    Booking,
    BookingStatus,
    BookingSummary,
    Service,
    ServiceSummary,
    User,
    UserSummary,
    generate_service_number,
)


class RecordStore(Protocol):
    """CRUD contract over the users, services and bookings collections."""

    async def create_user(self, user: User) -> User: ...

    async def get_user(self, user_id: str) -> Optional[User]: ...

    async def list_users(self) -> List[User]: ...

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> User: ...

    async def delete_user(self, user_id: str) -> None: ...

    async def create_service(
        self, user_id: Optional[str], idempotency_key: str, status: BookingStatus
    ) -> Service: ...

    async def get_service(self, service_id: str) -> Optional[Service]: ...

    async def list_services(self) -> List[Service]: ...

    async def update_service(self, service_id: str, changes: Dict[str, Any]) -> Service: ...

    async def delete_service(self, service_id: str) -> None: ...

    async def list_orphaned_services(self, created_before: datetime) -> List[Service]: ...

    async def create_booking(self, booking: Booking) -> Booking: ...

    async def get_booking(self, booking_id: str) -> Optional[Booking]: ...

    async def find_booking_by_key(self, idempotency_key: str) -> Optional[Booking]: ...

    async def list_bookings(
        self, offset: int, limit: int, status: Optional[BookingStatus] = None
    ) -> Tuple[List[BookingSummary], int]: ...

    async def update_booking(self, booking_id: str, changes: Dict[str, Any]) -> Booking: ...

    async def delete_booking(self, booking_id: str) -> None: ...

    async def booking_totals(self) -> Tuple[Dict[str, int], float]: ...


def check_changes(model: type, changes: Dict[str, Any], readonly: Tuple[str, ...] = ("id",)) -> None:
    allowed = {f.name for f in fields(model)} - set(readonly)
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown or read-only fields: {', '.join(unknown)}",
            {name: "not updatable" for name in unknown},
        )


class InMemoryRepository:
    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.services: Dict[str, Service] = {}
        self.bookings: Dict[str, Booking] = {}

    async def create_user(self, user: User) -> User:
        stored = replace(user, id=user.id or str(uuid4()))
        self.users[stored.id] = stored
        return replace(stored)

    async def get_user(self, user_id: str) -> Optional[User]:
        user = self.users.get(user_id)
        return replace(user) if user else None

    async def list_users(self) -> List[User]:
        return sorted((replace(u) for u in self.users.values()), key=lambda u: u.created_at, reverse=True)

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> User:
        check_changes(User, changes)
        if user_id not in self.users:
            raise RecordNotFoundError("users", user_id)
        self.users[user_id] = replace(self.users[user_id], **changes)
        return replace(self.users[user_id])

    async def delete_user(self, user_id: str) -> None:
        if self.users.pop(user_id, None) is None:
            raise RecordNotFoundError("users", user_id)

    async def create_service(
        self, user_id: Optional[str], idempotency_key: str, status: BookingStatus
    ) -> Service:
        service = Service(
            id=str(uuid4()),
            service_number=generate_service_number(),
            user_id=user_id,
            idempotency_key=idempotency_key,
            status=status,
        )
        self.services[service.id] = service
        return replace(service)

    async def get_service(self, service_id: str) -> Optional[Service]:
        service = self.services.get(service_id)
        return replace(service) if service else None

    async def list_services(self) -> List[Service]:
        return sorted(
            (replace(s) for s in self.services.values()), key=lambda s: s.created_at, reverse=True
        )

    async def update_service(self, service_id: str, changes: Dict[str, Any]) -> Service:
        check_changes(Service, changes, readonly=("id", "service_number"))
        if service_id not in self.services:
            raise RecordNotFoundError("services", service_id)
        self.services[service_id] = replace(self.services[service_id], **changes)
        return replace(self.services[service_id])

    async def delete_service(self, service_id: str) -> None:
        if self.services.pop(service_id, None) is None:
            raise RecordNotFoundError("services", service_id)

    async def list_orphaned_services(self, created_before: datetime) -> List[Service]:
        linked = {b.service_id for b in self.bookings.values()}
        return [
            replace(s)
            for s in self.services.values()
            if s.id not in linked and s.created_at < created_before
        ]

    async def create_booking(self, booking: Booking) -> Booking:
        stored = replace(booking, id=booking.id or str(uuid4()))
        self.bookings[stored.id] = stored
        return replace(stored)

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        booking = self.bookings.get(booking_id)
        return replace(booking) if booking else None

    async def find_booking_by_key(self, idempotency_key: str) -> Optional[Booking]:
        for booking in self.bookings.values():
            if booking.idempotency_key == idempotency_key:
                return replace(booking)
        return None

    async def list_bookings(
        self, offset: int, limit: int, status: Optional[BookingStatus] = None
    ) -> Tuple[List[BookingSummary], int]:
        rows = [b for b in self.bookings.values() if status is None or b.status == status]
        rows.sort(key=lambda b: b.created_at, reverse=True)
        return [self._summarize(b) for b in rows[offset : offset + limit]], len(rows)

    async def update_booking(self, booking_id: str, changes: Dict[str, Any]) -> Booking:
        check_changes(Booking, changes, readonly=("id", "created_at"))
        if booking_id not in self.bookings:
            raise RecordNotFoundError("bookings", booking_id)
        self.bookings[booking_id] = replace(self.bookings[booking_id], **changes)
        return replace(self.bookings[booking_id])

    async def delete_booking(self, booking_id: str) -> None:
        if self.bookings.pop(booking_id, None) is None:
            raise RecordNotFoundError("bookings", booking_id)

    async def booking_totals(self) -> Tuple[Dict[str, int], float]:
        counts: Dict[str, int] = {}
        revenue = 0.0
        for booking in self.bookings.values():
            status = BookingStatus(booking.status).value
            counts[status] = counts.get(status, 0) + 1
            if status == BookingStatus.paid.value:
                revenue += booking.total_cost
        return counts, round(revenue, 2)

    def _summarize(self, booking: Booking) -> BookingSummary:
        user = self.users.get(booking.user_id) if booking.user_id else None
        service = self.services.get(booking.service_id) if booking.service_id else None
        return BookingSummary(
            booking=replace(booking),
            user=UserSummary(id=user.id, email=user.email) if user else None,
            service=ServiceSummary(
                id=service.id, service_number=service.service_number, status=service.status
            )
            if service
            else None,
        )
