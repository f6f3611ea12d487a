from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from app.core.errors import ValidationError
from app.models.domain import (
    AnalyticsSummary,
    Booking,
    BookingPage,
    BookingStatus,
    Service,
    User,
    UserRole,
    transition_status,
    utcnow,
)
from app.services.retry import RetryPolicy
from app.services.validation import validate_booking_changes
from app.storage.repository import RecordStore

logger = logging.getLogger(__name__)


class AdminService:
    """Admin panel reads and single-row writes; every store call goes through the retry policy."""

    def __init__(
        self,
        repository: RecordStore,
        retry: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.retry = retry or RetryPolicy()
        self.clock = clock

    async def list_bookings(
        self, page: int = 1, limit: int = 10, status: Optional[BookingStatus] = None
    ) -> BookingPage:
        if page < 1 or limit < 1:
            raise ValidationError(
                "page and limit must be positive", {"page": "must be >= 1", "limit": "must be >= 1"}
            )
        offset = (page - 1) * limit
        rows, count = await self.retry.run(
            lambda: self.repository.list_bookings(offset=offset, limit=limit, status=status),
            entity="bookings",
        )
        if not rows and not count:
            logger.debug("No bookings returned for page %d", page)
            return BookingPage(data=[], count=0, total_pages=0)
        return BookingPage(data=rows, count=count, total_pages=math.ceil(count / limit))

    async def create_booking(self, booking: Booking) -> Booking:
        return await self.retry.run(lambda: self.repository.create_booking(booking), entity="bookings")

    async def update_booking(self, booking_id: str, changes: Dict[str, Any]) -> Booking:
        changes = validate_booking_changes(changes, now=self.clock())
        if "status" in changes:
            current = await self.retry.run(
                lambda: self.repository.get_booking(booking_id), entity="bookings"
            )
            if current is not None:
                changes = {**changes, "status": transition_status(current.status, changes["status"])}
        return await self.retry.run(
            lambda: self.repository.update_booking(booking_id, changes), entity="bookings"
        )

    async def delete_booking(self, booking_id: str) -> None:
        await self.retry.run(lambda: self.repository.delete_booking(booking_id), entity="bookings")
        logger.info("Deleted booking %s", booking_id)

    async def list_users(self) -> List[User]:
        return await self.retry.run(self.repository.list_users, entity="users")

    async def create_user(
        self, email: str, full_name: str = "", phone: str = "", role: UserRole = UserRole.user
    ) -> User:
        user = User(id="", email=email, full_name=full_name, phone=phone, role=UserRole(role))
        return await self.retry.run(lambda: self.repository.create_user(user), entity="users")

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> User:
        if "role" in changes:
            changes = {**changes, "role": UserRole(changes["role"])}
        return await self.retry.run(lambda: self.repository.update_user(user_id, changes), entity="users")

    async def delete_user(self, user_id: str) -> None:
        await self.retry.run(lambda: self.repository.delete_user(user_id), entity="users")
        logger.info("Deleted user %s", user_id)

    async def list_services(self) -> List[Service]:
        return await self.retry.run(self.repository.list_services, entity="services")

    async def update_service(self, service_id: str, changes: Dict[str, Any]) -> Service:
        if "status" in changes:
            current = await self.retry.run(
                lambda: self.repository.get_service(service_id), entity="services"
            )
            if current is not None:
                changes = {**changes, "status": transition_status(current.status, changes["status"])}
        return await self.retry.run(
            lambda: self.repository.update_service(service_id, changes), entity="services"
        )

    async def delete_service(self, service_id: str) -> None:
        await self.retry.run(lambda: self.repository.delete_service(service_id), entity="services")
        logger.info("Deleted service %s", service_id)

    async def analytics(self) -> AnalyticsSummary:
        counts, revenue = await self.retry.run(self.repository.booking_totals, entity="bookings")
        users = await self.retry.run(self.repository.list_users, entity="users")
        return AnalyticsSummary(
            total_bookings=sum(counts.values()),
            bookings_by_status=counts,
            paid_revenue=revenue,
            test_mode_bookings=counts.get(BookingStatus.test_mode.value, 0),
            total_users=len(users),
        )

    async def reconcile_orphaned_services(self, older_than: timedelta) -> List[str]:
        """Delete services that never got a booking and are older than the grace period."""
        cutoff = self.clock() - older_than
        orphans = await self.retry.run(
            lambda: self.repository.list_orphaned_services(cutoff), entity="services"
        )
        removed: List[str] = []
        for service in orphans:
            await self.retry.run(lambda: self.repository.delete_service(service.id), entity="services")
            removed.append(service.id)
        if removed:
            logger.warning("Removed %d orphaned services: %s", len(removed), ", ".join(removed))
        return removed
