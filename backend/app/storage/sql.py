from __future__ import annotations

import logging
from dataclasses import fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from app.core.errors import RecordNotFoundError
from app.models.domain import (
    Booking,
    BookingStatus,
    BookingSummary,
    Service,
    ServiceSummary,
    User,
    UserRole,
    UserSummary,
    generate_service_number,
)
from app.storage.repository import check_changes
from app.storage.tables import Base, BookingRow, ServiceRow, UserRow

logger = logging.getLogger(__name__)


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc)
    return value


def _aware(value: Any) -> Any:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _values(row: Any, model: Type) -> Dict[str, Any]:
    return {f.name: _aware(getattr(row, f.name)) for f in fields(model)}


def _user(row: UserRow) -> User:
    data = _values(row, User)
    data["role"] = UserRole(data["role"])
    return User(**data)


def _service(row: ServiceRow) -> Service:
    data = _values(row, Service)
    data["status"] = BookingStatus(data["status"])
    return Service(**data)


def _booking(row: BookingRow) -> Booking:
    data = _values(row, Booking)
    data["status"] = BookingStatus(data["status"])
    return Booking(**data)


class SqlRepository:
    """
    RecordStore backed by SQLAlchemy's async engine. Any async driver works;
    the default URL points at a local sqlite+aiosqlite file.
    """

    def __init__(self, database_url: str | None = None, engine: AsyncEngine | None = None):
        if engine is None:
            if not database_url:
                raise ValueError("database_url or engine is required")
            engine = create_async_engine(database_url, future=True)
        self.engine = engine
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def _insert(self, row: Any) -> Any:
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row

    async def _get(self, table: Type, record_id: str) -> Any:
        async with self.session_factory() as session:
            return await session.get(table, record_id)

    async def _update(self, table: Type, entity: str, record_id: str, changes: Dict[str, Any]) -> Any:
        async with self.session_factory() as session:
            row = await session.get(table, record_id)
            if row is None:
                raise RecordNotFoundError(entity, record_id)
            for name, value in changes.items():
                setattr(row, name, _column_value(value))
            await session.commit()
            await session.refresh(row)
            return row

    async def _delete(self, table: Type, entity: str, record_id: str) -> None:
        async with self.session_factory() as session:
            row = await session.get(table, record_id)
            if row is None:
                raise RecordNotFoundError(entity, record_id)
            await session.delete(row)
            await session.commit()

    async def create_user(self, user: User) -> User:
        data = {k: _column_value(v) for k, v in _values(user, User).items()}
        if not data["id"]:
            data.pop("id")
        return _user(await self._insert(UserRow(**data)))

    async def get_user(self, user_id: str) -> Optional[User]:
        row = await self._get(UserRow, user_id)
        return _user(row) if row else None

    async def list_users(self) -> List[User]:
        async with self.session_factory() as session:
            result = await session.scalars(select(UserRow).order_by(UserRow.created_at.desc()))
            return [_user(row) for row in result]

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> User:
        check_changes(User, changes)
        return _user(await self._update(UserRow, "users", user_id, changes))

    async def delete_user(self, user_id: str) -> None:
        await self._delete(UserRow, "users", user_id)

    async def create_service(
        self, user_id: Optional[str], idempotency_key: str, status: BookingStatus
    ) -> Service:
        row = ServiceRow(
            service_number=generate_service_number(),
            user_id=user_id,
            idempotency_key=idempotency_key,
            status=_column_value(status),
        )
        return _service(await self._insert(row))

    async def get_service(self, service_id: str) -> Optional[Service]:
        row = await self._get(ServiceRow, service_id)
        return _service(row) if row else None

    async def list_services(self) -> List[Service]:
        async with self.session_factory() as session:
            result = await session.scalars(select(ServiceRow).order_by(ServiceRow.created_at.desc()))
            return [_service(row) for row in result]

    async def update_service(self, service_id: str, changes: Dict[str, Any]) -> Service:
        check_changes(Service, changes, readonly=("id", "service_number"))
        return _service(await self._update(ServiceRow, "services", service_id, changes))

    async def delete_service(self, service_id: str) -> None:
        await self._delete(ServiceRow, "services", service_id)

    async def list_orphaned_services(self, created_before: datetime) -> List[Service]:
        linked = select(BookingRow.service_id).where(BookingRow.service_id.is_not(None))
        stmt = select(ServiceRow).where(
            ServiceRow.created_at < _column_value(created_before), ServiceRow.id.not_in(linked)
        )
        async with self.session_factory() as session:
            return [_service(row) for row in await session.scalars(stmt)]

    async def create_booking(self, booking: Booking) -> Booking:
        data = {k: _column_value(v) for k, v in _values(booking, Booking).items()}
        if not data["id"]:
            data.pop("id")
        return _booking(await self._insert(BookingRow(**data)))

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        row = await self._get(BookingRow, booking_id)
        return _booking(row) if row else None

    async def find_booking_by_key(self, idempotency_key: str) -> Optional[Booking]:
        stmt = select(BookingRow).where(BookingRow.idempotency_key == idempotency_key).limit(1)
        async with self.session_factory() as session:
            row = await session.scalar(stmt)
            return _booking(row) if row else None

    async def list_bookings(
        self, offset: int, limit: int, status: Optional[BookingStatus] = None
    ) -> Tuple[List[BookingSummary], int]:
        stmt = (
            select(BookingRow, UserRow.email, ServiceRow.service_number, ServiceRow.status)
            .outerjoin(UserRow, BookingRow.user_id == UserRow.id)
            .outerjoin(ServiceRow, BookingRow.service_id == ServiceRow.id)
            .order_by(BookingRow.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(BookingRow)
        if status is not None:
            stmt = stmt.where(BookingRow.status == _column_value(status))
            count_stmt = count_stmt.where(BookingRow.status == _column_value(status))

        async with self.session_factory() as session:
            total = await session.scalar(count_stmt) or 0
            rows = (await session.execute(stmt)).all()

        summaries = []
        for row, email, service_number, service_status in rows:
            booking = _booking(row)
            summaries.append(
                BookingSummary(
                    booking=booking,
                    user=UserSummary(id=booking.user_id, email=email) if email is not None else None,
                    service=ServiceSummary(
                        id=booking.service_id,
                        service_number=service_number,
                        status=BookingStatus(service_status),
                    )
                    if service_number is not None
                    else None,
                )
            )
        return summaries, total

    async def update_booking(self, booking_id: str, changes: Dict[str, Any]) -> Booking:
        check_changes(Booking, changes, readonly=("id", "created_at"))
        return _booking(await self._update(BookingRow, "bookings", booking_id, changes))

    async def delete_booking(self, booking_id: str) -> None:
        await self._delete(BookingRow, "bookings", booking_id)

    async def booking_totals(self) -> Tuple[Dict[str, int], float]:
        stmt = select(
            BookingRow.status,
            func.count(),
            func.coalesce(func.sum(BookingRow.total_cost), 0.0),
        ).group_by(BookingRow.status)
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()
        counts = {status: count for status, count, _ in rows}
        revenue = sum(total for status, _, total in rows if status == BookingStatus.paid.value)
        return counts, round(float(revenue), 2)
