from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.models.domain import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(AsyncAttrs, DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(Text)
    full_name: Mapped[str] = mapped_column(Text, default="")
    phone: Mapped[str] = mapped_column(String(32), default="")
    role: Mapped[str] = mapped_column(String(16), default="user")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ServiceRow(Base):
    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    service_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    idempotency_key: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[str] = mapped_column(String(16), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class BookingRow(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    service_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True
    )
    service_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    # Advisory only; duplicates are detected by lookup, not by a constraint.
    idempotency_key: Mapped[str] = mapped_column(String(64), index=True)

    service_type: Mapped[str] = mapped_column(String(64))
    user_name: Mapped[str] = mapped_column(Text)
    phone_number: Mapped[str] = mapped_column(String(32))
    vehicle_brand: Mapped[str] = mapped_column(Text)
    vehicle_model: Mapped[str] = mapped_column(Text)
    vehicle_color: Mapped[str] = mapped_column(Text)
    license_plate: Mapped[str] = mapped_column(String(32))
    vehicle_size: Mapped[str] = mapped_column(String(32))
    pickup_address: Mapped[str] = mapped_column(Text)
    drop_off_address: Mapped[str] = mapped_column(Text)
    pickup_datetime: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    vehicle_issue: Mapped[str] = mapped_column(Text, default="")
    additional_details: Mapped[str] = mapped_column(Text, default="")
    wheels_status: Mapped[str] = mapped_column(String(64), default="")

    distance: Mapped[float] = mapped_column(Float)
    total_cost: Mapped[float] = mapped_column(Float)
    tow_truck_type: Mapped[str] = mapped_column(String(32))
    payment_method: Mapped[str] = mapped_column(String(32), default="card")
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pending", index=True)
    is_test_mode: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
