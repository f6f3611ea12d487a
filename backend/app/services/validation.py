from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.core.errors import ValidationError
from app.models.domain import BookingForm

PHONE_PATTERN = re.compile(r"^\d{10}$")

REQUIRED_FIELDS = {
    "vehicle_brand": "Vehicle brand is required",
    "vehicle_model": "Vehicle model is required",
    "vehicle_color": "Vehicle color is required",
    "vehicle_size": "Vehicle size is required",
}


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _check_min_length(errors: Dict[str, str], name: str, value: str, minimum: int, label: str) -> None:
    value = (value or "").strip()
    if not value:
        errors[name] = f"{label} is required"
    elif len(value) < minimum:
        errors[name] = f"{label} must be at least {minimum} characters"


def _check_phone(errors: Dict[str, str], value: str | None) -> None:
    if not PHONE_PATTERN.match((value or "").strip()):
        errors["phone_number"] = "Phone number must be 10 digits"


def _check_pickup(errors: Dict[str, str], value: Optional[datetime], now: datetime) -> None:
    if value is None:
        errors["pickup_datetime"] = "Pickup date and time is required"
    elif as_utc(value) <= now:
        errors["pickup_datetime"] = "Pickup time must be in the future"


def validate_form(form: BookingForm, now: Optional[datetime] = None) -> BookingForm:
    now = as_utc(now or datetime.now(timezone.utc))
    errors: Dict[str, str] = {}

    _check_min_length(errors, "user_name", form.user_name, 2, "Name")
    _check_phone(errors, form.phone_number)

    for name, message in REQUIRED_FIELDS.items():
        if not (getattr(form, name) or "").strip():
            errors[name] = message

    _check_min_length(errors, "license_plate", form.license_plate, 2, "License plate")
    _check_min_length(errors, "pickup_address", form.pickup_address, 5, "Pickup address")
    _check_min_length(errors, "drop_off_address", form.drop_off_address, 5, "Drop-off address")
    _check_pickup(errors, form.pickup_datetime, now)

    if form.distance is not None and (not math.isfinite(form.distance) or form.distance < 0):
        errors["distance"] = "Distance must be >= 0"

    if errors:
        raise ValidationError("Please complete all required fields correctly.", errors)
    return form


def validate_booking_changes(changes: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Apply the form rules to the fields an admin edit touches; returns the changes with pickup in UTC."""
    now = as_utc(now or datetime.now(timezone.utc))
    errors: Dict[str, str] = {}

    if "phone_number" in changes:
        _check_phone(errors, changes["phone_number"])
    if "pickup_address" in changes:
        _check_min_length(errors, "pickup_address", changes["pickup_address"], 5, "Pickup address")
    if "drop_off_address" in changes:
        _check_min_length(errors, "drop_off_address", changes["drop_off_address"], 5, "Drop-off address")
    if "pickup_datetime" in changes:
        _check_pickup(errors, changes["pickup_datetime"], now)

    if errors:
        raise ValidationError("Please complete all required fields correctly.", errors)
    if changes.get("pickup_datetime") is not None:
        changes = {**changes, "pickup_datetime": as_utc(changes["pickup_datetime"])}
    return changes
