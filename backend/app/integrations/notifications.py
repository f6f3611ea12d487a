from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import requests

from app.core.errors import NotificationError
from app.models.domain import BookingForm

logger = logging.getLogger(__name__)


class AdminNotifier(Protocol):
    async def notify(self, form: BookingForm, total_cost: float, is_test_mode: bool) -> None:
        ...


def build_payload(form: BookingForm, total_cost: float, is_test_mode: bool) -> dict:
    prefix = "[TEST] " if is_test_mode else ""
    return {
        "text": (
            f"{prefix}New tow booking: {form.user_name} ({form.phone_number}), "
            f"{form.vehicle_brand} {form.vehicle_model} {form.license_plate}, "
            f"{form.pickup_address} -> {form.drop_off_address}, ${total_cost:.2f}"
        ),
        "booking": {
            "user_name": form.user_name,
            "phone_number": form.phone_number,
            "service_type": form.service_type,
            "vehicle": f"{form.vehicle_color} {form.vehicle_brand} {form.vehicle_model}".strip(),
            "license_plate": form.license_plate,
            "pickup_address": form.pickup_address,
            "drop_off_address": form.drop_off_address,
            "pickup_datetime": form.pickup_datetime.isoformat() if form.pickup_datetime else None,
            "total_cost": total_cost,
            "is_test_mode": is_test_mode,
        },
    }


class WebhookAdminNotifier:
    """Posts booking notices to an incoming-webhook URL (Slack-style JSON)."""

    def __init__(self, url: str, timeout: float = 8.0):
        self.url = url
        self.timeout = timeout

    async def notify(self, form: BookingForm, total_cost: float, is_test_mode: bool) -> None:
        await asyncio.to_thread(self._post, build_payload(form, total_cost, is_test_mode))

    def _post(self, payload: dict) -> None:
        try:
            resp = requests.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise NotificationError(f"Admin notification failed: {exc}") from exc


class LoggingAdminNotifier:
    async def notify(self, form: BookingForm, total_cost: float, is_test_mode: bool) -> None:
        logger.info("Admin notice: %s", build_payload(form, total_cost, is_test_mode)["text"])
