from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, Optional
from uuid import uuid4

from app.core.config import Settings, settings as default_settings
from app.core.errors import (
    AuthenticationError,
    PaymentError,
    PersistenceError,
    RecordNotFoundError,
    TowingError,
    ValidationError,
)
from app.integrations.maps import RouteClient
from app.integrations.notifications import AdminNotifier
from app.integrations.payment import PaymentGateway, PaymentIntent, PaymentResult, to_cents
from app.models.domain import (
    AuthSession,
    Booking,
    BookingConfirmation,
    BookingDraft,
    BookingForm,
    BookingStatus,
    BookingStep,
    PriceQuote,
    Service,
    transition_status,
    utcnow,
)
from app.services.pricing import PricingCalculator, default_calculator, get_vehicle_size
from app.services.validation import as_utc, validate_form
from app.storage.repository import RecordStore

logger = logging.getLogger(__name__)

MIN_CHARGE_CENTS = 50


class BookingService:
    """
    Drives one booking submission through validate -> charge -> persist ->
    notify. Every step fails closed except the admin notification, and the
    payment gateway is called at most once per submission.
    """

    def __init__(
        self,
        repository: RecordStore,
        payment_gateway: PaymentGateway,
        notifier: AdminNotifier,
        route_client: Optional[RouteClient] = None,
        pricing: Optional[PricingCalculator] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.payment_gateway = payment_gateway
        self.notifier = notifier
        self.route_client = route_client
        self.pricing = pricing or default_calculator
        self.settings = settings or default_settings
        self.clock = clock

    async def create_payment_intent(self, amount_cents: int) -> PaymentIntent:
        if amount_cents < MIN_CHARGE_CENTS:
            raise ValidationError(
                f"Amount must be at least {MIN_CHARGE_CENTS} cents", {"amount": "too small"}
            )
        intent = await self.payment_gateway.create_payment_intent(amount_cents)
        logger.info("Created payment intent %s for %d cents", intent.intent_id, amount_cents)
        return intent

    async def quote(
        self,
        vehicle_size: str | None,
        vehicle_model: str | None = None,
        distance: float | None = None,
        pickup_address: str | None = None,
        drop_off_address: str | None = None,
    ) -> PriceQuote:
        size = vehicle_size or get_vehicle_size(vehicle_model)
        if not size:
            raise ValidationError(
                "Vehicle size is required", {"vehicle_size": "unknown vehicle model, pick a size"}
            )
        if distance is None:
            distance = await self._route_distance(pickup_address, drop_off_address)
        return self.pricing.calculate_total_cost(size, distance)

    async def get_booking(self, booking_id: str) -> Booking:
        booking = await self.repository.get_booking(booking_id)
        if booking is None:
            raise RecordNotFoundError("bookings", booking_id)
        return booking

    async def submit(
        self,
        form: BookingForm,
        session: Optional[AuthSession] = None,
        payment_client_secret: Optional[str] = None,
        test_mode: bool = False,
        idempotency_key: Optional[str] = None,
        session_loader: Optional[Callable[[], Awaitable[Optional[AuthSession]]]] = None,
    ) -> BookingConfirmation:
        if not form.vehicle_size:
            form = replace(form, vehicle_size=get_vehicle_size(form.vehicle_model) or "")
        draft = BookingDraft(
            form=form,
            idempotency_key=idempotency_key or str(uuid4()),
            is_test_mode=test_mode,
        )
        try:
            draft = draft.advance(BookingStep.validating)
            draft = await self._validate(draft)

            draft = draft.advance(BookingStep.awaiting_payment)
            if session is None and session_loader is not None:
                session = await session_loader()
            self._authorize(draft, session)
            existing = await self._find_existing(draft)
            if existing is not None:
                draft = draft.advance(BookingStep.confirmed)
                logger.info("Replaying booking %s for key %s", existing.id, draft.idempotency_key)
                return BookingConfirmation.from_booking(existing, replayed=True)
            payment = await self._confirm_payment(draft, payment_client_secret)

            draft = draft.advance(BookingStep.persisting)
            booking = await self._persist(draft, session, payment)

            draft = draft.advance(BookingStep.notifying)
            await self._notify(draft)

            draft = draft.advance(BookingStep.confirmed)
        except TowingError as exc:
            failed_step = draft.step
            draft = draft.fail(exc.message)
            logger.warning(
                "Booking %s failed during %s: %s",
                draft.idempotency_key,
                failed_step.value,
                draft.failure_reason,
            )
            raise
        return BookingConfirmation.from_booking(booking)

    async def _validate(self, draft: BookingDraft) -> BookingDraft:
        validate_form(draft.form, now=self.clock())
        if draft.form.distance is None:
            distance = await self._route_distance(draft.form.pickup_address, draft.form.drop_off_address)
            draft = draft.with_distance(distance)
        quote = self.pricing.calculate_total_cost(draft.form.vehicle_size, draft.form.distance)
        return draft.with_quote(quote)

    async def _route_distance(self, origin: str | None, destination: str | None) -> float:
        if self.route_client is None or not origin or not destination:
            raise ValidationError("Route distance is required", {"distance": "required"})
        return await self.route_client.distance_km(origin, destination)

    def _authorize(self, draft: BookingDraft, session: Optional[AuthSession]) -> None:
        if draft.is_test_mode:
            if not self.settings.allow_test_mode:
                raise AuthenticationError("Test mode is disabled on this deployment")
            return
        if session is None:
            raise AuthenticationError("Sign in to book a tow truck")

    async def _find_existing(self, draft: BookingDraft) -> Optional[Booking]:
        try:
            return await self.repository.find_booking_by_key(draft.idempotency_key)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError("Could not check for an existing booking") from exc

    async def _confirm_payment(
        self, draft: BookingDraft, client_secret: Optional[str]
    ) -> Optional[PaymentResult]:
        if draft.is_test_mode:
            return None
        if not client_secret:
            raise PaymentError("Payment details are missing")
        try:
            result = await self.payment_gateway.confirm_payment(
                client_secret, self.settings.payment_return_url
            )
        except PaymentError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise PaymentError("Payment service unavailable") from exc
        if not result.success:
            raise PaymentError(result.error or "Payment failed")
        expected = to_cents(draft.quote.total_cost)
        if result.amount is not None and result.amount != expected:
            logger.error(
                "Payment %s charged %s cents, quote was %s cents",
                result.intent_id,
                result.amount,
                expected,
            )
            raise PaymentError("Payment amount does not match the quoted price")
        return result

    async def _persist(
        self,
        draft: BookingDraft,
        session: Optional[AuthSession],
        payment: Optional[PaymentResult],
    ) -> Booking:
        final_status = BookingStatus.test_mode if draft.is_test_mode else BookingStatus.paid
        user_id = session.user_id if session else None
        try:
            service = await self.repository.create_service(user_id, draft.idempotency_key, final_status)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError("Could not reserve a service number") from exc

        booking = self._build_booking(draft, service, user_id, payment, final_status)
        try:
            stored = await self.repository.create_booking(booking)
        except Exception as exc:  # noqa: BLE001
            orphan = await self._compensate(service)
            raise PersistenceError("Could not save the booking", orphaned_service_id=orphan) from exc

        logger.info(
            "Booked %s (service %s) for %.2f, status %s",
            stored.id,
            service.service_number,
            stored.total_cost,
            stored.status.value,
        )
        return stored

    async def _compensate(self, service: Service) -> Optional[str]:
        try:
            await self.repository.delete_service(service.id)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.warning("Service %s left orphaned for reconciliation: %s", service.id, exc)
            return service.id

    def _build_booking(
        self,
        draft: BookingDraft,
        service: Service,
        user_id: Optional[str],
        payment: Optional[PaymentResult],
        final_status: BookingStatus,
    ) -> Booking:
        form, quote = draft.form, draft.quote
        return Booking(
            id="",
            user_id=user_id,
            service_id=service.id,
            service_number=service.service_number,
            idempotency_key=draft.idempotency_key,
            service_type=form.service_type,
            user_name=form.user_name.strip(),
            phone_number=form.phone_number.strip(),
            vehicle_brand=form.vehicle_brand,
            vehicle_model=form.vehicle_model,
            vehicle_color=form.vehicle_color,
            license_plate=form.license_plate.strip().upper(),
            vehicle_size=quote.vehicle_size,
            pickup_address=form.pickup_address,
            drop_off_address=form.drop_off_address,
            pickup_datetime=as_utc(form.pickup_datetime),
            distance=quote.distance,
            total_cost=quote.total_cost,
            tow_truck_type=quote.tow_truck_type.value,
            status=transition_status(BookingStatus.pending, final_status),
            payment_method=form.payment_method,
            vehicle_issue=form.vehicle_issue,
            additional_details=form.additional_details,
            wheels_status=form.wheels_status,
            payment_intent_id=payment.intent_id if payment else None,
            is_test_mode=draft.is_test_mode,
            created_at=self.clock(),
        )

    async def _notify(self, draft: BookingDraft) -> None:
        try:
            await self.notifier.notify(draft.form, draft.quote.total_cost, draft.is_test_mode)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Admin notification failed for %s: %s", draft.idempotency_key, exc)
