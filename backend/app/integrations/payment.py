from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Set
from uuid import uuid4

import stripe

from app.core.errors import ConfigurationError, PaymentError

logger = logging.getLogger(__name__)

# Stripe intents that count as a confirmed charge (requires_capture covers manual capture).
CONFIRMED_STATUSES = {"succeeded", "requires_capture"}


@dataclass
class PaymentIntent:
    client_secret: str
    intent_id: str
    amount: int


@dataclass
class PaymentResult:
    success: bool
    error: Optional[str] = None
    intent_id: Optional[str] = None
    amount: Optional[int] = None


class PaymentGateway(Protocol):
    """Payment processor abstraction to allow swapping providers."""

    async def create_payment_intent(self, amount_cents: int) -> PaymentIntent:
        ...

    async def confirm_payment(self, client_secret: str, return_url: str) -> PaymentResult:
        ...


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def intent_id_from_secret(client_secret: str) -> str:
    intent_id, sep, _ = (client_secret or "").partition("_secret_")
    if not sep or not intent_id:
        raise PaymentError("Malformed payment client secret")
    return intent_id


class StripePaymentGateway:
    """
    PaymentGateway implementation using Stripe PaymentIntents. The browser
    confirms the intent through the Payment Element; this side verifies the
    intent state and confirms intents still waiting for confirmation.
    """

    def __init__(self, api_key: str | None, currency: str = "usd"):
        if not api_key:
            raise ConfigurationError("STRIPE_API_KEY is required for the stripe payment provider")
        self.api_key = api_key
        self.currency = currency

    async def create_payment_intent(self, amount_cents: int) -> PaymentIntent:
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=amount_cents,
                currency=self.currency,
                automatic_payment_methods={"enabled": True},
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            logger.error("Stripe intent creation failed: %s", exc)
            raise PaymentError(exc.user_message or "Could not create payment intent") from exc
        return PaymentIntent(client_secret=intent.client_secret, intent_id=intent.id, amount=intent.amount)

    async def confirm_payment(self, client_secret: str, return_url: str) -> PaymentResult:
        intent_id = intent_id_from_secret(client_secret)
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.retrieve, intent_id, api_key=self.api_key
            )
            if intent.client_secret != client_secret:
                return PaymentResult(success=False, error="Payment client secret mismatch")
            if intent.status == "requires_confirmation":
                intent = await asyncio.to_thread(
                    stripe.PaymentIntent.confirm,
                    intent_id,
                    return_url=return_url,
                    api_key=self.api_key,
                )
        except stripe.StripeError as exc:
            logger.warning("Stripe confirmation failed for %s: %s", intent_id, exc)
            return PaymentResult(success=False, error=exc.user_message or str(exc), intent_id=intent_id)

        if intent.status not in CONFIRMED_STATUSES:
            return PaymentResult(
                success=False,
                error=f"Payment not completed (status: {intent.status})",
                intent_id=intent.id,
                amount=intent.amount,
            )
        return PaymentResult(success=True, intent_id=intent.id, amount=intent.amount)


@dataclass
class MockPaymentGateway:
    """Deterministic in-process gateway for local runs and tests."""

    intents: Dict[str, PaymentIntent] = field(default_factory=dict)
    declined: Set[str] = field(default_factory=set)
    confirm_calls: int = 0

    async def create_payment_intent(self, amount_cents: int) -> PaymentIntent:
        intent_id = f"pi_mock_{uuid4().hex[:16]}"
        intent = PaymentIntent(
            client_secret=f"{intent_id}_secret_{uuid4().hex[:12]}",
            intent_id=intent_id,
            amount=amount_cents,
        )
        self.intents[intent.client_secret] = intent
        return intent

    def decline(self, client_secret: str) -> None:
        self.declined.add(client_secret)

    async def confirm_payment(self, client_secret: str, return_url: str) -> PaymentResult:
        self.confirm_calls += 1
        intent = self.intents.get(client_secret)
        if intent is None:
            return PaymentResult(success=False, error="No such payment intent")
        if client_secret in self.declined:
            return PaymentResult(success=False, error="Your card was declined.", intent_id=intent.intent_id)
        return PaymentResult(success=True, intent_id=intent.intent_id, amount=intent.amount)
