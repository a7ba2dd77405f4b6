"""
Stripe Checkout provider.

The SDK is synchronous, so session creation runs in a worker thread to keep
the event loop free. Webhook signatures are checked against the raw body
before anything is parsed.
"""

import asyncio
import json
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

import stripe

from dancelink.core.exceptions import PaymentProviderError, ProviderConfigurationError, WebhookSignatureError
from dancelink.core.logging import get_logger
from dancelink.domain.entities import utcnow
from dancelink.domain.enums import PaymentOutcome, PaymentProviderName
from dancelink.domain.money import from_minor_units, to_minor_units
from dancelink.services.interfaces.payment_provider import (
    PaymentIntent,
    PaymentIntentRequest,
    PaymentProvider,
    ProviderEvent,
)

logger = get_logger(__name__)

EVENT_OUTCOMES = {
    "checkout.session.completed": PaymentOutcome.SUCCEEDED,
    "payment_intent.succeeded": PaymentOutcome.SUCCEEDED,
    "payment_intent.payment_failed": PaymentOutcome.FAILED,
    "payment_intent.canceled": PaymentOutcome.CANCELLED,
    "checkout.session.expired": PaymentOutcome.CANCELLED,
    "charge.dispute.created": PaymentOutcome.DISPUTED,
}


class StripeProvider(PaymentProvider):
    name = PaymentProviderName.STRIPE

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        currency: str = "usd",
        session_ttl_minutes: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency.lower()
        self.session_ttl = timedelta(minutes=session_ttl_minutes)
        self.clock = clock

    def validate_config(self) -> list[str]:
        errors = []
        if not self.secret_key:
            errors.append("STRIPE_SECRET_KEY is not set")
        return errors

    def _line_item(self, name: str, amount: Decimal, description: Optional[str] = None, image: Optional[str] = None) -> dict:
        product_data = {"name": name}
        if description:
            product_data["description"] = description
        if image:
            product_data["images"] = [image]
        return {
            "price_data": {
                "currency": self.currency,
                "product_data": product_data,
                "unit_amount": to_minor_units(amount),
            },
            "quantity": 1,
        }

    def build_line_items(self, request: PaymentIntentRequest) -> list[dict]:
        description = request.item_description
        if request.venue_name:
            description = f"{description or request.item_name} at {request.venue_name}"
        items = [self._line_item(request.item_name, request.base_amount, description, request.item_image)]
        if request.discount_amount > 0:
            items.append(self._line_item("Discount", -request.discount_amount))
        if request.tax_amount > 0:
            items.append(self._line_item("Tax", request.tax_amount))
        return items

    async def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntent:
        expires_at = self.clock() + self.session_ttl
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self.secret_key,
                payment_method_types=["card"],
                line_items=self.build_line_items(request),
                mode="payment",
                success_url=request.success_url,
                cancel_url=request.cancel_url,
                customer_email=request.user_email,
                client_reference_id=request.booking_id,
                metadata=request.metadata(),
                expires_at=int(expires_at.timestamp()),
            )
        except stripe.StripeError as exc:
            logger.error("stripe_session_failed", booking_id=request.booking_id, error=str(exc))
            raise PaymentProviderError(
                "Failed to create payment session",
                details=getattr(exc, "user_message", None) or str(exc),
            ) from exc

        return PaymentIntent(
            provider=self.name,
            provider_ref=session.id,
            status=getattr(session, "status", None) or "open",
            session_id=session.id,
            payment_ref=getattr(session, "payment_intent", None),
            redirect_url=getattr(session, "url", None),
            raw={
                "id": session.id,
                "url": getattr(session, "url", None),
                "expires_at": int(expires_at.timestamp()),
                "metadata": request.metadata(),
            },
        )

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> ProviderEvent:
        if not self.webhook_secret:
            raise ProviderConfigurationError(
                "Stripe configuration invalid", details=["STRIPE_WEBHOOK_SECRET is not set"]
            )
        if not signature:
            raise WebhookSignatureError(details="Missing stripe-signature header")
        try:
            stripe.WebhookSignature.verify_header(payload.decode("utf-8"), signature, self.webhook_secret)
            event = json.loads(payload)
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError(details=str(exc)) from exc
        except ValueError as exc:
            raise WebhookSignatureError(details="Malformed payload") from exc
        return self.parse_event(event)

    def parse_event(self, event: dict) -> ProviderEvent:
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}
        parsed = ProviderEvent(
            provider=self.name,
            event_id=event.get("id", ""),
            event_type=event_type,
            outcome=EVENT_OUTCOMES.get(event_type, PaymentOutcome.IGNORED),
            raw=event,
        )

        if event_type.startswith("checkout.session."):
            parsed.session_id = obj.get("id")
            parsed.payment_ref = obj.get("payment_intent")
            if obj.get("amount_total") is not None:
                parsed.amount = from_minor_units(obj["amount_total"])
            method_types = obj.get("payment_method_types") or ["card"]
            parsed.payment_method = method_types[0]
            if event_type == "checkout.session.expired":
                parsed.failure_reason = "Checkout session expired"
        elif event_type.startswith("payment_intent."):
            parsed.payment_ref = obj.get("id")
            received = obj.get("amount_received") or obj.get("amount")
            if received is not None:
                parsed.amount = from_minor_units(received)
            method_types = obj.get("payment_method_types") or []
            parsed.payment_method = method_types[0] if method_types else None
            if event_type == "payment_intent.payment_failed":
                last_error = obj.get("last_payment_error") or {}
                parsed.failure_reason = last_error.get("message") or "Payment failed"
            elif event_type == "payment_intent.canceled":
                parsed.failure_reason = obj.get("cancellation_reason") or "Payment canceled"
        elif event_type == "charge.dispute.created":
            parsed.payment_ref = obj.get("payment_intent")
            parsed.dispute = {
                "disputeId": obj.get("id"),
                "chargeId": obj.get("charge"),
                "amount": float(from_minor_units(obj["amount"])) if obj.get("amount") is not None else None,
                "reason": obj.get("reason"),
                "status": obj.get("status"),
            }
        return parsed
