"""
Tests for the Stripe provider: line items, session creation and webhook
verification. The SDK call is monkeypatched; signatures are computed for real.
"""

import json
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from dancelink.core.exceptions import PaymentProviderError, ProviderConfigurationError, WebhookSignatureError
from dancelink.domain.enums import ItemType, PaymentOutcome, PaymentProviderName
from dancelink.infrastructure.stripe_provider import StripeProvider
from dancelink.services.interfaces.payment_provider import PaymentIntentRequest
from tests.conftest import NOW, STRIPE_WEBHOOK_SECRET, fixed_clock, stripe_event, stripe_signature


@pytest.fixture
def provider() -> StripeProvider:
    return StripeProvider(secret_key="sk_test_123", webhook_secret=STRIPE_WEBHOOK_SECRET, clock=fixed_clock)


def make_request(**overrides) -> PaymentIntentRequest:
    values = dict(
        booking_id="b-1",
        user_id="u-1",
        user_email="ana@example.com",
        user_name="Ana Souza",
        item_type=ItemType.CLASS,
        item_id="c-1",
        item_name="Salsa Foundations",
        item_description="Beginner salsa",
        item_image=None,
        venue_name="Studio A",
        base_amount=Decimal("25.00"),
        discount_amount=Decimal("5.00"),
        tax_amount=Decimal("2.00"),
        success_url="https://dancelink.test/ok",
        cancel_url="https://dancelink.test/cancel",
    )
    values.update(overrides)
    return PaymentIntentRequest(**values)


def test_line_items_include_discount_and_tax(provider):
    items = provider.build_line_items(make_request())

    assert [i["price_data"]["unit_amount"] for i in items] == [2500, -500, 200]
    assert [i["price_data"]["product_data"]["name"] for i in items] == ["Salsa Foundations", "Discount", "Tax"]
    assert items[0]["price_data"]["product_data"]["description"] == "Beginner salsa at Studio A"
    assert all(i["price_data"]["currency"] == "usd" for i in items)


def test_line_items_without_adjustments(provider):
    items = provider.build_line_items(make_request(discount_amount=Decimal("0"), tax_amount=Decimal("0")))
    assert len(items) == 1


def test_validate_config():
    assert StripeProvider(secret_key="", webhook_secret="").validate_config() == ["STRIPE_SECRET_KEY is not set"]


@pytest.mark.asyncio
async def test_create_payment_intent(provider, monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cs_live_1", url="https://checkout.stripe.test/cs_live_1", payment_intent=None, status="open")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    intent = await provider.create_payment_intent(make_request())

    assert intent.provider == PaymentProviderName.STRIPE
    assert intent.session_id == "cs_live_1"
    assert intent.provider_ref == "cs_live_1"
    assert intent.redirect_url == "https://checkout.stripe.test/cs_live_1"
    assert intent.payment_ref is None

    assert captured["api_key"] == "sk_test_123"
    assert captured["mode"] == "payment"
    assert captured["client_reference_id"] == "b-1"
    assert captured["customer_email"] == "ana@example.com"
    assert captured["metadata"]["bookingId"] == "b-1"
    assert captured["metadata"]["bookingType"] == "class"
    assert captured["expires_at"] == int((NOW + timedelta(minutes=30)).timestamp())


@pytest.mark.asyncio
async def test_create_payment_intent_maps_stripe_errors(provider, monkeypatch):
    def failing_create(**kwargs):
        raise stripe.StripeError("No such price")

    monkeypatch.setattr(stripe.checkout.Session, "create", failing_create)

    with pytest.raises(PaymentProviderError) as exc_info:
        await provider.create_payment_intent(make_request())
    assert exc_info.value.message == "Failed to create payment session"


def test_verify_webhook(provider):
    payload = stripe_event(
        "checkout.session.completed",
        {"id": "cs_1", "payment_intent": "pi_1", "amount_total": 2200, "payment_method_types": ["card"]},
        event_id="evt_1",
    )

    event = provider.verify_webhook(payload.encode(), stripe_signature(payload))

    assert event.event_id == "evt_1"
    assert event.outcome == PaymentOutcome.SUCCEEDED
    assert event.session_id == "cs_1"
    assert event.payment_ref == "pi_1"
    assert event.amount == Decimal("22.00")
    assert event.payment_method == "card"


def test_verify_webhook_rejects_bad_signatures(provider):
    payload = stripe_event("checkout.session.completed", {"id": "cs_1"})

    with pytest.raises(WebhookSignatureError):
        provider.verify_webhook(payload.encode(), None)
    with pytest.raises(WebhookSignatureError):
        provider.verify_webhook(payload.encode(), stripe_signature(payload, secret="whsec_other"))
    with pytest.raises(WebhookSignatureError):
        provider.verify_webhook((payload + " ").encode(), stripe_signature(payload))


def test_verify_webhook_requires_secret():
    provider = StripeProvider(secret_key="sk_test_123", webhook_secret="")
    with pytest.raises(ProviderConfigurationError):
        provider.verify_webhook(b"{}", "t=1,v1=abc")


def test_parse_payment_failed(provider):
    event = provider.parse_event(
        json.loads(
            stripe_event(
                "payment_intent.payment_failed",
                {"id": "pi_9", "amount": 2500, "payment_method_types": ["card"], "last_payment_error": {"message": "Declined"}},
            )
        )
    )
    assert event.outcome == PaymentOutcome.FAILED
    assert event.payment_ref == "pi_9"
    assert event.failure_reason == "Declined"
    assert event.session_id is None


def test_parse_dispute(provider):
    event = provider.parse_event(
        json.loads(
            stripe_event(
                "charge.dispute.created",
                {"id": "dp_1", "charge": "ch_1", "payment_intent": "pi_1", "amount": 2500, "reason": "fraudulent", "status": "needs_response"},
            )
        )
    )
    assert event.outcome == PaymentOutcome.DISPUTED
    assert event.dispute == {
        "disputeId": "dp_1",
        "chargeId": "ch_1",
        "amount": 25.0,
        "reason": "fraudulent",
        "status": "needs_response",
    }


def test_parse_unknown_event_is_ignored(provider):
    event = provider.parse_event({"id": "evt_2", "type": "invoice.paid", "data": {"object": {}}})
    assert event.outcome == PaymentOutcome.IGNORED
