"""
Payment session and webhook endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from dancelink.domain.enums import PaymentProviderName
from dancelink.schemas.payment import CreateSessionRequest, CreateSessionResponse, WebhookAck
from dancelink.services.payment_session_service import PaymentSessionService
from dancelink.services.reconciliation_service import ReconciliationService
from dancelink.api.deps import get_payment_session_service, get_reconciliation_service

router = APIRouter(tags=["Payments"])


@router.post(
    "/payments/create-session",
    response_model=CreateSessionResponse,
    response_model_exclude_none=True,
)
async def create_session(
    payload: CreateSessionRequest,
    service: PaymentSessionService = Depends(get_payment_session_service),
):
    """
    Create a PENDING booking and its provider payment object.

    Stripe returns a Checkout Session id and URL; Wise returns a transfer id.
    The seat is not reserved until the provider confirms payment.
    """
    session = await service.create_session(
        provider_name=payload.payment_provider,
        item_type=payload.booking_type,
        item_id=payload.item_id,
        user_id=payload.user_id,
        custom_amount=payload.custom_amount,
        discount_amount=payload.discount_amount,
        tax_amount=payload.tax_amount,
        success_url=payload.success_url,
        cancel_url=payload.cancel_url,
        recipient=payload.wise_recipient_details,
        booking_id=payload.booking_id,
    )
    return CreateSessionResponse.from_session(session)


@router.post("/payments/webhook", response_model=WebhookAck, response_model_exclude_none=True)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="stripe-signature"),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Stripe webhook. The signature is verified over the raw body before parsing."""
    payload = await request.body()
    return await service.handle_webhook(PaymentProviderName.STRIPE, payload, stripe_signature)


@router.post("/webhooks/wise", response_model=WebhookAck, response_model_exclude_none=True)
async def wise_webhook(
    request: Request,
    signature: Optional[str] = Header(default=None, alias="X-Signature-SHA256"),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Wise webhook, HMAC-SHA256 signed over the raw body."""
    payload = await request.body()
    return await service.handle_webhook(PaymentProviderName.WISE, payload, signature)
