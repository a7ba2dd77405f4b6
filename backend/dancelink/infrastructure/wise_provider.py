"""
Wise transfer provider.

A booking payment is three REST calls: quote, recipient account (skipped
when the caller already has one) and transfer. Every call carries a fresh
idempotency key so a retried request is not executed twice by Wise.
"""

import hashlib
import hmac
import json
import time
import uuid
from dataclasses import replace
from typing import Any, Optional

import httpx

from dancelink.core.exceptions import PaymentProviderError, ProviderConfigurationError, WebhookSignatureError
from dancelink.core.logging import get_logger
from dancelink.domain.enums import PaymentOutcome, PaymentProviderName
from dancelink.services.interfaces.payment_provider import (
    PaymentIntent,
    PaymentIntentRequest,
    PaymentProvider,
    ProviderEvent,
)

logger = get_logger(__name__)

EVENT_OUTCOMES = {
    "transfer.funds-converted": PaymentOutcome.SUCCEEDED,
    "transfer.sent": PaymentOutcome.SUCCEEDED,
    "transfer.bounced-back": PaymentOutcome.FAILED,
    "transfer.charged-back": PaymentOutcome.FAILED,
    "transfer.cancelled": PaymentOutcome.CANCELLED,
}

TRANSFER_STATE_OUTCOMES = {
    "incoming_payment_waiting": PaymentOutcome.PROCESSING,
    "processing": PaymentOutcome.PROCESSING,
    "funds_converted": PaymentOutcome.SUCCEEDED,
    "outgoing_payment_sent": PaymentOutcome.SUCCEEDED,
    "bounced_back": PaymentOutcome.FAILED,
    "charged_back": PaymentOutcome.FAILED,
    "cancelled": PaymentOutcome.CANCELLED,
}

REVERSAL_EVENTS = frozenset({"transfer.bounced-back", "transfer.charged-back"})
REVERSAL_STATES = frozenset({"bounced_back", "charged_back"})

STATE_CHANGE = "transfer.state-change"


def _state_outcome(state: Optional[str]) -> PaymentOutcome:
    return TRANSFER_STATE_OUTCOMES.get(state, PaymentOutcome.PROCESSING)


class WiseProvider(PaymentProvider):
    name = PaymentProviderName.WISE

    def __init__(
        self,
        api_key: str,
        profile_id: str,
        account_id: str,
        webhook_secret: str,
        base_url: str = "https://api.sandbox.transferwise.tech",
        timeout: float = 15.0,
    ):
        self.api_key = api_key
        self.profile_id = profile_id
        self.account_id = account_id
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def validate_config(self) -> list[str]:
        errors = []
        if not self.api_key:
            errors.append("WISE_API_KEY is not set")
        if not self.account_id:
            errors.append("WISE_ACCOUNT_ID is not set")
        if not self.profile_id:
            errors.append("WISE_PROFILE_ID is not set")
        return errors

    async def _request(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "X-idempotency-key": str(uuid.uuid4()),
        }
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
                response = await client.request(method, path, json=body, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("wise_request_rejected", path=path, status_code=exc.response.status_code)
            raise PaymentProviderError(
                "Wise request failed",
                details=f"{method} {path} returned {exc.response.status_code}",
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("wise_request_failed", path=path, error=str(exc))
            raise PaymentProviderError("Wise request failed", details=str(exc)) from exc

    async def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntent:
        recipient = request.recipient or {}
        target_currency = recipient.get("currency") or "USD"

        quote = await self._request(
            "POST",
            "/v2/quotes",
            {
                "sourceCurrency": request.currency,
                "targetCurrency": target_currency,
                "sourceAmount": float(request.total_amount),
                "payOut": "BALANCE",
                "profile": self.profile_id,
            },
        )

        account_id = recipient.get("accountId")
        if not account_id:
            account = await self._request(
                "POST",
                "/v1/accounts",
                {
                    "currency": target_currency,
                    "type": recipient.get("type") or "EMAIL",
                    "profile": self.profile_id,
                    "accountHolderName": recipient.get("name") or request.user_name,
                    "details": recipient.get("details") or {"email": recipient.get("email") or request.user_email},
                },
            )
            account_id = account["id"]

        transfer = await self._request(
            "POST",
            "/v1/transfers",
            {
                "targetAccount": account_id,
                "quoteUuid": quote["id"],
                "customerTransactionId": f"booking-{request.booking_id}-{int(time.time() * 1000)}",
                "details": {
                    "reference": f"{request.item_type.value.upper()} booking - {request.booking_id}",
                    "transferPurpose": "verification.transfers.purpose.pay.for.goods.services",
                    "sourceOfFunds": "verification.source.of.funds.other",
                },
            },
        )

        transfer_id = str(transfer["id"])
        logger.info("wise_transfer_created", booking_id=request.booking_id, transfer_id=transfer_id)
        return PaymentIntent(
            provider=self.name,
            provider_ref=transfer_id,
            status=transfer.get("status") or "processing",
            payment_ref=transfer_id,
            extra={
                "quoteId": quote.get("id"),
                "recipientAccountId": account_id,
                "estimatedDelivery": quote.get("deliveryEstimate"),
                "fees": quote.get("fee"),
                "rate": quote.get("rate"),
            },
            raw={"quote": quote, "transfer": transfer},
        )

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.webhook_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> ProviderEvent:
        if not self.webhook_secret:
            raise ProviderConfigurationError(
                "Wise configuration invalid", details=["WISE_WEBHOOK_SECRET is not set"]
            )
        if not signature or not hmac.compare_digest(self.sign(payload), signature):
            raise WebhookSignatureError()
        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise WebhookSignatureError(details="Malformed payload") from exc
        return self.parse_event(event)

    def parse_event(self, event: dict) -> ProviderEvent:
        event_type = event.get("event_type", "")
        resource = event.get("resource") or {}
        transfer_id = str(resource["id"]) if resource.get("id") is not None else None
        event_id = event.get("id") or f"{event_type}:{transfer_id}:{event.get('occurred_at', '')}"
        reverses = event_type in REVERSAL_EVENTS

        if event_type == STATE_CHANGE:
            if resource.get("type") != "transfer":
                outcome = PaymentOutcome.IGNORED
            else:
                state = (event.get("data") or {}).get("current_state")
                outcome = _state_outcome(state)
                reverses = state in REVERSAL_STATES
        else:
            outcome = EVENT_OUTCOMES.get(event_type, PaymentOutcome.IGNORED)

        parsed = ProviderEvent(
            provider=self.name,
            event_id=str(event_id),
            event_type=event_type,
            outcome=outcome,
            payment_ref=transfer_id,
            payment_method="wise",
            raw=event,
            reverses_payment=reverses,
        )
        if outcome == PaymentOutcome.FAILED:
            parsed.failure_reason = f"Wise {event_type or 'transfer'} received"
        return parsed

    async def refresh_event(self, event: ProviderEvent) -> ProviderEvent:
        """A state-change without a current state is resolved by reading the transfer."""
        if event.event_type != STATE_CHANGE or event.outcome == PaymentOutcome.IGNORED or not event.payment_ref:
            return event
        if (event.raw.get("data") or {}).get("current_state"):
            return event
        transfer = await self._request("GET", f"/v1/transfers/{event.payment_ref}")
        state = transfer.get("status")
        outcome = _state_outcome(state)
        logger.info("wise_transfer_state_fetched", transfer_id=event.payment_ref, state=state)
        return replace(
            event,
            outcome=outcome,
            failure_reason=f"Wise transfer {state}" if outcome == PaymentOutcome.FAILED else None,
            reverses_payment=state in REVERSAL_STATES,
        )
