"""
Webhook reconciliation.

IDEMPOTENCY STRATEGY: event ledger + conditional transition
===========================================================

Providers deliver at least once, so the same event can arrive twice,
concurrently, or after we already acted on it.

  1. The webhook_events ledger is unique on (provider, event_id). Each event
     is claimed, applied and marked processed inside ONE unit of work, so
     either all of it commits or none of it does. A processed event
     short-circuits before touching any booking.
  2. The booking transition is conditional (status IN ('PENDING')), and the
     seat is reserved with a conditional increment. Even a replay that slips
     past the ledger cannot confirm twice or increment twice.

Redis remembers processed ids as a fast path only; the ledger decides.

When applying an event raises, the unit of work rolls back, the ledger row
is recorded as failed (so a redelivery is processed again) and the delivery
is still acknowledged, so one broken branch never blocks the others.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Optional

from dancelink.core.exceptions import BookingConflict, DuplicateWebhookEvent, ProviderConfigurationError
from dancelink.core.logging import get_logger
from dancelink.core.metrics import record_capacity_conflict, record_transition, record_webhook_event
from dancelink.domain.entities import AuditLogEntry, Booking, Refund, Transaction, WebhookEventRecord, new_id
from dancelink.domain.enums import (
    BookingStatus,
    PaymentOutcome,
    PaymentProviderName,
    PaymentStatus,
    TransactionStatus,
    WebhookEventStatus,
)
from dancelink.domain.money import to_money
from dancelink.infrastructure.redis_client import WebhookDedupeCache
from dancelink.services.booking_service import waitlist_offer_notice
from dancelink.services.interfaces.payment_provider import PaymentProvider, ProviderEvent
from dancelink.services.interfaces.stores import Clock, UnitOfWork, UnitOfWorkFactory
from dancelink.services.notification_service import NotificationService, deliver
from dancelink.services.waitlist_service import promote_next

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 500


@dataclass
class ReconciliationResult:
    duplicate: bool = False
    booking_id: Optional[str] = None
    notices: list = field(default_factory=list)


class ReconciliationService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        providers: dict[PaymentProviderName, PaymentProvider],
        notifier: NotificationService,
        clock: Clock,
        dedupe: Optional[WebhookDedupeCache] = None,
    ):
        self.uow_factory = uow_factory
        self.providers = providers
        self.notifier = notifier
        self.clock = clock
        self.dedupe = dedupe

    async def handle_webhook(self, provider_name: PaymentProviderName, payload: bytes, signature: Optional[str]) -> dict:
        """
        Verify, apply and acknowledge one webhook delivery.

        Raises:
            WebhookSignatureError: bad or missing signature; nothing is applied
        """
        provider = self.providers.get(provider_name)
        if provider is None:
            raise ProviderConfigurationError(f"{provider_name.value.capitalize()} configuration invalid")

        try:
            event = provider.verify_webhook(payload, signature)
        except Exception:
            record_webhook_event(provider_name.value, "unknown", "rejected")
            raise

        log = logger.bind(provider=provider_name.value, event_id=event.event_id, event_type=event.event_type)
        log.info("webhook_received", outcome=event.outcome.value)

        if self.dedupe and await self.dedupe.seen(provider_name.value, event.event_id):
            record_webhook_event(provider_name.value, event.event_type, "duplicate")
            log.info("webhook_duplicate", source="cache")
            return {"received": True, "duplicate": True}

        try:
            event = await provider.refresh_event(event)
            result = await self.apply_event(event)
        except DuplicateWebhookEvent:
            record_webhook_event(provider_name.value, event.event_type, "duplicate")
            log.info("webhook_duplicate", source="concurrent")
            return {"received": True, "duplicate": True}
        except Exception as exc:
            record_webhook_event(provider_name.value, event.event_type, "failed")
            log.exception("webhook_processing_failed", error=str(exc))
            await self._record_failure(event, exc)
            return {"received": True, "processed": False}

        if result.duplicate:
            record_webhook_event(provider_name.value, event.event_type, "duplicate")
            log.info("webhook_duplicate", source="ledger")
            return {"received": True, "duplicate": True}

        if self.dedupe:
            await self.dedupe.remember(provider_name.value, event.event_id)
        record_webhook_event(provider_name.value, event.event_type, "processed")
        log.info("webhook_processed", booking_id=result.booking_id)

        for send in result.notices:
            await deliver(send(), booking_id=result.booking_id, event_id=event.event_id)
        return {"received": True}

    async def apply_event(self, event: ProviderEvent) -> ReconciliationResult:
        now = self.clock()
        result = ReconciliationResult()

        async with self.uow_factory() as uow:
            record = await uow.webhook_events.claim(
                WebhookEventRecord(
                    id=new_id(),
                    provider=event.provider.value,
                    event_id=event.event_id,
                    event_type=event.event_type,
                    received_at=now,
                )
            )
            if record.status == WebhookEventStatus.PROCESSED:
                result.duplicate = True
                return result

            if event.outcome == PaymentOutcome.DISPUTED:
                await self._record_dispute(uow, event, now)
            elif event.outcome != PaymentOutcome.IGNORED:
                transaction, booking = await self._locate(uow, event)
                if booking is None:
                    logger.warning(
                        "webhook_booking_not_found",
                        provider=event.provider.value,
                        event_type=event.event_type,
                        session_id=event.session_id,
                        payment_ref=event.payment_ref,
                    )
                else:
                    result.booking_id = booking.id
                    if event.outcome == PaymentOutcome.SUCCEEDED:
                        await self._confirm(uow, event, transaction, booking, now, result)
                    elif event.outcome == PaymentOutcome.FAILED:
                        await self._void(uow, event, transaction, booking, now, result, failed=True)
                    elif event.outcome == PaymentOutcome.CANCELLED:
                        await self._void(uow, event, transaction, booking, now, result, failed=False)
                    else:
                        await self._mark_processing(uow, event, transaction, booking)

            await uow.webhook_events.mark(
                event.provider.value,
                event.event_id,
                WebhookEventStatus.PROCESSED,
                processed_at=now,
                booking_id=result.booking_id,
            )
        return result

    async def _locate(self, uow: UnitOfWork, event: ProviderEvent) -> tuple[Optional[Transaction], Optional[Booking]]:
        provider = event.provider.value
        transaction = None
        if event.session_id:
            transaction = await uow.transactions.find_by_session_id(provider, event.session_id)
        if transaction is None and event.payment_ref:
            transaction = await uow.transactions.find_by_payment_ref(provider, event.payment_ref)

        if transaction is not None:
            return transaction, await uow.bookings.get(transaction.booking_id)
        if event.session_id:
            return None, await uow.bookings.get_by_session_id(event.session_id)
        return None, None

    async def _update_transaction(self, uow: UnitOfWork, event: ProviderEvent, transaction: Optional[Transaction], **changes):
        if transaction is None:
            return
        if event.payment_ref and not transaction.provider_payment_id:
            changes["provider_payment_id"] = event.payment_ref
        if event.payment_method:
            changes["payment_method_type"] = event.payment_method
        changes["payload"] = json.dumps(event.raw, default=str)
        await uow.transactions.update(transaction.id, **changes)

    async def _confirm(self, uow, event, transaction, booking, now: datetime, result: ReconciliationResult):
        if booking.status == BookingStatus.CONFIRMED:
            await self._update_transaction(uow, event, transaction, status=TransactionStatus.SUCCEEDED)
            logger.info("booking_already_confirmed", booking_id=booking.id, event_id=event.event_id)
            return

        if booking.status == BookingStatus.CANCELLED and booking.payment_status == PaymentStatus.REFUND_PENDING.value:
            # Second success event for a payment already owed back
            logger.info("refund_already_pending", booking_id=booking.id, event_id=event.event_id)
            return

        amount_paid = event.amount if event.amount is not None else booking.final_amount

        if booking.status == BookingStatus.PENDING and await uow.capacity.reserve_seat(booking.item_type, booking.item_id):
            confirmed = await uow.bookings.transition(
                booking.id,
                [BookingStatus.PENDING],
                status=BookingStatus.CONFIRMED,
                payment_status=PaymentStatus.SUCCEEDED.value,
                amount_paid=amount_paid,
                payment_method=event.payment_method or booking.payment_method,
            )
            if not confirmed:
                raise BookingConflict("Booking changed while confirming payment")
            await self._update_transaction(uow, event, transaction, status=TransactionStatus.SUCCEEDED)
            record_transition(BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)
            logger.info("booking_confirmed", booking_id=booking.id, amount_paid=str(amount_paid))

            user = await uow.catalog.get_user(booking.user_id)
            item = await uow.catalog.get_item(booking.item_type, booking.item_id)
            if user is not None and item is not None:
                confirmed_booking = await uow.bookings.get(booking.id)
                result.notices.append(partial(self.notifier.send_booking_confirmation, user, confirmed_booking, item))
            return

        # Paid, but there is no seat to give: cancel and owe the money back.
        if booking.status == BookingStatus.PENDING:
            record_capacity_conflict(booking.item_type.value)
            reason = "Item was full when payment completed"
        else:
            reason = "Booking was cancelled before payment completed"

        changes = {
            "status": BookingStatus.CANCELLED,
            "payment_status": PaymentStatus.REFUND_PENDING.value,
            "amount_paid": amount_paid,
        }
        if booking.status == BookingStatus.PENDING:
            changes.update(cancellation_reason=reason, cancelled_at=now)
        if not await uow.bookings.transition(booking.id, [booking.status], **changes):
            raise BookingConflict("Booking changed while confirming payment")
        if booking.status != BookingStatus.CANCELLED:
            record_transition(booking.status.value, BookingStatus.CANCELLED.value)

        await uow.refunds.add(
            Refund(
                id=new_id(),
                booking_id=booking.id,
                user_id=booking.user_id,
                amount=amount_paid,
                reason=reason,
                requested_at=now,
            )
        )
        await self._update_transaction(
            uow, event, transaction, status=TransactionStatus.CANCELLED, failure_reason=reason
        )
        logger.warning("payment_without_seat", booking_id=booking.id, reason=reason, refund=str(amount_paid))

    async def _void(self, uow, event, transaction, booking, now: datetime, result: ReconciliationResult, failed: bool):
        if booking.status == BookingStatus.CONFIRMED and not event.reverses_payment:
            # A stale attempt (declined card, expired session) after another attempt paid.
            logger.info(
                "late_payment_failure_ignored",
                booking_id=booking.id,
                event_id=event.event_id,
                event_type=event.event_type,
            )
            return

        txn_status = TransactionStatus.FAILED if failed else TransactionStatus.CANCELLED
        payment_status = PaymentStatus.FAILED if failed else PaymentStatus.CANCELED
        await self._update_transaction(uow, event, transaction, status=txn_status, failure_reason=event.failure_reason)

        if booking.status == BookingStatus.CANCELLED:
            logger.info("booking_already_cancelled", booking_id=booking.id, event_id=event.event_id)
            return

        changes = {
            "status": BookingStatus.CANCELLED,
            "payment_status": payment_status.value,
            "cancellation_reason": event.failure_reason,
            "cancelled_at": now,
        }
        if booking.status == BookingStatus.CONFIRMED:
            # The provider already returned the money.
            changes["amount_paid"] = to_money(0)
        cancelled = await uow.bookings.transition(booking.id, [booking.status], **changes)
        if not cancelled:
            raise BookingConflict("Booking changed while recording payment failure")
        record_transition(booking.status.value, BookingStatus.CANCELLED.value)
        logger.info("booking_payment_voided", booking_id=booking.id, payment_status=payment_status.value)

        # A reversal after confirmation gives the seat back.
        if booking.status == BookingStatus.CONFIRMED:
            if not await uow.capacity.release_seat(booking.item_type, booking.item_id):
                logger.warning("seat_release_skipped", booking_id=booking.id, item_id=booking.item_id)
            promotion = await promote_next(uow, booking.item_type, booking.item_id, now)
            offer = await waitlist_offer_notice(uow, self.notifier, promotion)
            if offer:
                result.notices.append(offer)

    async def _mark_processing(self, uow, event, transaction, booking):
        if booking.status == BookingStatus.PENDING:
            await uow.bookings.transition(
                booking.id, [BookingStatus.PENDING], payment_status=PaymentStatus.PROCESSING.value
            )
        await self._update_transaction(uow, event, transaction)

    async def _record_dispute(self, uow: UnitOfWork, event: ProviderEvent, now: datetime):
        provider = event.provider.value
        dispute = event.dispute or {}
        transaction = None
        if event.payment_ref:
            transaction = await uow.transactions.find_by_payment_ref(provider, event.payment_ref)
        if transaction is None and dispute.get("chargeId"):
            transaction = await uow.transactions.find_by_payload_fragment(provider, dispute["chargeId"])

        if transaction is None:
            logger.warning("dispute_transaction_not_found", dispute_id=dispute.get("disputeId"), charge_id=dispute.get("chargeId"))
            return

        await uow.audit_log.add(
            AuditLogEntry(
                id=new_id(),
                action="DISPUTE_CREATED",
                table_name="transactions",
                record_id=transaction.id,
                created_at=now,
                user_id=transaction.user_id,
                new_values=json.dumps(dispute, default=str),
            )
        )
        logger.warning("payment_disputed", transaction_id=transaction.id, booking_id=transaction.booking_id, **dispute)

    async def _record_failure(self, event: ProviderEvent, exc: Exception) -> None:
        now = self.clock()
        try:
            async with self.uow_factory() as uow:
                record = await uow.webhook_events.claim(
                    WebhookEventRecord(
                        id=new_id(),
                        provider=event.provider.value,
                        event_id=event.event_id,
                        event_type=event.event_type,
                        received_at=now,
                    )
                )
                if record.status != WebhookEventStatus.PROCESSED:
                    await uow.webhook_events.mark(
                        event.provider.value,
                        event.event_id,
                        WebhookEventStatus.FAILED,
                        processed_at=now,
                        error=str(exc)[:MAX_ERROR_LENGTH],
                    )
        except Exception as ledger_exc:
            logger.error("webhook_failure_not_recorded", event_id=event.event_id, error=str(ledger_exc))
