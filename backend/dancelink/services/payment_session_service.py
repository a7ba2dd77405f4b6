"""
Payment session bridge.

Creates the PENDING booking and the provider-side payment object (Stripe
Checkout Session or Wise transfer) for one booking request, then records a
CREATED transaction linking the two.

The provider call happens between two short units of work so no database
transaction is held open across a network round trip. If the provider call
fails, the booking created for this request is deleted again: a PENDING
booking must always have a payment object behind it. A waitlist booking that
is being paid for is left in place, since it existed before this request.

Capacity is only checked here, never reserved. The seat is taken when the
provider confirms payment (see reconciliation_service).
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from dancelink.core.exceptions import (
    BookingStateError,
    NotFound,
    PolicyViolation,
    ProviderConfigurationError,
    ValidationFailed,
)
from dancelink.core.logging import get_logger
from dancelink.core.metrics import record_capacity_conflict, record_payment_session
from dancelink.domain.entities import Booking, Transaction, new_confirmation_code, new_id
from dancelink.domain.enums import BookingStatus, ItemType, PaymentProviderName
from dancelink.domain.money import to_money
from dancelink.domain.policies import class_full_policy
from dancelink.services.interfaces.payment_provider import PaymentIntent, PaymentIntentRequest, PaymentProvider
from dancelink.services.interfaces.stores import Clock, UnitOfWorkFactory

logger = get_logger(__name__)


@dataclass
class PaymentSession:
    provider: PaymentProviderName
    booking: Booking
    intent: PaymentIntent
    transaction: Transaction


class PaymentSessionService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        providers: dict[PaymentProviderName, PaymentProvider],
        clock: Clock,
        frontend_url: str,
        currency: str = "USD",
    ):
        self.uow_factory = uow_factory
        self.providers = providers
        self.clock = clock
        self.frontend_url = frontend_url.rstrip("/")
        self.currency = currency.upper()

    def get_provider(self, name: PaymentProviderName) -> PaymentProvider:
        provider = self.providers.get(name)
        if provider is None:
            raise ValidationFailed(details=f"Unsupported payment provider: {name.value}")
        errors = provider.validate_config()
        if errors:
            record_payment_session(name.value, "rejected")
            raise ProviderConfigurationError(f"{name.value.capitalize()} configuration invalid", details=errors)
        return provider

    def default_urls(self, item_type: ItemType, item_id: str) -> tuple[str, str]:
        listing = "classes" if item_type == ItemType.CLASS else "events"
        return (
            f"{self.frontend_url}/booking-success?session_id={{CHECKOUT_SESSION_ID}}",
            f"{self.frontend_url}/{listing}/{item_id}",
        )

    async def create_session(
        self,
        provider_name: PaymentProviderName,
        item_type: ItemType,
        item_id: str,
        user_id: str,
        custom_amount: Optional[Decimal] = None,
        discount_amount: Decimal = Decimal("0.00"),
        tax_amount: Decimal = Decimal("0.00"),
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        recipient: Optional[dict] = None,
        booking_id: Optional[str] = None,
    ) -> PaymentSession:
        provider = self.get_provider(provider_name)
        now = self.clock()
        discount = to_money(discount_amount)
        tax = to_money(tax_amount)
        if discount < 0 or tax < 0:
            raise ValidationFailed(details="discountAmount and taxAmount must be >= 0")

        async with self.uow_factory() as uow:
            user = await uow.catalog.get_user(user_id)
            if user is None:
                raise NotFound("User not found")

            item = await uow.catalog.get_item(item_type, item_id)
            if item is None or not item.is_bookable:
                label = "Class not found or inactive" if item_type == ItemType.CLASS else "Event not found or not published"
                raise NotFound(label)

            if item.seats_taken >= item.capacity:
                record_capacity_conflict(item_type.value)
                raise PolicyViolation(
                    "Class is full" if item_type == ItemType.CLASS else "Event is full",
                    "No seats are available; join the waitlist to be notified",
                    class_full_policy(item),
                )

            base = to_money(custom_amount) if custom_amount is not None else to_money(item.price)
            if base - discount + tax <= 0:
                raise ValidationFailed(details="Total amount must be greater than zero")

            pricing = {"total_amount": base, "discount_amount": discount, "tax_amount": tax}
            created = booking_id is None
            if created:
                booking = Booking(
                    id=new_id(),
                    user_id=user_id,
                    confirmation_code=new_confirmation_code(item_type.value.upper(), now),
                    created_at=now,
                    payment_method=provider_name.value.lower(),
                    **({"class_id": item_id} if item_type == ItemType.CLASS else {"event_id": item_id}),
                    **pricing,
                )
                await uow.bookings.add(booking)
            else:
                booking = await uow.bookings.get(booking_id)
                if booking is None:
                    raise NotFound("Booking not found")
                if (
                    booking.user_id != user_id
                    or booking.item_type != item_type
                    or booking.item_id != item_id
                    or booking.status != BookingStatus.PENDING
                ):
                    raise BookingStateError("Booking is not awaiting payment for this user and item")
                await uow.bookings.update(booking.id, payment_method=provider_name.value.lower(), **pricing)
                booking = await uow.bookings.get(booking.id)

        default_success, default_cancel = self.default_urls(item_type, item_id)
        request = PaymentIntentRequest(
            booking_id=booking.id,
            user_id=user.id,
            user_email=user.email,
            user_name=user.full_name,
            item_type=item_type,
            item_id=item_id,
            item_name=item.title,
            item_description=item.description,
            item_image=item.image_url,
            venue_name=item.venue_name,
            base_amount=base,
            discount_amount=discount,
            tax_amount=tax,
            currency=self.currency,
            success_url=success_url or default_success,
            cancel_url=cancel_url or default_cancel,
            recipient=recipient,
        )

        try:
            intent = await provider.create_payment_intent(request)
        except Exception as exc:
            record_payment_session(provider_name.value, "provider_error")
            logger.error(
                "payment_session_failed",
                provider=provider_name.value,
                booking_id=booking.id,
                booking_removed=created,
                error=str(exc),
            )
            if created:
                async with self.uow_factory() as uow:
                    await uow.bookings.delete(booking.id)
            raise

        transaction = Transaction(
            id=new_id(),
            booking_id=booking.id,
            user_id=user.id,
            provider=provider_name.value,
            amount=request.total_amount,
            created_at=self.clock(),
            currency=self.currency,
            provider_payment_id=intent.payment_ref,
            stripe_session_id=intent.session_id,
            payload=json.dumps(intent.raw, default=str),
        )
        async with self.uow_factory() as uow:
            if intent.session_id:
                await uow.bookings.update(booking.id, stripe_session_id=intent.session_id)
            await uow.transactions.add(transaction)
            booking = await uow.bookings.get(booking.id)

        record_payment_session(provider_name.value, "created")
        logger.info(
            "payment_session_created",
            provider=provider_name.value,
            booking_id=booking.id,
            provider_ref=intent.provider_ref,
            amount=str(request.total_amount),
            reused_booking=not created,
        )
        return PaymentSession(provider=provider_name, booking=booking, intent=intent, transaction=transaction)
