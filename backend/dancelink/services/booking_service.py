"""
Booking management: read, cancel, reschedule.

CONSISTENCY STRATEGY: one unit of work per request
==================================================

Problem:
  A cancellation is four writes (booking status, seat counter, waitlist
  offer, refund row). Run as separate statements, a crash or a concurrent
  confirmation between them leaves the counter disagreeing with the number
  of CONFIRMED bookings.

Solution:
  Every write for one request happens inside one unit of work, and the
  status change itself is conditional:

    UPDATE bookings SET status = 'CANCELLED', ...
     WHERE id = :id AND status = :status_we_read

  rowcount == 0 means a webhook or another request moved the booking first;
  we raise BookingConflict and the whole unit of work rolls back. Seats are
  only released when the booking we cancelled was CONFIRMED: a PENDING
  booking never held one.

  Emails go out after commit and never affect the outcome.
"""

from dataclasses import dataclass
from decimal import Decimal
from functools import partial
from typing import Optional

from dancelink.core.exceptions import (
    BookingConflict,
    BookingStateError,
    NotFound,
    PolicyViolation,
    ValidationFailed,
)
from dancelink.core.logging import get_logger
from dancelink.core.metrics import record_capacity_conflict, record_transition
from dancelink.domain.entities import Booking, DanceClass, Refund, Transaction, new_id
from dancelink.domain.enums import BookingStatus, ItemType, PaymentStatus
from dancelink.domain.money import to_money
from dancelink.domain.policies import (
    cancellation_policy,
    class_full_policy,
    effective_status,
    hours_until,
    refund_amount,
    reschedule_policy,
)
from dancelink.services.interfaces.stores import Clock, Item, UnitOfWorkFactory
from dancelink.services.notification_service import NotificationService, deliver
from dancelink.services.waitlist_service import Promotion, promote_next

logger = get_logger(__name__)


@dataclass
class BookingView:
    booking: Booking
    status: BookingStatus
    item: Optional[Item]
    transactions: list[Transaction]
    refunds: list[Refund]


@dataclass
class CancellationResult:
    booking: Booking
    refund_amount: Decimal
    refund: Optional[Refund]
    waitlist_processed: bool

    @property
    def can_refund(self) -> bool:
        return self.refund_amount > 0


@dataclass
class RescheduleResult:
    booking: Booking
    new_class: DanceClass
    price_difference: Decimal
    fee: Decimal
    amount_owed: Decimal
    refund: Optional[Refund]
    waitlist_processed: bool


async def waitlist_offer_notice(uow, notifier: NotificationService, promotion: Optional[Promotion]):
    """Prepare the waitlist email while the unit of work is still open."""
    if promotion is None:
        return None
    user = await uow.catalog.get_user(promotion.booking.user_id)
    item = await uow.catalog.get_item(promotion.booking.item_type, promotion.booking.item_id)
    if user is None or item is None:
        return None
    return partial(notifier.send_waitlist_offer, user, promotion.booking, item)


class BookingService:
    def __init__(self, uow_factory: UnitOfWorkFactory, notifier: NotificationService, clock: Clock):
        self.uow_factory = uow_factory
        self.notifier = notifier
        self.clock = clock

    async def get_booking(self, booking_id: str) -> BookingView:
        async with self.uow_factory() as uow:
            booking = await uow.bookings.get(booking_id)
            if booking is None:
                raise NotFound("Booking not found")
            item = await uow.catalog.get_item(booking.item_type, booking.item_id)
            transactions = await uow.transactions.list_for_booking(booking_id)
            refunds = await uow.refunds.list_for_booking(booking_id)

        return BookingView(
            booking=booking,
            status=effective_status(booking, item, self.clock()),
            item=item,
            transactions=transactions,
            refunds=refunds,
        )

    async def cancel_booking(
        self,
        booking_id: str,
        reason: Optional[str] = None,
        request_refund: bool = False,
    ) -> CancellationResult:
        now = self.clock()
        notices = []

        async with self.uow_factory() as uow:
            booking = await uow.bookings.get(booking_id)
            if booking is None:
                raise NotFound("Booking not found")
            if booking.status == BookingStatus.CANCELLED:
                raise BookingStateError("Booking is already cancelled")

            item = await uow.catalog.get_item(booking.item_type, booking.item_id)
            refund = to_money(0)
            if item is not None:
                policy = cancellation_policy(hours_until(item.start_date, now))
                if not policy.can_cancel:
                    raise PolicyViolation("Cannot cancel booking", policy.message, policy.to_dict())
                refund = refund_amount(booking, policy)

            wants_refund = request_refund and refund > 0
            changes = {
                "status": BookingStatus.CANCELLED,
                "cancellation_reason": reason,
                "cancelled_at": now,
            }
            if wants_refund:
                changes["payment_status"] = PaymentStatus.REFUND_PENDING.value

            if not await uow.bookings.transition(booking.id, [booking.status], **changes):
                raise BookingConflict()
            record_transition(booking.status.value, BookingStatus.CANCELLED.value)

            promotion = None
            if booking.status == BookingStatus.CONFIRMED:
                if not await uow.capacity.release_seat(booking.item_type, booking.item_id):
                    logger.warning("seat_release_skipped", booking_id=booking.id, item_id=booking.item_id)
                promotion = await promote_next(uow, booking.item_type, booking.item_id, now)

            refund_row = None
            if wants_refund:
                refund_row = Refund(
                    id=new_id(),
                    booking_id=booking.id,
                    user_id=booking.user_id,
                    amount=refund,
                    reason=reason or "Booking cancellation",
                    requested_at=now,
                )
                await uow.refunds.add(refund_row)

            cancelled = await uow.bookings.get(booking.id)
            user = await uow.catalog.get_user(booking.user_id)
            if user is not None:
                notices.append(partial(self.notifier.send_cancellation, user, cancelled, item, refund))
            offer = await waitlist_offer_notice(uow, self.notifier, promotion)
            if offer:
                notices.append(offer)

        logger.info(
            "booking_cancelled",
            booking_id=booking.id,
            previous_status=booking.status.value,
            refund_amount=str(refund),
            refund_requested=wants_refund,
            waitlist_promoted=promotion is not None,
        )
        for send in notices:
            await deliver(send(), booking_id=booking.id)

        return CancellationResult(
            booking=cancelled,
            refund_amount=refund,
            refund=refund_row,
            waitlist_processed=promotion is not None,
        )

    async def reschedule_booking(
        self,
        booking_id: str,
        new_class_id: str,
        reason: Optional[str] = None,
    ) -> RescheduleResult:
        now = self.clock()
        notices = []

        async with self.uow_factory() as uow:
            booking = await uow.bookings.get(booking_id)
            if booking is None:
                raise NotFound("Booking not found")
            if booking.item_type != ItemType.CLASS:
                raise BookingStateError("Only class bookings can be rescheduled")
            if booking.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                raise BookingStateError(f"Cannot reschedule a {booking.status.value.lower()} booking")
            if booking.class_id == new_class_id:
                raise ValidationFailed(details="newClassId must differ from the current class")

            new_class = await uow.catalog.get_class(new_class_id)
            if new_class is None or not new_class.is_bookable:
                raise NotFound("New class not found")

            old_class = await uow.catalog.get_class(booking.class_id)
            fee = Decimal("0.00")
            if old_class is not None:
                policy = reschedule_policy(hours_until(old_class.start_date, now))
                if not policy.can_reschedule:
                    raise PolicyViolation("Cannot reschedule booking", policy.message, policy.to_dict())
                fee = policy.fee

            if new_class.current_students >= new_class.max_students:
                record_capacity_conflict(ItemType.CLASS.value)
                raise PolicyViolation("New class is full", "No seats left in the selected class", class_full_policy(new_class))

            holds_seat = booking.status == BookingStatus.CONFIRMED
            if holds_seat:
                if not await uow.capacity.reserve_seat(ItemType.CLASS, new_class_id):
                    record_capacity_conflict(ItemType.CLASS.value)
                    raise PolicyViolation(
                        "New class is full", "No seats left in the selected class", class_full_policy(new_class)
                    )
                if not await uow.capacity.release_seat(ItemType.CLASS, booking.class_id):
                    logger.warning("seat_release_skipped", booking_id=booking.id, item_id=booking.class_id)

            new_price = to_money(new_class.price)
            moved = await uow.bookings.transition(
                booking.id,
                [booking.status],
                class_id=new_class_id,
                total_amount=new_price,
                rescheduled_from_class_id=booking.class_id,
                reschedule_reason=reason,
                rescheduled_at=now,
            )
            if not moved:
                raise BookingConflict()

            promotion = None
            if holds_seat:
                promotion = await promote_next(uow, ItemType.CLASS, booking.class_id, now)

            price_difference = new_price - booking.total_amount
            owed = price_difference + fee
            refund_row = None
            if owed < 0:
                refund_row = Refund(
                    id=new_id(),
                    booking_id=booking.id,
                    user_id=booking.user_id,
                    amount=-owed,
                    reason="Refund for rescheduled class price difference",
                    requested_at=now,
                )
                await uow.refunds.add(refund_row)

            rescheduled = await uow.bookings.get(booking.id)
            user = await uow.catalog.get_user(booking.user_id)
            if user is not None:
                notices.append(partial(self.notifier.send_reschedule, user, rescheduled, old_class, new_class, owed))
            offer = await waitlist_offer_notice(uow, self.notifier, promotion)
            if offer:
                notices.append(offer)

        logger.info(
            "booking_rescheduled",
            booking_id=booking.id,
            from_class_id=booking.class_id,
            to_class_id=new_class_id,
            fee=str(fee),
            amount_owed=str(owed),
            waitlist_promoted=promotion is not None,
        )
        for send in notices:
            await deliver(send(), booking_id=booking.id)

        return RescheduleResult(
            booking=rescheduled,
            new_class=new_class,
            price_difference=price_difference,
            fee=fee,
            amount_owed=owed,
            refund=refund_row,
            waitlist_processed=promotion is not None,
        )
