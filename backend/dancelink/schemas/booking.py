"""
Pydantic schemas for booking management request/response validation.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from dancelink.domain.entities import Booking, DanceClass, Refund, Transaction
from dancelink.domain.enums import BookingStatus, ItemType
from dancelink.schemas.base import CamelModel
from dancelink.services.booking_service import BookingView, CancellationResult, RescheduleResult


class CancelBookingRequest(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    request_refund: bool = False


class RescheduleBookingRequest(CamelModel):
    new_class_id: str = Field(min_length=1)
    reason: Optional[str] = Field(default=None, max_length=500)


class BookingResponse(CamelModel):
    id: str
    user_id: str
    class_id: Optional[str] = None
    event_id: Optional[str] = None
    status: BookingStatus
    payment_status: str
    confirmation_code: str
    total_amount: float
    amount_paid: float
    discount_amount: float
    tax_amount: float
    final_amount: float
    payment_method: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    rescheduled_from_class_id: Optional[str] = None
    reschedule_reason: Optional[str] = None
    rescheduled_at: Optional[datetime] = None
    created_from: str
    created_at: datetime

    @classmethod
    def from_booking(cls, booking: Booking, status: Optional[BookingStatus] = None, **extra: Any):
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            class_id=booking.class_id,
            event_id=booking.event_id,
            status=status or booking.status,
            payment_status=booking.payment_status,
            confirmation_code=booking.confirmation_code,
            total_amount=float(booking.total_amount),
            amount_paid=float(booking.amount_paid),
            discount_amount=float(booking.discount_amount),
            tax_amount=float(booking.tax_amount),
            final_amount=float(booking.final_amount),
            payment_method=booking.payment_method,
            cancellation_reason=booking.cancellation_reason,
            cancelled_at=booking.cancelled_at,
            rescheduled_from_class_id=booking.rescheduled_from_class_id,
            reschedule_reason=booking.reschedule_reason,
            rescheduled_at=booking.rescheduled_at,
            created_from=booking.created_from,
            created_at=booking.created_at,
            **extra,
        )


class RefundResponse(CamelModel):
    id: str
    booking_id: str
    user_id: str
    amount: float
    reason: str
    status: str
    requested_at: datetime

    @classmethod
    def from_refund(cls, refund: Optional[Refund]) -> Optional["RefundResponse"]:
        if refund is None:
            return None
        return cls(
            id=refund.id,
            booking_id=refund.booking_id,
            user_id=refund.user_id,
            amount=float(refund.amount),
            reason=refund.reason,
            status=refund.status.value,
            requested_at=refund.requested_at,
        )


class TransactionResponse(CamelModel):
    id: str
    provider: str
    type: str
    status: str
    amount: float
    currency: str
    provider_payment_id: Optional[str] = None
    stripe_session_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionResponse":
        return cls(
            id=transaction.id,
            provider=transaction.provider,
            type=transaction.type.value,
            status=transaction.status.value,
            amount=float(transaction.amount),
            currency=transaction.currency,
            provider_payment_id=transaction.provider_payment_id,
            stripe_session_id=transaction.stripe_session_id,
            failure_reason=transaction.failure_reason,
            created_at=transaction.created_at,
        )


class VenueSummary(CamelModel):
    name: str
    address: Optional[str] = None
    city: Optional[str] = None


class ItemSummary(CamelModel):
    id: str
    type: ItemType
    title: str
    start_date: datetime
    end_date: Optional[datetime] = None
    venue: Optional[VenueSummary] = None

    @classmethod
    def from_item(cls, item) -> Optional["ItemSummary"]:
        if item is None:
            return None
        venue = None
        if item.venue_name:
            venue = VenueSummary(name=item.venue_name, address=item.venue_address, city=item.venue_city)
        return cls(
            id=item.id,
            type=item.item_type,
            title=item.title,
            start_date=item.start_date,
            end_date=item.end_date,
            venue=venue,
        )


class BookingDetailResponse(BookingResponse):
    item: Optional[ItemSummary] = None
    transactions: list[TransactionResponse] = []
    refunds: list[RefundResponse] = []

    @classmethod
    def from_view(cls, view: BookingView) -> "BookingDetailResponse":
        return cls.from_booking(
            view.booking,
            status=view.status,
            item=ItemSummary.from_item(view.item),
            transactions=[TransactionResponse.from_transaction(t) for t in view.transactions],
            refunds=[RefundResponse.from_refund(r) for r in view.refunds],
        )


class CancelBookingResponse(CamelModel):
    success: bool = True
    message: str = "Booking cancelled successfully"
    refund_amount: float
    refund: Optional[RefundResponse] = None
    can_refund: bool
    waitlist_processed: bool

    @classmethod
    def from_result(cls, result: CancellationResult) -> "CancelBookingResponse":
        return cls(
            refund_amount=float(result.refund_amount),
            refund=RefundResponse.from_refund(result.refund),
            can_refund=result.can_refund,
            waitlist_processed=result.waitlist_processed,
        )


class PaymentRequired(CamelModel):
    amount: float
    description: str = "Additional payment for rescheduled class"


class RescheduleBookingResponse(CamelModel):
    success: bool = True
    message: str = "Booking rescheduled successfully"
    booking: BookingResponse
    price_difference: float
    reschedule_fee: float
    payment_required: Optional[PaymentRequired] = None
    refund: Optional[RefundResponse] = None
    new_class: ItemSummary
    waitlist_processed: bool

    @classmethod
    def from_result(cls, result: RescheduleResult) -> "RescheduleBookingResponse":
        new_class: DanceClass = result.new_class
        return cls(
            booking=BookingResponse.from_booking(result.booking),
            price_difference=float(result.price_difference),
            reschedule_fee=float(result.fee),
            payment_required=PaymentRequired(amount=float(result.amount_owed)) if result.amount_owed > 0 else None,
            refund=RefundResponse.from_refund(result.refund),
            new_class=ItemSummary.from_item(new_class),
            waitlist_processed=result.waitlist_processed,
        )
