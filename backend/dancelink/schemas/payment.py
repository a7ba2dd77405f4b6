"""
Pydantic schemas for payment session and webhook request/response validation.
"""

from decimal import Decimal
from typing import Any, Optional

from pydantic import Field

from dancelink.domain.enums import ItemType, PaymentProviderName
from dancelink.schemas.base import CamelModel
from dancelink.services.payment_session_service import PaymentSession


class CreateSessionRequest(CamelModel):
    payment_provider: PaymentProviderName = PaymentProviderName.STRIPE
    booking_type: ItemType
    item_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    custom_amount: Optional[Decimal] = Field(default=None, gt=0)
    discount_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    tax_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    wise_recipient_details: Optional[dict[str, Any]] = None
    booking_id: Optional[str] = None


class SessionBooking(CamelModel):
    id: str
    confirmation_code: str
    total_amount: float
    discount_amount: float
    tax_amount: float
    final_amount: float


class CreateSessionResponse(CamelModel):
    success: bool = True
    payment_provider: PaymentProviderName
    session_id: Optional[str] = None
    transfer_id: Optional[str] = None
    url: Optional[str] = None
    wise_details: Optional[dict[str, Any]] = None
    booking: SessionBooking

    @classmethod
    def from_session(cls, session: PaymentSession) -> "CreateSessionResponse":
        booking = session.booking
        response = cls(
            payment_provider=session.provider,
            url=session.intent.redirect_url,
            booking=SessionBooking(
                id=booking.id,
                confirmation_code=booking.confirmation_code,
                total_amount=float(booking.total_amount),
                discount_amount=float(booking.discount_amount),
                tax_amount=float(booking.tax_amount),
                final_amount=float(booking.final_amount),
            ),
        )
        if session.provider == PaymentProviderName.WISE:
            response.transfer_id = session.intent.provider_ref
            response.wise_details = session.intent.extra
        else:
            response.session_id = session.intent.session_id
        return response


class WebhookAck(CamelModel):
    received: bool = True
    duplicate: Optional[bool] = None
    processed: Optional[bool] = None
