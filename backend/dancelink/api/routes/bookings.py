"""
Booking read, cancellation and reschedule endpoints.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends

from dancelink.schemas.booking import (
    BookingDetailResponse,
    CancelBookingRequest,
    CancelBookingResponse,
    RescheduleBookingRequest,
    RescheduleBookingResponse,
)
from dancelink.services.booking_service import BookingService
from dancelink.api.deps import get_booking_service

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("/{booking_id}", response_model=BookingDetailResponse)
async def get_booking(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
):
    """Booking with its transactions and refunds. Status is COMPLETED once the item has ended."""
    view = await service.get_booking(str(booking_id))
    return BookingDetailResponse.from_view(view)


@router.delete("/manage/{booking_id}", response_model=CancelBookingResponse)
async def cancel_booking(
    booking_id: uuid.UUID,
    payload: Optional[CancelBookingRequest] = None,
    service: BookingService = Depends(get_booking_service),
):
    """
    Cancel a booking under the cancellation policy.

    >=24h before start: full refund; >=12h: 75%; >=2h: 50%; later: refused
    with the policy in the response body. A freed seat is offered to the
    next person on the waitlist.
    """
    payload = payload or CancelBookingRequest()
    result = await service.cancel_booking(str(booking_id), payload.reason, payload.request_refund)
    return CancelBookingResponse.from_result(result)


@router.patch("/manage/{booking_id}", response_model=RescheduleBookingResponse)
async def reschedule_booking(
    booking_id: uuid.UUID,
    payload: RescheduleBookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    """
    Move a class booking to another class.

    Free >=12h before start, $5 >=4h, refused later. A higher price is
    reported as paymentRequired; a lower one creates a refund.
    """
    result = await service.reschedule_booking(str(booking_id), payload.new_class_id, payload.reason)
    return RescheduleBookingResponse.from_result(result)
