"""
Waitlist registration endpoint.
"""

from fastapi import APIRouter, Depends, status

from dancelink.schemas.waitlist import JoinWaitlistRequest, WaitlistEntryResponse
from dancelink.services.waitlist_service import WaitlistService
from dancelink.api.deps import get_waitlist_service

router = APIRouter(prefix="/waitlist", tags=["Waitlist"])


@router.post("", response_model=WaitlistEntryResponse, status_code=status.HTTP_201_CREATED)
async def join_waitlist(
    payload: JoinWaitlistRequest,
    service: WaitlistService = Depends(get_waitlist_service),
):
    """Join the waitlist for a class or event. Position is assigned in arrival order."""
    entry = await service.join(payload.user_id, payload.booking_type, payload.item_id, payload.priority)
    return WaitlistEntryResponse.from_entry(entry)
