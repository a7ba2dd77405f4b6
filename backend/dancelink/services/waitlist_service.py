"""
Waitlist registration and promotion.

Promotion runs inside the caller's unit of work (the cancellation or
reschedule that freed the seat), so the seat release and the offer commit
together. Entries are taken by priority descending, then position ascending.
The ACTIVE -> CONVERTED flip is conditional: if a concurrent promoter
converted the same entry first, the next one in line is tried.
"""

from dataclasses import dataclass
from typing import Optional

from dancelink.core.exceptions import BookingConflict, NotFound, ValidationFailed
from dancelink.core.logging import get_logger
from dancelink.core.metrics import record_waitlist_promotion
from dancelink.domain.entities import Booking, WaitlistEntry, new_confirmation_code, new_id
from dancelink.domain.enums import BookingSource, ItemType
from dancelink.domain.money import to_money
from dancelink.services.interfaces.stores import Clock, UnitOfWork, UnitOfWorkFactory

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3


@dataclass
class Promotion:
    entry: WaitlistEntry
    booking: Booking


def _item_kwargs(item_type: ItemType, item_id: str) -> dict:
    return {"class_id": item_id} if item_type == ItemType.CLASS else {"event_id": item_id}


async def promote_next(uow: UnitOfWork, item_type: ItemType, item_id: str, now) -> Optional[Promotion]:
    """
    Offer a freed seat to the next ACTIVE entry as a PENDING booking.
    At most one entry is promoted per call.
    """
    item = await uow.catalog.get_item(item_type, item_id)
    if item is None:
        return None

    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        entry = await uow.waitlist.next_in_line(item_type, item_id)
        if entry is None:
            return None

        if not await uow.waitlist.mark_converted(entry.id):
            logger.info("waitlist_promotion_retry", entry_id=entry.id, attempt=attempt)
            continue

        booking = Booking(
            id=new_id(),
            user_id=entry.user_id,
            confirmation_code=new_confirmation_code("WL", now),
            total_amount=to_money(item.price),
            created_at=now,
            created_from=BookingSource.WAITLIST.value,
            **_item_kwargs(item_type, item_id),
        )
        await uow.bookings.add(booking)

        record_waitlist_promotion(item_type.value)
        logger.info(
            "waitlist_promoted",
            entry_id=entry.id,
            booking_id=booking.id,
            user_id=entry.user_id,
            item_type=item_type.value,
            item_id=item_id,
        )
        return Promotion(entry=entry, booking=booking)

    logger.warning("waitlist_promotion_gave_up", item_type=item_type.value, item_id=item_id)
    return None


class WaitlistService:
    def __init__(self, uow_factory: UnitOfWorkFactory, clock: Clock):
        self.uow_factory = uow_factory
        self.clock = clock

    async def join(self, user_id: str, item_type: ItemType, item_id: str, priority: int = 0) -> WaitlistEntry:
        if priority < 0:
            raise ValidationFailed(details="priority must be >= 0")

        async with self.uow_factory() as uow:
            if await uow.catalog.get_user(user_id) is None:
                raise NotFound("User not found")
            item = await uow.catalog.get_item(item_type, item_id)
            if item is None:
                raise NotFound(f"{item_type.value.capitalize()} not found")

            if await uow.waitlist.find_active(user_id, item_type, item_id):
                raise BookingConflict("Already on the waitlist for this item")

            entry = WaitlistEntry(
                id=new_id(),
                user_id=user_id,
                position=await uow.waitlist.next_position(item_type, item_id),
                created_at=self.clock(),
                priority=priority,
                **_item_kwargs(item_type, item_id),
            )
            await uow.waitlist.add(entry)

        logger.info(
            "waitlist_joined",
            entry_id=entry.id,
            user_id=user_id,
            item_type=item_type.value,
            item_id=item_id,
            position=entry.position,
        )
        return entry
