from datetime import datetime
from typing import Optional

from pydantic import Field

from dancelink.domain.entities import WaitlistEntry
from dancelink.domain.enums import ItemType, WaitlistStatus
from dancelink.schemas.base import CamelModel


class JoinWaitlistRequest(CamelModel):
    user_id: str = Field(min_length=1)
    booking_type: ItemType
    item_id: str = Field(min_length=1)
    priority: int = Field(default=0, ge=0)


class WaitlistEntryResponse(CamelModel):
    id: str
    user_id: str
    class_id: Optional[str] = None
    event_id: Optional[str] = None
    position: int
    priority: int
    status: WaitlistStatus
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: WaitlistEntry) -> "WaitlistEntryResponse":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            class_id=entry.class_id,
            event_id=entry.event_id,
            position=entry.position,
            priority=entry.priority,
            status=entry.status,
            created_at=entry.created_at,
        )
