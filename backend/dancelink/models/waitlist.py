"""
Waitlist entry for a full class or event.

Promotion order is priority DESC, position ASC; the composite index covers
exactly that lookup for ACTIVE entries.
"""

from sqlalchemy import CheckConstraint, Column, Enum, ForeignKey, Index, Integer, String

from dancelink.db.base import Base, TimestampMixin
from dancelink.domain.enums import WaitlistStatus


class WaitlistEntry(Base, TimestampMixin):
    __tablename__ = "waitlist_entries"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    class_id = Column(String(36), ForeignKey("classes.id"), nullable=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=True)
    position = Column(Integer, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    status = Column(Enum(WaitlistStatus, native_enum=False, length=20), nullable=False, default=WaitlistStatus.ACTIVE)

    __table_args__ = (
        CheckConstraint(
            "(class_id IS NULL) <> (event_id IS NULL)",
            name="check_waitlist_exactly_one_item",
        ),
        Index("ix_waitlist_class_promotion", "class_id", "status", "priority", "position"),
        Index("ix_waitlist_event_promotion", "event_id", "status", "priority", "position"),
    )

    def __repr__(self) -> str:
        return f"<WaitlistEntry(id={self.id}, user={self.user_id}, position={self.position}, status={self.status})>"
