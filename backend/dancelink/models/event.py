"""
Dance event (social, workshop, festival) with attendee inventory tracking.
Same counter rules as DanceClass: `current_attendees` counts CONFIRMED bookings.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, Index, Integer, Numeric, String, Text

from dancelink.db.base import Base, TimestampMixin
from dancelink.domain.enums import EventStatus


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(String(36), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    max_attendees = Column(Integer, nullable=False)
    current_attendees = Column(Integer, nullable=False, default=0)
    status = Column(Enum(EventStatus, native_enum=False, length=20), nullable=False, default=EventStatus.DRAFT)
    venue_name = Column(String(255), nullable=True)
    venue_address = Column(String(255), nullable=True)
    venue_city = Column(String(100), nullable=True)
    organizer_name = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("current_attendees >= 0", name="check_event_attendees_non_negative"),
        CheckConstraint("current_attendees <= max_attendees", name="check_event_attendees_lte_max"),
        CheckConstraint("max_attendees > 0", name="check_event_max_attendees_positive"),
        Index("ix_events_status_start_date", "status", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, seats={self.current_attendees}/{self.max_attendees})>"
