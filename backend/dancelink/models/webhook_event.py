"""
Ledger of processed provider webhook events.

The unique (provider, event_id) constraint is what makes redelivery of the
same event a no-op: the second worker either sees a processed row or loses
the insert race.
"""

from sqlalchemy import Column, DateTime, Enum, String, Text, UniqueConstraint

from dancelink.db.base import Base
from dancelink.domain.enums import WebhookEventStatus


class WebhookEvent(Base):
    __tablename__ = "processed_webhook_events"

    id = Column(String(36), primary_key=True)
    provider = Column(String(20), nullable=False)
    event_id = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=False)
    status = Column(Enum(WebhookEventStatus, native_enum=False, length=20), nullable=False)
    booking_id = Column(String(36), nullable=True, index=True)
    error = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event_id"),
    )
