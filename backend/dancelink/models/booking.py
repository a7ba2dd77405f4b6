"""
Booking: one user's claim on one class or one event.

Key design decisions:
- CHECK constraint enforces exactly one of class_id / event_id
- Status is changed with conditional UPDATEs (status IN (...)) so two
  requests racing on the same booking cannot both apply
- payment_status is free text mirroring the provider vocabulary
- COMPLETED is never written; it is derived at read time
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import relationship

from dancelink.db.base import Base, TimestampMixin
from dancelink.domain.enums import BookingStatus


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    class_id = Column(String(36), ForeignKey("classes.id"), nullable=True, index=True)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=True, index=True)
    status = Column(Enum(BookingStatus, native_enum=False, length=20), nullable=False, default=BookingStatus.PENDING)
    payment_status = Column(String(30), nullable=False, default="pending")
    total_amount = Column(Numeric(10, 2), nullable=False)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    confirmation_code = Column(String(64), nullable=False, unique=True)
    payment_method = Column(String(50), nullable=True)
    stripe_session_id = Column(String(255), nullable=True, unique=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    rescheduled_from_class_id = Column(String(36), ForeignKey("classes.id"), nullable=True)
    reschedule_reason = Column(Text, nullable=True)
    rescheduled_at = Column(DateTime(timezone=True), nullable=True)
    created_from = Column(String(20), nullable=False, default="CHECKOUT")

    user = relationship("User", back_populates="bookings", lazy="noload")
    transactions = relationship("Transaction", back_populates="booking", lazy="noload")

    __table_args__ = (
        CheckConstraint(
            "(class_id IS NULL) <> (event_id IS NULL)",
            name="check_booking_exactly_one_item",
        ),
        CheckConstraint("amount_paid >= 0", name="check_booking_amount_paid_non_negative"),
        CheckConstraint("discount_amount >= 0 AND tax_amount >= 0", name="check_booking_adjustments_non_negative"),
        # Capacity reconciliation counts confirmed bookings per item
        Index("ix_bookings_class_status", "class_id", "status"),
        Index("ix_bookings_event_status", "event_id", "status"),
    )

    def __repr__(self) -> str:
        item = f"class={self.class_id}" if self.class_id else f"event={self.event_id}"
        return f"<Booking(id={self.id}, user={self.user_id}, {item}, status={self.status})>"
