"""
Refund request. Settlement happens outside this service; rows stay PENDING here.
"""

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Numeric, String, Text

from dancelink.db.base import Base, TimestampMixin
from dancelink.domain.enums import RefundStatus


class Refund(Base, TimestampMixin):
    __tablename__ = "refunds"

    id = Column(String(36), primary_key=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(RefundStatus, native_enum=False, length=20), nullable=False, default=RefundStatus.PENDING)
    reason = Column(Text, nullable=False)
    requested_at = Column(DateTime(timezone=True), nullable=False)
