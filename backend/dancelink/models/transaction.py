"""
Transaction: one payment-provider attempt for a booking.
The raw provider payload is kept verbatim for audit and replay.
"""

from sqlalchemy import Column, Enum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import relationship

from dancelink.db.base import Base, TimestampMixin
from dancelink.domain.enums import TransactionStatus, TransactionType


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True)
    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    provider = Column(String(20), nullable=False)
    provider_payment_id = Column(String(255), nullable=True)
    stripe_session_id = Column(String(255), nullable=True)
    type = Column(Enum(TransactionType, native_enum=False, length=20), nullable=False, default=TransactionType.PAYMENT)
    status = Column(Enum(TransactionStatus, native_enum=False, length=20), nullable=False, default=TransactionStatus.CREATED)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    failure_reason = Column(Text, nullable=True)
    payment_method_type = Column(String(50), nullable=True)
    payload = Column(Text, nullable=True)

    booking = relationship("Booking", back_populates="transactions", lazy="noload")

    __table_args__ = (
        Index("ix_transactions_provider_payment", "provider", "provider_payment_id"),
        Index("ix_transactions_provider_session", "provider", "stripe_session_id"),
    )

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, booking={self.booking_id}, provider={self.provider}, status={self.status})>"
