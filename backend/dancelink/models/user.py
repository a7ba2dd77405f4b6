"""
User record as seen by the booking core (read only; owned by the accounts service).
"""

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from dancelink.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)

    bookings = relationship("Booking", back_populates="user", lazy="noload")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
