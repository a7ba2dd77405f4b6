"""
Dance class with seat inventory tracking.

Key design decisions:
- `current_students` is a denormalized counter of CONFIRMED bookings; it is
  only moved by conditional UPDATEs (see SqlCapacityStore), never recomputed
- CHECK constraints are the final safety net against over/under counting
"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, Numeric, String, Text

from dancelink.db.base import Base, TimestampMixin


class DanceClass(Base, TimestampMixin):
    __tablename__ = "classes"

    id = Column(String(36), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    max_students = Column(Integer, nullable=False)
    current_students = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    venue_name = Column(String(255), nullable=True)
    venue_address = Column(String(255), nullable=True)
    venue_city = Column(String(100), nullable=True)
    instructor_name = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("current_students >= 0", name="check_class_students_non_negative"),
        CheckConstraint("current_students <= max_students", name="check_class_students_lte_max"),
        CheckConstraint("max_students > 0", name="check_class_max_students_positive"),
        Index("ix_classes_start_date", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<DanceClass(id={self.id}, title={self.title}, seats={self.current_students}/{self.max_students})>"
