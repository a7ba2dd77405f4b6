"""
Time-based cancellation and reschedule rules.

Thresholds are inclusive on the lower bound: exactly 24h before start still
earns the full refund, exactly 2h still allows a 50% cancellation.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from dancelink.domain.entities import Booking, DanceClass, Event
from dancelink.domain.enums import BookingStatus
from dancelink.domain.money import percentage_of, to_money

Item = Union[DanceClass, Event]

# (minimum hours before start, refund percentage)
CANCELLATION_TIERS = ((24, 100), (12, 75), (2, 50))

# (minimum hours before start, fee)
RESCHEDULE_TIERS = ((12, Decimal("0.00")), (4, Decimal("5.00")))


@dataclass(frozen=True)
class CancellationPolicy:
    can_cancel: bool
    refund_percentage: int
    message: str
    hours_until_start: float

    def to_dict(self) -> dict:
        return {
            "canCancel": self.can_cancel,
            "refundPercentage": self.refund_percentage,
            "message": self.message,
            "hoursUntilStart": round(self.hours_until_start, 2),
        }


@dataclass(frozen=True)
class ReschedulePolicy:
    can_reschedule: bool
    fee: Decimal
    message: str
    hours_until_start: float

    def to_dict(self) -> dict:
        return {
            "canReschedule": self.can_reschedule,
            "fee": float(self.fee),
            "message": self.message,
            "hoursUntilStart": round(self.hours_until_start, 2),
        }


def hours_until(start: datetime, now: datetime) -> float:
    return (start - now).total_seconds() / 3600


def cancellation_policy(hours_until_start: float) -> CancellationPolicy:
    for min_hours, percentage in CANCELLATION_TIERS:
        if hours_until_start >= min_hours:
            message = "Full refund available" if percentage == 100 else f"{percentage}% refund available"
            return CancellationPolicy(True, percentage, message, hours_until_start)
    return CancellationPolicy(
        False, 0, f"Cannot cancel within {CANCELLATION_TIERS[-1][0]} hours of class", hours_until_start
    )


def reschedule_policy(hours_until_start: float) -> ReschedulePolicy:
    for min_hours, fee in RESCHEDULE_TIERS:
        if hours_until_start >= min_hours:
            message = "Free rescheduling available" if not fee else f"${fee:.0f} rescheduling fee applies"
            return ReschedulePolicy(True, fee, message, hours_until_start)
    return ReschedulePolicy(
        False, Decimal("0.00"), f"Cannot reschedule within {RESCHEDULE_TIERS[-1][0]} hours of class", hours_until_start
    )


def refund_amount(booking: Booking, policy: CancellationPolicy) -> Decimal:
    if not policy.can_cancel:
        return to_money(0)
    return percentage_of(booking.amount_paid, policy.refund_percentage)


def class_full_policy(item: Item) -> dict:
    return {
        "reason": "class_full",
        "itemType": item.item_type.value,
        "capacity": item.capacity,
        "seatsTaken": item.seats_taken,
    }


def effective_status(booking: Booking, item: Optional[Item], now: datetime) -> BookingStatus:
    """COMPLETED is never stored; a confirmed booking whose item has ended reads as completed."""
    if booking.status != BookingStatus.CONFIRMED or item is None:
        return booking.status
    finished_at = item.end_date or item.start_date
    if finished_at <= now:
        return BookingStatus.COMPLETED
    return booking.status
