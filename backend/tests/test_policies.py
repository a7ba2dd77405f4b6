"""
Tests for cancellation/reschedule tiers, money rounding and derived status.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from dancelink.domain.entities import Booking, DanceClass, WaitlistEntry, new_id
from dancelink.domain.enums import BookingStatus
from dancelink.domain.money import from_minor_units, percentage_of, to_minor_units, to_money
from dancelink.domain.policies import (
    cancellation_policy,
    effective_status,
    hours_until,
    refund_amount,
    reschedule_policy,
)
from tests.conftest import NOW


@pytest.mark.parametrize(
    "hours,can_cancel,percentage",
    [
        (72.0, True, 100),
        (24.0, True, 100),
        (23.99, True, 75),
        (12.0, True, 75),
        (11.99, True, 50),
        (2.0, True, 50),
        (1.99, False, 0),
        (-1.0, False, 0),
    ],
)
def test_cancellation_tiers(hours, can_cancel, percentage):
    policy = cancellation_policy(hours)
    assert policy.can_cancel is can_cancel
    assert policy.refund_percentage == percentage


def test_cancellation_messages():
    assert cancellation_policy(30).message == "Full refund available"
    assert cancellation_policy(13).message == "75% refund available"
    assert cancellation_policy(1).message == "Cannot cancel within 2 hours of class"
    assert cancellation_policy(1).to_dict() == {
        "canCancel": False,
        "refundPercentage": 0,
        "message": "Cannot cancel within 2 hours of class",
        "hoursUntilStart": 1,
    }


@pytest.mark.parametrize(
    "hours,can_reschedule,fee",
    [
        (12.0, True, Decimal("0.00")),
        (11.99, True, Decimal("5.00")),
        (4.0, True, Decimal("5.00")),
        (3.99, False, Decimal("0.00")),
    ],
)
def test_reschedule_tiers(hours, can_reschedule, fee):
    policy = reschedule_policy(hours)
    assert policy.can_reschedule is can_reschedule
    assert policy.fee == fee


def test_reschedule_messages():
    assert reschedule_policy(20).message == "Free rescheduling available"
    assert reschedule_policy(5).message == "$5 rescheduling fee applies"
    assert reschedule_policy(1).message == "Cannot reschedule within 4 hours of class"


def make_booking(amount_paid: str, status=BookingStatus.CONFIRMED) -> Booking:
    return Booking(
        id=new_id(),
        user_id=new_id(),
        class_id=new_id(),
        confirmation_code="CLASS-1-abc",
        total_amount=Decimal("25.00"),
        amount_paid=Decimal(amount_paid),
        created_at=NOW,
        status=status,
    )


@pytest.mark.parametrize("item_ids", [{}, {"class_id": "c-1", "event_id": "e-1"}])
def test_booking_needs_exactly_one_item(item_ids):
    with pytest.raises(ValueError):
        Booking(
            id=new_id(),
            user_id=new_id(),
            confirmation_code="CLASS-1-abc",
            total_amount=Decimal("25.00"),
            created_at=NOW,
            **item_ids,
        )


@pytest.mark.parametrize("item_ids", [{}, {"class_id": "c-1", "event_id": "e-1"}])
def test_waitlist_entry_needs_exactly_one_item(item_ids):
    with pytest.raises(ValueError):
        WaitlistEntry(id=new_id(), user_id=new_id(), position=1, created_at=NOW, **item_ids)


def test_refund_amount_is_percentage_of_amount_paid():
    booking = make_booking("25.00")
    assert refund_amount(booking, cancellation_policy(30)) == Decimal("25.00")
    assert refund_amount(booking, cancellation_policy(13)) == Decimal("18.75")
    assert refund_amount(booking, cancellation_policy(3)) == Decimal("12.50")
    assert refund_amount(booking, cancellation_policy(1)) == Decimal("0.00")


def test_refund_rounds_half_up():
    assert refund_amount(make_booking("19.99"), cancellation_policy(13)) == Decimal("14.99")
    assert refund_amount(make_booking("0.05"), cancellation_policy(3)) == Decimal("0.03")


def test_money_helpers():
    assert to_money(0.1 + 0.2) == Decimal("0.30")
    assert to_money("10") == Decimal("10.00")
    assert to_minor_units(Decimal("25.00")) == 2500
    assert to_minor_units("19.995") == 2000
    assert from_minor_units(1999) == Decimal("19.99")
    assert percentage_of(Decimal("40.00"), 75) == Decimal("30.00")


def test_hours_until():
    assert hours_until(NOW + timedelta(hours=36), NOW) == 36
    assert hours_until(NOW - timedelta(minutes=30), NOW) == -0.5


def make_class(start_offset_hours: float, end_offset_hours=None) -> DanceClass:
    return DanceClass(
        id=new_id(),
        title="Salsa",
        price=Decimal("25.00"),
        start_date=NOW + timedelta(hours=start_offset_hours),
        end_date=NOW + timedelta(hours=end_offset_hours) if end_offset_hours is not None else None,
        max_students=10,
    )


def test_effective_status_derives_completed():
    booking = make_booking("25.00")
    assert effective_status(booking, make_class(-3, -2), NOW) == BookingStatus.COMPLETED
    # Started but not finished
    assert effective_status(booking, make_class(-1, 1), NOW) == BookingStatus.CONFIRMED
    # Without an end date the start date counts
    assert effective_status(booking, make_class(-1), NOW) == BookingStatus.COMPLETED
    assert effective_status(booking, None, NOW) == BookingStatus.CONFIRMED


def test_effective_status_leaves_other_statuses():
    for status in (BookingStatus.PENDING, BookingStatus.CANCELLED):
        assert effective_status(make_booking("0.00", status), make_class(-3, -2), NOW) == status
