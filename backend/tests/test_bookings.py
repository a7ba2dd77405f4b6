"""
Tests for booking management: reading, cancelling and rescheduling,
including the waitlist offer made when a seat frees up.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient

from dancelink.domain.entities import WaitlistEntry, new_id
from dancelink.domain.enums import BookingSource, BookingStatus, WaitlistStatus
from tests.conftest import NOW, make_booking, make_class


def manage_url(booking) -> str:
    return f"/api/bookings/manage/{booking.id}"


def add_waitlist_entry(db, user, item, position=1, priority=0) -> WaitlistEntry:
    entry = WaitlistEntry(
        id=new_id(),
        user_id=user.id,
        class_id=item.id,
        position=position,
        priority=priority,
        created_at=NOW - timedelta(hours=1),
    )
    db.waitlist[entry.id] = entry
    return entry


@pytest.mark.asyncio
async def test_get_booking(client: AsyncClient, seed, db):
    booking = make_booking(db, seed.user, seed.salsa)

    response = await client.get(f"/api/bookings/{booking.id}")
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == booking.id
    assert data["status"] == "CONFIRMED"
    assert data["classId"] == seed.salsa.id
    assert data["amountPaid"] == 25.0
    assert data["item"]["title"] == "Salsa Foundations"
    assert data["item"]["venue"]["name"] == "Studio A"
    assert data["transactions"] == []
    assert data["refunds"] == []


@pytest.mark.asyncio
async def test_get_booking_not_found(client: AsyncClient, seed):
    missing = await client.get(f"/api/bookings/{new_id()}")
    malformed = await client.get("/api/bookings/not-a-uuid")

    assert missing.status_code == 404
    assert missing.json()["error"] == "Booking not found"
    assert malformed.status_code == 400


@pytest.mark.asyncio
async def test_finished_booking_reads_as_completed(client: AsyncClient, seed, db):
    past = make_class(db, "Yesterday's Salsa", "25.00", -3)
    booking = make_booking(db, seed.user, past)

    response = await client.get(f"/api/bookings/{booking.id}")

    assert response.json()["status"] == "COMPLETED"
    assert db.bookings[booking.id].status == BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_cancel_with_full_refund(client: AsyncClient, seed, db, notifier):
    booking = make_booking(db, seed.user, seed.salsa)
    assert db.classes[seed.salsa.id].current_students == 1

    response = await client.request(
        "DELETE", manage_url(booking), json={"reason": "Injured ankle", "requestRefund": True}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["refundAmount"] == 25.0
    assert data["canRefund"] is True
    assert data["refund"]["amount"] == 25.0
    assert data["refund"]["status"] == "PENDING"
    assert data["waitlistProcessed"] is False

    stored = db.bookings[booking.id]
    assert stored.status == BookingStatus.CANCELLED
    assert stored.payment_status == "refund_pending"
    assert stored.cancellation_reason == "Injured ankle"
    assert stored.cancelled_at == NOW
    assert db.classes[seed.salsa.id].current_students == 0
    assert [r.amount for r in db.refunds.values()] == [Decimal("25.00")]
    assert notifier.subjects() == ["Booking cancelled: Salsa Foundations"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "hours_before,expected_refund",
    [
        (18, 18.75),
        (5, 12.5),
    ],
)
async def test_cancel_partial_refund_tiers(client: AsyncClient, seed, db, hours_before, expected_refund):
    dance_class = make_class(db, "Evening Salsa", "25.00", hours_before)
    booking = make_booking(db, seed.user, dance_class)

    response = await client.request("DELETE", manage_url(booking))
    assert response.status_code == 200
    data = response.json()
    assert data["refundAmount"] == expected_refund
    assert data["canRefund"] is True
    # No refund row unless one was requested
    assert data["refund"] is None
    assert db.refunds == {}
    assert db.bookings[booking.id].payment_status == "succeeded"


@pytest.mark.asyncio
async def test_cancel_too_late_is_refused(client: AsyncClient, seed, db):
    dance_class = make_class(db, "Starting Soon", "25.00", 1)
    booking = make_booking(db, seed.user, dance_class)

    response = await client.request("DELETE", manage_url(booking), json={"requestRefund": True})

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "Cannot cancel booking"
    assert data["message"] == "Cannot cancel within 2 hours of class"
    assert data["policy"]["canCancel"] is False
    assert data["policy"]["refundPercentage"] == 0
    assert db.bookings[booking.id].status == BookingStatus.CONFIRMED
    assert db.classes[dance_class.id].current_students == 1


@pytest.mark.asyncio
async def test_cancel_twice_is_refused(client: AsyncClient, seed, db):
    booking = make_booking(db, seed.user, seed.salsa)

    first = await client.request("DELETE", manage_url(booking))
    second = await client.request("DELETE", manage_url(booking))

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["error"] == "Booking is already cancelled"
    assert db.classes[seed.salsa.id].current_students == 0


@pytest.mark.asyncio
async def test_cancel_unknown_booking(client: AsyncClient, seed):
    response = await client.request("DELETE", f"/api/bookings/manage/{new_id()}")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cancel_promotes_next_on_waitlist(client: AsyncClient, seed, db, notifier):
    db.classes[seed.salsa.id].max_students = 1
    booking = make_booking(db, seed.user, seed.salsa)
    entry = add_waitlist_entry(db, seed.other_user, seed.salsa)

    response = await client.request("DELETE", manage_url(booking))
    assert response.json()["waitlistProcessed"] is True

    assert db.waitlist[entry.id].status == WaitlistStatus.CONVERTED
    offered = [b for b in db.bookings.values() if b.user_id == seed.other_user.id]
    assert len(offered) == 1
    assert offered[0].status == BookingStatus.PENDING
    assert offered[0].created_from == BookingSource.WAITLIST.value
    assert offered[0].confirmation_code.startswith("WL-")
    assert offered[0].total_amount == Decimal("25.00")
    # The offer is a PENDING booking; the seat is only taken once it is paid
    assert db.classes[seed.salsa.id].current_students == 0
    assert "A spot opened up: Salsa Foundations" in notifier.subjects()


@pytest.mark.asyncio
async def test_cancel_pending_booking_frees_no_seat(client: AsyncClient, seed, db):
    make_booking(db, seed.other_user, seed.salsa)
    pending = make_booking(db, seed.user, seed.salsa, status=BookingStatus.PENDING)
    entry = add_waitlist_entry(db, seed.other_user, seed.salsa)

    response = await client.request("DELETE", manage_url(pending))

    assert response.status_code == 200
    assert response.json()["refundAmount"] == 0.0
    assert response.json()["canRefund"] is False
    assert response.json()["waitlistProcessed"] is False
    assert db.classes[seed.salsa.id].current_students == 1
    assert db.waitlist[entry.id].status == WaitlistStatus.ACTIVE


@pytest.mark.asyncio
async def test_reschedule_to_pricier_class(client: AsyncClient, seed, db, notifier):
    booking = make_booking(db, seed.user, seed.salsa)

    response = await client.patch(
        manage_url(booking), json={"newClassId": seed.bachata.id, "reason": "Schedule clash"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["priceDifference"] == 5.0
    assert data["rescheduleFee"] == 0.0
    assert data["paymentRequired"]["amount"] == 5.0
    assert data["refund"] is None
    assert data["newClass"]["title"] == "Bachata Sensual"
    assert data["booking"]["classId"] == seed.bachata.id
    assert data["booking"]["rescheduledFromClassId"] == seed.salsa.id
    assert data["booking"]["totalAmount"] == 30.0

    assert db.classes[seed.salsa.id].current_students == 0
    assert db.classes[seed.bachata.id].current_students == 1
    assert db.bookings[booking.id].reschedule_reason == "Schedule clash"
    assert notifier.subjects() == ["Booking rescheduled: Bachata Sensual"]


@pytest.mark.asyncio
async def test_reschedule_to_cheaper_class_creates_refund(client: AsyncClient, seed, db):
    booking = make_booking(db, seed.user, seed.salsa)

    response = await client.patch(manage_url(booking), json={"newClassId": seed.kizomba.id})
    data = response.json()

    assert data["priceDifference"] == -5.0
    assert data["paymentRequired"] is None
    assert data["refund"]["amount"] == 5.0
    assert [r.amount for r in db.refunds.values()] == [Decimal("5.00")]


@pytest.mark.asyncio
async def test_reschedule_fee_applies_inside_twelve_hours(client: AsyncClient, seed, db):
    soon = make_class(db, "Lunchtime Salsa", "25.00", 6)
    booking = make_booking(db, seed.user, soon)

    response = await client.patch(manage_url(booking), json={"newClassId": seed.kizomba.id})
    data = response.json()

    assert response.status_code == 200
    assert data["rescheduleFee"] == 5.0
    assert data["priceDifference"] == -5.0
    # Fee and price difference cancel out
    assert data["paymentRequired"] is None
    assert data["refund"] is None


@pytest.mark.asyncio
async def test_reschedule_too_late_is_refused(client: AsyncClient, seed, db):
    soon = make_class(db, "Starting Soon", "25.00", 3)
    booking = make_booking(db, seed.user, soon)

    response = await client.patch(manage_url(booking), json={"newClassId": seed.bachata.id})

    assert response.status_code == 400
    assert response.json()["error"] == "Cannot reschedule booking"
    assert response.json()["policy"]["canReschedule"] is False
    assert db.bookings[booking.id].class_id == soon.id


@pytest.mark.asyncio
async def test_reschedule_into_full_class_is_refused(client: AsyncClient, seed, db):
    booking = make_booking(db, seed.user, seed.salsa)

    response = await client.patch(manage_url(booking), json={"newClassId": seed.full_class.id})

    assert response.status_code == 400
    assert response.json()["error"] == "New class is full"
    assert db.classes[seed.salsa.id].current_students == 1
    assert db.classes[seed.full_class.id].current_students == 2


@pytest.mark.asyncio
async def test_reschedule_invalid_targets(client: AsyncClient, seed, db):
    booking = make_booking(db, seed.user, seed.salsa)
    event_booking = make_booking(db, seed.user, seed.gala)

    unknown = await client.patch(manage_url(booking), json={"newClassId": new_id()})
    inactive = await client.patch(manage_url(booking), json={"newClassId": seed.inactive_class.id})
    same = await client.patch(manage_url(booking), json={"newClassId": seed.salsa.id})
    event = await client.patch(manage_url(event_booking), json={"newClassId": seed.bachata.id})

    assert unknown.status_code == 404
    assert unknown.json()["error"] == "New class not found"
    assert inactive.status_code == 404
    assert same.status_code == 400
    assert event.status_code == 400


@pytest.mark.asyncio
async def test_reschedule_offers_freed_seat(client: AsyncClient, seed, db):
    db.classes[seed.salsa.id].max_students = 1
    booking = make_booking(db, seed.user, seed.salsa)
    entry = add_waitlist_entry(db, seed.other_user, seed.salsa)

    response = await client.patch(manage_url(booking), json={"newClassId": seed.bachata.id})

    assert response.json()["waitlistProcessed"] is True
    assert db.waitlist[entry.id].status == WaitlistStatus.CONVERTED
