"""
Tests for waitlist registration and promotion order.
"""

import pytest
from httpx import AsyncClient

from dancelink.domain.entities import User, WaitlistEntry, new_id
from dancelink.domain.enums import BookingStatus, ItemType, WaitlistStatus
from dancelink.services.waitlist_service import promote_next
from tests.conftest import NOW


async def join(client: AsyncClient, user, item, booking_type="class", **extra):
    body = {"userId": user.id, "bookingType": booking_type, "itemId": item.id}
    body.update(extra)
    return await client.post("/api/waitlist", json=body)


@pytest.mark.asyncio
async def test_join_waitlist(client: AsyncClient, seed):
    response = await join(client, seed.user, seed.full_class)

    assert response.status_code == 201
    data = response.json()
    assert data["userId"] == seed.user.id
    assert data["classId"] == seed.full_class.id
    assert data["position"] == 1
    assert data["priority"] == 0
    assert data["status"] == "ACTIVE"


@pytest.mark.asyncio
async def test_positions_follow_arrival_order(client: AsyncClient, seed):
    first = await join(client, seed.user, seed.full_class)
    second = await join(client, seed.other_user, seed.full_class, priority=3)

    assert first.json()["position"] == 1
    assert second.json()["position"] == 2
    assert second.json()["priority"] == 3


@pytest.mark.asyncio
async def test_join_event_waitlist(client: AsyncClient, seed):
    response = await join(client, seed.user, seed.gala, booking_type="event")
    assert response.status_code == 201
    assert response.json()["eventId"] == seed.gala.id


@pytest.mark.asyncio
async def test_join_twice_conflicts(client: AsyncClient, seed):
    await join(client, seed.user, seed.full_class)
    response = await join(client, seed.user, seed.full_class)

    assert response.status_code == 409
    assert response.json()["error"] == "Already on the waitlist for this item"


@pytest.mark.asyncio
async def test_join_unknown_item_or_user(client: AsyncClient, seed):
    unknown_class = await client.post(
        "/api/waitlist", json={"userId": seed.user.id, "bookingType": "class", "itemId": new_id()}
    )
    unknown_user = await client.post(
        "/api/waitlist", json={"userId": new_id(), "bookingType": "class", "itemId": seed.salsa.id}
    )
    negative_priority = await join(client, seed.user, seed.salsa, priority=-1)

    assert unknown_class.status_code == 404
    assert unknown_user.status_code == 404
    assert negative_priority.status_code == 400


@pytest.mark.asyncio
async def test_promotion_order_priority_then_position(db, seed, uow_factory):
    """Highest priority first; ties go to the earliest position."""
    users = [db.add_user(User(id=new_id(), email=f"dancer{i}@example.com", full_name=f"Dancer {i}")) for i in range(3)]
    late_low, early_high, early_low = users
    for user, priority, position in ((late_low, 1, 2), (early_high, 2, 1), (early_low, 1, 1)):
        entry = WaitlistEntry(
            id=new_id(),
            user_id=user.id,
            class_id=seed.full_class.id,
            position=position,
            priority=priority,
            created_at=NOW,
        )
        db.waitlist[entry.id] = entry

    promoted = []
    for _ in range(4):
        async with uow_factory() as uow:
            promotion = await promote_next(uow, ItemType.CLASS, seed.full_class.id, NOW)
        promoted.append(promotion.entry.user_id if promotion else None)

    assert promoted == [early_high.id, early_low.id, late_low.id, None]
    assert all(e.status == WaitlistStatus.CONVERTED for e in db.waitlist.values())
    offers = list(db.bookings.values())
    assert len(offers) == 3
    assert all(b.status == BookingStatus.PENDING for b in offers)


@pytest.mark.asyncio
async def test_promotion_skips_converted_entries(db, seed, uow_factory):
    converted = WaitlistEntry(
        id=new_id(),
        user_id=seed.user.id,
        class_id=seed.salsa.id,
        position=1,
        priority=5,
        created_at=NOW,
        status=WaitlistStatus.CONVERTED,
    )
    waiting = WaitlistEntry(
        id=new_id(), user_id=seed.other_user.id, class_id=seed.salsa.id, position=2, created_at=NOW
    )
    db.waitlist[converted.id] = converted
    db.waitlist[waiting.id] = waiting

    async with uow_factory() as uow:
        promotion = await promote_next(uow, ItemType.CLASS, seed.salsa.id, NOW)

    assert promotion.entry.id == waiting.id
    assert promotion.booking.user_id == seed.other_user.id
