"""
In-memory implementation of the booking stores.

Used by the test suite and for running the API without PostgreSQL. A unit of
work holds the database lock for its whole block, which gives the same
"one transaction at a time per row" behaviour the conditional SQL updates
rely on, and restores a snapshot on rollback.
"""

import asyncio
import copy
from dataclasses import fields, replace
from typing import Any, Iterable, Optional

from dancelink.domain.entities import (
    AuditLogEntry,
    Booking,
    DanceClass,
    Event,
    Refund,
    Transaction,
    User,
    WaitlistEntry,
    WebhookEventRecord,
    require_one_item,
)
from dancelink.domain.enums import BookingStatus, ItemType, WaitlistStatus, WebhookEventStatus
from dancelink.services.interfaces.stores import (
    AuditLogStore,
    BookingStore,
    CapacityStore,
    CatalogStore,
    RefundStore,
    TransactionStore,
    UnitOfWork,
    WaitlistStore,
    WebhookEventStore,
)


class InMemoryDatabase:
    TABLES = (
        "users",
        "classes",
        "events",
        "bookings",
        "transactions",
        "waitlist",
        "refunds",
        "audit_logs",
        "webhook_events",
    )

    def __init__(self):
        self.users: dict[str, User] = {}
        self.classes: dict[str, DanceClass] = {}
        self.events: dict[str, Event] = {}
        self.bookings: dict[str, Booking] = {}
        self.transactions: dict[str, Transaction] = {}
        self.waitlist: dict[str, WaitlistEntry] = {}
        self.refunds: dict[str, Refund] = {}
        self.audit_logs: dict[str, AuditLogEntry] = {}
        self.webhook_events: dict[tuple[str, str], WebhookEventRecord] = {}
        self.lock = asyncio.Lock()

    def snapshot(self) -> dict:
        return {name: copy.deepcopy(getattr(self, name)) for name in self.TABLES}

    def restore(self, snapshot: dict) -> None:
        for name, table in snapshot.items():
            setattr(self, name, table)

    # Seeding helpers for tests and local runs
    def add_user(self, user: User) -> User:
        self.users[user.id] = user
        return user

    def add_class(self, dance_class: DanceClass) -> DanceClass:
        self.classes[dance_class.id] = dance_class
        return dance_class

    def add_event(self, event: Event) -> Event:
        self.events[event.id] = event
        return event


def _apply(record: Any, changes: dict) -> None:
    names = {f.name for f in fields(record)}
    for key, value in changes.items():
        if key not in names:
            raise AttributeError(f"{type(record).__name__} has no field {key!r}")
        setattr(record, key, value)


def _item_key(item_type: ItemType) -> str:
    return "class_id" if item_type == ItemType.CLASS else "event_id"


class InMemoryCatalogStore(CatalogStore):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def get_user(self, user_id: str) -> Optional[User]:
        user = self.db.users.get(user_id)
        return replace(user) if user else None

    async def get_class(self, class_id: str) -> Optional[DanceClass]:
        dance_class = self.db.classes.get(class_id)
        return replace(dance_class) if dance_class else None

    async def get_event(self, event_id: str) -> Optional[Event]:
        event = self.db.events.get(event_id)
        return replace(event) if event else None


class InMemoryCapacityStore(CapacityStore):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def reserve_seat(self, item_type: ItemType, item_id: str) -> bool:
        if item_type == ItemType.CLASS:
            item = self.db.classes.get(item_id)
            if item is None or item.current_students >= item.max_students:
                return False
            item.current_students += 1
            return True
        item = self.db.events.get(item_id)
        if item is None or item.current_attendees >= item.max_attendees:
            return False
        item.current_attendees += 1
        return True

    async def release_seat(self, item_type: ItemType, item_id: str) -> bool:
        if item_type == ItemType.CLASS:
            item = self.db.classes.get(item_id)
            if item is None or item.current_students <= 0:
                return False
            item.current_students -= 1
            return True
        item = self.db.events.get(item_id)
        if item is None or item.current_attendees <= 0:
            return False
        item.current_attendees -= 1
        return True


class InMemoryBookingStore(BookingStore):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def get(self, booking_id: str) -> Optional[Booking]:
        booking = self.db.bookings.get(booking_id)
        return replace(booking) if booking else None

    async def get_by_session_id(self, session_id: str) -> Optional[Booking]:
        for booking in self.db.bookings.values():
            if booking.stripe_session_id == session_id:
                return replace(booking)
        return None

    async def add(self, booking: Booking) -> Booking:
        if any(b.confirmation_code == booking.confirmation_code for b in self.db.bookings.values()):
            raise ValueError(f"duplicate confirmation code {booking.confirmation_code}")
        self.db.bookings[booking.id] = replace(booking)
        return replace(booking)

    async def delete(self, booking_id: str) -> None:
        self.db.bookings.pop(booking_id, None)

    async def update(self, booking_id: str, **changes: Any) -> None:
        booking = self.db.bookings[booking_id]
        _apply(booking, changes)
        require_one_item(booking.class_id, booking.event_id)

    async def transition(self, booking_id: str, from_statuses: Iterable[BookingStatus], **changes: Any) -> bool:
        booking = self.db.bookings.get(booking_id)
        if booking is None or booking.status not in set(from_statuses):
            return False
        _apply(booking, changes)
        return True

    async def count_confirmed(self, item_type: ItemType, item_id: str) -> int:
        key = _item_key(item_type)
        return sum(
            1
            for b in self.db.bookings.values()
            if getattr(b, key) == item_id and b.status == BookingStatus.CONFIRMED
        )


class InMemoryTransactionStore(TransactionStore):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def add(self, transaction: Transaction) -> Transaction:
        self.db.transactions[transaction.id] = replace(transaction)
        return replace(transaction)

    async def update(self, transaction_id: str, **changes: Any) -> None:
        _apply(self.db.transactions[transaction_id], changes)

    def _first(self, predicate) -> Optional[Transaction]:
        matches = sorted(
            (t for t in self.db.transactions.values() if predicate(t)),
            key=lambda t: t.created_at,
        )
        return replace(matches[-1]) if matches else None

    async def find_by_session_id(self, provider: str, session_id: str) -> Optional[Transaction]:
        return self._first(lambda t: t.provider == provider and t.stripe_session_id == session_id)

    async def find_by_payment_ref(self, provider: str, payment_ref: str) -> Optional[Transaction]:
        return self._first(lambda t: t.provider == provider and t.provider_payment_id == payment_ref)

    async def find_by_payload_fragment(self, provider: str, fragment: str) -> Optional[Transaction]:
        return self._first(lambda t: t.provider == provider and fragment in (t.payload or ""))

    async def list_for_booking(self, booking_id: str) -> list[Transaction]:
        return [replace(t) for t in self.db.transactions.values() if t.booking_id == booking_id]


class InMemoryWaitlistStore(WaitlistStore):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def _for_item(self, item_type: ItemType, item_id: str) -> list[WaitlistEntry]:
        key = _item_key(item_type)
        return [e for e in self.db.waitlist.values() if getattr(e, key) == item_id]

    async def add(self, entry: WaitlistEntry) -> WaitlistEntry:
        self.db.waitlist[entry.id] = replace(entry)
        return replace(entry)

    async def next_position(self, item_type: ItemType, item_id: str) -> int:
        return max((e.position for e in self._for_item(item_type, item_id)), default=0) + 1

    async def find_active(self, user_id: str, item_type: ItemType, item_id: str) -> Optional[WaitlistEntry]:
        for entry in self._for_item(item_type, item_id):
            if entry.user_id == user_id and entry.status == WaitlistStatus.ACTIVE:
                return replace(entry)
        return None

    async def next_in_line(self, item_type: ItemType, item_id: str) -> Optional[WaitlistEntry]:
        active = [e for e in self._for_item(item_type, item_id) if e.status == WaitlistStatus.ACTIVE]
        if not active:
            return None
        return replace(min(active, key=lambda e: (-e.priority, e.position)))

    async def mark_converted(self, entry_id: str) -> bool:
        entry = self.db.waitlist.get(entry_id)
        if entry is None or entry.status != WaitlistStatus.ACTIVE:
            return False
        entry.status = WaitlistStatus.CONVERTED
        return True


class InMemoryRefundStore(RefundStore):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def add(self, refund: Refund) -> Refund:
        self.db.refunds[refund.id] = replace(refund)
        return replace(refund)

    async def list_for_booking(self, booking_id: str) -> list[Refund]:
        return [replace(r) for r in self.db.refunds.values() if r.booking_id == booking_id]


class InMemoryAuditLogStore(AuditLogStore):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def add(self, entry: AuditLogEntry) -> AuditLogEntry:
        self.db.audit_logs[entry.id] = replace(entry)
        return replace(entry)


class InMemoryWebhookEventStore(WebhookEventStore):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def get(self, provider: str, event_id: str) -> Optional[WebhookEventRecord]:
        record = self.db.webhook_events.get((provider, event_id))
        return replace(record) if record else None

    async def claim(self, record: WebhookEventRecord) -> WebhookEventRecord:
        key = (record.provider, record.event_id)
        existing = self.db.webhook_events.get(key)
        if existing is not None:
            return replace(existing)
        self.db.webhook_events[key] = replace(record)
        return replace(record)

    async def mark(self, provider, event_id, status: WebhookEventStatus, processed_at, booking_id=None, error=None) -> None:
        record = self.db.webhook_events[(provider, event_id)]
        record.status = status
        record.processed_at = processed_at
        record.error = error
        if booking_id is not None:
            record.booking_id = booking_id


class InMemoryUnitOfWork(UnitOfWork):
    def __init__(self, db: InMemoryDatabase):
        self.db = db
        self.catalog = InMemoryCatalogStore(db)
        self.capacity = InMemoryCapacityStore(db)
        self.bookings = InMemoryBookingStore(db)
        self.transactions = InMemoryTransactionStore(db)
        self.waitlist = InMemoryWaitlistStore(db)
        self.refunds = InMemoryRefundStore(db)
        self.audit_log = InMemoryAuditLogStore(db)
        self.webhook_events = InMemoryWebhookEventStore(db)
        self._snapshot: Optional[dict] = None

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        await self.db.lock.acquire()
        self._snapshot = self.db.snapshot()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            self.db.lock.release()

    async def commit(self) -> None:
        self._snapshot = None

    async def rollback(self) -> None:
        if self._snapshot is not None:
            self.db.restore(self._snapshot)


def in_memory_uow_factory(db: InMemoryDatabase):
    return lambda: InMemoryUnitOfWork(db)
