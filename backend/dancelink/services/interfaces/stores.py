"""
Storage interfaces for the booking core.

The services never import a database session. They receive a factory that
opens a UnitOfWork; everything done through one unit of work commits or
rolls back together, which is what keeps a booking status change and its
capacity counter change atomic.

Implementations:
- SqlAlchemyUnitOfWork: one AsyncSession per unit of work (production)
- InMemoryUnitOfWork: dict-backed, serialised by a lock (tests, local runs)
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Union

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
)
from dancelink.domain.enums import BookingStatus, ItemType, WebhookEventStatus

Item = Union[DanceClass, Event]


class CatalogStore(ABC):
    """Read-only view of users, classes and events owned by other services."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def get_class(self, class_id: str) -> Optional[DanceClass]:
        pass

    @abstractmethod
    async def get_event(self, event_id: str) -> Optional[Event]:
        pass

    async def get_item(self, item_type: ItemType, item_id: str) -> Optional[Item]:
        if item_type == ItemType.CLASS:
            return await self.get_class(item_id)
        return await self.get_event(item_id)


class CapacityStore(ABC):
    """Seat counters on classes and events. Both operations are conditional."""

    @abstractmethod
    async def reserve_seat(self, item_type: ItemType, item_id: str) -> bool:
        """Increment the counter unless the item is full. False when refused."""
        pass

    @abstractmethod
    async def release_seat(self, item_type: ItemType, item_id: str) -> bool:
        """Decrement the counter unless it is already zero."""
        pass


class BookingStore(ABC):
    @abstractmethod
    async def get(self, booking_id: str) -> Optional[Booking]:
        pass

    @abstractmethod
    async def get_by_session_id(self, session_id: str) -> Optional[Booking]:
        pass

    @abstractmethod
    async def add(self, booking: Booking) -> Booking:
        pass

    @abstractmethod
    async def delete(self, booking_id: str) -> None:
        pass

    @abstractmethod
    async def update(self, booking_id: str, **changes: Any) -> None:
        pass

    @abstractmethod
    async def transition(
        self,
        booking_id: str,
        from_statuses: Iterable[BookingStatus],
        **changes: Any,
    ) -> bool:
        """
        Apply `changes` only if the booking is currently in one of
        `from_statuses`. Returns False when another request got there first.
        """
        pass

    @abstractmethod
    async def count_confirmed(self, item_type: ItemType, item_id: str) -> int:
        pass


class TransactionStore(ABC):
    @abstractmethod
    async def add(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    async def update(self, transaction_id: str, **changes: Any) -> None:
        pass

    @abstractmethod
    async def find_by_session_id(self, provider: str, session_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def find_by_payment_ref(self, provider: str, payment_ref: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def find_by_payload_fragment(self, provider: str, fragment: str) -> Optional[Transaction]:
        """Locate a transaction whose stored provider payload mentions `fragment`."""
        pass

    @abstractmethod
    async def list_for_booking(self, booking_id: str) -> list[Transaction]:
        pass


class WaitlistStore(ABC):
    @abstractmethod
    async def add(self, entry: WaitlistEntry) -> WaitlistEntry:
        pass

    @abstractmethod
    async def next_position(self, item_type: ItemType, item_id: str) -> int:
        """max(position) + 1 over every entry for the item."""
        pass

    @abstractmethod
    async def find_active(self, user_id: str, item_type: ItemType, item_id: str) -> Optional[WaitlistEntry]:
        pass

    @abstractmethod
    async def next_in_line(self, item_type: ItemType, item_id: str) -> Optional[WaitlistEntry]:
        """ACTIVE entry with the highest priority, earliest position first."""
        pass

    @abstractmethod
    async def mark_converted(self, entry_id: str) -> bool:
        """ACTIVE -> CONVERTED. False if the entry was already converted."""
        pass


class RefundStore(ABC):
    @abstractmethod
    async def add(self, refund: Refund) -> Refund:
        pass

    @abstractmethod
    async def list_for_booking(self, booking_id: str) -> list[Refund]:
        pass


class AuditLogStore(ABC):
    @abstractmethod
    async def add(self, entry: AuditLogEntry) -> AuditLogEntry:
        pass


class WebhookEventStore(ABC):
    """Ledger of provider event ids, unique per (provider, event_id)."""

    @abstractmethod
    async def get(self, provider: str, event_id: str) -> Optional[WebhookEventRecord]:
        pass

    @abstractmethod
    async def claim(self, record: WebhookEventRecord) -> WebhookEventRecord:
        """
        Insert `record` or return the existing row for the same event.
        Raises DuplicateWebhookEvent if a concurrent worker inserted it first.
        """
        pass

    @abstractmethod
    async def mark(
        self,
        provider: str,
        event_id: str,
        status: WebhookEventStatus,
        processed_at: datetime,
        booking_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        pass


class UnitOfWork(ABC):
    catalog: CatalogStore
    capacity: CapacityStore
    bookings: BookingStore
    transactions: TransactionStore
    waitlist: WaitlistStore
    refunds: RefundStore
    audit_log: AuditLogStore
    webhook_events: WebhookEventStore

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass


UnitOfWorkFactory = Callable[[], UnitOfWork]
Clock = Callable[[], datetime]
