"""
SQLAlchemy implementation of the booking stores.

CONCURRENCY STRATEGY: conditional UPDATEs inside one transaction
================================================================

Every state change the core makes is an UPDATE guarded by the state it
expects to find:

  UPDATE classes  SET current_students = current_students + 1
   WHERE id = :id AND current_students < max_students
  UPDATE bookings SET status = 'CONFIRMED', ...
   WHERE id = :id AND status IN ('PENDING')

rowcount == 0 means the row was not in the expected state (class full,
booking already confirmed or cancelled by a concurrent request). The row lock
taken by the UPDATE is held until the unit of work commits, so a competing
transaction re-evaluates the WHERE clause against the committed value
instead of a stale read. CHECK constraints on the counters remain the final
safety net.
"""

from dataclasses import fields
from typing import Any, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dancelink import models as orm
from dancelink.core.exceptions import DuplicateWebhookEvent
from dancelink.domain import entities
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


def to_entity(row: Any, entity_cls: type):
    return entity_cls(**{f.name: getattr(row, f.name) for f in fields(entity_cls)})


def to_row(entity: Any, model: type):
    return model(**{f.name: getattr(entity, f.name) for f in fields(entity)})


class _SqlStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _fetch_one(self, stmt):
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalars().first()

    async def _fetch_all(self, stmt):
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def _insert(self, entity: Any, model: type):
        self.session.add(to_row(entity, model))
        await self.session.flush()
        return entity


class SqlCatalogStore(_SqlStore, CatalogStore):
    async def get_user(self, user_id: str) -> Optional[entities.User]:
        row = await self._fetch_one(select(orm.User).where(orm.User.id == user_id))
        return to_entity(row, entities.User) if row else None

    async def get_class(self, class_id: str) -> Optional[entities.DanceClass]:
        row = await self._fetch_one(select(orm.DanceClass).where(orm.DanceClass.id == class_id))
        return to_entity(row, entities.DanceClass) if row else None

    async def get_event(self, event_id: str) -> Optional[entities.Event]:
        row = await self._fetch_one(select(orm.Event).where(orm.Event.id == event_id))
        return to_entity(row, entities.Event) if row else None


class SqlCapacityStore(_SqlStore, CapacityStore):
    async def reserve_seat(self, item_type: ItemType, item_id: str) -> bool:
        if item_type == ItemType.CLASS:
            stmt = (
                update(orm.DanceClass)
                .where(
                    orm.DanceClass.id == item_id,
                    orm.DanceClass.current_students < orm.DanceClass.max_students,
                )
                .values(current_students=orm.DanceClass.current_students + 1)
            )
        else:
            stmt = (
                update(orm.Event)
                .where(
                    orm.Event.id == item_id,
                    orm.Event.current_attendees < orm.Event.max_attendees,
                )
                .values(current_attendees=orm.Event.current_attendees + 1)
            )
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    async def release_seat(self, item_type: ItemType, item_id: str) -> bool:
        if item_type == ItemType.CLASS:
            stmt = (
                update(orm.DanceClass)
                .where(orm.DanceClass.id == item_id, orm.DanceClass.current_students > 0)
                .values(current_students=orm.DanceClass.current_students - 1)
            )
        else:
            stmt = (
                update(orm.Event)
                .where(orm.Event.id == item_id, orm.Event.current_attendees > 0)
                .values(current_attendees=orm.Event.current_attendees - 1)
            )
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1


class SqlBookingStore(_SqlStore, BookingStore):
    async def get(self, booking_id: str) -> Optional[entities.Booking]:
        row = await self._fetch_one(select(orm.Booking).where(orm.Booking.id == booking_id))
        return to_entity(row, entities.Booking) if row else None

    async def get_by_session_id(self, session_id: str) -> Optional[entities.Booking]:
        row = await self._fetch_one(select(orm.Booking).where(orm.Booking.stripe_session_id == session_id))
        return to_entity(row, entities.Booking) if row else None

    async def add(self, booking: entities.Booking) -> entities.Booking:
        return await self._insert(booking, orm.Booking)

    async def delete(self, booking_id: str) -> None:
        row = await self._fetch_one(select(orm.Booking).where(orm.Booking.id == booking_id))
        if row is not None:
            await self.session.delete(row)
            await self.session.flush()

    async def update(self, booking_id: str, **changes: Any) -> None:
        await self.session.execute(
            update(orm.Booking)
            .where(orm.Booking.id == booking_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )

    async def transition(self, booking_id: str, from_statuses: Iterable[BookingStatus], **changes: Any) -> bool:
        result = await self.session.execute(
            update(orm.Booking)
            .where(orm.Booking.id == booking_id, orm.Booking.status.in_(list(from_statuses)))
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def count_confirmed(self, item_type: ItemType, item_id: str) -> int:
        column = orm.Booking.class_id if item_type == ItemType.CLASS else orm.Booking.event_id
        result = await self.session.execute(
            select(func.count())
            .select_from(orm.Booking)
            .where(column == item_id, orm.Booking.status == BookingStatus.CONFIRMED)
        )
        return result.scalar_one()


class SqlTransactionStore(_SqlStore, TransactionStore):
    async def add(self, transaction: entities.Transaction) -> entities.Transaction:
        return await self._insert(transaction, orm.Transaction)

    async def update(self, transaction_id: str, **changes: Any) -> None:
        await self.session.execute(
            update(orm.Transaction)
            .where(orm.Transaction.id == transaction_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )

    async def _latest(self, *criteria) -> Optional[entities.Transaction]:
        row = await self._fetch_one(
            select(orm.Transaction).where(*criteria).order_by(orm.Transaction.created_at.desc()).limit(1)
        )
        return to_entity(row, entities.Transaction) if row else None

    async def find_by_session_id(self, provider: str, session_id: str) -> Optional[entities.Transaction]:
        return await self._latest(
            orm.Transaction.provider == provider, orm.Transaction.stripe_session_id == session_id
        )

    async def find_by_payment_ref(self, provider: str, payment_ref: str) -> Optional[entities.Transaction]:
        return await self._latest(
            orm.Transaction.provider == provider, orm.Transaction.provider_payment_id == payment_ref
        )

    async def find_by_payload_fragment(self, provider: str, fragment: str) -> Optional[entities.Transaction]:
        return await self._latest(
            orm.Transaction.provider == provider, orm.Transaction.payload.contains(fragment)
        )

    async def list_for_booking(self, booking_id: str) -> list[entities.Transaction]:
        rows = await self._fetch_all(
            select(orm.Transaction)
            .where(orm.Transaction.booking_id == booking_id)
            .order_by(orm.Transaction.created_at)
        )
        return [to_entity(row, entities.Transaction) for row in rows]


class SqlWaitlistStore(_SqlStore, WaitlistStore):
    @staticmethod
    def _item_column(item_type: ItemType):
        return orm.WaitlistEntry.class_id if item_type == ItemType.CLASS else orm.WaitlistEntry.event_id

    async def add(self, entry: entities.WaitlistEntry) -> entities.WaitlistEntry:
        return await self._insert(entry, orm.WaitlistEntry)

    async def next_position(self, item_type: ItemType, item_id: str) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.max(orm.WaitlistEntry.position), 0)).where(
                self._item_column(item_type) == item_id
            )
        )
        return result.scalar_one() + 1

    async def find_active(self, user_id: str, item_type: ItemType, item_id: str) -> Optional[entities.WaitlistEntry]:
        row = await self._fetch_one(
            select(orm.WaitlistEntry).where(
                orm.WaitlistEntry.user_id == user_id,
                self._item_column(item_type) == item_id,
                orm.WaitlistEntry.status == WaitlistStatus.ACTIVE,
            )
        )
        return to_entity(row, entities.WaitlistEntry) if row else None

    async def next_in_line(self, item_type: ItemType, item_id: str) -> Optional[entities.WaitlistEntry]:
        row = await self._fetch_one(
            select(orm.WaitlistEntry)
            .where(
                self._item_column(item_type) == item_id,
                orm.WaitlistEntry.status == WaitlistStatus.ACTIVE,
            )
            .order_by(orm.WaitlistEntry.priority.desc(), orm.WaitlistEntry.position.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        return to_entity(row, entities.WaitlistEntry) if row else None

    async def mark_converted(self, entry_id: str) -> bool:
        result = await self.session.execute(
            update(orm.WaitlistEntry)
            .where(orm.WaitlistEntry.id == entry_id, orm.WaitlistEntry.status == WaitlistStatus.ACTIVE)
            .values(status=WaitlistStatus.CONVERTED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class SqlRefundStore(_SqlStore, RefundStore):
    async def add(self, refund: entities.Refund) -> entities.Refund:
        return await self._insert(refund, orm.Refund)

    async def list_for_booking(self, booking_id: str) -> list[entities.Refund]:
        rows = await self._fetch_all(select(orm.Refund).where(orm.Refund.booking_id == booking_id))
        return [to_entity(row, entities.Refund) for row in rows]


class SqlAuditLogStore(_SqlStore, AuditLogStore):
    async def add(self, entry: entities.AuditLogEntry) -> entities.AuditLogEntry:
        return await self._insert(entry, orm.AuditLog)


class SqlWebhookEventStore(_SqlStore, WebhookEventStore):
    async def get(self, provider: str, event_id: str) -> Optional[entities.WebhookEventRecord]:
        row = await self._fetch_one(
            select(orm.WebhookEvent).where(
                orm.WebhookEvent.provider == provider, orm.WebhookEvent.event_id == event_id
            )
        )
        return to_entity(row, entities.WebhookEventRecord) if row else None

    async def claim(self, record: entities.WebhookEventRecord) -> entities.WebhookEventRecord:
        existing = await self.get(record.provider, record.event_id)
        if existing is not None:
            return existing
        try:
            return await self._insert(record, orm.WebhookEvent)
        except IntegrityError as exc:
            raise DuplicateWebhookEvent(f"{record.provider}:{record.event_id}") from exc

    async def mark(self, provider, event_id, status: WebhookEventStatus, processed_at, booking_id=None, error=None) -> None:
        values = {"status": status, "processed_at": processed_at, "error": error}
        if booking_id is not None:
            values["booking_id"] = booking_id
        await self.session.execute(
            update(orm.WebhookEvent)
            .where(orm.WebhookEvent.provider == provider, orm.WebhookEvent.event_id == event_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )


class SqlAlchemyUnitOfWork(UnitOfWork):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self._session_factory()
        self.catalog = SqlCatalogStore(self.session)
        self.capacity = SqlCapacityStore(self.session)
        self.bookings = SqlBookingStore(self.session)
        self.transactions = SqlTransactionStore(self.session)
        self.waitlist = SqlWaitlistStore(self.session)
        self.refunds = SqlRefundStore(self.session)
        self.audit_log = SqlAuditLogStore(self.session)
        self.webhook_events = SqlWebhookEventStore(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            await self.session.close()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


def sql_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    return lambda: SqlAlchemyUnitOfWork(session_factory)
