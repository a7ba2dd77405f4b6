"""
Plain records the booking core works with.

Stores (SQLAlchemy or in-memory) hand these out detached from any session;
mutations go back through the store so that conditional updates stay in
the database.
"""

import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar, Optional

from dancelink.domain.enums import (
    BookingSource,
    BookingStatus,
    EventStatus,
    ItemType,
    PaymentStatus,
    RefundStatus,
    TransactionStatus,
    TransactionType,
    WaitlistStatus,
    WebhookEventStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


CODE_ALPHABET = string.digits + string.ascii_lowercase


def new_confirmation_code(prefix: str, now: datetime) -> str:
    """Human-shareable code such as CLASS-1718000000000-k3j9x0a2b."""
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(9))
    return f"{prefix}-{int(now.timestamp() * 1000)}-{suffix}"


def require_one_item(class_id: Optional[str], event_id: Optional[str]) -> None:
    if (class_id is None) == (event_id is None):
        raise ValueError("exactly one of class_id / event_id must be set")


@dataclass
class User:
    id: str
    email: str
    full_name: str


@dataclass
class DanceClass:
    item_type: ClassVar[ItemType] = ItemType.CLASS

    id: str
    title: str
    price: Decimal
    start_date: datetime
    max_students: int
    current_students: int = 0
    end_date: Optional[datetime] = None
    is_active: bool = True
    description: Optional[str] = None
    image_url: Optional[str] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    venue_city: Optional[str] = None
    instructor_name: Optional[str] = None

    @property
    def capacity(self) -> int:
        return self.max_students

    @property
    def seats_taken(self) -> int:
        return self.current_students

    @property
    def is_bookable(self) -> bool:
        return self.is_active


@dataclass
class Event:
    item_type: ClassVar[ItemType] = ItemType.EVENT

    id: str
    title: str
    price: Decimal
    start_date: datetime
    max_attendees: int
    current_attendees: int = 0
    end_date: Optional[datetime] = None
    status: EventStatus = EventStatus.DRAFT
    description: Optional[str] = None
    image_url: Optional[str] = None
    venue_name: Optional[str] = None
    venue_address: Optional[str] = None
    venue_city: Optional[str] = None
    organizer_name: Optional[str] = None

    @property
    def capacity(self) -> int:
        return self.max_attendees

    @property
    def seats_taken(self) -> int:
        return self.current_attendees

    @property
    def is_bookable(self) -> bool:
        return self.status == EventStatus.PUBLISHED


@dataclass
class Booking:
    id: str
    user_id: str
    confirmation_code: str
    total_amount: Decimal
    created_at: datetime
    class_id: Optional[str] = None
    event_id: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    payment_status: str = PaymentStatus.PENDING.value
    amount_paid: Decimal = Decimal("0.00")
    discount_amount: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    payment_method: Optional[str] = None
    stripe_session_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    rescheduled_from_class_id: Optional[str] = None
    reschedule_reason: Optional[str] = None
    rescheduled_at: Optional[datetime] = None
    created_from: str = BookingSource.CHECKOUT.value

    def __post_init__(self):
        require_one_item(self.class_id, self.event_id)

    @property
    def item_type(self) -> ItemType:
        return ItemType.CLASS if self.class_id else ItemType.EVENT

    @property
    def item_id(self) -> str:
        return self.class_id or self.event_id

    @property
    def final_amount(self) -> Decimal:
        return self.total_amount - self.discount_amount + self.tax_amount


@dataclass
class Transaction:
    id: str
    booking_id: str
    user_id: str
    provider: str
    amount: Decimal
    created_at: datetime
    currency: str = "USD"
    type: TransactionType = TransactionType.PAYMENT
    status: TransactionStatus = TransactionStatus.CREATED
    provider_payment_id: Optional[str] = None
    stripe_session_id: Optional[str] = None
    failure_reason: Optional[str] = None
    payment_method_type: Optional[str] = None
    payload: Optional[str] = None


@dataclass
class WaitlistEntry:
    id: str
    user_id: str
    position: int
    created_at: datetime
    class_id: Optional[str] = None
    event_id: Optional[str] = None
    priority: int = 0
    status: WaitlistStatus = WaitlistStatus.ACTIVE

    def __post_init__(self):
        require_one_item(self.class_id, self.event_id)


@dataclass
class Refund:
    id: str
    booking_id: str
    user_id: str
    amount: Decimal
    reason: str
    requested_at: datetime
    status: RefundStatus = RefundStatus.PENDING


@dataclass
class AuditLogEntry:
    id: str
    action: str
    table_name: str
    record_id: str
    created_at: datetime
    user_id: Optional[str] = None
    new_values: Optional[str] = None


@dataclass
class WebhookEventRecord:
    id: str
    provider: str
    event_id: str
    event_type: str
    received_at: datetime
    status: WebhookEventStatus = WebhookEventStatus.PROCESSING
    booking_id: Optional[str] = None
    error: Optional[str] = None
    processed_at: Optional[datetime] = None
