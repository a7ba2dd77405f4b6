"""
Pytest fixtures: an in-memory booking database, a fixed clock, and an HTTP
client with the storage, payment provider and email dependencies overridden.

Stripe signatures are real (stripe.WebhookSignature verifies them); only the
Checkout Session call is faked, so no test talks to the network.
"""

import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from dancelink.api import deps
from dancelink.core.config import Settings
from dancelink.core.exceptions import PaymentProviderError
from dancelink.domain.entities import Booking, DanceClass, Event, Transaction, User, new_confirmation_code, new_id
from dancelink.domain.enums import BookingStatus, EventStatus, PaymentProviderName, PaymentStatus
from dancelink.infrastructure.memory_store import InMemoryDatabase, in_memory_uow_factory
from dancelink.infrastructure.stripe_provider import StripeProvider
from dancelink.infrastructure.wise_provider import WiseProvider
from dancelink.main import app
from dancelink.services.interfaces.payment_provider import PaymentIntent, PaymentIntentRequest
from dancelink.services.notification_service import NotificationService

NOW = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)

STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
WISE_WEBHOOK_SECRET = "wise_test_secret"
WISE_BASE_URL = "https://wise.test"


def fixed_clock() -> datetime:
    return NOW


class FakeStripeProvider(StripeProvider):
    """Real webhook verification, canned Checkout Sessions."""

    def __init__(self):
        super().__init__(secret_key="sk_test_123", webhook_secret=STRIPE_WEBHOOK_SECRET, clock=fixed_clock)
        self.requests: list[PaymentIntentRequest] = []
        self.fail = False

    async def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntent:
        if self.fail:
            raise PaymentProviderError("Failed to create payment session", details="card_declined")
        self.requests.append(request)
        n = len(self.requests)
        return PaymentIntent(
            provider=self.name,
            provider_ref=f"cs_test_{n}",
            status="open",
            session_id=f"cs_test_{n}",
            payment_ref=f"pi_test_{n}",
            redirect_url=f"https://checkout.stripe.test/pay/cs_test_{n}",
            raw={"id": f"cs_test_{n}", "metadata": request.metadata()},
        )


class RecordingNotifier(NotificationService):
    def __init__(self):
        super().__init__(Settings(EMAIL_PROVIDER="console"))
        self.sent: list[dict] = []

    async def send_email(self, to_email, subject, html_content, data=None) -> bool:
        self.sent.append({"to": to_email, "subject": subject, "data": data})
        return True

    def subjects(self) -> list[str]:
        return [message["subject"] for message in self.sent]


def stripe_signature(payload: str, secret: str = STRIPE_WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    timestamp = timestamp or int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def stripe_event(event_type: str, obj: dict, event_id: Optional[str] = None) -> str:
    return json.dumps({"id": event_id or f"evt_{new_id()}", "type": event_type, "data": {"object": obj}})


def checkout_completed(session_id: str, amount_cents: int, event_id: Optional[str] = None) -> str:
    return stripe_event(
        "checkout.session.completed",
        {
            "id": session_id,
            "payment_intent": session_id.replace("cs_", "pi_"),
            "amount_total": amount_cents,
            "payment_method_types": ["card"],
        },
        event_id,
    )


def wise_signature(payload: str) -> str:
    return hmac.new(WISE_WEBHOOK_SECRET.encode(), payload.encode(), hashlib.sha256).hexdigest()


@dataclass
class Seed:
    user: User
    other_user: User
    salsa: DanceClass
    bachata: DanceClass
    kizomba: DanceClass
    full_class: DanceClass
    inactive_class: DanceClass
    gala: Event
    draft_event: Event


def make_class(db: InMemoryDatabase, title: str, price: str, hours_from_now: float, **kwargs) -> DanceClass:
    start = NOW + timedelta(hours=hours_from_now)
    values = {"max_students": 10, "end_date": start + timedelta(hours=1), "venue_name": "Studio A"}
    values.update(kwargs)
    return db.add_class(DanceClass(id=new_id(), title=title, price=Decimal(price), start_date=start, **values))


def make_booking(
    db: InMemoryDatabase,
    user: User,
    item,
    status: BookingStatus = BookingStatus.CONFIRMED,
    amount_paid: Optional[str] = None,
    hold_seat: bool = True,
) -> Booking:
    """Seed a booking; a CONFIRMED one takes its seat so the counter stays consistent."""
    is_class = isinstance(item, DanceClass)
    paid = Decimal(amount_paid) if amount_paid is not None else (item.price if status == BookingStatus.CONFIRMED else Decimal("0.00"))
    booking = Booking(
        id=new_id(),
        user_id=user.id,
        confirmation_code=new_confirmation_code("CLASS" if is_class else "EVENT", NOW),
        total_amount=item.price,
        created_at=NOW - timedelta(days=1),
        status=status,
        payment_status=PaymentStatus.SUCCEEDED.value if status == BookingStatus.CONFIRMED else PaymentStatus.PENDING.value,
        amount_paid=paid,
        payment_method="stripe",
        **({"class_id": item.id} if is_class else {"event_id": item.id}),
    )
    db.bookings[booking.id] = booking
    if status == BookingStatus.CONFIRMED and hold_seat:
        if is_class:
            db.classes[item.id].current_students += 1
        else:
            db.events[item.id].current_attendees += 1
    return booking


def make_transaction(db: InMemoryDatabase, booking: Booking, session_id: str) -> Transaction:
    transaction = Transaction(
        id=new_id(),
        booking_id=booking.id,
        user_id=booking.user_id,
        provider=PaymentProviderName.STRIPE.value,
        amount=booking.final_amount,
        created_at=NOW,
        stripe_session_id=session_id,
        provider_payment_id=session_id.replace("cs_", "pi_"),
    )
    db.transactions[transaction.id] = transaction
    db.bookings[booking.id].stripe_session_id = session_id
    return transaction


@pytest.fixture
def db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def seed(db: InMemoryDatabase) -> Seed:
    user = db.add_user(User(id=new_id(), email="ana@example.com", full_name="Ana Souza"))
    other_user = db.add_user(User(id=new_id(), email="kai@example.com", full_name="Kai Lindqvist"))
    gala_start = NOW + timedelta(days=10)
    return Seed(
        user=user,
        other_user=other_user,
        salsa=make_class(db, "Salsa Foundations", "25.00", 48, instructor_name="Marta"),
        bachata=make_class(db, "Bachata Sensual", "30.00", 72),
        kizomba=make_class(db, "Kizomba Basics", "20.00", 96),
        full_class=make_class(db, "West Coast Swing", "25.00", 48, max_students=2, current_students=2),
        inactive_class=make_class(db, "Retired Tango", "25.00", 48, is_active=False),
        gala=db.add_event(
            Event(
                id=new_id(),
                title="Spring Gala",
                price=Decimal("40.00"),
                start_date=gala_start,
                end_date=gala_start + timedelta(hours=4),
                max_attendees=100,
                status=EventStatus.PUBLISHED,
                venue_name="Grand Hall",
            )
        ),
        draft_event=db.add_event(
            Event(
                id=new_id(),
                title="Summer Social",
                price=Decimal("15.00"),
                start_date=NOW + timedelta(days=60),
                max_attendees=50,
            )
        ),
    )


@pytest.fixture
def stripe_provider() -> FakeStripeProvider:
    return FakeStripeProvider()


@pytest.fixture
def wise_provider() -> WiseProvider:
    return WiseProvider(
        api_key="wise_test_key",
        profile_id="123",
        account_id="456",
        webhook_secret=WISE_WEBHOOK_SECRET,
        base_url=WISE_BASE_URL,
    )


@pytest.fixture
def providers(stripe_provider, wise_provider) -> dict:
    return {PaymentProviderName.STRIPE: stripe_provider, PaymentProviderName.WISE: wise_provider}


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def uow_factory(db: InMemoryDatabase):
    return in_memory_uow_factory(db)


@pytest_asyncio.fixture(scope="function")
async def client(uow_factory, providers, notifier, seed) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with in-memory storage and fake providers."""
    app.dependency_overrides[deps.get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[deps.get_providers] = lambda: providers
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_clock] = lambda: fixed_clock
    app.dependency_overrides[deps.get_webhook_dedupe] = lambda: None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
