"""
FastAPI dependencies wiring the services to their collaborators.
Tests replace the leaf dependencies (unit of work factory, providers,
notifier, clock) through app.dependency_overrides.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends

from dancelink.core.config import get_settings
from dancelink.db.session import get_session_factory
from dancelink.domain.entities import utcnow
from dancelink.infrastructure.redis_client import WebhookDedupeCache
from dancelink.infrastructure.sql_store import sql_uow_factory
from dancelink.services.booking_service import BookingService
from dancelink.services.interfaces.stores import Clock, UnitOfWorkFactory
from dancelink.services.notification_service import NotificationService
from dancelink.services.payment_session_service import PaymentSessionService
from dancelink.services.provider_factory import get_payment_providers
from dancelink.services.reconciliation_service import ReconciliationService
from dancelink.services.waitlist_service import WaitlistService


def get_uow_factory() -> UnitOfWorkFactory:
    return sql_uow_factory(get_session_factory())


def get_providers() -> dict:
    return get_payment_providers()


@lru_cache()
def get_notifier() -> NotificationService:
    return NotificationService(get_settings())


def get_clock() -> Clock:
    return utcnow


def get_webhook_dedupe() -> Optional[WebhookDedupeCache]:
    settings = get_settings()
    if not settings.REDIS_ENABLED:
        return None
    return WebhookDedupeCache(ttl_seconds=settings.WEBHOOK_DEDUPE_TTL)


def get_payment_session_service(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    providers: dict = Depends(get_providers),
    clock: Clock = Depends(get_clock),
) -> PaymentSessionService:
    settings = get_settings()
    return PaymentSessionService(
        uow_factory,
        providers,
        clock,
        frontend_url=settings.FRONTEND_URL,
        currency=settings.STRIPE_CURRENCY,
    )


def get_reconciliation_service(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    providers: dict = Depends(get_providers),
    notifier: NotificationService = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
    dedupe: Optional[WebhookDedupeCache] = Depends(get_webhook_dedupe),
) -> ReconciliationService:
    return ReconciliationService(uow_factory, providers, notifier, clock, dedupe)


def get_booking_service(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    notifier: NotificationService = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> BookingService:
    return BookingService(uow_factory, notifier, clock)


def get_waitlist_service(
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
    clock: Clock = Depends(get_clock),
) -> WaitlistService:
    return WaitlistService(uow_factory, clock)
