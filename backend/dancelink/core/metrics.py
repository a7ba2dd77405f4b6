"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

# Payment session metrics
payment_sessions = Counter(
    "payment_sessions_total",
    "Payment sessions requested",
    ["provider", "result"],  # created, provider_error, rejected
)

# Webhook metrics
webhook_events = Counter(
    "webhook_events_total",
    "Payment provider webhook deliveries",
    ["provider", "event_type", "result"],  # processed, duplicate, failed, rejected
)

# Booking lifecycle metrics
booking_transitions = Counter(
    "booking_transitions_total",
    "Booking status transitions",
    ["from_status", "to_status"],
)

capacity_conflicts = Counter(
    "capacity_conflicts_total",
    "Seat reservations refused because the item was full",
    ["item_type"],
)

waitlist_promotions = Counter(
    "waitlist_promotions_total",
    "Waitlist entries converted into pending bookings",
    ["item_type"],
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def record_payment_session(provider: str, result: str):
    payment_sessions.labels(provider=provider, result=result).inc()


def record_webhook_event(provider: str, event_type: str, result: str):
    webhook_events.labels(provider=provider, event_type=event_type, result=result).inc()


def record_transition(from_status: str, to_status: str):
    booking_transitions.labels(from_status=from_status, to_status=to_status).inc()


def record_capacity_conflict(item_type: str):
    capacity_conflicts.labels(item_type=item_type).inc()


def record_waitlist_promotion(item_type: str):
    waitlist_promotions.labels(item_type=item_type).inc()
