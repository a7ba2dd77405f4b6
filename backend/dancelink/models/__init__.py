from dancelink.models.audit_log import AuditLog
from dancelink.models.booking import Booking
from dancelink.models.dance_class import DanceClass
from dancelink.models.event import Event
from dancelink.models.refund import Refund
from dancelink.models.transaction import Transaction
from dancelink.models.user import User
from dancelink.models.waitlist import WaitlistEntry
from dancelink.models.webhook_event import WebhookEvent

__all__ = [
    "AuditLog",
    "Booking",
    "DanceClass",
    "Event",
    "Refund",
    "Transaction",
    "User",
    "WaitlistEntry",
    "WebhookEvent",
]
