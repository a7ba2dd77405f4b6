import enum


class ItemType(str, enum.Enum):
    CLASS = "class"
    EVENT = "event"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUND_PENDING = "refund_pending"
    CANCELED = "canceled"


class PaymentProviderName(str, enum.Enum):
    STRIPE = "STRIPE"
    WISE = "WISE"


class TransactionType(str, enum.Enum):
    PAYMENT = "PAYMENT"


class TransactionStatus(str, enum.Enum):
    CREATED = "CREATED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class WaitlistStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CONVERTED = "CONVERTED"


class RefundStatus(str, enum.Enum):
    PENDING = "PENDING"


class EventStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CANCELLED = "CANCELLED"


class WebhookEventStatus(str, enum.Enum):
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class PaymentOutcome(str, enum.Enum):
    """Provider-agnostic meaning of a webhook event."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PROCESSING = "processing"
    DISPUTED = "disputed"
    IGNORED = "ignored"


class BookingSource(str, enum.Enum):
    CHECKOUT = "CHECKOUT"
    WAITLIST = "WAITLIST"
