"""
Domain exceptions raised by the booking core.

Each exception knows its HTTP status and the JSON body the API returns,
so services stay free of FastAPI imports and the route layer needs a
single handler (see dancelink.api.errors).
"""

from typing import Any, Optional


class BookingError(Exception):
    status_code = 500
    error = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationFailed(BookingError):
    status_code = 400
    error = "Validation error"

    def to_body(self) -> dict:
        return {"error": self.error, "details": self.details if self.details is not None else self.message}


class NotFound(BookingError):
    status_code = 404
    error = "Not found"


class PolicyViolation(BookingError):
    """Request refused by a booking policy; `policy` tells the client why."""

    status_code = 400
    error = "Policy violation"

    def __init__(self, error: str, message: str, policy: dict):
        super().__init__(error)
        self.policy_message = message
        self.policy = policy

    def to_body(self) -> dict:
        return {"error": self.message, "message": self.policy_message, "policy": self.policy}


class BookingStateError(BookingError):
    """The booking is not in a state that allows the requested change."""

    status_code = 400
    error = "Booking cannot be changed in its current state"


class BookingConflict(BookingError):
    status_code = 409
    error = "Booking was modified by another request"


class ProviderConfigurationError(BookingError):
    status_code = 500
    error = "Payment provider configuration invalid"


class PaymentProviderError(BookingError):
    status_code = 500
    error = "Payment provider request failed"


class WebhookSignatureError(BookingError):
    status_code = 400
    error = "Invalid signature"


class DuplicateWebhookEvent(Exception):
    """Another worker recorded the same provider event first."""
