"""
Payment provider interface.

The booking core talks to Stripe and Wise only through this contract, so the
session bridge and the webhook reconciliation are provider-agnostic.

Implementations:
- StripeProvider: Checkout Sessions, signed webhooks (stripe SDK)
- WiseProvider: quote -> recipient -> transfer over REST, HMAC-signed webhooks
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from dancelink.domain.enums import ItemType, PaymentOutcome, PaymentProviderName


@dataclass
class PaymentIntentRequest:
    booking_id: str
    user_id: str
    user_email: str
    user_name: str
    item_type: ItemType
    item_id: str
    item_name: str
    item_description: Optional[str]
    item_image: Optional[str]
    venue_name: Optional[str]
    base_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    currency: str = "USD"
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    recipient: Optional[dict] = None

    @property
    def total_amount(self) -> Decimal:
        return self.base_amount - self.discount_amount + self.tax_amount

    def metadata(self) -> dict[str, str]:
        return {
            "bookingId": self.booking_id,
            "userId": self.user_id,
            "itemId": self.item_id,
            "bookingType": self.item_type.value,
            "itemName": self.item_name,
            "userEmail": self.user_email,
            "userName": self.user_name,
        }


@dataclass
class PaymentIntent:
    """What a provider created for one booking."""

    provider: PaymentProviderName
    provider_ref: str
    status: str
    session_id: Optional[str] = None
    payment_ref: Optional[str] = None
    redirect_url: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderEvent:
    """A verified webhook delivery, normalised across providers."""

    provider: PaymentProviderName
    event_id: str
    event_type: str
    outcome: PaymentOutcome
    session_id: Optional[str] = None
    payment_ref: Optional[str] = None
    amount: Optional[Decimal] = None
    failure_reason: Optional[str] = None
    payment_method: Optional[str] = None
    dispute: Optional[dict[str, Any]] = None
    # Settled money was pulled back (chargeback, bounce); only these undo a confirmation.
    reverses_payment: bool = False
    raw: dict[str, Any] = field(default_factory=dict)


class PaymentProvider(ABC):
    name: PaymentProviderName

    @abstractmethod
    def validate_config(self) -> list[str]:
        """Return human-readable configuration problems; empty when usable."""
        pass

    @abstractmethod
    async def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntent:
        """
        Create the provider-side payment object for one booking.

        Raises:
            PaymentProviderError: the provider refused or could not be reached
        """
        pass

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> ProviderEvent:
        """
        Verify the signature over the raw body, then parse it.

        Raises:
            WebhookSignatureError: signature missing or invalid
        """
        pass

    async def refresh_event(self, event: ProviderEvent) -> ProviderEvent:
        """Fill in anything the payload left out. Default: nothing to fetch."""
        return event
