"""
Service interfaces for dependency inversion.
Allows swapping storage and payment implementations without changing business logic.
"""

from .payment_provider import PaymentIntent, PaymentIntentRequest, PaymentProvider, ProviderEvent
from .stores import UnitOfWork, UnitOfWorkFactory

__all__ = [
    "PaymentIntent",
    "PaymentIntentRequest",
    "PaymentProvider",
    "ProviderEvent",
    "UnitOfWork",
    "UnitOfWorkFactory",
]
