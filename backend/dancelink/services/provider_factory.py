"""
Payment provider registry.
Builds one client per provider from settings; the bridge and the webhook
reconciliation look providers up by name.
"""

from typing import Optional

from dancelink.core.config import Settings, get_settings
from dancelink.domain.enums import PaymentProviderName
from dancelink.infrastructure.stripe_provider import StripeProvider
from dancelink.infrastructure.wise_provider import WiseProvider
from dancelink.services.interfaces.payment_provider import PaymentProvider


def build_payment_providers(settings: Settings) -> dict[PaymentProviderName, PaymentProvider]:
    """
    Both providers are always registered. A provider with missing credentials
    is still listed so that requests for it fail with a configuration error
    naming what is missing, instead of an "unsupported provider" error.
    """
    return {
        PaymentProviderName.STRIPE: StripeProvider(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            currency=settings.STRIPE_CURRENCY,
            session_ttl_minutes=settings.CHECKOUT_SESSION_TTL_MINUTES,
        ),
        PaymentProviderName.WISE: WiseProvider(
            api_key=settings.WISE_API_KEY,
            profile_id=settings.WISE_PROFILE_ID,
            account_id=settings.WISE_ACCOUNT_ID,
            webhook_secret=settings.WISE_WEBHOOK_SECRET,
            base_url=settings.WISE_BASE_URL,
            timeout=settings.WISE_TIMEOUT_SECONDS,
        ),
    }


# Singleton registry
_providers: Optional[dict[PaymentProviderName, PaymentProvider]] = None


def get_payment_providers() -> dict[PaymentProviderName, PaymentProvider]:
    """Get provider registry singleton."""
    global _providers
    if _providers is None:
        _providers = build_payment_providers(get_settings())
    return _providers
