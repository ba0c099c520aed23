"""
Payment provider registry.

Maps provider names and checkout currencies to configured provider instances.
"""
from typing import Dict, Optional

from banksheet.config import Settings, get_settings
from banksheet.exceptions import UnknownPaymentProviderError
from banksheet.services.payment_providers.base import (
    BasePaymentProvider,
    CheckoutSession,
    PaymentEvent,
    PaymentEventKind,
)
from banksheet.services.payment_providers.stripe_provider import StripeProvider
from banksheet.services.payment_providers.xendit_provider import XenditProvider, parse_external_id

# Checkout currency -> provider name
CURRENCY_PROVIDERS = {
    "usd": "stripe",
    "idr": "xendit",
}


def build_providers(settings: Optional[Settings] = None) -> Dict[str, BasePaymentProvider]:
    """Instantiate every supported provider from settings."""
    settings = settings or get_settings()
    providers = [
        StripeProvider(settings.stripe_secret_key, settings.stripe_webhook_secret),
        XenditProvider(settings.xendit_secret_key, settings.xendit_callback_secret, settings.xendit_api_base),
    ]
    return {p.name: p for p in providers}


def get_payment_provider(name: str, settings: Optional[Settings] = None) -> BasePaymentProvider:
    """Look up a provider by name."""
    providers = build_providers(settings)
    provider = providers.get((name or "").lower())
    if provider is None:
        raise UnknownPaymentProviderError(name)
    return provider


def provider_for_currency(currency: str) -> str:
    """Provider name that settles a currency. Unknown currencies go to Stripe."""
    return CURRENCY_PROVIDERS.get((currency or "").lower(), "stripe")


__all__ = [
    "BasePaymentProvider",
    "CheckoutSession",
    "PaymentEvent",
    "PaymentEventKind",
    "StripeProvider",
    "XenditProvider",
    "build_providers",
    "get_payment_provider",
    "parse_external_id",
    "provider_for_currency",
]
