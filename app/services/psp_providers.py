"""Provider adapter lookup."""
from __future__ import annotations

from app.config import get_settings
from app.services.psp_base import PaymentProvider
from app.services.psp_cashfree import CashfreeProvider
from app.services.psp_paypal import PayPalProvider
from app.services.psp_razorpay import RazorpayProvider
from app.services.psp_stripe import StripeProvider
from app.utils.errors import PaymentError, PaymentErrorCode

PROVIDER_CLASSES: dict[str, type[PaymentProvider]] = {
    cls.name: cls for cls in (CashfreeProvider, RazorpayProvider, PayPalProvider, StripeProvider)
}

_provider_cache: dict[str, PaymentProvider] = {}


def known_providers() -> list[str]:
    return list(PROVIDER_CLASSES)


def get_provider(name: str) -> PaymentProvider:
    """Return the adapter for ``name``; instances share the live settings object."""

    key = (name or "").lower()
    cached = _provider_cache.get(key)
    if cached is not None:
        return cached
    provider_cls = PROVIDER_CLASSES.get(key)
    if provider_cls is None:
        raise PaymentError(PaymentErrorCode.GATEWAY_NOT_FOUND, f"Unknown payment provider: {name}", provider=name)
    provider = provider_cls(get_settings())
    _provider_cache[key] = provider
    return provider


def reset_providers() -> None:
    _provider_cache.clear()


__all__ = ["PROVIDER_CLASSES", "get_provider", "known_providers", "reset_providers"]
