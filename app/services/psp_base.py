"""Common contract implemented by every payment provider adapter.

Each vendor models payments differently (orders, plans plus subscriptions,
payment links, hosted sessions). Adapters normalise that into four
operations so checkout and webhook handling never branch on the vendor:

* ``create_checkout`` returns a redirect target for the customer.
* ``handle_webhook`` authenticates a vendor callback and maps its event onto
  the canonical subscription states.
* ``get_subscription_status`` polls the vendor for the current state.
* ``verify_payment`` point-checks a payment before entitlements are granted.

Adapters never raise for missing credentials when creating a checkout: they
return a demo checkout so the rest of the system keeps working without live
vendor accounts.
"""
from __future__ import annotations

import hmac
import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, ClassVar, Mapping

import httpx
from pydantic import BaseModel, Field

from app.config import Settings
from app.models.gateway_transaction import TransactionStatus
from app.models.subscription import SubscriptionStatus
from app.utils.errors import PaymentError, PaymentErrorCode
from app.utils.time import in_minutes

logger = logging.getLogger(__name__)

DEMO_CHECKOUT_PREFIX = "/demo-payment"
DEMO_CHECKOUT_TTL_MINUTES = 30

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND", "IDR"})


def to_minor_units(amount: Decimal | float | str, currency: str) -> int:
    """Convert a major-unit amount to the smallest unit (paise, cents...)."""

    normalized = Decimal(str(amount))
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(normalized.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return int((normalized.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) * 100).to_integral_value())


def from_minor_units(amount: int | str | None, currency: str | None) -> Decimal | None:
    if amount is None:
        return None
    value = Decimal(str(amount))
    if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES:
        return value
    return (value / Decimal("100")).quantize(Decimal("0.01"))


def format_major_units(amount: Decimal | float | str, currency: str) -> str:
    """Render an amount the way vendors expecting decimal strings want it."""

    exponent = Decimal("1") if currency.upper() in ZERO_DECIMAL_CURRENCIES else Decimal("0.01")
    return str(Decimal(str(amount)).quantize(exponent, rounding=ROUND_HALF_UP))


def to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"))


class CheckoutParams(BaseModel):
    amount: Decimal
    currency: str
    customer_email: str
    customer_name: str
    product_name: str
    return_url: str
    cancel_url: str | None = None
    subscription_type: str = "garden_monitoring"
    interval: str | None = "year"
    customer_phone: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class CheckoutResponse(BaseModel):
    checkout_url: str
    session_id: str
    payment_id: str
    expires_at: datetime
    demo: bool = False


class WebhookResult(BaseModel):
    """Vendor callback normalised onto the canonical vocabulary.

    ``status`` is the subscription state the event implies. When the event is
    about a payment, ``transaction_id``/``payment_status``/``amount`` describe
    the ledger entry it should produce.
    """

    success: bool
    event_type: str | None = None
    subscription_id: str | None = None
    customer_id: str | None = None
    status: SubscriptionStatus | None = None
    expires_at: datetime | None = None
    transaction_id: str | None = None
    payment_status: TransactionStatus | None = None
    amount: Decimal | None = None
    currency: str | None = None
    payment_method: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SubscriptionStatusInfo(BaseModel):
    id: str
    status: SubscriptionStatus
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    customer_id: str | None = None


class PaymentVerification(BaseModel):
    is_valid: bool
    subscription_id: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    status: str | None = None


class PaymentProvider(ABC):
    """Base class for vendor adapters."""

    name: ClassVar[str]
    display_name: ClassVar[str]
    supported_currencies: ClassVar[frozenset[str]]
    supported_regions: ClassVar[frozenset[str]]
    credential_settings: ClassVar[tuple[str, ...]]

    def __init__(self, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    # -- capabilities -------------------------------------------------------
    def supports_currency(self, currency: str) -> bool:
        return bool(currency) and currency.upper() in self.supported_currencies

    def supports_region(self, region: str) -> bool:
        return bool(region) and region.upper() in self.supported_regions

    def missing_credentials(self) -> list[str]:
        return [field for field in self.credential_settings if not getattr(self.settings, field, None)]

    def is_configured(self) -> bool:
        return not self.missing_credentials()

    # -- contract -----------------------------------------------------------
    @abstractmethod
    def create_checkout(self, params: CheckoutParams) -> CheckoutResponse:
        ...

    @abstractmethod
    def handle_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        ...

    @abstractmethod
    def get_subscription_status(self, subscription_id: str) -> SubscriptionStatusInfo:
        ...

    @abstractmethod
    def verify_payment(self, payment_id: str) -> PaymentVerification:
        ...

    # -- helpers shared by the vendor implementations -----------------------
    @property
    def base_url(self) -> str:
        raise NotImplementedError

    def demo_checkout(self, params: CheckoutParams) -> CheckoutResponse:
        """Sandbox checkout returned while vendor credentials are absent."""

        logger.warning(
            "Payment credentials missing; returning demo checkout",
            extra={"provider": self.name, "missing": self.missing_credentials()},
        )
        query = httpx.QueryParams(
            {
                "amount": str(params.amount),
                "currency": params.currency.upper(),
                "provider": self.name,
            }
        )
        return CheckoutResponse(
            checkout_url=f"{DEMO_CHECKOUT_PREFIX}?{query}",
            session_id=self.generate_order_id("demo_session"),
            payment_id=self.generate_order_id("demo_payment"),
            expires_at=in_minutes(DEMO_CHECKOUT_TTL_MINUTES),
            demo=True,
        )

    @staticmethod
    def generate_order_id(prefix: str = "garden_sub") -> str:
        return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(5)}"

    def error(self, code: PaymentErrorCode, message: str) -> PaymentError:
        return PaymentError(code, message, provider=self.name)

    def invalid_signature(self, reason: str) -> PaymentError:
        logger.warning("Webhook signature rejected", extra={"provider": self.name, "reason": reason})
        return self.error(PaymentErrorCode.INVALID_SIGNATURE, f"Invalid {self.display_name} webhook signature: {reason}")

    @staticmethod
    def get_header(headers: Mapping[str, str], key: str) -> str | None:
        for h_key, value in headers.items():
            if h_key.lower() == key.lower():
                return value
        return None

    @staticmethod
    def signatures_match(expected: str, provided: str | None) -> bool:
        return bool(provided) and hmac.compare_digest(expected.encode(), provided.strip().encode())

    def parse_json(self, body: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise self.error(PaymentErrorCode.PROVIDER_ERROR, f"Malformed {self.display_name} webhook payload") from exc
        if not isinstance(payload, dict):
            raise self.error(PaymentErrorCode.PROVIDER_ERROR, f"Malformed {self.display_name} webhook payload")
        return payload

    def request_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def is_not_found(self, response: httpx.Response) -> bool:
        return response.status_code == 404

    def describe_error(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict):
                return str(error.get("description") or error.get("message") or error)
            return str(payload.get("message") or payload.get("error_description") or payload)
        return str(payload)

    def request(
        self,
        method: str,
        path: str,
        *,
        not_found: PaymentErrorCode | None = None,
        headers: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Call the vendor API and return the decoded JSON body.

        Transport failures and non-2xx answers become ``PROVIDER_ERROR``;
        a "not found" answer becomes ``not_found`` when given.
        """

        merged_headers = {**self.request_headers(), **(headers or {})}
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.settings.PSP_HTTP_TIMEOUT_SECONDS,
                transport=self._transport,
            ) as client:
                response = client.request(method, path, headers=merged_headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(
                "Payment provider request failed",
                extra={"provider": self.name, "path": path, "error": str(exc)},
            )
            raise self.error(
                PaymentErrorCode.PROVIDER_ERROR, f"{self.display_name} request failed: {exc}"
            ) from exc

        if not_found is not None and self.is_not_found(response):
            raise self.error(not_found, f"{self.display_name} reports no resource at {path}")
        if response.is_error:
            description = self.describe_error(response)
            logger.warning(
                "Payment provider returned an error",
                extra={"provider": self.name, "path": path, "status_code": response.status_code},
            )
            raise self.error(
                PaymentErrorCode.PROVIDER_ERROR,
                f"{self.display_name} API error ({response.status_code}): {description}",
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise self.error(PaymentErrorCode.PROVIDER_ERROR, f"{self.display_name} returned invalid JSON") from exc


__all__ = [
    "CheckoutParams",
    "CheckoutResponse",
    "DEMO_CHECKOUT_PREFIX",
    "PaymentProvider",
    "PaymentVerification",
    "SubscriptionStatusInfo",
    "WebhookResult",
    "format_major_units",
    "from_minor_units",
    "to_decimal",
    "to_minor_units",
]
