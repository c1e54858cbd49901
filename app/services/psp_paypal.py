"""PayPal REST adapter (Orders v2, Billing subscriptions, webhook verification)."""
from __future__ import annotations

import logging
import time
from typing import Any, Mapping

import httpx

from app.config import Settings
from app.models.gateway_transaction import TransactionStatus
from app.models.subscription import SubscriptionStatus
from app.services.psp_base import (
    CheckoutParams,
    CheckoutResponse,
    PaymentProvider,
    PaymentVerification,
    SubscriptionStatusInfo,
    WebhookResult,
    format_major_units,
    to_decimal,
)
from app.utils.errors import PaymentError, PaymentErrorCode
from app.utils.time import in_minutes, parse_iso_utc

logger = logging.getLogger(__name__)

ORDER_TTL_MINUTES = 3 * 60
TOKEN_REFRESH_MARGIN_SECONDS = 60

TRANSMISSION_HEADERS = {
    "transmission_id": "paypal-transmission-id",
    "transmission_time": "paypal-transmission-time",
    "transmission_sig": "paypal-transmission-sig",
    "cert_url": "paypal-cert-url",
    "auth_algo": "paypal-auth-algo",
}

EVENT_STATUS: dict[str, tuple[SubscriptionStatus, TransactionStatus | None]] = {
    "CHECKOUT.ORDER.COMPLETED": (SubscriptionStatus.ACTIVE, TransactionStatus.SUCCESS),
    "PAYMENT.CAPTURE.COMPLETED": (SubscriptionStatus.ACTIVE, TransactionStatus.SUCCESS),
    "PAYMENT.SALE.COMPLETED": (SubscriptionStatus.ACTIVE, TransactionStatus.SUCCESS),
    "BILLING.SUBSCRIPTION.ACTIVATED": (SubscriptionStatus.ACTIVE, None),
    "PAYMENT.CAPTURE.DENIED": (SubscriptionStatus.PENDING, TransactionStatus.FAILED),
    "BILLING.SUBSCRIPTION.CANCELLED": (SubscriptionStatus.CANCELLED, None),
    "BILLING.SUBSCRIPTION.EXPIRED": (SubscriptionStatus.EXPIRED, None),
}

SUBSCRIPTION_STATUS = {
    "ACTIVE": SubscriptionStatus.ACTIVE,
    "CANCELLED": SubscriptionStatus.CANCELLED,
    "EXPIRED": SubscriptionStatus.EXPIRED,
}


class PayPalProvider(PaymentProvider):
    name = "paypal"
    display_name = "PayPal"
    supported_currencies = frozenset({"USD", "EUR", "GBP", "AUD", "CAD", "JPY", "INR"})
    supported_regions = frozenset({"US", "GB", "EU", "AU", "CA", "IN"})
    credential_settings = ("PAYPAL_CLIENT_ID", "PAYPAL_CLIENT_SECRET")

    def __init__(self, settings: Settings, *, transport: httpx.BaseTransport | None = None) -> None:
        super().__init__(settings, transport=transport)
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    @property
    def base_url(self) -> str:
        if self.settings.is_production:
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"

    def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        token = self.request(
            "POST",
            "/v1/oauth2/token",
            auth=httpx.BasicAuth(self.settings.PAYPAL_CLIENT_ID or "", self.settings.PAYPAL_CLIENT_SECRET or ""),
            data={"grant_type": "client_credentials"},
        )
        access_token = token.get("access_token")
        if not access_token:
            raise self.error(PaymentErrorCode.PROVIDER_ERROR, "PayPal returned no access token")
        lifetime = int(token.get("expires_in") or 0)
        self._access_token = access_token
        self._token_expires_at = time.monotonic() + max(lifetime - TOKEN_REFRESH_MARGIN_SECONDS, 0)
        return access_token

    def _authorized(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._get_access_token()}"}

    def create_checkout(self, params: CheckoutParams) -> CheckoutResponse:
        if not self.is_configured():
            return self.demo_checkout(params)

        order_ref = self.generate_order_id()
        currency = params.currency.upper()
        order = self.request(
            "POST",
            "/v2/checkout/orders",
            headers={**self._authorized(), "PayPal-Request-Id": order_ref},
            json={
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "reference_id": order_ref,
                        "custom_id": order_ref,
                        "description": params.product_name,
                        "amount": {
                            "currency_code": currency,
                            "value": format_major_units(params.amount, currency),
                        },
                    }
                ],
                "application_context": {
                    "return_url": params.return_url,
                    "cancel_url": params.cancel_url or params.return_url,
                    "brand_name": "GreenLens",
                    "user_action": "PAY_NOW",
                },
            },
        )
        approve = next(
            (link.get("href") for link in order.get("links") or [] if link.get("rel") in {"approve", "payer-action"}),
            None,
        )
        if not approve:
            raise self.error(PaymentErrorCode.PROVIDER_ERROR, "PayPal order returned no approval link")

        logger.info("PayPal order created", extra={"provider": self.name, "order_id": order["id"]})
        return CheckoutResponse(
            checkout_url=approve,
            session_id=order["id"],
            payment_id=order["id"],
            expires_at=in_minutes(ORDER_TTL_MINUTES),
        )

    def _verify_signature(self, headers: Mapping[str, str], event: dict[str, Any]) -> None:
        webhook_id = self.settings.PAYPAL_WEBHOOK_ID
        if not webhook_id or not self.is_configured():
            raise self.invalid_signature("webhook verification not configured")

        transmission: dict[str, str] = {}
        for field, header in TRANSMISSION_HEADERS.items():
            value = self.get_header(headers, header)
            if not value:
                raise self.invalid_signature(f"missing {header} header")
            transmission[field] = value

        try:
            verdict = self.request(
                "POST",
                "/v1/notifications/verify-webhook-signature",
                headers=self._authorized(),
                json={**transmission, "webhook_id": webhook_id, "webhook_event": event},
            )
        except PaymentError as exc:
            raise self.invalid_signature(f"verification unavailable ({exc.message})") from exc
        if verdict.get("verification_status") != "SUCCESS":
            raise self.invalid_signature("verification failed")

    def handle_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        try:
            event = self.parse_json(body)
        except PaymentError as exc:
            raise self.invalid_signature("unverifiable payload") from exc
        self._verify_signature(headers, event)

        event_type = event.get("event_type")
        mapping = EVENT_STATUS.get(event_type or "")
        if mapping is None:
            return WebhookResult(success=False, event_type=event_type)
        status, payment_status = mapping
        resource = event.get("resource") or {}

        if event_type.startswith("BILLING.SUBSCRIPTION."):
            subscriber = resource.get("subscriber") or {}
            billing = resource.get("billing_info") or {}
            return WebhookResult(
                success=True,
                event_type=event_type,
                subscription_id=resource.get("id"),
                customer_id=subscriber.get("email_address") or subscriber.get("payer_id"),
                status=status,
                expires_at=parse_iso_utc(billing.get("next_billing_time")),
            )

        if event_type == "CHECKOUT.ORDER.COMPLETED":
            unit = (resource.get("purchase_units") or [{}])[0]
            captures = (unit.get("payments") or {}).get("captures") or []
            amount = unit.get("amount") or {}
            subscription_id = resource.get("id")
            transaction_id = captures[0].get("id") if captures else resource.get("id")
            customer_id = (resource.get("payer") or {}).get("email_address")
        elif event_type == "PAYMENT.SALE.COMPLETED":
            sale_amount = resource.get("amount") or {}
            amount = {"value": sale_amount.get("total"), "currency_code": sale_amount.get("currency")}
            subscription_id = resource.get("billing_agreement_id") or resource.get("id")
            transaction_id = resource.get("id")
            customer_id = None
        else:
            related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
            amount = resource.get("amount") or {}
            subscription_id = related.get("order_id") or resource.get("id")
            transaction_id = resource.get("id")
            customer_id = None

        status_details = resource.get("status_details") or {}
        return WebhookResult(
            success=True,
            event_type=event_type,
            subscription_id=subscription_id,
            customer_id=customer_id,
            status=status,
            transaction_id=transaction_id,
            payment_status=payment_status,
            amount=to_decimal(amount.get("value")),
            currency=amount.get("currency_code"),
            payment_method="paypal",
            error_code=status_details.get("reason") if payment_status == TransactionStatus.FAILED else None,
        )

    def get_subscription_status(self, subscription_id: str) -> SubscriptionStatusInfo:
        if not self.is_configured():
            return SubscriptionStatusInfo(id=subscription_id, status=SubscriptionStatus.PENDING)

        subscription = self.request(
            "GET",
            f"/v1/billing/subscriptions/{subscription_id}",
            headers=self._authorized(),
            not_found=PaymentErrorCode.SUBSCRIPTION_NOT_FOUND,
        )
        billing = subscription.get("billing_info") or {}
        subscriber = subscription.get("subscriber") or {}
        return SubscriptionStatusInfo(
            id=subscription_id,
            status=SUBSCRIPTION_STATUS.get(subscription.get("status") or "", SubscriptionStatus.PENDING),
            current_period_start=parse_iso_utc(subscription.get("start_time")),
            current_period_end=parse_iso_utc(billing.get("next_billing_time")),
            customer_id=subscriber.get("email_address") or subscriber.get("payer_id"),
        )

    def verify_payment(self, payment_id: str) -> PaymentVerification:
        if not self.is_configured():
            return PaymentVerification(is_valid=False, subscription_id=payment_id, status="demo")

        try:
            order = self.request("GET", f"/v2/checkout/orders/{payment_id}", headers=self._authorized())
        except PaymentError as exc:
            logger.warning(
                "PayPal payment verification failed",
                extra={"provider": self.name, "payment_id": payment_id, "error": exc.message},
            )
            return PaymentVerification(is_valid=False)

        amount = ((order.get("purchase_units") or [{}])[0]).get("amount") or {}
        return PaymentVerification(
            is_valid=order.get("status") == "COMPLETED",
            subscription_id=order.get("id") or payment_id,
            amount=to_decimal(amount.get("value")),
            currency=amount.get("currency_code"),
            status=order.get("status"),
        )
