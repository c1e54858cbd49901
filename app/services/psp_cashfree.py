"""Cashfree Payment Gateway adapter (PG API, version 2023-08-01)."""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from datetime import timedelta
from typing import Any, Mapping

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

API_VERSION = "2023-08-01"
ORDER_TTL_MINUTES = 30

EVENT_STATUS: dict[str, tuple[SubscriptionStatus, TransactionStatus]] = {
    "PAYMENT_SUCCESS_WEBHOOK": (SubscriptionStatus.ACTIVE, TransactionStatus.SUCCESS),
    "PAYMENT_FAILED_WEBHOOK": (SubscriptionStatus.PENDING, TransactionStatus.FAILED),
    "PAYMENT_USER_DROPPED_WEBHOOK": (SubscriptionStatus.PENDING, TransactionStatus.FAILED),
}

ORDER_STATUS = {
    "PAID": SubscriptionStatus.ACTIVE,
    "EXPIRED": SubscriptionStatus.EXPIRED,
    "TERMINATED": SubscriptionStatus.CANCELLED,
}

PERIOD_LENGTH = {"month": timedelta(days=30), "year": timedelta(days=365)}


class CashfreeProvider(PaymentProvider):
    name = "cashfree"
    display_name = "Cashfree"
    supported_currencies = frozenset({"INR", "USD", "EUR", "GBP"})
    supported_regions = frozenset({"IN", "US", "GB", "EU"})
    credential_settings = ("CASHFREE_APP_ID", "CASHFREE_SECRET_KEY")

    @property
    def base_url(self) -> str:
        if self.settings.is_production:
            return "https://api.cashfree.com/pg"
        return "https://sandbox.cashfree.com/pg"

    def request_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "x-api-version": API_VERSION,
            "x-client-id": self.settings.CASHFREE_APP_ID or "",
            "x-client-secret": self.settings.CASHFREE_SECRET_KEY or "",
        }

    def create_checkout(self, params: CheckoutParams) -> CheckoutResponse:
        if not self.is_configured():
            return self.demo_checkout(params)

        order_id = self.generate_order_id()
        customer: dict[str, Any] = {
            "customer_id": hashlib.sha256(params.customer_email.lower().encode()).hexdigest()[:32],
            "customer_email": params.customer_email,
            "customer_name": params.customer_name,
        }
        if params.customer_phone:
            customer["customer_phone"] = params.customer_phone

        payload = {
            "order_id": order_id,
            "order_amount": float(format_major_units(params.amount, params.currency)),
            "order_currency": params.currency.upper(),
            "customer_details": customer,
            "order_meta": {
                "return_url": f"{params.return_url}?order_id={{order_id}}",
                "notify_url": f"{self.settings.APP_URL}/api/payments/{self.name}/webhook",
            },
            "order_note": params.product_name,
            "order_tags": {
                "subscription_type": params.subscription_type,
                "interval": params.interval or "one_time",
            },
        }
        data = self.request("POST", "/orders", json=payload)

        checkout_url = data.get("payment_link")
        if not checkout_url:
            session = data.get("payment_session_id")
            if not session:
                raise self.error(PaymentErrorCode.PROVIDER_ERROR, "Cashfree order returned no payment link")
            checkout_url = f"/cashfree-checkout?payment_session_id={session}&order_id={order_id}"

        logger.info("Cashfree order created", extra={"provider": self.name, "order_id": order_id})
        return CheckoutResponse(
            checkout_url=checkout_url,
            session_id=str(data.get("cf_order_id") or order_id),
            payment_id=order_id,
            expires_at=parse_iso_utc(data.get("order_expiry_time")) or in_minutes(ORDER_TTL_MINUTES),
        )

    def _verify_signature(self, body: bytes, headers: Mapping[str, str]) -> None:
        secret = self.settings.CASHFREE_SECRET_KEY
        if not secret:
            raise self.invalid_signature("secret key not configured")

        signature = self.get_header(headers, "x-webhook-signature")
        timestamp = self.get_header(headers, "x-webhook-timestamp")
        if not signature or not timestamp:
            raise self.invalid_signature("missing signature headers")

        try:
            sent_at = int(timestamp)
        except ValueError as exc:
            raise self.invalid_signature("malformed timestamp") from exc
        # Cashfree sends milliseconds.
        if sent_at > 10**12:
            sent_at //= 1000
        if abs(int(time.time()) - sent_at) > self.settings.PSP_WEBHOOK_MAX_DRIFT_SECONDS:
            raise self.invalid_signature("timestamp outside allowed window")

        digest = hmac.new(secret.encode(), timestamp.encode() + body, hashlib.sha256).digest()
        expected = base64.b64encode(digest).decode()
        if not self.signatures_match(expected, signature):
            raise self.invalid_signature("signature mismatch")

    def handle_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        self._verify_signature(body, headers)
        payload = self.parse_json(body)

        event_type = payload.get("type")
        mapping = EVENT_STATUS.get(event_type or "")
        if mapping is None:
            return WebhookResult(success=False, event_type=event_type)
        status, payment_status = mapping

        data = payload.get("data") or {}
        order = data.get("order") or {}
        payment = data.get("payment") or {}
        customer = data.get("customer_details") or {}
        error_details = data.get("error_details") or {}
        tags = order.get("order_tags") or {}

        expires_at = None
        period = PERIOD_LENGTH.get(tags.get("interval") or "")
        paid_at = parse_iso_utc(payment.get("payment_time"))
        if status == SubscriptionStatus.ACTIVE and period is not None and paid_at is not None:
            expires_at = paid_at + period

        return WebhookResult(
            success=True,
            event_type=event_type,
            subscription_id=order.get("order_id"),
            customer_id=customer.get("customer_email") or customer.get("customer_id"),
            status=status,
            expires_at=expires_at,
            transaction_id=str(payment["cf_payment_id"]) if payment.get("cf_payment_id") else order.get("order_id"),
            payment_status=payment_status,
            amount=to_decimal(payment.get("payment_amount") or order.get("order_amount")),
            currency=payment.get("payment_currency") or order.get("order_currency"),
            payment_method=payment.get("payment_group"),
            error_code=error_details.get("error_code"),
            error_message=error_details.get("error_description") or payment.get("payment_message"),
            metadata={"customer_name": customer.get("customer_name"), **tags},
        )

    def get_subscription_status(self, subscription_id: str) -> SubscriptionStatusInfo:
        if not self.is_configured():
            return SubscriptionStatusInfo(id=subscription_id, status=SubscriptionStatus.PENDING)

        order = self.request(
            "GET", f"/orders/{subscription_id}", not_found=PaymentErrorCode.SUBSCRIPTION_NOT_FOUND
        )
        status = ORDER_STATUS.get(order.get("order_status") or "", SubscriptionStatus.PENDING)
        start = parse_iso_utc(order.get("created_at"))
        period = PERIOD_LENGTH.get((order.get("order_tags") or {}).get("interval") or "")
        customer = order.get("customer_details") or {}
        return SubscriptionStatusInfo(
            id=subscription_id,
            status=status,
            current_period_start=start,
            current_period_end=start + period if start is not None and period is not None else None,
            customer_id=customer.get("customer_email") or customer.get("customer_id"),
        )

    def verify_payment(self, payment_id: str) -> PaymentVerification:
        if not self.is_configured():
            return PaymentVerification(is_valid=False, subscription_id=payment_id, status="demo")

        try:
            payments = self.request("GET", f"/orders/{payment_id}/payments")
        except PaymentError as exc:
            logger.warning(
                "Cashfree payment verification failed",
                extra={"provider": self.name, "payment_id": payment_id, "error": exc.message},
            )
            return PaymentVerification(is_valid=False, subscription_id=payment_id)

        if not isinstance(payments, list) or not payments:
            return PaymentVerification(is_valid=False, subscription_id=payment_id, status="no_payments")
        settled = next((p for p in payments if p.get("payment_status") == "SUCCESS"), payments[0])
        return PaymentVerification(
            is_valid=settled.get("payment_status") == "SUCCESS",
            subscription_id=payment_id,
            amount=to_decimal(settled.get("payment_amount")),
            currency=settled.get("payment_currency"),
            status=settled.get("payment_status"),
        )
