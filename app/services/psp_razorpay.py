"""Razorpay adapter.

Recurring checkouts go through plan -> subscription -> payment link; one-off
checkouts create an order that the frontend completes with Razorpay
Checkout.js.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Mapping

import httpx

from app.models.gateway_transaction import TransactionStatus
from app.models.subscription import SubscriptionStatus
from app.services.psp_base import (
    CheckoutParams,
    CheckoutResponse,
    PaymentProvider,
    PaymentVerification,
    SubscriptionStatusInfo,
    WebhookResult,
    from_minor_units,
    to_minor_units,
)
from app.utils.errors import PaymentError, PaymentErrorCode
from app.utils.time import from_epoch, in_minutes

logger = logging.getLogger(__name__)

ORDER_TTL_MINUTES = 24 * 60

PLAN_PERIOD = {"month": "monthly", "year": "yearly"}
# Razorpay requires a bounded cycle count on every subscription.
TOTAL_CYCLES = {"month": 120, "year": 10}

EVENT_STATUS: dict[str, tuple[SubscriptionStatus, TransactionStatus | None]] = {
    "payment.captured": (SubscriptionStatus.ACTIVE, TransactionStatus.SUCCESS),
    "order.paid": (SubscriptionStatus.ACTIVE, TransactionStatus.SUCCESS),
    "subscription.activated": (SubscriptionStatus.ACTIVE, TransactionStatus.SUCCESS),
    "subscription.charged": (SubscriptionStatus.ACTIVE, TransactionStatus.SUCCESS),
    "payment.failed": (SubscriptionStatus.PENDING, TransactionStatus.FAILED),
    "subscription.cancelled": (SubscriptionStatus.CANCELLED, None),
    "subscription.completed": (SubscriptionStatus.EXPIRED, None),
    "subscription.expired": (SubscriptionStatus.EXPIRED, None),
}

SUBSCRIPTION_STATUS = {
    "active": SubscriptionStatus.ACTIVE,
    "cancelled": SubscriptionStatus.CANCELLED,
    "completed": SubscriptionStatus.EXPIRED,
    "expired": SubscriptionStatus.EXPIRED,
}


def _entity(payload: dict[str, Any], name: str) -> dict[str, Any]:
    return ((payload.get("payload") or {}).get(name) or {}).get("entity") or {}


class RazorpayProvider(PaymentProvider):
    name = "razorpay"
    display_name = "Razorpay"
    supported_currencies = frozenset({"INR", "USD"})
    supported_regions = frozenset({"IN", "US"})
    credential_settings = ("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET")

    @property
    def base_url(self) -> str:
        return "https://api.razorpay.com/v1"

    def _auth(self) -> httpx.BasicAuth:
        return httpx.BasicAuth(self.settings.RAZORPAY_KEY_ID or "", self.settings.RAZORPAY_KEY_SECRET or "")

    def is_not_found(self, response: httpx.Response) -> bool:
        # Unknown ids come back as 400 BAD_REQUEST_ERROR rather than 404.
        if response.status_code == 404:
            return True
        return response.status_code == 400 and "does not exist" in response.text

    def create_checkout(self, params: CheckoutParams) -> CheckoutResponse:
        if not self.is_configured():
            return self.demo_checkout(params)
        if params.interval in PLAN_PERIOD:
            return self._create_subscription_checkout(params)
        return self._create_order_checkout(params)

    def _notes(self, params: CheckoutParams, order_ref: str) -> dict[str, str]:
        return {
            "order_ref": order_ref,
            "customer_email": params.customer_email,
            "customer_name": params.customer_name,
            "product_name": params.product_name,
            "subscription_type": params.subscription_type,
        }

    def _create_order_checkout(self, params: CheckoutParams) -> CheckoutResponse:
        order_ref = self.generate_order_id()
        order = self.request(
            "POST",
            "/orders",
            auth=self._auth(),
            json={
                "amount": to_minor_units(params.amount, params.currency),
                "currency": params.currency.upper(),
                "receipt": order_ref,
                "notes": self._notes(params, order_ref),
            },
        )
        query = httpx.QueryParams(
            {"order_id": order["id"], "amount": str(params.amount), "currency": params.currency.upper()}
        )
        logger.info("Razorpay order created", extra={"provider": self.name, "order_id": order["id"]})
        return CheckoutResponse(
            checkout_url=f"/razorpay-checkout?{query}",
            session_id=order["id"],
            payment_id=order["id"],
            expires_at=in_minutes(ORDER_TTL_MINUTES),
        )

    def _create_subscription_checkout(self, params: CheckoutParams) -> CheckoutResponse:
        order_ref = self.generate_order_id()
        amount = to_minor_units(params.amount, params.currency)
        notes = self._notes(params, order_ref)

        plan = self.request(
            "POST",
            "/plans",
            auth=self._auth(),
            json={
                "period": PLAN_PERIOD[params.interval],
                "interval": 1,
                "item": {
                    "name": params.product_name,
                    "amount": amount,
                    "currency": params.currency.upper(),
                    "description": params.subscription_type,
                },
                "notes": notes,
            },
        )
        subscription = self.request(
            "POST",
            "/subscriptions",
            auth=self._auth(),
            json={
                "plan_id": plan["id"],
                "total_count": TOTAL_CYCLES[params.interval],
                "customer_notify": 1,
                "notes": notes,
            },
        )
        link = self.request(
            "POST",
            "/payment_links",
            auth=self._auth(),
            json={
                "amount": amount,
                "currency": params.currency.upper(),
                "description": params.product_name,
                "customer": {"name": params.customer_name, "email": params.customer_email},
                "notify": {"email": True, "sms": False},
                "reminder_enable": True,
                "callback_url": params.return_url,
                "callback_method": "get",
                "notes": {**notes, "subscription_id": subscription["id"]},
            },
        )
        logger.info(
            "Razorpay subscription checkout created",
            extra={"provider": self.name, "plan_id": plan["id"], "subscription_id": subscription["id"]},
        )
        return CheckoutResponse(
            checkout_url=link.get("short_url") or subscription.get("short_url"),
            session_id=link.get("id") or subscription["id"],
            payment_id=subscription["id"],
            expires_at=from_epoch(link.get("expire_by")) or in_minutes(ORDER_TTL_MINUTES),
        )

    def handle_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        secret = self.settings.RAZORPAY_WEBHOOK_SECRET
        if not secret:
            raise self.invalid_signature("webhook secret not configured")
        signature = self.get_header(headers, "x-razorpay-signature")
        if not signature:
            raise self.invalid_signature("missing signature header")
        expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        if not self.signatures_match(expected, signature):
            raise self.invalid_signature("signature mismatch")

        payload = self.parse_json(body)
        event_type = payload.get("event")
        mapping = EVENT_STATUS.get(event_type or "")
        if mapping is None:
            return WebhookResult(success=False, event_type=event_type)
        status, payment_status = mapping

        subscription = _entity(payload, "subscription")
        payment = _entity(payload, "payment")
        order = _entity(payload, "order")
        payment_notes = payment.get("notes") or {}
        if isinstance(payment_notes, list):
            payment_notes = {}

        subscription_id = (
            subscription.get("id")
            or payment_notes.get("subscription_id")
            or payment.get("order_id")
            or order.get("id")
            or payment.get("id")
        )
        customer_id = (
            payment.get("email")
            or (subscription.get("notes") or {}).get("customer_email")
            or subscription.get("customer_id")
        )

        result = WebhookResult(
            success=True,
            event_type=event_type,
            subscription_id=subscription_id,
            customer_id=customer_id,
            status=status,
            expires_at=from_epoch(subscription.get("current_end")),
        )
        if payment_status is not None and payment:
            currency = payment.get("currency")
            result.transaction_id = payment.get("id")
            result.payment_status = payment_status
            result.amount = from_minor_units(payment.get("amount"), currency)
            result.currency = currency
            result.payment_method = payment.get("method")
            result.error_code = payment.get("error_code")
            result.error_message = payment.get("error_description")
            result.metadata = {"customer_name": payment_notes.get("customer_name")}
        return result

    def get_subscription_status(self, subscription_id: str) -> SubscriptionStatusInfo:
        if not self.is_configured():
            return SubscriptionStatusInfo(id=subscription_id, status=SubscriptionStatus.PENDING)

        subscription = self.request(
            "GET",
            f"/subscriptions/{subscription_id}",
            auth=self._auth(),
            not_found=PaymentErrorCode.SUBSCRIPTION_NOT_FOUND,
        )
        return SubscriptionStatusInfo(
            id=subscription_id,
            status=SUBSCRIPTION_STATUS.get(subscription.get("status") or "", SubscriptionStatus.PENDING),
            current_period_start=from_epoch(subscription.get("current_start")),
            current_period_end=from_epoch(subscription.get("current_end")),
            cancel_at_period_end=bool(subscription.get("has_scheduled_changes")),
            customer_id=subscription.get("customer_id"),
        )

    def verify_payment(self, payment_id: str) -> PaymentVerification:
        if not self.is_configured():
            return PaymentVerification(is_valid=False, subscription_id=payment_id, status="demo")

        try:
            payment = self.request("GET", f"/payments/{payment_id}", auth=self._auth())
        except PaymentError as exc:
            logger.warning(
                "Razorpay payment verification failed",
                extra={"provider": self.name, "payment_id": payment_id, "error": exc.message},
            )
            return PaymentVerification(is_valid=False)

        currency = payment.get("currency")
        return PaymentVerification(
            is_valid=payment.get("status") == "captured",
            subscription_id=payment.get("order_id") or payment_id,
            amount=from_minor_units(payment.get("amount"), currency),
            currency=currency,
            status=payment.get("status"),
        )
