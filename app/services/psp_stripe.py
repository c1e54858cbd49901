"""Stripe adapter built on the Stripe Python SDK (hosted Checkout sessions)."""
from __future__ import annotations

import logging
from typing import Any, Mapping

import stripe

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
from app.utils.errors import PaymentErrorCode
from app.utils.time import from_epoch, in_minutes

logger = logging.getLogger(__name__)

SESSION_TTL_MINUTES = 24 * 60

EVENT_STATUS: dict[str, tuple[SubscriptionStatus, TransactionStatus | None]] = {
    "checkout.session.completed": (SubscriptionStatus.ACTIVE, TransactionStatus.SUCCESS),
    "invoice.paid": (SubscriptionStatus.ACTIVE, TransactionStatus.SUCCESS),
    "invoice.payment_failed": (SubscriptionStatus.PENDING, TransactionStatus.FAILED),
    "customer.subscription.deleted": (SubscriptionStatus.CANCELLED, None),
}

SUBSCRIPTION_STATUS = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
}


def _field(obj: Any, name: str) -> Any:
    """Read a field from a Stripe object or a plain dict."""

    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class StripeProvider(PaymentProvider):
    name = "stripe"
    display_name = "Stripe"
    supported_currencies = frozenset({"USD", "EUR", "GBP", "AUD", "CAD", "JPY", "INR", "SGD"})
    supported_regions = frozenset({"US", "GB", "EU", "AU", "CA", "IN", "SG"})
    credential_settings = ("STRIPE_SECRET_KEY",)

    def _configure_sdk(self) -> None:
        stripe.api_key = self.settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = 0

    def create_checkout(self, params: CheckoutParams) -> CheckoutResponse:
        if not self.is_configured():
            return self.demo_checkout(params)

        self._configure_sdk()
        order_ref = self.generate_order_id()
        recurring = params.interval in {"month", "year"}
        metadata = {
            "order_ref": order_ref,
            "subscription_type": params.subscription_type,
            **{key: str(value) for key, value in params.metadata.items()},
        }
        price_data: dict[str, Any] = {
            "currency": params.currency.lower(),
            "product_data": {"name": params.product_name},
            "unit_amount": to_minor_units(params.amount, params.currency),
        }
        session_args: dict[str, Any] = {
            "mode": "subscription" if recurring else "payment",
            "customer_email": params.customer_email,
            "line_items": [{"price_data": price_data, "quantity": 1}],
            "success_url": params.return_url,
            "cancel_url": params.cancel_url or params.return_url,
            "client_reference_id": order_ref,
            "metadata": metadata,
        }
        if recurring:
            price_data["recurring"] = {"interval": params.interval}
            session_args["subscription_data"] = {"metadata": metadata}
        else:
            session_args["payment_intent_data"] = {"metadata": metadata}

        try:
            session = stripe.checkout.Session.create(**session_args)
        except stripe.StripeError as exc:
            logger.error("Stripe checkout failed", extra={"provider": self.name, "error": str(exc)})
            raise self.error(PaymentErrorCode.PROVIDER_ERROR, f"Stripe API error: {exc}") from exc

        logger.info("Stripe checkout session created", extra={"provider": self.name, "session_id": session.id})
        return CheckoutResponse(
            checkout_url=session.url,
            session_id=session.id,
            payment_id=order_ref,
            expires_at=from_epoch(_field(session, "expires_at")) or in_minutes(SESSION_TTL_MINUTES),
        )

    def handle_webhook(self, body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        secret = self.settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            raise self.invalid_signature("webhook secret not configured")
        signature = self.get_header(headers, "stripe-signature")
        if not signature:
            raise self.invalid_signature("missing signature header")
        try:
            stripe.WebhookSignature.verify_header(
                body.decode("utf-8"),
                signature,
                secret,
                tolerance=self.settings.PSP_WEBHOOK_MAX_DRIFT_SECONDS,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            raise self.invalid_signature("signature mismatch") from exc

        event = self.parse_json(body)
        event_type = event.get("type")
        mapping = EVENT_STATUS.get(event_type or "")
        if mapping is None:
            return WebhookResult(success=False, event_type=event_type)
        status, payment_status = mapping
        obj = (event.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}

        if event_type == "customer.subscription.deleted":
            return WebhookResult(
                success=True,
                event_type=event_type,
                subscription_id=metadata.get("order_ref") or obj.get("id"),
                customer_id=obj.get("customer"),
                status=status,
                expires_at=from_epoch(obj.get("ended_at")),
            )

        if event_type == "checkout.session.completed":
            currency = obj.get("currency")
            return WebhookResult(
                success=True,
                event_type=event_type,
                subscription_id=metadata.get("order_ref") or obj.get("client_reference_id") or obj.get("id"),
                customer_id=(obj.get("customer_details") or {}).get("email") or obj.get("customer_email"),
                status=status,
                transaction_id=obj.get("payment_intent") or obj.get("invoice") or obj.get("id"),
                payment_status=payment_status,
                amount=from_minor_units(obj.get("amount_total"), currency),
                currency=currency.upper() if currency else None,
                payment_method="card",
                metadata={"customer_name": (obj.get("customer_details") or {}).get("name")},
            )

        # invoice.paid / invoice.payment_failed
        currency = obj.get("currency")
        parent_metadata = (obj.get("subscription_details") or {}).get("metadata") or {}
        lines = (obj.get("lines") or {}).get("data") or []
        period_end = ((lines[0].get("period") or {}).get("end")) if lines else None
        paid = payment_status == TransactionStatus.SUCCESS
        last_error = obj.get("last_finalization_error") or {}
        return WebhookResult(
            success=True,
            event_type=event_type,
            subscription_id=parent_metadata.get("order_ref") or obj.get("subscription") or obj.get("id"),
            customer_id=obj.get("customer_email") or obj.get("customer"),
            status=status,
            expires_at=from_epoch(period_end) if paid else None,
            transaction_id=obj.get("id"),
            payment_status=payment_status,
            amount=from_minor_units(obj.get("amount_paid") if paid else obj.get("amount_due"), currency),
            currency=currency.upper() if currency else None,
            payment_method="card",
            error_code=last_error.get("code"),
            error_message=last_error.get("message"),
            metadata={"customer_name": obj.get("customer_name")},
        )

    def _find_subscription(self, subscription_id: str) -> Any:
        if subscription_id.startswith("sub_"):
            return stripe.Subscription.retrieve(subscription_id)
        found = stripe.Subscription.search(query=f"metadata['order_ref']:'{subscription_id}'", limit=1)
        data = _field(found, "data") or []
        return data[0] if data else None

    def get_subscription_status(self, subscription_id: str) -> SubscriptionStatusInfo:
        if not self.is_configured():
            return SubscriptionStatusInfo(id=subscription_id, status=SubscriptionStatus.PENDING)

        self._configure_sdk()
        try:
            subscription = self._find_subscription(subscription_id)
        except stripe.InvalidRequestError as exc:
            if getattr(exc, "code", None) == "resource_missing":
                raise self.error(
                    PaymentErrorCode.SUBSCRIPTION_NOT_FOUND, f"Stripe has no subscription {subscription_id}"
                ) from exc
            raise self.error(PaymentErrorCode.PROVIDER_ERROR, f"Stripe API error: {exc}") from exc
        except stripe.StripeError as exc:
            raise self.error(PaymentErrorCode.PROVIDER_ERROR, f"Stripe API error: {exc}") from exc
        if subscription is None:
            raise self.error(PaymentErrorCode.SUBSCRIPTION_NOT_FOUND, f"Stripe has no subscription {subscription_id}")

        return SubscriptionStatusInfo(
            id=subscription_id,
            status=SUBSCRIPTION_STATUS.get(_field(subscription, "status") or "", SubscriptionStatus.PENDING),
            current_period_start=from_epoch(_field(subscription, "current_period_start")),
            current_period_end=from_epoch(_field(subscription, "current_period_end")),
            cancel_at_period_end=bool(_field(subscription, "cancel_at_period_end")),
            customer_id=_field(subscription, "customer"),
        )

    def verify_payment(self, payment_id: str) -> PaymentVerification:
        if not self.is_configured():
            return PaymentVerification(is_valid=False, subscription_id=payment_id, status="demo")

        self._configure_sdk()
        try:
            if payment_id.startswith("cs_"):
                session = stripe.checkout.Session.retrieve(payment_id)
                status = _field(session, "payment_status")
                currency = _field(session, "currency")
                return PaymentVerification(
                    is_valid=status == "paid",
                    subscription_id=_field(_field(session, "metadata"), "order_ref") or payment_id,
                    amount=from_minor_units(_field(session, "amount_total"), currency),
                    currency=currency.upper() if currency else None,
                    status=status,
                )
            intent = stripe.PaymentIntent.retrieve(payment_id)
        except stripe.StripeError as exc:
            logger.warning(
                "Stripe payment verification failed",
                extra={"provider": self.name, "payment_id": payment_id, "error": str(exc)},
            )
            return PaymentVerification(is_valid=False)

        status = _field(intent, "status")
        currency = _field(intent, "currency")
        return PaymentVerification(
            is_valid=status == "succeeded",
            subscription_id=_field(_field(intent, "metadata"), "order_ref") or payment_id,
            amount=from_minor_units(_field(intent, "amount_received"), currency),
            currency=currency.upper() if currency else None,
            status=status,
        )
