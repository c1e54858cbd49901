"""Utility helpers for standardized error responses and payment errors."""
from __future__ import annotations

import enum
from typing import Any


class PaymentErrorCode(str, enum.Enum):
    """Error kinds raised by provider adapters and payment services."""

    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    SUBSCRIPTION_NOT_FOUND = "SUBSCRIPTION_NOT_FOUND"
    CURRENCY_NOT_SUPPORTED = "CURRENCY_NOT_SUPPORTED"
    REGION_NOT_SUPPORTED = "REGION_NOT_SUPPORTED"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    GATEWAY_NOT_FOUND = "GATEWAY_NOT_FOUND"


PAYMENT_ERROR_STATUS: dict[PaymentErrorCode, int] = {
    PaymentErrorCode.INVALID_SIGNATURE: 401,
    PaymentErrorCode.PAYMENT_FAILED: 402,
    PaymentErrorCode.SUBSCRIPTION_NOT_FOUND: 404,
    PaymentErrorCode.GATEWAY_NOT_FOUND: 404,
    PaymentErrorCode.CURRENCY_NOT_SUPPORTED: 422,
    PaymentErrorCode.REGION_NOT_SUPPORTED: 422,
    PaymentErrorCode.PROVIDER_ERROR: 502,
}


class PaymentError(Exception):
    """Structured error carrying the error kind and the offending provider."""

    def __init__(self, code: PaymentErrorCode, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider = provider

    @property
    def status_code(self) -> int:
        return PAYMENT_ERROR_STATUS.get(self.code, 500)

    def to_response(self, message: str | None = None) -> dict[str, Any]:
        details: dict[str, Any] = {"provider": self.provider}
        if message is not None:
            details["reason"] = self.message
        return error_response(self.code.value, message or self.message, details)


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


__all__ = ["PaymentError", "PaymentErrorCode", "PAYMENT_ERROR_STATUS", "error_response"]
