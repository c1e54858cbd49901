"""Audit logging helper utilities."""
from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.utils.time import utcnow


SENSITIVE_KEYS = {
    "customer_email",
    "email",
    "customer_name",
    "webhook_secret",
    "secret_key",
    "client_secret",
    "card_number",
}


def _mask_value(key: str, value: Any) -> Any:
    if value is None:
        return None

    if key in {"customer_email", "email"}:
        text = str(value)
        if "@" in text:
            _, domain = text.split("@", 1)
            return f"***@{domain}"
        return "***"

    if key == "customer_name":
        text = str(value).strip()
        return f"{text[:1]}***" if text else "***"

    if key == "card_number":
        stripped = str(value).replace(" ", "")
        return f"***{stripped[-4:]}"

    return "***"


def sanitize_payload_for_audit(data: Any) -> Any:
    """Return a copy of ``data`` with obvious PII and secret fields masked."""

    if isinstance(data, Mapping):
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            masked_value = _mask_value(key, value) if key in SENSITIVE_KEYS else value
            sanitized[key] = sanitize_payload_for_audit(masked_value)
        return sanitized

    if isinstance(data, list):
        return [sanitize_payload_for_audit(item) for item in data]

    return data


def log_audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity: str,
    entity_id: int | None,
    data: dict | None = None,
) -> None:
    """Persist an audit entry in the shared AuditLog table."""

    db.add(
        AuditLog(
            actor=actor,
            action=action,
            entity=entity,
            entity_id=entity_id if entity_id is not None else 0,
            data_json=sanitize_payload_for_audit(data or {}),
            at=utcnow(),
        )
    )
