"""Background cron jobs for maintenance tasks."""
from __future__ import annotations

import logging

from app.core.runtime_state import mark_sweep_finished
from app.db import session_scope
from app.services.subscriptions import expire_due_subscriptions

logger = logging.getLogger(__name__)


def expire_subscriptions_once() -> int:
    """Expire active subscriptions whose paid period has elapsed."""

    with session_scope() as db:
        expired = expire_due_subscriptions(db)
    mark_sweep_finished()
    logger.info("Subscription sweep finished", extra={"expired": expired})
    return expired


__all__ = ["expire_subscriptions_once"]
