"""Process-wide runtime flags shared across modules."""
from __future__ import annotations

from datetime import datetime

from app.utils.time import utcnow

_scheduler_active = False
_last_sweep_at: datetime | None = None


def set_scheduler_active(active: bool) -> None:
    global _scheduler_active
    _scheduler_active = active


def is_scheduler_active() -> bool:
    return _scheduler_active


def mark_sweep_finished(at: datetime | None = None) -> None:
    global _last_sweep_at
    _last_sweep_at = at or utcnow()


def get_last_sweep() -> datetime | None:
    return _last_sweep_at
