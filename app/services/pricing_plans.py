"""Pricing plan administration."""
from __future__ import annotations

import logging

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.pricing_plan import PricingPlan
from app.schemas.pricing_plan import PricingPlanCreate, PricingPlanUpdate
from app.utils.audit import log_audit
from app.utils.errors import error_response

logger = logging.getLogger(__name__)


def _plan_not_found(plan_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error_response("PLAN_NOT_FOUND", f"Pricing plan '{plan_id}' not found."),
    )


def list_plans(db: Session, *, include_inactive: bool = False) -> list[PricingPlan]:
    stmt = select(PricingPlan).order_by(PricingPlan.display_order, PricingPlan.id)
    if not include_inactive:
        stmt = stmt.where(PricingPlan.is_active.is_(True))
    return list(db.scalars(stmt).all())


def get_plan(db: Session, plan_id: str) -> PricingPlan:
    plan = db.scalars(select(PricingPlan).where(PricingPlan.plan_id == plan_id)).one_or_none()
    if plan is None:
        raise _plan_not_found(plan_id)
    return plan


def get_active_plan(db: Session, plan_id: str) -> PricingPlan:
    plan = get_plan(db, plan_id)
    if not plan.is_active:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_response("PLAN_INACTIVE", f"Pricing plan '{plan_id}' is not available."),
        )
    return plan


def create_plan(db: Session, payload: PricingPlanCreate, *, actor: str | None = None) -> PricingPlan:
    plan = PricingPlan(**payload.model_dump(), last_updated_by=actor)
    try:
        with db.begin_nested():
            db.add(plan)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_response("PLAN_EXISTS", f"Pricing plan '{payload.plan_id}' already exists."),
        ) from exc

    log_audit(
        db,
        actor=actor or "admin",
        action="PRICING_PLAN_CREATED",
        entity="PricingPlan",
        entity_id=plan.id,
        data=payload.model_dump(mode="json"),
    )
    db.commit()
    db.refresh(plan)
    logger.info("Pricing plan created", extra={"plan_id": plan.plan_id, "price": str(plan.price)})
    return plan


def update_plan(db: Session, plan_id: str, payload: PricingPlanUpdate, *, actor: str | None = None) -> PricingPlan:
    plan = get_plan(db, plan_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is not None:
            setattr(plan, field, value)
    if actor:
        plan.last_updated_by = actor

    log_audit(
        db,
        actor=actor or "admin",
        action="PRICING_PLAN_UPDATED",
        entity="PricingPlan",
        entity_id=plan.id,
        data=payload.model_dump(mode="json", exclude_unset=True),
    )
    db.commit()
    db.refresh(plan)
    logger.info("Pricing plan updated", extra={"plan_id": plan.plan_id, "fields": sorted(changes)})
    return plan


def deactivate_plan(db: Session, plan_id: str, *, actor: str | None = None) -> PricingPlan:
    """Soft delete: the plan stays for history but checkout refuses it."""

    plan = get_plan(db, plan_id)
    plan.is_active = False
    if actor:
        plan.last_updated_by = actor
    log_audit(
        db,
        actor=actor or "admin",
        action="PRICING_PLAN_DEACTIVATED",
        entity="PricingPlan",
        entity_id=plan.id,
        data={"plan_id": plan.plan_id},
    )
    db.commit()
    db.refresh(plan)
    logger.info("Pricing plan deactivated", extra={"plan_id": plan.plan_id})
    return plan


__all__ = [
    "create_plan",
    "deactivate_plan",
    "get_active_plan",
    "get_plan",
    "list_plans",
    "update_plan",
]
