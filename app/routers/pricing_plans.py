"""Admin CRUD for pricing plans."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.pricing_plan import PricingPlan
from app.schemas.pricing_plan import PricingPlanCreate, PricingPlanRead, PricingPlanUpdate
from app.services import pricing_plans as plan_service

router = APIRouter(prefix="/api/admin/pricing-plans", tags=["pricing-plans"])


@router.get("", response_model=list[PricingPlanRead])
def list_plans(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[PricingPlan]:
    return plan_service.list_plans(db, include_inactive=include_inactive)


@router.post("", response_model=PricingPlanRead, status_code=status.HTTP_201_CREATED)
def create_plan(
    payload: PricingPlanCreate,
    db: Session = Depends(get_db),
    actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
) -> PricingPlan:
    return plan_service.create_plan(db, payload, actor=actor_id)


@router.get("/{plan_id}", response_model=PricingPlanRead)
def get_plan(plan_id: str, db: Session = Depends(get_db)) -> PricingPlan:
    return plan_service.get_plan(db, plan_id)


@router.patch("/{plan_id}", response_model=PricingPlanRead)
def update_plan(
    plan_id: str,
    payload: PricingPlanUpdate,
    db: Session = Depends(get_db),
    actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
) -> PricingPlan:
    return plan_service.update_plan(db, plan_id, payload, actor=actor_id)


@router.delete("/{plan_id}", response_model=PricingPlanRead)
def deactivate_plan(
    plan_id: str,
    db: Session = Depends(get_db),
    actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
) -> PricingPlan:
    """Soft delete: the plan is deactivated, not removed."""

    return plan_service.deactivate_plan(db, plan_id, actor=actor_id)


__all__ = ["router"]
