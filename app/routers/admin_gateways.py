"""Admin endpoints for the payment gateway registry."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.gateway import PaymentGateway
from app.models.gateway_transaction import GatewayTransaction
from app.schemas.gateway import ConnectionTestResult, GatewayRead, GatewayStatsRead, GatewayUpdate
from app.schemas.transaction import TransactionRead
from app.services import gateways as gateway_service
from app.services import ledger
from app.utils.errors import error_response

router = APIRouter(prefix="/api/admin/pricing", tags=["admin-gateways"])


@router.get("", response_model=list[GatewayRead])
def list_gateways(db: Session = Depends(get_db)) -> list[PaymentGateway]:
    """All gateways, primary first."""

    return gateway_service.list_gateways(db)


@router.get("/transactions", response_model=list[TransactionRead])
def list_transactions(
    gateway_id: int | None = Query(default=None, gt=0),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[GatewayTransaction]:
    return ledger.get_transactions(db, gateway_id=gateway_id, limit=limit)


@router.patch("/{provider}", response_model=GatewayRead)
def update_gateway(
    provider: str,
    payload: GatewayUpdate,
    db: Session = Depends(get_db),
    actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
) -> PaymentGateway:
    """Partially update a gateway; promoting one to primary demotes the others."""

    return gateway_service.update_gateway(db, provider, payload, actor_id=actor_id)


@router.post("/{provider}/refresh", response_model=GatewayRead)
def refresh_gateway(provider: str, db: Session = Depends(get_db)) -> PaymentGateway:
    return gateway_service.refresh_gateway_status(db, provider)


@router.post("/{provider}/test", response_model=ConnectionTestResult)
def check_gateway_connection(provider: str, db: Session = Depends(get_db)) -> ConnectionTestResult:
    return gateway_service.test_connection(db, provider)


@router.get("/{provider}/stats", response_model=GatewayStatsRead)
def gateway_stats(provider: str, db: Session = Depends(get_db)) -> dict:
    stats = ledger.get_gateway_stats(db, provider)
    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response("GATEWAY_NOT_FOUND", f"Unknown payment gateway: {provider}"),
        )
    return stats


__all__ = ["router"]
