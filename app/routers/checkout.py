"""Checkout endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.checkout import CheckoutRead, CheckoutRequest
from app.services import checkout as checkout_service
from app.utils.errors import PaymentError, PaymentErrorCode

router = APIRouter(prefix="/api", tags=["checkout"])


@router.post("/checkout", response_model=CheckoutRead, status_code=status.HTTP_201_CREATED)
def create_checkout(payload: CheckoutRequest, db: Session = Depends(get_db)) -> CheckoutRead:
    """Open a checkout with the best gateway for the plan's currency."""

    try:
        return checkout_service.create_checkout(db, payload)
    except PaymentError as exc:
        if exc.code != PaymentErrorCode.PROVIDER_ERROR:
            raise
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=exc.to_response("Checkout Failed"),
        ) from exc
