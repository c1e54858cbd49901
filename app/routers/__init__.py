"""API routers for the GreenLens billing backend."""
from fastapi import APIRouter

from . import admin_gateways, checkout, health, pricing_plans, psp


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(checkout.router)
    api_router.include_router(psp.router)
    api_router.include_router(admin_gateways.router)
    api_router.include_router(pricing_plans.router)
    return api_router
