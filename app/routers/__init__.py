"""API routers for the subscription backend."""
from fastapi import APIRouter

from . import admin, health, payments, users, webhooks


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(users.router)
    api_router.include_router(payments.router)
    api_router.include_router(webhooks.router)
    api_router.include_router(admin.router)
    return api_router
