"""API routes package."""

from fastapi import APIRouter

from wallet.api.routes.health import router as health_router
from wallet.api.routes.transactions import router as transactions_router
from wallet.api.routes.users import router as users_router

# Create API router with all sub-routers
api_router = APIRouter()

# Register all route modules
api_router.include_router(health_router)
api_router.include_router(transactions_router)
api_router.include_router(users_router)


__all__ = [
    "api_router",
    "health_router",
    "transactions_router",
    "users_router",
]
