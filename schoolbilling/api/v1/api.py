"""API routes for the FastAPI application."""

from schoolbilling.api.router import TrailingSlashRouter
from schoolbilling.api.v1.endpoints import (
    billing,
    health,
    subscription_plans,
    subscriptions,
    system_admin,
)

# Use our custom router that handles trailing slashes
api_router = TrailingSlashRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
api_router.include_router(subscriptions.router, prefix="/schools", tags=["subscriptions"])
api_router.include_router(
    subscription_plans.router, prefix="/subscription-plans", tags=["subscription-plans"]
)
api_router.include_router(
    system_admin.router,
    prefix="/system-admin/school-subscriptions",
    tags=["system-admin"],
)
