"""Dependencies that are used in the API endpoints."""

import uuid
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from schoolbilling import schemas
from schoolbilling.api.auth import get_requester
from schoolbilling.api.context import ApiContext
from schoolbilling.billing.checkout import CheckoutInitiator
from schoolbilling.billing.repository import SubscriptionRepository
from schoolbilling.billing.resolver import CurrentSubscriptionResolver
from schoolbilling.billing.webhook_processor import BillingWebhookProcessor
from schoolbilling.core.config import settings
from schoolbilling.core.exceptions import BillingConfigurationError, PermissionException
from schoolbilling.core.logging import logger
from schoolbilling.db.session import get_db
from schoolbilling.integrations.stripe_client import StripeClient, stripe_client

__all__ = [
    "get_checkout_initiator",
    "get_context",
    "get_db",
    "get_payment_gateway",
    "get_repository",
    "get_resolver",
    "get_webhook_processor",
    "require_school_admin",
    "require_system_admin",
]


async def get_context(
    request: Request,
    requester: Optional[schemas.Requester] = Depends(get_requester),
) -> ApiContext:
    """Create the API context for an authenticated request.

    Args:
    ----
        request (Request): The FastAPI request object.
        requester (Optional[schemas.Requester]): Identity from the bearer token.

    Returns:
    -------
        ApiContext: Requester, request id and contextual logger.

    Raises:
    ------
        HTTPException: 401 if no valid bearer token was provided.
    """
    if requester is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    base_logger = logger.with_context(
        request_id=request_id,
        requester_id=requester.id,
        requester_role=requester.role,
        auth_method=requester.auth_method,
        context_base="api",
    )
    if requester.school_id:
        base_logger = base_logger.with_context(requester_school_id=str(requester.school_id))

    return ApiContext(request_id=request_id, requester=requester, logger=base_logger)


async def require_school_admin(
    school_id: UUID,
    ctx: ApiContext = Depends(get_context),
) -> ApiContext:
    """Allow admins of the school in the path, and system admins."""
    if ctx.is_system_admin or ctx.requester.administers_school(school_id):
        return ctx

    ctx.logger.warning(f"Denied school admin access to school {school_id}")
    raise PermissionException("Forbidden: you do not administer this school")


async def require_system_admin(ctx: ApiContext = Depends(get_context)) -> ApiContext:
    """Allow system admins only."""
    if ctx.is_system_admin:
        return ctx

    ctx.logger.warning("Denied system admin access")
    raise PermissionException("Forbidden: system admin access required")


def get_payment_gateway() -> StripeClient:
    """The configured Stripe client."""
    if stripe_client is None:
        raise BillingConfigurationError("Billing is not enabled for this instance")
    return stripe_client


async def get_repository(db: AsyncSession = Depends(get_db)) -> SubscriptionRepository:
    """Subscription repository bound to the request's session."""
    return SubscriptionRepository(db)


async def get_webhook_processor(
    repository: SubscriptionRepository = Depends(get_repository),
    gateway: StripeClient = Depends(get_payment_gateway),
) -> BillingWebhookProcessor:
    """Webhook processor for one delivery."""
    return BillingWebhookProcessor(repository, gateway)


async def get_checkout_initiator(
    db: AsyncSession = Depends(get_db),
    gateway: StripeClient = Depends(get_payment_gateway),
    ctx: ApiContext = Depends(require_school_admin),
) -> CheckoutInitiator:
    """Checkout initiator for the requesting school admin."""
    return CheckoutInitiator(db, gateway, app_url=settings.app_url, log=ctx.logger)


async def get_resolver(
    repository: SubscriptionRepository = Depends(get_repository),
) -> CurrentSubscriptionResolver:
    """Current subscription resolver for the request."""
    return CurrentSubscriptionResolver(repository)
