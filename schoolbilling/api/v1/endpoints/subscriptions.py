"""School subscription endpoints for school admins."""

from uuid import UUID

from fastapi import Depends

from schoolbilling import schemas
from schoolbilling.api import deps
from schoolbilling.api.context import ApiContext
from schoolbilling.api.router import TrailingSlashRouter
from schoolbilling.billing.checkout import CheckoutInitiator
from schoolbilling.billing.resolver import CurrentSubscriptionResolver
from schoolbilling.core.exceptions import NotFoundException

router = TrailingSlashRouter()


@router.post(
    "/{school_id}/subscriptions/subscribe", response_model=schemas.CheckoutSessionResponse
)
async def subscribe(
    school_id: UUID,
    request: schemas.SubscribeRequest,
    ctx: ApiContext = Depends(deps.require_school_admin),
    initiator: CheckoutInitiator = Depends(deps.get_checkout_initiator),
) -> schemas.CheckoutSessionResponse:
    """Start a hosted checkout for a subscription plan.

    No subscription is recorded here; it is created when the gateway confirms
    the payment through the webhook.

    Args:
        school_id: School to subscribe
        request: The plan to subscribe to
        ctx: API context of a school admin
        initiator: Checkout initiator

    Returns:
        The checkout session id and the URL to redirect the admin to
    """
    ctx.logger.info(f"Starting checkout for school {school_id}, plan {request.plan_id}")
    return await initiator.start_checkout(school_id, request.plan_id, ctx.requester)


@router.get("/{school_id}/subscriptions/current", response_model=schemas.CurrentSubscription)
async def get_current_subscription(
    school_id: UUID,
    ctx: ApiContext = Depends(deps.require_school_admin),
    resolver: CurrentSubscriptionResolver = Depends(deps.get_resolver),
) -> schemas.CurrentSubscription:
    """Get the subscription that currently entitles the school to service."""
    current = await resolver.find_current(school_id)
    if current is None:
        raise NotFoundException("No active or trialing subscription found for this school.")
    return current
