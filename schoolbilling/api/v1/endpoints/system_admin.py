"""Read-only school subscription endpoints for system admins.

Subscription status and periods are owned by the webhook processor, so there
is deliberately no write endpoint here.
"""

import math
from typing import Optional
from uuid import UUID

from fastapi import Depends, Query

from schoolbilling import schemas
from schoolbilling.api import deps
from schoolbilling.api.context import ApiContext
from schoolbilling.api.router import TrailingSlashRouter
from schoolbilling.billing.repository import SubscriptionRepository
from schoolbilling.core.exceptions import NotFoundException
from schoolbilling.models import SchoolSubscription, SubscriptionPlan

router = TrailingSlashRouter()


def _with_plan(
    subscription: SchoolSubscription, plan: SubscriptionPlan
) -> schemas.SchoolSubscriptionWithPlan:
    return schemas.SchoolSubscriptionWithPlan(
        **schemas.SchoolSubscription.model_validate(subscription).model_dump(),
        plan=schemas.SubscriptionPlan.model_validate(plan),
    )


@router.get("", response_model=schemas.SchoolSubscriptionPage)
async def list_school_subscriptions(
    school_id: Optional[UUID] = Query(None),
    plan_id: Optional[UUID] = Query(None),
    status: Optional[schemas.SubscriptionStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: ApiContext = Depends(deps.require_system_admin),
    repository: SubscriptionRepository = Depends(deps.get_repository),
) -> schemas.SchoolSubscriptionPage:
    """List school subscriptions, newest first.

    Args:
        school_id: Only subscriptions of this school
        plan_id: Only subscriptions to this plan
        status: Only subscriptions in this status
        page: 1-based page number
        limit: Page size
        ctx: API context of a system admin
        repository: Subscription repository

    Returns:
        One page of subscriptions with their plans, and page metadata
    """
    rows = await repository.list(
        school_id=school_id,
        plan_id=plan_id,
        status=status,
        skip=(page - 1) * limit,
        limit=limit,
    )
    total_count = await repository.count(school_id=school_id, plan_id=plan_id, status=status)

    return schemas.SchoolSubscriptionPage(
        data=[_with_plan(subscription, plan) for subscription, plan in rows],
        pagination=schemas.Pagination(
            page=page,
            limit=limit,
            total_count=total_count,
            total_pages=math.ceil(total_count / limit),
        ),
    )


@router.get("/{subscription_id}", response_model=schemas.SchoolSubscriptionWithPlan)
async def get_school_subscription(
    subscription_id: UUID,
    ctx: ApiContext = Depends(deps.require_system_admin),
    repository: SubscriptionRepository = Depends(deps.get_repository),
) -> schemas.SchoolSubscriptionWithPlan:
    """Get one school subscription with its plan."""
    found = await repository.get_with_plan(subscription_id)
    if found is None:
        raise NotFoundException("School subscription not found")
    return _with_plan(*found)
