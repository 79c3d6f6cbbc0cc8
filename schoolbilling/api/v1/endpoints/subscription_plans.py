"""Subscription plan catalog endpoint."""

from typing import List

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from schoolbilling import crud, schemas
from schoolbilling.api import deps
from schoolbilling.api.context import ApiContext
from schoolbilling.api.router import TrailingSlashRouter

router = TrailingSlashRouter()


@router.get("", response_model=List[schemas.SubscriptionPlan])
async def list_subscription_plans(
    db: AsyncSession = Depends(deps.get_db),
    ctx: ApiContext = Depends(deps.get_context),
) -> List[schemas.SubscriptionPlan]:
    """List plans, cheapest first.

    System admins also see inactive plans.
    """
    plans = await crud.subscription_plan.get_catalog(db, include_inactive=ctx.is_system_admin)
    return [schemas.SubscriptionPlan.model_validate(plan) for plan in plans]
