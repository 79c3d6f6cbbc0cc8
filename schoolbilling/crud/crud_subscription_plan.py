"""CRUD operations for the SubscriptionPlan model."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolbilling import schemas
from schoolbilling.crud._base_system import CRUDBaseSystem
from schoolbilling.models.subscription_plan import SubscriptionPlan


class CRUDSubscriptionPlan(
    CRUDBaseSystem[SubscriptionPlan, schemas.SubscriptionPlanCreate, schemas.SubscriptionPlanCreate]
):
    """CRUD operations for SubscriptionPlan model."""

    async def get_active(self, db: AsyncSession, *, plan_id: UUID) -> Optional[SubscriptionPlan]:
        """Get a plan that can still be subscribed to.

        Args:
            db: Database session
            plan_id: Plan ID

        Returns:
            The plan, or None when it is missing or inactive
        """
        query = select(SubscriptionPlan).where(
            SubscriptionPlan.id == plan_id, SubscriptionPlan.is_active.is_(True)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_catalog(
        self, db: AsyncSession, *, include_inactive: bool = False
    ) -> List[SubscriptionPlan]:
        """List plans ordered by price, cheapest first."""
        query = select(SubscriptionPlan).order_by(
            SubscriptionPlan.price.asc(), SubscriptionPlan.name.asc()
        )
        if not include_inactive:
            query = query.where(SubscriptionPlan.is_active.is_(True))
        result = await db.execute(query)
        return list(result.scalars().all())


subscription_plan = CRUDSubscriptionPlan(SubscriptionPlan)
