"""CRUD operations for the SchoolSubscription model."""

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolbilling import schemas
from schoolbilling.crud._base_system import CRUDBaseSystem
from schoolbilling.db.unit_of_work import UnitOfWork
from schoolbilling.models.school_subscription import SchoolSubscription
from schoolbilling.models.subscription_plan import SubscriptionPlan
from schoolbilling.schemas.school_subscription import (
    ENTITLED_STATUSES,
    REPLACEABLE_STATUSES,
    SubscriptionStatus,
)


class CRUDSchoolSubscription(
    CRUDBaseSystem[
        SchoolSubscription,
        schemas.SchoolSubscriptionCreate,
        schemas.SchoolSubscriptionUpdate,
    ]
):
    """CRUD operations for SchoolSubscription model."""

    async def get_by_external_ref(
        self, db: AsyncSession, *, external_ref: str
    ) -> Optional[SchoolSubscription]:
        """Get a subscription by its gateway reference.

        Args:
            db: Database session
            external_ref: Gateway subscription id (or pi_/cs_ fallback)

        Returns:
            The subscription or None
        """
        query = select(SchoolSubscription).where(
            SchoolSubscription.external_gateway_ref == external_ref
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def cancel_replaceable(
        self,
        db: AsyncSession,
        *,
        school_id: UUID,
        ended_at: datetime,
        uow: Optional[UnitOfWork] = None,
    ) -> int:
        """Cancel every ACTIVE, TRIALING or PAST_DUE subscription of a school.

        The end date is never earlier than the row's period start, so a
        subscription started in the future still satisfies its check constraint.

        Args:
            db: Database session
            school_id: School ID
            ended_at: When the subscriptions stop
            uow: Unit of work for transaction control

        Returns:
            Number of subscriptions canceled
        """
        query = select(SchoolSubscription).where(
            and_(
                SchoolSubscription.school_id == school_id,
                SchoolSubscription.status.in_([s.value for s in REPLACEABLE_STATUSES]),
            )
        )
        result = await db.execute(query)
        subscriptions = list(result.scalars().all())

        for subscription in subscriptions:
            subscription.status = SubscriptionStatus.CANCELED.value
            subscription.end_date = max(ended_at, subscription.current_period_start)

        if uow is None:
            await db.commit()
        else:
            await uow.flush()
        return len(subscriptions)

    async def get_current(
        self, db: AsyncSession, *, school_id: UUID, at: datetime
    ) -> Optional[Tuple[SchoolSubscription, SubscriptionPlan]]:
        """Get the subscription that entitles a school to service at a given instant.

        Args:
            db: Database session
            school_id: School ID
            at: Instant to evaluate

        Returns:
            The most recently created entitled subscription with its plan, or None
        """
        query = (
            select(SchoolSubscription, SubscriptionPlan)
            .join(SubscriptionPlan, SubscriptionPlan.id == SchoolSubscription.plan_id)
            .where(
                and_(
                    SchoolSubscription.school_id == school_id,
                    SchoolSubscription.status.in_([s.value for s in ENTITLED_STATUSES]),
                    SchoolSubscription.current_period_start <= at,
                    or_(
                        SchoolSubscription.end_date.is_(None),
                        SchoolSubscription.end_date >= at,
                    ),
                )
            )
            .order_by(SchoolSubscription.created_at.desc())
            .limit(1)
        )
        result = await db.execute(query)
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]

    def _filtered(
        self,
        query,
        *,
        school_id: Optional[UUID] = None,
        plan_id: Optional[UUID] = None,
        status: Optional[SubscriptionStatus] = None,
    ):
        if school_id is not None:
            query = query.where(SchoolSubscription.school_id == school_id)
        if plan_id is not None:
            query = query.where(SchoolSubscription.plan_id == plan_id)
        if status is not None:
            query = query.where(SchoolSubscription.status == SubscriptionStatus(status).value)
        return query

    async def get_multi_with_plan(
        self,
        db: AsyncSession,
        *,
        school_id: Optional[UUID] = None,
        plan_id: Optional[UUID] = None,
        status: Optional[SubscriptionStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Tuple[SchoolSubscription, SubscriptionPlan]]:
        """List subscriptions with their plans, newest first."""
        query = select(SchoolSubscription, SubscriptionPlan).join(
            SubscriptionPlan, SubscriptionPlan.id == SchoolSubscription.plan_id
        )
        query = self._filtered(query, school_id=school_id, plan_id=plan_id, status=status)
        query = query.order_by(SchoolSubscription.created_at.desc()).offset(skip).limit(limit)
        result = await db.execute(query)
        return [(row[0], row[1]) for row in result.all()]

    async def count(
        self,
        db: AsyncSession,
        *,
        school_id: Optional[UUID] = None,
        plan_id: Optional[UUID] = None,
        status: Optional[SubscriptionStatus] = None,
    ) -> int:
        """Count subscriptions matching the same filters as get_multi_with_plan."""
        query = select(func.count()).select_from(SchoolSubscription)
        query = self._filtered(query, school_id=school_id, plan_id=plan_id, status=status)
        result = await db.execute(query)
        return result.scalar_one()

    async def get_with_plan(
        self, db: AsyncSession, *, id: UUID
    ) -> Optional[Tuple[SchoolSubscription, SubscriptionPlan]]:
        """Get one subscription together with its plan."""
        query = (
            select(SchoolSubscription, SubscriptionPlan)
            .join(SubscriptionPlan, SubscriptionPlan.id == SchoolSubscription.plan_id)
            .where(SchoolSubscription.id == id)
        )
        result = await db.execute(query)
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]


school_subscription = CRUDSchoolSubscription(SchoolSubscription)
