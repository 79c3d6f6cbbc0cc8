"""Persistence for school subscriptions.

Wraps the crud layer with the transaction boundaries billing needs and turns
SQLAlchemy errors into billing errors:

- IntegrityError becomes ConflictError (uniqueness or check constraint broken)
- lost connections and timeouts become TransientStoreError (caller retries)
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolbilling import crud, schemas
from schoolbilling.core.exceptions import ConflictError, NotFoundException, TransientStoreError
from schoolbilling.core.logging import logger
from schoolbilling.db.unit_of_work import UnitOfWork
from schoolbilling.models import SchoolSubscription, SubscriptionPlan

_TRANSIENT_ERRORS = (OperationalError, InterfaceError, ConnectionError, TimeoutError)


class SubscriptionRepository:
    """Subscription store bound to one request's database session."""

    def __init__(self, db: AsyncSession):
        """Initialize the repository."""
        self.db = db

    @asynccontextmanager
    async def _store_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except IntegrityError as e:
            await self._rollback_quietly()
            raise ConflictError(f"{operation} violates a subscription constraint") from e
        except _TRANSIENT_ERRORS as e:
            await self._rollback_quietly()
            raise TransientStoreError(f"{operation} failed: database unavailable") from e
        except DBAPIError as e:
            await self._rollback_quietly()
            if e.connection_invalidated:
                raise TransientStoreError(f"{operation} failed: connection lost") from e
            raise

    async def _rollback_quietly(self) -> None:
        try:
            await self.db.rollback()
        except Exception as e:
            # Connection already gone; the pool discards it
            logger.warning(f"Rollback after store failure did not complete: {e}")

    async def get_by_external_ref(self, external_ref: str) -> Optional[SchoolSubscription]:
        """Find the subscription carrying a gateway reference."""
        async with self._store_errors("Lookup by gateway reference"):
            return await crud.school_subscription.get_by_external_ref(
                self.db, external_ref=external_ref
            )

    async def get_plan(self, plan_id: UUID) -> Optional[SubscriptionPlan]:
        """Get a plan regardless of whether it is still offered."""
        async with self._store_errors("Plan lookup"):
            return await crud.subscription_plan.get(self.db, plan_id)

    async def deactivate_active_for(self, school_id: UUID, ended_at: datetime) -> int:
        """Cancel the school's ACTIVE, TRIALING and PAST_DUE subscriptions.

        Returns:
            Number of subscriptions canceled
        """
        async with self._store_errors("Deactivation"):
            return await crud.school_subscription.cancel_replaceable(
                self.db, school_id=school_id, ended_at=ended_at
            )

    async def create(self, obj_in: schemas.SchoolSubscriptionCreate) -> SchoolSubscription:
        """Insert a subscription on its own."""
        async with self._store_errors("Subscription insert"):
            return await crud.school_subscription.create(self.db, obj_in=obj_in)

    async def replace_active(
        self,
        school_id: UUID,
        obj_in: schemas.SchoolSubscriptionCreate,
        ended_at: datetime,
        customer_ref: Optional[str] = None,
    ) -> SchoolSubscription:
        """Supersede a school's current subscriptions with a new one, atomically.

        The school row is locked first so two checkouts for the same school
        cannot interleave. Either every step commits or none does.

        Args:
            school_id: School ID
            obj_in: The new subscription
            ended_at: End date for the superseded subscriptions
            customer_ref: Gateway customer to record if the school has none yet

        Returns:
            The new subscription

        Raises:
            NotFoundException: If the school does not exist
            ConflictError: If a constraint is violated (e.g. duplicate gateway reference)
            TransientStoreError: If the database is unavailable
        """
        async with self._store_errors("Subscription replacement"):
            async with UnitOfWork(self.db) as uow:
                school = await crud.school.get_for_update(self.db, school_id=school_id)
                if school is None:
                    raise NotFoundException("School not found.")

                await crud.school_subscription.cancel_replaceable(
                    self.db, school_id=school_id, ended_at=ended_at, uow=uow
                )
                subscription = await crud.school_subscription.create(
                    self.db, obj_in=obj_in, uow=uow
                )

                if customer_ref and school.payment_gateway_customer_ref is None:
                    await crud.school.set_gateway_customer_ref_if_missing(
                        self.db, school_id=school_id, customer_ref=customer_ref, uow=uow
                    )

                await uow.commit()
                return subscription

    async def update_by_external_ref(
        self,
        external_ref: str,
        patch: Union[schemas.SchoolSubscriptionUpdate, dict],
    ) -> Optional[SchoolSubscription]:
        """Apply a partial update to the subscription carrying a gateway reference.

        Returns:
            The updated subscription, or None if no row carries the reference
        """
        async with self._store_errors("Subscription update"):
            db_obj = await crud.school_subscription.get_by_external_ref(
                self.db, external_ref=external_ref
            )
            if db_obj is None:
                return None
            return await crud.school_subscription.update(self.db, db_obj=db_obj, obj_in=patch)

    async def find_current(
        self, school_id: UUID, at: datetime
    ) -> Optional[Tuple[SchoolSubscription, SubscriptionPlan]]:
        """The entitled subscription of a school at an instant, with its plan."""
        async with self._store_errors("Current subscription lookup"):
            return await crud.school_subscription.get_current(
                self.db, school_id=school_id, at=at
            )

    async def get_with_plan(
        self, subscription_id: UUID
    ) -> Optional[Tuple[SchoolSubscription, SubscriptionPlan]]:
        """One subscription with its plan."""
        async with self._store_errors("Subscription lookup"):
            return await crud.school_subscription.get_with_plan(self.db, id=subscription_id)

    async def list(
        self,
        *,
        school_id: Optional[UUID] = None,
        plan_id: Optional[UUID] = None,
        status: Optional[schemas.SubscriptionStatus] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Tuple[SchoolSubscription, SubscriptionPlan]]:
        """Subscriptions with their plans, newest first."""
        async with self._store_errors("Subscription listing"):
            return await crud.school_subscription.get_multi_with_plan(
                self.db,
                school_id=school_id,
                plan_id=plan_id,
                status=status,
                skip=skip,
                limit=limit,
            )

    async def count(
        self,
        *,
        school_id: Optional[UUID] = None,
        plan_id: Optional[UUID] = None,
        status: Optional[schemas.SubscriptionStatus] = None,
    ) -> int:
        """Number of subscriptions matching the listing filters."""
        async with self._store_errors("Subscription count"):
            return await crud.school_subscription.count(
                self.db, school_id=school_id, plan_id=plan_id, status=status
            )
