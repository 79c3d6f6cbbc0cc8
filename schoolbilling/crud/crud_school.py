"""CRUD operations for the School model.

Schools are owned elsewhere; billing reads them and records the gateway
customer exactly once.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from schoolbilling.crud._base_system import CRUDBaseSystem
from schoolbilling.db.unit_of_work import UnitOfWork
from schoolbilling.models.school import School


class CRUDSchool(CRUDBaseSystem[School, BaseModel, BaseModel]):
    """CRUD operations for School model."""

    async def get_for_update(self, db: AsyncSession, *, school_id: UUID) -> Optional[School]:
        """Get a school and lock its row until the transaction ends.

        Concurrent checkouts for the same school queue up behind this lock.
        SQLite has no row locks and ignores the clause.

        Args:
            db: Database session
            school_id: School ID

        Returns:
            The locked school or None
        """
        query = (
            select(School)
            .where(School.id == school_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def set_gateway_customer_ref_if_missing(
        self,
        db: AsyncSession,
        *,
        school_id: UUID,
        customer_ref: str,
        uow: Optional[UnitOfWork] = None,
    ) -> bool:
        """Record the gateway customer for a school unless one is already set.

        Args:
            db: Database session
            school_id: School ID
            customer_ref: Gateway customer id
            uow: Unit of work for transaction control

        Returns:
            True if this call set the reference, False if one was already stored
        """
        stmt = (
            update(School)
            .where(School.id == school_id, School.payment_gateway_customer_ref.is_(None))
            .values(payment_gateway_customer_ref=customer_ref)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)

        if uow is None:
            await db.commit()

        return result.rowcount == 1

    async def get_gateway_customer_ref(self, db: AsyncSession, *, school_id: UUID) -> Optional[str]:
        """Read the stored gateway customer reference, bypassing the identity map."""
        query = select(School.payment_gateway_customer_ref).where(School.id == school_id)
        result = await db.execute(query)
        return result.scalar_one_or_none()


school = CRUDSchool(School)
