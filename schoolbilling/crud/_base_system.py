"""Shared CRUD operations for billing tables."""

from typing import Any, Generic, Optional, Type, TypeVar, Union
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolbilling.db.unit_of_work import UnitOfWork
from schoolbilling.models._base import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class CRUDBaseSystem(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """Reads and writes rows of a single model.

    Nothing here checks who is asking; the API guards do that. A write commits
    on its own unless a UnitOfWork is passed, in which case it only flushes.
    """

    def __init__(self, model: Type[ModelType]):
        """Bind the CRUD object to its model class."""
        self.model = model

    async def get(self, db: AsyncSession, id: UUID) -> Optional[ModelType]:
        """Return the row with this primary key, or None."""
        result = await db.execute(select(self.model).where(self.model.id == id))
        return result.unique().scalar_one_or_none()

    async def _persist(self, db: AsyncSession, db_obj: ModelType, uow: Optional[UnitOfWork]):
        db.add(db_obj)
        if uow is None:
            await db.commit()
        else:
            await uow.flush()

    async def create(
        self, db: AsyncSession, *, obj_in: CreateSchemaType, uow: Optional[UnitOfWork] = None
    ) -> ModelType:
        """Insert a row built from ``obj_in``.

        Args:
        ----
            db (AsyncSession): The database session.
            obj_in (CreateSchemaType): Schema or plain dict with the column values.
            uow (UnitOfWork, optional): Owning transaction. Without one the insert
                is committed immediately.

        Returns:
        -------
            ModelType: The new row, with its generated id.

        """
        if not isinstance(obj_in, dict):
            obj_in = obj_in.model_dump()
        db_obj = self.model(**obj_in)
        await self._persist(db, db_obj, uow)
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: Union[UpdateSchemaType, dict[str, Any]],
        uow: Optional[UnitOfWork] = None,
    ) -> ModelType:
        """Copy the set fields of ``obj_in`` onto ``db_obj``; unknown keys are skipped."""
        if not isinstance(obj_in, dict):
            obj_in = obj_in.model_dump(exclude_unset=True)

        for key, value in obj_in.items():
            if hasattr(db_obj, key):
                setattr(db_obj, key, value)
        await self._persist(db, db_obj, uow)
        return db_obj
