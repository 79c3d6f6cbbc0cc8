"""Unit of work pattern for multi-statement transactions."""

from types import TracebackType
from typing import Optional, Type

from sqlalchemy.ext.asyncio import AsyncSession


class UnitOfWork:
    """Groups several writes into one transaction.

    Anything not explicitly committed inside the ``async with`` block is rolled
    back on exit, including when the block raises.

    Example:
    -------
        async with UnitOfWork(db) as uow:
            await crud.school_subscription.cancel_replaceable(uow.session, ..., uow=uow)
            await crud.school_subscription.create(uow.session, obj_in=..., uow=uow)
            await uow.commit()

    """

    def __init__(self, session: AsyncSession):
        """Initialize the unit of work with an open session."""
        self.session = session
        self._committed = False

    async def __aenter__(self) -> "UnitOfWork":
        """Enter the unit of work."""
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        """Roll back whatever was not committed."""
        if exc_type is not None or not self._committed:
            await self.rollback()

    async def commit(self) -> None:
        """Commit the transaction."""
        await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        """Roll back the transaction."""
        await self.session.rollback()

    async def flush(self) -> None:
        """Flush pending changes without committing."""
        await self.session.flush()
