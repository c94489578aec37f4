"""
Generic async repository.

Repositories own query shapes only. They never commit: the unit of work
that opened the session decides.
"""

from typing import Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.db.engine import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Generic async read/add operations."""

    def __init__(self, model: Type[ModelT]):
        self.model = model

    async def add(self, db: AsyncSession, obj: ModelT) -> ModelT:
        """Stage a new record and flush so it gets its id."""
        db.add(obj)
        await db.flush()
        await db.refresh(obj)
        return obj

    async def get_by_id(
        self,
        db: AsyncSession,
        id: int,
        *,
        for_update: bool = False,
    ) -> Optional[ModelT]:
        """
        Get a single record by ID.

        ``for_update`` takes a row lock where the backend supports it and
        refreshes any copy already in the identity map.
        """
        stmt = select(self.model).where(self.model.id == id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        db: AsyncSession,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "id",
        descending: bool = False,
    ) -> Sequence[ModelT]:
        """List records with pagination."""
        col = getattr(self.model, order_by, self.model.id)
        stmt = select(self.model).order_by(
            col.desc() if descending else col.asc()
        ).offset(offset).limit(limit)
        result = await db.execute(stmt)
        return result.scalars().all()

    async def count(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count()).select_from(self.model)
        )
        return result.scalar_one()
