"""
AlertNotification repository.

Rule-generated alerts go through ``insert_if_absent``: an
``INSERT ... ON CONFLICT DO NOTHING`` against the partial unique index on
``dedup_key``. Two concurrent rule runs can both decide an alert is
missing; only one row survives, and the loser sees ``None``.
"""

from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import case, false, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.db.models import AlertNotification
from regwatch.db.repositories.base import BaseRepository
from regwatch.errors import StorageError
from regwatch.schemas.enums import AlertPriority, AlertType

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

_OPEN = AlertNotification.resolved.is_(False)


class AlertRepository(BaseRepository[AlertNotification]):
    def __init__(self):
        super().__init__(AlertNotification)

    async def insert_if_absent(self, db: AsyncSession, values: dict[str, Any]) -> Optional[int]:
        """
        Insert unless an unresolved alert already holds ``values["dedup_key"]``.

        Returns the new alert id, or None when the key is taken.
        """
        dialect = db.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise StorageError(
                f"Deduplicated alert insert is not supported on {dialect}",
                details={"dialect": dialect},
            )

        stmt = (
            insert(AlertNotification)
            .values(**values)
            .on_conflict_do_nothing(
                index_elements=[AlertNotification.dedup_key],
                index_where=AlertNotification.resolved == false(),
            )
            .returning(AlertNotification.id)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def open_exists(
        self,
        db: AsyncSession,
        alert_type: AlertType,
        *,
        entity_id: Optional[int] = None,
        violation_id: Optional[int] = None,
        created_since: Optional[datetime] = None,
    ) -> bool:
        stmt = select(AlertNotification.id).where(
            _OPEN, AlertNotification.alert_type == alert_type
        )
        if entity_id is not None:
            stmt = stmt.where(AlertNotification.entity_id == entity_id)
        if violation_id is not None:
            stmt = stmt.where(AlertNotification.violation_id == violation_id)
        if created_since is not None:
            stmt = stmt.where(AlertNotification.created_at >= created_since)
        result = await db.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def for_entity(
        self,
        db: AsyncSession,
        entity_id: int,
        include_resolved: bool = True,
    ) -> Sequence[AlertNotification]:
        stmt = select(AlertNotification).where(AlertNotification.entity_id == entity_id)
        if not include_resolved:
            stmt = stmt.where(_OPEN)
        stmt = stmt.order_by(AlertNotification.created_at.desc(), AlertNotification.id.desc())
        result = await db.execute(stmt)
        return result.scalars().all()

    async def count_unacknowledged_open(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count(AlertNotification.id)).where(
                _OPEN, AlertNotification.acknowledged.is_(False)
            )
        )
        return result.scalar_one()

    async def count_open(self, db: AsyncSession) -> int:
        result = await db.execute(select(func.count(AlertNotification.id)).where(_OPEN))
        return result.scalar_one()

    async def high_priority_open(self, db: AsyncSession) -> Sequence[AlertNotification]:
        """Unresolved HIGH / URGENT alerts: URGENT first, newest first within a priority."""
        urgent_first = case((AlertNotification.priority == AlertPriority.URGENT, 0), else_=1)
        result = await db.execute(
            select(AlertNotification)
            .where(
                _OPEN,
                AlertNotification.priority.in_((AlertPriority.HIGH, AlertPriority.URGENT)),
            )
            .order_by(
                urgent_first,
                AlertNotification.created_at.desc(),
                AlertNotification.id.desc(),
            )
        )
        return result.scalars().all()

    async def open_priority_breakdown(self, db: AsyncSession) -> dict[str, tuple[int, int]]:
        unacked = case((AlertNotification.acknowledged.is_(False), 1), else_=0)
        result = await db.execute(
            select(
                AlertNotification.priority,
                func.count(AlertNotification.id),
                func.sum(unacked),
            )
            .where(_OPEN)
            .group_by(AlertNotification.priority)
        )
        return {
            str(priority): (count, int(unacknowledged or 0))
            for priority, count, unacknowledged in result.all()
        }


alert_repo = AlertRepository()
