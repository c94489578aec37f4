"""
Audit log repository.

Append and read only. Appends are serialised per transaction with
``lock_chain`` so each entry links to the one committed before it.
"""

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.db.models import AuditEntry
from regwatch.schemas.enums import AuditAction

# Conflicts with itself, not with plain reads.
_CHAIN_LOCK = "LOCK TABLE audit_log IN SHARE ROW EXCLUSIVE MODE"


class AuditRepository:
    async def append(self, db: AsyncSession, entry: AuditEntry) -> AuditEntry:
        db.add(entry)
        await db.flush()
        return entry

    async def lock_chain(self, db: AsyncSession) -> None:
        """
        Hold the chain until commit.

        PostgreSQL only; on SQLite the writing transaction already holds the
        single database write lock.
        """
        if db.get_bind().dialect.name == "postgresql":
            await db.execute(text(_CHAIN_LOCK))

    async def last_hash(self, db: AsyncSession) -> Optional[str]:
        """Get the entry_hash of the most recent audit entry."""
        result = await db.execute(
            select(AuditEntry.entry_hash).order_by(AuditEntry.id.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, db: AsyncSession, id: int) -> Optional[AuditEntry]:
        result = await db.execute(select(AuditEntry).where(AuditEntry.id == id))
        return result.scalar_one_or_none()

    async def all_in_order(self, db: AsyncSession) -> Sequence[AuditEntry]:
        result = await db.execute(select(AuditEntry).order_by(AuditEntry.id))
        return result.scalars().all()

    async def for_entity(self, db: AsyncSession, entity_id: int) -> Sequence[AuditEntry]:
        result = await db.execute(
            select(AuditEntry).where(AuditEntry.entity_id == entity_id).order_by(AuditEntry.id)
        )
        return result.scalars().all()

    async def in_range(
        self, db: AsyncSession, start: datetime, end: datetime
    ) -> Sequence[AuditEntry]:
        result = await db.execute(
            select(AuditEntry)
            .where(AuditEntry.performed_at >= start, AuditEntry.performed_at <= end)
            .order_by(AuditEntry.id)
        )
        return result.scalars().all()

    async def by_action(self, db: AsyncSession, action: AuditAction) -> Sequence[AuditEntry]:
        result = await db.execute(
            select(AuditEntry).where(AuditEntry.action_type == action).order_by(AuditEntry.id)
        )
        return result.scalars().all()

    async def by_actor(self, db: AsyncSession, actor: str) -> Sequence[AuditEntry]:
        result = await db.execute(
            select(AuditEntry).where(AuditEntry.performed_by == actor).order_by(AuditEntry.id)
        )
        return result.scalars().all()


audit_repo = AuditRepository()
