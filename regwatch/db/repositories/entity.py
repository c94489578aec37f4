"""FinancialEntity repository — registry lookups and portfolio aggregates."""

from datetime import date
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.db.models import FinancialEntity
from regwatch.db.repositories.base import BaseRepository
from regwatch.schemas.enums import ComplianceStatus, EntityType, RiskLevel


class EntityRepository(BaseRepository[FinancialEntity]):
    """Entity queries. Every list query hides inactive rows unless asked."""

    def __init__(self):
        super().__init__(FinancialEntity)

    async def _filtered(
        self,
        db: AsyncSession,
        *criteria: Any,
        include_inactive: bool = False,
        order_by: Any = None,
    ) -> Sequence[FinancialEntity]:
        stmt = select(FinancialEntity).where(*criteria)
        if not include_inactive:
            stmt = stmt.where(FinancialEntity.is_active.is_(True))
        stmt = stmt.order_by(order_by if order_by is not None else FinancialEntity.name, FinancialEntity.id)
        result = await db.execute(stmt)
        return result.scalars().all()

    async def list_all(self, db: AsyncSession, include_inactive: bool = False):
        return await self._filtered(db, include_inactive=include_inactive)

    async def by_type(self, db: AsyncSession, entity_type: EntityType, include_inactive: bool = False):
        return await self._filtered(
            db, FinancialEntity.entity_type == entity_type, include_inactive=include_inactive
        )

    async def by_status(
        self, db: AsyncSession, status: ComplianceStatus, include_inactive: bool = False
    ):
        return await self._filtered(
            db, FinancialEntity.compliance_status == status, include_inactive=include_inactive
        )

    async def by_risk_level(self, db: AsyncSession, level: RiskLevel, include_inactive: bool = False):
        return await self._filtered(
            db, FinancialEntity.risk_level == level, include_inactive=include_inactive
        )

    async def search_by_name(self, db: AsyncSession, term: str, include_inactive: bool = False):
        """Case-insensitive substring match on the entity name."""
        escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return await self._filtered(
            db,
            func.lower(FinancialEntity.name).like(f"%{escaped}%", escape="\\"),
            include_inactive=include_inactive,
        )

    async def license_expiring_between(
        self,
        db: AsyncSession,
        start: date,
        end: date,
        include_inactive: bool = False,
    ):
        return await self._filtered(
            db,
            FinancialEntity.license_expiry.is_not(None),
            FinancialEntity.license_expiry >= start,
            FinancialEntity.license_expiry <= end,
            include_inactive=include_inactive,
            order_by=FinancialEntity.license_expiry,
        )

    async def review_before(self, db: AsyncSession, cutoff: date, include_inactive: bool = False):
        """Entities whose next review date is strictly before ``cutoff``."""
        return await self._filtered(
            db,
            FinancialEntity.next_review_date.is_not(None),
            FinancialEntity.next_review_date < cutoff,
            include_inactive=include_inactive,
            order_by=FinancialEntity.next_review_date,
        )

    async def review_on_or_before(
        self, db: AsyncSession, cutoff: date, include_inactive: bool = False
    ):
        return await self._filtered(
            db,
            FinancialEntity.next_review_date.is_not(None),
            FinancialEntity.next_review_date <= cutoff,
            include_inactive=include_inactive,
            order_by=FinancialEntity.next_review_date,
        )

    # ── Aggregates ────────────────────────────────────────────────────

    async def count_active(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count(FinancialEntity.id)).where(FinancialEntity.is_active.is_(True))
        )
        return result.scalar_one()

    async def count_active_by(self, db: AsyncSession, column_name: str) -> dict[str, int]:
        """Group active entities by one enum column (status, risk, type)."""
        column = getattr(FinancialEntity, column_name)
        result = await db.execute(
            select(column, func.count(FinancialEntity.id))
            .where(FinancialEntity.is_active.is_(True))
            .group_by(column)
        )
        return {str(value): count for value, count in result.all()}

    async def count_active_where(self, db: AsyncSession, *criteria: Any) -> int:
        result = await db.execute(
            select(func.count(FinancialEntity.id)).where(
                FinancialEntity.is_active.is_(True), *criteria
            )
        )
        return result.scalar_one()

    async def get_name(self, db: AsyncSession, id: int) -> Optional[str]:
        result = await db.execute(select(FinancialEntity.name).where(FinancialEntity.id == id))
        return result.scalar_one_or_none()


entity_repo = EntityRepository()
