"""ComplianceViolation repository."""

from datetime import date
from decimal import Decimal
from typing import Sequence

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.db.models import ComplianceViolation, FinancialEntity
from regwatch.db.repositories.base import BaseRepository
from regwatch.schemas.enums import ViolationSeverity, ViolationStatus

ACTIVE_STATUSES = (
    ViolationStatus.UNDER_REVIEW,
    ViolationStatus.CONFIRMED,
    ViolationStatus.APPEALED,
)
OVERDUE_CANDIDATE_STATUSES = (ViolationStatus.UNDER_REVIEW, ViolationStatus.CONFIRMED)

_UNPAID = and_(
    ComplianceViolation.fine_paid.is_(False),
    ComplianceViolation.fine_amount > 0,
)


class ViolationRepository(BaseRepository[ComplianceViolation]):
    def __init__(self):
        super().__init__(ComplianceViolation)

    async def for_entity(self, db: AsyncSession, entity_id: int) -> Sequence[ComplianceViolation]:
        result = await db.execute(
            select(ComplianceViolation)
            .where(ComplianceViolation.entity_id == entity_id)
            .order_by(ComplianceViolation.violation_date.desc(), ComplianceViolation.id.desc())
        )
        return result.scalars().all()

    async def active(self, db: AsyncSession) -> Sequence[ComplianceViolation]:
        result = await db.execute(
            select(ComplianceViolation)
            .where(ComplianceViolation.status.in_(ACTIVE_STATUSES))
            .order_by(ComplianceViolation.violation_date, ComplianceViolation.id)
        )
        return result.scalars().all()

    async def unpaid(self, db: AsyncSession) -> Sequence[ComplianceViolation]:
        result = await db.execute(
            select(ComplianceViolation)
            .where(_UNPAID)
            .order_by(ComplianceViolation.payment_due_date, ComplianceViolation.id)
        )
        return result.scalars().all()

    async def open_before(self, db: AsyncSession, cutoff: date) -> Sequence[ComplianceViolation]:
        """UNDER_REVIEW / CONFIRMED violations dated strictly before ``cutoff``."""
        result = await db.execute(
            select(ComplianceViolation)
            .where(
                ComplianceViolation.status.in_(OVERDUE_CANDIDATE_STATUSES),
                ComplianceViolation.violation_date < cutoff,
            )
            .order_by(ComplianceViolation.violation_date, ComplianceViolation.id)
        )
        return result.scalars().all()

    async def severity_counts(
        self,
        db: AsyncSession,
        entity_id: int,
        start: date,
        end: date,
    ) -> dict[ViolationSeverity, int]:
        """Count an entity's violations dated within [start, end] by severity."""
        result = await db.execute(
            select(ComplianceViolation.severity, func.count(ComplianceViolation.id))
            .where(
                ComplianceViolation.entity_id == entity_id,
                ComplianceViolation.violation_date >= start,
                ComplianceViolation.violation_date <= end,
            )
            .group_by(ComplianceViolation.severity)
        )
        return {ViolationSeverity(severity): count for severity, count in result.all()}

    # ── Aggregates ────────────────────────────────────────────────────

    async def count_active(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count(ComplianceViolation.id)).where(
                ComplianceViolation.status.in_(ACTIVE_STATUSES)
            )
        )
        return result.scalar_one()

    async def unpaid_totals(self, db: AsyncSession) -> tuple[int, Decimal]:
        result = await db.execute(
            select(
                func.count(ComplianceViolation.id),
                func.coalesce(func.sum(ComplianceViolation.fine_amount), 0),
            ).where(_UNPAID)
        )
        count, total = result.one()
        return count, Decimal(str(total))

    async def unpaid_by_entity(self, db: AsyncSession) -> list[tuple[int, str, int, Decimal]]:
        result = await db.execute(
            select(
                FinancialEntity.id,
                FinancialEntity.name,
                func.count(ComplianceViolation.id),
                func.sum(ComplianceViolation.fine_amount),
            )
            .join(FinancialEntity, FinancialEntity.id == ComplianceViolation.entity_id)
            .where(_UNPAID)
            .group_by(FinancialEntity.id, FinancialEntity.name)
            .order_by(func.sum(ComplianceViolation.fine_amount).desc(), FinancialEntity.id)
        )
        return [
            (entity_id, name, count, Decimal(str(total)))
            for entity_id, name, count, total in result.all()
        ]

    async def severity_breakdown(self, db: AsyncSession) -> list[tuple[str, int, int, Decimal]]:
        is_active = case((ComplianceViolation.status.in_(ACTIVE_STATUSES), 1), else_=0)
        result = await db.execute(
            select(
                ComplianceViolation.severity,
                func.count(ComplianceViolation.id),
                func.sum(is_active),
                func.coalesce(func.sum(ComplianceViolation.fine_amount), 0),
            ).group_by(ComplianceViolation.severity)
        )
        return [
            (str(severity), total, int(active or 0), Decimal(str(fines)))
            for severity, total, active, fines in result.all()
        ]


violation_repo = ViolationRepository()
