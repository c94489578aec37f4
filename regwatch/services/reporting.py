"""
Reporting — read-only portfolio aggregates.

Every number here is one query against the live tables; nothing is cached.
"""

from datetime import date, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.db.models import FinancialEntity
from regwatch.db.repositories.alert import AlertRepository, alert_repo
from regwatch.db.repositories.entity import EntityRepository, entity_repo
from regwatch.db.repositories.violation import ViolationRepository, violation_repo
from regwatch.schemas.enums import AlertPriority, ComplianceStatus, EntityType, RiskLevel
from regwatch.schemas.report import (
    ComplianceSummary,
    PriorityBreakdownLine,
    SeverityBreakdownLine,
    UnpaidFineLine,
)

logger = structlog.get_logger(__name__)


def _zero_filled(counts: dict[str, int], enum_cls) -> dict[str, int]:
    return {str(member): counts.get(str(member), 0) for member in enum_cls}


class ReportingService:
    def __init__(
        self,
        entities: EntityRepository = entity_repo,
        violations: ViolationRepository = violation_repo,
        alerts: AlertRepository = alert_repo,
    ):
        self.entities = entities
        self.violations = violations
        self.alerts = alerts

    async def summary(
        self,
        session: AsyncSession,
        today: date,
        license_warning_days: int,
    ) -> ComplianceSummary:
        unpaid_count, unpaid_total = await self.violations.unpaid_totals(session)

        summary = ComplianceSummary(
            as_of=today,
            total_entities=await self.entities.count_active(session),
            by_status=_zero_filled(
                await self.entities.count_active_by(session, "compliance_status"), ComplianceStatus
            ),
            by_risk_level=_zero_filled(
                await self.entities.count_active_by(session, "risk_level"), RiskLevel
            ),
            by_entity_type=_zero_filled(
                await self.entities.count_active_by(session, "entity_type"), EntityType
            ),
            licenses_expiring_soon=await self.entities.count_active_where(
                session,
                FinancialEntity.license_expiry >= today,
                FinancialEntity.license_expiry <= today + timedelta(days=license_warning_days),
            ),
            overdue_reviews=await self.entities.count_active_where(
                session, FinancialEntity.next_review_date < today
            ),
            active_violations=await self.violations.count_active(session),
            unpaid_fine_count=unpaid_count,
            unpaid_fine_total=unpaid_total,
            unresolved_alerts=await self.alerts.count_open(session),
            unacknowledged_alerts=await self.alerts.count_unacknowledged_open(session),
        )
        logger.info(
            "compliance_summary_generated",
            total_entities=summary.total_entities,
            active_violations=summary.active_violations,
        )
        return summary

    async def unpaid_fines_by_entity(self, session: AsyncSession) -> list[UnpaidFineLine]:
        rows = await self.violations.unpaid_by_entity(session)
        return [
            UnpaidFineLine(
                entity_id=entity_id,
                entity_name=name,
                unpaid_count=count,
                unpaid_total=total,
            )
            for entity_id, name, count, total in rows
        ]

    async def violation_severity_breakdown(
        self, session: AsyncSession
    ) -> list[SeverityBreakdownLine]:
        rows = {row[0]: row for row in await self.violations.severity_breakdown(session)}
        lines = []
        for severity in ("CRITICAL", "HIGH", "MEDIUM", "LOW"):
            _, total, active, fines = rows.get(severity, (severity, 0, 0, 0))
            lines.append(SeverityBreakdownLine(
                severity=severity, total=total, active=active, total_fines=fines,
            ))
        return lines

    async def alert_priority_breakdown(
        self, session: AsyncSession
    ) -> list[PriorityBreakdownLine]:
        counts = await self.alerts.open_priority_breakdown(session)
        return [
            PriorityBreakdownLine(
                priority=str(priority),
                unresolved=counts.get(str(priority), (0, 0))[0],
                unacknowledged=counts.get(str(priority), (0, 0))[1],
            )
            for priority in sorted(AlertPriority, key=lambda p: p.rank, reverse=True)
        ]
