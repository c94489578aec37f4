"""
Alert Engine — idempotent rule runs plus alert acknowledgement/resolution.

Rules:
1. review_due — active entities past their next review date
2. license_expiring — active entities whose license expires within N days
3. overdue_violations — UNDER_REVIEW / CONFIRMED violations older than N days

Each rule first skips candidates that already have an unresolved alert for
the same condition, then inserts through the notifier's dedup path so a
concurrent run cannot slip a duplicate in between check and insert.
"""

from datetime import datetime, timedelta
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.alerting import rules
from regwatch.alerting.notifier import AlertNotifier
from regwatch.audit.log import AuditLog
from regwatch.db.models import AlertNotification
from regwatch.db.repositories.alert import AlertRepository, alert_repo
from regwatch.db.repositories.entity import EntityRepository, entity_repo
from regwatch.db.repositories.violation import ViolationRepository, violation_repo
from regwatch.errors import AlreadyProcessedError, NotFoundError, ValidationError
from regwatch.schemas.alert import RuleRunResult
from regwatch.schemas.enums import AlertType, AuditAction

logger = structlog.get_logger(__name__)


def _tally(result: RuleRunResult, alert: Optional[AlertNotification]) -> None:
    if alert is None:
        result.skipped_duplicates += 1
    else:
        result.created += 1
        result.alert_ids.append(alert.id)


class AlertEngine:
    """
    Core alert engine.

    Stateless: all state is in the DB (alerts, the unique dedup index).
    """

    def __init__(
        self,
        notifier: AlertNotifier,
        audit: AuditLog,
        alerts: AlertRepository = alert_repo,
        entities: EntityRepository = entity_repo,
        violations: ViolationRepository = violation_repo,
    ):
        self.notifier = notifier
        self.audit = audit
        self.alerts = alerts
        self.entities = entities
        self.violations = violations

    # ── Rules ─────────────────────────────────────────────────────────

    async def run_review_due(
        self, session: AsyncSession, now: datetime, actor: str
    ) -> RuleRunResult:
        today = now.date()
        candidates = await self.entities.review_before(session, today)
        result = RuleRunResult(rule="review_due", evaluated_at=now, candidates=len(candidates))

        for entity in candidates:
            if await self.alerts.open_exists(session, AlertType.REVIEW_DUE, entity_id=entity.id):
                result.skipped_duplicates += 1
                continue
            alert = await self.notifier.emit_once(
                session,
                dedup_key=rules.review_due_key(entity.id),
                entity_id=entity.id,
                alert_type=AlertType.REVIEW_DUE,
                priority=rules.REVIEW_DUE_PRIORITY,
                message=rules.review_due_message(entity.name, entity.next_review_date),
                now=now,
                actor=actor,
            )
            _tally(result, alert)

        logger.info(
            "alert_rule_completed",
            rule=result.rule,
            candidates=result.candidates,
            created=result.created,
            skipped=result.skipped_duplicates,
        )
        return result

    async def run_license_expiring(
        self,
        session: AsyncSession,
        now: datetime,
        actor: str,
        days_before: int,
    ) -> RuleRunResult:
        if days_before < 0:
            raise ValidationError(["Days before expiry must be zero or greater"])

        today = now.date()
        candidates = await self.entities.license_expiring_between(
            session, today, today + timedelta(days=days_before)
        )
        recent_cutoff = now - timedelta(days=days_before)
        result = RuleRunResult(
            rule="license_expiring", evaluated_at=now, candidates=len(candidates)
        )

        for entity in candidates:
            if await self.alerts.open_exists(
                session,
                AlertType.LICENSE_EXPIRING,
                entity_id=entity.id,
                created_since=recent_cutoff,
            ):
                result.skipped_duplicates += 1
                continue

            days_left = (entity.license_expiry - today).days
            alert = await self.notifier.emit_once(
                session,
                dedup_key=rules.license_expiring_key(entity.id, entity.license_expiry, today),
                entity_id=entity.id,
                alert_type=AlertType.LICENSE_EXPIRING,
                priority=rules.license_expiry_priority(days_left),
                message=rules.license_expiring_message(
                    entity.name, entity.license_number, entity.license_expiry, days_left
                ),
                now=now,
                actor=actor,
            )
            _tally(result, alert)

        logger.info(
            "alert_rule_completed",
            rule=result.rule,
            candidates=result.candidates,
            created=result.created,
            skipped=result.skipped_duplicates,
        )
        return result

    async def run_overdue_violations(
        self,
        session: AsyncSession,
        now: datetime,
        actor: str,
        days_overdue: int,
    ) -> RuleRunResult:
        if days_overdue < 0:
            raise ValidationError(["Days overdue must be zero or greater"])

        today = now.date()
        candidates = await self.violations.open_before(session, today - timedelta(days=days_overdue))
        result = RuleRunResult(
            rule="overdue_violations", evaluated_at=now, candidates=len(candidates)
        )

        for violation in candidates:
            if await self.alerts.open_exists(
                session, AlertType.OVERDUE_VIOLATION, violation_id=violation.id
            ):
                result.skipped_duplicates += 1
                continue

            entity_name = await self.entities.get_name(session, violation.entity_id)
            alert = await self.notifier.emit_once(
                session,
                dedup_key=rules.overdue_violation_key(violation.id),
                entity_id=violation.entity_id,
                violation_id=violation.id,
                alert_type=AlertType.OVERDUE_VIOLATION,
                priority=rules.OVERDUE_VIOLATION_PRIORITY[violation.severity],
                message=rules.overdue_violation_message(
                    entity_name or f"entity {violation.entity_id}",
                    violation.id,
                    violation.violation_type,
                    (today - violation.violation_date).days,
                ),
                now=now,
                actor=actor,
            )
            _tally(result, alert)

        logger.info(
            "alert_rule_completed",
            rule=result.rule,
            candidates=result.candidates,
            created=result.created,
            skipped=result.skipped_duplicates,
        )
        return result

    # ── Acknowledge / resolve ─────────────────────────────────────────

    async def get(
        self, session: AsyncSession, alert_id: int, *, for_update: bool = False
    ) -> AlertNotification:
        alert = await self.alerts.get_by_id(session, alert_id, for_update=for_update)
        if alert is None:
            raise NotFoundError("AlertNotification", alert_id)
        return alert

    async def acknowledge(
        self, session: AsyncSession, alert_id: int, actor: str, now: datetime
    ) -> AlertNotification:
        alert = await self.get(session, alert_id, for_update=True)
        if alert.acknowledged:
            raise AlreadyProcessedError("AlertNotification", alert_id, "acknowledged")

        alert.acknowledged = True
        alert.acknowledged_by = actor
        alert.acknowledged_at = now
        await session.flush()

        await self.audit.append(
            session,
            action=AuditAction.ALERT_ACKNOWLEDGED,
            entity_id=alert.entity_id,
            performed_by=actor,
            performed_at=now,
            details=f"Alert #{alert.id} ({alert.alert_type}) acknowledged",
            before={"alert_id": alert.id, "acknowledged": False},
            after={"alert_id": alert.id, "acknowledged": True, "acknowledged_by": actor},
        )
        logger.info("alert_acknowledged", alert_id=alert.id, actor=actor)
        return alert

    async def resolve(
        self,
        session: AsyncSession,
        alert_id: int,
        notes: Optional[str],
        actor: str,
        now: datetime,
    ) -> AlertNotification:
        alert = await self.get(session, alert_id, for_update=True)
        if alert.resolved:
            raise AlreadyProcessedError("AlertNotification", alert_id, "resolved")

        alert.resolved = True
        alert.resolved_at = now
        alert.notes = notes
        await session.flush()

        await self.audit.append(
            session,
            action=AuditAction.ALERT_RESOLVED,
            entity_id=alert.entity_id,
            performed_by=actor,
            performed_at=now,
            details=notes or f"Alert #{alert.id} ({alert.alert_type}) resolved",
            before={"alert_id": alert.id, "resolved": False},
            after={"alert_id": alert.id, "resolved": True},
        )
        logger.info("alert_resolved", alert_id=alert.id, actor=actor)
        return alert

    # ── Queries ───────────────────────────────────────────────────────

    async def count_unacknowledged(self, session: AsyncSession) -> int:
        """Alerts that are neither acknowledged nor resolved."""
        return await self.alerts.count_unacknowledged_open(session)

    async def high_priority_open(self, session: AsyncSession) -> Sequence[AlertNotification]:
        return await self.alerts.high_priority_open(session)

    async def for_entity(
        self, session: AsyncSession, entity_id: int, include_resolved: bool = True
    ) -> Sequence[AlertNotification]:
        return await self.alerts.for_entity(session, entity_id, include_resolved)
