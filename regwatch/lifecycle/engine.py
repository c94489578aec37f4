"""
Risk & Status Engine — status transitions, risk escalation, reviews, scoring.

Pipeline for every write:
1. Load the entity with a row lock (optionally checking the caller's version)
2. Look the change up in the lifecycle rule tables
3. Persist the new state (recomputing the review date where risk moves)
4. Append exactly one audit entry for the change
5. Emit the alert the rule tables call for, if any
"""

from datetime import date, datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.alerting import rules as alert_rules
from regwatch.alerting.notifier import AlertNotifier
from regwatch.audit.log import AuditLog, snapshot
from regwatch.db.models import FinancialEntity
from regwatch.db.repositories.violation import ViolationRepository, violation_repo
from regwatch.errors import InvalidTransitionError, ValidationError
from regwatch.lifecycle.rules import (
    STATUS_CHANGE_ALERT_STATUSES,
    TransitionOutcome,
    check_status_transition,
    classify_risk_change,
    requires_escalation_alert,
    transition_note,
)
from regwatch.lifecycle.schedule import add_months, next_review_date
from regwatch.lifecycle.scoring import compute_score, rating_for
from regwatch.registry.registry import EntityRegistry
from regwatch.schemas.enums import (
    AlertType,
    AuditAction,
    ComplianceStatus,
    RiskLevel,
    ViolationSeverity,
)
from regwatch.schemas.report import ComplianceScore

logger = structlog.get_logger(__name__)

REVIEW_SNAPSHOT_FIELDS = (
    "compliance_status",
    "risk_level",
    "last_review_date",
    "next_review_date",
)


def append_note(existing: Optional[str], header: str, body: str) -> str:
    """Append a headed entry to the free-text note history."""
    entry = f"{header}\n{body}" if body else header
    if not existing:
        return entry
    return f"{existing}\n\n{entry}"


class RiskStatusEngine:
    """Evaluate and apply compliance status and risk level changes."""

    def __init__(
        self,
        registry: EntityRegistry,
        audit: AuditLog,
        notifier: AlertNotifier,
        violations: ViolationRepository = violation_repo,
    ):
        self.registry = registry
        self.audit = audit
        self.notifier = notifier
        self.violations = violations

    # ── Status ────────────────────────────────────────────────────────

    async def update_status(
        self,
        session: AsyncSession,
        entity_id: int,
        new_status: ComplianceStatus,
        actor: str,
        now: datetime,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> FinancialEntity:
        entity = await self.registry.get(
            session, entity_id, for_update=True, expected_version=expected_version
        )
        return await self.apply_status(session, entity, new_status, actor, now, reason)

    async def apply_status(
        self,
        session: AsyncSession,
        entity: FinancialEntity,
        new_status: ComplianceStatus,
        actor: str,
        now: datetime,
        reason: Optional[str] = None,
    ) -> FinancialEntity:
        """Run one status change through the transition table on a loaded entity."""
        old_status = entity.compliance_status
        outcome = check_status_transition(old_status, new_status)
        note = transition_note(old_status, new_status)

        if outcome is TransitionOutcome.FORBIDDEN:
            logger.warning(
                "status_transition_rejected",
                entity_id=entity.id,
                from_status=str(old_status),
                to_status=str(new_status),
            )
            raise InvalidTransitionError(old_status, new_status, note or "")

        if outcome is TransitionOutcome.FLAGGED:
            logger.warning(
                "status_transition_flagged",
                entity_id=entity.id,
                from_status=str(old_status),
                to_status=str(new_status),
                note=note,
            )

        entity.compliance_status = new_status
        self.registry.touch(entity, actor, now)
        await session.flush()

        details = [f"Status changed from {old_status} to {new_status}"]
        if reason:
            details.append(f"Reason: {reason}")
        if outcome is TransitionOutcome.FLAGGED and note:
            details.append(note)

        await self.audit.append(
            session,
            action=AuditAction.STATUS_UPDATED,
            entity_id=entity.id,
            performed_by=actor,
            performed_at=now,
            details="; ".join(details),
            before={"compliance_status": old_status},
            after={"compliance_status": new_status},
        )

        if new_status in STATUS_CHANGE_ALERT_STATUSES:
            await self.notifier.emit(
                session,
                entity_id=entity.id,
                alert_type=AlertType.STATUS_CHANGE,
                priority=alert_rules.STATUS_CHANGE_PRIORITY,
                message=alert_rules.status_change_message(
                    entity.name, str(old_status), str(new_status)
                ),
                now=now,
                actor=actor,
            )

        logger.info(
            "status_updated",
            entity_id=entity.id,
            from_status=str(old_status),
            to_status=str(new_status),
            actor=actor,
        )
        return entity

    # ── Risk ──────────────────────────────────────────────────────────

    async def update_risk(
        self,
        session: AsyncSession,
        entity_id: int,
        new_level: RiskLevel,
        actor: str,
        now: datetime,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> FinancialEntity:
        entity = await self.registry.get(
            session, entity_id, for_update=True, expected_version=expected_version
        )
        return await self.apply_risk(session, entity, new_level, actor, now, reason)

    async def apply_risk(
        self,
        session: AsyncSession,
        entity: FinancialEntity,
        new_level: RiskLevel,
        actor: str,
        now: datetime,
        reason: Optional[str] = None,
    ) -> FinancialEntity:
        """
        Set the risk level and recompute the next review date.

        Always persists and audits. Alerts only on a strict escalation
        that lands on HIGH or CRITICAL.
        """
        old_level = entity.risk_level
        old_next_review = entity.next_review_date
        change = classify_risk_change(old_level, new_level)

        entity.risk_level = new_level
        entity.next_review_date = next_review_date(new_level, now.date())
        self.registry.touch(entity, actor, now)
        await session.flush()

        details = f"Risk {change}: {old_level} -> {new_level}"
        if reason:
            details = f"{details}; Reason: {reason}"

        await self.audit.append(
            session,
            action=AuditAction.RISK_ESCALATED,
            entity_id=entity.id,
            performed_by=actor,
            performed_at=now,
            details=details,
            before={"risk_level": old_level, "next_review_date": old_next_review},
            after={"risk_level": new_level, "next_review_date": entity.next_review_date},
        )

        if requires_escalation_alert(old_level, new_level):
            logger.warning(
                "risk_escalated",
                entity_id=entity.id,
                from_level=str(old_level),
                to_level=str(new_level),
            )
            await self.notifier.emit(
                session,
                entity_id=entity.id,
                alert_type=AlertType.RISK_ESCALATION,
                priority=alert_rules.RISK_ESCALATION_PRIORITY,
                message=alert_rules.risk_escalation_message(
                    entity.name, str(old_level), str(new_level), reason
                ),
                now=now,
                actor=actor,
            )
        else:
            logger.info(
                "risk_updated",
                entity_id=entity.id,
                change=str(change),
                to_level=str(new_level),
            )
        return entity

    # ── Review ────────────────────────────────────────────────────────

    async def conduct_review(
        self,
        session: AsyncSession,
        entity_id: int,
        actor: str,
        now: datetime,
        new_status: ComplianceStatus,
        new_risk: RiskLevel,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> FinancialEntity:
        """
        Record a completed review.

        A review is the reviewer's determination: status and risk are set
        directly, outside the transition table.
        """
        entity = await self.registry.get(
            session, entity_id, for_update=True, expected_version=expected_version
        )
        today = now.date()
        before = snapshot(entity, REVIEW_SNAPSHOT_FIELDS)

        entity.compliance_status = new_status
        entity.risk_level = new_risk
        entity.last_review_date = today
        entity.next_review_date = next_review_date(new_risk, today)
        if notes:
            entity.notes = append_note(
                entity.notes, f"[{today.isoformat()}] Review by {actor}:", notes
            )
        self.registry.touch(entity, actor, now)
        await session.flush()

        await self.audit.append(
            session,
            action=AuditAction.REVIEW_CONDUCTED,
            entity_id=entity.id,
            performed_by=actor,
            performed_at=now,
            details=notes or "Compliance review conducted",
            before=before,
            after=snapshot(entity, REVIEW_SNAPSHOT_FIELDS),
        )
        logger.info(
            "review_conducted",
            entity_id=entity.id,
            status=str(new_status),
            risk_level=str(new_risk),
            next_review_date=entity.next_review_date.isoformat(),
            actor=actor,
        )
        return entity

    # ── License lifecycle ─────────────────────────────────────────────

    async def renew_license(
        self,
        session: AsyncSession,
        entity_id: int,
        new_expiry: date,
        actor: str,
        now: datetime,
        expected_version: Optional[int] = None,
    ) -> FinancialEntity:
        today = now.date()
        if new_expiry < today:
            raise ValidationError(["License expiry date cannot be in the past"])

        entity = await self.registry.get(
            session, entity_id, for_update=True, expected_version=expected_version
        )
        old_expiry = entity.license_expiry
        entity.license_expiry = new_expiry
        entity.notes = append_note(
            entity.notes,
            f"[{today.isoformat()}] License renewed by {actor}:",
            f"expiry {old_expiry.isoformat() if old_expiry else 'unset'} -> {new_expiry.isoformat()}",
        )
        self.registry.touch(entity, actor, now)
        await session.flush()

        await self.audit.append(
            session,
            action=AuditAction.LICENSE_RENEWED,
            entity_id=entity.id,
            performed_by=actor,
            performed_at=now,
            details=f"License {entity.license_number} renewed until {new_expiry.isoformat()}",
            before={"license_expiry": old_expiry},
            after={"license_expiry": new_expiry},
        )
        logger.info("license_renewed", entity_id=entity.id, expiry=new_expiry.isoformat(), actor=actor)
        return entity

    async def suspend_license(
        self,
        session: AsyncSession,
        entity_id: int,
        actor: str,
        now: datetime,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> FinancialEntity:
        entity = await self.registry.get(
            session, entity_id, for_update=True, expected_version=expected_version
        )
        return await self.apply_status(
            session, entity, ComplianceStatus.SUSPENDED, actor, now,
            reason=reason or "License suspended",
        )

    async def reinstate_license(
        self,
        session: AsyncSession,
        entity_id: int,
        actor: str,
        now: datetime,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> FinancialEntity:
        """SUSPENDED -> PENDING_REVIEW. A fresh review decides what comes next."""
        entity = await self.registry.get(
            session, entity_id, for_update=True, expected_version=expected_version
        )
        if entity.compliance_status != ComplianceStatus.SUSPENDED:
            raise InvalidTransitionError(
                entity.compliance_status,
                ComplianceStatus.PENDING_REVIEW,
                "only a suspended license can be reinstated",
            )
        return await self.apply_status(
            session, entity, ComplianceStatus.PENDING_REVIEW, actor, now,
            reason=reason or "License reinstated",
        )

    # ── Scoring ───────────────────────────────────────────────────────

    async def score(
        self,
        session: AsyncSession,
        entity_id: int,
        months_back: int,
        now: datetime,
    ) -> ComplianceScore:
        """Score an entity over violations dated in the trailing window. Read-only."""
        if months_back < 1:
            raise ValidationError(["Months back must be at least 1"])
        await self.registry.get(session, entity_id)

        today = now.date()
        window_start = add_months(today, -months_back)
        counts = await self.violations.severity_counts(session, entity_id, window_start, today)
        score = compute_score(counts)

        critical = counts.get(ViolationSeverity.CRITICAL, 0)
        high = counts.get(ViolationSeverity.HIGH, 0)
        return ComplianceScore(
            entity_id=entity_id,
            as_of=today,
            window_start=window_start,
            months_back=months_back,
            critical_count=critical,
            high_count=high,
            other_count=sum(counts.values()) - critical - high,
            score=score,
            rating=rating_for(score),
        )
