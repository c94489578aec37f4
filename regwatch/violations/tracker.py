"""
Violation Tracker — record, resolve, status changes, fine payments.

Recording a violation drives the entity lifecycle through the
RiskStatusEngine, in this order:
1. Persist the violation (UNDER_REVIEW, follow-up required)
2. Raise the entity's risk to the severity floor (CRITICAL -> CRITICAL,
   HIGH -> at least HIGH)
3. Move a COMPLIANT entity to NON_COMPLIANT
4. Append VIOLATION_RECORDED
5. Raise a VIOLATION alert for HIGH / CRITICAL severities
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.alerting import rules as alert_rules
from regwatch.alerting.notifier import AlertNotifier
from regwatch.audit.log import AuditLog, snapshot
from regwatch.db.models import ComplianceViolation
from regwatch.db.repositories.violation import ViolationRepository, violation_repo
from regwatch.errors import (
    AlreadyProcessedError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from regwatch.lifecycle.engine import RiskStatusEngine
from regwatch.lifecycle.rules import (
    risk_after_violation,
    status_after_violation,
    violation_transition_allowed,
)
from regwatch.registry.registry import EntityRegistry
from regwatch.registry.validator import ViolationValidator
from regwatch.schemas.enums import AlertType, AuditAction, ViolationSeverity, ViolationStatus
from regwatch.schemas.violation import ViolationCreate, ViolationFlags

logger = structlog.get_logger(__name__)

# UNDER_REVIEW longer than this needs attention
STALE_REVIEW_DAYS: int = 60

RECORD_SNAPSHOT_FIELDS = (
    "violation_type",
    "violation_code",
    "severity",
    "violation_date",
    "fine_amount",
    "payment_due_date",
    "status",
)
STATUS_SNAPSHOT_FIELDS = ("status", "resolution_date", "follow_up_required")


# ── Derived flags ─────────────────────────────────────────────────────────


def days_since_violation(violation: ComplianceViolation, today: date) -> int:
    return (today - violation.violation_date).days


def is_fine_overdue(violation: ComplianceViolation, today: date) -> bool:
    if violation.fine_paid or violation.payment_due_date is None:
        return False
    return violation.payment_due_date < today


def is_follow_up_overdue(violation: ComplianceViolation, today: date) -> bool:
    if not violation.follow_up_required or violation.follow_up_date is None:
        return False
    return violation.follow_up_date < today and violation.status.is_active


def requires_attention(violation: ComplianceViolation, today: date) -> bool:
    return (
        violation.severity == ViolationSeverity.CRITICAL
        or is_fine_overdue(violation, today)
        or is_follow_up_overdue(violation, today)
        or (
            violation.status == ViolationStatus.UNDER_REVIEW
            and days_since_violation(violation, today) > STALE_REVIEW_DAYS
        )
    )


def flags_for(violation: ComplianceViolation, today: date) -> ViolationFlags:
    return ViolationFlags(
        violation_id=violation.id,
        as_of=today,
        days_since_violation=days_since_violation(violation, today),
        fine_overdue=is_fine_overdue(violation, today),
        follow_up_overdue=is_follow_up_overdue(violation, today),
        requires_attention=requires_attention(violation, today),
    )


class ViolationTracker:
    """Violation lifecycle and its side effects on the owning entity."""

    def __init__(
        self,
        registry: EntityRegistry,
        engine: RiskStatusEngine,
        audit: AuditLog,
        notifier: AlertNotifier,
        validator: Optional[ViolationValidator] = None,
        repo: ViolationRepository = violation_repo,
    ):
        self.registry = registry
        self.engine = engine
        self.audit = audit
        self.notifier = notifier
        self.validator = validator or ViolationValidator()
        self.repo = repo

    # ── Writes ────────────────────────────────────────────────────────

    async def record(
        self,
        session: AsyncSession,
        entity_id: int,
        data: ViolationCreate,
        actor: str,
        now: datetime,
    ) -> ComplianceViolation:
        today = now.date()
        result = self.validator.validate(data, today)
        if not result.is_valid:
            raise ValidationError(result.errors)

        entity = await self.registry.get(session, entity_id, for_update=True)
        severity = data.severity

        violation = ComplianceViolation(
            entity_id=entity.id,
            violation_type=data.violation_type.strip(),
            violation_code=data.violation_code,
            description=data.description.strip(),
            severity=severity,
            violation_date=data.violation_date,
            discovery_date=data.discovery_date or today,
            reported_by=data.reported_by,
            fine_amount=data.fine_amount if data.fine_amount is not None else Decimal("0"),
            fine_paid=False,
            payment_due_date=data.payment_due_date,
            corrective_action=data.corrective_action,
            status=ViolationStatus.UNDER_REVIEW,
            follow_up_required=True,
            follow_up_date=data.follow_up_date,
            created_at=now,
            created_by=actor,
        )
        await self.repo.add(session, violation)

        reason = f"{severity} violation #{violation.id} recorded ({violation.violation_type})"

        new_risk = risk_after_violation(severity, entity.risk_level)
        if new_risk is not None:
            await self.engine.apply_risk(session, entity, new_risk, actor, now, reason=reason)

        new_status = status_after_violation(entity.compliance_status)
        if new_status is not None:
            await self.engine.apply_status(session, entity, new_status, actor, now, reason=reason)

        await self.audit.append(
            session,
            action=AuditAction.VIOLATION_RECORDED,
            entity_id=entity.id,
            performed_by=actor,
            performed_at=now,
            details=f"Violation #{violation.id}: {violation.description}",
            after={"violation_id": violation.id, **snapshot(violation, RECORD_SNAPSHOT_FIELDS)},
        )

        priority = alert_rules.VIOLATION_ALERT_PRIORITY[severity]
        if priority is not None:
            await self.notifier.emit(
                session,
                entity_id=entity.id,
                violation_id=violation.id,
                alert_type=AlertType.VIOLATION,
                priority=priority,
                message=alert_rules.violation_message(
                    entity.name, str(severity), violation.violation_type
                ),
                now=now,
                actor=actor,
            )

        logger.info(
            "violation_recorded",
            violation_id=violation.id,
            entity_id=entity.id,
            severity=str(severity),
            actor=actor,
        )
        return violation

    async def resolve(
        self,
        session: AsyncSession,
        violation_id: int,
        notes: Optional[str],
        actor: str,
        now: datetime,
    ) -> ComplianceViolation:
        violation = await self.get(session, violation_id, for_update=True)
        self._check_transition(violation, ViolationStatus.RESOLVED)

        today = now.date()
        if today < violation.violation_date:
            raise ValidationError(["Resolution date cannot be before the violation date"])

        before = snapshot(violation, STATUS_SNAPSHOT_FIELDS)
        violation.status = ViolationStatus.RESOLVED
        violation.resolution_date = today
        violation.resolution_notes = notes
        violation.follow_up_required = False
        self._touch(violation, actor, now)
        await session.flush()

        await self.audit.append(
            session,
            action=AuditAction.VIOLATION_RESOLVED,
            entity_id=violation.entity_id,
            performed_by=actor,
            performed_at=now,
            details=notes or f"Violation #{violation.id} resolved",
            before={"violation_id": violation.id, **before},
            after={"violation_id": violation.id, **snapshot(violation, STATUS_SNAPSHOT_FIELDS)},
        )
        logger.info("violation_resolved", violation_id=violation.id, actor=actor)
        return violation

    async def change_status(
        self,
        session: AsyncSession,
        violation_id: int,
        new_status: ViolationStatus,
        actor: str,
        now: datetime,
        notes: Optional[str] = None,
    ) -> ComplianceViolation:
        """Move to CONFIRMED, APPEALED or DISMISSED. RESOLVED goes through ``resolve``."""
        violation = await self.get(session, violation_id, for_update=True)
        if new_status == ViolationStatus.RESOLVED:
            raise InvalidTransitionError(
                violation.status, new_status, "use resolve() to resolve a violation"
            )
        self._check_transition(violation, new_status)

        before = snapshot(violation, STATUS_SNAPSHOT_FIELDS)
        violation.status = new_status
        if new_status == ViolationStatus.DISMISSED:
            violation.follow_up_required = False
        if notes:
            violation.resolution_notes = notes
        self._touch(violation, actor, now)
        await session.flush()

        await self.audit.append(
            session,
            action=AuditAction.VIOLATION_STATUS_CHANGED,
            entity_id=violation.entity_id,
            performed_by=actor,
            performed_at=now,
            details=notes or f"Violation #{violation.id} {before['status']} -> {new_status}",
            before={"violation_id": violation.id, **before},
            after={"violation_id": violation.id, **snapshot(violation, STATUS_SNAPSHOT_FIELDS)},
        )
        logger.info(
            "violation_status_changed",
            violation_id=violation.id,
            to_status=str(new_status),
            actor=actor,
        )
        return violation

    async def record_payment(
        self,
        session: AsyncSession,
        violation_id: int,
        payment_date: Optional[date],
        actor: str,
        now: datetime,
    ) -> ComplianceViolation:
        """Mark the fine paid. The violation status is left alone."""
        today = now.date()
        paid_on = payment_date or today
        if paid_on > today:
            raise ValidationError(["Payment date cannot be in the future"])

        violation = await self.get(session, violation_id, for_update=True)
        if violation.fine_paid:
            raise AlreadyProcessedError("ComplianceViolation", violation_id, "paid")

        violation.fine_paid = True
        violation.payment_date = paid_on
        self._touch(violation, actor, now)
        await session.flush()

        await self.audit.append(
            session,
            action=AuditAction.FINE_PAID,
            entity_id=violation.entity_id,
            performed_by=actor,
            performed_at=now,
            details=f"Fine of {violation.fine_amount} paid for violation #{violation.id}",
            before={"violation_id": violation.id, "fine_paid": False, "payment_date": None},
            after={"violation_id": violation.id, "fine_paid": True, "payment_date": paid_on},
        )
        logger.info("fine_paid", violation_id=violation.id, amount=str(violation.fine_amount))
        return violation

    # ── Reads ─────────────────────────────────────────────────────────

    async def get(
        self, session: AsyncSession, violation_id: int, *, for_update: bool = False
    ) -> ComplianceViolation:
        violation = await self.repo.get_by_id(session, violation_id, for_update=for_update)
        if violation is None:
            raise NotFoundError("ComplianceViolation", violation_id)
        return violation

    async def for_entity(self, session: AsyncSession, entity_id: int) -> Sequence[ComplianceViolation]:
        await self.registry.get(session, entity_id)
        return await self.repo.for_entity(session, entity_id)

    async def active(self, session: AsyncSession) -> Sequence[ComplianceViolation]:
        return await self.repo.active(session)

    async def unpaid(self, session: AsyncSession) -> Sequence[ComplianceViolation]:
        return await self.repo.unpaid(session)

    async def requiring_attention(
        self, session: AsyncSession, today: date
    ) -> list[ComplianceViolation]:
        """Active violations that trip any attention flag."""
        return [v for v in await self.repo.active(session) if requires_attention(v, today)]

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _check_transition(violation: ComplianceViolation, target: ViolationStatus) -> None:
        if not violation_transition_allowed(violation.status, target):
            raise InvalidTransitionError(
                violation.status, target, f"violation #{violation.id} is {violation.status}"
            )

    @staticmethod
    def _touch(violation: ComplianceViolation, actor: str, now: datetime) -> None:
        violation.modified_at = now
        violation.modified_by = actor
