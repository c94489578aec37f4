"""
Tests for the Violation Tracker.

Covers:
- Recording: persistence defaults and the side-effect sequence on the entity
- Severity-driven risk floor, COMPLIANT -> NON_COMPLIANT, VIOLATION alerts
- Resolve, status changes and the terminal states
- Fine payments
- Attention flags and violation queries
"""

from datetime import date
from decimal import Decimal

import pytest

from regwatch.errors import (
    AlreadyProcessedError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from regwatch.schemas.enums import (
    AlertPriority,
    AlertType,
    AuditAction,
    ComplianceStatus,
    RiskLevel,
    ViolationSeverity,
    ViolationStatus,
)

pytestmark = pytest.mark.asyncio

ACTOR = "examiner@regwatch.test"


# ── Recording ─────────────────────────────────────────────────────────


class TestRecord:
    async def test_persisted_under_review(self, service, entity, make_violation):
        violation = await service.record_violation(entity.id, make_violation(), ACTOR)
        assert violation.entity_id == entity.id
        assert violation.status == ViolationStatus.UNDER_REVIEW
        assert violation.follow_up_required is True
        assert violation.fine_paid is False
        assert violation.discovery_date == date(2026, 3, 15)
        assert violation.created_by == ACTOR

    async def test_fine_defaults_to_zero(self, service, entity, make_violation):
        violation = await service.record_violation(
            entity.id, make_violation(fine_amount=None), ACTOR
        )
        assert violation.fine_amount == Decimal("0")

    async def test_medium_violation_side_effects(self, service, entity, make_violation):
        await service.record_violation(entity.id, make_violation(), ACTOR)

        current = await service.get_entity(entity.id)
        assert current.compliance_status == ComplianceStatus.NON_COMPLIANT
        assert current.risk_level == RiskLevel.LOW

        actions = [e.action_type for e in await service.audit_trail(entity.id)]
        assert actions == [
            AuditAction.ENTITY_REGISTERED,
            AuditAction.ALERT_CREATED,
            AuditAction.STATUS_UPDATED,
            AuditAction.ALERT_CREATED,
            AuditAction.VIOLATION_RECORDED,
        ]
        alert_types = {a.alert_type for a in await service.alerts_for_entity(entity.id)}
        assert AlertType.VIOLATION not in alert_types
        assert AlertType.STATUS_CHANGE in alert_types

    async def test_critical_violation_escalates(self, service, entity, make_violation):
        violation = await service.record_violation(
            entity.id, make_violation(severity=ViolationSeverity.CRITICAL), ACTOR
        )

        current = await service.get_entity(entity.id)
        assert current.risk_level == RiskLevel.CRITICAL
        assert current.next_review_date == date(2026, 6, 15)
        assert current.compliance_status == ComplianceStatus.NON_COMPLIANT

        alerts = await service.alerts_for_entity(entity.id)
        assert [a.alert_type for a in alerts] == [
            AlertType.VIOLATION,
            AlertType.STATUS_CHANGE,
            AlertType.RISK_ESCALATION,
            AlertType.NEW_REGISTRATION,
        ]
        assert alerts[0].priority == AlertPriority.URGENT
        assert alerts[0].violation_id == violation.id

    async def test_high_violation_alert_priority(self, service, entity, make_violation):
        await service.record_violation(
            entity.id, make_violation(severity=ViolationSeverity.HIGH), ACTOR
        )
        assert (await service.get_entity(entity.id)).risk_level == RiskLevel.HIGH
        violation_alerts = [a for a in await service.alerts_for_entity(entity.id)
                            if a.alert_type == AlertType.VIOLATION]
        assert [a.priority for a in violation_alerts] == [AlertPriority.HIGH]

    async def test_risk_never_lowered(self, service, make_entity, make_violation):
        critical = await service.register_entity(
            make_entity(risk_level=RiskLevel.CRITICAL), ACTOR
        )
        await service.record_violation(
            critical.id, make_violation(severity=ViolationSeverity.HIGH), ACTOR
        )
        await service.record_violation(
            critical.id, make_violation(severity=ViolationSeverity.CRITICAL), ACTOR
        )
        assert (await service.get_entity(critical.id)).risk_level == RiskLevel.CRITICAL
        assert await service.audit_by_action(AuditAction.RISK_ESCALATED) == []

    async def test_non_compliant_entity_status_untouched(self, service, make_entity, make_violation):
        flagged = await service.register_entity(
            make_entity(compliance_status=ComplianceStatus.UNDER_INVESTIGATION), ACTOR
        )
        await service.record_violation(flagged.id, make_violation(), ACTOR)
        current = await service.get_entity(flagged.id)
        assert current.compliance_status == ComplianceStatus.UNDER_INVESTIGATION
        assert await service.audit_by_action(AuditAction.STATUS_UPDATED) == []

    async def test_invalid_violation_persists_nothing(self, service, entity, make_violation):
        with pytest.raises(ValidationError) as exc_info:
            await service.record_violation(
                entity.id, make_violation(description=" ", violation_date=date(2026, 4, 1)), ACTOR
            )
        assert exc_info.value.errors == [
            "Violation description is required",
            "Violation date cannot be in the future",
        ]
        assert await service.violations_for_entity(entity.id) == []
        assert (await service.get_entity(entity.id)).compliance_status == ComplianceStatus.COMPLIANT

    async def test_unknown_entity(self, service, make_violation):
        with pytest.raises(NotFoundError):
            await service.record_violation(777, make_violation(), ACTOR)


# ── Status ────────────────────────────────────────────────────────────


class TestResolveAndStatus:
    async def test_resolve(self, service, entity, make_violation):
        violation = await service.record_violation(entity.id, make_violation(), ACTOR)
        resolved = await service.resolve_violation(violation.id, "Procedures updated", ACTOR)

        assert resolved.status == ViolationStatus.RESOLVED
        assert resolved.resolution_date == date(2026, 3, 15)
        assert resolved.resolution_notes == "Procedures updated"
        assert resolved.follow_up_required is False

        entry = (await service.audit_by_action(AuditAction.VIOLATION_RESOLVED))[0]
        assert entry.before_value["status"] == "UNDER_REVIEW"
        assert entry.after_value["status"] == "RESOLVED"

    async def test_resolve_twice_rejected(self, service, entity, make_violation):
        violation = await service.record_violation(entity.id, make_violation(), ACTOR)
        await service.resolve_violation(violation.id, None, ACTOR)
        with pytest.raises(InvalidTransitionError):
            await service.resolve_violation(violation.id, None, ACTOR)

    async def test_appeal_cycle(self, service, entity, make_violation):
        violation = await service.record_violation(entity.id, make_violation(), ACTOR)
        for status in (ViolationStatus.CONFIRMED, ViolationStatus.APPEALED, ViolationStatus.CONFIRMED):
            changed = await service.change_violation_status(violation.id, status, ACTOR)
            assert changed.status == status
        assert len(await service.audit_by_action(AuditAction.VIOLATION_STATUS_CHANGED)) == 3

    async def test_dismiss_is_terminal(self, service, entity, make_violation):
        violation = await service.record_violation(entity.id, make_violation(), ACTOR)
        dismissed = await service.change_violation_status(
            violation.id, ViolationStatus.DISMISSED, ACTOR, notes="Examiner error"
        )
        assert dismissed.follow_up_required is False
        assert dismissed.resolution_notes == "Examiner error"

        with pytest.raises(InvalidTransitionError):
            await service.change_violation_status(violation.id, ViolationStatus.CONFIRMED, ACTOR)
        with pytest.raises(InvalidTransitionError):
            await service.resolve_violation(violation.id, None, ACTOR)

    async def test_resolved_not_reachable_through_change_status(self, service, entity, make_violation):
        violation = await service.record_violation(entity.id, make_violation(), ACTOR)
        with pytest.raises(InvalidTransitionError):
            await service.change_violation_status(violation.id, ViolationStatus.RESOLVED, ACTOR)

    async def test_missing_violation(self, service):
        with pytest.raises(NotFoundError):
            await service.resolve_violation(31337, None, ACTOR)


# ── Payments ──────────────────────────────────────────────────────────


class TestPayment:
    async def test_payment_recorded(self, service, entity, make_violation):
        violation = await service.record_violation(entity.id, make_violation(), ACTOR)
        paid = await service.record_payment(violation.id, ACTOR, payment_date=date(2026, 3, 12))

        assert paid.fine_paid is True
        assert paid.payment_date == date(2026, 3, 12)
        assert paid.status == ViolationStatus.UNDER_REVIEW
        assert len(await service.audit_by_action(AuditAction.FINE_PAID)) == 1
        assert await service.unpaid_violations() == []

    async def test_payment_defaults_to_today(self, service, entity, make_violation):
        violation = await service.record_violation(entity.id, make_violation(), ACTOR)
        paid = await service.record_payment(violation.id, ACTOR)
        assert paid.payment_date == date(2026, 3, 15)

    async def test_double_payment_rejected(self, service, entity, make_violation):
        violation = await service.record_violation(entity.id, make_violation(), ACTOR)
        await service.record_payment(violation.id, ACTOR)
        with pytest.raises(AlreadyProcessedError):
            await service.record_payment(violation.id, ACTOR)

    async def test_future_payment_rejected(self, service, entity, make_violation):
        violation = await service.record_violation(entity.id, make_violation(), ACTOR)
        with pytest.raises(ValidationError):
            await service.record_payment(violation.id, ACTOR, payment_date=date(2026, 3, 16))


# ── Flags & queries ───────────────────────────────────────────────────


class TestFlagsAndQueries:
    async def test_overdue_flags(self, service, entity, make_violation):
        violation = await service.record_violation(
            entity.id,
            make_violation(
                severity=ViolationSeverity.LOW,
                violation_date=date(2026, 3, 10),
                payment_due_date=date(2026, 3, 10),
                follow_up_date=date(2026, 3, 1),
            ),
            ACTOR,
        )
        flags = await service.violation_flags(violation.id)
        assert flags.days_since_violation == 5
        assert flags.fine_overdue is True
        assert flags.follow_up_overdue is True
        assert flags.requires_attention is True

        await service.record_payment(violation.id, ACTOR)
        assert (await service.violation_flags(violation.id)).fine_overdue is False

    async def test_quiet_violation_needs_no_attention(self, service, entity, make_violation):
        violation = await service.record_violation(
            entity.id,
            make_violation(severity=ViolationSeverity.LOW, violation_date=date(2026, 3, 14)),
            ACTOR,
        )
        flags = await service.violation_flags(violation.id)
        assert not (flags.fine_overdue or flags.follow_up_overdue or flags.requires_attention)

    async def test_requiring_attention_query(self, service, entity, make_violation):
        stale = await service.record_violation(
            entity.id,
            make_violation(severity=ViolationSeverity.LOW, violation_date=date(2026, 1, 1)),
            ACTOR,
        )
        critical = await service.record_violation(
            entity.id,
            make_violation(severity=ViolationSeverity.CRITICAL, violation_date=date(2026, 3, 2)),
            ACTOR,
        )
        await service.record_violation(
            entity.id,
            make_violation(severity=ViolationSeverity.LOW, violation_date=date(2026, 3, 14)),
            ACTOR,
        )

        assert [v.id for v in await service.violations_requiring_attention()] == [
            stale.id, critical.id,
        ]

        await service.resolve_violation(critical.id, None, ACTOR)
        assert [v.id for v in await service.violations_requiring_attention()] == [stale.id]

    async def test_listing(self, service, entity, make_violation):
        older = await service.record_violation(
            entity.id, make_violation(violation_date=date(2026, 2, 1)), ACTOR
        )
        newer = await service.record_violation(
            entity.id, make_violation(violation_date=date(2026, 3, 1), fine_amount=Decimal("0")),
            ACTOR,
        )
        assert [v.id for v in await service.violations_for_entity(entity.id)] == [newer.id, older.id]
        assert [v.id for v in await service.unpaid_violations()] == [older.id]

        await service.change_violation_status(newer.id, ViolationStatus.DISMISSED, ACTOR)
        assert [v.id for v in await service.active_violations()] == [older.id]

    async def test_listing_for_unknown_entity(self, service):
        with pytest.raises(NotFoundError):
            await service.violations_for_entity(404)
