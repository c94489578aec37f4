"""
Tests for the Risk & Status Engine.

Covers:
- Status changes through the transition table (allowed, flagged, forbidden)
- STATUS_CHANGE alerts for the watched statuses
- Risk updates, review date recomputation, escalation alerts
- Reviews, license renewal, suspension and reinstatement
- Compliance score over the trailing window
"""

from datetime import date

import pytest

from regwatch.errors import InvalidTransitionError, NotFoundError, ValidationError
from regwatch.schemas.enums import (
    AlertPriority,
    AlertType,
    AuditAction,
    ComplianceStatus,
    RiskLevel,
    ViolationSeverity,
)

pytestmark = pytest.mark.asyncio

ACTOR = "supervisor@regwatch.test"


async def _alert_types(service, entity_id):
    return [a.alert_type for a in await service.alerts_for_entity(entity_id)]


# ── Status ────────────────────────────────────────────────────────────


class TestUpdateStatus:
    async def test_watched_status_raises_alert(self, service, entity):
        updated = await service.update_status(
            entity.id, ComplianceStatus.NON_COMPLIANT, ACTOR, reason="Exam findings"
        )
        assert updated.compliance_status == ComplianceStatus.NON_COMPLIANT
        assert updated.modified_by == ACTOR

        entries = await service.audit_by_action(AuditAction.STATUS_UPDATED)
        assert len(entries) == 1
        assert entries[0].before_value == {"compliance_status": "COMPLIANT"}
        assert entries[0].after_value == {"compliance_status": "NON_COMPLIANT"}
        assert "Exam findings" in entries[0].details

        alerts = [a for a in await service.alerts_for_entity(entity.id)
                  if a.alert_type == AlertType.STATUS_CHANGE]
        assert len(alerts) == 1
        assert alerts[0].priority == AlertPriority.HIGH

    async def test_unwatched_status_no_alert(self, service, entity):
        await service.update_status(entity.id, ComplianceStatus.PENDING_REVIEW, ACTOR)
        assert AlertType.STATUS_CHANGE not in await _alert_types(service, entity.id)

    async def test_forbidden_transition_changes_nothing(self, service, entity):
        await service.update_status(entity.id, ComplianceStatus.SUSPENDED, ACTOR)
        trail_before = await service.audit_trail(entity.id)

        with pytest.raises(InvalidTransitionError, match="SUSPENDED -> COMPLIANT"):
            await service.update_status(entity.id, ComplianceStatus.COMPLIANT, ACTOR)

        assert (await service.get_entity(entity.id)).compliance_status == ComplianceStatus.SUSPENDED
        assert len(await service.audit_trail(entity.id)) == len(trail_before)

    async def test_flagged_transition_proceeds_with_warning(self, service, entity):
        await service.update_status(entity.id, ComplianceStatus.UNDER_INVESTIGATION, ACTOR)
        updated = await service.update_status(entity.id, ComplianceStatus.COMPLIANT, ACTOR)
        assert updated.compliance_status == ComplianceStatus.COMPLIANT

        last = (await service.audit_by_action(AuditAction.STATUS_UPDATED))[-1]
        assert "secondary review" in last.details

    async def test_missing_entity(self, service):
        with pytest.raises(NotFoundError):
            await service.update_status(404, ComplianceStatus.COMPLIANT, ACTOR)


# ── Risk ──────────────────────────────────────────────────────────────


class TestUpdateRisk:
    async def test_escalation_to_high_alerts(self, service, entity):
        updated = await service.update_risk(entity.id, RiskLevel.HIGH, ACTOR, reason="Rapid growth")
        assert updated.risk_level == RiskLevel.HIGH
        assert updated.next_review_date == date(2026, 9, 15)

        entry = (await service.audit_by_action(AuditAction.RISK_ESCALATED))[-1]
        assert entry.before_value["risk_level"] == "LOW"
        assert entry.after_value == {"risk_level": "HIGH", "next_review_date": "2026-09-15"}

        alerts = [a for a in await service.alerts_for_entity(entity.id)
                  if a.alert_type == AlertType.RISK_ESCALATION]
        assert len(alerts) == 1
        assert alerts[0].priority == AlertPriority.HIGH
        assert "Rapid growth" in alerts[0].message

    async def test_minor_escalation_audited_without_alert(self, service, entity):
        updated = await service.update_risk(entity.id, RiskLevel.MEDIUM, ACTOR)
        assert updated.next_review_date == date(2027, 3, 15)
        assert len(await service.audit_by_action(AuditAction.RISK_ESCALATED)) == 1
        assert AlertType.RISK_ESCALATION not in await _alert_types(service, entity.id)

    async def test_de_escalation_extends_review_without_alert(self, service, make_entity):
        critical = await service.register_entity(
            make_entity(risk_level=RiskLevel.CRITICAL), ACTOR
        )
        updated = await service.update_risk(critical.id, RiskLevel.LOW, ACTOR)
        assert updated.next_review_date == date(2027, 3, 15)
        assert AlertType.RISK_ESCALATION not in await _alert_types(service, critical.id)


# ── Review ────────────────────────────────────────────────────────────


class TestConductReview:
    async def test_review_sets_dates_and_notes(self, service, entity):
        reviewed = await service.conduct_review(
            entity.id,
            "examiner@agency.example",
            ComplianceStatus.COMPLIANT,
            RiskLevel.HIGH,
            notes="Annual exam: BSA program adequate",
        )
        assert reviewed.last_review_date == date(2026, 3, 15)
        assert reviewed.next_review_date == date(2026, 9, 15)
        assert reviewed.risk_level == RiskLevel.HIGH
        assert reviewed.notes.endswith(
            "[2026-03-15] Review by examiner@agency.example:\nAnnual exam: BSA program adequate"
        )

        entry = (await service.audit_by_action(AuditAction.REVIEW_CONDUCTED))[0]
        assert entry.before_value["last_review_date"] is None
        assert entry.after_value["last_review_date"] == "2026-03-15"

    async def test_notes_accumulate(self, service, entity, clock):
        await service.conduct_review(
            entity.id, ACTOR, ComplianceStatus.COMPLIANT, RiskLevel.LOW, notes="First"
        )
        clock.advance(days=30)
        reviewed = await service.conduct_review(
            entity.id, ACTOR, ComplianceStatus.COMPLIANT, RiskLevel.LOW, notes="Second"
        )
        assert reviewed.notes.index("First") < reviewed.notes.index("Second")
        assert "[2026-04-14] Review by" in reviewed.notes


# ── License lifecycle ─────────────────────────────────────────────────


class TestLicense:
    async def test_renew(self, service, entity):
        renewed = await service.renew_license(entity.id, date(2028, 6, 30), ACTOR)
        assert renewed.license_expiry == date(2028, 6, 30)
        assert "2027-06-30 -> 2028-06-30" in renewed.notes

        entry = (await service.audit_by_action(AuditAction.LICENSE_RENEWED))[0]
        assert entry.before_value == {"license_expiry": "2027-06-30"}
        assert entry.after_value == {"license_expiry": "2028-06-30"}

    async def test_renew_into_past_rejected(self, service, entity):
        with pytest.raises(ValidationError):
            await service.renew_license(entity.id, date(2026, 3, 14), ACTOR)

    async def test_suspend_then_reinstate(self, service, entity):
        suspended = await service.suspend_license(entity.id, ACTOR, reason="Capital shortfall")
        assert suspended.compliance_status == ComplianceStatus.SUSPENDED
        assert AlertType.STATUS_CHANGE in await _alert_types(service, entity.id)

        reinstated = await service.reinstate_license(entity.id, ACTOR)
        assert reinstated.compliance_status == ComplianceStatus.PENDING_REVIEW

    async def test_reinstate_requires_suspension(self, service, entity):
        with pytest.raises(InvalidTransitionError):
            await service.reinstate_license(entity.id, ACTOR)


# ── Scoring ───────────────────────────────────────────────────────────


class TestComplianceScore:
    async def test_clean_entity(self, service, entity):
        score = await service.compliance_score(entity.id)
        assert score.score == 100
        assert score.rating == "Excellent"
        assert score.months_back == 12
        assert score.window_start == date(2025, 3, 15)

    async def test_window_limits_violations(self, service, entity, make_violation):
        for severity, when in [
            (ViolationSeverity.CRITICAL, date(2026, 3, 1)),
            (ViolationSeverity.HIGH, date(2026, 2, 1)),
            (ViolationSeverity.LOW, date(2025, 1, 1)),
        ]:
            await service.record_violation(
                entity.id, make_violation(severity=severity, violation_date=when), ACTOR
            )

        recent = await service.compliance_score(entity.id)
        assert (recent.critical_count, recent.high_count, recent.other_count) == (1, 1, 0)
        assert recent.score == 70
        assert recent.rating == "Fair"

        longer = await service.compliance_score(entity.id, months_back=24)
        assert longer.other_count == 1
        assert longer.score == 65

    async def test_invalid_window(self, service, entity):
        with pytest.raises(ValidationError):
            await service.compliance_score(entity.id, months_back=0)

    async def test_missing_entity(self, service):
        with pytest.raises(NotFoundError):
            await service.compliance_score(12345)
