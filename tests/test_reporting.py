"""
Tests for portfolio reports.

Portfolio:
- A: BANK, COMPLIANT / LOW, license expiring 2026-04-01, one unpaid MEDIUM fine
- B: CREDIT_UNION, PENDING_REVIEW / MEDIUM, one paid HIGH fine
- C: MSB, deactivated
"""

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio

from regwatch.schemas.enums import (
    ComplianceStatus,
    EntityType,
    RiskLevel,
    ViolationSeverity,
)

pytestmark = pytest.mark.asyncio

ACTOR = "analyst@regwatch.test"


@pytest_asyncio.fixture
async def portfolio(service, make_entity, make_violation):
    a = await service.register_entity(make_entity(license_expiry=date(2026, 4, 1)), ACTOR)
    await service.record_violation(a.id, make_violation(), ACTOR)

    b = await service.register_entity(
        make_entity(
            name="Pioneer Valley Credit Union",
            entity_type=EntityType.CREDIT_UNION,
            license_number="CU-3001",
            compliance_status=ComplianceStatus.PENDING_REVIEW,
            risk_level=RiskLevel.MEDIUM,
        ),
        ACTOR,
    )
    paid = await service.record_violation(
        b.id,
        make_violation(severity=ViolationSeverity.HIGH, fine_amount=Decimal("2500.50")),
        ACTOR,
    )
    await service.record_payment(paid.id, ACTOR)

    c = await service.register_entity(
        make_entity(name="Corner Remit", entity_type=EntityType.MSB, license_number="MSB-9"),
        ACTOR,
    )
    await service.deactivate_entity(c.id, ACTOR)
    return a, b, c


class TestSummary:
    async def test_empty_portfolio(self, service):
        summary = await service.compliance_summary()
        assert summary.total_entities == 0
        assert set(summary.by_status.values()) == {0}
        assert summary.unpaid_fine_total == Decimal("0")

    async def test_counts(self, service, portfolio):
        summary = await service.compliance_summary()

        assert summary.as_of == date(2026, 3, 15)
        assert summary.total_entities == 2
        assert summary.by_status == {
            "COMPLIANT": 0,
            "NON_COMPLIANT": 1,
            "PENDING_REVIEW": 1,
            "UNDER_INVESTIGATION": 0,
            "PROBATION": 0,
            "SUSPENDED": 0,
        }
        assert summary.by_risk_level == {"LOW": 1, "MEDIUM": 0, "HIGH": 1, "CRITICAL": 0}
        assert summary.by_entity_type["MSB"] == 0
        assert summary.licenses_expiring_soon == 1
        assert summary.overdue_reviews == 0
        assert summary.active_violations == 2
        assert summary.unpaid_fine_count == 1
        assert summary.unpaid_fine_total == Decimal("5000")
        assert summary.unresolved_alerts == 6
        assert summary.unacknowledged_alerts == 6

    async def test_acknowledged_alerts_leave_unacknowledged_count(self, service, portfolio):
        a, _, _ = portfolio
        alert = (await service.alerts_for_entity(a.id))[0]
        await service.acknowledge_alert(alert.id, ACTOR)

        summary = await service.compliance_summary()
        assert summary.unresolved_alerts == 6
        assert summary.unacknowledged_alerts == 5


class TestBreakdowns:
    async def test_unpaid_fines_by_entity(self, service, portfolio):
        a, _, _ = portfolio
        lines = await service.unpaid_fines_by_entity()
        assert len(lines) == 1
        assert lines[0].entity_id == a.id
        assert lines[0].entity_name == "First Harbor Bank"
        assert lines[0].unpaid_count == 1
        assert lines[0].unpaid_total == Decimal("5000")

    async def test_severity_breakdown(self, service, portfolio):
        lines = await service.violation_severity_breakdown()
        assert [line.severity for line in lines] == ["CRITICAL", "HIGH", "MEDIUM", "LOW"]
        by_severity = {line.severity: line for line in lines}
        assert (by_severity["HIGH"].total, by_severity["HIGH"].active) == (1, 1)
        assert by_severity["HIGH"].total_fines == Decimal("2500.50")
        assert by_severity["MEDIUM"].total_fines == Decimal("5000")
        assert by_severity["CRITICAL"].total == 0

    async def test_alert_priority_breakdown(self, service, portfolio):
        lines = await service.alert_priority_breakdown()
        assert [(line.priority, line.unresolved, line.unacknowledged) for line in lines] == [
            ("URGENT", 0, 0),
            ("HIGH", 3, 3),
            ("MEDIUM", 3, 3),
            ("LOW", 0, 0),
        ]
