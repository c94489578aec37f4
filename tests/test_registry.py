"""
Tests for the Entity Registry.

Covers:
- Registration defaults, normalisation, audit and alert side effects
- Validation failures leave nothing behind
- Descriptive updates, no-op updates, optimistic version checks
- Deactivate / reinstate
- Filters, name search, license expiry and review windows
"""

from datetime import date
from decimal import Decimal

import pytest

from regwatch.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from regwatch.schemas.entity import EntityUpdate
from regwatch.schemas.enums import (
    AlertPriority,
    AlertType,
    AuditAction,
    ComplianceStatus,
    EntityType,
    RiskLevel,
)

pytestmark = pytest.mark.asyncio

ACTOR = "analyst@regwatch.test"


# ── Registration ──────────────────────────────────────────────────────


class TestRegister:
    async def test_defaults_and_normalisation(self, entity):
        assert entity.id is not None
        assert entity.is_active is True
        assert entity.registration_date == date(2026, 3, 15)
        assert entity.next_review_date == date(2027, 3, 15)
        assert entity.last_review_date is None
        assert entity.state == "MA"
        assert entity.version == 1
        assert entity.created_by == ACTOR

    async def test_explicit_registration_date_kept(self, service, make_entity):
        registered = await service.register_entity(
            make_entity(registration_date=date(2019, 7, 1)), ACTOR
        )
        assert registered.registration_date == date(2019, 7, 1)

    async def test_initial_review_follows_risk(self, service, make_entity):
        registered = await service.register_entity(
            make_entity(risk_level=RiskLevel.CRITICAL), ACTOR
        )
        assert registered.next_review_date == date(2026, 6, 15)

    async def test_audit_and_alert_written(self, service, entity):
        trail = await service.audit_trail(entity.id)
        assert [e.action_type for e in trail] == [
            AuditAction.ENTITY_REGISTERED,
            AuditAction.ALERT_CREATED,
        ]
        assert trail[0].after_value["compliance_status"] == "COMPLIANT"

        alerts = await service.alerts_for_entity(entity.id)
        assert len(alerts) == 1
        assert alerts[0].alert_type == AlertType.NEW_REGISTRATION
        assert alerts[0].priority == AlertPriority.MEDIUM
        assert "First Harbor Bank" in alerts[0].message

    async def test_invalid_candidate_persists_nothing(self, service, make_entity):
        with pytest.raises(ValidationError) as exc_info:
            await service.register_entity(
                make_entity(name="", contact_email="bad-email"), ACTOR
            )
        assert exc_info.value.errors == [
            "Entity name is required",
            "Invalid email format: bad-email",
        ]
        assert await service.list_entities(include_inactive=True) == []
        assert (await service.verify_audit_chain()).status == "empty"

    async def test_get_missing(self, service):
        with pytest.raises(NotFoundError):
            await service.get_entity(9999)


# ── Updates ───────────────────────────────────────────────────────────


class TestUpdate:
    async def test_changed_fields_audited(self, service, entity):
        updated = await service.update_entity(
            entity.id, EntityUpdate(city="Cambridge", employee_count=450), ACTOR
        )
        assert updated.city == "Cambridge"
        assert updated.employee_count == 450
        assert updated.version == 2
        assert updated.modified_by == ACTOR

        entries = await service.audit_by_action(AuditAction.ENTITY_UPDATED)
        assert len(entries) == 1
        assert entries[0].before_value == {"city": "Boston", "employee_count": 420}
        assert entries[0].after_value == {"city": "Cambridge", "employee_count": 450}

    async def test_invalid_update_rejected(self, service, entity):
        with pytest.raises(ValidationError, match="Invalid ZIP code format"):
            await service.update_entity(entity.id, EntityUpdate(zip_code="ABCDE"), ACTOR)
        assert (await service.get_entity(entity.id)).zip_code == "02110"

    async def test_lapsed_expiry_allowed_on_update(self, service, entity):
        updated = await service.update_entity(
            entity.id, EntityUpdate(license_expiry=date(2026, 1, 1)), ACTOR
        )
        assert updated.license_expiry == date(2026, 1, 1)

    async def test_noop_update_writes_nothing(self, service, entity):
        before = len(await service.audit_trail(entity.id))
        updated = await service.update_entity(entity.id, EntityUpdate(city="Boston"), ACTOR)
        assert updated.version == 1
        assert len(await service.audit_trail(entity.id)) == before

    async def test_stale_version_rejected(self, service, entity):
        await service.update_entity(entity.id, EntityUpdate(city="Salem"), ACTOR)
        with pytest.raises(ConflictError):
            await service.update_entity(
                entity.id, EntityUpdate(city="Lowell"), ACTOR, expected_version=1
            )
        assert (await service.get_entity(entity.id)).city == "Salem"

    async def test_matching_version_accepted(self, service, entity):
        updated = await service.update_entity(
            entity.id, EntityUpdate(total_assets=Decimal("99.50")), ACTOR, expected_version=1
        )
        assert updated.total_assets == Decimal("99.50")


# ── Activation ────────────────────────────────────────────────────────


class TestActivation:
    async def test_deactivate_hides_from_lists(self, service, entity):
        deactivated = await service.deactivate_entity(entity.id, ACTOR)
        assert deactivated.is_active is False

        assert await service.list_entities() == []
        assert [e.id for e in await service.list_entities(include_inactive=True)] == [entity.id]
        assert (await service.get_entity(entity.id)).is_active is False

    async def test_double_deactivate_rejected(self, service, entity):
        await service.deactivate_entity(entity.id, ACTOR)
        with pytest.raises(InvalidTransitionError):
            await service.deactivate_entity(entity.id, ACTOR)

    async def test_reinstate(self, service, entity):
        await service.deactivate_entity(entity.id, ACTOR)
        reinstated = await service.reinstate_entity(entity.id, ACTOR)
        assert reinstated.is_active is True

        actions = [e.action_type for e in await service.audit_trail(entity.id)]
        assert actions[-2:] == [AuditAction.ENTITY_DEACTIVATED, AuditAction.ENTITY_REINSTATED]

    async def test_reinstate_active_rejected(self, service, entity):
        with pytest.raises(InvalidTransitionError):
            await service.reinstate_entity(entity.id, ACTOR)


# ── Queries ───────────────────────────────────────────────────────────


class TestQueries:
    @pytest.fixture
    def portfolio(self, make_entity):
        return [
            make_entity(),
            make_entity(
                name="Granite State Credit Union",
                entity_type=EntityType.CREDIT_UNION,
                license_number="CU-7781",
                compliance_status=ComplianceStatus.PENDING_REVIEW,
                risk_level=RiskLevel.HIGH,
                license_expiry=date(2026, 4, 1),
            ),
            make_entity(
                name="100% Remit Co",
                entity_type=EntityType.MSB,
                license_number="MSB-55",
                risk_level=RiskLevel.MEDIUM,
                license_expiry=None,
            ),
        ]

    async def _register_all(self, service, portfolio):
        return [await service.register_entity(c, ACTOR) for c in portfolio]

    async def test_filters(self, service, portfolio):
        bank, credit_union, msb = await self._register_all(service, portfolio)

        assert [e.id for e in await service.find_by_type(EntityType.CREDIT_UNION)] == [credit_union.id]
        assert [e.id for e in await service.find_by_status(ComplianceStatus.COMPLIANT)] == [
            msb.id, bank.id,
        ]
        assert [e.id for e in await service.find_by_risk_level(RiskLevel.MEDIUM)] == [msb.id]

    async def test_search_is_case_insensitive_substring(self, service, portfolio):
        bank, _, _ = await self._register_all(service, portfolio)
        assert [e.id for e in await service.search_entities("HARBOR")] == [bank.id]

    async def test_search_treats_wildcards_literally(self, service, portfolio):
        _, _, msb = await self._register_all(service, portfolio)
        assert [e.id for e in await service.search_entities("%")] == [msb.id]

    async def test_blank_search_rejected(self, service):
        with pytest.raises(ValidationError, match="Search term is required"):
            await service.search_entities("  ")

    async def test_license_expiring_within(self, service, portfolio):
        _, credit_union, _ = await self._register_all(service, portfolio)
        assert [e.id for e in await service.licenses_expiring_within(30)] == [credit_union.id]
        assert len(await service.licenses_expiring_within(500)) == 2
        with pytest.raises(ValidationError):
            await service.licenses_expiring_within(-1)

    async def test_inactive_excluded_from_expiry_window(self, service, portfolio):
        _, credit_union, _ = await self._register_all(service, portfolio)
        await service.deactivate_entity(credit_union.id, ACTOR)
        assert await service.licenses_expiring_within(30) == []
        assert len(await service.licenses_expiring_within(30, include_inactive=True)) == 1

    async def test_review_windows(self, service, clock, portfolio):
        bank, credit_union, msb = await self._register_all(service, portfolio)
        # HIGH reviews 2026-09-15, LOW / MEDIUM 2027-03-15
        assert await service.overdue_reviews() == []
        assert [e.id for e in await service.requiring_review_within(184)] == [credit_union.id]

        clock.advance(days=200)
        assert [e.id for e in await service.overdue_reviews()] == [credit_union.id]
        assert len(await service.requiring_review_within(365)) == 3
