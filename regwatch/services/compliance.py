"""
ComplianceService — the public entry point of the lifecycle engine.

Each public method is one unit of work: it reads the clock once, opens one
transaction, runs the operation and every side effect (status and risk
changes, alerts, audit entries) inside it, and commits or rolls back as a
whole. Results are returned as Pydantic read models.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from regwatch.alerting.engine import AlertEngine
from regwatch.alerting.notifier import AlertNotifier
from regwatch.audit.log import AuditLog
from regwatch.clock import Clock, SystemClock
from regwatch.config import Settings
from regwatch.db.engine import unit_of_work
from regwatch.lifecycle.engine import RiskStatusEngine
from regwatch.registry.registry import EntityRegistry
from regwatch.schemas.alert import AlertRead, RuleRunResult
from regwatch.schemas.audit import AuditEntryRead, ChainIntegrityReport
from regwatch.schemas.entity import EntityCreate, EntityRead, EntityUpdate
from regwatch.schemas.enums import (
    AuditAction,
    ComplianceStatus,
    EntityType,
    RiskLevel,
    ViolationStatus,
)
from regwatch.schemas.report import (
    ComplianceScore,
    ComplianceSummary,
    PriorityBreakdownLine,
    SeverityBreakdownLine,
    UnpaidFineLine,
)
from regwatch.schemas.violation import ViolationCreate, ViolationFlags, ViolationRead
from regwatch.services.reporting import ReportingService
from regwatch.violations.tracker import ViolationTracker, flags_for


def _entities(rows) -> list[EntityRead]:
    return [EntityRead.model_validate(row) for row in rows]


def _violations(rows) -> list[ViolationRead]:
    return [ViolationRead.model_validate(row) for row in rows]


def _alerts(rows) -> list[AlertRead]:
    return [AlertRead.model_validate(row) for row in rows]


def _audit(rows) -> list[AuditEntryRead]:
    return [AuditEntryRead.model_validate(row) for row in rows]


class ComplianceService:
    """
    Facade over registry, lifecycle engine, violation tracker and alerts.

    The session factory and clock are injected; the service holds no other
    state, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.settings = settings or Settings()

        self.audit = AuditLog()
        self.notifier = AlertNotifier(self.audit)
        self.registry = EntityRegistry(self.audit, self.notifier)
        self.lifecycle = RiskStatusEngine(self.registry, self.audit, self.notifier)
        self.violations = ViolationTracker(
            self.registry, self.lifecycle, self.audit, self.notifier
        )
        self.alerts = AlertEngine(self.notifier, self.audit)
        self.reporting = ReportingService()

    def _unit_of_work(self):
        return unit_of_work(self.session_factory, self.settings.storage_timeout_seconds)

    def _today(self) -> date:
        return self.clock.now().date()

    # ── Entities ──────────────────────────────────────────────────────

    async def register_entity(self, candidate: EntityCreate, actor: str) -> EntityRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            entity = await self.registry.register(session, candidate, actor, now)
        return EntityRead.model_validate(entity)

    async def get_entity(self, entity_id: int) -> EntityRead:
        async with self._unit_of_work() as session:
            entity = await self.registry.get(session, entity_id)
        return EntityRead.model_validate(entity)

    async def update_entity(
        self,
        entity_id: int,
        changes: EntityUpdate,
        actor: str,
        expected_version: Optional[int] = None,
    ) -> EntityRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            entity = await self.registry.update(
                session, entity_id, changes, actor, now, expected_version
            )
        return EntityRead.model_validate(entity)

    async def deactivate_entity(
        self, entity_id: int, actor: str, expected_version: Optional[int] = None
    ) -> EntityRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            entity = await self.registry.deactivate(session, entity_id, actor, now, expected_version)
        return EntityRead.model_validate(entity)

    async def reinstate_entity(
        self, entity_id: int, actor: str, expected_version: Optional[int] = None
    ) -> EntityRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            entity = await self.registry.reinstate(session, entity_id, actor, now, expected_version)
        return EntityRead.model_validate(entity)

    async def list_entities(self, include_inactive: bool = False) -> list[EntityRead]:
        async with self._unit_of_work() as session:
            return _entities(await self.registry.list_all(session, include_inactive))

    async def find_by_type(
        self, entity_type: EntityType, include_inactive: bool = False
    ) -> list[EntityRead]:
        async with self._unit_of_work() as session:
            return _entities(await self.registry.by_type(session, entity_type, include_inactive))

    async def find_by_status(
        self, status: ComplianceStatus, include_inactive: bool = False
    ) -> list[EntityRead]:
        async with self._unit_of_work() as session:
            return _entities(await self.registry.by_status(session, status, include_inactive))

    async def find_by_risk_level(
        self, level: RiskLevel, include_inactive: bool = False
    ) -> list[EntityRead]:
        async with self._unit_of_work() as session:
            return _entities(await self.registry.by_risk_level(session, level, include_inactive))

    async def search_entities(self, term: str, include_inactive: bool = False) -> list[EntityRead]:
        async with self._unit_of_work() as session:
            return _entities(await self.registry.search_by_name(session, term, include_inactive))

    async def licenses_expiring_within(
        self, days: int, include_inactive: bool = False
    ) -> list[EntityRead]:
        today = self._today()
        async with self._unit_of_work() as session:
            return _entities(
                await self.registry.license_expiring_within(session, days, today, include_inactive)
            )

    async def overdue_reviews(self, include_inactive: bool = False) -> list[EntityRead]:
        today = self._today()
        async with self._unit_of_work() as session:
            return _entities(await self.registry.overdue_reviews(session, today, include_inactive))

    async def requiring_review_within(
        self, days: int, include_inactive: bool = False
    ) -> list[EntityRead]:
        today = self._today()
        async with self._unit_of_work() as session:
            return _entities(
                await self.registry.requiring_review_within(session, days, today, include_inactive)
            )

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def update_status(
        self,
        entity_id: int,
        new_status: ComplianceStatus,
        actor: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> EntityRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            entity = await self.lifecycle.update_status(
                session, entity_id, new_status, actor, now, reason, expected_version
            )
        return EntityRead.model_validate(entity)

    async def update_risk(
        self,
        entity_id: int,
        new_level: RiskLevel,
        actor: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> EntityRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            entity = await self.lifecycle.update_risk(
                session, entity_id, new_level, actor, now, reason, expected_version
            )
        return EntityRead.model_validate(entity)

    async def conduct_review(
        self,
        entity_id: int,
        actor: str,
        new_status: ComplianceStatus,
        new_risk: RiskLevel,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> EntityRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            entity = await self.lifecycle.conduct_review(
                session, entity_id, actor, now, new_status, new_risk, notes, expected_version
            )
        return EntityRead.model_validate(entity)

    async def renew_license(
        self,
        entity_id: int,
        new_expiry: date,
        actor: str,
        expected_version: Optional[int] = None,
    ) -> EntityRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            entity = await self.lifecycle.renew_license(
                session, entity_id, new_expiry, actor, now, expected_version
            )
        return EntityRead.model_validate(entity)

    async def suspend_license(
        self,
        entity_id: int,
        actor: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> EntityRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            entity = await self.lifecycle.suspend_license(
                session, entity_id, actor, now, reason, expected_version
            )
        return EntityRead.model_validate(entity)

    async def reinstate_license(
        self,
        entity_id: int,
        actor: str,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> EntityRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            entity = await self.lifecycle.reinstate_license(
                session, entity_id, actor, now, reason, expected_version
            )
        return EntityRead.model_validate(entity)

    async def compliance_score(
        self, entity_id: int, months_back: Optional[int] = None
    ) -> ComplianceScore:
        now = self.clock.now()
        months = months_back if months_back is not None else self.settings.score_lookback_months
        async with self._unit_of_work() as session:
            return await self.lifecycle.score(session, entity_id, months, now)

    # ── Violations ────────────────────────────────────────────────────

    async def record_violation(
        self, entity_id: int, data: ViolationCreate, actor: str
    ) -> ViolationRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            violation = await self.violations.record(session, entity_id, data, actor, now)
        return ViolationRead.model_validate(violation)

    async def resolve_violation(
        self, violation_id: int, notes: Optional[str], actor: str
    ) -> ViolationRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            violation = await self.violations.resolve(session, violation_id, notes, actor, now)
        return ViolationRead.model_validate(violation)

    async def change_violation_status(
        self,
        violation_id: int,
        new_status: ViolationStatus,
        actor: str,
        notes: Optional[str] = None,
    ) -> ViolationRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            violation = await self.violations.change_status(
                session, violation_id, new_status, actor, now, notes
            )
        return ViolationRead.model_validate(violation)

    async def record_payment(
        self, violation_id: int, actor: str, payment_date: Optional[date] = None
    ) -> ViolationRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            violation = await self.violations.record_payment(
                session, violation_id, payment_date, actor, now
            )
        return ViolationRead.model_validate(violation)

    async def get_violation(self, violation_id: int) -> ViolationRead:
        async with self._unit_of_work() as session:
            violation = await self.violations.get(session, violation_id)
        return ViolationRead.model_validate(violation)

    async def violation_flags(self, violation_id: int) -> ViolationFlags:
        today = self._today()
        async with self._unit_of_work() as session:
            violation = await self.violations.get(session, violation_id)
            return flags_for(violation, today)

    async def violations_for_entity(self, entity_id: int) -> list[ViolationRead]:
        async with self._unit_of_work() as session:
            return _violations(await self.violations.for_entity(session, entity_id))

    async def active_violations(self) -> list[ViolationRead]:
        async with self._unit_of_work() as session:
            return _violations(await self.violations.active(session))

    async def unpaid_violations(self) -> list[ViolationRead]:
        async with self._unit_of_work() as session:
            return _violations(await self.violations.unpaid(session))

    async def violations_requiring_attention(self) -> list[ViolationRead]:
        today = self._today()
        async with self._unit_of_work() as session:
            return _violations(await self.violations.requiring_attention(session, today))

    # ── Alerts ────────────────────────────────────────────────────────

    async def run_review_due_rule(self, actor: Optional[str] = None) -> RuleRunResult:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            return await self.alerts.run_review_due(
                session, now, actor or self.settings.scheduler_actor
            )

    async def run_license_expiring_rule(
        self, days_before: Optional[int] = None, actor: Optional[str] = None
    ) -> RuleRunResult:
        now = self.clock.now()
        days = days_before if days_before is not None else self.settings.license_expiry_warning_days
        async with self._unit_of_work() as session:
            return await self.alerts.run_license_expiring(
                session, now, actor or self.settings.scheduler_actor, days
            )

    async def run_overdue_violation_rule(
        self, days_overdue: Optional[int] = None, actor: Optional[str] = None
    ) -> RuleRunResult:
        now = self.clock.now()
        days = days_overdue if days_overdue is not None else self.settings.overdue_violation_days
        async with self._unit_of_work() as session:
            return await self.alerts.run_overdue_violations(
                session, now, actor or self.settings.scheduler_actor, days
            )

    async def acknowledge_alert(self, alert_id: int, actor: str) -> AlertRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            alert = await self.alerts.acknowledge(session, alert_id, actor, now)
        return AlertRead.model_validate(alert)

    async def resolve_alert(self, alert_id: int, notes: Optional[str], actor: str) -> AlertRead:
        now = self.clock.now()
        async with self._unit_of_work() as session:
            alert = await self.alerts.resolve(session, alert_id, notes, actor, now)
        return AlertRead.model_validate(alert)

    async def count_unacknowledged_alerts(self) -> int:
        async with self._unit_of_work() as session:
            return await self.alerts.count_unacknowledged(session)

    async def high_priority_alerts(self) -> list[AlertRead]:
        async with self._unit_of_work() as session:
            return _alerts(await self.alerts.high_priority_open(session))

    async def alerts_for_entity(
        self, entity_id: int, include_resolved: bool = True
    ) -> list[AlertRead]:
        async with self._unit_of_work() as session:
            return _alerts(await self.alerts.for_entity(session, entity_id, include_resolved))

    # ── Audit ─────────────────────────────────────────────────────────

    async def audit_trail(self, entity_id: int) -> list[AuditEntryRead]:
        async with self._unit_of_work() as session:
            return _audit(await self.audit.for_entity(session, entity_id))

    async def audit_in_range(self, start: datetime, end: datetime) -> list[AuditEntryRead]:
        async with self._unit_of_work() as session:
            return _audit(await self.audit.in_range(session, start, end))

    async def audit_by_action(self, action: AuditAction) -> list[AuditEntryRead]:
        async with self._unit_of_work() as session:
            return _audit(await self.audit.by_action(session, action))

    async def audit_by_actor(self, actor: str) -> list[AuditEntryRead]:
        async with self._unit_of_work() as session:
            return _audit(await self.audit.by_actor(session, actor))

    async def verify_audit_chain(self) -> ChainIntegrityReport:
        async with self._unit_of_work() as session:
            return await self.audit.verify_chain(session)

    # ── Reports ───────────────────────────────────────────────────────

    async def compliance_summary(self) -> ComplianceSummary:
        today = self._today()
        async with self._unit_of_work() as session:
            return await self.reporting.summary(
                session, today, self.settings.license_expiry_warning_days
            )

    async def unpaid_fines_by_entity(self) -> list[UnpaidFineLine]:
        async with self._unit_of_work() as session:
            return await self.reporting.unpaid_fines_by_entity(session)

    async def violation_severity_breakdown(self) -> list[SeverityBreakdownLine]:
        async with self._unit_of_work() as session:
            return await self.reporting.violation_severity_breakdown(session)

    async def alert_priority_breakdown(self) -> list[PriorityBreakdownLine]:
        async with self._unit_of_work() as session:
            return await self.reporting.alert_priority_breakdown(session)
