"""
Entity Registry — registration, descriptive updates, activation, lookups.

Lookup by id returns inactive entities too: violations, alerts and audit
history still need to resolve their owner after deactivation. Every list
query hides inactive entities unless ``include_inactive`` is set.
"""

from datetime import date, datetime, timedelta
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.alerting import rules as alert_rules
from regwatch.alerting.notifier import AlertNotifier
from regwatch.audit.log import AuditLog, snapshot
from regwatch.db.models import FinancialEntity
from regwatch.db.repositories.entity import EntityRepository, entity_repo
from regwatch.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from regwatch.lifecycle.schedule import next_review_date
from regwatch.registry.validator import EntityValidator, merged_candidate
from regwatch.schemas.entity import EntityCreate, EntityUpdate
from regwatch.schemas.enums import AlertType, AuditAction, ComplianceStatus, EntityType, RiskLevel

logger = structlog.get_logger(__name__)

REGISTRATION_SNAPSHOT_FIELDS = (
    "name",
    "entity_type",
    "license_number",
    "license_expiry",
    "registration_date",
    "compliance_status",
    "risk_level",
    "next_review_date",
    "is_active",
)

_STRIPPED_FIELDS = ("name", "license_number", "contact_email", "state", "zip_code")


def _normalise(data: dict) -> dict:
    for name in _STRIPPED_FIELDS:
        if isinstance(data.get(name), str):
            data[name] = data[name].strip()
    if isinstance(data.get("state"), str):
        data["state"] = data["state"].upper()
    return data


class EntityRegistry:
    """Owns the FinancialEntity lifecycle outside status and risk."""

    def __init__(
        self,
        audit: AuditLog,
        notifier: AlertNotifier,
        validator: Optional[EntityValidator] = None,
        repo: EntityRepository = entity_repo,
    ):
        self.audit = audit
        self.notifier = notifier
        self.validator = validator or EntityValidator()
        self.repo = repo

    # ── Writes ────────────────────────────────────────────────────────

    async def register(
        self,
        session: AsyncSession,
        candidate: EntityCreate,
        actor: str,
        now: datetime,
    ) -> FinancialEntity:
        """
        Validate and persist a new entity.

        Registration date defaults to today; the first review date comes
        from the Review Interval Table for the initial risk level.
        """
        today = now.date()
        result = self.validator.validate(candidate, today, for_registration=True)
        if not result.is_valid:
            raise ValidationError(result.errors)

        data = _normalise(candidate.model_dump())
        data["registration_date"] = data.get("registration_date") or today
        entity = FinancialEntity(
            **data,
            is_active=True,
            next_review_date=next_review_date(candidate.risk_level, today),
            created_at=now,
            created_by=actor,
        )
        await self.repo.add(session, entity)

        await self.audit.append(
            session,
            action=AuditAction.ENTITY_REGISTERED,
            entity_id=entity.id,
            performed_by=actor,
            performed_at=now,
            details=f"Registered {entity.entity_type} {entity.name}",
            after=snapshot(entity, REGISTRATION_SNAPSHOT_FIELDS),
        )
        await self.notifier.emit(
            session,
            entity_id=entity.id,
            alert_type=AlertType.NEW_REGISTRATION,
            priority=alert_rules.NEW_REGISTRATION_PRIORITY,
            message=alert_rules.new_registration_message(
                entity.name, str(entity.entity_type), entity.license_number
            ),
            now=now,
            actor=actor,
        )

        logger.info(
            "entity_registered",
            entity_id=entity.id,
            entity_type=str(entity.entity_type),
            actor=actor,
        )
        return entity

    async def update(
        self,
        session: AsyncSession,
        entity_id: int,
        changes: EntityUpdate,
        actor: str,
        now: datetime,
        expected_version: Optional[int] = None,
    ) -> FinancialEntity:
        """Apply descriptive changes after re-validating the merged entity."""
        entity = await self.get(
            session, entity_id, for_update=True, expected_version=expected_version
        )
        requested = _normalise(changes.model_dump(exclude_unset=True))

        current = {name: getattr(entity, name, None) for name in EntityCreate.model_fields}
        result = self.validator.validate(
            merged_candidate(current, requested), now.date(), for_registration=False
        )
        if not result.is_valid:
            raise ValidationError(result.errors)

        changed = {k: v for k, v in requested.items() if getattr(entity, k) != v}
        if not changed:
            logger.debug("entity_update_noop", entity_id=entity_id)
            return entity

        before = snapshot(entity, changed)
        for key, value in changed.items():
            setattr(entity, key, value)
        self.touch(entity, actor, now)
        await session.flush()

        await self.audit.append(
            session,
            action=AuditAction.ENTITY_UPDATED,
            entity_id=entity.id,
            performed_by=actor,
            performed_at=now,
            details=f"Updated fields: {', '.join(sorted(changed))}",
            before=before,
            after=snapshot(entity, changed),
        )
        logger.info("entity_updated", entity_id=entity_id, fields=sorted(changed), actor=actor)
        return entity

    async def deactivate(
        self,
        session: AsyncSession,
        entity_id: int,
        actor: str,
        now: datetime,
        expected_version: Optional[int] = None,
    ) -> FinancialEntity:
        return await self._set_active(
            session, entity_id, False, actor, now, expected_version
        )

    async def reinstate(
        self,
        session: AsyncSession,
        entity_id: int,
        actor: str,
        now: datetime,
        expected_version: Optional[int] = None,
    ) -> FinancialEntity:
        return await self._set_active(
            session, entity_id, True, actor, now, expected_version
        )

    async def _set_active(
        self,
        session: AsyncSession,
        entity_id: int,
        active: bool,
        actor: str,
        now: datetime,
        expected_version: Optional[int],
    ) -> FinancialEntity:
        entity = await self.get(
            session, entity_id, for_update=True, expected_version=expected_version
        )
        if entity.is_active == active:
            state = "ACTIVE" if active else "INACTIVE"
            raise InvalidTransitionError(state, state, f"entity {entity_id} is already {state.lower()}")

        entity.is_active = active
        self.touch(entity, actor, now)
        await session.flush()

        await self.audit.append(
            session,
            action=AuditAction.ENTITY_REINSTATED if active else AuditAction.ENTITY_DEACTIVATED,
            entity_id=entity.id,
            performed_by=actor,
            performed_at=now,
            details=f"Entity {'reinstated' if active else 'deactivated'}",
            before={"is_active": not active},
            after={"is_active": active},
        )
        logger.info(
            "entity_reinstated" if active else "entity_deactivated",
            entity_id=entity_id,
            actor=actor,
        )
        return entity

    @staticmethod
    def touch(entity: FinancialEntity, actor: str, now: datetime) -> None:
        entity.modified_at = now
        entity.modified_by = actor

    # ── Reads ─────────────────────────────────────────────────────────

    async def get(
        self,
        session: AsyncSession,
        entity_id: int,
        *,
        for_update: bool = False,
        expected_version: Optional[int] = None,
    ) -> FinancialEntity:
        """Fetch by id (active or not). ``for_update`` row-locks the entity."""
        entity = await self.repo.get_by_id(session, entity_id, for_update=for_update)
        if entity is None:
            raise NotFoundError("FinancialEntity", entity_id)
        if expected_version is not None and entity.version != expected_version:
            raise ConflictError(
                f"FinancialEntity {entity_id} is at version {entity.version}, "
                f"expected {expected_version}",
                details={"entity_id": entity_id, "version": entity.version},
            )
        return entity

    async def list_all(self, session: AsyncSession, include_inactive: bool = False):
        return await self.repo.list_all(session, include_inactive)

    async def by_type(
        self, session: AsyncSession, entity_type: EntityType, include_inactive: bool = False
    ) -> Sequence[FinancialEntity]:
        return await self.repo.by_type(session, entity_type, include_inactive)

    async def by_status(
        self, session: AsyncSession, status: ComplianceStatus, include_inactive: bool = False
    ) -> Sequence[FinancialEntity]:
        return await self.repo.by_status(session, status, include_inactive)

    async def by_risk_level(
        self, session: AsyncSession, level: RiskLevel, include_inactive: bool = False
    ) -> Sequence[FinancialEntity]:
        return await self.repo.by_risk_level(session, level, include_inactive)

    async def search_by_name(
        self, session: AsyncSession, term: str, include_inactive: bool = False
    ) -> Sequence[FinancialEntity]:
        if term is None or not term.strip():
            raise ValidationError(["Search term is required"])
        return await self.repo.search_by_name(session, term.strip(), include_inactive)

    async def license_expiring_within(
        self,
        session: AsyncSession,
        days: int,
        today: date,
        include_inactive: bool = False,
    ) -> Sequence[FinancialEntity]:
        """Licenses expiring in [today, today + days]."""
        if days < 0:
            raise ValidationError(["Days must be zero or greater"])
        return await self.repo.license_expiring_between(
            session, today, today + timedelta(days=days), include_inactive
        )

    async def overdue_reviews(
        self, session: AsyncSession, today: date, include_inactive: bool = False
    ) -> Sequence[FinancialEntity]:
        return await self.repo.review_before(session, today, include_inactive)

    async def requiring_review_within(
        self,
        session: AsyncSession,
        days: int,
        today: date,
        include_inactive: bool = False,
    ) -> Sequence[FinancialEntity]:
        """Next review due on or before today + days (overdue ones included)."""
        if days < 0:
            raise ValidationError(["Days must be zero or greater"])
        return await self.repo.review_on_or_before(
            session, today + timedelta(days=days), include_inactive
        )
