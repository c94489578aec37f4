"""
Alert notifier — the single write path for new alerts.

Used by the registry, lifecycle engine and violation tracker for
event-driven alerts, and by the alert engine for rule-driven ones.
Every alert created is paired with an ALERT_CREATED audit entry in the
same unit of work.
"""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.audit.log import AuditLog
from regwatch.db.models import AlertNotification
from regwatch.db.repositories.alert import AlertRepository, alert_repo
from regwatch.schemas.enums import AlertPriority, AlertType, AuditAction

logger = structlog.get_logger(__name__)


class AlertNotifier:
    def __init__(self, audit: AuditLog, repo: AlertRepository = alert_repo):
        self.audit = audit
        self.repo = repo

    async def emit(
        self,
        session: AsyncSession,
        *,
        entity_id: int,
        alert_type: AlertType,
        priority: AlertPriority,
        message: str,
        now: datetime,
        actor: str,
        violation_id: Optional[int] = None,
    ) -> AlertNotification:
        """Create an alert unconditionally."""
        alert = AlertNotification(
            entity_id=entity_id,
            violation_id=violation_id,
            alert_type=alert_type,
            priority=priority,
            message=message,
            created_at=now,
        )
        await self.repo.add(session, alert)
        await self._record(session, alert, now, actor)
        return alert

    async def emit_once(
        self,
        session: AsyncSession,
        *,
        dedup_key: str,
        entity_id: int,
        alert_type: AlertType,
        priority: AlertPriority,
        message: str,
        now: datetime,
        actor: str,
        violation_id: Optional[int] = None,
    ) -> Optional[AlertNotification]:
        """
        Create an alert unless an unresolved one already covers ``dedup_key``.

        Returns None for a duplicate.
        """
        alert_id = await self.repo.insert_if_absent(session, {
            "entity_id": entity_id,
            "violation_id": violation_id,
            "alert_type": alert_type,
            "priority": priority,
            "message": message,
            "created_at": now,
            "dedup_key": dedup_key,
        })
        if alert_id is None:
            logger.debug("alert_suppressed_duplicate", dedup_key=dedup_key)
            return None

        alert = await self.repo.get_by_id(session, alert_id)
        await self._record(session, alert, now, actor)
        return alert

    async def _record(
        self,
        session: AsyncSession,
        alert: AlertNotification,
        now: datetime,
        actor: str,
    ) -> None:
        await self.audit.append(
            session,
            action=AuditAction.ALERT_CREATED,
            entity_id=alert.entity_id,
            performed_by=actor,
            performed_at=now,
            details=alert.message,
            after={
                "alert_id": alert.id,
                "alert_type": alert.alert_type,
                "priority": alert.priority,
                "violation_id": alert.violation_id,
                "dedup_key": alert.dedup_key,
            },
        )
        logger.info(
            "alert_created",
            alert_id=alert.id,
            alert_type=str(alert.alert_type),
            priority=str(alert.priority),
            entity_id=alert.entity_id,
        )
