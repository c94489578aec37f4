"""
Audit Log Service.

Immutable, append-only record of every state-changing action.
Each entry carries a SHA-256 hash chain for tamper detection.
"""

import hashlib
import json
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from regwatch.db.models import AuditEntry
from regwatch.db.repositories.audit import AuditRepository, audit_repo
from regwatch.schemas.audit import ChainBreak, ChainIntegrityReport
from regwatch.schemas.enums import AuditAction

logger = structlog.get_logger(__name__)

MAX_REPORTED_BREAKS = 10


def to_jsonable(value: Any) -> Any:
    """Normalise a snapshot to what the JSON column hands back on read."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def snapshot(obj: Any, fields: Iterable[str]) -> dict[str, Any]:
    """Capture the named attributes of ``obj`` as a JSON-ready dict."""
    return to_jsonable({name: getattr(obj, name) for name in fields})


def _compute_entry_hash(
    performed_at: str,
    action: str,
    entity_id: str,
    performed_by: str,
    details: str,
    before: Optional[dict],
    after: Optional[dict],
    previous_hash: str,
) -> str:
    """Compute SHA-256 hash of an audit entry for chain integrity."""
    payload = "|".join([
        performed_at,
        action,
        entity_id,
        performed_by,
        details,
        json.dumps(before, sort_keys=True),
        json.dumps(after, sort_keys=True),
        previous_hash,
    ])
    return hashlib.sha256(payload.encode()).hexdigest()


def _hash_of(entry: AuditEntry) -> str:
    return _compute_entry_hash(
        performed_at=entry.performed_at.isoformat(),
        action=str(entry.action_type),
        entity_id=str(entry.entity_id) if entry.entity_id is not None else "",
        performed_by=entry.performed_by,
        details=entry.details or "",
        before=entry.before_value,
        after=entry.after_value,
        previous_hash=entry.previous_hash or "",
    )


class AuditLog:
    """Append-only audit trail with hash chain integrity."""

    def __init__(self, repo: AuditRepository = audit_repo):
        self.repo = repo

    async def append(
        self,
        session: AsyncSession,
        *,
        action: AuditAction,
        performed_by: str,
        performed_at: datetime,
        entity_id: Optional[int] = None,
        details: Optional[str] = None,
        before: Optional[dict] = None,
        after: Optional[dict] = None,
    ) -> AuditEntry:
        """Record one action. The only write path into the audit table."""
        await self.repo.lock_chain(session)
        previous_hash = await self.repo.last_hash(session)

        entry = AuditEntry(
            entity_id=entity_id,
            action_type=action,
            details=details,
            before_value=to_jsonable(before),
            after_value=to_jsonable(after),
            performed_at=performed_at,
            performed_by=performed_by,
            previous_hash=previous_hash,
        )
        entry.entry_hash = _hash_of(entry)

        await self.repo.append(session, entry)

        logger.info(
            "audit_entry_appended",
            action=str(action),
            entity_id=entity_id,
            performed_by=performed_by,
        )
        return entry

    # ── Reads ─────────────────────────────────────────────────────────

    async def for_entity(self, session: AsyncSession, entity_id: int) -> Sequence[AuditEntry]:
        return await self.repo.for_entity(session, entity_id)

    async def in_range(
        self, session: AsyncSession, start: datetime, end: datetime
    ) -> Sequence[AuditEntry]:
        return await self.repo.in_range(session, start, end)

    async def by_action(self, session: AsyncSession, action: AuditAction) -> Sequence[AuditEntry]:
        return await self.repo.by_action(session, action)

    async def by_actor(self, session: AsyncSession, actor: str) -> Sequence[AuditEntry]:
        return await self.repo.by_actor(session, actor)

    async def verify_chain(self, session: AsyncSession) -> ChainIntegrityReport:
        """
        Verify the hash chain is unbroken.

        Returns a report with integrity status and any breaks found.
        """
        entries = await self.repo.all_in_order(session)
        if not entries:
            return ChainIntegrityReport(status="empty", total_entries=0, chain_intact=True)

        breaks: list[ChainBreak] = []
        previous_hash: Optional[str] = None

        for entry in entries:
            if entry.previous_hash != previous_hash:
                breaks.append(ChainBreak(
                    entry_id=entry.id,
                    issue="previous_hash_mismatch",
                    expected=previous_hash,
                    actual=entry.previous_hash,
                ))

            expected_hash = _hash_of(entry)
            if entry.entry_hash != expected_hash:
                breaks.append(ChainBreak(
                    entry_id=entry.id,
                    issue="entry_hash_mismatch",
                    expected=expected_hash,
                    actual=entry.entry_hash,
                ))

            previous_hash = entry.entry_hash

        if breaks:
            logger.warning("audit_chain_broken", breaks_found=len(breaks))

        return ChainIntegrityReport(
            status="intact" if not breaks else "broken",
            total_entries=len(entries),
            chain_intact=not breaks,
            breaks_found=len(breaks),
            breaks=breaks[:MAX_REPORTED_BREAKS],
        )
