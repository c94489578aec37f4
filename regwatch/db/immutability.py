"""
Application-level guards for the append-only audit log.

Three hooks, all raising ImmutabilityViolation before any SQL is sent:
- flush: a dirty or deleted AuditEntry in the unit of work
- mapper: UPDATE / DELETE of an AuditEntry row during flush
- ORM execute: bulk ``update(AuditEntry)`` / ``delete(AuditEntry)`` statements

Database triggers (see models.py and the Alembic revision) back these up
for anything that bypasses the ORM.
"""

import structlog
from sqlalchemy import event
from sqlalchemy.orm import ORMExecuteState, Session

from regwatch.db.models import AuditEntry
from regwatch.errors import ImmutabilityViolation

logger = structlog.get_logger(__name__)


def _reject(operation: str, entry_id) -> None:
    logger.error("audit_immutability_violation", operation=operation, entry_id=entry_id)
    raise ImmutabilityViolation(
        f"Audit entries are append-only: {operation} of entry {entry_id} rejected",
        details={"operation": operation, "entry_id": entry_id},
    )


@event.listens_for(Session, "before_flush")
def _guard_audit_flush(session: Session, flush_context, instances) -> None:
    for obj in session.dirty:
        if isinstance(obj, AuditEntry) and session.is_modified(obj, include_collections=False):
            _reject("update", obj.id)
    for obj in session.deleted:
        if isinstance(obj, AuditEntry):
            _reject("delete", obj.id)


@event.listens_for(AuditEntry, "before_update")
def _guard_audit_update(mapper, connection, target: AuditEntry) -> None:
    _reject("update", target.id)


@event.listens_for(AuditEntry, "before_delete")
def _guard_audit_delete(mapper, connection, target: AuditEntry) -> None:
    _reject("delete", target.id)


@event.listens_for(Session, "do_orm_execute")
def _guard_audit_bulk(orm_execute_state: ORMExecuteState) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    table = getattr(orm_execute_state.statement, "table", None)
    if (mapper is not None and mapper.class_ is AuditEntry) or (
        getattr(table, "name", None) == AuditEntry.__tablename__
    ):
        _reject("bulk update" if orm_execute_state.is_update else "bulk delete", None)
