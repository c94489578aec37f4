"""
RegWatch SQLAlchemy Models.

Four tables: financial entities, compliance violations, alert notifications
and the append-only audit log. Works on SQLite (dev/tests) and PostgreSQL
(prod). The audit log is protected twice: ORM guards in
``regwatch.db.immutability`` and database triggers attached here.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    DDL,
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    event,
    false,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from regwatch.db.engine import Base
from regwatch.schemas.enums import (
    AlertPriority,
    AlertType,
    AuditAction,
    ComplianceStatus,
    EntityType,
    RiskLevel,
    ViolationSeverity,
    ViolationStatus,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _enum(enum_cls, length: int = 50) -> Enum:
    """Enum stored as a constrained VARCHAR on every backend."""
    return Enum(
        enum_cls,
        native_enum=False,
        create_constraint=True,
        length=length,
        name=f"ck_{enum_cls.__name__.lower()}",
    )


# ──────────────────────────────────────────────────────────────────────────────
# Entities
# ──────────────────────────────────────────────────────────────────────────────


class FinancialEntity(Base):
    """
    A regulated institution.

    ``version`` is the optimistic-lock counter: every UPDATE is issued as
    ``WHERE id = :id AND version = :seen`` and bumps it.
    """

    __tablename__ = "financial_entities"
    __table_args__ = (
        Index("ix_entities_type", "entity_type"),
        Index("ix_entities_status", "compliance_status"),
        Index("ix_entities_risk", "risk_level"),
        Index("ix_entities_next_review", "next_review_date"),
        Index("ix_entities_license_expiry", "license_expiry"),
        Index("ix_entities_active", "is_active"),
        CheckConstraint(
            "total_assets IS NULL OR total_assets >= 0", name="ck_entities_total_assets"
        ),
        CheckConstraint(
            "employee_count IS NULL OR employee_count >= 0", name="ck_entities_employee_count"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[EntityType] = mapped_column(_enum(EntityType), nullable=False)
    nmls_id: Mapped[Optional[str]] = mapped_column(String(50))
    dba_name: Mapped[Optional[str]] = mapped_column(String(255))

    primary_contact: Mapped[Optional[str]] = mapped_column(String(255))
    contact_email: Mapped[Optional[str]] = mapped_column(String(255))
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50))

    address_line1: Mapped[Optional[str]] = mapped_column(String(255))
    address_line2: Mapped[Optional[str]] = mapped_column(String(255))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(2))
    zip_code: Mapped[Optional[str]] = mapped_column(String(10))

    license_number: Mapped[str] = mapped_column(String(100), nullable=False)
    license_expiry: Mapped[Optional[date]] = mapped_column(Date)
    registration_date: Mapped[date] = mapped_column(Date, nullable=False)

    compliance_status: Mapped[ComplianceStatus] = mapped_column(
        _enum(ComplianceStatus), nullable=False, default=ComplianceStatus.PENDING_REVIEW
    )
    risk_level: Mapped[RiskLevel] = mapped_column(
        _enum(RiskLevel, length=20), nullable=False, default=RiskLevel.MEDIUM
    )
    last_review_date: Mapped[Optional[date]] = mapped_column(Date)
    next_review_date: Mapped[Optional[date]] = mapped_column(Date)

    total_assets: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2))
    employee_count: Mapped[Optional[int]] = mapped_column(Integer)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    modified_by: Mapped[Optional[str]] = mapped_column(String(100))

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    violations: Mapped[list["ComplianceViolation"]] = relationship(
        back_populates="entity", lazy="raise"
    )

    __mapper_args__ = {"version_id_col": version}


class ComplianceViolation(Base):
    """A recorded regulatory violation. Never deleted."""

    __tablename__ = "compliance_violations"
    __table_args__ = (
        Index("ix_violations_entity", "entity_id"),
        Index("ix_violations_status", "status"),
        Index("ix_violations_severity", "severity"),
        Index("ix_violations_date", "violation_date"),
        CheckConstraint("fine_amount >= 0", name="ck_violations_fine_amount"),
        CheckConstraint(
            "resolution_date IS NULL OR resolution_date >= violation_date",
            name="ck_violations_resolution_date",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("financial_entities.id"), nullable=False
    )

    violation_type: Mapped[str] = mapped_column(String(100), nullable=False)
    violation_code: Mapped[Optional[str]] = mapped_column(String(50))
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[ViolationSeverity] = mapped_column(
        _enum(ViolationSeverity, length=20), nullable=False
    )

    violation_date: Mapped[date] = mapped_column(Date, nullable=False)
    discovery_date: Mapped[date] = mapped_column(Date, nullable=False)
    reported_by: Mapped[Optional[str]] = mapped_column(String(100))

    fine_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0")
    )
    fine_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_due_date: Mapped[Optional[date]] = mapped_column(Date)
    payment_date: Mapped[Optional[date]] = mapped_column(Date)

    status: Mapped[ViolationStatus] = mapped_column(
        _enum(ViolationStatus), nullable=False, default=ViolationStatus.UNDER_REVIEW
    )
    resolution_date: Mapped[Optional[date]] = mapped_column(Date)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text)
    corrective_action: Mapped[Optional[str]] = mapped_column(Text)

    follow_up_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    follow_up_date: Mapped[Optional[date]] = mapped_column(Date)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    modified_by: Mapped[Optional[str]] = mapped_column(String(100))

    entity: Mapped[FinancialEntity] = relationship(back_populates="violations", lazy="raise")


# ──────────────────────────────────────────────────────────────────────────────
# Alerts
# ──────────────────────────────────────────────────────────────────────────────


class AlertNotification(Base):
    """
    Generated notification.

    ``dedup_key`` names the rule condition an alert covers. The partial
    unique index makes "at most one unresolved alert per condition" hold
    even when rule runs race.
    """

    __tablename__ = "alert_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("financial_entities.id"), nullable=False
    )
    violation_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("compliance_violations.id")
    )

    alert_type: Mapped[AlertType] = mapped_column(_enum(AlertType), nullable=False)
    priority: Mapped[AlertPriority] = mapped_column(
        _enum(AlertPriority, length=20), nullable=False
    )
    message: Mapped[str] = mapped_column(String(1000), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(100))
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    dedup_key: Mapped[Optional[str]] = mapped_column(String(200))

    __table_args__ = (
        Index("ix_alerts_entity", "entity_id"),
        Index("ix_alerts_violation", "violation_id"),
        Index("ix_alerts_type", "alert_type"),
        Index("ix_alerts_open", "resolved", "acknowledged"),
    )


Index(
    "uq_alerts_open_dedup_key",
    AlertNotification.dedup_key,
    unique=True,
    sqlite_where=AlertNotification.resolved == false(),
    postgresql_where=AlertNotification.resolved == false(),
)


# ──────────────────────────────────────────────────────────────────────────────
# Audit
# ──────────────────────────────────────────────────────────────────────────────


class AuditEntry(Base):
    """
    Immutable, append-only record of one state-changing action.

    CRITICAL: NO UPDATE, NO DELETE on this table. Ever.
    Chain hash: each entry includes hash of previous entry for tamper detection.
    """

    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_entity", "entity_id"),
        Index("ix_audit_performed_at", "performed_at"),
        Index("ix_audit_action", "action_type"),
        Index("ix_audit_performed_by", "performed_by"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("financial_entities.id")
    )
    action_type: Mapped[AuditAction] = mapped_column(_enum(AuditAction, length=100), nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text)
    before_value: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType)
    after_value: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType)
    performed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    performed_by: Mapped[str] = mapped_column(String(100), nullable=False)

    previous_hash: Mapped[Optional[str]] = mapped_column(String(64))
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)


# ── Storage-level audit immutability ─────────────────────────────────────

_SQLITE_AUDIT_TRIGGERS = (
    """
    CREATE TRIGGER IF NOT EXISTS trg_audit_log_no_update
    BEFORE UPDATE ON audit_log
    BEGIN
        SELECT RAISE(ABORT, 'audit_log is append-only: UPDATE not permitted');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_audit_log_no_delete
    BEFORE DELETE ON audit_log
    BEGIN
        SELECT RAISE(ABORT, 'audit_log is append-only: DELETE not permitted');
    END
    """,
)

POSTGRES_AUDIT_FUNCTION = """
CREATE OR REPLACE FUNCTION audit_log_reject_modification() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION 'audit_log is append-only: modification not permitted'
        USING ERRCODE = 'integrity_constraint_violation';
END;
$$ LANGUAGE plpgsql
"""

POSTGRES_AUDIT_TRIGGER = """
CREATE TRIGGER trg_audit_log_immutable
BEFORE UPDATE OR DELETE ON audit_log
FOR EACH ROW EXECUTE FUNCTION audit_log_reject_modification()
"""

for _statement in _SQLITE_AUDIT_TRIGGERS:
    event.listen(
        AuditEntry.__table__,
        "after_create",
        DDL(_statement).execute_if(dialect="sqlite"),
    )

event.listen(
    AuditEntry.__table__,
    "after_create",
    DDL(POSTGRES_AUDIT_FUNCTION).execute_if(dialect="postgresql"),
)
event.listen(
    AuditEntry.__table__,
    "after_create",
    DDL(POSTGRES_AUDIT_TRIGGER).execute_if(dialect="postgresql"),
)
