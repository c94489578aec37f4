"""Compliance schema — entities, violations, alerts, append-only audit log.

Creates the four RegWatch tables, their indexes, the partial unique index
that keeps one unresolved alert per dedup key, and the trigger that rejects
UPDATE and DELETE on audit_log.

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261018_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ──────────────────────────────────────────────────────────────────────
    # 1. Financial entities
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS financial_entities (
        id                  SERIAL PRIMARY KEY,
        name                VARCHAR(255) NOT NULL,
        entity_type         VARCHAR(50) NOT NULL CONSTRAINT ck_entitytype CHECK (
                                entity_type IN ('BANK', 'INSURANCE', 'MSB', 'FINTECH',
                                                'CREDIT_UNION', 'BROKER_DEALER')),
        nmls_id             VARCHAR(50),
        dba_name            VARCHAR(255),
        primary_contact     VARCHAR(255),
        contact_email       VARCHAR(255),
        contact_phone       VARCHAR(50),
        address_line1       VARCHAR(255),
        address_line2       VARCHAR(255),
        city                VARCHAR(100),
        state               VARCHAR(2),
        zip_code            VARCHAR(10),
        license_number      VARCHAR(100) NOT NULL,
        license_expiry      DATE,
        registration_date   DATE NOT NULL,
        compliance_status   VARCHAR(50) NOT NULL DEFAULT 'PENDING_REVIEW'
                                CONSTRAINT ck_compliancestatus CHECK (
                                compliance_status IN ('COMPLIANT', 'NON_COMPLIANT',
                                                      'PENDING_REVIEW', 'UNDER_INVESTIGATION',
                                                      'PROBATION', 'SUSPENDED')),
        risk_level          VARCHAR(20) NOT NULL DEFAULT 'MEDIUM'
                                CONSTRAINT ck_risklevel CHECK (
                                risk_level IN ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')),
        last_review_date    DATE,
        next_review_date    DATE,
        total_assets        NUMERIC(18, 2) CONSTRAINT ck_entities_total_assets
                                CHECK (total_assets IS NULL OR total_assets >= 0),
        employee_count      INTEGER CONSTRAINT ck_entities_employee_count
                                CHECK (employee_count IS NULL OR employee_count >= 0),
        is_active           BOOLEAN NOT NULL DEFAULT TRUE,
        notes               TEXT,
        created_at          TIMESTAMP NOT NULL,
        created_by          VARCHAR(100) NOT NULL,
        modified_at         TIMESTAMP,
        modified_by         VARCHAR(100),
        version             INTEGER NOT NULL DEFAULT 1
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_entities_type ON financial_entities(entity_type)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_entities_status ON financial_entities(compliance_status)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_entities_risk ON financial_entities(risk_level)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_entities_next_review ON financial_entities(next_review_date)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_entities_license_expiry ON financial_entities(license_expiry)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_entities_active ON financial_entities(is_active)")

    # ──────────────────────────────────────────────────────────────────────
    # 2. Compliance violations
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS compliance_violations (
        id                  SERIAL PRIMARY KEY,
        entity_id           INTEGER NOT NULL REFERENCES financial_entities(id),
        violation_type      VARCHAR(100) NOT NULL,
        violation_code      VARCHAR(50),
        description         TEXT NOT NULL,
        severity            VARCHAR(20) NOT NULL CONSTRAINT ck_violationseverity CHECK (
                                severity IN ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')),
        violation_date      DATE NOT NULL,
        discovery_date      DATE NOT NULL,
        reported_by         VARCHAR(100),
        fine_amount         NUMERIC(18, 2) NOT NULL DEFAULT 0
                                CONSTRAINT ck_violations_fine_amount CHECK (fine_amount >= 0),
        fine_paid           BOOLEAN NOT NULL DEFAULT FALSE,
        payment_due_date    DATE,
        payment_date        DATE,
        status              VARCHAR(50) NOT NULL DEFAULT 'UNDER_REVIEW'
                                CONSTRAINT ck_violationstatus CHECK (
                                status IN ('UNDER_REVIEW', 'CONFIRMED', 'APPEALED',
                                           'RESOLVED', 'DISMISSED')),
        resolution_date     DATE,
        resolution_notes    TEXT,
        corrective_action   TEXT,
        follow_up_required  BOOLEAN NOT NULL DEFAULT TRUE,
        follow_up_date      DATE,
        created_at          TIMESTAMP NOT NULL,
        created_by          VARCHAR(100) NOT NULL,
        modified_at         TIMESTAMP,
        modified_by         VARCHAR(100),
        CONSTRAINT ck_violations_resolution_date
            CHECK (resolution_date IS NULL OR resolution_date >= violation_date)
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_violations_entity ON compliance_violations(entity_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_violations_status ON compliance_violations(status)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_violations_severity ON compliance_violations(severity)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_violations_date ON compliance_violations(violation_date)")

    # ──────────────────────────────────────────────────────────────────────
    # 3. Alert notifications
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS alert_notifications (
        id                  SERIAL PRIMARY KEY,
        entity_id           INTEGER NOT NULL REFERENCES financial_entities(id),
        violation_id        INTEGER REFERENCES compliance_violations(id),
        alert_type          VARCHAR(50) NOT NULL CONSTRAINT ck_alerttype CHECK (
                                alert_type IN ('NEW_REGISTRATION', 'VIOLATION', 'REVIEW_DUE',
                                               'LICENSE_EXPIRING', 'OVERDUE_VIOLATION',
                                               'STATUS_CHANGE', 'RISK_ESCALATION')),
        priority            VARCHAR(20) NOT NULL CONSTRAINT ck_alertpriority CHECK (
                                priority IN ('LOW', 'MEDIUM', 'HIGH', 'URGENT')),
        message             VARCHAR(1000) NOT NULL,
        created_at          TIMESTAMP NOT NULL,
        acknowledged        BOOLEAN NOT NULL DEFAULT FALSE,
        acknowledged_by     VARCHAR(100),
        acknowledged_at     TIMESTAMP,
        resolved            BOOLEAN NOT NULL DEFAULT FALSE,
        resolved_at         TIMESTAMP,
        notes               TEXT,
        dedup_key           VARCHAR(200)
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_alerts_entity ON alert_notifications(entity_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_alerts_violation ON alert_notifications(violation_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_alerts_type ON alert_notifications(alert_type)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_alerts_open ON alert_notifications(resolved, acknowledged)")
    op.execute("""
    CREATE UNIQUE INDEX IF NOT EXISTS uq_alerts_open_dedup_key
        ON alert_notifications(dedup_key) WHERE resolved = false
    """)

    # ──────────────────────────────────────────────────────────────────────
    # 4. Audit log (append-only)
    # ──────────────────────────────────────────────────────────────────────
    op.execute("""
    CREATE TABLE IF NOT EXISTS audit_log (
        id                  SERIAL PRIMARY KEY,
        entity_id           INTEGER REFERENCES financial_entities(id),
        action_type         VARCHAR(100) NOT NULL CONSTRAINT ck_auditaction CHECK (
                                action_type IN ('ENTITY_REGISTERED', 'ENTITY_UPDATED',
                                                'ENTITY_DEACTIVATED', 'ENTITY_REINSTATED',
                                                'STATUS_UPDATED', 'RISK_ESCALATED',
                                                'REVIEW_CONDUCTED', 'LICENSE_RENEWED',
                                                'VIOLATION_RECORDED', 'VIOLATION_STATUS_CHANGED',
                                                'VIOLATION_RESOLVED', 'FINE_PAID',
                                                'ALERT_CREATED', 'ALERT_ACKNOWLEDGED',
                                                'ALERT_RESOLVED')),
        details             TEXT,
        before_value        JSONB,
        after_value         JSONB,
        performed_at        TIMESTAMP NOT NULL,
        performed_by        VARCHAR(100) NOT NULL,
        previous_hash       VARCHAR(64),
        entry_hash          VARCHAR(64) NOT NULL
    )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_audit_entity ON audit_log(entity_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_audit_performed_at ON audit_log(performed_at)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_audit_action ON audit_log(action_type)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_audit_performed_by ON audit_log(performed_by)")

    op.execute("""
    CREATE OR REPLACE FUNCTION audit_log_reject_modification() RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION 'audit_log is append-only: modification not permitted'
            USING ERRCODE = 'integrity_constraint_violation';
    END;
    $$ LANGUAGE plpgsql
    """)
    op.execute("""
    CREATE TRIGGER trg_audit_log_immutable
    BEFORE UPDATE OR DELETE ON audit_log
    FOR EACH ROW EXECUTE FUNCTION audit_log_reject_modification()
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_audit_log_immutable ON audit_log")
    op.execute("DROP FUNCTION IF EXISTS audit_log_reject_modification()")

    for tbl in ["audit_log", "alert_notifications", "compliance_violations", "financial_entities"]:
        op.execute(f"DROP TABLE IF EXISTS {tbl} CASCADE")
