"""
RegWatch — Compliance Lifecycle Engine for regulated financial institutions.

Architecture:
    regwatch/
    ├── db/              # SQLAlchemy models, engine, unit of work, repositories
    ├── schemas/         # Enums + Pydantic request/response models
    ├── audit/           # Append-only audit log with hash chain
    ├── registry/        # Entity validation and registry
    ├── lifecycle/       # Status machine, risk escalation, review schedule, scoring
    ├── violations/      # Violation tracker
    ├── alerting/        # Alert rules, notifier, acknowledge/resolve
    ├── services/        # ComplianceService facade, reporting
    └── scheduler.py     # APScheduler jobs for the alert rules

Module Boundaries:
    - Every operation runs in ONE unit of work: all effects commit or none do
    - Every state change writes exactly one audit entry per effect
    - Audit entries are never updated or deleted (ORM guards + DB triggers)
    - No module-level engine or session: the session factory is injected

Data Flow:
    caller → Validator → Registry / Violation Tracker → Risk & Status Engine
    → Alert notifier → Audit Log

Version: 1.0.0
"""

__version__ = "1.0.0"
