"""
RegWatch Audit Log.

Components:
- log: append-only AuditLog service with SHA-256 hash chain and chain verification
"""

from regwatch.audit.log import AuditLog, snapshot, to_jsonable

__all__ = ["AuditLog", "snapshot", "to_jsonable"]
