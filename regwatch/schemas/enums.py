"""
Domain enums.

Values equal member names so they persist as readable strings. RiskLevel,
ViolationSeverity and AlertPriority are totally ordered through ``rank``;
never compare them with ``<`` directly, that compares the strings.
"""

from enum import StrEnum


class EntityType(StrEnum):
    BANK = "BANK"
    INSURANCE = "INSURANCE"
    MSB = "MSB"                     # Money services business
    FINTECH = "FINTECH"
    CREDIT_UNION = "CREDIT_UNION"
    BROKER_DEALER = "BROKER_DEALER"


class ComplianceStatus(StrEnum):
    COMPLIANT = "COMPLIANT"
    NON_COMPLIANT = "NON_COMPLIANT"
    PENDING_REVIEW = "PENDING_REVIEW"
    UNDER_INVESTIGATION = "UNDER_INVESTIGATION"
    PROBATION = "PROBATION"
    SUSPENDED = "SUSPENDED"


class RiskLevel(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


class ViolationSeverity(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


class ViolationStatus(StrEnum):
    UNDER_REVIEW = "UNDER_REVIEW"
    CONFIRMED = "CONFIRMED"
    RESOLVED = "RESOLVED"
    APPEALED = "APPEALED"
    DISMISSED = "DISMISSED"

    @property
    def is_active(self) -> bool:
        return self not in (ViolationStatus.RESOLVED, ViolationStatus.DISMISSED)


class AlertType(StrEnum):
    NEW_REGISTRATION = "NEW_REGISTRATION"
    VIOLATION = "VIOLATION"
    OVERDUE_VIOLATION = "OVERDUE_VIOLATION"
    LICENSE_EXPIRING = "LICENSE_EXPIRING"
    REVIEW_DUE = "REVIEW_DUE"
    RISK_ESCALATION = "RISK_ESCALATION"
    STATUS_CHANGE = "STATUS_CHANGE"


class AlertPriority(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


class AuditAction(StrEnum):
    ENTITY_REGISTERED = "ENTITY_REGISTERED"
    ENTITY_UPDATED = "ENTITY_UPDATED"
    ENTITY_DEACTIVATED = "ENTITY_DEACTIVATED"
    ENTITY_REINSTATED = "ENTITY_REINSTATED"
    STATUS_UPDATED = "STATUS_UPDATED"
    RISK_ESCALATED = "RISK_ESCALATED"
    REVIEW_CONDUCTED = "REVIEW_CONDUCTED"
    LICENSE_RENEWED = "LICENSE_RENEWED"
    VIOLATION_RECORDED = "VIOLATION_RECORDED"
    VIOLATION_STATUS_CHANGED = "VIOLATION_STATUS_CHANGED"
    VIOLATION_RESOLVED = "VIOLATION_RESOLVED"
    FINE_PAID = "FINE_PAID"
    ALERT_CREATED = "ALERT_CREATED"
    ALERT_ACKNOWLEDGED = "ALERT_ACKNOWLEDGED"
    ALERT_RESOLVED = "ALERT_RESOLVED"


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}

_SEVERITY_RANK = {
    ViolationSeverity.LOW: 0,
    ViolationSeverity.MEDIUM: 1,
    ViolationSeverity.HIGH: 2,
    ViolationSeverity.CRITICAL: 3,
}

_PRIORITY_RANK = {
    AlertPriority.LOW: 0,
    AlertPriority.MEDIUM: 1,
    AlertPriority.HIGH: 2,
    AlertPriority.URGENT: 3,
}
