"""
Alert priority tables, dedup keys and message templates.

Dedup keys name the condition an alert covers. At most one unresolved
alert may hold a given key (enforced by a partial unique index).
"""

from datetime import date
from typing import Optional

from regwatch.schemas.enums import AlertPriority, ViolationSeverity

MAX_MESSAGE_LENGTH = 1000

# ── Priority tables ──────────────────────────────────────────────────────

# Alert raised when a violation is recorded (None = no alert)
VIOLATION_ALERT_PRIORITY: dict[ViolationSeverity, Optional[AlertPriority]] = {
    ViolationSeverity.CRITICAL: AlertPriority.URGENT,
    ViolationSeverity.HIGH: AlertPriority.HIGH,
    ViolationSeverity.MEDIUM: None,
    ViolationSeverity.LOW: None,
}

OVERDUE_VIOLATION_PRIORITY: dict[ViolationSeverity, AlertPriority] = {
    ViolationSeverity.CRITICAL: AlertPriority.URGENT,
    ViolationSeverity.HIGH: AlertPriority.HIGH,
    ViolationSeverity.MEDIUM: AlertPriority.MEDIUM,
    ViolationSeverity.LOW: AlertPriority.MEDIUM,
}

# (max days until expiry, priority), checked top-down
LICENSE_EXPIRY_BANDS: tuple[tuple[int, AlertPriority], ...] = (
    (7, AlertPriority.URGENT),
    (14, AlertPriority.HIGH),
)
LICENSE_EXPIRY_DEFAULT_PRIORITY = AlertPriority.MEDIUM

NEW_REGISTRATION_PRIORITY = AlertPriority.MEDIUM
REVIEW_DUE_PRIORITY = AlertPriority.MEDIUM
STATUS_CHANGE_PRIORITY = AlertPriority.HIGH
RISK_ESCALATION_PRIORITY = AlertPriority.HIGH


def license_expiry_priority(days_until_expiry: int) -> AlertPriority:
    for max_days, priority in LICENSE_EXPIRY_BANDS:
        if days_until_expiry <= max_days:
            return priority
    return LICENSE_EXPIRY_DEFAULT_PRIORITY


# ── Dedup keys ───────────────────────────────────────────────────────────


def review_due_key(entity_id: int) -> str:
    return f"review_due:{entity_id}"


def license_expiring_key(entity_id: int, expiry: date, raised_on: date) -> str:
    """
    Anchored on the day the alert is raised, so an unresolved alert only
    collides with same-day runs. Older open alerts are judged by the
    created-within window instead.
    """
    return f"license_expiring:{entity_id}:{expiry.isoformat()}:{raised_on.isoformat()}"


def overdue_violation_key(violation_id: int) -> str:
    return f"overdue_violation:{violation_id}"


# ── Messages ─────────────────────────────────────────────────────────────


def clip(message: str) -> str:
    if len(message) <= MAX_MESSAGE_LENGTH:
        return message
    return message[: MAX_MESSAGE_LENGTH - 3] + "..."


def new_registration_message(name: str, entity_type: str, license_number: str) -> str:
    return clip(f"New {entity_type} registered: {name} (license {license_number})")


def violation_message(name: str, severity: str, violation_type: str) -> str:
    return clip(f"{severity} violation recorded for {name}: {violation_type}")


def status_change_message(name: str, old: str, new: str) -> str:
    return clip(f"Compliance status for {name} changed from {old} to {new}")


def risk_escalation_message(name: str, old: str, new: str, reason: Optional[str]) -> str:
    message = f"Risk level for {name} escalated from {old} to {new}"
    if reason:
        message = f"{message}: {reason}"
    return clip(message)


def review_due_message(name: str, due: date) -> str:
    return clip(f"Compliance review overdue for {name} (was due {due.isoformat()})")


def license_expiring_message(name: str, license_number: str, expiry: date, days: int) -> str:
    return clip(
        f"License {license_number} for {name} expires on {expiry.isoformat()} "
        f"({days} days)"
    )


def overdue_violation_message(name: str, violation_id: int, violation_type: str, days: int) -> str:
    return clip(
        f"Violation #{violation_id} ({violation_type}) for {name} has been open for {days} days"
    )
