"""
Lifecycle Rules — the status machine and escalation tables.

All policy lives in plain tables so it can be read at a glance and checked
exhaustively. The engine only looks things up here.
"""

from enum import StrEnum
from typing import Optional

from regwatch.schemas.enums import (
    ComplianceStatus,
    RiskLevel,
    ViolationSeverity,
    ViolationStatus,
)


class TransitionOutcome(StrEnum):
    ALLOWED = "allowed"
    FLAGGED = "flagged"         # Proceeds, with a warning in the audit trail
    FORBIDDEN = "forbidden"


class RiskChange(StrEnum):
    ESCALATION = "escalation"
    DE_ESCALATION = "de_escalation"
    UNCHANGED = "unchanged"


# ── Compliance status machine ─────────────────────────────────────────────

_STATUS_EXCEPTIONS: dict[tuple[ComplianceStatus, ComplianceStatus], TransitionOutcome] = {
    (ComplianceStatus.SUSPENDED, ComplianceStatus.COMPLIANT): TransitionOutcome.FORBIDDEN,
    (ComplianceStatus.UNDER_INVESTIGATION, ComplianceStatus.COMPLIANT): TransitionOutcome.FLAGGED,
}

STATUS_TRANSITIONS: dict[ComplianceStatus, dict[ComplianceStatus, TransitionOutcome]] = {
    current: {
        target: _STATUS_EXCEPTIONS.get((current, target), TransitionOutcome.ALLOWED)
        for target in ComplianceStatus
    }
    for current in ComplianceStatus
}

TRANSITION_NOTES: dict[tuple[ComplianceStatus, ComplianceStatus], str] = {
    (ComplianceStatus.SUSPENDED, ComplianceStatus.COMPLIANT):
        "suspended entities must be reinstated to PENDING_REVIEW first",
    (ComplianceStatus.UNDER_INVESTIGATION, ComplianceStatus.COMPLIANT):
        "WARNING: UNDER_INVESTIGATION -> COMPLIANT requires secondary review",
}

# Entering one of these raises a STATUS_CHANGE alert
STATUS_CHANGE_ALERT_STATUSES: frozenset[ComplianceStatus] = frozenset({
    ComplianceStatus.NON_COMPLIANT,
    ComplianceStatus.UNDER_INVESTIGATION,
    ComplianceStatus.SUSPENDED,
})


def check_status_transition(
    current: ComplianceStatus, target: ComplianceStatus
) -> TransitionOutcome:
    return STATUS_TRANSITIONS[current][target]


def transition_note(current: ComplianceStatus, target: ComplianceStatus) -> Optional[str]:
    return TRANSITION_NOTES.get((current, target))


# ── Risk escalation ───────────────────────────────────────────────────────

# Reaching one of these by escalation raises a RISK_ESCALATION alert
RISK_ESCALATION_ALERT_LEVELS: frozenset[RiskLevel] = frozenset({
    RiskLevel.HIGH,
    RiskLevel.CRITICAL,
})


def classify_risk_change(old: RiskLevel, new: RiskLevel) -> RiskChange:
    if new.rank > old.rank:
        return RiskChange.ESCALATION
    if new.rank < old.rank:
        return RiskChange.DE_ESCALATION
    return RiskChange.UNCHANGED


def requires_escalation_alert(old: RiskLevel, new: RiskLevel) -> bool:
    return (
        classify_risk_change(old, new) is RiskChange.ESCALATION
        and new in RISK_ESCALATION_ALERT_LEVELS
    )


# ── Violation-driven escalation ───────────────────────────────────────────

# Minimum risk level an entity is raised to when a violation is recorded
SEVERITY_RISK_FLOOR: dict[ViolationSeverity, Optional[RiskLevel]] = {
    ViolationSeverity.CRITICAL: RiskLevel.CRITICAL,
    ViolationSeverity.HIGH: RiskLevel.HIGH,
    ViolationSeverity.MEDIUM: None,
    ViolationSeverity.LOW: None,
}

# Status a violation pushes an entity out of, and where it lands
VIOLATION_STATUS_EFFECT: dict[ComplianceStatus, ComplianceStatus] = {
    ComplianceStatus.COMPLIANT: ComplianceStatus.NON_COMPLIANT,
}


def risk_after_violation(
    severity: ViolationSeverity, current: RiskLevel
) -> Optional[RiskLevel]:
    """New risk level after a violation, or None when risk stays put."""
    floor = SEVERITY_RISK_FLOOR[severity]
    if floor is not None and floor.rank > current.rank:
        return floor
    return None


def status_after_violation(current: ComplianceStatus) -> Optional[ComplianceStatus]:
    return VIOLATION_STATUS_EFFECT.get(current)


# ── Violation status machine ──────────────────────────────────────────────

# RESOLVED and DISMISSED are terminal
VIOLATION_TRANSITIONS: dict[ViolationStatus, frozenset[ViolationStatus]] = {
    ViolationStatus.UNDER_REVIEW: frozenset({
        ViolationStatus.CONFIRMED,
        ViolationStatus.APPEALED,
        ViolationStatus.DISMISSED,
        ViolationStatus.RESOLVED,
    }),
    ViolationStatus.CONFIRMED: frozenset({
        ViolationStatus.APPEALED,
        ViolationStatus.DISMISSED,
        ViolationStatus.RESOLVED,
    }),
    ViolationStatus.APPEALED: frozenset({
        ViolationStatus.CONFIRMED,
        ViolationStatus.DISMISSED,
        ViolationStatus.RESOLVED,
    }),
    ViolationStatus.RESOLVED: frozenset(),
    ViolationStatus.DISMISSED: frozenset(),
}


def violation_transition_allowed(current: ViolationStatus, target: ViolationStatus) -> bool:
    return target in VIOLATION_TRANSITIONS[current]
