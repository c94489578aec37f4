"""
Entity and violation validators — field checks run before anything persists.

Every rule is evaluated (no short-circuit) so the caller gets the full list
of problems in a stable order. Returns a ValidationResult; raising is the
caller's decision.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog

from regwatch.schemas.entity import EntityCreate
from regwatch.schemas.violation import ViolationCreate

logger = structlog.get_logger(__name__)

# Validation config
EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
PHONE_STRIP_PATTERN = re.compile(r"[\s\-().]+")
PHONE_DIGITS_PATTERN = re.compile(r"^\d{10,11}$")
STATE_PATTERN = re.compile(r"^[A-Za-z]{2}$")
ZIP_PATTERN = re.compile(r"^\d{5}(-\d{4})?$")


@dataclass
class ValidationIssue:
    """A single validation issue found in a candidate."""
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


@dataclass
class ValidationResult:
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def errors(self) -> list[str]:
        return [issue.message for issue in self.issues]

    def add(self, field_name: str, message: str) -> None:
        self.issues.append(ValidationIssue(field_name, message))

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": len(self.issues),
            "issues": [i.to_dict() for i in self.issues],
        }


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_DIGITS_PATTERN.match(PHONE_STRIP_PATTERN.sub("", phone)))


class EntityValidator:
    """Field-level checks for a candidate FinancialEntity."""

    def validate(
        self,
        candidate: EntityCreate,
        today: date,
        *,
        for_registration: bool = True,
    ) -> ValidationResult:
        """
        Validate a candidate entity.

        The license-expiry-in-the-past rule only applies at registration:
        an existing entity may legitimately hold a lapsed license.
        """
        result = ValidationResult()
        c = candidate

        # ── Required ──────────────────────────────────────────────────
        if _blank(c.name):
            result.add("name", "Entity name is required")
        if c.entity_type is None:
            result.add("entity_type", "Entity type is required")
        if _blank(c.license_number):
            result.add("license_number", "License number is required")
        if c.compliance_status is None:
            result.add("compliance_status", "Compliance status is required")
        if c.risk_level is None:
            result.add("risk_level", "Risk level is required")

        # ── Contact & address formats ─────────────────────────────────
        if not _blank(c.contact_email) and not is_valid_email(c.contact_email.strip()):
            result.add("contact_email", f"Invalid email format: {c.contact_email}")
        if not _blank(c.contact_phone) and not is_valid_phone(c.contact_phone):
            result.add("contact_phone", f"Invalid phone format: {c.contact_phone}")
        if not _blank(c.state) and not STATE_PATTERN.match(c.state.strip()):
            result.add("state", "State must be a 2-letter code")
        if not _blank(c.zip_code) and not ZIP_PATTERN.match(c.zip_code.strip()):
            result.add("zip_code", f"Invalid ZIP code format: {c.zip_code}")

        # ── Dates & financials ────────────────────────────────────────
        if for_registration and c.license_expiry is not None and c.license_expiry < today:
            result.add("license_expiry", "License expiry date cannot be in the past")
        if c.total_assets is not None and c.total_assets < 0:
            result.add("total_assets", "Total assets cannot be negative")
        if c.employee_count is not None and c.employee_count < 0:
            result.add("employee_count", "Employee count cannot be negative")

        if not result.is_valid:
            logger.info("entity_validation_failed", errors=result.errors)
        return result


class ViolationValidator:
    """Field-level checks for a violation about to be recorded."""

    def validate(self, candidate: ViolationCreate, today: date) -> ValidationResult:
        result = ValidationResult()
        c = candidate

        if _blank(c.violation_type):
            result.add("violation_type", "Violation type is required")
        if _blank(c.description):
            result.add("description", "Violation description is required")
        if c.severity is None:
            result.add("severity", "Violation severity is required")
        if c.violation_date is None:
            result.add("violation_date", "Violation date is required")
        elif c.violation_date > today:
            result.add("violation_date", "Violation date cannot be in the future")
        if c.fine_amount is not None and c.fine_amount < Decimal("0"):
            result.add("fine_amount", "Fine amount cannot be negative")

        if not result.is_valid:
            logger.info("violation_validation_failed", errors=result.errors)
        return result


def merged_candidate(current: dict[str, Any], changes: dict[str, Any]) -> EntityCreate:
    """Overlay ``changes`` on the current field values for re-validation."""
    data = {name: current.get(name) for name in EntityCreate.model_fields}
    data.update({k: v for k, v in changes.items() if k in EntityCreate.model_fields})
    return EntityCreate(**data)
