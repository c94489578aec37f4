"""Pydantic schemas for ComplianceViolation resource."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from regwatch.schemas.enums import ViolationSeverity, ViolationStatus


class ViolationCreate(BaseModel):
    violation_type: Optional[str] = None
    violation_code: Optional[str] = None
    description: Optional[str] = None
    severity: Optional[ViolationSeverity] = None
    violation_date: Optional[date] = None
    discovery_date: Optional[date] = None
    reported_by: Optional[str] = None
    fine_amount: Optional[Decimal] = None
    payment_due_date: Optional[date] = None
    corrective_action: Optional[str] = None
    follow_up_date: Optional[date] = None


class ViolationRead(BaseModel):
    id: int
    entity_id: int
    violation_type: str
    violation_code: Optional[str]
    description: str
    severity: ViolationSeverity
    violation_date: date
    discovery_date: Optional[date]
    reported_by: Optional[str]
    fine_amount: Optional[Decimal]
    fine_paid: bool
    payment_due_date: Optional[date]
    payment_date: Optional[date]
    status: ViolationStatus
    resolution_date: Optional[date]
    resolution_notes: Optional[str]
    corrective_action: Optional[str]
    follow_up_required: bool
    follow_up_date: Optional[date]
    created_at: datetime
    created_by: str
    modified_at: Optional[datetime]
    modified_by: Optional[str]

    model_config = {"from_attributes": True}


class ViolationFlags(BaseModel):
    """Derived attention flags for one violation, evaluated as of a date."""
    violation_id: int
    as_of: date
    days_since_violation: int
    fine_overdue: bool
    follow_up_overdue: bool
    requires_attention: bool
