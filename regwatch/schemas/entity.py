"""Pydantic schemas for FinancialEntity resource."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from regwatch.schemas.enums import ComplianceStatus, EntityType, RiskLevel


class EntityCreate(BaseModel):
    """
    Candidate entity for registration.

    Everything is optional at the schema level; the EntityValidator reports
    missing and malformed fields together, in rule order.
    """
    name: Optional[str] = None
    entity_type: Optional[EntityType] = None
    nmls_id: Optional[str] = None
    dba_name: Optional[str] = None
    primary_contact: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    license_number: Optional[str] = None
    license_expiry: Optional[date] = None
    registration_date: Optional[date] = None
    compliance_status: Optional[ComplianceStatus] = None
    risk_level: Optional[RiskLevel] = None
    total_assets: Optional[Decimal] = None
    employee_count: Optional[int] = None
    notes: Optional[str] = None


class EntityUpdate(BaseModel):
    """
    Descriptive fields a caller may change through the generic update path.

    Status, risk, review dates and the active flag have dedicated operations.
    """
    name: Optional[str] = None
    entity_type: Optional[EntityType] = None
    nmls_id: Optional[str] = None
    dba_name: Optional[str] = None
    primary_contact: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    license_number: Optional[str] = None
    license_expiry: Optional[date] = None
    total_assets: Optional[Decimal] = None
    employee_count: Optional[int] = None
    notes: Optional[str] = None


class EntityRead(BaseModel):
    id: int
    name: str
    entity_type: EntityType
    nmls_id: Optional[str]
    dba_name: Optional[str]
    primary_contact: Optional[str]
    contact_email: Optional[str]
    contact_phone: Optional[str]
    address_line1: Optional[str]
    address_line2: Optional[str]
    city: Optional[str]
    state: Optional[str]
    zip_code: Optional[str]
    license_number: str
    license_expiry: Optional[date]
    registration_date: date
    compliance_status: ComplianceStatus
    risk_level: RiskLevel
    last_review_date: Optional[date]
    next_review_date: Optional[date]
    total_assets: Optional[Decimal]
    employee_count: Optional[int]
    is_active: bool
    notes: Optional[str]
    created_at: datetime
    created_by: str
    modified_at: Optional[datetime]
    modified_by: Optional[str]
    version: int

    model_config = {"from_attributes": True}
