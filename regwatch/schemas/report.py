"""Pydantic schemas for scores and summary reports."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel


class ComplianceScore(BaseModel):
    entity_id: int
    as_of: date
    window_start: date
    months_back: int
    critical_count: int
    high_count: int
    other_count: int
    score: int
    rating: str


class ComplianceSummary(BaseModel):
    """Portfolio-level snapshot over active entities."""
    as_of: date
    total_entities: int
    by_status: dict[str, int]
    by_risk_level: dict[str, int]
    by_entity_type: dict[str, int]
    licenses_expiring_soon: int
    overdue_reviews: int
    active_violations: int
    unpaid_fine_count: int
    unpaid_fine_total: Decimal
    unresolved_alerts: int
    unacknowledged_alerts: int


class UnpaidFineLine(BaseModel):
    entity_id: int
    entity_name: str
    unpaid_count: int
    unpaid_total: Decimal


class SeverityBreakdownLine(BaseModel):
    severity: str
    total: int
    active: int
    total_fines: Decimal


class PriorityBreakdownLine(BaseModel):
    priority: str
    unresolved: int
    unacknowledged: int
