"""Pydantic schemas for AlertNotification resource."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from regwatch.schemas.enums import AlertPriority, AlertType


class AlertRead(BaseModel):
    id: int
    entity_id: int
    violation_id: Optional[int]
    alert_type: AlertType
    priority: AlertPriority
    message: str
    created_at: datetime
    acknowledged: bool
    acknowledged_by: Optional[str]
    acknowledged_at: Optional[datetime]
    resolved: bool
    resolved_at: Optional[datetime]
    notes: Optional[str]
    dedup_key: Optional[str]

    model_config = {"from_attributes": True}


class RuleRunResult(BaseModel):
    """Outcome of one alert-rule run."""
    rule: str
    evaluated_at: datetime
    candidates: int = 0
    created: int = 0
    skipped_duplicates: int = 0
    alert_ids: list[int] = []
