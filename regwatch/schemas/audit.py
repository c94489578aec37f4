"""Pydantic schemas for the audit log."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from regwatch.schemas.enums import AuditAction


class AuditEntryRead(BaseModel):
    id: int
    entity_id: Optional[int]
    action_type: AuditAction
    details: Optional[str]
    before_value: Optional[dict[str, Any]]
    after_value: Optional[dict[str, Any]]
    performed_at: datetime
    performed_by: str
    previous_hash: Optional[str]
    entry_hash: str

    model_config = {"from_attributes": True}


class ChainBreak(BaseModel):
    entry_id: int
    issue: str
    expected: Optional[str] = None
    actual: Optional[str] = None


class ChainIntegrityReport(BaseModel):
    status: str                 # "empty" | "intact" | "broken"
    total_entries: int
    chain_intact: bool
    breaks_found: int = 0
    breaks: list[ChainBreak] = []
