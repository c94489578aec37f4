"""
Test fixtures for RegWatch.

Provides:
- File-backed SQLite database per test (audit triggers included)
- Session factory and a fixed, advanceable clock
- ComplianceService wired to both
- Sample data factories for entities and violations
"""

from datetime import date, datetime
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from regwatch.clock import FixedClock
from regwatch.config import Settings
from regwatch.db.engine import build_engine, build_session_factory, init_db
from regwatch.schemas.entity import EntityCreate
from regwatch.schemas.enums import ComplianceStatus, EntityType, RiskLevel, ViolationSeverity
from regwatch.schemas.violation import ViolationCreate
from regwatch.services.compliance import ComplianceService

START = datetime(2026, 3, 15, 9, 0, 0)
ACTOR = "analyst@regwatch.test"


# ── Database ─────────────────────────────────────────────────────────────


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        environment="development",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'regwatch.db'}",
        log_format="console",
    )


@pytest_asyncio.fixture
async def engine(test_settings) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh database with all tables and audit triggers."""
    eng = build_engine(test_settings)
    await init_db(eng, test_settings)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


# ── Service ──────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest_asyncio.fixture
async def service(session_factory, clock, test_settings) -> ComplianceService:
    return ComplianceService(session_factory, clock=clock, settings=test_settings)


# ── Sample data factories ────────────────────────────────────────────────


@pytest.fixture
def make_entity():
    def _make(**overrides) -> EntityCreate:
        data = dict(
            name="First Harbor Bank",
            entity_type=EntityType.BANK,
            license_number="BK-100200",
            license_expiry=date(2027, 6, 30),
            compliance_status=ComplianceStatus.COMPLIANT,
            risk_level=RiskLevel.LOW,
            primary_contact="Dana Whitfield",
            contact_email="compliance@firstharbor.example",
            contact_phone="(617) 555-0142",
            city="Boston",
            state="ma",
            zip_code="02110",
            total_assets=Decimal("1250000000.00"),
            employee_count=420,
        )
        data.update(overrides)
        return EntityCreate(**data)

    return _make


@pytest.fixture
def make_violation():
    def _make(**overrides) -> ViolationCreate:
        data = dict(
            violation_type="BSA/AML reporting",
            violation_code="BSA-314",
            description="Suspicious activity reports filed after the deadline",
            severity=ViolationSeverity.MEDIUM,
            violation_date=date(2026, 3, 1),
            reported_by="examiner@state.example",
            fine_amount=Decimal("5000.00"),
        )
        data.update(overrides)
        return ViolationCreate(**data)

    return _make


@pytest_asyncio.fixture
async def entity(service, make_entity):
    """A registered COMPLIANT / LOW bank."""
    return await service.register_entity(make_entity(), ACTOR)
